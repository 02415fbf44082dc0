import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Admin endpoints (disabled when empty)
    ADMIN_TOKEN = os.environ.get("ADMIN_TOKEN", "")

    # Reverse proxy / IP headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Text generation
    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
    OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")
    OPENAI_BASE_URL = os.environ.get("OPENAI_BASE_URL", "")
    OPENAI_TIMEOUT_SEC = float(os.environ.get("OPENAI_TIMEOUT_SEC", "30"))

    # Rooms
    ROOM_TTL_SEC = int(os.environ.get("ROOM_TTL_SEC", "86400"))
    ROOM_CODE_LENGTH = int(os.environ.get("ROOM_CODE_LENGTH", "6"))

    # Game
    TOPIC_BATCH_SIZE = int(os.environ.get("TOPIC_BATCH_SIZE", "10"))
    TOPIC_LOW_WATER_MARK = int(os.environ.get("TOPIC_LOW_WATER_MARK", "3"))
    COMMENT_BATCH_SIZE = int(os.environ.get("COMMENT_BATCH_SIZE", "30"))
    COMMENT_TIMEOUT_SEC = float(os.environ.get("COMMENT_TIMEOUT_SEC", "30"))
