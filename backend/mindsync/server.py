from __future__ import annotations

import os
import sys
from typing import Any, Callable

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
from werkzeug.middleware.proxy_fix import ProxyFix

from .ai.generators import CommentGenerator, OpenAICommentGenerator, OpenAITopicSupplier, TopicSupplier
from .config import Config
from .game.service import GameService
from .game.store import MemoryRecordStore, RecordStore
from .realtime.events import SocketIONotifier
from .realtime.handlers import register_socketio_handlers
from .routes.admin import bp as admin_bp
from .routes.health import bp as health_bp
from .routes.rooms import bp as rooms_bp


def default_async_mode() -> str:
    env_async_mode = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip()
    if env_async_mode:
        return env_async_mode
    # Default choice:
    # - Windows: threading (eventlet has known compatibility issues on newer Python)
    # - Python >= 3.13: threading (safer default)
    # - Otherwise: eventlet
    if sys.platform.startswith("win") or sys.version_info >= (3, 13):
        return "threading"
    return "eventlet"


def create_app(
    store: RecordStore | None = None,
    topic_supplier: TopicSupplier | None = None,
    comment_generator: CommentGenerator | None = None,
    spawn: Callable[..., Any] | None = None,
    async_mode: str | None = None,
    config: dict | None = None,
) -> tuple[Flask, SocketIO]:
    app = Flask(__name__)
    app.config.from_object(Config)
    if config:
        app.config.update(config)

    if app.config.get("TRUST_PROXY_HEADERS", False):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    cors_origins = app.config.get("CORS_ORIGINS", "*")
    CORS(app, resources={r"/api/*": {"origins": cors_origins}})

    socketio = SocketIO(
        app,
        cors_allowed_origins=cors_origins,
        async_mode=async_mode or default_async_mode(),
    )

    service = GameService(
        store=store or MemoryRecordStore(),
        topic_supplier=topic_supplier or OpenAITopicSupplier(),
        comment_generator=comment_generator or OpenAICommentGenerator(),
        spawn=spawn or socketio.start_background_task,
        notifier=SocketIONotifier(socketio),
        room_ttl_sec=app.config.get("ROOM_TTL_SEC"),
        topic_batch_size=app.config.get("TOPIC_BATCH_SIZE"),
        topic_low_water_mark=app.config.get("TOPIC_LOW_WATER_MARK"),
        comment_batch_size=app.config.get("COMMENT_BATCH_SIZE"),
    )
    app.extensions["mindsync"] = service

    app.register_blueprint(health_bp, url_prefix="/api")
    app.register_blueprint(rooms_bp, url_prefix="/api")
    app.register_blueprint(admin_bp, url_prefix="/api")

    register_socketio_handlers(socketio, service)

    return app, socketio
