from __future__ import annotations


class GameError(Exception):
    """Base for errors reported to the caller of a game operation.

    ``code`` is the stable machine-readable identifier sent to clients,
    ``status`` the HTTP status the routes answer with.
    """

    code = "game_error"
    status = 500

    def __init__(self, message: str = "", code: str | None = None, status: int | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        if code:
            self.code = code
        if status:
            self.status = status

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class ValidationError(GameError):
    code = "invalid_payload"
    status = 400


class ForbiddenError(GameError):
    code = "only_host"
    status = 403


class NotFoundError(GameError):
    code = "not_found"
    status = 404


class InvalidStateError(GameError):
    code = "invalid_state"
    status = 409


class UpstreamError(GameError):
    code = "upstream_error"
    status = 502
