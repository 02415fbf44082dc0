from __future__ import annotations

from flask import Request


_SINGLE_IP_HEADERS = ("CF-Connecting-IP", "X-Real-IP")


def get_client_ip(request: Request) -> str | None:
    """Best guess at the caller's address, for logging only."""
    for header in _SINGLE_IP_HEADERS:
        value = (request.headers.get(header) or "").strip()
        if value:
            return value

    xff = request.headers.get("X-Forwarded-For")
    if xff:
        # Left-most entry is the original client.
        parts = [p.strip() for p in xff.split(",") if p.strip()]
        if parts:
            return parts[0]

    return request.remote_addr or None
