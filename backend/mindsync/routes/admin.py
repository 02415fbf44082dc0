from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

bp = Blueprint("admin", __name__)


def _authorized() -> bool:
    token = current_app.config.get("ADMIN_TOKEN", "")
    if not token:
        return False
    return request.headers.get("X-Admin-Token", "") == token


@bp.get("/__admin__/rooms")
def admin_rooms():
    if not _authorized():
        return jsonify({"error": "unauthorized"}), 401

    rooms = current_app.extensions["mindsync"].list_rooms()
    return jsonify({"rooms": rooms})


@bp.post("/__admin__/purge")
def admin_purge():
    if not _authorized():
        return jsonify({"error": "unauthorized"}), 401

    counts = current_app.extensions["mindsync"].purge_all()
    return jsonify({"ok": True, "deletedCounts": counts})
