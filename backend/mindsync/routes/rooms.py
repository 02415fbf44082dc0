from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from ..game import service as game
from ..game.errors import GameError
from ..utils.ip import get_client_ip

bp = Blueprint("rooms", __name__)

logger = logging.getLogger(__name__)


def _service() -> game.GameService:
    return current_app.extensions["mindsync"]


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _str(payload: dict, key: str) -> str:
    value = payload.get(key, "")
    return value.strip() if isinstance(value, str) else ""


@bp.errorhandler(GameError)
def handle_game_error(e: GameError):
    return jsonify(e.to_dict()), e.status


@bp.post("/rooms")
def create_room():
    data = _payload()
    view = _service().create_room(_str(data, "hostName"))
    logger.info("room %s created from %s", view["roomId"], get_client_ip(request))
    return jsonify(view), 201


@bp.post("/rooms/join")
def join_room():
    data = _payload()
    player = _service().join_room(_str(data, "roomCode"), _str(data, "playerName"))
    logger.info("player %s joined from %s", player.player_id, get_client_ip(request))
    return jsonify(game.player_public(player)), 201


@bp.get("/rooms/<room_id>")
def get_room(room_id: str):
    view = _service().get_room(room_id)
    if not view:
        return jsonify({"error": "room_not_found"}), 404
    return jsonify(view)


@bp.get("/rooms/code/<code>")
def get_room_by_code(code: str):
    view = _service().get_room_by_code(code)
    if not view:
        return jsonify({"error": "room_not_found"}), 404
    return jsonify(view)


@bp.get("/rooms/<room_id>/players")
def list_players(room_id: str):
    players = _service().list_players(room_id)
    return jsonify({"players": [game.player_public(p) for p in players]})


@bp.get("/rooms/<room_id>/answers")
def list_answers(room_id: str):
    answers = _service().list_answers(room_id)
    return jsonify({"answers": [game.answer_public(a) for a in answers]})


@bp.get("/rooms/<room_id>/progress")
def answer_progress(room_id: str):
    return jsonify(_service().answer_progress(room_id))


@bp.post("/rooms/<room_id>/leave")
def leave_room(room_id: str):
    data = _payload()
    player_id = _str(data, "playerId")
    if not player_id:
        return jsonify({"error": "invalid_payload"}), 400
    return jsonify({"ok": _service().leave_room(room_id, player_id)})


@bp.post("/rooms/<room_id>/kick")
def kick_player(room_id: str):
    data = _payload()
    player_id = _str(data, "playerId")
    kicked_player_id = _str(data, "kickedPlayerId")
    if not player_id or not kicked_player_id:
        return jsonify({"error": "invalid_payload"}), 400
    return jsonify({"ok": _service().kick_player(room_id, player_id, kicked_player_id)})


@bp.post("/rooms/<room_id>/start")
def start_game(room_id: str):
    return jsonify(_service().start_game(room_id))


@bp.post("/rooms/<room_id>/answers")
def submit_answer(room_id: str):
    data = _payload()
    text = data.get("textAnswer")
    drawing = data.get("drawingData")
    answer = _service().submit_answer(
        room_id,
        _str(data, "playerId"),
        _str(data, "answerType"),
        text=text if isinstance(text, str) else None,
        drawing=drawing if isinstance(drawing, str) else None,
    )
    return jsonify(game.answer_public(answer)), 201


@bp.post("/rooms/<room_id>/judging")
def start_judging(room_id: str):
    return jsonify(_service().start_judging(room_id))


@bp.post("/rooms/<room_id>/comments")
def generate_comments(room_id: str):
    batch = _service().generate_judging_comments(room_id)
    return jsonify(game.comment_batch_public(batch))


@bp.post("/rooms/<room_id>/judge")
def judge_answers(room_id: str):
    data = _payload()
    result = _service().judge_answers(room_id, data.get("isMatch"))
    return jsonify(game.judge_result_public(result))


@bp.post("/rooms/<room_id>/next")
def next_round(room_id: str):
    return jsonify(_service().next_round(room_id))


@bp.post("/rooms/<room_id>/end")
def end_game(room_id: str):
    return jsonify(_service().end_game(room_id))
