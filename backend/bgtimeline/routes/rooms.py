from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from ..game.registry import RoomRegistry

bp = Blueprint("rooms", __name__)


def _registry() -> RoomRegistry:
    return current_app.extensions["bgtimeline.registry"]


@bp.get("/rooms/<code>")
def get_room(code: str):
    registry = _registry()
    room = registry.get_room(code)
    if not room:
        return jsonify({"error": "room_not_found"}), 404
    return jsonify(registry.public_state(room))
