from __future__ import annotations

import functools
import logging
import re
from typing import Any

from flask import request
from flask_socketio import SocketIO, emit, join_room, leave_room

from . import events
from ..game.errors import GameError, InvalidName, NotHost, NotInRoom
from ..game.models import PLAYER_NAME_MAX, Player, Room
from ..game.registry import RoomRegistry, normalize_code
from ..game.views import placement_public_state, winner_public_state

logger = logging.getLogger(__name__)

DEFAULT_PLAYER_NAME = "Player"


def _clean_name(raw: Any) -> str:
    n = str(raw or "")
    # No control characters or markup.
    n = re.sub(r"[\x00-\x1f\x7f<>]", "", n).strip()
    n = n[:PLAYER_NAME_MAX].strip()
    if not n:
        raise InvalidName()
    return n


def _arg(data: Any, key: str) -> Any:
    """Clients send either a bare value or ``{key: value}``."""
    if isinstance(data, dict):
        return data.get(key)
    return data


def register_socketio_handlers(socketio: SocketIO, registry: RoomRegistry) -> None:
    # Names chosen before joining a room, keyed by socket id.
    _names: dict[str, str] = {}

    def _reports_errors(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except GameError as exc:
                logger.info("%s rejected for %s: %s", fn.__name__, request.sid, exc.code)
                emit(events.ERROR, exc.to_payload())
                return {"ok": False, "error": exc.code}

        return wrapper

    def _player_name(sid: str) -> str:
        return _names.get(sid, DEFAULT_PLAYER_NAME)

    def _require_room(sid: str) -> Room:
        room = registry.get_room_for_player(sid)
        if room is None:
            raise NotInRoom()
        return room

    def _require_host(room: Room, sid: str) -> None:
        if room.host != sid:
            raise NotHost()

    def _broadcast_room(event: str, room: Room) -> None:
        socketio.emit(event, registry.public_state(room), to=room.code)

    def _leave_current_room(sid: str, notify_player_left: bool = False) -> Room | None:
        room = registry.get_room_for_player(sid)
        if room is None:
            return None

        leave_room(room.code, sid=sid)
        updated = registry.leave_room(room.code, sid)
        if updated is not None:
            _broadcast_room(events.ROOM_UPDATED, updated)
            if notify_player_left:
                socketio.emit(
                    events.PLAYER_LEFT,
                    {"playerId": sid, "playerName": _player_name(sid)},
                    to=updated.code,
                )
        return room

    @socketio.on("connect")
    def on_connect(auth=None):
        _names[request.sid] = DEFAULT_PLAYER_NAME
        logger.info("Player connected: %s", request.sid)

    @socketio.on(events.SET_NAME)
    @_reports_errors
    def set_name(data):
        name = _clean_name(_arg(data, "name"))
        _names[request.sid] = name

        emit(events.NAME_SET, {"id": request.sid, "name": name})

        room = registry.rename_player(request.sid, name)
        if room is not None:
            _broadcast_room(events.ROOM_UPDATED, room)
        return {"ok": True}

    @socketio.on(events.CREATE_ROOM)
    @_reports_errors
    def create_room(data=None):
        _leave_current_room(request.sid)

        room = registry.create_room(Player(id=request.sid, name=_player_name(request.sid)))
        join_room(room.code)
        emit(events.ROOM_CREATED, registry.public_state(room))
        return {"ok": True, "code": room.code}

    @socketio.on(events.JOIN_ROOM)
    @_reports_errors
    def join(data):
        code = normalize_code(_arg(data, "code"))
        previous = registry.get_room_for_player(request.sid)

        room = registry.join_room(code, Player(id=request.sid, name=_player_name(request.sid)))

        if previous is not None and previous.code != room.code:
            leave_room(previous.code)
            updated = registry.leave_room(previous.code, request.sid)
            if updated is not None:
                _broadcast_room(events.ROOM_UPDATED, updated)

        join_room(room.code)
        _broadcast_room(events.ROOM_UPDATED, room)
        emit(events.ROOM_JOINED, registry.public_state(room))
        return {"ok": True, "code": room.code}

    @socketio.on(events.LEAVE_ROOM)
    @_reports_errors
    def leave(data=None):
        room = _leave_current_room(request.sid)
        if room is None:
            return {"ok": False, "error": NotInRoom.code}

        emit(events.LEFT_ROOM)
        return {"ok": True}

    @socketio.on(events.START_GAME)
    @_reports_errors
    def start_game(data=None):
        room = _require_room(request.sid)
        _require_host(room, request.sid)

        room = registry.start_game(room.code)
        _broadcast_room(events.GAME_STARTED, room)
        return {"ok": True}

    @socketio.on(events.PLACE_GAME)
    @_reports_errors
    def place_game(data):
        room = _require_room(request.sid)
        outcome = registry.place_game(room.code, request.sid, _arg(data, "position"))

        room_state = registry.public_state(room)
        socketio.emit(
            events.GAME_PLACED,
            {
                "playerId": request.sid,
                "playerName": _player_name(request.sid),
                "result": placement_public_state(outcome.result),
                "room": room_state,
            },
            to=room.code,
        )

        if outcome.winner is not None:
            socketio.emit(
                events.GAME_ENDED,
                {"winner": winner_public_state(outcome.winner), "room": room_state},
                to=room.code,
            )
        return {"ok": True, "correct": outcome.result.correct}

    @socketio.on(events.UPDATE_SETTINGS)
    @_reports_errors
    def update_settings(data):
        room = _require_room(request.sid)
        _require_host(room, request.sid)

        room = registry.update_settings(room.code, win_condition=_arg(data, "winCondition"))
        _broadcast_room(events.ROOM_UPDATED, room)
        return {"ok": True}

    @socketio.on(events.REMATCH)
    @_reports_errors
    def rematch(data=None):
        room = _require_room(request.sid)

        room = registry.rematch(room.code)
        _broadcast_room(events.ROOM_UPDATED, room)
        return {"ok": True}

    @socketio.on("disconnect")
    def on_disconnect(reason=None):
        logger.info("Player disconnected: %s", request.sid)
        try:
            _leave_current_room(request.sid, notify_player_left=True)
        finally:
            _names.pop(request.sid, None)
