"""Errors raised by the room registry and the turn engine.

Every error carries a stable snake_case ``code`` for clients plus a
human-readable message. The Socket.IO layer turns them into ``error``
events; nothing here is fatal to the process.
"""

from __future__ import annotations


class GameError(Exception):
    code = "game_error"
    message = "Something went wrong"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)

    @property
    def detail(self) -> str:
        return str(self)

    def to_payload(self) -> dict:
        return {"error": self.code, "message": self.detail}


class RoomNotFound(GameError):
    code = "room_not_found"
    message = "Room not found"


class GameAlreadyStarted(GameError):
    code = "game_already_started"
    message = "The game is already running"


class RoomFull(GameError):
    code = "room_full"
    message = "Room is full (max. 8 players)"


class AlreadyJoined(GameError):
    code = "already_joined"
    message = "You are already in this room"


class NotEnoughPlayers(GameError):
    code = "not_enough_players"
    message = "At least 2 players are required"


class CatalogUnavailable(GameError):
    code = "catalog_unavailable"
    message = "Not enough games loaded yet. Please wait..."


class RoomNotPlaying(GameError):
    code = "room_not_playing"
    message = "The game is not running"


class NotYourTurn(GameError):
    code = "not_your_turn"
    message = "It is not your turn"


class InvalidPosition(GameError):
    code = "invalid_position"
    message = "Invalid position"


class NotHost(GameError):
    code = "not_host"
    message = "Only the host can do that"


class NoCurrentItem(GameError):
    code = "no_current_item"
    message = "There is no game to place"


class NotInRoom(GameError):
    code = "not_in_room"
    message = "You are not in a room"


class InvalidName(GameError):
    code = "invalid_name"
    message = "Invalid name"


class InvalidSettings(GameError):
    code = "invalid_settings"
    message = "Invalid settings"
