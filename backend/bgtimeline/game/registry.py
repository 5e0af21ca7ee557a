from __future__ import annotations

import logging
import random
import time
from contextlib import contextmanager
from threading import RLock
from typing import Any, Callable, Iterator, Protocol, Sequence

from . import engine
from .errors import (
    AlreadyJoined,
    CatalogUnavailable,
    GameAlreadyStarted,
    NotEnoughPlayers,
    RoomFull,
    RoomNotFound,
)
from .models import Item, Player, Room
from .persistence import RoomStore, room_to_record
from .views import room_public_state

logger = logging.getLogger(__name__)

# Uppercase letters and digits without I, O, 0 and 1.
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 4


def now_ms() -> int:
    return int(time.time() * 1000)


def normalize_code(code: Any) -> str:
    if not isinstance(code, str):
        return ""
    return code.strip().upper()


class Catalog(Protocol):
    def fetch_shuffled_items(self, min_count: int) -> Sequence[Item]: ...


class RoomRegistry:
    """Owns every live room.

    ``_lock`` guards the room map; each room has its own ``RLock`` for its
    read-modify-write sequences. A room lock may be held while briefly taking
    ``_lock``, never the other way round.
    """

    def __init__(
        self,
        catalog: Catalog | None = None,
        store: RoomStore | None = None,
        max_players: int = 8,
        min_players: int = 2,
        min_deck_size: int = 30,
        room_max_age_sec: int = 24 * 60 * 60,
        clock: Callable[[], int] = now_ms,
        rng: random.Random | None = None,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.max_players = max_players
        self.min_players = min_players
        self.min_deck_size = min_deck_size
        self.room_max_age_ms = room_max_age_sec * 1000
        self._clock = clock
        self._rng = rng or random.SystemRandom()
        self._lock = RLock()
        self._rooms: dict[str, Room] = {}
        self._room_locks: dict[str, RLock] = {}

    # -- lifecycle -----------------------------------------------------------

    def load(self) -> int:
        if self.store is None:
            return 0
        rooms = self.store.load()
        with self._lock:
            self._rooms = dict(rooms)
            self._room_locks = {code: RLock() for code in self._rooms}
            return len(self._rooms)

    def records(self) -> list[dict]:
        """Serialize every room, each under its own lock."""
        out = []
        for room in self.list_rooms():
            with self._room_lock(room.code):
                if self._rooms.get(room.code) is room:
                    out.append(room_to_record(room))
        return out

    def flush(self) -> None:
        if self.store is not None:
            self.store.flush(self.records())

    def _schedule_save(self) -> None:
        if self.store is not None:
            self.store.schedule_save(self.records)

    def _touch(self, room: Room) -> None:
        room.last_activity = self._clock()
        self._schedule_save()

    # -- locking -------------------------------------------------------------

    def _room_lock(self, code: str) -> RLock:
        with self._lock:
            # Deleted rooms get a throwaway lock; callers re-check membership anyway.
            return self._room_locks.get(code) or RLock()

    @contextmanager
    def _locked(self, code: Any) -> Iterator[Room]:
        room = self.get_room(code)
        if room is None:
            raise RoomNotFound()
        with self._room_lock(room.code):
            # The room may have been deleted while we waited for its lock.
            if self._rooms.get(room.code) is not room:
                raise RoomNotFound()
            yield room

    def _delete_locked(self, room: Room) -> None:
        with self._lock:
            if self._rooms.get(room.code) is room:
                del self._rooms[room.code]
                self._room_locks.pop(room.code, None)

    # -- lookups -------------------------------------------------------------

    def get_room(self, code: Any) -> Room | None:
        with self._lock:
            return self._rooms.get(normalize_code(code))

    def get_room_for_player(self, player_id: str) -> Room | None:
        for room in self.list_rooms():
            if room.has_player(player_id):
                return room
        return None

    def list_rooms(self) -> list[Room]:
        with self._lock:
            return list(self._rooms.values())

    def public_state(self, room: Room) -> dict:
        with self._room_lock(room.code):
            return room_public_state(room)

    # -- membership ----------------------------------------------------------

    def _generate_code(self) -> str:
        code = "".join(self._rng.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
        while code in self._rooms:
            code = "".join(self._rng.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
        return code

    def create_room(self, host: Player) -> Room:
        with self._lock:
            code = self._generate_code()
            room = Room(code=code, host=host.id, players=[host], last_activity=self._clock())
            self._rooms[code] = room
            self._room_locks[code] = RLock()

        logger.info("Room %s created by %s", code, host.name)
        self._schedule_save()
        return room

    def join_room(self, code: Any, player: Player) -> Room:
        with self._locked(code) as room:
            if room.game_state != "lobby":
                raise GameAlreadyStarted()
            if len(room.players) >= self.max_players:
                raise RoomFull(f"Room is full (max. {self.max_players} players)")
            if room.has_player(player.id):
                raise AlreadyJoined()

            room.players.append(player)
            self._touch(room)

        logger.info("%s joined room %s", player.name, room.code)
        return room

    def leave_room(self, code: Any, player_id: str) -> Room | None:
        """Remove a player. Returns the room, or None once it no longer exists."""
        try:
            with self._locked(code) as room:
                player = room.get_player(player_id)
                if player is None:
                    return room

                room.players.remove(player)

                if room.is_empty:
                    self._delete_locked(room)
                    logger.info("Room %s closed, last player left", room.code)
                    self._schedule_save()
                    return None

                if room.host == player_id:
                    room.host = room.players[0].id
                if room.current_player_index >= len(room.players):
                    room.current_player_index = 0

                self._touch(room)
                logger.info("%s left room %s", player.name, room.code)
                return room
        except RoomNotFound:
            return None

    def rename_player(self, player_id: str, name: str) -> Room | None:
        room = self.get_room_for_player(player_id)
        if room is None:
            return None
        try:
            with self._locked(room.code) as locked:
                player = locked.get_player(player_id)
                if player is None:
                    return None
                player.name = name
                self._touch(locked)
                return locked
        except RoomNotFound:
            return None

    # -- game flow -----------------------------------------------------------

    def start_game(self, code: Any) -> Room:
        # Cheap checks first so a doomed start does not hit the catalog.
        with self._locked(code) as room:
            if len(room.players) < self.min_players:
                raise NotEnoughPlayers(f"At least {self.min_players} players are required")
            if room.game_state != "lobby":
                raise GameAlreadyStarted()

        if self.catalog is None:
            raise CatalogUnavailable()
        try:
            items = list(self.catalog.fetch_shuffled_items(self.min_deck_size))
        except CatalogUnavailable:
            raise
        except Exception as exc:
            logger.error("Catalog fetch failed for room %s: %s", room.code, exc)
            raise CatalogUnavailable() from exc

        # The world may have moved on while the catalog was loading.
        with self._locked(room.code) as room:
            engine.start_game(
                room,
                items,
                min_deck_size=self.min_deck_size,
                min_players=self.min_players,
            )
            self._touch(room)

        logger.info("Game started in room %s with %d cards", room.code, len(room.deck))
        return room

    def place_game(self, code: Any, player_id: str, position: Any) -> engine.PlacementOutcome:
        with self._locked(code) as room:
            outcome = engine.place_game(room, player_id, position)
            self._touch(room)

        if outcome.winner is not None:
            logger.info("Game ended in room %s. Winner: %s", room.code, outcome.winner.name)
        return outcome

    def update_settings(self, code: Any, win_condition: Any = None) -> Room:
        with self._locked(code) as room:
            engine.update_settings(room, win_condition=win_condition)
            self._touch(room)
        return room

    def rematch(self, code: Any) -> Room:
        with self._locked(code) as room:
            engine.rematch(room)
            self._touch(room)
        return room

    # -- housekeeping --------------------------------------------------------

    def cleanup_old_rooms(self, now: int | None = None) -> int:
        """Drop rooms idle for longer than the max age; returns how many went."""
        now = self._clock() if now is None else now
        cleaned = 0
        for room in self.list_rooms():
            with self._room_lock(room.code):
                if self._rooms.get(room.code) is not room:
                    continue
                if room.last_activity and now - room.last_activity > self.room_max_age_ms:
                    self._delete_locked(room)
                    cleaned += 1

        if cleaned:
            logger.info("Cleaned up %d inactive rooms", cleaned)
            if self.store is not None:
                self.store.save(self.records())
        return cleaned
