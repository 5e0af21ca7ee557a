"""Room snapshots on disk.

All rooms live in a single JSON array (``rooms.json``); timelines and the
remaining deck are embedded inline. Keys are camelCase so the file matches
what clients see. There is no schema version: a format change needs a
migration pass over the stored array.

Writes are debounced. A crash inside the debounce window loses that window's
mutations, which is accepted in exchange for not rewriting the file on every
placement.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable

from .models import (
    WIN_CONDITION_MAX,
    WIN_CONDITION_MIN,
    Item,
    Player,
    Room,
    RoomSettings,
    TimelineEntry,
)

logger = logging.getLogger(__name__)

_GAME_STATES = ("lobby", "playing", "finished")


def item_to_record(item: Item) -> dict[str, Any]:
    return {
        "id": item.id,
        "name": item.name,
        "year": item.year,
        "image": item.image,
        "thumbnail": item.thumbnail,
    }


def item_from_record(record: Any) -> Item:
    if not isinstance(record, dict):
        raise ValueError("item record must be an object")
    year = record.get("year")
    if isinstance(year, bool) or not isinstance(year, int):
        raise ValueError(f"item {record.get('id')!r} has no integer year")
    image = record.get("image")
    thumbnail = record.get("thumbnail")
    return Item(
        id=str(record["id"]),
        name=str(record.get("name", "")),
        year=year,
        image=str(image) if image else None,
        thumbnail=str(thumbnail) if thumbnail else None,
    )


def player_to_record(player: Player) -> dict[str, Any]:
    return {
        "id": player.id,
        "name": player.name,
        "score": player.score,
        "timeline": [
            {**item_to_record(entry.item), "revealed": entry.revealed} for entry in player.timeline
        ],
    }


def player_from_record(record: Any) -> Player:
    if not isinstance(record, dict) or "id" not in record:
        raise ValueError("player record must be an object with an id")
    timeline = [
        TimelineEntry(item=item_from_record(e), revealed=bool(e.get("revealed", True)))
        for e in record.get("timeline") or []
    ]
    return Player(
        id=str(record["id"]),
        name=str(record.get("name", "")),
        score=max(0, int(record.get("score") or 0)),
        timeline=timeline,
    )


def room_to_record(room: Room) -> dict[str, Any]:
    winner = None
    if room.winner is not None:
        winner = {"id": room.winner.id, "name": room.winner.name, "score": room.winner.score}
    return {
        "code": room.code,
        "host": room.host,
        "players": [player_to_record(p) for p in room.players],
        "gameState": room.game_state,
        "currentPlayerIndex": room.current_player_index,
        "deck": [item_to_record(i) for i in room.deck],
        "currentGame": item_to_record(room.current_game) if room.current_game else None,
        "settings": {"winCondition": room.settings.win_condition},
        "winner": winner,
        "lastActivity": room.last_activity,
    }


def room_from_record(record: Any) -> Room:
    if not isinstance(record, dict):
        raise ValueError("room record must be an object")

    code = record.get("code")
    if not isinstance(code, str) or not code:
        raise ValueError("room record has no code")

    game_state = record.get("gameState", "lobby")
    if game_state not in _GAME_STATES:
        raise ValueError(f"room {code}: unknown gameState {game_state!r}")

    players = [player_from_record(p) for p in record.get("players") or []]
    if not players:
        raise ValueError(f"room {code}: no players")

    current_game = record.get("currentGame")
    settings = record.get("settings") or {}
    if not isinstance(settings, dict):
        raise ValueError(f"room {code}: settings must be an object")
    win_condition = int(settings.get("winCondition", RoomSettings().win_condition))

    room = Room(
        code=code.upper(),
        host=str(record.get("host") or players[0].id),
        players=players,
        game_state=game_state,
        current_player_index=int(record.get("currentPlayerIndex") or 0),
        deck=[item_from_record(i) for i in record.get("deck") or []],
        current_game=item_from_record(current_game) if current_game else None,
        settings=RoomSettings(win_condition=min(WIN_CONDITION_MAX, max(WIN_CONDITION_MIN, win_condition))),
        last_activity=int(record.get("lastActivity") or 0),
    )

    if not room.has_player(room.host):
        room.host = players[0].id
    if not 0 <= room.current_player_index < len(players):
        room.current_player_index = 0

    winner = record.get("winner")
    if isinstance(winner, dict) and winner.get("id"):
        # The winner may have left after the game ended; keep a detached copy then.
        room.winner = room.get_player(str(winner["id"])) or Player(
            id=str(winner["id"]),
            name=str(winner.get("name", "")),
            score=int(winner.get("score") or 0),
        )

    return room


class Debouncer:
    """Cancel-and-reschedule timer: only the last call inside ``delay`` runs."""

    def __init__(self, delay: float) -> None:
        self.delay = delay
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def schedule(self, fn: Callable[[], None]) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            timer = threading.Timer(self.delay, self._fire, args=(self._generation, fn))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        with self._lock:
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _fire(self, generation: int, fn: Callable[[], None]) -> None:
        with self._lock:
            if generation != self._generation:
                # Superseded by a later schedule() or cancelled.
                return
            self._timer = None
        try:
            fn()
        except Exception:
            logger.exception("Debounced task failed")


class RoomStore:
    def __init__(self, path: Path | str, debounce_sec: float = 1.0) -> None:
        self.path = Path(path)
        self._debouncer = Debouncer(debounce_sec)
        self._write_lock = threading.Lock()

    @property
    def save_pending(self) -> bool:
        return self._debouncer.pending

    def load(self) -> dict[str, Room]:
        """Read all rooms; a missing or unreadable file means starting fresh."""
        if not self.path.exists():
            logger.info("No rooms file at %s, starting fresh", self.path)
            return {}

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Error loading rooms from %s: %s", self.path, exc)
            return {}

        if not isinstance(raw, list):
            logger.error("Error loading rooms from %s: expected a JSON array", self.path)
            return {}

        rooms: dict[str, Room] = {}
        for record in raw:
            try:
                room = room_from_record(record)
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping unreadable room record: %s", exc)
                continue
            rooms[room.code] = room

        logger.info("Loaded %d rooms from disk", len(rooms))
        return rooms

    def save(self, records: list[dict[str, Any]]) -> bool:
        data = json.dumps(records, indent=2)

        with self._write_lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(prefix=".rooms-", suffix=".json", dir=self.path.parent)
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as fh:
                        fh.write(data)
                    os.replace(tmp_name, self.path)
                except BaseException:
                    if os.path.exists(tmp_name):
                        os.unlink(tmp_name)
                    raise
            except OSError as exc:
                logger.error("Error saving rooms to %s: %s", self.path, exc)
                return False

        logger.debug("Saved %d rooms to %s", len(records), self.path)
        return True

    def schedule_save(self, snapshot: Callable[[], list[dict[str, Any]]]) -> None:
        """Write ``snapshot()`` once no further call arrives within the debounce window.

        ``snapshot`` runs when the timer fires, so the latest state is written.
        """
        self._debouncer.schedule(lambda: self.save(snapshot()))

    def flush(self, records: list[dict[str, Any]]) -> bool:
        self._debouncer.cancel()
        return self.save(records)
