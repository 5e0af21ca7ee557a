"""Turn and placement rules.

Pure functions over :class:`Room`. They never touch the registry, locks or
persistence; callers own those concerns. Every function validates first and
mutates afterwards, so a raised :class:`GameError` leaves the room unchanged.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Sequence

from .errors import (
    CatalogUnavailable,
    GameAlreadyStarted,
    InvalidPosition,
    InvalidSettings,
    NoCurrentItem,
    NotEnoughPlayers,
    NotYourTurn,
    RoomNotPlaying,
)
from .models import (
    WIN_CONDITION_MAX,
    WIN_CONDITION_MIN,
    Item,
    Player,
    Room,
    TimelineEntry,
)


@dataclass(frozen=True)
class PlacementResult:
    correct: bool
    item: Item
    position: int


@dataclass(frozen=True)
class PlacementOutcome:
    result: PlacementResult
    winner: Player | None = None


def start_game(
    room: Room,
    items: Sequence[Item],
    min_deck_size: int = 30,
    min_players: int = 2,
) -> None:
    """Deal a fresh game from ``items`` (already shuffled by the catalog)."""
    if len(room.players) < min_players:
        raise NotEnoughPlayers(f"At least {min_players} players are required")
    if room.game_state != "lobby":
        raise GameAlreadyStarted()
    if len(items) < max(min_deck_size, len(room.players) + 1):
        raise CatalogUnavailable()

    deck = list(items)
    for player in room.players:
        player.reset()
        player.timeline.append(TimelineEntry(item=deck.pop(), revealed=True))

    room.current_game = deck.pop()
    room.deck = deck
    room.winner = None
    room.current_player_index = 0
    room.game_state = "playing"


def is_correct_placement(timeline: Sequence[TimelineEntry], item: Item, position: int) -> bool:
    # Ties on year are accepted on either side.
    if position > 0 and timeline[position - 1].year > item.year:
        return False
    if position < len(timeline) and timeline[position].year < item.year:
        return False
    return True


def top_scorer(players: Sequence[Player]) -> Player | None:
    """Highest score wins; ties go to the first such player in turn order."""
    best: Player | None = None
    for p in players:
        if best is None or p.score > best.score:
            best = p
    return best


_POSITION_RE = re.compile(r"-?[0-9]+")


def _parse_position(raw: Any) -> int:
    if isinstance(raw, bool):
        raise InvalidPosition()
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and _POSITION_RE.fullmatch(raw.strip()):
        return int(raw.strip())
    raise InvalidPosition()


def place_game(room: Room, player_id: str, position: Any) -> PlacementOutcome:
    if room.game_state != "playing":
        raise RoomNotPlaying()

    player = room.current_player
    if player is None or player.id != player_id:
        raise NotYourTurn()

    item = room.current_game
    if item is None:
        raise NoCurrentItem()

    pos = _parse_position(position)
    timeline = player.timeline
    if pos < 0 or pos > len(timeline):
        raise InvalidPosition()

    correct = is_correct_placement(timeline, item, pos)
    result = PlacementResult(correct=correct, item=item, position=pos)

    if correct:
        timeline.insert(pos, TimelineEntry(item=item, revealed=True))
        player.score += 1

        if player.score >= room.settings.win_condition:
            room.game_state = "finished"
            room.winner = player
            return PlacementOutcome(result=result, winner=player)

    if not room.deck:
        room.game_state = "finished"
        room.winner = top_scorer(room.players)
        return PlacementOutcome(result=result, winner=room.winner)

    room.current_game = room.deck.pop()
    room.current_player_index = (room.current_player_index + 1) % len(room.players)
    return PlacementOutcome(result=result)


def clamp_win_condition(value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidSettings("winCondition must be a number")
    try:
        win_condition = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidSettings("winCondition must be a number") from exc
    return min(WIN_CONDITION_MAX, max(WIN_CONDITION_MIN, win_condition))


def update_settings(room: Room, win_condition: Any = None) -> None:
    """Apply settings that were provided. Host checks happen at the caller."""
    if win_condition is None:
        return
    room.settings.win_condition = clamp_win_condition(win_condition)


def rematch(room: Room) -> None:
    """Back to the lobby with clean scores; the deck is rebuilt on next start."""
    if room.game_state == "playing":
        raise GameAlreadyStarted()

    room.game_state = "lobby"
    room.winner = None
    room.current_game = None
    room.current_player_index = 0
    for p in room.players:
        p.reset()
