from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


RoomState = Literal["lobby", "playing", "finished"]

WIN_CONDITION_MIN = 5
WIN_CONDITION_MAX = 20
DEFAULT_WIN_CONDITION = 10
PLAYER_NAME_MAX = 20


@dataclass(frozen=True)
class Item:
    id: str
    name: str
    year: int
    image: str | None = None
    thumbnail: str | None = None


@dataclass
class TimelineEntry:
    item: Item
    # Always true once placed; clients use it to sequence the flip animation.
    revealed: bool = True

    @property
    def year(self) -> int:
        return self.item.year


@dataclass
class Player:
    id: str
    name: str
    score: int = 0
    timeline: list[TimelineEntry] = field(default_factory=list)

    def reset(self) -> None:
        self.score = 0
        self.timeline = []


@dataclass
class RoomSettings:
    win_condition: int = DEFAULT_WIN_CONDITION


@dataclass
class Room:
    code: str
    host: str
    players: list[Player] = field(default_factory=list)
    game_state: RoomState = "lobby"
    current_player_index: int = 0
    # Draw pile, consumed from the end.
    deck: list[Item] = field(default_factory=list)
    current_game: Item | None = None
    settings: RoomSettings = field(default_factory=RoomSettings)
    winner: Player | None = None
    last_activity: int = 0

    def get_player(self, player_id: str) -> Player | None:
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def has_player(self, player_id: str) -> bool:
        return self.get_player(player_id) is not None

    @property
    def current_player(self) -> Player | None:
        if not self.players or not 0 <= self.current_player_index < len(self.players):
            return None
        return self.players[self.current_player_index]

    @property
    def is_empty(self) -> bool:
        return not self.players
