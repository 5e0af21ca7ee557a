from __future__ import annotations

from .engine import PlacementResult
from .models import Item, Player, Room, TimelineEntry


def item_public_state(item: Item, hide_year: bool = False) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "year": None if hide_year else item.year,
        "image": item.image,
        "thumbnail": item.thumbnail,
    }


def entry_public_state(entry: TimelineEntry) -> dict:
    d = item_public_state(entry.item)
    d["revealed"] = entry.revealed
    return d


def winner_public_state(player: Player | None) -> dict | None:
    if player is None:
        return None
    return {"id": player.id, "name": player.name, "score": player.score}


def player_public_state(room: Room, player: Player) -> dict:
    current = room.current_player if room.game_state == "playing" else None
    return {
        "id": player.id,
        "name": player.name,
        "score": player.score,
        "timeline": [entry_public_state(e) for e in player.timeline],
        "isCurrentPlayer": current is not None and current.id == player.id,
    }


def room_public_state(room: Room) -> dict:
    # The year of the card in play is the answer; never send it.
    return {
        "code": room.code,
        "host": room.host,
        "players": [player_public_state(room, p) for p in room.players],
        "gameState": room.game_state,
        "currentPlayerIndex": room.current_player_index,
        "currentGame": item_public_state(room.current_game, hide_year=True) if room.current_game else None,
        "deckSize": len(room.deck),
        "winner": winner_public_state(room.winner),
        "settings": {"winCondition": room.settings.win_condition},
    }


def placement_public_state(result: PlacementResult) -> dict:
    game = item_public_state(result.item)
    game["revealed"] = True
    return {"correct": result.correct, "game": game, "position": result.position}
