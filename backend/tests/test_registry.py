import random

import pytest

from bgtimeline.game.errors import (
    AlreadyJoined,
    CatalogUnavailable,
    GameAlreadyStarted,
    NotEnoughPlayers,
    RoomFull,
    RoomNotFound,
)
from bgtimeline.game.models import Player
from bgtimeline.game.persistence import RoomStore
from bgtimeline.game.registry import CODE_ALPHABET, RoomRegistry

from conftest import FakeCatalog, make_items


class Clock:
    def __init__(self, now=1_000_000):
        self.now = now

    def __call__(self):
        return self.now


def test_create_room_uses_four_char_codes(registry):
    codes = set()
    for i in range(200):
        room = registry.create_room(Player(id=f"p{i}", name="P"))
        assert len(room.code) == 4
        assert set(room.code) <= set(CODE_ALPHABET)
        codes.add(room.code)
    assert len(codes) == 200
    assert len(registry.list_rooms()) == 200


def test_create_room_retries_on_collision(registry):
    class ScriptedRng:
        def __init__(self, letters):
            self.letters = iter(letters)

        def choice(self, seq):
            return next(self.letters)

    registry._rng = ScriptedRng("AAAA" + "AAAA" + "BBBB")
    first = registry.create_room(Player(id="a", name="A"))
    second = registry.create_room(Player(id="b", name="B"))
    assert first.code == "AAAA"
    assert second.code == "BBBB"


def test_create_room_starts_in_lobby_with_host(registry, alice):
    room = registry.create_room(alice)
    assert room.host == alice.id
    assert room.players == [alice]
    assert room.game_state == "lobby"
    assert room.settings.win_condition == 10


def test_get_room_is_case_insensitive(registry, alice):
    room = registry.create_room(alice)
    assert registry.get_room(room.code.lower()) is room
    assert registry.get_room(f"  {room.code} ") is room
    assert registry.get_room("ZZZZ") is None
    assert registry.get_room(None) is None


def test_join_room_appends_in_order(registry, alice, bob):
    room = registry.create_room(alice)
    carol = Player(id="sid-carol", name="Carol")
    registry.join_room(room.code.lower(), bob)
    registry.join_room(room.code, carol)
    assert [p.id for p in room.players] == [alice.id, bob.id, carol.id]


def test_join_unknown_room(registry, bob):
    with pytest.raises(RoomNotFound):
        registry.join_room("QQQQ", bob)


def test_join_started_room(registry, lobby_room):
    registry.start_game(lobby_room.code)
    with pytest.raises(GameAlreadyStarted):
        registry.join_room(lobby_room.code, Player(id="late", name="Late"))


def test_join_full_room(registry, alice):
    room = registry.create_room(alice)
    for i in range(7):
        registry.join_room(room.code, Player(id=f"p{i}", name=f"P{i}"))
    with pytest.raises(RoomFull):
        registry.join_room(room.code, Player(id="ninth", name="Ninth"))
    assert len(room.players) == 8


def test_rejoin_with_same_id_is_rejected(registry, lobby_room, bob):
    with pytest.raises(AlreadyJoined):
        registry.join_room(lobby_room.code, Player(id=bob.id, name="Bob again"))
    assert [p.id for p in lobby_room.players].count(bob.id) == 1


def test_last_player_leaving_deletes_room(registry, alice):
    room = registry.create_room(alice)
    assert registry.leave_room(room.code, alice.id) is None
    assert registry.get_room(room.code) is None
    # Idempotent once gone.
    assert registry.leave_room(room.code, alice.id) is None


def test_host_leaving_hands_over_to_next_in_join_order(registry, lobby_room, alice, bob):
    carol = Player(id="sid-carol", name="Carol")
    registry.join_room(lobby_room.code, carol)

    room = registry.leave_room(lobby_room.code, alice.id)

    assert room is lobby_room
    assert room.host == bob.id
    assert [p.id for p in room.players] == [bob.id, carol.id]


def test_leave_absent_player_is_noop(registry, lobby_room):
    before = [p.id for p in lobby_room.players]
    assert registry.leave_room(lobby_room.code, "nobody") is lobby_room
    assert [p.id for p in lobby_room.players] == before


def test_current_index_stays_in_bounds_after_removal(registry, lobby_room, alice, bob):
    carol = Player(id="sid-carol", name="Carol")
    registry.join_room(lobby_room.code, carol)
    registry.start_game(lobby_room.code)
    lobby_room.current_player_index = 2

    registry.leave_room(lobby_room.code, carol.id)

    assert lobby_room.current_player_index == 0
    assert lobby_room.current_player is alice


def test_get_room_for_player(registry, lobby_room, bob):
    assert registry.get_room_for_player(bob.id) is lobby_room
    assert registry.get_room_for_player("stranger") is None


def test_rename_player_updates_roster(registry, lobby_room, bob):
    assert registry.rename_player(bob.id, "Robert") is lobby_room
    assert lobby_room.get_player(bob.id).name == "Robert"
    assert registry.rename_player("stranger", "X") is None


def test_start_game_fetches_catalog(registry, catalog, lobby_room):
    room = registry.start_game(lobby_room.code)
    assert catalog.calls == 1
    assert room.game_state == "playing"
    assert all(len(p.timeline) == 1 for p in room.players)
    assert room.current_game is not None


def test_start_game_alone_skips_catalog(registry, catalog, alice):
    room = registry.create_room(alice)
    with pytest.raises(NotEnoughPlayers):
        registry.start_game(room.code)
    assert catalog.calls == 0


def test_start_game_with_small_catalog(alice, bob):
    registry = RoomRegistry(catalog=FakeCatalog(make_items(10)))
    room = registry.create_room(alice)
    registry.join_room(room.code, bob)
    with pytest.raises(CatalogUnavailable):
        registry.start_game(room.code)
    assert room.game_state == "lobby"


def test_start_game_catalog_failure_is_reported(alice, bob):
    class BrokenCatalog:
        def fetch_shuffled_items(self, min_count):
            raise ConnectionError("offline")

    registry = RoomRegistry(catalog=BrokenCatalog())
    room = registry.create_room(alice)
    registry.join_room(room.code, bob)
    with pytest.raises(CatalogUnavailable):
        registry.start_game(room.code)


def test_start_game_revalidates_after_fetch(alice, bob):
    registry = RoomRegistry()

    class LeavingCatalog:
        def fetch_shuffled_items(self, min_count):
            # Bob leaves while the catalog is loading.
            registry.leave_room(room.code, bob.id)
            return make_items(40)

    registry.catalog = LeavingCatalog()
    room = registry.create_room(alice)
    registry.join_room(room.code, bob)

    with pytest.raises(NotEnoughPlayers):
        registry.start_game(room.code)
    assert room.game_state == "lobby"
    assert room.deck == []


def test_place_through_registry_advances_turn(registry, lobby_room, alice):
    registry.start_game(lobby_room.code)

    # Years ascend with the catalog order, so the card in play is older than Alice's.
    outcome = registry.place_game(lobby_room.code, alice.id, 0)

    assert outcome.result.correct is True
    assert lobby_room.players[0].score == 1
    assert lobby_room.current_player_index == 1


def test_update_settings_and_rematch(registry, lobby_room):
    registry.update_settings(lobby_room.code, win_condition=50)
    assert lobby_room.settings.win_condition == 20

    registry.start_game(lobby_room.code)
    with pytest.raises(GameAlreadyStarted):
        registry.rematch(lobby_room.code)

    lobby_room.game_state = "finished"
    registry.rematch(lobby_room.code)
    assert lobby_room.game_state == "lobby"
    assert all(p.score == 0 and not p.timeline for p in lobby_room.players)


def test_mutations_stamp_last_activity(alice, bob):
    clock = Clock()
    registry = RoomRegistry(catalog=FakeCatalog(), clock=clock)
    room = registry.create_room(alice)
    assert room.last_activity == clock.now

    clock.now += 5000
    registry.join_room(room.code, bob)
    assert room.last_activity == clock.now


def test_cleanup_removes_only_stale_rooms(alice, bob):
    clock = Clock(now=10 * 24 * 3600 * 1000)
    registry = RoomRegistry(clock=clock, rng=random.Random(1))
    stale = registry.create_room(alice)
    fresh = registry.create_room(bob)

    stale.last_activity = clock.now - 24 * 3600 * 1000 - 1
    fresh.last_activity = clock.now - 23 * 3600 * 1000

    assert registry.cleanup_old_rooms() == 1
    assert registry.get_room(stale.code) is None
    assert registry.get_room(fresh.code) is fresh


def test_cleanup_persists_immediately(tmp_path, alice):
    clock = Clock(now=10 * 24 * 3600 * 1000)
    store = RoomStore(tmp_path / "rooms.json", debounce_sec=60)
    registry = RoomRegistry(store=store, clock=clock)
    room = registry.create_room(alice)
    room.last_activity = 1

    assert registry.cleanup_old_rooms() == 1
    assert (tmp_path / "rooms.json").read_text() == "[]"
    registry.flush()


def test_mutations_schedule_debounced_save(tmp_path, alice, bob):
    store = RoomStore(tmp_path / "rooms.json", debounce_sec=60)
    registry = RoomRegistry(store=store)

    room = registry.create_room(alice)
    registry.join_room(room.code, bob)

    assert store.save_pending
    assert not (tmp_path / "rooms.json").exists()

    registry.flush()
    assert not store.save_pending

    reloaded = RoomRegistry(store=RoomStore(tmp_path / "rooms.json"))
    assert reloaded.load() == 1
    assert [p.id for p in reloaded.get_room(room.code).players] == [alice.id, bob.id]


def test_list_rooms(registry, alice, bob):
    assert registry.list_rooms() == []
    first = registry.create_room(alice)
    second = registry.create_room(bob)
    assert {r.code for r in registry.list_rooms()} == {first.code, second.code}
