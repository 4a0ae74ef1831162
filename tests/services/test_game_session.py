# tests/services/test_game_session.py
import asyncio
import random

import pytest

from pasiva.models.errors import NetworkError
from pasiva.models.room import Language
from pasiva.services.game_session import GameSession
from pasiva.services.room_service import RoomService
from pasiva.services.room_store import InMemoryRoomStore, RoomStoreError, StaleRoomVersion

BANKRUPT = 3
EXTRA_TURN = 7


async def _started_room(service: RoomService, word: str = "BANANA"):
    """Host plus Bob and Carol, word set, game started. Bob has the first turn."""
    created = (await service.create_room("Host")).value
    bob = (await service.join_room(created.room_id, "Bob")).value
    carol = (await service.join_room(created.room_id, "Carol")).value
    await service.set_secret_word(created.room_id, word, Language.ENGLISH)
    room = (await service.start_game(created.room_id)).value
    return created.room_id, created.player_id, bob.player_id, carol.player_id, room

def _session(service, room_id, player_id, room, rng=None, **kwargs) -> GameSession:
    session = GameSession(service, room_id, player_id, rng=rng or random.Random(0), spin_delay_seconds=0, **kwargs)
    session.on_room_snapshot(room)
    return session


@pytest.mark.asyncio
async def test_points_spin_then_letter_guess_scores_pending_points(room_service, fixed_rng):
    room_id, _, bob, carol, room = await _started_room(room_service)
    session = _session(room_service, room_id, bob, room, rng=fixed_rng(2))

    assert (await session.spin()).value is True
    assert session.pending_points == 300
    assert session.room.last_slice_index == 2
    assert session.room.is_spinning is False
    assert session.room.is_guess_pending

    assert (await session.guess_letter("a")).value is True
    assert session.pending_points == 0
    stored = (await room_service.get_room(room_id)).value
    assert stored.score_of(bob) == 900
    assert stored.current_turn_player.id == carol
    assert stored.last_slice_index is None

@pytest.mark.asyncio
async def test_spin_shows_spinning_during_the_delay(room_service, fixed_rng):
    room_id, _, bob, _, room = await _started_room(room_service)
    seen = []

    async def fake_sleep(seconds):
        seen.append((seconds, (await room_service.get_room(room_id)).value.is_spinning))

    session = GameSession(room_service, room_id, bob, rng=fixed_rng(0), spin_delay_seconds=2.0, sleep=fake_sleep)
    session.on_room_snapshot(room)
    await session.spin()

    assert seen == [(2.0, True)]
    assert (await room_service.get_room(room_id)).value.is_spinning is False

@pytest.mark.asyncio
async def test_repeated_spin_while_in_flight_is_a_no_op(room_service, fixed_rng):
    room_id, _, bob, _, room = await _started_room(room_service)
    inner_results = []
    session = None

    async def fake_sleep(seconds):
        inner_results.append(await session.spin())

    session = GameSession(room_service, room_id, bob, rng=fixed_rng(EXTRA_TURN), spin_delay_seconds=1.0, sleep=fake_sleep)
    session.on_room_snapshot(room)
    before = (await room_service.get_room(room_id)).value.version

    assert (await session.spin()).value is True
    assert [r.value for r in inner_results] == [False]
    # One begin write plus one resolution write
    assert (await room_service.get_room(room_id)).value.version == before + 2


@pytest.mark.asyncio
async def test_bankrupt_spin_wipes_score_and_passes_turn(room_service, fixed_rng):
    room_id, _, bob, carol, room = await _started_room(room_service)
    room = (await room_service.update_room(room_id, {"player_scores": {bob: 700}})).value
    session = _session(room_service, room_id, bob, room, rng=fixed_rng(BANKRUPT))

    await session.spin()

    assert session.pending_points == 0
    assert session.room.score_of(bob) == 0
    assert session.room.current_turn_player.id == carol
    assert session.room.has_extra_turn is False

@pytest.mark.asyncio
async def test_extra_turn_allows_spinning_again(room_service, fixed_rng):
    room_id, _, bob, _, room = await _started_room(room_service)
    rng = fixed_rng(EXTRA_TURN)
    session = _session(room_service, room_id, bob, room, rng=rng)

    await session.spin()
    assert session.room.has_extra_turn is True
    assert session.room.current_turn_player.id == bob

    rng.slice_index = 1
    assert (await session.spin()).value is True
    assert session.pending_points == 200
    assert session.room.has_extra_turn is False

@pytest.mark.asyncio
async def test_wrong_word_consumes_pending_points(room_service, fixed_rng):
    room_id, _, bob, carol, room = await _started_room(room_service)
    session = _session(room_service, room_id, bob, room, rng=fixed_rng(1))

    await session.spin()
    assert session.pending_points == 200
    assert (await session.guess_word("BANDANA")).value is True
    assert session.pending_points == 0
    assert session.room.current_turn_player.id == carol
    assert session.room.score_of(bob) == 0

@pytest.mark.asyncio
async def test_correct_word_wins_the_game(room_service, fixed_rng):
    room_id, _, bob, _, room = await _started_room(room_service, word="CAT")
    session = _session(room_service, room_id, bob, room, rng=fixed_rng(0))

    await session.spin()
    await session.guess_letter("C")
    assert session.room.score_of(bob) == 100

    # Back to Bob after Carol misses
    carol_session = _session(room_service, room_id, session.room.current_turn_player.id, session.room)
    await carol_session.guess_letter("Z")
    session.on_room_snapshot(carol_session.room)

    assert (await session.guess_word("cat")).value is True
    assert session.room.is_game_over
    assert session.room.winner_id == bob
    assert session.room.score_of(bob) == 200
    assert session.view()["display_word"] == "C A T"

@pytest.mark.asyncio
async def test_actions_without_a_snapshot_are_no_ops(room_service):
    session = GameSession(room_service, "123456", "p1", spin_delay_seconds=0)
    assert (await session.spin()).value is False
    assert (await session.guess_letter("A")).value is False
    assert (await session.guess_word("A")).value is False
    assert session.view() is None

@pytest.mark.asyncio
async def test_only_the_host_sets_the_word_and_starts(room_service):
    created = (await room_service.create_room("Host")).value
    bob = (await room_service.join_room(created.room_id, "Bob")).value
    room = (await room_service.get_room(created.room_id)).value

    bob_session = _session(room_service, created.room_id, bob.player_id, room)
    assert (await bob_session.set_secret_word("sneaky", "ENGLISH")).value is False
    assert (await bob_session.start_game()).value is False

    host_session = _session(room_service, created.room_id, created.player_id, room)
    assert (await host_session.set_secret_word("wheel", "HEBREW")).value is True
    assert (await host_session.start_game()).value is True

    stored = (await room_service.get_room(created.room_id)).value
    assert stored.secret_word == "WHEEL"
    assert stored.language is Language.HEBREW
    assert stored.is_game_started

@pytest.mark.asyncio
async def test_view_is_projected_per_viewer(room_service, fixed_rng):
    room_id, host, bob, carol, room = await _started_room(room_service, word="CAT DOG")

    bob_view = _session(room_service, room_id, bob, room).view()
    assert bob_view["display_word"] == "_ _ _   _ _ _"
    assert bob_view["is_my_turn"] is True
    assert bob_view["can_spin"] is True
    assert bob_view["can_guess"] is False
    assert [p["id"] for p in bob_view["players"]] == [bob, carol]
    assert bob_view["current_turn_player_id"] == bob

    host_view = _session(room_service, room_id, host, room).view()
    assert host_view["display_word"] == "C A T   D O G"
    assert host_view["is_host"] is True
    assert host_view["can_spin"] is False

    carol_view = _session(room_service, room_id, carol, room).view()
    assert carol_view["is_my_turn"] is False
    assert carol_view["can_spin"] is False

@pytest.mark.asyncio
async def test_store_failure_is_returned_as_network_error(room_service, memory_store, mocker):
    room_id, _, bob, _, room = await _started_room(room_service)
    session = _session(room_service, room_id, bob, room)
    mocker.patch.object(memory_store, "set", side_effect=RoomStoreError("down"))

    result = await session.guess_letter("A")

    assert isinstance(result.error, NetworkError)
    assert session.pending_points == 0

@pytest.mark.asyncio
async def test_stale_snapshot_overwrites_concurrent_write():
    """Known limitation: two devices deciding from the same snapshot, the later write wins."""
    service = RoomService(InMemoryRoomStore(), rng=random.Random(11))
    room_id, _, bob, _, room = await _started_room(service, word="CAT")
    phone = _session(service, room_id, bob, room)
    tablet = _session(service, room_id, bob, room)

    await phone.guess_letter("C")
    await tablet.guess_letter("A") # tablet never saw the phone's write

    stored = (await service.get_room(room_id)).value
    assert stored.revealed_letters == frozenset({"A"})

@pytest.mark.asyncio
async def test_stale_snapshot_is_rejected_with_optimistic_concurrency():
    service = RoomService(InMemoryRoomStore(), rng=random.Random(11), optimistic_concurrency=True)
    room_id, _, bob, _, room = await _started_room(service, word="CAT")
    phone = _session(service, room_id, bob, room)
    tablet = _session(service, room_id, bob, room)

    assert (await phone.guess_letter("C")).is_success
    result = await tablet.guess_letter("A")

    assert isinstance(result.error, NetworkError)
    assert isinstance(result.error.cause, StaleRoomVersion)
    assert (await service.get_room(room_id)).value.revealed_letters == frozenset({"C"})

@pytest.mark.asyncio
async def test_stale_resolution_releases_the_wheel(fixed_rng):
    service = RoomService(InMemoryRoomStore(), rng=random.Random(11), optimistic_concurrency=True)
    room_id, _, bob, _, room = await _started_room(service)
    late_joins = []

    async def join_during_spin(seconds):
        if not late_joins:
            late_joins.append((await service.join_room(room_id, "Dave")).value)

    session = GameSession(service, room_id, bob, rng=fixed_rng(2), spin_delay_seconds=1.0, sleep=join_during_spin)
    session.on_room_snapshot(room)

    result = await session.spin()

    assert isinstance(result.error, NetworkError)
    assert isinstance(result.error.cause, StaleRoomVersion)
    assert session.pending_points == 0
    stored = (await service.get_room(room_id)).value
    assert stored.is_spinning is False
    assert [p.nickname for p in stored.players][-1] == "Dave"
    assert stored.current_turn_player.id == bob

    # The wheel is usable again from the refreshed snapshot
    assert session.room.version == stored.version
    assert (await session.spin()).value is True
    assert session.pending_points == 300

@pytest.mark.asyncio
async def test_cancelled_spin_releases_the_wheel(room_service):
    room_id, _, bob, _, room = await _started_room(room_service)

    async def cancelled_sleep(seconds):
        raise asyncio.CancelledError()

    session = GameSession(room_service, room_id, bob, spin_delay_seconds=1.0, sleep=cancelled_sleep)
    session.on_room_snapshot(room)

    with pytest.raises(asyncio.CancelledError):
        await session.spin()

    assert session.is_spin_in_flight is False
    assert (await room_service.get_room(room_id)).value.is_spinning is False

@pytest.mark.asyncio
async def test_spin_before_the_word_is_set_is_a_no_op(room_service, fixed_rng):
    created = (await room_service.create_room("Host")).value
    bob = (await room_service.join_room(created.room_id, "Bob")).value
    room = (await room_service.start_game(created.room_id)).value
    session = _session(room_service, created.room_id, bob.player_id, room, rng=fixed_rng(0))

    assert session.view()["can_spin"] is False
    assert (await session.spin()).value is False
    assert session.pending_points == 0
    stored = (await room_service.get_room(created.room_id)).value
    assert stored.version == room.version
    assert stored.last_slice_index is None
