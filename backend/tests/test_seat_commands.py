"""
Tests for the seat command processor: validation, broadcasts and races.
"""

import asyncio

import pytest

from seathold.core.exceptions import (
    HoldForbiddenError,
    HoldLimitExceededError,
    InvalidHoldError,
    SeatConflictError,
    SeatNotFoundError,
    SeatValidationError,
)
from seathold.db.session import get_session_factory
from seathold.services import ledger
from seathold.services.seat_service import SeatCommandProcessor
from seathold.services.session_tracker import count_held


async def hold_in_own_session(processor, session_id: str, seat_id: str):
    """Each concurrent caller gets its own DB session, as separate requests would."""
    async with get_session_factory()() as db:
        return await processor.hold(db, session_id, seat_id)


@pytest.mark.asyncio
async def test_hold_broadcasts_to_every_channel(processor, db_session, seats, viewer, registry, fake_websocket_factory):
    other_socket = fake_websocket_factory()
    await registry.register(other_socket)

    seat = await processor.hold(db_session, "S1", "A-1-1")

    assert seat.status == "held"
    expected = {"event": "seat_held", "seatId": "A-1-1", "sessionId": "S1"}
    assert viewer.websocket.events()[-1] == expected
    assert other_socket.events()[-1] == expected


@pytest.mark.asyncio
@pytest.mark.parametrize("session_id,seat_id,message", [
    (None, "A-1-1", "sessionId is required."),
    ("", "A-1-1", "sessionId is required."),
    ("S1", None, "seatId is required."),
    ("S1", "   ", "seatId is required."),
])
async def test_hold_requires_ids(processor, db_session, seats, viewer, session_id, seat_id, message):
    sent_before = len(viewer.websocket.sent)

    with pytest.raises(SeatValidationError, match=message):
        await processor.hold(db_session, session_id, seat_id)

    assert len(viewer.websocket.sent) == sent_before


@pytest.mark.asyncio
async def test_concurrent_holds_on_same_seat_exactly_one_wins(processor, seats):
    results = await asyncio.gather(
        hold_in_own_session(processor, "S1", "A-1-1"),
        hold_in_own_session(processor, "S2", "A-1-1"),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], SeatConflictError)


@pytest.mark.asyncio
async def test_ninth_concurrent_hold_exceeds_cap(processor, seats):
    seat_ids = [f"A-1-{col}" for col in range(1, 10)]

    results = await asyncio.gather(
        *(hold_in_own_session(processor, "S1", seat_id) for seat_id in seat_ids),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], HoldLimitExceededError)

    async with get_session_factory()() as db:
        assert await count_held(db, "S1") == 8


@pytest.mark.asyncio
async def test_rehold_at_cap_is_allowed(processor, db_session, seats):
    for col in range(1, 9):
        await processor.hold(db_session, "S1", f"A-1-{col}")

    seat = await processor.hold(db_session, "S1", "A-1-8")
    assert seat.held_by == "S1"

    with pytest.raises(HoldLimitExceededError):
        await processor.hold(db_session, "S1", "A-1-9")


@pytest.mark.asyncio
async def test_release_broadcasts(processor, db_session, seats, viewer):
    await processor.hold(db_session, "S1", "A-1-1")

    seat = await processor.release(db_session, "S1", "A-1-1")

    assert seat.status == "available"
    assert viewer.websocket.events()[-1] == {"event": "seat_released", "seatId": "A-1-1", "sessionId": "S1"}


@pytest.mark.asyncio
async def test_release_by_other_session_is_forbidden(processor, db_session, seats, viewer):
    await processor.hold(db_session, "S1", "A-1-1")
    sent_before = len(viewer.websocket.sent)

    with pytest.raises(HoldForbiddenError):
        await processor.release(db_session, "S2", "A-1-1")

    assert len(viewer.websocket.sent) == sent_before
    seat = await ledger.get_seat(db_session, "A-1-1")
    assert (seat.status, seat.held_by) == ("held", "S1")


@pytest.mark.asyncio
async def test_hold_conflict_complete_scenario(processor, db_session, seats, viewer):
    held = await processor.hold(db_session, "S1", "A-1-1")
    assert (held.status, held.held_by) == ("held", "S1")

    with pytest.raises(SeatConflictError):
        await processor.hold(db_session, "S2", "A-1-1")

    sold = await processor.complete(db_session, "S1", ["A-1-1"])

    assert [(seat.id, seat.status, seat.held_by) for seat in sold] == [("A-1-1", "sold", None)]
    assert viewer.websocket.events()[-1] == {"event": "seats_sold", "seatIds": ["A-1-1"], "sessionId": "S1"}


@pytest.mark.asyncio
async def test_complete_rejects_mixed_holders(processor, db_session, seats, viewer):
    await processor.hold(db_session, "S1", "A-1-1")
    await processor.hold(db_session, "S2", "A-1-2")
    sent_before = len(viewer.websocket.sent)

    with pytest.raises(InvalidHoldError) as exc_info:
        await processor.complete(db_session, "S1", ["A-1-1", "A-1-2"])

    assert exc_info.value.seat_ids == ["A-1-2"]
    assert len(viewer.websocket.sent) == sent_before
    for seat_id in ("A-1-1", "A-1-2"):
        seat = await ledger.get_seat(db_session, seat_id)
        assert seat.status == "held"


@pytest.mark.asyncio
@pytest.mark.parametrize("session_id,seat_ids", [(None, ["A-1-1"]), ("S1", []), ("S1", None)])
async def test_complete_requires_session_and_seats(processor, db_session, seats, session_id, seat_ids):
    with pytest.raises(SeatValidationError):
        await processor.complete(db_session, session_id, seat_ids)


@pytest.mark.asyncio
async def test_admin_set_status_broadcasts_and_keeps_invariant(processor, db_session, seats, viewer):
    await processor.hold(db_session, "S1", "A-1-1")

    updated = await processor.admin_set_status(db_session, ["A-1-1", "A-1-2"], "reserved")

    assert [(seat.status, seat.held_by) for seat in updated] == [("reserved", None), ("reserved", None)]
    assert viewer.websocket.events()[-1] == {
        "event": "seat_status_changed",
        "seatIds": ["A-1-1", "A-1-2"],
        "newStatus": "reserved",
    }

    # Reserved is terminal for clients
    with pytest.raises(SeatConflictError):
        await processor.hold(db_session, "S1", "A-1-1")


@pytest.mark.asyncio
@pytest.mark.parametrize("seat_ids,status", [([], "sold"), (["A-1-1"], None), (["A-1-1"], "gone")])
async def test_admin_set_status_validation(processor, db_session, seats, seat_ids, status):
    with pytest.raises(SeatValidationError):
        await processor.admin_set_status(db_session, seat_ids, status)


@pytest.mark.asyncio
async def test_cleanup_sweeps_and_broadcasts(processor, stale_hold, viewer):
    result = await processor.cleanup()

    assert result.released_count == 1
    assert viewer.websocket.events()[-1]["event"] == "cleanup"
    assert viewer.websocket.events()[-1]["releasedCount"] == 1


@pytest.mark.asyncio
async def test_list_seats_respects_max_page_size(processor, db_session, seats):
    with pytest.raises(SeatValidationError):
        await processor.list_seats(db_session, page=1, limit=processor.max_page_size + 1)

    response = await processor.list_seats(db_session, page=1, limit=20)
    assert response.total == len(seats)
    assert len(response.data) == len(seats)
    assert response.cached is False


@pytest.mark.asyncio
async def test_join_replies_with_snapshot(processor, db_session, seats, viewer):
    await processor.hold(db_session, "S1", "B-1-2")

    await processor.join(db_session, viewer, "S9")

    assert viewer.session_id == "S9"
    assert viewer.websocket.events()[-1] == {
        "event": "joined",
        "sessionId": "S9",
        "seats": [{"id": "B-1-2", "status": "held", "heldBy": "S1"}],
    }


@pytest.mark.asyncio
async def test_unknown_seat_at_cap_is_not_found(processor, db_session, seats):
    for col in range(1, 9):
        await processor.hold(db_session, "S1", f"A-1-{col}")

    with pytest.raises(SeatNotFoundError):
        await processor.hold(db_session, "S1", "Z-9-9")


@pytest.mark.asyncio
async def test_cap_holds_across_processors_sharing_the_store(registry, sweeper, seats):
    # Two processors share nothing in memory, as two worker processes would
    first = SeatCommandProcessor(registry, sweeper, max_holds_per_session=8)
    second = SeatCommandProcessor(registry, sweeper, max_holds_per_session=8)
    seat_ids = [f"A-1-{col}" for col in range(1, 11)]

    results = await asyncio.gather(
        *(
            hold_in_own_session(first if index % 2 else second, "S1", seat_id)
            for index, seat_id in enumerate(seat_ids)
        ),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 2
    assert all(isinstance(failure, HoldLimitExceededError) for failure in failures)
    async with get_session_factory()() as db:
        assert await count_held(db, "S1") == 8
