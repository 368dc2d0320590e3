import asyncio

import pytest
from sqlalchemy import update

from matcharc.database.models import MatchPlayer, MatchState
from matcharc.utils.match_exceptions import ErrorCode

from conftest import ALICE_DISCORD_ID, BOB_DISCORD_ID


@pytest.mark.asyncio
async def test_first_check_in_waits_for_opponent(service, make_match, db):
    match = await make_match()

    result = await service.check_in(match.id, ALICE_DISCORD_ID, 1)

    assert result.success
    assert result.message == "Checked in! Waiting for your opponent."
    assert not result.transitioned
    assert not result.match_status.both_checked_in
    assert (await db.get_match(match.id)).state == MatchState.CALLED


@pytest.mark.asyncio
async def test_second_check_in_starts_match(service, make_match, db):
    match = await make_match()

    await service.check_in(match.id, ALICE_DISCORD_ID, 1)
    result = await service.check_in(match.id, BOB_DISCORD_ID, 2)

    assert result.success
    assert result.message == "Checked in! Both players are ready - match can begin!"
    assert result.transitioned
    assert result.match_status.both_checked_in
    assert result.match_status.state == MatchState.CHECKED_IN


@pytest.mark.asyncio
async def test_check_in_is_idempotent(service, make_match, db):
    match = await make_match()

    await service.check_in(match.id, ALICE_DISCORD_ID, 1)
    first = await db.get_match(match.id)
    result = await service.check_in(match.id, ALICE_DISCORD_ID, 1)
    second = await db.get_match(match.id)

    assert result.success
    assert result.message == "You are already checked in!"
    assert second.state == first.state
    assert [p.is_checked_in for p in second.players] == [p.is_checked_in for p in first.players]
    assert second.players[0].checked_in_at == first.players[0].checked_in_at


@pytest.mark.asyncio
async def test_concurrent_check_ins_transition_exactly_once(service, make_match, db):
    match = await make_match()

    results = await asyncio.gather(
        service.check_in(match.id, ALICE_DISCORD_ID, 1),
        service.check_in(match.id, BOB_DISCORD_ID, 2),
    )

    assert all(r.success for r in results)
    assert sum(1 for r in results if r.transitioned) == 1
    stored = await db.get_match(match.id)
    assert stored.state == MatchState.CHECKED_IN
    assert all(p.is_checked_in for p in stored.players)


@pytest.mark.asyncio
async def test_wrong_player_cannot_check_in_for_slot(service, make_match):
    match = await make_match()

    result = await service.check_in(match.id, BOB_DISCORD_ID, 1)

    assert not result.success
    assert result.error == ErrorCode.UNAUTHORIZED


@pytest.mark.asyncio
async def test_check_in_after_deadline(service, make_match):
    match = await make_match(deadline_minutes=-1)

    result = await service.check_in(match.id, ALICE_DISCORD_ID, 1)

    assert not result.success
    assert result.error == ErrorCode.DEADLINE_EXPIRED
    assert result.message == "Check-in has closed for this match."


@pytest.mark.asyncio
async def test_check_in_after_match_started(service, make_match):
    match = await make_match(state=MatchState.IN_PROGRESS)

    result = await service.check_in(match.id, ALICE_DISCORD_ID, 1)

    assert result.error == ErrorCode.STALE_STATE


@pytest.mark.asyncio
async def test_check_in_on_finished_match(service, make_match):
    match = await make_match(state=MatchState.DQ)

    result = await service.check_in(match.id, ALICE_DISCORD_ID, 1)

    assert result.error == ErrorCode.ALREADY_FINALIZED


@pytest.mark.asyncio
async def test_check_in_bad_slot(service, make_match):
    match = await make_match()

    result = await service.check_in(match.id, ALICE_DISCORD_ID, 3)

    assert result.error == ErrorCode.INVALID_PAYLOAD


@pytest.mark.asyncio
async def test_open_check_in_calls_match_once(service, make_match, db):
    match = await make_match(state=MatchState.NOT_STARTED, deadline_minutes=None)

    first = await service.open_check_in(match.id, thread_id=555)
    second = await service.open_check_in(match.id, thread_id=777)

    assert first.transitioned and first.match_status.state == MatchState.CALLED
    assert not second.transitioned
    stored = await db.get_match(match.id)
    assert stored.thread_id == 555
    assert stored.check_in_deadline is not None


@pytest.mark.asyncio
async def test_open_check_in_without_deadline(service, make_match, db):
    match = await make_match(state=MatchState.NOT_STARTED, deadline_minutes=None)

    await service.open_check_in(match.id, thread_id=555, require_check_in=False)

    assert (await db.get_match(match.id)).check_in_deadline is None


@pytest.mark.asyncio
async def test_repeat_click_starts_match_left_in_called(service, make_match, db):
    match = await make_match()
    # Both players recorded as checked in but the match never moved on
    async with db.transaction() as session:
        await session.execute(
            update(MatchPlayer).where(MatchPlayer.match_id == match.id).values(is_checked_in=True)
        )

    result = await service.check_in(match.id, ALICE_DISCORD_ID, 1)

    assert result.success
    assert result.message == "You are already checked in!"
    assert result.transitioned
    assert result.match_status.both_checked_in
    assert (await db.get_match(match.id)).state == MatchState.CHECKED_IN


@pytest.mark.asyncio
async def test_repeat_click_after_start_changes_nothing(service, make_match, db):
    match = await make_match()
    await service.check_in(match.id, ALICE_DISCORD_ID, 1)
    await service.check_in(match.id, BOB_DISCORD_ID, 2)

    result = await service.check_in(match.id, BOB_DISCORD_ID, 2)

    assert result.message == "You are already checked in!"
    assert not result.transitioned
    assert (await db.get_match(match.id)).state == MatchState.CHECKED_IN
