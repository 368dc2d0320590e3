import pytest
from sqlalchemy import select

from matcharc.database.models import (
    AuditAction, AuditLog, Dispute, DisputeStatus, MatchState, SyncStatus
)
from matcharc.utils.match_exceptions import ErrorCode

from conftest import ALICE_DISCORD_ID, BOB_DISCORD_ID, OUTSIDER_DISCORD_ID, outcomes


@pytest.fixture
def pending_match(service, make_match):
    """Alice self-reported a win; Bob has to answer"""
    async def factory():
        match = await make_match(state=MatchState.CHECKED_IN)
        result = await service.report_score(match.id, ALICE_DISCORD_ID, 1, "2-0")
        assert result.success
        return match
    return factory


@pytest.mark.asyncio
async def test_opponent_confirms(service, tracker, pending_match, db):
    match = await pending_match()

    result = await service.resolve_confirmation(match.id, BOB_DISCORD_ID, accepted=True)

    assert result.success
    assert result.message == "Result confirmed! Alice wins."
    stored = await db.get_match(match.id)
    assert stored.state == MatchState.COMPLETED
    assert stored.completed_at is not None
    assert outcomes(stored) == ("winner", "loser")
    assert stored.external_sync_status == SyncStatus.PENDING
    assert tracker.queue.get_nowait() == match.id


@pytest.mark.asyncio
async def test_dispute_resets_claim(service, tracker, pending_match, db):
    match = await pending_match()

    result = await service.resolve_confirmation(match.id, BOB_DISCORD_ID, accepted=False, reason="I won 2-1")

    assert result.success
    assert result.message == (
        "Result disputed. Please report the correct result or contact a tournament organizer."
    )
    stored = await db.get_match(match.id)
    assert stored.state == MatchState.CHECKED_IN
    assert outcomes(stored) == ("unset", "unset")
    assert stored.reported_by_id is None
    assert stored.reported_score is None
    assert stored.reported_at is None
    assert tracker.queue.empty()

    async with db.get_session() as session:
        disputes = (await session.execute(select(Dispute).where(Dispute.match_id == match.id))).scalars().all()
        audits = (await session.execute(select(AuditLog).where(AuditLog.entity_id == match.id))).scalars().all()

    assert len(disputes) == 1
    assert disputes[0].status == DisputeStatus.OPEN
    assert disputes[0].initiator_id == stored.players[1].id
    assert disputes[0].reason == "I won 2-1"

    assert [a.action for a in audits] == [AuditAction.RESULT_DISPUTED]
    assert audits[0].before['state'] == "pending_confirmation"
    assert audits[0].after['state'] == "checked_in"


@pytest.mark.asyncio
async def test_report_after_dispute_succeeds(service, pending_match, db):
    match = await pending_match()
    await service.resolve_confirmation(match.id, BOB_DISCORD_ID, accepted=False)

    result = await service.report_score(match.id, BOB_DISCORD_ID, 2, "2-1")

    assert result.success
    stored = await db.get_match(match.id)
    assert stored.state == MatchState.PENDING_CONFIRMATION
    assert outcomes(stored) == ("unset", "winner")
    assert stored.reported_by_id == stored.players[1].id


@pytest.mark.asyncio
async def test_reporter_cannot_confirm_own_claim(service, pending_match, db):
    match = await pending_match()

    result = await service.resolve_confirmation(match.id, ALICE_DISCORD_ID, accepted=True)

    assert result.error == ErrorCode.UNAUTHORIZED
    assert (await db.get_match(match.id)).state == MatchState.PENDING_CONFIRMATION


@pytest.mark.asyncio
async def test_outsider_cannot_dispute(service, pending_match):
    match = await pending_match()

    result = await service.resolve_confirmation(match.id, OUTSIDER_DISCORD_ID, accepted=False)

    assert result.error == ErrorCode.UNAUTHORIZED


@pytest.mark.asyncio
async def test_confirm_without_pending_claim(service, make_match):
    match = await make_match(state=MatchState.CHECKED_IN)

    result = await service.resolve_confirmation(match.id, BOB_DISCORD_ID, accepted=True)

    assert result.error == ErrorCode.STALE_STATE


@pytest.mark.asyncio
async def test_second_confirmation_is_rejected(service, pending_match):
    match = await pending_match()
    await service.resolve_confirmation(match.id, BOB_DISCORD_ID, accepted=True)

    result = await service.resolve_confirmation(match.id, BOB_DISCORD_ID, accepted=False)

    assert result.error == ErrorCode.ALREADY_FINALIZED


@pytest.mark.asyncio
async def test_unknown_match(service):
    result = await service.resolve_confirmation("c" + "0" * 24, BOB_DISCORD_ID, accepted=True)

    assert result.error == ErrorCode.NOT_FOUND
    assert result.message == "Match not found."
