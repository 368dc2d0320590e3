"""
Match Operations Module - conditional writes against the match store

Every state change in the match flow is expressed here as an UPDATE with a
WHERE guard on the current state. The affected-row count tells the caller
whether the guard still held:

- rowcount == 1: the transition happened and belongs to this caller
- rowcount == 0: someone else moved the match first; the caller must report
  a conflict instead of carrying on as if the write succeeded

Methods take the caller's session so a service can compose several of them
inside one Database.transaction() block. Nothing here commits.
"""

from typing import Dict, Iterable, Optional

from sqlalchemy import select, update, func, case, literal
from sqlalchemy.ext.asyncio import AsyncSession

from matcharc.database.models import (
    Match, MatchPlayer, MatchState, PlayerOutcome, SyncStatus,
    Dispute, DisputeStatus, TERMINAL_STATES
)
from matcharc.utils.match_exceptions import NotFound
from matcharc.utils.timestamps import utcnow
from matcharc.utils.logger import setup_logger

logger = setup_logger(__name__)


# Columns describing a pending claim. Any transition that abandons a claim
# must write all of them back, together with resetting both player outcomes.
CLAIM_RESET_VALUES: Dict[str, object] = {
    'reported_by_id': None,
    'reported_score': None,
    'reported_at': None,
}


def _outcome(value: PlayerOutcome):
    """Bind an outcome with the column type so CASE branches are stored like plain writes"""
    return literal(value, MatchPlayer.__table__.c.outcome.type)


class MatchOperations:
    """
    Session-scoped primitives for Match and MatchPlayer writes.

    Services own transactions; these methods only issue statements.
    """

    def __init__(self, database=None):
        self.db = database
        self.logger = logger

    # ============================================================================
    # Reads
    # ============================================================================

    async def load_match(self, session: AsyncSession, match_id: str) -> Match:
        """
        Load a match with both players.

        Always re-queries, so a caller inside a transaction sees the state
        committed by concurrent requests rather than a cached identity.

        Raises:
            NotFound: If the match does not exist
        """
        result = await session.execute(
            select(Match)
            .where(Match.id == match_id)
            .execution_options(populate_existing=True)
        )
        match = result.scalar_one_or_none()
        if not match:
            raise NotFound("Match", match_id)
        return match

    async def count_checked_in(self, session: AsyncSession, match_id: str) -> int:
        """Authoritative count of checked-in players, read after any write"""
        result = await session.execute(
            select(func.count(MatchPlayer.id))
            .where(MatchPlayer.match_id == match_id, MatchPlayer.is_checked_in == True)
        )
        return result.scalar() or 0

    # ============================================================================
    # Match state transitions
    # ============================================================================

    async def transition_state(
        self,
        session: AsyncSession,
        match_id: str,
        from_states: Iterable[MatchState],
        to_state: MatchState,
        **values
    ) -> bool:
        """
        Move a match to `to_state` if it is currently in one of `from_states`.

        Extra keyword arguments are written in the same UPDATE.

        Returns:
            True if exactly this call performed the transition
        """
        from_states = list(from_states)
        result = await session.execute(
            update(Match)
            .where(Match.id == match_id, Match.state.in_(from_states))
            .values(state=to_state, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        changed = result.rowcount == 1
        if changed:
            self.logger.debug(f"Match {match_id}: {[s.value for s in from_states]} -> {to_state.value}")
        return changed

    async def transition_unless_terminal(
        self,
        session: AsyncSession,
        match_id: str,
        to_state: MatchState,
        **values
    ) -> bool:
        """Move a match to `to_state` unless it is already COMPLETED or DQ"""
        result = await session.execute(
            update(Match)
            .where(Match.id == match_id, Match.state.notin_(list(TERMINAL_STATES)))
            .values(state=to_state, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def record_thread(
        self,
        session: AsyncSession,
        match_id: str,
        thread_id: int,
        check_in_deadline=None
    ) -> bool:
        """Attach a discussion thread and call the match, once"""
        result = await session.execute(
            update(Match)
            .where(
                Match.id == match_id,
                Match.state == MatchState.NOT_STARTED,
                Match.thread_id.is_(None)
            )
            .values(
                state=MatchState.CALLED,
                thread_id=thread_id,
                check_in_deadline=check_in_deadline,
                updated_at=utcnow()
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ============================================================================
    # Player writes
    # ============================================================================

    async def mark_checked_in(self, session: AsyncSession, player_id: int) -> bool:
        """Check a player in; False if they already were"""
        result = await session.execute(
            update(MatchPlayer)
            .where(MatchPlayer.id == player_id, MatchPlayer.is_checked_in == False)
            .values(is_checked_in=True, checked_in_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_final_outcomes(self, session: AsyncSession, match_id: str, winner_id: int) -> int:
        """
        Write WINNER for `winner_id` and LOSER for the opponent.

        Both rows are written by one statement so no reader can observe one
        flag without the other.

        Returns:
            Number of player rows written (2 for a well-formed match)
        """
        result = await session.execute(
            update(MatchPlayer)
            .where(MatchPlayer.match_id == match_id)
            .values(outcome=case(
                (MatchPlayer.id == winner_id, _outcome(PlayerOutcome.WINNER)),
                else_=_outcome(PlayerOutcome.LOSER)
            ))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def set_provisional_winner(self, session: AsyncSession, match_id: str, winner_id: int) -> int:
        """
        Record a self-reported win: the claimant is WINNER, the opponent UNSET.

        The opponent is written explicitly so a stale flag from an earlier
        claim can never survive next to the new one.
        """
        result = await session.execute(
            update(MatchPlayer)
            .where(MatchPlayer.match_id == match_id)
            .values(outcome=case(
                (MatchPlayer.id == winner_id, _outcome(PlayerOutcome.WINNER)),
                else_=_outcome(PlayerOutcome.UNSET)
            ))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def clear_outcomes(self, session: AsyncSession, match_id: str) -> int:
        """Reset both players to UNSET"""
        result = await session.execute(
            update(MatchPlayer)
            .where(MatchPlayer.match_id == match_id)
            .values(outcome=PlayerOutcome.UNSET)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def revert_claim(
        self,
        session: AsyncSession,
        match_id: str,
        from_state: MatchState,
        to_state: MatchState
    ) -> bool:
        """
        Abandon a pending claim: state, every claim column and both outcomes.

        Returns False (and writes nothing) if the match left `from_state`.
        """
        if not await self.transition_state(session, match_id, [from_state], to_state, **CLAIM_RESET_VALUES):
            return False
        await self.clear_outcomes(session, match_id)
        return True

    # ============================================================================
    # Sync bookkeeping
    # ============================================================================

    async def mark_sync_pending(self, session: AsyncSession, match_id: str) -> bool:
        """NOT_SYNCED/FAILED -> PENDING for a finalized match linked to a set"""
        result = await session.execute(
            update(Match)
            .where(
                Match.id == match_id,
                Match.state.in_(list(TERMINAL_STATES)),
                Match.external_set_id.is_not(None),
                Match.external_sync_status.in_([SyncStatus.NOT_SYNCED, SyncStatus.FAILED])
            )
            .values(external_sync_status=SyncStatus.PENDING, external_sync_requested_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def record_sync_result(
        self,
        session: AsyncSession,
        match_id: str,
        success: bool,
        error: Optional[str] = None
    ) -> bool:
        """PENDING -> SYNCED | FAILED, counting the attempt"""
        values = {
            'external_sync_attempts': Match.external_sync_attempts + 1,
        }
        if success:
            values.update(
                external_sync_status=SyncStatus.SYNCED,
                external_sync_error=None,
                external_synced_at=utcnow()
            )
        else:
            values.update(external_sync_status=SyncStatus.FAILED, external_sync_error=error)

        result = await session.execute(
            update(Match)
            .where(Match.id == match_id, Match.external_sync_status == SyncStatus.PENDING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ============================================================================
    # Disputes
    # ============================================================================

    async def open_dispute(
        self,
        session: AsyncSession,
        match_id: str,
        initiator_id: int,
        reason: Optional[str] = None
    ) -> Dispute:
        dispute = Dispute(
            match_id=match_id,
            initiator_id=initiator_id,
            reason=reason,
            status=DisputeStatus.OPEN
        )
        session.add(dispute)
        await session.flush()
        return dispute

    async def cancel_open_disputes(
        self,
        session: AsyncSession,
        match_id: str,
        resolution: str,
        resolved_by_id: Optional[int] = None
    ) -> int:
        """Close OPEN disputes of a match that ended another way"""
        result = await session.execute(
            update(Dispute)
            .where(Dispute.match_id == match_id, Dispute.status == DisputeStatus.OPEN)
            .values(
                status=DisputeStatus.CANCELLED,
                resolution=resolution,
                resolved_by_id=resolved_by_id,
                resolved_at=utcnow()
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
