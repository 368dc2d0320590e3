"""
Confirmation and dispute of self-reported results.

Only the opponent of the reporter may answer a PENDING_CONFIRMATION claim.
Accepting finalizes the match exactly like a loser confirmation. Disputing
throws the claim away entirely: the match goes back to CHECKED_IN with every
claim column cleared and both outcomes UNSET, so a fresh report starts from a
clean slate. The Dispute row written alongside is an annotation only; it never
drives Match.state.
"""

from dataclasses import dataclass
from typing import Optional

from matcharc.database.match_operations import MatchOperations
from matcharc.database.models import AuditAction, Match, MatchState
from matcharc.services.audit_service import create_audit_log, snapshot_match
from matcharc.utils.match_exceptions import AlreadyFinalized, StaleState, Unauthorized
from matcharc.utils.timestamps import utcnow
from matcharc.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class ConfirmationOutcome:
    match: Match
    accepted: bool
    sync_queued: bool = False


class ConfirmationService:
    """Resolves pending self-reports."""

    def __init__(self, database, sync_tracker=None, match_ops: Optional[MatchOperations] = None):
        self.db = database
        self.sync_tracker = sync_tracker
        self.match_ops = match_ops or MatchOperations(database)
        self.logger = logger

    async def resolve_confirmation(
        self,
        match_id: str,
        acting_discord_id: int,
        accepted: bool,
        reason: Optional[str] = None
    ) -> ConfirmationOutcome:
        """
        Accept or dispute the pending claim on a match.

        Raises:
            NotFound: Match missing
            AlreadyFinalized: Match is COMPLETED or DQ
            StaleState: No claim is pending, or the match moved concurrently
            Unauthorized: Caller is the reporter or not a participant
        """
        async with self.db.transaction() as session:
            match = await self.match_ops.load_match(session, match_id)

            if match.state.is_terminal:
                raise AlreadyFinalized(match_id)
            if match.state != MatchState.PENDING_CONFIRMATION:
                raise StaleState(match_id, f"no pending result in state {match.state.value}")

            actor = match.get_player_by_discord_id(acting_discord_id)
            if actor is None:
                raise Unauthorized(
                    f"User {acting_discord_id} is not a participant of Match {match_id}",
                    "You are not a player in this match."
                )
            if actor.id == match.reported_by_id:
                raise Unauthorized(
                    f"User {acting_discord_id} reported Match {match_id} and cannot confirm it",
                    "Your opponent must confirm or dispute this result."
                )

            claimant = match.get_opponent(actor)

            if accepted:
                moved = await self.match_ops.transition_state(
                    session, match_id, [MatchState.PENDING_CONFIRMATION], MatchState.COMPLETED,
                    completed_at=utcnow()
                )
                if not moved:
                    raise StaleState(match_id, "claim resolved concurrently")
                await self.match_ops.set_final_outcomes(session, match_id, claimant.id)
            else:
                before = snapshot_match(match)
                reverted = await self.match_ops.revert_claim(
                    session, match_id, MatchState.PENDING_CONFIRMATION, MatchState.CHECKED_IN
                )
                if not reverted:
                    raise StaleState(match_id, "claim resolved concurrently")
                await self.match_ops.open_dispute(session, match_id, actor.id, reason)

                after = snapshot_match(await self.match_ops.load_match(session, match_id))
                create_audit_log(
                    session,
                    AuditAction.RESULT_DISPUTED,
                    match_id,
                    user_id=actor.user_id,
                    before=before,
                    after=after,
                    reason=reason
                )

        sync_queued = False
        if accepted:
            self.logger.info(f"Match {match_id}: {actor.player_name} confirmed, {claimant.player_name} wins")
            if self.sync_tracker is not None:
                sync_queued = await self.sync_tracker.try_enqueue(match_id)
        else:
            self.logger.warning(
                f"Match {match_id}: {actor.player_name} disputed the result reported by "
                f"{claimant.player_name} (reason: {reason or 'none given'})"
            )

        return ConfirmationOutcome(
            match=await self.db.get_match(match_id),
            accepted=accepted,
            sync_queued=sync_queued
        )
