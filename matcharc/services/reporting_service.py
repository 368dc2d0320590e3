"""
Score reporting protocol.

A report names a winner by slot. Who reports decides how far it is trusted:

- Loser confirmation: the reporter names the opponent. Nobody claims a loss
  they did not take, so the match is COMPLETED immediately, both outcomes
  are written, and the result is queued for start.gg.
- Self-report: the reporter names themselves. The claim is provisional; the
  match waits in PENDING_CONFIRMATION for the opponent (see
  confirmation_service).

Every transition is a guarded update on the state the report was read in,
so a report racing a confirmation, a DQ or another report fails with
StaleState instead of overwriting.
"""

from dataclasses import dataclass
from typing import Optional

from matcharc.constants import MatchConstants
from matcharc.database.match_operations import MatchOperations
from matcharc.database.models import Match, MatchState, REPORTABLE_STATES
from matcharc.utils.match_exceptions import (
    AlreadyFinalized, InvalidPayload, StaleState, Unauthorized
)
from matcharc.utils.timestamps import utcnow
from matcharc.utils.validation import parse_score
from matcharc.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class ReportOutcome:
    match: Match
    auto_completed: bool     # Loser confirmation, finalized without a second step
    sync_queued: bool = False


class ReportingService:
    """Accepts winner reports from match participants."""

    def __init__(self, database, sync_tracker=None, match_ops: Optional[MatchOperations] = None):
        self.db = database
        self.sync_tracker = sync_tracker
        self.match_ops = match_ops or MatchOperations(database)
        self.logger = logger

    async def report_score(
        self,
        match_id: str,
        reporter_discord_id: int,
        winner_slot: int,
        detailed_score: Optional[str] = None
    ) -> ReportOutcome:
        """
        Report `winner_slot` as the winner of a match.

        Args:
            match_id: Match being reported
            reporter_discord_id: Discord id of the reporting user
            winner_slot: 1-based slot of the claimed winner
            detailed_score: Optional "2-1" style score, stored for display only

        Raises:
            InvalidPayload: Bad slot or score
            NotFound: Match missing
            Unauthorized: Reporter is not a participant
            AlreadyFinalized: Match is COMPLETED or DQ
            StaleState: A claim is already pending, or the match moved concurrently
        """
        if winner_slot not in MatchConstants.PLAYER_SLOTS:
            raise InvalidPayload(f"winner slot \"{winner_slot}\" must be 1 or 2.")
        if detailed_score is not None:
            parse_score(detailed_score)
            detailed_score = detailed_score.strip() or None

        async with self.db.transaction() as session:
            match = await self.match_ops.load_match(session, match_id)

            reporter = match.get_player_by_discord_id(reporter_discord_id)
            if reporter is None:
                raise Unauthorized(
                    f"User {reporter_discord_id} is not a participant of Match {match_id}",
                    "You are not a player in this match."
                )

            if match.state.is_terminal:
                raise AlreadyFinalized(match_id)
            if match.state == MatchState.PENDING_CONFIRMATION:
                raise StaleState(match_id, "a reported result is awaiting confirmation")
            if match.state not in REPORTABLE_STATES:
                raise StaleState(match_id, f"cannot report in state {match.state.value}")

            winner = match.get_player_by_slot(winner_slot)

            observed_state = match.state
            now = utcnow()
            claim = {
                'reported_by_id': reporter.id,
                'reported_score': detailed_score,
                'reported_at': now,
            }

            auto_completed = winner.id != reporter.id
            if auto_completed:
                moved = await self.match_ops.transition_state(
                    session, match_id, [observed_state], MatchState.COMPLETED,
                    completed_at=now, **claim
                )
                if not moved:
                    raise StaleState(match_id, f"left {observed_state.value} before completion")
                await self.match_ops.set_final_outcomes(session, match_id, winner.id)
            else:
                moved = await self.match_ops.transition_state(
                    session, match_id, [observed_state], MatchState.PENDING_CONFIRMATION, **claim
                )
                if not moved:
                    raise StaleState(match_id, f"left {observed_state.value} before self-report")
                await self.match_ops.set_provisional_winner(session, match_id, winner.id)

        if auto_completed:
            self.logger.info(
                f"Match {match_id}: {reporter.player_name} confirmed loss, {winner.player_name} wins"
            )
        else:
            self.logger.info(
                f"Match {match_id}: {reporter.player_name} self-reported a win, awaiting confirmation"
            )

        sync_queued = False
        if auto_completed and self.sync_tracker is not None:
            sync_queued = await self.sync_tracker.try_enqueue(match_id)

        return ReportOutcome(
            match=await self.db.get_match(match_id),
            auto_completed=auto_completed,
            sync_queued=sync_queued
        )
