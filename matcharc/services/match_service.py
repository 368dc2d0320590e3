"""
Match Service - entry point for the presentation layer

Wraps the check-in, reporting, confirmation and DQ services behind one
object that:

- rejects malformed match ids before touching the database
- turns MatchOperationError into a failed OperationResult carrying the
  user-facing message
- returns immutable MatchStatus snapshots instead of ORM rows

Unexpected errors (database down, bugs) are not caught here; the caller's
error handler logs them and the failed transaction has already rolled back.
"""

from typing import Optional

from matcharc.constants import MatchConstants
from matcharc.data_models.match_status import MatchStatus, OperationResult
from matcharc.database.match_operations import MatchOperations
from matcharc.database.models import AuditAction, MatchState
from matcharc.services.audit_service import create_audit_log
from matcharc.services.checkin_service import CheckInService
from matcharc.services.confirmation_service import ConfirmationService
from matcharc.services.dq_service import DisqualificationService
from matcharc.services.reporting_service import ReportingService
from matcharc.utils.match_exceptions import MatchOperationError, NotFound, StaleState
from matcharc.utils.validation import require_match_id
from matcharc.utils.logger import setup_logger

logger = setup_logger(__name__)


def format_thread_name(round_text: str, identifier: str, player1: str, player2: str) -> str:
    """
    Discussion thread title: "{round} ({identifier}): {p1} vs {p2}".

    Player names are shortened with ".." when the title would exceed
    Discord's 100 character limit.
    """
    limit = MatchConstants.MAX_THREAD_NAME_LENGTH
    name = f"{round_text} ({identifier}): {player1} vs {player2}"
    if len(name) <= limit:
        return name

    prefix = f"{round_text} ({identifier}): "
    separator = " vs "
    max_player_len = max((limit - len(prefix) - len(separator)) // 2 - 2, 1)

    def shorten(player: str) -> str:
        return player[:max_player_len] + '..' if len(player) > max_player_len else player

    return f"{prefix}{shorten(player1)}{separator}{shorten(player2)}"[:limit]


class MatchService:
    """Facade over the match flow services."""

    def __init__(self, database, sync_tracker=None):
        self.db = database
        self.sync_tracker = sync_tracker
        self.logger = logger

        match_ops = MatchOperations(database)
        self.checkin_service = CheckInService(database, match_ops)
        self.reporting_service = ReportingService(database, sync_tracker, match_ops)
        self.confirmation_service = ConfirmationService(database, sync_tracker, match_ops)
        self.dq_service = DisqualificationService(database, match_ops)

    def _failed(self, operation: str, error: MatchOperationError) -> OperationResult:
        if isinstance(error, StaleState):
            self.logger.warning(f"{operation} conflict: {error}")
        else:
            self.logger.info(f"{operation} rejected ({error.code.value}): {error}")
        return OperationResult.failed(error)

    async def check_in(self, match_id: str, discord_id: int, slot: int) -> OperationResult:
        try:
            require_match_id(match_id)
            outcome = await self.checkin_service.check_in(match_id, discord_id, slot)
        except MatchOperationError as e:
            return self._failed("check_in", e)

        if outcome.already_checked_in:
            message = "You are already checked in!"
        elif outcome.both_checked_in:
            message = "Checked in! Both players are ready - match can begin!"
        else:
            message = "Checked in! Waiting for your opponent."

        match = await self.db.get_match(match_id)
        return OperationResult.ok(
            message,
            MatchStatus.from_match(match),
            transitioned=outcome.transitioned
        )

    async def report_score(
        self,
        match_id: str,
        reporter_discord_id: int,
        winner_slot: int,
        detailed_score: Optional[str] = None
    ) -> OperationResult:
        try:
            require_match_id(match_id)
            outcome = await self.reporting_service.report_score(
                match_id, reporter_discord_id, winner_slot, detailed_score
            )
        except MatchOperationError as e:
            return self._failed("report_score", e)

        status = MatchStatus.from_match(outcome.match, auto_completed=outcome.auto_completed)
        if outcome.auto_completed:
            message = f"Result confirmed! {status.winner.player_name} wins."
        else:
            reporter = outcome.match.get_player_by_discord_id(reporter_discord_id)
            opponent = outcome.match.get_opponent(reporter)
            message = f"Result reported! Waiting for {opponent.player_name} to confirm."

        return OperationResult.ok(message, status, transitioned=True)

    async def resolve_confirmation(
        self,
        match_id: str,
        acting_discord_id: int,
        accepted: bool,
        reason: Optional[str] = None
    ) -> OperationResult:
        try:
            require_match_id(match_id)
            outcome = await self.confirmation_service.resolve_confirmation(
                match_id, acting_discord_id, accepted, reason
            )
        except MatchOperationError as e:
            return self._failed("resolve_confirmation", e)

        status = MatchStatus.from_match(outcome.match)
        if outcome.accepted:
            message = f"Result confirmed! {status.winner.player_name} wins."
        else:
            message = "Result disputed. Please report the correct result or contact a tournament organizer."
        return OperationResult.ok(message, status, transitioned=True)

    async def disqualify(
        self,
        match_id: str,
        dq_player_id: int,
        reason: Optional[str] = None,
        admin_discord_id: Optional[int] = None
    ) -> OperationResult:
        try:
            require_match_id(match_id)
            outcome = await self.dq_service.disqualify(match_id, dq_player_id, reason, admin_discord_id)
        except MatchOperationError as e:
            return self._failed("disqualify", e)

        message = (f"{outcome.dq_player.player_name} has been disqualified. "
                   f"{outcome.winner.player_name} wins by default.")
        return OperationResult.ok(message, MatchStatus.from_match(outcome.match), transitioned=True)

    async def get_match_status(self, match_id: str) -> OperationResult:
        try:
            require_match_id(match_id)
            match = await self.db.get_match(match_id)
            if match is None:
                raise NotFound("Match", match_id)
        except MatchOperationError as e:
            return self._failed("get_match_status", e)

        return OperationResult.ok(f"Match is {match.state.value}.", MatchStatus.from_match(match))

    async def open_check_in(
        self,
        match_id: str,
        thread_id: int,
        require_check_in: bool = True
    ) -> OperationResult:
        """Call a NOT_STARTED match into its thread; a repeat call is a no-op"""
        try:
            require_match_id(match_id)
            called = await self.checkin_service.open_check_in(match_id, thread_id, require_check_in)
            match = await self.db.get_match(match_id)
            if match is None:
                raise NotFound("Match", match_id)
        except MatchOperationError as e:
            return self._failed("open_check_in", e)

        message = "Check-in is open." if called else "Match has already been called."
        return OperationResult.ok(message, MatchStatus.from_match(match), transitioned=called)

    async def resync(self, match_id: str, admin_discord_id: Optional[int] = None) -> OperationResult:
        """Queue a finalized match for start.gg again, e.g. after a DQ or a FAILED sync"""
        try:
            require_match_id(match_id)
            match = await self.db.get_match(match_id)
            if match is None:
                raise NotFound("Match", match_id)
        except MatchOperationError as e:
            return self._failed("resync", e)

        if self.sync_tracker is None:
            return OperationResult.ok("Result sync is not configured.", MatchStatus.from_match(match))
        if match.state not in (MatchState.COMPLETED, MatchState.DQ):
            return OperationResult.ok("Only finished matches can be synced.", MatchStatus.from_match(match))

        queued = await self.sync_tracker.enqueue(match_id)
        if queued:
            admin = await self.db.get_user_by_discord_id(admin_discord_id) if admin_discord_id else None
            async with self.db.transaction() as session:
                create_audit_log(
                    session,
                    AuditAction.SYNC_REQUEUED,
                    match_id,
                    user_id=admin.id if admin else None,
                    before={'sync_status': match.external_sync_status.value},
                    after={'sync_status': 'pending'}
                )
            message = "Result queued for start.gg sync."
        else:
            message = f"Nothing to sync (status: {match.external_sync_status.value})."

        return OperationResult.ok(message, MatchStatus.from_match(await self.db.get_match(match_id)))
