"""
Check-in tracking for called matches.

Two players may click "check in" within milliseconds of each other. Each
request commits its own player first, then re-counts checked-in players in
a new transaction; any request that sees a count of two tries the guarded
move to CHECKED_IN. At least the later of two committed check-ins sees both
rows, and the guard lets exactly one of them perform the transition. A
repeated click runs the same step, so a match left in CALLED with both
players checked in is started by the next click.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Tuple

from matcharc.config import Config
from matcharc.constants import MatchConstants
from matcharc.database.match_operations import MatchOperations
from matcharc.database.models import MatchState, CHECK_IN_STATES
from matcharc.utils.match_exceptions import (
    AlreadyFinalized, DeadlineExpired, InvalidPayload, NotFound, StaleState, Unauthorized
)
from matcharc.utils.timestamps import is_past, utcnow
from matcharc.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class CheckInOutcome:
    already_checked_in: bool
    both_checked_in: bool
    transitioned: bool  # This request moved the match to CHECKED_IN


class CheckInService:
    """Records per-player readiness and opens reporting once both are ready."""

    def __init__(self, database, match_ops: Optional[MatchOperations] = None):
        self.db = database
        self.match_ops = match_ops or MatchOperations(database)
        self.logger = logger

    async def check_in(self, match_id: str, discord_id: int, slot: int) -> CheckInOutcome:
        """
        Check in the player in `slot` on behalf of `discord_id`.

        Raises:
            InvalidPayload: If slot is not 1 or 2
            NotFound: If the match or slot does not exist
            Unauthorized: If `discord_id` is not the player in `slot`
            AlreadyFinalized: If the match is COMPLETED or DQ
            StaleState: If check-in is already over or the match moved concurrently
            DeadlineExpired: If the check-in deadline has passed
        """
        if slot not in MatchConstants.PLAYER_SLOTS:
            raise InvalidPayload(f"player slot \"{slot}\" must be 1 or 2.")

        async with self.db.transaction() as session:
            match = await self.match_ops.load_match(session, match_id)

            player = match.get_player_by_slot(slot)
            if player is None:
                raise NotFound("Player slot", f"{slot} in Match {match_id}")

            if player.discord_id is None or player.discord_id != discord_id:
                raise Unauthorized(
                    f"User {discord_id} is not player {slot} of Match {match_id}",
                    "This check-in button is not for you."
                )

            # Idempotent: a repeated click only retries the start below
            already_checked_in = player.is_checked_in
            if not already_checked_in:
                if match.state.is_terminal:
                    raise AlreadyFinalized(match_id)
                if match.state not in CHECK_IN_STATES:
                    raise StaleState(match_id, f"check-in closed in state {match.state.value}")
                if is_past(match.check_in_deadline):
                    raise DeadlineExpired(match_id)

                if not await self.match_ops.mark_checked_in(session, player.id):
                    # A concurrent request for the same player got there first
                    already_checked_in = True

        # Committed above; count in a fresh transaction so a concurrent
        # check-in committed in the meantime is visible
        checked_in, transitioned = await self._start_if_ready(match_id)
        both_ready = checked_in >= MatchConstants.PLAYERS_PER_MATCH

        if transitioned:
            self.logger.info(f"Match {match_id}: both players checked in, match is live")
        elif not already_checked_in:
            self.logger.info(f"Match {match_id}: {player.player_name} checked in ({checked_in}/2)")

        return CheckInOutcome(
            already_checked_in=already_checked_in,
            both_checked_in=both_ready,
            transitioned=transitioned
        )

    async def _start_if_ready(self, match_id: str) -> Tuple[int, bool]:
        """
        Move the match to CHECKED_IN once both players are checked in.

        Returns:
            (checked-in count, whether this call performed the transition)
        """
        async with self.db.transaction() as session:
            checked_in = await self.match_ops.count_checked_in(session, match_id)
            if checked_in < MatchConstants.PLAYERS_PER_MATCH:
                return checked_in, False
            transitioned = await self.match_ops.transition_state(
                session, match_id, CHECK_IN_STATES, MatchState.CHECKED_IN
            )
        return checked_in, transitioned

    async def open_check_in(
        self,
        match_id: str,
        thread_id: int,
        require_check_in: bool = True
    ) -> bool:
        """
        Call a NOT_STARTED match: record its thread and start the check-in window.

        Idempotent: returns False when the match already has a thread or has
        moved past NOT_STARTED.
        """
        deadline = None
        if require_check_in:
            deadline = utcnow() + timedelta(minutes=Config.CHECK_IN_WINDOW_MINUTES)

        async with self.db.transaction() as session:
            called = await self.match_ops.record_thread(session, match_id, thread_id, deadline)

        if called:
            self.logger.info(f"Match {match_id} called in thread {thread_id} (deadline: {deadline})")
        else:
            self.logger.info(f"Match {match_id} already called, keeping existing thread")
        return called
