"""
Administrative disqualification.

A DQ ends any non-terminal match: the disqualified player loses, the
opponent wins by default, and open disputes on the match are cancelled.
The result is not queued for start.gg; an admin can push it with
MatchService.resync() once the bracket side is ready.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select

from matcharc.database.match_operations import MatchOperations
from matcharc.database.models import AuditAction, Match, MatchPlayer, MatchState, User
from matcharc.services.audit_service import create_audit_log, snapshot_match
from matcharc.utils.match_exceptions import AlreadyFinalized, NotFound
from matcharc.utils.timestamps import utcnow
from matcharc.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class DisqualifyOutcome:
    match: Match
    dq_player: MatchPlayer
    winner: MatchPlayer
    audited: bool


class DisqualificationService:
    def __init__(self, database, match_ops: Optional[MatchOperations] = None):
        self.db = database
        self.match_ops = match_ops or MatchOperations(database)
        self.logger = logger

    async def disqualify(
        self,
        match_id: str,
        dq_player_id: int,
        reason: Optional[str] = None,
        admin_discord_id: Optional[int] = None
    ) -> DisqualifyOutcome:
        """
        Disqualify `dq_player_id` (a MatchPlayer id) from a match.

        Raises:
            NotFound: Match missing, or the player is not part of it
            AlreadyFinalized: Match is COMPLETED or DQ, including when it
                finalized concurrently
        """
        async with self.db.transaction() as session:
            match = await self.match_ops.load_match(session, match_id)
            if match.state.is_terminal:
                raise AlreadyFinalized(match_id)

            dq_player = next((p for p in match.players if p.id == dq_player_id), None)
            if dq_player is None:
                raise NotFound("Player", f"{dq_player_id} in Match {match_id}")
            winner = match.get_opponent(dq_player)

            admin = None
            if admin_discord_id is not None:
                result = await session.execute(select(User).where(User.discord_id == admin_discord_id))
                admin = result.scalar_one_or_none()

            before = snapshot_match(match)

            moved = await self.match_ops.transition_unless_terminal(
                session, match_id, MatchState.DQ, completed_at=utcnow()
            )
            if not moved:
                raise AlreadyFinalized(match_id)
            await self.match_ops.set_final_outcomes(session, match_id, winner.id)

            resolution = f"Match ended by DQ of {dq_player.player_name}"
            await self.match_ops.cancel_open_disputes(
                session, match_id, resolution, resolved_by_id=admin.id if admin else None
            )

            audited = admin_discord_id is not None
            if audited:
                after = snapshot_match(await self.match_ops.load_match(session, match_id))
                # Owners usually have no User row; the Discord id is kept either way
                after['admin_discord_id'] = admin_discord_id
                create_audit_log(
                    session,
                    AuditAction.PLAYER_DQ,
                    match_id,
                    user_id=admin.id if admin else None,
                    before=before,
                    after=after,
                    reason=reason
                )

        self.logger.info(
            f"Match {match_id}: {dq_player.player_name} disqualified, {winner.player_name} wins "
            f"(reason: {reason or 'none given'}, admin: {admin_discord_id})"
        )

        return DisqualifyOutcome(
            match=await self.db.get_match(match_id),
            dq_player=dq_player,
            winner=winner,
            audited=audited
        )
