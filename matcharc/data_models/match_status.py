"""
Data transfer objects returned by the match flow operations.

Snapshots are immutable and detached from the database session, so the
presentation layer can render them after the transaction has closed.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from matcharc.database.models import Match, MatchState, SyncStatus
from matcharc.utils.match_exceptions import ErrorCode, MatchOperationError


@dataclass(frozen=True)
class PlayerStatus:
    """One player as seen by the presentation layer."""
    player_id: int
    slot: int
    player_name: str
    discord_id: Optional[int]
    is_checked_in: bool
    is_winner: Optional[bool]


@dataclass(frozen=True)
class MatchStatus:
    """Read-only snapshot of a match after an operation."""
    match_id: str
    identifier: str
    round_text: str
    state: MatchState
    sync_status: SyncStatus
    players: Tuple[PlayerStatus, ...]
    reported_score: Optional[str] = None
    thread_id: Optional[int] = None
    auto_completed: bool = False       # Report finalized without confirmation
    both_checked_in: bool = False

    @property
    def winner(self) -> Optional[PlayerStatus]:
        return next((p for p in self.players if p.is_winner is True), None)

    @property
    def loser(self) -> Optional[PlayerStatus]:
        if self.winner is None:
            return None
        return next((p for p in self.players if p.is_winner is False), None)

    @classmethod
    def from_match(cls, match: Match, auto_completed: bool = False) -> 'MatchStatus':
        players = tuple(
            PlayerStatus(
                player_id=player.id,
                slot=slot,
                player_name=player.player_name,
                discord_id=player.discord_id,
                is_checked_in=player.is_checked_in,
                is_winner=player.is_winner
            )
            for slot, player in enumerate(match.players, start=1)
        )
        return cls(
            match_id=match.id,
            identifier=match.identifier,
            round_text=match.round_text,
            state=match.state,
            sync_status=match.external_sync_status,
            players=players,
            reported_score=match.reported_score,
            thread_id=match.thread_id,
            auto_completed=auto_completed,
            both_checked_in=all(p.is_checked_in for p in players) and len(players) == 2
        )


@dataclass(frozen=True)
class OperationResult:
    """Outcome of check_in, report_score, resolve_confirmation or disqualify."""
    success: bool
    message: str
    match_status: Optional[MatchStatus] = None
    error: Optional[ErrorCode] = None
    transitioned: bool = field(default=False)  # This call moved Match.state

    @classmethod
    def ok(cls, message: str, match_status: Optional[MatchStatus] = None,
           transitioned: bool = False) -> 'OperationResult':
        return cls(success=True, message=message, match_status=match_status, transitioned=transitioned)

    @classmethod
    def failed(cls, error: MatchOperationError) -> 'OperationResult':
        return cls(success=False, message=error.user_message, error=error.code)
