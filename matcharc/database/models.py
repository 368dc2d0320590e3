"""
Match lifecycle models.

A Match is a single head-to-head contest with exactly two MatchPlayer rows.
Match.state drives check-in, reporting and confirmation; the
external_sync_* columns track propagation of the final result to start.gg
and change independently of state.
"""

import secrets
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, JSON,
    ForeignKey, BigInteger, Enum as SQLEnum, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def new_match_id() -> str:
    """Generate a CUID-shaped match id ('c' + 24 lowercase alphanumerics)"""
    return 'c' + secrets.token_hex(12)


class MatchState(Enum):
    """State of a match from creation to final result"""
    NOT_STARTED = "not_started"                    # Created by the scheduler
    CALLED = "called"                              # Thread opened, players notified
    CHECKED_IN = "checked_in"                      # Both players ready, reporting open
    IN_PROGRESS = "in_progress"                    # Set marked started by the bracket service
    PENDING_CONFIRMATION = "pending_confirmation"  # Self-report awaiting the opponent
    COMPLETED = "completed"                        # Final result accepted
    DQ = "dq"                                      # Ended by disqualification

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({MatchState.COMPLETED, MatchState.DQ})
CHECK_IN_STATES = frozenset({MatchState.NOT_STARTED, MatchState.CALLED})
REPORTABLE_STATES = frozenset({MatchState.CALLED, MatchState.CHECKED_IN, MatchState.IN_PROGRESS})


class SyncStatus(Enum):
    """Propagation status of a finalized result to the bracket service"""
    NOT_SYNCED = "not_synced"
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


class PlayerOutcome(Enum):
    """Winner/loser flag of a MatchPlayer"""
    UNSET = "unset"
    WINNER = "winner"
    LOSER = "loser"


class DisputeStatus(Enum):
    OPEN = "open"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class AuditAction(Enum):
    PLAYER_DQ = "player_dq"
    RESULT_DISPUTED = "result_disputed"
    SYNC_REQUEUED = "sync_requeued"


class AuditSource(Enum):
    DISCORD = "discord"
    SYSTEM = "system"


class User(Base):
    """A linked account. Only the Discord identity matters to the match flow."""
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    discord_id = Column(BigInteger, unique=True, nullable=False, index=True)
    display_name = Column(String(100), nullable=False)

    created_at = Column(DateTime(timezone=True), default=func.now())

    def __repr__(self):
        return f"<User(discord_id={self.discord_id}, display_name='{self.display_name}')>"


class Match(Base):
    """
    One contest within an event.

    Rows are created by the scheduler and never deleted; every change after
    creation goes through a conditional UPDATE guarded on `state`.
    """
    __tablename__ = 'matches'

    id = Column(String(25), primary_key=True, default=new_match_id)
    identifier = Column(String(20), nullable=False)     # Bracket label, e.g. "A1"
    round_text = Column(String(100), nullable=False)    # e.g. "Winners Round 1"
    state = Column(SQLEnum(MatchState), nullable=False, default=MatchState.NOT_STARTED, index=True)

    # Check-in
    check_in_deadline = Column(DateTime(timezone=True), nullable=True)

    # Discussion thread opened by the presentation layer
    thread_id = Column(BigInteger, nullable=True)

    # Pending claim (cleared together on dispute)
    reported_by_id = Column(Integer, nullable=True)  # MatchPlayer.id of the reporter
    reported_score = Column(String(10), nullable=True)
    reported_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Bracket service sync
    external_set_id = Column(String(50), nullable=True)
    external_sync_status = Column(SQLEnum(SyncStatus), nullable=False, default=SyncStatus.NOT_SYNCED, index=True)
    external_sync_error = Column(Text, nullable=True)
    external_sync_attempts = Column(Integer, nullable=False, default=0)
    external_sync_requested_at = Column(DateTime(timezone=True), nullable=True)
    external_synced_at = Column(DateTime(timezone=True), nullable=True)

    # Metadata
    created_at = Column(DateTime(timezone=True), default=func.now())
    updated_at = Column(DateTime(timezone=True), default=func.now(), onupdate=func.now())

    # Relationships
    players = relationship("MatchPlayer", back_populates="match", order_by="MatchPlayer.id", lazy="selectin")
    disputes = relationship("Dispute", back_populates="match", order_by="Dispute.id")

    def get_player_by_slot(self, slot: int) -> Optional['MatchPlayer']:
        """Return the player in 1-based `slot`, ordered by id"""
        if slot < 1 or slot > len(self.players):
            return None
        return self.players[slot - 1]

    def get_player_by_discord_id(self, discord_id: int) -> Optional['MatchPlayer']:
        for player in self.players:
            if player.discord_id is not None and player.discord_id == discord_id:
                return player
        return None

    def get_opponent(self, player: 'MatchPlayer') -> Optional['MatchPlayer']:
        for other in self.players:
            if other.id != player.id:
                return other
        return None

    def get_winner(self) -> Optional['MatchPlayer']:
        for player in self.players:
            if player.outcome == PlayerOutcome.WINNER:
                return player
        return None

    def __repr__(self):
        return (f"<Match(id={self.id}, identifier='{self.identifier}', state={self.state.value}, "
                f"sync={self.external_sync_status.value})>")


class MatchPlayer(Base):
    """One of the two participants of a Match."""
    __tablename__ = 'match_players'

    id = Column(Integer, primary_key=True)
    match_id = Column(String(25), ForeignKey('matches.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=True)  # Null until the entrant links Discord

    player_name = Column(String(100), nullable=False)
    external_entrant_id = Column(String(50), nullable=True)

    # Check-in
    is_checked_in = Column(Boolean, nullable=False, default=False)
    checked_in_at = Column(DateTime(timezone=True), nullable=True)

    # Result
    outcome = Column(SQLEnum(PlayerOutcome), nullable=False, default=PlayerOutcome.UNSET)

    created_at = Column(DateTime(timezone=True), default=func.now())

    # Relationships
    match = relationship("Match", back_populates="players")
    user = relationship("User", lazy="joined")

    __table_args__ = (UniqueConstraint('match_id', 'user_id', name='uq_match_player_user'),)

    @property
    def discord_id(self) -> Optional[int]:
        return self.user.discord_id if self.user else None

    @property
    def is_winner(self) -> Optional[bool]:
        """Tri-state view of `outcome`: True, False, or None when unset"""
        if self.outcome == PlayerOutcome.WINNER:
            return True
        if self.outcome == PlayerOutcome.LOSER:
            return False
        return None

    def __repr__(self):
        return f"<MatchPlayer(id={self.id}, name='{self.player_name}', outcome={self.outcome.value})>"


class Dispute(Base):
    """Annotation left when a reported result is disputed or a match is DQ'd."""
    __tablename__ = 'disputes'

    id = Column(Integer, primary_key=True)
    match_id = Column(String(25), ForeignKey('matches.id'), nullable=False, index=True)
    initiator_id = Column(Integer, ForeignKey('match_players.id'), nullable=False)
    reason = Column(Text, nullable=True)
    status = Column(SQLEnum(DisputeStatus), nullable=False, default=DisputeStatus.OPEN)

    resolved_by_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    resolution = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=func.now())
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    match = relationship("Match", back_populates="disputes")
    initiator = relationship("MatchPlayer")
    resolved_by = relationship("User")

    def __repr__(self):
        return f"<Dispute(match_id={self.match_id}, status={self.status.value})>"


class AuditLog(Base):
    """Append-only record of administrative and dispute actions."""
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True)
    action = Column(SQLEnum(AuditAction), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(50), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    before = Column(JSON, nullable=True)
    after = Column(JSON, nullable=True)
    reason = Column(Text, nullable=True)
    source = Column(SQLEnum(AuditSource), nullable=False, default=AuditSource.DISCORD)

    created_at = Column(DateTime(timezone=True), default=func.now())

    def __repr__(self):
        return f"<AuditLog(action={self.action.value}, entity={self.entity_type}:{self.entity_id})>"
