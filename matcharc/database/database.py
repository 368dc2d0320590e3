from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional, List, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from matcharc.config import Config
from matcharc.database.models import (
    Base, User, Match, MatchPlayer, MatchState, new_match_id
)
from matcharc.utils.logger import setup_logger

class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url
        self.engine = None
        self.async_session = None

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        # Convert sqlite URL to async if needed
        database_url = self.database_url or Config.DATABASE_URL
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')

        self.engine = create_async_engine(
            database_url,
            echo=Config.DEBUG,
            future=True
        )

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

    @asynccontextmanager
    async def get_session(self):
        """Get a database session"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        Everything executed on the yielded session commits together when the
        block exits normally and rolls back together when an exception
        escapes it. Conditional updates that find zero rows must raise inside
        the block so earlier writes in the same transaction are undone.

        Usage:
            async with db.transaction() as session:
                result = await session.execute(update(Match).where(...))
                if result.rowcount == 0:
                    raise StaleState(match_id)
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # User operations
    async def get_user_by_discord_id(self, discord_id: int) -> Optional[User]:
        """Get a linked account by its Discord ID"""
        async with self.get_session() as session:
            result = await session.execute(
                select(User).where(User.discord_id == discord_id)
            )
            return result.scalar_one_or_none()

    async def get_or_create_user(self, discord_id: int, display_name: str) -> User:
        """Get a linked account, creating it on first sight"""
        async with self.get_session() as session:
            result = await session.execute(
                select(User).where(User.discord_id == discord_id)
            )
            user = result.scalar_one_or_none()
            if user:
                return user

            user = User(discord_id=discord_id, display_name=display_name)
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    # Match operations used by the scheduler
    async def create_match(
        self,
        identifier: str,
        round_text: str,
        players: List[Tuple[str, Optional[int]]],
        external_set_id: Optional[str] = None,
        entrant_ids: Optional[List[Optional[str]]] = None,
        state: MatchState = MatchState.NOT_STARTED,
        check_in_deadline: Optional[datetime] = None,
        match_id: Optional[str] = None
    ) -> Match:
        """
        Create a match with its two players.

        Args:
            identifier: Bracket label (e.g. "A1")
            round_text: Human-readable round label
            players: Two (player_name, user_id) pairs; user_id may be None
            external_set_id: start.gg set id, if the match mirrors one
            entrant_ids: start.gg entrant ids, in the same order as players
            state: Initial state
            check_in_deadline: Optional check-in deadline
            match_id: Explicit id, generated when omitted

        Returns:
            The created Match with players loaded
        """
        if len(players) != 2:
            raise ValueError(f"A match needs exactly 2 players, got {len(players)}")
        entrant_ids = entrant_ids or [None, None]

        async with self.transaction() as session:
            match = Match(
                id=match_id or new_match_id(),
                identifier=identifier,
                round_text=round_text,
                state=state,
                check_in_deadline=check_in_deadline,
                external_set_id=external_set_id
            )
            session.add(match)
            await session.flush()

            for (player_name, user_id), entrant_id in zip(players, entrant_ids):
                session.add(MatchPlayer(
                    match_id=match.id,
                    user_id=user_id,
                    player_name=player_name,
                    external_entrant_id=entrant_id
                ))
            created_id = match.id

        self.logger.info(f"Created Match {created_id} ({identifier}, {round_text})")
        return await self.get_match(created_id)

    async def get_match(self, match_id: str) -> Optional[Match]:
        """Get a match with its players"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Match).where(Match.id == match_id)
            )
            return result.scalar_one_or_none()
