from datetime import timedelta

import pytest
import pytest_asyncio

from matcharc.database.database import Database
from matcharc.database.models import MatchState
from matcharc.services.match_service import MatchService
from matcharc.services.sync_service import SyncTracker
from matcharc.utils.timestamps import utcnow

ALICE_DISCORD_ID = 100000000000000001
BOB_DISCORD_ID = 100000000000000002
OUTSIDER_DISCORD_ID = 100000000000000003
ADMIN_DISCORD_ID = 100000000000000004


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'matcharc_test.db'}")
    await database.initialize()
    yield database
    await database.close()


@pytest_asyncio.fixture
async def users(db):
    alice = await db.get_or_create_user(ALICE_DISCORD_ID, "Alice")
    bob = await db.get_or_create_user(BOB_DISCORD_ID, "Bob")
    return alice, bob


@pytest.fixture
def make_match(db, users):
    """Factory for Alice (slot 1) vs Bob (slot 2) matches linked to a start.gg set"""
    alice, bob = users

    async def factory(state=MatchState.CALLED, deadline_minutes=10, external_set_id="set-123"):
        deadline = utcnow() + timedelta(minutes=deadline_minutes) if deadline_minutes is not None else None
        return await db.create_match(
            identifier="A1",
            round_text="Winners Round 1",
            players=[("Alice", alice.id), ("Bob", bob.id)],
            external_set_id=external_set_id,
            entrant_ids=["entrant-a", "entrant-b"] if external_set_id else None,
            state=state,
            check_in_deadline=deadline
        )

    return factory


@pytest_asyncio.fixture
async def tracker(db):
    return SyncTracker(db)


@pytest.fixture
def service(db, tracker):
    return MatchService(db, tracker)


def outcomes(match):
    """(slot 1 outcome, slot 2 outcome) as plain strings"""
    return tuple(p.outcome.value for p in match.players)
