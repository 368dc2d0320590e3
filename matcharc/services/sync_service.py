"""
External sync tracking for finalized results.

Local finalization never waits on start.gg. After a match is COMPLETED the
caller calls SyncTracker.enqueue(), which flips the sync status to PENDING
with a guarded update and hands the match id to SyncWorker's queue. The
worker reports the result and records SYNCED or FAILED (with the error
text) on the match. Sync failures never touch Match.state.
"""

import asyncio
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import select, or_, and_

from matcharc.config import Config
from matcharc.constants import SyncConstants
from matcharc.database.match_operations import MatchOperations
from matcharc.database.models import Match, MatchState, SyncStatus
from matcharc.utils.timestamps import utcnow
from matcharc.utils.logger import setup_logger

logger = setup_logger(__name__)


class SyncTracker:
    """Records sync status and feeds the worker queue."""

    def __init__(self, database, match_ops: Optional[MatchOperations] = None):
        self.db = database
        self.match_ops = match_ops or MatchOperations(database)
        self.queue: asyncio.Queue = asyncio.Queue()
        self.logger = logger

    async def enqueue(self, match_id: str) -> bool:
        """
        Mark a finalized match PENDING and queue it for the worker.

        Returns:
            True if queued; False if the match has no linked set, is not
            finalized, or is already PENDING/SYNCED
        """
        async with self.db.transaction() as session:
            marked = await self.match_ops.mark_sync_pending(session, match_id)

        if not marked:
            self.logger.debug(f"Match {match_id}: sync not queued (no set, not final, or already pending/synced)")
            return False

        self.queue.put_nowait(match_id)
        self.logger.info(f"Match {match_id}: result queued for start.gg sync")
        return True

    async def try_enqueue(self, match_id: str) -> bool:
        """
        enqueue() for callers that have already committed a final result.

        Errors are logged, not raised; the match keeps its sync status
        (normally NOT_SYNCED) and retry_failed() picks it up later.
        """
        try:
            return await self.enqueue(match_id)
        except Exception as e:
            self.logger.error(f"Match {match_id}: could not queue start.gg sync: {e}", exc_info=True)
            return False

    async def record_success(self, match_id: str) -> bool:
        async with self.db.transaction() as session:
            recorded = await self.match_ops.record_sync_result(session, match_id, success=True)
        if recorded:
            self.logger.info(f"Match {match_id}: result synced to start.gg")
        return recorded

    async def record_failure(self, match_id: str, error: str) -> bool:
        error = (error or "Unknown error")[:SyncConstants.MAX_ERROR_LENGTH]
        async with self.db.transaction() as session:
            recorded = await self.match_ops.record_sync_result(session, match_id, success=False, error=error)
        if recorded:
            self.logger.error(f"Match {match_id}: start.gg sync failed: {error}")
        return recorded

    async def get_retry_candidates(self, limit: int = 50) -> List[str]:
        """
        Completed matches whose sync should be attempted again.

        FAILED and NOT_SYNCED matches are eligible while under the attempt
        limit; PENDING ones only once they are older than the stale
        threshold (the worker that owned them most likely died).
        """
        stale_before = utcnow() - timedelta(minutes=Config.SYNC_STALE_PENDING_MINUTES)
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Match.id)
                .where(
                    Match.state == MatchState.COMPLETED,
                    Match.external_set_id.is_not(None),
                    Match.external_sync_attempts < Config.SYNC_MAX_ATTEMPTS,
                    or_(
                        Match.external_sync_status.in_([SyncStatus.FAILED, SyncStatus.NOT_SYNCED]),
                        and_(
                            Match.external_sync_status == SyncStatus.PENDING,
                            Match.external_sync_requested_at < stale_before
                        )
                    )
                )
                .order_by(Match.updated_at)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def retry_failed(self, limit: int = 50) -> int:
        """Re-queue retry candidates; returns how many were queued"""
        queued = 0
        for match_id in await self.get_retry_candidates(limit):
            match = await self.db.get_match(match_id)
            if match and match.external_sync_status == SyncStatus.PENDING:
                # Stale PENDING: the original worker never recorded an outcome
                await self.record_failure(match_id, "Sync attempt timed out")
            if await self.enqueue(match_id):
                queued += 1

        if queued:
            self.logger.info(f"Re-queued {queued} match result(s) for start.gg sync")
        return queued


class SyncWorker:
    """
    Background consumer of SyncTracker.queue.

    Each queued match is reported once per dequeue; retry policy across
    attempts belongs to SyncTracker.retry_failed(), which the Discord
    adapter runs on a timer.
    """

    def __init__(self, tracker: SyncTracker, bracket_client):
        self.tracker = tracker
        self.db = tracker.db
        self.bracket_client = bracket_client
        self._task: Optional[asyncio.Task] = None
        self.logger = logger

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="matcharc-sync-worker")
        self.logger.info("Sync worker started")

    async def stop(self):
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.logger.info("Sync worker stopped")

    async def _run(self):
        while True:
            match_id = await self.tracker.queue.get()
            try:
                await self.process(match_id)
            except Exception as e:
                # process() records its own failures; this only guards the loop
                self.logger.error(f"Sync worker error for Match {match_id}: {e}", exc_info=True)
            finally:
                self.tracker.queue.task_done()

    async def drain(self):
        """Process everything currently queued, without the background task"""
        while not self.tracker.queue.empty():
            match_id = self.tracker.queue.get_nowait()
            try:
                await self.process(match_id)
            finally:
                self.tracker.queue.task_done()

    async def process(self, match_id: str) -> bool:
        """
        Report one match to start.gg and record the outcome.

        Returns:
            True if the result was acknowledged
        """
        match = await self.db.get_match(match_id)
        if not match:
            self.logger.warning(f"Sync skipped: Match {match_id} no longer exists")
            return False
        if match.external_sync_status != SyncStatus.PENDING:
            self.logger.debug(f"Sync skipped: Match {match_id} is {match.external_sync_status.value}")
            return False

        winner = match.get_winner()
        if winner is None:
            await self.tracker.record_failure(match_id, "Match has no winner recorded")
            return False
        if not winner.external_entrant_id:
            await self.tracker.record_failure(
                match_id, f"Winner {winner.player_name} has no start.gg entrant id"
            )
            return False

        try:
            reported = await self.bracket_client.report_set(match.external_set_id, winner.external_entrant_id)
        except Exception as e:
            await self.tracker.record_failure(match_id, f"{type(e).__name__}: {e}")
            return False

        if reported is None:
            await self.tracker.record_failure(match_id, "start.gg returned no set for reportBracketSet")
            return False

        return await self.tracker.record_success(match_id)
