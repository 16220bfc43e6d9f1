"""
Progress and log sink for sync runs.

Persists the SyncStatus record that dashboards poll: state, counters,
percentage and a capped, append-only list of human-readable log lines.
The lines of the current run are also kept in memory and returned to the
caller when the run ends.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from catalog_enrichment.models import JobState, SyncStatus, utc_now_iso
from catalog_enrichment.storage import DocumentStore

logger = logging.getLogger(__name__)

ProgressListener = Callable[[SyncStatus], None]


class ProgressLogSink:
    """
    Status/log writer for one store.

    Args:
        store: document store holding the status record
        db_name: store (tenant) key
        max_logs: log lines kept in the persisted record (oldest dropped)
    """

    def __init__(self, store: DocumentStore, db_name: str, max_logs: Optional[int] = 500):
        self.store = store
        self.db_name = db_name
        self.max_logs = max_logs
        self.lines: List[str] = []
        self.status = SyncStatus(dbName=db_name)
        self._listeners: List[ProgressListener] = []
        self._write_lock = asyncio.Lock()

    def add_listener(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in self._listeners:
            try:
                listener(self.status)
            except Exception as e:
                logger.warning(f"Progress listener failed: {e}")

    async def _save(self, **fields) -> None:
        async with self._write_lock:
            await self._write_status(fields)

    async def _write_status(self, fields: dict) -> None:
        for key, value in fields.items():
            setattr(self.status, key, value)
        self.status.updatedAt = utc_now_iso()
        payload = {key: (value.value if isinstance(value, JobState) else value) for key, value in fields.items()}
        payload["updatedAt"] = self.status.updatedAt
        await self.store.set_sync_status(self.db_name, payload)
        self._notify()

    async def init(self, total: int = 0, state: JobState = JobState.REPROCESSING) -> None:
        """Reset the record for a new run (clears previous logs)."""
        self.lines = []
        self.status = SyncStatus(dbName=self.db_name)
        await self._save(
            dbName=self.db_name,
            state=state,
            total=total,
            done=0,
            progress=0,
            startedAt=utc_now_iso(),
            finishedAt=None,
            stoppedAt=None,
            logs=[],
        )

    async def set_total(self, total: int) -> None:
        await self._save(total=total, state=self.status.state if total > 0 else JobState.IDLE)

    async def append(self, line: str, level: int = logging.INFO) -> None:
        logger.log(level, line)
        self.lines.append(line)
        self.status.logs.append(line)
        if self.max_logs is not None and len(self.status.logs) > self.max_logs:
            del self.status.logs[: len(self.status.logs) - self.max_logs]
        try:
            async with self._write_lock:
                await self.store.push_logs(self.db_name, [line], max_logs=self.max_logs)
        except Exception as e:
            logger.error(f"❌ Failed to write log to store: {e}")

    async def tick(self, done: int, total: Optional[int] = None) -> None:
        """
        Record progress. Counters only move forward, so a late tick from a
        pooled worker cannot lower `done`. Store errors are logged, not raised.
        """
        try:
            async with self._write_lock:
                done = max(done, self.status.done or 0)
                total = self.status.total if total is None else total
                progress = round(done / total * 100) if total else 100
                await self._write_status({"done": done, "progress": min(progress, 100)})
        except Exception as e:
            logger.error(f"❌ Failed to write progress to store: {e}")

    async def finish(self, state: JobState = JobState.DONE) -> None:
        fields = {"state": state}
        if state is JobState.DONE:
            fields.update(finishedAt=utc_now_iso(), progress=100)
        elif state is JobState.ERROR:
            fields.update(finishedAt=utc_now_iso())
        await self._save(**fields)

    async def stopped(self) -> None:
        """Terminal state for a cooperative stop: idle with stoppedAt."""
        await self._save(state=JobState.IDLE, stoppedAt=utc_now_iso())
