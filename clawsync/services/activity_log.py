"""Best-effort activity log with a background writer thread.

``log()`` only enqueues a record and returns; a daemon thread hands each
record to the sink.  A failing sink is logged and never reaches the
request that produced the record.

The default sink keeps the most recent ``MAX_RECORDS`` records in memory
for the SyncBoard activity feed.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections import deque
from collections.abc import Callable

from clawsync.models import ActivityRecord, Visibility

logger = logging.getLogger(__name__)

MAX_RECORDS = 500
SUMMARY_PREVIEW_CHARS = 50


def preview(text: str, limit: int = SUMMARY_PREVIEW_CHARS) -> str:
    """Shorten *text* for an activity summary."""
    return text[:limit] + ("..." if len(text) > limit else "")


class ActivityLog:
    """Queue-backed activity recorder."""

    def __init__(self, sink: Callable[[ActivityRecord], None] | None = None) -> None:
        self._records: deque[ActivityRecord] = deque(maxlen=MAX_RECORDS)
        self._records_lock = threading.Lock()
        self._sink = sink or self._store
        self._queue: queue.Queue[ActivityRecord] = queue.Queue()
        self._worker = threading.Thread(
            target=self._drain, daemon=True, name="activity-log",
        )
        self._worker.start()

    # ── Public API ────────────────────────────────────────────────────

    def log(
        self,
        action_type: str,
        summary: str,
        visibility: Visibility | str = Visibility.PRIVATE,
        channel: str | None = None,
    ) -> None:
        """Enqueue one record; never blocks on the sink."""
        record = ActivityRecord(
            action_type=action_type,
            summary=summary,
            visibility=Visibility(visibility),
            channel=channel,
        )
        self._queue.put(record)

    def recent(
        self, limit: int = 50, visibility: Visibility | str | None = None,
    ) -> list[ActivityRecord]:
        """Newest-first records from the in-memory sink."""
        with self._records_lock:
            records = list(self._records)
        if visibility is not None:
            records = [r for r in records if r.visibility == Visibility(visibility)]
        return list(reversed(records))[:limit]

    def flush(self) -> None:
        """Block until every queued record has been handed to the sink."""
        self._queue.join()

    # ── Internal ──────────────────────────────────────────────────────

    def _store(self, record: ActivityRecord) -> None:
        with self._records_lock:
            self._records.append(record)

    def _drain(self) -> None:
        while True:
            record = self._queue.get()
            try:
                self._sink(record)
            except Exception:
                logger.exception("Failed to write activity record %s", record.action_type)
            finally:
                self._queue.task_done()
