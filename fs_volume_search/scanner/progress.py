#!/usr/bin/env python3

"""Per-volume scan progress shared between scan workers and the monitor.

Each key is written only by the worker that owns the volume and read by
the monitor loop. Entries are immutable snapshots swapped in with a single
dict assignment, so readers never see a half-written entry, only possibly
a stale one.
"""

import time
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Optional

from ..errors import ProgressStateError

logger = logging.getLogger(__name__)


class ScanStatus(Enum):
    PENDING = 'pending'
    RUNNING = 'running'
    COMPLETED = 'completed'
    FAILED = 'failed'

    @property
    def is_terminal(self) -> bool:
        return self in (ScanStatus.COMPLETED, ScanStatus.FAILED)


_ALLOWED_TRANSITIONS = {
    ScanStatus.PENDING: {ScanStatus.PENDING, ScanStatus.RUNNING, ScanStatus.FAILED},
    ScanStatus.RUNNING: {ScanStatus.RUNNING, ScanStatus.COMPLETED, ScanStatus.FAILED},
    ScanStatus.COMPLETED: set(),
    ScanStatus.FAILED: set(),
}


@dataclass(frozen=True)
class ScanProgress:
    """Snapshot of one volume's scan status."""
    volume_id: str
    status: ScanStatus = ScanStatus.PENDING
    percent: int = 0
    match_count: int = 0
    files_scanned: int = 0
    current_path: str = ''
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def elapsed(self) -> float:
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time is not None else time.time()
        return max(0.0, end - self.start_time)


class ProgressTracker:
    """Concurrent mapping of volume id to its latest ScanProgress."""

    def __init__(self):
        self._entries: Dict[str, ScanProgress] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, volume_id: str) -> bool:
        return volume_id in self._entries

    def register(self, volume_id: str) -> ScanProgress:
        """Create the Pending entry for a volume. Must happen before dispatch."""
        if volume_id in self._entries:
            raise ProgressStateError(f"Progress for {volume_id} is already registered")
        entry = ScanProgress(volume_id=volume_id)
        self._entries[volume_id] = entry
        return entry

    def get(self, volume_id: str) -> ScanProgress:
        try:
            return self._entries[volume_id]
        except KeyError:
            raise ProgressStateError(f"No progress registered for {volume_id}") from None

    def _write(self, volume_id: str, **changes) -> ScanProgress:
        current = self.get(volume_id)
        new_status = changes.get('status', current.status)

        if current.is_terminal:
            raise ProgressStateError(
                f"Progress for {volume_id} is frozen in state {current.status.value}"
            )
        if new_status not in _ALLOWED_TRANSITIONS[current.status]:
            raise ProgressStateError(
                f"Illegal transition {current.status.value} -> {new_status.value} for {volume_id}"
            )
        if changes.get('percent', current.percent) < current.percent:
            # Late estimates never move the bar backwards.
            changes['percent'] = current.percent

        entry = replace(current, **changes)
        self._entries[volume_id] = entry
        return entry

    def mark_running(self, volume_id: str) -> ScanProgress:
        return self._write(volume_id, status=ScanStatus.RUNNING, start_time=time.time())

    def update(self, volume_id: str, percent: int, match_count: int,
               files_scanned: int, current_path: str) -> ScanProgress:
        """Record intermediate progress for a running volume."""
        return self._write(
            volume_id,
            percent=max(0, min(100, int(percent))),
            match_count=match_count,
            files_scanned=files_scanned,
            current_path=current_path,
        )

    def complete(self, volume_id: str, match_count: int, files_scanned: int) -> ScanProgress:
        return self._write(
            volume_id,
            status=ScanStatus.COMPLETED,
            percent=100,
            match_count=match_count,
            files_scanned=files_scanned,
            current_path='',
            end_time=time.time(),
        )

    def fail(self, volume_id: str, error_message: str) -> ScanProgress:
        """Freeze a volume as Failed. Failed volumes report zero matches."""
        current = self.get(volume_id)
        return self._write(
            volume_id,
            status=ScanStatus.FAILED,
            match_count=0,
            current_path='',
            start_time=current.start_time or time.time(),
            end_time=time.time(),
            error_message=error_message,
        )

    def retrieval_failed(self, volume_id: str, error_message: str) -> ScanProgress:
        """Record that a volume's results were lost after its scan ended.

        A volume that never reached a terminal state is failed. A Completed
        entry keeps its status but is corrected to zero matches, since its
        results contribute nothing to the merged list. A Failed entry already
        reports zero matches and is left as it is.
        """
        current = self.get(volume_id)
        if not current.is_terminal:
            return self.fail(volume_id, error_message)
        if current.status is ScanStatus.FAILED:
            return current
        entry = replace(current, match_count=0, error_message=error_message)
        self._entries[volume_id] = entry
        return entry

    def snapshot(self) -> Dict[str, ScanProgress]:
        """Copy of the current entries, in registration order."""
        return dict(self._entries)

    def all_terminal(self) -> bool:
        return all(entry.is_terminal for entry in list(self._entries.values()))

    def pending_ids(self) -> List[str]:
        return [vid for vid, entry in list(self._entries.items()) if not entry.is_terminal]
