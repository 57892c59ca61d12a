#!/usr/bin/env python3

import logging
import os
import re
import stat
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional

from ..errors import TraversalError, VolumeUnavailable
from ..events import ScanEventLog
from ..volumes import Volume
from .progress import ProgressTracker, ScanProgress
from .results import ResultAggregator, ScanResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanTask:
    """Parameters of one worker invocation."""
    volume: Volume
    pattern: re.Pattern


class WorkerPhase(Enum):
    PENDING = 'pending'
    OPENING = 'opening'
    WALKING = 'walking'
    COMPLETED = 'completed'
    FAILED = 'failed'


class VolumeScanWorker:
    """Walks one volume and records the files whose base name matches.

    The worker owns its volume's progress entry and match list: it is the
    only writer of both. Errors never leave ``run``; a volume that cannot be
    opened ends Failed, a subtree that cannot be listed is skipped.
    """

    def __init__(self, task: ScanTask, tracker: ProgressTracker,
                 aggregator: ResultAggregator, progress_every: int = 1000,
                 event_log: Optional[ScanEventLog] = None):
        """Initialize the worker.

        Args:
            task: Volume and compiled pattern to scan
            tracker: Shared progress mapping, entry already registered
            aggregator: Shared result mapping, entry already registered
            progress_every: Number of processed entries between progress writes
            event_log: Structured per-volume event sink
        """
        self.task = task
        self.volume = task.volume
        self.volume_id = task.volume.identifier
        self.tracker = tracker
        self.aggregator = aggregator
        self.progress_every = max(1, progress_every)
        self.event_log = event_log or ScanEventLog()
        self.phase = WorkerPhase.PENDING

        self._root_dev: Optional[int] = None
        self._entries_processed = 0
        self._files_scanned = 0
        self._bytes_seen = 0
        self._match_count = 0
        self._skipped_dirs = 0

    def _set_phase(self, phase: WorkerPhase) -> None:
        logger.debug(f"{self.volume_id}: {self.phase.value} -> {phase.value}")
        self.phase = phase

    def run(self) -> ScanResult:
        """Scan the volume to a terminal state and return its result."""
        self.tracker.mark_running(self.volume_id)
        self.event_log.volume_started(self.volume_id, self.volume.mountpoint)

        try:
            self._set_phase(WorkerPhase.OPENING)
            self._open()
            self._set_phase(WorkerPhase.WALKING)
            self._walk()
        except VolumeUnavailable as e:
            return self._fail(str(e))
        except Exception as e:
            logger.error(f"Unexpected error scanning {self.volume_id}: {e}", exc_info=True)
            return self._fail(f"Unexpected error: {e}")

        progress = self.tracker.complete(
            self.volume_id,
            match_count=self._match_count,
            files_scanned=self._files_scanned,
        )
        self._set_phase(WorkerPhase.COMPLETED)
        self.event_log.volume_completed(
            self.volume_id,
            matches=self._match_count,
            files=self._files_scanned,
            skipped_dirs=self._skipped_dirs,
            elapsed=progress.elapsed,
        )
        return ScanResult(self.volume, self.aggregator.matches(self.volume_id), progress)

    def _fail(self, message: str) -> ScanResult:
        self.aggregator.discard(self.volume_id)
        progress = self.tracker.fail(self.volume_id, message)
        self._set_phase(WorkerPhase.FAILED)
        self.event_log.volume_failed(self.volume_id, message)
        return ScanResult(self.volume, (), progress)

    def _open(self) -> None:
        """Verify the volume root exists and can be listed."""
        root = self.volume.mountpoint
        try:
            root_stat = os.stat(root)
            if not stat.S_ISDIR(root_stat.st_mode):
                raise VolumeUnavailable(self.volume_id, f"{root} is not a directory")
            with os.scandir(root) as it:
                next(it, None)
        except VolumeUnavailable:
            raise
        except OSError as e:
            raise VolumeUnavailable(self.volume_id, e.strerror or str(e)) from e
        self._root_dev = root_stat.st_dev

    def _list_directory(self, directory: str):
        try:
            with os.scandir(directory) as it:
                return sorted(it, key=lambda entry: entry.name)
        except OSError as e:
            raise TraversalError(directory, e.strerror or str(e)) from e

    def _crosses_device(self, entry: os.DirEntry) -> bool:
        try:
            dev = entry.stat(follow_symlinks=False).st_dev
        except OSError:
            return False
        # DirEntry.stat() leaves st_dev at 0 on Windows
        return bool(dev and self._root_dev and dev != self._root_dev)

    def _iter_files(self) -> Iterator[os.DirEntry]:
        """Yield regular files depth-first, directory entries in name order.

        Symlinks are not followed and mount points of other filesystems are
        not entered.
        """
        root = self.volume.mountpoint
        stack = [root]
        while stack:
            directory = stack.pop()
            try:
                entries = self._list_directory(directory)
            except TraversalError as e:
                if directory == root:
                    raise VolumeUnavailable(self.volume_id, e.reason) from e
                self._skipped_dirs += 1
                logger.debug(f"Skipping subtree: {e}")
                continue

            subdirs = []
            for entry in entries:
                self._entries_processed += 1
                is_file = False
                try:
                    if entry.is_dir(follow_symlinks=False):
                        if not self._crosses_device(entry):
                            subdirs.append(entry.path)
                    else:
                        is_file = entry.is_file(follow_symlinks=False)
                except OSError as e:
                    logger.debug(f"Cannot inspect {entry.path}: {e}")

                if is_file:
                    yield entry
                if self._entries_processed % self.progress_every == 0:
                    self._report(entry.path)

            stack.extend(reversed(subdirs))

    def _walk(self) -> None:
        pattern = self.task.pattern
        for entry in self._iter_files():
            self._files_scanned += 1
            try:
                self._bytes_seen += entry.stat(follow_symlinks=False).st_size
            except OSError:
                pass
            # Base name only, never the full path
            if pattern.search(entry.name):
                self.aggregator.append(self.volume_id, os.path.abspath(entry.path))
                self._match_count += 1

    def _estimate_percent(self) -> int:
        used = self.volume.used_bytes
        if used <= 0:
            return 0
        return min(99, int(self._bytes_seen * 100 / used))

    def _report(self, current_path: str) -> ScanProgress:
        return self.tracker.update(
            self.volume_id,
            percent=self._estimate_percent(),
            match_count=self._match_count,
            files_scanned=self._files_scanned,
            current_path=current_path,
        )


def scan_volume(task: ScanTask, tracker: ProgressTracker, aggregator: ResultAggregator,
                progress_every: int = 1000, event_log: Optional[ScanEventLog] = None) -> ScanResult:
    """Run one worker for ``task``. Convenience for backends and tests."""
    return VolumeScanWorker(task, tracker, aggregator, progress_every, event_log).run()
