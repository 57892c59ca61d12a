#!/usr/bin/env python3

import logging
import re
import time
from functools import partial
from typing import Any, Dict, List, Optional

from ..config.config import DEFAULT_CONFIG
from ..errors import EmptyPatternError, InvalidPatternError, ResultRetrievalError
from ..events import ScanEventLog
from ..volumes import Volume, VolumeEnumerator, eligible_volumes
from .backends import ExecutionBackend, compute_throttle, select_backend
from .progress import ProgressTracker
from .results import ResultAggregator, ScanResult, SearchReport
from .volume_worker import ScanTask, scan_volume

logger = logging.getLogger(__name__)


def compile_pattern(pattern: Optional[str], ignore_case: bool = True) -> re.Pattern:
    """Compile the user's pattern, rejecting empty input.

    Raises:
        EmptyPatternError: Pattern is None, empty or whitespace-only
        InvalidPatternError: The regular-expression engine rejected it
    """
    if pattern is None or not pattern.strip():
        raise EmptyPatternError()
    flags = re.IGNORECASE if ignore_case else 0
    try:
        return re.compile(pattern, flags)
    except re.error as e:
        raise InvalidPatternError(pattern, str(e)) from e


class VolumeSearch:
    """Searches every eligible volume concurrently and merges the matches."""

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 enumerator: Optional[VolumeEnumerator] = None,
                 backend: Optional[ExecutionBackend] = None,
                 event_log: Optional[ScanEventLog] = None,
                 display=None,
                 logger: Optional[logging.Logger] = None):
        """Initialize the search.

        Args:
            config: Configuration dictionary (``search`` and ``volumes`` sections)
            enumerator: Volume source, anything with an ``enumerate()`` method
            backend: Execution backend; chosen from config when omitted
            event_log: Sink for per-volume start/success/failure records
            display: Progress display with ``update``/``finish``
            logger: Logger for run-level messages
        """
        self.config = config or DEFAULT_CONFIG
        search_config = self.config.get('search', {})
        defaults = DEFAULT_CONFIG['search']
        self.max_concurrent = search_config.get('max_concurrent', defaults['max_concurrent'])
        self.poll_interval = search_config.get('poll_interval_ms', defaults['poll_interval_ms']) / 1000.0
        self.progress_every = search_config.get('progress_every', defaults['progress_every'])
        self.backend_name = search_config.get('backend', defaults['backend'])
        self.ignore_case = search_config.get('ignore_case', defaults['ignore_case'])
        self.include_types = self.config.get('volumes', {}).get(
            'include_types', DEFAULT_CONFIG['volumes']['include_types'])

        self.enumerator = enumerator or VolumeEnumerator()
        self.backend = backend
        self.event_log = event_log or ScanEventLog()
        self.display = display
        self.logger = logger or logging.getLogger(__name__)

        self.tracker = ProgressTracker()
        self.aggregator = ResultAggregator()

    def run(self, pattern: str) -> SearchReport:
        """Scan every eligible volume for files whose base name matches ``pattern``.

        Args:
            pattern: Regular expression matched against file base names

        Returns:
            SearchReport with per-volume results and the merged match list

        Raises:
            EmptyPatternError: Pattern is empty; nothing is enumerated or dispatched
            InvalidPatternError: Pattern is not a valid regular expression
        """
        self.tracker = ProgressTracker()
        self.aggregator = ResultAggregator()
        compiled = compile_pattern(pattern, self.ignore_case)
        start_time = time.time()

        all_volumes = self.enumerator.enumerate()
        volumes = eligible_volumes(all_volumes, self.include_types)
        skipped = [v for v in all_volumes if v not in volumes]
        for volume in skipped:
            self.logger.info(f"Not scanning {volume.identifier} ({volume.type.value})")

        report = SearchReport(pattern=pattern, volumes=all_volumes, skipped=skipped)
        if not volumes:
            self.logger.warning("No volumes to scan")
            report.elapsed = time.time() - start_time
            return report

        for volume in volumes:
            self.tracker.register(volume.identifier)
            self.aggregator.register(volume.identifier)

        throttle = compute_throttle(len(volumes), self.max_concurrent)
        backend = self.backend or select_backend(self.backend_name, throttle)
        report.backend = backend.name
        self.logger.info(
            f"Scanning {len(volumes)} volumes with the {backend.name} backend, "
            f"{throttle} at a time"
        )

        tasks = [ScanTask(volume, compiled) for volume in volumes]
        worker = partial(
            scan_volume,
            tracker=self.tracker,
            aggregator=self.aggregator,
            progress_every=self.progress_every,
            event_log=self.event_log,
        )

        with backend:
            backend.start(tasks, worker)
            self._monitor(backend)
            backend.wait()
            report.results = self._collect(backend, volumes)

        report.matches = self.aggregator.merge(v.identifier for v in volumes)
        report.elapsed = time.time() - start_time
        self._show(final=True)
        self.logger.info(
            f"Search finished in {report.elapsed:.1f}s: {len(report.matches):,} matches, "
            f"{len(report.failed)} of {len(volumes)} volumes failed"
        )
        return report

    def _show(self, final: bool = False) -> None:
        if self.display is None:
            return
        snapshot = self.tracker.snapshot()
        if final:
            self.display.finish(snapshot)
        else:
            self.display.update(snapshot)

    def _monitor(self, backend: ExecutionBackend) -> None:
        """Poll the tracker until every volume is terminal.

        There is no timeout: a worker that never finishes stalls the run.
        """
        while True:
            self._show()
            if self.tracker.all_terminal():
                return
            if backend.all_done():
                # Tasks ended without freezing their entry; nothing else will.
                # The retrieval failure itself is recorded by _collect.
                for volume_id in self.tracker.pending_ids():
                    error = ResultRetrievalError(volume_id, "task ended before reaching a terminal state")
                    self.tracker.fail(volume_id, str(error))
                self._show()
                return
            time.sleep(self.poll_interval)

    def _record_retrieval_failure(self, volume_id: str, reason: str) -> None:
        error = ResultRetrievalError(volume_id, reason)
        self.logger.error(str(error))
        self.event_log.result_retrieval_failed(volume_id, reason)
        self.aggregator.discard(volume_id)
        self.tracker.retrieval_failed(volume_id, str(error))

    def _collect(self, backend: ExecutionBackend, volumes: List[Volume]) -> List[ScanResult]:
        """Pair every volume with its final result, in enumeration order."""
        outcomes = {o.task.volume.identifier: o for o in backend.outcomes()}
        results = []
        for volume in volumes:
            volume_id = volume.identifier
            outcome = outcomes.get(volume_id)
            if outcome is None or not outcome.ok:
                reason = str(outcome.error) if outcome is not None and outcome.error else "no outcome reported"
                self._record_retrieval_failure(volume_id, reason)
            results.append(ScanResult(
                volume=volume,
                matches=self.aggregator.matches(volume_id),
                progress=self.tracker.get(volume_id),
            ))
        return results
