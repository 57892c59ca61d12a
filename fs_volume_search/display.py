#!/usr/bin/env python3

"""Live progress display fed by progress tracker snapshots."""

import sys
import time
import logging
from typing import Dict, List, Optional, Tuple

from rich.console import Console, Group
from rich.live import Live
from rich.table import Table
from rich.text import Text

from .scanner.progress import ScanProgress, ScanStatus

logger = logging.getLogger(__name__)

_STATUS_LABELS = {
    ScanStatus.PENDING: 'waiting',
    ScanStatus.RUNNING: 'scanning',
    ScanStatus.COMPLETED: 'done',
    ScanStatus.FAILED: 'FAILED',
}

_STATUS_STYLES = {
    ScanStatus.PENDING: 'dim',
    ScanStatus.RUNNING: 'cyan',
    ScanStatus.COMPLETED: 'green',
    ScanStatus.FAILED: 'bold red',
}


def render_entry(progress: ScanProgress) -> str:
    """One status line for a volume."""
    line = (
        f"{progress.volume_id:<24} {_STATUS_LABELS[progress.status]:<8} "
        f"{progress.percent:>3}%  {progress.match_count:,} matches  "
        f"{progress.files_scanned:,} files"
    )
    if progress.status is ScanStatus.FAILED and progress.error_message:
        line += f"  ({progress.error_message})"
    return line


def render_summary(snapshot: Dict[str, ScanProgress]) -> str:
    """Single line across all volumes."""
    done = sum(1 for p in snapshot.values() if p.is_terminal)
    failed = sum(1 for p in snapshot.values() if p.status is ScanStatus.FAILED)
    matches = sum(p.match_count for p in snapshot.values())
    files = sum(p.files_scanned for p in snapshot.values())
    return (
        f"Progress: {done}/{len(snapshot)} volumes finished ({failed} failed), "
        f"{files:,} files scanned, {matches:,} matches"
    )


def build_table(snapshot: Dict[str, ScanProgress]) -> Table:
    """One row per volume, in registration order."""
    table = Table(show_header=True, header_style='bold', expand=False)
    table.add_column('Volume', no_wrap=True)
    table.add_column('Status', no_wrap=True)
    table.add_column('Done', justify='right', no_wrap=True)
    table.add_column('Matches', justify='right', no_wrap=True)
    table.add_column('Files', justify='right', no_wrap=True)
    table.add_column('Detail', overflow='fold')
    for progress in snapshot.values():
        if progress.status is ScanStatus.FAILED:
            detail = progress.error_message or ''
        else:
            detail = progress.current_path
        table.add_row(
            progress.volume_id,
            Text(_STATUS_LABELS[progress.status], style=_STATUS_STYLES[progress.status]),
            f"{progress.percent}%",
            f"{progress.match_count:,}",
            f"{progress.files_scanned:,}",
            detail,
        )
    return table


class ProgressDisplay:
    """Renders the latest snapshot on every poll.

    On a terminal a ``rich`` live table is refreshed in place. Otherwise a
    summary line is logged at most every ``log_interval`` seconds.
    """

    def __init__(self, console: Optional[Console] = None, log_interval: float = 5.0):
        self.console = console or Console(stderr=True)
        self.log_interval = log_interval
        self.interactive = self.console.is_terminal
        self._live: Optional[Live] = None
        self._rerouted: List[Tuple[logging.StreamHandler, object]] = []
        self._last_log = 0.0

    def _build(self, snapshot: Dict[str, ScanProgress]) -> Group:
        return Group(build_table(snapshot), Text(render_summary(snapshot)))

    def _start(self, snapshot: Dict[str, ScanProgress]) -> None:
        self._live = Live(
            self._build(snapshot),
            console=self.console,
            auto_refresh=False,
            vertical_overflow='visible',
        )
        self._live.start(refresh=True)
        # Live swaps sys.stderr for a proxy that prints above the table;
        # console log handlers still hold the old stream.
        for handler in logging.getLogger().handlers:
            if type(handler) is logging.StreamHandler and handler.stream is sys.__stderr__:
                self._rerouted.append((handler, handler.setStream(sys.stderr)))

    def _stop(self) -> None:
        for handler, stream in self._rerouted:
            handler.setStream(stream)
        self._rerouted = []
        self._live.stop()
        self._live = None

    def update(self, snapshot: Dict[str, ScanProgress]) -> None:
        if self.interactive:
            if self._live is None:
                self._start(snapshot)
            else:
                self._live.update(self._build(snapshot), refresh=True)
            return
        now = time.time()
        if now - self._last_log >= self.log_interval:
            logger.info(render_summary(snapshot))
            self._last_log = now

    def finish(self, snapshot: Dict[str, ScanProgress]) -> None:
        """Render the final state of every volume."""
        if self.interactive:
            if self._live is None:
                self._start(snapshot)
            else:
                self._live.update(self._build(snapshot), refresh=True)
            self._stop()
            return
        for progress in snapshot.values():
            logger.info(render_entry(progress))
        logger.info(render_summary(snapshot))


class NullProgressDisplay:
    """Display that ignores every snapshot."""

    def update(self, snapshot: Dict[str, ScanProgress]) -> None:
        pass

    def finish(self, snapshot: Dict[str, ScanProgress]) -> None:
        pass
