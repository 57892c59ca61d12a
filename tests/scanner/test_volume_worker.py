#!/usr/bin/env python3

import logging
import os
import re
import pytest

from fs_volume_search.errors import TraversalError
from fs_volume_search.events import ScanEventLog
from fs_volume_search.scanner.progress import ProgressTracker, ScanStatus
from fs_volume_search.scanner.results import ResultAggregator
from fs_volume_search.scanner.volume_worker import ScanTask, VolumeScanWorker, WorkerPhase

PDF_REPORTS = re.compile(r'^report.*\.pdf$', re.IGNORECASE)


class RecordingTracker(ProgressTracker):
    """Tracker keeping every intermediate update."""

    def __init__(self):
        super().__init__()
        self.updates = []

    def update(self, volume_id, **kwargs):
        entry = super().update(volume_id, **kwargs)
        self.updates.append(entry)
        return entry


def make_worker(volume, pattern=PDF_REPORTS, progress_every=1000, tracker=None):
    tracker = tracker if tracker is not None else ProgressTracker()
    aggregator = ResultAggregator()
    tracker.register(volume.identifier)
    aggregator.register(volume.identifier)
    worker = VolumeScanWorker(ScanTask(volume, pattern), tracker, aggregator,
                              progress_every=progress_every, event_log=ScanEventLog())
    return worker, tracker, aggregator


@pytest.fixture
def volume_root(tmp_path, tree_factory):
    return tree_factory(tmp_path / 'vol', [
        'a/report1.pdf',
        'a/notes.txt',
        'b/x.txt',
        'b/deep/report-2023.PDF',
        'report_top.pdf',
        'reports/summary.txt',
    ])


def test_completed_scan_matches_base_names(volume_root, volume_factory):
    worker, tracker, aggregator = make_worker(volume_factory(volume_root))
    result = worker.run()

    assert result.progress.status is ScanStatus.COMPLETED
    assert result.progress.percent == 100
    assert result.progress.match_count == len(result.matches) == 3
    assert result.progress.files_scanned == 6
    assert worker.phase is WorkerPhase.COMPLETED
    assert set(result.matches) == {
        str(volume_root / 'a' / 'report1.pdf'),
        str(volume_root / 'b' / 'deep' / 'report-2023.PDF'),
        str(volume_root / 'report_top.pdf'),
    }
    assert aggregator.matches(result.volume.identifier) == result.matches


def test_pattern_is_not_applied_to_full_path(tmp_path, tree_factory, volume_factory):
    root = tree_factory(tmp_path / 'vol', ['reports/summary.txt', 'data/readme.md'])
    worker, _, _ = make_worker(volume_factory(root), pattern=re.compile('reports'))
    result = worker.run()

    assert result.progress.status is ScanStatus.COMPLETED
    assert result.matches == ()


def test_traversal_order_is_stable(volume_root, volume_factory):
    first = make_worker(volume_factory(volume_root), pattern=re.compile('.'))[0].run()
    second = make_worker(volume_factory(volume_root), pattern=re.compile('.'))[0].run()

    assert first.matches == second.matches
    # Files of a directory come before its subdirectories, names in order
    relative = [os.path.relpath(p, volume_root) for p in first.matches]
    assert relative == [
        'report_top.pdf',
        os.path.join('a', 'notes.txt'),
        os.path.join('a', 'report1.pdf'),
        os.path.join('b', 'x.txt'),
        os.path.join('b', 'deep', 'report-2023.PDF'),
        os.path.join('reports', 'summary.txt'),
    ]


def test_missing_volume_fails_without_traversal(tmp_path, volume_factory):
    volume = volume_factory(tmp_path / 'not-mounted', identifier='D:')
    worker, tracker, aggregator = make_worker(volume)
    result = worker.run()

    assert result.progress.status is ScanStatus.FAILED
    assert result.matches == ()
    assert result.progress.match_count == 0
    assert result.progress.files_scanned == 0
    assert 'D:' in result.progress.error_message
    assert result.progress.end_time is not None
    assert worker.phase is WorkerPhase.FAILED
    assert aggregator.matches('D:') == ()
    assert tracker.get('D:').is_terminal


def test_volume_that_is_a_file_fails(tmp_path, volume_factory):
    not_a_dir = tmp_path / 'image.iso'
    not_a_dir.write_bytes(b'\0' * 16)
    result = make_worker(volume_factory(not_a_dir))[0].run()

    assert result.progress.status is ScanStatus.FAILED
    assert 'not a directory' in result.progress.error_message


def test_unlistable_subtree_is_skipped(volume_root, volume_factory, monkeypatch):
    worker, _, _ = make_worker(volume_factory(volume_root))
    blocked = str(volume_root / 'a')
    original = worker._list_directory

    def list_directory(directory):
        if directory == blocked:
            raise TraversalError(directory, 'Permission denied')
        return original(directory)

    monkeypatch.setattr(worker, '_list_directory', list_directory)
    result = worker.run()

    assert result.progress.status is ScanStatus.COMPLETED
    assert str(volume_root / 'a' / 'report1.pdf') not in result.matches
    assert len(result.matches) == 2
    assert worker._skipped_dirs == 1


@pytest.mark.skipif(hasattr(os, 'geteuid') and os.geteuid() == 0,
                    reason='permissions are not enforced for root')
def test_permission_denied_subtree_is_skipped(volume_root, volume_factory):
    locked = volume_root / 'b'
    os.chmod(locked, 0o000)
    try:
        result = make_worker(volume_factory(volume_root))[0].run()
    finally:
        os.chmod(locked, 0o755)

    assert result.progress.status is ScanStatus.COMPLETED
    assert all(os.sep + 'b' + os.sep not in p for p in result.matches)
    assert str(volume_root / 'a' / 'report1.pdf') in result.matches


def test_root_listing_failure_fails_volume(volume_root, volume_factory, monkeypatch):
    worker, _, _ = make_worker(volume_factory(volume_root))

    def list_directory(directory):
        raise TraversalError(directory, 'I/O error')

    monkeypatch.setattr(worker, '_list_directory', list_directory)
    result = worker.run()

    assert result.progress.status is ScanStatus.FAILED
    assert 'I/O error' in result.progress.error_message


def test_unexpected_error_is_contained(volume_root, volume_factory, monkeypatch):
    worker, _, aggregator = make_worker(volume_factory(volume_root))

    def explode():
        aggregator.append(worker.volume_id, '/partial')
        raise RuntimeError('boom')

    monkeypatch.setattr(worker, '_walk', explode)
    result = worker.run()

    assert result.progress.status is ScanStatus.FAILED
    assert 'boom' in result.progress.error_message
    assert aggregator.matches(worker.volume_id) == ()


def test_progress_is_written_periodically_and_never_decreases(volume_root, volume_factory):
    tracker = RecordingTracker()
    volume = volume_factory(volume_root, total=200, free=0)
    worker, _, _ = make_worker(volume, progress_every=2, tracker=tracker)
    result = worker.run()

    assert tracker.updates, 'expected intermediate progress writes'
    percents = [u.percent for u in tracker.updates]
    assert percents == sorted(percents)
    assert all(p <= 99 for p in percents)
    assert all(u.status is ScanStatus.RUNNING for u in tracker.updates)
    assert result.progress.percent == 100


def test_events_are_logged(volume_root, tmp_path, volume_factory, caplog):
    caplog.set_level(logging.INFO, logger='fs_volume_search.events')
    make_worker(volume_factory(volume_root, identifier='C:'))[0].run()
    make_worker(volume_factory(tmp_path / 'gone', identifier='D:'))[0].run()

    events = [(r.scan_event['event'], r.scan_event['volume'])
              for r in caplog.records if hasattr(r, 'scan_event')]
    assert events == [
        ('volume_start', 'C:'),
        ('volume_completed', 'C:'),
        ('volume_start', 'D:'),
        ('volume_failed', 'D:'),
    ]
