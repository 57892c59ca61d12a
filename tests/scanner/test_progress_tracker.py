#!/usr/bin/env python3

import pytest

from fs_volume_search.errors import ProgressStateError
from fs_volume_search.scanner.progress import ProgressTracker, ScanStatus


@pytest.fixture
def tracker():
    tracker = ProgressTracker()
    tracker.register('C:')
    return tracker


def test_register_creates_pending_entry(tracker):
    entry = tracker.get('C:')
    assert entry.status is ScanStatus.PENDING
    assert entry.percent == 0
    assert entry.match_count == 0
    assert entry.end_time is None
    assert len(tracker) == 1


def test_register_twice_is_rejected(tracker):
    with pytest.raises(ProgressStateError):
        tracker.register('C:')


def test_lifecycle_to_completed(tracker):
    tracker.mark_running('C:')
    tracker.update('C:', percent=40, match_count=3, files_scanned=10, current_path='/a')
    entry = tracker.complete('C:', match_count=5, files_scanned=20)

    assert entry.status is ScanStatus.COMPLETED
    assert entry.percent == 100
    assert entry.match_count == 5
    assert entry.start_time is not None
    assert entry.end_time >= entry.start_time


def test_percent_never_decreases(tracker):
    tracker.mark_running('C:')
    tracker.update('C:', percent=60, match_count=0, files_scanned=5, current_path='/x')
    entry = tracker.update('C:', percent=30, match_count=0, files_scanned=6, current_path='/y')
    assert entry.percent == 60
    assert entry.current_path == '/y'


def test_percent_is_clamped(tracker):
    tracker.mark_running('C:')
    assert tracker.update('C:', percent=250, match_count=0, files_scanned=0, current_path='').percent == 100


def test_terminal_entry_is_frozen(tracker):
    tracker.mark_running('C:')
    tracker.fail('C:', 'device not ready')

    with pytest.raises(ProgressStateError):
        tracker.update('C:', percent=50, match_count=1, files_scanned=1, current_path='/a')
    with pytest.raises(ProgressStateError):
        tracker.complete('C:', match_count=0, files_scanned=0)

    entry = tracker.get('C:')
    assert entry.status is ScanStatus.FAILED
    assert entry.error_message == 'device not ready'
    assert entry.match_count == 0


def test_completed_cannot_go_back_to_running(tracker):
    tracker.mark_running('C:')
    tracker.complete('C:', match_count=0, files_scanned=0)
    with pytest.raises(ProgressStateError):
        tracker.mark_running('C:')


def test_pending_cannot_complete_without_running(tracker):
    with pytest.raises(ProgressStateError):
        tracker.complete('C:', match_count=0, files_scanned=0)


def test_pending_entry_can_be_failed(tracker):
    entry = tracker.fail('C:', 'never started')
    assert entry.status is ScanStatus.FAILED
    assert entry.start_time is not None


def test_retrieval_failure_zeroes_completed_matches(tracker):
    tracker.mark_running('C:')
    tracker.complete('C:', match_count=4, files_scanned=9)

    entry = tracker.retrieval_failed('C:', 'handle lost')

    assert entry.status is ScanStatus.COMPLETED
    assert entry.match_count == 0
    assert entry.files_scanned == 9
    assert entry.error_message == 'handle lost'


def test_retrieval_failure_fails_unfinished_entry(tracker):
    tracker.mark_running('C:')
    entry = tracker.retrieval_failed('C:', 'handle lost')
    assert entry.status is ScanStatus.FAILED
    assert entry.match_count == 0


def test_retrieval_failure_keeps_failed_entry(tracker):
    tracker.fail('C:', 'device not ready')
    entry = tracker.retrieval_failed('C:', 'handle lost')
    assert entry.error_message == 'device not ready'


def test_snapshot_is_a_copy(tracker):
    snapshot = tracker.snapshot()
    tracker.register('D:')
    assert list(snapshot) == ['C:']
    assert list(tracker.snapshot()) == ['C:', 'D:']


def test_all_terminal_and_pending_ids(tracker):
    tracker.register('D:')
    assert not tracker.all_terminal()
    assert tracker.pending_ids() == ['C:', 'D:']

    tracker.mark_running('C:')
    tracker.complete('C:', match_count=0, files_scanned=0)
    tracker.fail('D:', 'gone')

    assert tracker.all_terminal()
    assert tracker.pending_ids() == []


def test_unknown_volume_raises():
    with pytest.raises(ProgressStateError):
        ProgressTracker().get('Z:')
