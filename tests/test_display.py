import io
import logging
import sys

from rich.console import Console

from fs_volume_search.display import ProgressDisplay, build_table, render_entry, render_summary
from fs_volume_search.scanner.progress import ScanProgress, ScanStatus


def sample_snapshot():
    return {
        'C:': ScanProgress('C:', ScanStatus.RUNNING, percent=42, match_count=1200, files_scanned=50000),
        'D:': ScanProgress('D:', ScanStatus.FAILED, error_message='device not ready'),
        'E:': ScanProgress('E:', ScanStatus.COMPLETED, percent=100, match_count=3, files_scanned=10),
    }


def test_render_entry():
    snapshot = sample_snapshot()
    assert render_entry(snapshot['C:']).split() == [
        'C:', 'scanning', '42%', '1,200', 'matches', '50,000', 'files',
    ]
    assert render_entry(snapshot['D:']).endswith('(device not ready)')


def test_render_summary():
    assert render_summary(sample_snapshot()) == (
        'Progress: 2/3 volumes finished (1 failed), 50,010 files scanned, 1,203 matches'
    )


def terminal_console():
    return Console(file=io.StringIO(), force_terminal=True, width=160, color_system=None)


def test_build_table_has_one_row_per_volume():
    table = build_table(sample_snapshot())
    assert table.row_count == 3
    assert [c.header for c in table.columns][:3] == ['Volume', 'Status', 'Done']


def test_interactive_display_uses_live_table():
    console = terminal_console()
    display = ProgressDisplay(console=console)
    assert display.interactive

    display.update(sample_snapshot())
    assert display._live is not None
    display.update(sample_snapshot())
    display.finish(sample_snapshot())
    assert display._live is None

    output = console.file.getvalue()
    assert 'device not ready' in output
    assert '50,000' in output
    assert 'Progress: 2/3 volumes finished (1 failed)' in output


def test_console_log_handler_follows_live_display():
    root = logging.getLogger()
    handler = logging.StreamHandler(sys.__stderr__)
    root.addHandler(handler)
    try:
        display = ProgressDisplay(console=terminal_console())
        display.update(sample_snapshot())
        assert handler.stream is not sys.__stderr__
        display.finish(sample_snapshot())
        assert handler.stream is sys.__stderr__
    finally:
        root.removeHandler(handler)


def test_non_interactive_display_logs_at_interval(caplog):
    caplog.set_level(logging.INFO, logger='fs_volume_search.display')
    display = ProgressDisplay(console=Console(file=io.StringIO()), log_interval=3600)
    display.update(sample_snapshot())
    display.update(sample_snapshot())

    summaries = [r.getMessage() for r in caplog.records if r.getMessage().startswith('Progress:')]
    assert len(summaries) == 1

    display.finish(sample_snapshot())
    messages = [r.getMessage() for r in caplog.records]
    assert any(m.startswith('D:') and 'FAILED' in m for m in messages)
