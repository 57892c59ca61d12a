"""Scanner module for multi-volume file search."""

from .backends import FanOutBackend, PoolBackend, select_backend
from .orchestrator import VolumeSearch, compile_pattern
from .progress import ProgressTracker, ScanProgress, ScanStatus
from .results import ResultAggregator, ScanResult, SearchReport
from .volume_worker import ScanTask, VolumeScanWorker

__all__ = [
    'FanOutBackend', 'PoolBackend', 'select_backend',
    'VolumeSearch', 'compile_pattern',
    'ProgressTracker', 'ScanProgress', 'ScanStatus',
    'ResultAggregator', 'ScanResult', 'SearchReport',
    'ScanTask', 'VolumeScanWorker',
]
