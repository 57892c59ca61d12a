#!/usr/bin/env python3

"""Per-volume match lists and the final merge."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from ..volumes import Volume
from .progress import ScanProgress, ScanStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanResult:
    """Final output of one volume's scan."""
    volume: Volume
    matches: Tuple[str, ...]
    progress: ScanProgress


@dataclass
class SearchReport:
    """Everything a run produced, handed to the export collaborators."""
    pattern: str
    volumes: List[Volume] = field(default_factory=list)
    skipped: List[Volume] = field(default_factory=list)
    results: List[ScanResult] = field(default_factory=list)
    matches: List[str] = field(default_factory=list)
    backend: str = ''
    elapsed: float = 0.0

    @property
    def failed(self) -> List[ScanResult]:
        return [r for r in self.results if r.progress.status is ScanStatus.FAILED]

    @property
    def completed(self) -> List[ScanResult]:
        return [r for r in self.results if r.progress.status is ScanStatus.COMPLETED]


class ResultAggregator:
    """Concurrent mapping of volume id to that volume's ordered matches.

    A list is appended to only by its own worker; the orchestrator reads
    everything once, after every volume has reached a terminal state.
    """

    def __init__(self):
        self._matches: Dict[str, List[str]] = {}

    def __len__(self) -> int:
        return len(self._matches)

    def __contains__(self, volume_id: str) -> bool:
        return volume_id in self._matches

    def register(self, volume_id: str) -> None:
        if volume_id in self._matches:
            raise ValueError(f"Results for {volume_id} are already registered")
        self._matches[volume_id] = []

    def append(self, volume_id: str, path: str) -> None:
        self._matches[volume_id].append(path)

    def discard(self, volume_id: str) -> None:
        """Drop whatever a volume produced; it contributes zero matches."""
        if volume_id in self._matches:
            self._matches[volume_id] = []

    def matches(self, volume_id: str) -> Tuple[str, ...]:
        return tuple(self._matches.get(volume_id, ()))

    def merge(self, volume_ids: Iterable[str]) -> List[str]:
        """Concatenate per-volume lists in the given (enumeration) order."""
        merged: List[str] = []
        for volume_id in volume_ids:
            merged.extend(self._matches.get(volume_id, ()))
        logger.debug(f"Merged {len(merged)} matches from {len(self._matches)} volumes")
        return merged
