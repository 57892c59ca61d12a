#!/usr/bin/env python3

"""Structured, append-only record of per-volume scan events."""

import logging
from typing import Any, Dict, Optional

from .config.logging import EVENT_LOGGER_NAME


class ScanEventLog:
    """Writes one log record per volume start, success and failure.

    Records go through an injected ``logging.Logger`` so the file layout is
    decided by the logging configuration, not by the scanner. Every record
    carries its fields both in the message (``key=value``) and in
    ``record.scan_event``.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(EVENT_LOGGER_NAME)

    def _emit(self, level: int, event: str, **fields: Any) -> None:
        payload: Dict[str, Any] = {'event': event, **fields}
        message = ' '.join(f"{k}={v}" for k, v in payload.items())
        self.logger.log(level, message, extra={'scan_event': payload})

    def volume_started(self, volume_id: str, mountpoint: str) -> None:
        self._emit(logging.INFO, 'volume_start', volume=volume_id, mountpoint=mountpoint)

    def volume_completed(self, volume_id: str, matches: int, files: int,
                         skipped_dirs: int, elapsed: float) -> None:
        self._emit(
            logging.INFO, 'volume_completed',
            volume=volume_id, matches=matches, files=files,
            skipped_dirs=skipped_dirs, elapsed=f"{elapsed:.2f}",
        )

    def volume_failed(self, volume_id: str, error: str) -> None:
        self._emit(logging.ERROR, 'volume_failed', volume=volume_id, error=repr(error))

    def result_retrieval_failed(self, volume_id: str, error: str) -> None:
        self._emit(logging.ERROR, 'result_retrieval_failed', volume=volume_id, error=repr(error))
