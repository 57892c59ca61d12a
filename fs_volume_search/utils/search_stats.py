#!/usr/bin/env python3

import logging

from .size_formatter import format_duration, format_size

logger = logging.getLogger(__name__)

class SearchStats:
    """Summary statistics of one search run."""

    def __init__(self, report):
        """Initialize from a finished SearchReport."""
        self.pattern = report.pattern
        self.backend = report.backend or '-'
        self.elapsed = report.elapsed
        self.volumes_found = len(report.volumes)
        self.volumes_skipped = len(report.skipped)
        self.volumes_scanned = len(report.results)
        self.volumes_failed = len(report.failed)
        self.total_files = sum(r.progress.files_scanned for r in report.results)
        self.total_matches = len(report.matches)
        self.bytes_scanned = sum(r.volume.used_bytes for r in report.completed)
        self.errors = [
            f"{r.volume.identifier}: {r.progress.error_message}"
            for r in report.failed
        ]

    def log_summary(self):
        """Log search summary with statistics."""
        processing_rate = self.total_files / self.elapsed if self.elapsed > 0 else 0

        logger.info("=" * 80)
        logger.info("Search Summary:")
        logger.info(f"Pattern:          {self.pattern}")
        logger.info(f"Backend:          {self.backend}")
        logger.info(f"Time Elapsed:     {format_duration(self.elapsed)}")
        logger.info(f"Processing Rate:  {processing_rate:.1f} files/second")
        logger.info(f"Volumes Found:    {self.volumes_found:,}")
        logger.info(f"Volumes Skipped:  {self.volumes_skipped:,}")
        logger.info(f"Volumes Scanned:  {self.volumes_scanned:,}")
        logger.info(f"Volumes Failed:   {self.volumes_failed:,}")
        logger.info(f"Data Covered:     {format_size(self.bytes_scanned)}")
        logger.info(f"Total Files:      {self.total_files:,}")
        logger.info(f"Total Matches:    {self.total_matches:,}")
        logger.info("=" * 80)

        if self.errors:
            logger.info("Errors encountered:")
            for error in self.errors:
                logger.error(error)
