#!/usr/bin/env python3

"""Exceptions raised by the volume search."""


class VolumeSearchError(Exception):
    """Base class for all volume search errors."""


class ConfigurationError(VolumeSearchError):
    """Configuration value is missing or invalid."""


class EmptyPatternError(VolumeSearchError):
    """Search pattern is empty or whitespace-only. Fatal to the run."""

    def __init__(self, message: str = "Search pattern is empty"):
        super().__init__(message)


class InvalidPatternError(VolumeSearchError):
    """Search pattern was rejected by the regular-expression engine."""

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Invalid search pattern {pattern!r}: {reason}")


class VolumeUnavailable(VolumeSearchError):
    """Volume could not be opened (not ready, access denied)."""

    def __init__(self, volume_id: str, reason: str):
        self.volume_id = volume_id
        self.reason = reason
        super().__init__(f"Volume {volume_id} is unavailable: {reason}")


class TraversalError(VolumeSearchError):
    """A subtree of a reachable volume could not be listed."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot list {path}: {reason}")


class ResultRetrievalError(VolumeSearchError):
    """Final output of a worker could not be retrieved."""

    def __init__(self, volume_id: str, reason: str):
        self.volume_id = volume_id
        self.reason = reason
        super().__init__(f"Could not retrieve results for {volume_id}: {reason}")


class ProgressStateError(VolumeSearchError):
    """Illegal progress transition (reverse status, decreasing percent, write after terminal)."""
