"""Search every mounted volume for files whose name matches a pattern."""

__version__ = "0.1.0"
