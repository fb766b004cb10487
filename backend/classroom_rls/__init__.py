"""Row-level-security access layer for classroom data."""

__version__ = "0.1.0"
