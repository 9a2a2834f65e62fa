"""Object storage layer for bucket-backed file handling."""

__version__ = "0.1.0"
