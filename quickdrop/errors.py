"""
Exceptions raised by the content store.
"""


class DropError(Exception):
    """Base class for content store errors."""


class NotFound(DropError):
    """Code unknown or expired, or file unknown to a live item."""


class WriteError(DropError):
    """Storage write failed while persisting an upload."""


class ReadError(DropError):
    """Storage read failed while serving a file."""
