"""
Error taxonomy for HAR analysis.

Every operation surface (CLI, tool server) catches HarAnalyzerError and turns
it into text; anything else is treated as an unexpected failure.
"""

from pathlib import Path
from typing import Union


class HarAnalyzerError(Exception):
    """Base class for all reported HAR analyzer failures"""


class FormatError(HarAnalyzerError, ValueError):
    """Capture file is missing, unparsable, or has the wrong shape."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Invalid HAR file {self.path}: {reason}")


class NoSessionError(HarAnalyzerError):
    """An operation other than load was called before a session exists."""

    def __init__(self, message: str = "No session loaded. Use load <file> first."):
        super().__init__(message)


class StaleSessionError(NoSessionError):
    """The persisted session no longer matches its source file on disk."""

    def __init__(self, source_file: str, reason: str = "file changed on disk"):
        self.source_file = source_file
        super().__init__(
            f"Session for {source_file} is stale ({reason}). "
            f"Run load {source_file} again."
        )


class NotFoundError(HarAnalyzerError, LookupError):
    """Entry index or ref id does not resolve."""


class InvalidArgumentError(HarAnalyzerError, ValueError):
    """Malformed ref syntax, unknown analysis type, bad tool arguments."""
