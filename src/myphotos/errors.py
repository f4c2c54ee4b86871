from __future__ import annotations

from typing import Optional


class MyPhotosError(RuntimeError):
    """Base error type."""


class ConfigError(MyPhotosError):
    """Config contract violation or unusable scan root."""


class TransportError(MyPhotosError):
    """Remote listing could not be obtained (ssh failure, timeout, stderr)."""

    def __init__(self, message: str, *, stderr: str = "") -> None:
        self.stderr = stderr
        if stderr:
            message = f"{message}\nStderr: {stderr}"
        super().__init__(message)


class TraversalError(MyPhotosError):
    """A single entry of a local walk could not be read."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class ParseError(MyPhotosError):
    """A single line of remote listing output was malformed."""

    def __init__(self, lineno: int, line: str, reason: str) -> None:
        self.lineno = lineno
        self.line = line
        self.reason = reason
        super().__init__(f"line {lineno}: {reason}: {line!r}")


class StorageError(MyPhotosError):
    """Inventory store read/write problem."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        super().__init__(message)
