"""
Error types raised while reading and converting a scene.

Every error is fatal for the conversion in progress: there is no partial
result, callers either get the whole converted scene or an exception.
"""
from __future__ import annotations

from typing import Optional


class MqError(Exception):
    """Base class for all conversion errors."""


class FormatError(MqError):
    """The input text does not follow the scene file grammar."""

    def __init__(
        self,
        message: str,
        line_number: Optional[int] = None,
        token: Optional[str] = None,
    ) -> None:
        self.line_number = line_number
        self.token = token
        details = []
        if line_number is not None:
            details.append(f"line {line_number}")
        if token is not None:
            details.append(f"token '{token}'")
        if details:
            message = f"{message} ({', '.join(details)})"
        super().__init__(message)


class LicenseRestrictionError(MqError):
    """The file was saved by a trial build of the modeler and cannot be converted."""

    def __init__(self, line_number: Optional[int] = None) -> None:
        self.line_number = line_number
        super().__init__(
            f"File was saved by a restricted trial version (TrialNoise chunk at line {line_number})."
        )


class ConsistencyError(MqError):
    """An internal mesh invariant is broken. Indicates a bug, not bad input."""


class ResourceError(MqError):
    """The input file cannot be opened or read."""
