"""Error taxonomy shared by every engine component."""
from __future__ import annotations


class PorgError(Exception):
    """Base class for engine errors."""


class ValidationError(PorgError):
    """Malformed wallet, mint or signature identifier."""


class NotFoundError(PorgError):
    """Requested token not held, nothing to liquidate, or unknown signature."""


class UpstreamUnavailable(PorgError):
    """A collaborator call failed and no fallback value exists."""

    def __init__(self, message: str, source: str = "") -> None:
        super().__init__(message)
        self.source = source


class PartialDegradation(UserWarning):
    """A fallback or default value was substituted for a failed lookup."""
