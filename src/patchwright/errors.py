"""Exception hierarchy for patch conversion and application."""

from __future__ import annotations

from typing import Any, Mapping


class PatchError(RuntimeError):
    """Raised when a patch fails validation or conversion."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class UnsafePathError(PatchError):
    """Raised when a target path escapes the configured root."""


class ContextNotFoundError(PatchError):
    """Raised when a hunk's anchor lines do not occur in the target file."""


class AmbiguousMatchError(PatchError):
    """Raised when a hunk's anchor lines occur more than once in the target file."""


class PatchFormatError(PatchError):
    """Raised when patch text cannot be turned into a usable diff."""


class ConfigError(PatchError):
    """Raised when the configuration file cannot be interpreted."""


__all__ = [
    "AmbiguousMatchError",
    "ConfigError",
    "ContextNotFoundError",
    "PatchError",
    "PatchFormatError",
    "UnsafePathError",
]
