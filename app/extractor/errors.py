"""Exception types raised across the extraction engine."""
from __future__ import annotations


class ExtractorError(Exception):
    """Base class for extraction failures."""


class ResolutionError(ExtractorError):
    """Raised when a target or child list cannot be obtained from cache or source."""


class SearchTimeout(ExtractorError):
    """Raised when a search submission does not render results within budget."""


class ArtifactTimeout(ExtractorError):
    """Raised when an artifact download does not complete within budget."""


class PersistenceError(ExtractorError):
    """Raised when a write to the relational store fails."""


class SessionError(ExtractorError):
    """Raised when the external source session cannot be established."""


class RequestNotFoundError(ExtractorError):
    """Raised when a requested extraction request identifier does not exist."""


__all__ = [
    "ExtractorError",
    "ResolutionError",
    "SearchTimeout",
    "ArtifactTimeout",
    "PersistenceError",
    "SessionError",
    "RequestNotFoundError",
]
