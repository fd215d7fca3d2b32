"""Domain-specific exceptions."""

from __future__ import annotations

import enum


class Book2PdfError(Exception):
    """Base class for all book2pdf errors."""


class DiscoveryError(Book2PdfError):
    """Root page unreachable or no navigation tree could be extracted."""


class InvalidURL(DiscoveryError):
    """URL did not start with http/https or could not be parsed."""


class RenderErrorKind(str, enum.Enum):
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    UNRENDERABLE = "unrenderable"
    # never dispatched because the run was stopped
    CANCELLED = "cancelled"

    @property
    def retryable(self) -> bool:
        return self in (RenderErrorKind.TIMEOUT, RenderErrorKind.TRANSPORT)


class RenderError(Book2PdfError):
    """A single render attempt failed; ``kind`` decides whether to retry."""

    def __init__(self, kind: RenderErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class MergeError(Book2PdfError):
    """No eligible input files, or an input is not a valid PDF."""


class NoPagesRendered(Book2PdfError):
    """Every page of the run failed; there is nothing to merge."""
