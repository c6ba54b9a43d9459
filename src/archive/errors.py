"""
Error taxonomy for the archive client.

None of these escape the public operations (`ArchiveClient.get_page`,
`EmbedResolver.resolve_embed`); they are raised internally and degraded to
empty results at those boundaries.
"""
from __future__ import annotations
from typing import Optional


class ArchiveError(Exception):
    """Base class for every failure raised inside the archive package."""


class TransportError(ArchiveError):
    """Network failure, timeout, or a non-2xx status on a plain fetch."""

    def __init__(self, message: str, *, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class FetchCancelled(TransportError):
    """The caller's cancellation signal fired before the fetch finished."""


class ProtocolError(ArchiveError):
    """Session/token expiry or rate limiting signalled on a protocol request."""

    def __init__(self, message: str, *, status: int):
        super().__init__(message)
        self.status = status


class ExtractionError(ArchiveError):
    """A card (or other fragment) did not have the structure we need."""


class DeobfuscationError(ArchiveError, ValueError):
    """Packed payload not found, or no known assignment in the unpacked text."""
