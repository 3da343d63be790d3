"""Exception hierarchy for the upstream price source."""

from __future__ import annotations


class SourceError(Exception):
    """Base exception for all price source errors."""


class TransientSourceError(SourceError):
    """A failure worth retrying (timeout, rate limit, network, 5xx)."""


class SourceRateLimitError(TransientSourceError):
    """Upstream answered HTTP 429."""


class SourceTimeoutError(TransientSourceError):
    """Upstream did not answer within the per-call timeout."""


class SourceConnectionError(TransientSourceError):
    """Could not reach the upstream API."""


class SourceResponseError(TransientSourceError):
    """Upstream returned a server error or an unreadable body."""


class PermanentSourceError(SourceError):
    """The request itself is wrong (unknown hotel, bad credentials)."""
