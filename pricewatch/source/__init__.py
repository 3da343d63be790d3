"""Upstream price source — client, parsing, error taxonomy."""

from pricewatch.source.client import (
    PriceSource,
    RakutenPriceSource,
    backoff_delay,
    parse_vacancy,
)
from pricewatch.source.exceptions import (
    PermanentSourceError,
    SourceConnectionError,
    SourceError,
    SourceRateLimitError,
    SourceResponseError,
    SourceTimeoutError,
    TransientSourceError,
)

__all__ = [
    "PermanentSourceError",
    "PriceSource",
    "RakutenPriceSource",
    "SourceConnectionError",
    "SourceError",
    "SourceRateLimitError",
    "SourceResponseError",
    "SourceTimeoutError",
    "TransientSourceError",
    "backoff_delay",
    "parse_vacancy",
]
