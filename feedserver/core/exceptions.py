"""Exception hierarchy for feedserver.

Hierarchy::

    FeedServerError
    └── FeedParseError

Transport failures are not raised: the fetcher reports them in its
``FetchResult`` and the scheduler answers them with backoff.
"""

from __future__ import annotations


class FeedServerError(Exception):
    """Base class for all feedserver exceptions."""


class FeedParseError(FeedServerError):
    """Raised when a response body is not a well-formed RSS document."""
