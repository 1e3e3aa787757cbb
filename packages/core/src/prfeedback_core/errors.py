"""Exception hierarchy shared by the aggregator, dispatcher and clients.

Fetch-side errors are fatal: the merge needs all sources to be correct.
Write-side errors are caught per reply by the dispatcher.
"""

from __future__ import annotations

_DEFAULT_PAYLOAD_CHARS = 500


class FeedbackError(Exception):
    """Base class for every error raised by prfeedback."""


class RemoteFetchError(FeedbackError):
    """A read from the remote API failed (network, auth, 4xx/5xx)."""

    def __init__(self, source: str, detail: str = ""):
        self.source = source
        self.detail = detail
        message = f"Failed to fetch {source}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class DecodeError(FeedbackError):
    """A remote response was not the structured data we expected."""

    def __init__(self, source: str, payload: str, limit: int = _DEFAULT_PAYLOAD_CHARS):
        self.source = source
        self.payload = truncate_payload(payload, limit)
        super().__init__(f"Could not decode {source} response. Output was: {self.payload}")


class RemoteWriteError(FeedbackError):
    """Posting a reply failed."""


class InputShapeError(FeedbackError):
    """The reply input is not a JSON array of reply objects."""


class AggregationError(FeedbackError):
    """The flat list does not account for every fetched item."""


def truncate_payload(payload, limit: int = _DEFAULT_PAYLOAD_CHARS) -> str:
    text = payload if isinstance(payload, str) else repr(payload)
    if len(text) > limit:
        return text[:limit] + "... [truncated]"
    return text
