"""
errors.py

Failure kinds surfaced by the Last.fm client, the graph builder and the
exporters. Each kind carries the HTTP status the API layer answers with.
"""

from __future__ import annotations


class NodeMapError(Exception):
    """Base class for every failure the API reports with a specific status."""

    status_code = 500
    title = "Internal Server Error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.title)
        self.message = message or self.title


class InvalidInput(NodeMapError):
    """Raised when a request cannot be turned into an artist name or valid parameters."""

    status_code = 400
    title = "Invalid Input"


class NoRootFound(InvalidInput):
    """Raised when a graph handed to the exporter has no root node."""

    title = "No Root Artist"

    def __init__(self, message: str = "No root artist found in graph data"):
        super().__init__(message)


class InvalidToken(NodeMapError):
    """Raised when a Spotify bearer token is rejected."""

    status_code = 401
    title = "Invalid Token"


class NotFound(NodeMapError):
    status_code = 404
    title = "Artist Not Found"


class RateLimited(NodeMapError):
    """
    Raised when Last.fm throttles us.

    Inside the rate gate this triggers a requeue at the front of the queue;
    callers only see it once the gate gives up on the request.
    """

    status_code = 429
    title = "Rate Limit Exceeded"

    def __init__(self, message: str = "", retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamError(NodeMapError):
    status_code = 500
    title = "Upstream Error"


class UpstreamTimeout(UpstreamError):
    status_code = 504
    title = "Request Timeout"


class InternalError(NodeMapError):
    """Catch-all for failures with no specific kind."""

    status_code = 500
    title = "Internal Server Error"
