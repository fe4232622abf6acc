"""Exception hierarchy shared by the runtime layer and the parity checker."""


class JapeError(Exception):
    """Base class for all jape errors."""


class InvalidRouteError(JapeError, ValueError):
    """A route table key is malformed or names an unsupported method."""


class ClientError(JapeError):
    """The server answered a client request with a non-2xx status."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class RequestTooLargeError(ClientError):
    """The server rejected the request body as too large (HTTP 413)."""


class ConfigError(JapeError):
    """A checker configuration file could not be read or validated."""


class AnalysisError(JapeError):
    """The checker cannot compare client and server at all."""


class NoClientError(AnalysisError):
    """A server route table exists but no client calls were found."""
