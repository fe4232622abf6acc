"""jape: minimal JSON API helpers and a client/server parity checker."""

from jape.client import Client
from jape.context import Context
from jape.errors import (
    ClientError,
    InvalidRouteError,
    JapeError,
    RequestTooLargeError,
)
from jape.server import Handler, Mux, adapt, basic_auth, mux

__all__ = [
    "Client",
    "ClientError",
    "Context",
    "Handler",
    "InvalidRouteError",
    "JapeError",
    "Mux",
    "RequestTooLargeError",
    "adapt",
    "basic_auth",
    "mux",
]
