"""HTTP client for jape servers, built on requests.

Request bodies are encoded and response bodies decoded with pydantic, so the
same models the server uses can be passed straight through.
"""

from typing import Any, TypeVar

import requests

from jape.context import STATUS_TOO_LARGE, adapter_for
from jape.errors import ClientError, RequestTooLargeError

T = TypeVar("T")

DEFAULT_TIMEOUT = 30.0


class Client:
    """Provides methods for interacting with a jape API server."""

    def __init__(self, base_url: str, password: str = "", timeout: float = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.password = password
        self.timeout = timeout
        self.session = requests.Session()

    def _req(self, method: str, route: str, data: Any, resp: type[T] | None) -> T | None:
        body = None
        if data is not None:
            body = adapter_for(type(data)).dump_json(data)
        auth = ("", self.password) if self.password else None
        r = self.session.request(
            method,
            f"{self.base_url}{route}",
            data=body,
            headers={"Content-Type": "application/json"},
            auth=auth,
            timeout=self.timeout,
        )
        if not 200 <= r.status_code < 300:
            message = r.text.strip()
            if r.status_code == STATUS_TOO_LARGE:
                raise RequestTooLargeError(message, status=r.status_code)
            raise ClientError(message, status=r.status_code)
        if resp is None:
            return None
        return adapter_for(resp).validate_json(r.content)

    def get(self, route: str, resp: type[T]) -> T:
        """Perform a GET request, decoding the response as ``resp``."""
        return self._req("GET", route, None, resp)

    def post(self, route: str, req: Any, resp: type[T] | None = None) -> T | None:
        """Perform a POST request.

        If ``req`` is not None it is encoded as the request body. If ``resp``
        is not None the response is decoded as it.
        """
        return self._req("POST", route, req, resp)

    def put(self, route: str, req: Any) -> None:
        """Perform a PUT request, encoding ``req`` as the request body."""
        self._req("PUT", route, req, None)

    def delete(self, route: str) -> None:
        """Perform a DELETE request."""
        self._req("DELETE", route, None, None)

    def patch(self, route: str, req: Any, resp: type[T] | None = None) -> T | None:
        """Perform a PATCH request; see :meth:`post`."""
        return self._req("PATCH", route, req, resp)

    def custom(self, method: str, route: str, req: Any, resp: Any) -> None:
        """Declare the request and response types of a non-JSON endpoint.

        This is a no-op; the parity checker reads it.
        """
