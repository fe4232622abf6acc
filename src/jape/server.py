"""Routing and middleware for jape handlers.

Routes are declared as a mapping from ``"METHOD /path"`` to handler::

    app = mux({
        "GET /pets": list_pets,
        "GET /pets/:id": show_pet,
        "POST /pets": create_pet,
    })

``:name`` matches a single path segment and ``*name`` the rest of the path.
The result is a WSGI application.
"""

import hmac
import logging
from collections.abc import Callable, Iterable

from werkzeug.exceptions import HTTPException, InternalServerError
from werkzeug.routing import Map, Rule
from werkzeug.wrappers import Request, Response

from jape.context import Context
from jape.errors import InvalidRouteError

logger = logging.getLogger(__name__)

Handler = Callable[[Context], None]
WSGIApp = Callable[[dict, Callable], Iterable[bytes]]
Middleware = Callable[[WSGIApp], WSGIApp]

METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")

PATH_PARAMS_KEY = "jape.path_params"


def split_route(route: str) -> tuple[str, str]:
    """Split a ``"METHOD /path"`` key into its method and path."""
    fields = route.split()
    if len(fields) != 2:
        raise InvalidRouteError(f"invalid route {route!r}")
    method, path = fields
    if method not in METHODS:
        raise InvalidRouteError(f"unhandled method {method!r}")
    return method, path


def rule_path(path: str) -> str:
    """Translate ``/pets/:id/*rest`` into werkzeug's ``/pets/<id>/<path:rest>``."""
    segments = []
    for segment in path.split("/"):
        if segment.startswith(":"):
            segment = f"<{segment[1:]}>"
        elif segment.startswith("*"):
            segment = f"<path:{segment[1:]}>"
        segments.append(segment)
    return "/".join(segments)


class Mux:
    """WSGI application dispatching requests to jape handlers."""

    def __init__(self, routes: dict[str, Handler]):
        self.handlers: dict[str, Handler] = {}
        rules = []
        for route, handler in routes.items():
            method, path = split_route(route)
            self.handlers[route] = handler
            rules.append(Rule(rule_path(path), methods=[method], endpoint=route))
        self.url_map = Map(rules)

    def __call__(self, environ: dict, start_response: Callable) -> Iterable[bytes]:
        adapter = self.url_map.bind_to_environ(environ)
        try:
            route, params = adapter.match()
        except HTTPException as exc:
            return exc(environ, start_response)

        jc = Context(Request(environ), params)
        try:
            self.handlers[route](jc)
        except Exception:
            logger.exception("handler for %s failed", route)
            return InternalServerError()(environ, start_response)
        return jc.finish()(environ, start_response)


def mux(routes: dict[str, Handler]) -> Mux:
    """Return a WSGI application serving ``routes``.

    Keys must contain the method and path separated by whitespace, e.g.
    ``"GET /foo/:bar"``; anything else raises InvalidRouteError.
    """
    return Mux(routes)


def adapt(middleware: Middleware) -> Callable[[Handler], Handler]:
    """Turn WSGI middleware into a handler transformer.

    This lets standard middleware wrap individual routes::

        mux({"GET /admin": adapt(basic_auth("hunter2"))(admin)})
    """
    def transform(h: Handler) -> Handler:
        def inner(environ: dict, start_response: Callable) -> Iterable[bytes]:
            jc = Context(Request(environ), environ.get(PATH_PARAMS_KEY))
            h(jc)
            return jc.finish()(environ, start_response)

        wrapped = middleware(inner)

        def handler(jc: Context) -> None:
            environ = jc.request.environ
            environ[PATH_PARAMS_KEY] = jc.path_params
            jc.response = Response.from_app(wrapped, environ, buffered=True)

        return handler

    return transform


def basic_auth(password: str) -> Middleware:
    """Return WSGI middleware enforcing HTTP Basic Authentication.

    Only the password is checked; clients send an empty username.
    """
    def middleware(app: WSGIApp) -> WSGIApp:
        def wrapped(environ: dict, start_response: Callable) -> Iterable[bytes]:
            auth = Request(environ).authorization
            if (
                auth is None
                or auth.type != "basic"
                or not hmac.compare_digest((auth.password or "").encode(), password.encode())
            ):
                response = Response("Unauthorized\n", status=401, mimetype="text/plain")
                return response(environ, start_response)
            return app(environ, start_response)

        return wrapped

    return middleware
