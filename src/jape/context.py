"""Request context handed to every handler.

A Context wraps the incoming werkzeug request and collects the single
response the handler produces. Decoding helpers write an error response
themselves when they fail and return ``None``; handlers are expected to
return right after such a failure::

    def show_pet(jc: Context) -> None:
        if (pet_id := jc.decode_param("id", int)) is None:
            return
        jc.encode(store[pet_id])
"""

import logging
from functools import lru_cache
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError
from werkzeug.wrappers import Request, Response

from jape.errors import JapeError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_BODY = 10_000_000  # 10 MB

STATUS_NO_CONTENT = 204
STATUS_BAD_REQUEST = 400
STATUS_TOO_LARGE = 413
STATUS_INTERNAL_ERROR = 500


@lru_cache(maxsize=256)
def adapter_for(tp: Any) -> TypeAdapter:
    """Return a cached pydantic TypeAdapter for ``tp``."""
    return TypeAdapter(tp)


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    return errors[0].get("msg", str(exc))


def _type_name(tp: Any) -> str:
    return getattr(tp, "__name__", repr(tp))


class Context:
    """The values relevant to one HTTP request."""

    def __init__(self, request: Request, path_params: dict[str, str] | None = None):
        self.request = request
        self.path_params = dict(path_params or {})
        self.response: Response | None = None

    def _write(self, response: Response) -> None:
        if self.response is not None:
            logger.warning(
                "superfluous response write for %s %s (status %d ignored)",
                self.request.method, self.request.path, response.status_code,
            )
            return
        self.response = response

    def finish(self) -> Response:
        """Return the response written by the handler, or an empty 200."""
        if self.response is None:
            return Response(status=200)
        return self.response

    def error(self, err: BaseException | str, status: int) -> BaseException:
        """Write ``err`` to the response body with ``status`` and return it."""
        if not isinstance(err, BaseException):
            err = JapeError(err)
        self._write(Response(f"{err}\n", status=status, mimetype="text/plain"))
        return err

    def check(self, msg: str, err: BaseException | None) -> BaseException | None:
        """Conditionally write an error.

        If ``err`` is not None it is prefixed with ``msg``, written with
        status 500 and returned. Otherwise None is returned.
        """
        if err is None:
            return None
        wrapped = JapeError(f"{msg}: {err}")
        wrapped.__cause__ = err
        return self.error(wrapped, STATUS_INTERNAL_ERROR)

    def encode(self, v: Any) -> None:
        """Write ``v`` to the response body.

        None produces 204 No Content, bytes are written as-is and anything
        else is marshalled as indented JSON.
        """
        if v is None:
            self._write(Response(status=STATUS_NO_CONTENT))
            return
        if isinstance(v, (bytes, bytearray)):
            self._write(Response(bytes(v), mimetype="application/octet-stream"))
            return
        body = adapter_for(type(v)).dump_json(v, indent=2) + b"\n"
        self._write(Response(body, mimetype="application/json"))

    def decode_limit(self, typ: type[T], limit: int) -> T | None:
        """Decode the JSON request body as ``typ``, reading at most ``limit`` bytes.

        On failure an error is written (413 when the body is too large, 400
        otherwise) and None is returned.
        """
        length = self.request.content_length
        if length is not None and length > limit:
            self.error(JapeError("request body too large"), STATUS_TOO_LARGE)
            return None
        data = self.request.stream.read(limit + 1)
        if len(data) > limit:
            self.error(JapeError("request body too large"), STATUS_TOO_LARGE)
            return None
        try:
            return adapter_for(typ).validate_json(data)
        except ValidationError as exc:
            self.error(
                JapeError(f"couldn't decode request type ({_type_name(typ)}): {_first_error(exc)}"),
                STATUS_BAD_REQUEST,
            )
            return None

    def decode(self, typ: type[T]) -> T | None:
        """Decode the JSON request body as ``typ`` (limited to 10 MB)."""
        return self.decode_limit(typ, DEFAULT_MAX_BODY)

    def path_param(self, name: str) -> str:
        """Return the raw value of a path parameter, or "" if it is undefined."""
        return self.path_params.get(name, "")

    def decode_param(self, name: str, typ: type[T]) -> T | None:
        """Decode the path parameter ``name`` as ``typ``.

        Any type pydantic can validate from a string is supported (int,
        bool, float, str, UUID, enums, dates, ...). On failure a 400 is
        written and None is returned.
        """
        try:
            return adapter_for(typ).validate_strings(self.path_param(name))
        except ValidationError as exc:
            self.error(
                JapeError(f'couldn\'t parse param "{name}": {_first_error(exc)}'),
                STATUS_BAD_REQUEST,
            )
            return None

    def decode_form(self, key: str, typ: type[T], default: T | None = None) -> T | None:
        """Decode the form (query) value ``key`` as ``typ``.

        An absent or empty value returns ``default`` without writing
        anything. On failure a 400 is written and None is returned.
        """
        value = self.request.values.get(key, "")
        if value == "":
            return default
        try:
            return adapter_for(typ).validate_strings(value)
        except ValidationError as exc:
            self.error(
                JapeError(f'invalid form value "{key}": {_first_error(exc)}'),
                STATUS_BAD_REQUEST,
            )
            return None

    def custom(self, req: Any, resp: Any) -> None:
        """Declare the request and response types of a non-JSON handler.

        This is a no-op at runtime; the parity checker reads it.
        """
