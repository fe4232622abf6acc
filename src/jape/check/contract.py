"""The jape call shapes the checker recognizes.

Context and Client operations are closed enums; anything not listed here is
ignored by the extractors.
"""

import ast
from enum import Enum

from jape.check.typeinfo import CLIENT_TYPES, CONTEXT_TYPES, Scope, TypeInfo

HANDLER_TYPES = {"jape.Handler", "jape.server.Handler"}
MUX_FUNCS = {"jape.mux", "jape.server.mux", "jape.Mux", "jape.server.Mux"}

CONTEXT_TYPE = "jape.Context"

SERVER_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")


class ContextOp(str, Enum):
    """Operations on jape.Context that matter to the checker."""

    CUSTOM = "custom"
    DECODE = "decode"
    DECODE_LIMIT = "decode_limit"
    ENCODE = "encode"
    DECODE_FORM = "decode_form"
    DECODE_PARAM = "decode_param"
    PATH_PARAM = "path_param"
    CHECK = "check"
    ERROR = "error"

    @property
    def writes(self) -> bool:
        """Whether the operation can write a response."""
        return self not in (ContextOp.CUSTOM, ContextOp.PATH_PARAM)

    @property
    def returns_error(self) -> bool:
        """True when a non-None result means a response was written.

        For the decode helpers it is the other way round: None means failure.
        """
        return self in (ContextOp.CHECK, ContextOp.ERROR)

    @classmethod
    def lookup(cls, name: str) -> "ContextOp | None":
        try:
            return cls(name)
        except ValueError:
            return None


class ClientOp(str, Enum):
    """Request methods of jape.Client."""

    GET = "get"
    POST = "post"
    PUT = "put"
    DELETE = "delete"
    PATCH = "patch"
    CUSTOM = "custom"

    @property
    def params(self) -> tuple[str, ...]:
        return CLIENT_PARAMS[self]

    @property
    def has_request(self) -> bool:
        return "req" in self.params

    @property
    def has_response(self) -> bool:
        return "resp" in self.params

    @classmethod
    def lookup(cls, name: str) -> "ClientOp | None":
        try:
            return cls(name)
        except ValueError:
            return None


CLIENT_PARAMS = {
    ClientOp.GET: ("route", "resp"),
    ClientOp.POST: ("route", "req", "resp"),
    ClientOp.PUT: ("route", "req"),
    ClientOp.DELETE: ("route",),
    ClientOp.PATCH: ("route", "req", "resp"),
    ClientOp.CUSTOM: ("method", "route", "req", "resp"),
}

# (reads a request, writes a response) per method; unlisted methods are unconstrained
METHOD_SHAPES: dict[str, tuple[bool, bool]] = {
    "GET": (False, True),
    "PUT": (True, False),
    "DELETE": (False, False),
}


def context_op(types: TypeInfo, call: ast.AST, scope: Scope) -> ContextOp | None:
    """The ContextOp ``call`` performs, if it is a call on a jape Context."""
    if not isinstance(call, ast.Call) or not isinstance(call.func, ast.Attribute):
        return None
    op = ContextOp.lookup(call.func.attr)
    if op is None:
        return None
    if not types.is_subclass(types.type_of(call.func.value, scope), CONTEXT_TYPES):
        return None
    return op


def client_op(types: TypeInfo, call: ast.AST, scope: Scope) -> ClientOp | None:
    """The ClientOp ``call`` performs, if it is a call on a jape Client."""
    if not isinstance(call, ast.Call) or not isinstance(call.func, ast.Attribute):
        return None
    op = ClientOp.lookup(call.func.attr)
    if op is None:
        return None
    if not types.is_subclass(types.type_of(call.func.value, scope), CLIENT_TYPES):
        return None
    return op
