"""Route models shared by the server and client extractors.

Both sides are reduced to these models and joined on their normalized key,
``"METHOD /path/%s"``, where every parameter segment is the wildcard.
"""

import ast
from typing import Any

from pydantic import BaseModel, ConfigDict, InstanceOf

from jape.check.report import Position
from jape.check.typeinfo import NONE, Type

WILDCARD = "%s"


def trim_prefix(path: str, prefix: str) -> str:
    if prefix and path.startswith(prefix):
        return path[len(prefix):]
    return path


def normalize_server_path(path: str) -> str:
    """Replace ``:name`` and ``*name`` segments with the wildcard."""
    segments = path.split("/")
    for i, segment in enumerate(segments):
        if segment.startswith((":", "*")):
            segments[i] = WILDCARD
    return "/".join(segments)


def normalize_client_path(path: str) -> str:
    """Drop the query string and replace ``%`` placeholder segments with the wildcard."""
    path = path.split("?", 1)[0]
    segments = path.split("/")
    for i, segment in enumerate(segments):
        if segment.startswith("%") and len(segment) > 1:
            segments[i] = WILDCARD
    return "/".join(segments)


def route_key(method: str, path: str) -> str:
    return f"{method} {path}"


class ServerParam(BaseModel):
    """A path parameter; ``typ`` stays None until the handler uses it."""

    name: str
    typ: InstanceOf[Type] | None = None


class ServerRoute(BaseModel):
    """A route as declared by the server's route table and handler."""

    method: str  # GET / POST / PUT / DELETE / PATCH
    path: str  # /pets/:id, server prefix trimmed
    path_params: list[ServerParam] = []
    query_params: dict[str, InstanceOf[Type]] = {}
    request: InstanceOf[Type] = NONE
    response: InstanceOf[Type] = NONE
    seen: bool = False
    position: Position
    frozen_fields: set[str] = set()  # fields whose extraction stopped after a conflict

    def param(self, name: str) -> ServerParam | None:
        for p in self.path_params:
            if p.name == name:
                return p
        return None

    def key(self) -> str:
        return route_key(self.method, normalize_server_path(self.path))

    def __str__(self) -> str:
        return f"{self.method} {self.path}"


class ClientCall(BaseModel):
    """A call site through a jape Client."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    method: str
    path: str  # folded template, client prefix trimmed
    path_params: list[ast.expr] = []
    query_params: dict[str, ast.expr] = {}
    request: ast.expr | None = None
    response: ast.expr | None = None
    scope: Any = None
    position: Position

    def key(self) -> str:
        return route_key(self.method, normalize_client_path(self.path))

    def __str__(self) -> str:
        return f"{self.method} {self.path}"
