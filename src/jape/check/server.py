"""Server side: route tables and the handlers behind them.

A route table is a dict literal mapping ``"METHOD /path"`` keys to
handlers. It is recognized when it is passed to ``jape.mux``, annotated as
``dict[str, Handler]`` or returned from a function annotated that way.
Each handler body is read for the Context calls that declare what the
route consumes and produces.
"""

import ast
import logging
from collections.abc import Iterator
from dataclasses import dataclass

from jape.check.consteval import ConstFolder
from jape.check.contract import CONTEXT_TYPE, HANDLER_TYPES, METHOD_SHAPES, MUX_FUNCS, SERVER_METHODS, ContextOp, context_op
from jape.check.model import ServerParam, ServerRoute, trim_prefix
from jape.check.report import Position, Reporter
from jape.check.source import ClassInfo, FunctionNode, ModuleInfo, Package, walk_shallow
from jape.check.typeinfo import CLASS, GENERIC, NONE, Scope, Type, TypeInfo, call_arg, class_of, elem, is_static, named

logger = logging.getLogger(__name__)

MAX_RESOLVE_DEPTH = 8


@dataclass
class RouteTable:
    node: ast.Dict
    scope: Scope


@dataclass
class HandlerRef:
    """A resolved handler definition."""

    func: FunctionNode | ast.Lambda
    module: ModuleInfo
    parent: Scope | None = None
    cls: ClassInfo | None = None
    bound: bool = False  # accessed through an instance, so the first parameter is self


def _merge(prev: Type | None, typ: Type) -> Type:
    # an unknown type never replaces a known one
    return typ if prev is None or typ.known else prev


class _Conflict(Exception):
    """A handler declared something twice, differently."""


class RouteExtractor:
    """Finds route tables and turns each entry into a ServerRoute."""

    def __init__(self, package: Package, types: TypeInfo, reporter: Reporter, server_prefix: str = ""):
        self.package = package
        self.types = types
        self.folder = ConstFolder(types)
        self.reporter = reporter
        self.server_prefix = server_prefix
        self.routes: dict[str, ServerRoute] = {}
        self.handlers: list[tuple[FunctionNode | ast.Lambda, Scope]] = []

    # -- discovery --------------------------------------------------------------

    def find_tables(self) -> list[RouteTable]:
        tables: dict[int, RouteTable] = {}
        for name in sorted(self.package.modules):
            module = self.package.modules[name]
            for table in self._module_tables(module):
                tables.setdefault(id(table.node), table)
        return list(tables.values())

    def _module_tables(self, module: ModuleInfo) -> Iterator[RouteTable]:
        for func, scope in self.types.function_scopes(module):
            if func is None:
                yield from self._tables_in(module.tree.body, scope)
                continue
            yield from self._tables_in(func.body, scope)
            if self._is_table_type(func.returns, module):
                for node in walk_shallow(func.body):
                    if isinstance(node, ast.Return) and isinstance(node.value, ast.Dict):
                        yield RouteTable(node.value, scope)

    def _tables_in(self, body: list[ast.stmt], scope: Scope) -> Iterator[RouteTable]:
        for node in walk_shallow(body):
            if isinstance(node, ast.Call) and self.types.qualname_of(node.func, scope) in MUX_FUNCS:
                arg = call_arg(node, 0, "routes")
                table = self._as_table(arg, scope)
                if table is not None:
                    yield table
            elif isinstance(node, ast.AnnAssign) and isinstance(node.value, ast.Dict):
                if self._is_table_type(node.annotation, scope.module):
                    yield RouteTable(node.value, scope)

    def _as_table(self, expr: ast.expr | None, scope: Scope) -> RouteTable | None:
        if isinstance(expr, ast.Dict):
            return RouteTable(expr, scope)
        if isinstance(expr, ast.Name):
            bound = self.types.binding(expr.id, scope)
            if bound is not None and isinstance(bound[0], ast.Dict):
                return RouteTable(bound[0], bound[1])
        return None

    def _is_table_type(self, annotation: ast.expr | None, module: ModuleInfo) -> bool:
        if annotation is None:
            return False
        t = self.types.annotation(annotation, module)
        return (
            t.kind == GENERIC
            and t.name in ("dict", "typing.Mapping", "collections.abc.Mapping")
            and len(t.args) == 2
            and t.args[0] == named("str")
            and t.args[1].name in HANDLER_TYPES
        )

    # -- handler resolution -------------------------------------------------------

    def resolve_handler(self, expr: ast.expr, scope: Scope, depth: int = 0) -> HandlerRef | None:
        """Follow ``expr`` to the function or lambda that implements it."""
        if depth > MAX_RESOLVE_DEPTH:
            return None
        if isinstance(expr, ast.Lambda):
            return HandlerRef(expr, scope.module, scope if scope.node is not None else None)
        if isinstance(expr, ast.Name):
            owner = scope.owner(expr.id)
            if owner is not None:
                node = owner.defs.get(expr.id)
                if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                    return HandlerRef(node, owner.module, owner)
                bound = self.types.binding(expr.id, scope)
                if bound is not None:
                    return self.resolve_handler(bound[0], bound[1], depth + 1)
                return None
        if isinstance(expr, ast.Call):
            return self._resolve_factory(expr, scope, depth)
        symbol = self.types.symbol_of(expr, scope) if isinstance(expr, (ast.Name, ast.Attribute)) else None
        if symbol is not None:
            if symbol.kind == "function" and symbol.module is not None:
                return HandlerRef(symbol.node, symbol.module)
            if symbol.kind == "variable" and symbol.module is not None:
                node = symbol.node
                if isinstance(node, (ast.Assign, ast.AnnAssign)) and node.value is not None:
                    return self.resolve_handler(node.value, self.types.module_scope(symbol.module), depth + 1)
            return None
        if isinstance(expr, ast.Attribute):
            receiver = self.types.type_of(expr.value, scope)
            info = self.types.class_info(receiver)
            if info is None:
                return None
            found = self.package.find_method(info, expr.attr)
            if found is None:
                return None
            method, cls = found
            return HandlerRef(method, cls.module, cls=cls, bound=receiver.kind != CLASS)
        return None

    def _resolve_factory(self, call: ast.Call, scope: Scope, depth: int) -> HandlerRef | None:
        factory = self.resolve_handler(call.func, scope, depth + 1)
        if factory is None or isinstance(factory.func, ast.Lambda):
            return None
        fscope = self.types.scope_for(factory.func, factory.module, parent=factory.parent, cls=factory.cls)
        for node in walk_shallow(factory.func.body):
            if isinstance(node, ast.Return) and node.value is not None:
                ref = self.resolve_handler(node.value, fscope, depth + 1)
                if ref is not None:
                    return ref
        return None

    def handler_scope(self, ref: HandlerRef) -> Scope:
        """Scope of the handler body with its context parameter typed as jape.Context."""
        args = ref.func.args
        params = args.posonlyargs + args.args
        skip = 1 if ref.bound and not is_static(ref.func) else 0
        seed: dict[str, Type] = {}
        if len(params) > skip:
            seed[params[skip].arg] = named(CONTEXT_TYPE)
        return self.types.scope_for(ref.func, ref.module, parent=ref.parent, cls=ref.cls, seed=seed)

    # -- extraction ---------------------------------------------------------------

    def extract(self, tables: list[RouteTable] | None = None) -> dict[str, ServerRoute]:
        if tables is None:
            tables = self.find_tables()
        seen_handlers: set[int] = set()
        for table in tables:
            for key, value in zip(table.node.keys, table.node.values):
                if key is None:
                    continue
                route = self.parse_route(key, value, table.scope, seen_handlers)
                if route is None:
                    continue
                normalized = route.key()
                if normalized in self.routes:
                    self.reporter.report(route.position, f"Server defines route {route} multiple times")
                    continue
                self.routes[normalized] = route
        logger.debug("extracted %d server routes from %d tables", len(self.routes), len(tables))
        return self.routes

    def parse_route(
        self, key: ast.expr, value: ast.expr, scope: Scope, seen_handlers: set[int] | None = None,
    ) -> ServerRoute | None:
        module = scope.module
        position = Position.of(module, key)
        text = self.folder.fold(key, scope).text
        fields = text.split()
        if len(fields) != 2:
            self.reporter.report(position, f'Server defines invalid route: "{text}"')
            return None
        method, path = fields
        if method not in SERVER_METHODS:
            self.reporter.report(position, f'Server defines route with unhandled method "{method}"')
            return None
        path = trim_prefix(path, self.server_prefix)
        route = ServerRoute(
            method=method,
            path=path,
            path_params=[ServerParam(name=seg[1:]) for seg in path.split("/") if seg.startswith((":", "*"))],
            position=position,
        )

        ref = self.resolve_handler(value, scope)
        if ref is None:
            self.reporter.report(Position.of(module, value), "could not locate handler definition")
            return None
        hscope = self.handler_scope(ref)
        if seen_handlers is not None and id(ref.func) not in seen_handlers:
            seen_handlers.add(id(ref.func))
            self.handlers.append((ref.func, hscope))
        return _HandlerReader(self, route, ref, hscope).read()


class _HandlerReader:
    """Reads one handler body into its ServerRoute."""

    def __init__(self, extractor: RouteExtractor, route: ServerRoute, ref: HandlerRef, scope: Scope):
        self.types = extractor.types
        self.folder = extractor.folder
        self.reporter = extractor.reporter
        self.route = route
        self.ref = ref
        self.scope = scope
        self.module = scope.module
        self.request: Type | None = None
        self.response: Type | None = None
        self.excluded = False

    def report(self, node: ast.AST, message: str) -> None:
        self.reporter.report(Position.of(self.module, node), message)

    def read(self) -> ServerRoute | None:
        func = self.ref.func
        body = [func.body] if isinstance(func, ast.Lambda) else func.body
        for node in walk_shallow(body):
            if not isinstance(node, ast.Call):
                continue
            op = context_op(self.types, node, self.scope)
            if op is None:
                continue
            try:
                self.dispatch(op, node)
            except _Conflict:
                continue
            if self.excluded:
                return None

        route = self.route
        route.request = self.request if self.request is not None else NONE
        route.response = self.response if self.response is not None else NONE
        method = route.method
        if method == "GET" and route.response == NONE:
            self.report(func, f"{method} routes should write a response object")
            return None
        if method == "PUT" and route.request == NONE:
            self.report(func, f"{method} routes should read a request object")
            return None
        return route

    def dispatch(self, op: ContextOp, call: ast.Call) -> None:
        if op is ContextOp.CUSTOM:
            self.custom(call)
        elif op in (ContextOp.DECODE, ContextOp.DECODE_LIMIT):
            self.decode(call)
        elif op is ContextOp.ENCODE:
            self.encode(call)
        elif op is ContextOp.DECODE_FORM:
            self.decode_form(call)
        elif op is ContextOp.DECODE_PARAM:
            self.decode_param(call)
        elif op is ContextOp.PATH_PARAM:
            self.path_param(call)
        # check and error declare nothing

    def same(self, got: Type, prev: Type) -> bool:
        if not got.known or not prev.known:
            logger.debug("skipping comparison of %s and %s in %s", got, prev, self.route)
            return True
        return got == prev

    def frozen(self, field: str) -> bool:
        return field in self.route.frozen_fields

    def conflict(self, node: ast.AST, field: str, message: str) -> None:
        self.report(node, message)
        self.route.frozen_fields.add(field)
        raise _Conflict(message)

    def shape_violation(self, node: ast.AST, reads: bool | None = None, writes: bool | None = None) -> bool:
        """Report a method-shape violation; True when the route is excluded."""
        shape = METHOD_SHAPES.get(self.route.method)
        if shape is None:
            return False
        method = self.route.method
        may_read, must_write = shape
        if reads is not None and reads != may_read and (reads or method == "PUT"):
            verb = "should read" if may_read else "should not read"
            self.report(node, f"{method} routes {verb} a request object")
            self.excluded = True
        elif writes is not None and writes != must_write and (writes or method == "GET"):
            verb = "should write" if must_write else "should not write"
            self.report(node, f"{method} routes {verb} a response object")
            self.excluded = True
        return self.excluded

    def custom(self, call: ast.Call) -> None:
        req = call_arg(call, 0, "req")
        resp = call_arg(call, 1, "resp")
        req_t = self.types.type_of(req, self.scope)
        resp_t = self.types.type_of(resp, self.scope)
        if resp_t.kind == CLASS:
            resp_t = elem(resp_t)
        if req_t != NONE and req_t.known and req_t.kind != CLASS:
            self.conflict(req if req is not None else call, "request", "request type must be a class")
        if self.shape_violation(req if req is not None else call, reads=req_t != NONE):
            return
        if self.shape_violation(resp if resp is not None else call, writes=resp_t != NONE):
            return
        self.request = req_t
        self.response = resp_t

    def decode(self, call: ast.Call) -> None:
        if self.shape_violation(call, reads=True) or self.frozen("request"):
            return
        arg = call_arg(call, 0, "typ")
        typ = self.types.type_of(arg, self.scope)
        node = arg if arg is not None else call
        if typ.known and typ.kind != CLASS:
            self.conflict(node, "request", f"{call.func.attr} called on non-type value")
        if self.request is not None and not self.same(typ, self.request):
            self.conflict(node, "request", f"decode called on {typ}, but was previously called on {self.request}")
        self.request = _merge(self.request, typ)

    def encode(self, call: ast.Call) -> None:
        if self.shape_violation(call, writes=True) or self.frozen("response"):
            return
        arg = call_arg(call, 0, "v")
        typ = self.types.type_of(arg, self.scope)
        if self.response is not None and not self.same(typ, self.response):
            self.conflict(
                arg if arg is not None else call, "response",
                f"encode called on {typ}, but was previously called on {self.response}",
            )
        self.response = _merge(self.response, typ)

    def _name(self, expr: ast.expr | None) -> str:
        if expr is None:
            return ""
        return self.folder.fold(expr, self.scope).text

    def decode_form(self, call: ast.Call) -> None:
        name = self._name(call_arg(call, 0, "key"))
        if self.frozen(f"query:{name}"):
            return
        typ = self.types.type_of(call_arg(call, 1, "typ"), self.scope)
        prev = self.route.query_params.get(name)
        if prev is not None and not self.same(typ, prev):
            self.conflict(
                call, f"query:{name}",
                f'form value "{name}" decoded as {typ}, but was previously decoded as {prev}',
            )
        self.route.query_params[name] = _merge(prev, typ)

    def _param(self, call: ast.Call, op: str, name_arg: ast.expr | None) -> ServerParam | None:
        name = self._name(name_arg)
        param = self.route.param(name)
        if param is None:
            self.report(
                name_arg if name_arg is not None else call,
                f'{op} called on param ("{name}") not present in route definition',
            )
        return param

    def decode_param(self, call: ast.Call) -> None:
        name_arg = call_arg(call, 0, "name")
        param = self._param(call, "decode_param", name_arg)
        if param is None or self.frozen(f"param:{param.name}"):
            return
        arg = call_arg(call, 1, "typ")
        node = arg if arg is not None else call
        typ = self.types.type_of(arg, self.scope)
        if param.typ is not None and not self.same(typ, param.typ):
            self.conflict(
                node, f"param:{param.name}",
                f'param "{param.name}" decoded as {typ}, but was previously decoded as {param.typ}',
            )
        if typ.known and typ.kind != CLASS:
            self.conflict(node, f"param:{param.name}", "decode_param called on non-type value")
        param.typ = _merge(param.typ, typ)

    def path_param(self, call: ast.Call) -> None:
        param = self._param(call, "path_param", call_arg(call, 0, "name"))
        if param is None or self.frozen(f"param:{param.name}"):
            return
        typ = class_of(named("str"))
        if param.typ is not None and not self.same(typ, param.typ):
            self.conflict(
                call, f"param:{param.name}",
                f'param "{param.name}" decoded as {typ}, but was previously decoded as {param.typ}',
            )
        param.typ = _merge(param.typ, typ)
