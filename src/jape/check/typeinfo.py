"""Static types of expressions in the analyzed source.

The checker only needs a small closed algebra of types: named types
(``int``, ``petstore.models.Pet``, ``jape.Context``), generic containers
(``list[Pet]``), class objects (``type[Pet]``), unions, ``None`` and
"unknown". A class object passed to a decoding helper or a client call is
what the server records for request bodies and parameters and what the
client passes for responses, so the checker compares ``type[T]`` on one
side against ``T`` on the other.
"""

import ast
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field

from jape.check.source import BUILTIN_TYPES, ClassInfo, FunctionNode, ModuleInfo, Package, Symbol, walk_shallow

logger = logging.getLogger(__name__)

NAMED = "named"
GENERIC = "generic"
CLASS = "class"
UNION = "union"
NONE_KIND = "none"
UNKNOWN_KIND = "unknown"


@dataclass(frozen=True, slots=True)
class Type:
    kind: str
    name: str = ""
    args: tuple["Type", ...] = ()

    def __str__(self) -> str:
        if self.kind == NAMED:
            return self.name
        if self.kind == GENERIC:
            return f"{self.name}[{', '.join(str(a) for a in self.args)}]"
        if self.kind == CLASS:
            return f"type[{self.args[0]}]"
        if self.kind == UNION:
            return " | ".join(str(a) for a in self.args)
        if self.kind == NONE_KIND:
            return "None"
        return "<unknown>"

    @property
    def known(self) -> bool:
        return self.kind != UNKNOWN_KIND and all(a.known for a in self.args)


NONE = Type(NONE_KIND)
UNKNOWN = Type(UNKNOWN_KIND)


def named(name: str) -> Type:
    return Type(NAMED, name)


def generic(name: str, *args: Type) -> Type:
    if not args:
        return named(name)
    return Type(GENERIC, name, tuple(args))


def class_of(t: Type) -> Type:
    """The type of the class object ``t`` (``type[t]``)."""
    if t.kind == UNKNOWN_KIND:
        return UNKNOWN
    return Type(CLASS, args=(t,))


def elem(t: Type) -> Type:
    """Instance type of a class-object type; None stays None."""
    if t.kind == CLASS:
        return t.args[0]
    if t.kind == NONE_KIND:
        return NONE
    return UNKNOWN


def ptr_to(t: Type) -> Type:
    """Class-object type of ``t``; None stays None."""
    if t.kind == NONE_KIND:
        return NONE
    return class_of(t)


def union(*members: Type) -> Type:
    flat: list[Type] = []
    for m in members:
        for sub in m.args if m.kind == UNION else (m,):
            if sub not in flat:
                flat.append(sub)
    if any(m.kind == UNKNOWN_KIND for m in flat):
        return UNKNOWN
    if len(flat) == 1:
        return flat[0]
    flat.sort(key=lambda m: (m.kind == NONE_KIND, str(m)))
    return Type(UNION, args=tuple(flat))


TYPING_ALIASES = {
    "typing.List": "list",
    "typing.Dict": "dict",
    "typing.Set": "set",
    "typing.FrozenSet": "frozenset",
    "typing.Tuple": "tuple",
    "typing.Type": "type",
    "builtins.list": "list",
    "builtins.dict": "dict",
}

EXTERNAL_CLASSES = {"datetime.date", "datetime.datetime", "datetime.time", "datetime.timedelta"}

BUILTIN_RESULTS = {"len": "int", "repr": "str", "format": "str", "chr": "str", "ord": "int", "hash": "int"}

STR_METHODS = {
    "format", "join", "lower", "upper", "strip", "lstrip", "rstrip", "replace",
    "removeprefix", "removesuffix", "title", "capitalize", "casefold",
}

MAX_DEPTH = 32

CONTEXT_TYPES = {"jape.Context", "jape.context.Context"}
CLIENT_TYPES = {"jape.Client", "jape.client.Client"}

ERROR_TYPE = named("jape.JapeError")

# where the class a runtime call decodes into is passed: (position, keyword)
DECODED_ARGS = {
    "decode": (0, "typ"),
    "decode_limit": (0, "typ"),
    "decode_param": (1, "typ"),
    "decode_form": (1, "typ"),
    "get": (1, "resp"),
    "post": (2, "resp"),
    "patch": (2, "resp"),
}


def call_arg(call: ast.Call, index: int, name: str) -> ast.expr | None:
    """The argument passed at ``index`` or as keyword ``name``, if any."""
    if index < len(call.args) and not isinstance(call.args[index], ast.Starred):
        return call.args[index]
    for kw in call.keywords:
        if kw.arg == name:
            return kw.value
    return None


@dataclass(eq=False)
class Scope:
    """Name bindings of one function (or module) body."""

    module: ModuleInfo
    parent: "Scope | None" = None
    node: ast.AST | None = None
    cls: ClassInfo | None = None
    params: set[str] = field(default_factory=set)
    types: dict[str, Type] = field(default_factory=dict)
    values: dict[str, list[ast.expr]] = field(default_factory=dict)
    iters: dict[str, list[ast.expr]] = field(default_factory=dict)
    defs: dict[str, ast.AST] = field(default_factory=dict)

    def binds(self, name: str) -> bool:
        return name in self.types or name in self.values or name in self.iters or name in self.defs

    def owner(self, name: str) -> "Scope | None":
        """The innermost scope binding ``name``; None means module level."""
        scope: Scope | None = self
        while scope is not None:
            if scope.node is not None and scope.binds(name):
                return scope
            scope = scope.parent
        return None


def _is_external_class(qualname: str) -> bool:
    return qualname in EXTERNAL_CLASSES or qualname.rsplit(".", 1)[-1][:1].isupper()


class TypeInfo:
    """Type inference over one loaded Package."""

    def __init__(self, package: Package):
        self.package = package
        self._module_scopes: dict[str, Scope] = {}
        self._scopes: dict[tuple, Scope] = {}
        self._active: set[tuple[int, str]] = set()

    # -- scopes ---------------------------------------------------------------

    def module_scope(self, module: ModuleInfo) -> Scope:
        if module.name not in self._module_scopes:
            self._module_scopes[module.name] = Scope(module)
        return self._module_scopes[module.name]

    def scope_for(
        self,
        func: FunctionNode | ast.Lambda,
        module: ModuleInfo,
        parent: Scope | None = None,
        cls: ClassInfo | None = None,
        seed: dict[str, Type] | None = None,
    ) -> Scope:
        """Build (or reuse) the scope of ``func``.

        ``seed`` pins parameter types, e.g. the handler's context parameter.
        """
        if parent is None:
            parent = self.module_scope(module)
        key = (id(func), id(parent), tuple(sorted((seed or {}).items(), key=lambda item: item[0])))
        if key in self._scopes:
            return self._scopes[key]
        scope = Scope(module=module, parent=parent, node=func, cls=cls)
        self._bind_params(scope, func, cls)
        if isinstance(func, ast.Lambda):
            self._bind_body(scope, [func.body])
        else:
            self._bind_body(scope, func.body)
        scope.types.update(seed or {})
        self._scopes[key] = scope
        return scope

    def method_scope(self, method: FunctionNode, cls: ClassInfo) -> Scope:
        return self.scope_for(method, cls.module, cls=cls)

    def function_scopes(self, module: ModuleInfo) -> Iterator[tuple[FunctionNode | None, Scope]]:
        """Yield the module scope, then every function's scope in source order.

        Methods of top-level classes get their class so ``self`` is typed.
        """
        scope = self.module_scope(module)
        yield None, scope
        yield from self._nested_scopes(module.tree.body, scope, top=True)

    def _nested_scopes(
        self, body: list[ast.stmt], scope: Scope, top: bool, cls: ClassInfo | None = None,
    ) -> Iterator[tuple[FunctionNode, Scope]]:
        for node in walk_shallow(body):
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                parent = scope if scope.node is not None else None
                fscope = self.scope_for(node, scope.module, parent=parent, cls=cls)
                yield node, fscope
                yield from self._nested_scopes(node.body, fscope, top=False)
            elif isinstance(node, ast.ClassDef):
                info = scope.module.classes.get(node.name) if top else None
                yield from self._nested_scopes(node.body, scope, top=False, cls=info)

    def _bind_params(self, scope: Scope, func: FunctionNode | ast.Lambda, cls: ClassInfo | None) -> None:
        args = func.args
        positional = args.posonlyargs + args.args
        for i, arg in enumerate(positional + args.kwonlyargs):
            scope.params.add(arg.arg)
            if arg.annotation is not None:
                scope.types[arg.arg] = self.annotation(arg.annotation, scope.module)
            elif i == 0 and cls is not None and not is_static(func):
                self_type = named(cls.qualname)
                scope.types[arg.arg] = class_of(self_type) if _is_classmethod(func) else self_type
            else:
                scope.types[arg.arg] = UNKNOWN
        for default, arg in zip(reversed(args.defaults), reversed(positional)):
            if arg.annotation is None:
                scope.values.setdefault(arg.arg, []).append(default)
                scope.types.pop(arg.arg, None)
        if args.vararg is not None:
            scope.types[args.vararg.arg] = UNKNOWN
        if args.kwarg is not None:
            scope.types[args.kwarg.arg] = UNKNOWN

    def _bind_body(self, scope: Scope, body: list[ast.AST]) -> None:
        for node in walk_shallow(body):
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                scope.defs.setdefault(node.name, node)
            elif isinstance(node, ast.Assign):
                for target in node.targets:
                    self._bind_target(scope, target, node.value)
            elif isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name):
                scope.types[node.target.id] = self.annotation(node.annotation, scope.module)
                if node.value is not None:
                    scope.values.setdefault(node.target.id, []).append(node.value)
            elif isinstance(node, ast.AugAssign) and isinstance(node.target, ast.Name):
                scope.values.setdefault(node.target.id, []).append(
                    ast.BinOp(left=node.target, op=node.op, right=node.value)
                )
            elif isinstance(node, ast.NamedExpr):
                scope.values.setdefault(node.target.id, []).append(node.value)
            elif isinstance(node, (ast.For, ast.AsyncFor)) and isinstance(node.target, ast.Name):
                scope.iters.setdefault(node.target.id, []).append(node.iter)
            elif isinstance(node, (ast.For, ast.AsyncFor)):
                for name in _target_names(node.target):
                    scope.types.setdefault(name, UNKNOWN)
            elif isinstance(node, (ast.With, ast.AsyncWith)):
                for item in node.items:
                    for name in _target_names(item.optional_vars):
                        scope.types.setdefault(name, UNKNOWN)
            elif isinstance(node, ast.ExceptHandler) and node.name:
                scope.types.setdefault(node.name, self.annotation(node.type, scope.module) if node.type else UNKNOWN)
            elif isinstance(node, (ast.Import, ast.ImportFrom)):
                for alias in node.names:
                    scope.types.setdefault((alias.asname or alias.name).split(".")[0], UNKNOWN)

    def _bind_target(self, scope: Scope, target: ast.expr, value: ast.expr) -> None:
        if isinstance(target, ast.Name):
            scope.values.setdefault(target.id, []).append(value)
        elif isinstance(target, (ast.Tuple, ast.List)):
            if isinstance(value, (ast.Tuple, ast.List)) and len(value.elts) == len(target.elts):
                for sub, val in zip(target.elts, value.elts):
                    self._bind_target(scope, sub, val)
            else:
                for name in _target_names(target):
                    scope.types.setdefault(name, UNKNOWN)

    # -- name lookup ----------------------------------------------------------

    def binding(self, name: str, scope: Scope) -> tuple[ast.expr, Scope] | None:
        """The single value ``name`` is bound to, and the scope it lives in.

        Returns None when the name is a parameter, bound more than once, or
        not an assignment at all.
        """
        owner = scope.owner(name)
        if owner is not None:
            values = owner.values.get(name, [])
            if name in owner.params or name in owner.iters or name in owner.defs or len(values) != 1:
                return None
            return values[0], owner
        symbol = self.package.resolve_name(scope.module, name)
        if symbol is None or symbol.kind != "variable" or symbol.module is None:
            return None
        node = symbol.node
        if isinstance(node, (ast.Assign, ast.AnnAssign)) and node.value is not None:
            return node.value, self.module_scope(symbol.module)
        return None

    def symbol_of(self, expr: ast.expr, scope: Scope) -> Symbol | None:
        """Resolve a module-level Name or dotted Attribute chain, if not shadowed locally."""
        if isinstance(expr, ast.Name):
            if scope.owner(expr.id) is not None:
                return None
            return self.package.resolve_name(scope.module, expr.id)
        if isinstance(expr, ast.Attribute):
            base = self.symbol_of(expr.value, scope)
            if base is None or base.kind not in ("module", "class", "external"):
                return None
            return self.package.member(base, expr.attr)
        return None

    def qualname_of(self, expr: ast.expr, scope: Scope) -> str | None:
        symbol = self.symbol_of(expr, scope)
        return symbol.qualname if symbol is not None else None

    # -- annotations ----------------------------------------------------------

    def annotation(self, expr: ast.expr | None, module: ModuleInfo, depth: int = 0) -> Type:
        """Interpret ``expr`` as a type annotation written in ``module``."""
        if expr is None or depth > MAX_DEPTH:
            return UNKNOWN
        if isinstance(expr, ast.Constant):
            if expr.value is None:
                return NONE
            if isinstance(expr.value, str):
                try:
                    parsed = ast.parse(expr.value, mode="eval").body
                except SyntaxError:
                    return UNKNOWN
                return self.annotation(parsed, module, depth + 1)
            return UNKNOWN
        if isinstance(expr, ast.BinOp) and isinstance(expr.op, ast.BitOr):
            return union(self.annotation(expr.left, module, depth + 1), self.annotation(expr.right, module, depth + 1))
        if isinstance(expr, ast.Subscript):
            base = self.annotation(expr.value, module, depth + 1)
            if base.kind != NAMED:
                return UNKNOWN
            items = expr.slice.elts if isinstance(expr.slice, ast.Tuple) else [expr.slice]
            if base.name == "typing.Optional":
                return union(self.annotation(items[0], module, depth + 1), NONE)
            if base.name == "typing.Union":
                return union(*(self.annotation(i, module, depth + 1) for i in items))
            if base.name == "typing.Annotated":
                return self.annotation(items[0], module, depth + 1)
            if base.name == "typing.Literal":
                kinds = {type(i.value).__name__ for i in items if isinstance(i, ast.Constant)}
                return named(kinds.pop()) if len(kinds) == 1 else UNKNOWN
            if base.name == "type":
                return class_of(self.annotation(items[0], module, depth + 1))
            args = []
            for item in items:
                if isinstance(item, ast.Constant) and item.value is Ellipsis:
                    continue
                args.append(self.annotation(item, module, depth + 1))
            return generic(base.name, *args)
        if isinstance(expr, (ast.Name, ast.Attribute)):
            symbol = self.package.resolve_expr(module, expr)
            if symbol is None:
                return UNKNOWN
            return self._symbol_annotation(symbol, depth)
        return UNKNOWN

    def _symbol_annotation(self, symbol: Symbol, depth: int) -> Type:
        if symbol.kind == "class":
            return named(symbol.qualname)
        if symbol.kind == "builtin":
            return named(symbol.qualname) if symbol.qualname in BUILTIN_TYPES else UNKNOWN
        if symbol.kind == "external":
            qualname = TYPING_ALIASES.get(symbol.qualname, symbol.qualname)
            if qualname == "typing.Any":
                return UNKNOWN
            if qualname.startswith("builtins."):
                qualname = qualname[len("builtins."):]
            return named(qualname)
        if symbol.kind == "variable" and symbol.module is not None:
            node = symbol.node
            if isinstance(node, ast.Assign):
                return self.annotation(node.value, symbol.module, depth + 1)
            if isinstance(node, ast.AnnAssign) and node.value is not None:
                return self.annotation(node.value, symbol.module, depth + 1)
        return UNKNOWN

    # -- expressions ----------------------------------------------------------

    def type_of(self, expr: ast.expr | None, scope: Scope) -> Type:
        """Static type of ``expr`` evaluated in ``scope``; UNKNOWN when unresolvable."""
        if expr is None:
            return NONE
        if isinstance(expr, ast.Constant):
            if expr.value is None:
                return NONE
            if expr.value is Ellipsis:
                return UNKNOWN
            return named(type(expr.value).__name__)
        if isinstance(expr, ast.JoinedStr):
            return named("str")
        if isinstance(expr, ast.NamedExpr):
            return self.type_of(expr.value, scope)
        if isinstance(expr, ast.Name):
            return self._name_type(expr.id, scope)
        if isinstance(expr, ast.Attribute):
            return self._attribute_type(expr, scope)
        if isinstance(expr, ast.Call):
            return self._call_type(expr, scope)
        if isinstance(expr, ast.Subscript):
            return self._subscript_type(expr, scope)
        if isinstance(expr, ast.BinOp):
            return self._binop_type(expr, scope)
        if isinstance(expr, ast.UnaryOp):
            if isinstance(expr.op, ast.Not):
                return named("bool")
            return self.type_of(expr.operand, scope)
        if isinstance(expr, ast.Compare):
            return named("bool")
        if isinstance(expr, ast.IfExp):
            return union(self.type_of(expr.body, scope), self.type_of(expr.orelse, scope))
        if isinstance(expr, (ast.List, ast.Set, ast.Tuple)):
            name = {ast.List: "list", ast.Set: "set", ast.Tuple: "tuple"}[type(expr)]
            return self._container_type(name, expr.elts, scope)
        if isinstance(expr, ast.Dict):
            keys = self._uniform([k for k in expr.keys if k is not None], scope)
            values = self._uniform(expr.values, scope)
            if keys is None or values is None:
                return UNKNOWN
            return generic("dict", keys, values)
        return UNKNOWN

    def _uniform(self, exprs: list[ast.expr], scope: Scope) -> Type | None:
        types = {self.type_of(e, scope) for e in exprs}
        if len(types) != 1:
            return None
        return types.pop()

    def _container_type(self, name: str, elts: list[ast.expr], scope: Scope) -> Type:
        if name == "tuple":
            return generic(name, *(self.type_of(e, scope) for e in elts)) if elts else UNKNOWN
        t = self._uniform(elts, scope)
        return generic(name, t) if t is not None else UNKNOWN

    def _name_type(self, name: str, scope: Scope) -> Type:
        owner = scope.owner(name)
        if owner is None:
            symbol = self.package.resolve_name(scope.module, name)
            if symbol is None:
                return UNKNOWN
            return self._symbol_type(symbol)
        if name in owner.types:
            return owner.types[name]
        if name in owner.defs:
            return UNKNOWN
        key = (id(owner), name)
        if key in self._active:
            return UNKNOWN
        self._active.add(key)
        try:
            types = [self.type_of(v, owner) for v in owner.values.get(name, [])]
            types += [self._element_type(self.type_of(i, owner)) for i in owner.iters.get(name, [])]
        finally:
            self._active.discard(key)
        if not types:
            return UNKNOWN
        return union(*types)

    def _symbol_type(self, symbol: Symbol) -> Type:
        """Type of a module-level symbol used as a value."""
        if symbol.kind == "class":
            return class_of(named(symbol.qualname))
        if symbol.kind == "builtin":
            if symbol.qualname in BUILTIN_TYPES:
                return class_of(named(symbol.qualname))
            return UNKNOWN
        if symbol.kind == "external":
            qualname = TYPING_ALIASES.get(symbol.qualname, symbol.qualname)
            if _is_external_class(qualname) or qualname in ("list", "dict", "set", "frozenset", "tuple", "type"):
                return class_of(named(qualname))
            return UNKNOWN
        if symbol.kind == "variable" and symbol.module is not None:
            node = symbol.node
            key = (id(node), symbol.qualname)
            if key in self._active:
                return UNKNOWN
            self._active.add(key)
            try:
                if isinstance(node, ast.AnnAssign):
                    return self.annotation(node.annotation, symbol.module)
                if isinstance(node, ast.Assign):
                    return self.type_of(node.value, self.module_scope(symbol.module))
            finally:
                self._active.discard(key)
        return UNKNOWN

    def _attribute_type(self, expr: ast.Attribute, scope: Scope) -> Type:
        symbol = self.symbol_of(expr, scope)
        if symbol is not None:
            return self._symbol_type(symbol)
        return self.member_type(self.type_of(expr.value, scope), expr.attr)

    def class_info(self, t: Type) -> ClassInfo | None:
        """The indexed class of an instance or class-object type."""
        if t.kind == CLASS:
            t = t.args[0]
        if t.kind != NAMED:
            return None
        return self.package.classes.get(t.name)

    def member_type(self, owner: Type, attr: str) -> Type:
        """Type of ``owner.attr`` for indexed classes."""
        info = self.class_info(owner)
        if info is None:
            return UNKNOWN
        for cls in self.package.mro(info):
            if attr in cls.fields:
                return self.annotation(cls.fields[attr], cls.module)
            if attr in cls.assigned:
                value, method = cls.assigned[attr]
                key = (id(value), attr)
                if key in self._active:
                    return UNKNOWN
                self._active.add(key)
                try:
                    if method is None:
                        return self.type_of(value, self.module_scope(cls.module))
                    return self.type_of(value, self.method_scope(method, cls))
                finally:
                    self._active.discard(key)
        return UNKNOWN

    def _call_type(self, expr: ast.Call, scope: Scope) -> Type:
        func = expr.func
        symbol = self.symbol_of(func, scope)
        if symbol is not None:
            if symbol.kind == "class":
                return named(symbol.qualname)
            if symbol.kind == "builtin":
                if symbol.qualname in BUILTIN_TYPES and symbol.qualname != "type":
                    return named(symbol.qualname)
                return named(BUILTIN_RESULTS[symbol.qualname]) if symbol.qualname in BUILTIN_RESULTS else UNKNOWN
            if symbol.kind == "function" and symbol.module is not None:
                return self.annotation(symbol.node.returns, symbol.module)
            if symbol.kind == "external":
                qualname = TYPING_ALIASES.get(symbol.qualname, symbol.qualname)
                return named(qualname) if _is_external_class(qualname) else UNKNOWN
            return UNKNOWN
        if isinstance(func, ast.Name):
            owner = scope.owner(func.id)
            if owner is not None and isinstance(owner.defs.get(func.id), (ast.FunctionDef, ast.AsyncFunctionDef)):
                return self.annotation(owner.defs[func.id].returns, owner.module)
            if owner is not None and isinstance(owner.defs.get(func.id), ast.ClassDef):
                return UNKNOWN
            callee = self.type_of(func, scope)
            return callee.args[0] if callee.kind == CLASS else UNKNOWN
        if isinstance(func, ast.Attribute):
            receiver = self.type_of(func.value, scope)
            if receiver == named("str") and func.attr in STR_METHODS:
                return named("str")
            info = self.class_info(receiver)
            if info is not None:
                found = self.package.find_method(info, func.attr)
                if found is not None:
                    method, cls = found
                    return self.annotation(method.returns, cls.module)
            if self.is_subclass(receiver, CONTEXT_TYPES):
                return self._context_result(expr, scope)
            if self.is_subclass(receiver, CLIENT_TYPES):
                return self._client_result(expr, scope)
        return UNKNOWN

    def _decoded(self, call: ast.Call, scope: Scope, missing: Type) -> Type:
        index, name = DECODED_ARGS[call.func.attr]
        arg = call_arg(call, index, name)
        if arg is None:
            return missing
        return elem(self.type_of(arg, scope))

    def _context_result(self, call: ast.Call, scope: Scope) -> Type:
        # handlers return as soon as a decode helper yields None, so the
        # value that survives is the decoded instance itself
        attr = call.func.attr
        if attr in ("decode", "decode_limit", "decode_param", "decode_form"):
            return self._decoded(call, scope, UNKNOWN)
        if attr == "path_param":
            return named("str")
        if attr == "error":
            err = self.type_of(call_arg(call, 0, "err"), scope)
            return ERROR_TYPE if err == named("str") else err
        if attr == "check":
            return union(ERROR_TYPE, NONE)
        if attr in ("encode", "custom"):
            return NONE
        return UNKNOWN

    def _client_result(self, call: ast.Call, scope: Scope) -> Type:
        attr = call.func.attr
        if attr in ("get", "post", "patch"):
            # an omitted resp means nothing is decoded
            return self._decoded(call, scope, NONE)
        if attr in ("put", "delete", "custom"):
            return NONE
        return UNKNOWN

    def _subscript_type(self, expr: ast.Subscript, scope: Scope) -> Type:
        base = self.type_of(expr.value, scope)
        if base.kind == CLASS:
            # list[Pet] used as a value is the class object of list[Pet]
            return class_of(self.annotation(expr, scope.module))
        if base.kind == GENERIC:
            if base.name in ("list", "collections.abc.Sequence", "typing.Sequence"):
                return base.args[0]
            if base.name in ("dict", "collections.abc.Mapping", "typing.Mapping"):
                return base.args[-1]
            if base.name == "tuple" and isinstance(expr.slice, ast.Constant) and isinstance(expr.slice.value, int):
                index = expr.slice.value
                if -len(base.args) <= index < len(base.args):
                    return base.args[index]
        if base == named("str"):
            return named("str")
        return UNKNOWN

    def _binop_type(self, expr: ast.BinOp, scope: Scope) -> Type:
        left = self.type_of(expr.left, scope)
        if isinstance(expr.op, ast.BitOr) and left.kind == CLASS:
            return class_of(self.annotation(expr, scope.module))
        if isinstance(expr.op, ast.Mod) and left == named("str"):
            return left
        right = self.type_of(expr.right, scope)
        if left == right and left.kind == NAMED and left.name in ("int", "float", "str", "bytes"):
            if isinstance(expr.op, ast.Div) and left.name == "int":
                return named("float")
            return left
        if {left, right} == {named("int"), named("float")}:
            return named("float")
        if left == right and left.kind == GENERIC and isinstance(expr.op, ast.Add):
            return left
        return UNKNOWN

    def _element_type(self, t: Type) -> Type:
        if t.kind == GENERIC and t.name in ("list", "set", "frozenset", "dict", "collections.abc.Sequence"):
            return t.args[0]
        if t == named("str"):
            return t
        if t == named("range"):
            return named("int")
        return UNKNOWN

    # -- classes --------------------------------------------------------------

    def is_subclass(self, t: Type, qualnames: set[str]) -> bool:
        """Whether instance type ``t`` is one of ``qualnames`` or derives from one."""
        if t.kind != NAMED:
            return False
        if t.name in qualnames:
            return True
        info = self.package.classes.get(t.name)
        if info is None:
            return False
        return any(name in qualnames for name in self.package.base_names(info))


def _target_names(target: ast.AST | None) -> list[str]:
    if target is None:
        return []
    return [n.id for n in ast.walk(target) if isinstance(n, ast.Name)]


def _decorator_names(func: FunctionNode | ast.Lambda) -> set[str]:
    if isinstance(func, ast.Lambda):
        return set()
    return {d.id for d in func.decorator_list if isinstance(d, ast.Name)}


def is_static(func: FunctionNode | ast.Lambda) -> bool:
    return "staticmethod" in _decorator_names(func)


def _is_classmethod(func: FunctionNode | ast.Lambda) -> bool:
    return "classmethod" in _decorator_names(func)
