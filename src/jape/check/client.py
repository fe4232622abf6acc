"""Client side: calls made through a jape Client."""

import ast
import logging

from jape.check.consteval import ConstFolder, Slot
from jape.check.contract import ClientOp, client_op
from jape.check.model import ClientCall, trim_prefix
from jape.check.report import Position, Reporter
from jape.check.source import Package, walk_shallow
from jape.check.typeinfo import Scope, TypeInfo

logger = logging.getLogger(__name__)


def _none_at(node: ast.AST) -> ast.Constant:
    """A ``None`` literal standing in for an omitted argument."""
    return ast.copy_location(ast.Constant(value=None), node)


def count_slots(path: str) -> tuple[int, int, list[str]]:
    """Count path and form slots of a template; also return the form keys in order."""
    path_part, _, query = path.partition("?")
    n_path = path_part.count("/%")
    keys = []
    for part in query.split("&") if query else []:
        i = part.find("=%")
        if i == -1:
            continue  # hard-coded form value
        keys.append(part[:i])
    return n_path, len(keys), keys


def bind_slots(path: str, slots: tuple[Slot, ...], shift: int = 0) -> tuple[list[ast.expr], dict[str, ast.expr], int]:
    """Bind template slots to path segments and form keys by where they sit.

    ``shift`` is how much was trimmed off the front of the template text.
    Returns the path arguments, the form arguments and the number of opaque
    slots found anywhere else; those stay wildcards without a binding.
    """
    query_at = path.find("?")
    path_args: list[ast.expr] = []
    form_args: dict[str, ast.expr] = {}
    anonymous = 0
    for s in slots:
        at = s.offset - shift
        if at > 0 and (query_at == -1 or at < query_at) and path[at - 1] == "/":
            path_args.append(s.expr)
        elif at > query_at >= 0 and path[at - 1] == "=":
            start = max(path.rfind("&", 0, at), query_at) + 1
            form_args[path[start:at - 1]] = s.expr
        elif not s.formatted:
            anonymous += 1
    return path_args, form_args, anonymous


class CallExtractor:
    """Collects ClientCalls from every function in the package."""

    def __init__(self, package: Package, types: TypeInfo, reporter: Reporter, client_prefix: str = ""):
        self.package = package
        self.types = types
        self.folder = ConstFolder(types)
        self.reporter = reporter
        self.client_prefix = client_prefix
        self.found = 0  # recognized calls, including skipped ones

    def extract(self) -> list[ClientCall]:
        found: list[tuple[tuple, ClientCall]] = []
        for name in sorted(self.package.modules):
            module = self.package.modules[name]
            for func, scope in self.types.function_scopes(module):
                body = module.tree.body if func is None else func.body
                for node in walk_shallow(body):
                    if not isinstance(node, ast.Call):
                        continue
                    op = client_op(self.types, node, scope)
                    if op is None:
                        continue
                    self.found += 1
                    call = self.parse_call(node, op, scope)
                    if call is not None:
                        found.append(((name, node.lineno, node.col_offset), call))
        found.sort(key=lambda item: item[0])
        logger.debug("extracted %d client calls", len(found))
        return [call for _, call in found]

    def parse_call(self, node: ast.Call, op: ClientOp, scope: Scope) -> ClientCall | None:
        args: dict[str, ast.expr | None] = {}
        for i, param in enumerate(op.params):
            args[param] = None
            if i < len(node.args) and not isinstance(node.args[i], ast.Starred):
                args[param] = node.args[i]
        for kw in node.keywords:
            if kw.arg in args:
                args[kw.arg] = kw.value

        route = args["route"]
        if route is None:
            logger.debug("client call at line %d has no route argument", node.lineno)
            return None
        if op is ClientOp.CUSTOM:
            method_arg = args["method"]
            method = self.folder.fold(method_arg, scope).text if method_arg is not None else "%s"
        else:
            method = op.value.upper()

        template = self.folder.fold(route, scope)
        path = trim_prefix(template.text, self.client_prefix)
        n_path, n_form, _ = count_slots(path)
        path_args, form_args, anonymous = bind_slots(path, template.slots, len(template.text) - len(path))
        supplied = len(template.slots) - anonymous
        if n_path + n_form != supplied:
            self.reporter.report(
                Position.of(scope.module, route),
                f"route contains ({n_path} path + {n_form} form) = {n_path + n_form} parameters, "
                f"but {supplied} arguments are supplied",
            )
            return None

        request = response = None
        if op.has_request:
            request = args["req"] if args["req"] is not None else _none_at(node)
        if op.has_response:
            response = args["resp"] if args["resp"] is not None else _none_at(node)
        return ClientCall(
            method=method,
            path=path,
            path_params=path_args,
            query_params=form_args,
            request=request,
            response=response,
            scope=scope,
            position=Position.of(scope.module, node),
        )
