"""Best-effort folding of route strings into ``%s`` templates.

Only a closed set of shapes is understood: string constants, ``+``
concatenation, f-strings, ``%`` formatting, ``str.format`` and names bound
once to one of those. Anything else becomes a single ``%s`` slot that
carries the expression it stands for, so its type can still be checked.
"""

import ast
import re
import string
from dataclasses import dataclass, replace

from jape.check.typeinfo import Scope, TypeInfo

WILDCARD = "%s"
MAX_DEPTH = 8

_PERCENT_SPEC = re.compile(r"%(?:\([^)]*\))?[-#0 +]*(?:\*|\d+)?(?:\.(?:\*|\d+))?[diouxXeEfFgGcrsa%]")


@dataclass(frozen=True)
class Slot:
    """One ``%s`` of a template: where it sits and what fills it."""

    offset: int
    expr: ast.expr
    formatted: bool = False  # placed by an f-string, % or str.format


@dataclass(frozen=True)
class Template:
    """A route string with ``%s`` slots and the expressions filling them."""

    text: str
    slots: tuple[Slot, ...] = ()

    def __add__(self, other: "Template") -> "Template":
        shift = len(self.text)
        moved = tuple(replace(s, offset=s.offset + shift) for s in other.slots)
        return Template(self.text + other.text, self.slots + moved)

    @property
    def args(self) -> tuple[ast.expr, ...]:
        return tuple(s.expr for s in self.slots)

    @property
    def constant(self) -> bool:
        return not self.slots


def slot(expr: ast.expr, formatted: bool = False) -> Template:
    return Template(WILDCARD, (Slot(0, expr, formatted),))


class ConstFolder:
    def __init__(self, types: TypeInfo):
        self.types = types

    def fold(self, expr: ast.expr, scope: Scope, depth: int = 0) -> Template:
        if depth > MAX_DEPTH:
            return slot(expr)
        if isinstance(expr, ast.Constant):
            if isinstance(expr.value, str):
                return Template(expr.value)
            if isinstance(expr.value, (int, float)) and not isinstance(expr.value, bool):
                return Template(str(expr.value))
            return slot(expr)
        if isinstance(expr, ast.JoinedStr):
            return self._fold_fstring(expr, scope, depth)
        if isinstance(expr, ast.BinOp) and isinstance(expr.op, ast.Add):
            return self.fold(expr.left, scope, depth + 1) + self.fold(expr.right, scope, depth + 1)
        if isinstance(expr, ast.BinOp) and isinstance(expr.op, ast.Mod):
            fmt = self.fold(expr.left, scope, depth + 1)
            if not fmt.constant:
                return slot(expr)
            values = expr.right.elts if isinstance(expr.right, ast.Tuple) else [expr.right]
            return self._fold_percent(fmt.text, values, scope, depth)
        if isinstance(expr, ast.Call) and isinstance(expr.func, ast.Attribute) and expr.func.attr == "format":
            fmt = self.fold(expr.func.value, scope, depth + 1)
            if not fmt.constant:
                return slot(expr)
            return self._fold_format(expr, fmt.text, scope, depth)
        if isinstance(expr, ast.Name):
            bound = self.types.binding(expr.id, scope)
            if bound is None:
                return slot(expr)
            value, owner = bound
            folded = self.fold(value, owner, depth + 1)
            # a slot that is just the bound value reads better as the name itself
            if folded.args == (value,):
                return Template(folded.text, (replace(folded.slots[0], expr=expr),))
            return folded
        if isinstance(expr, ast.Attribute):
            symbol = self.types.symbol_of(expr, scope)
            if symbol is not None and symbol.kind == "variable" and symbol.module is not None:
                node = symbol.node
                if isinstance(node, (ast.Assign, ast.AnnAssign)) and node.value is not None:
                    folded = self.fold(node.value, self.types.module_scope(symbol.module), depth + 1)
                    if folded.constant:
                        return folded
        return slot(expr)

    def _inline(self, expr: ast.expr, scope: Scope, depth: int) -> Template:
        """Fold ``expr`` if it is a constant, else make it one slot."""
        folded = self.fold(expr, scope, depth + 1)
        if folded.constant:
            return folded
        return slot(expr, formatted=True)

    def _fold_fstring(self, expr: ast.JoinedStr, scope: Scope, depth: int) -> Template:
        result = Template("")
        for part in expr.values:
            if isinstance(part, ast.Constant):
                result += Template(str(part.value))
            elif isinstance(part, ast.FormattedValue):
                if part.format_spec is not None or part.conversion not in (-1, ord("s")):
                    result += slot(part.value, formatted=True)
                else:
                    result += self._inline(part.value, scope, depth)
        return result

    def _fold_percent(self, fmt: str, values: list[ast.expr], scope: Scope, depth: int) -> Template:
        result = Template("")
        remaining = list(values)
        pos = 0
        for match in _PERCENT_SPEC.finditer(fmt):
            result += Template(fmt[pos:match.start()])
            pos = match.end()
            if match.group() == "%%":
                result += Template("%")
            elif remaining:
                result += self._inline(remaining.pop(0), scope, depth)
            else:
                result += Template(WILDCARD)
        result += Template(fmt[pos:])
        for extra in remaining:
            result += Template("", (Slot(0, extra, formatted=True),))
        return result

    def _fold_format(self, call: ast.Call, fmt: str, scope: Scope, depth: int) -> Template:
        keywords = {kw.arg: kw.value for kw in call.keywords if kw.arg is not None}
        result = Template("")
        auto = 0
        try:
            fields = list(string.Formatter().parse(fmt))
        except ValueError:
            return slot(call)
        for literal, field_name, spec, conversion in fields:
            result += Template(literal)
            if field_name is None:
                continue
            if field_name == "":
                field_name = str(auto)
                auto += 1
            if not field_name.isidentifier() and not field_name.isdigit():
                result += slot(call, formatted=True)
                continue
            if field_name.isdigit():
                index = int(field_name)
                value = call.args[index] if index < len(call.args) else None
            else:
                value = keywords.get(field_name)
            if value is None or isinstance(value, ast.Starred):
                result += slot(call, formatted=True)
            elif spec or conversion not in (None, "s"):
                result += slot(value, formatted=True)
            else:
                result += self._inline(value, scope, depth)
        return result
