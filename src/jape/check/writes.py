"""Checks that no path through a handler writes two responses.

A handler is expected to bail out right after any helper that wrote an
error::

    if (pet := jc.decode(Pet)) is None:
        return
    if jc.check("couldn't store pet", store.add(pet)) is not None:
        return
    jc.encode(pet)

The walk keeps, per path, the first write seen and the writes whose
result was bound to a name but not tested yet.
"""

import ast
import logging

from jape.check.cfg import Block, build_cfg
from jape.check.contract import ContextOp, context_op
from jape.check.report import Position, Reporter
from jape.check.typeinfo import Scope, TypeInfo

logger = logging.getLogger(__name__)

WEIRD_CONDITION = "weird condition; stick to a single conjunction/disjunction form"

# (first write on the path, frozenset of (name, call) pending writes)
State = tuple[ast.AST | None, frozenset]

_SKIP = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef, ast.Lambda)


def _walk(node: ast.AST):
    """Pre-order walk that does not enter nested functions, lambdas or classes."""
    stack = [node]
    while stack:
        cur = stack.pop()
        if cur is not node and isinstance(cur, _SKIP):
            continue
        yield cur
        stack.extend(reversed(list(ast.iter_child_nodes(cur))))


def _is_none(node: ast.AST) -> bool:
    return isinstance(node, ast.Constant) and node.value is None


def _earliest(nodes) -> ast.AST:
    return min(nodes, key=lambda n: (n.lineno, n.col_offset))


class WriteChecker:
    """Runs the single-response check over one handler."""

    def __init__(self, types: TypeInfo, reporter: Reporter):
        self.types = types
        self.reporter = reporter

    def check(self, func: ast.FunctionDef | ast.AsyncFunctionDef | ast.Lambda, scope: Scope) -> None:
        self.scope = scope
        self.module = scope.module
        cfg = build_cfg(func)
        work: list[tuple[Block, ast.AST | None, frozenset]] = [(cfg.entry, None, frozenset())]
        visited: set[tuple[int, int | None, frozenset]] = set()
        while work:
            block, first, pending = work.pop()
            key = (block.index, id(first) if first is not None else None, pending)
            if key in visited:
                continue
            visited.add(key)
            state: State = (first, pending)
            for node in block.nodes:
                state = self._visit(node, state)
            if block.cond is not None:
                successors = self._branch(block, state)
            else:
                successors = [(succ, state) for succ in block.succs]
            for succ, (f, p) in reversed(successors):
                work.append((succ, f, p))
        logger.debug("checked writes of %s (%d blocks)", getattr(func, "name", "<lambda>"), len(cfg.blocks))

    def _op(self, node: ast.AST) -> ContextOp | None:
        op = context_op(self.types, node, self.scope)
        if op is None or not op.writes:
            return None
        return op

    def _writes(self, node: ast.AST) -> list[ast.Call]:
        return [n for n in _walk(node) if isinstance(n, ast.Call) and self._op(n) is not None]

    def _binding(self, node: ast.AST) -> tuple[str, ast.Call] | None:
        """``x = jc.decode(T)``: a write whose result is tested later."""
        value = None
        target = None
        if isinstance(node, ast.Assign) and len(node.targets) == 1:
            target, value = node.targets[0], node.value
        elif isinstance(node, ast.AnnAssign):
            target, value = node.target, node.value
        elif isinstance(node, ast.Expr) and isinstance(node.value, ast.NamedExpr):
            target, value = node.value.target, node.value.value
        if not isinstance(target, ast.Name) or value is None or self._op(value) is None:
            return None
        return target.id, value

    def _report_multiple(self, call: ast.AST, first: ast.AST | None, pending: frozenset) -> None:
        earlier = [first] if first is not None else []
        earlier += [node for _, node in pending]
        origin = _earliest(earlier)
        self.reporter.report(
            Position.of(self.module, call),
            f"handler writes multiple responses (first write at {Position.of(self.module, origin)})",
        )

    def _visit(self, node: ast.AST, state: State) -> State:
        if isinstance(node, _SKIP):
            return state
        first, pending = state
        binding = self._binding(node)
        for call in self._writes(node):
            if first is not None or pending:
                self._report_multiple(call, first, pending)
            if binding is not None and call is binding[1]:
                pending = pending | {(binding[0], call)}
            elif first is None:
                first = call
        return first, pending

    def _branch(self, block: Block, state: State) -> list[tuple[Block, State]]:
        cond = block.cond
        then_b, else_b = block.succs
        first, pending = state
        pending_names = {name for name, _ in pending}
        writes = self._writes(cond)
        tested = {n.id for n in _walk(cond) if isinstance(n, ast.Name) and n.id in pending_names}
        if not writes and not tested:
            return [(then_b, state), (else_b, state)]

        shape = self._shape(cond, dict(pending))
        if shape is None:
            self.reporter.report(Position.of(self.module, cond), WEIRD_CONDITION)
            return [(then_b, state), (else_b, state)]

        error_side, nodes = shape
        remaining = frozenset(p for p in pending if p[0] not in tested)
        for call in writes:
            if first is not None or remaining:
                self._report_multiple(call, first, remaining)
        error_state: State = (first if first is not None else nodes[0], remaining)
        ok_state: State = (first, remaining)
        if error_side == "then":
            return [(then_b, error_state), (else_b, ok_state)]
        return [(then_b, ok_state), (else_b, error_state)]

    def _shape(self, cond: ast.expr, pending: dict[str, ast.AST]) -> tuple[str, list[ast.AST]] | None:
        """Classify ``cond`` as an error test; None when the shape is not understood.

        A pure disjunction of failure tests takes the then-branch on error; a
        pure conjunction of success tests takes the else-branch.
        """
        if isinstance(cond, ast.BoolOp):
            operands = cond.values
            mode = "or" if isinstance(cond.op, ast.Or) else "and"
        else:
            operands = [cond]
            mode = None
        tests = [self._test(operand, pending) for operand in operands]
        if any(t is None for t in tests):
            return None
        kinds = {kind for kind, _ in tests}
        if len(kinds) != 1:
            return None
        kind = kinds.pop()
        if (mode == "or" and kind != "failure") or (mode == "and" and kind != "success"):
            return None
        return ("then" if kind == "failure" else "else"), [node for _, node in tests]

    def _test(self, expr: ast.expr, pending: dict[str, ast.AST]) -> tuple[str, ast.AST] | None:
        """Classify one operand as a ("failure" | "success", write) test."""
        if isinstance(expr, ast.Compare):
            if len(expr.ops) != 1:
                return None
            left, right = expr.left, expr.comparators[0]
            if _is_none(right):
                subject = left
            elif _is_none(left):
                subject = right
            else:
                return None
            if isinstance(expr.ops[0], (ast.Is, ast.Eq)):
                is_none = True
            elif isinstance(expr.ops[0], (ast.IsNot, ast.NotEq)):
                is_none = False
            else:
                return None
        elif isinstance(expr, ast.UnaryOp) and isinstance(expr.op, ast.Not):
            subject, is_none = expr.operand, True
        else:
            subject, is_none = expr, False

        if isinstance(subject, ast.NamedExpr):
            subject = subject.value
        if isinstance(subject, ast.Call):
            node = subject
        elif isinstance(subject, ast.Name) and subject.id in pending:
            node = pending[subject.id]
        else:
            return None
        op = self._op(node)
        if op is None:
            return None
        failure = not is_none if op.returns_error else is_none
        return ("failure" if failure else "success"), node
