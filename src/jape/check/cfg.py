"""Control-flow graphs of handler bodies.

Blocks hold the statements (or bare expressions) executed in sequence. A
block ending in a two-way branch keeps the branch condition in ``cond``
with ``succs == [then, else]``; other blocks fan out to every successor
unconditionally.
"""

import ast
from dataclasses import dataclass, field


@dataclass(eq=False)
class Block:
    index: int
    nodes: list[ast.AST] = field(default_factory=list)
    succs: list["Block"] = field(default_factory=list)
    cond: ast.expr | None = None

    def __repr__(self) -> str:
        kind = "cond" if self.cond is not None else "plain"
        return f"<Block {self.index} {kind} nodes={len(self.nodes)} succs={[s.index for s in self.succs]}>"


@dataclass
class CFG:
    blocks: list[Block]

    @property
    def entry(self) -> Block:
        return self.blocks[0]


class _Builder:
    def __init__(self):
        self.blocks: list[Block] = []
        self.loops: list[tuple[Block, Block, int]] = []  # (continue target, break target, finals depth)
        self.handlers: list[Block] = []  # innermost exception target last
        # finally bodies an early exit must run: (body, loops depth, handlers depth)
        self.finals: list[tuple[list[ast.stmt], int, int]] = []

    def new_block(self) -> Block:
        block = Block(index=len(self.blocks))
        self.blocks.append(block)
        return block

    def stmts(self, body: list[ast.stmt], cur: Block | None) -> Block | None:
        """Append ``body`` to ``cur``; return the fall-through block or None."""
        for stmt in body:
            if cur is None:
                # unreachable code still gets a block so it is not lost
                cur = self.new_block()
            cur = self.stmt(stmt, cur)
        return cur

    def join(self, ends: list[Block | None]) -> Block | None:
        live = [end for end in ends if end is not None]
        if not live:
            return None
        after = self.new_block()
        for end in live:
            end.succs.append(after)
        return after

    def stmt(self, s: ast.stmt, cur: Block) -> Block | None:
        if isinstance(s, ast.If):
            cur.cond = s.test
            then_b, else_b = self.new_block(), self.new_block()
            cur.succs = [then_b, else_b]
            return self.join([self.stmts(s.body, then_b), self.stmts(s.orelse, else_b)])

        if isinstance(s, ast.While):
            head = self.new_block()
            cur.succs.append(head)
            head.cond = s.test
            body_b, else_b, after = self.new_block(), self.new_block(), self.new_block()
            head.succs = [body_b, else_b]
            self.loops.append((head, after, len(self.finals)))
            end = self.stmts(s.body, body_b)
            self.loops.pop()
            if end is not None:
                end.succs.append(head)
            end = self.stmts(s.orelse, else_b)
            if end is not None:
                end.succs.append(after)
            return after

        if isinstance(s, (ast.For, ast.AsyncFor)):
            cur.nodes.append(s.iter)
            head = self.new_block()
            cur.succs.append(head)
            body_b, else_b, after = self.new_block(), self.new_block(), self.new_block()
            head.succs = [body_b, else_b]
            self.loops.append((head, after, len(self.finals)))
            end = self.stmts(s.body, body_b)
            self.loops.pop()
            if end is not None:
                end.succs.append(head)
            end = self.stmts(s.orelse, else_b)
            if end is not None:
                end.succs.append(after)
            return after

        if isinstance(s, (ast.Break, ast.Continue)):
            if self.loops:
                cont, brk, depth = self.loops[-1]
                end = self.unwind(cur, depth)
                if end is not None:
                    end.succs.append(brk if isinstance(s, ast.Break) else cont)
            return None

        if isinstance(s, ast.Return):
            cur.nodes.append(s)
            self.unwind(cur, 0)
            return None

        if isinstance(s, ast.Raise):
            cur.nodes.append(s)
            if self.handlers:
                cur.succs.append(self.handlers[-1])
            return None

        if isinstance(s, (ast.Try, getattr(ast, "TryStar", ast.Try))):
            return self.try_stmt(s, cur)

        if isinstance(s, (ast.With, ast.AsyncWith)):
            cur.nodes.extend(item.context_expr for item in s.items)
            return self.stmts(s.body, cur)

        if isinstance(s, ast.Match):
            cur.nodes.append(s.subject)
            ends: list[Block | None] = []
            for case in s.cases:
                case_b = self.new_block()
                cur.succs.append(case_b)
                if case.guard is not None:
                    case_b.nodes.append(case.guard)
                ends.append(self.stmts(case.body, case_b))
            last = s.cases[-1] if s.cases else None
            irrefutable = (
                last is not None
                and last.guard is None
                and isinstance(last.pattern, ast.MatchAs)
                and last.pattern.pattern is None
            )
            if not irrefutable:
                ends.append(cur)
            return self.join(ends)

        cur.nodes.append(s)
        return cur

    def unwind(self, cur: Block, depth: int) -> Block | None:
        """Chain copies of the finally bodies entered since ``depth`` after ``cur``.

        Returns the block the exit continues from, or None when a finally
        body itself never completes.
        """
        saved = (self.finals, self.loops, self.handlers)
        for i in range(len(saved[0]) - 1, depth - 1, -1):
            body, loops, handlers = saved[0][i]
            self.finals, self.loops, self.handlers = saved[0][:i], saved[1][:loops], saved[2][:handlers]
            start = self.new_block()
            cur.succs.append(start)
            cur = self.stmts(body, start)
            if cur is None:
                break
        self.finals, self.loops, self.handlers = saved
        return cur

    def try_stmt(self, s: ast.Try, cur: Block) -> Block | None:
        escape = None
        if s.finalbody:
            # exceptions leaving the statement run the finally body first
            escape = self.new_block()
            end = self.stmts(s.finalbody, escape)
            if end is not None and self.handlers:
                end.succs.append(self.handlers[-1])
            self.finals.append((s.finalbody, len(self.loops), len(self.handlers)))

        dispatch = self.new_block()
        self.handlers.append(dispatch)
        for stmt in s.body:
            if cur is None:
                cur = self.new_block()
            # any statement of the body may raise before it completes
            cur.succs.append(dispatch)
            split = self.new_block()
            cur.succs.append(split)
            cur = self.stmt(stmt, split)
        self.handlers.pop()

        if escape is not None:
            self.handlers.append(escape)
        ends = [self.stmts(s.orelse, cur) if cur is not None else None]
        for handler in s.handlers:
            handler_b = self.new_block()
            dispatch.succs.append(handler_b)
            ends.append(self.stmts(handler.body, handler_b))
        if escape is not None:
            self.handlers.pop()
            self.finals.pop()
            dispatch.succs.append(escape)
        elif self.handlers:
            # exceptions no handler matches propagate outwards
            dispatch.succs.append(self.handlers[-1])

        after = self.join(ends)
        if not s.finalbody or after is None:
            return after
        return self.stmts(s.finalbody, after)


def build_cfg(func: ast.FunctionDef | ast.AsyncFunctionDef | ast.Lambda) -> CFG:
    """Build the control-flow graph of a function or lambda body."""
    builder = _Builder()
    entry = builder.new_block()
    if isinstance(func, ast.Lambda):
        entry.nodes.append(func.body)
    else:
        builder.stmts(func.body, entry)
    return CFG(builder.blocks)
