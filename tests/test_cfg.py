import ast
import textwrap

from jape.check.cfg import build_cfg


def _cfg(source: str):
    func = ast.parse(textwrap.dedent(source)).body[0]
    return build_cfg(func)


def _reachable(cfg) -> set[int]:
    seen = set()
    pending = [cfg.entry]
    while pending:
        block = pending.pop()
        if block.index in seen:
            continue
        seen.add(block.index)
        pending.extend(block.succs)
    return seen


class TestBuildCfg:
    def test_straight_line(self):
        cfg = _cfg("""
            def h(jc):
                a = 1
                jc.encode(a)
        """)
        assert len(cfg.blocks) == 1
        assert len(cfg.entry.nodes) == 2
        assert cfg.entry.succs == []

    def test_if_else_branches_and_joins(self):
        cfg = _cfg("""
            def h(jc):
                if x:
                    a = 1
                else:
                    a = 2
                jc.encode(a)
        """)
        entry = cfg.entry
        assert isinstance(entry.cond, ast.Name)
        then_b, else_b = entry.succs
        assert then_b.succs == else_b.succs
        after = then_b.succs[0]
        assert isinstance(after.nodes[0], ast.Expr)

    def test_return_ends_path(self):
        cfg = _cfg("""
            def h(jc):
                if x:
                    return
                jc.encode(1)
        """)
        then_b, else_b = cfg.entry.succs
        assert isinstance(then_b.nodes[-1], ast.Return)
        assert then_b.succs == []
        assert len(else_b.succs) == 1

    def test_while_loops_back_to_condition(self):
        cfg = _cfg("""
            def h(jc):
                while x:
                    a = 1
                jc.encode(1)
        """)
        head = cfg.entry.succs[0]
        assert head.cond is not None
        body_b = head.succs[0]
        assert head in body_b.succs

    def test_break_leaves_loop(self):
        cfg = _cfg("""
            def h(jc):
                for item in items:
                    if item:
                        break
                jc.encode(1)
        """)
        assert isinstance(cfg.entry.nodes[0], ast.Name)
        assert len(_reachable(cfg)) == len(cfg.blocks)

    def test_try_body_can_reach_handler(self):
        cfg = _cfg("""
            def h(jc):
                try:
                    value = compute()
                except ValueError:
                    jc.error("bad", 400)
                    return
                jc.encode(value)
        """)
        dispatch = cfg.entry.succs[0]
        handler_b = dispatch.succs[0]
        assert isinstance(handler_b.nodes[0], ast.Expr)
        assert isinstance(handler_b.nodes[-1], ast.Return)
        assert len(cfg.entry.succs) == 2

    def test_match_with_wildcard_has_no_fall_through(self):
        cfg = _cfg("""
            def h(jc):
                match kind:
                    case "a":
                        jc.encode(1)
                    case _:
                        jc.encode(2)
        """)
        assert len(cfg.entry.succs) == 2

    def test_match_without_wildcard_falls_through(self):
        cfg = _cfg("""
            def h(jc):
                match kind:
                    case "a":
                        jc.encode(1)
        """)
        assert len(cfg.entry.succs) == 2
        assert cfg.entry.succs[-1] is not cfg.entry.succs[0]

    def test_lambda_body(self):
        func = ast.parse("lambda jc: jc.encode(1)", mode="eval").body
        cfg = build_cfg(func)
        assert len(cfg.blocks) == 1
        assert isinstance(cfg.entry.nodes[0], ast.Call)


class TestFinally:
    def test_return_runs_finally(self):
        cfg = _cfg("""
            def h(jc):
                try:
                    return
                finally:
                    jc.encode(None)
        """)
        ret_b = next(b for b in cfg.blocks if b.nodes and isinstance(b.nodes[-1], ast.Return))
        (final_b,) = ret_b.succs
        assert isinstance(final_b.nodes[0], ast.Expr)
        assert final_b.succs == []

    def test_unhandled_exception_runs_finally(self):
        cfg = _cfg("""
            def h(jc):
                try:
                    compute()
                except ValueError:
                    pass
                finally:
                    jc.encode(None)
                jc.encode(1)
        """)
        dispatch = cfg.entry.succs[0]
        handler_b, escape = dispatch.succs
        assert isinstance(handler_b.nodes[0], ast.Pass)
        assert isinstance(escape.nodes[0], ast.Expr)
        assert escape.succs == []

    def test_break_runs_finally_then_leaves_loop(self):
        cfg = _cfg("""
            def h(jc):
                for item in items:
                    try:
                        break
                    finally:
                        jc.encode(item)
                jc.encode(1)
        """)
        # the finally copy on the break path is the only one with a successor
        (final_b,) = [b for b in cfg.blocks if b.nodes and isinstance(b.nodes[0], ast.Expr) and b.succs]
        (after,) = final_b.succs
        assert isinstance(final_b.nodes[0].value.args[0], ast.Name)
        assert isinstance(after.nodes[0].value.args[0], ast.Constant)
