"""Matches client calls against server routes and reports every mismatch."""

import ast
import logging

from jape.check.model import ClientCall, ServerRoute
from jape.check.report import Position, Reporter
from jape.check.typeinfo import CLASS, NONE, Type, TypeInfo, elem, ptr_to

logger = logging.getLogger(__name__)


class ParityChecker:
    def __init__(self, types: TypeInfo, reporter: Reporter):
        self.types = types
        self.reporter = reporter

    def check(self, routes: dict[str, ServerRoute], calls: list[ClientCall]) -> None:
        """Compare each call with its route, then report routes no call uses."""
        for call in calls:
            self.check_call(routes, call)
        for route in routes.values():
            if not route.seen:
                self.reporter.report(route.position, f"Client missing method for {route}")

    def _same(self, got: Type, want: Type, what: str) -> bool:
        if not got.known or not want.known:
            logger.debug("skipping %s comparison (got %s, want %s)", what, got, want)
            return True
        return got == want

    def _report(self, call: ClientCall, node: ast.AST, message: str) -> None:
        self.reporter.report(Position.of(call.scope.module, node), message)

    def check_call(self, routes: dict[str, ServerRoute], call: ClientCall) -> None:
        route = routes.get(call.key())
        if route is None:
            self.reporter.report(call.position, f"Client references route not defined by server: {call}")
            return
        if route.seen:
            self.reporter.report(call.position, f"Client references {call} multiple times")
            return
        route.seen = True
        type_of = self.types.type_of

        if call.request is not None:
            got = type_of(call.request, call.scope)
            want = elem(route.request)
            if not self._same(got, want, f"request of {route}"):
                self._report(call, call.request, f"Client has wrong request type for {route} (got {got}, should be {want})")

        if call.response is not None:
            got = type_of(call.response, call.scope)
            want = ptr_to(route.response)
            if not self._same(got, want, f"response of {route}"):
                # name the decoded types when a class (or None) was passed
                if got.kind == CLASS or got == NONE:
                    shown_got, shown_want = elem(got), route.response
                else:
                    shown_got, shown_want = got, want
                self._report(
                    call, call.response,
                    f"Client has wrong response type for {route} (got {shown_got}, should be {shown_want})",
                )

        for i, param in enumerate(route.path_params):
            if i >= len(call.path_params):
                self.reporter.report(call.position, f"Client has too few path parameters for {route}")
                continue
            arg = call.path_params[i]
            if param.typ is None:
                logger.debug("path parameter %r of %s is never decoded", param.name, route)
                continue
            got = type_of(arg, call.scope)
            want = elem(param.typ)
            if not self._same(got, want, f"path parameter {param.name!r}"):
                self._report(
                    call, arg,
                    f'Client has wrong type for path parameter "{param.name}" (got {got}, should be {want})',
                )

        for name, arg in call.query_params.items():
            declared = route.query_params.get(name)
            if declared is None:
                self._report(call, arg, f'Client references undefined query parameter "{name}"')
                continue
            got = type_of(arg, call.scope)
            want = elem(declared)
            if not self._same(got, want, f"query parameter {name!r}"):
                self._report(
                    call, arg,
                    f'Client has wrong type for query parameter "{name}" (got {got}, should be {want})',
                )
