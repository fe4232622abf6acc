"""Entry points of the parity checker.

``analyze`` runs every check over a loaded package: route extraction, the
single-response-write check for each handler, client call extraction and
the client/server parity comparison.
"""

import logging
from pathlib import Path

from jape.check.client import CallExtractor
from jape.check.model import ServerRoute
from jape.check.parity import ParityChecker
from jape.check.report import Diagnostic, Reporter
from jape.check.server import RouteExtractor
from jape.check.source import Package, load_package
from jape.check.typeinfo import TypeInfo
from jape.check.writes import WriteChecker
from jape.config import CheckConfig
from jape.errors import NoClientError

logger = logging.getLogger(__name__)


def extract_routes(package: Package, config: CheckConfig | None = None) -> tuple[dict[str, ServerRoute], list[Diagnostic]]:
    """Extract the server routes alone, keyed by normalized route."""
    config = config or CheckConfig()
    reporter = Reporter()
    server = RouteExtractor(package, TypeInfo(package), reporter, config.server_prefix)
    routes = server.extract()
    return routes, reporter.diagnostics


def analyze(package: Package, config: CheckConfig | None = None) -> list[Diagnostic]:
    """Check client/server parity of ``package``.

    A package without a route table is not a jape API and yields nothing.
    Raises NoClientError when routes exist but no Client call does.
    """
    config = config or CheckConfig()
    types = TypeInfo(package)
    reporter = Reporter()

    server = RouteExtractor(package, types, reporter, config.server_prefix)
    tables = server.find_tables()
    if not tables:
        logger.debug("no route table in %s, nothing to check", package.root)
        return []

    client = CallExtractor(package, types, reporter, config.client_prefix)
    calls = client.extract()
    if not client.found:
        raise NoClientError("no Client definition found")

    routes = server.extract(tables)
    writes = WriteChecker(types, reporter)
    for func, scope in server.handlers:
        writes.check(func, scope)

    ParityChecker(types, reporter).check(routes, calls)
    logger.debug("%d routes, %d client calls, %d diagnostics", len(routes), len(calls), len(reporter))
    return reporter.diagnostics


def check_path(path: Path, config: CheckConfig | None = None) -> list[Diagnostic]:
    """Load the sources below ``path`` and analyze them."""
    config = config or CheckConfig()
    return analyze(load_package(Path(path), config.exclude), config)
