"""CLI entry point for jape."""

import json
import logging
from pathlib import Path

import click

from jape.check.analyzer import analyze, extract_routes
from jape.check.model import ServerRoute
from jape.check.source import Package, load_package
from jape.check.typeinfo import elem
from jape.config import CheckConfig, load_config
from jape.errors import ConfigError, NoClientError

EXIT_DIAGNOSTICS = 3


def _load_config(path: Path, config_path: Path | None, cprefix: str | None, sprefix: str | None) -> CheckConfig:
    """Load the config file and apply command-line overrides."""
    try:
        config = load_config(config_path, search_dir=path)
    except ConfigError as e:
        raise click.ClickException(str(e))
    overrides = {}
    if cprefix is not None:
        overrides["client_prefix"] = cprefix
    if sprefix is not None:
        overrides["server_prefix"] = sprefix
    return config.model_copy(update=overrides)


def _load_package(path: Path, config: CheckConfig) -> Package:
    package = load_package(path, config.exclude)
    for file, error in package.errors.items():
        click.echo(f"warning: skipping {file}: {error}", err=True)
    return package


def _describe(route: ServerRoute) -> str:
    parts = [f"{route.method} {route.path}"]
    parts.append(f"request={elem(route.request)}")
    parts.append(f"response={route.response}")
    if route.path_params:
        params = ", ".join(f"{p.name}: {elem(p.typ) if p.typ is not None else '-'}" for p in route.path_params)
        parts.append(f"params=({params})")
    if route.query_params:
        query = ", ".join(f"{name}: {elem(t)}" for name, t in route.query_params.items())
        parts.append(f"query=({query})")
    return "  ".join(parts)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log checker progress to stderr.")
def main(verbose: bool):
    """jape: check that API clients and servers agree."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.option("--cprefix", envvar="JAPE_CPREFIX", default=None, help="Client endpoint URL prefix to trim.")
@click.option("--sprefix", envvar="JAPE_SPREFIX", default=None, help="Server endpoint URL prefix to trim.")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None, help="Config file (default: jape.yaml in PATH).")
@click.option("--format", "fmt", default="text", type=click.Choice(["text", "json"]), help="Output format.")
def check(path: Path, cprefix: str | None, sprefix: str | None, config_path: Path | None, fmt: str):
    """Check that the client calls in PATH match its server routes."""
    config = _load_config(path, config_path, cprefix, sprefix)
    package = _load_package(path, config)

    try:
        diagnostics = analyze(package, config)
    except NoClientError as e:
        raise click.ClickException(str(e))

    if fmt == "json":
        click.echo(json.dumps([d.model_dump() for d in diagnostics], indent=2))
    else:
        for diag in diagnostics:
            click.echo(str(diag))

    if diagnostics:
        click.get_current_context().exit(EXIT_DIAGNOSTICS)


@main.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.option("--sprefix", envvar="JAPE_SPREFIX", default=None, help="Server endpoint URL prefix to trim.")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None, help="Config file (default: jape.yaml in PATH).")
def routes(path: Path, sprefix: str | None, config_path: Path | None):
    """List the server routes declared in PATH."""
    config = _load_config(path, config_path, None, sprefix)
    package = _load_package(path, config)

    found, diagnostics = extract_routes(package, config)
    for diag in diagnostics:
        click.echo(f"warning: {diag}", err=True)
    for route in found.values():
        click.echo(_describe(route))
    click.echo(f"Found {len(found)} routes.")
