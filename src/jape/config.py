"""Checker configuration: path prefixes and which files to skip.

Settings are read from ``jape.yaml`` (or ``.jape.yaml``) next to the
analyzed sources, or from an explicit file::

    client_prefix: /api
    server_prefix: /api/v2
    exclude:
      - "test_*.py"
      - "migrations/*"
"""

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

from jape.errors import ConfigError

CONFIG_NAMES = ("jape.yaml", ".jape.yaml")

DEFAULT_EXCLUDE = ["test_*.py", "*_test.py", "conftest.py"]


class CheckConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    client_prefix: str = ""  # trimmed from client paths before matching
    server_prefix: str = ""  # trimmed from server paths before matching
    exclude: list[str] = DEFAULT_EXCLUDE


def find_config(search_dir: Path) -> Path | None:
    """Return the first config file found in ``search_dir``."""
    if not search_dir.is_dir():
        search_dir = search_dir.parent
    for name in CONFIG_NAMES:
        path = search_dir / name
        if path.exists():
            return path
    return None


def load_config(path: Path | None = None, search_dir: Path | None = None) -> CheckConfig:
    """Load a CheckConfig from ``path``, or from a config file in ``search_dir``.

    Returns the defaults when there is no file. Raises ConfigError when the
    file cannot be read or does not describe a valid configuration.
    """
    if path is None and search_dir is not None:
        path = find_config(search_dir)
    if path is None:
        return CheckConfig()

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"{path}: {e}") from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping, got {type(data).__name__}")

    try:
        return CheckConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"{path}: {e}") from e
