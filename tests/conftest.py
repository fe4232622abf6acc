import textwrap
from pathlib import Path

import pytest


@pytest.fixture
def write_package(tmp_path):
    """Write ``{relative path: source}`` below tmp_path and return the root."""

    def write(files: dict[str, str]) -> Path:
        for name, text in files.items():
            path = tmp_path / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(textwrap.dedent(text).lstrip("\n"), encoding="utf-8")
        return tmp_path

    return write
