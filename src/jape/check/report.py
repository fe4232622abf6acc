"""Positioned diagnostics, collected without stopping the run."""

import ast
import logging

from pydantic import BaseModel, ConfigDict

from jape.check.source import ModuleInfo

logger = logging.getLogger(__name__)


class Position(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    line: int
    col: int  # 1-based

    @classmethod
    def of(cls, module: ModuleInfo, node: ast.AST) -> "Position":
        return cls(
            path=str(module.path),
            line=getattr(node, "lineno", 1),
            col=getattr(node, "col_offset", 0) + 1,
        )

    def __str__(self) -> str:
        return f"{self.path}:{self.line}:{self.col}"


class Diagnostic(BaseModel):
    model_config = ConfigDict(frozen=True)

    position: Position
    message: str

    def sort_key(self) -> tuple:
        return (self.position.path, self.position.line, self.position.col, self.message)

    def __str__(self) -> str:
        return f"{self.position}: {self.message}"


class Reporter:
    """Accumulates diagnostics; output is sorted and free of duplicates."""

    def __init__(self):
        self._seen: set[tuple] = set()
        self._items: list[Diagnostic] = []

    def report(self, position: Position, message: str) -> None:
        diag = Diagnostic(position=position, message=message)
        key = diag.sort_key()
        if key in self._seen:
            return
        self._seen.add(key)
        logger.debug("diagnostic %s", diag)
        self._items.append(diag)

    def __len__(self) -> int:
        return len(self._items)

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return sorted(self._items, key=Diagnostic.sort_key)
