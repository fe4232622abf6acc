"""Source loading and the declaration index the checker resolves names against.

Every ``.py`` file below the analyzed path is parsed once. The resulting
:class:`Package` indexes top-level definitions, imports and classes per
module so that any name can be resolved to its declaration without
rescanning the files.
"""

import ast
import builtins
import fnmatch
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

SKIP_DIRS = {"__pycache__", ".git", ".hg", ".tox", ".venv", "venv", "build", "dist", "node_modules"}

BUILTIN_TYPES = {
    "bool", "bytearray", "bytes", "complex", "dict", "float", "frozenset",
    "int", "list", "object", "set", "str", "tuple", "type",
}

MAX_LOOKUP_DEPTH = 16

FunctionNode = ast.FunctionDef | ast.AsyncFunctionDef


@dataclass
class ClassInfo:
    """A class declared at the top level of an analyzed module."""

    qualname: str
    node: ast.ClassDef
    module: "ModuleInfo"
    methods: dict[str, FunctionNode] = field(default_factory=dict)
    fields: dict[str, ast.expr] = field(default_factory=dict)
    """Annotated attributes: class-body annotations and ``self.x: T`` in methods."""
    assigned: dict[str, tuple[ast.expr, FunctionNode | None]] = field(default_factory=dict)
    """Unannotated attributes and the method assigning them (None for the class body)."""


@dataclass
class ModuleInfo:
    name: str
    path: Path
    tree: ast.Module
    is_package: bool = False
    definitions: dict[str, ast.AST] = field(default_factory=dict)
    imports: dict[str, str] = field(default_factory=dict)
    classes: dict[str, ClassInfo] = field(default_factory=dict)


@dataclass(frozen=True)
class Symbol:
    """What a name resolves to."""

    kind: str  # module / class / function / variable / builtin / external
    qualname: str
    node: ast.AST | None = None
    module: ModuleInfo | None = None


@dataclass
class Package:
    root: Path
    modules: dict[str, ModuleInfo] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    classes: dict[str, ClassInfo] = field(default_factory=dict)
    """All indexed classes by qualified name."""

    def add(self, module: ModuleInfo) -> None:
        _index_module(module)
        self.modules[module.name] = module
        for info in module.classes.values():
            self.classes[info.qualname] = info

    def resolve_name(self, module: ModuleInfo, name: str) -> Symbol | None:
        """Resolve a bare name as seen from the top level of ``module``."""
        return self._resolve_name(module, name, 0)

    def member(self, symbol: Symbol, name: str) -> Symbol | None:
        """Resolve ``symbol.name`` for module, class and external symbols."""
        if symbol.kind == "module":
            return self._lookup(f"{symbol.qualname}.{name}", 0)
        if symbol.kind == "class":
            info = self.classes.get(symbol.qualname)
            method = self.find_method(info, name) if info else None
            if method is not None:
                return Symbol("function", f"{symbol.qualname}.{name}", method[0], method[1].module)
            return None
        if symbol.kind == "external":
            return Symbol("external", f"{symbol.qualname}.{name}")
        return None

    def find_method(self, info: ClassInfo, name: str) -> tuple[FunctionNode, ClassInfo] | None:
        """Find a method on ``info`` or its indexed base classes."""
        for cls in self.mro(info):
            if name in cls.methods:
                return cls.methods[name], cls
        return None

    def mro(self, info: ClassInfo) -> list[ClassInfo]:
        """Return ``info`` followed by its indexed base classes, depth first."""
        result: list[ClassInfo] = []
        pending = [info]
        while pending and len(result) < MAX_LOOKUP_DEPTH:
            cls = pending.pop(0)
            if any(seen is cls for seen in result):
                continue
            result.append(cls)
            for base in cls.node.bases:
                symbol = self.resolve_expr(cls.module, base)
                if symbol is not None and symbol.kind == "class" and symbol.qualname in self.classes:
                    pending.append(self.classes[symbol.qualname])
        return result

    def base_names(self, info: ClassInfo) -> list[str]:
        """Qualified names of every base of ``info``, including external ones."""
        names = []
        for cls in self.mro(info):
            for base in cls.node.bases:
                symbol = self.resolve_expr(cls.module, base)
                if symbol is not None:
                    names.append(symbol.qualname)
        return names

    def resolve_expr(self, module: ModuleInfo, expr: ast.expr) -> Symbol | None:
        """Resolve a Name or dotted Attribute chain at module level."""
        if isinstance(expr, ast.Name):
            return self.resolve_name(module, expr.id)
        if isinstance(expr, ast.Attribute):
            base = self.resolve_expr(module, expr.value)
            if base is None:
                return None
            return self.member(base, expr.attr)
        return None

    def _resolve_name(self, module: ModuleInfo, name: str, depth: int) -> Symbol | None:
        if depth > MAX_LOOKUP_DEPTH:
            return None
        node = module.definitions.get(name)
        if node is not None:
            qualname = f"{module.name}.{name}"
            if isinstance(node, ast.ClassDef):
                return Symbol("class", qualname, node, module)
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                return Symbol("function", qualname, node, module)
            return Symbol("variable", qualname, node, module)
        target = module.imports.get(name)
        if target is not None:
            return self._lookup(target, depth + 1)
        if name in BUILTIN_TYPES:
            return Symbol("builtin", name)
        if hasattr(builtins, name):
            return Symbol("builtin", name)
        return None

    def _lookup(self, qualname: str, depth: int) -> Symbol:
        if qualname in self.modules:
            return Symbol("module", qualname, module=self.modules[qualname])
        if "." in qualname and depth <= MAX_LOOKUP_DEPTH:
            parent, name = qualname.rsplit(".", 1)
            if parent in self.modules:
                symbol = self._resolve_name(self.modules[parent], name, depth + 1)
                if symbol is not None:
                    return symbol
            elif parent in self.classes:
                found = self.member(Symbol("class", parent), name)
                if found is not None:
                    return found
        return Symbol("external", qualname)


def _module_name(root: Path, path: Path) -> tuple[str, bool]:
    base = root if root.is_dir() else root.parent
    rel = path.relative_to(base).with_suffix("")
    parts = list(rel.parts)
    is_package = parts[-1] == "__init__"
    if is_package:
        parts = parts[:-1]
    if root.is_dir() and (root / "__init__.py").exists():
        parts.insert(0, root.name)
    return ".".join(parts) or root.name, is_package


def _resolve_relative(module: ModuleInfo, level: int, target: str | None) -> str:
    parts = module.name.split(".")
    if not module.is_package:
        parts = parts[:-1]
    if level > 1:
        parts = parts[: len(parts) - (level - 1)]
    base = ".".join(parts)
    if target:
        return f"{base}.{target}" if base else target
    return base


def _top_level(body: list[ast.stmt]) -> Iterator[ast.stmt]:
    """Yield module-level statements, looking inside if/try blocks."""
    for stmt in body:
        if isinstance(stmt, ast.If):
            yield from _top_level(stmt.body)
            yield from _top_level(stmt.orelse)
        elif isinstance(stmt, ast.Try):
            yield from _top_level(stmt.body)
            for handler in stmt.handlers:
                yield from _top_level(handler.body)
            yield from _top_level(stmt.orelse)
            yield from _top_level(stmt.finalbody)
        else:
            yield stmt


def _index_class(module: ModuleInfo, node: ast.ClassDef) -> ClassInfo:
    info = ClassInfo(qualname=f"{module.name}.{node.name}", node=node, module=module)
    for stmt in node.body:
        if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
            info.methods[stmt.name] = stmt
        elif isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
            info.fields[stmt.target.id] = stmt.annotation
        elif isinstance(stmt, ast.Assign) and len(stmt.targets) == 1 and isinstance(stmt.targets[0], ast.Name):
            info.assigned.setdefault(stmt.targets[0].id, (stmt.value, None))

    for method in info.methods.values():
        if not method.args.args:
            continue
        self_name = method.args.args[0].arg
        for sub in walk_shallow(method.body):
            if isinstance(sub, ast.AnnAssign):
                target = sub.target
                if _is_self_attr(target, self_name):
                    info.fields.setdefault(target.attr, sub.annotation)
            elif isinstance(sub, ast.Assign) and len(sub.targets) == 1:
                target = sub.targets[0]
                if _is_self_attr(target, self_name):
                    info.assigned.setdefault(target.attr, (sub.value, method))
    return info


def _is_self_attr(node: ast.AST, self_name: str) -> bool:
    return (
        isinstance(node, ast.Attribute)
        and isinstance(node.value, ast.Name)
        and node.value.id == self_name
    )


def _index_module(module: ModuleInfo) -> None:
    for stmt in _top_level(module.tree.body):
        if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
            module.definitions[stmt.name] = stmt
        elif isinstance(stmt, ast.ClassDef):
            module.definitions[stmt.name] = stmt
            module.classes[stmt.name] = _index_class(module, stmt)
        elif isinstance(stmt, ast.Assign):
            for target in stmt.targets:
                if isinstance(target, ast.Name):
                    module.definitions.setdefault(target.id, stmt)
        elif isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
            module.definitions.setdefault(stmt.target.id, stmt)
        elif isinstance(stmt, ast.Import):
            for alias in stmt.names:
                if alias.asname:
                    module.imports[alias.asname] = alias.name
                else:
                    top = alias.name.split(".")[0]
                    module.imports[top] = top
        elif isinstance(stmt, ast.ImportFrom):
            if stmt.level:
                base = _resolve_relative(module, stmt.level, stmt.module)
            else:
                base = stmt.module or ""
            for alias in stmt.names:
                if alias.name == "*":
                    continue
                module.imports[alias.asname or alias.name] = f"{base}.{alias.name}" if base else alias.name


def walk_shallow(nodes: list[ast.AST] | ast.AST) -> Iterator[ast.AST]:
    """Pre-order walk that yields nested defs and classes but does not enter them."""
    stack = list(reversed(nodes)) if isinstance(nodes, list) else [nodes]
    while stack:
        node = stack.pop()
        yield node
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            continue
        stack.extend(reversed(list(ast.iter_child_nodes(node))))


def _is_excluded(rel: str, exclude: tuple[str, ...] | list[str]) -> bool:
    name = rel.rsplit("/", 1)[-1]
    return any(fnmatch.fnmatch(rel, pat) or fnmatch.fnmatch(name, pat) for pat in exclude)


def _source_files(root: Path, exclude: tuple[str, ...] | list[str]) -> list[Path]:
    if root.is_file():
        return [root]
    files = []
    for path in sorted(root.rglob("*.py")):
        rel = path.relative_to(root)
        if any(part in SKIP_DIRS or part.startswith(".") for part in rel.parts[:-1]):
            continue
        if _is_excluded(rel.as_posix(), exclude):
            logger.debug("excluding %s", rel)
            continue
        files.append(path)
    return files


def load_package(root: Path, exclude: tuple[str, ...] | list[str] = ()) -> Package:
    """Parse every Python file below ``root`` into an indexed Package.

    Files that fail to parse are recorded in ``Package.errors`` as
    ``{path: message}`` and skipped.
    """
    root = Path(root)
    package = Package(root=root)
    for path in _source_files(root, exclude):
        try:
            text = path.read_text(encoding="utf-8")
            tree = ast.parse(text, filename=str(path))
        except SyntaxError as e:
            package.errors[str(path)] = f"SyntaxError: {e.msg} (line {e.lineno})"
            continue
        except (OSError, UnicodeDecodeError) as e:
            package.errors[str(path)] = f"{type(e).__name__}: {e}"
            continue
        name, is_package = _module_name(root, path)
        package.add(ModuleInfo(name=name, path=path, tree=tree, is_package=is_package))
    logger.debug("loaded %d modules from %s (%d errors)", len(package.modules), root, len(package.errors))
    return package
