from __future__ import annotations

import ast
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from typeinference.ingest import module_name

_CLASS_LINE_RE = re.compile(r"^class\s+([A-Za-z_][A-Za-z0-9_]*)\s*[(:]", re.MULTILINE)


@dataclass
class ModuleBindings:
    """Names visible at module level: imports plus local classes and functions."""

    module: str
    imports: dict[str, str] = field(default_factory=dict)
    classes: dict[str, str] = field(default_factory=dict)
    functions: set[str] = field(default_factory=set)

    def resolve(self, dotted: str) -> str | None:
        head, _, rest = dotted.partition(".")
        if head in self.classes:
            return f"{self.classes[head]}.{rest}" if rest else self.classes[head]
        if head in self.functions and not rest:
            return f"{self.module}.{head}"
        target = self.imports.get(head)
        if target is None:
            return None
        return f"{target}.{rest}" if rest else target


def _relative_base(module: str, level: int, is_package: bool) -> list[str] | None:
    parts = module.split(".") if module else []
    keep = len(parts) - level + (1 if is_package else 0)
    if keep < 0:
        return None
    return parts[:keep]


def collect_bindings(tree: ast.Module, module: str, *, is_package: bool = False) -> ModuleBindings:
    bindings = ModuleBindings(module=module)
    for stmt in tree.body:
        if isinstance(stmt, ast.ClassDef):
            bindings.classes[stmt.name] = f"{module}.{stmt.name}" if module else stmt.name
        elif isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
            bindings.functions.add(stmt.name)
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                if alias.asname:
                    bindings.imports[alias.asname] = alias.name
                else:
                    head = alias.name.split(".", 1)[0]
                    bindings.imports.setdefault(head, head)
        elif isinstance(node, ast.ImportFrom):
            if node.level > 0:
                base = _relative_base(module, node.level, is_package)
                if base is None:
                    continue
                if node.module:
                    base.append(node.module)
                source = ".".join(base)
            else:
                source = node.module or ""
            for alias in node.names:
                if alias.name == "*":
                    continue
                local = alias.asname or alias.name
                bindings.imports[local] = f"{source}.{alias.name}" if source else alias.name
    return bindings


def dotted_name(expr: ast.AST) -> str | None:
    parts: list[str] = []
    current = expr
    while isinstance(current, ast.Attribute):
        parts.append(current.attr)
        current = current.value
    if not isinstance(current, ast.Name):
        return None
    parts.append(current.id)
    return ".".join(reversed(parts))


def _catalog_module(path: Path, root: Path) -> str:
    parts = path.parts
    if "site-packages" in parts:
        index = len(parts) - 1 - parts[::-1].index("site-packages")
        return module_name(Path(*parts[index + 1 :]), None)
    return module_name(path, root)


class SourceCatalog:
    """Top-level classes of every source file in the analyzed universe.

    Unlike project enumeration this deliberately walks dependency trees too,
    so docstrings may reference classes declared in installed packages.
    """

    def __init__(self) -> None:
        self._by_name: dict[str, set[str]] = {}
        self._qualified: set[str] = set()

    @classmethod
    def build(cls, roots: Iterable[Path], *, skip_dirs: Iterable[str] = (".git", "__pycache__")) -> SourceCatalog:
        catalog = cls()
        skipped = set(skip_dirs)
        for root in roots:
            for current, dirnames, filenames in os.walk(root, topdown=True):
                dirnames[:] = sorted(d for d in dirnames if d not in skipped)
                for filename in sorted(filenames):
                    if not filename.endswith(".py"):
                        continue
                    path = Path(current) / filename
                    try:
                        text = path.read_text(encoding="utf-8")
                    except (OSError, UnicodeDecodeError):
                        continue
                    catalog.add_source(_catalog_module(path, root), text)
        return catalog

    def add_source(self, module: str, text: str) -> None:
        for match in _CLASS_LINE_RE.finditer(text):
            self.add_class(f"{module}.{match.group(1)}" if module else match.group(1))

    def add_class(self, qualified: str) -> None:
        self._qualified.add(qualified)
        self._by_name.setdefault(qualified.rsplit(".", 1)[-1], set()).add(qualified)

    def __contains__(self, qualified: object) -> bool:
        return qualified in self._qualified

    def __len__(self) -> int:
        return len(self._qualified)

    def lookup(self, name: str) -> str | None:
        if "." in name:
            return name if name in self._qualified else None
        candidates = self._by_name.get(name, set())
        if len(candidates) == 1:
            return next(iter(candidates))
        return None
