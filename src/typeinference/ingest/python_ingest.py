from __future__ import annotations

import ast
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

DEFAULT_EXCLUDE_DIRS: frozenset[str] = frozenset(
    {
        "vendor",
        ".venv",
        "venv",
        "site-packages",
        "node_modules",
        ".tox",
        ".nox",
        ".git",
        "__pycache__",
        "build",
        "dist",
    }
)


@dataclass(frozen=True)
class ParseFailure:
    path: Path
    stage: str
    error: str

    def __str__(self) -> str:
        return f"{self.path}: {self.stage} failed: {self.error}"


@dataclass(frozen=True)
class ParsedSource:
    path: Path
    module: str
    text: str
    tree: ast.Module


def iter_python_paths(
    root: Path,
    *,
    exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS,
) -> list[Path]:
    """Expand a project root to its python files, pruning excluded directories early."""
    excluded = set(exclude_dirs)
    if root.is_file():
        return [root] if root.suffix == ".py" else []
    out: list[Path] = []
    for current, dirnames, filenames in os.walk(root, topdown=True):
        dirnames[:] = sorted(d for d in dirnames if d not in excluded)
        for filename in sorted(filenames):
            if filename.endswith(".py"):
                out.append(Path(current) / filename)
    return sorted(out)


def module_name(path: Path, project_root: Path | None) -> str:
    rel = path.with_suffix("")
    if project_root is not None:
        try:
            rel = rel.relative_to(project_root)
        except ValueError:
            pass
    parts = list(rel.parts)
    if parts and parts[0] == "src":
        parts = parts[1:]
    if len(parts) > 1 and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(parts)


def path_matches_module(path: Path, namespace: str) -> bool:
    """Whether ``path`` can hold module ``namespace`` (``a/b.py`` or ``a/b/__init__.py``)."""
    if not namespace:
        return False
    expected = namespace.split(".")
    parts = list(path.with_suffix("").parts)
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return parts[-len(expected) :] == expected


def parse_source(path: Path, project_root: Path | None) -> ParsedSource | ParseFailure:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return ParseFailure(path=path, stage="read", error=str(exc))
    try:
        tree = ast.parse(text, filename=str(path))
    except (SyntaxError, ValueError, RecursionError) as exc:
        return ParseFailure(path=path, stage="parse", error=str(exc))
    return ParsedSource(
        path=path,
        module=module_name(path, project_root),
        text=text,
        tree=tree,
    )
