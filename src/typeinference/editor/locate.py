from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import libcst as cst

from typeinference.analysis.model import AnalyzedClass
from typeinference.editor.file import EditableFile
from typeinference.editor.transformers import count_declarations
from typeinference.ingest import DEFAULT_EXCLUDE_DIRS, iter_python_paths, path_matches_module


@dataclass(frozen=True)
class LookupMiss:
    """The target declaration could not be pinned to exactly one place."""

    target: str
    reason: str
    candidates: tuple[Path, ...] = ()

    def __str__(self) -> str:
        return f"{self.target}: {self.reason}"


def markers_match(text: str, class_name: str | None, function_name: str) -> bool:
    if re.search(rf"\bdef\s+{re.escape(function_name)}\s*\(", text) is None:
        return False
    if class_name is None:
        return True
    return re.search(rf"^\s*class\s+{re.escape(class_name)}\s*[(:]", text, re.MULTILINE) is not None


class ProjectFiles:
    """The editable files of a project, with their text cached for marker scans.

    Edits only ever add annotations, so the markers a file matched on stay
    valid after it is rewritten; the buffer that gets edited is always
    re-read from disk.
    """

    def __init__(self, root: Path, *, exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS) -> None:
        self.root = root
        self.paths = iter_python_paths(root, exclude_dirs=exclude_dirs)
        self._texts: dict[Path, str | None] = {}
        self._lock = threading.Lock()

    def text(self, path: Path) -> str | None:
        with self._lock:
            if path in self._texts:
                return self._texts[path]
        try:
            text: str | None = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            text = None
        with self._lock:
            self._texts.setdefault(path, text)
        return text

    def candidates(self, target: AnalyzedClass, function_name: str) -> list[Path]:
        found: list[Path] = []
        for path in self.paths:
            if not path_matches_module(path, target.namespace):
                continue
            text = self.text(path)
            if text is not None and markers_match(text, target.class_name, function_name):
                found.append(path)
        return found


def _label(target: AnalyzedClass, function_name: str) -> str:
    return f"{target.namespace}:{target.class_name + '.' if target.class_name else ''}{function_name}"


def locate_path(target: AnalyzedClass, function_name: str, project: ProjectFiles) -> Path | LookupMiss:
    """The single file whose markers match the target; declarations are not counted."""
    label = _label(target, function_name)
    candidates = project.candidates(target, function_name)
    if not candidates:
        return LookupMiss(label, "no file declares it")
    if len(candidates) > 1:
        return LookupMiss(label, f"{len(candidates)} files match", tuple(candidates))
    return candidates[0]


def locate(target: AnalyzedClass, function_name: str, project: ProjectFiles) -> EditableFile | LookupMiss:
    label = _label(target, function_name)
    path = locate_path(target, function_name, project)
    if isinstance(path, LookupMiss):
        return path
    try:
        file = EditableFile.read(path)
        matches = count_declarations(file.text, target.class_name, function_name)
    except (OSError, UnicodeDecodeError, RecursionError, cst.ParserSyntaxError) as exc:
        return LookupMiss(label, f"cannot read {path}: {exc}", (path,))
    if matches != 1:
        return LookupMiss(label, f"{matches} matching declarations in {path}", (path,))
    return file
