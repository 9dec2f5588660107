from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Sequence

from typeinference.analysis.collectors.base import null_logger
from typeinference.editor.file import EditableFile
from typeinference.editor.instructions import EditInstruction, EditOptions, InstructionOutcome
from typeinference.editor.locate import LookupMiss, ProjectFiles
from typeinference.exceptions import PersistenceError, UnboundTypeName
from typeinference.ingest import DEFAULT_EXCLUDE_DIRS

DiffHandler = Callable[[EditInstruction, str], None]


@dataclass(frozen=True)
class InstructionResult:
    instruction: EditInstruction
    outcome: InstructionOutcome
    path: Path | None = None
    diff: str = ""
    detail: str | None = None


class CodeEditor:
    """Locates, rewrites, diffs and (unless in dry-run) writes back declarations.

    Instructions are independent: each one either lands completely or is
    reported with the reason it was dropped. Instructions that land in the
    same file are serialized on a per-file lock and always start from the
    file's current content, so none of them loses another's edit. In dry-run
    mode that current content is kept in memory instead of on disk.
    """

    def __init__(
        self,
        project_root: Path,
        *,
        options: EditOptions = EditOptions(),
        exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS,
        persist: bool = True,
        diff_handler: DiffHandler | None = None,
        jobs: int = 4,
        logger: logging.Logger | None = None,
    ) -> None:
        self.project_root = project_root.parent if project_root.is_file() else project_root
        self.project = ProjectFiles(project_root, exclude_dirs=exclude_dirs)
        self.options = options
        self.persist = persist
        self.diff_handler = diff_handler
        self.jobs = jobs
        self.logger = logger or null_logger()
        self._locks: dict[Path, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._buffers: dict[Path, str] = {}
        self._originals: dict[Path, str] = {}
        self._latest: dict[Path, str] = {}

    def _lock_for(self, path: Path) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(path, threading.Lock())

    def _current(self, path: Path) -> EditableFile:
        if path in self._buffers:
            text = self._buffers[path]
            return EditableFile(path=path, original=text, text=text)
        return EditableFile.read(path)

    def apply_one(self, instruction: EditInstruction) -> InstructionResult:
        located = instruction.locate(self.project)
        if isinstance(located, LookupMiss):
            self.logger.info("Dropping %s edit: %s", instruction.kind, located)
            return InstructionResult(instruction, InstructionOutcome.LOOKUP_MISS, detail=located.reason)
        path = located
        # declarations are counted by apply, on the content read under the lock
        with self._lock_for(path):
            try:
                current = self._current(path)
            except (OSError, UnicodeDecodeError) as exc:
                self.logger.info("Dropping %s edit for %s: %s", instruction.kind, instruction.label, exc)
                return InstructionResult(instruction, InstructionOutcome.LOOKUP_MISS, path, detail=str(exc))
            try:
                updated = instruction.apply(current, self.options)
            except UnboundTypeName as exc:
                self.logger.info("Dropping %s edit for %s: %s", instruction.kind, instruction.label, exc)
                return InstructionResult(instruction, InstructionOutcome.UNBOUND_TYPE, path, detail=exc.name)
            if isinstance(updated, LookupMiss):
                self.logger.info("Dropping %s edit: %s", instruction.kind, updated)
                return InstructionResult(instruction, InstructionOutcome.LOOKUP_MISS, path, detail=updated.reason)
            if not updated.changed:
                return InstructionResult(instruction, InstructionOutcome.UNCHANGED, path)
            self._originals.setdefault(path, current.original)
            diff = updated.diff(self.project_root)
            if self.diff_handler is not None:
                self.diff_handler(instruction, diff)
            if not self.persist:
                self._buffers[path] = updated.text
                self._latest[path] = updated.text
                return InstructionResult(instruction, InstructionOutcome.APPLIED, path, diff)
            try:
                updated.persist()
            except PersistenceError as exc:
                self.logger.warning("%s", exc)
                return InstructionResult(instruction, InstructionOutcome.PERSISTENCE_FAILURE, path, diff, str(exc.cause))
            self._latest[path] = updated.text
            return InstructionResult(instruction, InstructionOutcome.APPLIED, path, diff)

    def apply_all(self, instructions: Sequence[EditInstruction]) -> list[InstructionResult]:
        with ThreadPoolExecutor(max_workers=self.jobs) as pool:
            return list(pool.map(self.apply_one, instructions))

    def file_diffs(self) -> dict[Path, str]:
        """One diff per edited file, from its content before the first edit to its latest content."""
        return {
            path: EditableFile(path, self._originals[path], self._latest[path]).diff(self.project_root)
            for path in sorted(self._latest)
        }
