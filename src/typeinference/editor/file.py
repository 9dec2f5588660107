from __future__ import annotations

import difflib
import os
import shutil
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path

from typeinference.exceptions import PersistenceError


def unified_diff(original: str, updated: str, label: str) -> str:
    return "".join(
        difflib.unified_diff(
            original.splitlines(keepends=True),
            updated.splitlines(keepends=True),
            fromfile=f"a/{label}",
            tofile=f"b/{label}",
        )
    )


@dataclass(frozen=True)
class EditableFile:
    """A source buffer bound to a path.

    ``original`` is the text as read from disk; edits produce new instances
    with a different ``text`` so the original stays available for diffing.
    """

    path: Path
    original: str
    text: str

    @classmethod
    def read(cls, path: Path) -> EditableFile:
        # keep the line endings found on disk
        with path.open(encoding="utf-8", newline="") as handle:
            text = handle.read()
        return cls(path=path, original=text, text=text)

    @property
    def changed(self) -> bool:
        return self.text != self.original

    def with_text(self, text: str) -> EditableFile:
        return replace(self, text=text)

    def label(self, project_root: Path | None = None) -> str:
        if project_root is not None:
            try:
                return self.path.relative_to(project_root).as_posix()
            except ValueError:
                pass
        return self.path.as_posix()

    def diff(self, project_root: Path | None = None) -> str:
        return unified_diff(self.original, self.text, self.label(project_root))

    def persist(self) -> None:
        """Write through a temporary file swapped in with ``os.replace``."""
        try:
            fd, temp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp", text=True)
        except OSError as exc:
            raise PersistenceError(self.path, exc) from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(self.text)
            shutil.copymode(self.path, temp)
            os.replace(temp, self.path)
        except OSError as exc:
            Path(temp).unlink(missing_ok=True)
            raise PersistenceError(self.path, exc) from exc
