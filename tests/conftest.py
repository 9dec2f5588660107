from __future__ import annotations

import sys
import textwrap
from pathlib import Path
from typing import Callable

ROOT = Path(__file__).resolve().parents[1]
for entry in (ROOT, ROOT / "src"):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))


import pytest

ProjectFactory = Callable[[dict[str, str]], Path]


@pytest.fixture
def write_project(tmp_path: Path) -> ProjectFactory:
    """Write ``{relative path: source}`` under a fresh project root and return the root."""

    def _write(files: dict[str, str]) -> Path:
        root = tmp_path / "project"
        for relative, source in files.items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(textwrap.dedent(source).lstrip("\n"), encoding="utf-8")
        root.mkdir(exist_ok=True)
        return root

    return _write
