"""Runtime traces as evidence.

:class:`TraceRecorder` installs a ``sys.settrace`` hook and writes one
``TraceRecordDTO`` JSON line per completed call of a project function.
:class:`TraceAnalyzer` reads such a file back and turns the observed argument
and return types into ``dynamic-trace`` evidence.
"""

from __future__ import annotations

import ast
import inspect
import logging
import runpy
import sys
import threading
from collections import defaultdict
from pathlib import Path
from types import FrameType
from typing import Any, Callable, Sequence, TextIO

from pydantic import ValidationError

from typeinference.analysis.collectors.base import (
    iter_declared_functions,
    make_evidence,
    module_bindings,
    null_logger,
    signature_parameters,
)
from typeinference.analysis.model import RETURN_SLOT, FunctionIdentity, SourceKind
from typeinference.analysis.registry import AnalyzedFunctionCollection
from typeinference.analysis.types import parse_type_expression, type_of_value
from typeinference.ingest import DEFAULT_EXCLUDE_DIRS, module_name
from typeinference.schema import TraceRecordDTO

_SKIPPED_CODE_FLAGS = inspect.CO_GENERATOR | inspect.CO_COROUTINE | inspect.CO_ASYNC_GENERATOR

TraceFunction = Callable[[FrameType, str, Any], Any]


def _qualified_only(name: str) -> str | None:
    # runtime types are recorded fully qualified already
    return name if "." in name else None


def load_trace_records(path: Path, logger: logging.Logger | None = None) -> list[TraceRecordDTO]:
    logger = logger or null_logger()
    records: list[TraceRecordDTO] = []
    with path.open(encoding="utf-8") as handle:
        for number, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            try:
                records.append(TraceRecordDTO.model_validate_json(line))
            except ValidationError as exc:
                logger.warning("%s:%d: skipping malformed trace record: %s", path, number, exc.errors()[0]["msg"])
    return records


class TraceAnalyzer:
    name = "trace"
    source_kind = SourceKind.DYNAMIC_TRACE

    def __init__(
        self,
        records: Sequence[TraceRecordDTO],
        project_root: Path | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.project_root = project_root
        self.logger = logger or null_logger()
        self._by_identity: dict[FunctionIdentity, list[TraceRecordDTO]] = defaultdict(list)
        for record in records:
            try:
                identity = FunctionIdentity.parse(record.function)
            except ValueError as exc:
                self.logger.warning("Skipping trace record: %s", exc)
                continue
            self._by_identity[identity].append(record)

    @classmethod
    def from_file(
        cls, path: Path, project_root: Path | None = None, logger: logging.Logger | None = None
    ) -> TraceAnalyzer:
        return cls(load_trace_records(path, logger), project_root=project_root, logger=logger)

    def observe(self, tree: ast.Module, path: Path, registry: AnalyzedFunctionCollection) -> None:
        module = module_bindings(tree, path, self.project_root).module
        for declared in iter_declared_functions(tree):
            identity = declared.identity(module)
            records = self._by_identity.get(identity)
            if not records:
                continue
            params, _receiver = signature_parameters(declared.node, declared.class_name)
            positions = {item.parameter.name: item.parameter.position for item in params}
            for record in records:
                for name, type_text in record.arguments.items():
                    position = positions.get(name)
                    if position is None:
                        continue
                    inferred = parse_type_expression(type_text, _qualified_only)
                    if inferred is not None and not inferred.is_empty:
                        registry.insert(make_evidence(identity, position, inferred, SourceKind.DYNAMIC_TRACE))
                if record.return_type is not None:
                    inferred = parse_type_expression(record.return_type, _qualified_only)
                    if inferred is not None and not inferred.is_empty:
                        registry.insert(make_evidence(identity, RETURN_SLOT, inferred, SourceKind.DYNAMIC_TRACE))


def _frame_identity(frame: FrameType, root: Path) -> FunctionIdentity | None:
    code = frame.f_code
    parts = code.co_qualname.split(".")
    if "<locals>" in parts or len(parts) > 2 or parts[-1].startswith("<"):
        return None
    module = module_name(Path(code.co_filename).resolve(), root)
    if not module:
        return None
    if len(parts) == 2:
        return FunctionIdentity(module, parts[0], parts[1])
    return FunctionIdentity(module, None, parts[0])


def _argument_names(frame: FrameType) -> tuple[str, ...]:
    code = frame.f_code
    count = code.co_argcount + code.co_kwonlyargcount
    if code.co_flags & inspect.CO_VARARGS:
        count += 1
    if code.co_flags & inspect.CO_VARKEYWORDS:
        count += 1
    return code.co_varnames[:count]


class TraceRecorder:
    """Context manager recording argument and return types of project calls.

    Only code whose file lives under ``root`` (outside excluded directories)
    is recorded. Generator and coroutine frames are ignored, and a frame left
    by an exception contributes its arguments but no return type.
    """

    def __init__(
        self,
        root: Path,
        output: Path | TextIO,
        *,
        exclude_dirs: frozenset[str] = DEFAULT_EXCLUDE_DIRS,
        logger: logging.Logger | None = None,
    ) -> None:
        self.root = root.resolve()
        self.output = output
        self.exclude_dirs = exclude_dirs
        self.logger = logger or null_logger()
        self.records_written = 0
        self._handle: TextIO | None = None
        self._owns_handle = False
        self._lock = threading.Lock()
        self._pending: dict[FrameType, tuple[FunctionIdentity, dict[str, str]]] = {}
        self._unwinding: set[FrameType] = set()
        self._file_cache: dict[str, bool] = {}
        self._previous: TraceFunction | None = None

    def _is_project_file(self, filename: str) -> bool:
        cached = self._file_cache.get(filename)
        if cached is not None:
            return cached
        path = Path(filename).resolve()
        try:
            relative = path.relative_to(self.root)
        except ValueError:
            result = False
        else:
            result = path.suffix == ".py" and not (set(relative.parts[:-1]) & self.exclude_dirs)
        self._file_cache[filename] = result
        return result

    def __enter__(self) -> TraceRecorder:
        if isinstance(self.output, Path):
            self._handle = self.output.open("a", encoding="utf-8")
            self._owns_handle = True
        else:
            self._handle = self.output
        self._previous = sys.gettrace()
        threading.settrace(self._global_trace)
        sys.settrace(self._global_trace)
        return self

    def __exit__(self, *exc_info: object) -> None:
        sys.settrace(self._previous)
        threading.settrace(self._previous)  # type: ignore[arg-type]
        if self._owns_handle and self._handle is not None:
            self._handle.close()
        self._handle = None
        self._pending.clear()
        self._unwinding.clear()

    def _global_trace(self, frame: FrameType, event: str, arg: Any) -> TraceFunction | None:
        if event != "call":
            return None
        code = frame.f_code
        # module and class bodies run without CO_OPTIMIZED
        if not code.co_flags & inspect.CO_OPTIMIZED or code.co_flags & _SKIPPED_CODE_FLAGS:
            return None
        if not self._is_project_file(code.co_filename):
            return None
        identity = _frame_identity(frame, self.root)
        if identity is None:
            return None
        arguments: dict[str, str] = {}
        for name in _argument_names(frame):
            if name not in frame.f_locals:
                continue
            inferred = type_of_value(frame.f_locals[name])
            if inferred is not None and not inferred.is_empty:
                arguments[name] = inferred.render()
        self._pending[frame] = (identity, arguments)
        return self._local_trace

    def _local_trace(self, frame: FrameType, event: str, arg: Any) -> TraceFunction | None:
        if event == "exception":
            self._unwinding.add(frame)
        elif event == "line":
            # execution continued, so the exception was handled inside the frame
            self._unwinding.discard(frame)
        elif event == "return":
            pending = self._pending.pop(frame, None)
            unwinding = frame in self._unwinding
            self._unwinding.discard(frame)
            if pending is not None:
                identity, arguments = pending
                return_type = None
                if not unwinding:
                    inferred = type_of_value(arg)
                    return_type = inferred.render() if inferred is not None else None
                self._write(TraceRecordDTO(function=str(identity), arguments=arguments, return_type=return_type))
        return self._local_trace

    def _write(self, record: TraceRecordDTO) -> None:
        with self._lock:
            if self._handle is None:
                return
            self._handle.write(record.model_dump_json() + "\n")
            self.records_written += 1

    def run_script(self, script: Path, args: Sequence[str] = ()) -> None:
        self._run(lambda: runpy.run_path(str(script), run_name="__main__"), [str(script), *args])

    def run_module(self, module: str, args: Sequence[str] = ()) -> None:
        self._run(lambda: runpy.run_module(module, run_name="__main__", alter_sys=True), [module, *args])

    def _run(self, target: Callable[[], object], argv: list[str]) -> None:
        saved_argv = sys.argv
        saved_path = list(sys.path)
        sys.argv = argv
        for entry in (self.root / "src", self.root):
            if entry.is_dir() and str(entry) not in sys.path:
                sys.path.insert(0, str(entry))
        try:
            with self:
                target()
        finally:
            sys.argv = saved_argv
            sys.path[:] = saved_path
        self.logger.info("Recorded %d calls under %s", self.records_written, self.root)
