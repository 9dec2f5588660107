from __future__ import annotations

import ast
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Protocol, runtime_checkable

from typeinference.analysis.collectors.names import ModuleBindings, SourceCatalog, collect_bindings
from typeinference.analysis.model import (
    AnalyzedParameter,
    Evidence,
    FunctionIdentity,
    InferredType,
    ParameterKind,
    Slot,
    SlotKey,
    SourceKind,
)
from typeinference.analysis.registry import AnalyzedFunctionCollection
from typeinference.ingest import module_name

FunctionNode = ast.FunctionDef | ast.AsyncFunctionDef


def null_logger() -> logging.Logger:
    """Logger used when no logger collaborator is passed: discards everything."""
    logger = logging.getLogger("typeinference.null")
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    logger.propagate = False
    return logger


@runtime_checkable
class EvidenceCollector(Protocol):
    name: str
    source_kind: SourceKind

    def observe(
        self, tree: ast.Module, path: Path, registry: AnalyzedFunctionCollection
    ) -> None: ...


@dataclass(frozen=True)
class DeclaredFunction:
    """A function node the tool can type, with the class it is declared in."""

    node: FunctionNode
    class_name: str | None

    def identity(self, module: str) -> FunctionIdentity:
        return FunctionIdentity(module, self.class_name, self.node.name)


def iter_declared_functions(tree: ast.Module) -> Iterator[DeclaredFunction]:
    """Functions directly in the module body or in a top-level class body."""
    for stmt in tree.body:
        if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
            yield DeclaredFunction(stmt, None)
        elif isinstance(stmt, ast.ClassDef):
            for item in stmt.body:
                if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)):
                    yield DeclaredFunction(item, stmt.name)


def decorator_names(node: FunctionNode) -> set[str]:
    names: set[str] = set()
    for decorator in node.decorator_list:
        target = decorator.func if isinstance(decorator, ast.Call) else decorator
        if isinstance(target, ast.Name):
            names.add(target.id)
        elif isinstance(target, ast.Attribute):
            names.add(target.attr)
    return names


def receiver_kind(node: FunctionNode, class_name: str | None) -> str | None:
    """``"instance"``, ``"class"`` or ``None`` when no receiver is bound."""
    if class_name is None:
        return None
    decorators = decorator_names(node)
    if "staticmethod" in decorators:
        return None
    if "classmethod" in decorators or node.name in {"__new__", "__init_subclass__", "__class_getitem__"}:
        return "class"
    return "instance"


@dataclass(frozen=True)
class SignatureParameter:
    parameter: AnalyzedParameter
    arg: ast.arg
    default: ast.expr | None


def signature_parameters(node: FunctionNode, class_name: str | None) -> tuple[list[SignatureParameter], ast.arg | None]:
    """Slot parameters of ``node`` in declaration order and the bound receiver, if any."""
    args = node.args
    positional = [*args.posonlyargs, *args.args]
    defaults: list[ast.expr | None] = [None] * (len(positional) - len(args.defaults)) + list(args.defaults)
    entries: list[tuple[ast.arg, ParameterKind, ast.expr | None]] = []
    for index, arg in enumerate(positional):
        kind = ParameterKind.POSITIONAL_ONLY if index < len(args.posonlyargs) else ParameterKind.POSITIONAL_OR_KEYWORD
        entries.append((arg, kind, defaults[index]))
    if args.vararg is not None:
        entries.append((args.vararg, ParameterKind.VAR_POSITIONAL, None))
    for arg, default in zip(args.kwonlyargs, args.kw_defaults):
        entries.append((arg, ParameterKind.KEYWORD_ONLY, default))
    if args.kwarg is not None:
        entries.append((args.kwarg, ParameterKind.VAR_KEYWORD, None))
    receiver: ast.arg | None = None
    if receiver_kind(node, class_name) is not None and entries and entries[0][1] in (
        ParameterKind.POSITIONAL_ONLY,
        ParameterKind.POSITIONAL_OR_KEYWORD,
    ):
        receiver = entries.pop(0)[0]
    params = [
        SignatureParameter(
            parameter=AnalyzedParameter(
                name=arg.arg,
                position=position,
                kind=kind,
                has_default=default is not None,
                none_default=isinstance(default, ast.Constant) and default.value is None,
            ),
            arg=arg,
            default=default,
        )
        for position, (arg, kind, default) in enumerate(entries)
    ]
    return params, receiver


def module_bindings(tree: ast.Module, path: Path, project_root: Path | None) -> ModuleBindings:
    return collect_bindings(
        tree,
        module_name(path, project_root),
        is_package=path.name == "__init__.py",
    )


class TypeNameResolver:
    """Maps a class name as written in a module to its qualified name."""

    def __init__(
        self,
        bindings: ModuleBindings,
        *,
        known_classes: set[str] | frozenset[str] | None = None,
        catalog: SourceCatalog | None = None,
    ) -> None:
        self.bindings = bindings
        self.known_classes = known_classes
        self.catalog = catalog

    def __call__(self, name: str) -> str | None:
        head = name.split(".", 1)[0]
        if head in self.bindings.functions and head not in self.bindings.classes:
            return None
        qualified = self.bindings.resolve(name)
        if qualified is not None:
            return qualified
        if self.catalog is not None:
            return self.catalog.lookup(name)
        if self.known_classes is not None and name in self.known_classes:
            return name
        return None


def make_evidence(
    identity: FunctionIdentity, slot: Slot, inferred: InferredType, kind: SourceKind
) -> Evidence:
    return Evidence(slot_key=SlotKey(identity, slot), inferred_type=inferred, source_kind=kind)
