from __future__ import annotations

import threading
from dataclasses import replace
from typing import Iterable, Sequence

from typeinference.analysis.model import (
    DEFAULT_PRECEDENCE,
    AnalyzedFunction,
    Evidence,
    FunctionIdentity,
    SourceKind,
    slot_label,
)
from typeinference.exceptions import FunctionNotFound, RegistryFrozen


class AnalyzedFunctionCollection:
    """Evidence store keyed by function identity.

    Collectors only ever add to it: inserting evidence for an existing slot
    appends, and an ``(InferredType, SourceKind)`` pair already present on the
    slot is ignored. Writes are serialized on a single lock so collectors may
    run on worker threads; reads happen after :meth:`freeze`, once every
    collector is done.
    """

    def __init__(self, precedence: Sequence[SourceKind] = DEFAULT_PRECEDENCE) -> None:
        self._functions: dict[FunctionIdentity, AnalyzedFunction] = {}
        self._class_bases: dict[str, tuple[str, ...]] = {}
        self._ranks = {kind: index + 1 for index, kind in enumerate(precedence)}
        self._ranks[SourceKind.EXISTING_TYPE_HINT] = 0
        self._lock = threading.Lock()
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> AnalyzedFunctionCollection:
        with self._lock:
            self._frozen = True
        return self

    def _check_writable(self) -> None:
        if self._frozen:
            raise RegistryFrozen("Registry is read-only once collection has finished")

    def confidence_rank(self, source_kind: SourceKind) -> int:
        return self._ranks.get(source_kind, len(self._ranks))

    def declare(self, function: AnalyzedFunction) -> AnalyzedFunction:
        """Register a declaration; the first declaration of an identity wins."""
        with self._lock:
            self._check_writable()
            existing = self._functions.get(function.identity)
            if existing is None:
                self._functions[function.identity] = function
                return function
            if not existing.declared:
                existing.parameters = function.parameters
                existing.file_path = function.file_path
                existing.receiver = function.receiver
                existing.has_docblock = function.has_docblock
                existing.documented_params = function.documented_params
                existing.documents_return = function.documents_return
            return existing

    def declare_class(self, qualified_name: str, bases: Iterable[str]) -> None:
        with self._lock:
            self._check_writable()
            self._class_bases.setdefault(qualified_name, tuple(bases))

    def insert(self, evidence: Evidence) -> bool:
        identity = evidence.slot_key.identity
        ranked = replace(evidence, confidence_rank=self.confidence_rank(evidence.source_kind))
        with self._lock:
            self._check_writable()
            function = self._functions.get(identity)
            if function is None:
                function = AnalyzedFunction(identity=identity)
                self._functions[identity] = function
            bucket = function.evidence.setdefault(evidence.slot_key.slot, [])
            if any(item.dedup_key == ranked.dedup_key for item in bucket):
                return False
            bucket.append(ranked)
            return True

    def get(self, identity: FunctionIdentity) -> AnalyzedFunction:
        function = self._functions.get(identity)
        if function is None:
            raise FunctionNotFound(identity)
        return function

    def find(self, identity: FunctionIdentity) -> AnalyzedFunction | None:
        return self._functions.get(identity)

    def __contains__(self, identity: object) -> bool:
        return identity in self._functions

    def __len__(self) -> int:
        return len(self._functions)

    def get_all(self) -> tuple[AnalyzedFunction, ...]:
        return tuple(self._functions.values())

    def class_bases(self) -> dict[str, tuple[str, ...]]:
        return dict(self._class_bases)

    def snapshot(self) -> dict[str, object]:
        functions: dict[str, object] = {}
        for function in self._functions.values():
            slots: dict[str, object] = {}
            for slot in function.slots():
                items = function.evidence_for(slot)
                if not items:
                    continue
                slots[slot_label(slot)] = [
                    {
                        "type": item.inferred_type.render(),
                        "source": item.source_kind.value,
                        "rank": item.confidence_rank,
                    }
                    for item in items
                ]
            functions[str(function.identity)] = {
                "path": function.file_path,
                "parameters": [param.name for param in function.parameters],
                "evidence": slots,
            }
        return {"functions": functions, "classes": {k: list(v) for k, v in self._class_bases.items()}}
