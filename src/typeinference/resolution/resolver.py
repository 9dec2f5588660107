"""Evidence to a single type per slot.

Existing annotations always win. Otherwise the highest-precedence source
that has anything to say decides alone: its evidence is unioned, and a union
wider than ``max_arity`` collapses to the nearest common ancestor or, failing
that, is left unresolved.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Iterator, Mapping, Sequence

from typeinference.analysis.model import (
    DEFAULT_PRECEDENCE,
    AnalyzedFunction,
    Evidence,
    InferredType,
    SlotKey,
    SourceKind,
)
from typeinference.analysis.registry import AnalyzedFunctionCollection
from typeinference.analysis.types import common_ancestor
from typeinference.exceptions import ConfigurationError


class ResolutionStatus(StrEnum):
    RESOLVED = "resolved"
    ALREADY_TYPED = "already-typed"
    UNRESOLVED = "unresolved"
    NO_EVIDENCE = "no-evidence"


@dataclass(frozen=True)
class ResolvedSlot:
    slot_key: SlotKey
    status: ResolutionStatus
    inferred_type: InferredType | None = None
    source_kind: SourceKind | None = None

    @property
    def is_inferred(self) -> bool:
        return self.status is ResolutionStatus.RESOLVED


@dataclass(frozen=True)
class ResolvedFunction:
    function: AnalyzedFunction
    slots: tuple[ResolvedSlot, ...]

    def __iter__(self) -> Iterator[ResolvedSlot]:
        return iter(self.slots)


class TypeResolver:
    def __init__(
        self,
        precedence: Sequence[SourceKind] = DEFAULT_PRECEDENCE,
        *,
        max_arity: int = 1,
        class_bases: Mapping[str, tuple[str, ...]] | None = None,
    ) -> None:
        if max_arity < 1:
            raise ConfigurationError(f"max_arity must be positive, got {max_arity}")
        if SourceKind.EXISTING_TYPE_HINT in precedence:
            raise ConfigurationError("Existing type hints cannot be ranked")
        self.precedence = tuple(precedence)
        self.max_arity = max_arity
        self.class_bases = dict(class_bases or {})

    def resolve_slot(self, slot_key: SlotKey, evidence: Sequence[Evidence]) -> ResolvedSlot:
        for item in evidence:
            if item.source_kind is SourceKind.EXISTING_TYPE_HINT:
                return ResolvedSlot(slot_key, ResolutionStatus.ALREADY_TYPED, item.inferred_type, item.source_kind)
        for kind in self.precedence:
            tier = [item.inferred_type for item in evidence if item.source_kind is kind]
            if not tier:
                continue
            merged = InferredType.union_all(tier)
            if merged.arity > self.max_arity:
                ancestor = common_ancestor(merged.names, self.class_bases)
                if ancestor is None:
                    return ResolvedSlot(slot_key, ResolutionStatus.UNRESOLVED, merged, kind)
                merged = merged.with_names([ancestor])
            return ResolvedSlot(slot_key, ResolutionStatus.RESOLVED, merged, kind)
        return ResolvedSlot(slot_key, ResolutionStatus.NO_EVIDENCE)

    def resolve(self, function: AnalyzedFunction) -> ResolvedFunction:
        slots = tuple(
            self.resolve_slot(SlotKey(function.identity, slot), function.evidence_for(slot))
            for slot in function.slots()
        )
        return ResolvedFunction(function, slots)

    def resolve_all(self, registry: AnalyzedFunctionCollection) -> list[ResolvedFunction]:
        if not registry.frozen:
            raise ConfigurationError("Resolve only after evidence collection has finished")
        if not self.class_bases:
            self.class_bases = registry.class_bases()
        return [self.resolve(function) for function in registry.get_all() if function.declared]

    @classmethod
    def for_registry(
        cls,
        registry: AnalyzedFunctionCollection,
        precedence: Sequence[SourceKind] = DEFAULT_PRECEDENCE,
        *,
        max_arity: int = 1,
    ) -> TypeResolver:
        return cls(precedence, max_arity=max_arity, class_bases=registry.class_bases())
