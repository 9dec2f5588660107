from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, StrEnum
from typing import Iterable, TypeAlias


class SourceKind(StrEnum):
    EXISTING_TYPE_HINT = "existing-type-hint"
    DOCBLOCK = "docblock"
    STATIC_CALL_ANALYSIS = "static-call-analysis"
    DYNAMIC_TRACE = "dynamic-trace"
    SCHEMA_INFERENCE = "schema-inference"


DEFAULT_PRECEDENCE: tuple[SourceKind, ...] = (
    SourceKind.DOCBLOCK,
    SourceKind.STATIC_CALL_ANALYSIS,
    SourceKind.SCHEMA_INFERENCE,
    SourceKind.DYNAMIC_TRACE,
)


class ReturnSlot(Enum):
    RETURN = "return"

    def __repr__(self) -> str:
        return "RETURN_SLOT"


RETURN_SLOT = ReturnSlot.RETURN
Slot: TypeAlias = int | ReturnSlot


def slot_label(slot: Slot) -> str:
    if slot is RETURN_SLOT:
        return "return"
    return f"param[{slot}]"


@dataclass(frozen=True)
class FunctionIdentity:
    namespace: str
    class_name: str | None
    function_name: str

    @property
    def qualname(self) -> str:
        if self.class_name:
            return f"{self.class_name}.{self.function_name}"
        return self.function_name

    @property
    def sort_key(self) -> tuple[str, str, str]:
        return (self.namespace, self.class_name or "", self.function_name)

    @property
    def is_method(self) -> bool:
        return self.class_name is not None

    @classmethod
    def parse(cls, text: str) -> FunctionIdentity:
        """Parse the ``module:Class.function`` form used by trace and schema files."""
        module, sep, qualname = text.strip().partition(":")
        if not sep or not module or not qualname:
            raise ValueError(f"Expected 'module:qualname', got {text!r}")
        parts = qualname.split(".")
        if len(parts) == 1:
            return cls(module, None, parts[0])
        if len(parts) == 2:
            return cls(module, parts[0], parts[1])
        raise ValueError(f"Nested qualified names are not supported: {text!r}")

    def __str__(self) -> str:
        return f"{self.namespace}:{self.qualname}"


@dataclass(frozen=True)
class SlotKey:
    identity: FunctionIdentity
    slot: Slot

    @property
    def is_return(self) -> bool:
        return self.slot is RETURN_SLOT

    def __str__(self) -> str:
        return f"{self.identity}#{slot_label(self.slot)}"


_NONE_NAMES = frozenset({"None", "NoneType", "null", "void"})


@dataclass(frozen=True)
class InferredType:
    """A set of concrete type names plus a nullability flag.

    Names are builtins (``int``), generic containers (``list[int]``) or fully
    qualified class names (``pkg.mod.Model``). ``None`` is never kept as a
    name; it folds into ``nullable``.
    """

    names: frozenset[str] = frozenset()
    nullable: bool = False

    def __post_init__(self) -> None:
        cleaned = {str(name).strip() for name in self.names}
        cleaned.discard("")
        nullable = self.nullable or bool(cleaned & _NONE_NAMES)
        object.__setattr__(self, "names", frozenset(cleaned - _NONE_NAMES))
        object.__setattr__(self, "nullable", bool(nullable))

    @classmethod
    def of(cls, *names: str, nullable: bool = False) -> InferredType:
        return cls(frozenset(names), nullable)

    @classmethod
    def none(cls) -> InferredType:
        return cls(frozenset(), True)

    def union(self, other: InferredType) -> InferredType:
        return InferredType(self.names | other.names, self.nullable or other.nullable)

    @classmethod
    def union_all(cls, types: Iterable[InferredType]) -> InferredType:
        result = cls()
        for item in types:
            result = result.union(item)
        return result

    def with_names(self, names: Iterable[str]) -> InferredType:
        return InferredType(frozenset(names), self.nullable)

    @property
    def sorted_names(self) -> tuple[str, ...]:
        return tuple(sorted(self.names))

    @property
    def arity(self) -> int:
        return len(self.names)

    @property
    def is_none(self) -> bool:
        return not self.names and self.nullable

    @property
    def is_empty(self) -> bool:
        return not self.names and not self.nullable

    def render(self) -> str:
        parts = list(self.sorted_names)
        if self.nullable:
            parts.append("None")
        return " | ".join(parts)

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class Evidence:
    slot_key: SlotKey
    inferred_type: InferredType
    source_kind: SourceKind
    confidence_rank: int = 0

    @property
    def dedup_key(self) -> tuple[InferredType, SourceKind]:
        return (self.inferred_type, self.source_kind)


class ParameterKind(StrEnum):
    POSITIONAL_ONLY = "positional-only"
    POSITIONAL_OR_KEYWORD = "positional-or-keyword"
    VAR_POSITIONAL = "var-positional"
    KEYWORD_ONLY = "keyword-only"
    VAR_KEYWORD = "var-keyword"


@dataclass(frozen=True)
class AnalyzedParameter:
    name: str
    position: int
    kind: ParameterKind = ParameterKind.POSITIONAL_OR_KEYWORD
    has_default: bool = False
    none_default: bool = False

    @property
    def accepts_positional(self) -> bool:
        return self.kind in (
            ParameterKind.POSITIONAL_ONLY,
            ParameterKind.POSITIONAL_OR_KEYWORD,
        )

    @property
    def accepts_keyword(self) -> bool:
        return self.kind in (
            ParameterKind.POSITIONAL_OR_KEYWORD,
            ParameterKind.KEYWORD_ONLY,
        )


@dataclass(frozen=True)
class AnalyzedClass:
    namespace: str
    class_name: str | None
    full_path: str


@dataclass
class AnalyzedFunction:
    identity: FunctionIdentity
    parameters: tuple[AnalyzedParameter, ...] = ()
    file_path: str | None = None
    receiver: str | None = None
    has_docblock: bool = False
    documented_params: frozenset[str] = frozenset()
    documents_return: bool = False
    evidence: dict[Slot, list[Evidence]] = field(default_factory=dict)

    @property
    def declared(self) -> bool:
        return self.file_path is not None

    @property
    def analyzed_class(self) -> AnalyzedClass:
        return AnalyzedClass(
            namespace=self.identity.namespace,
            class_name=self.identity.class_name,
            full_path=self.file_path or "",
        )

    @property
    def explicit_slots(self) -> frozenset[Slot]:
        return frozenset(
            slot
            for slot, items in self.evidence.items()
            if any(item.source_kind is SourceKind.EXISTING_TYPE_HINT for item in items)
        )

    def is_explicit(self, slot: Slot) -> bool:
        return any(item.source_kind is SourceKind.EXISTING_TYPE_HINT for item in self.evidence_for(slot))

    def parameter(self, slot: Slot) -> AnalyzedParameter | None:
        if slot is RETURN_SLOT:
            return None
        if 0 <= slot < len(self.parameters):
            return self.parameters[slot]
        return None

    def parameter_index(self, name: str) -> int | None:
        for param in self.parameters:
            if param.name == name:
                return param.position
        return None

    def evidence_for(self, slot: Slot) -> tuple[Evidence, ...]:
        return tuple(self.evidence.get(slot, ()))

    def slots(self) -> tuple[Slot, ...]:
        indexes = {param.position for param in self.parameters}
        indexes.update(slot for slot in self.evidence if slot is not RETURN_SLOT)
        return (*sorted(indexes), RETURN_SLOT)

    def is_documented(self, slot: Slot) -> bool:
        if slot is RETURN_SLOT:
            return self.documents_return
        param = self.parameter(slot)
        return param is not None and param.name in self.documented_params
