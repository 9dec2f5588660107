from __future__ import annotations

import pytest

from typeinference.analysis.model import (
    RETURN_SLOT,
    AnalyzedFunction,
    AnalyzedParameter,
    Evidence,
    FunctionIdentity,
    InferredType,
    SlotKey,
    SourceKind,
)
from typeinference.analysis.registry import AnalyzedFunctionCollection
from typeinference.exceptions import ConfigurationError
from typeinference.resolution import ResolutionStatus, TypeResolver

IDENTITY = FunctionIdentity("app.service", None, "handle")
KEY = SlotKey(IDENTITY, 0)


def _evidence(inferred: InferredType, kind: SourceKind) -> Evidence:
    return Evidence(slot_key=KEY, inferred_type=inferred, source_kind=kind)


def test_existing_annotation_always_wins() -> None:
    resolver = TypeResolver()
    slot = resolver.resolve_slot(
        KEY,
        [
            _evidence(InferredType.of("str"), SourceKind.DOCBLOCK),
            _evidence(InferredType.of("int"), SourceKind.EXISTING_TYPE_HINT),
        ],
    )
    assert slot.status is ResolutionStatus.ALREADY_TYPED
    assert slot.inferred_type == InferredType.of("int")
    assert not slot.is_inferred


def test_highest_precedence_source_decides_alone() -> None:
    evidence = [
        _evidence(InferredType.of("str"), SourceKind.DYNAMIC_TRACE),
        _evidence(InferredType.of("int"), SourceKind.STATIC_CALL_ANALYSIS),
    ]
    slot = TypeResolver().resolve_slot(KEY, evidence)
    assert slot.status is ResolutionStatus.RESOLVED
    assert slot.inferred_type == InferredType.of("int")
    assert slot.source_kind is SourceKind.STATIC_CALL_ANALYSIS

    trace_first = TypeResolver(
        (
            SourceKind.DYNAMIC_TRACE,
            SourceKind.DOCBLOCK,
            SourceKind.STATIC_CALL_ANALYSIS,
            SourceKind.SCHEMA_INFERENCE,
        )
    )
    assert trace_first.resolve_slot(KEY, evidence).inferred_type == InferredType.of("str")


def test_same_source_nullability_is_merged() -> None:
    slot = TypeResolver().resolve_slot(
        KEY,
        [
            _evidence(InferredType.of("int"), SourceKind.STATIC_CALL_ANALYSIS),
            _evidence(InferredType.of("int", nullable=True), SourceKind.STATIC_CALL_ANALYSIS),
        ],
    )
    assert slot.status is ResolutionStatus.RESOLVED
    assert slot.inferred_type == InferredType.of("int", nullable=True)


def test_disagreement_within_a_source_is_unresolved() -> None:
    slot = TypeResolver(max_arity=1).resolve_slot(
        KEY,
        [
            _evidence(InferredType.of("int"), SourceKind.STATIC_CALL_ANALYSIS),
            _evidence(InferredType.of("str"), SourceKind.STATIC_CALL_ANALYSIS),
        ],
    )
    assert slot.status is ResolutionStatus.UNRESOLVED
    assert slot.inferred_type == InferredType.of("int", "str")


def test_wider_arity_allows_unions() -> None:
    slot = TypeResolver(max_arity=2).resolve_slot(
        KEY,
        [
            _evidence(InferredType.of("int"), SourceKind.STATIC_CALL_ANALYSIS),
            _evidence(InferredType.of("str"), SourceKind.STATIC_CALL_ANALYSIS),
        ],
    )
    assert slot.status is ResolutionStatus.RESOLVED
    assert slot.inferred_type.render() == "int | str"


def test_disagreement_collapses_to_common_ancestor() -> None:
    resolver = TypeResolver(
        class_bases={"app.models.Admin": ("app.models.User",), "app.models.Guest": ("app.models.User",)}
    )
    slot = resolver.resolve_slot(
        KEY,
        [
            _evidence(InferredType.of("app.models.Admin"), SourceKind.DOCBLOCK),
            _evidence(InferredType.of("app.models.Guest", nullable=True), SourceKind.DOCBLOCK),
        ],
    )
    assert slot.status is ResolutionStatus.RESOLVED
    assert slot.inferred_type == InferredType.of("app.models.User", nullable=True)


def test_no_evidence() -> None:
    slot = TypeResolver().resolve_slot(KEY, [])
    assert slot.status is ResolutionStatus.NO_EVIDENCE
    assert slot.inferred_type is None


def test_invalid_resolver_configuration() -> None:
    with pytest.raises(ConfigurationError):
        TypeResolver(max_arity=0)
    with pytest.raises(ConfigurationError):
        TypeResolver((SourceKind.EXISTING_TYPE_HINT, SourceKind.DOCBLOCK))


def test_resolve_all_covers_declared_functions_of_a_frozen_registry() -> None:
    registry = AnalyzedFunctionCollection()
    registry.declare(
        AnalyzedFunction(
            identity=IDENTITY,
            parameters=(AnalyzedParameter("value", 0), AnalyzedParameter("flag", 1)),
            file_path="app/service.py",
        )
    )
    registry.insert(_evidence(InferredType.of("int"), SourceKind.STATIC_CALL_ANALYSIS))
    registry.insert(
        Evidence(
            slot_key=SlotKey(FunctionIdentity("app.other", None, "undeclared"), 0),
            inferred_type=InferredType.of("int"),
            source_kind=SourceKind.DYNAMIC_TRACE,
        )
    )
    resolver = TypeResolver.for_registry(registry)
    with pytest.raises(ConfigurationError):
        resolver.resolve_all(registry)

    registry.freeze()
    resolved = resolver.resolve_all(registry)
    assert [entry.function.identity for entry in resolved] == [IDENTITY]
    statuses = {slot.slot_key.slot: slot.status for slot in resolved[0]}
    assert statuses == {
        0: ResolutionStatus.RESOLVED,
        1: ResolutionStatus.NO_EVIDENCE,
        RETURN_SLOT: ResolutionStatus.NO_EVIDENCE,
    }
