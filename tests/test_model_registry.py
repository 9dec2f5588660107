from __future__ import annotations

import threading

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
    slot_label,
)
from typeinference.analysis.registry import AnalyzedFunctionCollection
from typeinference.exceptions import FunctionNotFound, RegistryFrozen

IDENTITY = FunctionIdentity("pkg.mod", "Service", "handle")


def _evidence(slot, inferred: InferredType, kind: SourceKind = SourceKind.STATIC_CALL_ANALYSIS) -> Evidence:
    return Evidence(slot_key=SlotKey(IDENTITY, slot), inferred_type=inferred, source_kind=kind)


def test_inferred_type_folds_none_into_nullable() -> None:
    inferred = InferredType.of("int", "None")
    assert inferred.names == frozenset({"int"})
    assert inferred.nullable is True
    assert inferred.render() == "int | None"
    assert InferredType.none().is_none
    assert InferredType().is_empty


def test_inferred_type_union_ors_nullability() -> None:
    merged = InferredType.of("int").union(InferredType.of("int", nullable=True))
    assert merged == InferredType.of("int", nullable=True)
    assert merged.arity == 1


def test_function_identity_parse_forms() -> None:
    assert FunctionIdentity.parse("pkg.mod:run") == FunctionIdentity("pkg.mod", None, "run")
    assert FunctionIdentity.parse("pkg.mod:Service.handle") == IDENTITY
    assert str(IDENTITY) == "pkg.mod:Service.handle"
    with pytest.raises(ValueError):
        FunctionIdentity.parse("pkg.mod.run")
    with pytest.raises(ValueError):
        FunctionIdentity.parse("pkg.mod:Outer.Inner.run")


def test_slot_labels() -> None:
    assert slot_label(0) == "param[0]"
    assert slot_label(RETURN_SLOT) == "return"


def test_insert_is_idempotent_per_type_and_source() -> None:
    registry = AnalyzedFunctionCollection()
    assert registry.insert(_evidence(0, InferredType.of("int"))) is True
    assert registry.insert(_evidence(0, InferredType.of("int"))) is False
    assert registry.insert(_evidence(0, InferredType.of("int"), SourceKind.DOCBLOCK)) is True
    assert registry.insert(_evidence(0, InferredType.of("str"))) is True
    items = registry.get(IDENTITY).evidence_for(0)
    assert [(item.inferred_type.render(), item.source_kind) for item in items] == [
        ("int", SourceKind.STATIC_CALL_ANALYSIS),
        ("int", SourceKind.DOCBLOCK),
        ("str", SourceKind.STATIC_CALL_ANALYSIS),
    ]


def test_insert_assigns_rank_from_precedence() -> None:
    registry = AnalyzedFunctionCollection(
        (
            SourceKind.DYNAMIC_TRACE,
            SourceKind.DOCBLOCK,
            SourceKind.STATIC_CALL_ANALYSIS,
            SourceKind.SCHEMA_INFERENCE,
        )
    )
    registry.insert(_evidence(RETURN_SLOT, InferredType.of("int"), SourceKind.DYNAMIC_TRACE))
    registry.insert(_evidence(RETURN_SLOT, InferredType.of("int"), SourceKind.EXISTING_TYPE_HINT))
    ranks = {item.source_kind: item.confidence_rank for item in registry.get(IDENTITY).evidence_for(RETURN_SLOT)}
    assert ranks == {SourceKind.DYNAMIC_TRACE: 1, SourceKind.EXISTING_TYPE_HINT: 0}


def test_declare_keeps_first_declaration_and_fills_placeholders() -> None:
    registry = AnalyzedFunctionCollection()
    registry.insert(_evidence(0, InferredType.of("int")))
    placeholder = registry.get(IDENTITY)
    assert not placeholder.declared

    declared = registry.declare(
        AnalyzedFunction(
            identity=IDENTITY,
            parameters=(AnalyzedParameter("value", 0),),
            file_path="pkg/mod.py",
        )
    )
    assert declared is placeholder
    assert declared.declared
    assert declared.evidence_for(0)

    again = registry.declare(AnalyzedFunction(identity=IDENTITY, file_path="other/mod.py"))
    assert again.file_path == "pkg/mod.py"
    assert again.parameter_index("value") == 0


def test_frozen_registry_rejects_writes() -> None:
    registry = AnalyzedFunctionCollection()
    registry.freeze()
    with pytest.raises(RegistryFrozen):
        registry.insert(_evidence(0, InferredType.of("int")))
    with pytest.raises(RegistryFrozen):
        registry.declare_class("pkg.mod.Service", ())


def test_get_unknown_function_raises() -> None:
    registry = AnalyzedFunctionCollection()
    assert registry.find(IDENTITY) is None
    with pytest.raises(FunctionNotFound):
        registry.get(IDENTITY)


def test_concurrent_inserts_keep_one_copy() -> None:
    registry = AnalyzedFunctionCollection()
    barrier = threading.Barrier(8)

    def worker(name: str) -> None:
        barrier.wait()
        for _ in range(50):
            registry.insert(_evidence(0, InferredType.of("int")))
            registry.insert(_evidence(0, InferredType.of(name)))

    threads = [threading.Thread(target=worker, args=(f"pkg.T{index}",)) for index in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    names = [item.inferred_type.render() for item in registry.get(IDENTITY).evidence_for(0)]
    assert sorted(names) == sorted(["int", *(f"pkg.T{index}" for index in range(8))])


def test_snapshot_lists_evidence_by_slot() -> None:
    registry = AnalyzedFunctionCollection()
    registry.declare(
        AnalyzedFunction(identity=IDENTITY, parameters=(AnalyzedParameter("value", 0),), file_path="pkg/mod.py")
    )
    registry.insert(_evidence(0, InferredType.of("int")))
    registry.declare_class("pkg.mod.Service", ("pkg.base.Base",))
    snapshot = registry.snapshot()
    entry = snapshot["functions"]["pkg.mod:Service.handle"]
    assert entry["parameters"] == ["value"]
    assert entry["evidence"]["param[0]"][0]["type"] == "int"
    assert snapshot["classes"] == {"pkg.mod.Service": ["pkg.base.Base"]}
