from __future__ import annotations

import datetime

import pytest

from typeinference.analysis.model import InferredType
from typeinference.analysis.types import (
    common_ancestor,
    is_portable,
    parse_type_expression,
    qualified_names_in,
    render_type,
    type_of_value,
)
from typeinference.exceptions import UnboundTypeName


def _resolve(name: str) -> str | None:
    return {"User": "app.models.User", "models.User": "app.models.User"}.get(name)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("int", InferredType.of("int")),
        ("string", InferredType.of("str")),
        ("Optional[int]", InferredType.of("int", nullable=True)),
        ("int or None", InferredType.of("int", nullable=True)),
        ("Union[int, str]", InferredType.of("int", "str")),
        ("int | str | None", InferredType.of("int", "str", nullable=True)),
        ("List[int]", InferredType.of("list[int]")),
        ("list of str", InferredType.of("list[str]")),
        ("str[]", InferredType.of("list[str]")),
        ("Dict[str, int]", InferredType.of("dict[str, int]")),
        ("Tuple[int, str]", InferredType.of("tuple")),
        ("typing.List[User]", InferredType.of("list[app.models.User]")),
        ("User", InferredType.of("app.models.User")),
        ("'User'", InferredType.of("app.models.User")),
        ("None", InferredType.none()),
    ],
)
def test_parse_type_expression(text: str, expected: InferredType) -> None:
    assert parse_type_expression(text, _resolve) == expected


@pytest.mark.parametrize("text", ["Any", "object", "Unknown", "Callable[[int], str]", "", "int | Any"])
def test_parse_type_expression_rejects_uninformative_text(text: str) -> None:
    assert parse_type_expression(text, _resolve) is None


def test_generic_with_unknown_argument_falls_back_to_base() -> None:
    assert parse_type_expression("list[Unknown]", _resolve) == InferredType.of("list")


def test_render_type_styles() -> None:
    inferred = InferredType.of("str", "int", nullable=True)
    assert render_type(inferred) == "int | str | None"
    assert render_type(inferred, style="typing") == "Optional[Union[int, str]]"
    assert render_type(InferredType.of("int", nullable=True), style="typing") == "Optional[int]"
    assert render_type(InferredType.none()) == "None"


def test_render_type_binds_qualified_names() -> None:
    inferred = InferredType.of("list[app.models.User]")
    assert render_type(inferred, bind=lambda name: "User") == "list[User]"
    with pytest.raises(UnboundTypeName) as excinfo:
        render_type(inferred, bind=lambda name: None)
    assert excinfo.value.name == "app.models.User"


def test_qualified_names_and_portability() -> None:
    assert qualified_names_in("dict[str, app.models.User]") == ["app.models.User"]
    assert is_portable(InferredType.of("dict[str, app.models.User]"))
    assert not is_portable(InferredType.of("User"))


def test_common_ancestor_uses_class_bases_and_numeric_promotion() -> None:
    bases = {
        "app.models.Admin": ("app.models.User",),
        "app.models.Guest": ("app.models.User",),
        "app.models.User": ("app.base.Model",),
    }
    assert common_ancestor(frozenset({"app.models.Admin", "app.models.Guest"}), bases) == "app.models.User"
    assert common_ancestor(frozenset({"app.models.Admin", "app.base.Model"}), bases) == "app.base.Model"
    assert common_ancestor(frozenset({"bool", "int"}), {}) == "int"
    assert common_ancestor(frozenset({"int", "float"}), {}) == "float"
    assert common_ancestor(frozenset({"int", "str"}), {}) is None


def test_type_of_value() -> None:
    assert type_of_value(3) == InferredType.of("int")
    assert type_of_value(None) == InferredType.none()
    assert type_of_value([1, 2]) == InferredType.of("list[int]")
    assert type_of_value([1, "a"]) == InferredType.of("list")
    assert type_of_value({"a": 1}) == InferredType.of("dict[str, int]")
    assert type_of_value((1, 2)) == InferredType.of("tuple")
    assert type_of_value(datetime.date(2024, 1, 1)) == InferredType.of("datetime.date")
    assert type_of_value(lambda: None) is None
