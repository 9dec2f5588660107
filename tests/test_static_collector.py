from __future__ import annotations

from pathlib import Path

from typeinference.analysis.model import RETURN_SLOT, FunctionIdentity, SourceKind
from typeinference.analysis.pipeline import collect
from typeinference.analysis.registry import AnalyzedFunctionCollection
from typeinference.config import build_settings


def _collect(root: Path, *sources: str) -> AnalyzedFunctionCollection:
    settings = build_settings(root, overrides={"sources": list(sources or ("static",))})
    return collect(settings).registry


def _types(registry: AnalyzedFunctionCollection, identity: FunctionIdentity, slot, kind: SourceKind) -> set[str]:
    function = registry.get(identity)
    return {item.inferred_type.render() for item in function.evidence_for(slot) if item.source_kind is kind}


STATIC = SourceKind.STATIC_CALL_ANALYSIS


def test_literal_arguments_across_modules(write_project) -> None:
    root = write_project(
        {
            "pkg/__init__.py": "",
            "pkg/core.py": """
                def f(a, b):
                    return a
            """,
            "pkg/use.py": """
                from pkg.core import f
                from pkg import core

                f(1, "x")

                def g():
                    f(2, b="y")
                    core.f(a=3.5, b=None)
            """,
        }
    )
    registry = _collect(root)
    f = FunctionIdentity("pkg.core", None, "f")
    assert registry.get(f).declared
    assert _types(registry, f, 0, STATIC) == {"int", "float"}
    assert _types(registry, f, 1, STATIC) == {"str", "None"}
    assert _types(registry, f, RETURN_SLOT, STATIC) == set()


def test_shadowed_names_are_not_resolved(write_project) -> None:
    root = write_project(
        {
            "pkg/__init__.py": "",
            "pkg/core.py": """
                def f(a):
                    return a
            """,
            "pkg/use.py": """
                from pkg.core import f

                def g(f):
                    f(1)

                def h():
                    f = print
                    f("x")
            """,
        }
    )
    registry = _collect(root)
    assert _types(registry, FunctionIdentity("pkg.core", None, "f"), 0, STATIC) == set()


def test_methods_constructors_and_receivers(write_project) -> None:
    root = write_project(
        {
            "app/models.py": """
                class Base:
                    def save(self, force):
                        pass

                class User(Base):
                    def __init__(self, name):
                        self.name = name

                    def rename(self, name):
                        self.save(True)
                        return self

                    @classmethod
                    def build(cls, name):
                        return cls(name)

                    @staticmethod
                    def check(value):
                        return bool(value)

                user = User("ann")
                user.rename("bob")
                User.rename(user, "carl")
                User.check(3)
            """,
        }
    )
    registry = _collect(root)
    assert _types(registry, FunctionIdentity("app.models", "User", "__init__"), 0, STATIC) == {"str"}
    assert _types(registry, FunctionIdentity("app.models", "User", "rename"), 0, STATIC) == {"str"}
    assert _types(registry, FunctionIdentity("app.models", "User", "check"), 0, STATIC) == {"int"}
    assert _types(registry, FunctionIdentity("app.models", "Base", "save"), 0, STATIC) == {"bool"}
    assert _types(registry, FunctionIdentity("app.models", "User", "rename"), RETURN_SLOT, STATIC) == {
        "app.models.User"
    }
    assert _types(registry, FunctionIdentity("app.models", "User", "check"), RETURN_SLOT, STATIC) == {"bool"}
    assert registry.class_bases()["app.models.User"] == ("app.models.Base",)


def test_return_statements(write_project) -> None:
    root = write_project(
        {
            "calc.py": """
                def answer():
                    return 42

                def maybe(flag):
                    if flag:
                        return "yes"

                def explicit(flag):
                    if flag:
                        return 1.5
                    return None

                def nothing():
                    print("side effect")

                def fails():
                    raise RuntimeError("no")

                def count(items) -> int:
                    return len(items)

                def total(items):
                    return count(items) + 1

                def numbers():
                    yield 1

                def unknown(value):
                    return value.attribute
            """,
        }
    )
    registry = _collect(root)

    def returns(name: str) -> set[str]:
        return _types(registry, FunctionIdentity("calc", None, name), RETURN_SLOT, STATIC)

    assert returns("answer") == {"int"}
    assert returns("maybe") == {"str | None"}
    assert returns("explicit") == {"float | None"}
    assert returns("nothing") == {"None"}
    assert returns("fails") == set()
    assert returns("count") == set()
    assert returns("total") == {"int"}
    assert returns("numbers") == set()
    assert returns("unknown") == set()


def test_defaults_and_existing_annotations(write_project) -> None:
    root = write_project(
        {
            "opts.py": """
                def configure(path: str, retries=3, *, verbose=False, name=None) -> None:
                    pass
            """,
        }
    )
    registry = _collect(root)
    identity = FunctionIdentity("opts", None, "configure")
    function = registry.get(identity)
    assert [param.name for param in function.parameters] == ["path", "retries", "verbose", "name"]
    assert _types(registry, identity, 0, SourceKind.EXISTING_TYPE_HINT) == {"str"}
    assert _types(registry, identity, RETURN_SLOT, SourceKind.EXISTING_TYPE_HINT) == {"None"}
    assert _types(registry, identity, 1, STATIC) == {"int"}
    assert _types(registry, identity, 2, STATIC) == {"bool"}
    assert _types(registry, identity, 3, STATIC) == {"None"}
    assert function.explicit_slots == frozenset({0, RETURN_SLOT})

    without_static = _collect(root, "docblock").get(identity)
    assert without_static.evidence_for(1) == ()
    assert [param.none_default for param in without_static.parameters] == [False, False, False, True]


def test_local_variables_and_annotated_assignments(write_project) -> None:
    root = write_project(
        {
            "flow.py": """
                def load(key):
                    pass

                def store(key, value):
                    pass

                def main(items: list[str]):
                    key = "k" + str(len(items))
                    values = [1, 2, 3]
                    result: dict[str, int] = load(key)
                    for item in items:
                        store(item, values)
            """,
        }
    )
    registry = _collect(root)
    assert _types(registry, FunctionIdentity("flow", None, "load"), 0, STATIC) == {"str"}
    assert _types(registry, FunctionIdentity("flow", None, "load"), RETURN_SLOT, STATIC) == {
        "dict[str, int]",
        "None",
    }
    assert _types(registry, FunctionIdentity("flow", None, "store"), 1, STATIC) == {"list[int]"}
    # loop variables are opaque
    assert _types(registry, FunctionIdentity("flow", None, "store"), 0, STATIC) == set()


def test_parse_failures_are_reported_not_fatal(write_project) -> None:
    root = write_project(
        {
            "good.py": """
                def ok():
                    return 1
            """,
            "bad.py": "def broken(:\n",
        }
    )
    settings = build_settings(root, overrides={"sources": ["static"]})
    result = collect(settings)
    assert result.files_scanned == 2
    assert [failure.path.name for failure in result.parse_failures] == ["bad.py"]
    assert result.parse_failures[0].stage == "parse"
    assert result.registry.frozen
