from __future__ import annotations

import io
import json
import logging
import sqlite3
import textwrap
from pathlib import Path

import pytest

from typeinference.analysis.collectors import (
    SchemaAnalyzer,
    TraceRecorder,
    load_trace_records,
    python_type_for_sql,
)
from typeinference.analysis.collectors.schema import introspect_sqlite, load_schema_metadata
from typeinference.analysis.model import RETURN_SLOT, FunctionIdentity, SourceKind
from typeinference.analysis.pipeline import collect
from typeinference.config import build_settings
from typeinference.exceptions import ConfigurationError
from typeinference.schema import ColumnDTO, SchemaBindingDTO, TableDTO


def _evidence(registry, identity: FunctionIdentity, slot, kind: SourceKind) -> set[str]:
    return {item.inferred_type.render() for item in registry.get(identity).evidence_for(slot) if item.source_kind is kind}


def test_load_trace_records_skips_malformed_lines(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = tmp_path / "traces.jsonl"
    path.write_text(
        "\n".join(
            [
                json.dumps({"function": "pkg.mod:f", "arguments": {"a": "int"}, "return_type": "str"}),
                "{not json",
                json.dumps({"arguments": {}}),
                "",
                json.dumps({"function": "pkg.mod:Service.run"}),
            ]
        ),
        encoding="utf-8",
    )
    logger = logging.getLogger("typeinference.tests.trace")
    with caplog.at_level(logging.WARNING, logger="typeinference.tests.trace"):
        records = load_trace_records(path, logger)
    assert [record.function for record in records] == ["pkg.mod:f", "pkg.mod:Service.run"]
    assert records[0].arguments == {"a": "int"}
    assert records[1].return_type is None
    assert len([record for record in caplog.records if "malformed trace record" in record.getMessage()]) == 2


def test_trace_evidence_through_pipeline(write_project, tmp_path: Path) -> None:
    root = write_project(
        {
            "pkg/__init__.py": "",
            "pkg/mod.py": """
                class Service:
                    def run(self, job, retries=0):
                        return job

                def f(a):
                    return a
            """,
        }
    )
    trace = tmp_path / "traces.jsonl"
    trace.write_text(
        "\n".join(
            json.dumps(item)
            for item in [
                {"function": "pkg.mod:Service.run", "arguments": {"job": "pkg.mod.Service", "retries": "int"}, "return_type": "pkg.mod.Service"},
                {"function": "pkg.mod:f", "arguments": {"a": "list[int]", "self": "int"}, "return_type": None},
                {"function": "pkg.mod:f", "arguments": {"a": "Thing"}},
                {"function": "pkg.mod:missing", "arguments": {"a": "int"}},
            ]
        ),
        encoding="utf-8",
    )
    settings = build_settings(root, overrides={"sources": ["trace"], "trace": str(trace)})
    registry = collect(settings).registry
    run = FunctionIdentity("pkg.mod", "Service", "run")
    f = FunctionIdentity("pkg.mod", None, "f")
    trace_kind = SourceKind.DYNAMIC_TRACE
    assert _evidence(registry, run, 0, trace_kind) == {"pkg.mod.Service"}
    assert _evidence(registry, run, 1, trace_kind) == {"int"}
    assert _evidence(registry, run, RETURN_SLOT, trace_kind) == {"pkg.mod.Service"}
    # unqualified runtime names carry no module and are ignored
    assert _evidence(registry, f, 0, trace_kind) == {"list[int]"}
    assert _evidence(registry, f, RETURN_SLOT, trace_kind) == set()
    assert registry.find(FunctionIdentity("pkg.mod", None, "missing")) is None


def test_trace_recorder_records_project_calls(tmp_path: Path) -> None:
    root = tmp_path / "project"
    root.mkdir()
    script = root / "main.py"
    script.write_text(
        textwrap.dedent(
            """
            class Box:
                def __init__(self, value):
                    self.value = value

                def get(self):
                    return self.value


            def double(value):
                return value * 2


            def fail(value):
                raise ValueError(value)


            def numbers():
                yield 1


            double(21)
            double("ab")
            Box([1, 2]).get()
            list(numbers())
            try:
                fail(None)
            except ValueError:
                pass
            """
        ),
        encoding="utf-8",
    )
    output = io.StringIO()
    recorder = TraceRecorder(root, output)
    recorder.run_script(script)
    records = [json.loads(line) for line in output.getvalue().splitlines()]
    assert recorder.records_written == len(records) == 5
    by_function: dict[str, list[dict]] = {}
    for record in records:
        by_function.setdefault(record["function"], []).append(record)
    assert sorted(by_function) == ["main:Box.__init__", "main:Box.get", "main:double", "main:fail"]
    assert [(item["arguments"], item["return_type"]) for item in by_function["main:double"]] == [
        ({"value": "int"}, "int"),
        ({"value": "str"}, "str"),
    ]
    assert by_function["main:Box.__init__"][0]["arguments"] == {"value": "list[int]"}
    assert by_function["main:Box.get"][0]["return_type"] == "list[int]"
    assert by_function["main:fail"][0] == {"function": "main:fail", "arguments": {"value": "None"}, "return_type": None}


@pytest.mark.parametrize(
    ("sql_type", "expected"),
    [
        ("INTEGER", "int"),
        ("bigint", "int"),
        ("VARCHAR(255)", "str"),
        ("TEXT", "str"),
        ("BOOLEAN", "bool"),
        ("REAL", "float"),
        ("DOUBLE PRECISION", "float"),
        ("NUMERIC(10, 2)", "decimal.Decimal"),
        ("TIMESTAMP", "datetime.datetime"),
        ("DATE", "datetime.date"),
        ("BLOB", "bytes"),
        ("JSONB", "dict"),
        ("GEOMETRY", None),
        ("", None),
    ],
)
def test_python_type_for_sql(sql_type: str, expected: str | None) -> None:
    assert python_type_for_sql(sql_type) == expected


def test_introspect_sqlite(tmp_path: Path) -> None:
    database = tmp_path / "app.db"
    connection = sqlite3.connect(database)
    connection.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, email TEXT NOT NULL, nickname VARCHAR(40))")
    connection.commit()
    connection.close()
    (table,) = introspect_sqlite(database)
    assert table.name == "users"
    assert [(column.name, column.type, column.nullable) for column in table.columns] == [
        ("id", "INTEGER", False),
        ("email", "TEXT", False),
        ("nickname", "VARCHAR(40)", True),
    ]


def test_introspect_missing_database_is_a_configuration_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        introspect_sqlite(tmp_path / "absent.db")


def test_invalid_schema_metadata(tmp_path: Path) -> None:
    path = tmp_path / "schema.json"
    path.write_text('{"tables": [{"columns": []}]}', encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_schema_metadata(path)


def test_schema_analyzer_builds_column_types() -> None:
    analyzer = SchemaAnalyzer(
        [TableDTO(name="users", columns=[ColumnDTO(name="email", type="TEXT", nullable=False), ColumnDTO(name="shape", type="GEOMETRY")])],
        [SchemaBindingDTO(function="not-an-identity", column="users.email")],
    )
    assert set(analyzer.columns) == {"users.email"}
    assert analyzer.columns["users.email"].render() == "str"
    assert analyzer.bindings == {}


def test_schema_evidence_through_pipeline(write_project, tmp_path: Path) -> None:
    root = write_project(
        {
            "app/repo.py": """
                class UserRepo:
                    def find_email(self, user_id):
                        pass

                    def nickname(self, user_id):
                        pass
            """,
        }
    )
    database = tmp_path / "app.db"
    connection = sqlite3.connect(database)
    connection.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, email TEXT NOT NULL, nickname VARCHAR(40))")
    connection.commit()
    connection.close()
    metadata = tmp_path / "schema.json"
    metadata.write_text(
        json.dumps(
            {
                "bindings": [
                    {"function": "app.repo:UserRepo.find_email", "parameter": "user_id", "column": "users.id"},
                    {"function": "app.repo:UserRepo.find_email", "column": "users.email"},
                    {"function": "app.repo:UserRepo.nickname", "column": "users.nickname"},
                    {"function": "app.repo:UserRepo.nickname", "parameter": "missing", "column": "users.id"},
                ]
            }
        ),
        encoding="utf-8",
    )
    settings = build_settings(
        root,
        overrides={"sources": ["schema"], "schema": str(metadata), "schema_db": str(database)},
    )
    registry = collect(settings).registry
    schema_kind = SourceKind.SCHEMA_INFERENCE
    find_email = FunctionIdentity("app.repo", "UserRepo", "find_email")
    nickname = FunctionIdentity("app.repo", "UserRepo", "nickname")
    assert _evidence(registry, find_email, 0, schema_kind) == {"int"}
    assert _evidence(registry, find_email, RETURN_SLOT, schema_kind) == {"str"}
    assert _evidence(registry, nickname, RETURN_SLOT, schema_kind) == {"str | None"}
    assert _evidence(registry, nickname, 0, schema_kind) == set()
