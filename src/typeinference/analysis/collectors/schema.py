from __future__ import annotations

import ast
import logging
import re
import sqlite3
from pathlib import Path

from pydantic import ValidationError

from typeinference.analysis.collectors.base import (
    iter_declared_functions,
    make_evidence,
    module_bindings,
    null_logger,
    signature_parameters,
)
from typeinference.analysis.model import RETURN_SLOT, FunctionIdentity, InferredType, Slot, SourceKind
from typeinference.analysis.registry import AnalyzedFunctionCollection
from typeinference.exceptions import ConfigurationError
from typeinference.schema import ColumnDTO, SchemaBindingDTO, SchemaMetadataDTO, TableDTO

# Matched against the upper-cased declared type, first match wins.
SQL_TYPE_MAP: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"^(BOOL|BOOLEAN)\b"), "bool"),
    (re.compile(r"INT"), "int"),
    (re.compile(r"^(NUMERIC|DECIMAL|MONEY)\b"), "decimal.Decimal"),
    (re.compile(r"^(REAL|FLOAT|DOUBLE)"), "float"),
    (re.compile(r"^(TIMESTAMP|DATETIME)"), "datetime.datetime"),
    (re.compile(r"^DATE\b"), "datetime.date"),
    (re.compile(r"^TIME\b"), "datetime.time"),
    (re.compile(r"CHAR|TEXT|CLOB|^UUID\b"), "str"),
    (re.compile(r"BLOB|BINARY|BYTEA"), "bytes"),
    (re.compile(r"^JSONB?\b"), "dict"),
)


def python_type_for_sql(sql_type: str) -> str | None:
    normalized = sql_type.strip().upper()
    for pattern, python_type in SQL_TYPE_MAP:
        if pattern.search(normalized):
            return python_type
    return None


def load_schema_metadata(path: Path) -> SchemaMetadataDTO:
    try:
        return SchemaMetadataDTO.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as exc:
        raise ConfigurationError(f"Invalid schema metadata {path}: {exc}") from exc


def introspect_sqlite(path: Path) -> list[TableDTO]:
    """Tables and columns of a SQLite database via ``PRAGMA table_info``."""
    try:
        connection = sqlite3.connect(f"file:{path}?mode=ro", uri=True)
    except sqlite3.Error as exc:
        raise ConfigurationError(f"Cannot open SQLite database {path}: {exc}") from exc
    try:
        names = [
            row[0]
            for row in connection.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
            )
        ]
        tables: list[TableDTO] = []
        for name in names:
            quoted = name.replace('"', '""')
            columns = [
                ColumnDTO(name=row[1], type=row[2] or "", nullable=not row[3] and not row[5])
                for row in connection.execute(f'PRAGMA table_info("{quoted}")')
            ]
            tables.append(TableDTO(name=name, columns=columns))
        return tables
    except sqlite3.Error as exc:
        raise ConfigurationError(f"Cannot introspect SQLite database {path}: {exc}") from exc
    finally:
        connection.close()


class SchemaAnalyzer:
    """Types function slots bound to database columns.

    A binding names a function (``module:Class.method``), a parameter name or
    ``None`` for the return value, and a ``table.column``. Nullable columns
    give nullable evidence.
    """

    name = "schema"
    source_kind = SourceKind.SCHEMA_INFERENCE

    def __init__(
        self,
        tables: list[TableDTO],
        bindings: list[SchemaBindingDTO],
        project_root: Path | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.project_root = project_root
        self.logger = logger or null_logger()
        self.columns: dict[str, InferredType] = {}
        for table in tables:
            for column in table.columns:
                python_type = python_type_for_sql(column.type)
                if python_type is None:
                    continue
                self.columns[f"{table.name}.{column.name}"] = InferredType.of(python_type, nullable=column.nullable)
        self.bindings: dict[FunctionIdentity, list[SchemaBindingDTO]] = {}
        for binding in bindings:
            try:
                identity = FunctionIdentity.parse(binding.function)
            except ValueError as exc:
                self.logger.warning("Skipping schema binding: %s", exc)
                continue
            self.bindings.setdefault(identity, []).append(binding)

    @classmethod
    def from_sources(
        cls,
        *,
        metadata_path: Path | None = None,
        database_path: Path | None = None,
        project_root: Path | None = None,
        logger: logging.Logger | None = None,
    ) -> SchemaAnalyzer:
        metadata = load_schema_metadata(metadata_path) if metadata_path is not None else SchemaMetadataDTO()
        tables = list(metadata.tables)
        if database_path is not None:
            declared = {table.name for table in tables}
            tables.extend(table for table in introspect_sqlite(database_path) if table.name not in declared)
        return cls(tables, list(metadata.bindings), project_root=project_root, logger=logger)

    def observe(self, tree: ast.Module, path: Path, registry: AnalyzedFunctionCollection) -> None:
        module = module_bindings(tree, path, self.project_root).module
        for declared in iter_declared_functions(tree):
            identity = declared.identity(module)
            bindings = self.bindings.get(identity)
            if not bindings:
                continue
            params, _receiver = signature_parameters(declared.node, declared.class_name)
            positions = {item.parameter.name: item.parameter.position for item in params}
            for binding in bindings:
                inferred = self.columns.get(binding.column)
                if inferred is None:
                    self.logger.info("%s: unknown or untyped column %s", identity, binding.column)
                    continue
                slot: Slot | None = RETURN_SLOT if binding.parameter is None else positions.get(binding.parameter)
                if slot is None:
                    self.logger.info("%s has no parameter %s", identity, binding.parameter)
                    continue
                registry.insert(make_evidence(identity, slot, inferred, SourceKind.SCHEMA_INFERENCE))
