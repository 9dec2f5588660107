from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from pathlib import Path
from typing import TypeAlias
import tomllib

from typeinference.analysis.docblock import DocblockStyle
from typeinference.analysis.model import DEFAULT_PRECEDENCE, SourceKind
from typeinference.exceptions import ConfigurationError
from typeinference.ingest import DEFAULT_EXCLUDE_DIRS

DEFAULT_CONFIG_NAME = "typeinference.toml"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]

# Collector names accepted on the command line and in [inference].sources.
SOURCE_NAMES: dict[str, SourceKind] = {
    "static": SourceKind.STATIC_CALL_ANALYSIS,
    "docblock": SourceKind.DOCBLOCK,
    "trace": SourceKind.DYNAMIC_TRACE,
    "schema": SourceKind.SCHEMA_INFERENCE,
}
UNION_STYLES = ("pep604", "typing")


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError:
        return {}
    try:
        data = tomllib.loads(raw)
    except Exception:
        return {}
    return data if isinstance(data, dict) else {}


def config_base(root: Path | None) -> Path:
    base = root if root is not None else Path.cwd()
    return base.parent if base.is_file() else base


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        config_path = config_base(root) / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def _section(data: TomlTable, name: str) -> TomlTable:
    section = data.get(name, {})
    return section if isinstance(section, dict) else {}


def inference_defaults(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    return _section(load_config(root=root, config_path=config_path), "inference")


def editor_defaults(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    return _section(load_config(root=root, config_path=config_path), "editor")


def project_defaults(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    return _section(load_config(root=root, config_path=config_path), "project")


def _normalize_name_list(value: TomlValue) -> list[str]:
    items: list[str] = []
    if value is None:
        return items
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",") if part.strip()]
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            if isinstance(item, str):
                items.extend([part.strip() for part in item.split(",") if part.strip()])
    return [item for item in items if item]


def _as_bool(value: TomlValue) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return False


def _as_positive_int(value: TomlValue, key: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{key} must be a positive integer, got {value!r}")
    try:
        number = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a positive integer, got {value!r}") from None
    if number < 1:
        raise ConfigurationError(f"{key} must be a positive integer, got {number}")
    return number


def merge_payload(payload: TomlTable, defaults: TomlTable) -> TomlTable:
    merged = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged


def parse_source_kind(name: str) -> SourceKind:
    if name in SOURCE_NAMES:
        return SOURCE_NAMES[name]
    try:
        return SourceKind(name)
    except ValueError:
        known = ", ".join([*SOURCE_NAMES, *(kind.value for kind in DEFAULT_PRECEDENCE)])
        raise ConfigurationError(f"Unknown evidence source {name!r} (expected one of: {known})") from None


def parse_precedence(value: TomlValue) -> tuple[SourceKind, ...]:
    names = _normalize_name_list(value)
    if not names:
        return DEFAULT_PRECEDENCE
    kinds = tuple(parse_source_kind(name) for name in names)
    if SourceKind.EXISTING_TYPE_HINT in kinds:
        raise ConfigurationError("Existing type hints always win and cannot be ranked")
    if len(set(kinds)) != len(kinds) or set(kinds) != set(DEFAULT_PRECEDENCE):
        expected = ", ".join(kind.value for kind in DEFAULT_PRECEDENCE)
        raise ConfigurationError(f"Precedence must rank each of {expected} exactly once")
    return kinds


def _optional_path(value: TomlValue, base: Path, key: str) -> Path | None:
    if value is None or value == "":
        return None
    if not isinstance(value, (str, Path)):
        raise ConfigurationError(f"{key} must be a path, got {value!r}")
    path = Path(value)
    if not path.is_absolute():
        path = base / path
    if not path.exists():
        raise ConfigurationError(f"{key} does not exist: {path}")
    return path


@dataclass(frozen=True)
class InferenceSettings:
    root: Path
    sources: frozenset[SourceKind]
    precedence: tuple[SourceKind, ...] = DEFAULT_PRECEDENCE
    max_arity: int = 1
    trace_path: Path | None = None
    schema_path: Path | None = None
    schema_db: Path | None = None
    union_style: str = "pep604"
    insert_imports: bool = False
    update_docblocks: bool = True
    docblock_style: DocblockStyle = DocblockStyle.SPHINX
    exclude_dirs: frozenset[str] = DEFAULT_EXCLUDE_DIRS
    catalog_roots: tuple[Path, ...] = ()
    jobs: int = 4
    dry_run: bool = False

    def enabled(self, kind: SourceKind) -> bool:
        return kind in self.sources


def build_settings(
    root: Path,
    *,
    config_path: Path | None = None,
    overrides: TomlTable | None = None,
) -> InferenceSettings:
    """Merge ``typeinference.toml`` with command-line ``overrides`` and validate.

    Override keys mirror the config keys of all three sections. Every invalid
    value is reported as :class:`ConfigurationError`.
    """
    if not root.exists():
        raise ConfigurationError(f"Target does not exist: {root}")
    if config_path is not None and not config_path.is_file():
        raise ConfigurationError(f"Config file not found: {config_path}")
    root = root.resolve()
    base = config_base(root)
    data = load_config(root=root, config_path=config_path)
    merged = merge_payload(
        overrides or {},
        {**_section(data, "project"), **_section(data, "editor"), **_section(data, "inference")},
    )

    trace_path = _optional_path(merged.get("trace"), base, "trace")
    schema_path = _optional_path(merged.get("schema"), base, "schema")
    schema_db = _optional_path(merged.get("schema_db"), base, "schema_db")

    if merged.get("sources") is not None:
        names = _normalize_name_list(merged.get("sources"))
    else:
        names = ["static", "docblock"]
        if trace_path is not None:
            names.append("trace")
        if schema_path is not None or schema_db is not None:
            names.append("schema")
    disabled = {parse_source_kind(name) for name in _normalize_name_list(merged.get("disable_sources"))}
    sources = frozenset(parse_source_kind(name) for name in names) - disabled
    if SourceKind.EXISTING_TYPE_HINT in sources:
        raise ConfigurationError("Existing type hints are always read and are not a selectable source")
    if SourceKind.DYNAMIC_TRACE in sources and trace_path is None:
        raise ConfigurationError("The trace source needs a trace file")
    if SourceKind.SCHEMA_INFERENCE in sources and schema_path is None and schema_db is None:
        raise ConfigurationError("The schema source needs schema metadata or a SQLite database")

    union_style = str(merged.get("union_style", "pep604"))
    if union_style not in UNION_STYLES:
        raise ConfigurationError(f"union_style must be one of {', '.join(UNION_STYLES)}, got {union_style!r}")
    try:
        docblock_style = DocblockStyle(str(merged.get("docblock_style", DocblockStyle.SPHINX.value)))
    except ValueError:
        raise ConfigurationError(f"Unknown docblock_style {merged.get('docblock_style')!r}") from None

    exclude_value = merged.get("exclude_dirs")
    exclude_dirs = (
        frozenset(_normalize_name_list(exclude_value)) if exclude_value is not None else DEFAULT_EXCLUDE_DIRS
    )
    catalog_roots: list[Path] = []
    for entry in _normalize_name_list(merged.get("catalog")):
        path = _optional_path(entry, base, "catalog")
        if path is not None:
            catalog_roots.append(path)

    return InferenceSettings(
        root=root,
        sources=sources,
        precedence=parse_precedence(merged.get("precedence")),
        max_arity=_as_positive_int(merged.get("max_arity", 1), "max_arity"),
        trace_path=trace_path,
        schema_path=schema_path,
        schema_db=schema_db,
        union_style=union_style,
        insert_imports=_as_bool(merged.get("insert_imports", False)),
        update_docblocks=_as_bool(merged.get("update_docblocks", True)),
        docblock_style=docblock_style,
        exclude_dirs=exclude_dirs,
        catalog_roots=tuple(catalog_roots),
        jobs=_as_positive_int(merged.get("jobs", 4), "jobs"),
        dry_run=_as_bool(merged.get("dry_run", False)),
    )
