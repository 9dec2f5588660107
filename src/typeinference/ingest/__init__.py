from .python_ingest import (
    DEFAULT_EXCLUDE_DIRS,
    ParsedSource,
    ParseFailure,
    iter_python_paths,
    module_name,
    parse_source,
    path_matches_module,
)

__all__ = [
    "DEFAULT_EXCLUDE_DIRS",
    "ParseFailure",
    "ParsedSource",
    "iter_python_paths",
    "module_name",
    "parse_source",
    "path_matches_module",
]
