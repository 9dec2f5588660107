from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from typeinference.analysis.collectors import (
    DeclarationCollector,
    DocblockAnalyzer,
    EvidenceCollector,
    SchemaAnalyzer,
    SourceCatalog,
    StaticCallSiteAnalyzer,
    TraceAnalyzer,
    null_logger,
)
from typeinference.analysis.model import SourceKind
from typeinference.analysis.registry import AnalyzedFunctionCollection
from typeinference.config import InferenceSettings
from typeinference.ingest import ParsedSource, ParseFailure, iter_python_paths, parse_source


@dataclass
class CollectionResult:
    registry: AnalyzedFunctionCollection
    sources: list[ParsedSource] = field(default_factory=list)
    parse_failures: list[ParseFailure] = field(default_factory=list)
    collector_failures: list[ParseFailure] = field(default_factory=list)

    @property
    def files_scanned(self) -> int:
        return len(self.sources) + len(self.parse_failures)


def project_root(settings: InferenceSettings) -> Path:
    return settings.root.parent if settings.root.is_file() else settings.root


def build_collectors(settings: InferenceSettings, logger: logging.Logger) -> list[EvidenceCollector]:
    """Enabled collectors, in the order they observe each file."""
    root = project_root(settings)
    collectors: list[EvidenceCollector] = []
    if settings.enabled(SourceKind.STATIC_CALL_ANALYSIS):
        collectors.append(StaticCallSiteAnalyzer(root))
    if settings.enabled(SourceKind.DOCBLOCK):
        started = time.monotonic()
        catalog = SourceCatalog.build([root, *settings.catalog_roots])
        logger.info("Catalogued %d classes in %.2fs", len(catalog), time.monotonic() - started)
        collectors.append(DocblockAnalyzer(catalog, root))
    if settings.enabled(SourceKind.DYNAMIC_TRACE) and settings.trace_path is not None:
        collectors.append(TraceAnalyzer.from_file(settings.trace_path, root, logger))
    if settings.enabled(SourceKind.SCHEMA_INFERENCE):
        collectors.append(
            SchemaAnalyzer.from_sources(
                metadata_path=settings.schema_path,
                database_path=settings.schema_db,
                project_root=root,
                logger=logger,
            )
        )
    return collectors


def _observe(
    collector: EvidenceCollector,
    source: ParsedSource,
    registry: AnalyzedFunctionCollection,
    logger: logging.Logger,
) -> ParseFailure | None:
    try:
        collector.observe(source.tree, source.path, registry)
    except Exception as exc:
        failure = ParseFailure(path=source.path, stage=collector.name, error=f"{type(exc).__name__}: {exc}")
        logger.warning("Skipping %s", failure)
        return failure
    return None


def _observe_all(
    collectors: Sequence[EvidenceCollector],
    sources: Sequence[ParsedSource],
    registry: AnalyzedFunctionCollection,
    jobs: int,
    logger: logging.Logger,
) -> list[ParseFailure]:
    """Run every collector on every file; a collector failing on a file only skips that pair."""
    failures: list[ParseFailure] = []
    lock = threading.Lock()

    def run(source: ParsedSource) -> None:
        for collector in collectors:
            failure = _observe(collector, source, registry, logger)
            if failure is not None:
                with lock:
                    failures.append(failure)

    with ThreadPoolExecutor(max_workers=jobs) as pool:
        list(pool.map(run, sources))
    return sorted(failures, key=lambda item: (str(item.path), item.stage))


def collect(
    settings: InferenceSettings,
    logger: logging.Logger | None = None,
    collectors: Sequence[EvidenceCollector] | None = None,
) -> CollectionResult:
    """Parse the project and fill a frozen registry with evidence.

    Declarations of every file are registered before any other collector
    runs, so call sites can resolve functions declared later in the tree.
    """
    logger = logger or null_logger()
    root = project_root(settings)
    registry = AnalyzedFunctionCollection(settings.precedence)
    result = CollectionResult(registry=registry)
    started = time.monotonic()
    paths = iter_python_paths(settings.root, exclude_dirs=settings.exclude_dirs)
    with ThreadPoolExecutor(max_workers=settings.jobs) as pool:
        parsed = list(pool.map(lambda path: parse_source(path, root), paths))
    for item in parsed:
        if isinstance(item, ParseFailure):
            logger.warning("Skipping %s", item)
            result.parse_failures.append(item)
        else:
            result.sources.append(item)
    logger.info("Parsed %d files in %.2fs", len(result.sources), time.monotonic() - started)

    declarations = DeclarationCollector(root)
    for source in result.sources:
        failure = _observe(declarations, source, registry, logger)
        if failure is not None:
            result.collector_failures.append(failure)

    if collectors is None:
        collectors = build_collectors(settings, logger)
    started = time.monotonic()
    result.collector_failures += _observe_all(collectors, result.sources, registry, settings.jobs, logger)
    logger.info(
        "Collected evidence for %d functions with %s in %.2fs",
        len(registry),
        ", ".join(collector.name for collector in collectors) or "no collectors",
        time.monotonic() - started,
    )
    registry.freeze()
    return result
