from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

from typeinference.analysis.collectors.base import null_logger
from typeinference.analysis.model import slot_label
from typeinference.analysis.pipeline import collect
from typeinference.config import InferenceSettings
from typeinference.editor import CodeEditor, DiffHandler, EditOptions, InstructionOutcome, InstructionResult, build_instructions
from typeinference.ingest import ParseFailure
from typeinference.resolution import ResolutionStatus, ResolvedFunction, TypeResolver
from typeinference.schema import (
    InstructionResultDTO,
    ParseFailureDTO,
    ResolvedSlotDTO,
    RunReportDTO,
)


@dataclass
class RunReport:
    files_scanned: int = 0
    parse_failures: list[ParseFailure] = field(default_factory=list)
    collector_failures: list[ParseFailure] = field(default_factory=list)
    functions_analyzed: int = 0
    resolved: list[ResolvedFunction] = field(default_factory=list)
    results: list[InstructionResult] = field(default_factory=list)
    file_diffs: dict[Path, str] = field(default_factory=dict)
    dry_run: bool = False

    @property
    def slot_counts(self) -> Counter[ResolutionStatus]:
        return Counter(slot.status for function in self.resolved for slot in function)

    @property
    def outcome_counts(self) -> Counter[InstructionOutcome]:
        return Counter(result.outcome for result in self.results)

    @property
    def diffs(self) -> list[str]:
        return [diff for diff in self.file_diffs.values() if diff]

    @property
    def inference_misses(self) -> int:
        counts = self.slot_counts
        return counts[ResolutionStatus.UNRESOLVED] + counts[ResolutionStatus.NO_EVIDENCE]

    def to_dto(self) -> RunReportDTO:
        slots = self.slot_counts
        outcomes = self.outcome_counts
        return RunReportDTO(
            files_scanned=self.files_scanned,
            parse_failures=[
                ParseFailureDTO(path=str(item.path), stage=item.stage, error=item.error) for item in self.parse_failures
            ],
            collector_failures=[
                ParseFailureDTO(path=str(item.path), stage=item.stage, error=item.error)
                for item in self.collector_failures
            ],
            functions_analyzed=self.functions_analyzed,
            slots={status.value: slots[status] for status in ResolutionStatus},
            outcomes={outcome.value: outcomes[outcome] for outcome in InstructionOutcome},
            resolved=[
                ResolvedSlotDTO(
                    function=str(slot.slot_key.identity),
                    slot=slot_label(slot.slot_key.slot),
                    status=slot.status.value,
                    type=slot.inferred_type.render() if slot.inferred_type is not None else None,
                    source=slot.source_kind.value if slot.source_kind is not None else None,
                )
                for function in self.resolved
                for slot in function
            ],
            instructions=[
                InstructionResultDTO(
                    function=result.instruction.label,
                    kind=result.instruction.kind,
                    slot=result.instruction.slot,
                    type=result.instruction.inferred_type.render(),
                    outcome=result.outcome.value,
                    path=str(result.path) if result.path is not None else None,
                    detail=result.detail,
                )
                for result in self.results
            ],
            diffs=self.diffs,
            dry_run=self.dry_run,
        )


def run_inference(
    settings: InferenceSettings,
    *,
    logger: logging.Logger | None = None,
    diff_handler: DiffHandler | None = None,
) -> RunReport:
    """Collect evidence, resolve slot types and annotate the project.

    ``settings`` is expected to come from :func:`~typeinference.config.build_settings`,
    which raises :class:`~typeinference.exceptions.ConfigurationError` for
    anything invalid; past that point no failure aborts the run.
    """
    logger = logger or null_logger()
    report = RunReport(dry_run=settings.dry_run)

    collected = collect(settings, logger)
    report.files_scanned = collected.files_scanned
    report.parse_failures = collected.parse_failures
    report.collector_failures = collected.collector_failures
    registry = collected.registry

    resolver = TypeResolver.for_registry(registry, settings.precedence, max_arity=settings.max_arity)
    report.resolved = resolver.resolve_all(registry)
    report.functions_analyzed = len(report.resolved)
    counts = report.slot_counts
    logger.info(
        "Resolved %d slots (%d already typed, %d ambiguous, %d without evidence)",
        counts[ResolutionStatus.RESOLVED],
        counts[ResolutionStatus.ALREADY_TYPED],
        counts[ResolutionStatus.UNRESOLVED],
        counts[ResolutionStatus.NO_EVIDENCE],
    )

    instructions = build_instructions(report.resolved, update_docblocks=settings.update_docblocks)
    editor = CodeEditor(
        settings.root,
        options=EditOptions(
            union_style=settings.union_style,
            insert_imports=settings.insert_imports,
            docblock_style=settings.docblock_style,
        ),
        exclude_dirs=settings.exclude_dirs,
        persist=not settings.dry_run,
        diff_handler=diff_handler,
        jobs=settings.jobs,
        logger=logger,
    )
    started = time.monotonic()
    report.results = editor.apply_all(instructions)
    report.file_diffs = editor.file_diffs()
    logger.info(
        "Applied %d of %d instructions in %.2fs",
        report.outcome_counts[InstructionOutcome.APPLIED],
        len(instructions),
        time.monotonic() - started,
    )
    return report
