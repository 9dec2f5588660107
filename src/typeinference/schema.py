from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel


class TraceRecordDTO(BaseModel):
    function: str
    arguments: Dict[str, str] = {}
    return_type: Optional[str] = None


class ColumnDTO(BaseModel):
    name: str
    type: str
    nullable: bool = True


class TableDTO(BaseModel):
    name: str
    columns: List[ColumnDTO] = []


class SchemaBindingDTO(BaseModel):
    function: str
    parameter: Optional[str] = None
    column: str


class SchemaMetadataDTO(BaseModel):
    tables: List[TableDTO] = []
    bindings: List[SchemaBindingDTO] = []


class ResolvedSlotDTO(BaseModel):
    function: str
    slot: str
    status: str
    type: Optional[str] = None
    source: Optional[str] = None


class InstructionResultDTO(BaseModel):
    function: str
    kind: str
    slot: str
    type: str
    outcome: str
    path: Optional[str] = None
    detail: Optional[str] = None


class ParseFailureDTO(BaseModel):
    path: str
    stage: str
    error: str


class RunReportDTO(BaseModel):
    files_scanned: int = 0
    parse_failures: List[ParseFailureDTO] = []
    collector_failures: List[ParseFailureDTO] = []
    functions_analyzed: int = 0
    slots: Dict[str, int] = {}
    outcomes: Dict[str, int] = {}
    resolved: List[ResolvedSlotDTO] = []
    instructions: List[InstructionResultDTO] = []
    diffs: List[str] = []
    dry_run: bool = False
