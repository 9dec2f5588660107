from typeinference.editor.builder import build_instructions
from typeinference.editor.engine import CodeEditor, DiffHandler, InstructionResult
from typeinference.editor.file import EditableFile, unified_diff
from typeinference.editor.instructions import (
    DocblockUpdateInstruction,
    EditInstruction,
    EditOptions,
    InstructionOutcome,
    ParamTypeInstruction,
    ReturnTypeInstruction,
)
from typeinference.editor.locate import LookupMiss, ProjectFiles, locate, locate_path

__all__ = [
    "CodeEditor",
    "DiffHandler",
    "DocblockUpdateInstruction",
    "EditInstruction",
    "EditOptions",
    "EditableFile",
    "InstructionOutcome",
    "InstructionResult",
    "LookupMiss",
    "ParamTypeInstruction",
    "ProjectFiles",
    "ReturnTypeInstruction",
    "build_instructions",
    "locate",
    "locate_path",
    "unified_diff",
]
