from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import ClassVar

import libcst as cst

from typeinference.analysis.docblock import DocblockStyle
from typeinference.analysis.model import AnalyzedClass, InferredType
from typeinference.editor.binding import TargetBinder
from typeinference.editor.file import EditableFile
from typeinference.editor.locate import LookupMiss, ProjectFiles, locate_path
from typeinference.editor.transformers import (
    DeclarationTransformer,
    DocstringTagTransformer,
    ParamAnnotationTransformer,
    ReturnAnnotationTransformer,
    transform_source,
)


class InstructionOutcome(StrEnum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    LOOKUP_MISS = "lookup_miss"
    UNBOUND_TYPE = "unbound_type"
    PERSISTENCE_FAILURE = "persistence_failure"


@dataclass(frozen=True)
class EditOptions:
    union_style: str = "pep604"
    insert_imports: bool = False
    docblock_style: DocblockStyle = DocblockStyle.SPHINX


@dataclass(frozen=True)
class EditInstruction(ABC):
    """One edit to one declaration, applied or dropped on its own."""

    target: AnalyzedClass
    function_name: str
    inferred_type: InferredType

    kind: ClassVar[str] = "edit"

    @property
    def slot(self) -> str:
        return "return"

    @property
    def label(self) -> str:
        qualname = f"{self.target.class_name}.{self.function_name}" if self.target.class_name else self.function_name
        return f"{self.target.namespace}:{qualname}"

    def locate(self, project: ProjectFiles) -> Path | LookupMiss:
        return locate_path(self.target, self.function_name, project)

    @abstractmethod
    def transformer(self, binder: TargetBinder, options: EditOptions) -> DeclarationTransformer: ...

    def apply(self, file: EditableFile, options: EditOptions = EditOptions()) -> EditableFile | LookupMiss:
        """New buffer with this edit applied; ``file`` itself is left untouched.

        Raises :class:`~typeinference.exceptions.UnboundTypeName` when a class
        name cannot be spelled in the target module.
        """
        try:
            binder = TargetBinder.for_source(
                file.text,
                self.target.namespace,
                is_package=file.path.name == "__init__.py",
                insert_imports=options.insert_imports,
            )
            transformer = self.transformer(binder, options)
            text = transform_source(file.text, transformer, binder.required_imports)
        except (SyntaxError, RecursionError, cst.ParserSyntaxError) as exc:
            return LookupMiss(self.label, f"cannot parse {file.path}: {exc}", (file.path,))
        if transformer.matches != 1:
            return LookupMiss(self.label, f"{transformer.matches} matching declarations in {file.path}", (file.path,))
        if transformer.missing is not None:
            return LookupMiss(self.label, transformer.missing, (file.path,))
        return file.with_text(text)


def _annotation_text(binder: TargetBinder, inferred: InferredType, options: EditOptions) -> str:
    text = binder.render(inferred, options.union_style)
    if binder.needs_quotes(inferred):
        return f'"{text}"'
    return text


@dataclass(frozen=True)
class ReturnTypeInstruction(EditInstruction):
    kind: ClassVar[str] = "return-type"

    def transformer(self, binder: TargetBinder, options: EditOptions) -> DeclarationTransformer:
        return ReturnAnnotationTransformer(
            self.target.class_name,
            self.function_name,
            _annotation_text(binder, self.inferred_type, options),
        )


@dataclass(frozen=True)
class ParamTypeInstruction(EditInstruction):
    param_name: str = ""

    kind: ClassVar[str] = "param-type"

    @property
    def slot(self) -> str:
        return self.param_name

    def transformer(self, binder: TargetBinder, options: EditOptions) -> DeclarationTransformer:
        return ParamAnnotationTransformer(
            self.target.class_name,
            self.function_name,
            self.param_name,
            _annotation_text(binder, self.inferred_type, options),
        )


@dataclass(frozen=True)
class DocblockUpdateInstruction(EditInstruction):
    """Adds the missing type tag for a parameter (or the return, when ``param_name`` is ``None``)."""

    param_name: str | None = None

    kind: ClassVar[str] = "docblock"

    @property
    def slot(self) -> str:
        return self.param_name if self.param_name is not None else "return"

    def transformer(self, binder: TargetBinder, options: EditOptions) -> DeclarationTransformer:
        return DocstringTagTransformer(
            self.target.class_name,
            self.function_name,
            param_name=self.param_name,
            type_text=binder.render_for_docs(self.inferred_type),
            default_style=options.docblock_style,
        )
