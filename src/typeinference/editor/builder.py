from __future__ import annotations

from typing import Iterable

from typeinference.analysis.model import RETURN_SLOT, InferredType
from typeinference.editor.instructions import (
    DocblockUpdateInstruction,
    EditInstruction,
    ParamTypeInstruction,
    ReturnTypeInstruction,
)
from typeinference.resolution import ResolvedFunction


def build_instructions(
    resolved: Iterable[ResolvedFunction], *, update_docblocks: bool = True
) -> list[EditInstruction]:
    """One annotation instruction per resolved slot, plus a docstring tag where one is missing."""
    instructions: list[EditInstruction] = []
    for entry in resolved:
        function = entry.function
        explicit = function.explicit_slots
        target = function.analyzed_class
        name = function.identity.function_name
        for slot in entry:
            if not slot.is_inferred or slot.inferred_type is None:
                continue
            index = slot.slot_key.slot
            if index in explicit:
                continue
            inferred = slot.inferred_type
            if index is RETURN_SLOT:
                instructions.append(ReturnTypeInstruction(target, name, inferred))
                param_name = None
            else:
                param = function.parameter(index)
                if param is None or inferred.is_none:
                    continue
                if param.none_default:
                    # keep `a: T = None` a valid declaration
                    inferred = inferred.union(InferredType.none())
                param_name = param.name
                instructions.append(ParamTypeInstruction(target, name, inferred, param_name=param_name))
            if update_docblocks and function.has_docblock and not function.is_documented(index):
                instructions.append(DocblockUpdateInstruction(target, name, inferred, param_name=param_name))
    return instructions
