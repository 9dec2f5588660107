from typeinference.resolution.resolver import (
    ResolutionStatus,
    ResolvedFunction,
    ResolvedSlot,
    TypeResolver,
)

__all__ = ["ResolutionStatus", "ResolvedFunction", "ResolvedSlot", "TypeResolver"]
