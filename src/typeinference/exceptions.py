"""Exception types raised across typeinference."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typeinference.analysis.model import FunctionIdentity


class TypeInferenceError(RuntimeError):
    """Base class for errors raised by typeinference."""


class ConfigurationError(TypeInferenceError):
    """Invalid setup detected before analysis starts.

    This is the only failure that aborts a run. Everything scoped to a single
    file, slot or instruction is reported as a value instead.
    """


class RegistryFrozen(TypeInferenceError):
    """Raised when evidence is inserted after the collection phase ended."""


class FunctionNotFound(TypeInferenceError, LookupError):
    def __init__(self, identity: FunctionIdentity):
        super().__init__(f"Function not found: {identity}")
        self.identity = identity


class UnboundTypeName(TypeInferenceError):
    """A qualified class name has no binding in the module being edited."""

    def __init__(self, name: str):
        super().__init__(f"Type name is not bound in target module: {name}")
        self.name = name


class PersistenceError(TypeInferenceError):
    def __init__(self, path: Path, cause: OSError):
        super().__init__(f"Failed to write {path}: {cause}")
        self.path = path
        self.cause = cause
