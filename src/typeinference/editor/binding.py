from __future__ import annotations

import ast

from typeinference.analysis.collectors.names import ModuleBindings, collect_bindings
from typeinference.analysis.model import InferredType
from typeinference.analysis.types import qualified_names_in, render_type, typing_names_used


class TargetBinder:
    """Spells qualified type names the way the module being edited can see them.

    ``pkg.models.User`` becomes ``User`` when the module defines or imports it
    under that name, ``models.User`` when ``pkg.models`` is imported as
    ``models``, and so on. Names without any binding raise
    :class:`UnboundTypeName` unless imports may be added, in which case the
    binder remembers the ``from module import Name`` line it relies on.
    """

    def __init__(self, bindings: ModuleBindings, *, insert_imports: bool = False) -> None:
        self.bindings = bindings
        self.insert_imports = insert_imports
        self.required_imports: dict[str, set[str]] = {}
        self._targets = {**bindings.classes, **bindings.imports}
        self._locals = set(self._targets) | bindings.functions

    @classmethod
    def for_source(cls, text: str, module: str, *, is_package: bool = False, insert_imports: bool = False) -> TargetBinder:
        return cls(collect_bindings(ast.parse(text), module, is_package=is_package), insert_imports=insert_imports)

    @property
    def has_future_annotations(self) -> bool:
        return self.bindings.imports.get("annotations") == "__future__.annotations"

    def defines_locally(self, qualified: str) -> bool:
        return qualified in self.bindings.classes.values()

    def __call__(self, qualified: str) -> str | None:
        for local, target in self._targets.items():
            if target == qualified:
                return local
        module, _, name = qualified.rpartition(".")
        prefix = module
        while prefix:
            for local, target in self.bindings.imports.items():
                if target == prefix:
                    return f"{local}{qualified[len(prefix):]}"
            prefix = prefix.rpartition(".")[0]
        if not self.insert_imports or name in self._locals:
            return None
        self.required_imports.setdefault(module, set()).add(name)
        return name

    def require_typing(self, rendered: str) -> str:
        """Make ``Optional``/``Union`` in ``rendered`` resolvable in the module."""
        for name in sorted(typing_names_used(rendered)):
            if self.bindings.imports.get(name) == f"typing.{name}":
                continue
            if self.bindings.imports.get("typing") == "typing" and name not in self._locals:
                rendered = rendered.replace(f"{name}[", f"typing.{name}[")
                continue
            self.required_imports.setdefault("typing", set()).add(name)
        return rendered

    def render(self, inferred: InferredType, style: str = "pep604") -> str:
        """Annotation text for ``inferred``; may raise :class:`UnboundTypeName`."""
        rendered = render_type(inferred, style=style, bind=self)
        if style == "typing":
            rendered = self.require_typing(rendered)
        return rendered

    def render_for_docs(self, inferred: InferredType) -> str:
        """Docstring text; unbound names stay fully qualified."""
        return render_type(inferred, bind=self._bind_or_keep)

    def _bind_or_keep(self, qualified: str) -> str:
        insert = self.insert_imports
        self.insert_imports = False
        try:
            return self(qualified) or qualified
        finally:
            self.insert_imports = insert

    def needs_quotes(self, inferred: InferredType) -> bool:
        """Whether the annotation names a class of this module and must be a forward reference."""
        if self.has_future_annotations:
            return False
        return any(
            self.defines_locally(token) for name in inferred.names for token in qualified_names_in(name)
        )

