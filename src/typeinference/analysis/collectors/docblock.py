from __future__ import annotations

import ast
from pathlib import Path

from typeinference.analysis.collectors.base import (
    TypeNameResolver,
    iter_declared_functions,
    make_evidence,
    module_bindings,
    signature_parameters,
)
from typeinference.analysis.collectors.names import SourceCatalog
from typeinference.analysis.docblock import parse_docblock
from typeinference.analysis.model import RETURN_SLOT, SourceKind
from typeinference.analysis.registry import AnalyzedFunctionCollection
from typeinference.analysis.types import parse_type_expression


class DocblockAnalyzer:
    """Turns docstring type tags into ``docblock`` evidence.

    Class names in tags resolve through the module's own bindings first and
    then through the catalog of every class in the analyzed universe. Tags
    naming an unknown or ambiguous class contribute nothing.
    """

    name = "docblock"
    source_kind = SourceKind.DOCBLOCK

    def __init__(self, catalog: SourceCatalog | None = None, project_root: Path | None = None) -> None:
        self.catalog = catalog if catalog is not None else SourceCatalog()
        self.project_root = project_root

    def observe(self, tree: ast.Module, path: Path, registry: AnalyzedFunctionCollection) -> None:
        bindings = module_bindings(tree, path, self.project_root)
        resolve = TypeNameResolver(bindings, catalog=self.catalog)
        for declared in iter_declared_functions(tree):
            docstring = ast.get_docstring(declared.node)
            if not docstring:
                continue
            tags = parse_docblock(docstring)
            identity = declared.identity(bindings.module)
            params, _receiver = signature_parameters(declared.node, declared.class_name)
            for item in params:
                text = tags.param_types.get(item.parameter.name)
                if text is None:
                    continue
                inferred = parse_type_expression(text, resolve)
                if inferred is None or inferred.is_empty:
                    continue
                registry.insert(make_evidence(identity, item.parameter.position, inferred, SourceKind.DOCBLOCK))
            if tags.return_type is not None:
                inferred = parse_type_expression(tags.return_type, resolve)
                if inferred is not None and not inferred.is_empty:
                    registry.insert(make_evidence(identity, RETURN_SLOT, inferred, SourceKind.DOCBLOCK))
