from __future__ import annotations

from typing import Mapping, Sequence

import libcst as cst

from typeinference.analysis.docblock import DocblockStyle, add_type_tag


def _is_docstring(stmt: cst.CSTNode) -> bool:
    if not isinstance(stmt, cst.SimpleStatementLine) or not stmt.body:
        return False
    expr = stmt.body[0]
    return isinstance(expr, cst.Expr) and isinstance(expr.value, cst.SimpleString)


def _is_import(stmt: cst.CSTNode) -> bool:
    if not isinstance(stmt, cst.SimpleStatementLine):
        return False
    return any(isinstance(item, (cst.Import, cst.ImportFrom)) for item in stmt.body)


def _find_import_insert_index(body: Sequence[cst.CSTNode]) -> int:
    insert_idx = 0
    if body and _is_docstring(body[0]):
        insert_idx = 1
    while insert_idx < len(body) and _is_import(body[insert_idx]):
        insert_idx += 1
    return insert_idx


def _dotted(name: str) -> cst.Attribute | cst.Name:
    parts = name.split(".")
    node: cst.Attribute | cst.Name = cst.Name(parts[0])
    for part in parts[1:]:
        node = cst.Attribute(value=node, attr=cst.Name(part))
    return node


def add_from_imports(module: cst.Module, required: Mapping[str, set[str]]) -> cst.Module:
    """Insert one ``from module import a, b`` line per module after the import block."""
    if not required:
        return module
    body = list(module.body)
    insert_idx = _find_import_insert_index(body)
    for source in sorted(required):
        statement = cst.SimpleStatementLine(
            [
                cst.ImportFrom(
                    module=_dotted(source),
                    names=[cst.ImportAlias(name=cst.Name(name)) for name in sorted(required[source])],
                )
            ]
        )
        body.insert(insert_idx, statement)
        insert_idx += 1
    return module.with_changes(body=body)


class DeclarationTransformer(cst.CSTTransformer):
    """Rewrites the single module-level function or top-level method named by the target.

    Subclasses override :meth:`rewrite`; the base class only counts. Functions
    nested in other functions or in nested classes are never targets, and
    ``matches`` tells callers how many declarations qualified so ambiguous
    files can be refused.
    """

    def __init__(self, class_name: str | None, function_name: str) -> None:
        super().__init__()
        self.class_name = class_name
        self.function_name = function_name
        self.matches = 0
        self.changed = False
        self.missing: str | None = None
        self._classes: list[str] = []
        self._indents: list[str] = []
        self._targets: list[bool] = []
        self._depth = 0
        self._default_indent = "    "

    def visit_Module(self, node: cst.Module) -> bool:
        self._default_indent = node.default_indent
        return True

    def _block_indent(self, body: cst.BaseSuite) -> str:
        if isinstance(body, cst.IndentedBlock) and body.indent is not None:
            return body.indent
        return self._default_indent

    def visit_ClassDef(self, node: cst.ClassDef) -> bool:
        self._classes.append(node.name.value)
        self._indents.append(self._block_indent(node.body))
        return True

    def leave_ClassDef(self, original_node: cst.ClassDef, updated_node: cst.ClassDef) -> cst.ClassDef:
        self._classes.pop()
        self._indents.pop()
        return updated_node

    def _is_target(self, node: cst.FunctionDef) -> bool:
        if self._depth or node.name.value != self.function_name:
            return False
        if self.class_name is None:
            return not self._classes
        return self._classes == [self.class_name]

    def visit_FunctionDef(self, node: cst.FunctionDef) -> bool:
        target = self._is_target(node)
        if target:
            self.matches += 1
        self._targets.append(target)
        self._depth += 1
        return True

    def leave_FunctionDef(self, original_node: cst.FunctionDef, updated_node: cst.FunctionDef) -> cst.FunctionDef:
        self._depth -= 1
        if not self._targets.pop():
            return updated_node
        return self.rewrite(updated_node)

    def body_indent(self, node: cst.FunctionDef) -> str:
        return "".join(self._indents) + self._block_indent(node.body)

    def rewrite(self, node: cst.FunctionDef) -> cst.FunctionDef:
        return node


class ReturnAnnotationTransformer(DeclarationTransformer):
    def __init__(self, class_name: str | None, function_name: str, annotation: str) -> None:
        super().__init__(class_name, function_name)
        self.annotation = annotation

    def rewrite(self, node: cst.FunctionDef) -> cst.FunctionDef:
        if node.returns is not None:
            return node
        self.changed = True
        return node.with_changes(returns=cst.Annotation(annotation=cst.parse_expression(self.annotation)))


def _all_params(params: cst.Parameters) -> list[cst.Param]:
    found = [*params.posonly_params, *params.params]
    if isinstance(params.star_arg, cst.Param):
        found.append(params.star_arg)
    found.extend(params.kwonly_params)
    if params.star_kwarg is not None:
        found.append(params.star_kwarg)
    return found


class ParamAnnotationTransformer(DeclarationTransformer):
    def __init__(self, class_name: str | None, function_name: str, param_name: str, annotation: str) -> None:
        super().__init__(class_name, function_name)
        self.param_name = param_name
        self.annotation = annotation

    def _annotate(self, param: cst.Param) -> cst.Param:
        if param.annotation is not None:
            return param
        self.changed = True
        changes: dict[str, object] = {
            "annotation": cst.Annotation(annotation=cst.parse_expression(self.annotation))
        }
        if param.default is not None:
            changes["equal"] = cst.AssignEqual(
                whitespace_before=cst.SimpleWhitespace(" "),
                whitespace_after=cst.SimpleWhitespace(" "),
            )
        return param.with_changes(**changes)

    def rewrite(self, node: cst.FunctionDef) -> cst.FunctionDef:
        params = node.params
        if not any(param.name.value == self.param_name for param in _all_params(params)):
            self.missing = f"no parameter named {self.param_name!r}"
            return node

        def update(items: Sequence[cst.Param]) -> list[cst.Param]:
            return [self._annotate(item) if item.name.value == self.param_name else item for item in items]

        changes: dict[str, object] = {
            "posonly_params": update(params.posonly_params),
            "params": update(params.params),
            "kwonly_params": update(params.kwonly_params),
        }
        if isinstance(params.star_arg, cst.Param) and params.star_arg.name.value == self.param_name:
            changes["star_arg"] = self._annotate(params.star_arg)
        if params.star_kwarg is not None and params.star_kwarg.name.value == self.param_name:
            changes["star_kwarg"] = self._annotate(params.star_kwarg)
        return node.with_changes(params=params.with_changes(**changes))


class DocstringTagTransformer(DeclarationTransformer):
    """Adds a ``:type:``/``:rtype:`` style tag to the target's docstring."""

    def __init__(
        self,
        class_name: str | None,
        function_name: str,
        *,
        param_name: str | None,
        type_text: str,
        default_style: DocblockStyle = DocblockStyle.SPHINX,
    ) -> None:
        super().__init__(class_name, function_name)
        self.param_name = param_name
        self.type_text = type_text
        self.default_style = default_style

    def rewrite(self, node: cst.FunctionDef) -> cst.FunctionDef:
        body = node.body
        if not isinstance(body, cst.IndentedBlock) or not body.body or not _is_docstring(body.body[0]):
            self.missing = "no docstring"
            return node
        line = cst.ensure_type(body.body[0], cst.SimpleStatementLine)
        expr = cst.ensure_type(line.body[0], cst.Expr)
        string = cst.ensure_type(expr.value, cst.SimpleString)
        prefix, quote = string.prefix, string.quote
        if "b" in prefix.lower():
            self.missing = "bytes literal is not a docstring"
            return node
        text = string.value[len(prefix) + len(quote) : -len(quote)]
        updated = add_type_tag(
            text,
            type_text=self.type_text,
            param_name=self.param_name,
            default_style=self.default_style,
            indent=self.body_indent(node),
        )
        if updated == text:
            return node
        if len(quote) == 1:
            quote = quote * 3
            if quote in updated or updated.endswith(quote[0]):
                self.missing = "docstring cannot be converted to a multi-line string"
                return node
        self.changed = True
        new_string = string.with_changes(value=f"{prefix}{quote}{updated}{quote}")
        new_line = line.with_changes(body=[expr.with_changes(value=new_string), *line.body[1:]])
        return node.with_changes(body=body.with_changes(body=[new_line, *body.body[1:]]))


def transform_source(text: str, transformer: DeclarationTransformer, imports: Mapping[str, set[str]] | None = None) -> str:
    module = cst.parse_module(text)
    updated = module.visit(transformer)
    if transformer.changed and imports:
        updated = add_from_imports(updated, imports)
    return updated.code


def count_declarations(text: str, class_name: str | None, function_name: str) -> int:
    matcher = DeclarationTransformer(class_name, function_name)
    cst.parse_module(text).visit(matcher)
    return matcher.matches
