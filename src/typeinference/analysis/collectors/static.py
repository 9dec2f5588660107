"""Static analysis of declarations and call sites.

Two visitors run over every project file. :class:`DeclarationVisitor`
registers functions, classes and existing annotations; once every file has
been declared, :class:`CallSiteVisitor` walks call expressions, default
values, return statements and annotated assignments to infer the types the
code actually passes around.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from typeinference.analysis.collectors.base import (
    DeclaredFunction,
    FunctionNode,
    TypeNameResolver,
    decorator_names,
    iter_declared_functions,
    make_evidence,
    module_bindings,
    receiver_kind,
    signature_parameters,
)
from typeinference.analysis.collectors.names import ModuleBindings, dotted_name
from typeinference.analysis.docblock import parse_docblock
from typeinference.analysis.model import (
    RETURN_SLOT,
    AnalyzedFunction,
    AnalyzedParameter,
    FunctionIdentity,
    InferredType,
    ParameterKind,
    Slot,
    SourceKind,
)
from typeinference.analysis.registry import AnalyzedFunctionCollection
from typeinference.analysis.types import (
    BUILTIN_NAMES,
    SCALAR_NAMES,
    is_portable,
    normalize_name,
    parse_type_expression,
)

_NUMERIC_ORDER = ("bool", "int", "float", "complex")
_ARITHMETIC = (ast.Add, ast.Sub, ast.Mult, ast.Div, ast.FloorDiv, ast.Mod, ast.Pow)


def annotation_type(annotation: ast.expr, resolve: TypeNameResolver) -> InferredType:
    """Annotation as evidence; unparseable annotations are kept verbatim."""
    text = ast.unparse(annotation)
    parsed = parse_type_expression(text, resolve)
    if parsed is None or parsed.is_empty:
        return InferredType.of(text)
    return parsed


def portable_annotation_type(annotation: ast.expr, resolve: TypeNameResolver) -> InferredType | None:
    parsed = parse_type_expression(ast.unparse(annotation), resolve)
    if parsed is None or parsed.is_empty or not is_portable(parsed):
        return None
    return parsed


class DeclarationVisitor(ast.NodeVisitor):
    """Registers the classes and functions declared at module or top-level class scope."""

    def __init__(
        self,
        registry: AnalyzedFunctionCollection,
        *,
        path: Path,
        bindings: ModuleBindings,
    ) -> None:
        self.registry = registry
        self.path = path
        self.bindings = bindings
        self.resolve = TypeNameResolver(bindings)

    @property
    def module(self) -> str:
        return self.bindings.module

    def visit_Module(self, node: ast.Module) -> None:
        for stmt in node.body:
            if isinstance(stmt, ast.ClassDef):
                self.visit(stmt)
        for declared in iter_declared_functions(node):
            self._declare(declared)

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        bases: list[str] = []
        for base in node.bases:
            dotted = dotted_name(base)
            if dotted is None or dotted == "object":
                continue
            bases.append(self.resolve(dotted) or normalize_name(dotted))
        self.registry.declare_class(f"{self.module}.{node.name}", bases)

    def _declare(self, declared: DeclaredFunction) -> None:
        node = declared.node
        identity = declared.identity(self.module)
        params, _receiver = signature_parameters(node, declared.class_name)
        docstring = ast.get_docstring(node)
        tags = parse_docblock(docstring)
        self.registry.declare(
            AnalyzedFunction(
                identity=identity,
                parameters=tuple(item.parameter for item in params),
                file_path=str(self.path),
                receiver=receiver_kind(node, declared.class_name),
                has_docblock=docstring is not None,
                documented_params=frozenset(
                    item.parameter.name for item in params if tags.documents_param(item.parameter.name)
                ),
                documents_return=tags.documents_return,
            )
        )
        for item in params:
            if item.arg.annotation is None:
                continue
            self.registry.insert(
                make_evidence(
                    identity,
                    item.parameter.position,
                    annotation_type(item.arg.annotation, self.resolve),
                    SourceKind.EXISTING_TYPE_HINT,
                )
            )
        if node.returns is not None:
            self.registry.insert(
                make_evidence(
                    identity,
                    RETURN_SLOT,
                    annotation_type(node.returns, self.resolve),
                    SourceKind.EXISTING_TYPE_HINT,
                )
            )


class _BoundNames(ast.NodeVisitor):
    """Names bound in one scope, with the expression assigned where it is simple."""

    def __init__(self) -> None:
        self.values: dict[str, list[ast.expr]] = {}
        self.annotations: dict[str, ast.expr] = {}
        self.opaque: set[str] = set()

    @classmethod
    def scan(cls, body: Iterable[ast.stmt]) -> _BoundNames:
        scanner = cls()
        for stmt in body:
            scanner.visit(stmt)
        return scanner

    def _opaque_target(self, target: ast.AST) -> None:
        match target:
            case ast.Name(id=name):
                self.opaque.add(name)
            case ast.Tuple(elts=elts) | ast.List(elts=elts):
                for elt in elts:
                    self._opaque_target(elt)
            case ast.Starred(value=value):
                self._opaque_target(value)

    def visit_Assign(self, node: ast.Assign) -> None:
        for target in node.targets:
            if isinstance(target, ast.Name):
                self.values.setdefault(target.id, []).append(node.value)
            else:
                self._opaque_target(target)
        self.visit(node.value)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        if isinstance(node.target, ast.Name):
            self.annotations[node.target.id] = node.annotation
        if node.value is not None:
            self.visit(node.value)

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        self._opaque_target(node.target)

    def visit_For(self, node: ast.For) -> None:
        self._opaque_target(node.target)
        self.generic_visit(node)

    visit_AsyncFor = visit_For

    def visit_withitem(self, node: ast.withitem) -> None:
        if node.optional_vars is not None:
            self._opaque_target(node.optional_vars)

    def visit_NamedExpr(self, node: ast.NamedExpr) -> None:
        self._opaque_target(node.target)

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.name:
            self.opaque.add(node.name)
        self.generic_visit(node)

    def visit_Import(self, node: ast.Import | ast.ImportFrom) -> None:
        for alias in node.names:
            self.opaque.add((alias.asname or alias.name).split(".", 1)[0])

    visit_ImportFrom = visit_Import

    def visit_Global(self, node: ast.Global | ast.Nonlocal) -> None:
        self.opaque.update(node.names)

    visit_Nonlocal = visit_Global

    def visit_FunctionDef(self, node: FunctionNode | ast.ClassDef) -> None:
        self.opaque.add(node.name)

    visit_AsyncFunctionDef = visit_FunctionDef
    visit_ClassDef = visit_FunctionDef

    def visit_Lambda(self, node: ast.Lambda) -> None:
        return

    def visit_ListComp(self, node: ast.AST) -> None:
        return

    visit_SetComp = visit_ListComp
    visit_DictComp = visit_ListComp
    visit_GeneratorExp = visit_ListComp

    def names(self) -> set[str]:
        return set(self.values) | set(self.annotations) | self.opaque


@dataclass
class _Scope:
    types: dict[str, InferredType] = field(default_factory=dict)
    bound: set[str] = field(default_factory=set)
    parent: _Scope | None = None
    class_qualified: str | None = None
    receiver_name: str | None = None
    function: AnalyzedFunction | None = None

    def lookup(self, name: str) -> InferredType | None:
        if name in self.types:
            return self.types[name]
        if name in self.bound or self.parent is None:
            return None
        return self.parent.lookup(name)

    def binds(self, name: str) -> bool:
        if name in self.types or name in self.bound:
            return True
        return self.parent is not None and self.parent.binds(name)


class ExpressionTyper:
    """Infers the type of an expression from its syntax and the local scope."""

    def __init__(
        self,
        bindings: ModuleBindings,
        registry: AnalyzedFunctionCollection,
        resolve: TypeNameResolver,
    ) -> None:
        self.bindings = bindings
        self.registry = registry
        self.resolve = resolve
        self.class_bases = registry.class_bases()
        self.calls: CallResolver | None = None

    def class_named(self, expr: ast.expr, scope: _Scope) -> str | None:
        dotted = dotted_name(expr)
        if dotted is None or scope.binds(dotted.split(".", 1)[0]):
            return None
        qualified = self.bindings.resolve(dotted)
        if qualified is not None and qualified in self.class_bases:
            return qualified
        return None

    def _builtin_call(self, func: ast.expr, scope: _Scope) -> str | None:
        if not isinstance(func, ast.Name) or func.id not in BUILTIN_NAMES:
            return None
        if scope.binds(func.id) or self.bindings.resolve(func.id) is not None:
            return None
        return func.id

    def infer(self, expr: ast.expr, scope: _Scope) -> InferredType | None:
        match expr:
            case ast.Constant(value=None):
                return InferredType.none()
            case ast.Constant(value=value):
                name = type(value).__name__
                return InferredType.of(name) if name in SCALAR_NAMES else None
            case ast.JoinedStr():
                return InferredType.of("str")
            case ast.List(elts=elts):
                return self._collection("list", elts, scope)
            case ast.Set(elts=elts):
                return self._collection("set", elts, scope)
            case ast.Tuple():
                return InferredType.of("tuple")
            case ast.Dict(keys=keys, values=values):
                return self._mapping(keys, values, scope)
            case ast.ListComp():
                return InferredType.of("list")
            case ast.SetComp():
                return InferredType.of("set")
            case ast.DictComp():
                return InferredType.of("dict")
            case ast.Compare():
                return InferredType.of("bool")
            case ast.UnaryOp(op=ast.Not()):
                return InferredType.of("bool")
            case ast.UnaryOp(op=ast.USub() | ast.UAdd(), operand=operand):
                inner = self.infer(operand, scope)
                if inner is not None and inner.names <= set(_NUMERIC_ORDER) and not inner.nullable:
                    return inner if inner.names != {"bool"} else InferredType.of("int")
                return None
            case ast.BoolOp(values=values):
                return self._union([self.infer(value, scope) for value in values])
            case ast.IfExp(body=body, orelse=orelse):
                return self._union([self.infer(body, scope), self.infer(orelse, scope)])
            case ast.BinOp(left=left, op=op, right=right):
                return self._binop(self.infer(left, scope), op, self.infer(right, scope))
            case ast.Name(id=name):
                return scope.lookup(name)
            case ast.Call(func=func):
                return self._call(expr, func, scope)
        return None

    @staticmethod
    def _union(items: list[InferredType | None]) -> InferredType | None:
        if any(item is None for item in items):
            return None
        return InferredType.union_all(item for item in items if item is not None)

    def _element(self, elts: list[ast.expr], scope: _Scope) -> str | None:
        if not elts or any(isinstance(elt, ast.Starred) for elt in elts):
            return None
        merged = self._union([self.infer(elt, scope) for elt in elts])
        if merged is None or merged.arity != 1:
            return None
        return merged.render()

    def _collection(self, base: str, elts: list[ast.expr], scope: _Scope) -> InferredType:
        element = self._element(elts, scope)
        return InferredType.of(f"{base}[{element}]" if element else base)

    def _mapping(self, keys: list[ast.expr | None], values: list[ast.expr], scope: _Scope) -> InferredType:
        if not keys or any(key is None for key in keys):
            return InferredType.of("dict")
        key_type = self._element([key for key in keys if key is not None], scope)
        value_type = self._element(values, scope)
        if key_type is None or value_type is None:
            return InferredType.of("dict")
        return InferredType.of(f"dict[{key_type}, {value_type}]")

    @staticmethod
    def _binop(left: InferredType | None, op: ast.operator, right: InferredType | None) -> InferredType | None:
        if left is None or right is None or left.nullable or right.nullable:
            return None
        if left.arity != 1 or right.arity != 1:
            return None
        (lhs,), (rhs,) = left.names, right.names
        if lhs == "str" and (isinstance(op, ast.Mod) or (rhs == "str" and isinstance(op, ast.Add))):
            return InferredType.of("str")
        if lhs == rhs and lhs.split("[", 1)[0] in {"list", "bytes"} and isinstance(op, ast.Add):
            return InferredType.of(lhs)
        if lhs in _NUMERIC_ORDER and rhs in _NUMERIC_ORDER and isinstance(op, _ARITHMETIC):
            widest = max(_NUMERIC_ORDER.index(lhs), _NUMERIC_ORDER.index(rhs), 1)
            if isinstance(op, ast.Div):
                widest = max(widest, 2)
            return InferredType.of(_NUMERIC_ORDER[widest])
        return None

    def _call(self, call: ast.Call, func: ast.expr, scope: _Scope) -> InferredType | None:
        builtin = self._builtin_call(func, scope)
        if builtin is not None:
            return InferredType.of(builtin)
        cls = self.class_named(func, scope)
        if cls is not None:
            return InferredType.of(cls)
        if self.calls is None:
            return None
        target = self.calls.resolve(call, scope)
        if target is None:
            return None
        for item in target.function.evidence_for(RETURN_SLOT):
            if item.source_kind is SourceKind.EXISTING_TYPE_HINT and is_portable(item.inferred_type):
                return item.inferred_type
        return None


@dataclass(frozen=True)
class CallTarget:
    function: AnalyzedFunction
    offset: int


class CallResolver:
    """Resolves a call expression to a declared function of the project."""

    def __init__(self, bindings: ModuleBindings, registry: AnalyzedFunctionCollection, typer: ExpressionTyper) -> None:
        self.bindings = bindings
        self.registry = registry
        self.typer = typer
        self.class_bases = typer.class_bases

    def _declared(self, identity: FunctionIdentity) -> AnalyzedFunction | None:
        function = self.registry.find(identity)
        if function is None or not function.declared:
            return None
        return function

    def _mro(self, qualified: str) -> list[str]:
        order: list[str] = []
        pending = [qualified]
        while pending:
            current = pending.pop(0)
            if current in order:
                continue
            order.append(current)
            pending.extend(self.class_bases.get(current, ()))
        return order

    def method(self, qualified_class: str, name: str, *, via_instance: bool) -> CallTarget | None:
        for candidate in self._mro(qualified_class):
            module, _, class_name = candidate.rpartition(".")
            function = self._declared(FunctionIdentity(module, class_name, name))
            if function is None:
                continue
            if via_instance or function.receiver != "instance":
                return CallTarget(function, 0)
            return CallTarget(function, 1)
        return None

    def resolve(self, call: ast.Call, scope: _Scope) -> CallTarget | None:
        func = call.func
        if isinstance(func, ast.Name):
            if scope.binds(func.id):
                return None
            cls = self.typer.class_named(func, scope)
            if cls is not None:
                return self.method(cls, "__init__", via_instance=True)
            qualified = self.bindings.resolve(func.id)
            if qualified is None or "." not in qualified:
                return None
            module, _, name = qualified.rpartition(".")
            function = self._declared(FunctionIdentity(module, None, name))
            return CallTarget(function, 0) if function is not None else None
        if not isinstance(func, ast.Attribute):
            return None
        value = func.value
        if (
            isinstance(value, ast.Name)
            and scope.receiver_name is not None
            and value.id == scope.receiver_name
            and scope.class_qualified is not None
        ):
            return self.method(scope.class_qualified, func.attr, via_instance=True)
        cls = self.typer.class_named(value, scope)
        if cls is not None:
            return self.method(cls, func.attr, via_instance=False)
        dotted = dotted_name(value)
        if dotted is not None and not scope.binds(dotted.split(".", 1)[0]):
            qualified = self.bindings.resolve(dotted)
            if qualified is not None:
                function = self._declared(FunctionIdentity(qualified, None, func.attr))
                if function is not None:
                    return CallTarget(function, 0)
        inferred = self.typer.infer(value, scope)
        if inferred is None or inferred.nullable or inferred.arity != 1:
            return None
        (name,) = inferred.names
        if name not in self.class_bases:
            return None
        return self.method(name, func.attr, via_instance=True)


def _is_abstract(node: FunctionNode) -> bool:
    if "abstractmethod" in decorator_names(node) or "overload" in decorator_names(node):
        return True
    body = list(node.body)
    if body and isinstance(body[0], ast.Expr) and isinstance(body[0].value, ast.Constant) and isinstance(body[0].value.value, str):
        body = body[1:]
    if len(body) != 1:
        return False
    stmt = body[0]
    if isinstance(stmt, ast.Expr) and isinstance(stmt.value, ast.Constant) and stmt.value.value is Ellipsis:
        return True
    if isinstance(stmt, ast.Raise) and stmt.exc is not None:
        target = stmt.exc.func if isinstance(stmt.exc, ast.Call) else stmt.exc
        return isinstance(target, ast.Name) and target.id == "NotImplementedError"
    return False


def _terminates(body: list[ast.stmt]) -> bool:
    if not body:
        return False
    last = body[-1]
    match last:
        case ast.Return() | ast.Raise():
            return True
        case ast.If(body=then, orelse=orelse):
            return _terminates(then) and _terminates(orelse)
        case ast.With(body=inner) | ast.AsyncWith(body=inner):
            return _terminates(inner)
        case ast.Try(body=inner, handlers=handlers, orelse=orelse, finalbody=final):
            if _terminates(final):
                return True
            return (_terminates(inner) or _terminates(orelse)) and all(
                _terminates(handler.body) for handler in handlers
            )
        case ast.While(test=ast.Constant(value=True), orelse=[]):
            return not any(isinstance(node, ast.Break) for node in ast.walk(last))
    return False


class _ReturnScan(ast.NodeVisitor):
    def __init__(self) -> None:
        self.returns: list[ast.expr | None] = []
        self.yields = False

    def visit_Return(self, node: ast.Return) -> None:
        self.returns.append(node.value)
        self.generic_visit(node)

    def visit_Yield(self, node: ast.AST) -> None:
        self.yields = True

    visit_YieldFrom = visit_Yield

    def visit_FunctionDef(self, node: ast.AST) -> None:
        return

    visit_AsyncFunctionDef = visit_FunctionDef
    visit_ClassDef = visit_FunctionDef
    visit_Lambda = visit_FunctionDef


class CallSiteVisitor(ast.NodeVisitor):
    """Records static evidence for one module once all declarations are known."""

    def __init__(
        self,
        registry: AnalyzedFunctionCollection,
        *,
        bindings: ModuleBindings,
    ) -> None:
        self.registry = registry
        self.bindings = bindings
        self.resolve = TypeNameResolver(bindings, known_classes=set(registry.class_bases()))
        self.typer = ExpressionTyper(bindings, registry, self.resolve)
        self.calls = CallResolver(bindings, registry, self.typer)
        self.typer.calls = self.calls
        self._scope = _Scope()
        self._class_stack: list[str] = []
        self._function_depth = 0

    @property
    def module(self) -> str:
        return self.bindings.module

    def _insert(self, identity: FunctionIdentity, slot: Slot, inferred: InferredType | None) -> None:
        if inferred is None or inferred.is_empty:
            return
        self.registry.insert(make_evidence(identity, slot, inferred, SourceKind.STATIC_CALL_ANALYSIS))

    def _fill_scope(self, scope: _Scope, body: Iterable[ast.stmt], module_names: Iterable[str] = ()) -> None:
        bound = _BoundNames.scan(body)
        scope.bound |= bound.names() - set(module_names)
        for name, annotation in bound.annotations.items():
            if name in bound.opaque:
                continue
            inferred = portable_annotation_type(annotation, self.resolve)
            if inferred is not None:
                scope.types[name] = inferred
        for name in sorted(bound.values):
            if name in bound.opaque or name in bound.annotations:
                continue
            inferred = InferredType() if name not in scope.types else scope.types[name]
            for value in bound.values[name]:
                item = self.typer.infer(value, scope)
                if item is None:
                    scope.types.pop(name, None)
                    break
                inferred = inferred.union(item)
            else:
                if not inferred.is_empty:
                    scope.types[name] = inferred

    def visit_Module(self, node: ast.Module) -> None:
        # module-level definitions resolve through the bindings, not the scope
        self._fill_scope(
            self._scope,
            node.body,
            {*self.bindings.imports, *self.bindings.classes, *self.bindings.functions},
        )
        self.generic_visit(node)

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        if self._class_stack or self._function_depth:
            self._function_depth += 1
            self.generic_visit(node)
            self._function_depth -= 1
            return
        self._class_stack.append(node.name)
        self.generic_visit(node)
        self._class_stack.pop()

    def visit_FunctionDef(self, node: FunctionNode) -> None:
        declared = self._function_depth == 0
        class_name = self._class_stack[-1] if (self._class_stack and declared) else None
        function = None
        if declared:
            function = self.registry.find(FunctionIdentity(self.module, class_name, node.name))
        for decorator in node.decorator_list:
            self.visit(decorator)
        for default in [*node.args.defaults, *(d for d in node.args.kw_defaults if d is not None)]:
            self.visit(default)
        params, receiver = signature_parameters(node, class_name)
        if function is not None and function.declared:
            # defaults are evaluated in the enclosing scope
            for item in params:
                if item.default is not None:
                    self._insert(function.identity, item.parameter.position, self.typer.infer(item.default, self._scope))
        scope = _Scope(parent=self._scope, function=function)
        if class_name is not None and receiver is not None:
            scope.class_qualified = f"{self.module}.{class_name}"
            scope.receiver_name = receiver.arg
            scope.bound.add(receiver.arg)
            if receiver_kind(node, class_name) == "instance":
                scope.types[receiver.arg] = InferredType.of(scope.class_qualified)
        elif self._scope.class_qualified is not None:
            scope.class_qualified = self._scope.class_qualified
        for item in params:
            scope.bound.add(item.parameter.name)
            if item.arg.annotation is not None and item.parameter.kind not in (
                ParameterKind.VAR_POSITIONAL,
                ParameterKind.VAR_KEYWORD,
            ):
                inferred = portable_annotation_type(item.arg.annotation, self.resolve)
                if inferred is not None:
                    scope.types[item.parameter.name] = inferred
        self._fill_scope(scope, node.body)
        if function is not None and function.declared:
            self._record_returns(function, node, scope)
        previous = self._scope
        self._scope = scope
        self._function_depth += 1
        for stmt in node.body:
            self.visit(stmt)
        self._function_depth -= 1
        self._scope = previous

    visit_AsyncFunctionDef = visit_FunctionDef

    def visit_Lambda(self, node: ast.Lambda) -> None:
        previous = self._scope
        self._scope = _Scope(parent=previous, bound={arg.arg for arg in ast.walk(node.args) if isinstance(arg, ast.arg)})
        self.generic_visit(node)
        self._scope = previous

    def _visit_comprehension(self, node: ast.ListComp | ast.SetComp | ast.DictComp | ast.GeneratorExp) -> None:
        names = {
            target.id
            for generator in node.generators
            for target in ast.walk(generator.target)
            if isinstance(target, ast.Name)
        }
        previous = self._scope
        self._scope = _Scope(parent=previous, bound=names)
        self.generic_visit(node)
        self._scope = previous

    visit_ListComp = _visit_comprehension
    visit_SetComp = _visit_comprehension
    visit_DictComp = _visit_comprehension
    visit_GeneratorExp = _visit_comprehension

    def _record_returns(self, function: AnalyzedFunction, node: FunctionNode, scope: _Scope) -> None:
        if function.is_explicit(RETURN_SLOT) or _is_abstract(node):
            return
        scan = _ReturnScan()
        for stmt in node.body:
            scan.visit(stmt)
        if scan.yields:
            return
        values = [value for value in scan.returns if value is not None]
        if not values:
            if not scan.returns and _terminates(node.body):
                return
            self._insert(function.identity, RETURN_SLOT, InferredType.none())
            return
        inferred = InferredType()
        for value in values:
            item = self.typer.infer(value, scope)
            if item is None:
                return
            inferred = inferred.union(item)
        if len(values) != len(scan.returns) or not _terminates(node.body):
            inferred = inferred.union(InferredType.none())
        self._insert(function.identity, RETURN_SLOT, inferred)

    def visit_Call(self, node: ast.Call) -> None:
        target = self.calls.resolve(node, self._scope)
        if target is not None:
            self._record_arguments(target, node)
        self.generic_visit(node)

    def _record_arguments(self, target: CallTarget, call: ast.Call) -> None:
        function = target.function
        positional = [param for param in function.parameters if param.accepts_positional]
        var_positional = _param_of_kind(function.parameters, ParameterKind.VAR_POSITIONAL)
        var_keyword = _param_of_kind(function.parameters, ParameterKind.VAR_KEYWORD)
        for index, arg in enumerate(call.args):
            if isinstance(arg, ast.Starred):
                break
            index -= target.offset
            if index < 0:
                continue
            param = positional[index] if index < len(positional) else var_positional
            if param is None:
                break
            self._insert(function.identity, param.position, self.typer.infer(arg, self._scope))
        for keyword in call.keywords:
            if keyword.arg is None:
                continue
            param = next(
                (item for item in function.parameters if item.name == keyword.arg and item.accepts_keyword),
                var_keyword,
            )
            if param is None:
                continue
            self._insert(function.identity, param.position, self.typer.infer(keyword.value, self._scope))

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        if isinstance(node.value, ast.Call):
            target = self.calls.resolve(node.value, self._scope)
            if target is not None:
                self._insert(
                    target.function.identity,
                    RETURN_SLOT,
                    portable_annotation_type(node.annotation, self.resolve),
                )
        self.generic_visit(node)

    def visit_Return(self, node: ast.Return) -> None:
        current = self._scope.function
        if isinstance(node.value, ast.Call) and current is not None and self._function_depth == 1:
            for item in current.evidence_for(RETURN_SLOT):
                if item.source_kind is not SourceKind.EXISTING_TYPE_HINT or not is_portable(item.inferred_type):
                    continue
                target = self.calls.resolve(node.value, self._scope)
                if target is not None:
                    self._insert(target.function.identity, RETURN_SLOT, item.inferred_type)
                break
        self.generic_visit(node)


def _param_of_kind(params: tuple[AnalyzedParameter, ...], kind: ParameterKind) -> AnalyzedParameter | None:
    return next((param for param in params if param.kind is kind), None)


class DeclarationCollector:
    """Registers declarations and existing annotations. Always runs first."""

    name = "declarations"
    source_kind = SourceKind.EXISTING_TYPE_HINT

    def __init__(self, project_root: Path | None = None) -> None:
        self.project_root = project_root

    def observe(self, tree: ast.Module, path: Path, registry: AnalyzedFunctionCollection) -> None:
        bindings = module_bindings(tree, path, self.project_root)
        DeclarationVisitor(registry, path=path, bindings=bindings).visit(tree)


class StaticCallSiteAnalyzer:
    name = "static"
    source_kind = SourceKind.STATIC_CALL_ANALYSIS

    def __init__(self, project_root: Path | None = None) -> None:
        self.project_root = project_root

    def observe(self, tree: ast.Module, path: Path, registry: AnalyzedFunctionCollection) -> None:
        bindings = module_bindings(tree, path, self.project_root)
        CallSiteVisitor(registry, bindings=bindings).visit(tree)
