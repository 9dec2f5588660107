"""Textual type grammar shared by the collectors and the editor.

Everything that turns annotation or docstring text into an
:class:`InferredType`, or an :class:`InferredType` back into annotation text,
lives here so that analysis and rewriting agree on one spelling.
"""

from __future__ import annotations

import re
from collections import deque
from typing import Callable, Mapping

from typeinference.analysis.model import InferredType
from typeinference.exceptions import UnboundTypeName

NameResolver = Callable[[str], "str | None"]
NameBinder = Callable[[str], "str | None"]

SCALAR_NAMES = frozenset({"int", "float", "complex", "str", "bytes", "bytearray", "bool"})
CONTAINER_NAMES = frozenset({"list", "dict", "set", "frozenset", "tuple"})
BUILTIN_NAMES = SCALAR_NAMES | CONTAINER_NAMES | frozenset({"type", "range", "memoryview"})

# bool is an int, int is accepted where float is, float where complex is.
PROMOTIONS: Mapping[str, str] = {"bool": "int", "int": "float", "float": "complex"}

_ALIASES: Mapping[str, str] = {
    "string": "str",
    "unicode": "str",
    "integer": "int",
    "long": "int",
    "boolean": "bool",
    "double": "float",
    "number": "float",
    "array": "list",
    "sequence": "list",
    "dictionary": "dict",
    "mapping": "dict",
    "List": "list",
    "Dict": "dict",
    "Set": "set",
    "FrozenSet": "frozenset",
    "Tuple": "tuple",
    "Text": "str",
    "NoneType": "None",
    "none": "None",
    "null": "None",
    "void": "None",
}

_OPAQUE_NAMES = frozenset({"Any", "object", "mixed", "Mixed", "callable", "Callable", "TypeVar"})
_NONE_TEXT = frozenset({"None", "NoneType", "null", "void", "none", "type(None)"})

_IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*")
_DOTTED_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*$")
_OR_RE = re.compile(r"\s+or\s+")
_COLLECTION_OF_RE = re.compile(
    r"^(list|array|sequence|set|tuple|iterable)\s+of\s+(.+)$", re.IGNORECASE
)


def split_top_level(value: str, sep: str) -> list[str]:
    parts: list[str] = []
    buf: list[str] = []
    depth = 0
    for ch in value:
        if ch in "[({":
            depth += 1
        elif ch in "])}":
            depth = max(depth - 1, 0)
        if ch == sep and depth == 0:
            part = "".join(buf).strip()
            if part:
                parts.append(part)
            buf = []
            continue
        buf.append(ch)
    tail = "".join(buf).strip()
    if tail:
        parts.append(tail)
    return parts


def _strip_known_prefix(name: str) -> str:
    for prefix in ("typing.", "builtins.", "collections.abc."):
        if name.startswith(prefix):
            return name[len(prefix) :]
    return name


def normalize_name(name: str) -> str:
    base = _strip_known_prefix(name.strip())
    return _ALIASES.get(base, base)


def _unquote(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        return text[1:-1].strip()
    return text


def parse_type_expression(
    text: str, resolve: NameResolver | None = None
) -> InferredType | None:
    """Parse annotation or docstring type text.

    Returns ``None`` when the text carries no usable information: opaque
    names (``Any``, ``object``), unknown classes, or syntax we do not follow.
    """
    raw = _unquote(text.strip().rstrip(".").strip())
    if not raw:
        return None
    raw = _OR_RE.sub(" | ", raw)
    parts = split_top_level(raw, "|")
    if len(parts) > 1:
        result = InferredType()
        for part in parts:
            parsed = parse_type_expression(part, resolve)
            if parsed is None:
                return None
            result = result.union(parsed)
        return result
    return _parse_single(raw, resolve)


def _parse_single(raw: str, resolve: NameResolver | None) -> InferredType | None:
    if raw in _NONE_TEXT:
        return InferredType.none()
    collection = _COLLECTION_OF_RE.match(raw)
    if collection is not None:
        base = normalize_name(collection.group(1))
        if base == "iterable":
            base = "list"
        return _generic(base, [collection.group(2)], resolve)
    if raw.endswith("[]"):
        return _generic("list", [raw[:-2]], resolve)
    if "[" in raw and raw.endswith("]"):
        head, inner = raw.split("[", 1)
        head = _strip_known_prefix(head.strip())
        args = split_top_level(inner[:-1], ",")
        if head == "Optional":
            parsed = parse_type_expression(inner[:-1], resolve)
            return None if parsed is None else parsed.union(InferredType.none())
        if head == "Union":
            return parse_type_expression(" | ".join(args), resolve)
        base = normalize_name(head)
        if base not in CONTAINER_NAMES:
            return None
        return _generic(base, args, resolve)
    name = normalize_name(raw)
    if name == "None":
        return InferredType.none()
    if name in _OPAQUE_NAMES or raw in _OPAQUE_NAMES:
        return None
    if name in BUILTIN_NAMES:
        return InferredType.of(name)
    if not _DOTTED_RE.match(name) or resolve is None:
        return None
    qualified = resolve(name)
    if not qualified:
        return None
    return InferredType.of(qualified)


def _generic(
    base: str, args: list[str], resolve: NameResolver | None
) -> InferredType:
    if base == "tuple":
        return InferredType.of("tuple")
    rendered: list[str] = []
    for arg in args:
        parsed = parse_type_expression(arg, resolve)
        if parsed is None or parsed.is_empty:
            return InferredType.of(base)
        rendered.append(parsed.render())
    expected = 2 if base == "dict" else 1
    if len(rendered) != expected:
        return InferredType.of(base)
    return InferredType.of(f"{base}[{', '.join(rendered)}]")


def generic_base(name: str) -> str:
    return name.split("[", 1)[0]


def _element_type(values: list[object], depth: int) -> InferredType | None:
    result = InferredType()
    for value in values:
        parsed = type_of_value(value, depth=depth + 1)
        if parsed is None:
            return None
        result = result.union(parsed)
    if result.arity != 1:
        return None
    return result


def type_of_value(value: object, *, depth: int = 0, sample: int = 20) -> InferredType | None:
    """Runtime value to the type name the tool would write down."""
    if value is None:
        return InferredType.none()
    kind = type(value)
    module = kind.__module__
    qualname = kind.__qualname__
    if module == "builtins":
        if qualname not in BUILTIN_NAMES:
            return None
        if depth > 0 or qualname not in CONTAINER_NAMES or qualname == "tuple":
            return InferredType.of(qualname)
        if isinstance(value, dict):
            items = list(value.items())[:sample]
            keys = _element_type([key for key, _ in items], depth) if items else None
            values = _element_type([item for _, item in items], depth) if items else None
            if keys is None or values is None:
                return InferredType.of("dict")
            return InferredType.of(f"dict[{keys.render()}, {values.render()}]")
        elements = list(value)[:sample] if isinstance(value, (list, set, frozenset)) else []
        element = _element_type(elements, depth) if elements else None
        if element is None:
            return InferredType.of(qualname)
        return InferredType.of(f"{qualname}[{element.render()}]")
    if "<" in qualname or "." in qualname or module == "__main__":
        return None
    return InferredType.of(f"{module}.{qualname}")


def qualified_names_in(name: str) -> list[str]:
    """Dotted identifiers inside a type name that need a module binding."""
    found: list[str] = []
    for match in _IDENTIFIER_RE.finditer(name):
        token = match.group(0)
        if "." in token and token not in found:
            found.append(token)
    return found


def _bind_name(name: str, bind: NameBinder | None) -> str:
    if bind is None:
        return name

    def _replace(match: re.Match[str]) -> str:
        token = match.group(0)
        if "." not in token:
            return token
        bound = bind(token)
        if bound is None:
            raise UnboundTypeName(token)
        return bound

    return _IDENTIFIER_RE.sub(_replace, name)


def render_type(
    inferred: InferredType,
    *,
    style: str = "pep604",
    bind: NameBinder | None = None,
) -> str:
    names = sorted(_bind_name(name, bind) for name in inferred.names)
    if not names:
        return "None"
    if style == "typing":
        body = names[0] if len(names) == 1 else f"Union[{', '.join(names)}]"
        return f"Optional[{body}]" if inferred.nullable else body
    if inferred.nullable:
        names.append("None")
    return " | ".join(names)


def typing_names_used(rendered: str) -> set[str]:
    return {name for name in ("Optional", "Union") if re.search(rf"\b{name}\[", rendered)}


def _ancestor_depths(name: str, class_bases: Mapping[str, tuple[str, ...]]) -> dict[str, int]:
    depths = {name: 0}
    queue = deque([name])
    while queue:
        current = queue.popleft()
        parents = list(class_bases.get(current, ()))
        promoted = PROMOTIONS.get(current)
        if promoted is not None:
            parents.append(promoted)
        for parent in parents:
            if parent in depths:
                continue
            depths[parent] = depths[current] + 1
            queue.append(parent)
    return depths


def common_ancestor(
    names: frozenset[str] | set[str],
    class_bases: Mapping[str, tuple[str, ...]],
) -> str | None:
    """Nearest shared ancestor of ``names``; ``object`` does not count."""
    if not names:
        return None
    tables = [_ancestor_depths(name, class_bases) for name in sorted(names)]
    shared = set(tables[0])
    for table in tables[1:]:
        shared &= set(table)
    shared -= {"object", "builtins.object"}
    if not shared:
        return None
    return min(shared, key=lambda item: (sum(table[item] for table in tables), item))


def is_portable(inferred: InferredType) -> bool:
    """True when every name is a builtin or a qualified class name."""
    for name in inferred.names:
        for match in _IDENTIFIER_RE.finditer(name):
            token = match.group(0)
            if "." not in token and token not in BUILTIN_NAMES:
                return False
    return True
