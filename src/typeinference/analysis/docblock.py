"""Docstring type tags.

Three tag dialects are read: epytext (``@type a: int``, ``@rtype: int``),
Sphinx (``:type a: int``, ``:param int a:``, ``:rtype: int``) and Google
(``Args:`` / ``Returns:`` sections). The same module writes the missing tags
back in the dialect the docstring already uses.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum


class DocblockStyle(StrEnum):
    EPYTEXT = "epytext"
    SPHINX = "sphinx"
    GOOGLE = "google"


_FIELD_RE = re.compile(r"^\s*([:@])(\w+)(?:\s+([^:]*?))?\s*:(.*)$")
_GOOGLE_SECTION_RE = re.compile(r"^\s*(Args|Arguments|Parameters|Params|Returns|Return|Yields|Raises|Examples?|Notes?|Attributes|See Also|Todo)\s*:\s*$")
_GOOGLE_PARAM_RE = re.compile(r"^(\s*)(\*{0,2}\w+)\s*(?:\(([^)]*)\))?\s*:(.*)$")
_GOOGLE_RETURN_RE = re.compile(r"^(\s*)([^:\s][^:]*?)\s*:(.*)$")

_PARAM_SECTIONS = {"Args", "Arguments", "Parameters", "Params"}
_RETURN_SECTIONS = {"Returns", "Return"}


@dataclass
class DocblockTags:
    style: DocblockStyle | None = None
    param_types: dict[str, str] = field(default_factory=dict)
    mentioned_params: set[str] = field(default_factory=set)
    return_type: str | None = None
    has_return_tag: bool = False

    def documents_param(self, name: str) -> bool:
        return name in self.param_types

    @property
    def documents_return(self) -> bool:
        return self.return_type is not None


def _google_type(raw: str) -> str:
    parts = [part.strip() for part in raw.split(",")]
    return ", ".join(part for part in parts if part and part != "optional")


def parse_docblock(text: str | None) -> DocblockTags:
    tags = DocblockTags()
    if not text:
        return tags
    section: str | None = None
    section_indent = 0
    entry_indent: int | None = None
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        field_match = _FIELD_RE.match(line)
        if field_match is not None and field_match.group(2) in {
            "param", "parameter", "arg", "type", "return", "returns", "rtype", "keyword", "kwarg",
        }:
            section = None
            marker, name, arg, rest = field_match.groups()
            tags.style = DocblockStyle.SPHINX if marker == ":" else DocblockStyle.EPYTEXT
            arg = (arg or "").strip()
            if name in {"param", "parameter", "arg", "keyword", "kwarg"}:
                words = arg.split()
                if not words:
                    continue
                param_name = words[-1].lstrip("*")
                tags.mentioned_params.add(param_name)
                if len(words) > 1:
                    tags.param_types.setdefault(param_name, " ".join(words[:-1]))
            elif name == "type" and arg:
                param_name = arg.split()[-1].lstrip("*")
                tags.mentioned_params.add(param_name)
                if rest.strip():
                    tags.param_types[param_name] = rest.strip()
            elif name in {"return", "returns"}:
                tags.has_return_tag = True
            elif name == "rtype" and rest.strip():
                tags.has_return_tag = True
                tags.return_type = rest.strip()
            continue
        section_match = _GOOGLE_SECTION_RE.match(line)
        if section_match is not None:
            section = section_match.group(1)
            section_indent = len(line) - len(line.lstrip())
            entry_indent = None
            if section in _PARAM_SECTIONS | _RETURN_SECTIONS:
                tags.style = tags.style or DocblockStyle.GOOGLE
            if section in _RETURN_SECTIONS:
                tags.has_return_tag = True
            continue
        indent = len(line) - len(line.lstrip())
        if section is None or indent <= section_indent:
            section = None
            continue
        if section in _PARAM_SECTIONS:
            if entry_indent is None:
                entry_indent = indent
            param_match = _GOOGLE_PARAM_RE.match(line)
            if param_match is None or indent != entry_indent:
                continue
            param_name = param_match.group(2).lstrip("*")
            if param_name in tags.mentioned_params and not param_match.group(3):
                continue
            tags.mentioned_params.add(param_name)
            if param_match.group(3):
                type_text = _google_type(param_match.group(3))
                if type_text:
                    tags.param_types[param_name] = type_text
        elif section in _RETURN_SECTIONS and tags.return_type is None:
            return_match = _GOOGLE_RETURN_RE.match(line)
            if return_match is not None and " " not in return_match.group(2).replace(", ", ",").replace(" | ", "|"):
                tags.return_type = return_match.group(2).strip()
            section = None
    return tags


def _line_indent(line: str) -> str:
    return line[: len(line) - len(line.lstrip())]


def docstring_indent(body: str, fallback: str) -> str:
    lines = body.split("\n")[1:]
    indents = [_line_indent(line) for line in lines if line.strip()]
    if not indents:
        return fallback
    return min(indents, key=len)


def render_tag(style: DocblockStyle, type_text: str, param_name: str | None) -> str:
    if style is DocblockStyle.EPYTEXT:
        return f"@type {param_name}: {type_text}" if param_name else f"@rtype: {type_text}"
    return f":type {param_name}: {type_text}" if param_name else f":rtype: {type_text}"


def _field_end(lines: list[str], start: int) -> int:
    """Index just past the field starting at ``start`` (continuation lines included)."""
    base = len(_line_indent(lines[start]))
    index = start + 1
    while index < len(lines):
        line = lines[index]
        if not line.strip() or len(_line_indent(line)) <= base:
            break
        index += 1
    return index


def _closing_index(lines: list[str]) -> int:
    if len(lines) > 1 and not lines[-1].strip():
        return len(lines) - 1
    return len(lines)


def _insert_field(
    lines: list[str], *, tag_line: str, param_name: str | None
) -> list[str]:
    anchor: int | None = None
    last_field: int | None = None
    for index, line in enumerate(lines):
        match = _FIELD_RE.match(line)
        if match is None:
            continue
        last_field = _field_end(lines, index)
        if param_name is not None and match.group(2) in {"param", "parameter", "arg"}:
            words = (match.group(3) or "").split()
            if words and words[-1].lstrip("*") == param_name:
                anchor = last_field
    position = anchor if anchor is not None else last_field
    if position is None:
        position = _closing_index(lines)
        while position > 1 and not lines[position - 1].strip():
            position -= 1
        return lines[:position] + ["", tag_line] + lines[position:]
    return lines[:position] + [tag_line] + lines[position:]


def _find_section(lines: list[str], names: set[str]) -> int | None:
    for index, line in enumerate(lines):
        match = _GOOGLE_SECTION_RE.match(line)
        if match is not None and match.group(1) in names:
            return index
    return None


def _section_end(lines: list[str], header: int) -> int:
    base = len(_line_indent(lines[header]))
    index = header + 1
    while index < len(lines):
        line = lines[index]
        if line.strip() and len(_line_indent(line)) <= base:
            break
        index += 1
    while index > header + 1 and not lines[index - 1].strip():
        index -= 1
    return index


def _insert_google(
    lines: list[str], *, indent: str, type_text: str, param_name: str | None
) -> list[str]:
    names = _PARAM_SECTIONS if param_name is not None else _RETURN_SECTIONS
    header = _find_section(lines, names)
    if header is None:
        position = _closing_index(lines)
        while position > 1 and not lines[position - 1].strip():
            position -= 1
        title = "Args:" if param_name is not None else "Returns:"
        entry = f"{param_name} ({type_text}):" if param_name is not None else f"{type_text}:"
        block = ["", indent + title, indent + "    " + entry]
        return lines[:position] + block + lines[position:]
    end = _section_end(lines, header)
    entry_indent = indent + "    "
    for index in range(header + 1, end):
        if lines[index].strip():
            entry_indent = _line_indent(lines[index])
            break
    if param_name is None:
        for index in range(header + 1, end):
            if lines[index].strip():
                lines = list(lines)
                lines[index] = f"{entry_indent}{type_text}: {lines[index].strip()}"
                return lines
        return lines[:end] + [f"{entry_indent}{type_text}:"] + lines[end:]
    for index in range(header + 1, end):
        match = _GOOGLE_PARAM_RE.match(lines[index])
        if match is None or _line_indent(lines[index]) != entry_indent:
            continue
        if match.group(2).lstrip("*") != param_name:
            continue
        lines = list(lines)
        lines[index] = f"{match.group(1)}{match.group(2)} ({type_text}):{match.group(4)}"
        return lines
    return lines[:end] + [f"{entry_indent}{param_name} ({type_text}):"] + lines[end:]


def add_type_tag(
    body: str,
    *,
    type_text: str,
    param_name: str | None,
    default_style: DocblockStyle,
    indent: str,
) -> str:
    """Return ``body`` (docstring text between the quotes) with one more type tag.

    ``param_name`` ``None`` targets the return type. A body that already
    documents the type is returned unchanged.
    """
    tags = parse_docblock(body)
    if param_name is None and tags.documents_return:
        return body
    if param_name is not None and tags.documents_param(param_name):
        return body
    style = tags.style or default_style
    indent = docstring_indent(body, indent)
    lines = body.split("\n")
    single_line = len(lines) == 1
    if single_line:
        lines = [lines[0].rstrip(), indent]
    if style is DocblockStyle.GOOGLE:
        updated = _insert_google(lines, indent=indent, type_text=type_text, param_name=param_name)
    else:
        tag_line = indent + render_tag(style, type_text, param_name)
        updated = _insert_field(lines, tag_line=tag_line, param_name=param_name)
    if _closing_index(updated) == len(updated) and not single_line:
        updated.append(indent)
    return "\n".join(updated)
