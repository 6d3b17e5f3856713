"""
A renderer for the logic-less templates the bindings are generated from.

Supports the subset of mustache used by the bundled templates:

- ``{{name}}`` and ``{{a.b}}`` substitute values (no HTML escaping);
- ``{{#name}}...{{/name}}`` renders a section for each item of a list,
  once for ``True`` or for a mapping/object (which is pushed on the context stack),
  and not at all for falsy values;
- ``{{^name}}...{{/name}}`` renders only if the value is falsy;
- ``{{> name}}`` includes a partial, indenting it if the tag stands alone on its line;
- ``{{! comment}}`` is ignored.

Section, partial and comment tags standing alone on a line do not leave an empty line behind.
"""

import glob
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any

from ._type_mapper import OutputLanguage


class TemplateError(Exception):
    """Raised when a template cannot be loaded, parsed, or rendered."""


_TAG_RE = re.compile(r"{{(?P<sigil>[#^/>!]?)\s*(?P<name>.*?)\s*}}", re.DOTALL)

_STANDALONE_SIGILS = {"#", "^", "/", ">", "!"}


@dataclass
class _Text:
    text: str


@dataclass
class _Variable:
    name: str


@dataclass
class _Partial:
    name: str
    indent: str


@dataclass
class _Section:
    name: str
    inverted: bool
    children: list["_Node"] = field(default_factory=list)


_Node = _Text | _Variable | _Partial | _Section


def _tokenize(template: str) -> list[tuple[str, str, str]]:
    """Splits the template into ``(sigil, name, indent)`` tokens; text has the sigil ``"text"``."""
    tokens = []
    pos = 0
    for match in _TAG_RE.finditer(template):
        start, end = match.span()
        sigil = match["sigil"]
        name = match["name"]
        indent = ""

        if sigil in _STANDALONE_SIGILS:
            line_start = template.rfind("\n", 0, start) + 1
            newline = template.find("\n", end)
            line_end = len(template) if newline == -1 else newline
            before = template[line_start:start]
            after = template[end:line_end]
            if line_start >= pos and not before.strip(" \t") and not after.strip(" \t\r"):
                tokens.append(("text", template[pos:line_start], ""))
                tokens.append((sigil, name, before))
                pos = line_end if newline == -1 else newline + 1
                continue

        tokens.append(("text", template[pos:start], ""))
        tokens.append((sigil, name, indent))
        pos = end

    tokens.append(("text", template[pos:], ""))
    return tokens


def parse(template: str) -> list[_Node]:
    """Parses the template into a tree of nodes."""
    root: list[_Node] = []
    stack: list[_Section] = []

    def current() -> list[_Node]:
        return stack[-1].children if stack else root

    for sigil, name, indent in _tokenize(template):
        if sigil == "text":
            if name:
                current().append(_Text(name))
        elif sigil == "!":
            continue
        elif sigil in ("#", "^"):
            section = _Section(name, inverted=sigil == "^")
            current().append(section)
            stack.append(section)
        elif sigil == "/":
            if not stack:
                raise TemplateError(f"Unexpected closing tag: {name}")
            section = stack.pop()
            if section.name != name:
                raise TemplateError(
                    f"Mismatched closing tag: expected {section.name}, got {name}"
                )
        elif sigil == ">":
            current().append(_Partial(name, indent))
        else:
            current().append(_Variable(name))

    if stack:
        raise TemplateError(f"Unclosed section: {stack[-1].name}")

    return root


_MISSING = object()


def _get(context: Any, key: str) -> Any:
    if isinstance(context, Mapping):
        return context.get(key, _MISSING)
    if isinstance(context, str | bytes | int | float | bool) or context is None:
        return _MISSING
    return getattr(context, key, _MISSING)


def _lookup(stack: Sequence[Any], name: str) -> Any:
    if name == ".":
        return stack[-1]

    first, *rest = name.split(".")
    for context in reversed(stack):
        value = _get(context, first)
        if value is not _MISSING:
            break
    else:
        return None

    for key in rest:
        value = _get(value, key)
        if value is _MISSING:
            return None
    return value


def _is_falsy(value: Any) -> bool:
    if isinstance(value, Sequence) and not isinstance(value, str):
        return len(value) == 0
    return not value


def _indent(text: str, indent: str) -> str:
    return "".join(
        indent + line if line.strip() else line for line in text.splitlines(keepends=True)
    )


@dataclass(frozen=True)
class TemplateSet:
    """A main template together with the partials it can include."""

    main: str
    """The main template text."""

    partials: Mapping[str, str] = field(default_factory=dict)
    """Partial templates by name."""

    @classmethod
    def from_paths(cls, template: Path, partials_glob: None | str = None) -> "TemplateSet":
        """
        Loads the main template and the partials matching the glob.
        The name of a partial is its file name without extensions.
        """
        try:
            main = Path(template).read_text(encoding="utf-8")
            partials = {}
            if partials_glob is not None:
                for partial_path in sorted(glob.glob(partials_glob, recursive=True)):
                    path = Path(partial_path)
                    partials[path.name.split(".")[0]] = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise TemplateError(f"Failed to load templates: {exc}") from exc
        return cls(main, partials)

    @classmethod
    def bundled(cls, language: OutputLanguage) -> "TemplateSet":
        """Returns the templates shipped with the package for the given language."""
        root = resources.files("abibind") / "templates" / language.value.lower()
        if not root.is_dir():
            raise TemplateError(
                f"There are no bundled templates for {language.value}, "
                "a template must be provided explicitly"
            )

        main = None
        partials = {}
        for item in root.iterdir():
            if not item.name.endswith(".mustache"):
                continue
            text = item.read_text(encoding="utf-8")
            name = item.name.split(".")[0]
            if name == "contract":
                main = text
            else:
                partials[name] = text

        if main is None:
            raise TemplateError(f"The bundled templates for {language.value} have no main template")
        return cls(main, partials)


class _Renderer:
    def __init__(self, templates: TemplateSet):
        self._templates = templates
        self._parsed: dict[str, list[_Node]] = {}
        self._active: list[str] = []

    def _partial(self, name: str) -> list[_Node]:
        if name not in self._parsed:
            if name not in self._templates.partials:
                raise TemplateError(f"Unknown partial: {name}")
            self._parsed[name] = parse(self._templates.partials[name])
        return self._parsed[name]

    def render_nodes(self, nodes: Sequence[_Node], stack: list[Any]) -> str:
        chunks = []
        for node in nodes:
            if isinstance(node, _Text):
                chunks.append(node.text)
            elif isinstance(node, _Variable):
                value = _lookup(stack, node.name)
                chunks.append("" if value is None else str(value))
            elif isinstance(node, _Partial):
                rendered = self._render_partial(node.name, stack)
                chunks.append(_indent(rendered, node.indent) if node.indent else rendered)
            else:
                chunks.append(self._render_section(node, stack))
        return "".join(chunks)

    def _render_partial(self, name: str, stack: list[Any]) -> str:
        if name in self._active:
            raise TemplateError("Recursive partial: " + " > ".join([*self._active, name]))
        self._active.append(name)
        try:
            return self.render_nodes(self._partial(name), stack)
        finally:
            self._active.pop()

    def _render_section(self, section: _Section, stack: list[Any]) -> str:
        value = _lookup(stack, section.name)
        if section.inverted:
            return self.render_nodes(section.children, stack) if _is_falsy(value) else ""
        if _is_falsy(value):
            return ""
        if value is True:
            return self.render_nodes(section.children, stack)
        if isinstance(value, Sequence) and not isinstance(value, str):
            return "".join(self.render_nodes(section.children, [*stack, item]) for item in value)
        return self.render_nodes(section.children, [*stack, value])


def render(templates: TemplateSet, context: Any) -> str:
    """
    Renders the main template of the set with the given context
    (a mapping or an object whose attributes are looked up).
    """
    return _Renderer(templates).render_nodes(parse(templates.main), [context])
