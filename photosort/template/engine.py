"""
Destination path templates.

A template is literal text with `:dotted.variable.name:` references, e.g.

    /photos/:date.year:/:date.month:/:file.name:

Outside a reference, `::` stands for a literal colon. There is no
branching or looping, only variable substitution.
"""
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from ..exceptions import ConfigurationError, ResolutionError, TemplateParseError
from ..models import FileHandle
from .variables import VariableResolver

VARIABLE_NAME_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$')

# Variables whose value is a path on purpose; everything else must stay
# inside a single path component.
PATH_VARIABLES = {"file.path"}

_SEPARATORS = {s for s in ("/", os.sep, os.altsep) if s}

_default_resolver: Optional[VariableResolver] = None


def default_resolver() -> VariableResolver:
    global _default_resolver
    if _default_resolver is None:
        _default_resolver = VariableResolver()
    return _default_resolver


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class Variable:
    name: str


Segment = Union[Literal, Variable]


def sanitize_component(name: str, value: str) -> str:
    """Keeps a variable value from escaping its path component."""
    if name in PATH_VARIABLES:
        return value
    for sep in _SEPARATORS:
        value = value.replace(sep, "_")
    if value in (".", ".."):
        raise ResolutionError(name, f"value {value!r} is not a valid path component")
    return value


@dataclass(frozen=True)
class Template:
    segments: Tuple[Segment, ...]

    @classmethod
    def parse(cls, text: str, resolver: Optional[VariableResolver] = None) -> "Template":
        """
        Parses a template string.

        Raises:
            ConfigurationError: the template is empty.
            TemplateParseError: unclosed reference, malformed or unknown variable name.
        """
        if not text:
            raise ConfigurationError("destination template is empty")

        resolver = resolver or default_resolver()
        segments = []
        literal = []
        i = 0
        n = len(text)

        while i < n:
            c = text[i]
            if c != ':':
                literal.append(c)
                i += 1
                continue

            # Escaped colon
            if i + 1 < n and text[i + 1] == ':':
                literal.append(':')
                i += 2
                continue

            end = text.find(':', i + 1)
            if end == -1:
                raise TemplateParseError("unclosed variable", i)

            name = text[i + 1:end]
            if not VARIABLE_NAME_RE.match(name):
                raise TemplateParseError(f"invalid variable name {name!r}", i + 1)
            if not resolver.is_supported(name):
                raise TemplateParseError(f"unknown variable {name!r}", i + 1)

            if literal:
                segments.append(Literal(''.join(literal)))
                literal = []
            segments.append(Variable(name))
            i = end + 1

        if literal:
            segments.append(Literal(''.join(literal)))

        return cls(tuple(segments))

    @property
    def variables(self) -> Tuple[str, ...]:
        return tuple(s.name for s in self.segments if isinstance(s, Variable))

    def render(self, handle: FileHandle, resolver: Optional[VariableResolver] = None) -> Path:
        """
        Renders the destination path of `handle`.

        The result is a normalized Path: repeated separators collapse and a
        trailing separator is dropped, so "out//a/" renders as Path("out/a").

        Raises:
            ResolutionError: a variable has no value for this file, or its
                value is not a usable path component.
        """
        resolver = resolver or default_resolver()
        parts = []
        for segment in self.segments:
            if isinstance(segment, Literal):
                parts.append(segment.text)
                continue
            value = resolver.resolve(segment.name, handle)
            if value is None:
                raise ResolutionError(segment.name)
            parts.append(sanitize_component(segment.name, value))

        rendered = ''.join(parts)
        if not rendered:
            raise ResolutionError(str(self), "template rendered an empty path")
        return Path(rendered)

    def __str__(self) -> str:
        out = []
        for segment in self.segments:
            if isinstance(segment, Literal):
                out.append(segment.text.replace(':', '::'))
            else:
                out.append(f":{segment.name}:")
        return ''.join(out)
