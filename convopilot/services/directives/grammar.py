"""Bracketed directives embedded in model output.

    [NAME]
    [NAME: key=value, key=value]
    [INDEX=3]

Anything else between brackets on one line, an unterminated ``[`` and a stray
``]`` parse as ``MalformedDirective`` so they can be removed from the text that
reaches the user.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

TOKEN_PATTERN = re.compile(r"\[[^\[\]\n]*(?:\]|(?=[\[\n])|$)|\]")
INDEX_PATTERN = re.compile(r"^\s*INDEX\s*=\s*(\d+)\s*$", re.IGNORECASE)
NAMED_PATTERN = re.compile(r"^\s*([A-Za-z][A-Za-z0-9_]*)\s*(?::(.*))?$", re.DOTALL)

TERMINAL_MARKERS = {
    "help": "handoff",
    "finish": "completed",
}


@dataclass(frozen=True)
class NamedDirective:
    name: str
    params: dict = field(default_factory=dict)
    span: tuple[int, int] = (0, 0)
    raw: str = ""


@dataclass(frozen=True)
class IndexDirective:
    index: int
    span: tuple[int, int] = (0, 0)
    raw: str = ""


@dataclass(frozen=True)
class MalformedDirective:
    span: tuple[int, int] = (0, 0)
    raw: str = ""


Directive = Union[NamedDirective, IndexDirective, MalformedDirective]


class OutputKind(str, Enum):
    PROSE = "prose"
    TERMINAL = "terminal"
    CONTAINS_DIRECTIVES = "contains_directives"


@dataclass(frozen=True)
class ModelOutput:
    kind: OutputKind
    text: str
    directives: tuple = ()
    terminal_reason: Optional[str] = None


def parse_params(body: str | None) -> dict:
    """'date=2025-02-20, time=10:00' -> {'date': '2025-02-20', 'time': '10:00'}

    Pairs without '=' or with an empty key or value are ignored. Values stay
    strings; a later duplicate key wins.
    """
    params = {}
    if not body:
        return params
    for pair in body.split(","):
        key, sep, value = pair.strip().partition("=")
        key, value = key.strip(), value.strip()
        if sep and key and value:
            params[key] = value
    return params


def _parse_token(raw: str, span: tuple[int, int]) -> Directive:
    if not (raw.startswith("[") and raw.endswith("]")) or len(raw) < 2:
        return MalformedDirective(span=span, raw=raw)

    inner = raw[1:-1]
    index_match = INDEX_PATTERN.match(inner)
    if index_match:
        return IndexDirective(index=int(index_match.group(1)), span=span, raw=raw)

    named_match = NAMED_PATTERN.match(inner)
    if named_match:
        return NamedDirective(
            name=named_match.group(1).upper(),
            params=parse_params(named_match.group(2)),
            span=span,
            raw=raw,
        )

    return MalformedDirective(span=span, raw=raw)


def parse_directives(text: str | None) -> List[Directive]:
    """All directives in ``text``, in order of appearance."""
    if not text:
        return []
    return [_parse_token(m.group(0), m.span()) for m in TOKEN_PATTERN.finditer(text)]


def classify_model_output(text: str | None) -> ModelOutput:
    text = text or ""
    marker = TERMINAL_MARKERS.get(text.strip().lower())
    if marker:
        return ModelOutput(kind=OutputKind.TERMINAL, text=text, terminal_reason=marker)

    directives = tuple(parse_directives(text))
    if directives:
        return ModelOutput(kind=OutputKind.CONTAINS_DIRECTIVES, text=text, directives=directives)
    return ModelOutput(kind=OutputKind.PROSE, text=text)
