"""Event reader for (B)PGN game records.

Turns decoded record text into a flat stream of structural events:
BeginRecord, Header(key, value), SanToken(san) and EndRecord. Only the
mainline is reported; comments, variations, NAGs, move numbers and
annotation glyphs are consumed silently.

Iterating a RecordStream twice yields the same events, so a stream can be
folded more than once.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, Union

_TAG_RE = re.compile(r'^\[([A-Za-z0-9_+#=:\-]+)\s+"((?:[^"\\]|\\.)*)"\s*\]\s*$')
_TAG_UNESCAPE_RE = re.compile(r'\\(["\\])')

_SAN_PATTERN = (
    r"(?:[NBKRQ]?[a-h]?[1-8]?[\-x]?[a-h][1-8](?:=?[nbrqkNBRQK])?"
    r"|[PNBRQK]?@[a-h][1-8]"
    r"|O-O(?:-O)?|0-0(?:-0)?"
    r"|--|Z0)"
)

# Order matters: results before move numbers and castling with zeros
_TOKEN_RE = re.compile(
    r"(?P<space>\s+)"
    r"|(?P<comment>\{)"
    r"|(?P<line_comment>;.*)"
    r"|(?P<open>\()"
    r"|(?P<close>\))"
    r"|(?P<result>(?:1-0|0-1|1/2-1/2|\*)(?![\w\-/]))"
    r"|(?P<number>\d+[A-Za-z]?\.+)"
    r"|(?P<nag>\$\d+)"
    r"|(?P<san>" + _SAN_PATTERN + r")(?P<suffix>[+#]*[!?]*)"
)


class RecordSyntaxError(ValueError):
    """The record framing (tags, comments, variations) cannot be parsed."""

    def __init__(self, line_number: int, message: str) -> None:
        super().__init__(f"line {line_number}: {message}")
        self.line_number = line_number


@dataclass(frozen=True)
class BeginRecord:
    line_number: int = 0


@dataclass(frozen=True)
class Header:
    key: str
    value: str


@dataclass(frozen=True)
class SanToken:
    """One mainline move token, check and annotation suffixes removed."""

    san: str
    line_number: int = 0


@dataclass(frozen=True)
class EndRecord:
    line_number: int = 0


RecordEvent = Union[BeginRecord, Header, SanToken, EndRecord]


def parse_tag(line: str, line_number: int) -> Header:
    """Parse a ``[Key "Value"]`` line into a Header event.

    Raises:
        RecordSyntaxError: If the line is not a well-formed tag pair.
    """
    match = _TAG_RE.match(line)
    if match is None:
        if not line.rstrip().endswith("]"):
            raise RecordSyntaxError(line_number, f"unterminated tag: {line!r}")
        raise RecordSyntaxError(line_number, f"malformed tag: {line!r}")
    return Header(match.group(1), _TAG_UNESCAPE_RE.sub(r"\1", match.group(2)))


def iter_events(text: str) -> Iterator[RecordEvent]:
    """Yield the structural events of every record in ``text``, in order.

    Raises:
        RecordSyntaxError: On unterminated tags, comments or variations and on
            movetext that fits no token class.
    """
    in_record = False
    in_movetext = False
    in_comment = False
    comment_start = 0
    variation_depth = 0
    variation_start = 0
    line_number = 0

    for line_number, line in enumerate(text.splitlines(), start=1):
        pos = 0

        if in_comment:
            end = line.find("}")
            if end < 0:
                continue
            in_comment = False
            pos = end + 1
        else:
            if line.startswith("%"):
                continue

            stripped = line.strip()
            if not stripped:
                continue

            if stripped.startswith("["):
                if variation_depth:
                    raise RecordSyntaxError(
                        variation_start, "variation is never closed"
                    )
                if in_movetext:
                    yield EndRecord(line_number)
                    in_record = in_movetext = False
                if not in_record:
                    yield BeginRecord(line_number)
                    in_record = True
                yield parse_tag(stripped, line_number)
                continue

        while pos < len(line):
            match = _TOKEN_RE.match(line, pos)
            if match is None:
                raise RecordSyntaxError(
                    line_number, f"unexpected movetext {line[pos:pos + 12]!r}"
                )
            pos = match.end()
            kind = match.lastgroup
            if kind == "suffix":
                kind = "san"

            if kind in ("space", "line_comment", "number", "nag"):
                continue

            if not in_record:
                yield BeginRecord(line_number)
                in_record = True
            in_movetext = True

            if kind == "comment":
                end = line.find("}", pos)
                if end < 0:
                    in_comment = True
                    comment_start = line_number
                    break
                pos = end + 1
            elif kind == "open":
                if variation_depth == 0:
                    variation_start = line_number
                variation_depth += 1
            elif kind == "close":
                if variation_depth == 0:
                    raise RecordSyntaxError(line_number, "unbalanced ')'")
                variation_depth -= 1
            elif kind == "result":
                if variation_depth:
                    continue
                yield EndRecord(line_number)
                in_record = in_movetext = False
            elif kind == "san":
                if variation_depth == 0:
                    yield SanToken(match.group("san"), line_number)

    if in_comment:
        raise RecordSyntaxError(comment_start, "comment is never closed")
    if variation_depth:
        raise RecordSyntaxError(variation_start, "variation is never closed")
    if in_record:
        yield EndRecord(line_number)


class RecordStream:
    """Restartable view over the events of a decoded record file."""

    def __init__(self, text: str) -> None:
        self._text = text

    def __iter__(self) -> Iterator[RecordEvent]:
        return iter_events(self._text)
