"""
Line-stream codec.

Splits a raw byte buffer into lines, each remembering which delimiter ended it,
and writes those lines back out with one uniform delimiter. Content bytes are
never touched: no decoding happens, so any byte sequence round-trips.

The last line of a parsed buffer always has no terminator. When the buffer ends
on a delimiter that last line is empty, which is how a rewrite keeps "ends with
a newline" and "last line is unterminated" apart.
"""

import re
from dataclasses import dataclass, field
from typing import BinaryIO, FrozenSet, Iterator, List, Optional

from eolforge.delimiter import Delimiter

# Alternation order matters: CRLF has to win over a lone CR.
_DELIMITER_RE = re.compile(rb"\r\n|\n|\r")

_BY_BYTES = {d.canonical_bytes: d for d in Delimiter}


@dataclass(frozen=True)
class Line:
    content: bytes = b""
    terminator: Optional[Delimiter] = None


@dataclass(frozen=True)
class FileContents:
    lines: List[Line] = field(default_factory=list)

    def __iter__(self) -> Iterator[Line]:
        return iter(self.lines)

    def __len__(self) -> int:
        return len(self.lines)


def parse(data: bytes) -> FileContents:
    """Decompose ``data`` into lines and their terminators."""
    lines: List[Line] = []
    start = 0
    for match in _DELIMITER_RE.finditer(data):
        lines.append(Line(data[start : match.start()], _BY_BYTES[match.group()]))
        start = match.end()
    lines.append(Line(data[start:], None))
    return FileContents(lines)


def delimiter_set(contents: FileContents) -> FrozenSet[Delimiter]:
    """Distinct delimiters that terminate a line in ``contents``."""
    return frozenset(
        line.terminator for line in contents if line.terminator is not None
    )


def write_to(contents: FileContents, stream: BinaryIO, target: Delimiter) -> None:
    """Write ``contents`` to ``stream``, ending every terminated line with ``target``."""
    ending = target.canonical_bytes
    for line in contents:
        stream.write(line.content)
        if line.terminator is not None:
            stream.write(ending)


def serialize(contents: FileContents, target: Delimiter) -> bytes:
    """Recompose ``contents`` into bytes using ``target`` as the only delimiter."""
    ending = target.canonical_bytes
    return b"".join(
        line.content + ending if line.terminator is not None else line.content
        for line in contents
    )


def needs_conversion(delimiters: FrozenSet[Delimiter], target: Delimiter) -> bool:
    """True unless every delimiter found is already ``target``."""
    return not delimiters <= {target}
