"""
Line delimiter kinds recognized by eolforge.
"""

import functools
from enum import Enum
from typing import Iterable


@functools.total_ordering
class Delimiter(Enum):
    """A line ending byte sequence. Ordered LF < CR < CRLF for display."""

    LF = b"\n"
    CR = b"\r"
    CRLF = b"\r\n"

    @property
    def canonical_bytes(self) -> bytes:
        return self.value

    @property
    def label(self) -> str:
        return self.name

    @classmethod
    def from_label(cls, text: str) -> "Delimiter":
        """Look up a delimiter by its label, ignoring case."""
        try:
            return cls[text.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown line delimiter: {text!r}") from None

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Delimiter):
            return NotImplemented
        return _RANK[self] < _RANK[other]

    def __str__(self) -> str:
        return self.label


_RANK = {delimiter: rank for rank, delimiter in enumerate(Delimiter)}

NO_DELIM_LABEL = "NO_DELIM"


def format_delimiter_set(delimiters: Iterable[Delimiter]) -> str:
    """Render a delimiter set as "LF, CRLF", or NO_DELIM when empty."""
    labels = [d.label for d in sorted(set(delimiters))]
    return ", ".join(labels) if labels else NO_DELIM_LABEL
