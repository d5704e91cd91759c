"""
Byte-offset span to line/column translation.

Offsets are byte offsets into the UTF-8 encoded source (what tree-sitter
reports). A line contributes its encoded length plus one for the newline.
"""

from typing import Optional, Sequence, Tuple

from declscan.models import LineColumn, Position

Span = Tuple[int, int]


def split_lines(source_text: str) -> list[str]:
    return source_text.split("\n")


def _locate(offset: int, lines: Sequence[str]) -> Optional[LineColumn]:
    if offset < 0:
        return None
    current = 0
    for idx, line in enumerate(lines):
        length = len(line.encode("utf-8")) + 1
        if current + length > offset:
            return LineColumn(line=idx + 1, column=offset - current + 1)
        current += length
    return None


def span_to_position(span: Span, lines: Sequence[str]) -> Position:
    """
    Convert a (start, end) byte span into 1-based line/column pairs.
    Offsets that fall outside the source map to line 1, column 1.
    """
    start, end = span
    return Position(
        start=_locate(start, lines) or LineColumn(line=1, column=1),
        end=_locate(end, lines) or LineColumn(line=1, column=1),
    )


def extract_raw_code(span: Span, lines: Sequence[str]) -> str:
    start, end = span
    data = "\n".join(lines).encode("utf-8")
    start = max(0, min(start, len(data)))
    end = max(start, min(end, len(data)))
    return data[start:end].decode("utf-8", errors="replace")


def node_span(node) -> Span:
    return node.start_byte, node.end_byte
