import threading
from typing import Iterator, Optional

import tree_sitter as ts
import tree_sitter_typescript as tsts

from declscan.errors import ParseFailure

TS_LANGUAGE = ts.Language(tsts.language_typescript())
TSX_LANGUAGE = ts.Language(tsts.language_tsx())

# Plain TypeScript grammar; everything else goes through TSX so JSX parses.
_TS_SUFFIXES = (".ts", ".mts", ".cts")

# Parsers are not safe to share between threads.
_local = threading.local()


def _get_parser(tsx: bool) -> ts.Parser:
    attr = "tsx_parser" if tsx else "ts_parser"
    parser = getattr(_local, attr, None)
    if parser is None:
        parser = ts.Parser(TSX_LANGUAGE if tsx else TS_LANGUAGE)
        setattr(_local, attr, parser)
    return parser


def is_tsx_path(file_path: str) -> bool:
    return not file_path.lower().endswith(_TS_SUFFIXES)


def parse_source(source_text: str, file_path: str) -> ts.Tree:
    """
    Parse *source_text* with the dialect implied by *file_path*.

    The grammar lags the language in places, so a tree with error nodes is
    still returned as long as at least one top-level statement parsed
    cleanly; the module processor skips the broken ones. Raises ParseFailure
    when nothing in the file is well formed.
    """
    parser = _get_parser(is_tsx_path(file_path))
    tree = parser.parse(source_text.encode("utf-8"))
    root = tree.root_node
    if root.type == "ERROR" or (
        root.has_error and not any(is_well_formed(c) for c in root.named_children)
    ):
        raise ParseFailure(_describe_error(root), path=file_path)
    return tree


_TRIVIA = ("ERROR", "comment", "empty_statement", "hash_bang_line")


def is_well_formed(node: ts.Node) -> bool:
    """True for a statement that parsed without errors and carries content."""
    return node.type not in _TRIVIA and not node.has_error


def _describe_error(root: ts.Node) -> str:
    bad = _first_error(root)
    if bad is None:
        return "syntax error"
    line, col = bad.start_point[0] + 1, bad.start_point[1] + 1
    if bad.is_missing:
        return f"missing '{bad.type}' at line {line}, column {col}"
    snippet = (get_node_text(bad) or "").strip().splitlines()
    near = f" near {snippet[0][:40]!r}" if snippet else ""
    return f"syntax error at line {line}, column {col}{near}"


def _first_error(node: ts.Node) -> Optional[ts.Node]:
    stack = [node]
    while stack:
        cur = stack.pop()
        if cur.type == "ERROR" or cur.is_missing:
            return cur
        if cur.has_error:
            stack.extend(reversed(cur.children))
    return None


# Helpers
def get_node_text(node) -> str:
    """
    Get text of the tree sitter node
    """
    if not node or not node.text:
        return ""

    return node.text.decode("utf-8")


def find_child(node: ts.Node, *types: str) -> Optional[ts.Node]:
    """Return the first direct child (named or not) whose type is in *types*."""
    return next((c for c in node.children if c.type in types), None)


def has_child(node: ts.Node, *types: str) -> bool:
    return find_child(node, *types) is not None


def iter_named(node: Optional[ts.Node], *types: str) -> Iterator[ts.Node]:
    if node is None:
        return
    for c in node.named_children:
        if not types or c.type in types:
            yield c


def strip_quotes(text: str) -> str:
    return text.strip().strip("\"'`")
