from __future__ import annotations

from functools import cache
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

from tree_sitter_language_pack import get_parser

from repo_snapshot.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterator

COMMENT_LANGUAGES: dict[str, str] = {
    ".bash": "bash",
    ".c": "c",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".cxx": "cpp",
    ".go": "go",
    ".h": "c",
    ".hpp": "cpp",
    ".java": "java",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".py": "python",
    ".rb": "ruby",
    ".rs": "rust",
    ".sh": "bash",
    ".ts": "typescript",
    ".tsx": "tsx",
}


def comment_language(rel: str) -> str:
    """Grammar name used to strip comments from `rel`, or "" if unsupported."""
    return COMMENT_LANGUAGES.get(PurePosixPath(rel).suffix.lower(), "")


@cache
def load_parser(language: str) -> Any | None:  # noqa: ANN401
    """Load (once) the tree-sitter parser for `language`.

    Returns None when the grammar is unavailable; the failure is logged once
    per language because of the cache.
    """
    try:
        return get_parser(language)
    except Exception as e:
        logger.warning("Comment stripping unavailable", language=language, error=str(e))
        return None


def iter_comment_nodes(root: Any) -> Iterator[Any]:  # noqa: ANN401
    """Yield every comment node of a syntax tree, outermost first."""
    stack = [root]
    while stack:
        node = stack.pop()
        if "comment" in node.type:
            yield node
            continue
        stack.extend(reversed(node.children))


def blank_ranges(source: bytes, ranges: list[tuple[int, int]]) -> bytes:
    """Remove byte ranges from `source`, keeping the newlines they contained."""
    out = bytearray()
    last = 0
    for start, end in sorted(ranges):
        if start < last:
            start = last  # noqa: PLW2901
        out += source[last:start]
        out += b"\n" * source[start:end].count(b"\n")
        last = max(last, end)
    out += source[last:]
    return bytes(out)


def strip_comments(text: str, rel: str) -> str:
    """Remove source comments from `text` when its language is supported.

    Line numbering is preserved: newlines inside removed block comments are
    kept, and lines that held a comment lose their trailing whitespace.
    Unsupported languages are returned unchanged.

    Args:
        text (str): decoded file content
        rel (str): relative path, used to pick the grammar

    Returns:
        str: the content without comments
    """
    language = comment_language(rel)
    if not language:
        return text
    parser = load_parser(language)
    if parser is None:
        return text

    source = text.encode("utf-8")
    tree = parser.parse(source)
    nodes = list(iter_comment_nodes(tree.root_node))
    if not nodes:
        return text

    touched: set[int] = set()
    for node in nodes:
        touched.update(range(node.start_point[0], node.end_point[0] + 1))
    stripped = blank_ranges(source, [(n.start_byte, n.end_byte) for n in nodes]).decode("utf-8")
    lines = stripped.split("\n")
    return "\n".join(ln.rstrip() if i in touched else ln for i, ln in enumerate(lines))
