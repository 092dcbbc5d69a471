from __future__ import annotations

import fnmatch
import re
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from repo_snapshot.config import (
    ALLOWED_CONTROL_CHARS,
    CONTROL_CHAR_RATIO,
    SNIFF_BYTES,
    BinaryContent,
    BinaryReason,
    FilterConfig,
    TextContent,
)
from repo_snapshot.exceptions import FileUnreadableError, InvalidPatternError
from repo_snapshot.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from repo_snapshot.config import DecodedContent


def normalize_globs(globs: Iterable[str]) -> list[str]:
    """Normalize a sequence of path glob patterns.

    Strips whitespace and surrounding slashes and replaces backslashes with
    forward slashes. Empty patterns are dropped.

    Args:
        globs (Iterable[str]): the glob patterns to normalize

    Returns:
        list[str]: the normalized glob patterns
    """
    out: list[str] = []
    for g in globs:
        g2 = (g or "").strip().replace("\\", "/").strip("/")
        if not g2:
            continue
        out.append(g2)
    return out


def normalize_extensions(extensions: Iterable[str]) -> frozenset[str]:
    """Lowercase extensions and drop leading dots (`.RS` -> `rs`)."""
    return frozenset(e.strip().lstrip(".").lower() for e in extensions if e and e.strip().lstrip("."))


def match_any_glob(rel: str, globs: Sequence[str]) -> bool:
    """Check if a relative path matches any of the provided glob patterns.

    Args:
        rel (str): the relative path to check
        globs (Sequence[str]): the glob patterns to match against

    Returns:
        bool: True if `rel` matches any pattern in `globs`, False otherwise
    """
    return any(fnmatch.fnmatch(rel, g) for g in globs)


def is_excluded(rel: str, excludes: Sequence[str]) -> bool:
    """Check whether a path or one of its ancestors is excluded.

    A glob matches when it matches the full relative path, any ancestor
    prefix (`src`, `src/gen`) or any single path segment, so `target`
    removes every `target/` subtree and `*.log` removes log files at any
    depth. As with `fnmatch`, `*` also matches `/`.

    Args:
        rel (str): POSIX path relative to the repository root
        excludes (Sequence[str]): normalized exclude globs

    Returns:
        bool: True if the path must be left out
    """
    if not excludes or not rel:
        return False
    parts = rel.split("/")
    candidates = {"/".join(parts[: i + 1]) for i in range(len(parts))}
    candidates.update(parts)
    return any(match_any_glob(c, excludes) for c in candidates)


def has_allowed_extension(rel: str, extensions: frozenset[str]) -> bool:
    """Check the final dot-suffix of a path against an allow-list.

    Args:
        rel (str): POSIX relative path of a file
        extensions (frozenset[str]): lowercase extensions without dots; empty allows all

    Returns:
        bool: True if the file's extension is allowed
    """
    if not extensions:
        return True
    suffix = PurePosixPath(rel).suffix
    return bool(suffix) and suffix[1:].lower() in extensions


def include(rel: str, filters: FilterConfig) -> bool:
    """Decide whether a file takes part in the report body.

    Exclusion wins over an allowed extension.

    Args:
        rel (str): POSIX relative path of a file
        filters (FilterConfig): the run's filter configuration

    Returns:
        bool: True if the file passes the extension check and no exclude matches
    """
    if is_excluded(rel, filters.excludes):
        return False
    return has_allowed_extension(rel, filters.extensions)


def compile_pattern(pattern: str | None) -> re.Pattern[str] | None:
    """Compile the user's search pattern.

    Args:
        pattern (str | None): regular expression source; empty means no pattern

    Raises:
        InvalidPatternError: if the expression does not compile

    Returns:
        re.Pattern[str] | None: the compiled pattern, or None when not configured
    """
    if not pattern:
        return None
    try:
        return re.compile(pattern)
    except re.error as e:
        raise InvalidPatternError(pattern=pattern, reason=str(e)) from e


def build_filter_config(
    *,
    extensions: Iterable[str] = (),
    excludes: Iterable[str] = (),
    pattern: str | None = None,
    context_lines: int = 3,
) -> FilterConfig:
    """Validate raw filter options into a FilterConfig.

    The pattern is compiled here so a malformed expression fails before any
    traversal starts.
    """
    return FilterConfig(
        extensions=normalize_extensions(extensions),
        excludes=tuple(normalize_globs(excludes)),
        pattern=compile_pattern(pattern),
        context_lines=context_lines,
    )


def split_lines(text: str) -> tuple[str, ...]:
    """Split text on newlines so every source line appears exactly once.

    A trailing newline does not produce an extra empty line and a carriage
    return before the newline is dropped.
    """
    if not text:
        return ()
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return tuple(ln.removesuffix("\r") for ln in lines)


def control_char_ratio(text: str) -> float:
    """Share of control characters (other than common whitespace) in `text`."""
    if not text:
        return 0.0
    control = sum(1 for ch in text if (ch < " " and ch not in ALLOWED_CONTROL_CHARS) or ch == "\x7f")
    return control / len(text)


def classify_content(data: bytes) -> DecodedContent:
    """Classify a byte sequence as text or binary.

    Heuristics, in order: a NUL byte in the first 8 KiB means binary; strict
    UTF-8 decoding must succeed; the decoded sample must not be dominated by
    control characters. Decoding failure is a classification result, never an
    error.

    Args:
        data (bytes): raw file or blob content

    Returns:
        DecodedContent: TextContent with the file's lines, or BinaryContent with
            the raw bytes and the reason text decoding was rejected
    """
    if not data:
        return TextContent(lines=())
    if b"\x00" in data[:SNIFF_BYTES]:
        return BinaryContent(data=data, reason=BinaryReason.NUL_BYTE)
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return BinaryContent(data=data, reason=BinaryReason.NON_UTF8)
    if control_char_ratio(text[:SNIFF_BYTES]) > CONTROL_CHAR_RATIO:
        return BinaryContent(data=data, reason=BinaryReason.CONTROL_BYTES)
    return TextContent(lines=split_lines(text))


def read_file_bytes(path: Path, rel: str) -> bytes:
    """Read a working-tree file.

    Args:
        path (Path): absolute path on disk
        rel (str): relative path used in error reports

    Raises:
        FileUnreadableError: if the file cannot be opened or read

    Returns:
        bytes: the file content
    """
    try:
        return path.read_bytes()
    except OSError as e:
        raise FileUnreadableError(path=rel, reason=e.strerror or str(e)) from e


def warn_if_non_utf8(rel: str, content: DecodedContent) -> None:
    """Log content that looked like text but was not valid UTF-8."""
    if isinstance(content, BinaryContent) and content.reason is BinaryReason.NON_UTF8:
        logger.warning("Non-UTF-8 content treated as binary", path=rel)
