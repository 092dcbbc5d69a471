from __future__ import annotations

import io
from typing import TYPE_CHECKING

from repo_snapshot.comments import strip_comments
from repo_snapshot.config import DIFF_MARKERS, BinaryContent, ChangeStatus, FileEntry, FileKind
from repo_snapshot.diffing import diff
from repo_snapshot.exceptions import FileUnreadableError, RepositoryNotFoundError
from repo_snapshot.file_manipulation import (
    build_filter_config,
    classify_content,
    include,
    read_file_bytes,
    warn_if_non_utf8,
)
from repo_snapshot.git import GitRepository
from repo_snapshot.logging import logger
from repo_snapshot.matching import find_windows
from repo_snapshot.tokens import TokenAccountant, format_window_label
from repo_snapshot.tree import build_tree_lines, snapshot, tree_from_entries, walk

if TYPE_CHECKING:
    import re
    from collections.abc import Callable, Sequence

    from repo_snapshot.config import DiffHunk, FilterConfig, MatchWindow, TreeNode
    from repo_snapshot.settings import Settings

    ReadFn = Callable[[FileEntry], bytes]

RULE = "=" * 64
FILE_RULE = "=" * 80
HEX_ROW_BYTES = 16
CURRENT_REVISION = "current"


def build_header(repo_name: str, revision: str, tree: TreeNode) -> str:
    """Render the title block and the directory structure."""
    out = io.StringIO()
    out.write(f"{RULE}\n")
    out.write(f"Repository Snapshot: {repo_name} @ {revision}\n")
    out.write(f"{RULE}\n")
    out.write("Directory Structure\n")
    out.write(f"{RULE}\n")
    out.write("\n".join(build_tree_lines(repo_name, tree)))
    out.write("\n\n")
    return out.getvalue()


def build_summary(accountant: TokenAccountant, window_sizes: Sequence[int]) -> str:
    """Render the token usage trailer."""
    out = io.StringIO()
    out.write("Analysis Summary\n")
    out.write(f"{RULE}\n")
    out.write(f"Total tokens processed: {accountant.running_total}\n")
    out.write("GPT-4 context window sizes for reference:\n")
    for size, (total, pct) in accountant.summary(window_sizes).items():
        out.write(f"- {format_window_label(size)} context: {pct:.1f}% used ({total}/{size})\n")
    return out.getvalue()


def render_windows(
    lines: Sequence[str],
    windows: Sequence[MatchWindow],
    *,
    pattern: re.Pattern[str] | None = None,
) -> str:
    """Render the lines inside `windows` with their line numbers.

    With a pattern, each window is introduced by its range and matched lines,
    matched rows use a `│>` gutter, and the capture groups of a match are
    listed below its row.

    Args:
        lines (Sequence[str]): all lines of the file
        windows (Sequence[MatchWindow]): windows to show, in order
        pattern (re.Pattern[str] | None): the search pattern in pattern mode

    Returns:
        str: numbered lines, one per row
    """
    rows: list[str] = []
    for w in windows:
        if pattern is not None:
            matched = ", ".join(str(n) for n in sorted(w.matched_lines))
            rows.append(f"@@ lines {w.start_line}-{w.end_line} (matches: {matched}) @@")
        for n in range(w.start_line, w.end_line + 1):
            line = lines[n - 1]
            if pattern is None or n not in w.matched_lines:
                rows.append(f"{n:4}│ {line}")
                continue
            rows.append(f"{n:4}│>{line}")
            rows.extend(render_captures(pattern.search(line)))
    return "\n".join(rows)


def render_captures(match: re.Match[str] | None) -> list[str]:
    """Rows listing the participating capture groups of a match."""
    if match is None:
        return []
    groups = [(i, g) for i, g in enumerate(match.groups(), start=1) if g is not None]
    if not groups:
        return []
    return [f"{'':4}│   Captured:", *(f"{'':4}│     Group {i}: {g}" for i, g in groups)]


def hex_dump(data: bytes, limit: int) -> str:
    """Render bytes the way `hexdump -C` does, 16 bytes per row.

    Args:
        data (bytes): raw content
        limit (int): maximum number of bytes shown; 0 shows everything

    Returns:
        str: offset, hex and printable columns, plus a note for truncated bytes
    """
    shown = data if limit <= 0 else data[:limit]
    rows: list[str] = []
    for offset in range(0, len(shown), HEX_ROW_BYTES):
        chunk = shown[offset : offset + HEX_ROW_BYTES]
        left = " ".join(f"{b:02x}" for b in chunk[:8])
        right = " ".join(f"{b:02x}" for b in chunk[8:])
        printable = "".join(chr(b) if 32 <= b < 127 else "." for b in chunk)  # noqa: PLR2004
        rows.append(f"{offset:08x}  {left:<23}  {right:<23}  |{printable}|")
    if len(data) > len(shown):
        rows.append(f"... {len(data) - len(shown)} more bytes")
    return "\n".join(rows)


def render_file_section(rel: str, tokens: int, body: str) -> str:
    return f"{FILE_RULE}\nFile: {rel} (≈{tokens} tokens)\n{FILE_RULE}\n{body}\n\n"


def render_file_body(
    entry: FileEntry,
    data: bytes,
    filters: FilterConfig,
    *,
    hex_dump_bytes: int,
    remove_comments: bool,
) -> str | None:
    """Render the body of one file, or None when it has nothing to show.

    Text files show the lines inside their match windows. Binary files are hex
    dumped, except in pattern mode where they cannot match and are skipped.
    """
    content = classify_content(data)
    warn_if_non_utf8(entry.rel, content)
    if isinstance(content, BinaryContent):
        if filters.pattern is not None:
            logger.info("Skipping binary file in pattern mode", path=entry.rel, reason=str(content.reason))
            return None
        return hex_dump(content.data, hex_dump_bytes)

    lines = content.lines
    if remove_comments and lines:
        lines = tuple(strip_comments("\n".join(lines), entry.rel).split("\n"))
    windows = find_windows(lines, filters.pattern, filters.context_lines)
    if not windows:
        return None
    return render_windows(lines, windows, pattern=filters.pattern)


def build_snapshot_report(
    repo_name: str,
    revision: str,
    tree: TreeNode,
    read: ReadFn,
    filters: FilterConfig,
    accountant: TokenAccountant,
    *,
    settings: Settings,
) -> str:
    """Build the snapshot document: header, tree, one section per file, summary.

    Files are visited in tree order. Files rejected by the filter, unreadable
    files (logged), and files without any window are absent from the body but
    stay in the tree.

    Args:
        repo_name (str): name shown in the header and at the tree root
        revision (str): revision shown in the header ("current" for the work tree)
        tree (TreeNode): the tree to draw and to take files from
        read (ReadFn): returns the bytes of a file entry, raising FileUnreadableError
        filters (FilterConfig): the run's filters
        accountant (TokenAccountant): receives one record per rendered file
        settings (Settings): rendering options (hex dump size, comment stripping, windows)

    Returns:
        str: the complete document
    """
    out = io.StringIO()
    out.write(build_header(repo_name, revision, tree))

    for entry in tree.iter_files():
        if not include(entry.rel, filters):
            continue
        try:
            data = read(entry)
        except FileUnreadableError as e:
            logger.warning("Skipping unreadable file", path=entry.rel, error=str(e))
            continue
        body = render_file_body(
            entry,
            data,
            filters,
            hex_dump_bytes=settings.hex_dump_bytes,
            remove_comments=settings.strip_comments,
        )
        if body is None:
            continue
        tokens = accountant.count(body)
        accountant.record(entry.rel, tokens)
        out.write(render_file_section(entry.rel, tokens, body))

    out.write(build_summary(accountant, settings.context_windows))
    return out.getvalue()


def format_mode(hunk: DiffHunk) -> str:
    """Octal mode of a hunk, showing both sides when the mode changed."""
    if hunk.old_mode is not None and hunk.new_mode is not None and hunk.old_mode != hunk.new_mode:
        return f"{hunk.old_mode:06o} -> {hunk.new_mode:06o}"
    return f"{hunk.mode:06o}" if hunk.mode is not None else "unknown"


def describe_lineless_change(hunk: DiffHunk) -> str:
    if hunk.status is not ChangeStatus.MODIFIED:
        return f"Empty file {hunk.status}"
    if hunk.old_mode != hunk.new_mode:
        return "Mode changed"
    return "Line endings changed"


def render_diff_body(hunk: DiffHunk) -> str:
    """Render the fenced diff block of a hunk, or a one-line notice.

    Binary hunks, and hunks without line changes (mode-only changes, empty
    files, line-ending or final-newline changes) render a notice instead of
    an empty block.
    """
    if hunk.binary:
        return "Binary files differ"
    if not hunk.sections:
        return describe_lineless_change(hunk)
    rows = ["```diff"]
    for section in hunk.sections:
        rows.append(f"@@ -{section.old_start},{section.old_count} +{section.new_start},{section.new_count} @@")
        rows.extend(f"{DIFF_MARKERS[c.tag]}{c.text}" for c in section.changes)
    rows.append("```")
    return "\n".join(rows)


def render_hunk(hunk: DiffHunk, tokens: int, body: str) -> str:
    out = io.StringIO()
    out.write(f"File: {hunk.path} (≈{tokens} tokens)\n")
    out.write(f"Status: {hunk.status}\n")
    out.write(f"Mode: {format_mode(hunk)}\n")
    if hunk.new_oid:
        out.write(f"OID: {hunk.new_oid}\n")
        if hunk.old_oid:
            out.write(f"Previous OID: {hunk.old_oid}\n")
    else:
        out.write(f"OID: {hunk.old_oid}\n")
    out.write(f"{body}\n\n")
    return out.getvalue()


def build_diff_report(
    repo_name: str,
    git_from: str,
    git_to: str,
    hunks: Sequence[DiffHunk],
    accountant: TokenAccountant,
    *,
    settings: Settings,
) -> str:
    """Build the diff document; the tree shows the changed paths only."""
    changed = tree_from_entries(
        FileEntry(path=tuple(h.path.split("/")), kind=FileKind.FILE, mode=h.mode, oid=h.new_oid or h.old_oid)
        for h in hunks
    )
    out = io.StringIO()
    out.write(build_header(repo_name, f"{git_from}..{git_to}", changed))
    out.write(f"### Git diff from {git_from} to {git_to}\n\n")
    for hunk in hunks:
        body = render_diff_body(hunk)
        tokens = accountant.count(body)
        accountant.record(hunk.path, tokens)
        out.write(render_hunk(hunk, tokens, body))
    out.write(build_summary(accountant, settings.context_windows))
    return out.getvalue()


def build_report(settings: Settings) -> str:
    """Produce the complete document for the configured mode.

    Mode selection: `git_from` set -> diff from it to `git_to` (default HEAD);
    only `git_to` set -> snapshot of that revision; neither -> snapshot of the
    working directory. Fatal errors (missing repository, invalid pattern,
    unknown revision) are raised before any text is produced.

    Args:
        settings (Settings): validated settings

    Raises:
        RepositoryNotFoundError: if the repository root is not a directory
        NotAGitRepositoryError: if a revision is requested outside a git repository
        RevisionNotFoundError: if a revision cannot be resolved
        InvalidPatternError: if the pattern is not a valid regex
        ConfigError: if the token encoding cannot be loaded

    Returns:
        str: the rendered document
    """
    root = settings.repo.expanduser().resolve()
    if not root.is_dir():
        raise RepositoryNotFoundError(folder=root)
    filters = build_filter_config(
        extensions=settings.extensions,
        excludes=settings.excludes,
        pattern=settings.pattern,
        context_lines=settings.context_lines,
    )
    accountant = TokenAccountant(settings.encoding)
    accountant.load()
    repo_name = root.name or str(root)

    if settings.is_diff or settings.git_to:
        with GitRepository.open(root) as repo:
            if settings.is_diff:
                git_to = settings.git_to or "HEAD"
                hunks = diff(repo, settings.git_from, git_to, filters)
                return build_diff_report(repo_name, settings.git_from, git_to, hunks, accountant, settings=settings)

            tree = snapshot(repo, settings.git_to, filters)
            return build_snapshot_report(
                repo_name,
                settings.git_to,
                tree,
                lambda entry: repo.read_blob(entry.oid, entry.rel),
                filters,
                accountant,
                settings=settings,
            )

    tree = walk(root, filters, use_git=not settings.no_git)
    return build_snapshot_report(
        repo_name,
        CURRENT_REVISION,
        tree,
        lambda entry: read_file_bytes(root.joinpath(*entry.path), entry.rel),
        filters,
        accountant,
        settings=settings,
    )
