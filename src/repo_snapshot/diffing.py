from __future__ import annotations

import difflib
from typing import TYPE_CHECKING

from repo_snapshot.config import (
    BinaryContent,
    ChangeStatus,
    ChangeTag,
    DiffHunk,
    DiffSection,
    LineChange,
    TextContent,
)
from repo_snapshot.exceptions import FileUnreadableError
from repo_snapshot.file_manipulation import classify_content, include, warn_if_non_utf8
from repo_snapshot.logging import logger

if TYPE_CHECKING:
    import re
    from collections.abc import Sequence

    from repo_snapshot.config import DecodedContent, FilterConfig
    from repo_snapshot.git import GitRepository, TreeItem


def unified_range(start: int, stop: int) -> tuple[int, int]:
    """Convert a 0-based half-open range into unified-diff `start,count` numbers.

    An empty range points at the line before the insertion point, as
    `diff -u` does.
    """
    count = stop - start
    first = start + 1
    if count == 0:
        first -= 1
    return first, count


def compute_sections(
    old_lines: Sequence[str],
    new_lines: Sequence[str],
    context_lines: int,
) -> tuple[DiffSection, ...]:
    """Diff two line sequences into unified-diff sections.

    Args:
        old_lines (Sequence[str]): lines of the old side
        new_lines (Sequence[str]): lines of the new side
        context_lines (int): unchanged lines kept around each change

    Returns:
        tuple[DiffSection, ...]: sections in file order, empty when the sides are equal
    """
    if list(old_lines) == list(new_lines):
        return ()
    matcher = difflib.SequenceMatcher(a=old_lines, b=new_lines, autojunk=False)
    sections: list[DiffSection] = []
    for group in matcher.get_grouped_opcodes(max(0, context_lines)):
        changes: list[LineChange] = []
        for tag, i1, i2, j1, j2 in group:
            if tag == "equal":
                changes.extend(
                    LineChange(tag=ChangeTag.CONTEXT, text=old_lines[i], old_lineno=i + 1, new_lineno=j + 1)
                    for i, j in zip(range(i1, i2), range(j1, j2), strict=True)
                )
                continue
            if tag in {"replace", "delete"}:
                changes.extend(
                    LineChange(tag=ChangeTag.REMOVED, text=old_lines[i], old_lineno=i + 1) for i in range(i1, i2)
                )
            if tag in {"replace", "insert"}:
                changes.extend(
                    LineChange(tag=ChangeTag.ADDED, text=new_lines[j], new_lineno=j + 1) for j in range(j1, j2)
                )
        old_start, old_count = unified_range(group[0][1], group[-1][2])
        new_start, new_count = unified_range(group[0][3], group[-1][4])
        sections.append(
            DiffSection(
                old_start=old_start,
                old_count=old_count,
                new_start=new_start,
                new_count=new_count,
                changes=tuple(changes),
            ),
        )
    return tuple(sections)


def read_side(repo: GitRepository, item: TreeItem | None) -> DecodedContent:
    """Read and classify one side of a change; a missing side is empty text."""
    if item is None:
        return TextContent(lines=())
    content = classify_content(repo.read_blob(item.oid, item.path))
    warn_if_non_utf8(item.path, content)
    return content


def diff_path(
    repo: GitRepository,
    old: TreeItem | None,
    new: TreeItem | None,
    context_lines: int,
) -> DiffHunk:
    """Build the hunk for one changed path.

    Raises:
        FileUnreadableError: if a blob cannot be read
    """
    if old is None and new is None:
        msg = "diff_path needs at least one side"
        raise ValueError(msg)
    if old is None:
        status = ChangeStatus.ADDED
    elif new is None:
        status = ChangeStatus.REMOVED
    else:
        status = ChangeStatus.MODIFIED

    old_content = read_side(repo, old)
    new_content = read_side(repo, new)
    binary = isinstance(old_content, BinaryContent) or isinstance(new_content, BinaryContent)
    sections: tuple[DiffSection, ...] = ()
    if isinstance(old_content, TextContent) and isinstance(new_content, TextContent):
        sections = compute_sections(old_content.lines, new_content.lines, context_lines)

    return DiffHunk(
        old_path=old.path if old else "",
        new_path=new.path if new else "",
        old_oid=old.oid if old else "",
        new_oid=new.oid if new else "",
        old_mode=old.mode if old else None,
        new_mode=new.mode if new else None,
        status=status,
        binary=binary,
        sections=sections,
    )


def hunk_matches(hunk: DiffHunk, regex: re.Pattern[str]) -> bool:
    """Check whether an added or removed line of a hunk matches `regex`."""
    return any(c.tag is not ChangeTag.CONTEXT and regex.search(c.text) for c in hunk.changes)


def diff(
    repo: GitRepository,
    git_from: str,
    git_to: str,
    filters: FilterConfig,
) -> list[DiffHunk]:
    """Compute per-path hunks between two revisions.

    Both revisions are resolved before anything else, so an unknown revision
    fails fast. Paths from both trees are visited in lexicographic order; the
    filter is applied before any blob is read, and paths whose blob and mode
    are unchanged are omitted. A blob that cannot be read is logged and
    skipped. With a pattern configured, only hunks with a matching added or
    removed line are kept.

    Args:
        repo (GitRepository): open repository handle
        git_from (str): old revision
        git_to (str): new revision
        filters (FilterConfig): the run's filters

    Raises:
        RevisionNotFoundError: if either revision cannot be resolved

    Returns:
        list[DiffHunk]: one hunk per changed path
    """
    old_commit = repo.resolve_revision(git_from)
    new_commit = repo.resolve_revision(git_to)
    if old_commit == new_commit:
        return []

    old_items = {item.path: item for item in repo.list_tree(old_commit)}
    new_items = {item.path: item for item in repo.list_tree(new_commit)}

    hunks: list[DiffHunk] = []
    for path in sorted(old_items.keys() | new_items.keys()):
        if not include(path, filters):
            continue
        old = old_items.get(path)
        new = new_items.get(path)
        if old is not None and new is not None and old.oid == new.oid and old.mode == new.mode:
            continue
        try:
            hunk = diff_path(repo, old, new, filters.context_lines)
        except FileUnreadableError as e:
            logger.warning("Skipping unreadable blob", path=path, error=str(e))
            continue
        if filters.pattern is not None and not hunk_matches(hunk, filters.pattern):
            continue
        hunks.append(hunk)
    return hunks
