from __future__ import annotations

from typing import TYPE_CHECKING

from repo_snapshot.config import MatchWindow

if TYPE_CHECKING:
    import re
    from collections.abc import Sequence


def find_windows(
    lines: Sequence[str],
    regex: re.Pattern[str] | None,
    context_lines: int,
) -> list[MatchWindow]:
    """Expand regex hits into merged context windows.

    Each matching line n yields the window [n - context_lines, n + context_lines]
    clamped to the file. A window starting at most one line after the previous
    window's end is merged into it, so the result is strictly increasing and
    non-overlapping. Without a regex the whole file is a single window.

    Args:
        lines (Sequence[str]): decoded lines of one file
        regex (re.Pattern[str] | None): the search pattern, or None for full content
        context_lines (int): lines of context on each side of a match

    Returns:
        list[MatchWindow]: windows with 1-based inclusive bounds
    """
    total = len(lines)
    if total == 0:
        return []
    if regex is None:
        return [MatchWindow(start_line=1, end_line=total)]

    context = max(0, context_lines)
    spans: list[tuple[int, int, set[int]]] = []
    for lineno, line in enumerate(lines, start=1):
        if not regex.search(line):
            continue
        start = max(1, lineno - context)
        end = min(total, lineno + context)
        if spans and start <= spans[-1][1] + 1:
            prev_start, prev_end, matched = spans[-1]
            matched.add(lineno)
            spans[-1] = (prev_start, max(prev_end, end), matched)
        else:
            spans.append((start, end, {lineno}))

    return [MatchWindow(start_line=s, end_line=e, matched_lines=frozenset(m)) for s, e, m in spans]

