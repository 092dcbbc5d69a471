import re

import pytest

from repo_snapshot.matching import find_windows

TEN_LINES = [f"line {n}" for n in range(1, 11)]


def with_todo(*linenos: int) -> list[str]:
    return [f"TODO {n}" if n in linenos else line for n, line in enumerate(TEN_LINES, start=1)]


@pytest.mark.unit
def test_find_windows_single_match_with_context() -> None:
    windows = find_windows(with_todo(5), re.compile("TODO"), 1)

    assert [(w.start_line, w.end_line) for w in windows] == [(4, 6)]
    assert windows[0].matched_lines == frozenset({5})


@pytest.mark.unit
def test_find_windows_merges_overlapping_and_adjacent_windows() -> None:
    overlapping = find_windows(with_todo(3, 5), re.compile("TODO"), 1)
    adjacent = find_windows(with_todo(2, 5), re.compile("TODO"), 1)
    separate = find_windows(with_todo(2, 6), re.compile("TODO"), 1)

    assert [(w.start_line, w.end_line) for w in overlapping] == [(2, 6)]
    assert overlapping[0].matched_lines == frozenset({3, 5})
    assert [(w.start_line, w.end_line) for w in adjacent] == [(1, 6)]
    assert [(w.start_line, w.end_line) for w in separate] == [(1, 3), (5, 7)]


@pytest.mark.unit
def test_find_windows_clamps_to_file_bounds() -> None:
    windows = find_windows(with_todo(1, 10), re.compile("TODO"), 3)

    assert [(w.start_line, w.end_line) for w in windows] == [(1, 4), (7, 10)]


@pytest.mark.unit
def test_find_windows_without_pattern_covers_whole_file() -> None:
    windows = find_windows(TEN_LINES, None, 3)

    assert [(w.start_line, w.end_line) for w in windows] == [(1, 10)]
    assert find_windows([], None, 3) == []


@pytest.mark.unit
def test_find_windows_without_matches_is_empty() -> None:
    assert find_windows(TEN_LINES, re.compile("FIXME"), 2) == []


@pytest.mark.unit
@pytest.mark.parametrize("context", [0, 1, 2, 4])
def test_find_windows_are_increasing_and_cover_every_match(context: int) -> None:
    lines = with_todo(1, 4, 5, 9)
    windows = find_windows(lines, re.compile("TODO"), context)

    for prev, cur in zip(windows, windows[1:], strict=False):
        assert prev.end_line + 1 < cur.start_line
    covered = {n for w in windows for n in range(w.start_line, w.end_line + 1)}
    assert {1, 4, 5, 9} <= covered
    assert set().union(*(w.matched_lines for w in windows)) == {1, 4, 5, 9}
