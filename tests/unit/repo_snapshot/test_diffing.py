import re

import pytest

from repo_snapshot.config import ChangeStatus, ChangeTag, DiffHunk
from repo_snapshot.diffing import compute_sections, hunk_matches, unified_range


@pytest.mark.unit
def test_compute_sections_identical_sides_have_no_sections() -> None:
    assert compute_sections(["a", "b"], ["a", "b"], 3) == ()
    assert compute_sections([], [], 3) == ()


@pytest.mark.unit
def test_compute_sections_tags_lines_with_context() -> None:
    (section,) = compute_sections(["a", "b", "c"], ["a", "B", "c"], 3)

    assert (section.old_start, section.old_count, section.new_start, section.new_count) == (1, 3, 1, 3)
    assert [(c.tag, c.text) for c in section.changes] == [
        (ChangeTag.CONTEXT, "a"),
        (ChangeTag.REMOVED, "b"),
        (ChangeTag.ADDED, "B"),
        (ChangeTag.CONTEXT, "c"),
    ]
    assert section.changes[1].old_lineno == 2  # noqa: PLR2004
    assert section.changes[2].new_lineno == 2  # noqa: PLR2004


@pytest.mark.unit
def test_compute_sections_splits_distant_changes() -> None:
    old = [f"line {n}" for n in range(1, 21)]
    new = list(old)
    new[1] = "changed 2"
    new[17] = "changed 18"

    sections = compute_sections(old, new, 1)

    assert [(s.old_start, s.old_count) for s in sections] == [(1, 3), (17, 3)]


@pytest.mark.unit
def test_compute_sections_for_new_file() -> None:
    (section,) = compute_sections([], ["x", "y"], 3)

    assert (section.old_start, section.old_count, section.new_start, section.new_count) == (0, 0, 1, 2)
    assert all(c.tag is ChangeTag.ADDED for c in section.changes)


def test_unified_range() -> None:
    assert unified_range(0, 3) == (1, 3)
    assert unified_range(4, 4) == (4, 0)


@pytest.mark.unit
def test_hunk_matches_ignores_context_lines() -> None:
    (section,) = compute_sections(["TODO keep", "old"], ["TODO keep", "new"], 3)
    hunk = DiffHunk(old_path="a.rs", new_path="a.rs", status=ChangeStatus.MODIFIED, sections=(section,))

    assert hunk_matches(hunk, re.compile("new"))
    assert hunk_matches(hunk, re.compile("old"))
    assert not hunk_matches(hunk, re.compile("TODO"))
    assert hunk.path == "a.rs"


def test_removed_hunk_reports_old_path_and_mode() -> None:
    hunk = DiffHunk(old_path="gone.txt", old_mode=0o100644, status=ChangeStatus.REMOVED)

    assert hunk.path == "gone.txt"
    assert hunk.mode == 0o100644
    assert hunk.changes == ()
