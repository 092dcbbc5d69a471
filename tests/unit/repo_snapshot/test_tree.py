from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from repo_snapshot import tree
from repo_snapshot.config import FileEntry, FileKind, FilterConfig
from repo_snapshot.git import TreeItem
from repo_snapshot.tree import (
    ancestor_dirs,
    build_tree_lines,
    entries_from_tree_items,
    tree_from_entries,
    walk,
)

if TYPE_CHECKING:
    from pathlib import Path

    from pytest_mock import MockerFixture


def make_files(root: Path, *rels: str) -> None:
    for rel in rels:
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"{rel}\n", encoding="utf-8")


def file_entry(rel: str) -> FileEntry:
    return FileEntry(path=tuple(rel.split("/")), kind=FileKind.FILE)


@pytest.mark.unit
def test_walk_sorts_files_and_directories_together(tmp_path: Path) -> None:
    make_files(tmp_path, "c.txt", "b/c.txt", "a.txt")

    root = walk(tmp_path, FilterConfig(), use_git=False)

    assert [child.entry.name for child in root.children] == ["a.txt", "b", "c.txt"]
    assert [e.rel for e in root.iter_files()] == ["a.txt", "b/c.txt", "c.txt"]


@pytest.mark.unit
def test_walk_prunes_excluded_directories_and_vcs_metadata(tmp_path: Path) -> None:
    make_files(tmp_path, "src/main.rs", "target/debug/app", ".git/config", "README.md")

    root = walk(tmp_path, FilterConfig(excludes=("target",)), use_git=False)

    assert [e.rel for e in root.iter_files()] == ["README.md", "src/main.rs"]
    assert all(child.entry.name not in {".git", "target"} for child in root.children)


@pytest.mark.unit
def test_walk_keeps_files_outside_the_extension_allow_list(tmp_path: Path) -> None:
    make_files(tmp_path, "a.rs", "b.txt")

    root = walk(tmp_path, FilterConfig(extensions=frozenset({"rs"})), use_git=False)

    assert [e.rel for e in root.iter_files()] == ["a.rs", "b.txt"]


@pytest.mark.unit
def test_walk_honors_unignored_file_set(tmp_path: Path, mocker: MockerFixture) -> None:
    make_files(tmp_path, "a.txt", "b/c.txt", "c.log", "build/out.bin")
    mocker.patch.object(tree, "load_unignored_files", return_value={"a.txt", "b/c.txt"})

    root = walk(tmp_path, FilterConfig())

    assert [e.rel for e in root.iter_files()] == ["a.txt", "b/c.txt"]
    assert [child.entry.name for child in root.children] == ["a.txt", "b"]


@pytest.mark.unit
def test_walk_skips_symlink_cycles(tmp_path: Path, mocker: MockerFixture) -> None:
    make_files(tmp_path, "pkg/mod.py")
    try:
        os.symlink(tmp_path, tmp_path / "pkg" / "loop", target_is_directory=True)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks are not supported here")
    warning = mocker.patch.object(tree.logger, "warning")

    root = walk(tmp_path, FilterConfig(), use_git=False)

    assert [e.rel for e in root.iter_files()] == ["pkg/mod.py"]
    warning.assert_called_once()
    assert warning.call_args.args[0] == "Skipping symlink cycle"


@pytest.mark.unit
def test_walk_follows_symlinked_files(tmp_path: Path) -> None:
    make_files(tmp_path, "real.txt")
    try:
        os.symlink(tmp_path / "real.txt", tmp_path / "alias.txt")
    except (OSError, NotImplementedError):
        pytest.skip("symlinks are not supported here")

    root = walk(tmp_path, FilterConfig(), use_git=False)

    assert [e.rel for e in root.iter_files()] == ["alias.txt", "real.txt"]


def test_ancestor_dirs() -> None:
    assert ancestor_dirs(["a/b/c.txt", "d.txt"]) == {"a", "a/b"}


def test_build_tree_lines_draws_connectors() -> None:
    root = tree_from_entries([file_entry("c.txt"), file_entry("a.txt"), file_entry("b/c.txt"), file_entry("b/d/e.rs")])

    assert build_tree_lines("demo", root) == [
        "demo/",
        "├── a.txt",
        "├── b/",
        "│   ├── c.txt",
        "│   └── d/",
        "│       └── e.rs",
        "└── c.txt",
    ]


def test_build_tree_lines_for_empty_tree() -> None:
    assert build_tree_lines("demo", tree_from_entries([])) == ["demo/"]


@pytest.mark.unit
def test_entries_from_tree_items_drops_excluded_paths() -> None:
    items = [
        TreeItem(path="src/lib.rs", mode=0o100644, oid="a" * 40, size=10),
        TreeItem(path="target/app", mode=0o100755, oid="b" * 40, size=20),
    ]

    entries = entries_from_tree_items(items, FilterConfig(excludes=("target",)))

    assert [e.rel for e in entries] == ["src/lib.rs"]
    assert entries[0].oid == "a" * 40
    assert entries[0].size == 10  # noqa: PLR2004
