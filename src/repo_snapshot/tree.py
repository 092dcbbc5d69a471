from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import TYPE_CHECKING, Any

from repo_snapshot.config import VCS_METADATA_DIR, FileEntry, FileKind, TreeNode
from repo_snapshot.exceptions import RepoSnapshotError
from repo_snapshot.file_manipulation import is_excluded
from repo_snapshot.git import GitRepository
from repo_snapshot.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from repo_snapshot.config import FilterConfig
    from repo_snapshot.git import TreeItem


def ancestor_dirs(paths: Iterable[str]) -> set[str]:
    """Return every ancestor directory (POSIX, relative) of the given paths."""
    dirs: set[str] = set()
    for p in paths:
        parts = p.split("/")
        for i in range(1, len(parts)):
            dirs.add("/".join(parts[:i]))
    return dirs


def load_unignored_files(root: Path) -> set[str] | None:
    """Ask git which files under `root` are not ignored.

    Returns None when `root` is not inside a git work tree or git fails, in
    which case the walk proceeds without ignore rules. Paths are returned
    relative to `root`.
    """
    try:
        repo = GitRepository.open(root)
        files = repo.list_unignored_files()
    except RepoSnapshotError as e:
        logger.info("Walking without git ignore rules", root=str(root), error=str(e))
        return None
    top = repo.root.resolve()
    base = root.resolve()
    if top == base:
        return files
    prefix = base.relative_to(top).as_posix() + "/"
    return {f.removeprefix(prefix) for f in files if f.startswith(prefix)}


class _Walker:
    """Depth-first walk of a working directory into a TreeNode."""

    def __init__(self, root: Path, filters: FilterConfig, unignored: set[str] | None) -> None:
        self.root = root
        self.filters = filters
        self.unignored = unignored
        self.unignored_dirs = ancestor_dirs(unignored) if unignored is not None else None

    def walk(self) -> TreeNode:
        real_root = os.path.realpath(self.root)
        children = self._children(self.root, (), [real_root], use_ignore=self.unignored is not None)
        return TreeNode(entry=FileEntry(path=(), kind=FileKind.DIRECTORY), children=tuple(children))

    def _skip(self, rel: str, *, is_dir: bool, use_ignore: bool) -> bool:
        if is_excluded(rel, self.filters.excludes):
            return True
        if not use_ignore or self.unignored is None or self.unignored_dirs is None:
            return False
        return rel not in (self.unignored_dirs if is_dir else self.unignored)

    def _children(
        self,
        directory: Path,
        prefix: tuple[str, ...],
        stack: list[str],
        *,
        use_ignore: bool,
    ) -> list[TreeNode]:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning("Skipping unreadable directory", path="/".join(prefix) or ".", error=str(e))
            return []

        nodes: list[TreeNode] = []
        for entry in entries:
            if entry.name == VCS_METADATA_DIR:
                continue
            path = (*prefix, entry.name)
            rel = "/".join(path)
            try:
                # Follows symlinks, so a link takes the kind of its target.
                st = entry.stat()
            except OSError as e:
                logger.warning("Skipping dangling or unreadable entry", path=rel, error=str(e))
                continue

            if stat.S_ISDIR(st.st_mode):
                # git lists a tracked directory symlink as a single file entry.
                linked = use_ignore and entry.is_symlink() and self.unignored is not None and rel in self.unignored
                if self._skip(rel, is_dir=True, use_ignore=use_ignore and not linked):
                    continue
                real = os.path.realpath(entry.path)
                if real in stack:
                    logger.warning("Skipping symlink cycle", path=rel, target=real)
                    continue
                stack.append(real)
                children = self._children(Path(entry.path), path, stack, use_ignore=use_ignore and not linked)
                stack.pop()
                dir_entry = FileEntry(path=path, kind=FileKind.DIRECTORY)
                nodes.append(TreeNode(entry=dir_entry, children=tuple(children)))
            elif stat.S_ISREG(st.st_mode):
                if self._skip(rel, is_dir=False, use_ignore=use_ignore):
                    continue
                file_entry = FileEntry(path=path, kind=FileKind.FILE, size=st.st_size, mode=st.st_mode)
                nodes.append(TreeNode(entry=file_entry))
        return nodes


def walk(root: Path, filters: FilterConfig, *, use_git: bool = True) -> TreeNode:
    """Walk the working directory `root` into a sorted tree.

    The `.git` directory is always skipped, excluded paths are pruned with
    their subtree, and, when `use_git` is set and `root` lives in a git work
    tree, files git ignores are left out. The extension allow-list does not
    prune the tree. Symlinks count as their target's kind. A tracked
    symlink to a directory is descended without ignore rules, since git only
    knows the link itself. A symlinked directory already on the current
    descent stack is skipped with a warning.

    Args:
        root (Path): directory to walk
        filters (FilterConfig): the run's filters (only excludes apply here)
        use_git (bool): honor git ignore rules when available

    Returns:
        TreeNode: the root node; children sorted by name, files and directories interleaved
    """
    unignored = load_unignored_files(root) if use_git else None
    return _Walker(root, filters, unignored).walk()


def tree_from_entries(entries: Iterable[FileEntry]) -> TreeNode:
    """Build a sorted tree from a flat list of file entries.

    Intermediate directories are created as needed.
    """
    nested: dict[str, Any] = {}
    for entry in entries:
        cur = nested
        for part in entry.path[:-1]:
            cur = cur.setdefault(part, {})
        cur[entry.path[-1]] = entry

    def build(node: dict[str, Any], prefix: tuple[str, ...]) -> tuple[TreeNode, ...]:
        out: list[TreeNode] = []
        for name in sorted(node):
            child = node[name]
            if isinstance(child, FileEntry):
                out.append(TreeNode(entry=child))
            else:
                path = (*prefix, name)
                out.append(TreeNode(entry=FileEntry(path=path, kind=FileKind.DIRECTORY), children=build(child, path)))
        return tuple(out)

    return TreeNode(entry=FileEntry(path=(), kind=FileKind.DIRECTORY), children=build(nested, ()))


def entries_from_tree_items(items: Sequence[TreeItem], filters: FilterConfig) -> list[FileEntry]:
    """Turn a revision listing into file entries, dropping excluded paths."""
    return [
        FileEntry(path=tuple(item.path.split("/")), kind=FileKind.FILE, size=item.size, mode=item.mode, oid=item.oid)
        for item in items
        if not is_excluded(item.path, filters.excludes)
    ]


def snapshot(repo: GitRepository, revision: str, filters: FilterConfig) -> TreeNode:
    """Build the tree of a revision, equivalent to `walk` on a checkout of it.

    Raises:
        RevisionNotFoundError: if `revision` does not resolve to a commit
    """
    commit = repo.resolve_revision(revision)
    return tree_from_entries(entries_from_tree_items(repo.list_tree(commit), filters))


def build_tree_lines(root_name: str, tree: TreeNode) -> list[str]:
    """Build a visual tree representation of a TreeNode.

    Args:
        root_name (str): the name to use for the root of the tree
        tree (TreeNode): the root node to draw

    Returns:
        list[str]: a list of strings representing the tree structure, suitable for printing
    """
    lines: list[str] = [f"{root_name}/"]

    def draw(node: TreeNode, prefix: str) -> None:
        for idx, child in enumerate(node.children):
            last = idx == len(node.children) - 1
            branch = "└── " if last else "├── "
            is_dir = child.entry.is_dir
            lines.append(prefix + branch + child.entry.name + ("/" if is_dir else ""))
            if is_dir:
                ext = "    " if last else "│   "
                draw(child, prefix + ext)

    draw(tree, "")
    return lines
