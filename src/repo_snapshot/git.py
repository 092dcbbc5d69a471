"""Read-only access to a git object store through the `git` executable.

Only plumbing commands are used (`rev-parse`, `ls-tree`, `ls-files`,
`cat-file --batch`), so output formats are stable across git versions.
Blob reads share one long-lived `git cat-file --batch` process that is closed
when the `GitRepository` context exits.
"""

from __future__ import annotations

import subprocess  # noqa: S404
from pathlib import Path
from typing import IO, TYPE_CHECKING, Self

from pydantic import BaseModel, ConfigDict, Field

from repo_snapshot.config import GITLINK_MODE
from repo_snapshot.exceptions import (
    FileUnreadableError,
    GitCommandError,
    NotAGitRepositoryError,
    RevisionNotFoundError,
)
from repo_snapshot.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType


class TreeItem(BaseModel):
    """One blob entry of a recursive `git ls-tree` listing."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="POSIX path relative to the repository root")
    mode: int = Field(..., description="Git file mode")
    oid: str = Field(..., description="Blob object id")
    size: int = Field(default=0, ge=0, description="Blob size in bytes")


def run_git(repo: Path, args: Sequence[str]) -> str:
    """Run a git command in `repo` and return its standard output.

    Args:
        repo (Path): working directory for the command
        args (Sequence[str]): arguments after `git`

    Raises:
        GitCommandError: if git exits with a non-zero status or cannot be started

    Returns:
        str: the decoded standard output
    """
    command = ["git", *args]
    try:
        out = subprocess.run(  # noqa: S603
            command,
            cwd=str(repo),
            capture_output=True,
            check=False,
        )
    except OSError as e:
        raise GitCommandError(command=" ".join(command), returncode=-1, stdout="", stderr=str(e)) from e
    if out.returncode != 0:
        raise GitCommandError(
            command=" ".join(command),
            returncode=out.returncode,
            stdout=out.stdout.decode("utf-8", errors="replace"),
            stderr=out.stderr.decode("utf-8", errors="replace"),
        )
    return out.stdout.decode("utf-8", errors="surrogateescape")


def find_worktree_root(path: Path) -> Path | None:
    """Return the top-level directory of the work tree containing `path`, if any."""
    try:
        top = run_git(path, ["rev-parse", "--show-toplevel"]).strip()
    except GitCommandError as e:
        logger.info("Not inside a git work tree", path=str(path), error=str(e))
        return None
    return Path(top) if top else None


def parse_ls_tree(output: str) -> list[TreeItem]:
    """Parse `git ls-tree -r -l -z` output, skipping submodule gitlinks.

    Each record reads `<mode> SP <type> SP <oid> SP+ <size> TAB <path> NUL`.
    """
    items: list[TreeItem] = []
    for record in output.split("\0"):
        if not record:
            continue
        meta, _, path = record.partition("\t")
        mode_s, obj_type, oid, size_s = meta.split(maxsplit=3)
        mode = int(mode_s, 8)
        if obj_type != "blob" or mode == GITLINK_MODE:
            continue
        size = int(size_s) if size_s.strip().isdigit() else 0
        items.append(TreeItem(path=path, mode=mode, oid=oid, size=size))
    return items


class GitRepository:
    """Read-only handle on a repository's object store.

    Use it as a context manager so the shared `cat-file` process is released:

        with GitRepository.open(path) as repo:
            commit = repo.resolve_revision("v1.0")
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self._batch: subprocess.Popen[bytes] | None = None

    @classmethod
    def open(cls, path: Path) -> Self:
        """Open the git repository whose work tree contains `path`.

        Raises:
            NotAGitRepositoryError: if `path` is not inside a git work tree
        """
        root = find_worktree_root(path)
        if root is None:
            raise NotAGitRepositoryError(folder=path)
        return cls(root)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Terminate the shared `cat-file` process if it was started."""
        if self._batch is None:
            return
        batch, self._batch = self._batch, None
        if batch.stdin is not None:
            batch.stdin.close()
        try:
            batch.wait(timeout=5)
        except subprocess.TimeoutExpired:
            batch.kill()
            batch.wait()
        if batch.stdout is not None:
            batch.stdout.close()

    def resolve_revision(self, revision: str) -> str:
        """Resolve a tag, branch or commit expression to a commit id.

        Args:
            revision (str): any revision expression git understands

        Raises:
            RevisionNotFoundError: if the revision does not name a commit

        Returns:
            str: the full commit object id
        """
        if not revision or revision.startswith("-"):
            raise RevisionNotFoundError(revision=revision)
        try:
            out = run_git(self.root, ["rev-parse", "--verify", "--quiet", f"{revision}^{{commit}}"])
        except GitCommandError as e:
            raise RevisionNotFoundError(revision=revision) from e
        oid = out.strip()
        if not oid:
            raise RevisionNotFoundError(revision=revision)
        return oid

    def list_tree(self, commit: str) -> list[TreeItem]:
        """List every blob reachable from a commit's tree, sorted by path."""
        out = run_git(self.root, ["ls-tree", "-r", "-l", "-z", "--full-tree", commit])
        return sorted(parse_ls_tree(out), key=lambda item: item.path)

    def list_unignored_files(self) -> set[str]:
        """Return tracked and untracked-but-not-ignored paths of the work tree."""
        out = run_git(self.root, ["ls-files", "--cached", "--others", "--exclude-standard", "-z"])
        return {line for line in out.split("\0") if line}

    def read_blob(self, oid: str, path: str = "") -> bytes:
        """Read the raw content of a blob.

        Args:
            oid (str): blob object id
            path (str): path used in error reports

        Raises:
            FileUnreadableError: if the object is missing or is not a blob

        Returns:
            bytes: the blob content
        """
        stdin, stdout = self._batch_pipes()
        try:
            stdin.write(f"{oid}\n".encode("ascii"))
            stdin.flush()
            header = stdout.readline().decode("ascii", errors="replace").strip()
        except OSError as e:
            self.close()
            raise FileUnreadableError(path=path or oid, reason=str(e)) from e
        if not header:
            self.close()
            raise FileUnreadableError(path=path or oid, reason="git cat-file terminated unexpectedly")
        fields = header.split()
        if len(fields) != 3:  # noqa: PLR2004
            raise FileUnreadableError(path=path or oid, reason=header)
        _, obj_type, size_s = fields
        data = stdout.read(int(size_s))
        stdout.read(1)
        if obj_type != "blob":
            raise FileUnreadableError(path=path or oid, reason=f"object {oid} is a {obj_type}, not a blob")
        return data

    def _batch_pipes(self) -> tuple[IO[bytes], IO[bytes]]:
        if self._batch is None:
            self._batch = subprocess.Popen(  # noqa: S603
                ["git", "cat-file", "--batch"],  # noqa: S607
                cwd=str(self.root),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
            )
        if self._batch.stdin is None or self._batch.stdout is None:
            raise FileUnreadableError(path=str(self.root), reason="git cat-file pipes unavailable")
        return self._batch.stdin, self._batch.stdout
