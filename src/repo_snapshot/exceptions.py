from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class RepoSnapshotError(Exception):
    """Base exception for errors in the repo_snapshot module."""

    def __str__(self) -> str:
        return getattr(self, "message", self.__class__.__name__)


@dataclass(frozen=True)
class GitCommandError(RepoSnapshotError):
    """Raised when a git command fails."""

    command: str
    returncode: int
    stdout: str
    stderr: str

    def __str__(self) -> str:
        detail = self.stderr.strip() or self.stdout.strip()
        return f"`{self.command}` exited with status {self.returncode}: {detail}"


@dataclass(frozen=True)
class RepositoryNotFoundError(RepoSnapshotError):
    """Raised when the repository root does not exist or is not a directory."""

    folder: Path
    message: str = "The specified repository root does not exist."


@dataclass(frozen=True)
class NotAGitRepositoryError(RepoSnapshotError):
    """Raised when the specified directory is not a Git repository."""

    folder: Path
    message: str = "The specified directory is not a Git repository."


@dataclass(frozen=True)
class RevisionNotFoundError(RepoSnapshotError):
    """Raised when a revision identifier cannot be resolved to a commit."""

    revision: str

    def __str__(self) -> str:
        return f"Revision not found: {self.revision!r}"


@dataclass(frozen=True)
class InvalidPatternError(RepoSnapshotError):
    """Raised when the search pattern is not a valid regular expression."""

    pattern: str
    reason: str

    def __str__(self) -> str:
        return f"Invalid pattern {self.pattern!r}: {self.reason}"


@dataclass(frozen=True)
class ConfigError(RepoSnapshotError):
    """Raised when a configuration source cannot be read or validated."""

    source: str
    reason: str

    def __str__(self) -> str:
        return f"Invalid configuration in {self.source}: {self.reason}"


@dataclass(frozen=True)
class FileUnreadableError(RepoSnapshotError):
    """Raised when the content of a single file or blob cannot be read."""

    path: str
    reason: str

    def __str__(self) -> str:
        return f"Cannot read {self.path}: {self.reason}"
