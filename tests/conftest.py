from __future__ import annotations

import os
import shutil
import subprocess
from typing import TYPE_CHECKING

import pytest

from repo_snapshot import settings as settings_module
from repo_snapshot import tokens

if TYPE_CHECKING:
    from pathlib import Path

    from pytest_mock import MockerFixture


class WhitespaceEncoding:
    """Stand-in tokenizer: one token per whitespace-separated word."""

    def encode(self, text: str, disallowed_special: tuple[str, ...] = ()) -> list[str]:  # noqa: ARG002
        return text.split()


@pytest.fixture(autouse=True)
def whitespace_tokenizer(request: pytest.FixtureRequest, mocker: MockerFixture) -> None:
    if request.node.get_closest_marker("real_tokenizer"):
        return
    mocker.patch.object(tokens, "get_encoding", return_value=WhitespaceEncoding())


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings_module, "ENV_FILE", "")
    for key in list(os.environ):
        if key.startswith(settings_module.ENV_PREFIX):
            monkeypatch.delenv(key)


class GitRepoBuilder:
    """Small helper creating commits in a scratch repository."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.git("init", "-q")
        self.git("config", "user.name", "Snapshot Tests")
        self.git("config", "user.email", "tests@example.com")
        self.git("config", "commit.gpgsign", "false")

    def git(self, *args: str) -> str:
        out = subprocess.run(  # noqa: S603
            ["git", *args],  # noqa: S607
            cwd=self.root,
            capture_output=True,
            text=True,
            check=True,
        )
        return out.stdout.strip()

    def write(self, rel: str, content: str | bytes) -> Path:
        path = self.root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        return path

    def remove(self, rel: str) -> None:
        (self.root / rel).unlink()

    def commit(self, message: str, tag: str = "") -> str:
        self.git("add", "-A")
        self.git("commit", "-q", "-m", message)
        if tag:
            self.git("tag", tag)
        return self.git("rev-parse", "HEAD")


@pytest.fixture
def git_repo(tmp_path: Path) -> GitRepoBuilder:
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    root = tmp_path / "project"
    root.mkdir()
    return GitRepoBuilder(root)
