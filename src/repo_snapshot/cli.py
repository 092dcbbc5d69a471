"""
repo_snapshot — Render a repository for an LLM context window.

Overview
--------
Two kinds of document are produced, both ending with a token usage summary:

1) **Snapshot** — the directory tree followed by the line-numbered content of
   every selected file. With `--pattern`, only the lines around matches are
   shown. With `--git-to` alone, the snapshot is taken from that revision
   instead of the working directory.

2) **Diff** — with `--git-from`, the unified diff of every changed file
   between two revisions (`--git-to` defaults to HEAD).

Settings come from `REPO_SNAPSHOT_*` environment variables (and `.env`), then
a YAML file (`--config`, or `.repo-snapshot.yaml` in the repository), then the
command line.

Usage
-----
    - Snapshot of the Rust and TOML files, skipping build output:
        uv run python -m repo_snapshot.cli -p . -e rs,toml --excludes "target"

    - Lines around TODOs with one line of context:
        uv run python -m repo_snapshot.cli --pattern TODO -c 1

    - Changes since a tag, written to a file:
        uv run python -m repo_snapshot.cli --git-from v1.0 --output changes.txt
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from repo_snapshot import __version__
from repo_snapshot.exceptions import RepoSnapshotError
from repo_snapshot.logging import logger, setup_logging
from repo_snapshot.output_construction import build_report
from repo_snapshot.settings import load_settings

if TYPE_CHECKING:
    from collections.abc import Sequence

    from repo_snapshot.settings import Settings

PROG = "repo-snapshot"


def build_parser() -> argparse.ArgumentParser:
    """Command line parser; unset options are absent so lower layers apply."""
    p = argparse.ArgumentParser(
        prog=PROG,
        description="Render a repository tree, file contents or git diffs for LLM consumption.",
        argument_default=argparse.SUPPRESS,
    )
    p.add_argument("-p", "--path", "--repo", dest="repo", type=Path, help="Repository root (default: cwd).")
    p.add_argument("--git-from", type=str, help="Revision to diff from; enables diff mode.")
    p.add_argument("--git-to", type=str, help="Revision to diff to (default HEAD), or to snapshot alone.")
    p.add_argument(
        "-e",
        "--extensions",
        action="append",
        help="Allowed extensions, comma separated (repeatable).",
    )
    p.add_argument(
        "--excludes",
        action="append",
        help="Exclude globs, comma separated (repeatable).",
    )
    p.add_argument("--pattern", type=str, help="Regex; only lines around matches are shown.")
    p.add_argument(
        "-c",
        "--context-lines",
        type=int,
        help="Lines of context around matches and diff changes (default 3).",
    )
    p.add_argument(
        "--context-window",
        dest="context_windows",
        type=int,
        action="append",
        help="Context window size reported in the summary (repeatable).",
    )
    p.add_argument("--encoding", type=str, help="tiktoken encoding (default p50k_base).")
    p.add_argument("--strip-comments", action="store_true", help="Remove source comments.")
    p.add_argument("--hex-dump-bytes", type=int, help="Bytes shown for binary files (0 = all).")
    p.add_argument("--no-git", action="store_true", help="Do not consult git ignore rules.")
    p.add_argument("--output", type=Path, help="Output file (default: stdout).")
    p.add_argument("--config", type=Path, help="YAML configuration file.")
    p.add_argument("--log-file", type=str, help="Log file path.")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    """Parse the command line and merge it over environment and config file.

    Raises:
        ConfigError: if the merged settings are invalid
    """
    args = build_parser().parse_args(argv)
    return load_settings(vars(args))


def write_output(content: str, output: Path | None) -> None:
    if output is None:
        sys.stdout.write(content)
        sys.stdout.flush()
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(content, encoding="utf-8")
    logger.info("Wrote report", output=str(output), chars=len(content))


def main(argv: Sequence[str] | None = None) -> int:
    try:
        settings = parse_args(argv)
        if settings.log_file:
            setup_logging(settings.log_file)
        content = build_report(settings)
    except RepoSnapshotError as e:
        logger.error("Snapshot failed", error=str(e), kind=type(e).__name__)
        print(f"error: {e}", file=sys.stderr)
        return 1

    try:
        write_output(content, settings.output)
    except OSError as e:
        logger.error("Cannot write output", output=str(settings.output), error=str(e))
        print(f"error: cannot write {settings.output}: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
