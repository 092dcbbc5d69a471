from __future__ import annotations

import re
from enum import StrEnum, auto
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

VCS_METADATA_DIR = ".git"

DEFAULT_CONTEXT_LINES = 3
DEFAULT_CONTEXT_WINDOWS = (8192, 32768)
DEFAULT_ENCODING = "p50k_base"
DEFAULT_HEX_DUMP_BYTES = 512

# Sniffing limits for the content classifier.
SNIFF_BYTES = 8192
CONTROL_CHAR_RATIO = 0.30
ALLOWED_CONTROL_CHARS = frozenset("\t\n\r\f\b")

GITLINK_MODE = 0o160000


class FileKind(StrEnum):
    """Kind of an entry in a repository listing."""

    FILE = auto()
    DIRECTORY = auto()


class ChangeStatus(StrEnum):
    """How a path changed between two revisions."""

    ADDED = auto()
    REMOVED = auto()
    MODIFIED = auto()


class ChangeTag(StrEnum):
    """Tag of a single line in a rendered diff."""

    CONTEXT = auto()
    ADDED = auto()
    REMOVED = auto()


class BinaryReason(StrEnum):
    """Why the content classifier rejected a byte sequence as text."""

    NUL_BYTE = auto()
    NON_UTF8 = auto()
    CONTROL_BYTES = auto()


DIFF_MARKERS: dict[ChangeTag, str] = {
    ChangeTag.CONTEXT: " ",
    ChangeTag.ADDED: "+",
    ChangeTag.REMOVED: "-",
}


class FileEntry(BaseModel):
    """One file or directory of a working tree or of a revision tree.

    Attributes:
        path: Path segments relative to the repository root (empty for the root).
        kind: File or directory.
        size: Size in bytes (0 for directories).
        mode: Git file mode when known (e.g. 0o100644).
        oid: Blob/tree object id for entries read from a revision.
    """

    model_config = ConfigDict(frozen=True)

    path: tuple[str, ...] = Field(..., description="Relative path segments")
    kind: FileKind = Field(..., description="File or directory")
    size: int = Field(default=0, ge=0, description="Size in bytes")
    mode: int | None = Field(default=None, description="Git file mode")
    oid: str = Field(default="", description="Object id when read from a revision")

    @computed_field
    @property
    def rel(self) -> str:
        """POSIX relative path."""
        return "/".join(self.path)

    @computed_field
    @property
    def name(self) -> str:
        """Final path segment, empty for the root."""
        return self.path[-1] if self.path else ""

    @property
    def is_dir(self) -> bool:
        return self.kind is FileKind.DIRECTORY


class TreeNode(BaseModel):
    """A directory listing node; children are sorted by name."""

    model_config = ConfigDict(frozen=True)

    entry: FileEntry
    children: tuple[TreeNode, ...] = ()

    def iter_files(self) -> list[FileEntry]:
        """Return every file below this node in depth-first display order."""
        files: list[FileEntry] = []
        stack: list[TreeNode] = [self]
        while stack:
            node = stack.pop()
            if not node.entry.is_dir:
                files.append(node.entry)
                continue
            stack.extend(reversed(node.children))
        return files


class FilterConfig(BaseModel):
    """Selection policy applied to every file of a run.

    `extensions` and `excludes` are evaluated independently: a file is included
    only when its extension is allowed AND no exclude glob matches it.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    extensions: frozenset[str] = Field(default=frozenset(), description="Allowed extensions, empty = all")
    excludes: tuple[str, ...] = Field(default=(), description="Exclude globs")
    pattern: re.Pattern[str] | None = Field(default=None, description="Compiled search pattern")
    context_lines: int = Field(default=DEFAULT_CONTEXT_LINES, ge=0, description="Context lines around matches")


class TextContent(BaseModel):
    """Decoded text, one entry per line without line terminators."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    lines: tuple[str, ...] = ()


class BinaryContent(BaseModel):
    """Raw bytes that did not classify as text."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["binary"] = "binary"
    data: bytes = b""
    reason: BinaryReason = BinaryReason.NUL_BYTE


DecodedContent = Annotated[TextContent | BinaryContent, Field(discriminator="kind")]


class MatchWindow(BaseModel):
    """Inclusive, 1-based range of lines shown around one or more matches."""

    model_config = ConfigDict(frozen=True)

    start_line: int = Field(..., ge=1)
    end_line: int = Field(..., ge=1)
    matched_lines: frozenset[int] = frozenset()


class LineChange(BaseModel):
    """One line of a text diff with its 1-based position on each side."""

    model_config = ConfigDict(frozen=True)

    tag: ChangeTag
    text: str
    old_lineno: int | None = None
    new_lineno: int | None = None


class DiffSection(BaseModel):
    """A run of changes with its unified-diff `@@ -a,b +c,d @@` coordinates."""

    model_config = ConfigDict(frozen=True)

    old_start: int = Field(..., ge=0)
    old_count: int = Field(..., ge=0)
    new_start: int = Field(..., ge=0)
    new_count: int = Field(..., ge=0)
    changes: tuple[LineChange, ...] = ()


class DiffHunk(BaseModel):
    """Changes of one path between two revisions."""

    model_config = ConfigDict(frozen=True)

    old_path: str = ""
    new_path: str = ""
    old_oid: str = ""
    new_oid: str = ""
    old_mode: int | None = None
    new_mode: int | None = None
    status: ChangeStatus
    binary: bool = False
    sections: tuple[DiffSection, ...] = ()

    @property
    def changes(self) -> tuple[LineChange, ...]:
        """Every tagged line change of the hunk in order."""
        return tuple(c for s in self.sections for c in s.changes)

    @computed_field
    @property
    def path(self) -> str:
        """Path shown for the hunk: the new path unless the file was removed."""
        return self.new_path or self.old_path

    @computed_field
    @property
    def mode(self) -> int | None:
        """Mode of the surviving side of the change."""
        return self.new_mode if self.new_mode is not None else self.old_mode


TreeNode.model_rebuild()
