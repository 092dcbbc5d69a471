from __future__ import annotations

from typing import TYPE_CHECKING, Any

from tiktoken import get_encoding

from repo_snapshot.config import DEFAULT_ENCODING
from repo_snapshot.exceptions import ConfigError

if TYPE_CHECKING:
    from collections.abc import Iterable


def format_window_label(window_size: int) -> str:
    """Human label of a context window size (8192 -> `8K`)."""
    if window_size > 0 and window_size % 1024 == 0:
        return f"{window_size // 1024}K"
    return str(window_size)


class TokenAccountant:
    """Append-only token tally for one run.

    Counts are produced by a fixed tiktoken encoding so identical text always
    yields identical counts. `record` appends an entry per call; recording the
    same path twice is a caller bug that is not detected here.
    """

    def __init__(self, encoding_name: str = DEFAULT_ENCODING) -> None:
        self.encoding_name = encoding_name
        self._encoding: Any | None = None
        self.per_file: list[tuple[str, int]] = []
        self.running_total = 0

    @property
    def encoding(self) -> Any:  # noqa: ANN401
        """The tiktoken encoding, loaded on first use."""
        if self._encoding is None:
            self._encoding = get_encoding(self.encoding_name)
        return self._encoding

    def load(self) -> None:
        """Load the encoding now, so an unknown name fails before any rendering.

        Raises:
            ConfigError: if tiktoken does not know the encoding or cannot fetch it
        """
        try:
            self.encoding  # noqa: B018
        except (ValueError, OSError) as e:
            raise ConfigError(source="encoding", reason=f"{self.encoding_name}: {e}") from e

    def count(self, text: str) -> int:
        """Number of tokens in `text`; special-token markers count as plain text."""
        if not text:
            return 0
        return len(self.encoding.encode(text, disallowed_special=()))

    def record(self, path: str, count: int) -> None:
        """Append the count of one rendered file to the tally."""
        self.per_file.append((path, max(0, count)))
        self.running_total += max(0, count)

    def summary(self, window_sizes: Iterable[int]) -> dict[int, tuple[int, float]]:
        """Usage of each context window by the running total.

        Args:
            window_sizes (Iterable[int]): context window sizes in tokens

        Returns:
            dict[int, tuple[int, float]]: window size -> (total tokens, percentage used);
                a non-positive window size reports 0.0
        """
        out: dict[int, tuple[int, float]] = {}
        for size in window_sizes:
            pct = 100 * self.running_total / size if size > 0 else 0.0
            out[size] = (self.running_total, pct)
        return out
