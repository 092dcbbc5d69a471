"""Repository snapshots and git diffs rendered for LLM context windows."""

__version__ = "0.1.0"
