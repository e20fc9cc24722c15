"""Commit stage of report imports."""

from src.import_.commit.executor import (
    CommitExecutor,
    CommitOptions,
    CommitResult,
    CommitStage,
    UpdateFailure,
)

__all__ = [
    "CommitExecutor",
    "CommitOptions",
    "CommitResult",
    "CommitStage",
    "UpdateFailure",
]
