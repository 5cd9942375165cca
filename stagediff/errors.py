"""Exit-code contract and exception types for stagediff."""
from __future__ import annotations

import enum


class ExitCode(enum.IntEnum):
    """Standardised CLI exit codes.

    0 — success
    1 — user error (bad arguments, invalid input)
    2 — repo-not-found / config invalid
    3 — server / internal error
    """

    SUCCESS = 0
    USER_ERROR = 1
    REPO_NOT_FOUND = 2
    INTERNAL_ERROR = 3


class StagediffError(Exception):
    """Base exception for stagediff errors."""

    def __init__(self, message: str, exit_code: ExitCode = ExitCode.INTERNAL_ERROR) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class RepoNotFoundError(StagediffError):
    """Raised when the current directory is not a stagediff repository."""

    def __init__(self, message: str = "Not a stagediff repository. Run `stagediff init`.") -> None:
        super().__init__(message, exit_code=ExitCode.REPO_NOT_FOUND)


class SourceReadError(StagediffError):
    """Raised when a snapshot source cannot be read while walking it.

    Always fatal to the walk in progress: the traversal is aborted and
    whatever the diff result accumulated so far is incomplete.
    """

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(message, exit_code=ExitCode.INTERNAL_ERROR)
        self.path = path


class IndexFormatError(StagediffError):
    """Raised when ``.stage/index.json`` exists but cannot be parsed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, exit_code=ExitCode.REPO_NOT_FOUND)
