"""Shared types for syncedtree.

This module defines the lifecycle enum and the exception hierarchy used by
the engine, the crypto helpers and the reference stores.
"""

from __future__ import annotations

from enum import Enum


class RunState(str, Enum):
    """Lifecycle of a SyncedTree engine.

    An engine only moves forward: NOT_STARTED -> RUNNING -> STOPPED.
    """

    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"


class SyncedTreeError(Exception):
    """Base exception for syncedtree errors."""


class PathError(SyncedTreeError):
    """A logical path failed a precondition.

    Attributes:
        path: The offending logical path.
    """

    message = "invalid path '{path}'"

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(self.message.format(path=path))


class PathNotFoundError(PathError):
    """Path does not exist in the tree index."""

    message = "path '{path}' does not exist"


class PathAlreadyExistsError(PathError):
    """Path already exists in the tree index."""

    message = "path '{path}' already exists"


class PathNotADirectoryError(PathError):
    """Path exists but is not a directory."""

    message = "path '{path}' is not a directory"


class PathNotAFileError(PathError):
    """Path exists but is not a file."""

    message = "path '{path}' is not a file"


class InvalidIdentifierError(SyncedTreeError, ValueError):
    """A string could not be parsed as a content identifier."""


class DecryptionError(SyncedTreeError):
    """Ciphertext could not be decrypted (wrong key, wrong IV or tampered data)."""


class EngineNotStartedError(SyncedTreeError):
    """An operation needs state that only exists once the engine started."""
