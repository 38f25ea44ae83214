"""
Custom exceptions for tuido.

This module defines a hierarchy of exceptions for the sync engine and
local storage, providing structured error handling with context
preservation.

Exception Hierarchy:
    TuidoError (base)
    ├── SyncError (transport / sync pass errors)
    │   ├── AuthError (bad or expired credential, fatal)
    │   ├── TransientError (network / 5xx, retryable)
    │   ├── ProtocolError (malformed response, bug-class)
    │   └── SyncCancelled (pass aborted before commit)
    ├── StoreError (local persistence errors)
    │   ├── CorruptState (on-disk state unreadable)
    │   └── StoreWriteError (durable write failed)
    ├── CredentialsError (no credential available)
    └── TaskNotFoundError (unknown task reference)

A Rejected command is not an exception: it is a terminal command state
recorded in the CommandQueue.

Example:
    >>> from tuido.core.errors import TransientError
    >>> try:
    ...     raise TransientError("Sync server unavailable", status_code=503)
    ... except TransientError as e:
    ...     print(f"{e} {e.context}")
"""


class TuidoError(Exception):
    """
    Base exception for all tuido errors.

    Attributes:
        message: Human-readable error message
        context: Dictionary of additional context
    """

    def __init__(self, message: str, **context: object) -> None:
        """
        Initialize an error with message and context.

        Args:
            message: Human-readable error message
            **context: Additional context as keyword arguments
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Return string representation of the error."""
        return self.message


class SyncError(TuidoError):
    """Base exception for errors raised during a sync pass."""

    retryable = False


class AuthError(SyncError):
    """
    The remote rejected the credential.

    Fatal for the current pass and not retried: sync stays halted until
    the user supplies a fresh token.
    """


class TransientError(SyncError):
    """
    A temporary failure (network error, timeout, 5xx).

    The pass aborts with local state unchanged; callers may retry with
    backoff.
    """

    retryable = True


class ProtocolError(SyncError):
    """
    The remote answered with something that violates the sync protocol.

    Non-retryable and treated as a bug: the context carries whatever was
    known about the response to help diagnose it.
    """


class SyncCancelled(SyncError):
    """The pass was cancelled before its results were committed."""


class StoreError(TuidoError):
    """Base exception for local storage errors."""

    def __init__(self, message: str, path: object = None, **context: object) -> None:
        super().__init__(message, path=path, **context)
        self.path = path


class CorruptState(StoreError):
    """
    On-disk state could not be read or violates the schema.

    Recovery policy: treat as an empty store and perform a full resync,
    after surfacing a warning.
    """


class StoreWriteError(StoreError):
    """A durable write failed; the previous file is still intact."""


class CredentialsError(TuidoError):
    """No API credential is configured."""


class TaskNotFoundError(TuidoError):
    """A task reference did not match any task in the local store."""

    def __init__(self, task_ref: str, **context: object) -> None:
        super().__init__(f"Task not found: {task_ref}", task_ref=task_ref, **context)
        self.task_ref = task_ref


__all__ = [
    "TuidoError",
    "SyncError",
    "AuthError",
    "TransientError",
    "ProtocolError",
    "SyncCancelled",
    "StoreError",
    "CorruptState",
    "StoreWriteError",
    "CredentialsError",
    "TaskNotFoundError",
]
