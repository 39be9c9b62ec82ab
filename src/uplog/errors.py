"""Full error hierarchy for uplog.

Every public error class inherits from UplogError. Each carries a
machine-readable ``code`` (from :class:`ErrorCode`), a human-readable
``message``, an optional structured ``context`` dict, and an optional
``cause`` (chained exception).

One class exists per pipeline stage failure, so a caller can tell which
stage halted a run from the exception type alone.  Stages never wrap an
error raised by an earlier stage.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Error code enum
# ---------------------------------------------------------------------------

class ErrorCode(str, Enum):
    """Machine-readable error codes for every error uplog can raise."""

    DETECTION_ERROR = "DETECTION_ERROR"
    TRANSCODE_ERROR = "TRANSCODE_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    STORAGE_SETUP_ERROR = "STORAGE_SETUP_ERROR"
    UPLOAD_INIT_ERROR = "UPLOAD_INIT_ERROR"
    TRANSFER_ERROR = "TRANSFER_ERROR"
    COMMIT_ERROR = "COMMIT_ERROR"
    CONFIG_ERROR = "CONFIG_ERROR"

    def __str__(self) -> str:
        return self.value


# ---------------------------------------------------------------------------
# Base error
# ---------------------------------------------------------------------------

class UplogError(Exception):
    """Base exception for all uplog errors.

    Parameters
    ----------
    code:
        A value from :class:`ErrorCode` identifying the error category.
    message:
        A developer-friendly description of what went wrong.
    context:
        Arbitrary structured data providing extra diagnostic detail.
        Keys are documented per subclass.
    cause:
        The underlying exception, if this error wraps another.
    """

    def __init__(
        self,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.code: str = code
        self.message: str = message
        self.context: dict[str, Any] = context or {}
        self.cause: Exception | None = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        ctx = f", context={self.context!r}" if self.context else ""
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}{ctx})"


class _StageError(UplogError):
    """Shared constructor for the per-stage errors below."""

    stage_code: ErrorCode

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=self.stage_code,
            message=message,
            context=context,
            cause=cause,
        )

    def __reduce__(self):
        # Keep pickling working for subclasses with the short signature.
        return (type(self), (self.message, self.context, self.cause))


# ---------------------------------------------------------------------------
# Media errors
# ---------------------------------------------------------------------------

class DetectionError(_StageError):
    """The input is empty, unreadable, or its content type is unknown.

    Context keys: ``path``, ``header_bytes``, ``reason``.
    """

    stage_code = ErrorCode.DETECTION_ERROR


class TranscodeError(_StageError):
    """An eligible image could not be decoded or re-encoded, or the
    configured quality is outside 0..100.

    Context keys: ``mime``, ``quality``, ``reason``.
    """

    stage_code = ErrorCode.TRANSCODE_ERROR


# ---------------------------------------------------------------------------
# Storage errors
# ---------------------------------------------------------------------------

class AuthError(_StageError):
    """The storage credential is malformed, invalid, or expired.

    Context keys: ``credential`` (masked), ``error_code``.
    """

    stage_code = ErrorCode.AUTH_ERROR


class StorageSetupError(_StageError):
    """The destination bucket is missing and could not be created, or
    access to it was denied.

    Context keys: ``bucket``, ``error_code``.
    """

    stage_code = ErrorCode.STORAGE_SETUP_ERROR


class UploadInitError(_StageError):
    """A write handle could not be opened: the key is invalid or another
    write to the same key is still open.

    Context keys: ``bucket``, ``key``, ``reason``.
    """

    stage_code = ErrorCode.UPLOAD_INIT_ERROR


class TransferError(_StageError):
    """Reading the source or writing to the destination failed mid-copy.

    Always raised after the partial upload has been aborted.

    Context keys: ``bucket``, ``key``, ``bytes_written``, ``side``.
    """

    stage_code = ErrorCode.TRANSFER_ERROR


class CommitError(_StageError):
    """Finalizing the object failed after every byte was transferred.

    Whether the object is visible at the key is undefined; treat this as
    a failure that needs investigation.

    Context keys: ``bucket``, ``key``, ``size``.
    """

    stage_code = ErrorCode.COMMIT_ERROR


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class ConfigError(_StageError):
    """The configuration file could not be read, written, or validated.

    Context keys: ``path``, ``field``, ``value``.
    """

    stage_code = ErrorCode.CONFIG_ERROR
