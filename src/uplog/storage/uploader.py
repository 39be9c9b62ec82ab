"""Durable single-object upload with commit/abort semantics.

The :class:`Uploader` drives one upload through the states tracked by
:class:`UploadStateMachine`::

    IDLE -> SESSION_OPEN -> TRANSFER_IN_PROGRESS -> COMMITTED | ABORTED

Two nested scopes make cleanup structural instead of a per-call-site
duty:

* the *session* scope always closes the storage project, and
* the *transfer* scope aborts the write handle on every exit that did not
  reach ``COMMITTED``.

A failed copy therefore never leaves a readable partial object behind.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, BinaryIO

from uplog.errors import (
    AuthError,
    CommitError,
    StorageSetupError,
    TransferError,
    UploadInitError,
    UplogError,
)
from uplog.models import UploadDestination, UploadReceipt, UploadState
from uplog.observability import NoopMetricsHook, get_logger
from uplog.utils.redact import mask_secret

from .backend import ObjectUpload, StorageBackend, StorageProject
from .state import UploadStateMachine

log = get_logger("uplog.storage")

DEFAULT_CHUNK_SIZE = 64 * 1024


class Uploader:
    """Upload one stream to one key.

    Parameters
    ----------
    backend:
        The storage backend used to open a session per upload.
    chunk_size:
        Bytes read from the source per write call.
    metrics:
        Optional :class:`~uplog.observability.MetricsHook`.
    """

    def __init__(
        self,
        backend: StorageBackend,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        metrics: Any | None = None,
    ) -> None:
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        self._backend = backend
        self._chunk_size = chunk_size
        self._metrics = metrics if metrics is not None else NoopMetricsHook()
        self._machine: UploadStateMachine | None = None

    @property
    def state(self) -> UploadState:
        """State of the most recent upload (``IDLE`` before the first)."""
        if self._machine is None:
            return UploadState.IDLE
        return self._machine.state

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def upload(
        self,
        source: BinaryIO,
        destination: UploadDestination,
        key: str,
        content_type: str,
    ) -> UploadReceipt:
        """Copy *source* into a new object at ``destination.bucket/key``.

        Parameters
        ----------
        source:
            Binary stream positioned at the first byte to upload.
        destination:
            Credential and bucket.  ``destination.prefix`` is not used
            here; *key* is already complete.
        key:
            Full object key.
        content_type:
            MIME type stored with the object.

        Returns
        -------
        UploadReceipt
            Bucket, key, byte count and content type of the committed object.

        Raises
        ------
        AuthError
            The credential was rejected.
        StorageSetupError
            The bucket is missing and could not be created, or is denied.
        UploadInitError
            The key is invalid or already has an open write.
        TransferError
            Reading the source or writing the handle failed; the partial
            object has been aborted.
        CommitError
            Finalizing failed after a complete transfer.
        """
        machine = UploadStateMachine(key)
        self._machine = machine
        bucket = destination.bucket
        t0 = time.monotonic()

        try:
            with self._session(machine, destination) as project:
                self._ensure_bucket(project, bucket)
                with self._transfer(machine, project, bucket, key, content_type) as handle:
                    size = self._copy(source, handle, bucket, key)
                    self._commit(machine, handle, bucket, key, size)
        except UplogError as exc:
            machine.fail()
            self._metrics.increment(
                "uplog.upload_failure_total",
                tags={"error": str(exc.code)},
            )
            log.error(
                "upload failed",
                extra={
                    "extra_fields": {
                        "op": "upload",
                        "bucket": bucket,
                        "key": key,
                        "error_code": str(exc.code),
                        "error": exc.message,
                        "state": machine.state.value,
                    }
                },
            )
            raise

        elapsed_ms = (time.monotonic() - t0) * 1000
        self._metrics.increment("uplog.upload_success_total")
        self._metrics.gauge("uplog.upload_bytes", size)
        self._metrics.timing("uplog.upload_duration_ms", elapsed_ms)
        log.info(
            "upload committed",
            extra={
                "extra_fields": {
                    "op": "upload",
                    "bucket": bucket,
                    "key": key,
                    "size": size,
                    "content_type": content_type,
                    "duration_ms": round(elapsed_ms, 2),
                }
            },
        )
        return UploadReceipt(bucket=bucket, key=key, size=size, content_type=content_type)

    # ------------------------------------------------------------------
    # Scopes
    # ------------------------------------------------------------------

    @contextmanager
    def _session(
        self,
        machine: UploadStateMachine,
        destination: UploadDestination,
    ) -> Iterator[StorageProject]:
        try:
            project = self._backend.open_project(destination.credential)
        except UplogError:
            raise
        except Exception as exc:
            raise AuthError(
                message=f"Could not open storage project: {exc}",
                context={"credential": mask_secret(destination.credential)},
                cause=exc,
            ) from exc

        machine.transition(UploadState.SESSION_OPEN)
        try:
            yield project
        finally:
            try:
                project.close()
            except Exception as exc:
                log.warning(
                    "closing storage project failed",
                    extra={"extra_fields": {"op": "close", "error": str(exc)}},
                )

    @contextmanager
    def _transfer(
        self,
        machine: UploadStateMachine,
        project: StorageProject,
        bucket: str,
        key: str,
        content_type: str,
    ) -> Iterator[ObjectUpload]:
        try:
            handle = project.upload_object(bucket, key, content_type)
        except UplogError:
            raise
        except Exception as exc:
            raise UploadInitError(
                message=f"Could not initiate upload of {key!r}: {exc}",
                context={"bucket": bucket, "key": key, "reason": type(exc).__name__},
                cause=exc,
            ) from exc

        machine.transition(UploadState.TRANSFER_IN_PROGRESS)
        try:
            yield handle
        finally:
            if not machine.committed:
                self._abort(handle, bucket, key)
                machine.fail()

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _ensure_bucket(self, project: StorageProject, bucket: str) -> None:
        try:
            project.ensure_bucket(bucket)
        except UplogError:
            raise
        except Exception as exc:
            raise StorageSetupError(
                message=f"Could not ensure bucket {bucket!r}: {exc}",
                context={"bucket": bucket},
                cause=exc,
            ) from exc

    def _copy(
        self,
        source: BinaryIO,
        handle: ObjectUpload,
        bucket: str,
        key: str,
    ) -> int:
        written = 0
        while True:
            try:
                chunk = source.read(self._chunk_size)
            except UplogError:
                raise
            except Exception as exc:
                raise TransferError(
                    message=f"Could not read upload source: {exc}",
                    context={
                        "bucket": bucket,
                        "key": key,
                        "bytes_written": written,
                        "side": "source",
                    },
                    cause=exc,
                ) from exc
            if not chunk:
                return written
            try:
                handle.write(chunk)
            except UplogError:
                raise
            except Exception as exc:
                raise TransferError(
                    message=f"Could not upload data: {exc}",
                    context={
                        "bucket": bucket,
                        "key": key,
                        "bytes_written": written,
                        "side": "destination",
                    },
                    cause=exc,
                ) from exc
            written += len(chunk)

    def _commit(
        self,
        machine: UploadStateMachine,
        handle: ObjectUpload,
        bucket: str,
        key: str,
        size: int,
    ) -> None:
        try:
            handle.commit()
        except UplogError:
            raise
        except Exception as exc:
            raise CommitError(
                message=f"Could not commit uploaded object {key!r}: {exc}",
                context={"bucket": bucket, "key": key, "size": size},
                cause=exc,
            ) from exc
        machine.transition(UploadState.COMMITTED)

    def _abort(self, handle: ObjectUpload, bucket: str, key: str) -> None:
        try:
            handle.abort()
        except Exception as exc:
            # The error that triggered the abort is the one reported.
            log.warning(
                "aborting upload failed",
                extra={
                    "extra_fields": {
                        "op": "abort",
                        "bucket": bucket,
                        "key": key,
                        "error": str(exc),
                    }
                },
            )
        else:
            log.info(
                "upload aborted",
                extra={"extra_fields": {"op": "abort", "bucket": bucket, "key": key}},
            )
