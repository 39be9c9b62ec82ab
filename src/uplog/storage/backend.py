"""Narrow interfaces to the object store.

The Uploader only ever talks to storage through these three protocols,
which mirror the session/handle model of object-store SDKs: open a
project with a credential, make sure a bucket exists, open a write handle
for a key, then commit or abort it.

:mod:`uplog.storage.s3` provides the boto3 implementation; tests use an
in-memory one.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ObjectUpload(Protocol):
    """A write handle bound to one key.

    Nothing written through the handle is visible at the key until
    :meth:`commit` succeeds.  After :meth:`abort` nothing is visible.
    """

    def write(self, data: bytes) -> int:
        """Append *data* to the pending object and return the byte count."""
        ...

    def commit(self) -> None:
        """Finalize the object so it becomes durably readable."""
        ...

    def abort(self) -> None:
        """Discard the pending object.  Safe to call more than once."""
        ...


@runtime_checkable
class StorageProject(Protocol):
    """An authenticated session with the object store."""

    def ensure_bucket(self, name: str) -> None:
        """Create bucket *name* unless it already exists."""
        ...

    def upload_object(self, bucket: str, key: str, content_type: str) -> ObjectUpload:
        """Open a write handle for *key* in *bucket*."""
        ...

    def close(self) -> None:
        """Release connections held by the session."""
        ...


@runtime_checkable
class StorageBackend(Protocol):
    """Factory for :class:`StorageProject` sessions."""

    def open_project(self, credential: str) -> StorageProject:
        """Authenticate with *credential* and return an open session."""
        ...
