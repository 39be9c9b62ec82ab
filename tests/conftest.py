"""Shared test fixtures for the uplog test suite."""

from __future__ import annotations

import io
from collections.abc import Callable

import pytest
from PIL import Image

from uplog.config import StorageConfig, UplogConfig
from uplog.errors import AuthError

VALID_CREDENTIAL = "AKIATESTKEY:test-secret-1234"


# ---------------------------------------------------------------------------
# In-memory storage backend
# ---------------------------------------------------------------------------

class MemoryObjectUpload:
    """Write handle that only publishes to the store on commit."""

    def __init__(self, project: MemoryProject, bucket: str, key: str, content_type: str) -> None:
        self._project = project
        self.bucket = bucket
        self.key = key
        self.content_type = content_type
        self.buffer = bytearray()
        self.committed = False
        self.aborted = False

    def write(self, data: bytes) -> int:
        backend = self._project.backend
        if backend.fail_write_after is not None and len(self.buffer) >= backend.fail_write_after:
            raise ConnectionError("connection reset by peer")
        self.buffer.extend(data)
        return len(data)

    def commit(self) -> None:
        backend = self._project.backend
        if backend.fail_commit:
            raise TimeoutError("commit timed out")
        backend.objects[(self.bucket, self.key)] = (bytes(self.buffer), self.content_type)
        self.committed = True
        self._project.open_keys.discard((self.bucket, self.key))

    def abort(self) -> None:
        backend = self._project.backend
        backend.aborts += 1
        if backend.fail_abort:
            raise RuntimeError("abort failed")
        self.aborted = True
        self.buffer.clear()
        self._project.open_keys.discard((self.bucket, self.key))


class MemoryProject:
    def __init__(self, backend: MemoryBackend) -> None:
        self.backend = backend
        self.open_keys: set[tuple[str, str]] = set()
        self.closed = False

    def ensure_bucket(self, name: str) -> None:
        if name in self.backend.buckets:
            return
        if not self.backend.allow_create:
            raise PermissionError(f"not allowed to create bucket {name}")
        self.backend.buckets.add(name)

    def upload_object(self, bucket: str, key: str, content_type: str) -> MemoryObjectUpload:
        if not key:
            raise ValueError("empty key")
        if (bucket, key) in self.open_keys:
            raise RuntimeError("conflicting upload")
        self.open_keys.add((bucket, key))
        handle = MemoryObjectUpload(self, bucket, key, content_type)
        self.backend.handles.append(handle)
        return handle

    def close(self) -> None:
        self.closed = True
        self.backend.projects_closed += 1


class MemoryBackend:
    """A storage backend keeping committed objects in a dict."""

    def __init__(self, credential: str = VALID_CREDENTIAL) -> None:
        self.credential = credential
        self.objects: dict[tuple[str, str], tuple[bytes, str]] = {}
        self.buckets: set[str] = set()
        self.handles: list[MemoryObjectUpload] = []
        self.allow_create = True
        self.fail_write_after: int | None = None
        self.fail_commit = False
        self.fail_abort = False
        self.aborts = 0
        self.projects_opened = 0
        self.projects_closed = 0

    def open_project(self, credential: str) -> MemoryProject:
        if credential != self.credential:
            raise AuthError(message="invalid access grant")
        self.projects_opened += 1
        return MemoryProject(self)

    def read(self, bucket: str, key: str) -> bytes | None:
        entry = self.objects.get((bucket, key))
        return entry[0] if entry else None


class RecordingMetrics:
    """Metrics hook collecting every data point."""

    def __init__(self) -> None:
        self.counters: list[tuple[str, int, dict | None]] = []
        self.timings: list[tuple[str, float, dict | None]] = []
        self.gauges: list[tuple[str, float, dict | None]] = []

    def increment(self, name, value=1, tags=None):
        self.counters.append((name, value, tags))

    def timing(self, name, ms, tags=None):
        self.timings.append((name, ms, tags))

    def gauge(self, name, value, tags=None):
        self.gauges.append((name, value, tags))

    def names(self) -> list[str]:
        return [c[0] for c in self.counters]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def metrics() -> RecordingMetrics:
    return RecordingMetrics()


@pytest.fixture
def config() -> UplogConfig:
    """Default test configuration with a dummy credential."""
    return UplogConfig(storage=StorageConfig(access_grant=VALID_CREDENTIAL))


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    """Factory returning encoded image bytes generated with Pillow."""

    def _make(
        fmt: str = "PNG",
        size: tuple[int, int] = (16, 12),
        mode: str = "RGB",
        color: object = (200, 40, 90),
    ) -> bytes:
        img = Image.new(mode, size, color)
        buf = io.BytesIO()
        img.save(buf, format=fmt)
        return buf.getvalue()

    return _make


@pytest.fixture
def png_bytes(make_image) -> bytes:
    return make_image("PNG")


@pytest.fixture
def jpeg_bytes(make_image) -> bytes:
    return make_image("JPEG")
