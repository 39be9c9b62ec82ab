"""The uplog pipeline: detect, transcode, key, upload, URL.

Usage::

    from uplog import Pipeline, load_config, default_config_path

    pipeline = Pipeline(load_config(default_config_path()))
    result = pipeline.run_file("screenshot.png")
    print(result.url)

Stages run strictly in order and the first :class:`~uplog.errors.UplogError`
is re-raised unchanged; nothing is retried.
"""

from __future__ import annotations

import os
import shutil
import tempfile
import time
from typing import Any, BinaryIO

from uplog.config import UplogConfig
from uplog.errors import DetectionError, UplogError
from uplog.media.detect import detect_media_type
from uplog.media.transcode import transcode
from uplog.models import PipelineResult
from uplog.observability import NoopMetricsHook, get_logger
from uplog.storage.backend import StorageBackend
from uplog.storage.keys import KeyGenerator
from uplog.storage.s3 import S3Backend
from uplog.storage.uploader import Uploader
from uplog.url import format_url

log = get_logger("uplog.pipeline")

SPOOL_MEMORY_BYTES = 8 * 1024 * 1024


class Pipeline:
    """Upload single files according to one configuration.

    Instances hold no per-run state, so one pipeline may serve many runs
    and several pipelines with different configurations may run side by
    side.

    Parameters
    ----------
    config:
        The configuration for every run of this pipeline.
    backend:
        Storage backend.  Defaults to an :class:`S3Backend` built from
        ``config.storage``.
    metrics:
        Metrics hook.  Defaults to ``config.metrics`` or a no-op hook.
    """

    def __init__(
        self,
        config: UplogConfig,
        *,
        backend: StorageBackend | None = None,
        metrics: Any | None = None,
    ) -> None:
        self._config = config
        if metrics is None:
            metrics = config.metrics if config.metrics is not None else NoopMetricsHook()
        self._metrics = metrics
        if backend is None:
            backend = S3Backend(
                endpoint_url=config.storage.endpoint_url,
                region=config.storage.region,
                connect_timeout=config.storage.connect_timeout,
                read_timeout=config.storage.read_timeout,
            )
        self._backend = backend
        self._policy = config.transcode_policy()
        self._destination = config.destination()
        # The destination prefix is already normalised.
        self._keys = KeyGenerator(self._destination.prefix)

    @property
    def config(self) -> UplogConfig:
        return self._config

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run_file(self, path: str | os.PathLike[str]) -> PipelineResult:
        """Run the pipeline on the file at *path*.

        Raises
        ------
        DetectionError
            If the file cannot be opened.
        UplogError
            Whatever the first failing stage raised.
        """
        try:
            fh = open(path, "rb")
        except OSError as exc:
            raise DetectionError(
                message=f"Could not open {os.fspath(path)!r}: {exc.strerror or exc}",
                context={"path": os.fspath(path), "reason": "open_error"},
                cause=exc,
            ) from exc
        with fh:
            return self.run(fh)

    def run(self, source: BinaryIO) -> PipelineResult:
        """Run the pipeline on an open binary stream.

        The stream is read from its current position.  Non-seekable
        streams are spooled to a temporary buffer first so that detection
        can be rewound.
        """
        t0 = time.monotonic()
        try:
            result = self._run(source)
        except UplogError as exc:
            self._metrics.increment(
                "uplog.pipeline_runs_total",
                tags={"status": "error", "error": str(exc.code)},
            )
            raise
        self._metrics.increment("uplog.pipeline_runs_total", tags={"status": "ok"})
        self._metrics.timing("uplog.pipeline_duration_ms", (time.monotonic() - t0) * 1000)
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(self, source: BinaryIO) -> PipelineResult:
        if _seekable(source):
            return self._run_seekable(source)
        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MEMORY_BYTES) as spool:
            try:
                shutil.copyfileobj(source, spool)
            except UplogError:
                raise
            except Exception as exc:
                raise DetectionError(
                    message=f"Could not read input: {exc}",
                    context={"reason": "read_error"},
                    cause=exc,
                ) from exc
            spool.seek(0)
            return self._run_seekable(spool)

    def _run_seekable(self, source: BinaryIO) -> PipelineResult:
        start = source.tell()

        # 1. Detect
        media_type = detect_media_type(
            source,
            allow_unknown=self._config.allow_unknown_types,
        )
        source.seek(start)

        # 2. Transcode
        stream, media_type_out = transcode(source, media_type, self._policy)
        transcoded = stream is not source
        self._metrics.increment(
            "uplog.transcode_total",
            tags={"transcoded": "true" if transcoded else "false", "mime": media_type.mime},
        )

        # 3. Key
        key, filename = self._keys.generate(media_type_out)

        # 4. Upload
        uploader = Uploader(self._backend, metrics=self._metrics)
        receipt = uploader.upload(stream, self._destination, key, media_type_out.mime)

        # 5. URL
        url = format_url(
            self._config.format_url,
            self._destination.bucket,
            self._destination.prefix,
            filename,
        )
        log.info(
            "pipeline complete",
            extra={
                "extra_fields": {
                    "op": "pipeline",
                    "key": key,
                    "mime": media_type_out.mime,
                    "transcoded": transcoded,
                    "size": receipt.size,
                }
            },
        )
        return PipelineResult(
            media_type=media_type_out,
            key=key,
            filename=filename,
            url=url,
            size=receipt.size,
            transcoded=transcoded,
        )


def _seekable(stream: Any) -> bool:
    try:
        return bool(stream.seekable())
    except (AttributeError, ValueError, OSError):
        return False
