"""uplog: upload a file to object storage and get back a public URL.

Public re-exports
-----------------

* **Pipeline:** :class:`Pipeline`
* **Configuration:** :class:`UplogConfig`, :func:`load_config`,
  :func:`write_config`, :func:`default_config_path`
* **Errors:** Every :class:`UplogError` subclass and :class:`ErrorCode`
* **Models:** :class:`MediaType`, :class:`TranscodePolicy`,
  :class:`UploadDestination`, :class:`PipelineResult` and friends

Usage::

    from uplog import Pipeline, UplogConfig

    config = UplogConfig()
    config.storage.access_grant = "<access_key_id>:<secret_access_key>"
    result = Pipeline(config).run_file("photo.png")
    print(result.url)
"""

from __future__ import annotations

__version__ = "0.1.0"

# ── Configuration ───────────────────────────────────────────────────────
from uplog.config import (
    DEFAULT_WEBP_MIMES,
    StorageConfig,
    UplogConfig,
    WebPConfig,
    default_config_path,
    load_config,
    write_config,
)

# ── Errors ──────────────────────────────────────────────────────────────
from uplog.errors import (
    AuthError,
    CommitError,
    ConfigError,
    DetectionError,
    ErrorCode,
    StorageSetupError,
    TranscodeError,
    TransferError,
    UplogError,
    UploadInitError,
)

# ── Models ──────────────────────────────────────────────────────────────
from uplog.models import (
    MediaType,
    PipelineResult,
    TranscodeDecision,
    TranscodePolicy,
    UploadDestination,
    UploadReceipt,
    UploadState,
)

# ── Pipeline ────────────────────────────────────────────────────────────
from uplog.pipeline import Pipeline
from uplog.url import format_url

# ── Public surface ──────────────────────────────────────────────────────

__all__ = [
    "__version__",
    # Pipeline
    "Pipeline",
    "format_url",
    # Configuration
    "UplogConfig",
    "StorageConfig",
    "WebPConfig",
    "DEFAULT_WEBP_MIMES",
    "default_config_path",
    "load_config",
    "write_config",
    # Errors
    "UplogError",
    "ErrorCode",
    "DetectionError",
    "TranscodeError",
    "AuthError",
    "StorageSetupError",
    "UploadInitError",
    "TransferError",
    "CommitError",
    "ConfigError",
    # Models
    "MediaType",
    "TranscodePolicy",
    "TranscodeDecision",
    "UploadDestination",
    "UploadReceipt",
    "UploadState",
    "PipelineResult",
]
