"""Configuration for uplog.

:class:`UplogConfig` captures every tuneable knob and is passed explicitly
to :class:`~uplog.pipeline.Pipeline`; nothing is read from module-level
state, so pipelines with different destinations can coexist.

The on-disk format is TOML::

    format_url = "https://example.com/{{bucket}}/{{prefix}}/{{filename}}"
    allow_unknown_types = false

    [storage]
    access_grant = "<access_key_id>:<secret_access_key>"
    bucket_name = "uplog"
    bucket_prefix = "folder"
    endpoint_url = "https://gateway.storjshare.io"
    region = ""
    connect_timeout = 60.0
    read_timeout = 60.0

    [webp]
    enabled = true
    mime_types = ["image/jpeg", "image/png", "image/gif"]
    quality = 75

Missing keys take their defaults and unknown keys are ignored, so a file
written by an older version keeps loading and is upgraded on the next
:func:`write_config`.
"""

from __future__ import annotations

import dataclasses
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomli_w

from uplog.errors import ConfigError
from uplog.models import TranscodePolicy, UploadDestination
from uplog.storage.keys import normalize_prefix
from uplog.storage.s3 import DEFAULT_ENDPOINT_URL
from uplog.url import DEFAULT_FORMAT_URL
from uplog.utils.redact import mask_secret

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_WEBP_MIMES: list[str] = [
    "image/jpeg",
    "image/png",
    "image/gif",
]
"""MIME types re-encoded to WebP unless configured otherwise."""

DEFAULT_QUALITY = 75

CONFIG_FILE_MODE = 0o660


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

@dataclass
class StorageConfig:
    """The ``[storage]`` section.

    Parameters
    ----------
    access_grant:
        Credential string ``"<access_key_id>:<secret_access_key>"``.
        Never logged.
    bucket_name:
        Destination bucket; created on first upload if missing.
    bucket_prefix:
        Key prefix for uploaded objects.  A trailing ``/`` is added.
    endpoint_url:
        S3 API root.  Defaults to the Storj S3 gateway.
    region:
        Region name, empty for the endpoint default.
    connect_timeout, read_timeout:
        Socket timeouts in seconds handed to the storage client.
    """

    access_grant: str = ""

    bucket_name: str = "uplog"

    bucket_prefix: str = "folder"

    endpoint_url: str = DEFAULT_ENDPOINT_URL

    region: str = ""

    connect_timeout: float = 60.0

    read_timeout: float = 60.0

    def __post_init__(self) -> None:
        for name in ("access_grant", "bucket_name", "bucket_prefix", "endpoint_url", "region"):
            _require_type(f"storage.{name}", getattr(self, name), str)
        for name in ("connect_timeout", "read_timeout"):
            value = getattr(self, name)
            _require_number(f"storage.{name}", value)
            if value <= 0:
                raise ConfigError(
                    message=f"storage.{name} must be > 0, got {value}",
                    context={"field": f"storage.{name}", "value": value},
                )
        if not self.bucket_name:
            raise ConfigError(
                message="storage.bucket_name must not be empty",
                context={"field": "storage.bucket_name", "value": self.bucket_name},
            )

    def __repr__(self) -> str:
        parts: list[str] = []
        for f in dataclasses.fields(self):
            val = getattr(self, f.name)
            if f.name == "access_grant":
                parts.append(f"access_grant={mask_secret(val)!r}")
            else:
                parts.append(f"{f.name}={val!r}")
        return f"StorageConfig({', '.join(parts)})"


@dataclass
class WebPConfig:
    """The ``[webp]`` section.

    Parameters
    ----------
    enabled:
        Re-encode eligible images to WebP.
    mime_types:
        Allow-list of MIME types that get re-encoded.
    quality:
        Lossy WebP quality, 0..100.  Out-of-range values are reported by
        the transcoder when it would use them, not clamped here.
    """

    enabled: bool = True

    mime_types: list[str] = field(
        default_factory=lambda: list(DEFAULT_WEBP_MIMES),
    )

    quality: int = DEFAULT_QUALITY

    def __post_init__(self) -> None:
        _require_type("webp.enabled", self.enabled, bool)
        _require_type("webp.mime_types", self.mime_types, list)
        for mime in self.mime_types:
            _require_type("webp.mime_types[]", mime, str)
        if isinstance(self.quality, bool) or not isinstance(self.quality, int):
            raise ConfigError(
                message=f"webp.quality must be an integer, got {self.quality!r}",
                context={"field": "webp.quality", "value": self.quality},
            )


# ---------------------------------------------------------------------------
# Top-level configuration
# ---------------------------------------------------------------------------

@dataclass
class UplogConfig:
    """Complete configuration for one pipeline.

    Parameters
    ----------
    storage:
        Destination and credential.
    webp:
        Transcoding policy.
    format_url:
        URL template with ``{{bucket}}``, ``{{prefix}}`` and
        ``{{filename}}`` placeholders.
    allow_unknown_types:
        Upload content of unknown type as ``application/octet-stream``
        (extension ``.bin``) instead of failing detection.
    metrics:
        Optional :class:`~uplog.observability.MetricsHook`.  Not persisted.
    """

    storage: StorageConfig = field(default_factory=StorageConfig)

    webp: WebPConfig = field(default_factory=WebPConfig)

    format_url: str = DEFAULT_FORMAT_URL

    allow_unknown_types: bool = False

    metrics: Any | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        _require_type("format_url", self.format_url, str)
        _require_type("allow_unknown_types", self.allow_unknown_types, bool)

    # -- derived run values ------------------------------------------------

    def transcode_policy(self) -> TranscodePolicy:
        return TranscodePolicy(
            enabled=self.webp.enabled,
            eligible_mime_types=frozenset(self.webp.mime_types),
            quality=self.webp.quality,
        )

    def destination(self) -> UploadDestination:
        return UploadDestination(
            credential=self.storage.access_grant,
            bucket=self.storage.bucket_name,
            prefix=normalize_prefix(self.storage.bucket_prefix),
        )

    # -- (de)serialisation -------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Return the TOML-serialisable form (``metrics`` excluded)."""
        return {
            "format_url": self.format_url,
            "allow_unknown_types": self.allow_unknown_types,
            "storage": dataclasses.asdict(self.storage),
            "webp": dataclasses.asdict(self.webp),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UplogConfig:
        """Build a config from parsed TOML, ignoring unknown keys."""
        storage_data = data.get("storage", {})
        webp_data = data.get("webp", {})
        _require_type("storage", storage_data, dict)
        _require_type("webp", webp_data, dict)
        top = {k: data[k] for k in ("format_url", "allow_unknown_types") if k in data}
        return cls(
            storage=StorageConfig(**_known_fields(StorageConfig, storage_data)),
            webp=WebPConfig(**_known_fields(WebPConfig, webp_data)),
            **top,
        )


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------

def default_config_path() -> Path:
    """``$XDG_CONFIG_HOME/uplog/config.toml``, or under ``~/.config``."""
    base = os.environ.get("XDG_CONFIG_HOME")
    if not base:
        base = os.path.join(os.path.expanduser("~"), ".config")
    return Path(base) / "uplog" / "config.toml"


def load_config(path: str | os.PathLike[str]) -> UplogConfig:
    """Read and validate the TOML file at *path*.

    Raises
    ------
    ConfigError
        If the file cannot be read or parsed, or a value is invalid.
    """
    p = Path(path)
    try:
        with p.open("rb") as fh:
            data = tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(
            message=f"could not load config: {exc}",
            context={"path": str(p)},
            cause=exc,
        ) from exc
    try:
        return UplogConfig.from_dict(data)
    except ConfigError as exc:
        exc.context.setdefault("path", str(p))
        raise


def write_config(path: str | os.PathLike[str], config: UplogConfig) -> None:
    """Write *config* to *path* as TOML, creating the parent directory.

    Raises
    ------
    ConfigError
        If the directory or the file cannot be written.
    """
    p = Path(path)
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigError(
            message=f"could not create config directory: {exc}",
            context={"path": str(p.parent)},
            cause=exc,
        ) from exc

    payload = tomli_w.dumps(config.to_dict())
    try:
        fd = os.open(p, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, CONFIG_FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(payload)
    except OSError as exc:
        raise ConfigError(
            message=f"could not write config file: {exc}",
            context={"path": str(p)},
            cause=exc,
        ) from exc


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _known_fields(cls: type, data: dict[str, Any]) -> dict[str, Any]:
    names = {f.name for f in dataclasses.fields(cls)}
    return {k: v for k, v in data.items() if k in names}


def _require_type(name: str, value: Any, expected: type) -> None:
    if not isinstance(value, expected):
        raise ConfigError(
            message=f"{name} must be of type {expected.__name__}, got {type(value).__name__}",
            context={"field": name, "value": value},
        )


def _require_number(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(
            message=f"{name} must be a number, got {type(value).__name__}",
            context={"field": name, "value": value},
        )
