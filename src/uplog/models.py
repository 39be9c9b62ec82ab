"""Data models for the uplog pipeline.

Every value here is created at the start of one pipeline run and dropped
at its end.  The frozen dataclasses are never mutated after creation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from uplog.errors import TranscodeError
from uplog.utils.redact import mask_secret

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class UploadState(str, Enum):
    """Lifecycle states of one upload tracked by the Uploader."""

    IDLE = "idle"
    """Nothing has been opened yet."""

    SESSION_OPEN = "session_open"
    """The storage project is open; no write handle exists."""

    TRANSFER_IN_PROGRESS = "transfer_in_progress"
    """A write handle is open and bytes are being copied into it."""

    COMMITTED = "committed"
    """The object was finalized and is durably readable."""

    ABORTED = "aborted"
    """The upload failed; any partial object was discarded."""


class TranscodeDecision(str, Enum):
    """Outcome of evaluating a :class:`TranscodePolicy` for a media type."""

    DISABLED = "disabled"
    """Transcoding is switched off; the input passes through."""

    INELIGIBLE = "ineligible"
    """The MIME type is not on the allow-list; the input passes through."""

    TRANSCODE = "transcode"
    """The input must be decoded and re-encoded."""


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MediaType:
    """A detected content type and its canonical file extension.

    Attributes
    ----------
    mime:
        MIME string, e.g. ``"image/png"``.
    extension:
        File extension including the leading dot, e.g. ``".png"``.
    """

    mime: str
    extension: str

    def __post_init__(self) -> None:
        if not self.mime:
            raise ValueError("MediaType.mime must not be empty")
        if len(self.extension) < 2 or not self.extension.startswith("."):
            raise ValueError(
                f"MediaType.extension must start with '.' and not be empty, "
                f"got {self.extension!r}"
            )

    def is_(self, mime: str) -> bool:
        """Return True if *mime* names this type.

        Comparison ignores case and any ``;``-separated parameters.
        """
        return _base_mime(self.mime) == _base_mime(mime)

    def __str__(self) -> str:
        return self.mime


def _base_mime(mime: str) -> str:
    return mime.split(";", 1)[0].strip().lower()


@dataclass(frozen=True)
class TranscodePolicy:
    """When and how to re-encode images.

    Attributes
    ----------
    enabled:
        Master switch.  When ``False`` nothing is ever decoded.
    eligible_mime_types:
        Allow-list of MIME types that get re-encoded.  Types not listed
        pass through untouched.
    quality:
        Lossy quality on a 0..100 scale, higher keeps more detail.
    """

    enabled: bool = True
    eligible_mime_types: frozenset[str] = field(default_factory=frozenset)
    quality: int = 75

    def validate_quality(self) -> int:
        """Return :attr:`quality` or raise :class:`TranscodeError` if it is
        not an integer within 0..100.  Values are never clamped.
        """
        q = self.quality
        if isinstance(q, bool) or not isinstance(q, int) or not 0 <= q <= 100:
            raise TranscodeError(
                message=f"quality must be an integer between 0 and 100, got {q!r}",
                context={"quality": q, "reason": "quality_out_of_range"},
            )
        return q


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class UploadDestination:
    """Where the object goes.

    Attributes
    ----------
    credential:
        Opaque credential handed to the storage backend.  Never logged.
    bucket:
        Bucket name.
    prefix:
        Key prefix; normalised to end with ``/`` when non-empty.
    """

    credential: str
    bucket: str
    prefix: str = ""

    def __repr__(self) -> str:
        return (
            f"UploadDestination(credential={mask_secret(self.credential)!r}, "
            f"bucket={self.bucket!r}, prefix={self.prefix!r})"
        )


@dataclass(frozen=True)
class UploadReceipt:
    """Metadata of a committed object."""

    bucket: str
    key: str
    size: int
    content_type: str


# ---------------------------------------------------------------------------
# Pipeline result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PipelineResult:
    """Result of one successful pipeline run.

    Attributes
    ----------
    media_type:
        The type of the bytes that were uploaded (the WebP type when the
        input was transcoded).
    key:
        Full object key inside the bucket.
    filename:
        The generated file name (the last path segment of *key*).
    url:
        Public URL built from the configured template.
    size:
        Number of bytes uploaded.
    transcoded:
        Whether the uploaded bytes are a re-encoding of the input.
    """

    media_type: MediaType
    key: str
    filename: str
    url: str
    size: int = 0
    transcoded: bool = False
