"""Conditional WebP re-encoding.

:func:`decide_transcode` evaluates a :class:`TranscodePolicy` against a
detected :class:`MediaType` without touching any image data.
:func:`transcode` applies that decision: ineligible input is handed back
untouched, eligible input is decoded with Pillow and re-encoded as lossy
WebP.
"""

from __future__ import annotations

import io
from typing import BinaryIO

from PIL import Image, UnidentifiedImageError

from uplog.errors import TranscodeError
from uplog.models import MediaType, TranscodeDecision, TranscodePolicy
from uplog.observability import get_logger

log = get_logger("uplog.transcode")

WEBP = MediaType("image/webp", ".webp")
"""Target type of every re-encoded image."""

# Exceptions Pillow raises for corrupt, truncated or unsupported input.
_DECODE_ERRORS = (
    UnidentifiedImageError,
    Image.DecompressionBombError,
    OSError,
    ValueError,
    SyntaxError,
    EOFError,
)


def decide_transcode(media_type: MediaType, policy: TranscodePolicy) -> TranscodeDecision:
    """Return what :func:`transcode` will do for *media_type*.

    The allow-list is checked entry by entry; anything not listed passes
    through, so unknown types are never forced through a lossy encode.
    """
    if not policy.enabled:
        return TranscodeDecision.DISABLED
    for candidate in policy.eligible_mime_types:
        if media_type.is_(candidate):
            return TranscodeDecision.TRANSCODE
    return TranscodeDecision.INELIGIBLE


def transcode(
    stream: BinaryIO,
    media_type: MediaType,
    policy: TranscodePolicy,
) -> tuple[BinaryIO, MediaType]:
    """Re-encode *stream* as WebP when *policy* selects *media_type*.

    Parameters
    ----------
    stream:
        Binary stream positioned at the start of the content.
    media_type:
        The detected type of *stream*.
    policy:
        Transcoding policy for this run.

    Returns
    -------
    tuple[BinaryIO, MediaType]
        Either ``(stream, media_type)`` unchanged, or a new in-memory
        stream holding the WebP bytes together with the WebP type.  Exactly
        one of the two is returned; the original stream must not be read
        again after a re-encode.

    Raises
    ------
    TranscodeError
        If the quality setting is out of range, or the eligible input
        cannot be decoded or encoded.
    """
    decision = decide_transcode(media_type, policy)
    if decision is not TranscodeDecision.TRANSCODE:
        log.info(
            "transcode skipped",
            extra={
                "extra_fields": {
                    "op": "transcode",
                    "decision": decision.value,
                    "mime": media_type.mime,
                }
            },
        )
        return stream, media_type

    quality = policy.validate_quality()

    try:
        with Image.open(stream) as img:
            img.load()
            frame = _webp_compatible(img)
            out = io.BytesIO()
            frame.save(out, format="WEBP", quality=quality, lossless=False)
    except _DECODE_ERRORS as exc:
        raise TranscodeError(
            message=f"Could not re-encode {media_type.mime} input as WebP: {exc}",
            context={
                "mime": media_type.mime,
                "quality": quality,
                "reason": type(exc).__name__,
            },
            cause=exc,
        ) from exc

    size = out.tell()
    out.seek(0)
    log.info(
        "transcode complete",
        extra={
            "extra_fields": {
                "op": "transcode",
                "decision": decision.value,
                "mime": media_type.mime,
                "target_mime": WEBP.mime,
                "quality": quality,
                "size": size,
            }
        },
    )
    return out, WEBP


def _webp_compatible(img: Image.Image) -> Image.Image:
    """Return the first frame of *img* in a mode the WebP encoder accepts."""
    if getattr(img, "n_frames", 1) > 1:
        img.seek(0)
    if img.mode in ("RGB", "RGBA"):
        return img
    has_alpha = (
        img.mode in ("LA", "PA", "RGBa", "La")
        or (img.mode == "P" and "transparency" in img.info)
    )
    return img.convert("RGBA" if has_alpha else "RGB")
