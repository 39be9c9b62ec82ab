"""Content-type detection.

Sniffs the first bytes of a stream and classifies them into a
:class:`MediaType`.  Binary formats are matched by magic numbers through
the ``filetype`` library; SVG documents and plain UTF-8 text are
recognised as a fallback, and UTF-8 text is narrowed to XML, HTML, JSON
or CSV when its content says so.
"""

from __future__ import annotations

import codecs
import csv
import io
import json
import re
from typing import BinaryIO

import filetype

from uplog.errors import DetectionError, UplogError
from uplog.models import MediaType
from uplog.observability import get_logger

log = get_logger("uplog.detect")

HEADER_SIZE = 8192
"""Number of leading bytes inspected; ``filetype`` never looks further."""

OCTET_STREAM = MediaType("application/octet-stream", ".bin")
SVG = MediaType("image/svg+xml", ".svg")
PLAIN_TEXT = MediaType("text/plain", ".txt")
HTML = MediaType("text/html", ".html")
XML = MediaType("text/xml", ".xml")
JSON = MediaType("application/json", ".json")
CSV = MediaType("text/csv", ".csv")

_SVG_RE = re.compile(rb"^\s*(?:<\?xml[^>]*>\s*)?(?:<!--.*?-->\s*|<!DOCTYPE[^>]*>\s*)*<svg[\s>]",
                     re.IGNORECASE | re.DOTALL)
_XML_RE = re.compile(rb"^(?:\xef\xbb\xbf)?\s*<\?xml[\s?]")
_HTML_RE = re.compile(
    rb"^(?:\xef\xbb\xbf)?\s*(?:<!--.*?-->\s*)*<(?:!DOCTYPE\s+html|html|head|body)[\s>]",
    re.IGNORECASE | re.DOTALL,
)

_EXTENSIONS: dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/svg+xml": ".svg",
    "image/bmp": ".bmp",
    "image/tiff": ".tif",
    "image/avif": ".avif",
    "image/heic": ".heic",
    "text/plain": ".txt",
    "text/html": ".html",
    "text/xml": ".xml",
    "text/csv": ".csv",
    "application/json": ".json",
}


def mime_to_extension(mime_type: str) -> str:
    """Map a MIME type to its canonical file extension (``.bin`` if unknown)."""
    return _EXTENSIONS.get(mime_type.split(";", 1)[0].strip().lower(), ".bin")


def detect_media_type(stream: BinaryIO, *, allow_unknown: bool = False) -> MediaType:
    """Classify the content of *stream*.

    At most :data:`HEADER_SIZE` bytes are read.  The stream is **not**
    rewound afterwards; the caller must ``seek(0)`` (or re-open the
    source) before handing it to the next stage.

    Parameters
    ----------
    stream:
        A binary file object positioned at the start of the content.
    allow_unknown:
        Return ``application/octet-stream`` (extension ``.bin``) for
        content that matches no known signature instead of failing.

    Returns
    -------
    MediaType
        The detected type.  Its extension is never empty.

    Raises
    ------
    DetectionError
        If the stream is empty, cannot be read, or (unless
        *allow_unknown*) its content cannot be classified.
    """
    try:
        header = stream.read(HEADER_SIZE)
    except UplogError:
        raise
    except Exception as exc:
        raise DetectionError(
            message=f"Could not read input: {exc}",
            context={"reason": "read_error"},
            cause=exc,
        ) from exc

    if not header:
        raise DetectionError(
            message="Input is empty",
            context={"header_bytes": 0, "reason": "empty"},
        )

    media_type = sniff(header, truncated=len(header) == HEADER_SIZE)
    if media_type is None:
        if not allow_unknown:
            raise DetectionError(
                message="Could not determine the content type of the input",
                context={"header_bytes": len(header), "reason": "unclassified"},
            )
        media_type = OCTET_STREAM

    log.debug(
        "media type detected",
        extra={
            "extra_fields": {
                "op": "detect",
                "mime": media_type.mime,
                "extension": media_type.extension,
                "header_bytes": len(header),
            }
        },
    )
    return media_type


def sniff(header: bytes, *, truncated: bool = False) -> MediaType | None:
    """Classify a header buffer, or return ``None`` if nothing matches.

    *truncated* says the buffer stops before the end of the content, so a
    cut-off final line or JSON document is not held against it.
    """
    kind = filetype.guess(header)
    if kind is not None:
        return MediaType(kind.mime, _extension_for(kind.mime, kind.extension))
    if _SVG_RE.match(header):
        return SVG
    text = _decode_text(header)
    if text is None:
        return None
    if _XML_RE.match(header):
        return XML
    if _HTML_RE.match(header):
        return HTML
    if _is_json(text, truncated):
        return JSON
    if _is_csv(text, truncated):
        return CSV
    return PLAIN_TEXT


def _extension_for(mime: str, reported: str | None) -> str:
    ext = mime_to_extension(mime)
    if ext == OCTET_STREAM.extension and reported:
        return "." + reported.lstrip(".")
    return ext


def _decode_text(header: bytes) -> str | None:
    """Decode NUL-free UTF-8 (a cut-off final character is fine), else ``None``."""
    if b"\x00" in header:
        return None
    decoder = codecs.getincrementaldecoder("utf-8-sig")()
    try:
        return decoder.decode(header, final=False)
    except UnicodeDecodeError:
        return None


def _is_json(text: str, truncated: bool) -> bool:
    stripped = text.lstrip()
    if not stripped.startswith(("{", "[")):
        return False
    if truncated:
        # Cut off mid-document: settle for a bracket followed by a JSON token.
        return re.match(r'[{\[]\s*(?:["{\[\]}\-0-9]|true|false|null)', stripped) is not None
    try:
        json.loads(stripped)
    except (ValueError, RecursionError):
        return False
    return True


def _is_csv(text: str, truncated: bool) -> bool:
    """True for at least two comma-separated rows of equal width (two or more)."""
    try:
        rows = [row for row in csv.reader(io.StringIO(text)) if row]
    except csv.Error:
        return False
    if truncated and rows:
        rows.pop()
    if len(rows) < 2:
        return False
    width = len(rows[0])
    return width >= 2 and all(len(row) == width for row in rows)
