"""Media stages: content-type detection and conditional WebP transcoding.

Exports
-------
detect_media_type
    Sniff a stream's leading bytes and return its :class:`MediaType`.
mime_to_extension
    Canonical file extension for a MIME type.
decide_transcode
    Pure policy evaluation, no image data required.
transcode
    Re-encode eligible images as WebP, pass everything else through.
"""

from .detect import HEADER_SIZE, detect_media_type, mime_to_extension
from .transcode import WEBP, decide_transcode, transcode

__all__ = [
    "HEADER_SIZE",
    "WEBP",
    "decide_transcode",
    "detect_media_type",
    "mime_to_extension",
    "transcode",
]
