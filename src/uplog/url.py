"""Public URL synthesis from a template.

Templates use three literal placeholders, ``{{bucket}}``, ``{{prefix}}``
and ``{{filename}}``.  Substitution is plain text replacement: nothing is
URL-encoded and repeated slashes are kept, so a template such as
``https://example.com/{{bucket}}/{{prefix}}/{{filename}}`` combined with
the normalised prefix ``folder/`` yields ``.../folder//<file>``.  Callers
that need escaping or a different slash layout adjust the template.
"""

from __future__ import annotations

BUCKET_TOKEN = "{{bucket}}"
PREFIX_TOKEN = "{{prefix}}"
FILENAME_TOKEN = "{{filename}}"

DEFAULT_FORMAT_URL = f"https://example.com/{BUCKET_TOKEN}/{PREFIX_TOKEN}/{FILENAME_TOKEN}"


def format_url(template: str, bucket: str, prefix: str, filename: str) -> str:
    """Substitute the three placeholders in *template*.

    Any other text, including unknown ``{{...}}`` tokens, is kept verbatim.

    >>> format_url(DEFAULT_FORMAT_URL, "uplog", "folder/", "abc123.webp")
    'https://example.com/uplog/folder//abc123.webp'
    """
    url = template.replace(FILENAME_TOKEN, filename)
    url = url.replace(PREFIX_TOKEN, prefix)
    return url.replace(BUCKET_TOKEN, bucket)
