"""Object key generation.

Keys are ``<prefix><uuid4><extension>``.  Uniqueness comes from the
random UUID alone, so concurrent runs never need to coordinate.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable

from uplog.models import MediaType

SEPARATOR = "/"


def normalize_prefix(prefix: str) -> str:
    """Return *prefix* with a trailing ``/`` when it is non-empty.

    Idempotent: ``normalize_prefix("a/") == normalize_prefix("a") == "a/"``.
    """
    if prefix and not prefix.endswith(SEPARATOR):
        return prefix + SEPARATOR
    return prefix


class KeyGenerator:
    """Generate unique object keys below a fixed prefix.

    The prefix is normalised once, here, so repeated :meth:`generate`
    calls never double the separator.

    Parameters
    ----------
    prefix:
        Key prefix such as ``"photos"`` or ``"photos/"``; may be empty.
    id_factory:
        Source of 128-bit random identifiers.  Defaults to
        :func:`uuid.uuid4`.
    """

    def __init__(
        self,
        prefix: str = "",
        id_factory: Callable[[], uuid.UUID] = uuid.uuid4,
    ) -> None:
        self.prefix: str = normalize_prefix(prefix)
        self._id_factory = id_factory

    def generate(self, media_type: MediaType) -> tuple[str, str]:
        """Return ``(key, filename)`` for a new object of *media_type*."""
        filename = f"{self._id_factory()}{media_type.extension}"
        return self.prefix + filename, filename


def generate_key(prefix: str, media_type: MediaType) -> tuple[str, str]:
    """One-shot form of :meth:`KeyGenerator.generate`."""
    return KeyGenerator(prefix).generate(media_type)
