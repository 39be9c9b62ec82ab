"""Property-based tests for uplog using Hypothesis.

These tests check invariants of the pure helpers and of the pass-through
paths of the pipeline over a wide range of generated inputs.
"""

from __future__ import annotations

import copy
import io
import string

from hypothesis import given, settings
from hypothesis import strategies as st

from uplog.media.transcode import decide_transcode, transcode
from uplog.models import MediaType, TranscodeDecision, TranscodePolicy
from uplog.storage.keys import KeyGenerator, normalize_prefix
from uplog.url import format_url
from uplog.utils.redact import _SENSITIVE_KEY_PATTERNS, mask_secret, redact

# ---------------------------------------------------------------------------
# Reusable strategies
# ---------------------------------------------------------------------------

_token_st = st.text(alphabet=string.ascii_lowercase + string.digits + "-+.", min_size=1, max_size=12)

_mime_st = st.builds(lambda a, b: f"{a}/{b}", _token_st, _token_st)

_media_type_st = st.builds(
    MediaType,
    mime=_mime_st,
    extension=_token_st.map(lambda t: "." + t),
)

_segment_st = st.text(
    alphabet=string.ascii_letters + string.digits + "-_. ",
    min_size=1,
    max_size=10,
)

_prefix_st = st.lists(_segment_st, max_size=4).map("/".join)


# ---------------------------------------------------------------------------
# 1. Transcode pass-through
# ---------------------------------------------------------------------------


class TestTranscodePassThroughProperties:
    """Skipped transcodes hand back exactly what they were given."""

    @given(
        media_type=_media_type_st,
        mimes=st.frozensets(_mime_st, max_size=5),
        quality=st.integers(min_value=-1000, max_value=1000),
        payload=st.binary(max_size=256),
    )
    def test_disabled_is_identity(self, media_type, mimes, quality, payload) -> None:
        policy = TranscodePolicy(enabled=False, eligible_mime_types=mimes, quality=quality)
        stream = io.BytesIO(payload)
        out, out_type = transcode(stream, media_type, policy)
        assert out is stream
        assert out_type == media_type
        assert out.read() == payload

    @given(
        media_type=_media_type_st,
        mimes=st.frozensets(_mime_st, max_size=5),
        quality=st.integers(min_value=-1000, max_value=1000),
    )
    def test_unlisted_type_is_ineligible(self, media_type, mimes, quality) -> None:
        mimes = frozenset(m for m in mimes if not media_type.is_(m))
        policy = TranscodePolicy(enabled=True, eligible_mime_types=mimes, quality=quality)
        assert decide_transcode(media_type, policy) == TranscodeDecision.INELIGIBLE
        stream = io.BytesIO(b"payload")
        out, out_type = transcode(stream, media_type, policy)
        assert out is stream
        assert out_type is media_type

    @given(media_type=_media_type_st, mimes=st.frozensets(_mime_st, max_size=5))
    def test_listed_type_is_selected(self, media_type, mimes) -> None:
        policy = TranscodePolicy(eligible_mime_types=mimes | {media_type.mime.upper()})
        assert decide_transcode(media_type, policy) == TranscodeDecision.TRANSCODE


# ---------------------------------------------------------------------------
# 2. Keys
# ---------------------------------------------------------------------------


class TestKeyProperties:
    """Prefix normalisation and key layout."""

    @given(prefix=_prefix_st)
    def test_normalize_is_idempotent(self, prefix: str) -> None:
        once = normalize_prefix(prefix)
        assert normalize_prefix(once) == once

    @given(prefix=_prefix_st)
    def test_trailing_slash_does_not_change_keys(self, prefix: str) -> None:
        assert normalize_prefix(prefix) == normalize_prefix(normalize_prefix(prefix))
        if prefix:
            assert normalize_prefix(prefix + "/") == normalize_prefix(prefix)

    @given(prefix=_prefix_st, media_type=_media_type_st)
    def test_key_layout(self, prefix: str, media_type: MediaType) -> None:
        key, filename = KeyGenerator(prefix).generate(media_type)
        assert key == normalize_prefix(prefix) + filename
        assert filename.endswith(media_type.extension)
        assert "/" not in filename

    @settings(max_examples=25)
    @given(prefix=_prefix_st, n=st.integers(min_value=2, max_value=200))
    def test_keys_unique(self, prefix: str, n: int) -> None:
        gen = KeyGenerator(prefix)
        media_type = MediaType("image/webp", ".webp")
        keys = [gen.generate(media_type)[0] for _ in range(n)]
        assert len(set(keys)) == n


# ---------------------------------------------------------------------------
# 3. URL formatting
# ---------------------------------------------------------------------------


class TestFormatUrlProperties:
    """Literal placeholder substitution."""

    @given(
        bucket=_segment_st,
        prefix=_prefix_st,
        filename=_segment_st,
    )
    def test_default_layout(self, bucket: str, prefix: str, filename: str) -> None:
        template = "https://h/{{bucket}}/{{prefix}}/{{filename}}"
        assert format_url(template, bucket, prefix, filename) == (
            f"https://h/{bucket}/{prefix}/{filename}"
        )

    @given(template=st.text(alphabet=string.printable.replace("{", ""), max_size=80))
    def test_text_without_placeholders_is_unchanged(self, template: str) -> None:
        assert format_url(template, "b", "p/", "f") == template


# ---------------------------------------------------------------------------
# 4. Secret masking
# ---------------------------------------------------------------------------


class TestRedactProperties:
    """Credentials never survive masking."""

    @given(secret=st.text(min_size=8, max_size=100))
    def test_mask_keeps_at_most_last_four(self, secret: str) -> None:
        masked = mask_secret(secret)
        assert masked == "..." + secret[-4:]

    @given(secret=st.text(min_size=1, max_size=7))
    def test_short_secret_fully_hidden(self, secret: str) -> None:
        assert mask_secret(secret) == "****"

    @given(
        payload=st.dictionaries(
            keys=st.text(min_size=1, max_size=30),
            values=st.one_of(
                st.text(max_size=100),
                st.integers(),
                st.booleans(),
                st.none(),
            ),
            max_size=15,
        ),
    )
    def test_original_never_mutated(self, payload: dict) -> None:
        original = copy.deepcopy(payload)
        result = redact(payload)
        assert payload == original
        assert set(result) == set(payload)

    @given(
        key=st.sampled_from(sorted(_SENSITIVE_KEY_PATTERNS)),
        secret=st.text(alphabet=string.ascii_letters + string.digits, min_size=12, max_size=60),
    )
    def test_sensitive_values_masked(self, key: str, secret: str) -> None:
        result = redact({"storage": {key.upper(): secret}})
        assert result["storage"][key.upper()] == "..." + secret[-4:]
