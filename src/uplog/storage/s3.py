"""S3-compatible storage backend built on boto3.

Works against any S3 API, including the Storj S3 gateway used by default.
Bytes written to an :class:`S3ObjectUpload` are staged locally and sent
with a single ``PutObject`` on commit, which S3 applies atomically: until
commit succeeds nothing is visible at the key, and aborting only has to
drop the staging file.

The credential is the string ``"<access_key_id>:<secret_access_key>"``.
"""

from __future__ import annotations

import tempfile
from collections.abc import Callable
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from uplog.errors import AuthError, StorageSetupError, UploadInitError
from uplog.observability import get_logger
from uplog.utils.redact import mask_secret

log = get_logger("uplog.storage.s3")

DEFAULT_ENDPOINT_URL = "https://gateway.storjshare.io"

MAX_KEY_BYTES = 1024

STAGING_MEMORY_BYTES = 8 * 1024 * 1024
"""Staged bytes kept in memory before spilling to a temporary file."""

_AUTH_ERROR_CODES: frozenset[str] = frozenset({
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
    "ExpiredToken",
    "InvalidToken",
    "AuthorizationHeaderMalformed",
})

_MISSING_BUCKET_CODES: frozenset[str] = frozenset({
    "404",
    "NoSuchBucket",
    "NotFound",
})

# HEAD responses carry no body, so botocore only sees the HTTP status.
_BODYLESS_DENIED_CODES: frozenset[str] = frozenset({"400", "403"})


def _error_code(exc: ClientError) -> str:
    return str((exc.response.get("Error") or {}).get("Code", ""))


def parse_credential(credential: str) -> tuple[str, str]:
    """Split ``"<access_key_id>:<secret_access_key>"``.

    Raises
    ------
    AuthError
        If either half is missing.
    """
    access_key, sep, secret_key = (credential or "").strip().partition(":")
    if not sep or not access_key or not secret_key:
        raise AuthError(
            message="Credential must have the form '<access_key_id>:<secret_access_key>'",
            context={"credential": mask_secret(credential)},
        )
    return access_key, secret_key


def _setup_error(bucket: str, exc: Exception) -> AuthError | StorageSetupError:
    code = _error_code(exc) if isinstance(exc, ClientError) else ""
    if code in _AUTH_ERROR_CODES:
        return AuthError(
            message=f"Storage rejected the credential: {exc}",
            context={"error_code": code},
            cause=exc,
        )
    return StorageSetupError(
        message=f"Could not ensure bucket {bucket!r}: {exc}",
        context={"bucket": bucket, "error_code": code},
        cause=exc,
    )


def _invalid_key_reason(key: str) -> str | None:
    if not key:
        return "empty_key"
    if key.startswith("/"):
        return "leading_slash"
    if len(key.encode("utf-8")) > MAX_KEY_BYTES:
        return "key_too_long"
    return None


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------

class S3Backend:
    """Open :class:`S3Project` sessions against one endpoint.

    Parameters
    ----------
    endpoint_url:
        S3 API root.  ``None`` lets boto3 pick AWS.
    region:
        Region name, also used as the ``LocationConstraint`` of created
        buckets.  Empty means the endpoint default.
    connect_timeout, read_timeout:
        Socket timeouts (seconds) handed to botocore.
    client_factory:
        Callable with the signature of :func:`boto3.client`.
    """

    def __init__(
        self,
        endpoint_url: str | None = DEFAULT_ENDPOINT_URL,
        region: str | None = None,
        *,
        connect_timeout: float = 60.0,
        read_timeout: float = 60.0,
        client_factory: Callable[..., Any] | None = None,
    ) -> None:
        self._endpoint_url = endpoint_url or None
        self._region = region or None
        self._connect_timeout = connect_timeout
        self._read_timeout = read_timeout
        self._client_factory = client_factory or boto3.client

    def open_project(self, credential: str) -> S3Project:
        access_key, secret_key = parse_credential(credential)
        config = Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
            retries={"max_attempts": 0, "mode": "standard"},
            connect_timeout=self._connect_timeout,
            read_timeout=self._read_timeout,
        )
        try:
            client = self._client_factory(
                "s3",
                endpoint_url=self._endpoint_url,
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=self._region,
                config=config,
            )
        except (BotoCoreError, ValueError) as exc:
            raise AuthError(
                message=f"Could not open storage project: {exc}",
                context={"credential": mask_secret(credential)},
                cause=exc,
            ) from exc
        return S3Project(client, region=self._region)


# ---------------------------------------------------------------------------
# Project
# ---------------------------------------------------------------------------

class S3Project:
    """An open S3 session.  Tracks write handles to refuse conflicting writes."""

    def __init__(self, client: Any, region: str | None = None) -> None:
        self._client = client
        self._region = region
        self._open_keys: set[tuple[str, str]] = set()

    def ensure_bucket(self, name: str) -> None:
        try:
            self._client.head_bucket(Bucket=name)
            return
        except ClientError as exc:
            code = _error_code(exc)
            if code in _BODYLESS_DENIED_CODES:
                if self._bucket_listable(name):
                    return
            elif code not in _MISSING_BUCKET_CODES:
                raise _setup_error(name, exc) from exc
        except BotoCoreError as exc:
            raise _setup_error(name, exc) from exc

        kwargs: dict[str, Any] = {"Bucket": name}
        if self._region and self._region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self._region}
        try:
            self._client.create_bucket(**kwargs)
        except ClientError as exc:
            if _error_code(exc) == "BucketAlreadyOwnedByYou":
                return
            raise _setup_error(name, exc) from exc
        except BotoCoreError as exc:
            raise _setup_error(name, exc) from exc
        log.info("bucket created", extra={"extra_fields": {"op": "ensure_bucket", "bucket": name}})

    def _bucket_listable(self, name: str) -> bool:
        """Repeat a denied HEAD as a GET, whose error body names the cause.

        Returns ``True`` if the bucket can be listed and ``False`` if it does
        not exist.  A rejected credential raises :class:`AuthError`; any other
        denial raises :class:`StorageSetupError`.
        """
        try:
            self._client.list_objects_v2(Bucket=name, MaxKeys=0)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_BUCKET_CODES:
                return False
            raise _setup_error(name, exc) from exc
        except BotoCoreError as exc:
            raise _setup_error(name, exc) from exc
        return True

    def upload_object(self, bucket: str, key: str, content_type: str) -> S3ObjectUpload:
        reason = _invalid_key_reason(key)
        if reason is not None:
            raise UploadInitError(
                message=f"Invalid object key {key!r}",
                context={"bucket": bucket, "key": key, "reason": reason},
            )
        if (bucket, key) in self._open_keys:
            raise UploadInitError(
                message=f"An upload to {key!r} is already in progress",
                context={"bucket": bucket, "key": key, "reason": "conflicting_write"},
            )
        self._open_keys.add((bucket, key))
        return S3ObjectUpload(
            self._client,
            bucket,
            key,
            content_type,
            on_finish=self._open_keys.discard,
        )

    def close(self) -> None:
        self._client.close()


# ---------------------------------------------------------------------------
# Write handle
# ---------------------------------------------------------------------------

class S3ObjectUpload:
    """Write handle staging bytes until :meth:`commit`."""

    def __init__(
        self,
        client: Any,
        bucket: str,
        key: str,
        content_type: str,
        on_finish: Callable[[tuple[str, str]], None] | None = None,
    ) -> None:
        self._client = client
        self.bucket = bucket
        self.key = key
        self.content_type = content_type
        self._on_finish = on_finish
        self._staging = tempfile.SpooledTemporaryFile(max_size=STAGING_MEMORY_BYTES)
        self._size = 0
        self._finished = False
        self._committed = False
        # Set once a PutObject was sent, whether or not it succeeded.
        self._maybe_visible = False

    @property
    def size(self) -> int:
        return self._size

    def write(self, data: bytes) -> int:
        if self._finished:
            raise ValueError(f"upload of {self.key!r} is already finished")
        n = self._staging.write(data)
        self._size += n
        return n

    def commit(self) -> None:
        if self._finished:
            raise ValueError(f"upload of {self.key!r} is already finished")
        self._staging.seek(0)
        self._maybe_visible = True
        self._client.put_object(
            Bucket=self.bucket,
            Key=self.key,
            Body=self._staging,
            ContentType=self.content_type,
        )
        self._committed = True
        self._finish()

    def abort(self) -> None:
        if self._committed:
            return
        self._finish()
        if self._maybe_visible:
            # A failed PutObject may still have landed; remove it.
            self._maybe_visible = False
            self._client.delete_object(Bucket=self.bucket, Key=self.key)

    def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._staging.close()
        if self._on_finish is not None:
            self._on_finish((self.bucket, self.key))
