"""Storage stages: key generation and durable upload.

Exports
-------
KeyGenerator / generate_key / normalize_prefix
    Build ``<prefix><uuid4><ext>`` object keys.
Uploader
    Session-scoped upload with commit-or-abort semantics.
UploadStateMachine
    Explicit lifecycle state of one upload.
StorageBackend / StorageProject / ObjectUpload
    Protocols the Uploader consumes.
S3Backend
    boto3 implementation of the storage protocols.
"""

from .backend import ObjectUpload, StorageBackend, StorageProject
from .keys import KeyGenerator, generate_key, normalize_prefix
from .s3 import DEFAULT_ENDPOINT_URL, S3Backend
from .state import UploadStateMachine
from .uploader import Uploader

__all__ = [
    "DEFAULT_ENDPOINT_URL",
    "KeyGenerator",
    "ObjectUpload",
    "S3Backend",
    "StorageBackend",
    "StorageProject",
    "UploadStateMachine",
    "Uploader",
    "generate_key",
    "normalize_prefix",
]
