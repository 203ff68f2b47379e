"""
Utilities
=========

Durable media storage and file helpers.
"""

from .storage import (
    ObjectStorage,
    LocalObjectStorage,
    S3ObjectStorage,
    create_storage,
    build_media_key,
    ensure_dir,
    get_file_size,
    format_file_size,
)

__all__ = [
    "ObjectStorage",
    "LocalObjectStorage",
    "S3ObjectStorage",
    "create_storage",
    "build_media_key",
    "ensure_dir",
    "get_file_size",
    "format_file_size",
]
