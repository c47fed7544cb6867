"""Blob key layout shared by the upload grant and the pipeline.

Keys embed the owner and record id at grant time:

    <prefix><base64url owner id>/<record id>/<sanitized file name>

so a blob notification maps to exactly one record without any lookup by
file name or timestamp. Every segment is drawn from ``[A-Za-z0-9._-]``, so a
key reads the same whether or not a notification URL-decoded it. The
pipeline still checks the resolved key against the record's stored
``blob_key`` before acting on it.
"""

import base64
import binascii
import re
from dataclasses import dataclass
from urllib.parse import unquote_plus

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.\-]")
_OWNER_SEGMENT = re.compile(r"^[A-Za-z0-9_-]+$")


def sanitize_file_name(file_name: str) -> str:
    """Replace characters outside ``[A-Za-z0-9.-]`` with underscores."""
    return _UNSAFE_FILENAME_CHARS.sub("_", file_name)


def normalize_prefix(prefix: str) -> str:
    """Prefix without surrounding slashes, e.g. '/uploads/' -> 'uploads'."""
    return prefix.strip("/")


def encode_owner(owner_id: str) -> str:
    """Unpadded base64url form of an owner id, safe as one key segment."""
    return base64.urlsafe_b64encode(owner_id.encode("utf-8")).decode("ascii").rstrip("=")


def decode_owner(segment: str) -> str | None:
    """Inverse of ``encode_owner``; None unless ``segment`` is its exact output."""
    if not _OWNER_SEGMENT.match(segment):
        return None
    try:
        owner_id = base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4)).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    if not owner_id or encode_owner(owner_id) != segment:
        return None
    return owner_id


def build_object_key(prefix: str, owner_id: str, record_id: str, file_name: str) -> str:
    """Build the blob key under which an invoice upload is granted.

    Args:
        prefix: Upload prefix (e.g. 'uploads/')
        owner_id: Uploading principal
        record_id: Invoice record id
        file_name: Original file name

    Returns:
        Object key
    """
    parts = [encode_owner(owner_id), record_id, sanitize_file_name(file_name)]
    normalized = normalize_prefix(prefix)
    if normalized:
        parts.insert(0, normalized)
    return "/".join(parts)


@dataclass(frozen=True)
class BlobReference:
    """Record coordinates recovered from a blob key."""

    owner_id: str
    record_id: str
    object_key: str


def resolve_object_key(raw_key: str, prefix: str, bucket: str | None = None) -> BlobReference | None:
    """Map a notification's object key back to its record.

    Tolerates form-encoded keys ('+' for space, %XX escapes), a leading '/',
    a leading bucket segment and prefixes given with or without slashes.

    Args:
        raw_key: Object key exactly as it appeared in the notification
        prefix: Configured upload prefix
        bucket: Bucket name, stripped if the key starts with it

    Returns:
        BlobReference, or None when the key is not an upload key
    """
    key = unquote_plus(raw_key).lstrip("/")
    segments = key.split("/")

    if bucket and len(segments) > 1 and segments[0] == bucket:
        segments = segments[1:]

    prefix_segments = [s for s in normalize_prefix(prefix).split("/") if s]
    if segments[: len(prefix_segments)] != prefix_segments:
        return None
    rest = segments[len(prefix_segments) :]

    if len(rest) != 3 or not all(rest):
        return None

    owner_segment, record_id, _ = rest
    owner_id = decode_owner(owner_segment)
    if owner_id is None:
        return None

    canonical_key = "/".join([*prefix_segments, *rest])
    return BlobReference(
        owner_id=owner_id,
        record_id=record_id,
        object_key=canonical_key,
    )
