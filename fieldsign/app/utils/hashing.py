"""
Content hashing for document artifacts.

Hashes are computed over raw document bytes, identically for the
pre-mutation ("original") and post-mutation ("signed") streams.

This module hashes bytes, and bytes only. Serialization happens in the
burner before anything reaches here.
"""

import hashlib
from typing import Union

ARTIFACT_ID_LENGTH = 16


def compute_document_hash(document_bytes: Union[bytes, bytearray, memoryview]) -> str:
    """
    Compute the SHA-256 digest of a document byte stream.

    Returns:
        Lower-case hex digest, without an algorithm prefix.
    """
    if not isinstance(document_bytes, (bytes, bytearray, memoryview)):
        raise TypeError(
            "compute_document_hash expects bytes, "
            f"got {type(document_bytes).__name__}"
        )

    return hashlib.sha256(document_bytes).hexdigest()


def artifact_id_for(document_hash: str) -> str:
    """Derive the storage identifier from a document hash."""
    return document_hash[:ARTIFACT_ID_LENGTH]
