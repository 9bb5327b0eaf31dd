"""
Flat, content-addressed artifact store.

Uploaded documents live at ``{root}/{artifact_id}.pdf`` where the id is
the first 16 hex characters of the SHA-256 of the bytes. Burn outputs
live in the ``signed/`` namespace as
``{artifact_id}_signed_{timestamp_ms}.pdf``.

Every path is built from validated identifiers and must resolve inside
the store root.
"""

from __future__ import annotations

import logging
import os
import re
import time
import uuid
from pathlib import Path
from typing import Optional, Tuple

from fieldsign.app.core.errors import InternalError, NotFoundError, ValidationError
from fieldsign.app.services.documents import BytesLike
from fieldsign.app.utils.hashing import artifact_id_for, compute_document_hash

logger = logging.getLogger("fieldsign.storage")

SIGNED_NAMESPACE = "signed"

_ARTIFACT_ID = re.compile(r"^[0-9a-f]{16}$")
_SIGNED_NAME = re.compile(r"^[0-9a-f]{16}_signed_\d+\.pdf$")


def _validate_artifact_id(artifact_id: str) -> str:
    if not _ARTIFACT_ID.match(artifact_id or ""):
        raise ValidationError(
            "Invalid PDF id: expected 16 lower-case hex characters",
            context={"pdf_id": artifact_id},
        )
    return artifact_id


class ArtifactStore:
    def __init__(self, root: Path):
        self._root = Path(root).expanduser().resolve()
        self._signed = self._root / SIGNED_NAMESPACE

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # Path construction
    # ------------------------------------------------------------------

    def _contained(self, candidate: Path) -> Path:
        resolved = candidate.resolve()
        try:
            resolved.relative_to(self._root)
        except ValueError:
            raise ValidationError(
                f"Artifact path escapes the store: {candidate.name}"
            )
        return resolved

    def original_path(self, artifact_id: str) -> Path:
        _validate_artifact_id(artifact_id)
        return self._contained(self._root / f"{artifact_id}.pdf")

    def signed_path(self, name: str) -> Path:
        if not _SIGNED_NAME.match(name or ""):
            raise ValidationError(
                "Invalid signed artifact name",
                context={"name": name},
            )
        return self._contained(self._signed / name)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _write(self, path: Path, data: bytes, *, exclusive: bool = False) -> None:
        """
        Write through a uniquely named temp file in the same directory.

        With ``exclusive`` the final name is claimed with a hard link, so an
        existing file is never replaced and FileExistsError propagates.
        """
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
            tmp.write_bytes(data)
            try:
                if exclusive:
                    os.link(tmp, path)
                else:
                    tmp.replace(path)
            finally:
                tmp.unlink(missing_ok=True)
        except FileExistsError:
            raise
        except OSError as exc:
            logger.exception("artifact_write_failed", extra={"path": str(path)})
            raise InternalError(f"Failed to store artifact: {exc}") from exc

    def _read(self, path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as exc:
            logger.exception("artifact_read_failed", extra={"path": str(path)})
            raise InternalError(f"Failed to read artifact: {exc}") from exc

    def put(self, document_bytes: BytesLike) -> Tuple[str, str]:
        """
        Store an uploaded document.

        Returns:
            (artifact_id, document_hash)
        """
        data = bytes(document_bytes)
        document_hash = compute_document_hash(data)
        artifact_id = artifact_id_for(document_hash)

        self._write(self.original_path(artifact_id), data)
        logger.info(
            "artifact_stored",
            extra={"pdf_id": artifact_id, "hash": document_hash, "size": len(data)},
        )
        return artifact_id, document_hash

    def put_signed(
        self,
        artifact_id: str,
        document_bytes: BytesLike,
        *,
        timestamp_ms: Optional[int] = None,
    ) -> str:
        """
        Store a burn output for ``artifact_id``.

        Returns:
            The file name inside the signed namespace.
        """
        _validate_artifact_id(artifact_id)
        stamp = timestamp_ms if timestamp_ms is not None else time.time_ns() // 1_000_000
        data = bytes(document_bytes)

        # Sequential burns can land within the same millisecond.
        while True:
            path = self.signed_path(f"{artifact_id}_signed_{stamp}.pdf")
            try:
                self._write(path, data, exclusive=True)
            except FileExistsError:
                stamp += 1
                continue
            return path.name

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, artifact_id: str) -> bytes:
        path = self.original_path(artifact_id)
        if not path.is_file():
            raise NotFoundError(
                f"PDF not found with ID: {artifact_id}",
                context={"pdf_id": artifact_id},
            )
        return self._read(path)

    def get_signed(self, name: str) -> bytes:
        path = self.signed_path(name)
        if not path.is_file():
            raise NotFoundError(
                f"Signed PDF not found: {name}",
                context={"name": name},
            )
        return self._read(path)
