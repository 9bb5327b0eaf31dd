"""
Persistence sinks for audit entries.

A sink is append-only: it accepts new entries and returns the history of
one artifact in insertion order. Nothing is ever updated or removed.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from pathlib import Path
from typing import DefaultDict, List, Protocol

from pydantic import ValidationError as SchemaValidationError

from fieldsign.app.core.errors import InternalError
from fieldsign.app.schemas.audit import AuditEntry

logger = logging.getLogger("fieldsign.audit_sink")


class AuditSink(Protocol):
    """Interface for durable audit storage."""

    def append(self, entry: AuditEntry) -> None:
        ...

    def history(self, artifact_id: str) -> List[AuditEntry]:
        ...


class InMemoryAuditSink:
    """
    Process-local sink.

    Used by tests and by deployments that ship audit entries elsewhere.
    """

    def __init__(self) -> None:
        self._entries: DefaultDict[str, List[AuditEntry]] = defaultdict(list)
        self._lock = threading.Lock()

    def append(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries[entry.artifact_id].append(entry)

    def history(self, artifact_id: str) -> List[AuditEntry]:
        with self._lock:
            return list(self._entries.get(artifact_id, []))


class JsonlAuditSink:
    """
    Append-only JSON Lines file, one entry per line.

    Lines use the persisted camelCase layout
    ``{auditTrailId, pdfId, originalHash, signedHash, signedPdfUrl, createdAt}``.
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def append(self, entry: AuditEntry) -> None:
        line = entry.model_dump_json(by_alias=True) + "\n"
        with self._lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("a", encoding="utf-8") as fh:
                    fh.write(line)
                    fh.flush()
            except OSError as exc:
                logger.exception(
                    "audit_append_failed",
                    extra={"path": str(self._path)},
                )
                raise InternalError(f"Failed to persist audit entry: {exc}") from exc

    def history(self, artifact_id: str) -> List[AuditEntry]:
        if not self._path.exists():
            return []

        entries: List[AuditEntry] = []
        with self._lock, self._path.open("r", encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, start=1):
                if not line.strip():
                    continue
                try:
                    entry = AuditEntry.model_validate_json(line)
                except SchemaValidationError as exc:
                    raise InternalError(
                        f"Corrupt audit log line {lineno}: {exc}",
                        context={"path": str(self._path)},
                    ) from exc
                if entry.artifact_id == artifact_id:
                    entries.append(entry)
        return entries
