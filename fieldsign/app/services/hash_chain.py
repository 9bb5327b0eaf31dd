"""
Hash chain recorder.

Links each burn's pre-mutation hash to its post-mutation hash and the
artifact it produced. The recorder computes nothing itself; hashes come
from the burner.

Known weak invariant: step n's signed hash is expected to equal step
n+1's original hash, but nothing binds the two cryptographically.
``find_chain_breaks`` reports divergence; it does not prevent it.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from fieldsign.app.core.errors import ValidationError
from fieldsign.app.schemas.audit import AuditEntry
from fieldsign.app.services.audit_sink import AuditSink

logger = logging.getLogger("fieldsign.hash_chain")


class HashChainRecorder:
    def __init__(self, sink: AuditSink):
        self._sink = sink

    def record(
        self,
        artifact_id: str,
        original_hash: str,
        signed_hash: str,
        artifact_location: str,
    ) -> AuditEntry:
        """Persist one immutable entry and return it with its generated id."""
        missing = [
            name
            for name, value in (
                ("artifact_id", artifact_id),
                ("original_hash", original_hash),
                ("signed_hash", signed_hash),
                ("artifact_location", artifact_location),
            )
            if not value
        ]
        if missing:
            raise ValidationError(
                "Audit entry is missing required values",
                context={"missing": missing},
            )

        entry = AuditEntry(
            artifact_id=artifact_id,
            original_hash=original_hash,
            signed_hash=signed_hash,
            artifact_location=artifact_location,
        )
        self._sink.append(entry)

        logger.info(
            "audit_entry_recorded",
            extra={
                "audit_trail_id": entry.entry_id,
                "pdf_id": artifact_id,
                "original_hash": original_hash,
                "signed_hash": signed_hash,
            },
        )
        return entry

    def history(self, artifact_id: str) -> List[AuditEntry]:
        return self._sink.history(artifact_id)


def find_chain_breaks(entries: Sequence[AuditEntry]) -> List[int]:
    """
    Positions where an entry does not continue from its predecessor.

    Index ``i`` is reported when ``entries[i].original_hash`` differs from
    ``entries[i - 1].signed_hash``.
    """
    return [
        i
        for i in range(1, len(entries))
        if entries[i].original_hash != entries[i - 1].signed_hash
    ]
