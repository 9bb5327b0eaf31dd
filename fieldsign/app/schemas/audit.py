"""
Audit entry schema.

One entry is written per burn operation. Entries are immutable and form
an append-only log keyed by artifact id; the persisted layout uses the
camelCase keys of the transport contract.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class AuditEntry(BaseModel):
    entry_id: str = Field(
        default_factory=lambda: uuid4().hex,
        alias="auditTrailId",
    )
    artifact_id: str = Field(..., alias="pdfId", min_length=1)
    original_hash: str = Field(..., alias="originalHash", min_length=1)
    signed_hash: str = Field(..., alias="signedHash", min_length=1)
    artifact_location: str = Field(..., alias="signedPdfUrl", min_length=1)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        alias="createdAt",
    )

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="forbid",
    )
