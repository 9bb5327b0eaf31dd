"""
Sequential multi-field signing session.

A session is a fold over the field list: every field is burned into the
output of the previous step, stored, and recorded before the next one
starts. Page geometry and byte layout change after each burn, so the
steps must never run in parallel.

A failure at step n aborts the session but leaves steps 0..n-1 stored
and recorded; the raised error carries the step index and the last
committed hash so a caller can resume from there.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from pydantic import BaseModel, ConfigDict

from fieldsign.app.core.errors import FieldSignError, ValidationError
from fieldsign.app.schemas.fields import PlacedField
from fieldsign.app.services.burner import burn_one, renders_content
from fieldsign.app.services.hash_chain import HashChainRecorder
from fieldsign.app.services.storage import ArtifactStore
from fieldsign.app.utils.hashing import compute_document_hash

logger = logging.getLogger("fieldsign.session")


class SessionStep(BaseModel):
    field_id: str
    original_hash: str
    signed_hash: str
    artifact_location: str
    audit_trail_id: str

    model_config = ConfigDict(frozen=True)


class SessionResult(BaseModel):
    artifact_id: str
    original_hash: str
    signed_hash: str
    content: bytes
    steps: List[SessionStep]

    model_config = ConfigDict(frozen=True)

    @property
    def artifact_location(self) -> str:
        return self.steps[-1].artifact_location


def run_session(
    *,
    store: ArtifactStore,
    recorder: HashChainRecorder,
    artifact_id: str,
    fields: Sequence[PlacedField],
    signed_url_prefix: str,
    clamp_pages: bool = True,
) -> SessionResult:
    """
    Burn ``fields`` one at a time into the stored artifact ``artifact_id``.

    Fields that would draw nothing (unknown types, empty values,
    unchecked radios) are skipped and leave no audit entry.

    Raises:
        ValidationError: no field has anything to burn.
        NotFoundError: ``artifact_id`` is not in the store.
        DecodeError, UnsupportedImageFormat, PageIndexOutOfRange:
            from the failing step, with session context attached.
    """
    active = [f for f in fields if renders_content(f)]
    if not active:
        raise ValidationError(
            "No fields with content to burn",
            context={"pdf_id": artifact_id, "field_count": len(fields)},
        )

    current = store.get(artifact_id)
    original_hash = compute_document_hash(current)
    current_hash = original_hash
    steps: List[SessionStep] = []

    for index, field in enumerate(active):
        try:
            result = burn_one(current, field, clamp_pages=clamp_pages)
        except FieldSignError as exc:
            exc.context.update(
                {
                    "step": index,
                    "completed_steps": len(steps),
                    "original_hash": current_hash,
                }
            )
            logger.warning(
                "session_step_failed",
                extra={
                    "pdf_id": artifact_id,
                    "step": index,
                    "field_id": field.id,
                    "error_type": type(exc).__name__,
                },
            )
            raise

        name = store.put_signed(artifact_id, result.content)
        location = f"{signed_url_prefix.rstrip('/')}/{name}"
        entry = recorder.record(
            artifact_id=artifact_id,
            original_hash=current_hash,
            signed_hash=result.hash,
            artifact_location=location,
        )

        steps.append(
            SessionStep(
                field_id=field.id,
                original_hash=current_hash,
                signed_hash=result.hash,
                artifact_location=location,
                audit_trail_id=entry.entry_id,
            )
        )
        current, current_hash = result.content, result.hash

    logger.info(
        "session_completed",
        extra={
            "pdf_id": artifact_id,
            "steps": len(steps),
            "original_hash": original_hash,
            "signed_hash": current_hash,
        },
    )

    return SessionResult(
        artifact_id=artifact_id,
        original_hash=original_hash,
        signed_hash=current_hash,
        content=current,
        steps=steps,
    )
