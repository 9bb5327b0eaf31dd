"""
Request and response bodies of the HTTP transport.

Every response is wrapped in the same envelope:
``{"success": bool, "message": str, "data": ... | "error": ...}``.
A failed operation never carries partial data.
"""

from __future__ import annotations

from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from fieldsign.app.schemas.audit import AuditEntry
from fieldsign.app.schemas.fields import PlacedField
from fieldsign.app.schemas.geometry import Coordinates


DataT = TypeVar("DataT")


class _Camel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------

class Envelope(BaseModel, Generic[DataT]):
    success: bool = True
    message: str
    data: Optional[DataT] = None


class ErrorEnvelope(BaseModel):
    success: bool = False
    message: str
    error: Optional[str] = None
    error_type: Optional[str] = Field(None, alias="errorType")
    context: Optional[dict[str, Any]] = None

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------

class UploadRequest(_Camel):
    pdf_data: str = Field(..., alias="pdfData", min_length=1)
    file_name: Optional[str] = Field(None, alias="fileName")


class UploadResult(_Camel):
    pdf_id: str = Field(..., alias="pdfId")
    hash: str
    file_name: str = Field(..., alias="fileName")


# ---------------------------------------------------------------------------
# Sign (single signature, point-space coordinates)
# ---------------------------------------------------------------------------

class SignRequest(_Camel):
    pdf_id: str = Field(..., alias="pdfId", min_length=1)
    signature_image: str = Field(..., alias="signatureImage", min_length=1)
    coordinates: Coordinates


class SignResult(_Camel):
    signed_pdf_url: str = Field(..., alias="signedPdfUrl")
    original_hash: str = Field(..., alias="originalHash")
    signed_hash: str = Field(..., alias="signedHash")
    audit_trail_id: str = Field(..., alias="auditTrailId")


# ---------------------------------------------------------------------------
# Burn (multi-field session, percentage coordinates)
# ---------------------------------------------------------------------------

class BurnRequest(_Camel):
    pdf_id: str = Field(..., alias="pdfId", min_length=1)
    fields: List[PlacedField] = Field(..., min_length=1)


class BurnSessionResult(_Camel):
    signed_pdf_url: str = Field(..., alias="signedPdfUrl")
    original_hash: str = Field(..., alias="originalHash")
    signed_hash: str = Field(..., alias="signedHash")
    audit_trail_ids: List[str] = Field(..., alias="auditTrailIds")


# ---------------------------------------------------------------------------
# Audit history
# ---------------------------------------------------------------------------

class AuditHistory(_Camel):
    pdf_id: str = Field(..., alias="pdfId")
    entries: List[AuditEntry]
    chain_breaks: List[int] = Field(..., alias="chainBreaks")
