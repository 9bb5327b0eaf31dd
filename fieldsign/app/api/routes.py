import base64
import binascii
import logging
from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import Response

from fieldsign.app.core.config import Settings
from fieldsign.app.core.errors import FieldSignError, InternalError, ValidationError
from fieldsign.app.schemas.transport import (
    AuditHistory,
    BurnRequest,
    BurnSessionResult,
    Envelope,
    SignRequest,
    SignResult,
    UploadRequest,
    UploadResult,
)
from fieldsign.app.services.burner import burn_signature
from fieldsign.app.services.documents import page_count
from fieldsign.app.services.hash_chain import HashChainRecorder, find_chain_breaks
from fieldsign.app.services.images import decode_image_payload
from fieldsign.app.services.sample import generate_sample_pdf
from fieldsign.app.services.session import run_session
from fieldsign.app.services.storage import ArtifactStore
from fieldsign.app.utils.hashing import compute_document_hash

logger = logging.getLogger("fieldsign.api")

router = APIRouter(prefix="/api", tags=["Field Burn-in"])
files_router = APIRouter(tags=["Artifacts"])

# =============================================================================
# Dependency providers
# =============================================================================


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> ArtifactStore:
    return request.app.state.store


def get_recorder(request: Request) -> HashChainRecorder:
    return request.app.state.recorder


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
StoreDep = Annotated[ArtifactStore, Depends(get_store)]
RecorderDep = Annotated[HashChainRecorder, Depends(get_recorder)]


def _unexpected(event: str, exc: Exception, **extra: Any) -> InternalError:
    logger.exception(
        event,
        extra={"error_type": type(exc).__name__, **extra},
    )
    return InternalError(str(exc))


def _public_url(settings: Settings, name: str) -> str:
    return f"{settings.signed_url_prefix.rstrip('/')}/{name}"


# =============================================================================
# POST /api/upload-pdf
# =============================================================================


@router.post(
    "/upload-pdf",
    response_model=Envelope[UploadResult],
    summary="Store a PDF and return its content-derived id",
)
def upload_pdf(
    body: UploadRequest,
    settings: SettingsDep,
    store: StoreDep,
) -> Envelope[UploadResult]:
    try:
        try:
            pdf_bytes = base64.b64decode(body.pdf_data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValidationError("pdfData is not valid base64") from exc

        if not pdf_bytes:
            raise ValidationError("Missing required field: pdfData is required")

        if len(pdf_bytes) > settings.max_pdf_size_bytes:
            raise ValidationError(
                f"PDF exceeds the {settings.max_pdf_size_mb}MB limit",
                context={"size": len(pdf_bytes)},
            )

        # Reject undecodable documents before anything is stored.
        page_count(pdf_bytes)

        pdf_id, pdf_hash = store.put(pdf_bytes)

    except FieldSignError:
        raise
    except Exception as exc:
        raise _unexpected("upload_failure", exc) from exc

    return Envelope[UploadResult](
        message="PDF uploaded successfully",
        data=UploadResult(
            pdf_id=pdf_id,
            hash=pdf_hash,
            file_name=body.file_name or "document.pdf",
        ),
    )


# =============================================================================
# POST /api/sign-pdf
# =============================================================================


@router.post(
    "/sign-pdf",
    response_model=Envelope[SignResult],
    summary="Burn one signature image at resolved point coordinates",
)
def sign_pdf(
    body: SignRequest,
    settings: SettingsDep,
    store: StoreDep,
    recorder: RecorderDep,
) -> Envelope[SignResult]:
    """
    Coordinates are in points, bottom-left origin, exactly as produced by
    the coordinate transformer. The signature is fitted into the box with
    its aspect ratio preserved.
    """
    try:
        image_bytes = decode_image_payload(body.signature_image)
        original_bytes = store.get(body.pdf_id)
        original_hash = compute_document_hash(original_bytes)

        try:
            result = burn_signature(
                original_bytes,
                body.coordinates,
                image_bytes,
                clamp_pages=settings.clamp_page_index,
            )
        except FieldSignError as exc:
            exc.context.setdefault("pdf_id", body.pdf_id)
            exc.context.setdefault("page", body.coordinates.page)
            exc.context.setdefault("original_hash", original_hash)
            raise

        name = store.put_signed(body.pdf_id, result.content)
        signed_url = _public_url(settings, name)
        entry = recorder.record(
            artifact_id=body.pdf_id,
            original_hash=original_hash,
            signed_hash=result.hash,
            artifact_location=signed_url,
        )

    except FieldSignError:
        raise
    except Exception as exc:
        raise _unexpected("signing_failure", exc, pdf_id=body.pdf_id) from exc

    logger.info(
        "pdf_signed",
        extra={
            "pdf_id": body.pdf_id,
            "original_hash": original_hash,
            "signed_hash": result.hash,
            "audit_trail_id": entry.entry_id,
        },
    )

    return Envelope[SignResult](
        message="PDF signed successfully",
        data=SignResult(
            signed_pdf_url=signed_url,
            original_hash=original_hash,
            signed_hash=result.hash,
            audit_trail_id=entry.entry_id,
        ),
    )


# =============================================================================
# POST /api/burn-fields
# =============================================================================


@router.post(
    "/burn-fields",
    response_model=Envelope[BurnSessionResult],
    summary="Burn placed fields sequentially, one audit entry per field",
)
def burn_fields(
    body: BurnRequest,
    settings: SettingsDep,
    store: StoreDep,
    recorder: RecorderDep,
) -> Envelope[BurnSessionResult]:
    try:
        session = run_session(
            store=store,
            recorder=recorder,
            artifact_id=body.pdf_id,
            fields=body.fields,
            signed_url_prefix=settings.signed_url_prefix,
            clamp_pages=settings.clamp_page_index,
        )
    except FieldSignError:
        raise
    except Exception as exc:
        raise _unexpected("burn_session_failure", exc, pdf_id=body.pdf_id) from exc

    return Envelope[BurnSessionResult](
        message=f"{len(session.steps)} field(s) burned successfully",
        data=BurnSessionResult(
            signed_pdf_url=session.artifact_location,
            original_hash=session.original_hash,
            signed_hash=session.signed_hash,
            audit_trail_ids=[step.audit_trail_id for step in session.steps],
        ),
    )


# =============================================================================
# GET /api/audit/{pdf_id}
# =============================================================================


@router.get(
    "/audit/{pdf_id}",
    response_model=Envelope[AuditHistory],
    summary="Signing history of one document",
)
def audit_history(pdf_id: str, recorder: RecorderDep) -> Envelope[AuditHistory]:
    try:
        entries = recorder.history(pdf_id)
        return Envelope[AuditHistory](
            message=f"{len(entries)} audit entries",
            data=AuditHistory(
                pdf_id=pdf_id,
                entries=entries,
                chain_breaks=find_chain_breaks(entries),
            ),
        )
    except FieldSignError:
        raise
    except Exception as exc:
        raise _unexpected("audit_history_failure", exc, pdf_id=pdf_id) from exc


# =============================================================================
# GET /api/sample-pdf
# =============================================================================


@router.get(
    "/sample-pdf",
    response_class=Response,
    responses={200: {"content": {"application/pdf": {}}}},
    summary="Generate the sample certificate document",
)
def sample_pdf() -> Response:
    try:
        pdf_bytes, pdf_hash = generate_sample_pdf()
    except FieldSignError:
        raise
    except Exception as exc:
        raise _unexpected("sample_pdf_failure", exc) from exc

    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": 'inline; filename="sample.pdf"',
            "X-Document-Hash": pdf_hash,
        },
    )


# =============================================================================
# GET /uploads/signed/{name}
# =============================================================================


@files_router.get(
    "/uploads/signed/{name}",
    response_class=Response,
    responses={
        200: {"content": {"application/pdf": {}}},
        404: {"description": "Unknown artifact"},
    },
)
def signed_artifact(name: str, store: StoreDep) -> Response:
    try:
        data = store.get_signed(name)
        document_hash = compute_document_hash(data)
    except FieldSignError:
        raise
    except Exception as exc:
        raise _unexpected("signed_artifact_failure", exc, name=name) from exc

    headers: Dict[str, str] = {
        "Content-Disposition": f'inline; filename="{name}"',
        "X-Document-Hash": document_hash,
    }
    return Response(
        content=data,
        media_type="application/pdf",
        status_code=status.HTTP_200_OK,
        headers=headers,
    )
