"""
Async HTTP client for the field burn-in service.

Speaks the ``{success, message, data}`` transport contract and drives the
re-upload signing protocol: every signature is burned into the output of
the previous one by uploading that output as a new document.

A single httpx.AsyncClient is reused for every call; pass ``transport``
to run against an in-process app.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

import httpx
from pydantic import BaseModel

from fieldsign.app.core.errors import (
    DecodeError,
    FieldSignError,
    InternalError,
    NotFoundError,
    PageIndexOutOfRange,
    UnsupportedImageFormat,
    ValidationError,
)
from fieldsign.app.schemas.fields import PlacedField, SignatureField
from fieldsign.app.schemas.geometry import Coordinates
from fieldsign.app.schemas.transport import (
    AuditHistory,
    BurnRequest,
    BurnSessionResult,
    Envelope,
    ErrorEnvelope,
    SignRequest,
    SignResult,
    UploadRequest,
    UploadResult,
)
from fieldsign.app.services.transformer import resolve_field

logger = logging.getLogger("fieldsign.connector")

ResultT = TypeVar("ResultT", bound=BaseModel)

_ERROR_TYPES: Dict[str, Type[FieldSignError]] = {
    cls.__name__: cls
    for cls in (
        ValidationError,
        NotFoundError,
        DecodeError,
        UnsupportedImageFormat,
        PageIndexOutOfRange,
        InternalError,
    )
}

# Fallback for responses that carry no errorType, e.g. from a proxy.
_STATUS_ERRORS: Dict[int, Type[FieldSignError]] = {
    400: ValidationError,
    404: NotFoundError,
    422: DecodeError,
}

DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=5.0)


def _error_from_response(response: httpx.Response) -> FieldSignError:
    error_type = None
    try:
        body = ErrorEnvelope.model_validate(response.json())
        message = body.message
        error_type = body.error_type
        context = dict(body.context or {})
        if body.error:
            context.setdefault("error", body.error)
    except ValueError:
        message = f"Service returned {response.status_code}"
        context = {"detail": response.text[:200]}

    context["status_code"] = response.status_code
    error_cls = _ERROR_TYPES.get(error_type or "") or _STATUS_ERRORS.get(
        response.status_code, InternalError
    )
    return error_cls(message, context=context)


class FieldSignClient:
    def __init__(
        self,
        base_url: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: httpx.Timeout = DEFAULT_TIMEOUT,
    ):
        self._http = httpx.AsyncClient(
            base_url=base_url,
            transport=transport,
            timeout=timeout,
        )

    async def __aenter__(self) -> "FieldSignClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.RequestError as exc:
            logger.error("%s %s: connection error: %s", method, url, exc)
            raise InternalError(
                "FieldSign service unreachable",
                context={"url": url},
            ) from exc

        if response.is_error:
            logger.error("%s %s: HTTP %s", method, url, response.status_code)
            raise _error_from_response(response)

        return response

    async def _call(
        self,
        method: str,
        url: str,
        result_type: Type[ResultT],
        **kwargs: Any,
    ) -> ResultT:
        response = await self._send(method, url, **kwargs)
        envelope = Envelope[result_type].model_validate(response.json())
        if not envelope.success or envelope.data is None:
            raise InternalError(
                envelope.message or "Service returned no data",
                context={"url": url},
            )
        return envelope.data

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def upload_pdf(
        self,
        pdf_bytes: bytes,
        file_name: Optional[str] = None,
    ) -> UploadResult:
        body = UploadRequest(
            pdf_data=base64.b64encode(pdf_bytes).decode("ascii"),
            file_name=file_name,
        )
        return await self._call(
            "POST",
            "/api/upload-pdf",
            UploadResult,
            json=body.model_dump(by_alias=True, exclude_none=True),
        )

    async def sign_pdf(
        self,
        pdf_id: str,
        signature_image: str,
        coordinates: Coordinates,
    ) -> SignResult:
        """``coordinates`` are page-space points, bottom-left origin."""
        body = SignRequest(
            pdf_id=pdf_id,
            signature_image=signature_image,
            coordinates=coordinates,
        )
        return await self._call(
            "POST",
            "/api/sign-pdf",
            SignResult,
            json=body.model_dump(by_alias=True),
        )

    async def burn_fields(
        self,
        pdf_id: str,
        fields: Sequence[PlacedField],
    ) -> BurnSessionResult:
        body = BurnRequest(pdf_id=pdf_id, fields=list(fields))
        return await self._call(
            "POST",
            "/api/burn-fields",
            BurnSessionResult,
            json=body.model_dump(mode="json", by_alias=True),
        )

    async def audit_history(self, pdf_id: str) -> AuditHistory:
        return await self._call("GET", f"/api/audit/{pdf_id}", AuditHistory)

    async def fetch_signed(self, signed_pdf_url: str) -> bytes:
        response = await self._send("GET", signed_pdf_url)
        return response.content

    async def sign_sequentially(
        self,
        pdf_bytes: bytes,
        fields: Sequence[SignatureField],
        *,
        file_name: Optional[str] = None,
    ) -> List[SignResult]:
        """
        Burn each signature field into the previous step's output.

        Field boxes are resolved against the current bytes before every
        upload, because each burn produces a new document. Fields without
        an image are skipped.
        """
        current = pdf_bytes
        results: List[SignResult] = []

        for field in fields:
            if not field.value:
                continue

            coordinates = resolve_field(current, field)
            upload = await self.upload_pdf(current, file_name)
            signed = await self.sign_pdf(upload.pdf_id, field.value, coordinates)
            current = await self.fetch_signed(signed.signed_pdf_url)

            logger.info(
                "remote_signature_applied",
                extra={
                    "field_id": field.id,
                    "pdf_id": upload.pdf_id,
                    "signed_hash": signed.signed_hash,
                },
            )
            results.append(signed)

        return results
