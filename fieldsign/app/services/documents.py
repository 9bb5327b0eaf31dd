"""
Document decoding and serialization.

Every operation opens its own pikepdf.Pdf from an immutable byte string
and closes it before returning. No decoded document handle outlives the
call that opened it.
"""

from __future__ import annotations

import io
import logging
from contextlib import contextmanager
from typing import Iterator, Union

import pikepdf

from fieldsign.app.core.errors import DecodeError, InternalError

logger = logging.getLogger("fieldsign.documents")

BytesLike = Union[bytes, bytearray, memoryview]


@contextmanager
def open_document(document_bytes: BytesLike) -> Iterator[pikepdf.Pdf]:
    """
    Decode a private copy of ``document_bytes``.

    Raises:
        DecodeError: the bytes are not a PDF, or the PDF has no pages.
    """
    snapshot = bytes(document_bytes)

    try:
        pdf = pikepdf.open(io.BytesIO(snapshot))
    except pikepdf.PdfError as exc:
        raise DecodeError(
            f"Input is not a valid PDF document: {exc}",
            context={"size": len(snapshot)},
        ) from exc

    with pdf:
        if len(pdf.pages) == 0:
            raise DecodeError("PDF document has no pages")
        yield pdf


def serialize_document(pdf: pikepdf.Pdf) -> bytes:
    """
    Write ``pdf`` to bytes.

    The trailer /ID is derived from the content, so the same document
    always serializes to the same bytes.
    """
    buffer = io.BytesIO()
    try:
        pdf.save(
            buffer,
            deterministic_id=True,
            compress_streams=True,
        )
    except (pikepdf.PdfError, OSError) as exc:
        logger.exception("document_serialization_failed")
        raise InternalError(f"Failed to serialize PDF: {exc}") from exc

    return buffer.getvalue()


def page_count(document_bytes: BytesLike) -> int:
    with open_document(document_bytes) as pdf:
        return len(pdf.pages)
