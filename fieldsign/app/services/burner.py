"""
Field burn-in.

Draws placed fields permanently into the content streams of a PDF and
returns the new document bytes together with their SHA-256 digest.

Contract:
- The input is treated as read-only. Each call decodes its own copy and
  returns a fresh byte string; a failure part-way leaves nothing behind.
- Drawing is appended to each touched page inside a saved graphics
  state, so the page's own state cannot leak into the overlay.
- Output is serialized deterministically: burning the same fields into
  the same bytes always yields the same bytes and hash.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

import pikepdf
from pikepdf import Dictionary, Name, Operator
from pydantic import BaseModel, ConfigDict

from fieldsign.app.core.errors import FieldSignError, ValidationError
from fieldsign.app.schemas.fields import (
    DateField,
    ImageField,
    InputField,
    PlacedField,
    RadioField,
    SignatureField,
    TextField,
    UnknownField,
)
from fieldsign.app.schemas.geometry import Coordinates, PageGeometry
from fieldsign.app.services.documents import (
    BytesLike,
    open_document,
    serialize_document,
)
from fieldsign.app.services.images import (
    RasterImage,
    decode_image_payload,
    embed_image,
    fit_image,
    load_raster,
)
from fieldsign.app.services.transformer import read_page_geometry, resolve
from fieldsign.app.utils.hashing import compute_document_hash

logger = logging.getLogger("fieldsign.burner")

MIN_FONT_SIZE = 6.0
MAX_FONT_SIZE = 11.0
LINE_HEIGHT = 1.2
TEXT_INSET = 4.0
RADIO_COLOR = (0.25, 0.45, 0.95)

# Cubic Bezier control distance for a quarter circle of radius 1.
_KAPPA = 0.5522847498

_FONTS = {
    False: Name.Helvetica,
    True: Name("/Helvetica-Bold"),
}

Instruction = Tuple[List[object], Operator]


class BurnResult(BaseModel):
    content: bytes
    hash: str

    model_config = ConfigDict(frozen=True)


def burn_font_size(box_height: float) -> float:
    """Font size for burned text: 60% of the box height, within 6-11 pt."""
    return max(MIN_FONT_SIZE, min(MAX_FONT_SIZE, box_height * 0.6))


def _num(value: float) -> Decimal:
    return Decimal(f"{value:.4f}")


def _pdf_text(text: str) -> pikepdf.String:
    # Standard 14 fonts are declared with WinAnsiEncoding.
    return pikepdf.String(text.encode("cp1252", errors="replace"))


# ---------------------------------------------------------------------------
# Per-page overlay
# ---------------------------------------------------------------------------

def _pin_inherited_resources(page: pikepdf.Page) -> None:
    # add_resource creates a page-level /Resources that shadows the
    # inherited one.
    if "/Resources" in page.obj:
        return
    node = page.obj.get("/Parent")
    while node is not None:
        if "/Resources" in node:
            page.obj.Resources = Dictionary(dict(node.Resources.items()))
            return
        node = node.get("/Parent")


class _PageOverlay:
    """Instructions queued for one page, committed once at the end."""

    def __init__(self, pdf: pikepdf.Pdf, geometry: PageGeometry):
        self._pdf = pdf
        self._page = pdf.pages[geometry.page_index]
        self.geometry = geometry
        self._fonts: Dict[bool, Name] = {}
        self._ops: List[Instruction] = []

    def _free_name(self, kind: Name, prefix: str) -> Name:
        """Lowest unused /{prefix}{n} in the page's /Resources of ``kind``."""
        resources = self._page.obj.get("/Resources")
        taken = resources.get(kind) if resources is not None else None
        n = 0
        while taken is not None and f"/{prefix}{n}" in taken:
            n += 1
        return Name(f"/{prefix}{n}")

    def _add_resource(self, obj: pikepdf.Object, kind: Name, prefix: str) -> Name:
        # Lowest free index per page, never a random name.
        _pin_inherited_resources(self._page)
        name = self._free_name(kind, prefix)
        return self._page.add_resource(obj, kind, name=name)

    def place(self, box: Coordinates) -> Coordinates:
        """Shift a page-relative box onto the media box origin."""
        return box.model_copy(
            update={
                "x": box.x + self.geometry.origin_x,
                "y": box.y + self.geometry.origin_y,
            }
        )

    def _font(self, bold: bool) -> Name:
        if bold not in self._fonts:
            font = self._pdf.make_indirect(
                Dictionary(
                    Type=Name.Font,
                    Subtype=Name.Type1,
                    BaseFont=_FONTS[bold],
                    Encoding=Name.WinAnsiEncoding,
                )
            )
            self._fonts[bold] = self._add_resource(font, Name.Font, "FsF")
        return self._fonts[bold]

    def text(self, line: str, x: float, y: float, size: float, *, bold: bool = False) -> None:
        font = self._font(bold)
        self._ops.extend(
            [
                ([_num(0), _num(0), _num(0)], Operator("rg")),
                ([], Operator("BT")),
                ([font, _num(size)], Operator("Tf")),
                ([_num(x), _num(y)], Operator("Td")),
                ([_pdf_text(line)], Operator("Tj")),
                ([], Operator("ET")),
            ]
        )

    def circle(self, cx: float, cy: float, r: float, rgb: Tuple[float, float, float]) -> None:
        k = r * _KAPPA
        curves = [
            (cx + r, cy + k, cx + k, cy + r, cx, cy + r),
            (cx - k, cy + r, cx - r, cy + k, cx - r, cy),
            (cx - r, cy - k, cx - k, cy - r, cx, cy - r),
            (cx + k, cy - r, cx + r, cy - k, cx + r, cy),
        ]
        self._ops.append(([_num(c) for c in rgb], Operator("rg")))
        self._ops.append(([_num(cx + r), _num(cy)], Operator("m")))
        for curve in curves:
            self._ops.append(([_num(v) for v in curve], Operator("c")))
        self._ops.append(([], Operator("h")))
        self._ops.append(([], Operator("f")))

    def image(self, raster: RasterImage, x: float, y: float, w: float, h: float) -> None:
        xobject = embed_image(self._pdf, raster)
        name = self._add_resource(xobject, Name.XObject, "FsIm")
        self._ops.extend(
            [
                ([], Operator("q")),
                (
                    [_num(w), _num(0), _num(0), _num(h), _num(x), _num(y)],
                    Operator("cm"),
                ),
                ([name], Operator("Do")),
                ([], Operator("Q")),
            ]
        )

    def commit(self) -> None:
        if not self._ops:
            return

        if "/Contents" not in self._page.obj:
            self._page.obj.Contents = self._pdf.make_stream(b"")

        overlay = pikepdf.unparse_content_stream(self._ops)
        self._page.contents_add(b"q\n", prepend=True)
        self._page.contents_add(b"\nQ\n" + overlay + b"\n", prepend=False)


class _Burn:
    """One open document plus the overlays queued against it."""

    def __init__(self, pdf: pikepdf.Pdf, *, clamp_pages: bool):
        self.pdf = pdf
        self._clamp = clamp_pages
        self._overlays: Dict[int, _PageOverlay] = {}

    def overlay(self, page_index: int) -> _PageOverlay:
        geometry = read_page_geometry(self.pdf, page_index, clamp=self._clamp)
        if geometry.page_index not in self._overlays:
            self._overlays[geometry.page_index] = _PageOverlay(self.pdf, geometry)
        return self._overlays[geometry.page_index]

    def finish(self) -> BurnResult:
        for overlay in self._overlays.values():
            overlay.commit()
        content = serialize_document(self.pdf)
        return BurnResult(content=content, hash=compute_document_hash(content))

    @property
    def pages_touched(self) -> List[int]:
        return sorted(self._overlays)


# ---------------------------------------------------------------------------
# Field renderers
# ---------------------------------------------------------------------------

def _draw_text(overlay: _PageOverlay, field: PlacedField, box: Coordinates) -> None:
    text = field.value or ""
    if not text:
        return

    size = burn_font_size(box.height)
    x = box.x + TEXT_INSET

    if isinstance(field, TextField):
        for i, line in enumerate(text.splitlines()):
            y = box.y + box.height - (size * LINE_HEIGHT) * (i + 1)
            overlay.text(line, x, y, size)
        return

    line = " ".join(text.splitlines())
    y = box.y + box.height / 2 - size / 2.5
    overlay.text(line, x, y, size, bold=isinstance(field, InputField))


def _draw_radio(overlay: _PageOverlay, field: RadioField, box: Coordinates) -> None:
    if not field.checked:
        return
    radius = min(box.width, box.height) / 3
    overlay.circle(
        box.x + box.width / 2,
        box.y + box.height / 2,
        radius,
        RADIO_COLOR,
    )


def _draw_raster(overlay: _PageOverlay, raster: RasterImage, box: Coordinates) -> None:
    x, y, w, h = fit_image(raster.width, raster.height, box)
    overlay.image(raster, x, y, w, h)


def _raster_for(field: PlacedField, image_bytes: Optional[bytes]) -> Optional[RasterImage]:
    if image_bytes is not None:
        return load_raster(bytes(image_bytes))
    if field.value is None:
        return None
    return load_raster(decode_image_payload(field.value))


def _burn_field(
    burn: _Burn,
    field: PlacedField,
    image_bytes: Optional[bytes] = None,
) -> bool:
    """Draw one field. Returns False when the field renders nothing."""
    if isinstance(field, UnknownField):
        logger.debug(
            "unknown_field_type_skipped",
            extra={"field_id": field.id, "field_type": field.type},
        )
        return False

    try:
        if isinstance(field, (SignatureField, ImageField)):
            raster = _raster_for(field, image_bytes)
            if raster is None:
                logger.debug(
                    "empty_raster_field_skipped",
                    extra={"field_id": field.id, "field_type": field.type},
                )
                return False
            overlay = burn.overlay(field.page)
            box = overlay.place(resolve(overlay.geometry, field))
            _draw_raster(overlay, raster, box)
            return True

        overlay = burn.overlay(field.page)
        box = overlay.place(resolve(overlay.geometry, field))

        if isinstance(field, (InputField, TextField, DateField)):
            _draw_text(overlay, field, box)
        elif isinstance(field, RadioField):
            _draw_radio(overlay, field, box)
        return True

    except FieldSignError as exc:
        exc.context.setdefault("field_id", field.id)
        exc.context.setdefault("field_type", field.type)
        exc.context.setdefault("page", field.page)
        raise


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def burn(
    document_bytes: BytesLike,
    fields: Iterable[PlacedField],
    *,
    clamp_pages: bool = True,
) -> BurnResult:
    """
    Burn every field into ``document_bytes`` in a single pass.

    An empty field list still re-serializes the document; a second empty
    burn of that output is a fixed point.

    Raises:
        DecodeError, UnsupportedImageFormat, PageIndexOutOfRange,
        ValidationError (malformed image payload).
    """
    fields = list(fields)

    with open_document(document_bytes) as pdf:
        job = _Burn(pdf, clamp_pages=clamp_pages)
        drawn = sum(1 for field in fields if _burn_field(job, field))
        result = job.finish()

    logger.info(
        "fields_burned",
        extra={
            "field_count": len(fields),
            "drawn_count": drawn,
            "pages": job.pages_touched,
            "signed_hash": result.hash,
        },
    )
    return result


def burn_one(
    document_bytes: BytesLike,
    field: PlacedField,
    image_bytes: Optional[bytes] = None,
    *,
    clamp_pages: bool = True,
) -> BurnResult:
    """
    Burn a single field.

    ``image_bytes``, when given, replaces the field's own data-URI payload
    for SIGNATURE and IMAGE fields.
    """
    with open_document(document_bytes) as pdf:
        job = _Burn(pdf, clamp_pages=clamp_pages)
        _burn_field(job, field, image_bytes)
        return job.finish()


def burn_signature(
    document_bytes: BytesLike,
    coordinates: Coordinates,
    image_bytes: bytes,
    *,
    clamp_pages: bool = True,
) -> BurnResult:
    """
    Fit and draw a signature image into a box already in page space.

    ``coordinates`` must come from the transformer: points, bottom-left
    origin. No further flip is applied here.
    """
    if not image_bytes:
        raise ValidationError("Signature image is empty")

    raster = load_raster(bytes(image_bytes))

    with open_document(document_bytes) as pdf:
        job = _Burn(pdf, clamp_pages=clamp_pages)
        overlay = job.overlay(coordinates.page)
        _draw_raster(overlay, raster, overlay.place(coordinates))
        return job.finish()


def renders_content(field: PlacedField) -> bool:
    """Whether burning ``field`` would draw anything at all."""
    if isinstance(field, UnknownField):
        return False
    if isinstance(field, RadioField):
        return field.checked
    return bool(field.value)
