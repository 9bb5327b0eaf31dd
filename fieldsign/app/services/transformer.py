"""
Coordinate transformation from UI placement to PDF page space.

UI placement is expressed as percentages of the rendered page box with
the origin at the top-left. PDF drawing uses points (1/72 inch) with the
origin at the bottom-left. The vertical flip between the two happens in
``resolve`` and nowhere else.
"""

from __future__ import annotations

import pikepdf

from fieldsign.app.core.errors import PageIndexOutOfRange
from fieldsign.app.schemas.fields import PlacedField
from fieldsign.app.schemas.geometry import Coordinates, PageGeometry
from fieldsign.app.services.documents import BytesLike, open_document


def clamp_page_index(index: int, count: int, *, clamp: bool = True) -> int:
    """
    Map a requested page index onto ``[0, count - 1]``.

    Raises:
        PageIndexOutOfRange: ``index`` is out of range and ``clamp`` is off.
    """
    if 0 <= index < count:
        return index

    if not clamp:
        raise PageIndexOutOfRange(
            f"Page index {index} is outside the document",
            context={"page": index, "page_count": count},
        )

    return max(0, min(count - 1, index))


def read_page_geometry(
    pdf: pikepdf.Pdf,
    page_index: int,
    *,
    clamp: bool = True,
) -> PageGeometry:
    """Read the media box of one page of an open document."""
    index = clamp_page_index(page_index, len(pdf.pages), clamp=clamp)
    box = pikepdf.Rectangle(pdf.pages[index].mediabox)

    return PageGeometry(
        page_index=index,
        width_pt=abs(box.width),
        height_pt=abs(box.height),
        origin_x=min(box.llx, box.urx),
        origin_y=min(box.lly, box.ury),
    )


def page_geometry(
    document_bytes: BytesLike,
    page_index: int,
    *,
    clamp: bool = True,
) -> PageGeometry:
    """Decode ``document_bytes`` and read the geometry of one page."""
    with open_document(document_bytes) as pdf:
        return read_page_geometry(pdf, page_index, clamp=clamp)


def resolve(geometry: PageGeometry, field: PlacedField) -> Coordinates:
    """
    Convert a field's percentage box into page-space points.

    The returned y is the bottom edge of the box measured from the bottom
    of the page: ``H - (y% * H + h% * H)``.
    """
    page_w = geometry.width_pt
    page_h = geometry.height_pt

    x_pt = field.x / 100 * page_w
    y_top_pt = field.y / 100 * page_h
    width_pt = field.width / 100 * page_w
    height_pt = field.height / 100 * page_h

    return Coordinates(
        x=x_pt,
        y=page_h - (y_top_pt + height_pt),
        width=width_pt,
        height=height_pt,
        page=geometry.page_index,
    )


def resolve_field(
    document_bytes: BytesLike,
    field: PlacedField,
    *,
    clamp: bool = True,
) -> Coordinates:
    """Resolve ``field`` against the page it names in ``document_bytes``."""
    return resolve(page_geometry(document_bytes, field.page, clamp=clamp), field)
