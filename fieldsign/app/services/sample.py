"""
Sample document generator.

Produces the one-page A4 "certificate of verification" template used to
try out field placement without uploading a document: a header band,
explanatory body text, and outlined placeholder boxes for a signature
and a date.
"""

from __future__ import annotations

import io
from typing import List, Tuple

import pikepdf
from pikepdf import Dictionary, Name

from fieldsign.app.utils.hashing import compute_document_hash

A4_POINTS = (595.276, 841.890)

_BODY_LINES = [
    "This document is a system-generated template used to demonstrate high-fidelity",
    "coordinate injection. All placement points are resolution-independent and mapped",
    "using the viewport-relative percentage engine.",
    "",
    "Please drag any of the tools from the sidebar and place them in the designated",
    "areas below to test the burn-in capability.",
]

# (x, y, width, height, label) in points, bottom-left origin.
PLACEHOLDERS: List[Tuple[float, float, float, float, str]] = [
    (50, 150, 200, 80, "PLACE SIGNATURE HERE"),
    (345, 150, 200, 25, "PLACE DATE HERE"),
]


def _text(font: str, size: float, x: float, y: float, rgb, line: str) -> bytes:
    literal = pikepdf.String(line).unparse().decode("latin-1")
    r, g, b = rgb
    return (
        f"{r} {g} {b} rg BT /{font} {size} Tf {x} {y} Td {literal} Tj ET\n"
    ).encode("latin-1")


def _content(document_id: str, page_height: float) -> bytes:
    parts = [
        f"0.05 0.1 0.2 rg 0 {page_height - 120:.3f} 595 120 re f\n".encode("ascii"),
        _text("F2", 24, 50, round(page_height - 60, 3), (1, 1, 1),
              "CERTIFICATE OF VERIFICATION"),
        _text("F1", 10, 50, round(page_height - 85, 3), (0.7, 0.7, 0.8),
              "INJECTION ENGINE SYSTEM TEMPLATE v2.1"),
    ]

    body_y = page_height - 200
    parts.append(
        _text("F2", 12, 50, round(body_y, 3), (0.2, 0.2, 0.2),
              f"Document ID: {document_id}")
    )
    for i, line in enumerate(_BODY_LINES):
        if line:
            parts.append(
                _text("F1", 11, 50, round(body_y - 40 - i * 20, 3),
                      (0.4, 0.4, 0.4), line)
            )

    for x, y, w, h, label in PLACEHOLDERS:
        parts.append(f"0.8 0.8 0.8 RG 1 w {x} {y} {w} {h} re S\n".encode("ascii"))
        parts.append(_text("F2", 8, x + 5, y - 10, (0.6, 0.6, 0.6), label))

    return b"".join(parts)


def generate_sample_pdf(document_id: str = "SYS-SAMPLE01") -> Tuple[bytes, str]:
    """
    Build the sample document.

    Output is deterministic for a given ``document_id``.

    Returns:
        (pdf_bytes, sha256_hex)
    """
    buffer = io.BytesIO()

    with pikepdf.new() as pdf:
        page = pdf.add_blank_page(page_size=A4_POINTS)

        regular = pdf.make_indirect(
            Dictionary(
                Type=Name.Font,
                Subtype=Name.Type1,
                BaseFont=Name.Helvetica,
                Encoding=Name.WinAnsiEncoding,
            )
        )
        bold = pdf.make_indirect(
            Dictionary(
                Type=Name.Font,
                Subtype=Name.Type1,
                BaseFont=Name("/Helvetica-Bold"),
                Encoding=Name.WinAnsiEncoding,
            )
        )

        page.obj.Resources = Dictionary(Font=Dictionary(F1=regular, F2=bold))
        page.obj.Contents = pdf.make_indirect(
            pikepdf.Stream(pdf, _content(document_id, A4_POINTS[1]))
        )

        pdf.save(buffer, deterministic_id=True)

    data = buffer.getvalue()
    return data, compute_document_hash(data)
