"""
Field burn-in.

Covers the drawing contract per field type, aspect-preserving image
placement, input immutability, deterministic output and the failure
paths that must leave nothing half-written.
"""

import io

import pikepdf
import pytest

from fieldsign.app.core.errors import (
    DecodeError,
    PageIndexOutOfRange,
    UnsupportedImageFormat,
    ValidationError,
)
from fieldsign.app.schemas.fields import (
    DateField,
    ImageField,
    InputField,
    RadioField,
    SignatureField,
    TextField,
    UnknownField,
)
from fieldsign.app.schemas.geometry import Coordinates
from fieldsign.app.services.burner import (
    LINE_HEIGHT,
    RADIO_COLOR,
    burn,
    burn_font_size,
    burn_one,
    burn_signature,
    renders_content,
)
from fieldsign.app.utils.hashing import compute_document_hash
from fieldsign.tests.fixtures.pdf_factory import (
    a4_pdf,
    blank_pdf,
    data_uri,
    gif_bytes,
    image_xobjects,
    inherited_resources_pdf,
    jpeg_bytes,
    offset_mediabox_pdf,
    page_operators,
    png_bytes,
    zero_page_pdf,
)


def _ops(pdf_bytes, name, index=0):
    return [operands for operands, op in page_operators(pdf_bytes, index) if op == name]


def _floats(operands):
    return [float(v) for v in operands]


def _font_names(pdf_bytes, index=0):
    with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
        fonts = pdf.pages[index].obj.Resources.Font
        return sorted(str(fonts[k].BaseFont) for k in fonts.keys())


# ---------------------------------------------------------------------------
# Font sizing
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "height, expected",
    [(1, 6.0), (10, 6.0), (15, 9.0), (18.3, 10.98), (100, 11.0)],
)
def test_burn_font_size_is_clamped(height, expected):
    assert burn_font_size(height) == pytest.approx(expected)


# ---------------------------------------------------------------------------
# Document level contract
# ---------------------------------------------------------------------------

def test_result_hash_matches_content():
    result = burn(a4_pdf(), [])

    assert result.hash == compute_document_hash(result.content)


def test_empty_burn_is_a_fixed_point():
    first = burn(a4_pdf(), [])
    second = burn(first.content, [])

    assert second.content == first.content
    assert second.hash == first.hash


def test_burn_is_deterministic():
    source = a4_pdf()
    fields = [
        InputField(id="name", x=10, y=10, width=30, height=5, value="Jane Doe"),
        SignatureField(
            id="sig", x=10, y=80, width=25, height=12, value=data_uri(png_bytes())
        ),
    ]

    assert burn(source, fields).content == burn(source, fields).content


def test_replayed_burn_reproduces_recorded_hash():
    source = a4_pdf()
    field = InputField(id="name", x=10, y=10, width=30, height=5, value="Jane Doe")

    recorded = burn(source, [field]).hash

    assert all(burn(source, [field]).hash == recorded for _ in range(3))


def test_resource_names_are_lowest_free_index():
    field = InputField(id="a", x=0, y=0, width=50, height=5, value="x")
    image = SignatureField(
        id="sig", x=10, y=80, width=25, height=12, value=data_uri(png_bytes(4, 4))
    )

    first = burn(a4_pdf(), [field, image])
    second = burn(first.content, [field, image])

    with pikepdf.open(io.BytesIO(second.content)) as pdf:
        resources = pdf.pages[0].obj.Resources
        assert sorted(str(k) for k in resources.Font.keys()) == ["/FsF0", "/FsF1"]
        assert sorted(str(k) for k in resources.XObject.keys()) == ["/FsIm0", "/FsIm1"]


def test_input_bytes_are_not_modified():
    source = bytearray(a4_pdf())
    snapshot = bytes(source)

    burn(source, [InputField(id="a", x=0, y=0, width=50, height=5, value="x")])

    assert bytes(source) == snapshot


def test_burned_output_differs_from_input():
    source = a4_pdf()

    result = burn(source, [InputField(id="a", x=0, y=0, width=50, height=5, value="x")])

    assert result.hash != compute_document_hash(source)


def test_overlay_is_wrapped_in_saved_graphics_state():
    result = burn(a4_pdf(), [InputField(id="a", x=0, y=0, width=50, height=5, value="x")])

    operators = [op for _, op in page_operators(result.content)]
    assert operators[0] == "q"
    assert operators.count("q") == operators.count("Q")


@pytest.mark.parametrize("data", [b"not a pdf at all", b"\x89PNG\r\n\x1a\n"])
def test_undecodable_document_raises_decode_error(data):
    with pytest.raises(DecodeError):
        burn(data, [])


def test_document_without_pages_raises_decode_error():
    with pytest.raises(DecodeError):
        burn(zero_page_pdf(), [])


# ---------------------------------------------------------------------------
# Text fields
# ---------------------------------------------------------------------------

def test_input_field_is_bold_and_vertically_centred():
    field = InputField(id="name", x=0, y=0, width=50, height=10, value="Jane Doe")

    result = burn(blank_pdf(((200, 100),)), [field])

    (text,) = _ops(result.content, "Tj")
    assert bytes(text[0]) == b"Jane Doe"

    # Box: x=0, y=90, h=10 -> size 6, baseline 90 + 5 - 6 / 2.5
    (size_ops,) = _ops(result.content, "Tf")
    assert float(size_ops[1]) == pytest.approx(6.0)
    (td,) = _ops(result.content, "Td")
    assert _floats(td) == pytest.approx([4.0, 92.6])

    assert _font_names(result.content) == ["/Helvetica-Bold"]


def test_date_field_uses_regular_font():
    field = DateField(id="d", x=0, y=0, width=50, height=10, value="2024-03-01")

    result = burn(blank_pdf(((200, 100),)), [field])

    assert _font_names(result.content) == ["/Helvetica"]
    (text,) = _ops(result.content, "Tj")
    assert bytes(text[0]) == b"2024-03-01"


def test_text_field_draws_one_line_per_newline():
    field = TextField(
        id="notes", x=0, y=0, width=100, height=100, value="first\nsecond\nthird"
    )

    result = burn(blank_pdf(((100, 100),)), [field])

    lines = [bytes(ops[0]) for ops in _ops(result.content, "Tj")]
    assert lines == [b"first", b"second", b"third"]

    size = burn_font_size(100)
    baselines = [_floats(ops)[1] for ops in _ops(result.content, "Td")]
    assert baselines == pytest.approx(
        [100 - size * LINE_HEIGHT * (i + 1) for i in range(3)]
    )


def test_text_field_splits_crlf_line_breaks():
    field = TextField(
        id="notes", x=0, y=0, width=100, height=100, value="first\r\nsecond\rthird"
    )

    result = burn(blank_pdf(((100, 100),)), [field])

    lines = [bytes(ops[0]) for ops in _ops(result.content, "Tj")]
    assert lines == [b"first", b"second", b"third"]


def test_text_field_respects_media_box_origin():
    field = TextField(id="t", x=0, y=0, width=100, height=100, value="hello")

    result = burn(offset_mediabox_pdf(), [field])

    (td,) = _ops(result.content, "Td")
    assert _floats(td) == pytest.approx([104.0, 350 - 11 * LINE_HEIGHT])


def test_empty_text_draws_nothing():
    source = a4_pdf()

    result = burn(source, [InputField(id="a", x=0, y=0, width=10, height=5)])

    assert _ops(result.content, "Tj") == []
    assert result.content == burn(source, []).content


# ---------------------------------------------------------------------------
# Radio fields
# ---------------------------------------------------------------------------

def test_checked_radio_draws_filled_circle():
    field = RadioField(id="r", x=0, y=0, width=30, height=30, checked=True)

    result = burn(blank_pdf(((100, 100),)), [field])

    assert _floats(_ops(result.content, "rg")[0]) == pytest.approx(list(RADIO_COLOR))
    assert len(_ops(result.content, "c")) == 4
    assert len(_ops(result.content, "f")) == 1

    # Centre (15, 85), radius 10: the path starts at the right-most point.
    (start,) = _ops(result.content, "m")
    assert _floats(start) == pytest.approx([25.0, 85.0])


def test_unchecked_radio_draws_nothing():
    source = a4_pdf()

    result = burn(source, [RadioField(id="r", x=0, y=0, width=4, height=3)])

    assert result.content == burn(source, []).content


# ---------------------------------------------------------------------------
# Image fields
# ---------------------------------------------------------------------------

def test_signature_keeps_aspect_ratio():
    field = SignatureField(
        id="sig", x=10, y=80, width=25, height=12, value=data_uri(png_bytes(300, 100))
    )

    result = burn(blank_pdf(((595, 842),)), [field])

    (cm,) = _ops(result.content, "cm")
    w, _, _, h, x, y = _floats(cm)
    assert w == pytest.approx(148.75, abs=1e-3)
    assert h == pytest.approx(148.75 / 3, abs=1e-3)
    assert w / h == pytest.approx(3.0, rel=1e-3)
    assert x == pytest.approx(59.5, abs=1e-3)
    assert y == pytest.approx(67.36 + (101.04 - 148.75 / 3) / 2, abs=1e-3)

    assert image_xobjects(result.content) == [(300, 100, "/FlateDecode", True)]


def test_jpeg_payload_is_embedded_without_recompression():
    field = ImageField(
        id="logo", x=0, y=0, width=50, height=50,
        value=data_uri(jpeg_bytes(40, 20), "image/jpeg"),
    )

    result = burn(a4_pdf(), [field])

    assert image_xobjects(result.content) == [(40, 20, "/DCTDecode", False)]


def test_rgb_png_has_no_soft_mask():
    field = ImageField(
        id="logo", x=0, y=0, width=50, height=50,
        value=data_uri(png_bytes(8, 8, mode="RGB")),
    )

    result = burn(a4_pdf(), [field])

    assert image_xobjects(result.content) == [(8, 8, "/FlateDecode", False)]


def test_signature_without_value_is_skipped():
    source = a4_pdf()

    result = burn(source, [SignatureField(id="sig", x=0, y=0, width=25, height=12)])

    assert result.content == burn(source, []).content


def test_unsupported_image_raises_with_field_context():
    field = SignatureField(
        id="sig", page=0, x=0, y=0, width=25, height=12,
        value=data_uri(gif_bytes(), "image/gif"),
    )

    with pytest.raises(UnsupportedImageFormat) as excinfo:
        burn(a4_pdf(), [field])

    assert excinfo.value.context["field_id"] == "sig"
    assert excinfo.value.context["field_type"] == "SIGNATURE"


def test_malformed_image_payload_raises_validation_error():
    field = ImageField(id="img", x=0, y=0, width=5, height=5, value="data:image/png;base64,@@@")

    with pytest.raises(ValidationError):
        burn(a4_pdf(), [field])


def test_burn_one_prefers_explicit_image_bytes():
    field = SignatureField(id="sig", x=0, y=0, width=50, height=50)

    result = burn_one(a4_pdf(), field, png_bytes(20, 10))

    assert image_xobjects(result.content) == [(20, 10, "/FlateDecode", True)]


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------

def test_out_of_range_page_is_clamped_to_last_page():
    source = a4_pdf(pages=3)
    field = InputField(id="a", page=999, x=0, y=0, width=50, height=5, value="last")

    result = burn(source, [field])

    assert _ops(result.content, "Tj", index=2)
    assert _ops(result.content, "Tj", index=0) == []


def test_out_of_range_page_raises_when_clamping_disabled():
    field = InputField(id="a", page=3, x=0, y=0, width=50, height=5, value="x")

    with pytest.raises(PageIndexOutOfRange) as excinfo:
        burn(a4_pdf(pages=3), [field], clamp_pages=False)

    assert excinfo.value.context["field_id"] == "a"


def test_fields_on_several_pages_touch_only_those_pages():
    fields = [
        InputField(id="a", page=0, x=0, y=0, width=50, height=5, value="one"),
        InputField(id="b", page=2, x=0, y=0, width=50, height=5, value="three"),
    ]

    result = burn(a4_pdf(pages=3), fields)

    assert [bytes(o[0]) for o in _ops(result.content, "Tj", 0)] == [b"one"]
    assert _ops(result.content, "Tj", 1) == []
    assert [bytes(o[0]) for o in _ops(result.content, "Tj", 2)] == [b"three"]


# ---------------------------------------------------------------------------
# Unknown fields
# ---------------------------------------------------------------------------

def test_unknown_field_type_is_a_no_op():
    source = a4_pdf()

    result = burn(source, [UnknownField(type="CHECKBOX", id="cb")])

    assert result.content == burn(source, []).content


@pytest.mark.parametrize(
    "field, expected",
    [
        (UnknownField(type="CHECKBOX"), False),
        (RadioField(id="r", x=0, y=0, width=1, height=1), False),
        (RadioField(id="r", x=0, y=0, width=1, height=1, checked=True), True),
        (InputField(id="i", x=0, y=0, width=1, height=1), False),
        (InputField(id="i", x=0, y=0, width=1, height=1, value="v"), True),
        (SignatureField(id="s", x=0, y=0, width=1, height=1, value="  "), False),
    ],
)
def test_renders_content(field, expected):
    assert renders_content(field) is expected


# ---------------------------------------------------------------------------
# burn_signature
# ---------------------------------------------------------------------------

def test_burn_signature_does_not_flip_again():
    coords = Coordinates(x=59.5, y=67.36, width=148.75, height=101.04, page=0)

    result = burn_signature(blank_pdf(((595, 842),)), coords, png_bytes(300, 100))

    (cm,) = _ops(result.content, "cm")
    _, _, _, h, x, y = _floats(cm)
    assert x == pytest.approx(59.5, abs=1e-3)
    assert y == pytest.approx(67.36 + (101.04 - h) / 2, abs=1e-3)


def test_burn_signature_rejects_empty_image():
    coords = Coordinates(x=0, y=0, width=10, height=10)

    with pytest.raises(ValidationError):
        burn_signature(a4_pdf(), coords, b"")


# ---------------------------------------------------------------------------
# Inherited page resources
# ---------------------------------------------------------------------------

def test_inherited_resources_stay_reachable():
    field = InputField(id="a", x=0, y=0, width=50, height=10, value="added")

    result = burn(inherited_resources_pdf(), [field])

    assert _font_names(result.content) == ["/Courier", "/Helvetica-Bold"]
    texts = [bytes(ops[0]) for ops in _ops(result.content, "Tj")]
    assert texts == [b"base", b"added"]
