"""
Raster payload handling for SIGNATURE and IMAGE fields.

Payloads arrive as data URIs (or bare base64). They are decoded as PNG
first and JPEG second; anything else is rejected. Decoded images are
embedded as PDF image XObjects: JPEG data is passed through untouched,
everything else is stored as raw samples with the alpha channel split
into a soft mask.
"""

from __future__ import annotations

import base64
import binascii
import io
import re
from dataclasses import dataclass
from typing import Tuple

import pikepdf
from PIL import Image, UnidentifiedImageError
from pikepdf import Name

from fieldsign.app.core.errors import UnsupportedImageFormat, ValidationError
from fieldsign.app.schemas.geometry import Coordinates

_DATA_URI_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")

_JPEG_COLORSPACES = {
    "L": Name.DeviceGray,
    "RGB": Name.DeviceRGB,
}


@dataclass(frozen=True)
class RasterImage:
    """A decoded payload plus the bytes it was decoded from."""

    image: Image.Image
    source: bytes
    format: str

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def decode_image_payload(payload: str) -> bytes:
    """
    Strip an optional ``data:image/...;base64,`` prefix and decode.

    Raises:
        ValidationError: the payload is empty or not valid base64.
    """
    body = _WHITESPACE.sub("", _DATA_URI_PREFIX.sub("", payload.strip()))
    if not body:
        raise ValidationError("Image payload is empty")

    try:
        return base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError(
            f"Image payload is not valid base64: {exc}"
        ) from exc


def _open_as(data: bytes, fmt: str) -> Image.Image:
    image = Image.open(io.BytesIO(data), formats=[fmt])
    image.load()
    return image


def load_raster(data: bytes) -> RasterImage:
    """
    Decode ``data`` as PNG, falling back to JPEG.

    Raises:
        UnsupportedImageFormat: neither decoder accepts the bytes.
    """
    for fmt in ("PNG", "JPEG"):
        try:
            image = _open_as(data, fmt)
        except (UnidentifiedImageError, OSError, SyntaxError):
            continue
        return RasterImage(image=image, source=data, format=fmt)

    raise UnsupportedImageFormat(
        "Invalid image format. Please provide PNG or JPEG image.",
        context={"size": len(data)},
    )


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

def fit_image(
    image_width: float,
    image_height: float,
    box: Coordinates,
) -> Tuple[float, float, float, float]:
    """
    Fit an image into ``box`` without distortion and centre it.

    One scale factor is applied to both axes, so the drawn image keeps
    the source aspect ratio and never exceeds the box.

    Returns:
        (x, y, width, height) of the drawn image in the box's space.
    """
    if image_width <= 0 or image_height <= 0:
        raise UnsupportedImageFormat(
            "Image has no pixels",
            context={"width": image_width, "height": image_height},
        )

    scale = min(box.width / image_width, box.height / image_height)
    final_w = image_width * scale
    final_h = image_height * scale

    return (
        box.x + (box.width - final_w) / 2,
        box.y + (box.height - final_h) / 2,
        final_w,
        final_h,
    )


# ---------------------------------------------------------------------------
# Embedding
# ---------------------------------------------------------------------------

def _image_stream(
    pdf: pikepdf.Pdf,
    samples: bytes,
    width: int,
    height: int,
    colorspace: Name,
) -> pikepdf.Stream:
    stream = pikepdf.Stream(pdf, samples)
    stream.Type = Name.XObject
    stream.Subtype = Name.Image
    stream.Width = width
    stream.Height = height
    stream.ColorSpace = colorspace
    stream.BitsPerComponent = 8
    return stream


def embed_image(pdf: pikepdf.Pdf, raster: RasterImage) -> pikepdf.Stream:
    """Create an image XObject for ``raster`` inside ``pdf``."""
    image = raster.image
    width, height = image.size

    if raster.format == "JPEG" and image.mode in _JPEG_COLORSPACES:
        stream = pikepdf.Stream(pdf, b"")
        stream.write(raster.source, filter=Name.DCTDecode)
        stream.Type = Name.XObject
        stream.Subtype = Name.Image
        stream.Width = width
        stream.Height = height
        stream.ColorSpace = _JPEG_COLORSPACES[image.mode]
        stream.BitsPerComponent = 8
        return pdf.make_indirect(stream)

    has_alpha = image.mode in ("RGBA", "LA") or (
        image.mode == "P" and "transparency" in image.info
    )

    if image.mode in ("L", "LA"):
        base = image.convert("L")
        colorspace = Name.DeviceGray
    else:
        base = image.convert("RGB")
        colorspace = Name.DeviceRGB

    stream = _image_stream(pdf, base.tobytes(), width, height, colorspace)

    if has_alpha:
        alpha = image.convert("RGBA").getchannel("A")
        smask = _image_stream(
            pdf, alpha.tobytes(), width, height, Name.DeviceGray
        )
        stream.SMask = pdf.make_indirect(smask)

    return pdf.make_indirect(stream)
