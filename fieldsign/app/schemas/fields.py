"""
Placed field schema.

A field is a user-placed annotation with a type tag, a page index and a
normalized geometry: percentages (0-100) of the page's rendered box, with
(x, y) the top-left corner in UI space.

The type tag selects one variant of a closed union; each variant carries
only the payload meaningful to it. Tags outside the known set parse into
UnknownField so that newer clients never break an older burner.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    field_validator,
)


class FieldType(str, Enum):
    INPUT = "INPUT"
    TEXT = "TEXT"
    SIGNATURE = "SIGNATURE"
    DATE = "DATE"
    IMAGE = "IMAGE"
    RADIO = "RADIO"


# Default placement sizes (width, height) in percent of the page box,
# as used by the placement UI when a field is dropped onto a page.
_DEFAULT_SIZES: Dict[FieldType, Tuple[float, float]] = {
    FieldType.RADIO: (4.0, 3.0),
    FieldType.SIGNATURE: (25.0, 12.0),
    FieldType.TEXT: (30.0, 15.0),
}


def default_size(field_type: FieldType) -> Tuple[float, float]:
    """Return the (width, height) percentages a new field starts with."""
    return _DEFAULT_SIZES.get(field_type, (20.0, 5.0))


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------

class _PlacedField(BaseModel):
    id: str = Field(..., min_length=1)
    page: int = 0
    x: float = Field(..., ge=0, le=100)
    y: float = Field(..., ge=0, le=100)
    width: float = Field(..., gt=0, le=100)
    height: float = Field(..., gt=0, le=100)

    model_config = ConfigDict(frozen=True, extra="ignore")


class InputField(_PlacedField):
    type: Literal["INPUT"] = "INPUT"
    value: str = ""


class TextField(_PlacedField):
    type: Literal["TEXT"] = "TEXT"
    value: str = ""


class DateField(_PlacedField):
    type: Literal["DATE"] = "DATE"
    value: str = ""

    @field_validator("value")
    @classmethod
    def value_is_iso_date(cls, v: str) -> str:
        if v:
            try:
                date.fromisoformat(v)
            except ValueError as exc:
                raise ValueError(
                    f"DATE value must be an ISO date (YYYY-MM-DD), got {v!r}"
                ) from exc
        return v


class RadioField(_PlacedField):
    type: Literal["RADIO"] = "RADIO"
    checked: bool = False


class _RasterField(_PlacedField):
    value: Optional[str] = Field(
        None,
        description="data-URI encoded PNG or JPEG; absent until filled in",
    )

    @field_validator("value")
    @classmethod
    def blank_means_absent(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class SignatureField(_RasterField):
    type: Literal["SIGNATURE"] = "SIGNATURE"


class ImageField(_RasterField):
    type: Literal["IMAGE"] = "IMAGE"


class UnknownField(BaseModel):
    """A field whose tag this version does not know how to render."""

    type: str
    id: Optional[str] = None
    page: int = 0

    model_config = ConfigDict(frozen=True, extra="allow")


# ---------------------------------------------------------------------------
# Tagged union
# ---------------------------------------------------------------------------

_KNOWN_TAGS = frozenset(t.value for t in FieldType)


def _field_tag(value: Any) -> str:
    if isinstance(value, dict):
        raw = value.get("type")
    else:
        raw = getattr(value, "type", None)
    return raw if raw in _KNOWN_TAGS else "UNKNOWN"


PlacedField = Annotated[
    Union[
        Annotated[InputField, Tag("INPUT")],
        Annotated[TextField, Tag("TEXT")],
        Annotated[DateField, Tag("DATE")],
        Annotated[RadioField, Tag("RADIO")],
        Annotated[SignatureField, Tag("SIGNATURE")],
        Annotated[ImageField, Tag("IMAGE")],
        Annotated[UnknownField, Tag("UNKNOWN")],
    ],
    Discriminator(_field_tag),
]

RasterField = Union[SignatureField, ImageField]
TextualField = Union[InputField, TextField, DateField]

_field_adapter: TypeAdapter[PlacedField] = TypeAdapter(PlacedField)


def parse_field(data: Dict[str, Any]) -> PlacedField:
    """Validate a raw field mapping into its typed variant."""
    return _field_adapter.validate_python(data)
