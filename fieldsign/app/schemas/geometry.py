from pydantic import BaseModel, ConfigDict, Field


class PageGeometry(BaseModel):
    """
    Size of one page, read from the decoded document at transform time.

    Never stored: the document bytes change after every burn, so the
    geometry is re-derived on each call.
    """

    page_index: int = Field(..., ge=0)
    width_pt: float = Field(..., gt=0)
    height_pt: float = Field(..., gt=0)

    # Lower-left corner of the media box. Zero for almost every document.
    origin_x: float = 0.0
    origin_y: float = 0.0

    model_config = ConfigDict(frozen=True)


class Coordinates(BaseModel):
    """
    A resolved field box in PDF points, bottom-left origin.

    (x, y) is the lower-left corner of the box relative to the page's
    media box origin.
    """

    x: float
    y: float
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)
    page: int = 0

    model_config = ConfigDict(frozen=True)
