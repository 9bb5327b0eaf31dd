import base64
import io

import pikepdf
from PIL import Image


# ------------------------------------------------------------------
# Documents
# ------------------------------------------------------------------

def blank_pdf(page_sizes=((595.28, 841.89),)) -> bytes:
    """Produce a PDF with one blank page per entry of ``page_sizes``."""
    buffer = io.BytesIO()
    with pikepdf.new() as pdf:
        for size in page_sizes:
            pdf.add_blank_page(page_size=size)
        pdf.save(buffer)
    return buffer.getvalue()


def a4_pdf(pages: int = 1) -> bytes:
    return blank_pdf(((595.28, 841.89),) * pages)


def letter_pdf() -> bytes:
    return blank_pdf(((612, 792),))


def offset_mediabox_pdf() -> bytes:
    """One page whose media box does not start at the origin."""
    buffer = io.BytesIO()
    with pikepdf.new() as pdf:
        page = pdf.add_blank_page(page_size=(200, 300))
        page.obj.MediaBox = pikepdf.Array([100, 50, 300, 350])
        pdf.save(buffer)
    return buffer.getvalue()


def zero_page_pdf() -> bytes:
    buffer = io.BytesIO()
    with pikepdf.new() as pdf:
        pdf.save(buffer)
    return buffer.getvalue()


def page_operators(pdf_bytes: bytes, index: int = 0):
    with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
        return [
            (list(operands), str(operator))
            for operands, operator in pikepdf.parse_content_stream(pdf.pages[index])
        ]


def image_xobjects(pdf_bytes: bytes, index: int = 0):
    """(width, height, filter) of every image XObject on one page."""
    with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
        resources = pdf.pages[index].obj.get("/Resources", pikepdf.Dictionary())
        xobjects = resources.get("/XObject", pikepdf.Dictionary())
        found = []
        for name in xobjects.keys():
            xobj = xobjects[name]
            found.append(
                (
                    int(xobj.Width),
                    int(xobj.Height),
                    str(xobj.get("/Filter", "")),
                    "/SMask" in xobj,
                )
            )
        return found


# ------------------------------------------------------------------
# Images
# ------------------------------------------------------------------

def png_bytes(width: int = 300, height: int = 100, mode: str = "RGBA") -> bytes:
    color = (20, 40, 160, 255) if mode == "RGBA" else (20, 40, 160)
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def jpeg_bytes(width: int = 120, height: int = 80) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (200, 10, 10)).save(buffer, format="JPEG")
    return buffer.getvalue()


def gif_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("P", (10, 10)).save(buffer, format="GIF")
    return buffer.getvalue()


def data_uri(data: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64," + base64.b64encode(data).decode("ascii")


def inherited_resources_pdf() -> bytes:
    """One page whose /Resources live on the /Pages node, not the page."""
    buffer = io.BytesIO()
    with pikepdf.new() as pdf:
        page = pdf.add_blank_page(page_size=(200, 200))
        font = pdf.make_indirect(
            pikepdf.Dictionary(
                Type=pikepdf.Name.Font,
                Subtype=pikepdf.Name.Type1,
                BaseFont=pikepdf.Name.Courier,
            )
        )
        pdf.Root.Pages.Resources = pikepdf.Dictionary(
            Font=pikepdf.Dictionary(F9=font)
        )
        if "/Resources" in page.obj:
            del page.obj.Resources
        page.obj.Contents = pdf.make_stream(b"BT /F9 12 Tf 10 10 Td (base) Tj ET")
        pdf.save(buffer)
    return buffer.getvalue()
