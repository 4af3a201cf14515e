"""Signature stamping — embed a raster signature into a template PDF.

Pure functions with no I/O beyond byte buffers. The UI reports the
click in top-left-origin units; PDF user space is bottom-left-origin,
so the y axis is flipped using the page height and the stamp height::

    pdf_x = left + x
    pdf_y = bottom + page_height - y - stamp_height
"""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

from pypdf import PdfReader, PdfWriter
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from contract_checkout.errors.definitions import ErrEmptyDocument, ErrPageOutOfRange
from contract_checkout.errors.flow_errors import IntegrityError

if TYPE_CHECKING:
    from pypdf import PageObject

    from contract_checkout.gateway.models import SignaturePlacement


def to_pdf_coordinates(
    placement: SignaturePlacement,
    page_height: float,
    stamp_height: float,
    *,
    origin: tuple[float, float] = (0.0, 0.0),
) -> tuple[float, float]:
    """Translate a top-left placement into the stamp's PDF lower-left corner.

    Args:
        placement: Scale-normalized placement (document units).
        page_height: Height of the target page in points.
        stamp_height: Height the stamp is drawn at.
        origin: Lower-left corner of the page's media box.
    """
    left, bottom = origin
    return left + placement.x, bottom + page_height - placement.y - stamp_height


def embed_signature(
    template_bytes: bytes,
    signature_png: bytes,
    placement: SignaturePlacement,
    *,
    stamp_width: float = 150.0,
    stamp_height: float = 50.0,
) -> bytes:
    """Return a copy of *template_bytes* with the signature drawn on it.

    Raises:
        IntegrityError: If the template cannot be parsed, the page does
            not exist, the image cannot be decoded or serialization fails.
    """
    if not template_bytes:
        raise ErrEmptyDocument
    try:
        return _embed(template_bytes, signature_png, placement, stamp_width, stamp_height)
    except IntegrityError:
        raise
    except Exception as exc:
        msg = f"could not stamp the signature onto the contract: {exc}"
        raise IntegrityError(msg) from exc


def _embed(
    template_bytes: bytes,
    signature_png: bytes,
    placement: SignaturePlacement,
    stamp_width: float,
    stamp_height: float,
) -> bytes:
    reader = PdfReader(io.BytesIO(template_bytes))
    if not 1 <= placement.page <= len(reader.pages):
        raise ErrPageOutOfRange

    writer = PdfWriter(clone_from=reader)
    page = writer.pages[placement.page - 1]
    box = page.mediabox
    origin = (float(box.left), float(box.bottom))
    x, y = to_pdf_coordinates(placement, float(box.height), stamp_height, origin=origin)

    page.merge_page(_stamp_overlay(page, signature_png, x, y, stamp_width, stamp_height))

    out = io.BytesIO()
    writer.write(out)
    return out.getvalue()


def _stamp_overlay(
    page: PageObject,
    signature_png: bytes,
    x: float,
    y: float,
    width: float,
    height: float,
) -> PageObject:
    """Render a transparent single-page PDF holding only the stamp."""
    box = page.mediabox
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=(float(box.right), float(box.top)))
    c.drawImage(ImageReader(io.BytesIO(signature_png)), x, y, width, height, mask="auto")
    c.showPage()
    c.save()
    return PdfReader(io.BytesIO(buf.getvalue())).pages[0]
