"""Invoice PDF rendering logic."""

from __future__ import annotations

import io
import logging
import os
from dataclasses import dataclass
from typing import BinaryIO, Optional, Union

from fpdf import FPDF
from PIL import Image

from .errors import AssetError, RenderError
from .fonts import FontManager
from .layout import ImageBox, PageLayout, Rule, TextLine, layout_invoice
from .models import Invoice
from .pdf_constants import PAGE_H, PAGE_W

logger = logging.getLogger(__name__)

Sink = Union[str, "os.PathLike[str]", BinaryIO]


@dataclass(frozen=True)
class RenderResult:
    extent: float
    size: int
    has_logo: bool


def read_logo(path: str) -> bytes:
    """Read and fully decode the logo image, raising AssetError if unusable."""
    try:
        with open(path, "rb") as handle:
            data = handle.read()
        with Image.open(io.BytesIO(data)) as image:
            image.load()
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise AssetError(f"Logo {path!r} is unreadable: {exc}") from exc
    return data


def load_logo(path: Optional[str]) -> Optional[bytes]:
    """Return the logo bytes, or None when it is absent or cannot be used."""
    if not path or not os.path.exists(path):
        return None
    try:
        return read_logo(path)
    except AssetError as exc:
        logger.warning("Could not load logo: %s", exc)
        return None


class InvoiceRenderer:
    def __init__(self, invoice: Invoice, logo: Optional[bytes] = None) -> None:
        self.invoice = invoice
        self.logo = logo
        self.layout: PageLayout = layout_invoice(invoice, has_logo=logo is not None)

        self.pdf = FPDF(unit="pt", format=(PAGE_W, PAGE_H))
        self.pdf.set_auto_page_break(False)
        # Pinned so the same invoice always serializes to the same bytes.
        self.pdf.creation_date = invoice.created_at
        self.pdf.set_title(f"Invoice {invoice.invoice_number}")
        self.pdf.add_page()

        self.fonts = FontManager(self.pdf)

    def _draw_image(self, box: ImageBox) -> None:
        self.pdf.image(io.BytesIO(self.logo), box.x, box.y, box.width, box.height)

    def _draw_rule(self, rule: Rule) -> None:
        self.pdf.set_draw_color(0, 0, 0)
        self.pdf.set_line_width(1)
        self.pdf.line(rule.x1, rule.y, rule.x2, rule.y)

    def _draw_text(self, line: TextLine) -> None:
        self.pdf.set_text_color(0, 0, 0)
        self.fonts.draw_text(line.x, line.y, line.text, line.size, bold=line.bold)

    def render(self) -> bytes:
        for element in self.layout.elements:
            if isinstance(element, ImageBox):
                self._draw_image(element)
            elif isinstance(element, Rule):
                self._draw_rule(element)
            else:
                self._draw_text(element)

        pdf_blob = self.pdf.output()
        if isinstance(pdf_blob, (bytes, bytearray)):
            return bytes(pdf_blob)
        raise RuntimeError(f"Unexpected PDF output type: {type(pdf_blob).__name__}")


def render_invoice_bytes(invoice: Invoice, logo_path: Optional[str] = None) -> bytes:
    return InvoiceRenderer(invoice, load_logo(logo_path)).render()


def _write_sink(sink: Sink, data: bytes) -> None:
    if hasattr(sink, "write"):
        sink.write(data)
        sink.flush()
        return
    with open(sink, "wb") as handle:
        handle.write(data)
        handle.flush()
        os.fsync(handle.fileno())


def render_invoice(invoice: Invoice, sink: Sink, logo_path: Optional[str] = None) -> RenderResult:
    """Render ``invoice`` as a one-page PDF and write it to ``sink``.

    ``sink`` is a filesystem path or a writable binary stream. Returns once
    the whole document has been written and flushed. Any failure is raised
    as :class:`RenderError`; a partially written file is left in place for
    the caller to discard.
    """
    logo = load_logo(logo_path)
    try:
        renderer = InvoiceRenderer(invoice, logo)
        data = renderer.render()
        _write_sink(sink, data)
    except Exception as exc:
        raise RenderError(f"Failed to render invoice {invoice.invoice_number}: {exc}") from exc
    return RenderResult(extent=renderer.layout.extent, size=len(data), has_logo=logo is not None)
