"""Font discovery and text drawing helpers."""

from __future__ import annotations

import os
import threading
from typing import List, Optional

from fpdf import FPDF

from .config import PROJECT_ROOT

# Text baselines sit this fraction of the font size below the line top.
ASCENT_RATIO = 0.8


def find_font_path(env_var: str, candidates: List[str]) -> Optional[str]:
    override = os.getenv(env_var)
    if override and os.path.exists(override):
        return override

    for path in candidates:
        if os.path.exists(path):
            return path
    return None


FONT_INIT_LOCK = threading.Lock()


class FontManager:
    FAMILY = "InvoiceFont"
    BUNDLED_REGULAR = os.path.join(PROJECT_ROOT, "fonts", "DejaVuSans.ttf")
    BUNDLED_BOLD = os.path.join(PROJECT_ROOT, "fonts", "DejaVuSans-Bold.ttf")
    SYSTEM_REGULAR_CANDIDATES = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/dejavu/DejaVuSans.ttf",
        "/Library/Fonts/DejaVuSans.ttf",
    ]
    SYSTEM_BOLD_CANDIDATES = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf",
        "/Library/Fonts/DejaVuSans-Bold.ttf",
    ]

    @classmethod
    def regular_font_path(cls) -> Optional[str]:
        return find_font_path(
            "INVOICE_FONT_PATH",
            [cls.BUNDLED_REGULAR, *cls.SYSTEM_REGULAR_CANDIDATES],
        )

    @classmethod
    def bold_font_path(cls) -> Optional[str]:
        return find_font_path(
            "INVOICE_FONT_BOLD_PATH",
            [cls.BUNDLED_BOLD, *cls.SYSTEM_BOLD_CANDIDATES],
        )

    def __init__(self, pdf: FPDF) -> None:
        self.pdf = pdf
        self.family = self.FAMILY
        self.has_bold = False

        regular_path = self.regular_font_path()
        if not regular_path:
            # Core PDF fonts only cover Latin-1, so client names could not be drawn.
            raise RuntimeError(
                "Unicode font not found. Set INVOICE_FONT_PATH to a valid TTF file."
            )

        bold_path = self.bold_font_path()

        with FONT_INIT_LOCK:
            self.pdf.add_font(self.FAMILY, "", regular_path)
            if bold_path:
                self.pdf.add_font(self.FAMILY, "B", bold_path)
                self.has_bold = True

    def draw_text(self, x: float, top: float, text: str, size: int, bold: bool = False) -> None:
        """Draw ``text`` with its line box starting at ``top``."""
        style = "B" if bold and self.has_bold else ""
        self.pdf.set_font(self.family, style, size)
        baseline = top + size * ASCENT_RATIO
        self.pdf.text(x, baseline, text)
        if bold and not self.has_bold:
            self.pdf.text(x + 0.4, baseline, text)
