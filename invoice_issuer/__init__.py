"""Public package API for issuing and rendering invoices."""

from __future__ import annotations

from typing import Any, Optional

from .errors import AssetError, InvoiceError, InvoiceNotFoundError, RenderError, ValidationError
from .layout import PageLayout, layout_invoice
from .models import ClientInfo, CompanyInfo, Invoice, LineItem


def render_invoice(invoice: Invoice, sink: Any, logo_path: Optional[str] = None) -> Any:
    from .rendering import render_invoice as _render_invoice

    return _render_invoice(invoice, sink, logo_path)


def run(host: str = "0.0.0.0", port: int = 3001) -> None:
    from .server import run as _run

    _run(host, port)


__all__ = [
    "AssetError",
    "ClientInfo",
    "CompanyInfo",
    "Invoice",
    "InvoiceError",
    "InvoiceNotFoundError",
    "LineItem",
    "PageLayout",
    "RenderError",
    "ValidationError",
    "layout_invoice",
    "render_invoice",
    "run",
]
