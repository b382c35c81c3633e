"""Exception types shared by the store, service and renderer."""

from __future__ import annotations


class InvoiceError(Exception):
    """Base class for invoice issuing failures."""


class ValidationError(InvoiceError, ValueError):
    """Raised when invoice input is incomplete or malformed."""


class InvoiceNotFoundError(InvoiceError, LookupError):
    def __init__(self, invoice_id: str) -> None:
        super().__init__(f"Invoice {invoice_id!r} not found")
        self.invoice_id = invoice_id


class RenderError(InvoiceError, OSError):
    """Raised when a document cannot be produced or written to its sink."""


class AssetError(InvoiceError):
    """Raised when the logo asset exists but cannot be read or decoded."""
