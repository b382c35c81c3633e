"""Invoice issuing workflow: validate, total, persist and render."""

from __future__ import annotations

import logging
import os
import tempfile
from typing import Any, Callable, Mapping, Optional, Tuple

from .errors import InvoiceNotFoundError
from .models import Invoice, validate_status
from .pagination import Page
from .store import JsonInvoiceStore

logger = logging.getLogger(__name__)

RenderFn = Callable[[Invoice, str, Optional[str]], Any]


def _default_render(invoice: Invoice, path: str, logo_path: Optional[str]) -> Any:
    from .rendering import render_invoice

    return render_invoice(invoice, path, logo_path)


class InvoiceService:
    def __init__(
        self,
        store: JsonInvoiceStore,
        storage_dir: str,
        logo_path: Optional[str] = None,
        render: RenderFn = _default_render,
    ) -> None:
        self.store = store
        self.storage_dir = storage_dir
        self.logo_path = logo_path
        self.render = render

    def _artifact_path(self, invoice: Invoice) -> str:
        return os.path.join(self.storage_dir, invoice.pdf_filename)

    def _render_and_record(self, invoice: Invoice) -> Invoice:
        os.makedirs(self.storage_dir, exist_ok=True)
        path = self._artifact_path(invoice)
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{invoice.pdf_filename}.", suffix=".tmp", dir=self.storage_dir
        )
        os.close(fd)
        try:
            self.render(invoice, tmp_path, self.logo_path)
            os.replace(tmp_path, path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        return self.store.set_pdf_path(invoice.id, path)

    def _require(self, invoice_id: str) -> Invoice:
        invoice = self.store.find_by_id(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    def create(self, payload: Mapping[str, Any]) -> Invoice:
        invoice = self.store.create(Invoice.create(payload))
        invoice = self._render_and_record(invoice)
        logger.info("Invoice created: %s (%s) total=%.2f", invoice.invoice_number, invoice.id, invoice.total)
        return invoice

    def list(self, status: Optional[str] = None, page: int = 1, limit: int = 10) -> Page[Invoice]:
        return self.store.find(status=status, page=page, limit=limit)

    def get(self, invoice_id: str) -> Invoice:
        return self._require(invoice_id)

    def download(self, invoice_id: str) -> Tuple[Invoice, str]:
        """Return the invoice and its artifact, re-rendering a missing file."""
        invoice = self._require(invoice_id)
        if not invoice.pdf_path or not os.path.exists(invoice.pdf_path):
            logger.info("Regenerating PDF for invoice %s", invoice.invoice_number)
            invoice = self._render_and_record(invoice)
        return invoice, invoice.pdf_path

    def update_status(self, invoice_id: str, status: Any) -> Invoice:
        return self.store.update_status(invoice_id, validate_status(status))

    def delete(self, invoice_id: str) -> None:
        invoice = self._require(invoice_id)
        if invoice.pdf_path and os.path.exists(invoice.pdf_path):
            os.unlink(invoice.pdf_path)
        self.store.delete(invoice_id)
        logger.info("Invoice deleted: %s", invoice.invoice_number)
