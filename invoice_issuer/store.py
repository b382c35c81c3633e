"""JSON-file record store for issued invoices."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from typing import Any, Dict, List, Optional
from uuid import uuid4

from .errors import InvoiceNotFoundError
from .models import Invoice, validate_status
from .pagination import Page, paginate

logger = logging.getLogger(__name__)


class JsonInvoiceStore:
    """Invoice records kept as a JSON list in a single file.

    The file is re-read on every call and replaced atomically on every
    write, so several stores may point at the same path within a process.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)
        if not os.path.exists(path):
            self._write_raw([])

    def _read_raw(self) -> List[Dict[str, Any]]:
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return []
        except json.JSONDecodeError:
            logger.warning("Invoice store %s is corrupt; treating it as empty", self.path)
            return []
        return data if isinstance(data, list) else []

    def _write_raw(self, rows: List[Dict[str, Any]]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".invoices-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(rows, handle, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    @staticmethod
    def _index_of(rows: List[Dict[str, Any]], invoice_id: str) -> int:
        for index, row in enumerate(rows):
            if row.get("id") == invoice_id:
                return index
        return -1

    def _update(self, invoice_id: str, **fields: Any) -> Invoice:
        with self._lock:
            rows = self._read_raw()
            index = self._index_of(rows, invoice_id)
            if index < 0:
                raise InvoiceNotFoundError(invoice_id)
            rows[index].update(fields)
            self._write_raw(rows)
            return Invoice.from_dict(rows[index])

    def create(self, invoice: Invoice) -> Invoice:
        stored = invoice.with_changes(id=invoice.id or uuid4().hex)
        with self._lock:
            rows = self._read_raw()
            if self._index_of(rows, stored.id) >= 0:
                raise ValueError(f"Invoice with id={stored.id} already exists")
            rows.append(stored.to_dict())
            self._write_raw(rows)
        return stored

    def find_by_id(self, invoice_id: str) -> Optional[Invoice]:
        rows = self._read_raw()
        index = self._index_of(rows, invoice_id)
        if index < 0:
            return None
        return Invoice.from_dict(rows[index])

    def find(self, status: Optional[str] = None, page: int = 1, limit: int = 10) -> Page[Invoice]:
        """Return one page of invoices, newest first, optionally by status."""
        invoices = [Invoice.from_dict(row) for row in self._read_raw()]
        if status:
            invoices = [invoice for invoice in invoices if invoice.status == status]
        invoices.sort(key=lambda invoice: invoice.created_at, reverse=True)
        return paginate(invoices, page, limit)

    def update_status(self, invoice_id: str, status: str) -> Invoice:
        return self._update(invoice_id, status=validate_status(status))

    def set_pdf_path(self, invoice_id: str, pdf_path: Optional[str]) -> Invoice:
        return self._update(invoice_id, pdfPath=pdf_path)

    def delete(self, invoice_id: str) -> bool:
        with self._lock:
            rows = self._read_raw()
            remaining = [row for row in rows if row.get("id") != invoice_id]
            if len(remaining) == len(rows):
                return False
            self._write_raw(remaining)
        return True
