"""Invoice value objects and their JSON wire format."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import ValidationError
from .formatting import parse_date, parse_datetime
from .pdf_constants import COMPANY_DEFAULTS

STATUSES = ("draft", "sent", "paid")
DEFAULT_STATUS = "draft"


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class ClientInfo:
    name: str
    email: str
    address: Optional[str] = None
    phone: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ClientInfo":
        if not isinstance(data, Mapping):
            raise ValidationError("Client name and email are required")
        name = _optional_text(data.get("name"))
        email = _optional_text(data.get("email"))
        if not name or not email:
            raise ValidationError("Client name and email are required")
        return cls(
            name=name,
            email=email,
            address=_optional_text(data.get("address")),
            phone=_optional_text(data.get("phone")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "email": self.email, "address": self.address, "phone": self.phone}


@dataclass(frozen=True)
class CompanyInfo:
    name: str = COMPANY_DEFAULTS["name"]
    address: str = COMPANY_DEFAULTS["address"]
    email: str = COMPANY_DEFAULTS["email"]
    phone: str = COMPANY_DEFAULTS["phone"]

    @classmethod
    def from_dict(cls, data: Any) -> "CompanyInfo":
        if not isinstance(data, Mapping):
            return cls()
        values = {}
        for key, default in COMPANY_DEFAULTS.items():
            values[key] = _optional_text(data.get(key)) or default
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "address": self.address, "email": self.email, "phone": self.phone}


def _number(value: Any, label: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a number") from None
    if not math.isfinite(number):
        raise ValidationError(f"{label} must be a finite number")
    return number


def _plain_number(value: float) -> Any:
    return int(value) if float(value).is_integer() else value


@dataclass(frozen=True)
class LineItem:
    description: str
    quantity: float
    rate: float
    amount: float

    @classmethod
    def from_input(cls, data: Any, index: int) -> "LineItem":
        """Build an item from request input, computing its amount once."""
        if not isinstance(data, Mapping):
            raise ValidationError(f"items[{index}] must be an object")
        description = _optional_text(data.get("description"))
        if not description:
            raise ValidationError(f"items[{index}].description is required")
        quantity = _number(data.get("quantity"), f"items[{index}].quantity")
        rate = _number(data.get("rate"), f"items[{index}].rate")
        return cls(description=description, quantity=quantity, rate=rate, amount=quantity * rate)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LineItem":
        return cls(
            description=str(data["description"]),
            quantity=float(data["quantity"]),
            rate=float(data["rate"]),
            amount=float(data["amount"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "quantity": _plain_number(self.quantity),
            "rate": _plain_number(self.rate),
            "amount": _plain_number(self.amount),
        }


def generate_invoice_number(now: Optional[datetime] = None, epoch_ms: Optional[int] = None) -> str:
    now = now or datetime.now()
    if epoch_ms is None:
        epoch_ms = time.time_ns() // 1_000_000
    return f"INV-{now.year}{now.month:02d}-{str(epoch_ms)[-6:]}"


def validate_status(status: Any) -> str:
    if status not in STATUSES:
        raise ValidationError("Invalid status")
    return status


@dataclass(frozen=True)
class Invoice:
    invoice_number: str
    client_info: ClientInfo
    items: Tuple[LineItem, ...]
    subtotal: float
    total: float
    created_at: datetime
    company_info: CompanyInfo = field(default_factory=CompanyInfo)
    tax: float = 0.0
    status: str = DEFAULT_STATUS
    due_date: Optional[date] = None
    pdf_path: Optional[str] = None
    id: Optional[str] = None

    @classmethod
    def create(cls, payload: Mapping[str, Any], now: Optional[datetime] = None) -> "Invoice":
        """Validate creation input and compute amounts and totals."""
        client_info = ClientInfo.from_dict(payload.get("clientInfo"))

        raw_items = payload.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise ValidationError("At least one item is required")
        items = tuple(LineItem.from_input(raw, index) for index, raw in enumerate(raw_items))

        tax = 0.0
        if payload.get("tax") is not None:
            tax = _number(payload["tax"], "tax")
        if tax < 0:
            raise ValidationError("tax must not be negative")

        status = payload.get("status") or DEFAULT_STATUS
        validate_status(status)

        try:
            due_date = parse_date(payload.get("dueDate"))
        except (ValueError, OverflowError):
            raise ValidationError("dueDate must be a date") from None

        created_at = now or datetime.now(timezone.utc)
        subtotal = sum(item.amount for item in items)
        return cls(
            invoice_number=generate_invoice_number(created_at.astimezone()),
            client_info=client_info,
            company_info=CompanyInfo.from_dict(payload.get("companyInfo")),
            items=items,
            subtotal=subtotal,
            tax=tax,
            total=subtotal + tax,
            status=status,
            due_date=due_date,
            created_at=created_at,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Invoice":
        """Rebuild a stored invoice without recomputing any amount."""
        due_date = data.get("dueDate")
        return cls(
            id=data.get("id"),
            invoice_number=data["invoiceNumber"],
            client_info=ClientInfo(
                name=data["clientInfo"]["name"],
                email=data["clientInfo"]["email"],
                address=data["clientInfo"].get("address"),
                phone=data["clientInfo"].get("phone"),
            ),
            company_info=CompanyInfo.from_dict(data.get("companyInfo")),
            items=tuple(LineItem.from_dict(item) for item in data.get("items", [])),
            subtotal=float(data["subtotal"]),
            tax=float(data.get("tax") or 0.0),
            total=float(data["total"]),
            status=data.get("status", DEFAULT_STATUS),
            due_date=parse_date(due_date) if due_date else None,
            created_at=parse_datetime(data["createdAt"]),
            pdf_path=data.get("pdfPath"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "invoiceNumber": self.invoice_number,
            "clientInfo": self.client_info.to_dict(),
            "companyInfo": self.company_info.to_dict(),
            "items": [item.to_dict() for item in self.items],
            "subtotal": _plain_number(self.subtotal),
            "tax": _plain_number(self.tax),
            "total": _plain_number(self.total),
            "status": self.status,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "createdAt": self.created_at.isoformat(),
            "pdfPath": self.pdf_path,
        }

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "invoiceNumber": self.invoice_number,
            "clientName": self.client_info.name,
            "total": _plain_number(self.total),
            "status": self.status,
            "createdAt": self.created_at.isoformat(),
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "downloadUrl": self.download_url,
        }

    @property
    def download_url(self) -> str:
        return f"/api/invoices/{self.id}/download"

    @property
    def pdf_filename(self) -> str:
        return f"invoice-{self.invoice_number}.pdf"

    def with_changes(self, **changes: Any) -> "Invoice":
        return replace(self, **changes)
