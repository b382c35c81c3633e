"""Formatting and parsing helpers for amounts, quantities and dates."""

from __future__ import annotations

import locale
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional, Union

from dateutil import parser as dateutil_parser

from .pdf_constants import CURRENCY_SYMBOL

logger = logging.getLogger(__name__)


def init_locale() -> None:
    """Switch LC_TIME to the environment locale so short dates follow it."""
    try:
        locale.setlocale(locale.LC_TIME, "")
    except locale.Error as exc:
        logger.warning("Unsupported locale settings, dates use the C locale: %s", exc)


def fmt_money(amount: float, symbol: str = CURRENCY_SYMBOL) -> str:
    return f"{symbol}{amount:.2f}"


def fmt_qty(qty: Any) -> str:
    try:
        quantity = float(qty)
        if quantity.is_integer():
            return str(int(quantity))
        return format(Decimal(repr(quantity)), "f")
    except Exception:
        return str(qty)


def fmt_date(value: Union[date, datetime, str, None]) -> str:
    """Render a date with the process locale's short date format.

    Aware datetimes are shown in the local time zone. Strings are parsed
    first and returned unchanged when they are not dates.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return raw
        try:
            value = dateutil_parser.parse(raw)
        except (ValueError, OverflowError):
            return raw
    if isinstance(value, datetime) and value.tzinfo is not None:
        value = value.astimezone()
    return value.strftime("%x")


def parse_date(raw: Any) -> Optional[date]:
    """Parse a due date from user input; ``None`` and blank mean no date."""
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    text = str(raw).strip()
    if not text:
        return None
    return dateutil_parser.parse(text).date()


def parse_datetime(raw: str) -> datetime:
    return dateutil_parser.isoparse(raw)
