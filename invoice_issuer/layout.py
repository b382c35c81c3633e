"""Cursor-based flow layout for the one-page invoice document.

Every block is computed by a pure function that receives the cursor it
starts from and the content it shows, and returns a :class:`Block` holding
the elements to draw (with absolute offsets) and the cursor the following
block measures from. Blocks are composed top to bottom by
:func:`layout_invoice`; optional fields change a block's height and never
leave gaps, so every offset is known before the element is emitted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

from .formatting import fmt_date, fmt_money, fmt_qty
from .models import ClientInfo, CompanyInfo, Invoice, LineItem
from .pdf_constants import (
    CLIENT_BASE_H,
    CLIENT_EMAIL_OFFSET,
    CLIENT_HEADER_GAP,
    CLIENT_LINE_H,
    CLIENT_MIN_Y,
    CLIENT_NAME_OFFSET,
    CLIENT_OPTIONAL_OFFSET,
    COMPANY_DETAIL_OFFSETS,
    FONT_SIZE_BILL_TO,
    FONT_SIZE_COMPANY,
    FONT_SIZE_FOOTER,
    FONT_SIZE_NORMAL,
    FONT_SIZE_TITLE,
    FONT_SIZE_TOTAL,
    FOOTER_OFFSET,
    ITEM_ROW_H,
    LOGO_H,
    LOGO_RESERVED_H,
    LOGO_W,
    LOGO_X,
    LOGO_Y,
    TABLE_FIRST_ROW_OFFSET,
    TABLE_GAP,
    TABLE_RIGHT,
    TABLE_RULE_OFFSET,
    TITLE_LINE_H,
    TITLE_NUMBER_OFFSET,
    TOP_MARGIN,
    TOTAL_ROW_H,
    TOTALS_GAP,
    TOTALS_TEXT_OFFSET,
    X_AMOUNT,
    X_DESCRIPTION,
    X_LEFT,
    X_QTY,
    X_RATE,
    X_TITLE,
    X_TOTALS_LABEL,
)

FOOTER_TEXT = "Thank you for your business!"


@dataclass(frozen=True)
class TextLine:
    x: float
    y: float
    text: str
    size: int = FONT_SIZE_NORMAL
    bold: bool = False
    key: str = ""


@dataclass(frozen=True)
class Rule:
    x1: float
    y: float
    x2: float


@dataclass(frozen=True)
class ImageBox:
    x: float
    y: float
    width: float
    height: float


Element = Union[TextLine, Rule, ImageBox]


@dataclass(frozen=True)
class Block:
    name: str
    origin: float
    cursor: float
    elements: Tuple[Element, ...]

    @property
    def lines(self) -> Tuple[TextLine, ...]:
        return tuple(e for e in self.elements if isinstance(e, TextLine))

    def line(self, key: str) -> Optional[TextLine]:
        for element in self.lines:
            if element.key == key:
                return element
        return None


@dataclass(frozen=True)
class PageLayout:
    blocks: Tuple[Block, ...]

    @property
    def extent(self) -> float:
        return max(block.cursor for block in self.blocks)

    @property
    def elements(self) -> Tuple[Element, ...]:
        return tuple(element for block in self.blocks for element in block.elements)

    def block(self, name: str) -> Block:
        for block in self.blocks:
            if block.name == name:
                return block
        raise KeyError(name)

    def line(self, key: str) -> Optional[TextLine]:
        for block in self.blocks:
            found = block.line(key)
            if found is not None:
                return found
        return None


def header_block(company: CompanyInfo, has_logo: bool, top: float = TOP_MARGIN) -> Block:
    elements = []
    cursor = top
    if has_logo:
        elements.append(ImageBox(LOGO_X, LOGO_Y, LOGO_W, LOGO_H))
        cursor += LOGO_RESERVED_H

    elements.append(TextLine(X_LEFT, cursor, company.name, FONT_SIZE_COMPANY, key="company_name"))
    details = (
        ("company_address", company.address),
        ("company_email", company.email),
        ("company_phone", company.phone),
    )
    for offset, (key, text) in zip(COMPANY_DETAIL_OFFSETS, details):
        elements.append(TextLine(X_LEFT, cursor + offset, text, FONT_SIZE_NORMAL, key=key))

    # Later blocks anchor on where the company lines start, not where they end.
    return Block("header", top, cursor, tuple(elements))


def title_block(invoice: Invoice, header_cursor: float) -> Block:
    origin = max(TOP_MARGIN, header_cursor)
    elements = [TextLine(X_TITLE, origin, "INVOICE", FONT_SIZE_TITLE, key="title")]

    y = origin + TITLE_NUMBER_OFFSET
    elements.append(TextLine(X_TITLE, y, f"Invoice #: {invoice.invoice_number}", key="invoice_number"))
    y += TITLE_LINE_H
    elements.append(TextLine(X_TITLE, y, f"Date: {fmt_date(invoice.created_at)}", key="created_at"))
    if invoice.due_date is not None:
        y += TITLE_LINE_H
        elements.append(TextLine(X_TITLE, y, f"Due Date: {fmt_date(invoice.due_date)}", key="due_date"))

    return Block("title", origin, y + TITLE_LINE_H, tuple(elements))


def client_block_height(client: ClientInfo) -> float:
    present = sum(1 for value in (client.address, client.phone) if value)
    return CLIENT_BASE_H + present * CLIENT_LINE_H


def client_block(client: ClientInfo, header_cursor: float) -> Block:
    origin = max(CLIENT_MIN_Y, header_cursor + CLIENT_HEADER_GAP)
    elements = [
        TextLine(X_LEFT, origin, "Bill To:", FONT_SIZE_BILL_TO, key="bill_to"),
        TextLine(X_LEFT, origin + CLIENT_NAME_OFFSET, client.name, key="client_name"),
        TextLine(X_LEFT, origin + CLIENT_EMAIL_OFFSET, client.email, key="client_email"),
    ]

    slot = origin + CLIENT_OPTIONAL_OFFSET
    for key, value in (("client_address", client.address), ("client_phone", client.phone)):
        if not value:
            continue
        elements.append(TextLine(X_LEFT, slot, value, key=key))
        slot += CLIENT_LINE_H

    return Block("client", origin, origin + client_block_height(client), tuple(elements))


def item_table_block(items: Sequence[LineItem], client_cursor: float) -> Block:
    origin = client_cursor + TABLE_GAP
    elements = [
        TextLine(X_DESCRIPTION, origin, "Description", key="th_description"),
        TextLine(X_QTY, origin, "Qty", key="th_qty"),
        TextLine(X_RATE, origin, "Rate", key="th_rate"),
        TextLine(X_AMOUNT, origin, "Amount", key="th_amount"),
        Rule(X_DESCRIPTION, origin + TABLE_RULE_OFFSET, TABLE_RIGHT),
    ]

    y = origin + TABLE_FIRST_ROW_OFFSET
    for index, item in enumerate(items):
        key = f"row_{index}"
        elements.extend(
            (
                TextLine(X_DESCRIPTION, y, item.description, key=key),
                TextLine(X_QTY, y, fmt_qty(item.quantity), key=f"{key}_qty"),
                TextLine(X_RATE, y, fmt_money(item.rate), key=f"{key}_rate"),
                TextLine(X_AMOUNT, y, fmt_money(item.amount), key=f"{key}_amount"),
            )
        )
        y += ITEM_ROW_H

    return Block("items", origin, y, tuple(elements))


def totals_block(invoice: Invoice, table_cursor: float) -> Block:
    origin = table_cursor + TOTALS_GAP
    elements = [Rule(X_TOTALS_LABEL, origin, TABLE_RIGHT)]

    y = origin + TOTALS_TEXT_OFFSET
    elements.append(TextLine(X_TOTALS_LABEL, y, "Subtotal:", key="subtotal"))
    elements.append(TextLine(X_AMOUNT, y, fmt_money(invoice.subtotal), key="subtotal_value"))

    if invoice.tax > 0:
        y += TOTAL_ROW_H
        elements.append(TextLine(X_TOTALS_LABEL, y, "Tax:", key="tax"))
        elements.append(TextLine(X_AMOUNT, y, fmt_money(invoice.tax), key="tax_value"))

    y += TOTAL_ROW_H
    elements.append(TextLine(X_TOTALS_LABEL, y, "Total:", FONT_SIZE_TOTAL, bold=True, key="total"))
    elements.append(TextLine(X_AMOUNT, y, fmt_money(invoice.total), FONT_SIZE_TOTAL, bold=True, key="total_value"))

    return Block("totals", origin, y, tuple(elements))


def footer_block(totals_cursor: float) -> Block:
    y = totals_cursor + FOOTER_OFFSET
    line = TextLine(X_LEFT, y, FOOTER_TEXT, FONT_SIZE_FOOTER, key="footer")
    return Block("footer", y, y + FONT_SIZE_FOOTER, (line,))


def layout_invoice(invoice: Invoice, has_logo: bool = False) -> PageLayout:
    header = header_block(invoice.company_info, has_logo)
    title = title_block(invoice, header.cursor)
    # The client block is clamped by the header only; the title column never
    # grows past the header with the fixed content it carries.
    client = client_block(invoice.client_info, header.cursor)
    items = item_table_block(invoice.items, client.cursor)
    totals = totals_block(invoice, items.cursor)
    footer = footer_block(totals.cursor)
    return PageLayout((header, title, client, items, totals, footer))
