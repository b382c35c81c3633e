"""Page geometry for the invoice layout (points, top-left origin, US Letter)."""

from __future__ import annotations

PAGE_W = 612
PAGE_H = 792

TOP_MARGIN = 50.0
X_LEFT = 50.0

# Logo box and the vertical space it reserves above the company header
LOGO_X = 50.0
LOGO_Y = 50.0
LOGO_W = 120.0
LOGO_H = 60.0
LOGO_RESERVED_H = 70.0

FONT_SIZE_COMPANY = 20
FONT_SIZE_TITLE = 24
FONT_SIZE_BILL_TO = 16
FONT_SIZE_NORMAL = 12
FONT_SIZE_TOTAL = 14
FONT_SIZE_FOOTER = 10

# Company lines, relative to the header cursor
COMPANY_DETAIL_OFFSETS = (30.0, 45.0, 60.0)

# Right column title block
X_TITLE = 400.0
TITLE_NUMBER_OFFSET = 30.0
TITLE_LINE_H = 15.0

# Client block
CLIENT_MIN_Y = 160.0
CLIENT_HEADER_GAP = 100.0
CLIENT_NAME_OFFSET = 20.0
CLIENT_EMAIL_OFFSET = 35.0
CLIENT_OPTIONAL_OFFSET = 50.0
CLIENT_BASE_H = 55.0
CLIENT_LINE_H = 15.0

# Item table
TABLE_GAP = 30.0
X_DESCRIPTION = 50.0
X_QTY = 300.0
X_RATE = 350.0
X_AMOUNT = 450.0
TABLE_RIGHT = 550.0
TABLE_RULE_OFFSET = 15.0
TABLE_FIRST_ROW_OFFSET = 30.0
ITEM_ROW_H = 20.0

# Totals
TOTALS_GAP = 20.0
X_TOTALS_LABEL = 350.0
TOTALS_TEXT_OFFSET = 10.0
TOTAL_ROW_H = 20.0

FOOTER_OFFSET = 80.0

CURRENCY_SYMBOL = "$"

COMPANY_DEFAULTS = {
    "name": "Your Company Name",
    "address": "123 Business St, City, State 12345",
    "email": "hello@yourcompany.com",
    "phone": "+1 (555) 123-4567",
}
