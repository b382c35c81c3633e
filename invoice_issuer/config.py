"""Runtime configuration loaded from environment variables."""

from __future__ import annotations

import os

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


def env_str(name: str, default: str) -> str:
    raw = os.getenv(name, "").strip()
    return raw or default


HOST = env_str("INVOICE_HOST", "0.0.0.0")
PORT = env_int("INVOICE_PORT", 3001, minimum=1)
LOG_LEVEL = env_str("INVOICE_LOG_LEVEL", "INFO").upper()

LOGO_PATH = env_str("INVOICE_LOGO_PATH", os.path.join(PROJECT_ROOT, "logo.png"))
STORAGE_DIR = env_str("INVOICE_STORAGE_DIR", os.path.join(PROJECT_ROOT, "invoices"))
DATA_FILE = env_str("INVOICE_DATA_FILE", os.path.join(PROJECT_ROOT, "data", "invoices.json"))

DEFAULT_MAX_CONCURRENT_RENDERS = max(4, min(32, os.cpu_count() or 4))
MAX_CONCURRENT_RENDERS = env_int(
    "INVOICE_MAX_CONCURRENT_RENDERS",
    DEFAULT_MAX_CONCURRENT_RENDERS,
    minimum=1,
)
MAX_INFLIGHT_RENDERS = env_int(
    "INVOICE_MAX_INFLIGHT_RENDERS",
    max(100, MAX_CONCURRENT_RENDERS * 4),
    minimum=1,
)
RENDER_QUEUE_TIMEOUT_MS = env_int("INVOICE_RENDER_QUEUE_TIMEOUT_MS", 120000, minimum=0)
RENDER_TIMEOUT_MS = env_int("INVOICE_RENDER_TIMEOUT_MS", 300000, minimum=1000)

MAX_BODY_BYTES = env_int("INVOICE_MAX_BODY_BYTES", 1024 * 1024, minimum=1024)
MAX_ITEMS = env_int("INVOICE_MAX_ITEMS", 1000, minimum=1)
PAGE_LIMIT_MAX = env_int("INVOICE_PAGE_LIMIT_MAX", 100, minimum=1)
LISTEN_BACKLOG = env_int("INVOICE_LISTEN_BACKLOG", 512, minimum=1)
