"""HTTP server entrypoints for issuing and downloading invoices."""

from __future__ import annotations

import atexit
import json
import logging
import multiprocessing as mp
import os
import re
import threading
from concurrent.futures import ProcessPoolExecutor, TimeoutError as FutureTimeoutError
from concurrent.futures.process import BrokenProcessPool
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import parse_qs, urlsplit

from .config import (
    DATA_FILE,
    LISTEN_BACKLOG,
    LOGO_PATH,
    MAX_BODY_BYTES as MAX_BODY_BYTES_CONFIG,
    MAX_CONCURRENT_RENDERS,
    MAX_INFLIGHT_RENDERS,
    MAX_ITEMS as MAX_ITEMS_CONFIG,
    PAGE_LIMIT_MAX,
    RENDER_QUEUE_TIMEOUT_MS,
    RENDER_TIMEOUT_MS,
    STORAGE_DIR,
)
from .errors import InvoiceNotFoundError, RenderError, ValidationError
from .formatting import init_locale
from .models import Invoice, validate_status
from .net import is_client_disconnect, stream_file
from .service import InvoiceService
from .store import JsonInvoiceStore

logger = logging.getLogger(__name__)

RENDER_INFLIGHT_SEMAPHORE = threading.BoundedSemaphore(MAX_INFLIGHT_RENDERS)
RENDER_EXECUTOR_LOCK = threading.Lock()
RENDER_EXECUTOR: Optional[ProcessPoolExecutor] = None
ErrorResponse = Tuple[int, Dict[str, Any]]

INVOICE_ROUTE = re.compile(r"^/api/invoices/(?P<id>[^/]+)(?P<action>/download|/status)?/?$")
COLLECTION_ROUTES = ("/api/invoices", "/api/invoices/")


class DependencyError(RuntimeError):
    """Raised when a required runtime dependency is missing."""


class RenderUnavailableError(RuntimeError):
    """Raised when the render pool cannot take or finish a job in time."""

    def __init__(self, status: int, error: str, detail: str, **extra: Any) -> None:
        super().__init__(detail)
        self.status = status
        self.body = {"error": error, "detail": detail, **extra}


def load_render_invoice() -> Callable[..., Any]:
    try:
        from .rendering import render_invoice
    except ModuleNotFoundError as exc:
        if exc.name in ("fpdf", "PIL"):
            raise DependencyError(
                f"Missing dependency '{exc.name}'. Install project dependencies with "
                "'pip install -e .'."
            ) from exc
        raise
    return render_invoice


def require_unicode_font() -> str:
    from .fonts import FontManager

    path = FontManager.regular_font_path()
    if not path:
        raise DependencyError(
            "Unicode font not found. Set INVOICE_FONT_PATH to a valid TTF file."
        )
    return path


def create_render_executor() -> ProcessPoolExecutor:
    return ProcessPoolExecutor(
        max_workers=MAX_CONCURRENT_RENDERS,
        mp_context=mp.get_context("spawn"),
        initializer=init_locale,
    )


def get_render_executor() -> ProcessPoolExecutor:
    global RENDER_EXECUTOR
    with RENDER_EXECUTOR_LOCK:
        if RENDER_EXECUTOR is None:
            RENDER_EXECUTOR = create_render_executor()
        return RENDER_EXECUTOR


def restart_render_executor(previous: ProcessPoolExecutor) -> ProcessPoolExecutor:
    global RENDER_EXECUTOR
    with RENDER_EXECUTOR_LOCK:
        if RENDER_EXECUTOR is previous:
            try:
                previous.shutdown(wait=False, cancel_futures=True)
            except Exception:
                logger.debug("Ignoring error while shutting down broken render pool", exc_info=True)
            RENDER_EXECUTOR = create_render_executor()
        if RENDER_EXECUTOR is None:
            RENDER_EXECUTOR = create_render_executor()
        return RENDER_EXECUTOR


def submit_render_job(invoice: Invoice, path: str, logo_path: Optional[str]):
    render_invoice = load_render_invoice()
    executor = get_render_executor()
    try:
        return executor.submit(render_invoice, invoice, path, logo_path)
    except BrokenProcessPool:
        return restart_render_executor(executor).submit(render_invoice, invoice, path, logo_path)


def shutdown_render_executor() -> None:
    global RENDER_EXECUTOR
    with RENDER_EXECUTOR_LOCK:
        executor = RENDER_EXECUTOR
        RENDER_EXECUTOR = None
    if executor is not None:
        try:
            executor.shutdown(wait=False, cancel_futures=True)
        except Exception:
            logger.debug("Ignoring error while shutting down render pool", exc_info=True)


atexit.register(shutdown_render_executor)


def pooled_render(invoice: Invoice, path: str, logo_path: Optional[str]) -> Any:
    """Run one render in the worker pool, bounded by the in-flight limit."""
    acquired = RENDER_INFLIGHT_SEMAPHORE.acquire(timeout=RENDER_QUEUE_TIMEOUT_MS / 1000.0)
    if not acquired:
        retry_after_seconds = max(1, (RENDER_QUEUE_TIMEOUT_MS + 999) // 1000)
        raise RenderUnavailableError(
            503,
            "server_busy",
            "Render queue is full; retry shortly.",
            retry_after_ms=RENDER_QUEUE_TIMEOUT_MS,
            retry_after_seconds=retry_after_seconds,
            max_concurrent_renders=MAX_CONCURRENT_RENDERS,
            max_inflight_renders=MAX_INFLIGHT_RENDERS,
        )

    future = None
    try:
        future = submit_render_job(invoice, path, logo_path)
        return future.result(timeout=RENDER_TIMEOUT_MS / 1000.0)
    except FutureTimeoutError:
        if future is not None:
            future.cancel()
        raise RenderUnavailableError(
            504,
            "render_timeout",
            f"Render exceeded timeout of {RENDER_TIMEOUT_MS} ms.",
        ) from None
    except BrokenProcessPool:
        restart_render_executor(get_render_executor())
        raise RenderUnavailableError(
            503,
            "render_pool_restarting",
            "Render worker pool restarted; retry shortly.",
        ) from None
    finally:
        RENDER_INFLIGHT_SEMAPHORE.release()


def validate_invoice_payload(
    body: bytes,
    max_items: int,
) -> Tuple[Optional[Dict[str, Any]], Optional[ErrorResponse]]:
    try:
        payload = json.loads(body.decode("utf-8"))
    except UnicodeDecodeError:
        return None, (
            400,
            {"error": "invalid_encoding", "detail": "Body must be UTF-8 encoded JSON."},
        )
    except json.JSONDecodeError as exc:
        return None, (
            400,
            {
                "error": "invalid_json",
                "detail": f"{exc.msg} (line {exc.lineno}, column {exc.colno})",
            },
        )

    if not isinstance(payload, dict):
        return None, (
            400,
            {"error": "invalid_payload", "detail": "JSON root must be an object."},
        )

    items = payload.get("items")
    if items is not None and not isinstance(items, list):
        return None, (
            400,
            {"error": "invalid_payload", "detail": "'items' must be an array."},
        )

    if items and len(items) > max_items:
        return None, (
            413,
            {
                "error": "invoice_too_large",
                "detail": f"Invoice has {len(items)} items; maximum is {max_items}.",
                "max_items": max_items,
            },
        )

    return payload, None


def parse_list_query(
    query: str,
    max_limit: int = PAGE_LIMIT_MAX,
) -> Tuple[Optional[Dict[str, Any]], Optional[ErrorResponse]]:
    params = parse_qs(query)

    def first(name: str) -> Optional[str]:
        values = params.get(name)
        return values[0] if values else None

    parsed: Dict[str, Any] = {"status": first("status") or None}
    for name, default in (("page", 1), ("limit", 10)):
        raw = first(name)
        if raw is None:
            parsed[name] = default
            continue
        try:
            value = int(raw)
        except ValueError:
            value = 0
        if value < 1:
            return None, (
                400,
                {"error": "invalid_query", "detail": f"'{name}' must be a positive integer."},
            )
        parsed[name] = value
    parsed["limit"] = min(parsed["limit"], max_limit)

    if parsed["status"] is not None:
        try:
            validate_status(parsed["status"])
        except ValidationError as exc:
            return None, (400, {"error": "invalid_status", "detail": str(exc)})

    return parsed, None


def build_service(render: Callable[..., Any] = pooled_render) -> InvoiceService:
    return InvoiceService(
        JsonInvoiceStore(DATA_FILE),
        storage_dir=STORAGE_DIR,
        logo_path=LOGO_PATH,
        render=render,
    )


class InvoiceHandler(BaseHTTPRequestHandler):
    MAX_BODY_BYTES = MAX_BODY_BYTES_CONFIG
    MAX_ITEMS = MAX_ITEMS_CONFIG

    @property
    def service(self) -> InvoiceService:
        return self.server.service  # type: ignore[attr-defined]

    def _write_response(
        self,
        status: int,
        content_type: str,
        body: bytes,
        headers: Optional[Dict[str, str]] = None,
    ) -> bool:
        try:
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            for name, value in (headers or {}).items():
                self.send_header(name, value)
            self.end_headers()
            self.wfile.write(body)
            return True
        except Exception as exc:
            if is_client_disconnect(exc):
                return False
            raise

    def _send_json(self, status: int, payload: Dict[str, Any]) -> bool:
        body = json.dumps(payload).encode("utf-8")
        return self._write_response(status, "application/json", body)

    def _send_not_found(self, detail: str = "Unsupported endpoint.") -> None:
        self._send_json(404, {"error": "not_found", "detail": detail})

    def _read_body(self) -> Optional[bytes]:
        header = self.headers.get("Content-Length")
        if header is None:
            self._send_json(
                411,
                {
                    "error": "missing_content_length",
                    "detail": "Content-Length header is required.",
                },
            )
            return None

        try:
            content_length = int(header)
        except ValueError:
            self._send_json(
                400,
                {
                    "error": "invalid_content_length",
                    "detail": "Content-Length must be an integer.",
                },
            )
            return None

        if content_length <= 0:
            self._send_json(400, {"error": "empty_body", "detail": "Request body cannot be empty."})
            return None

        if content_length > self.MAX_BODY_BYTES:
            self._send_json(
                413,
                {
                    "error": "payload_too_large",
                    "detail": f"Body exceeds {self.MAX_BODY_BYTES} bytes.",
                },
            )
            return None

        try:
            return self.rfile.read(content_length)
        except Exception as exc:
            if is_client_disconnect(exc):
                return None
            raise

    def _read_payload(self) -> Optional[Dict[str, Any]]:
        body = self._read_body()
        if body is None:
            return None
        payload, validation_error = validate_invoice_payload(body, self.MAX_ITEMS)
        if validation_error is not None:
            status, payload_body = validation_error
            self._send_json(status, payload_body)
            return None
        return payload

    def _run(self, action: Callable[[], None]) -> None:
        try:
            action()
        except ValidationError as exc:
            self._send_json(400, {"error": "invalid_payload", "detail": str(exc)})
        except InvoiceNotFoundError:
            self._send_json(404, {"error": "not_found", "detail": "Invoice not found"})
        except RenderUnavailableError as exc:
            self._send_json(exc.status, exc.body)
        except RenderError as exc:
            logger.error("Render failed: %s", exc)
            self._send_json(500, {"error": "render_failed", "detail": str(exc)})
        except Exception as exc:
            if is_client_disconnect(exc):
                return
            logger.exception("Unhandled error for %s %s", self.command, self.path)
            self._send_json(500, {"error": "internal_error", "detail": str(exc)})

    def _create_invoice(self) -> None:
        payload = self._read_payload()
        if payload is None:
            return
        invoice = self.service.create(payload)
        self._send_json(
            201,
            {
                "message": "Invoice created successfully",
                "invoice": {
                    "id": invoice.id,
                    "invoiceNumber": invoice.invoice_number,
                    "clientName": invoice.client_info.name,
                    "total": invoice.to_dict()["total"],
                    "status": invoice.status,
                    "createdAt": invoice.created_at.isoformat(),
                    "downloadUrl": invoice.download_url,
                },
            },
        )

    def _list_invoices(self, query: str) -> None:
        params, error = parse_list_query(query)
        if error is not None:
            self._send_json(*error)
            return
        page = self.service.list(**params)
        self._send_json(
            200,
            {
                "invoices": [invoice.summary() for invoice in page.items],
                "pagination": page.as_dict(),
            },
        )

    def _get_invoice(self, invoice_id: str) -> None:
        invoice = self.service.get(invoice_id)
        self._send_json(200, {**invoice.to_dict(), "downloadUrl": invoice.download_url})

    def _download_invoice(self, invoice_id: str) -> None:
        invoice, path = self.service.download(invoice_id)
        try:
            handle = open(path, "rb")
        except FileNotFoundError:
            # Deleted after the lookup; render it again once.
            invoice, path = self.service.download(invoice_id)
            handle = open(path, "rb")
        with handle:
            size = os.fstat(handle.fileno()).st_size
            try:
                self.send_response(200)
                self.send_header("Content-Type", "application/pdf")
                self.send_header("Content-Length", str(size))
                self.send_header(
                    "Content-Disposition",
                    f'attachment; filename="{invoice.pdf_filename}"',
                )
                self.end_headers()
            except Exception as exc:
                if is_client_disconnect(exc):
                    return
                raise
            stream_file(handle, self.wfile)

    def _update_status(self, invoice_id: str) -> None:
        body = self._read_body()
        if body is None:
            return
        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            self._send_json(400, {"error": "invalid_json", "detail": "Body must be a JSON object."})
            return
        status = payload.get("status") if isinstance(payload, dict) else None
        try:
            invoice = self.service.update_status(invoice_id, status)
        except ValidationError as exc:
            self._send_json(400, {"error": "invalid_status", "detail": str(exc)})
            return
        self._send_json(200, {"message": "Invoice status updated", "invoice": invoice.to_dict()})

    def _delete_invoice(self, invoice_id: str) -> None:
        self.service.delete(invoice_id)
        self._send_json(200, {"message": "Invoice deleted successfully"})

    def _route(self) -> Tuple[str, Optional[str], Optional[str], str]:
        parts = urlsplit(self.path)
        match = INVOICE_ROUTE.match(parts.path)
        if match:
            return parts.path, match.group("id"), match.group("action"), parts.query
        return parts.path, None, None, parts.query

    def do_GET(self) -> None:
        path, invoice_id, action, query = self._route()
        if path in ("/health", "/healthz"):
            self._send_json(
                200,
                {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()},
            )
        elif path in COLLECTION_ROUTES:
            self._run(lambda: self._list_invoices(query))
        elif invoice_id and action is None:
            self._run(lambda: self._get_invoice(invoice_id))
        elif invoice_id and action == "/download":
            self._run(lambda: self._download_invoice(invoice_id))
        else:
            self._send_not_found()

    def do_POST(self) -> None:
        path, _, _, _ = self._route()
        if path not in COLLECTION_ROUTES:
            self._send_not_found()
            return
        self._run(self._create_invoice)

    def do_PATCH(self) -> None:
        _, invoice_id, action, _ = self._route()
        if not invoice_id or action != "/status":
            self._send_not_found()
            return
        self._run(lambda: self._update_status(invoice_id))

    def do_DELETE(self) -> None:
        _, invoice_id, action, _ = self._route()
        if not invoice_id or action is not None:
            self._send_not_found()
            return
        self._run(lambda: self._delete_invoice(invoice_id))

    def handle_one_request(self) -> None:
        try:
            super().handle_one_request()
        except Exception as exc:
            if is_client_disconnect(exc):
                return
            raise

    def log_message(self, format: str, *args: Any) -> None:
        return


class InvoiceHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_address = True
    request_queue_size = LISTEN_BACKLOG

    def __init__(self, address: Tuple[str, int], service: InvoiceService) -> None:
        super().__init__(address, InvoiceHandler)
        self.service = service


def run(host: str = "0.0.0.0", port: int = 3001) -> None:
    load_render_invoice()
    require_unicode_font()
    get_render_executor()
    server = InvoiceHTTPServer((host, port), build_service())
    logger.info("Invoice API server listening on http://%s:%s", host, port)
    server.serve_forever()
