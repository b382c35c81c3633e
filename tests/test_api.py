import http.client
import json
import os
import tempfile
import threading
import unittest

from invoice_issuer.errors import RenderError
from invoice_issuer.server import InvoiceHTTPServer, parse_list_query, validate_invoice_payload
from invoice_issuer.service import InvoiceService
from invoice_issuer.store import JsonInvoiceStore


class ApiValidationTests(unittest.TestCase):
    def _json_bytes(self, payload: object) -> bytes:
        return json.dumps(payload).encode("utf-8")

    def test_accepts_valid_payload(self) -> None:
        payload, error = validate_invoice_payload(
            self._json_bytes({"items": [{"description": "Work", "quantity": 1, "rate": 20}]}),
            max_items=100,
        )

        self.assertIsNone(error)
        assert payload is not None
        self.assertIn("items", payload)

    def test_rejects_invalid_utf8(self) -> None:
        _, error = validate_invoice_payload(b"\xff", max_items=100)

        self.assertIsNotNone(error)
        assert error is not None
        self.assertEqual(error[0], 400)
        self.assertEqual(error[1]["error"], "invalid_encoding")

    def test_rejects_invalid_json(self) -> None:
        _, error = validate_invoice_payload(b'{"items":', max_items=100)

        assert error is not None
        self.assertEqual(error[0], 400)
        self.assertEqual(error[1]["error"], "invalid_json")

    def test_rejects_non_object_root(self) -> None:
        _, error = validate_invoice_payload(self._json_bytes(["bad-root"]), max_items=100)

        assert error is not None
        self.assertEqual(error[0], 400)
        self.assertEqual(error[1]["error"], "invalid_payload")

    def test_rejects_non_array_items(self) -> None:
        _, error = validate_invoice_payload(self._json_bytes({"items": "bad"}), max_items=100)

        assert error is not None
        self.assertEqual(error[0], 400)
        self.assertEqual(error[1]["error"], "invalid_payload")

    def test_rejects_too_many_items(self) -> None:
        items = [{"description": "x", "quantity": 1, "rate": 1}] * 11
        _, error = validate_invoice_payload(self._json_bytes({"items": items}), max_items=10)

        assert error is not None
        self.assertEqual(error[0], 413)
        self.assertEqual(error[1]["error"], "invoice_too_large")
        self.assertEqual(error[1]["max_items"], 10)


class ListQueryTests(unittest.TestCase):
    def test_defaults(self) -> None:
        params, error = parse_list_query("")

        self.assertIsNone(error)
        self.assertEqual(params, {"status": None, "page": 1, "limit": 10})

    def test_parses_and_caps_limit(self) -> None:
        params, error = parse_list_query("page=2&limit=500&status=paid", max_limit=50)

        self.assertIsNone(error)
        self.assertEqual(params, {"status": "paid", "page": 2, "limit": 50})

    def test_rejects_bad_values(self) -> None:
        for query in ("page=0", "limit=abc", "status=void"):
            with self.subTest(query=query):
                params, error = parse_list_query(query)
                self.assertIsNone(params)
                assert error is not None
                self.assertEqual(error[0], 400)


def fake_render(invoice, path, logo_path):
    with open(path, "wb") as handle:
        handle.write(b"%PDF-1.3 " + invoice.invoice_number.encode("ascii"))


class ApiServerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.service = InvoiceService(
            JsonInvoiceStore(os.path.join(self.tmp.name, "invoices.json")),
            storage_dir=os.path.join(self.tmp.name, "invoices"),
            render=fake_render,
        )
        self.server = InvoiceHTTPServer(("127.0.0.1", 0), self.service)
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()

    def tearDown(self) -> None:
        self.server.shutdown()
        self.server.server_close()
        self.thread.join(timeout=5)
        self.tmp.cleanup()

    def _request(self, method: str, path: str, body: object = None):
        conn = http.client.HTTPConnection("127.0.0.1", self.server.server_address[1], timeout=10)
        headers = {}
        data = None
        if body is not None:
            data = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"
        try:
            conn.request(method, path, body=data, headers=headers)
            response = conn.getresponse()
            return response.status, dict(response.getheaders()), response.read()
        finally:
            conn.close()

    def _create(self, **extra):
        payload = {
            "clientInfo": {"name": "Globex", "email": "ap@globex.test"},
            "items": [{"description": "Design", "quantity": 2, "rate": 50}],
        }
        payload.update(extra)
        status, _, body = self._request("POST", "/api/invoices", payload)
        self.assertEqual(status, 201)
        return json.loads(body)["invoice"]

    def test_health(self) -> None:
        status, _, body = self._request("GET", "/health")

        self.assertEqual(status, 200)
        self.assertEqual(json.loads(body)["status"], "OK")

    def test_create_and_fetch_invoice(self) -> None:
        created = self._create(tax=8.25)

        self.assertEqual(created["total"], 108.25)
        self.assertEqual(created["status"], "draft")
        self.assertEqual(created["downloadUrl"], f"/api/invoices/{created['id']}/download")

        status, _, body = self._request("GET", f"/api/invoices/{created['id']}")
        fetched = json.loads(body)
        self.assertEqual(status, 200)
        self.assertEqual(fetched["subtotal"], 100)
        self.assertEqual(fetched["items"][0]["amount"], 100)

    def test_create_rejects_missing_client_fields(self) -> None:
        status, _, body = self._request(
            "POST",
            "/api/invoices",
            {"clientInfo": {"name": "Globex"}, "items": [{"description": "x", "quantity": 1, "rate": 1}]},
        )

        self.assertEqual(status, 400)
        self.assertEqual(json.loads(body)["error"], "invalid_payload")

    def test_list_invoices_with_status_filter(self) -> None:
        self._create()
        paid = self._create(status="paid")

        status, _, body = self._request("GET", "/api/invoices?status=paid&page=1&limit=5")
        data = json.loads(body)

        self.assertEqual(status, 200)
        self.assertEqual([inv["id"] for inv in data["invoices"]], [paid["id"]])
        self.assertEqual(data["pagination"], {"current": 1, "pages": 1, "total": 1})
        self.assertEqual(data["invoices"][0]["clientName"], "Globex")

    def test_download_streams_pdf_attachment(self) -> None:
        created = self._create()

        status, headers, body = self._request("GET", created["downloadUrl"])

        self.assertEqual(status, 200)
        self.assertEqual(headers["Content-Type"], "application/pdf")
        self.assertEqual(
            headers["Content-Disposition"],
            f'attachment; filename="invoice-{created["invoiceNumber"]}.pdf"',
        )
        self.assertTrue(body.startswith(b"%PDF"))

    def test_download_regenerates_missing_file(self) -> None:
        created = self._create()
        os.unlink(self.service.get(created["id"]).pdf_path)

        status, _, body = self._request("GET", created["downloadUrl"])

        self.assertEqual(status, 200)
        self.assertIn(created["invoiceNumber"].encode("ascii"), body)

    def test_download_rerenders_file_removed_before_streaming(self) -> None:
        created = self._create()
        download = self.service.download
        paths = []

        def download_then_lose_file(invoice_id):
            invoice, path = download(invoice_id)
            paths.append(path)
            if len(paths) == 1:
                os.unlink(path)
            return invoice, path

        self.service.download = download_then_lose_file
        with self.assertLogs("invoice_issuer.service", level="INFO"):
            status, _, body = self._request("GET", created["downloadUrl"])

        self.assertEqual(status, 200)
        self.assertEqual(len(paths), 2)
        self.assertIn(created["invoiceNumber"].encode("ascii"), body)

    def test_download_reports_failed_regeneration(self) -> None:
        created = self._create()
        os.unlink(self.service.get(created["id"]).pdf_path)

        def broken_render(invoice, path, logo_path):
            raise RenderError("sink unavailable")

        self.service.render = broken_render
        with self.assertLogs("invoice_issuer.server", level="ERROR"):
            status, _, body = self._request("GET", created["downloadUrl"])

        self.assertEqual(status, 500)
        self.assertEqual(json.loads(body)["error"], "render_failed")

    def test_update_status(self) -> None:
        created = self._create()

        status, _, body = self._request("PATCH", f"/api/invoices/{created['id']}/status", {"status": "paid"})
        self.assertEqual(status, 200)
        self.assertEqual(json.loads(body)["invoice"]["status"], "paid")

        status, _, body = self._request("PATCH", f"/api/invoices/{created['id']}/status", {"status": "void"})
        self.assertEqual(status, 400)
        self.assertEqual(json.loads(body)["error"], "invalid_status")

    def test_delete_invoice(self) -> None:
        created = self._create()

        status, _, _ = self._request("DELETE", f"/api/invoices/{created['id']}")
        self.assertEqual(status, 200)

        status, _, body = self._request("GET", f"/api/invoices/{created['id']}")
        self.assertEqual(status, 404)
        self.assertEqual(json.loads(body)["error"], "not_found")

    def test_unknown_routes(self) -> None:
        self.assertEqual(self._request("GET", "/nope")[0], 404)
        self.assertEqual(self._request("POST", "/api/invoices/abc")[0], 404)
        self.assertEqual(self._request("DELETE", "/api/invoices/abc/status")[0], 404)


if __name__ == "__main__":
    unittest.main()
