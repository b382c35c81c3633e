import os
import tempfile
import unittest

from invoice_issuer.errors import InvoiceNotFoundError, RenderError, ValidationError
from invoice_issuer.service import InvoiceService
from invoice_issuer.store import JsonInvoiceStore

PAYLOAD = {
    "clientInfo": {"name": "Globex", "email": "ap@globex.test"},
    "items": [{"description": "Design", "quantity": 2, "rate": 50}],
    "tax": 8.25,
}


class RecordingRenderer:
    def __init__(self, fail: bool = False) -> None:
        self.calls = []
        self.fail = fail

    def __call__(self, invoice, path, logo_path):
        self.calls.append((invoice.invoice_number, path, logo_path))
        with open(path, "wb") as handle:
            handle.write(b"%PDF-partial")
        if self.fail:
            raise RenderError("disk full")


class InvoiceServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.storage_dir = os.path.join(self.tmp.name, "invoices")
        self.store = JsonInvoiceStore(os.path.join(self.tmp.name, "invoices.json"))
        self.renderer = RecordingRenderer()
        self.service = InvoiceService(
            self.store,
            storage_dir=self.storage_dir,
            logo_path="/nonexistent/logo.png",
            render=self.renderer,
        )

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def test_create_persists_totals_and_artifact_path(self) -> None:
        invoice = self.service.create(PAYLOAD)

        self.assertEqual(invoice.subtotal, 100)
        self.assertEqual(invoice.total, 108.25)
        expected = os.path.join(self.storage_dir, f"invoice-{invoice.invoice_number}.pdf")
        self.assertEqual(invoice.pdf_path, expected)
        self.assertTrue(os.path.exists(expected))
        self.assertEqual(self.store.find_by_id(invoice.id).pdf_path, expected)
        number, rendered_to, logo_path = self.renderer.calls[0]
        self.assertEqual((number, logo_path), (invoice.invoice_number, "/nonexistent/logo.png"))
        self.assertEqual(os.path.dirname(rendered_to), self.storage_dir)
        self.assertEqual(os.listdir(self.storage_dir), [os.path.basename(expected)])

    def test_create_rejects_invalid_payload_before_rendering(self) -> None:
        with self.assertRaises(ValidationError):
            self.service.create({"clientInfo": {"name": "Globex"}, "items": []})

        self.assertEqual(self.renderer.calls, [])
        self.assertEqual(self.store.find().total, 0)

    def test_failed_render_removes_partial_artifact(self) -> None:
        self.service.render = RecordingRenderer(fail=True)

        with self.assertRaises(RenderError):
            self.service.create(PAYLOAD)

        stored = self.store.find().items[0]
        self.assertIsNone(stored.pdf_path)
        self.assertEqual(os.listdir(self.storage_dir), [])

    def test_download_reuses_existing_artifact(self) -> None:
        created = self.service.create(PAYLOAD)

        invoice, path = self.service.download(created.id)

        self.assertEqual(path, created.pdf_path)
        self.assertEqual(len(self.renderer.calls), 1)

    def test_download_regenerates_missing_artifact(self) -> None:
        created = self.service.create(PAYLOAD)
        os.unlink(created.pdf_path)

        with self.assertLogs("invoice_issuer.service", level="INFO"):
            invoice, path = self.service.download(created.id)

        self.assertTrue(os.path.exists(path))
        self.assertEqual(invoice.pdf_path, path)
        self.assertEqual(len(self.renderer.calls), 2)

    def test_download_regeneration_failure_propagates(self) -> None:
        created = self.service.create(PAYLOAD)
        os.unlink(created.pdf_path)
        self.service.render = RecordingRenderer(fail=True)

        with self.assertRaises(RenderError):
            self.service.download(created.id)

    def test_failed_render_keeps_artifact_finished_by_concurrent_download(self) -> None:
        created = self.service.create(PAYLOAD)
        os.unlink(created.pdf_path)

        def racing_render(invoice, path, logo_path):
            # Another request regenerates the same invoice while this one fails.
            self.service.render = RecordingRenderer()
            self.service.download(invoice.id)
            raise RenderError("worker crashed")

        self.service.render = racing_render
        with self.assertLogs("invoice_issuer.service", level="INFO"):
            with self.assertRaises(RenderError):
                self.service.download(created.id)

        self.assertTrue(os.path.exists(created.pdf_path))
        self.assertEqual(os.listdir(self.storage_dir), [os.path.basename(created.pdf_path)])

    def test_download_unknown_invoice(self) -> None:
        with self.assertRaises(InvoiceNotFoundError):
            self.service.download("missing")

    def test_update_status(self) -> None:
        created = self.service.create(PAYLOAD)

        self.assertEqual(self.service.update_status(created.id, "paid").status, "paid")
        self.assertEqual(self.service.update_status(created.id, "sent").status, "sent")
        with self.assertRaises(ValidationError):
            self.service.update_status(created.id, "archived")
        with self.assertRaises(InvoiceNotFoundError):
            self.service.update_status("missing", "paid")

    def test_delete_removes_record_and_artifact(self) -> None:
        created = self.service.create(PAYLOAD)

        self.service.delete(created.id)

        self.assertFalse(os.path.exists(created.pdf_path))
        with self.assertRaises(InvoiceNotFoundError):
            self.service.get(created.id)


if __name__ == "__main__":
    unittest.main()
