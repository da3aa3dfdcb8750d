import asyncio
import io
import unittest
from unittest.mock import AsyncMock

import docx
import openpyxl

from src.config.jarvis import DocumentLimits
from src.models.message import MediaPayload
from src.services.documents import BUCKET
from src.services.documents import DOCUMENTS
from src.services.documents import DocumentLimitError
from src.services.documents import DocumentService
from src.services.documents import DocumentTooLargeError
from src.services.documents import UnsupportedDocumentError
from src.services.documents import extract_text
from src.services.documents import snippet
from src.services.store import InMemoryStore


USER = "2250700000000@s.whatsapp.net"
OTHER = "2250799999999@s.whatsapp.net"

CONTRACT = (
    "Contrat de maintenance Nourx.\n"
    "Le prestataire intervient sous 48 heures ouvrées.\n"
    "Le montant mensuel est de 150 000 FCFA."
).encode("utf-8")


def _text(name="contrat.txt", data=CONTRACT):
    return MediaPayload(mimetype="text/plain", data=data, file_name=name)


class TestExtraction(unittest.TestCase):
    def test_plain_text(self):
        self.assertIn("48 heures", extract_text(CONTRACT, "text/plain; charset=utf-8"))

    def test_word_document(self):
        document = docx.Document()
        document.add_paragraph("Cahier des charges")
        document.add_paragraph("Application mobile de livraison")
        buffer = io.BytesIO()
        document.save(buffer)

        text = extract_text(buffer.getvalue(), "application/octet-stream", "cahier.docx")
        self.assertEqual(text, "Cahier des charges\nApplication mobile de livraison")

    def test_spreadsheet(self):
        workbook = openpyxl.Workbook()
        sheet = workbook.active
        sheet.title = "Budget"
        sheet.append(["Poste", "Montant"])
        sheet.append(["Design", 500000])
        buffer = io.BytesIO()
        workbook.save(buffer)

        text = extract_text(
            buffer.getvalue(), "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        self.assertEqual(text.splitlines(), ["# Budget", "Poste\tMontant", "Design\t500000"])

    def test_unsupported(self):
        with self.assertRaises(UnsupportedDocumentError):
            extract_text(b"\x89PNG", "image/png", "photo.png")

    def test_snippet(self):
        text = "a" * 100 + " montant mensuel " + "b" * 100
        found = snippet(text, "MONTANT", radius=10)
        self.assertTrue(found.startswith("..."))
        self.assertTrue(found.endswith("..."))
        self.assertIn("montant", found)
        self.assertIsNone(snippet(text, "absent"))


class TestDocumentService(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryStore()
        self.generate = AsyncMock(return_value="Le délai est de 48 heures ouvrées.")
        self.service = DocumentService(self.store, DocumentLimits(), reply_generator=self.generate)

    def test_upload_stores_file_and_text(self):
        async def run():
            row = await self.service.upload_document(USER, _text())

            self.assertEqual(row["phone_number"], "2250700000000")
            self.assertEqual(row["file_name"], "contrat.txt")
            self.assertEqual(row["size"], len(CONTRACT))
            self.assertIn("150 000 FCFA", row["extracted_text"])
            self.assertTrue(row["storage_path"].startswith("2250700000000/"))
            self.assertEqual(self.store.files[f"{BUCKET}/{row['storage_path']}"], CONTRACT)

        asyncio.run(run())

    def test_document_limit(self):
        async def run():
            for i in range(10):
                await self.service.upload_document(USER, _text(f"doc{i}.txt"))

            with self.assertRaises(DocumentLimitError) as ctx:
                await self.service.upload_document(USER, _text("doc10.txt"))
            self.assertEqual(ctx.exception.limit, 10)
            self.assertEqual(await self.store.count_documents(DOCUMENTS), 10)

            # other users are not affected
            await self.service.upload_document(OTHER, _text())

        asyncio.run(run())

    def test_too_large_and_unsupported(self):
        async def run():
            small = DocumentService(self.store, DocumentLimits(max_file_size=10))
            with self.assertRaises(DocumentTooLargeError):
                await small.upload_document(USER, _text())

            with self.assertRaises(UnsupportedDocumentError):
                await self.service.upload_document(USER, MediaPayload("image/png", b"\x89PNG", "photo.png"))
            self.assertEqual(self.store.files, {})

        asyncio.run(run())

    def test_documents_are_private(self):
        async def run():
            row = await self.service.upload_document(USER, _text())

            self.assertIsNone(await self.service.get_document(row["id"], OTHER))
            self.assertFalse(await self.service.delete_document(row["id"], OTHER))

            self.assertTrue(await self.service.delete_document(row["id"], USER))
            self.assertEqual(await self.service.get_user_documents(USER), [])
            self.assertEqual(self.store.files, {})

        asyncio.run(run())

    def test_search(self):
        async def run():
            row = await self.service.upload_document(USER, _text())

            results = await self.service.search(USER, "48 heures")
            self.assertEqual(len(results), 1)
            self.assertEqual(results[0]["id"], row["id"])
            self.assertIn("48 heures", results[0]["snippet"])
            self.assertEqual(await self.service.search(USER, "licorne"), [])

        asyncio.run(run())

    def test_question_uses_document_text(self):
        async def run():
            await self.service.upload_document(USER, _text())

            answer = await self.service.answer_question(USER, "Quel est le délai d'intervention ?")

            self.assertEqual(answer, "Le délai est de 48 heures ouvrées.")
            system_prompt, turns, config = self.generate.await_args.args
            self.assertIn("UNIQUEMENT", system_prompt)
            self.assertIn("48 heures ouvrées", turns[0]["content"])
            self.assertIn("Quel est le délai", turns[0]["content"])
            self.assertEqual(config.max_tokens, 500)

        asyncio.run(run())

    def test_question_without_documents(self):
        async def run():
            answer = await self.service.answer_question(USER, "Quoi ?")
            self.assertEqual(answer, "Vous n'avez aucun document. Envoyez-moi un PDF pour commencer!")
            self.generate.assert_not_awaited()

        asyncio.run(run())

    def test_summary(self):
        async def run():
            await self.service.upload_document(USER, _text())
            await self.service.summarize(USER)

            _, turns, config = self.generate.await_args.args
            self.assertIn("📄 contrat.txt", turns[0]["content"])
            self.assertEqual(config.max_tokens, 600)
            self.assertEqual(config.temperature, 0.5)

        asyncio.run(run())


if __name__ == "__main__":
    unittest.main()
