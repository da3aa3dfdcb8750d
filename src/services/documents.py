"""User documents sent over WhatsApp: storage, text extraction and Q&A.

Uploaded files go to the ``user-documents`` bucket; metadata and the
extracted text live in the ``documents`` table. Questions and summaries are
answered by the chat model from the extracted text only.
"""

from __future__ import annotations

import io
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import docx
import openpyxl
from PyPDF2 import PdfReader

from src.config.jarvis import DocumentLimits
from src.core.llm import LLMConfig, generate_reply
from src.models.message import MediaPayload
from src.services.store import DocumentStore, utc_now_iso
from src.utils.format import jid_number


logger = logging.getLogger("jarvis.documents")

DOCUMENTS = "documents"
BUCKET = "user-documents"

PDF_TYPES = {"application/pdf"}
DOCX_TYPES = {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"}
XLSX_TYPES = {"application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"}
TEXT_TYPES = {"application/json", "application/csv", "application/x-markdown"}

ReplyGenerator = Callable[[str, Sequence[Dict[str, str]], Optional[LLMConfig]], Awaitable[str]]


class DocumentError(Exception):
    """Base class for document upload failures."""


class DocumentLimitError(DocumentError):
    def __init__(self, limit: int) -> None:
        super().__init__(f"Document limit reached ({limit} per user)")
        self.limit = limit


class DocumentTooLargeError(DocumentError):
    pass


class UnsupportedDocumentError(DocumentError):
    pass


# ---------------------------------------------------------------------------
# Text extraction
# ---------------------------------------------------------------------------


def _base_type(mimetype: str) -> str:
    return (mimetype or "").split(";", 1)[0].strip().lower()


def _extract_pdf(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def _extract_docx(data: bytes) -> str:
    document = docx.Document(io.BytesIO(data))
    return "\n".join(p.text for p in document.paragraphs if p.text)


def _extract_xlsx(data: bytes) -> str:
    workbook = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    lines: List[str] = []
    for sheet in workbook.worksheets:
        lines.append(f"# {sheet.title}")
        for row in sheet.iter_rows(values_only=True):
            cells = ["" if v is None else str(v) for v in row]
            if any(cells):
                lines.append("\t".join(cells))
    workbook.close()
    return "\n".join(lines)


def extract_text(data: bytes, mimetype: str, file_name: str = "") -> str:
    """Extract plain text, raising :class:`UnsupportedDocumentError` for unknown formats."""

    base = _base_type(mimetype)
    name = file_name.lower()

    if base in PDF_TYPES or name.endswith(".pdf"):
        return _extract_pdf(data)
    if base in DOCX_TYPES or name.endswith(".docx"):
        return _extract_docx(data)
    if base in XLSX_TYPES or name.endswith(".xlsx"):
        return _extract_xlsx(data)
    if base.startswith("text/") or base in TEXT_TYPES or name.endswith((".txt", ".csv", ".md", ".json")):
        return data.decode("utf-8", errors="replace")

    raise UnsupportedDocumentError(f"Unsupported document type: {mimetype or file_name}")


def snippet(text: str, query: str, radius: int = 80) -> Optional[str]:
    """Text around the first case-insensitive match of ``query``."""

    index = text.lower().find(query.lower())
    if index < 0:
        return None
    start = max(0, index - radius)
    end = min(len(text), index + len(query) + radius)
    prefix = "..." if start > 0 else ""
    suffix = "..." if end < len(text) else ""
    return prefix + " ".join(text[start:end].split()) + suffix


class DocumentService:
    def __init__(
        self,
        store: DocumentStore,
        limits: Optional[DocumentLimits] = None,
        reply_generator: ReplyGenerator = generate_reply,
    ) -> None:
        self.store = store
        self.limits = limits or DocumentLimits()
        self.reply_generator = reply_generator

    async def upload_document(self, phone: str, media: MediaPayload) -> Dict[str, Any]:
        """Validate, store and parse ``media`` for ``phone``.

        Raises :class:`DocumentTooLargeError`, :class:`DocumentLimitError` or
        :class:`UnsupportedDocumentError`.
        """

        number = jid_number(phone)
        if media.size > self.limits.max_file_size:
            raise DocumentTooLargeError(f"{media.size} bytes exceeds {self.limits.max_file_size}")

        existing = await self.store.count_documents(DOCUMENTS, filters={"phone_number": number})
        if existing >= self.limits.max_documents_per_user:
            raise DocumentLimitError(self.limits.max_documents_per_user)

        file_name = media.file_name or "document"
        text = extract_text(media.data, media.mimetype, file_name)

        path = f"{number}/{uuid.uuid4().hex}_{file_name}"
        await self.store.upload_file(BUCKET, path, media.data, media.mimetype)
        row = await self.store.create_document(
            DOCUMENTS,
            {
                "phone_number": number,
                "file_name": file_name,
                "mime_type": media.mimetype,
                "size": media.size,
                "storage_path": path,
                "extracted_text": text,
                "last_accessed_at": utc_now_iso(),
            },
        )
        logger.info("Stored document %s for %s (%d chars extracted)", row["id"], number, len(text))
        return row

    async def get_user_documents(self, phone: str) -> List[Dict[str, Any]]:
        return await self.store.list_documents(
            DOCUMENTS, filters={"phone_number": jid_number(phone)}, order_by="created_at", descending=True
        )

    async def get_document(self, doc_id: str, phone: str) -> Optional[Dict[str, Any]]:
        row = await self.store.get_document(DOCUMENTS, doc_id)
        if not row or row.get("phone_number") != jid_number(phone):
            return None
        await self.store.update_document(DOCUMENTS, doc_id, {"last_accessed_at": utc_now_iso()})
        return row

    async def delete_document(self, doc_id: str, phone: str) -> bool:
        row = await self.get_document(doc_id, phone)
        if row is None:
            return False
        if row.get("storage_path"):
            await self.store.delete_file(BUCKET, row["storage_path"])
        await self.store.delete_document(DOCUMENTS, doc_id)
        return True

    async def search(self, phone: str, query: str) -> List[Dict[str, str]]:
        results = []
        for row in await self.get_user_documents(phone):
            found = snippet(row.get("extracted_text") or "", query)
            if found:
                results.append({"file_name": row["file_name"], "id": row["id"], "snippet": found})
        return results

    def _corpus(self, rows: List[Dict[str, Any]]) -> str:
        parts = [
            f"📄 Document: {row['file_name']}\n{row['extracted_text']}"
            for row in rows
            if row.get("extracted_text")
        ]
        return "\n\n".join(parts)[: self.limits.max_context_chars]

    async def answer_question(self, phone: str, question: str) -> str:
        rows = await self.get_user_documents(phone)
        if not rows:
            return "Vous n'avez aucun document. Envoyez-moi un PDF pour commencer!"
        corpus = self._corpus(rows)
        if not corpus:
            return "Vos documents ne contiennent pas de texte exploitable."

        system_prompt = (
            "Tu es Jarvis, l'assistant de Nourx. Tu dois analyser les documents fournis et "
            "répondre aux questions en te basant UNIQUEMENT sur leur contenu. "
            "Réponds en français de manière claire et concise."
        )
        user_prompt = (
            f"Voici le contenu des documents:\n\n{corpus}\n\nQuestion: {question}\n\n"
            "Réponds en te basant uniquement sur le contenu des documents ci-dessus."
        )
        return await self.reply_generator(
            system_prompt, [{"role": "user", "content": user_prompt}], LLMConfig(max_tokens=500)
        )

    async def summarize(self, phone: str) -> str:
        rows = await self.get_user_documents(phone)
        if not rows:
            return "Vous n'avez aucun document. Envoyez-moi un PDF pour commencer!"
        previews = [
            f"📄 {row['file_name']}\n{(row.get('extracted_text') or '')[:1000]}"
            for row in rows
            if row.get("extracted_text")
        ]
        if not previews:
            return "Vos documents ne contiennent pas de texte exploitable."

        system_prompt = (
            "Tu es Jarvis, l'assistant de Nourx. Tu dois créer un résumé global de tous "
            "les documents disponibles. Sois concis mais informatif."
        )
        user_prompt = (
            "Voici la liste des documents et leur contenu:\n\n" + "\n\n".join(previews) + "\n\n"
            "Crée un résumé global qui présente le nombre de documents, les thèmes principaux "
            "et les points clés de chaque document."
        )
        return await self.reply_generator(
            system_prompt, [{"role": "user", "content": user_prompt}], LLMConfig(max_tokens=600, temperature=0.5)
        )
