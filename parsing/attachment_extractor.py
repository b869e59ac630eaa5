"""
RFPFlow Attachment Extractor
Turns vendor email attachments (PDF, Word, text/CSV, spreadsheet) into plain text
"""

import io
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from docx import Document
from pypdf import PdfReader

logger = logging.getLogger(__name__)

# Spreadsheets are decoded as raw bytes, not parsed; cap how much is read
SPREADSHEET_PREVIEW_BYTES = 10_000


class AttachmentKind(str, Enum):
    """Attachment families, in dispatch priority order."""
    PDF = "pdf"
    WORD = "word"
    TEXT = "text"
    SPREADSHEET = "spreadsheet"
    UNSUPPORTED = "unsupported"


@dataclass
class ExtractedAttachment:
    """Plain text pulled out of one attachment."""
    filename: str
    content: str

    def to_dict(self):
        return {"filename": self.filename, "content": self.content}


def classify_attachment(content_type: Optional[str], filename: Optional[str]) -> AttachmentKind:
    """
    Pick the extraction path for an attachment. First match wins:
    PDF, Word family, text/CSV, spreadsheet, otherwise unsupported.
    """
    ctype = (content_type or "").lower()
    name = (filename or "").lower()

    if "pdf" in ctype or name.endswith(".pdf"):
        return AttachmentKind.PDF

    # Any Office Open XML type, .xlsx included; python-docx rejects non-Word packages
    if (
        "word" in ctype
        or "msword" in ctype
        or "officedocument" in ctype
        or name.endswith((".doc", ".docx"))
    ):
        return AttachmentKind.WORD

    if "text" in ctype or "csv" in ctype or name.endswith((".txt", ".csv")):
        return AttachmentKind.TEXT

    if (
        "spreadsheet" in ctype
        or "excel" in ctype
        or name.endswith((".xlsx", ".xls"))
    ):
        return AttachmentKind.SPREADSHEET

    return AttachmentKind.UNSUPPORTED


class AttachmentExtractor:
    """
    Stateless attachment-to-text extractor.

    extract() never raises: a broken attachment yields None and a log line so
    the rest of the message can still be used.
    """

    def extract(self, content_type: Optional[str], filename: Optional[str], payload: bytes) -> Optional[str]:
        kind = classify_attachment(content_type, filename)
        label = filename or "<unnamed>"

        if kind == AttachmentKind.UNSUPPORTED:
            logger.info("Unsupported attachment type %s for %s", content_type, label)
            return None

        try:
            if kind == AttachmentKind.PDF:
                text = self._extract_pdf(payload)
            elif kind == AttachmentKind.WORD:
                text = self._extract_word(payload)
            elif kind == AttachmentKind.TEXT:
                text = payload.decode("utf-8", errors="replace")
            else:
                text = self._extract_spreadsheet(payload)
        except Exception:
            logger.exception("Failed to extract %s attachment %s", kind.value, label)
            return None

        if not text or not text.strip():
            logger.debug("Attachment %s produced no text", label)
            return None
        return text

    def extract_all(
        self, attachments: Iterable[Tuple[Optional[str], Optional[str], bytes]]
    ) -> List[ExtractedAttachment]:
        """Extract every (content_type, filename, payload); empty results are dropped."""
        extracted = []
        for content_type, filename, payload in attachments:
            text = self.extract(content_type, filename, payload)
            if text is not None:
                extracted.append(ExtractedAttachment(filename=filename or "attachment", content=text))
        return extracted

    @staticmethod
    def _extract_pdf(payload: bytes) -> str:
        reader = PdfReader(io.BytesIO(payload))
        pages = []
        for page in reader.pages:
            pages.append(page.extract_text() or "")
        return "\n\n".join(pages)

    @staticmethod
    def _extract_word(payload: bytes) -> str:
        doc = Document(io.BytesIO(payload))
        parts = [para.text for para in doc.paragraphs if para.text.strip()]

        for table in doc.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells]
                if any(cells):
                    parts.append(" | ".join(cells))

        return "\n".join(parts)

    @staticmethod
    def _extract_spreadsheet(payload: bytes) -> str:
        # Degraded path: raw decode of the leading bytes, not a workbook parse
        return payload[:SPREADSHEET_PREVIEW_BYTES].decode("utf-8", errors="ignore")
