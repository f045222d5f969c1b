from __future__ import annotations
import io
import logging
import re
from dataclasses import dataclass

from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 20 * 1024 * 1024


class DocumentError(ValueError):
	pass


@dataclass
class ExtractedDocument:
	text: str
	pages: int


def _clean(text: str) -> str:
	text = text.replace("\x00", " ")
	# Re-join words hyphenated across line breaks
	text = re.sub(r"(\w)-\n(\w)", r"\1\2", text)
	text = re.sub(r"[ \t]+", " ", text)
	text = re.sub(r"\n{3,}", "\n\n", text)
	return text.strip()


def extract_pdf_text(content: bytes) -> ExtractedDocument:
	if not content:
		raise DocumentError("The uploaded file is empty")
	if len(content) > MAX_UPLOAD_BYTES:
		raise DocumentError("The uploaded file is too large")
	try:
		reader = PdfReader(io.BytesIO(content))
		pages = [page.extract_text() or "" for page in reader.pages]
	except (PdfReadError, ValueError, KeyError) as err:
		raise DocumentError(f"Could not read PDF: {err}") from err
	text = _clean("\n".join(pages))
	if not text:
		raise DocumentError("No text could be extracted from the PDF")
	logger.debug("extracted %d chars from %d pages", len(text), len(pages))
	return ExtractedDocument(text=text, pages=len(pages))
