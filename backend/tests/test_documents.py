import io

import pytest
from PyPDF2 import PdfWriter

from augus.documents import MAX_UPLOAD_BYTES, DocumentError, _clean, extract_pdf_text


def test_empty_upload():
	with pytest.raises(DocumentError, match="empty"):
		extract_pdf_text(b"")


def test_oversized_upload():
	with pytest.raises(DocumentError, match="too large"):
		extract_pdf_text(b"x" * (MAX_UPLOAD_BYTES + 1))


def test_pdf_without_text():
	writer = PdfWriter()
	writer.add_blank_page(width=100, height=100)
	writer.add_blank_page(width=100, height=100)
	out = io.BytesIO()
	writer.write(out)
	with pytest.raises(DocumentError, match="No text"):
		extract_pdf_text(out.getvalue())


def test_clean_joins_hyphenated_words_and_collapses_space():
	assert _clean("photo-\nsynthesis  is\t\tfun\n\n\n\nend\x00") == "photosynthesis is fun\n\nend"
