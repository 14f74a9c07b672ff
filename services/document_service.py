"""
services/document_service.py
============================
Text extraction for uploaded notes and assembly of the generation content.
"""
import io
from typing import List, Tuple

import PyPDF2
from PyPDF2.errors import PdfReadError

from core.config import MAX_NOTE_CHARS

TEXT_EXTENSIONS = {"txt", "md"}


class UnsupportedDocument(ValueError):
    pass


def _extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def _read_pdf(data: bytes) -> str:
    pages = []
    reader = PyPDF2.PdfReader(io.BytesIO(data))
    for page in reader.pages:
        pages.append(page.extract_text() or "")
    return "\n".join(pages)


def extract_text(filename: str, data: bytes) -> str:
    ext = _extension(filename)
    if ext in TEXT_EXTENSIONS:
        text = data.decode("utf-8", errors="ignore")
    elif ext == "pdf":
        try:
            text = _read_pdf(data)
        except (PdfReadError, ValueError) as e:
            raise UnsupportedDocument(f"Could not read PDF '{filename}': {e}") from e
    else:
        raise UnsupportedDocument(f"Unsupported file type: .{ext or '?'}")
    return text[:MAX_NOTE_CHARS]


def build_generation_content(documents: List[Tuple[str, str]]) -> str:
    """
    Concatenate (filename, text) pairs, each under a file marker.
    Blank documents are skipped, so the result may be empty.
    """
    blocks = [
        f"--- File: {name} ---\n{text.strip()}"
        for name, text in documents
        if text and text.strip()
    ]
    return "\n\n".join(blocks)


def source_label(filenames: List[str]) -> str:
    return ", ".join(filenames)
