"""Shared fixtures for MCP PDF Pages tests"""

from pathlib import Path
from typing import List

import fitz  # PyMuPDF
import pytest
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas


def build_marked_pdf(path: Path, pages: int) -> Path:
    """Write a PDF whose page N carries the text 'Original page N'"""
    c = canvas.Canvas(str(path), pagesize=letter)
    for number in range(1, pages + 1):
        c.drawString(100, 750, f"Original page {number}")
        c.showPage()
    c.save()
    return path


def page_markers(path: Path) -> List[int]:
    """Read back the original page number printed on each page"""
    with fitz.open(str(path)) as doc:
        markers = []
        for page in doc:
            text = page.get_text().strip()
            markers.append(int(text.rsplit(" ", 1)[-1]))
        return markers


@pytest.fixture
def make_pdf(tmp_path):
    """Factory fixture: make_pdf(5) -> path of a 5-page marked PDF"""
    def _make(pages: int = 5, name: str = "document.pdf") -> Path:
        return build_marked_pdf(tmp_path / name, pages)
    return _make


@pytest.fixture
def five_page_pdf(make_pdf):
    return make_pdf(5)


@pytest.fixture(autouse=True)
def local_environment(monkeypatch, tmp_path):
    """Run every test as a local stdio deployment with its own cache dir"""
    for var in ("MCP_TRANSPORT", "MCP_PUBLIC_MODE", "MCP_PDF_ALLOWED_PATHS", "ALLOWED_DOMAINS", "MAX_PDF_SIZE", "DEBUG"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("PDF_TEMP_DIR", str(tmp_path / "cache"))
