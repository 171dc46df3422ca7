"""Compliance PDF Service — PyMuPDF text + table extraction per page."""

from __future__ import annotations

import re
from pathlib import Path

import fitz  # PyMuPDF
import structlog

from labcheck.core.config import settings
from labcheck.modules.compliance.errors import ExtractionFailure
from labcheck.modules.compliance.schemas import ExtractedTextEntry

logger = structlog.get_logger()


def normalize_whitespace(text: str) -> str:
    """Collapse runs of spaces, keep line structure, drop blank-line runs."""
    lines = [re.sub(r"[ \t\u00a0]+", " ", line).strip() for line in text.splitlines()]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


def _page_tables_markdown(page: fitz.Page, page_num: int) -> list[str]:
    tables_md: list[str] = []
    try:
        tables = page.find_tables()
        for table in tables:
            md = table.to_markdown()
            if md and md.strip():
                tables_md.append(md.strip())
    except Exception:
        logger.warning("Table extraction failed", page=page_num, exc_info=True)
    return tables_md


class PdfTextExtractor:
    """Extract the text layer of a PDF as one entry per page.

    Stateless: a single instance may serve concurrent documents.
    """

    def __init__(self, max_file_size_mb: int | None = None) -> None:
        self.max_file_size_mb = (
            settings.max_file_size_mb if max_file_size_mb is None else max_file_size_mb
        )

    def extract(self, path: str | Path) -> list[ExtractedTextEntry]:
        """Extract text and tables from a PDF, page by page.

        Strategy (Markdown-First):
          1. Extract text layer per page via PyMuPDF.
          2. Identify table objects and convert to Markdown tables.
          3. Combine text and tables into one Markdown entry per page.

        Raises:
            ExtractionFailure: missing/oversized file, not a PDF, no pages, or
                no text layer on any page.
        """
        pdf_path = Path(path)
        if not pdf_path.is_file():
            raise ExtractionFailure(f"PDF resource was not found at path: {path}")

        size_mb = pdf_path.stat().st_size / (1024 * 1024)
        if size_mb > self.max_file_size_mb:
            raise ExtractionFailure(
                f"PDF is too large ({size_mb:.1f} MB, limit {self.max_file_size_mb} MB): {path}"
            )

        try:
            doc = fitz.open(pdf_path)
        except Exception as e:
            raise ExtractionFailure(f"Unable to open PDF {pdf_path.name}: {e}") from e

        try:
            if not doc.is_pdf:
                raise ExtractionFailure(f"Not a PDF document: {pdf_path.name}")
            if doc.needs_pass:
                raise ExtractionFailure(f"PDF is password protected: {pdf_path.name}")
            if doc.page_count == 0:
                raise ExtractionFailure(f"PDF has no pages: {pdf_path.name}")

            entries: list[ExtractedTextEntry] = []
            for page_idx in range(doc.page_count):
                page = doc[page_idx]
                page_num = page_idx + 1

                text = normalize_whitespace(page.get_text("text") or "")
                tables_md = _page_tables_markdown(page, page_num) if text else []

                page_md = text
                if tables_md:
                    page_md += "\n\n### Tables\n\n" + "\n\n".join(tables_md)

                entries.append(
                    ExtractedTextEntry(
                        source_locator=f"{pdf_path.name}#page={page_num}",
                        page_number=page_num,
                        text=page_md,
                    )
                )
        finally:
            doc.close()

        if not any(entry.text for entry in entries):
            raise ExtractionFailure(
                f"PDF {pdf_path.name} has no text layer (scanned document without OCR)"
            )

        logger.info(
            "PDF parsed",
            file=pdf_path.name,
            pages=len(entries),
            chars=sum(len(e.text) for e in entries),
        )
        return entries


def compose_markdown(entries: list[ExtractedTextEntry]) -> str:
    """Join page entries into one Markdown payload, skipping blank pages."""
    parts = [
        f"## Page {entry.page_number}\n\n{entry.text.strip()}"
        for entry in sorted(entries, key=lambda e: e.page_number)
        if entry.text.strip()
    ]
    return "\n\n---\n\n".join(parts)
