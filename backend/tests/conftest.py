"""Shared test fixtures for the labcheck backend test suite."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import fitz  # PyMuPDF
import pytest
from httpx import ASGITransport, AsyncClient

from labcheck.main import app
from labcheck.modules.compliance.agent_schemas import CeirsaCategory
from labcheck.modules.compliance.ceirsa_corpus import CeirsaCorpus

# ---------------------------------------------------------------------------
# CEIRSA sample data (shape of the CEIRSA JSON export)
# ---------------------------------------------------------------------------

CEIRSA_SAMPLE = [
    {
        "id": "12",
        "name": "Gelati e dessert a base di latte",
        "data": [
            {
                "parameter": "Enterobatteriaceae",
                "satisfactoryValue": "<10 (ufc/g)",
                "acceptableValue": "10≤ x <102 (ufc/g)",
                "unsatisfactoryValue": "≥102 (ufc/g)",
                "microbiologicalCriterion": "Igiene di processo",
                "analysisMethod": "ISO 21528-2",
                "bibliographicReferences": "Reg. CE 2073/2005",
                "notes": "Campionamento al termine della produzione",
            },
            {
                "parameter": "Listeria monocytogenes",
                "satisfactoryValue": "Assente in 25 g",
                "unsatisfactoryValue": "Presente in 25 g",
                "analysisMethod": "ISO 11290-1",
            },
            {
                "parameter": "Stafilococchi coagulasi positivi",
                "satisfactoryValue": "<102 (ufc/g)",
                "acceptableValue": "102≤ x <103 (ufc/g)",
                "unsatisfactoryValue": "≥103 (ufc/g)",
            },
        ],
    },
    {
        "id": "3",
        "name": "Prodotti di gastronomia cotti",
        "data": [
            {
                "parameter": "Conta microrganismi mesofili aerobi",
                "satisfactoryValue": "<104 (ufc/g)",
                "acceptableValue": "104≤ x <106 (ufc/g)",
                "unsatisfactoryValue": "≥106 (ufc/g)",
            },
        ],
    },
]


@pytest.fixture
def ceirsa_dataset(tmp_path: Path) -> Path:
    """CEIRSA sample written as a JSON export."""
    path = tmp_path / "ceirsa_categories.json"
    path.write_text(json.dumps(CEIRSA_SAMPLE), encoding="utf-8")
    return path


@pytest.fixture
def ceirsa_categories() -> list[CeirsaCategory]:
    return [CeirsaCategory.model_validate(item) for item in CEIRSA_SAMPLE]


@pytest.fixture
def ceirsa_corpus(ceirsa_categories: list[CeirsaCategory]) -> CeirsaCorpus:
    return CeirsaCorpus.from_categories(ceirsa_categories)


# ---------------------------------------------------------------------------
# PDFs generated on the fly
# ---------------------------------------------------------------------------


@pytest.fixture
def make_pdf(tmp_path: Path) -> Callable[..., Path]:
    """Write a PDF with one page per text (None = blank page)."""

    def _make(name: str, *pages: str | None) -> Path:
        path = tmp_path / name
        doc = fitz.open()
        for text in pages:
            page = doc.new_page()
            if text:
                page.insert_text((72, 72), text, fontsize=11)
        doc.save(str(path))
        doc.close()
        return path

    return _make


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
async def client() -> AsyncClient:
    """Async HTTP client that talks directly to the FastAPI ASGI app."""
    transport = ASGITransport(app=app)  # type: ignore[arg-type]
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac  # type: ignore[misc]
