"""Regulatory law search — Tavily web search for beverage and swab limits.

Each search result becomes an AnalysisSource the judge may cite. A missing API
key or a failed request yields no documents, which the engine treats as "no
regulatory reference" for that parameter.
"""

from __future__ import annotations

import hashlib

import httpx
import structlog

from labcheck.core.config import settings
from labcheck.modules.compliance.agent_schemas import RegulatoryRegime
from labcheck.modules.compliance.schemas import AnalysisSource

logger = structlog.get_logger()

TAVILY_SEARCH_URL = "https://api.tavily.com/search"

_QUERY_TEMPLATES: dict[RegulatoryRegime, str] = {
    RegulatoryRegime.BEVERAGE: "{parameter} {subject} limiti normativi acqua Italia Europa bevande",
    RegulatoryRegime.ENVIRONMENTAL_SWAB: (
        "{parameter} limiti tamponi ambientali superfici attrezzature HACCP igiene "
        "processi alimentari normativa"
    ),
}

# Excerpts handed to the judge are capped per document
_MAX_EXCERPT_CHARS = 2000


def build_query(regime: RegulatoryRegime, parameter: str, subject: str | None) -> str:
    template = _QUERY_TEMPLATES.get(regime)
    if template is None:
        raise ValueError(f"No law search for regime: {regime.value}")
    return " ".join(template.format(parameter=parameter, subject=subject or "").split())


def _source_id(url: str, index: int) -> str:
    digest = hashlib.sha1(url.encode("utf-8")).hexdigest()[:10] if url else str(index)
    return f"law-{digest}"


class LawSearchClient:
    """Thin Tavily client returning citable regulatory documents."""

    def __init__(
        self,
        api_key: str | None = None,
        max_results: int | None = None,
        timeout_s: float | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.api_key = settings.tavily_api_key if api_key is None else api_key
        self.max_results = max_results or settings.tavily_max_results
        self.timeout_s = timeout_s or settings.law_search_timeout_s
        self._http_client = http_client

    def search(
        self,
        regime: RegulatoryRegime,
        parameter: str,
        subject: str | None = None,
    ) -> list[AnalysisSource]:
        """Search regulatory documents for ``parameter`` under ``regime``."""
        if not self.api_key:
            logger.warning("law_search_skipped", reason="No API key configured (TAVILY_API_KEY)")
            return []

        query = build_query(regime, parameter, subject)
        headers = {"Authorization": f"Bearer {self.api_key}"}
        payload = {
            "query": query,
            "search_depth": "advanced",
            "max_results": self.max_results,
            "include_answer": False,
        }

        try:
            if self._http_client is not None:
                resp = self._http_client.post(
                    TAVILY_SEARCH_URL, json=payload, headers=headers, timeout=self.timeout_s
                )
            else:
                with httpx.Client(timeout=self.timeout_s) as client:
                    resp = client.post(TAVILY_SEARCH_URL, json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError):
            logger.warning("Law search failed", query=query, exc_info=True)
            return []

        results = data.get("results") if isinstance(data, dict) else None
        sources: list[AnalysisSource] = []
        seen: set[str] = set()
        for index, item in enumerate(results or [], start=1):
            if not isinstance(item, dict):
                continue
            url = (item.get("url") or "").strip()
            content = (item.get("content") or item.get("raw_content") or "").strip()
            if not content:
                continue
            source_id = _source_id(url, index)
            if source_id in seen:
                continue
            seen.add(source_id)
            sources.append(
                AnalysisSource(
                    id=source_id,
                    title=(item.get("title") or "").strip() or url or f"Regulatory document {index}",
                    url=url or None,
                    excerpt=content[:_MAX_EXCERPT_CHARS],
                )
            )

        logger.info(
            "Law search completed",
            regime=regime.value,
            parameter=parameter,
            results=len(sources),
        )
        return sources
