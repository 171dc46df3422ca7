"""Bulk PDF check service — batch orchestration over the compliance pipeline.

Pure Python controller, no LLM calls of its own:

  Single-PDF pipeline:
    path -> PdfTextExtractor.extract -> ComplianceEngine.evaluate -> SinglePdfResult

  Batch pipeline:
    For each path (bounded concurrency): Single-PDF pipeline
    Join results by input index -> BulkPdfCheckResponse

Every document-scoped failure is caught at the per-document boundary and
recorded as an error result; it never aborts the other documents.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Any, Callable, Protocol

import structlog

from labcheck.core.config import Settings
from labcheck.modules.compliance.errors import InternalError
from labcheck.modules.compliance.schemas import (
    BulkPdfCheckResponse,
    ComplianceResult,
    ExtractedTextEntry,
    SinglePdfResult,
)

logger = structlog.get_logger()


class TextExtractor(Protocol):
    def extract(self, path: str | Path) -> list[ExtractedTextEntry]: ...


class Evaluator(Protocol):
    def evaluate(
        self, entries: list[ExtractedTextEntry], file_name: str = ""
    ) -> list[ComplianceResult]: ...


def _error_message(exc: BaseException) -> str:
    return str(exc).strip() or type(exc).__name__


class BulkPdfCheckService:
    """Runs the extract -> evaluate pipeline over many PDFs.

    Blocking stages run in worker threads, at most ``max_concurrency``
    documents at a time. Each stage is bounded by ``document_timeout_s``; a
    document whose stage timed out keeps its slot until the thread returns,
    so abandoned work never runs beside ``max_concurrency`` new documents.
    """

    def __init__(
        self,
        extractor: TextExtractor,
        engine: Evaluator,
        max_concurrency: int = 4,
        document_timeout_s: float | None = 300.0,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.extractor = extractor
        self.engine = engine
        self.max_concurrency = max_concurrency
        self.document_timeout_s = document_timeout_s

    # ------------------------------------------------------------------
    # Single-PDF pipeline
    # ------------------------------------------------------------------

    async def _stage(
        self,
        stage: str,
        running: list[asyncio.Task[Any]],
        func: Callable[..., Any],
        *args: Any,
    ) -> Any:
        # The worker thread cannot be interrupted: a timed-out stage stays in
        # ``running`` so its slot is released only when the thread returns.
        task = asyncio.ensure_future(asyncio.to_thread(func, *args))
        running.append(task)
        try:
            return await asyncio.wait_for(asyncio.shield(task), self.document_timeout_s)
        except asyncio.TimeoutError as e:
            raise TimeoutError(
                f"Timed out after {self.document_timeout_s:g}s during {stage}"
            ) from e

    @staticmethod
    def _release_when_idle(
        semaphore: asyncio.Semaphore, running: list[asyncio.Task[Any]], path: str
    ) -> None:
        abandoned = [task for task in running if not task.done()]
        if not abandoned:
            semaphore.release()
            return

        def _release(task: asyncio.Task[Any]) -> None:
            if not task.cancelled() and task.exception() is not None:
                logger.warning(
                    "Bulk check: abandoned stage failed",
                    path=path,
                    error=_error_message(task.exception()),
                )
            logger.info("Bulk check: abandoned stage finished, slot released", path=path)
            semaphore.release()

        abandoned[0].add_done_callback(_release)

    async def _process(self, path: str, semaphore: asyncio.Semaphore) -> SinglePdfResult:
        file_name = Path(path).name
        await semaphore.acquire()
        running: list[asyncio.Task[Any]] = []
        try:
            start = time.time()
            logger.info("Bulk check: processing PDF", file=file_name, path=path)
            try:
                entries = await self._stage(
                    "text extraction", running, self.extractor.extract, path
                )
                results = await self._stage(
                    "compliance evaluation", running, self.engine.evaluate, entries, file_name
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "Bulk check: PDF failed",
                    file=file_name,
                    path=path,
                    error_type=type(e).__name__,
                    error=_error_message(e),
                )
                return SinglePdfResult(
                    pdf_path=path,
                    file_name=file_name,
                    status="error",
                    error=_error_message(e),
                )

            logger.info(
                "Bulk check: PDF processed",
                file=file_name,
                results=len(results),
                duration_ms=int((time.time() - start) * 1000),
            )
            return SinglePdfResult(
                pdf_path=path,
                file_name=file_name,
                status="success",
                compliance_results=results,
            )
        finally:
            self._release_when_idle(semaphore, running, path)

    # ------------------------------------------------------------------
    # Batch pipeline
    # ------------------------------------------------------------------

    async def execute(self, paths: list[str]) -> BulkPdfCheckResponse:
        """Check every path and aggregate the results in input order.

        Cancelling the call cancels documents not yet started and propagates
        CancelledError; no partial response is produced.
        """
        start = time.time()
        semaphore = asyncio.Semaphore(self.max_concurrency)
        logger.info("Bulk check started", documents=len(paths), concurrency=self.max_concurrency)

        # gather keeps input order regardless of completion order
        results = list(await asyncio.gather(*(self._process(p, semaphore) for p in paths)))
        if len(results) != len(paths):
            raise InternalError(f"Bulk check produced {len(results)} results for {len(paths)} paths")

        response = BulkPdfCheckResponse.from_results(results)
        logger.info(
            "Bulk check completed",
            total=response.total_processed,
            success=response.success_count,
            errors=response.error_count,
            duration_ms=int((time.time() - start) * 1000),
        )
        return response

    async def single(self, path: str) -> SinglePdfResult:
        """Check one PDF through the batch pipeline."""
        response = await self.execute([path])
        if not response.results:
            raise InternalError(f"Bulk check returned no result for {path}")
        return response.results[0]


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_bulk_check_service(settings: Settings) -> BulkPdfCheckService:
    """Wire the production pipeline from settings."""
    from labcheck.modules.compliance.agents.analyses import AnalysesAgent
    from labcheck.modules.compliance.agents.judge import JudgeAgent
    from labcheck.modules.compliance.agents.matrix import MatrixAgent
    from labcheck.modules.compliance.ceirsa_corpus import CeirsaCorpus
    from labcheck.modules.compliance.engine import ComplianceEngine
    from labcheck.modules.compliance.law_search import LawSearchClient
    from labcheck.modules.compliance.pdf_service import PdfTextExtractor

    provider = settings.llm_provider
    model = settings.llm_model or None

    engine = ComplianceEngine(
        corpus=CeirsaCorpus(settings.ceirsa_dataset_path),
        matrix_agent=MatrixAgent(provider=provider, model=model),
        analyses_agent=AnalysesAgent(provider=provider, model=model),
        judge=JudgeAgent(provider=provider, model=model, context_chars=settings.judge_context_chars),
        law_search=LawSearchClient(
            api_key=settings.tavily_api_key,
            max_results=settings.tavily_max_results,
            timeout_s=settings.law_search_timeout_s,
        ),
        loq_policy=settings.loq_policy,
    )
    return BulkPdfCheckService(
        extractor=PdfTextExtractor(max_file_size_mb=settings.max_file_size_mb),
        engine=engine,
        max_concurrency=settings.bulk_max_concurrency,
        document_timeout_s=settings.document_timeout_s,
    )
