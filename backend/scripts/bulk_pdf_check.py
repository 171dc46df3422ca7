#!/usr/bin/env python3
"""Bulk PDF compliance check runner.

Checks laboratory PDF reports against CEIRSA, beverage and swab limits and
prints the Markdown report (or the JSON response).

Usage:
    # Check explicit files
    python -m scripts.bulk_pdf_check /data/reports/a.pdf /data/reports/b.pdf

    # Check every PDF under a directory (recursive)
    python -m scripts.bulk_pdf_check --input-dir /data/reports

    # JSON output written to a file, 8 documents in flight
    python -m scripts.bulk_pdf_check --input-dir /data/reports --json --concurrency 8 --output out.json

    # Specific provider/model
    python -m scripts.bulk_pdf_check a.pdf --provider anthropic --model claude-sonnet-4-20250514
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Add backend to path for imports
_backend = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_backend))

# Load .env before importing labcheck modules
from dotenv import load_dotenv
load_dotenv(_backend / ".env")

import structlog

structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
)

from labcheck.core.config import Settings
from labcheck.modules.compliance.presenter import format_bulk_response
from labcheck.modules.compliance.service import build_bulk_check_service

logger = structlog.get_logger()


def discover_pdfs(paths: list[str], input_dir: Path | None) -> list[str]:
    """Explicit paths first (as given), then PDFs found under ``input_dir``, sorted."""
    found = list(paths)
    if input_dir is not None:
        found += sorted(str(p) for p in input_dir.rglob("*") if p.suffix.lower() == ".pdf")
    # Keep first occurrence of each path
    return list(dict.fromkeys(found))


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bulk PDF compliance check")
    parser.add_argument("paths", nargs="*", help="PDF files to check")
    parser.add_argument("--input-dir", type=Path, default=None,
                        help="Directory scanned recursively for *.pdf")
    parser.add_argument("--json", action="store_true",
                        help="Print the JSON response instead of Markdown")
    parser.add_argument("--concurrency", type=int, default=None,
                        help="Documents processed in parallel (default: BULK_MAX_CONCURRENCY)")
    parser.add_argument("--output", type=Path, default=None,
                        help="Write the report to this file instead of stdout")
    parser.add_argument("--provider", type=str, default=None,
                        help="LLM provider: openai | anthropic | google")
    parser.add_argument("--model", type=str, default=None,
                        help="LLM model name")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    if args.input_dir is not None and not args.input_dir.is_dir():
        print(f"Input directory not found: {args.input_dir}", file=sys.stderr)
        return 2
    if args.concurrency is not None and args.concurrency < 1:
        print("--concurrency must be at least 1", file=sys.stderr)
        return 2

    pdfs = discover_pdfs(args.paths, args.input_dir)
    if not pdfs:
        print("No PDFs to check. Pass file paths or --input-dir.", file=sys.stderr)
        return 2

    overrides: dict[str, object] = {}
    if args.concurrency is not None:
        overrides["bulk_max_concurrency"] = args.concurrency
    if args.provider:
        overrides["llm_provider"] = args.provider
    if args.model:
        overrides["llm_model"] = args.model
    settings = Settings(**overrides)

    logger.info(
        "Bulk PDF check starting",
        pdfs=len(pdfs),
        provider=settings.llm_provider,
        concurrency=settings.bulk_max_concurrency,
    )

    service = build_bulk_check_service(settings)
    response = asyncio.run(service.execute(pdfs))

    if args.json:
        report = response.model_dump_json(by_alias=True, indent=2)
    else:
        report = format_bulk_response(response)

    if args.output is not None:
        args.output.write_text(report, encoding="utf-8")
        logger.info("Report written", path=str(args.output))
    else:
        print(report)

    return 0


if __name__ == "__main__":
    sys.exit(main())
