"""Compliance pipeline errors.

Document-scoped errors (ExtractionFailure, EvaluationFailure) are recovered by
the bulk check service and turned into an error SinglePdfResult. Request-level
errors (InvalidParamsError, UnsupportedOperation, InternalError) reach the caller.
"""

from __future__ import annotations


class ComplianceError(Exception):
    """Base class for all compliance pipeline errors."""


class InvalidParamsError(ComplianceError):
    """Malformed or empty tool input, rejected before any processing."""


class UnsupportedOperation(ComplianceError):
    """A tool name outside the supported set was requested."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class ExtractionFailure(ComplianceError):
    """A PDF could not be opened, is not a PDF, or has no text layer."""


class EvaluationFailure(ComplianceError):
    """The regulatory corpus or the judgment backend is unavailable."""


class InternalError(ComplianceError):
    """An invariant of the pipeline was violated (a bug, not a user error)."""
