"""Compliance Sanitizer — Post-processing of LLM output.

Fixes common LLM output errors before Pydantic validation:
  1. Arrays wrapped in an object ({"analyses": [...]}) or returned bare
  2. Italian report headers (Parametro / Risultato / U.M. / Metodo) as keys
  3. Numbers where strings are expected, "_" / "null" placeholders
  4. List fields returned as null instead of []
  5. Verdicts as isCheck / isCompliant / conforme labels
  6. Sources returned as null, a single dict, or with numeric ids
"""

from __future__ import annotations

from typing import Any

# ---------------------------------------------------------------------------
# Field-name constants
# ---------------------------------------------------------------------------

# Report column headers (Italian labs, English labs) -> Analysis fields
ANALYSIS_KEY_MAP = {
    "parametro": "parameter",
    "parameter": "parameter",
    "analita": "parameter",
    "prova": "parameter",
    "risultato": "result",
    "result": "result",
    "valore": "result",
    "value": "result",
    "u.m.": "unit",
    "um": "unit",
    "u.m": "unit",
    "unità di misura": "unit",
    "unita di misura": "unit",
    "unit": "unit",
    "metodo": "method",
    "method": "method",
}

# Keys under which an LLM may wrap a list of rows
LIST_WRAPPER_KEYS = ("analyses", "analisi", "parameters", "checks", "results", "items")

# Keys that carry a verdict in judge output
VERDICT_KEYS = ("verdict", "isCompliant", "is_compliant", "isCheck", "is_check")

# Placeholders meaning "no value"
NULL_PLACEHOLDERS = {"", "_", "-", "null", "none", "n/a"}

CATEGORY_MAP = {
    "food": "food",
    "alimento": "food",
    "alimentare": "food",
    "prodotto alimentare": "food",
    "beverage": "beverage",
    "bevanda": "beverage",
    "bevande": "beverage",
    "drink": "beverage",
    "other": "other",
    "altro": "other",
}


# ---------------------------------------------------------------------------
# Helper: strip markdown code fences from LLM output
# ---------------------------------------------------------------------------

def strip_code_fences(raw_text: str) -> str:
    """Strip markdown code fences (```json ... ```) from LLM response."""
    text = raw_text.strip()
    if text.startswith("```"):
        first_newline = text.find("\n")
        text = text[first_newline + 1:] if first_newline != -1 else text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def _as_text(value: Any) -> str:
    """Plain string for a scalar LLM value, "" for placeholders."""
    if value is None:
        return ""
    if isinstance(value, dict) and "value" in value:
        return _as_text(value["value"])
    text = str(value).strip()
    return "" if text.lower() in NULL_PLACEHOLDERS else text


def _as_optional_text(value: Any) -> str | None:
    return _as_text(value) or None


def unwrap_list(data: Any) -> list[Any]:
    """Rows from a bare array, a wrapped array, or a single object."""
    if data is None:
        return []
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in LIST_WRAPPER_KEYS:
            if key in data:
                value = data[key]
                return value if isinstance(value, list) else ([] if value is None else [value])
        return [data] if data else []
    return []


# ---------------------------------------------------------------------------
# Analyses
# ---------------------------------------------------------------------------

def sanitize_analyses(data: Any) -> list[dict[str, str]]:
    """Normalize extracted analyses rows to {parameter, result, unit, method}.

    Rows without a parameter name are dropped.
    """
    rows: list[dict[str, str]] = []
    for item in unwrap_list(data):
        if not isinstance(item, dict):
            continue
        row = {"parameter": "", "result": "", "unit": "", "method": ""}
        for key, val in item.items():
            field = ANALYSIS_KEY_MAP.get(str(key).strip().lower())
            if field and not row[field]:
                row[field] = _as_text(val)
        if row["parameter"]:
            rows.append(row)
    return rows


# ---------------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------------

def sanitize_matrix(data: Any) -> dict[str, Any]:
    """Normalize the matrix classifier output."""
    if isinstance(data, list):
        data = data[0] if data and isinstance(data[0], dict) else {}
    if not isinstance(data, dict):
        return {}

    features = data.get("specialFeatures", data.get("special_features"))
    if features is None:
        features = []
    elif isinstance(features, str):
        features = [features]
    features = [_as_text(f) for f in features if _as_text(f)]

    category = CATEGORY_MAP.get(_as_text(data.get("category")).lower(), "other")

    return {
        "matrix": _as_text(data.get("matrix")) or "Non determinato",
        "description": _as_optional_text(data.get("description")),
        "product": _as_optional_text(data.get("product")),
        "category": category,
        "ceirsa_category": _as_optional_text(
            data.get("ceirsa_category", data.get("ceirsaCategory"))
        ),
        "special_features": features,
    }


# ---------------------------------------------------------------------------
# Judge output
# ---------------------------------------------------------------------------

def _sanitize_source(item: Any) -> dict[str, Any] | None:
    if not isinstance(item, dict):
        return None
    return {
        "id": _as_text(item.get("id")),
        "title": _as_text(item.get("title")),
        "url": _as_optional_text(item.get("url")),
        "excerpt": _as_text(item.get("excerpt")),
    }


def sanitize_checks(data: Any) -> list[dict[str, Any]]:
    """Normalize judge output to a list of candidate checks.

    The verdict is left raw under ``verdict`` (bool, null or label); parsing
    it is up to the caller. A candidate with no verdict key gets ``None``.
    """
    checks: list[dict[str, Any]] = []
    for item in unwrap_list(data):
        if not isinstance(item, dict):
            continue

        verdict: Any = None
        for key in VERDICT_KEYS:
            if key in item:
                verdict = item[key]
                break

        raw_sources = item.get("sources")
        if isinstance(raw_sources, dict):
            raw_sources = [raw_sources]
        elif not isinstance(raw_sources, list):
            raw_sources = []
        sources = [s for s in (_sanitize_source(r) for r in raw_sources) if s is not None]

        checks.append(
            {
                "name": _as_text(item.get("name")),
                "value": _as_text(item.get("value")),
                "verdict": verdict,
                "description": _as_text(item.get("description")),
                "sources": sources,
            }
        )
    return checks
