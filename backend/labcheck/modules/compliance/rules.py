"""Deterministic compliance rules.

``decide_band`` classifies a reported result against CEIRSA satisfactory /
acceptable / unsatisfactory limits. ``reconcile_with_limit`` checks a judged
verdict against the limit it cites. Both apply the limit-of-quantification
(LOQ) rule: a result reported as ``< X`` is compliant with a limit ``< Y``
only when ``X <= Y``. When the laboratory LOQ is coarser than the limit the
outcome depends on ``loq_policy``: "lenient" (the default) treats a below-LOQ
result as not evidencing a violation, "strict" leaves it unresolved.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal

from labcheck.modules.compliance.quantities import (
    Limit,
    Quantity,
    format_number,
    parse_limit,
    parse_presence,
    parse_quantity,
    units_comparable,
)
from labcheck.modules.compliance.schemas import Verdict

LoqPolicy = Literal["strict", "lenient"]


class Band(str, Enum):
    SATISFACTORY = "satisfactory"
    ACCEPTABLE = "acceptable"
    UNSATISFACTORY = "unsatisfactory"
    UNDETERMINED = "undetermined"


_BAND_VERDICTS: dict[Band, Verdict] = {
    Band.SATISFACTORY: Verdict.COMPLIANT,
    Band.ACCEPTABLE: Verdict.COMPLIANT,
    Band.UNSATISFACTORY: Verdict.NON_COMPLIANT,
    Band.UNDETERMINED: Verdict.UNRESOLVED,
}


@dataclass(frozen=True)
class BandDecision:
    """Outcome of the CEIRSA band rules for one result."""

    band: Band
    applied_limit: str | None
    rationale: str
    loq_applied: bool = False
    # Unresolved by policy (unit mismatch, LOQ above the limit), not for lack of rules
    settled: bool = False

    @property
    def verdict(self) -> Verdict:
        return _BAND_VERDICTS[self.band]

    def describe(self) -> str:
        return f"Band: {self.band.value}. {self.rationale}"


@dataclass(frozen=True)
class Reconciliation:
    """A judged verdict after checking it against its cited limit."""

    verdict: Verdict
    description: str
    changed: bool = False
    loq_applied: bool = False


# ---------------------------------------------------------------------------
# Rationale wording
# ---------------------------------------------------------------------------


def _loq_compliant_rationale(measured: Quantity, limit: Limit) -> str:
    return (
        f"The reported value {measured.describe()} is below the laboratory limit of "
        f"quantification (LOQ {format_number(measured.value)}), which does not exceed the "
        f"limit '{limit.describe()}': the result does not evidence a violation."
    )


def _loq_lenient_rationale(measured: Quantity, limit: Limit) -> str:
    return (
        f"The reported value {measured.describe()} is below the laboratory limit of "
        f"quantification (LOQ {format_number(measured.value)}). The limit "
        f"'{limit.describe()}' is stricter than the LOQ, but a below-LOQ result does not "
        f"evidence a violation."
    )


def _loq_unresolved_rationale(measured: Quantity, limit: Limit) -> str:
    return (
        f"The reported value {measured.describe()} is below the laboratory limit of "
        f"quantification (LOQ {format_number(measured.value)}), but the limit "
        f"'{limit.describe()}' is stricter than the LOQ: the true value may lie between "
        f"the two, confirmation is required."
    )


def _unit_mismatch_rationale(measured_unit: str | None, limit_unit: str | None) -> str:
    return (
        f"Units are not comparable between the reported result ({measured_unit}) "
        f"and the limit ({limit_unit})."
    )


# ---------------------------------------------------------------------------
# CEIRSA bands
# ---------------------------------------------------------------------------


def decide_band(
    result: str | None,
    unit: str | None,
    *,
    satisfactory: str | None = None,
    acceptable: str | None = None,
    unsatisfactory: str | None = None,
    loq_policy: LoqPolicy = "lenient",
) -> BandDecision:
    """Classify ``result`` into a CEIRSA band.

    Satisfactory and acceptable are compliant (acceptable calls for attention),
    unsatisfactory is not. Anything the limits cannot settle is undetermined.
    """
    result = (result or "").strip()
    if not result:
        return BandDecision(Band.UNDETERMINED, None, "Missing or unreadable result.")

    sat = parse_limit(satisfactory, ceirsa_notation=True)
    acc = parse_limit(acceptable, ceirsa_notation=True)
    unsat = parse_limit(unsatisfactory, ceirsa_notation=True)

    measured = parse_quantity(result)
    measured_unit = unit or (measured.unit if measured else None)
    limit_unit = next((lim.unit for lim in (sat, acc, unsat) if lim and lim.unit), None)
    if limit_unit and not units_comparable(measured_unit, limit_unit):
        return BandDecision(
            Band.UNDETERMINED,
            None,
            _unit_mismatch_rationale(measured_unit, limit_unit),
            settled=True,
        )

    presence = parse_presence(result)
    if sat and sat.presence == "absent" and presence is not None:
        if presence == "present":
            return BandDecision(
                Band.UNSATISFACTORY,
                sat.raw,
                "The criterion requires absence but the result reports detection.",
            )
        return BandDecision(
            Band.SATISFACTORY, sat.raw, "The criterion requires absence and the result is absent."
        )
    if unsat and unsat.presence == "present" and presence is not None:
        if presence == "present":
            return BandDecision(
                Band.UNSATISFACTORY,
                unsat.raw,
                "The result reports detection, which the criterion classifies as unsatisfactory.",
            )
        return BandDecision(
            Band.SATISFACTORY, unsat.raw, "Detection is unsatisfactory and the result is absent."
        )

    if measured is None:
        return BandDecision(
            Band.UNDETERMINED, None, "Result is neither numeric nor a presence statement."
        )

    interval = measured.interval()
    loq = measured.is_below_loq

    if sat and sat.interval and interval.within(sat.interval):
        rationale = (
            _loq_compliant_rationale(measured, sat)
            if loq
            else f"Value {measured.describe()} is within the satisfactory limit '{sat.raw}'."
        )
        return BandDecision(Band.SATISFACTORY, sat.raw, rationale, loq_applied=loq)

    if acc and acc.interval:
        compliant_range = acc.interval
        if sat and sat.interval:
            compliant_range = sat.interval.union(acc.interval) or acc.interval
        if interval.within(acc.interval) or interval.within(compliant_range):
            rationale = (
                _loq_compliant_rationale(measured, acc)
                if loq
                else f"Value {measured.describe()} is within the acceptable range '{acc.raw}'."
            )
            return BandDecision(Band.ACCEPTABLE, acc.raw, rationale, loq_applied=loq)

    if unsat and unsat.interval and interval.within(unsat.interval):
        return BandDecision(
            Band.UNSATISFACTORY,
            unsat.raw,
            f"Value {measured.describe()} is within the unsatisfactory limit '{unsat.raw}'.",
        )

    upper = next(
        (lim for lim in (acc, sat) if lim and lim.interval and lim.interval.is_upper_bound),
        None,
    )
    if loq and upper is not None:
        if loq_policy == "lenient":
            return BandDecision(
                Band.SATISFACTORY,
                upper.raw,
                _loq_lenient_rationale(measured, upper),
                loq_applied=True,
            )
        return BandDecision(
            Band.UNDETERMINED,
            None,
            _loq_unresolved_rationale(measured, upper),
            loq_applied=True,
            settled=True,
        )

    return BandDecision(
        Band.UNDETERMINED,
        None,
        "The available limits do not classify the result deterministically.",
    )


# ---------------------------------------------------------------------------
# Judged verdicts
# ---------------------------------------------------------------------------


def reconcile_with_limit(
    *,
    reported: str,
    reported_unit: str | None,
    limit_text: str | None,
    verdict: Verdict,
    description: str,
    loq_policy: LoqPolicy = "lenient",
    ceirsa_notation: bool = False,
) -> Reconciliation:
    """Check a judged verdict against the upper limit it cites.

    Only quantitative "at most" limits are checked; any other limit wording
    leaves the judged verdict untouched.
    """
    measured = parse_quantity(reported)
    limit = parse_limit(limit_text, ceirsa_notation=ceirsa_notation)
    if measured is None or limit is None or limit.interval is None:
        return Reconciliation(verdict, description)

    measured_unit = reported_unit or measured.unit
    if not units_comparable(measured_unit, limit.unit):
        return _override(
            verdict,
            Verdict.UNRESOLVED,
            _unit_mismatch_rationale(measured_unit, limit.unit),
            description,
        )

    if not limit.interval.is_upper_bound:
        return Reconciliation(verdict, description)

    interval = measured.interval()
    if interval.within(limit.interval):
        if measured.is_below_loq:
            return _override(
                verdict,
                Verdict.COMPLIANT,
                _loq_compliant_rationale(measured, limit),
                description,
                loq_applied=True,
            )
        return _override(
            verdict,
            Verdict.COMPLIANT,
            f"Value {measured.describe()} is within the limit '{limit.describe()}'.",
            description,
        )

    exceeds = interval.low > limit.interval.high or (
        interval.low == limit.interval.high
        and not (interval.low_closed and limit.interval.high_closed)
    )
    if exceeds:
        return _override(
            verdict,
            Verdict.NON_COMPLIANT,
            f"Value {measured.describe()} exceeds the limit '{limit.describe()}'.",
            description,
        )

    if measured.is_below_loq:
        if loq_policy == "lenient":
            return _override(
                verdict,
                Verdict.COMPLIANT,
                _loq_lenient_rationale(measured, limit),
                description,
                loq_applied=True,
            )
        return _override(
            verdict,
            Verdict.UNRESOLVED,
            _loq_unresolved_rationale(measured, limit),
            description,
            loq_applied=True,
        )

    return Reconciliation(verdict, description)


def _override(
    judged: Verdict,
    decided: Verdict,
    rationale: str,
    description: str,
    *,
    loq_applied: bool = False,
) -> Reconciliation:
    description = description.strip()
    combined = f"{rationale} {description}".strip() if description else rationale
    return Reconciliation(
        verdict=decided,
        description=combined,
        changed=decided is not judged,
        loq_applied=loq_applied,
    )
