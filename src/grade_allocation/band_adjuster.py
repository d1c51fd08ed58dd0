"""
Truncation and error adjustment for products sharing one price band.

Every product in a band enters with an allocation computed on its own.
The adjuster clips each allocation to the grade range, cuts off the low
tiers that fewer than two products of the band reach (unless that would
leave a product further from its own target), and then nudges each
product's tiers until its realised total sits as close to its own target as
whole units allow. Tier monotonicity is not re-imposed here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence

from . import actual_delivery
from .config import EngineSettings
from .customer_matrix import remark_requests_boost
from .data_models import ONE, ZERO, PeriodKey, PriceBandCandidate, as_vector, is_zero_vector
from .grades import GradeRange, index_to_label

logger = logging.getLogger(__name__)

# Guard against pathological weight ratios; each pass makes progress.
MAX_FILL_PASSES = 10_000


@dataclass(frozen=True)
class UnresolvedCandidate:
    """
    A product whose target could not be approached after truncation.
    """

    band: int
    code: str
    name: str
    target: Decimal
    actual: Decimal
    reason: str
    period_key: Optional[PeriodKey] = None

    @property
    def deficit(self) -> Decimal:
        return self.target - self.actual

    def message(self) -> str:
        period = f" in {self.period_key}" if self.period_key else ""
        return (
            f"Product {self.name}({self.code}) in price band {self.band}{period}: "
            f"{self.reason}, target {self.target}, actual {self.actual}"
        )


@dataclass
class BandAdjustmentReport:
    """
    Outcome of one :meth:`PriceBandGroupAdjuster.truncate_and_adjust` call.
    """

    issues: List[UnresolvedCandidate] = field(default_factory=list)
    adjusted: int = 0
    cutoffs: Dict[int, int] = field(default_factory=dict)
    # codes of products that kept their tiers below the band cutoff
    cutoff_skipped: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues

    def messages(self) -> List[str]:
        return [issue.message() for issue in self.issues]


def enforce_grade_range(grades: List[Decimal], grade_range: GradeRange) -> None:
    for index in range(len(grades)):
        if not grade_range.contains(index):
            grades[index] = ZERO


def find_cutoff(group: Sequence[PriceBandCandidate], grade_range: GradeRange) -> Optional[int]:
    """
    Scan from the lowest grade upward for the first tier where at least two
    products hold a non-zero allocation.
    """

    for tier in range(grade_range.min_index, grade_range.max_index - 1, -1):
        holders = sum(1 for candidate in group if candidate.grades[tier] > 0)
        if holders >= 2:
            return tier
    return None


def truncate_below(grades: List[Decimal], cutoff: int, grade_range: GradeRange) -> None:
    for tier in range(cutoff + 1, grade_range.min_index + 1):
        grades[tier] = ZERO


def cutoff_keeps_target(
    candidate: PriceBandCandidate,
    weights: Sequence[Decimal],
    grade_range: GradeRange,
    cutoff: int,
) -> bool:
    """
    Whether cutting ``candidate`` at the band cutoff leaves it at least as
    close to its own target as keeping its low tiers.

    Only the candidate's own vector and target are consulted. A candidate
    already on target, or one that the cutoff would empty, keeps its tiers.
    """

    if candidate.target <= 0:
        return True
    if actual_delivery.calculate(candidate.grades, weights) == candidate.target:
        return False
    truncated = list(candidate.grades)
    truncate_below(truncated, cutoff, grade_range)
    if is_zero_vector(truncated):
        return False
    kept = list(candidate.grades)
    cut_actual = adjust_candidate(truncated, weights, candidate.target, grade_range.max_index, cutoff)
    kept_actual = adjust_candidate(
        kept, weights, candidate.target, grade_range.max_index, grade_range.min_index
    )
    return abs(cut_actual - candidate.target) <= abs(kept_actual - candidate.target)


def _fill_deficit(
    grades: List[Decimal],
    weights: Sequence[Decimal],
    tiers: List[int],
    remainder: Decimal,
) -> Decimal:
    """
    Add whole units, highest grade first, while they still fit under the
    target. Returns the remaining deficit.
    """

    for _ in range(MAX_FILL_PASSES):
        fitting = [t for t in tiers if weights[t] <= remainder]
        if not fitting:
            break
        round_weight = sum((weights[t] for t in fitting), ZERO)
        rounds = remainder // round_weight
        if rounds > 0:
            for t in fitting:
                grades[t] += rounds
            remainder -= rounds * round_weight
            continue
        for t in fitting:
            if weights[t] <= remainder:
                grades[t] += ONE
                remainder -= weights[t]
    else:
        logger.debug("Deficit fill stopped after %d passes", MAX_FILL_PASSES)
    return remainder


def _trim_surplus(
    grades: List[Decimal],
    weights: Sequence[Decimal],
    tiers: List[int],
    excess: Decimal,
) -> Decimal:
    """
    Remove whole units, lowest grade first, while the total stays at or
    above the target. Returns the remaining surplus.
    """

    for t in reversed(tiers):
        if excess <= 0:
            break
        steps = min(grades[t], excess // weights[t])
        if steps > 0:
            grades[t] -= steps
            excess -= steps * weights[t]
    return excess


def adjust_candidate(
    grades: List[Decimal],
    weights: Sequence[Decimal],
    target: Decimal,
    max_index: int,
    cutoff: int,
) -> Decimal:
    """
    Move the realised total of one allocation towards ``target`` using only
    tiers ``max_index..cutoff`` with positive customer counts.

    ``grades`` is modified in place; the new realised total is returned.
    """

    tiers = [t for t in range(max_index, cutoff + 1) if weights[t] > 0]
    amount = actual_delivery.calculate(grades, weights)
    if not tiers or amount == target:
        return amount

    if amount < target:
        remainder = _fill_deficit(grades, weights, tiers, target - amount)
        if remainder > 0:
            # one more unit on the lightest tier if that lands closer
            lightest = min(tiers, key=lambda t: weights[t])
            if weights[lightest] - remainder < remainder:
                grades[lightest] += ONE
    else:
        excess = _trim_surplus(grades, weights, tiers, amount - target)
        held = [t for t in tiers if grades[t] > 0]
        if excess > 0 and held:
            lightest = min(reversed(held), key=lambda t: weights[t])
            keeps_allocation = sum(grades[t] for t in tiers) > 1
            if keeps_allocation and weights[lightest] - excess < excess:
                grades[lightest] -= ONE
    return actual_delivery.calculate(grades, weights)


class PriceBandGroupAdjuster:
    """
    Applies grade-range truncation and per-product error adjustment to every
    price band group passed in one call.
    """

    def __init__(self, settings: Optional[EngineSettings] = None) -> None:
        self.settings = settings or EngineSettings()

    def truncate_and_adjust(
        self,
        band_groups: Mapping[int, List[PriceBandCandidate]],
        customer_row: Sequence[object],
        grade_range: Optional[GradeRange] = None,
        period_key: Optional[PeriodKey] = None,
        boosted_row: Optional[Sequence[object]] = None,
    ) -> BandAdjustmentReport:
        """
        Adjust every candidate's ``grades`` in place and report the products
        whose target could not be approached.

        ``boosted_row`` replaces ``customer_row`` for products whose remark
        requests the bi-weekly visit boost.
        """

        report = BandAdjustmentReport()
        if not band_groups:
            return report

        grade_range = grade_range or GradeRange.full()
        base = as_vector(customer_row, name="price band customer row")
        boosted = as_vector(boosted_row, name="boosted customer row") if boosted_row is not None else None

        for band, group in band_groups.items():
            if not group:
                continue
            for candidate in group:
                enforce_grade_range(candidate.grades, grade_range)

            cutoff = grade_range.min_index
            if len(group) >= 2:
                found = find_cutoff(group, grade_range)
                if found is not None:
                    cutoff = found
            report.cutoffs[band] = cutoff

            for candidate in group:
                weights = self._weights(candidate, base, boosted)
                own_cutoff = cutoff
                if cutoff < grade_range.min_index:
                    if cutoff_keeps_target(candidate, weights, grade_range, cutoff):
                        truncate_below(candidate.grades, cutoff, grade_range)
                    else:
                        own_cutoff = grade_range.min_index
                        report.cutoff_skipped.append(candidate.code)
                        logger.debug(
                            "Band %s product %s keeps tiers below %s",
                            band, candidate.code, index_to_label(cutoff),
                        )
                issue = self._adjust(band, candidate, weights, grade_range, own_cutoff, period_key)
                if issue is not None:
                    logger.warning(issue.message())
                    report.issues.append(issue)
                else:
                    report.adjusted += 1

        logger.info(
            "Price band adjustment finished: %d adjusted, %d unresolved",
            report.adjusted, len(report.issues),
        )
        return report

    def _weights(
        self,
        candidate: PriceBandCandidate,
        base: Sequence[Decimal],
        boosted: Optional[Sequence[Decimal]],
    ) -> Sequence[Decimal]:
        if boosted is not None and remark_requests_boost(candidate.remark, self.settings.boost_phrase):
            return boosted
        return base

    def _adjust(
        self,
        band: int,
        candidate: PriceBandCandidate,
        weights: Sequence[Decimal],
        grade_range: GradeRange,
        cutoff: int,
        period_key: Optional[PeriodKey],
    ) -> Optional[UnresolvedCandidate]:
        if candidate.target <= 0:
            return None

        def unresolved(reason: str, actual: Decimal) -> UnresolvedCandidate:
            return UnresolvedCandidate(
                band=band,
                code=candidate.code,
                name=candidate.name,
                target=candidate.target,
                actual=actual,
                reason=reason,
                period_key=period_key,
            )

        if is_zero_vector(candidate.grades):
            return unresolved("all tiers zero after truncation", ZERO)

        if not any(weights[t] > 0 for t in range(grade_range.max_index, cutoff + 1)):
            actual = actual_delivery.calculate(candidate.grades, weights)
            if actual < candidate.target:
                return unresolved("no customers in adjustable tiers", actual)
            return None

        actual = adjust_candidate(
            candidate.grades, weights, candidate.target, grade_range.max_index, cutoff
        )
        enforce_grade_range(candidate.grades, grade_range)
        logger.debug(
            "Band %s product %s: target %s, actual %s",
            band, candidate.code, candidate.target, actual,
        )
        if is_zero_vector(candidate.grades):
            return unresolved("all tiers zero after adjustment", actual)
        return None


def truncate_and_adjust(
    band_groups: Mapping[int, List[PriceBandCandidate]],
    customer_row: Sequence[object],
    grade_range: Optional[GradeRange] = None,
    period_key: Optional[PeriodKey] = None,
    boosted_row: Optional[Sequence[object]] = None,
    settings: Optional[EngineSettings] = None,
) -> BandAdjustmentReport:
    return PriceBandGroupAdjuster(settings).truncate_and_adjust(
        band_groups, customer_row, grade_range, period_key, boosted_row
    )
