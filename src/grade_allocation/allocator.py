"""
Grade-tier allocator for a single product target.

The allocator raises every in-range tier one unit at a time, highest grade
first, until the realised amount reaches the target. The resulting vector is
non-increasing across the range and never undershoots a reachable target.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from . import actual_delivery
from .config import EngineSettings
from .customer_matrix import CustomerMatrix, RowsLike
from .data_models import ONE, ZERO, AllocationStatus, Vector, to_decimal, zero_vector
from .errors import MatrixShapeError
from .grades import GRADE_COUNT, GRADE_LABELS, GradeRange

logger = logging.getLogger(__name__)


class AllocationMode(str, Enum):
    """
    ``BROADCAST`` writes one shared vector into every region row.
    ``PER_REGION`` fills each region group against its own share of the
    target; a group is a single region unless a grouping function is given.
    """

    BROADCAST = "broadcast"
    PER_REGION = "per_region"


@dataclass
class AllocationProblem:
    """
    Encapsulates the inputs of one allocation request.
    """

    target_regions: Sequence[str]
    customer_matrix: Union[CustomerMatrix, RowsLike]
    target_amount: Decimal
    grade_range: GradeRange = field(default_factory=GradeRange.full)
    # per-region mode only: region -> group id, and group id -> target ratio
    grouping: Optional[Callable[[str], Optional[str]]] = None
    group_ratios: Optional[Mapping[str, object]] = None


@dataclass
class AllocationResult:
    """
    Allocation matrix plus the soft-failure status the caller must check.
    """

    matrix: Dict[str, Vector]
    status: AllocationStatus
    target: Decimal
    actual: Decimal = ZERO
    vector: Optional[Vector] = None

    @property
    def ok(self) -> bool:
        return self.status is AllocationStatus.OK

    @property
    def error(self) -> Decimal:
        """Signed deviation ``actual - target``."""
        return self.actual - self.target

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [list(v) for v in self.matrix.values()],
            index=pd.Index(list(self.matrix), name="region"),
            columns=list(GRADE_LABELS),
        )


def is_monotonic(vector: Sequence[Decimal], grade_range: Optional[GradeRange] = None) -> bool:
    """
    True when the vector is non-increasing inside the range and zero outside.
    """

    grade_range = grade_range or GradeRange.full()
    for index, value in enumerate(vector):
        if not grade_range.contains(index) and value != 0:
            return False
    tiers = list(grade_range.indices())
    return all(vector[a] >= vector[b] for a, b in zip(tiers, tiers[1:]))


def level_fill(weights: Sequence[Decimal], target: Decimal, grade_range: GradeRange) -> Vector:
    """
    Raise the in-range tiers round by round, highest grade first, and stop
    the first time the weighted amount reaches ``target``.

    Empty tiers between customer-bearing tiers follow the running level;
    empty tiers below the lowest customer-bearing tier stay at zero.
    Returns the all-zero vector when every in-range weight is zero.
    """

    tiers = list(grade_range.indices())
    heights: List[Decimal] = list(zero_vector())
    bearing = [t for t in tiers if weights[t] > 0]
    if not bearing or target <= 0:
        return tuple(heights)
    tiers = tiers[: tiers.index(bearing[-1]) + 1]
    round_weight = sum((weights[t] for t in tiers), ZERO)

    # Whole rounds are applied at once; at most two rounds remain afterwards.
    bulk = max(target // round_weight - ONE, ZERO)
    amount = bulk * round_weight
    if bulk:
        for t in tiers:
            heights[t] = bulk

    while True:
        for t in tiers:
            heights[t] += ONE
            amount += weights[t]
            if amount >= target:
                return tuple(heights)


def trim_overshoot(
    heights: Sequence[Decimal],
    weights: Sequence[Decimal],
    target: Decimal,
    grade_range: GradeRange,
) -> Vector:
    """
    Lower tiers from the lowest grade upward while the vector stays
    non-increasing and the amount stays at or above ``target``.
    """

    result = list(heights)
    excess = actual_delivery.calculate(result, weights) - target
    if excess <= 0:
        return tuple(result)
    for t in reversed(list(grade_range.indices())):
        weight = weights[t]
        if weight <= 0 or result[t] <= 0:
            continue
        floor = result[t + 1] if t < grade_range.min_index else ZERO
        steps = min(result[t] - floor, excess // weight)
        if steps > 0:
            result[t] -= steps
            excess -= steps * weight
    return tuple(result)


def split_target(
    target: Decimal, weights: Dict[str, Decimal]
) -> Dict[str, Decimal]:
    """
    Split ``target`` across regions in proportion to their weights, rounded
    down to the target's precision. The heaviest region absorbs the rest.
    """

    total = sum(weights.values(), ZERO)
    shares = {region: ZERO for region in weights}
    if total <= 0:
        return shares
    exponent = target.as_tuple().exponent
    quantum = ONE.scaleb(exponent) if isinstance(exponent, int) and exponent < 0 else ONE
    heaviest = max(weights, key=lambda region: weights[region])
    for region, weight in weights.items():
        if region != heaviest:
            shares[region] = (target * weight / total).quantize(quantum, rounding=ROUND_DOWN)
    shares[heaviest] = target - sum(shares.values(), ZERO)
    return shares


UNSPECIFIED_GROUP = "UNSPECIFIED"


def group_regions(
    regions: Sequence[str], grouping: Optional[Callable[[str], Optional[str]]] = None
) -> Dict[str, List[str]]:
    """
    Group regions by ``grouping(region)``, keeping region order inside each
    group. Without a grouping function every region is its own group; blank
    group ids fall into ``UNSPECIFIED``.
    """

    groups: Dict[str, List[str]] = {}
    for region in regions:
        key = region if grouping is None else grouping(region)
        if key is None or not str(key).strip():
            key = UNSPECIFIED_GROUP
        groups.setdefault(str(key).strip(), []).append(region)
    return groups


def group_weights(
    groups: Sequence[str], group_ratios: Optional[Mapping[str, object]] = None
) -> Dict[str, Decimal]:
    """Configured ratio of every group; missing or non-positive ratios count as 1."""
    weights: Dict[str, Decimal] = {}
    for group in groups:
        ratio = to_decimal(group_ratios.get(group)) if group_ratios else ZERO
        weights[group] = ratio if ratio > 0 else ONE
    return weights


class GradeTierAllocator:
    """
    Computes the per-tier allocation that realises a product's target.
    """

    def __init__(self, settings: Optional[EngineSettings] = None) -> None:
        self.settings = settings or EngineSettings()
        self.mode = AllocationMode(self.settings.allocation_mode)

    def allocate(
        self,
        target_regions: Sequence[str],
        customer_matrix: Union[CustomerMatrix, RowsLike],
        target_amount: object,
        grade_range: Optional[GradeRange] = None,
        grouping: Optional[Callable[[str], Optional[str]]] = None,
        group_ratios: Optional[Mapping[str, object]] = None,
    ) -> AllocationResult:
        return self.solve(
            AllocationProblem(
                target_regions=target_regions,
                customer_matrix=customer_matrix,
                target_amount=to_decimal(target_amount),
                grade_range=grade_range or GradeRange.full(),
                grouping=grouping,
                group_ratios=group_ratios,
            )
        )

    def solve(self, problem: AllocationProblem) -> AllocationResult:
        target = to_decimal(problem.target_amount)
        regions = list(dict.fromkeys(problem.target_regions or ()))
        matrix = CustomerMatrix.coerce(
            problem.customer_matrix if problem.customer_matrix is not None else ()
        )

        if not regions or matrix.is_empty or target <= 0:
            logger.debug(
                "Allocation skipped: regions=%d, matrix rows=%d, target=%s",
                len(regions), len(matrix), target,
            )
            return AllocationResult(matrix={}, status=AllocationStatus.EMPTY_INPUT, target=target)

        missing = [r for r in regions if r not in matrix]
        if missing:
            raise MatrixShapeError(f"Target regions missing from customer matrix: {missing}")

        if self.mode is AllocationMode.PER_REGION:
            result = self._solve_per_region(
                regions,
                matrix,
                target,
                problem.grade_range,
                problem.grouping,
                problem.group_ratios,
            )
        else:
            if problem.grouping is not None:
                logger.debug("Region grouping ignored in broadcast mode")
            result = self._solve_broadcast(regions, matrix, target, problem.grade_range)

        if result.ok:
            logger.info(
                "Allocated target %s over %d regions in %s: actual %s",
                target, len(regions), problem.grade_range, result.actual,
            )
        else:
            logger.warning(
                "No customers in %s for %d regions, target %s cannot be allocated",
                problem.grade_range, len(regions), target,
            )
        return result

    def _solve_broadcast(
        self,
        regions: List[str],
        matrix: CustomerMatrix,
        target: Decimal,
        grade_range: GradeRange,
    ) -> AllocationResult:
        weights = matrix.column_totals(grade_range, regions)
        if all(w == 0 for w in weights):
            zero = zero_vector()
            return AllocationResult(
                matrix={r: zero for r in regions},
                status=AllocationStatus.NO_WEIGHT,
                target=target,
                vector=zero,
            )

        vector = trim_overshoot(level_fill(weights, target, grade_range), weights, target, grade_range)
        allocation = {r: vector for r in regions}
        return AllocationResult(
            matrix=allocation,
            status=AllocationStatus.OK,
            target=target,
            actual=actual_delivery.calculate_matrix(allocation, matrix),
            vector=vector,
        )

    def _solve_per_region(
        self,
        regions: List[str],
        matrix: CustomerMatrix,
        target: Decimal,
        grade_range: GradeRange,
        grouping: Optional[Callable[[str], Optional[str]]] = None,
        group_ratios: Optional[Mapping[str, object]] = None,
    ) -> AllocationResult:
        """
        Split the target across region groups, then give every group its own
        vector shared by its regions.

        Without a grouping function each region is a group and the target is
        split by in-range customer totals. With one, the split follows
        ``group_ratios``; groups without customers in range take no share.
        """

        groups = group_regions(regions, grouping)
        customers = {
            group: sum((matrix.row_total(r, grade_range) for r in members), ZERO)
            for group, members in groups.items()
        }
        if grouping is None:
            weights = dict(customers)
        else:
            weights = group_weights(list(groups), group_ratios)
            for group, total in customers.items():
                if total <= 0:
                    logger.warning(
                        "Group %s has no customers in %s, its share moves to other groups",
                        group, grade_range,
                    )
                    weights[group] = ZERO
        shares = split_target(target, weights)

        vectors: Dict[str, Vector] = {}
        for group, members in groups.items():
            column_weights = matrix.column_totals(grade_range, members)
            share = shares[group]
            if share <= 0:
                vector = zero_vector()
            else:
                filled = level_fill(column_weights, share, grade_range)
                vector = trim_overshoot(filled, column_weights, share, grade_range)
            logger.debug("Group %s (%d regions): share %s", group, len(members), share)
            for region in members:
                vectors[region] = vector
        allocation = {region: vectors[region] for region in regions}

        if all(total == 0 for total in customers.values()):
            status = AllocationStatus.NO_WEIGHT
        else:
            status = AllocationStatus.OK
        return AllocationResult(
            matrix=allocation,
            status=status,
            target=target,
            actual=actual_delivery.calculate_matrix(allocation, matrix),
        )


def allocate(
    target_regions: Sequence[str],
    customer_matrix: Union[CustomerMatrix, RowsLike],
    target_amount: object,
    grade_range: Optional[GradeRange] = None,
    mode: Union[AllocationMode, str] = AllocationMode.BROADCAST,
    grouping: Optional[Callable[[str], Optional[str]]] = None,
    group_ratios: Optional[Mapping[str, object]] = None,
) -> AllocationResult:
    """
    Convenience wrapper around :class:`GradeTierAllocator`.
    """

    settings = EngineSettings(allocation_mode=AllocationMode(mode).value)
    return GradeTierAllocator(settings).allocate(
        target_regions, customer_matrix, target_amount, grade_range, grouping, group_ratios
    )


def vector_summary(vector: Sequence[Decimal]) -> List[Tuple[str, Decimal]]:
    """Non-zero tiers as ``(label, value)`` pairs, for logging and reports."""
    return [(GRADE_LABELS[i], v) for i, v in enumerate(vector[:GRADE_COUNT]) if v != 0]
