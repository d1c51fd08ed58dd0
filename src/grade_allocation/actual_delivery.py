"""
Actual delivery: the realised total of an allocation weighted by customer
counts.
"""

from __future__ import annotations

from decimal import Decimal
from itertools import zip_longest
from typing import Dict, Mapping, Optional, Sequence

import numpy as np

from .data_models import ZERO, to_decimal
from .errors import MatrixShapeError
from .grades import GRADE_COUNT


def calculate(allocation: Sequence[object], counts: Sequence[object]) -> Decimal:
    """
    ``sum(allocation[t] * counts[t])``. Missing or ``None`` values count as
    zero, so sequences of different length are accepted.
    """

    total = ZERO
    for value, count in zip_longest(
        () if allocation is None else allocation, () if counts is None else counts
    ):
        total += to_decimal(value) * to_decimal(count)
    return total


def calculate_fixed(allocation: Sequence[object], counts: Sequence[object]) -> Decimal:
    """
    Same as :func:`calculate` but both sequences must have exactly 30 tiers.
    """

    if allocation is None or len(allocation) != GRADE_COUNT:
        raise MatrixShapeError(f"Allocation must have {GRADE_COUNT} tiers")
    if counts is None or len(counts) != GRADE_COUNT:
        raise MatrixShapeError(f"Customer counts must have {GRADE_COUNT} tiers")
    return calculate(allocation, counts)


def _padded(values: Optional[Sequence[object]]) -> list:
    row = [to_decimal(v) for v in (() if values is None else values)][:GRADE_COUNT]
    return row + [ZERO] * (GRADE_COUNT - len(row))


def per_region(
    allocation_matrix: Mapping[str, Sequence[object]],
    customer_matrix: Mapping[str, Sequence[object]],
) -> Dict[str, Decimal]:
    """Realised total of every allocated region; regions without counts give zero."""
    return {
        region: calculate(allocation, customer_matrix.get(region, ()))
        for region, allocation in allocation_matrix.items()
    }


def calculate_matrix(
    allocation_matrix: Mapping[str, Sequence[object]],
    customer_matrix: Mapping[str, Sequence[object]],
) -> Decimal:
    """
    Realised total summed over every region present in both matrices.
    """

    regions = [region for region in allocation_matrix if region in customer_matrix]
    if not regions:
        return ZERO
    allocations = np.array([_padded(allocation_matrix[r]) for r in regions], dtype=object)
    counts = np.array([_padded(customer_matrix[r]) for r in regions], dtype=object)
    return Decimal((allocations * counts).sum())
