"""
Core data models used across the grade_allocation package.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from numbers import Integral, Real
from typing import Iterable, List, Optional, Tuple

from .errors import MatrixShapeError
from .grades import GRADE_COUNT

Vector = Tuple[Decimal, ...]

ZERO = Decimal(0)
ONE = Decimal(1)


def to_decimal(value: object) -> Decimal:
    """
    Coerce a count, quantity or price to ``Decimal``. ``None`` is zero.

    Floats go through ``str`` so that ``0.1`` becomes ``Decimal("0.1")``.
    """

    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise MatrixShapeError(f"Boolean is not a numeric value: {value!r}")
    elif isinstance(value, Integral):
        result = Decimal(int(value))
    elif isinstance(value, Real):
        number = float(value)
        if math.isnan(number):
            return ZERO
        result = Decimal(str(number))
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return ZERO
        try:
            result = Decimal(text)
        except InvalidOperation as exc:
            raise MatrixShapeError(f"Not a decimal value: {value!r}") from exc
    else:
        raise MatrixShapeError(f"Unsupported numeric value: {value!r}")
    if not result.is_finite():
        raise MatrixShapeError(f"Value must be finite: {value!r}")
    return result


def as_vector(values: Iterable[object], name: str = "vector") -> Vector:
    """
    Validate and convert a 30-tier sequence of non-negative numbers.
    """

    if values is None:
        raise MatrixShapeError(f"{name} is missing")
    converted = tuple(to_decimal(v) for v in values)
    if len(converted) != GRADE_COUNT:
        raise MatrixShapeError(
            f"{name} must have {GRADE_COUNT} tiers, got {len(converted)}"
        )
    for index, value in enumerate(converted):
        if value < 0:
            raise MatrixShapeError(f"{name} has a negative value at tier {index}: {value}")
    return converted


def zero_vector() -> Vector:
    return (ZERO,) * GRADE_COUNT


def is_zero_vector(values: Iterable[Decimal]) -> bool:
    return all(v == 0 for v in values)


class AllocationStatus(Enum):
    """
    Outcome of one allocation request.

    ``EMPTY_INPUT`` and ``NO_WEIGHT`` are soft failures: the caller decides
    whether to skip the region, retry or drop the product.
    """

    OK = "ok"
    EMPTY_INPUT = "empty_input"
    NO_WEIGHT = "no_weight"


@dataclass(frozen=True)
class RegionRow:
    """
    One catalogue entry of the customer statistics: a region and its
    customer count per tier.
    """

    name: str
    counts: Vector

    def __post_init__(self) -> None:
        object.__setattr__(self, "counts", as_vector(self.counts, name=f"region {self.name!r}"))

    @property
    def total(self) -> Decimal:
        return sum(self.counts, ZERO)


@dataclass(frozen=True)
class PeriodKey:
    """
    Planning period identifier, used to label diagnostics.
    """

    year: int
    month: int
    week_seq: int

    def __str__(self) -> str:
        return f"{self.year}-{self.month}-{self.week_seq}"


@dataclass
class PriceBandCandidate:
    """
    A product competing inside a price band.

    ``grades`` is adjusted in place by the price band adjuster.
    """

    code: str
    name: str
    target: Decimal
    grades: List[Decimal] = field(default_factory=lambda: list(zero_vector()))
    remark: Optional[str] = None
    price: Optional[Decimal] = None

    def __post_init__(self) -> None:
        self.target = to_decimal(self.target)
        self.grades = list(as_vector(self.grades, name=f"grades of {self.code}"))
        if self.price is not None:
            self.price = to_decimal(self.price)
