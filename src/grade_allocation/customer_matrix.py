"""
Customer matrix: region -> customer count per grade tier.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .config import EngineSettings
from .data_models import ZERO, RegionRow, Vector, as_vector
from .errors import MatrixShapeError
from .grades import GRADE_COUNT, GRADE_LABELS, GradeRange
from .region_matcher import RegionMatcher

logger = logging.getLogger(__name__)

RowsLike = Union[Mapping[str, Sequence[object]], Iterable[Tuple[str, Sequence[object]]]]


class CustomerMatrix(Mapping[str, Vector]):
    """
    Immutable table of customer counts, one 30-tier row per region.

    Row order is the insertion order. Duplicate region names are rejected
    rather than merged.
    """

    def __init__(self, rows: RowsLike = ()) -> None:
        items = rows.items() if isinstance(rows, Mapping) else rows
        data: "OrderedDict[str, Vector]" = OrderedDict()
        for region, counts in items:
            if region in data:
                raise MatrixShapeError(f"Duplicate region row: {region!r}")
            data[region] = as_vector(counts, name=f"customer row {region!r}")
        self._rows = MappingProxyType(data)

    @classmethod
    def from_rows(cls, rows: Iterable[RegionRow]) -> "CustomerMatrix":
        return cls((row.name, row.counts) for row in rows)

    @classmethod
    def coerce(cls, value: Union["CustomerMatrix", RowsLike]) -> "CustomerMatrix":
        return value if isinstance(value, CustomerMatrix) else cls(value)

    def __getitem__(self, region: str) -> Vector:
        return self._rows[region]

    def __iter__(self) -> Iterator[str]:
        return iter(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __repr__(self) -> str:
        return f"CustomerMatrix(regions={list(self._rows)!r})"

    @property
    def regions(self) -> Tuple[str, ...]:
        return tuple(self._rows)

    @property
    def is_empty(self) -> bool:
        return not self._rows

    def row(self, region: str) -> Vector:
        try:
            return self._rows[region]
        except KeyError:
            raise MatrixShapeError(f"Region not in customer matrix: {region!r}") from None

    def as_array(self, regions: Optional[Sequence[str]] = None) -> np.ndarray:
        """
        Counts as an object array of ``Decimal`` with shape (regions, 30).
        """

        names = list(self._rows) if regions is None else list(regions)
        if not names:
            return np.empty((0, GRADE_COUNT), dtype=object)
        return np.array([self.row(name) for name in names], dtype=object)

    def column_totals(
        self,
        grade_range: Optional[GradeRange] = None,
        regions: Optional[Sequence[str]] = None,
    ) -> Vector:
        """
        Per-tier sum over the selected regions. Tiers outside ``grade_range``
        are reported as zero.
        """

        counts = self.as_array(regions)
        if counts.shape[0] == 0:
            totals = [ZERO] * GRADE_COUNT
        else:
            totals = [Decimal(v) for v in counts.sum(axis=0)]
        if grade_range is not None:
            totals = [v if grade_range.contains(i) else ZERO for i, v in enumerate(totals)]
        return tuple(totals)

    def row_total(self, region: str, grade_range: Optional[GradeRange] = None) -> Decimal:
        row = self.row(region)
        if grade_range is None:
            return sum(row, ZERO)
        return sum((row[i] for i in grade_range.indices()), ZERO)

    def total(self) -> Decimal:
        return sum(self.column_totals(), ZERO)

    def to_frame(self) -> pd.DataFrame:
        """Counts as a DataFrame indexed by region with D30..D1 columns."""
        return pd.DataFrame(
            [list(v) for v in self._rows.values()],
            index=pd.Index(list(self._rows), name="region"),
            columns=list(GRADE_LABELS),
        )


def remark_requests_boost(remark: Optional[str], phrase: str) -> bool:
    """True when the product remark (spaces ignored) contains the boost phrase."""
    if not remark or not phrase:
        return False
    return phrase in remark.replace(" ", "")


def rows_from_frame(stats: pd.DataFrame, region_column: str = "region") -> List[RegionRow]:
    """
    Read catalogue rows from a customer statistics table.

    Parameters
    ----------
    stats:
        DataFrame with a region column and ``D30``..``D1`` columns (case and
        surrounding whitespace of column names are ignored). Missing grade
        columns and empty cells count as zero.
    region_column:
        Name of the region column.
    """

    renamed = {col: str(col).strip().upper() for col in stats.columns if col != region_column}
    df = stats.rename(columns=renamed)
    if region_column not in df.columns:
        raise MatrixShapeError(f"Statistics table has no {region_column!r} column")
    for label in GRADE_LABELS:
        if label not in df.columns:
            df[label] = 0
    df = df[[region_column, *GRADE_LABELS]].copy()
    df[list(GRADE_LABELS)] = df[list(GRADE_LABELS)].astype(object).where(
        df[list(GRADE_LABELS)].notna(), 0
    )

    rows: List[RegionRow] = []
    for record in df.itertuples(index=False, name=None):
        region, *counts = record
        if pd.isna(region) or not str(region).strip():
            continue
        rows.append(RegionRow(str(region).strip(), tuple(counts)))
    return rows


class CustomerMatrixBuilder:
    """
    Shapes catalogue rows into the customer matrix of one allocation request.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        matcher: Optional[RegionMatcher] = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.matcher = matcher or RegionMatcher()

    def build(self, catalogue: Sequence[RegionRow], region_spec: Optional[str]) -> CustomerMatrix:
        """
        Matrix of the catalogue regions named by ``region_spec``, sorted
        descending by customer total. A blank specification selects all.
        """

        if not catalogue:
            logger.warning("Customer statistics catalogue is empty")
            return CustomerMatrix()
        return CustomerMatrix.from_rows(self.matcher.match(region_spec, catalogue))

    def build_city_wide(self, catalogue: Sequence[RegionRow]) -> CustomerMatrix:
        """
        Single-row matrix holding the city-wide statistics row.
        """

        name = self.settings.city_wide_region
        for row in catalogue:
            if row.name.strip() == name:
                return CustomerMatrix([(name, row.counts)])
        logger.warning("City-wide region %s not found in customer statistics", name)
        return CustomerMatrix()

    def needs_boost(self, remark: Optional[str]) -> bool:
        return remark_requests_boost(remark, self.settings.boost_phrase)

    def boost(
        self, matrix: CustomerMatrix, increments: Mapping[str, Sequence[object]]
    ) -> CustomerMatrix:
        """
        New matrix with ``increments`` added tier-wise to the matching rows.
        """

        rows: Dict[str, List[Decimal]] = {region: list(counts) for region, counts in matrix.items()}
        for region, addition in increments.items():
            if region not in rows:
                logger.debug("Boost increment for region %s skipped, not in matrix", region)
                continue
            delta = as_vector(addition, name=f"boost increment {region!r}")
            rows[region] = [base + extra for base, extra in zip(rows[region], delta)]
        return CustomerMatrix(rows)

    def build_with_boost(
        self,
        catalogue: Sequence[RegionRow],
        region_spec: Optional[str],
        remark: Optional[str],
        increments: Optional[Mapping[str, Sequence[object]]],
    ) -> CustomerMatrix:
        """
        Like :meth:`build`, adding the bi-weekly visit customers when the
        product remark asks for the boost.
        """

        base = self.build(catalogue, region_spec)
        if base.is_empty or not self.needs_boost(remark):
            return base
        if not increments:
            logger.warning("Boost requested but no increment rows were supplied")
            return base
        boosted = self.boost(base, increments)
        logger.info("Applied bi-weekly visit boost to %d regions", len(base))
        return boosted
