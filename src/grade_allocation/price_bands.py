"""
Price band rules: wholesale price -> band code, and grouping of products
that share a band.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .data_models import PriceBandCandidate, to_decimal

logger = logging.getLogger(__name__)

UNBANDED = 0


@dataclass(frozen=True)
class PriceBandDefinition:
    """
    Band ``code`` covers ``min_inclusive <= price < max_exclusive``; a missing
    upper bound is open-ended.
    """

    code: int
    label: str
    min_inclusive: Decimal
    max_exclusive: Optional[Decimal] = None

    def contains(self, price: Decimal) -> bool:
        if price < self.min_inclusive:
            return False
        return self.max_exclusive is None or price < self.max_exclusive


# Wholesale price per carton
DEFAULT_BANDS: Sequence[PriceBandDefinition] = (
    PriceBandDefinition(1, "第1段", Decimal("600")),
    PriceBandDefinition(2, "第2段", Decimal("400"), Decimal("600")),
    PriceBandDefinition(3, "第3段", Decimal("290"), Decimal("400")),
    PriceBandDefinition(4, "第4段", Decimal("180"), Decimal("290")),
    PriceBandDefinition(5, "第5段", Decimal("130"), Decimal("180")),
    PriceBandDefinition(6, "第6段", Decimal("100"), Decimal("130")),
    PriceBandDefinition(7, "第7段", Decimal("70"), Decimal("100")),
    PriceBandDefinition(8, "第8段", Decimal("40"), Decimal("70")),
    PriceBandDefinition(9, "第9段", Decimal("0"), Decimal("40")),
)


class PriceBandRules:
    """
    Ordered set of band definitions, built once per planning run.
    """

    def __init__(self, bands: Iterable[PriceBandDefinition]) -> None:
        self.bands: List[PriceBandDefinition] = sorted(bands, key=lambda band: band.code)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, object]]) -> "PriceBandRules":
        """
        Build rules from config-style records with ``code``, ``label``,
        ``min_inclusive`` and optional ``max_exclusive`` keys.
        """

        bands = []
        for record in records:
            upper = record.get("max_exclusive")
            bands.append(
                PriceBandDefinition(
                    code=int(record["code"]),
                    label=str(record.get("label", f"band {record['code']}")),
                    min_inclusive=to_decimal(record["min_inclusive"]),
                    max_exclusive=None if upper is None else to_decimal(upper),
                )
            )
        return cls(bands)

    def resolve(self, price: object) -> int:
        """
        Band code of ``price``, or 0 when the price is missing or unbanded.
        """

        if price is None:
            return UNBANDED
        value = to_decimal(price)
        for band in self.bands:
            if band.contains(value):
                return band.code
        return UNBANDED


def default_rules() -> PriceBandRules:
    return PriceBandRules(DEFAULT_BANDS)


def group_by_band(
    candidates: Iterable[PriceBandCandidate], rules: Optional[PriceBandRules] = None
) -> Dict[int, List[PriceBandCandidate]]:
    """
    Group candidates by price band, ascending by band code and keeping the
    input order inside each band. Unbanded candidates are left out.
    """

    rules = rules or default_rules()
    groups: Dict[int, List[PriceBandCandidate]] = {}
    for candidate in candidates:
        band = rules.resolve(candidate.price)
        if band == UNBANDED:
            logger.warning("Product %s (%s) has no price band", candidate.code, candidate.name)
            continue
        groups.setdefault(band, []).append(candidate)
    return {band: groups[band] for band in sorted(groups)}
