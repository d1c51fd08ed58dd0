"""
End-to-end demo wiring together the grade_allocation components
with event logging and monitoring.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

import numpy as np
import pandas as pd

from . import (
    actual_delivery,
    allocator,
    band_adjuster,
    customer_matrix,
    events,
    monitoring,
    price_bands,
)
from .config import (
    DEFAULT_BOOST_PHRASE,
    DEFAULT_CITY_WIDE_REGION,
    EngineSettings,
    configure_logging,
)
from .data_models import PeriodKey, PriceBandCandidate
from .grades import GRADE_LABELS, GradeRange


DEMO_REGIONS = ["城区", "郊区", "开发区", "城区（A片区）", "东乡", "西乡"]


def synthetic_customer_statistics(
    seed: int = 42, city_wide_region: str = DEFAULT_CITY_WIDE_REGION
) -> pd.DataFrame:
    """
    Create a fake customer statistics table: one row per region with the
    number of customers in each grade, plus the city-wide total row.
    """
    rng = np.random.default_rng(seed=seed)
    records = []
    for region in DEMO_REGIONS:
        # higher grades hold fewer customers
        scale = rng.integers(20, 80)
        counts = rng.poisson(lam=np.linspace(scale * 0.2, scale, len(GRADE_LABELS)))
        records.append({"region": region, **dict(zip(GRADE_LABELS, counts.tolist()))})
    stats = pd.DataFrame(records)
    city = stats[list(GRADE_LABELS)].sum(axis=0)
    city_row = {"region": city_wide_region, **city.to_dict()}
    return pd.concat([stats, pd.DataFrame([city_row])], ignore_index=True)


def demo_candidates(boost_phrase: str = DEFAULT_BOOST_PHRASE) -> List[PriceBandCandidate]:
    """
    Products planned for the period, with their wholesale price per carton.
    """
    return [
        PriceBandCandidate(code="31020004", name="红塔山(软)", target=Decimal("3000"), price=Decimal("120")),
        PriceBandCandidate(code="31020011", name="云烟(紫)", target=Decimal("2200"), price=Decimal("110")),
        PriceBandCandidate(code="31020027", name="黄山(红)", target=Decimal("800"), price=Decimal("105")),
        PriceBandCandidate(
            code="31020035",
            name="玉溪(软)",
            target=Decimal("1500"),
            price=Decimal("230"),
            remark=boost_phrase,
        ),
    ]


def run_demo(seed: int = 42, settings: Optional[EngineSettings] = None) -> pd.DataFrame:
    """
    Allocate every demo product city-wide, reconcile the price bands and
    return the event log.
    """
    settings = settings or EngineSettings()
    stats = synthetic_customer_statistics(seed, settings.city_wide_region)
    catalogue = customer_matrix.rows_from_frame(stats)
    builder = customer_matrix.CustomerMatrixBuilder(settings)
    engine = allocator.GradeTierAllocator(settings)
    event_log = events.AllocationEventLogger()

    # 1) Region-targeted allocation for one product
    regional = builder.build(catalogue, "城区,郊区")
    result = engine.allocate(list(regional.regions), regional, Decimal("1800"))
    event_log.log_allocation("31020004@城区,郊区", result)

    # 2) City-wide first pass for every product, then band reconciliation
    city = builder.build_city_wide(catalogue)
    city_name = settings.city_wide_region
    grade_range = GradeRange.from_labels("D28", "D3")
    candidates = demo_candidates(settings.boost_phrase)
    for candidate in candidates:
        first_pass = engine.allocate([city_name], city, candidate.target)
        event_log.log_allocation(candidate.code, first_pass)
        # per-region results carry no shared vector, read the city row instead
        vector = first_pass.matrix.get(city_name, first_pass.vector)
        if vector is not None:
            candidate.grades = list(vector)

    city_row = city.row(city_name)
    boosted_row = tuple(count * 2 for count in city_row)
    groups = price_bands.group_by_band(candidates)
    report = band_adjuster.PriceBandGroupAdjuster(settings).truncate_and_adjust(
        groups,
        city_row,
        grade_range,
        PeriodKey(2025, 9, 3),
        boosted_row=boosted_row,
    )
    for band, group in groups.items():
        for candidate in group:
            use_boost = builder.needs_boost(candidate.remark)
            weights = boosted_row if use_boost else city_row
            actual = actual_delivery.calculate(candidate.grades, weights)
            event_log.log_band_adjustment(band, candidate, actual, report)

    for message in report.messages():
        print(f"[run_demo] {message}")
    return event_log.to_dataframe()


def main():
    settings = EngineSettings.from_env()
    configure_logging(settings)

    events_df = run_demo(settings=settings)
    print(f"[main] Logged {len(events_df)} events.")
    print("[main] Events sample:")
    print(events_df.head())

    kpis = monitoring.deviation_metrics(events_df)
    print("[main] Deviation metrics:", kpis)


if __name__ == "__main__":
    main()
