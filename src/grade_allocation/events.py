"""
Event logging utilities for allocation runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pandas as pd

from .allocator import AllocationResult
from .band_adjuster import BandAdjustmentReport
from .data_models import PriceBandCandidate

EVENT_COLUMNS = [
    "event_type",
    "event_ts",
    "product_code",
    "band",
    "status",
    "target",
    "actual",
    "error",
]


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AllocationEventLogger:
    """
    Collects allocation and price band adjustment outcomes into a single
    DataFrame.

    Each record is a flat dict; use `to_dataframe()` at the end of a run.
    """

    records: List[Dict[str, Any]] = field(default_factory=list)

    def log_allocation(
        self,
        product_code: str,
        result: AllocationResult,
        ts: Optional[datetime] = None,
    ) -> None:
        """
        Log the outcome of one single-product allocation.
        """
        self.records.append(
            {
                "event_type": "allocation",
                "event_ts": ts or _now(),
                "product_code": product_code,
                "band": None,
                "status": result.status.value,
                "target": result.target,
                "actual": result.actual,
                "error": result.error,
            }
        )

    def log_band_adjustment(
        self,
        band: int,
        candidate: PriceBandCandidate,
        actual: Decimal,
        report: BandAdjustmentReport,
        ts: Optional[datetime] = None,
    ) -> None:
        """
        Log a product's position after price band adjustment.
        """
        unresolved = {issue.code for issue in report.issues if issue.band == band}
        self.records.append(
            {
                "event_type": "band_adjustment",
                "event_ts": ts or _now(),
                "product_code": candidate.code,
                "band": band,
                "status": "unresolved" if candidate.code in unresolved else "ok",
                "target": candidate.target,
                "actual": actual,
                "error": actual - candidate.target,
            }
        )

    def to_dataframe(self) -> pd.DataFrame:
        """
        Convert all logged events into a single DataFrame.
        """
        if not self.records:
            return pd.DataFrame(columns=EVENT_COLUMNS)
        return pd.DataFrame(self.records, columns=EVENT_COLUMNS)
