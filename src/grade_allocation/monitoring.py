"""
Monitoring utilities for allocation accuracy.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict

import pandas as pd

from .data_models import ZERO, to_decimal


def relative_error(target: object, actual: object) -> Decimal:
    """
    ``(actual - target) / target``; zero when the target is not positive.
    """

    target_value = to_decimal(target)
    if target_value <= 0:
        return ZERO
    return (to_decimal(actual) - target_value) / target_value


def deviation_metrics(events: pd.DataFrame) -> Dict[str, float]:
    """
    Compute accuracy KPIs from allocation event logs.

    Expects the ``status``, ``target`` and ``actual`` columns written by
    :class:`~grade_allocation.events.AllocationEventLogger`.
    """

    total = len(events)
    if total == 0:
        return {
            "allocations": 0.0,
            "soft_failures": 0.0,
            "mean_abs_error": 0.0,
            "max_overshoot": 0.0,
            "exact_hit_rate": 0.0,
        }

    target = events["target"].map(to_decimal).astype(float)
    actual = events["actual"].map(to_decimal).astype(float)
    succeeded = events["status"] == "ok"
    error = (actual - target)[succeeded]

    return {
        "allocations": float(total),
        "soft_failures": float((~succeeded).sum()),
        "mean_abs_error": float(error.abs().mean()) if len(error) else 0.0,
        "max_overshoot": float(max(error.max(), 0.0)) if len(error) else 0.0,
        "exact_hit_rate": float((error == 0).sum() / total),
    }
