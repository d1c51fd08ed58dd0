"""
Tests for allocation event logging and deviation monitoring.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from grade_allocation.allocator import AllocationResult
from grade_allocation.band_adjuster import BandAdjustmentReport, UnresolvedCandidate
from grade_allocation.data_models import AllocationStatus, PriceBandCandidate
from grade_allocation.events import EVENT_COLUMNS, AllocationEventLogger
from grade_allocation.monitoring import deviation_metrics, relative_error


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def event_log():
    log = AllocationEventLogger()
    log.log_allocation(
        "P1",
        AllocationResult(matrix={}, status=AllocationStatus.OK, target=Decimal(100), actual=Decimal(110)),
    )
    log.log_allocation(
        "P2",
        AllocationResult(matrix={}, status=AllocationStatus.OK, target=Decimal(50), actual=Decimal(50)),
    )
    log.log_allocation(
        "P3",
        AllocationResult(matrix={}, status=AllocationStatus.EMPTY_INPUT, target=Decimal(0)),
    )
    return log


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
class TestAllocationEventLogger:
    def test_empty_log_has_columns(self):
        frame = AllocationEventLogger().to_dataframe()
        assert frame.empty
        assert list(frame.columns) == EVENT_COLUMNS

    def test_allocation_records(self, event_log):
        frame = event_log.to_dataframe()
        assert len(frame) == 3
        assert list(frame["status"]) == ["ok", "ok", "empty_input"]
        assert frame.loc[0, "error"] == Decimal(10)

    def test_band_adjustment_status(self):
        candidate = PriceBandCandidate(code="P1", name="卷烟", target=Decimal(100))
        report = BandAdjustmentReport(
            issues=[
                UnresolvedCandidate(
                    band=6, code="P1", name="卷烟", target=Decimal(100), actual=Decimal(0), reason="x"
                )
            ]
        )
        ts = datetime(2025, 9, 1, tzinfo=timezone.utc)
        log = AllocationEventLogger()
        log.log_band_adjustment(6, candidate, Decimal(0), report, ts=ts)
        log.log_band_adjustment(5, candidate, Decimal(100), report, ts=ts)

        frame = log.to_dataframe()
        assert list(frame["status"]) == ["unresolved", "ok"]
        assert list(frame["band"]) == [6, 5]
        assert frame.loc[0, "event_ts"] == ts


# ---------------------------------------------------------------------------
# Monitoring
# ---------------------------------------------------------------------------
class TestMonitoring:
    def test_relative_error(self):
        assert relative_error(100, 110) == Decimal("0.1")
        assert relative_error(0, 5) == 0

    def test_deviation_metrics(self, event_log):
        kpis = deviation_metrics(event_log.to_dataframe())
        assert kpis["allocations"] == 3.0
        assert kpis["soft_failures"] == 1.0
        assert kpis["mean_abs_error"] == pytest.approx(5.0)
        assert kpis["max_overshoot"] == pytest.approx(10.0)
        assert kpis["exact_hit_rate"] == pytest.approx(1 / 3)

    def test_deviation_metrics_empty(self):
        kpis = deviation_metrics(AllocationEventLogger().to_dataframe())
        assert kpis["allocations"] == 0.0
        assert kpis["exact_hit_rate"] == 0.0
