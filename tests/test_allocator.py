"""
Tests for the grade-tier allocator.

Covers the shape of the allocation vector (non-increasing, zero outside the
grade range), the no-undershoot guarantee, soft failures and the per-region
allocation mode.
"""

from decimal import Decimal

import pytest

from grade_allocation.allocator import (
    UNSPECIFIED_GROUP,
    AllocationMode,
    AllocationProblem,
    GradeTierAllocator,
    allocate,
    group_regions,
    group_weights,
    is_monotonic,
    level_fill,
    split_target,
    trim_overshoot,
    vector_summary,
)
from grade_allocation.config import EngineSettings
from grade_allocation.customer_matrix import CustomerMatrix
from grade_allocation.data_models import AllocationStatus
from grade_allocation.errors import MatrixShapeError
from grade_allocation.grades import GradeRange


def _counts(**tiers):
    """30-tier row from ``t<index>=count`` keyword arguments."""
    row = [0] * 30
    for key, value in tiers.items():
        row[int(key[1:])] = value
    return row


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def three_tier_matrix():
    return CustomerMatrix({"城区": _counts(t0=100, t1=50, t2=30)})


@pytest.fixture()
def top_range():
    return GradeRange(0, 2)


# ---------------------------------------------------------------------------
# Level filling
# ---------------------------------------------------------------------------
class TestLevelFill:
    def test_reference_scenario(self, three_tier_matrix, top_range):
        result = allocate(["城区"], three_tier_matrix, 500, top_range)
        assert result.status is AllocationStatus.OK
        assert list(result.vector[:3]) == [3, 3, 2]
        assert result.actual == Decimal("510")
        assert result.error == Decimal("10")

    def test_exact_round_hits_target(self, three_tier_matrix, top_range):
        result = allocate(["城区"], three_tier_matrix, 180, top_range)
        assert list(result.vector[:3]) == [1, 1, 1]
        assert result.actual == 180

    @pytest.mark.parametrize("target", [1, 7, 99, 179, 181, 1000, 12345, "2500.5"])
    def test_never_undershoots_and_stays_monotone(self, three_tier_matrix, top_range, target):
        result = allocate(["城区"], three_tier_matrix, target, top_range)
        target = Decimal(str(target))
        assert result.actual >= target
        # overshoot is below the heaviest single tier
        assert result.actual - target < 100
        assert is_monotonic(result.vector, top_range)

    def test_reference_scenario_over_full_range(self, three_tier_matrix):
        result = allocate(["城区"], three_tier_matrix, 500)
        assert list(result.vector[:3]) == [3, 3, 2]
        assert all(v == 0 for v in result.vector[3:])
        assert result.actual == Decimal("510")
        assert is_monotonic(result.vector)

    def test_exact_target_is_idempotent(self):
        matrix = CustomerMatrix({"城区": _counts(t0=1000)})
        result = allocate(["城区"], matrix, 1000)
        assert result.vector[0] == 1
        assert all(v == 0 for v in result.vector[1:])
        assert result.actual == 1000

    def test_empty_tiers_below_last_customers_stay_zero(self):
        weights = tuple(Decimal(v) for v in _counts(t3=10, t6=5))
        heights = level_fill(weights, Decimal("40"), GradeRange.full())
        assert list(heights[:7]) == [3, 3, 3, 3, 2, 2, 2]
        assert all(v == 0 for v in heights[7:])

    def test_zero_weight_tiers_follow_the_running_level(self):
        weights = tuple(Decimal(v) for v in _counts(t0=10, t2=10))
        heights = level_fill(weights, Decimal("30"), GradeRange(0, 2))
        assert list(heights[:3]) == [2, 1, 1]

    def test_large_target_is_bounded_work(self):
        matrix = CustomerMatrix({"城区": _counts(t0=1)})
        result = allocate(["城区"], matrix, 10 ** 12, GradeRange(0, 0))
        assert result.vector[0] == Decimal(10 ** 12)
        assert result.actual == Decimal(10 ** 12)

    def test_grade_range_containment(self):
        matrix = CustomerMatrix({"城区": [5] * 30})
        grade_range = GradeRange.from_labels("D25", "D20")
        result = allocate(["城区"], matrix, 1000, grade_range)
        for index, value in enumerate(result.vector):
            if not grade_range.contains(index):
                assert value == 0
        assert result.actual >= 1000


class TestTrimOvershoot:
    def test_lowers_low_tiers_while_target_is_met(self):
        weights = tuple(Decimal(v) for v in _counts(t0=100, t1=1, t2=1))
        grade_range = GradeRange(0, 2)
        filled = level_fill(weights, Decimal("150"), grade_range)
        assert list(filled[:3]) == [2, 1, 1]

        trimmed = trim_overshoot(filled, weights, Decimal("150"), grade_range)
        assert list(trimmed[:3]) == [2, 0, 0]
        assert is_monotonic(trimmed, grade_range)

    def test_no_excess_returns_input(self):
        weights = tuple(Decimal(v) for v in _counts(t0=10))
        heights = tuple(Decimal(v) for v in _counts(t0=3))
        assert trim_overshoot(heights, weights, Decimal("30"), GradeRange(0, 0)) == heights


# ---------------------------------------------------------------------------
# Broadcast and soft failures
# ---------------------------------------------------------------------------
class TestAllocatorContract:
    def test_broadcast_writes_same_vector_to_every_region(self):
        matrix = CustomerMatrix(
            {"城区": _counts(t0=60), "郊区": _counts(t0=40, t1=50)}
        )
        result = allocate(["城区", "郊区"], matrix, 300, GradeRange(0, 1))
        assert result.matrix["城区"] == result.matrix["郊区"] == result.vector
        assert list(result.vector[:2]) == [2, 2]
        assert result.actual == 300

    def test_only_target_regions_count(self):
        matrix = CustomerMatrix({"城区": _counts(t0=10), "郊区": _counts(t0=1000)})
        result = allocate(["城区"], matrix, 50, GradeRange(0, 0))
        assert list(result.matrix) == ["城区"]
        assert result.vector[0] == 5

    @pytest.mark.parametrize(
        "regions, target",
        [([], 100), (["城区"], 0), (["城区"], -5)],
    )
    def test_degenerate_input_is_a_soft_failure(self, three_tier_matrix, regions, target):
        result = allocate(regions, three_tier_matrix, target)
        assert result.status is AllocationStatus.EMPTY_INPUT
        assert result.matrix == {}
        assert not result.ok

    def test_empty_matrix_is_a_soft_failure(self):
        result = allocate(["城区"], {}, 100)
        assert result.status is AllocationStatus.EMPTY_INPUT

    def test_all_zero_weights_in_range(self):
        matrix = CustomerMatrix({"城区": _counts(t0=100), "郊区": _counts(t1=5)})
        result = allocate(["城区", "郊区"], matrix, 100, GradeRange(5, 10))
        assert result.status is AllocationStatus.NO_WEIGHT
        assert all(v == 0 for v in result.matrix["城区"])
        assert all(v == 0 for v in result.matrix["郊区"])
        assert result.actual == 0

    def test_unknown_region_raises(self, three_tier_matrix):
        with pytest.raises(MatrixShapeError):
            allocate(["开发区"], three_tier_matrix, 100)

    def test_solve_accepts_problem(self, three_tier_matrix, top_range):
        problem = AllocationProblem(["城区"], three_tier_matrix, Decimal("500"), top_range)
        result = GradeTierAllocator().solve(problem)
        assert result.actual == Decimal("510")

    def test_to_frame(self, three_tier_matrix, top_range):
        frame = allocate(["城区"], three_tier_matrix, 500, top_range).to_frame()
        assert frame.shape == (1, 30)
        assert frame.loc["城区", "D30"] == 3

    def test_unknown_mode_is_rejected(self):
        with pytest.raises(ValueError):
            GradeTierAllocator(EngineSettings(allocation_mode="round_robin"))


# ---------------------------------------------------------------------------
# Per-region mode
# ---------------------------------------------------------------------------
class TestPerRegionMode:
    def test_split_target_is_exact(self):
        shares = split_target(Decimal("10"), {"a": Decimal(1), "b": Decimal(2)})
        assert shares == {"a": Decimal(3), "b": Decimal(7)}

    def test_split_target_keeps_precision(self):
        shares = split_target(Decimal("10.00"), {"a": Decimal(1), "b": Decimal(2)})
        assert shares["a"] == Decimal("3.33")
        assert sum(shares.values()) == Decimal("10.00")

    def test_split_target_without_weight(self):
        assert split_target(Decimal("10"), {"a": Decimal(0)}) == {"a": Decimal(0)}

    def test_regions_get_distinct_vectors(self):
        matrix = CustomerMatrix({"城区": _counts(t0=10), "郊区": _counts(t0=30)})
        result = allocate(
            ["城区", "郊区"], matrix, 100, GradeRange(0, 0), mode=AllocationMode.PER_REGION
        )
        assert result.ok
        assert result.vector is None
        assert result.matrix["城区"][0] == 3
        assert result.matrix["郊区"][0] == 3
        assert result.actual == 120
        assert result.actual >= 100

    @pytest.fixture()
    def grouped_matrix(self):
        return CustomerMatrix(
            {"城区": _counts(t0=10), "郊区": _counts(t0=30), "东乡": _counts(t0=20)}
        )

    @staticmethod
    def _district(region):
        return "south" if region == "东乡" else "north"

    def test_group_ratios_split_the_target(self, grouped_matrix):
        result = allocate(
            ["城区", "郊区", "东乡"],
            grouped_matrix,
            100,
            GradeRange(0, 0),
            mode="per_region",
            grouping=self._district,
            group_ratios={"north": 3, "south": 1},
        )
        # north: share 75 over 40 customers, south: share 25 over 20
        assert result.matrix["城区"] == result.matrix["郊区"]
        assert result.matrix["城区"][0] == 2
        assert result.matrix["东乡"][0] == 2
        assert result.actual == 120
        assert list(result.matrix) == ["城区", "郊区", "东乡"]

    def test_missing_or_non_positive_ratio_counts_as_one(self, grouped_matrix):
        result = allocate(
            ["城区", "郊区", "东乡"],
            grouped_matrix,
            100,
            GradeRange(0, 0),
            mode="per_region",
            grouping=self._district,
            group_ratios={"north": 0},
        )
        assert result.matrix["城区"][0] == 2
        assert result.matrix["东乡"][0] == 3
        assert result.actual == 140

    def test_group_without_customers_takes_no_share(self, caplog):
        matrix = CustomerMatrix(
            {"城区": _counts(t0=10), "郊区": _counts(t0=30), "东乡": _counts(t5=20)}
        )
        with caplog.at_level("WARNING"):
            result = allocate(
                ["城区", "郊区", "东乡"],
                matrix,
                100,
                GradeRange(0, 0),
                mode="per_region",
                grouping=self._district,
                group_ratios={"north": 1, "south": 1},
            )
        assert result.ok
        assert result.matrix["城区"][0] == 3
        assert all(v == 0 for v in result.matrix["东乡"])
        assert result.actual >= 100
        assert "south" in caplog.text

    def test_group_regions(self):
        assert group_regions(["城区", "郊区"]) == {"城区": ["城区"], "郊区": ["郊区"]}
        assert group_regions(["城区", "郊区"], lambda region: " ") == {
            UNSPECIFIED_GROUP: ["城区", "郊区"]
        }

    def test_group_weights(self):
        weights = group_weights(["a", "b", "c"], {"a": 2, "b": -1})
        assert weights == {"a": Decimal(2), "b": Decimal(1), "c": Decimal(1)}

    def test_grouping_is_ignored_in_broadcast_mode(self, grouped_matrix):
        regions = ["城区", "郊区", "东乡"]
        plain = allocate(regions, grouped_matrix, 100, GradeRange(0, 0))
        grouped = allocate(regions, grouped_matrix, 100, GradeRange(0, 0), grouping=self._district)
        assert plain.matrix == grouped.matrix

    def test_mode_from_settings(self):
        engine = GradeTierAllocator(EngineSettings(allocation_mode="per_region"))
        assert engine.mode is AllocationMode.PER_REGION


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
class TestHelpers:
    def test_is_monotonic(self):
        grade_range = GradeRange(0, 2)
        assert is_monotonic(_counts(t0=3, t1=3, t2=2), grade_range)
        assert not is_monotonic(_counts(t0=1, t1=2), grade_range)
        assert not is_monotonic(_counts(t0=1, t5=1), grade_range)

    def test_vector_summary(self):
        assert vector_summary(_counts(t0=3, t29=1)) == [("D30", 3), ("D1", 1)]
