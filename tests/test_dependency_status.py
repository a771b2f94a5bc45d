"""Timing evaluation of single dependency edges."""

import pytest

from planboard.services.dependency_status import (
    DependencyStatus,
    describe_dependency,
    evaluate_dependency_status,
)
from planboard.services.schedule_math import MS_PER_MINUTE

H = 60 * MS_PER_MINUTE

# predecessor 0h-2h, successor 3h-5h
PRED = (0, 2 * H)
SUCC = (3 * H, 5 * H)


class TestEvaluateDependencyStatus:

    @pytest.mark.parametrize("dep_type", ["FS", "SS", "FF", "SF"])
    def test_satisfied_without_lag(self, dep_type) -> None:
        status = evaluate_dependency_status(*PRED, *SUCC, dep_type, 0)
        assert status is DependencyStatus.SATISFIED

    def test_fs_exact_boundary_is_satisfied(self) -> None:
        status = evaluate_dependency_status(0, 2 * H, 2 * H, 3 * H, "FS", 0)
        assert status is DependencyStatus.SATISFIED

    def test_fs_lag_pushes_into_violation(self) -> None:
        status = evaluate_dependency_status(*PRED, *SUCC, "FS", 61)
        assert status is DependencyStatus.VIOLATED

    def test_negative_lag_allows_overlap(self) -> None:
        status = evaluate_dependency_status(0, 2 * H, H, 3 * H, "FS", -60)
        assert status is DependencyStatus.SATISFIED

    def test_ff_compares_ends(self) -> None:
        status = evaluate_dependency_status(0, 6 * H, *SUCC, "FF", 0)
        assert status is DependencyStatus.VIOLATED

    def test_sf_compares_predecessor_start_to_successor_end(self) -> None:
        status = evaluate_dependency_status(6 * H, 7 * H, *SUCC, "SF", 0)
        assert status is DependencyStatus.VIOLATED

    def test_only_relevant_timestamps_are_required(self) -> None:
        # SS only needs both starts
        status = evaluate_dependency_status(0, None, H, None, "SS", 0)
        assert status is DependencyStatus.SATISFIED

    def test_missing_timestamp_is_unknown(self) -> None:
        status = evaluate_dependency_status(0, None, H, 2 * H, "FS", 0)
        assert status is DependencyStatus.UNKNOWN

    def test_non_finite_lag_is_unknown(self) -> None:
        status = evaluate_dependency_status(*PRED, *SUCC, "FS", float("nan"))
        assert status is DependencyStatus.UNKNOWN

    def test_unknown_type(self) -> None:
        assert evaluate_dependency_status(*PRED, *SUCC, "XX", 0) is DependencyStatus.UNKNOWN

    def test_status_is_a_string(self) -> None:
        assert DependencyStatus.VIOLATED == "violated"


class TestDescribeDependency:

    def test_positive_lag(self) -> None:
        assert describe_dependency("FS", 15) == "FS +15m"

    def test_negative_lag(self) -> None:
        assert describe_dependency("SS", -30) == "SS -30m"
