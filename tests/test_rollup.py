"""Bottom-up rollup aggregation."""

from planboard.services.rollup import RollupRow, RollupTotals, compute_rollup_totals
from planboard.services.schedule_math import ScheduleWindow


def tree() -> list[RollupRow]:
    # m (rollup) -> t1 (manual 60), t2 (rollup) -> s1 (manual 30), s2 (manual 45)
    return [
        RollupRow("s2", "t2", 45),
        RollupRow("m", None, 999, "rollup"),
        RollupRow("t1", "m", 60),
        RollupRow("s1", "t2", 30),
        RollupRow("t2", "m", 500, "rollup"),
    ]


class TestEstimates:

    def test_rollup_mode_sums_children_and_ignores_own(self) -> None:
        totals = compute_rollup_totals(tree())
        assert totals["t2"].total_estimate == 75
        assert totals["m"].total_estimate == 135

    def test_manual_mode_keeps_own_estimate(self) -> None:
        rows = [RollupRow("p", None, 20), RollupRow("c", "p", 100)]
        assert compute_rollup_totals(rows)["p"].total_estimate == 20

    def test_rollup_leaf_is_zero(self) -> None:
        rows = [RollupRow("leaf", None, 40, "rollup")]
        assert compute_rollup_totals(rows)["leaf"].total_estimate == 0


class TestActualsAndCounts:

    def test_actual_always_sums_subtree(self) -> None:
        rows = [RollupRow("p", None, 20), RollupRow("c", "p", 10)]
        totals = compute_rollup_totals(rows, time_map={"p": 5, "c": 7})
        assert totals["p"].total_actual == 12
        assert totals["c"].total_actual == 7

    def test_blocked_and_overdue_counts_include_self(self) -> None:
        totals = compute_rollup_totals(
            tree(),
            blocked_map={"m": True, "s1": True},
            overdue_map={"s2": True, "t1": False},
        )
        assert totals["m"].rollup_blocked_count == 2
        assert totals["t2"].rollup_blocked_count == 1
        assert totals["m"].rollup_overdue_count == 1
        assert totals["t1"].rollup_overdue_count == 0


class TestWindows:

    def test_window_spans_descendants(self) -> None:
        totals = compute_rollup_totals(
            tree(),
            schedule_map={
                "t1": ScheduleWindow(100, 200),
                "s1": ScheduleWindow(50, 120),
                "s2": ScheduleWindow(300, 400),
            },
        )
        assert totals["m"].rollup_start_at == 50
        assert totals["m"].rollup_end_at == 400
        assert totals["t2"].rollup_start_at == 50

    def test_unscheduled_subtree_has_no_window(self) -> None:
        totals = compute_rollup_totals(tree())
        assert totals["m"].rollup_start_at is None
        assert totals["m"].rollup_end_at is None


class TestShape:

    def test_missing_parent_is_a_root(self) -> None:
        rows = [RollupRow("orphan", "gone", 15)]
        assert compute_rollup_totals(rows)["orphan"] == RollupTotals(total_estimate=15)

    def test_parent_cycle_terminates(self) -> None:
        rows = [RollupRow("a", "b", 10), RollupRow("b", "a", 20)]
        totals = compute_rollup_totals(rows)
        assert set(totals) == {"a", "b"}

    def test_order_independent(self) -> None:
        forward = compute_rollup_totals(tree())
        backward = compute_rollup_totals(list(reversed(tree())))
        assert forward == backward

    def test_empty(self) -> None:
        assert compute_rollup_totals([]) == {}
