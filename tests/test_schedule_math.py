"""Schedule arithmetic over epoch milliseconds."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from planboard.services.schedule_math import (
    MS_PER_MINUTE,
    ScheduleWindow,
    duration_from_end,
    end_from_duration,
    from_epoch_ms,
    slack_minutes,
    summarize_blocks,
    to_epoch_ms,
)

T0 = 1_700_000_000_000


class TestEndFromDuration:

    def test_adds_minutes(self) -> None:
        assert end_from_duration(T0, 90) == T0 + 90 * MS_PER_MINUTE

    def test_duration_round_trip(self) -> None:
        end = end_from_duration(T0, 45)
        assert duration_from_end(T0, end) == 45

    @pytest.mark.parametrize("start", [0, 1, T0, T0 + 7, 1_234_567, -86_400_000])
    @pytest.mark.parametrize("duration", [0, 1, 15, 45, 90, 1440, 10_080])
    def test_round_trip_whole_millisecond_starts(self, start, duration) -> None:
        assert duration_from_end(start, end_from_duration(start, duration)) == duration

    def test_fractional_millisecond_start_is_approximate(self) -> None:
        start = 1_234_567.891
        result = duration_from_end(start, end_from_duration(start, 15))
        assert result == pytest.approx(15)

    @pytest.mark.parametrize("start,duration", [(None, 10), (T0, None), (float("nan"), 5), (T0, float("inf"))])
    def test_missing_or_non_finite_gives_none(self, start, duration) -> None:
        assert end_from_duration(start, duration) is None

    def test_bool_is_not_a_number(self) -> None:
        assert end_from_duration(T0, True) is None


class TestDurationFromEnd:

    def test_fractional_minutes(self) -> None:
        assert duration_from_end(T0, T0 + 30_000) == 0.5

    def test_negative_when_end_precedes_start(self) -> None:
        assert duration_from_end(T0, T0 - MS_PER_MINUTE) == -1

    def test_none_input(self) -> None:
        assert duration_from_end(None, T0) is None


class TestSlackMinutes:

    def test_positive_when_plan_finishes_early(self) -> None:
        assert slack_minutes(T0 + 60 * MS_PER_MINUTE, T0) == 60

    def test_negative_when_late(self) -> None:
        assert slack_minutes(T0, T0 + 15 * MS_PER_MINUTE) == -15

    def test_half_minute_rounds_up(self) -> None:
        assert slack_minutes(T0 + 30_000, T0) == 1
        assert slack_minutes(T0 - 30_000, T0) == 0

    def test_missing_due_date(self) -> None:
        assert slack_minutes(None, T0) is None


class TestEpochConversion:

    def test_naive_datetime_is_treated_as_utc(self) -> None:
        naive = datetime(2024, 1, 1, 12, 0)
        aware = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert to_epoch_ms(naive) == to_epoch_ms(aware)

    def test_from_epoch_is_aware_utc(self) -> None:
        value = from_epoch_ms(to_epoch_ms(datetime(2024, 3, 5, 8, 30, tzinfo=timezone.utc)))
        assert value == datetime(2024, 3, 5, 8, 30, tzinfo=timezone.utc)
        assert value.tzinfo is not None

    def test_none_passthrough(self) -> None:
        assert to_epoch_ms(None) is None
        assert from_epoch_ms(None) is None


class TestSummarizeBlocks:

    def test_min_start_max_end_per_item(self) -> None:
        item = uuid4()
        other = uuid4()
        day = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
        later = datetime(2024, 5, 1, 13, 0, tzinfo=timezone.utc)
        windows = summarize_blocks(
            [(item, later, 30), (item, day, 60), (other, day, 15)]
        )
        assert windows[item] == ScheduleWindow(
            start=to_epoch_ms(day), end=to_epoch_ms(later) + 30 * MS_PER_MINUTE
        )
        assert windows[other].end == to_epoch_ms(day) + 15 * MS_PER_MINUTE

    def test_block_without_start_is_skipped(self) -> None:
        assert summarize_blocks([(uuid4(), None, 30)]) == {}
