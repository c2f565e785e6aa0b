import random
from datetime import date, datetime, timedelta

import pytest

from moodflow.engine.streak import (
    StatsAggregate, StreakCounts,
    apply_completion, compute_streaks, effective_current_streak,
)
from moodflow.errors import InvalidArgument

TODAY = date(2024, 1, 10)
YESTERDAY = TODAY - timedelta(days=1)
TWO_DAYS_AGO = TODAY - timedelta(days=2)


def d(s: str) -> date:
    return date.fromisoformat(s)


class TestApplyCompletion:
    def test_first_session_ever_starts_streak_at_1(self):
        agg = apply_completion(StatsAggregate(), d("2024-01-01"), 30)
        assert agg.to_row() == {
            "total_study_time": 30,
            "total_sessions": 1,
            "current_streak": 1,
            "longest_streak": 1,
            "last_session_date": "2024-01-01",
        }

    def test_consecutive_day_increments_streak(self):
        prev = StatsAggregate(current_streak=3, longest_streak=5, last_session_date=d("2024-01-01"))
        agg = apply_completion(prev, d("2024-01-02"))
        assert agg.current_streak == 4
        assert agg.longest_streak == 5

    def test_same_day_keeps_streak(self):
        prev = StatsAggregate(total_sessions=9, current_streak=4, longest_streak=5,
                              last_session_date=d("2024-01-02"))
        agg = apply_completion(prev, d("2024-01-02"), 15)
        assert agg.current_streak == 4
        assert agg.total_sessions == 10
        assert agg.total_study_time == 15

    def test_gap_resets_streak_to_1(self):
        prev = StatsAggregate(current_streak=4, longest_streak=5, last_session_date=d("2024-01-02"))
        agg = apply_completion(prev, d("2024-01-10"))
        assert agg.current_streak == 1
        assert agg.longest_streak == 5
        assert agg.last_session_date == d("2024-01-10")

    def test_two_day_gap_resets(self):
        prev = StatsAggregate(current_streak=10, longest_streak=10, last_session_date=TWO_DAYS_AGO)
        assert apply_completion(prev, TODAY).current_streak == 1

    def test_extending_past_longest_raises_longest(self):
        prev = StatsAggregate(current_streak=5, longest_streak=5, last_session_date=YESTERDAY)
        agg = apply_completion(prev, TODAY)
        assert agg.current_streak == 6
        assert agg.longest_streak == 6

    def test_earlier_date_only_touches_totals(self):
        prev = StatsAggregate(total_study_time=100, total_sessions=4, current_streak=3,
                              longest_streak=3, last_session_date=TODAY)
        agg = apply_completion(prev, TWO_DAYS_AGO, 20)
        assert agg.total_sessions == 5
        assert agg.total_study_time == 120
        assert agg.current_streak == 3
        assert agg.longest_streak == 3
        assert agg.last_session_date == TODAY

    def test_input_is_not_mutated(self):
        prev = StatsAggregate(current_streak=2, longest_streak=2, last_session_date=YESTERDAY)
        apply_completion(prev, TODAY, 10)
        assert prev.current_streak == 2
        assert prev.total_sessions == 0

    def test_missing_duration_counts_as_zero(self):
        agg = apply_completion(StatsAggregate(total_study_time=40), TODAY, None)
        assert agg.total_study_time == 40

    def test_datetime_is_truncated_to_day(self):
        prev = StatsAggregate(current_streak=1, longest_streak=1, last_session_date=YESTERDAY)
        late = datetime(2024, 1, 10, 23, 59)
        early = datetime(2024, 1, 10, 0, 1)
        assert apply_completion(prev, late) == apply_completion(prev, early)

    def test_negative_duration_rejected(self):
        with pytest.raises(InvalidArgument):
            apply_completion(StatsAggregate(), TODAY, -5)

    def test_non_integer_duration_rejected(self):
        with pytest.raises(InvalidArgument):
            apply_completion(StatsAggregate(), TODAY, 2.5)

    def test_missing_date_rejected(self):
        with pytest.raises(InvalidArgument):
            apply_completion(StatsAggregate(), None)

    def test_unparseable_date_rejected(self):
        with pytest.raises(InvalidArgument):
            apply_completion(StatsAggregate(), "yesterday-ish")

    @pytest.mark.parametrize("value", ["2024-01-02xyz", "2024-01-0", "2024-01-02T25:00:00"])
    def test_trailing_garbage_rejected(self, value):
        with pytest.raises(InvalidArgument):
            apply_completion(StatsAggregate(), value)


class TestApplyCompletionSequences:
    def _run(self, days: list[date]) -> list[StatsAggregate]:
        agg, seen = StatsAggregate(), []
        for day in days:
            agg = apply_completion(agg, day, 25)
            seen.append(agg)
        return seen

    def test_longest_never_shrinks_and_totals_grow(self):
        rng = random.Random(7)
        day = d("2024-01-01")
        days = []
        for _ in range(200):
            day += timedelta(days=rng.choice([0, 0, 1, 1, 1, 2, 5]))
            days.append(day)
        history = self._run(days)
        for prev, curr in zip(history, history[1:]):
            assert curr.longest_streak >= prev.longest_streak
            assert curr.total_sessions == prev.total_sessions + 1
            assert curr.total_study_time >= prev.total_study_time
            assert curr.longest_streak >= curr.current_streak

    def test_incremental_matches_recompute_for_in_order_history(self):
        days = [d("2024-01-01"), d("2024-01-02"), d("2024-01-02"), d("2024-01-03"),
                d("2024-01-07"), d("2024-01-08")]
        final = self._run(days)[-1]
        assert compute_streaks(days) == (final.current_streak, final.longest_streak)


class TestComputeStreaks:
    def test_empty_history(self):
        assert compute_streaks([]) == StreakCounts(0, 0)

    def test_single_day(self):
        assert compute_streaks([TODAY]) == StreakCounts(1, 1)

    def test_current_run_shorter_than_longest(self):
        history = [d("2024-01-01"), d("2024-01-02"), d("2024-01-03"), d("2024-01-05")]
        assert compute_streaks(history) == StreakCounts(current=1, longest=3)

    def test_current_run_is_longest(self):
        history = [d("2024-01-01"), d("2024-01-03"), d("2024-01-04"), d("2024-01-05")]
        assert compute_streaks(history) == StreakCounts(3, 3)

    def test_duplicates_collapse(self):
        history = [d("2024-01-01"), d("2024-01-01"), d("2024-01-02"), d("2024-01-02")]
        assert compute_streaks(history) == StreakCounts(2, 2)

    def test_month_and_leap_day_boundaries(self):
        history = [d("2024-02-28"), d("2024-02-29"), d("2024-03-01")]
        assert compute_streaks(history) == StreakCounts(3, 3)

    def test_order_does_not_matter(self):
        history = [d("2024-01-01") + timedelta(days=n) for n in (0, 1, 2, 4, 5, 9, 10, 11, 12)]
        expected = compute_streaks(history)
        shuffled = history[:]
        random.Random(3).shuffle(shuffled)
        assert compute_streaks(shuffled) == expected
        assert compute_streaks(shuffled) == expected
        assert expected == StreakCounts(4, 4)

    def test_does_not_zero_stale_streak(self):
        # no notion of "today" here
        history = [d("2020-01-01"), d("2020-01-02")]
        assert compute_streaks(history).current == 2


class TestEffectiveCurrentStreak:
    def test_today_counts(self):
        assert effective_current_streak(4, TODAY, TODAY) == 4

    def test_yesterday_counts(self):
        assert effective_current_streak(4, YESTERDAY, TODAY) == 4

    def test_older_is_zeroed(self):
        assert effective_current_streak(4, TWO_DAYS_AGO, TODAY) == 0

    def test_no_history(self):
        assert effective_current_streak(0, None, TODAY) == 0

    def test_client_today_behind_server(self):
        # client still on the previous calendar day
        assert effective_current_streak(2, TODAY, YESTERDAY) == 2


class TestStatsAggregateRow:
    def test_missing_row_is_all_zero(self):
        assert StatsAggregate.from_row(None) == StatsAggregate()
        assert StatsAggregate.from_row({}) == StatsAggregate()

    def test_null_columns_become_zero(self):
        agg = StatsAggregate.from_row({"total_sessions": None, "current_streak": None})
        assert agg.total_sessions == 0
        assert agg.current_streak == 0

    def test_timestamp_date_column_accepted(self):
        agg = StatsAggregate.from_row({"last_session_date": "2024-01-02T00:00:00+00:00"})
        assert agg.last_session_date == d("2024-01-02")

    def test_utc_z_suffix_accepted(self):
        agg = StatsAggregate.from_row({"last_session_date": "2024-01-02T08:30:00Z"})
        assert agg.last_session_date == d("2024-01-02")

    def test_malformed_date_column_rejected(self):
        with pytest.raises(InvalidArgument):
            StatsAggregate.from_row({"last_session_date": "2024-01-02xyz"})

    def test_longest_lifted_to_current(self):
        agg = StatsAggregate.from_row({"current_streak": 6, "longest_streak": 4})
        assert agg.longest_streak == 6
