"""
Tests for deck analytics – distribution, retention, streaks, pace, forecast.
"""

import copy
import itertools
from datetime import date, datetime, timedelta, timezone

import pytest

from core.analytics import (
    average_ease_factor,
    bucket_for,
    card_distribution,
    compute_deck_analytics,
    learning_pace,
    next_due_forecast,
    resolve_window,
    retention_history,
    status_distribution,
    streaks,
    study_days,
)
from core.errors import InvalidInput
from core.models import CardHistory, CardState, CardStatus, ReviewEvent, TimeWindow
from core.srs_engine import apply_review, new_card_state

NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)
WINDOW = TimeWindow(start=NOW - timedelta(days=30), end=NOW)


def _state(repetitions=0, next_review=NOW, last_reviewed=None, status=CardStatus.NEW,
           ease_factor=2.5, interval_days=0):
    return CardState(
        repetitions=repetitions,
        interval_days=interval_days,
        ease_factor=ease_factor,
        status=status,
        next_review=next_review,
        last_reviewed=last_reviewed,
    )


def _at(day, hour=10):
    return datetime(2024, 1, day, hour, 0, tzinfo=timezone.utc)


class TestCardDistribution:
    def test_rule_examples(self):
        reviewed = NOW - timedelta(days=1)
        later = NOW + timedelta(days=2)
        assert bucket_for(_state(), NOW) is CardStatus.NEW
        assert bucket_for(_state(2, later, reviewed), NOW) is CardStatus.LEARNING
        assert bucket_for(_state(3, later, reviewed), NOW) is CardStatus.REVIEW
        assert bucket_for(_state(5, NOW, reviewed), NOW) is CardStatus.RELEARNING

    def test_buckets_partition_every_combination(self):
        moments = [NOW - timedelta(days=1), NOW, NOW + timedelta(seconds=1), NOW + timedelta(days=9)]
        states = [
            _state(reps, nxt, last, status)
            for reps, nxt, last, status in itertools.product(
                [0, 1, 2, 3, 8], moments, [None, NOW - timedelta(days=2)], list(CardStatus)
            )
        ]
        dist = card_distribution(states, NOW)
        assert dist.total == len(states)

        buckets = {status: [] for status in CardStatus}
        for i, s in enumerate(states):
            buckets[bucket_for(s, NOW)].append(i)
        seen = list(itertools.chain.from_iterable(buckets.values()))
        assert sorted(seen) == list(range(len(states)))
        assert dist.new == len(buckets[CardStatus.NEW])
        assert dist.relearning == len(buckets[CardStatus.RELEARNING])

    def test_never_reviewed_card_is_new_even_with_many_repetitions(self):
        assert bucket_for(_state(repetitions=4, next_review=NOW + timedelta(days=3)), NOW) is CardStatus.NEW

    def test_status_field_can_disagree_with_canonical_bucket(self):
        lagging = _state(
            repetitions=3,
            next_review=NOW + timedelta(days=5),
            last_reviewed=NOW - timedelta(days=1),
            status=CardStatus.LEARNING,
        )
        assert card_distribution([lagging], NOW).review == 1
        assert status_distribution([lagging]).learning == 1

    def test_status_distribution_accepts_plain_strings(self):
        assert status_distribution([_state(status="relearning")]).relearning == 1


class TestRetention:
    def test_single_day_three_of_four(self):
        events = [ReviewEvent(_at(5, h), q) for h, q in zip([8, 9, 10, 11], [1, 3, 4, 5])]
        history = retention_history(events, WINDOW)
        assert len(history) == 1
        assert history[0].day == date(2024, 1, 5)
        assert history[0].retention == 75
        assert history[0].total_reviews == 4

    def test_days_without_reviews_are_omitted_and_sorted(self):
        events = [ReviewEvent(_at(7), 0), ReviewEvent(_at(2), 5)]
        history = retention_history(events, WINDOW)
        assert [p.day for p in history] == [date(2024, 1, 2), date(2024, 1, 7)]
        assert [p.retention for p in history] == [100, 0]

    def test_events_outside_window_ignored(self):
        window = TimeWindow(start=_at(5, 0), end=_at(6, 23))
        events = [ReviewEvent(_at(4), 5), ReviewEvent(_at(5), 5), ReviewEvent(_at(8), 1)]
        assert [p.day for p in retention_history(events, window)] == [date(2024, 1, 5)]


class TestStreaks:
    DAYS = [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 5)]

    def test_longest_streak(self):
        _, longest = streaks(self.DAYS, datetime(2024, 1, 6, tzinfo=timezone.utc))
        assert longest == 3

    @pytest.mark.parametrize("hour", [0, 12, 23])
    def test_current_streak_broken_next_day(self, hour):
        current, _ = streaks(self.DAYS, datetime(2024, 1, 6, hour, tzinfo=timezone.utc))
        assert current == 0

    @pytest.mark.parametrize("hour", [0, 12, 23])
    def test_current_streak_alive_on_last_study_day(self, hour):
        current, longest = streaks(self.DAYS, datetime(2024, 1, 5, hour, tzinfo=timezone.utc))
        assert current == 1
        assert longest == 3

    def test_current_streak_counts_whole_run(self):
        current, longest = streaks(self.DAYS[:3], datetime(2024, 1, 3, 18, tzinfo=timezone.utc))
        assert (current, longest) == (3, 3)

    def test_no_days(self):
        assert streaks([], NOW) == (0, 0)

    def test_study_days_dedupe_across_cards(self):
        events = [ReviewEvent(_at(3, 9), 4), ReviewEvent(_at(1), 2), ReviewEvent(_at(3, 22), 5)]
        assert study_days(events) == [date(2024, 1, 1), date(2024, 1, 3)]


class TestPaceEaseForecast:
    def test_pace_divides_by_all_days(self):
        window = TimeWindow(start=NOW - timedelta(days=10), end=NOW)
        events = [ReviewEvent(NOW - timedelta(days=1), 5)] * 5
        assert learning_pace(events, window) == 0.5

    def test_average_ease(self):
        states = [_state(ease_factor=2.0), _state(ease_factor=3.0)]
        assert average_ease_factor(states) == 2.5
        assert average_ease_factor([]) == 2.5

    def test_forecast_counts_cards_within_a_day_of_earliest(self):
        earliest = NOW + timedelta(hours=3)
        states = [
            _state(next_review=NOW - timedelta(days=1)),
            _state(next_review=NOW),
            _state(next_review=earliest),
            _state(next_review=earliest + timedelta(hours=23)),
            _state(next_review=earliest + timedelta(days=1)),
        ]
        forecast = next_due_forecast(states, NOW)
        assert forecast.date == earliest
        assert forecast.cards_count == 2

    def test_forecast_none_when_nothing_upcoming(self):
        assert next_due_forecast([_state(next_review=NOW)], NOW) is None


class TestWindows:
    def test_named_ranges(self):
        assert resolve_window("week", NOW).days == 7
        assert resolve_window("month", NOW).days == 30
        assert resolve_window(14, NOW).start == NOW - timedelta(days=14)
        assert resolve_window("3", NOW).days == 3

    def test_all_starts_at_earliest(self):
        window = resolve_window("all", NOW, earliest=_at(1))
        assert window.start == _at(1)
        assert resolve_window("all", NOW).start == NOW

    def test_naive_bounds_are_read_as_utc(self):
        window = TimeWindow(start=datetime(2024, 1, 3), end=datetime(2024, 1, 10, 12))
        assert window.start == datetime(2024, 1, 3, tzinfo=timezone.utc)
        assert window.contains(_at(5))
        assert window.contains(datetime(2024, 1, 5, 10))
        assert not window.contains(_at(2))

    def test_naive_window_in_deck_analytics(self):
        window = TimeWindow(start=datetime(2024, 1, 3, 12), end=datetime(2024, 1, 10, 12))
        state = apply_review(new_card_state(_at(1)), 4, now=_at(10))
        snap = compute_deck_analytics([(state, [ReviewEvent(_at(10), 4)])], window, now=NOW)
        assert snap.total_reviews == 1
        assert snap.learning_pace == pytest.approx(1 / 7)
        assert [p.retention for p in snap.retention_history] == [100]

    @pytest.mark.parametrize("bad", ["fortnight", 0, -3])
    def test_bad_range(self, bad):
        with pytest.raises(InvalidInput):
            resolve_window(bad, NOW)


class TestComputeDeckAnalytics:
    def test_empty_deck(self):
        snap = compute_deck_analytics([], WINDOW, now=NOW)
        assert snap.total_cards == 0
        assert snap.card_distribution.total == 0
        assert snap.avg_ease_factor == 2.5
        assert snap.retention_history == ()
        assert snap.next_review is None
        assert (snap.current_streak, snap.longest_streak) == (0, 0)
        assert snap.learning_pace == 0
        assert snap.to_dict()["nextReview"] is None

    def _deck(self):
        cards = []
        for qualities in ([5, 5, 5], [1], [4, 2]):
            state = new_card_state(_at(1))
            events = []
            for offset, q in enumerate(qualities):
                moment = _at(8 + offset)
                state = apply_review(state, q, now=moment)
                events.append(ReviewEvent(moment, q))
            cards.append(CardHistory(state, tuple(events)))
        cards.append(CardHistory(new_card_state(_at(1)), ()))
        return cards

    def test_full_snapshot(self):
        snap = compute_deck_analytics(self._deck(), WINDOW, now=NOW)
        assert snap.total_cards == 4
        assert snap.card_distribution.total == 4
        assert snap.card_distribution.new == 1
        assert snap.card_distribution.review == 1
        assert snap.total_reviews == 6
        assert snap.learning_pace == pytest.approx(6 / 30)
        assert snap.longest_streak == 3
        assert snap.current_streak == 3
        assert [p.total_reviews for p in snap.retention_history] == [3, 2, 1]
        assert snap.next_review.cards_count == 1

        report = snap.to_dict()
        assert report["overview"]["totalCards"] == 4
        assert report["overview"]["totalStudyTime"] == "0h 3m"
        assert sum(report["cardDistribution"].values()) == 4

    def test_read_path_is_idempotent(self):
        cards = self._deck()
        frozen = copy.deepcopy(cards)
        first = compute_deck_analytics(cards, WINDOW, now=NOW)
        second = compute_deck_analytics(cards, WINDOW, now=NOW)
        assert first == second
        assert cards == frozen

    def test_accepts_plain_tuples(self):
        state = apply_review(new_card_state(_at(1)), 5, now=_at(10))
        snap = compute_deck_analytics([(state, [ReviewEvent(_at(10), 5)])], WINDOW, now=NOW)
        assert snap.card_distribution.learning == 1
