"""
FlashRecall – Deck analytics
=============================
Derives retention, streaks, pace, status distribution and the next-due
forecast from a deck's card states and review logs.

Pure computation: callers hand in an already-loaded snapshot of the deck
(see ``core.review_ops.load_deck_histories``) and nothing here touches
the database or mutates its input.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from core.errors import InvalidInput
from core.models import (
    CardDistribution,
    CardHistory,
    CardState,
    CardStatus,
    DeckSnapshot,
    NextDueForecast,
    RetentionPoint,
    ReviewEvent,
    TimeWindow,
)
from core.srs_engine import (
    DEFAULT_EASE_FACTOR,
    PASSING_QUALITY,
    as_utc,
    sanitize_state,
    utc_now,
)

log = logging.getLogger(__name__)

SECONDS_PER_REVIEW = 30
TIME_RANGES = {"week": 7, "month": 30, "year": 365}
ONE_DAY = timedelta(days=1)


# ---------------------------------------------------------------------------
# Windows & days
# ---------------------------------------------------------------------------

def resolve_window(
    time_range: Union[str, int] = "month",
    now: Optional[datetime] = None,
    earliest: Optional[datetime] = None,
) -> TimeWindow:
    """Turn a named range (week/month/year/all) or a day count into a window ending at *now*.

    ``all`` starts at *earliest* (typically the first review in the deck),
    or collapses to *now* when there is no history.
    """
    now = as_utc(now) if now else utc_now()
    if isinstance(time_range, str) and time_range.isdigit():
        time_range = int(time_range)

    if time_range == "all":
        start = as_utc(earliest) if earliest else now
        return TimeWindow(start=min(start, now), end=now)
    if isinstance(time_range, int) and not isinstance(time_range, bool):
        if time_range <= 0:
            raise InvalidInput(f"time range must be a positive number of days, got {time_range}")
        return TimeWindow(start=now - timedelta(days=time_range), end=now)
    if time_range in TIME_RANGES:
        return TimeWindow(start=now - timedelta(days=TIME_RANGES[time_range]), end=now)
    raise InvalidInput(f"Unsupported time range: {time_range!r}")


def utc_day(moment: datetime) -> date:
    return as_utc(moment).date()


def _day_start(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


def _all_events(cards: Sequence[CardHistory]) -> List[ReviewEvent]:
    return [event for card in cards for event in card.events]


# ---------------------------------------------------------------------------
# Distribution
# ---------------------------------------------------------------------------

def bucket_for(state: CardState, now: datetime) -> CardStatus:
    """Classify a card by review history and due-ness.

    Checked in order: never reviewed → new; due again → relearning;
    at most two successful recalls → learning; otherwise review.
    The order makes the four buckets a partition of any card set.
    """
    if state.last_reviewed is None:
        return CardStatus.NEW
    if as_utc(state.next_review) <= now:
        return CardStatus.RELEARNING
    if state.repetitions <= 2:
        return CardStatus.LEARNING
    return CardStatus.REVIEW


def _distribution(buckets: Iterable[CardStatus]) -> CardDistribution:
    counts = Counter(buckets)
    return CardDistribution(
        new=counts[CardStatus.NEW],
        learning=counts[CardStatus.LEARNING],
        review=counts[CardStatus.REVIEW],
        relearning=counts[CardStatus.RELEARNING],
    )


def card_distribution(states: Iterable[CardState], now: Optional[datetime] = None) -> CardDistribution:
    now = as_utc(now) if now else utc_now()
    return _distribution(bucket_for(s, now) for s in states)


def status_distribution(states: Iterable[CardState]) -> CardDistribution:
    """Count cards by their stored ``status`` field."""
    return _distribution(CardStatus(s.status) for s in states)


def due_count(states: Iterable[CardState], now: Optional[datetime] = None) -> int:
    now = as_utc(now) if now else utc_now()
    return sum(1 for s in states if as_utc(s.next_review) <= now)


def average_ease_factor(states: Sequence[CardState]) -> float:
    if not states:
        return DEFAULT_EASE_FACTOR
    return sum(s.ease_factor for s in states) / len(states)


# ---------------------------------------------------------------------------
# Retention & pace
# ---------------------------------------------------------------------------

def retention_history(events: Iterable[ReviewEvent], window: TimeWindow) -> List[RetentionPoint]:
    """Daily percentage of passing reviews inside *window*.

    Days without reviews are left out rather than reported as zero.
    """
    totals: Counter = Counter()
    passed: Counter = Counter()
    for event in events:
        moment = as_utc(event.date)
        if not window.contains(moment):
            continue
        day = moment.date()
        totals[day] += 1
        if event.quality >= PASSING_QUALITY:
            passed[day] += 1

    return [
        RetentionPoint(day=day, retention=100.0 * passed[day] / totals[day], total_reviews=totals[day])
        for day in sorted(totals)
    ]


def learning_pace(events: Iterable[ReviewEvent], window: TimeWindow) -> float:
    """Average reviews per day across the whole window, idle days included."""
    in_window = sum(1 for e in events if window.contains(as_utc(e.date)))
    return in_window / window.days


def estimated_study_minutes(review_count: int) -> int:
    return round(review_count * SECONDS_PER_REVIEW / 60)


# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------

def study_days(events: Iterable[ReviewEvent]) -> List[date]:
    """Sorted, de-duplicated UTC dates on which at least one review happened."""
    return sorted({utc_day(e.date) for e in events})


def streaks(days: Sequence[date], now: Optional[datetime] = None) -> Tuple[int, int]:
    """Return ``(current_streak, longest_streak)`` for sorted study *days*.

    A streak is a run of consecutive calendar dates.  The run ending on the
    latest study day stays current for 24 hours from the start of that day.
    """
    if not days:
        return 0, 0
    now = as_utc(now) if now else utc_now()

    longest = run = 1
    for previous, day in zip(days, days[1:]):
        if day - previous == ONE_DAY:
            run += 1
        else:
            run = 1
        longest = max(longest, run)

    current = run if now - _day_start(days[-1]) < ONE_DAY else 0
    return current, longest


# ---------------------------------------------------------------------------
# Forecast
# ---------------------------------------------------------------------------

def next_due_forecast(
    states: Sequence[CardState],
    now: Optional[datetime] = None,
) -> Optional[NextDueForecast]:
    """Earliest upcoming review and how many cards fall within 24h of it."""
    now = as_utc(now) if now else utc_now()
    upcoming = [as_utc(s.next_review) for s in states if as_utc(s.next_review) > now]
    if not upcoming:
        return None
    earliest = min(upcoming)
    cutoff = earliest + ONE_DAY
    count = sum(1 for moment in upcoming if moment < cutoff)
    return NextDueForecast(date=earliest, cards_count=count)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

def empty_snapshot(window: Optional[TimeWindow] = None) -> DeckSnapshot:
    return DeckSnapshot(
        total_cards=0,
        due_cards=0,
        card_distribution=CardDistribution(),
        status_distribution=CardDistribution(),
        avg_ease_factor=DEFAULT_EASE_FACTOR,
        window=window,
    )


def compute_deck_analytics(
    cards: Sequence[Tuple[CardState, Sequence[ReviewEvent]]],
    window: TimeWindow,
    now: Optional[datetime] = None,
) -> DeckSnapshot:
    """Build the statistics snapshot for a deck.

    *cards* is a sequence of ``(state, events)`` pairs.  An empty deck
    yields the neutral snapshot instead of an error.
    """
    now = as_utc(now) if now else utc_now()
    cards = [CardHistory(sanitize_state(state), tuple(events)) for state, events in cards]
    if not cards:
        return empty_snapshot(window)

    states = [c.state for c in cards]
    events = _all_events(cards)
    current, longest = streaks(study_days(events), now)
    in_window = sum(1 for e in events if window.contains(as_utc(e.date)))

    snapshot = DeckSnapshot(
        total_cards=len(states),
        due_cards=due_count(states, now),
        card_distribution=card_distribution(states, now),
        status_distribution=status_distribution(states),
        avg_ease_factor=average_ease_factor(states),
        retention_history=tuple(retention_history(events, window)),
        current_streak=current,
        longest_streak=longest,
        learning_pace=learning_pace(events, window),
        total_reviews=in_window,
        study_minutes=estimated_study_minutes(in_window),
        next_review=next_due_forecast(states, now),
        window=window,
    )
    log.debug(
        "Computed analytics for %d cards (%d reviews in window)",
        snapshot.total_cards, in_window,
    )
    return snapshot
