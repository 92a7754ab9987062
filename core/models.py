"""
FlashRecall – Scheduling & analytics value types
=================================================
Plain, immutable data structures shared by the SM-2 engine and the deck
analytics.  No database or I/O code lives here; ``db.models`` holds the
persisted counterparts.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import NamedTuple, Optional, Tuple


class CardStatus(str, enum.Enum):
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Return *moment* as an aware UTC datetime.

    SQLite hands back naive datetimes; those are taken to be UTC already.
    """
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Card scheduling state
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CardState:
    """
    SM-2 scheduling state owned by a single card.

    Attributes:
        repetitions: Consecutive successful recalls since the last lapse.
        interval_days: Days between ``last_reviewed`` and ``next_review``.
        ease_factor: Interval growth multiplier, never below 1.3.
        status: Cached lifecycle label written by the engine.
        next_review: Instant at which the card becomes due.
        last_reviewed: Instant of the latest review, ``None`` for new cards.
    """

    repetitions: int
    interval_days: int
    ease_factor: float
    status: CardStatus
    next_review: datetime
    last_reviewed: Optional[datetime] = None


@dataclass(frozen=True)
class ReviewEvent:
    """One review outcome in a card's append-only history."""

    date: datetime
    quality: int


class CardHistory(NamedTuple):
    """A card's current state paired with its chronological review log."""

    state: CardState
    events: Tuple[ReviewEvent, ...] = ()


@dataclass(frozen=True)
class TimeWindow:
    """Inclusive ``[start, end]`` reporting window."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", as_utc(self.start))
        object.__setattr__(self, "end", as_utc(self.end))
        if self.end < self.start:
            raise ValueError(f"window end {self.end} precedes start {self.start}")

    @property
    def days(self) -> int:
        """Length of the window in whole days (partial days round up, minimum 1)."""
        seconds = (self.end - self.start).total_seconds()
        return max(1, math.ceil(seconds / timedelta(days=1).total_seconds()))

    def contains(self, moment: datetime) -> bool:
        return self.start <= as_utc(moment) <= self.end


# ---------------------------------------------------------------------------
# Analytics output
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CardDistribution:
    new: int = 0
    learning: int = 0
    review: int = 0
    relearning: int = 0

    @property
    def total(self) -> int:
        return self.new + self.learning + self.review + self.relearning

    def to_dict(self) -> dict:
        return {
            "new": self.new,
            "learning": self.learning,
            "review": self.review,
            "relearning": self.relearning,
        }


@dataclass(frozen=True)
class RetentionPoint:
    day: date
    retention: float  # percent, 0-100
    total_reviews: int


@dataclass(frozen=True)
class NextDueForecast:
    date: datetime
    cards_count: int


@dataclass(frozen=True)
class DeckSnapshot:
    """
    Read-only statistics for one deck, recomputed on every request.

    ``card_distribution`` is derived from repetitions / due-ness and is the
    authoritative split; ``status_distribution`` mirrors the cached
    ``status`` field and may lag behind it.
    """

    total_cards: int
    due_cards: int
    card_distribution: CardDistribution
    status_distribution: CardDistribution
    avg_ease_factor: float
    retention_history: Tuple[RetentionPoint, ...] = ()
    current_streak: int = 0
    longest_streak: int = 0
    learning_pace: float = 0.0
    total_reviews: int = 0
    study_minutes: int = 0
    next_review: Optional[NextDueForecast] = None
    window: Optional[TimeWindow] = field(default=None, compare=False)

    def to_dict(self) -> dict:
        """Render the snapshot as a JSON-friendly report."""
        hours, minutes = divmod(self.study_minutes, 60)
        return {
            "overview": {
                "totalCards": self.total_cards,
                "dueCards": self.due_cards,
                "currentStreak": self.current_streak,
                "longestStreak": self.longest_streak,
                "learningPace": round(self.learning_pace, 1),
                "totalReviews": self.total_reviews,
                "totalStudyTime": f"{hours}h {minutes}m",
            },
            "performance": {
                "avgEaseFactor": round(self.avg_ease_factor, 2),
                "retentionHistory": [
                    {
                        "date": p.day.isoformat(),
                        "retention": round(p.retention),
                        "totalReviews": p.total_reviews,
                    }
                    for p in self.retention_history
                ],
            },
            "cardDistribution": self.card_distribution.to_dict(),
            "statusDistribution": self.status_distribution.to_dict(),
            "nextReview": (
                {
                    "date": self.next_review.date.isoformat(),
                    "cardsCount": self.next_review.cards_count,
                }
                if self.next_review
                else None
            ),
        }
