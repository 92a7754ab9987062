"""
FlashRecall – SM-2 Spaced Repetition Engine
============================================
Implements the SuperMemo-2 variant used to schedule flashcards.  Every
function here is pure: the caller loads a ``CardState``, asks the engine
for the next one, and persists it together with the new review event.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable, Optional, Tuple

from core.errors import InconsistentStateError, InvalidInput
from core.models import CardState, CardStatus, ReviewEvent, as_utc, utc_now

log = logging.getLogger(__name__)

DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
PASSING_QUALITY = 3
MIN_QUALITY = 0
MAX_QUALITY = 5
FIRST_INTERVAL = 1   # days
SECOND_INTERVAL = 6  # days


def _round_half_up(value: float) -> int:
    # round() would use banker's rounding: 2.5 -> 2
    return int(math.floor(value + 0.5))


# ---------------------------------------------------------------------------
# SM-2 core algorithm
# ---------------------------------------------------------------------------

def validate_quality(quality: int) -> int:
    """Return *quality* unchanged or raise ``InvalidInput``."""
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidInput(f"quality must be an integer, got {quality!r}")
    if quality < MIN_QUALITY or quality > MAX_QUALITY:
        raise InvalidInput(f"quality must be 0-5, got {quality}")
    return quality


def calculate_sm2(
    quality: int,
    repetitions: int,
    easiness: float,
    interval: int,
) -> Tuple[int, float, int]:
    """Apply the SM-2 algorithm and return updated scheduling values.

    Parameters
    ----------
    quality : int
        User self-assessment grade (0 = total blackout … 5 = perfect).
    repetitions : int
        Current number of consecutive successful reviews.
    easiness : float
        Current easiness factor (EF) — minimum clamped to 1.3.
    interval : int
        Current inter-repetition interval in days.

    Returns
    -------
    (new_repetitions, new_easiness, new_interval)

    The new interval is computed from the EF as it was *before* this
    review; the EF update is applied afterwards and only affects the
    next call.
    """
    validate_quality(quality)

    # Failed review — back to square one, due again immediately
    if quality < PASSING_QUALITY:
        new_repetitions = 0
        new_interval = 0
    else:
        if repetitions == 0:
            new_interval = FIRST_INTERVAL
        elif repetitions == 1:
            new_interval = SECOND_INTERVAL
        else:
            new_interval = _round_half_up(interval * easiness)
        new_repetitions = repetitions + 1

    miss = 5 - quality
    new_easiness = easiness + (0.1 - miss * (0.08 + miss * 0.02))
    new_easiness = max(MIN_EASE_FACTOR, new_easiness)

    return new_repetitions, new_easiness, new_interval


def _status_for(quality: int, repetitions_before: int) -> CardStatus:
    if quality < PASSING_QUALITY:
        return CardStatus.RELEARNING
    if repetitions_before <= 1:
        return CardStatus.LEARNING
    return CardStatus.REVIEW


# ---------------------------------------------------------------------------
# State transitions
# ---------------------------------------------------------------------------

def new_card_state(now: Optional[datetime] = None) -> CardState:
    """State of a freshly created card: new, due right away."""
    now = as_utc(now) if now else utc_now()
    return CardState(
        repetitions=0,
        interval_days=0,
        ease_factor=DEFAULT_EASE_FACTOR,
        status=CardStatus.NEW,
        next_review=now,
        last_reviewed=None,
    )


def sanitize_state(state: CardState) -> CardState:
    """Clamp out-of-range scheduling values, logging every correction.

    Raises ``InconsistentStateError`` when the ease factor is not a finite
    number, since there is no sensible value to clamp it to.
    """
    ef = state.ease_factor
    if ef is None or not math.isfinite(ef):
        raise InconsistentStateError(f"ease factor must be a finite number, got {ef!r}")

    changes = {}
    if ef < MIN_EASE_FACTOR:
        log.warning("Clamping ease factor %.3f up to %.1f", ef, MIN_EASE_FACTOR)
        changes["ease_factor"] = MIN_EASE_FACTOR
    if state.interval_days < 0:
        log.warning("Clamping negative interval %d to 0", state.interval_days)
        changes["interval_days"] = 0
    if state.repetitions < 0:
        log.warning("Clamping negative repetitions %d to 0", state.repetitions)
        changes["repetitions"] = 0
    if not isinstance(state.status, CardStatus):
        try:
            changes["status"] = CardStatus(state.status)
        except ValueError:
            raise InconsistentStateError(f"unknown card status {state.status!r}") from None

    return replace(state, **changes) if changes else state


def apply_review(
    state: CardState,
    quality: int,
    now: Optional[datetime] = None,
) -> CardState:
    """Return the state that follows *state* after a review graded *quality*.

    The input state is never modified.  ``InvalidInput`` is raised before
    any computation if *quality* is not an integer in 0-5.
    """
    validate_quality(quality)
    state = sanitize_state(state)
    now = as_utc(now) if now else utc_now()

    repetitions, ease_factor, interval = calculate_sm2(
        quality, state.repetitions, state.ease_factor, state.interval_days
    )
    return CardState(
        repetitions=repetitions,
        interval_days=interval,
        ease_factor=ease_factor,
        status=_status_for(quality, state.repetitions),
        next_review=now + timedelta(days=interval),
        last_reviewed=now,
    )


def replay_reviews(
    events: Iterable[ReviewEvent],
    created_at: Optional[datetime] = None,
) -> CardState:
    """Rebuild a card's state by folding the engine over its review log."""
    events = list(events)
    if created_at is None:
        created_at = events[0].date if events else None
    state = new_card_state(created_at)
    for event in events:
        state = apply_review(state, event.quality, now=event.date)
    return state


def is_due(state: CardState, now: Optional[datetime] = None) -> bool:
    """A card is due once its ``next_review`` instant has been reached."""
    now = as_utc(now) if now else utc_now()
    return as_utc(state.next_review) <= now
