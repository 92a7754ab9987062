"""
FlashRecall – Review & analytics DB operations
===============================================
Bridges the pure engine/analytics modules and the SQLAlchemy models:
loads card state, records reviews atomically, and reads a consistent
deck snapshot for analytics.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy.orm import Session, selectinload

from core.analytics import compute_deck_analytics, resolve_window
from core.errors import NotFound
from core.models import CardHistory, CardState, DeckSnapshot, ReviewEvent
from core.srs_engine import apply_review, as_utc, sanitize_state, utc_now, validate_quality
from db.models import Card, Deck, ReviewLog

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# ORM <-> value conversion
# ---------------------------------------------------------------------------

def card_state(card: Card) -> CardState:
    """Copy a card's scheduling columns into an immutable ``CardState``.

    Out-of-range stored values are clamped (and logged) on the way in.
    """
    return sanitize_state(CardState(
        repetitions=card.repetitions,
        interval_days=card.interval_days,
        ease_factor=card.ease_factor,
        status=card.status,
        next_review=as_utc(card.next_review),
        last_reviewed=as_utc(card.last_reviewed) if card.last_reviewed else None,
    ))


def card_events(card: Card) -> tuple:
    return tuple(
        ReviewEvent(date=as_utc(entry.reviewed_at), quality=entry.quality)
        for entry in card.review_logs
    )


def _store_state(card: Card, state: CardState) -> None:
    card.repetitions = state.repetitions
    card.interval_days = state.interval_days
    card.ease_factor = state.ease_factor
    card.status = state.status.value
    card.next_review = state.next_review
    card.last_reviewed = state.last_reviewed


# ---------------------------------------------------------------------------
# Review recording
# ---------------------------------------------------------------------------

def record_review(
    session: Session,
    card_id: int,
    quality: int,
    now: Optional[datetime] = None,
) -> CardState:
    """Score card *card_id* with *quality* (0-5) and persist the outcome.

    The new scheduling state and the ``ReviewLog`` row are committed
    together; if anything fails both are rolled back.
    """
    validate_quality(quality)
    now = as_utc(now) if now else utc_now()

    card = session.get(Card, card_id)
    if card is None:
        raise NotFound(f"card {card_id} not found")

    new_state = apply_review(card_state(card), quality, now=now)
    try:
        _store_state(card, new_state)
        card.review_logs.append(ReviewLog(
            reviewed_at=now,
            quality=quality,
            ease_factor_after=new_state.ease_factor,
            interval_after=new_state.interval_days,
        ))
        session.commit()
    except Exception:
        session.rollback()
        raise

    log.info(
        "Reviewed card %d (q=%d) → reps=%d ef=%.2f interval=%d next=%s",
        card_id, quality, new_state.repetitions, new_state.ease_factor,
        new_state.interval_days, new_state.next_review,
    )
    return new_state


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------

def get_due_cards(
    session: Session,
    deck_id: int,
    *,
    limit: int = 50,
    now: Optional[datetime] = None,
) -> List[Card]:
    """Return cards from *deck_id* whose next_review is ≤ now.

    Results are ordered oldest-first so the most overdue cards come first.
    Raises ``NotFound`` when the deck does not exist.
    """
    now = as_utc(now) if now else utc_now()
    if session.get(Deck, deck_id) is None:
        raise NotFound(f"deck {deck_id} not found")
    cards = (
        session.query(Card)
        .filter(Card.deck_id == deck_id, Card.next_review <= now)
        .order_by(Card.next_review.asc(), Card.id)
        .limit(limit)
        .all()
    )
    log.info("Found %d due cards for deck %d", len(cards), deck_id)
    return cards


def get_next_card(session: Session, deck_id: int, now: Optional[datetime] = None) -> Optional[Card]:
    """The most overdue card of the deck, or ``None`` when nothing is due."""
    due = get_due_cards(session, deck_id, limit=1, now=now)
    return due[0] if due else None


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

def load_deck_histories(session: Session, deck_id: int) -> List[CardHistory]:
    """Read every card of a deck with its review log in one go.

    Both queries run inside the session's current transaction and the
    result is copied into immutable values, so later writes cannot leak
    into an analytics run that is already under way.
    """
    if session.get(Deck, deck_id) is None:
        raise NotFound(f"deck {deck_id} not found")

    cards = (
        session.query(Card)
        .options(selectinload(Card.review_logs))
        .populate_existing()
        .filter(Card.deck_id == deck_id)
        .order_by(Card.id)
        .all()
    )
    return [CardHistory(card_state(c), card_events(c)) for c in cards]


def deck_analytics(
    session: Session,
    deck_id: int,
    time_range: Union[str, int] = "month",
    now: Optional[datetime] = None,
) -> DeckSnapshot:
    """Load a deck and compute its ``DeckSnapshot`` over *time_range*."""
    now = as_utc(now) if now else utc_now()
    histories = load_deck_histories(session, deck_id)

    dates = [e.date for h in histories for e in h.events]
    window = resolve_window(time_range, now=now, earliest=min(dates) if dates else None)
    return compute_deck_analytics(histories, window, now=now)
