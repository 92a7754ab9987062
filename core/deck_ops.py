"""
FlashRecall – Category / Deck / Card DB Operations
===================================================
Plain database helpers for managing the collection.

Parent counters are never bumped implicitly: every create/delete is
followed by an explicit recount that rebuilds the figure from scratch,
so running it twice (or on its own) is always safe.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from core.analytics import due_count
from core.errors import InvalidInput, NotFound
from core.models import CardStatus
from core.review_ops import card_state
from core.srs_engine import PASSING_QUALITY, as_utc, new_card_state, utc_now
from db.models import Category, Deck, Card, ReviewLog

log = logging.getLogger(__name__)


def _get(session: Session, model, obj_id: int):
    obj = session.get(model, obj_id)
    if obj is None:
        raise NotFound(f"{model.__name__.lower()} {obj_id} not found")
    return obj


def _commit(session: Session) -> None:
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise


def _required(value: Optional[str], name: str) -> str:
    value = (value or "").strip()
    if not value:
        raise InvalidInput(f"{name} must not be empty")
    return value


def _ensure_unique_category_title(session: Session, title: str, exclude_id: Optional[int] = None) -> None:
    q = session.query(Category.id).filter(Category.title == title)
    if exclude_id is not None:
        q = q.filter(Category.id != exclude_id)
    if q.first():
        raise InvalidInput(f"category {title!r} already exists")


def _ensure_unique_deck_title(
    session: Session,
    category_id: int,
    title: str,
    exclude_id: Optional[int] = None,
) -> None:
    q = session.query(Deck.id).filter(Deck.category_id == category_id, Deck.title == title)
    if exclude_id is not None:
        q = q.filter(Deck.id != exclude_id)
    if q.first():
        raise InvalidInput(f"deck {title!r} already exists in this category")


# ── Recount ───────────────────────────────────────────────────────────

def recount_category_decks(session: Session, category_id: int) -> int:
    """Recompute ``Category.deck_count`` from the decks table."""
    category = _get(session, Category, category_id)
    category.deck_count = (
        session.query(func.count(Deck.id)).filter(Deck.category_id == category_id).scalar()
    )
    _commit(session)
    log.info("Category %d now holds %d decks", category_id, category.deck_count)
    return category.deck_count


def recount_deck_cards(session: Session, deck_id: int) -> int:
    """Recompute ``Deck.total_cards`` from the cards table."""
    deck = _get(session, Deck, deck_id)
    deck.total_cards = (
        session.query(func.count(Card.id)).filter(Card.deck_id == deck_id).scalar()
    )
    _commit(session)
    log.info("Deck %d now holds %d cards", deck_id, deck.total_cards)
    return deck.total_cards


def refresh_deck_stats(session: Session, deck_id: int, now: Optional[datetime] = None) -> Deck:
    """Store total, due count, overall retention and last study time on the deck."""
    now = as_utc(now) if now else utc_now()
    deck = _get(session, Deck, deck_id)
    cards = session.query(Card).filter(Card.deck_id == deck_id).all()

    reviews, passed = (
        session.query(
            func.count(ReviewLog.id),
            func.coalesce(func.sum(case((ReviewLog.quality >= PASSING_QUALITY, 1), else_=0)), 0),
        )
        .join(Card, ReviewLog.card_id == Card.id)
        .filter(Card.deck_id == deck_id)
        .one()
    )
    last_studied = (
        session.query(func.max(ReviewLog.reviewed_at))
        .join(Card, ReviewLog.card_id == Card.id)
        .filter(Card.deck_id == deck_id)
        .scalar()
    )

    deck.total_cards = len(cards)
    deck.due_cards = due_count([card_state(c) for c in cards], now)
    deck.retention = round(100.0 * passed / reviews, 1) if reviews else 0.0
    deck.last_studied = last_studied
    _commit(session)
    log.info(
        "Refreshed deck %d stats: total=%d due=%d retention=%.1f",
        deck_id, deck.total_cards, deck.due_cards, deck.retention,
    )
    return deck


# ── Create ────────────────────────────────────────────────────────────

def create_category(session: Session, title: str, icon: str = "📚") -> Category:
    title = _required(title, "title")
    _ensure_unique_category_title(session, title)
    category = Category(title=title, icon=icon or "📚")
    session.add(category)
    _commit(session)
    log.info("Created category %d %r", category.id, category.title)
    return category


def create_deck(
    session: Session,
    category_id: int,
    title: str,
    description: str = "",
) -> Deck:
    """Create a deck inside a category, then recount the category."""
    _get(session, Category, category_id)
    title = _required(title, "title")
    _ensure_unique_deck_title(session, category_id, title)

    deck = Deck(category_id=category_id, title=title, description=(description or "").strip())
    session.add(deck)
    _commit(session)
    log.info("Created deck %d %r in category %d", deck.id, deck.title, category_id)
    recount_category_decks(session, category_id)
    return deck


def create_card(
    session: Session,
    deck_id: int,
    front: str,
    back: str,
    now: Optional[datetime] = None,
) -> Card:
    """Add a new card (due immediately), then recount the deck."""
    _get(session, Deck, deck_id)
    state = new_card_state(now)
    card = Card(
        deck_id=deck_id,
        front=_required(front, "front"),
        back=_required(back, "back"),
        ease_factor=state.ease_factor,
        interval_days=state.interval_days,
        repetitions=state.repetitions,
        status=CardStatus.NEW.value,
        next_review=state.next_review,
        last_reviewed=None,
    )
    session.add(card)
    _commit(session)
    log.info("Created card %d in deck %d", card.id, deck_id)
    recount_deck_cards(session, deck_id)
    return card


# ── Update ────────────────────────────────────────────────────────────

def update_category(
    session: Session,
    category_id: int,
    title: Optional[str] = None,
    icon: Optional[str] = None,
) -> Category:
    """Change a category's title and/or icon; titles stay unique."""
    category = _get(session, Category, category_id)
    if title and title.strip() != category.title:
        title = _required(title, "title")
        _ensure_unique_category_title(session, title, exclude_id=category_id)
        category.title = title
    if icon:
        category.icon = icon
    _commit(session)
    log.info("Updated category %d → %r", category_id, category.title)
    return category


def update_deck(
    session: Session,
    deck_id: int,
    title: Optional[str] = None,
    description: Optional[str] = None,
) -> Deck:
    """Change a deck's title and/or description.

    A title already used by another deck of the same category is refused
    with ``InvalidInput``.
    """
    deck = _get(session, Deck, deck_id)
    if title and title.strip() != deck.title:
        title = _required(title, "title")
        _ensure_unique_deck_title(session, deck.category_id, title, exclude_id=deck_id)
        deck.title = title
    if description is not None:
        deck.description = description.strip()
    _commit(session)
    log.info("Updated deck %d → %r", deck_id, deck.title)
    return deck


def update_card(
    session: Session,
    card_id: int,
    front: Optional[str] = None,
    back: Optional[str] = None,
) -> Card:
    """Edit a card's text.  Scheduling fields are left untouched."""
    if not (front or back):
        raise InvalidInput("no fields to update")
    card = _get(session, Card, card_id)
    if front:
        card.front = _required(front, "front")
    if back:
        card.back = _required(back, "back")
    _commit(session)
    log.info("Updated card %d", card_id)
    return card


# ── Delete ────────────────────────────────────────────────────────────

def delete_card(session: Session, card_id: int) -> None:
    """Delete a card and its review logs, then recount its deck."""
    card = _get(session, Card, card_id)
    deck_id = card.deck_id
    session.delete(card)
    _commit(session)
    log.info("Deleted card %d", card_id)
    recount_deck_cards(session, deck_id)


def delete_deck(session: Session, deck_id: int) -> None:
    """Delete a deck and all its cards + logs (cascade), then recount its category."""
    deck = _get(session, Deck, deck_id)
    category_id = deck.category_id
    session.delete(deck)
    _commit(session)
    log.info("Deleted deck %d", deck_id)
    recount_category_decks(session, category_id)


def delete_category(session: Session, category_id: int) -> None:
    """Delete a category with all of its decks, cards and logs (cascade)."""
    category = _get(session, Category, category_id)
    session.delete(category)
    _commit(session)
    log.info("Deleted category %d", category_id)
