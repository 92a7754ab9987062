"""
FlashRecall – SQLAlchemy ORM Models
====================================
Defines the data schema: Categories, Decks, Cards (with SM-2 fields),
and ReviewLogs.

Parent counters (``Category.deck_count``, ``Deck.total_cards``) are plain
columns refreshed by the explicit recount helpers in ``core.deck_ops``;
no ORM events touch them.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    Text,
    DateTime,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Category – groups decks by subject
# ---------------------------------------------------------------------------
class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    icon = Column(String(16), nullable=False, default="📚")
    deck_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=_utcnow)

    decks = relationship(
        "Deck", back_populates="category", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Category id={self.id} title={self.title!r}>"


# ---------------------------------------------------------------------------
# Deck – a collection of flashcards
# ---------------------------------------------------------------------------
class Deck(Base):
    __tablename__ = "decks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")

    # Cached figures, refreshed by core.deck_ops
    total_cards = Column(Integer, nullable=False, default=0)
    due_cards = Column(Integer, nullable=False, default=0)
    retention = Column(Float, nullable=False, default=0.0)  # percent
    last_studied = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=_utcnow)

    # Relationships
    category = relationship("Category", back_populates="decks")
    cards = relationship(
        "Card", back_populates="deck", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("title", "category_id", name="uq_deck_title_category"),
    )

    def __repr__(self) -> str:
        return f"<Deck id={self.id} title={self.title!r}>"


# ---------------------------------------------------------------------------
# Card – a single flashcard with SM-2 scheduling metadata
# ---------------------------------------------------------------------------
class Card(Base):
    __tablename__ = "cards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    deck_id = Column(Integer, ForeignKey("decks.id", ondelete="CASCADE"), nullable=False)

    # Content
    front = Column(Text, nullable=False)
    back = Column(Text, nullable=False)

    # SM-2 scheduling fields
    ease_factor = Column(Float, nullable=False, default=2.5)
    interval_days = Column(Integer, nullable=False, default=0)
    repetitions = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False, default="new")
    next_review = Column(DateTime, nullable=False, default=_utcnow)
    last_reviewed = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=_utcnow)

    # Relationships
    deck = relationship("Deck", back_populates="cards")
    review_logs = relationship(
        "ReviewLog",
        back_populates="card",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ReviewLog.id",
    )

    def __repr__(self) -> str:
        return f"<Card id={self.id} front={self.front!r} next_review={self.next_review}>"


# ---------------------------------------------------------------------------
# ReviewLog – append-only history of every review
# ---------------------------------------------------------------------------
class ReviewLog(Base):
    __tablename__ = "review_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    card_id = Column(Integer, ForeignKey("cards.id", ondelete="CASCADE"), nullable=False)
    reviewed_at = Column(DateTime, nullable=False, default=_utcnow)
    quality = Column(Integer, nullable=False)  # 0-5 (SM-2 scale)
    ease_factor_after = Column(Float, nullable=True)
    interval_after = Column(Integer, nullable=True)

    # Relationship
    card = relationship("Card", back_populates="review_logs")

    def __repr__(self) -> str:
        return f"<ReviewLog card_id={self.card_id} q={self.quality} at={self.reviewed_at}>"
