"""
FlashRecall — Entry point
==========================
Command line front-end over the review and analytics operations.
"""

import json
import logging
import sys

import typer

from core.errors import FlashRecallError
from core.review_ops import deck_analytics, get_due_cards, record_review
from core.deck_ops import recount_deck_cards
from db.database import get_session, init_db

app = typer.Typer(
    help="flashrecall: spaced-repetition scheduling and deck analytics.",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s:%(name)s:%(message)s",
        stream=sys.stderr,
    )


def _fail(exc: FlashRecallError) -> None:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


@app.command("init-db")
def init_db_command() -> None:
    """Create the database tables."""
    init_db()
    typer.echo("Database ready.")


@app.command()
def review(card_id: int, quality: int) -> None:
    """Grade CARD_ID with QUALITY (0-5) and print its new schedule."""
    session = get_session()
    try:
        state = record_review(session, card_id, quality)
    except FlashRecallError as exc:
        _fail(exc)
    finally:
        session.close()
    typer.echo(
        f"card {card_id}: {state.status.value}, interval {state.interval_days}d, "
        f"ease {state.ease_factor:.2f}, next {state.next_review.isoformat()}"
    )


@app.command()
def due(deck_id: int, limit: int = typer.Option(50, help="Maximum cards to list.")) -> None:
    """List the cards of DECK_ID that are due, most overdue first."""
    session = get_session()
    try:
        cards = get_due_cards(session, deck_id, limit=limit)
    except FlashRecallError as exc:
        _fail(exc)
    finally:
        session.close()
    for card in cards:
        typer.echo(f"{card.id}\t{card.front}")


@app.command()
def analytics(
    deck_id: int,
    time_range: str = typer.Option("month", "--range", help="week, month, year, all or a number of days."),
) -> None:
    """Print the analytics report for DECK_ID as JSON."""
    session = get_session()
    try:
        snapshot = deck_analytics(session, deck_id, time_range)
    except FlashRecallError as exc:
        _fail(exc)
    finally:
        session.close()
    typer.echo(json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False))


@app.command()
def recount(deck_id: int) -> None:
    """Rebuild the card counter of DECK_ID."""
    session = get_session()
    try:
        total = recount_deck_cards(session, deck_id)
    except FlashRecallError as exc:
        _fail(exc)
    finally:
        session.close()
    typer.echo(f"deck {deck_id}: {total} cards")


if __name__ == "__main__":
    app()
