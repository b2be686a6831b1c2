"""
Game catalog: admin create/update/delete and public listing.

A status change to ``completed`` requires final scores and triggers
settlement of the game's pending bets.  ``completed`` is terminal: once a
game is final its status and scores are frozen.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ghsabet.core.errors import CatalogError, RecordNotFound, SettlementError
from ghsabet.core.odds_math import MIN_ODDS_MAGNITUDE, parse_american_odds, to_decimal
from ghsabet.models import Bet, Game
from ghsabet.services.bet_tracker import refund_game, settle_game
from ghsabet.services.events import get_event_bus

logger = logging.getLogger(__name__)

SPORTS = ("football", "basketball", "golf", "soccer", "lacrosse", "baseball")
GAME_STATUSES = ("upcoming", "live", "completed")

_EDITABLE_FIELDS = (
    "sport",
    "team1",
    "team2",
    "game_date",
    "location",
    "team1_score",
    "team2_score",
    "status",
    "moneyline_team1",
    "moneyline_team2",
    "spread",
    "spread_odds",
)
_ODDS_FIELDS = ("moneyline_team1", "moneyline_team2", "spread_odds")


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _clean_odds(field: str, value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    odds = parse_american_odds(value)
    if odds is None or odds != odds.to_integral_value():
        raise CatalogError(f"{field}={value!r} is not valid American odds")
    if abs(odds) < MIN_ODDS_MAGNITUDE:
        raise CatalogError(
            f"{field}={value!r} is not valid American odds. Must be >= +100 or <= -100."
        )
    return int(odds)


def _clean_spread(value: Any):
    if value is None or value == "":
        return None
    spread = to_decimal(value)
    if spread is None:
        raise CatalogError(f"spread={value!r} is not a number")
    return spread


def _clean_score(field: str, value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        score = int(value)
    except (TypeError, ValueError):
        raise CatalogError(f"{field}={value!r} is not a score")
    if score < 0:
        raise CatalogError(f"{field} cannot be negative")
    return score


def _clean(fields: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in fields.items():
        if key not in _EDITABLE_FIELDS:
            raise CatalogError(f"Unknown game field {key!r}")
        if key == "sport":
            if value not in SPORTS:
                raise CatalogError("Please select a sport.")
        elif key in ("team1", "team2"):
            value = (value or "").strip()
            if not value:
                raise CatalogError("Please enter both team names.")
        elif key == "location":
            value = (value or "").strip()
            if not value:
                raise CatalogError("Please enter a game location.")
        elif key == "game_date":
            if not isinstance(value, datetime):
                raise CatalogError("Please select a game date and time.")
        elif key == "status":
            if value not in GAME_STATUSES:
                raise CatalogError(f"Unknown status {value!r}")
        elif key in ("team1_score", "team2_score"):
            value = _clean_score(key, value)
        elif key in _ODDS_FIELDS:
            value = _clean_odds(key, value)
        elif key == "spread":
            value = _clean_spread(value)
        out[key] = value
    return out


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_game(db: Session, game_id: int) -> Game:
    game = db.get(Game, game_id)
    if game is None:
        raise RecordNotFound(f"Game {game_id} not found")
    return game


def list_games(db: Session, sport: str = "all", status: Optional[str] = None) -> List[Game]:
    query = db.query(Game)
    if sport and sport != "all":
        query = query.filter(Game.sport == sport)
    if status:
        query = query.filter(Game.status == status)
    return query.order_by(Game.game_date.asc(), Game.id.asc()).all()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def create_game(db: Session, **fields: Any) -> Game:
    """Add a game to the catalog.  New games always start ``upcoming``."""
    for required in ("sport", "team1", "team2", "game_date", "location"):
        if required not in fields:
            fields[required] = None
    fields.setdefault("spread_odds", -110)
    fields.pop("status", None)
    values = _clean(fields)

    game = Game(status="upcoming", **values)
    db.add(game)
    db.commit()
    db.refresh(game)

    logger.info("Game created: %d %s (%s)", game.id, game.matchup, game.sport)
    get_event_bus().publish("game.created", game_id=game.id, sport=game.sport)
    return game


def update_game(db: Session, game_id: int, **changes: Any) -> Tuple[Game, Optional[Dict]]:
    """
    Apply admin edits.  Returns ``(game, settlement_summary)``; the summary is
    ``None`` unless this update completed the game.

    Raises:
        RecordNotFound, CatalogError, SettlementError (completing without
        final scores; nothing is saved).
    """
    game = get_game(db, game_id)
    values = _clean(changes)

    if game.status == "completed":
        frozen = {"status", "team1_score", "team2_score"}
        for key in frozen.intersection(values):
            if values[key] != getattr(game, key):
                raise CatalogError("Game is final; status and scores can no longer change")

    completing = game.status != "completed" and values.get("status") == "completed"
    if completing:
        team1_score = values.get("team1_score", game.team1_score)
        team2_score = values.get("team2_score", game.team2_score)
        if team1_score is None or team2_score is None:
            raise SettlementError("Final scores are required to complete a game")

    for key, value in values.items():
        setattr(game, key, value)
    db.commit()
    db.refresh(game)

    logger.info("Game updated: %d %s -> %s", game.id, sorted(values), game.status)
    get_event_bus().publish("game.updated", game_id=game.id, status=game.status)

    summary = settle_game(db, game.id) if completing else None
    return game, summary


def delete_game(db: Session, game_id: int) -> int:
    """
    Remove a game.  Pending bets are refunded first; settled bets keep their
    history and lose the game link.  Returns the number of refunds.
    """
    game = get_game(db, game_id)
    try:
        refunded = refund_game(db, game.id)
        db.query(Bet).filter(Bet.game_id == game.id).update(
            {Bet.game_id: None}, synchronize_session=False
        )
        db.delete(game)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Game deleted: %d (%d pending bets refunded)", game_id, refunded)
    get_event_bus().publish("game.deleted", game_id=game_id, refunded=refunded)
    return refunded
