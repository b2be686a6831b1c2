"""
Bet admission control.

    place_bet(db, session, request) → Bet

Validate → admit → persist.  A bet is accepted only when the caller is
authenticated, the stake is a positive amount in whole cents, the game is open and
offers the requested market, and the stake fits in the caller's balance.

The balance check-and-debit is a single conditional UPDATE
(``balance = balance - stake WHERE balance >= stake``) committed together
with the new bet row, and it runs inside a per-user lock so that
concurrent requests from one bettor are serialised.
"""

import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from ghsabet.core.errors import (
    BetRejected,
    GameNotBettable,
    InsufficientBalance,
    InvalidOdds,
    InvalidStake,
    Unauthenticated,
)
from ghsabet.core.odds_math import (
    MAX_AMOUNT,
    compute_payout,
    format_odds,
    parse_american_odds,
    parse_stake,
)
from ghsabet.core.settlement import BetStatus, BetType, Side, format_line, side_line
from ghsabet.models import Bet, Game, User
from ghsabet.services.accounts import BettorSession
from ghsabet.services.events import get_event_bus

logger = logging.getLogger(__name__)

_user_locks: Dict[int, threading.Lock] = {}
_user_locks_guard = threading.Lock()


def _lock_for(user_id: int) -> threading.Lock:
    with _user_locks_guard:
        lock = _user_locks.get(user_id)
        if lock is None:
            lock = _user_locks[user_id] = threading.Lock()
        return lock


@dataclass
class BetRequest:
    """
    A bettor's placement command.

    ``odds`` is the price the bettor was shown.  When supplied it must match
    the game's current quote; the bet is always locked at the current quote.
    """

    game_id: int
    bet_type: str
    side: str
    amount: Any
    odds: Any = None


# ---------------------------------------------------------------------------
# Market lookup (pure, no DB)
# ---------------------------------------------------------------------------

def current_quote(game: Any, bet_type: str, side: str) -> Tuple[Decimal, Optional[Decimal], str]:
    """
    Return ``(odds, line, selection)`` currently offered on ``game``.

    Raises:
        GameNotBettable: unknown market/side, or the market is not posted.
    """
    try:
        market = BetType(bet_type)
        picked = Side(side)
    except ValueError as exc:
        raise GameNotBettable(f"Unsupported market: {exc}") from exc

    team = game.team1 if picked is Side.TEAM1 else game.team2

    if market is BetType.MONEYLINE:
        quoted = game.moneyline_team1 if picked is Side.TEAM1 else game.moneyline_team2
        odds = parse_american_odds(quoted)
        if odds is None:
            raise GameNotBettable("No moneyline is posted for this game")
        return odds, None, team

    line = side_line(game.spread, picked)
    if line is None:
        raise GameNotBettable("No spread is posted for this game")
    odds = parse_american_odds(game.spread_odds if game.spread_odds is not None else -110)
    if odds is None:
        raise GameNotBettable("No spread price is posted for this game")
    return odds, line, f"{team} {format_line(line)}"


# ---------------------------------------------------------------------------
# Admission
# ---------------------------------------------------------------------------

def place_bet(db: Session, session: Optional[BettorSession], request: BetRequest) -> Bet:
    """
    Admit and persist a bet, debiting the stake.

    Raises:
        Unauthenticated, InvalidStake, InvalidOdds, GameNotBettable,
        InsufficientBalance.  In every case nothing is written.
    """
    if session is None:
        raise Unauthenticated("Please log in to place a bet.")

    stake = parse_stake(request.amount)
    if stake is None:
        raise InvalidStake("Please enter a valid bet amount.")

    with _lock_for(session.user_id):
        try:
            user = db.get(User, session.user_id)
            if user is None or not user.is_active:
                raise Unauthenticated("Account is not active")

            game = db.get(Game, request.game_id)
            if game is None:
                raise GameNotBettable(f"Game {request.game_id} not found")
            if game.status == "completed":
                raise GameNotBettable("Betting is closed: this game is final")

            odds, line, selection = current_quote(game, request.bet_type, request.side)

            if request.odds is not None:
                shown = parse_american_odds(request.odds)
                if shown is None:
                    raise InvalidOdds(f"Invalid odds {request.odds!r}")
                if shown != odds:
                    raise InvalidOdds(
                        f"Odds have moved from {format_odds(shown)} to {format_odds(odds)}; "
                        "please confirm the new price."
                    )

            quote = compute_payout(stake, odds)
            if not quote.is_valid:
                raise InvalidOdds(f"Invalid odds {odds!r}")
            if quote.payout > MAX_AMOUNT:
                raise InvalidStake("This bet's payout is larger than an account can hold.")

            if stake > user.balance:
                raise InsufficientBalance("You don't have enough funds to place this bet.")

            debit = db.execute(
                update(User)
                .where(User.id == user.id, User.balance >= stake)
                .values(balance=User.balance - stake)
                .execution_options(synchronize_session=False)
            )
            if debit.rowcount != 1:
                raise InsufficientBalance("You don't have enough funds to place this bet.")

            bet = Bet(
                user_id=user.id,
                game_id=game.id,
                bet_type=BetType(request.bet_type).value,
                side=Side(request.side).value,
                selection=selection,
                matchup=game.matchup,
                line=line,
                odds=odds,
                amount=stake,
                potential_payout=quote.payout,
                potential_profit=quote.profit,
                status=BetStatus.PENDING.value,
            )
            db.add(bet)
            db.commit()
        except BetRejected as exc:
            db.rollback()
            logger.info("Bet rejected for %s (%s): %s", session.username, exc.kind, exc.message)
            raise
        except Exception:
            db.rollback()
            raise

    db.refresh(bet)
    logger.info(
        "Bet %d placed by %s: %s %s @ %s, stake %s to pay %s",
        bet.id, session.username, bet.bet_type, bet.selection,
        format_odds(odds), stake, quote.rounded()[0],
    )
    get_event_bus().publish(
        "bet.placed",
        bet_id=bet.id,
        user_id=bet.user_id,
        game_id=bet.game_id,
        amount=str(stake),
    )
    return bet


def list_bets(db: Session, user_id: int, status: Optional[str] = None) -> List[Bet]:
    """A bettor's bets, newest first.  ``status`` of None or "all" returns everything."""
    query = db.query(Bet).filter(Bet.user_id == user_id)
    if status and status != "all":
        query = query.filter(Bet.status == status)
    return query.order_by(Bet.placed_at.desc(), Bet.id.desc()).all()
