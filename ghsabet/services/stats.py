"""
Aggregate figures for the admin overview and per-bettor records.
"""

import logging
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ghsabet.core.errors import RecordNotFound
from ghsabet.core.odds_math import money
from ghsabet.core.settlement import BetStatus
from ghsabet.models import Bet, Game, User

logger = logging.getLogger(__name__)

_ZERO = Decimal(0)


def _safe_roi(profit: Decimal, risked: Decimal) -> float:
    return round(float(profit / risked), 4) if risked > 0 else 0.0


def _win_rate(wins: int, total: int) -> float:
    return round(wins / total, 4) if total > 0 else 0.0


def admin_overview(db: Session) -> Dict:
    """
    Headline counters for the admin dashboard.

    ``total_volume`` is the sum of all stakes ever placed, settled or not.
    """
    active_games = db.query(func.count(Game.id)).filter(Game.status != "completed").scalar() or 0
    total_users = db.query(func.count(User.id)).scalar() or 0
    active_bets = (
        db.query(func.count(Bet.id)).filter(Bet.status == BetStatus.PENDING.value).scalar() or 0
    )
    volume = db.query(func.coalesce(func.sum(Bet.amount), 0)).scalar()

    return {
        "active_games": int(active_games),
        "total_users": int(total_users),
        "active_bets": int(active_bets),
        "total_volume": money(volume or 0),
    }


def user_record(db: Session, user_id: int) -> Dict:
    """
    Win/loss record for one bettor.

    Profit counts settled bets only: a win earns ``potential_profit``, a loss
    costs the stake, a push is neutral.  ROI is profit over stakes on
    decided (won/lost) bets.
    """
    user: Optional[User] = db.get(User, user_id)
    if user is None:
        raise RecordNotFound(f"User {user_id} not found")

    bets = db.query(Bet).filter(Bet.user_id == user_id).all()

    counts = {s.value: 0 for s in BetStatus}
    staked = _ZERO
    at_risk = _ZERO
    decided_stake = _ZERO
    profit = _ZERO

    for b in bets:
        counts[b.status] = counts.get(b.status, 0) + 1
        staked += b.amount
        if b.status == BetStatus.PENDING.value:
            at_risk += b.amount
        elif b.status == BetStatus.WON.value:
            profit += b.potential_profit
            decided_stake += b.amount
        elif b.status == BetStatus.LOST.value:
            profit -= b.amount
            decided_stake += b.amount

    decided = counts[BetStatus.WON.value] + counts[BetStatus.LOST.value]

    return {
        "user_id": user.id,
        "username": user.username,
        "balance": money(user.balance),
        "total_bets": len(bets),
        "pending": counts[BetStatus.PENDING.value],
        "won": counts[BetStatus.WON.value],
        "lost": counts[BetStatus.LOST.value],
        "pushes": counts[BetStatus.PUSH.value],
        "total_staked": money(staked),
        "at_risk": money(at_risk),
        "net_profit": money(profit),
        "win_rate": _win_rate(counts[BetStatus.WON.value], decided),
        "roi": _safe_roi(profit, decided_stake),
    }
