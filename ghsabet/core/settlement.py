"""Bet settlement rules.  Pure functions, no database.

A bet is resolved once, from the final scores of its game:

    Moneyline:  the selected side must finish strictly ahead; a tie pushes.
    Spread:     add the locked line to the selected side's score and compare
                with the opponent's score; an exact tie pushes.

Balance effects of each terminal status (see :func:`settlement_credit`):

    won   → credit the locked potential payout (stake + profit)
    push  → refund the stake
    lost  → nothing (the stake was debited at placement)
"""

from __future__ import annotations

import re
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Tuple

from ghsabet.core.errors import SettlementError
from ghsabet.core.odds_math import to_decimal


class BetType(str, Enum):
    MONEYLINE = "moneyline"
    SPREAD = "spread"


class BetStatus(str, Enum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"
    PUSH = "push"


class Side(str, Enum):
    TEAM1 = "team1"
    TEAM2 = "team2"

    @property
    def opponent(self) -> "Side":
        return Side.TEAM2 if self is Side.TEAM1 else Side.TEAM1


# ---------------------------------------------------------------------------
# Pick parsing
# ---------------------------------------------------------------------------

_PICK_RE = re.compile(r"^(.+?)\s+([+-]?\d+\.?\d*)$")


def parse_pick(pick: str) -> Tuple[str, Optional[Decimal]]:
    """
    Parse 'Eagles -4.5' → ('Eagles', Decimal('-4.5')).
    Parse 'Tigers +3'   → ('Tigers', Decimal('3')).
    Parse 'Eagles'      → ('Eagles', None)   (moneyline).

    The line is from the perspective of the picked team:
      negative → favourite, positive → underdog.
    """
    match = _PICK_RE.match(pick.strip())
    if match:
        return match.group(1).strip(), Decimal(match.group(2))
    return pick.strip(), None


def side_line(spread: Any, side: Side) -> Optional[Decimal]:
    """Spread quoted from team1's perspective, restated for ``side``."""
    line = to_decimal(spread)
    if line is None:
        return None
    return line if Side(side) is Side.TEAM1 else -line


def format_line(line: Decimal) -> str:
    return f"{float(line):+g}"


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------

def settle_bet(
    bet: Any,
    team1_score: Optional[int],
    team2_score: Optional[int],
    side: Optional[str] = None,
) -> BetStatus:
    """
    Resolve ``bet`` against final scores and return won / lost / push.

    ``bet`` needs ``bet_type``, ``line`` and ``selection`` attributes (an ORM
    ``Bet`` or any stand-in).  ``side`` defaults to ``bet.side``.  A spread
    bet without a stored line falls back to the line embedded in its
    selection text ("Team B +3.5").

    Raises:
        SettlementError: scores missing, side unknown, or a spread bet
            whose line cannot be determined.
    """
    if team1_score is None or team2_score is None:
        raise SettlementError("Final scores are required to settle a bet")

    try:
        selected = Side(side if side is not None else bet.side)
        bet_type = BetType(bet.bet_type)
    except ValueError as exc:
        raise SettlementError(f"Cannot settle bet: {exc}") from exc

    scores = {Side.TEAM1: Decimal(team1_score), Side.TEAM2: Decimal(team2_score)}
    own = scores[selected]
    other = scores[selected.opponent]

    if bet_type is BetType.SPREAD:
        line = to_decimal(bet.line)
        if line is None:
            _, line = parse_pick(bet.selection or "")
        if line is None:
            raise SettlementError(f"Spread bet has no line: {bet.selection!r}")
        own = own + line

    if own > other:
        return BetStatus.WON
    if own < other:
        return BetStatus.LOST
    return BetStatus.PUSH


def settlement_credit(bet: Any, status: BetStatus) -> Decimal:
    """Amount to credit the bettor's balance for a terminal ``status``."""
    if status is BetStatus.WON:
        return to_decimal(bet.potential_payout) or Decimal(0)
    if status is BetStatus.PUSH:
        return to_decimal(bet.amount) or Decimal(0)
    return Decimal(0)
