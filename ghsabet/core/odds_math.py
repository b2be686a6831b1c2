"""American-odds mathematics: the single source of truth for bet pricing.

Every function here is **pure**: no I/O, no logging, no side effects.
Import from this module; never reimplement payout math in services or
endpoints.

The two pillars exposed are:

1. **Parsing**: coercing stakes and American odds that arrive as ints,
   floats, or strings (``"+150"``, ``"-110"``) into :class:`~decimal.Decimal`.
2. **Pricing**: :func:`compute_payout`, used both for the live preview a
   bettor sees while typing a stake and for the authoritative figures
   stored on the bet at placement.

Design decisions
----------------
* Money is carried as ``Decimal`` end to end.  Floats are converted through
  their shortest ``repr`` so ``0.1`` becomes ``Decimal("0.1")`` rather than
  its binary expansion.
* Quotes keep full precision.  Rounding to cents happens only through
  :func:`money` / :meth:`PayoutQuote.rounded` when a value is displayed, so
  repeated settlements do not accumulate rounding drift.
* Invalid odds (zero or unparseable) yield a zero quote instead of raising.
  Callers that must refuse the bet check :attr:`PayoutQuote.is_valid`.

Run tests with::

    pytest tests/test_odds_math.py -v
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Final, Optional, Tuple, Union

Number = Union[int, float, str, Decimal]

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

#: American-odds magnitude floor for posted lines.  Sportsbooks never quote
#: |odds| < 100; the game catalog uses this to reject data-entry errors.
MIN_ODDS_MAGNITUDE: Final[int] = 100

#: Presentation precision for money.
CENT: Final[Decimal] = Decimal("0.01")

#: Largest amount a ledger column (Numeric(20, 8)) holds, in whole cents.
MAX_AMOUNT: Final[Decimal] = Decimal("999999999999.99")

_HUNDRED: Final[Decimal] = Decimal(100)
_ZERO: Final[Decimal] = Decimal(0)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def to_decimal(value: object) -> Optional[Decimal]:
    """Coerce ``value`` to a finite ``Decimal``, or ``None`` if impossible.

    Accepts ``int``, ``float``, ``Decimal`` and numeric strings (surrounding
    whitespace and a leading ``+`` are allowed).  Booleans, NaN and
    infinities are rejected.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        if not math.isfinite(value):
            return None
        result = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            return None
    else:
        return None
    return result if result.is_finite() else None


def is_ledger_amount(amount: Decimal) -> bool:
    """True when ``amount`` is whole cents and no larger than :data:`MAX_AMOUNT`."""
    if amount > MAX_AMOUNT:
        return False
    return amount == amount.quantize(CENT)


def parse_stake(stake: object) -> Optional[Decimal]:
    """Return a strictly positive stake in whole cents, or ``None``.

    Fractions of a cent and amounts above :data:`MAX_AMOUNT` are refused
    rather than rounded, so a stake is never stored as something the bettor
    did not enter.
    """
    amount = to_decimal(stake)
    if amount is None or amount <= _ZERO or not is_ledger_amount(amount):
        return None
    return amount


def parse_american_odds(odds: object) -> Optional[Decimal]:
    """Return non-zero American odds as ``Decimal``, or ``None``.

    Examples::

        parse_american_odds("+150") → Decimal("150")
        parse_american_odds(-110)   → Decimal("-110")
        parse_american_odds("0")    → None
        parse_american_odds("even") → None
    """
    price = to_decimal(odds)
    if price is None or price == _ZERO:
        return None
    return price


def is_standard_american(odds: object) -> bool:
    """True when ``odds`` parses and has magnitude ≥ :data:`MIN_ODDS_MAGNITUDE`."""
    price = parse_american_odds(odds)
    return price is not None and abs(price) >= MIN_ODDS_MAGNITUDE


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PayoutQuote:
    """Gross payout and net profit for a stake at given odds."""

    stake: Decimal
    odds: Optional[Decimal]
    payout: Decimal
    profit: Decimal

    @property
    def is_valid(self) -> bool:
        return self.odds is not None and self.stake > _ZERO

    def rounded(self) -> Tuple[Decimal, Decimal]:
        """``(payout, profit)`` rounded to cents for display."""
        return money(self.payout), money(self.profit)


def compute_payout(stake: object, odds: object) -> PayoutQuote:
    """Price a wager in American odds.

    Positive odds quote profit per 100 staked; negative odds quote the stake
    needed to win 100::

        compute_payout(100, +150) → payout 250, profit 150
        compute_payout(110, -110) → payout 210, profit 100

    A stake that :func:`parse_stake` refuses is treated as zero.  Zero or
    unparseable ``odds`` produce a zero payout and zero profit; such a quote
    is not :attr:`~PayoutQuote.is_valid` and must not be accepted as a bet.
    """
    amount = parse_stake(stake) or _ZERO
    price = parse_american_odds(odds)
    if price is None:
        return PayoutQuote(stake=amount, odds=None, payout=_ZERO, profit=_ZERO)

    if price > _ZERO:
        payout = amount + amount * price / _HUNDRED
    else:
        # Negative: risk |odds| to win 100
        payout = amount + amount * _HUNDRED / abs(price)

    return PayoutQuote(stake=amount, odds=price, payout=payout, profit=payout - amount)


def american_to_decimal(american: Number) -> float:
    """Convert American odds to decimal (European) format.

    Decimal odds are the total return per unit staked, stake included::

        american_to_decimal(-110) → 1.9091
        american_to_decimal(+150) → 2.5000

    Raises:
        ValueError: If ``american`` is zero or not a number.
    """
    price = parse_american_odds(american)
    if price is None:
        raise ValueError(f"Invalid American odds {american!r}")
    if price > _ZERO:
        return float(price) / 100.0 + 1.0
    return 100.0 / abs(float(price)) + 1.0


def implied_prob(american: Number) -> float:
    """Raw implied probability from American odds (vig-inclusive)."""
    return 1.0 / american_to_decimal(american)


# ---------------------------------------------------------------------------
# Presentation
# ---------------------------------------------------------------------------


def money(value: Number) -> Decimal:
    """Round a monetary amount to cents, half-up."""
    amount = to_decimal(value)
    if amount is None:
        raise ValueError(f"Not a monetary amount: {value!r}")
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, amount.adjusted() + 3)
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_odds(odds: Number) -> str:
    """Display American odds with an explicit sign: ``+150`` / ``-110``."""
    price = parse_american_odds(odds)
    if price is None:
        return "N/A"
    return f"{float(price):+g}"
