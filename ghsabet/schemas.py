"""
Pydantic request/response schemas for the GHSAbet API.

Request models expose only the fields a caller may set, so admin payloads
can never write ``balance`` or ``status`` columns they were not meant to.
Money goes out as two-decimal strings; ledger precision stays in the DB.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_serializer, field_validator

from ghsabet.core.odds_math import money

Sport = Literal["football", "basketball", "golf", "soccer", "lacrosse", "baseball"]
GameStatus = Literal["upcoming", "live", "completed"]

# Numbers may arrive as JSON numbers or strings ("+150", "25.00"); the
# service layer parses them and raises typed rejections.
NumberIn = Union[float, str]


# ---------------------------------------------------------------------------
# Auth / accounts
# ---------------------------------------------------------------------------

class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    id: int
    username: str
    balance: Decimal
    is_admin: bool
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_serializer("balance")
    def _cents(self, v: Decimal) -> str:
        return str(money(v))


class LoginResponse(BaseModel):
    token: str
    user: UserResponse


class UserCreate(BaseModel):
    """Payload for POST /api/users (admin)."""

    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1)
    balance: Optional[NumberIn] = Field(None, description="Defaults to DEFAULT_BALANCE")
    is_admin: bool = False

    model_config = {
        "json_schema_extra": {
            "example": {"username": "jsmith", "password": "changeme", "balance": "500.00"}
        }
    }


class BalanceUpdate(BaseModel):
    balance: NumberIn


class StatusUpdate(BaseModel):
    is_active: bool


# ---------------------------------------------------------------------------
# Games
# ---------------------------------------------------------------------------

class GameCreate(BaseModel):
    """
    Payload for POST /api/games.

    Odds are American and optional: a market with no posted price is not
    offered.  ``spread`` is quoted from team1's perspective.
    """

    sport: Sport
    team1: str = Field(..., min_length=1, max_length=120)
    team2: str = Field(..., min_length=1, max_length=120)
    game_date: datetime
    location: str = Field(..., min_length=1, max_length=200)
    moneyline_team1: Optional[int] = None
    moneyline_team2: Optional[int] = None
    spread: Optional[float] = None
    spread_odds: Optional[int] = -110

    @field_validator("moneyline_team1", "moneyline_team2", "spread_odds")
    @classmethod
    def validate_american_odds(cls, v: Optional[int]) -> Optional[int]:
        if v is None:
            return v
        if v == 0:
            raise ValueError("odds cannot be 0")
        if -100 < v < 100:
            raise ValueError(f"{v} is not valid American odds. Must be >= +100 or <= -100.")
        return v

    model_config = {
        "json_schema_extra": {
            "example": {
                "sport": "football",
                "team1": "Eagles",
                "team2": "Tigers",
                "game_date": "2026-10-23T19:00:00",
                "location": "Memorial Stadium",
                "moneyline_team1": -150,
                "moneyline_team2": 130,
                "spread": -3.5,
                "spread_odds": -110,
            }
        }
    }


class GameUpdate(BaseModel):
    """Payload for PATCH /api/games/{id}.  Only supplied fields change."""

    sport: Optional[Sport] = None
    team1: Optional[str] = Field(None, min_length=1, max_length=120)
    team2: Optional[str] = Field(None, min_length=1, max_length=120)
    game_date: Optional[datetime] = None
    location: Optional[str] = Field(None, min_length=1, max_length=200)
    status: Optional[GameStatus] = None
    team1_score: Optional[int] = Field(None, ge=0)
    team2_score: Optional[int] = Field(None, ge=0)
    moneyline_team1: Optional[int] = None
    moneyline_team2: Optional[int] = None
    spread: Optional[float] = None
    spread_odds: Optional[int] = None


class GameResponse(BaseModel):
    id: int
    sport: str
    team1: str
    team2: str
    game_date: datetime
    location: str
    status: str
    team1_score: Optional[int] = None
    team2_score: Optional[int] = None
    moneyline_team1: Optional[int] = None
    moneyline_team2: Optional[int] = None
    spread: Optional[float] = None
    spread_odds: Optional[int] = None

    model_config = {"from_attributes": True}


class GameUpdateResponse(BaseModel):
    game: GameResponse
    settlement: Optional[Dict] = None


class GameDeleteResponse(BaseModel):
    message: str
    game_id: int
    refunded: int


# ---------------------------------------------------------------------------
# Quotes and bets
# ---------------------------------------------------------------------------

class QuoteRequest(BaseModel):
    """Payload for POST /api/quote: live payout preview."""

    amount: NumberIn
    odds: NumberIn


class QuoteResponse(BaseModel):
    stake: Decimal
    odds: Optional[str] = None
    payout: Decimal
    profit: Decimal
    decimal_odds: Optional[float] = None
    implied_prob: Optional[float] = None
    valid: bool

    @field_serializer("stake", "payout", "profit")
    def _cents(self, v: Decimal) -> str:
        return str(money(v))


class BetCreate(BaseModel):
    """
    Payload for POST /api/bets.

    ``odds`` is the price the bettor was shown; if the game's quote has
    moved since, the bet is refused and the bettor re-confirms.
    """

    game_id: int
    bet_type: Literal["moneyline", "spread"]
    side: Literal["team1", "team2"]
    amount: NumberIn
    odds: Optional[NumberIn] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "game_id": 3,
                "bet_type": "spread",
                "side": "team2",
                "amount": "25.00",
                "odds": -110,
            }
        }
    }


class BetResponse(BaseModel):
    id: int
    game_id: Optional[int] = None
    matchup: Optional[str] = None
    bet_type: str
    side: str
    selection: str
    line: Optional[float] = None
    odds: float
    amount: Decimal
    potential_payout: Decimal
    potential_profit: Decimal
    status: str
    placed_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_serializer("amount", "potential_payout", "potential_profit")
    def _cents(self, v: Decimal) -> str:
        return str(money(v))


class BetPlacedResponse(BaseModel):
    bet: BetResponse
    balance: Decimal

    @field_serializer("balance")
    def _cents(self, v: Decimal) -> str:
        return str(money(v))


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

class UserRecordResponse(BaseModel):
    user_id: int
    username: str
    balance: Decimal
    total_bets: int
    pending: int
    won: int
    lost: int
    pushes: int
    total_staked: Decimal
    at_risk: Decimal
    net_profit: Decimal
    win_rate: float
    roi: float

    @field_serializer("balance", "total_staked", "at_risk", "net_profit")
    def _cents(self, v: Decimal) -> str:
        return str(money(v))


class OverviewResponse(BaseModel):
    active_games: int
    total_users: int
    active_bets: int
    total_volume: Decimal

    @field_serializer("total_volume")
    def _cents(self, v: Decimal) -> str:
        return str(money(v))


class SettlementSummary(BaseModel):
    game_id: int
    bets_settled: int
    won: int
    lost: int
    pushes: int
    errors: List[str] = []
    timestamp: str


class ActivityItem(BaseModel):
    name: str
    payload: Dict
    timestamp: str
