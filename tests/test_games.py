"""Tests for services/games.py: catalog validation, completion and deletion."""

from datetime import datetime
from decimal import Decimal

import pytest

from ghsabet.core.errors import CatalogError, RecordNotFound, SettlementError
from ghsabet.models import Bet, Game, User
from ghsabet.services import games
from ghsabet.services.betting import BetRequest, place_bet
from ghsabet.services.events import get_event_bus


def _balance(db, user_id):
    db.expire_all()
    return db.get(User, user_id).balance


# ---------------------------------------------------------------------------
# create_game
# ---------------------------------------------------------------------------

def test_create_game_starts_upcoming(db, make_game):
    game = make_game(status="completed")
    assert game.status == "upcoming"
    assert game.matchup == "Team A vs Team B"
    assert game.spread == Decimal("-3.5")


def test_spread_odds_default(db):
    game = games.create_game(
        db,
        sport="golf",
        team1="North",
        team2="South",
        game_date=datetime(2026, 11, 1, 9, 0),
        location="Pine Hills",
    )
    assert game.spread_odds == -110
    assert game.moneyline_team1 is None


@pytest.mark.parametrize("overrides", [
    {"sport": "cricket"},
    {"team1": "  "},
    {"team2": ""},
    {"location": ""},
    {"game_date": "tomorrow"},
    {"moneyline_team1": 0},
    {"moneyline_team2": 50},
    {"moneyline_team1": "abc"},
    {"spread_odds": -99},
    {"moneyline_team1": 150.5},
    {"spread": "three"},
])
def test_create_game_validation(db, make_game, overrides):
    with pytest.raises(CatalogError):
        make_game(**overrides)
    assert db.query(Game).count() == 0


def test_odds_accept_signed_strings(db, make_game):
    game = make_game(moneyline_team1="+145", moneyline_team2="-165")
    assert game.moneyline_team1 == 145
    assert game.moneyline_team2 == -165


def test_unknown_field_rejected(db, make_game):
    with pytest.raises(CatalogError):
        make_game(referee="Smith")


# ---------------------------------------------------------------------------
# list / get
# ---------------------------------------------------------------------------

def test_list_games_by_sport(db, make_game):
    make_game(sport="football", game_date=datetime(2026, 10, 25, 19, 0))
    make_game(sport="football", game_date=datetime(2026, 10, 24, 19, 0))
    make_game(sport="baseball")

    football = games.list_games(db, sport="football")
    assert [g.game_date.day for g in football] == [24, 25]
    assert len(games.list_games(db)) == 3
    assert len(games.list_games(db, sport="all")) == 3
    assert games.list_games(db, sport="lacrosse") == []


def test_list_games_by_status(db, make_game):
    game = make_game()
    make_game()
    games.update_game(db, game.id, status="live")
    assert [g.id for g in games.list_games(db, status="live")] == [game.id]


def test_get_game_missing(db):
    with pytest.raises(RecordNotFound):
        games.get_game(db, 404)


# ---------------------------------------------------------------------------
# update_game
# ---------------------------------------------------------------------------

def test_update_odds_and_scores(db, make_game):
    game = make_game()
    updated, summary = games.update_game(
        db, game.id, moneyline_team1=-120, team1_score=7, team2_score=3, status="live"
    )
    assert summary is None
    assert updated.moneyline_team1 == -120
    assert (updated.team1_score, updated.team2_score) == (7, 3)


def test_update_validation(db, make_game):
    game = make_game()
    with pytest.raises(CatalogError):
        games.update_game(db, game.id, status="postponed")
    with pytest.raises(CatalogError):
        games.update_game(db, game.id, team1_score=-1)


def test_completing_game_settles_bets(db, make_user, make_game, session_for):
    user = make_user(balance="500")
    game = make_game(moneyline_team1=150)
    bet = place_bet(db, session_for(user), BetRequest(game.id, "moneyline", "team1", 100))

    updated, summary = games.update_game(
        db, game.id, status="completed", team1_score=21, team2_score=14
    )

    assert updated.status == "completed"
    assert summary["won"] == 1
    assert db.get(Bet, bet.id).status == "won"
    assert _balance(db, user.id) == Decimal("650")


def test_completing_without_scores_saves_nothing(db, make_user, make_game, session_for):
    user = make_user(balance="500")
    game = make_game()
    place_bet(db, session_for(user), BetRequest(game.id, "moneyline", "team1", 100))

    with pytest.raises(SettlementError):
        games.update_game(db, game.id, status="completed", team1_score=21)

    db.expire_all()
    reloaded = db.get(Game, game.id)
    assert reloaded.status == "upcoming"
    assert reloaded.team1_score is None


def test_completed_is_terminal(db, make_game):
    game = make_game()
    games.update_game(db, game.id, status="completed", team1_score=21, team2_score=14)

    with pytest.raises(CatalogError):
        games.update_game(db, game.id, status="live")
    with pytest.raises(CatalogError):
        games.update_game(db, game.id, team2_score=28)

    # Re-sending the same final values and editing cosmetic fields is fine
    updated, summary = games.update_game(
        db, game.id, status="completed", team1_score=21, location="Field House"
    )
    assert updated.location == "Field House"
    assert summary is None


def test_update_publishes_event(db, make_game):
    game = make_game()
    events = []
    bus = get_event_bus()
    bus.subscribe("game.updated", events.append)
    try:
        games.update_game(db, game.id, status="live")
    finally:
        bus.unsubscribe("game.updated", events.append)
    assert events[0].payload == {"game_id": game.id, "status": "live"}


# ---------------------------------------------------------------------------
# delete_game
# ---------------------------------------------------------------------------

def test_delete_refunds_pending_bets(db, make_user, make_game, session_for):
    user = make_user(balance="500")
    game = make_game()
    bet = place_bet(db, session_for(user), BetRequest(game.id, "moneyline", "team1", 100))
    game_id = game.id

    assert games.delete_game(db, game_id) == 1

    assert db.get(Game, game_id) is None
    row = db.get(Bet, bet.id)
    assert row.status == "push"
    assert row.game_id is None
    assert row.matchup == "Team A vs Team B"
    assert _balance(db, user.id) == Decimal("500")


def test_delete_keeps_settled_history(db, make_user, make_game, session_for):
    user = make_user(balance="500")
    game = make_game(moneyline_team1=150)
    bet = place_bet(db, session_for(user), BetRequest(game.id, "moneyline", "team1", 100))
    games.update_game(db, game.id, status="completed", team1_score=21, team2_score=14)

    assert games.delete_game(db, game.id) == 0

    row = db.get(Bet, bet.id)
    assert row.status == "won"
    assert row.game_id is None
    assert _balance(db, user.id) == Decimal("650")


def test_delete_missing_game(db):
    with pytest.raises(RecordNotFound):
        games.delete_game(db, 77)
