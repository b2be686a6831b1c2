"""Tests for services/bet_tracker.py: per-game settlement, refunds and the sweep."""

import threading
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ghsabet.core.errors import RecordNotFound, SettlementError
from ghsabet.core.settlement import BetStatus
from ghsabet.models import Base, Bet, Game, User
from ghsabet.services import accounts, bet_tracker, games
from ghsabet.services.bet_tracker import apply_settlement, refund_game, settle_game
from ghsabet.services.betting import BetRequest, place_bet
from ghsabet.services.events import get_event_bus


def _balance(db, user_id):
    db.expire_all()
    return db.get(User, user_id).balance


def _finish(db, game_id, team1_score, team2_score):
    """Mark a game final without going through the catalog (no auto-settle)."""
    game = db.get(Game, game_id)
    game.status = "completed"
    game.team1_score = team1_score
    game.team2_score = team2_score
    db.commit()


@pytest.fixture
def settled_events():
    events = []
    bus = get_event_bus()
    bus.subscribe("bet.settled", events.append)
    yield events
    bus.unsubscribe("bet.settled", events.append)


# ---------------------------------------------------------------------------
# settle_game
# ---------------------------------------------------------------------------

def test_moneyline_winner_credited(db, make_user, make_game, session_for, settled_events):
    user = make_user(balance="500")
    game = make_game(moneyline_team1=150)
    bet = place_bet(db, session_for(user), BetRequest(game.id, "moneyline", "team1", 100))
    assert _balance(db, user.id) == Decimal("400")

    _finish(db, game.id, 21, 14)
    summary = settle_game(db, game.id)

    assert summary["won"] == 1
    assert summary["bets_settled"] == 1
    assert summary["errors"] == []
    assert _balance(db, user.id) == Decimal("650")
    assert db.get(Bet, bet.id).status == "won"
    assert db.get(Bet, bet.id).settled_at is not None
    assert [e.payload["status"] for e in settled_events] == ["won"]


def test_spread_underdog_settles_won(db, make_user, make_game, session_for):
    user = make_user(balance="500")
    game = make_game(spread=-3.5, spread_odds=-110)
    bet = place_bet(db, session_for(user), BetRequest(game.id, "spread", "team2", 110))

    # adjusted 14 + 3.5 = 17.5 vs 10
    _finish(db, game.id, 10, 14)
    settle_game(db, game.id)

    assert db.get(Bet, bet.id).status == "won"
    assert _balance(db, user.id) == Decimal("600")


def test_loser_gets_nothing_and_tie_refunds(db, make_user, make_game, session_for):
    loser = make_user(balance="100")
    pusher = make_user(balance="100")
    game = make_game(spread=-3, spread_odds=-110)
    place_bet(db, session_for(loser), BetRequest(game.id, "moneyline", "team2", 50))
    place_bet(db, session_for(pusher), BetRequest(game.id, "spread", "team1", 50))

    # Team A wins by exactly 3
    _finish(db, game.id, 20, 17)
    summary = settle_game(db, game.id)

    assert summary["lost"] == 1
    assert summary["pushes"] == 1
    assert _balance(db, loser.id) == Decimal("50")
    assert _balance(db, pusher.id) == Decimal("100")


def test_settlement_is_idempotent(db, make_user, make_game, session_for, settled_events):
    user = make_user(balance="500")
    game = make_game(moneyline_team1=150)
    place_bet(db, session_for(user), BetRequest(game.id, "moneyline", "team1", 100))
    _finish(db, game.id, 21, 14)

    settle_game(db, game.id)
    second = settle_game(db, game.id)

    assert second["bets_settled"] == 0
    assert second["pushes"] == 0
    assert _balance(db, user.id) == Decimal("650")
    assert len(settled_events) == 1


def test_apply_settlement_only_once(db, make_user, make_game, session_for):
    user = make_user(balance="500")
    game = make_game()
    bet = place_bet(db, session_for(user), BetRequest(game.id, "moneyline", "team1", 100))

    assert apply_settlement(db, bet, BetStatus.PUSH) is True
    assert apply_settlement(db, bet, BetStatus.WON) is False
    db.commit()

    assert db.get(Bet, bet.id).status == "push"
    assert _balance(db, user.id) == Decimal("500")


def test_apply_settlement_rejects_pending(db, make_user, make_game, session_for):
    user = make_user()
    game = make_game()
    bet = place_bet(db, session_for(user), BetRequest(game.id, "moneyline", "team1", 10))
    with pytest.raises(SettlementError):
        apply_settlement(db, bet, BetStatus.PENDING)


def test_missing_scores_block_settlement(db, make_user, make_game, session_for):
    user = make_user(balance="500")
    game = make_game()
    bet = place_bet(db, session_for(user), BetRequest(game.id, "moneyline", "team1", 100))
    _finish(db, game.id, None, None)

    with pytest.raises(SettlementError):
        settle_game(db, game.id)

    assert db.get(Bet, bet.id).status == "pending"
    assert _balance(db, user.id) == Decimal("400")


def test_game_not_completed_blocks_settlement(db, make_game):
    game = make_game()
    with pytest.raises(SettlementError):
        settle_game(db, game.id)


def test_unknown_game(db):
    with pytest.raises(RecordNotFound):
        settle_game(db, 12345)


def test_unresolvable_bet_stays_pending(db, make_user, make_game, session_for):
    user = make_user(balance="500")
    game = make_game()
    good = place_bet(db, session_for(user), BetRequest(game.id, "moneyline", "team1", 100))
    bad = place_bet(db, session_for(user), BetRequest(game.id, "spread", "team1", 100))
    # Corrupt the stored line and selection text
    row = db.get(Bet, bad.id)
    row.line = None
    row.selection = "Team A"
    db.commit()

    _finish(db, game.id, 21, 14)
    summary = settle_game(db, game.id)

    assert summary["bets_settled"] == 1
    assert len(summary["errors"]) == 1
    assert db.get(Bet, good.id).status == "won"
    assert db.get(Bet, bad.id).status == "pending"


# ---------------------------------------------------------------------------
# refund_game
# ---------------------------------------------------------------------------

def test_refund_game_pushes_pending(db, make_user, make_game, session_for):
    user = make_user(balance="500")
    game = make_game()
    place_bet(db, session_for(user), BetRequest(game.id, "moneyline", "team1", 100))
    place_bet(db, session_for(user), BetRequest(game.id, "moneyline", "team2", 50))

    assert refund_game(db, game.id) == 2
    db.commit()

    assert _balance(db, user.id) == Decimal("500")
    assert {b.status for b in db.query(Bet).all()} == {"push"}


# ---------------------------------------------------------------------------
# update_completed_games (scheduled sweep)
# ---------------------------------------------------------------------------

def test_sweep_settles_completed_games(db, session_factory, make_user, make_game, session_for, monkeypatch):
    monkeypatch.setattr(bet_tracker, "SessionLocal", session_factory)

    user = make_user(balance="500")
    done = make_game(moneyline_team1=150)
    open_game = make_game()
    place_bet(db, session_for(user), BetRequest(done.id, "moneyline", "team1", 100))
    place_bet(db, session_for(user), BetRequest(open_game.id, "moneyline", "team1", 100))
    _finish(db, done.id, 21, 14)

    summary = bet_tracker.update_completed_games()

    assert summary["games_checked"] == 1
    assert summary["bets_settled"] == 1
    assert summary["errors"] == []
    assert "timestamp" in summary
    assert _balance(db, user.id) == Decimal("550")


def test_sweep_records_blocked_games(db, session_factory, make_user, make_game, session_for, monkeypatch):
    monkeypatch.setattr(bet_tracker, "SessionLocal", session_factory)

    user = make_user(balance="500")
    game = make_game()
    place_bet(db, session_for(user), BetRequest(game.id, "moneyline", "team1", 100))
    _finish(db, game.id, None, 3)

    summary = bet_tracker.update_completed_games()

    assert summary["games_checked"] == 1
    assert summary["bets_settled"] == 0
    assert len(summary["errors"]) == 1


def test_sweep_with_nothing_to_do(session_factory, monkeypatch):
    monkeypatch.setattr(bet_tracker, "SessionLocal", session_factory)
    summary = bet_tracker.update_completed_games()
    assert summary["games_checked"] == 0
    assert summary["bets_settled"] == 0


# ---------------------------------------------------------------------------
# Concurrent settlement
# ---------------------------------------------------------------------------

def test_concurrent_settlement_credits_once(tmp_path):
    """Four settlers race on one game: each of the five wins is paid exactly once."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'settle.db'}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = Session()
    user = accounts.create_user(setup, "settler", "secret", balance="500")
    game = games.create_game(
        setup,
        sport="football",
        team1="Team A",
        team2="Team B",
        game_date=datetime(2026, 10, 24, 18, 30),
        location="North Stadium",
        moneyline_team1=150,
        moneyline_team2=-170,
    )
    session = accounts.BettorSession(user_id=user.id, username=user.username)
    for _ in range(5):
        place_bet(setup, session, BetRequest(game.id, "moneyline", "team1", 100))
    _finish(setup, game.id, 21, 14)
    user_id, game_id = user.id, game.id
    setup.close()

    barrier = threading.Barrier(4)
    summaries = []
    failures = []

    def settle():
        db = Session()
        try:
            barrier.wait()
            summaries.append(settle_game(db, game_id))
        except Exception as exc:
            failures.append(exc)
        finally:
            db.close()

    threads = [threading.Thread(target=settle) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert failures == []
    assert len(summaries) == 4
    assert sum(s["bets_settled"] for s in summaries) == 5
    assert sum(s["won"] for s in summaries) == 5

    check = Session()
    try:
        assert check.get(User, user_id).balance == Decimal("1250")
        statuses = [b.status for b in check.query(Bet).filter(Bet.game_id == game_id)]
        assert statuses == [BetStatus.WON.value] * 5
    finally:
        check.close()
    engine.dispose()
