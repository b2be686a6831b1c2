"""
Automated bet lifecycle management.

    settle_game(db, game_id)   - resolve every pending bet on a completed game
    refund_game(db, game_id)   - push every pending bet (game withdrawn)
    update_completed_games()   - scheduled sweep: settle anything still pending
                                 on completed games

Each bet is settled by a conditional UPDATE on ``status = 'pending'``; only
the caller that wins that update credits the balance, so re-running
settlement is a no-op.  Per-game locks keep concurrent triggers (admin call
and scheduled sweep) from interleaving.
"""

import logging
import threading
from datetime import datetime
from typing import Dict, List

from sqlalchemy import update
from sqlalchemy.orm import Session

from ghsabet.core.errors import RecordNotFound, SettlementError
from ghsabet.core.settlement import BetStatus, settle_bet, settlement_credit
from ghsabet.models import Bet, Game, SessionLocal, User
from ghsabet.services.events import get_event_bus

logger = logging.getLogger(__name__)

_game_locks: Dict[int, threading.Lock] = {}
_game_locks_guard = threading.Lock()


def _lock_for_game(game_id: int) -> threading.Lock:
    with _game_locks_guard:
        lock = _game_locks.get(game_id)
        if lock is None:
            lock = _game_locks[game_id] = threading.Lock()
        return lock


# ---------------------------------------------------------------------------
# Single-bet transition
# ---------------------------------------------------------------------------

def apply_settlement(db: Session, bet: Bet, status: BetStatus) -> bool:
    """
    Move ``bet`` from pending to ``status`` and credit the bettor.

    Returns False (and changes nothing) if the bet was already settled.
    The caller owns the transaction.
    """
    if status is BetStatus.PENDING:
        raise SettlementError("Cannot settle a bet to pending")

    claimed = db.execute(
        update(Bet)
        .where(Bet.id == bet.id, Bet.status == BetStatus.PENDING.value)
        .values(status=status.value, settled_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        return False

    credit = settlement_credit(bet, status)
    if credit > 0:
        db.execute(
            update(User)
            .where(User.id == bet.user_id)
            .values(balance=User.balance + credit)
            .execution_options(synchronize_session=False)
        )
    return True


def _summary(game_id: int, won: int, lost: int, pushes: int, errors: List[str]) -> Dict:
    return {
        "game_id": game_id,
        "bets_settled": won + lost,
        "won": won,
        "lost": lost,
        "pushes": pushes,
        "errors": errors,
        "timestamp": datetime.utcnow().isoformat(),
    }


# ---------------------------------------------------------------------------
# Per-game settlement
# ---------------------------------------------------------------------------

def settle_game(db: Session, game_id: int) -> Dict:
    """
    Settle all pending bets on a completed game.

    Raises:
        RecordNotFound: no such game.
        SettlementError: game not completed or final scores missing; no bet
            is touched.
    """
    settled: List[Bet] = []
    won = lost = pushes = 0
    errors: List[str] = []

    with _lock_for_game(game_id):
        game = db.get(Game, game_id)
        if game is None:
            raise RecordNotFound(f"Game {game_id} not found")
        if game.status != "completed":
            raise SettlementError(f"Game {game_id} is not completed (status={game.status})")
        if game.team1_score is None or game.team2_score is None:
            raise SettlementError(f"Game {game_id} has no final score recorded")

        pending = (
            db.query(Bet)
            .filter(Bet.game_id == game.id, Bet.status == BetStatus.PENDING.value)
            .order_by(Bet.id.asc())
            .all()
        )

        try:
            for bet in pending:
                try:
                    status = settle_bet(bet, game.team1_score, game.team2_score)
                except SettlementError as exc:
                    errors.append(f"Bet {bet.id} ({bet.selection}): {exc}")
                    logger.error("Cannot settle bet %d: %s", bet.id, exc)
                    continue

                if not apply_settlement(db, bet, status):
                    continue
                settled.append(bet)

                if status is BetStatus.PUSH:
                    pushes += 1
                    logger.info("PUSH: bet %d (%s) refunded %s", bet.id, bet.selection, bet.amount)
                elif status is BetStatus.WON:
                    won += 1
                    logger.info(
                        "WIN: bet %d (%s) | credited %s", bet.id, bet.selection, bet.potential_payout
                    )
                else:
                    lost += 1
                    logger.info("LOSS: bet %d (%s) | stake %s", bet.id, bet.selection, bet.amount)

            db.commit()
        except Exception:
            db.rollback()
            raise

    bus = get_event_bus()
    for bet in settled:
        db.refresh(bet)
        bus.publish(
            "bet.settled",
            bet_id=bet.id,
            user_id=bet.user_id,
            game_id=game_id,
            status=bet.status,
        )

    summary = _summary(game_id, won, lost, pushes, errors)
    logger.info("settle_game %d done: %s", game_id, summary)
    return summary


def refund_game(db: Session, game_id: int) -> int:
    """
    Push every pending bet on a game (stake refunded).

    Used when a game is withdrawn from the catalog.  Returns the number of
    bets refunded.  The caller owns the transaction.
    """
    refunded = 0
    with _lock_for_game(game_id):
        pending = (
            db.query(Bet)
            .filter(Bet.game_id == game_id, Bet.status == BetStatus.PENDING.value)
            .all()
        )
        for bet in pending:
            if apply_settlement(db, bet, BetStatus.PUSH):
                refunded += 1
                logger.info("REFUND: bet %d (%s) %s", bet.id, bet.selection, bet.amount)
    return refunded


# ---------------------------------------------------------------------------
# Scheduled sweep
# ---------------------------------------------------------------------------

def update_completed_games() -> Dict:
    """
    Settle pending bets on every completed game.

    Called by the scheduler; failures on one game are recorded and the
    sweep moves on so the operator can retry from the admin endpoint.
    """
    logger.info("Starting update_completed_games")
    db = SessionLocal()

    games_checked = 0
    bets_settled = 0
    pushes = 0
    errors: List[str] = []

    try:
        game_ids = [
            gid
            for (gid,) in (
                db.query(Game.id)
                .join(Bet, Bet.game_id == Game.id)
                .filter(Game.status == "completed", Bet.status == BetStatus.PENDING.value)
                .distinct()
                .all()
            )
        ]

        for game_id in game_ids:
            games_checked += 1
            try:
                result = settle_game(db, game_id)
            except (SettlementError, RecordNotFound) as exc:
                errors.append(f"Game {game_id}: {exc}")
                logger.error("Settlement blocked for game %d: %s", game_id, exc)
                continue
            bets_settled += result["bets_settled"]
            pushes += result["pushes"]
            errors.extend(result["errors"])

    except Exception as exc:
        logger.error("Fatal error in update_completed_games: %s", exc, exc_info=True)
        db.rollback()
        errors.append(f"Fatal: {exc}")
    finally:
        db.close()

    summary = {
        "games_checked": games_checked,
        "bets_settled": bets_settled,
        "pushes": pushes,
        "errors": errors,
        "timestamp": datetime.utcnow().isoformat(),
    }
    logger.info("update_completed_games done: %s", summary)
    return summary
