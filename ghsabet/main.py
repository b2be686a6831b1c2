"""
FastAPI application for GHSAbet
Includes REST API, scheduled settlement sweep, and activity feed
"""

from fastapi import FastAPI, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from contextlib import asynccontextmanager
from typing import List, Optional
import logging
import os

from dotenv import load_dotenv

from ghsabet.auth import get_optional_session, verify_admin_api_key, verify_api_key
from ghsabet.core.errors import (
    AccountError,
    BetRejected,
    CatalogError,
    RecordNotFound,
    SettlementError,
)
from ghsabet.core.odds_math import american_to_decimal, compute_payout, format_odds, implied_prob
from ghsabet.models import get_db, init_db
from ghsabet.schemas import (
    ActivityItem,
    BalanceUpdate,
    BetCreate,
    BetPlacedResponse,
    BetResponse,
    GameCreate,
    GameDeleteResponse,
    GameResponse,
    GameUpdate,
    GameUpdateResponse,
    LoginRequest,
    LoginResponse,
    OverviewResponse,
    QuoteRequest,
    QuoteResponse,
    SettlementSummary,
    StatusUpdate,
    UserCreate,
    UserRecordResponse,
    UserResponse,
)
from ghsabet.services import accounts, games
from ghsabet.services.accounts import BettorSession
from ghsabet.services.bet_tracker import settle_game, update_completed_games
from ghsabet.services.betting import BetRequest, list_bets, place_bet
from ghsabet.services.events import ActivityFeed, DomainEvent, WILDCARD, get_event_bus
from ghsabet.services.stats import admin_overview, user_record

load_dotenv()

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Scheduler instance
scheduler = BackgroundScheduler()

# Recent state changes for the admin dashboard
activity_feed = ActivityFeed(maxlen=int(os.getenv("ACTIVITY_FEED_SIZE", "50")))


def _log_event(event: DomainEvent) -> None:
    logger.debug("event %s %s", event.name, event.payload)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    logger.info("Starting GHSAbet")
    init_db()

    bus = get_event_bus()
    bus.subscribe(WILDCARD, activity_feed)
    bus.subscribe(WILDCARD, _log_event)

    scheduler_enabled = os.getenv("SCHEDULER_ENABLED", "true").lower() == "true"
    if scheduler_enabled:
        sweep_minutes = int(os.getenv("SETTLEMENT_SWEEP_MINUTES", "10"))
        scheduler.add_job(
            _settle_outcomes_job,
            IntervalTrigger(minutes=sweep_minutes),
            id="settle_outcomes",
            name="Settle Completed Games",
            replace_existing=True,
        )
        scheduler.start()
        logger.info("Scheduler started: settlement sweep every %dmin", sweep_minutes)
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")

    yield

    # Shutdown
    logger.info("Shutting down GHSAbet")
    if scheduler.running:
        scheduler.shutdown()
    bus.unsubscribe(WILDCARD, activity_feed)
    bus.unsubscribe(WILDCARD, _log_event)


app = FastAPI(
    title="GHSAbet",
    description="High-school sports betting: games, bets, settlement",
    version="1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# SCHEDULED JOB
# ============================================================================

def _settle_outcomes_job():
    """Settle pending bets on completed games."""
    try:
        results = update_completed_games()
        logger.info("Settlement sweep: %s", results)
    except Exception as exc:
        logger.error("Settlement sweep job failed: %s", exc, exc_info=True)


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Health check"""
    return {
        "status": "online",
        "service": "GHSAbet",
        "version": app.version,
    }


@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """Health check endpoint"""
    health = {"status": "healthy", "database": "connected", "scheduler": "running"}

    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Health check database error: %s", e)
        health["status"] = "degraded"
        health["database"] = f"error: {e}"

    if not scheduler.running:
        health["status"] = "degraded"
        health["scheduler"] = "stopped"

    return health


@app.post("/api/auth/login", response_model=LoginResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = accounts.authenticate(db, payload.username, payload.password)
    return {"token": user.api_token, "user": user}


@app.post("/api/auth/logout")
def logout(
    session: BettorSession = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Revoke the caller's API key."""
    accounts.logout(db, session)
    return {"message": "Logged out"}


@app.get("/api/games", response_model=List[GameResponse])
async def get_games(
    sport: str = Query(default="all", description="all | football | basketball | ..."),
    status: Optional[str] = Query(default=None, description="upcoming | live | completed"),
    db: Session = Depends(get_db),
):
    return games.list_games(db, sport=sport, status=status)


@app.get("/api/games/{game_id}", response_model=GameResponse)
async def get_game(game_id: int, db: Session = Depends(get_db)):
    return games.get_game(db, game_id)


@app.post("/api/quote", response_model=QuoteResponse)
async def quote(payload: QuoteRequest):
    """Payout preview while the bettor types a stake."""
    q = compute_payout(payload.amount, payload.odds)
    return {
        "stake": q.stake,
        "odds": format_odds(q.odds) if q.odds is not None else None,
        "payout": q.payout,
        "profit": q.profit,
        "decimal_odds": round(american_to_decimal(q.odds), 4) if q.odds is not None else None,
        "implied_prob": round(implied_prob(q.odds), 4) if q.odds is not None else None,
        "valid": q.is_valid,
    }


# ============================================================================
# AUTHENTICATED ENDPOINTS - BETTOR
# ============================================================================

@app.get("/api/me", response_model=UserResponse)
async def me(session: BettorSession = Depends(verify_api_key), db: Session = Depends(get_db)):
    return accounts.get_user(db, session.user_id)


@app.post("/api/bets", response_model=BetPlacedResponse)
def create_bet(
    payload: BetCreate,
    session: Optional[BettorSession] = Depends(get_optional_session),
    db: Session = Depends(get_db),
):
    """Place a bet.  The stake is debited immediately."""
    bet = place_bet(
        db,
        session,
        BetRequest(
            game_id=payload.game_id,
            bet_type=payload.bet_type,
            side=payload.side,
            amount=payload.amount,
            odds=payload.odds,
        ),
    )
    user = accounts.get_user(db, bet.user_id)
    return {"bet": bet, "balance": user.balance}


@app.get("/api/bets", response_model=List[BetResponse])
async def get_my_bets(
    status: str = Query(default="all", description="all | pending | won | lost | push"),
    session: BettorSession = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    return list_bets(db, session.user_id, status=status)


@app.get("/api/bets/summary", response_model=UserRecordResponse)
async def get_my_record(
    session: BettorSession = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    return user_record(db, session.user_id)


# ============================================================================
# ADMIN ENDPOINTS - GAMES
# ============================================================================

@app.post("/api/games", response_model=GameResponse)
async def create_game(
    payload: GameCreate,
    session: BettorSession = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    logger.info("Game created by %s", session.username)
    return games.create_game(db, **payload.model_dump())


@app.patch("/api/games/{game_id}", response_model=GameUpdateResponse)
def update_game(
    game_id: int,
    payload: GameUpdate,
    session: BettorSession = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    """Edit a game.  Marking it completed settles its pending bets."""
    game, settlement = games.update_game(db, game_id, **payload.model_dump(exclude_unset=True))
    return {"game": game, "settlement": settlement}


@app.delete("/api/games/{game_id}", response_model=GameDeleteResponse)
def delete_game(
    game_id: int,
    session: BettorSession = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    refunded = games.delete_game(db, game_id)
    return {"message": "Game deleted", "game_id": game_id, "refunded": refunded}


@app.post("/api/games/{game_id}/settle", response_model=SettlementSummary)
def settle_game_now(
    game_id: int,
    session: BettorSession = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    logger.info("Manual settlement of game %d triggered by %s", game_id, session.username)
    return settle_game(db, game_id)


# ============================================================================
# ADMIN ENDPOINTS - USERS & STATS
# ============================================================================

@app.get("/api/users", response_model=List[UserResponse])
async def get_users(
    session: BettorSession = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    return accounts.list_users(db)


@app.post("/api/users", response_model=UserResponse)
async def create_user(
    payload: UserCreate,
    session: BettorSession = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    return accounts.create_user(
        db,
        payload.username,
        payload.password,
        balance=payload.balance,
        is_admin=payload.is_admin,
    )


@app.patch("/api/users/{user_id}/balance", response_model=UserResponse)
async def update_balance(
    user_id: int,
    payload: BalanceUpdate,
    session: BettorSession = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    logger.info("Balance override for user %d by %s", user_id, session.username)
    return accounts.set_balance(db, user_id, payload.balance)


@app.patch("/api/users/{user_id}/status", response_model=UserResponse)
async def update_status(
    user_id: int,
    payload: StatusUpdate,
    session: BettorSession = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    return accounts.set_active(db, user_id, payload.is_active)


@app.get("/api/users/{user_id}/record", response_model=UserRecordResponse)
async def get_user_record(
    user_id: int,
    session: BettorSession = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    return user_record(db, user_id)


@app.get("/api/stats", response_model=OverviewResponse)
async def get_stats(
    session: BettorSession = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    return admin_overview(db)


@app.get("/api/activity", response_model=List[ActivityItem])
async def get_activity(
    limit: int = Query(default=20, ge=1, le=100),
    session: BettorSession = Depends(verify_admin_api_key),
):
    """Recent state changes, newest first."""
    return [e.to_dict() for e in activity_feed.recent(limit)]


# ============================================================================
# ADMIN ENDPOINTS - JOBS
# ============================================================================

@app.post("/admin/force-settle")
def force_settle(session: BettorSession = Depends(verify_admin_api_key)):
    """Manually trigger the settlement sweep (admin only)."""
    logger.info("Manual settlement sweep triggered by %s", session.username)
    return update_completed_games()


@app.get("/admin/scheduler/status")
async def get_scheduler_status(session: BettorSession = Depends(verify_admin_api_key)):
    """Get scheduler job status"""
    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
        })

    return {
        "running": scheduler.running,
        "jobs": jobs,
    }


# ============================================================================
# ERROR HANDLING
# ============================================================================

_REJECTION_STATUS = {
    "InvalidStake": 400,
    "InvalidOdds": 400,
    "Unauthenticated": 401,
    "GameNotBettable": 409,
    "InsufficientBalance": 409,
}


@app.exception_handler(BetRejected)
async def bet_rejected_handler(request: Request, exc: BetRejected):
    return JSONResponse(
        status_code=_REJECTION_STATUS.get(exc.kind, 400),
        content=exc.to_dict(),
    )


@app.exception_handler(SettlementError)
async def settlement_error_handler(request: Request, exc: SettlementError):
    return JSONResponse(status_code=409, content={"detail": str(exc), "kind": exc.kind})


@app.exception_handler(AccountError)
@app.exception_handler(CatalogError)
async def validation_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc), "kind": exc.kind})


@app.exception_handler(RecordNotFound)
async def not_found_handler(request: Request, exc: RecordNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc), "kind": exc.kind})


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
