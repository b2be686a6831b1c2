"""
Database models for GHSAbet
SQLAlchemy ORM (SQLite by default, PostgreSQL in production)
"""

from sqlalchemy import (
    create_engine,
    CheckConstraint,
    Column,
    Integer,
    String,
    Numeric,
    DateTime,
    Boolean,
    ForeignKey,
)
from sqlalchemy.orm import declarative_base, sessionmaker, relationship
from datetime import datetime
import logging
import os
from dotenv import load_dotenv

# Load .env before reading DATABASE_URL
load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./ghsabet.db")

# SQLite connections are shared with FastAPI's threadpool
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, pool_pre_ping=True, echo=False, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Money keeps eight fractional digits; rounding to cents is a display concern
Money = Numeric(20, 8)


class User(Base):
    """Bettor or administrator account"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(64), unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    api_token = Column(String, unique=True, index=True)  # Issued at login

    balance = Column(Money, nullable=False, default=0)
    is_admin = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)  # False = suspended

    created_at = Column(DateTime, default=datetime.utcnow)

    bets = relationship("Bet", back_populates="user")

    __table_args__ = (CheckConstraint("balance >= 0", name="ck_users_balance_non_negative"),)


class Game(Base):
    """Matchup with quoted odds and final scores"""

    __tablename__ = "games"

    id = Column(Integer, primary_key=True, index=True)
    sport = Column(String(32), nullable=False, index=True)
    team1 = Column(String, nullable=False)
    team2 = Column(String, nullable=False)
    game_date = Column(DateTime, nullable=False, index=True)
    location = Column(String, nullable=False)

    # Filled in while live / after the final whistle
    team1_score = Column(Integer)
    team2_score = Column(Integer)
    status = Column(String(16), nullable=False, default="upcoming", index=True)  # upcoming | live | completed

    # Quoted odds (American).  May move while upcoming/live; bets keep their own copy.
    moneyline_team1 = Column(Integer)
    moneyline_team2 = Column(Integer)
    spread = Column(Numeric(6, 2))  # team1 perspective, e.g. -3.5
    spread_odds = Column(Integer, default=-110)

    bets = relationship("Bet", back_populates="game")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def matchup(self) -> str:
        return f"{self.team1} vs {self.team2}"


class Bet(Base):
    """Placed wager with odds and payout locked in at placement"""

    __tablename__ = "bets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="SET NULL"), index=True)

    # What was bet
    bet_type = Column(String(16), nullable=False)  # "moneyline" | "spread"
    side = Column(String(8), nullable=False)  # "team1" | "team2"
    selection = Column(String, nullable=False)  # "Eagles" or "Tigers +3.5"
    matchup = Column(String)  # Snapshot, survives game deletion
    line = Column(Numeric(6, 2))  # Spread for the selected side; NULL for moneyline
    odds = Column(Numeric(10, 2), nullable=False)  # American odds at placement

    # Money
    amount = Column(Money, nullable=False)
    potential_payout = Column(Money, nullable=False)
    potential_profit = Column(Money, nullable=False)

    # Lifecycle
    status = Column(String(16), nullable=False, default="pending", index=True)  # pending | won | lost | push
    placed_at = Column(DateTime, default=datetime.utcnow, index=True)
    settled_at = Column(DateTime)

    user = relationship("User", back_populates="bets")
    game = relationship("Game", back_populates="bets")


# Create all tables
def init_db():
    """Initialize database tables"""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
