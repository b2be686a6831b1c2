#!/usr/bin/env python3
"""
Database initialization script
Creates all tables, the admin account, and optionally demo data
"""

import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Load .env file
from dotenv import load_dotenv
load_dotenv()

from ghsabet.models import Base, engine, SessionLocal, User
from ghsabet.core.errors import AccountError
from ghsabet.services.accounts import create_user
from ghsabet.services.games import create_game
from datetime import datetime, timedelta
import logging
from sqlalchemy import text, inspect

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init_database(drop_existing: bool = False):
    """
    Initialize database tables

    Args:
        drop_existing: If True, drops all tables first (DANGER: data loss!)
    """
    logger.info("Initializing GHSAbet database...")

    if drop_existing:
        logger.warning("Dropping all existing tables!")
        response = input("Are you sure? This will delete all data. Type 'yes' to confirm: ")
        if response.lower() != 'yes':
            logger.info("Aborted.")
            return False

        Base.metadata.drop_all(bind=engine)
        logger.info("Existing tables dropped")

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")

    inspector = inspect(engine)
    logger.info("Tables: %s", ", ".join(inspector.get_table_names()))
    return True


def ensure_admin():
    """Create the admin account from ADMIN_USERNAME / ADMIN_PASSWORD if missing."""
    username = os.getenv("ADMIN_USERNAME", "admin")
    password = os.getenv("ADMIN_PASSWORD")
    if not password:
        logger.warning("ADMIN_PASSWORD not set; skipping admin account")
        return

    db = SessionLocal()
    try:
        if db.query(User).filter(User.username == username).first():
            logger.info("Admin %s already exists", username)
            return
        create_user(db, username, password, balance="0", is_admin=True)
        logger.info("Admin account %s created", username)
    finally:
        db.close()


def seed_demo_data():
    """Add a demo bettor and a few upcoming games for development"""
    logger.info("Seeding demo data...")

    db = SessionLocal()
    kickoff = datetime.utcnow().replace(minute=0, second=0, microsecond=0) + timedelta(days=2)

    try:
        try:
            create_user(db, "demo", "demo")
        except AccountError as e:
            logger.info("Demo user skipped: %s", e)

        create_game(
            db,
            sport="football",
            team1="Eagles",
            team2="Tigers",
            game_date=kickoff,
            location="Memorial Stadium",
            moneyline_team1=-150,
            moneyline_team2=130,
            spread=-3.5,
        )
        create_game(
            db,
            sport="basketball",
            team1="Wildcats",
            team2="Panthers",
            game_date=kickoff + timedelta(hours=2),
            location="North Gym",
            moneyline_team1=110,
            moneyline_team2=-130,
            spread=1.5,
        )
        create_game(
            db,
            sport="soccer",
            team1="Falcons",
            team2="Rams",
            game_date=kickoff + timedelta(days=1),
            location="Riverside Field",
            moneyline_team1=145,
            moneyline_team2=-165,
        )
        logger.info("Demo data seeded")

    except Exception as e:
        logger.error("Error seeding data: %s", e)
        db.rollback()

    finally:
        db.close()


def check_connection():
    """Test database connection"""
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        db.close()
        logger.info("Database connection successful")
        return True
    except Exception as e:
        logger.error("Database connection failed: %s", e)
        return False


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Initialize GHSAbet database")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables (DANGER!)")
    parser.add_argument("--seed", action="store_true", help="Seed demo user and games")
    parser.add_argument("--check", action="store_true", help="Only check connection")

    args = parser.parse_args()

    if args.check:
        check_connection()
    else:
        if check_connection():
            if init_database(drop_existing=args.drop):
                ensure_admin()
                if args.seed:
                    seed_demo_data()
                logger.info("Database initialization complete!")
        else:
            logger.error("Cannot initialize database - connection failed")
            sys.exit(1)
