"""
Account store: bettor/admin accounts, credentials and balances.

Authentication produces an explicit ``BettorSession`` that callers pass into
admission control; there is no process-wide "current user".
"""

import hashlib
import logging
import os
import secrets
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from ghsabet.core.errors import AccountError, RecordNotFound, Unauthenticated
from ghsabet.core.odds_math import is_ledger_amount, to_decimal
from ghsabet.models import User
from ghsabet.services.events import get_event_bus

logger = logging.getLogger(__name__)

DEFAULT_BALANCE = os.getenv("DEFAULT_BALANCE", "500.00")

_HASH_ALGORITHM = "pbkdf2_sha256"
_HASH_ITERATIONS = 240_000


@dataclass(frozen=True)
class BettorSession:
    """Authenticated caller context for one request."""

    user_id: int
    username: str
    is_admin: bool = False


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("utf-8"), _HASH_ITERATIONS
    )
    return f"{_HASH_ALGORITHM}${_HASH_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        algorithm, iterations, salt, expected = stored.split("$")
        rounds = int(iterations)
    except (AttributeError, ValueError):
        return False
    if algorithm != _HASH_ALGORITHM:
        return False
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("utf-8"), rounds
    )
    return secrets.compare_digest(digest.hex(), expected)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

def _parse_balance(balance) -> Decimal:
    amount = to_decimal(balance)
    if amount is None or amount < 0 or not is_ledger_amount(amount):
        raise AccountError("Please enter a valid balance amount.")
    return amount


def create_user(
    db: Session,
    username: str,
    password: str,
    balance=None,
    is_admin: bool = False,
) -> User:
    """Create an account.  Balance defaults to ``DEFAULT_BALANCE``."""
    username = (username or "").strip()
    if not username:
        raise AccountError("Please enter a username.")
    if not (password or "").strip():
        raise AccountError("Please enter a password.")
    amount = _parse_balance(DEFAULT_BALANCE if balance is None else balance)

    if db.query(User).filter(User.username == username).first():
        raise AccountError(f"Username {username!r} is already taken")

    user = User(
        username=username,
        password_hash=hash_password(password),
        balance=amount,
        is_admin=is_admin,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info("User created: %s (admin=%s) balance=%s", username, is_admin, amount)
    get_event_bus().publish("account.created", user_id=user.id, username=username)
    return user


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise RecordNotFound(f"User {user_id} not found")
    return user


def list_users(db: Session) -> List[User]:
    return db.query(User).order_by(User.username.asc()).all()


def authenticate(db: Session, username: str, password: str) -> User:
    """
    Check credentials and make sure the account holds an API token.

    Raises:
        Unauthenticated: unknown username, wrong password, or suspended account.
    """
    user = db.query(User).filter(User.username == (username or "").strip()).first()
    if user is None or not verify_password(password or "", user.password_hash):
        raise Unauthenticated("Invalid username or password")
    if not user.is_active:
        raise Unauthenticated("Account is suspended")

    if not user.api_token:
        user.api_token = secrets.token_urlsafe(32)
        db.commit()
        db.refresh(user)

    logger.info("Login: %s", user.username)
    return user


def resolve_session(db: Session, token: Optional[str]) -> BettorSession:
    """Map an API token to the caller's session context."""
    if not token:
        raise Unauthenticated("Please log in to continue.")
    user = db.query(User).filter(User.api_token == token).first()
    if user is None:
        raise Unauthenticated("Invalid API key")
    if not user.is_active:
        raise Unauthenticated("Account is suspended")
    return BettorSession(user_id=user.id, username=user.username, is_admin=bool(user.is_admin))


def set_balance(db: Session, user_id: int, balance) -> User:
    """Admin balance override."""
    amount = _parse_balance(balance)
    user = get_user(db, user_id)
    previous = user.balance
    user.balance = amount
    db.commit()
    db.refresh(user)

    logger.info("Balance for %s set %s -> %s", user.username, previous, amount)
    get_event_bus().publish("account.updated", user_id=user.id, balance=str(amount))
    return user


def set_active(db: Session, user_id: int, active: bool) -> User:
    """Suspend or reactivate an account.  Suspension also revokes its token."""
    user = get_user(db, user_id)
    user.is_active = bool(active)
    if not active:
        user.api_token = None
    db.commit()
    db.refresh(user)

    logger.info("User %s %s", user.username, "activated" if active else "suspended")
    get_event_bus().publish("account.updated", user_id=user.id, is_active=user.is_active)
    return user


def logout(db: Session, session: BettorSession) -> None:
    """Revoke the caller's API token.  The next login issues a fresh one."""
    user = get_user(db, session.user_id)
    user.api_token = None
    db.commit()

    logger.info("Logout: %s", user.username)
    get_event_bus().publish("account.updated", user_id=user.id, logged_out=True)
