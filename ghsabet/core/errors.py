"""Exception hierarchy for bet admission, settlement and admin operations.

``BetRejected`` subclasses carry a machine-readable ``kind`` alongside the
human-readable message so the API layer can report both.  None of these are
retried automatically; the caller corrects input and resubmits.
"""


class BetRejected(Exception):
    """Base class for a refused bet placement."""

    kind = "BetRejected"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "detail": self.message}


class InvalidStake(BetRejected):
    kind = "InvalidStake"


class InvalidOdds(BetRejected):
    kind = "InvalidOdds"


class InsufficientBalance(BetRejected):
    kind = "InsufficientBalance"


class Unauthenticated(BetRejected):
    kind = "Unauthenticated"


class GameNotBettable(BetRejected):
    kind = "GameNotBettable"


class SettlementError(Exception):
    """Settlement could not proceed (e.g. final scores missing)."""

    kind = "SettlementError"


class AccountError(ValueError):
    """Invalid account operation (duplicate username, negative balance...)."""

    kind = "AccountError"


class CatalogError(ValueError):
    """Invalid game definition or update."""

    kind = "CatalogError"


class RecordNotFound(LookupError):
    kind = "NotFound"
