import logging
from datetime import datetime

from sqlalchemy.orm import Session

from . import models


logger = logging.getLogger("rgs_server.ledger")


class InsufficientBalanceError(Exception):
    def __init__(self, balance: int, amount: int):
        super().__init__(f"Balance {balance} cannot cover {amount}.")
        self.balance = balance
        self.amount = amount


class BalanceLedger:
    """The player's funds in integer minor units.

    ``debit`` and ``credit`` are the only writers. Callers serialize access;
    the ledger does no locking of its own. When a SQLAlchemy session is passed,
    each mutation also adds a ``Transaction`` row (the caller commits).
    """

    def __init__(self, starting_balance: int, currency: str = "USD", allow_negative: bool = True):
        self._balance = int(starting_balance)
        self.currency = currency
        self.allow_negative = allow_negative

    def read(self) -> int:
        return self._balance

    def debit(
        self,
        amount: int,
        db: Session | None = None,
        round_id: int | None = None,
        description: str = "bet",
    ) -> int:
        amount = _check_amount(amount)
        if not self.allow_negative and self._balance - amount < 0:
            raise InsufficientBalanceError(self._balance, amount)
        return self._apply(-amount, "debit", db, round_id, description)

    def credit(
        self,
        amount: int,
        db: Session | None = None,
        round_id: int | None = None,
        description: str = "payout",
    ) -> int:
        amount = _check_amount(amount)
        return self._apply(amount, "credit", db, round_id, description)

    def _apply(self, delta: int, kind: str, db: Session | None, round_id: int | None, description: str) -> int:
        before = self._balance
        self._balance += delta
        logger.debug("%s %d: %d -> %d (round %s)", kind, abs(delta), before, self._balance, round_id)
        if db is not None:
            db.add(
                models.Transaction(
                    type=kind,
                    round_id=round_id,
                    amount=delta,
                    before_balance=before,
                    after_balance=self._balance,
                    currency=self.currency,
                    description=description,
                    created_at=datetime.utcnow(),
                )
            )
        return self._balance


def _check_amount(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"Amount must be an integer number of minor units, got {amount!r}.")
    if amount < 0:
        raise ValueError(f"Amount must be non-negative, got {amount}.")
    return amount
