"""Round lifecycle: bet, settle, close.

A round is settled exactly once. Non-bonus outcomes are credited when the bet
is placed; bonus outcomes (books with a ``freeSpinTrigger`` event) stay
``active`` and are credited by ``close_round``. All mutations run under one
lock so concurrent requests cannot interleave a debit with another round's
credit. ``lock`` is re-entrant; callers that persist audit rows hold it until
their commit returns.
"""
import copy
import logging
import random
import threading
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from .catalogue import OutcomeCatalogue, pick_random_book
from .config import DEFAULT_BET_LEVEL
from .ledger import BalanceLedger


logger = logging.getLogger("rgs_server.rounds")


class OpenRoundPolicy(str, Enum):
    """What a new bet does to a bonus round that was never closed."""

    DISCARD = "discard"
    REJECT = "reject"
    SETTLE = "settle"


class RoundInProgressError(Exception):
    def __init__(self, round_id: int):
        super().__init__(f"Round {round_id} is still active; close it before placing a new bet.")
        self.round_id = round_id


def scale_payout(amount: int, multiplier: float) -> int:
    """``amount * multiplier`` rounded half-up to a whole minor unit."""
    value = Decimal(int(amount)) * Decimal(str(multiplier))
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


@dataclass
class Round:
    round_id: int
    book_id: int
    amount: int
    payout: int
    payout_multiplier: float
    active: bool
    state: List[dict]
    mode: str
    event: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "roundID": self.round_id,
            "amount": self.amount,
            "payout": self.payout,
            "payoutMultiplier": self.payout_multiplier,
            "active": self.active,
            "state": copy.deepcopy(self.state),
            "mode": self.mode,
            "event": self.event,
        }


class RoundController:
    def __init__(
        self,
        catalogue: OutcomeCatalogue,
        ledger: BalanceLedger,
        open_round_policy: OpenRoundPolicy | str = OpenRoundPolicy.DISCARD,
        rng: random.Random | None = None,
        default_bet: int = DEFAULT_BET_LEVEL,
    ):
        self.catalogue = catalogue
        self.ledger = ledger
        self.open_round_policy = OpenRoundPolicy(open_round_policy)
        self.rng = rng
        self.default_bet = default_bet
        self.lock = threading.RLock()
        self._round: Round | None = None
        self._next_round_id = 1

    @property
    def current_round(self) -> Round | None:
        with self.lock:
            return _copy_round(self._round)

    def balance(self) -> int:
        return self.ledger.read()

    def authenticate(self, db: Session | None = None) -> int:
        """Reset to no round and report the balance.

        An unclosed bonus round is settled first under the ``settle`` policy and
        dropped without payout otherwise.
        """
        with self.lock:
            if self._round is not None and self._round.active:
                if self.open_round_policy is OpenRoundPolicy.SETTLE:
                    self._settle(db)
                else:
                    logger.warning(
                        "authenticate discards unsettled round %s (payout %d)",
                        self._round.round_id,
                        self._round.payout,
                    )
            self._round = None
            return self.ledger.read()

    def bet(self, amount: int, mode: str = "BASE", db: Session | None = None) -> Tuple[Round, int]:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValueError(f"Bet amount must be a positive integer, got {amount!r}.")
        with self.lock:
            prior = self._round
            if prior is not None and prior.active:
                if self.open_round_policy is OpenRoundPolicy.REJECT:
                    raise RoundInProgressError(prior.round_id)
                if self.open_round_policy is OpenRoundPolicy.SETTLE:
                    self._settle(db)

            book = pick_random_book(self.catalogue, self.rng)
            payout = scale_payout(amount, book.payout_multiplier)
            is_bonus = book.is_bonus
            round_id = self._next_round_id

            self.ledger.debit(amount, db=db, round_id=round_id, description=f"bet:{mode}")
            self._next_round_id += 1
            if not is_bonus and payout > 0:
                self.ledger.credit(payout, db=db, round_id=round_id, description="payout")

            if self._round is not None and self._round.active:
                logger.warning(
                    "round %s replaced before close; payout %d not credited",
                    self._round.round_id,
                    self._round.payout,
                )
            self._round = Round(
                round_id=round_id,
                book_id=book.id,
                amount=amount,
                payout=payout,
                payout_multiplier=book.payout_multiplier,
                active=is_bonus and payout > 0,
                state=book.dump_events(),
                mode=mode,
            )
            logger.info(
                "round %d: book %d x%s bet %d payout %d %s",
                round_id,
                book.id,
                book.payout_multiplier,
                amount,
                payout,
                "deferred" if self._round.active else "settled",
            )
            return _copy_round(self._round), self.ledger.read()

    def close_round(self, db: Session | None = None) -> int:
        """Credit an active round's payout and clear it. Safe to repeat."""
        with self.lock:
            self._settle(db)
            return self.ledger.read()

    def record_event(self, event: str) -> str:
        with self.lock:
            if self._round is not None:
                self._round.event = event
            return event

    def replay(self) -> Round:
        """A random book shaped as round 1; the ledger is not touched."""
        book = pick_random_book(self.catalogue, self.rng)
        return Round(
            round_id=1,
            book_id=book.id,
            amount=self.default_bet,
            payout=scale_payout(self.default_bet, book.payout_multiplier),
            payout_multiplier=book.payout_multiplier,
            active=True,
            state=book.dump_events(),
            mode="BASE",
            event="0",
        )

    def _settle(self, db: Session | None) -> Round | None:
        current = self._round
        self._round = None
        if current is None:
            return None
        if current.active and current.payout > 0:
            self.ledger.credit(current.payout, db=db, round_id=current.round_id, description="end-round")
            logger.info("round %d: credited deferred payout %d", current.round_id, current.payout)
        return current


def _copy_round(value: Round | None) -> Round | None:
    if value is None:
        return None
    return Round(**copy.deepcopy(asdict(value)))
