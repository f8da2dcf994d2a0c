import pytest

from rgs_server import models
from rgs_server.ledger import BalanceLedger, InsufficientBalanceError

from conftest import STARTING_BALANCE


def test_debit_and_credit(ledger):
    assert ledger.read() == STARTING_BALANCE
    assert ledger.debit(1_000_000) == STARTING_BALANCE - 1_000_000
    assert ledger.credit(1_700_000) == STARTING_BALANCE + 700_000
    assert ledger.read() == STARTING_BALANCE + 700_000


def test_zero_amounts_are_allowed(ledger):
    ledger.debit(0)
    ledger.credit(0)
    assert ledger.read() == STARTING_BALANCE


def test_balance_may_go_negative_by_default():
    ledger = BalanceLedger(500)
    ledger.debit(1_000)
    assert ledger.read() == -500


def test_strict_ledger_refuses_overdraft():
    ledger = BalanceLedger(500, allow_negative=False)
    with pytest.raises(InsufficientBalanceError) as info:
        ledger.debit(1_000)
    assert info.value.balance == 500
    assert info.value.amount == 1_000
    assert ledger.read() == 500
    ledger.debit(500)
    assert ledger.read() == 0


@pytest.mark.parametrize("amount", [-1, 1.5, "100", True, None])
def test_rejects_bad_amounts(ledger, amount):
    with pytest.raises(ValueError):
        ledger.debit(amount)
    with pytest.raises(ValueError):
        ledger.credit(amount)
    assert ledger.read() == STARTING_BALANCE


def test_currency_is_a_label_only():
    ledger = BalanceLedger(1_000, currency="EUR")
    ledger.credit(250)
    assert ledger.currency == "EUR"
    assert ledger.read() == 1_250


def test_mutations_are_recorded(db, ledger):
    ledger.debit(1_000_000, db=db, round_id=3, description="bet:BASE")
    ledger.credit(1_700_000, db=db, round_id=3)
    db.commit()

    rows = db.query(models.Transaction).order_by(models.Transaction.id).all()
    assert [(row.type, row.amount) for row in rows] == [("debit", -1_000_000), ("credit", 1_700_000)]
    assert rows[0].before_balance == STARTING_BALANCE
    assert rows[0].after_balance == STARTING_BALANCE - 1_000_000
    assert rows[1].after_balance == ledger.read()
    assert {row.round_id for row in rows} == {3}
    assert rows[0].description == "bet:BASE"
    assert rows[1].currency == "USD"


def test_no_rows_without_session(db, ledger):
    ledger.debit(10)
    assert db.query(models.Transaction).count() == 0
