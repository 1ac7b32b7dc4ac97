"""Tests for companion.services.credits: grants, history and the replay check."""

import pytest

from companion.core.exceptions import NotFoundError, ValidationError
from companion.database.models import CreditTransactionType, User
from companion.services.credits import CreditLedger


class TestGrant:
    def test_initial_grant_recorded(self, ledger: CreditLedger, user) -> None:
        assert ledger.balance(user.id) == 100
        history = ledger.history(user.id)
        assert [(h["amount"], h["type"]) for h in history] == [(100, "INITIAL_GRANT")]

    def test_grant_adds_to_balance(self, ledger: CreditLedger, user) -> None:
        assert ledger.grant(user.id, 50, CreditTransactionType.MONTHLY_ALLOWANCE) == 150
        assert ledger.verify(user.id) is True

    @pytest.mark.parametrize("amount", [0, -5])
    def test_grant_must_be_positive(self, ledger: CreditLedger, user, amount: int) -> None:
        with pytest.raises(ValidationError):
            ledger.grant(user.id, amount)

    def test_chat_usage_cannot_be_granted(self, ledger: CreditLedger, user) -> None:
        with pytest.raises(ValidationError):
            ledger.grant(user.id, 5, CreditTransactionType.CHAT_USAGE)

    def test_unknown_user(self, ledger: CreditLedger) -> None:
        with pytest.raises(NotFoundError):
            ledger.grant("missing", 5)
        with pytest.raises(NotFoundError):
            ledger.balance("missing")


class TestDebit:
    def test_debit_inside_caller_transaction(self, ledger: CreditLedger, db, user) -> None:
        with db.get_session() as s:
            row = s.get(User, user.id)
            entry = ledger.debit(s, row, 3, message_id=None)
            assert entry.amount == -3
            assert entry.type == CreditTransactionType.CHAT_USAGE
        assert ledger.balance(user.id) == 97
        assert ledger.verify(user.id) is True

    def test_rolled_back_with_caller(self, ledger: CreditLedger, db, user) -> None:
        with pytest.raises(RuntimeError):
            with db.get_session() as s:
                ledger.debit(s, s.get(User, user.id), 3, message_id=None)
                raise RuntimeError("boom")
        assert ledger.balance(user.id) == 100
        assert ledger.ledger_total(user.id) == 100

    def test_negative_debit_rejected(self, ledger: CreditLedger, db, user) -> None:
        with pytest.raises(ValueError):
            with db.get_session() as s:
                ledger.debit(s, s.get(User, user.id), -1, message_id=None)


class TestVerify:
    def test_detects_drift(self, ledger: CreditLedger, db, user) -> None:
        with db.get_session() as s:
            s.get(User, user.id).credits = 999
        assert ledger.verify(user.id) is False
