"""
Credit Ledger - balance mutations with an audit trail.

Every change to users.credits is paired with a CreditTransaction row, so
the balance can always be re-derived by replaying the ledger.
"""
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from companion.core.exceptions import NotFoundError, ValidationError
from companion.core.logging_config import LoggerMixin
from companion.database.connection import DatabaseConnection
from companion.database.models import CreditTransaction, CreditTransactionType, User
from companion.database import repository


class CreditLedger(LoggerMixin):
    """
    Grants, debits and audits user credits.

    debit() never opens its own transaction: it is called from inside the
    conversation engine's atomic persistence step.
    """

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def debit(
        self,
        db_session: Session,
        user: User,
        amount: int,
        message_id: Optional[int],
        description: str = "Chat message",
    ) -> CreditTransaction:
        """
        Subtract credits inside the caller's transaction.

        Args:
            db_session: Open session of the enclosing transaction
            user: User row, ideally loaded FOR UPDATE
            amount: Positive number of credits to remove
            message_id: Assistant message the charge is for
            description: Ledger description

        Returns:
            The pending CreditTransaction
        """
        if amount < 0:
            raise ValueError("debit amount must be non-negative")
        user.credits -= amount
        entry = CreditTransaction(
            user_id=user.id,
            amount=-amount,
            type=CreditTransactionType.CHAT_USAGE,
            description=description,
            message_id=message_id,
        )
        db_session.add(entry)
        return entry

    def grant(
        self,
        user_id: str,
        amount: int,
        transaction_type: CreditTransactionType = CreditTransactionType.PURCHASE,
        description: Optional[str] = None,
    ) -> int:
        """
        Add credits in a transaction of their own.

        Returns:
            New balance
        """
        if amount <= 0:
            raise ValidationError("Grant amount must be positive", field="amount")
        if transaction_type == CreditTransactionType.CHAT_USAGE:
            raise ValidationError("Chat usage cannot be granted", field="type")

        with self.db.get_session() as db_session:
            user = repository.get_user(db_session, user_id, for_update=True)
            if user is None:
                raise NotFoundError("User not found", details=f"user_id={user_id}")
            user.credits += amount
            db_session.add(CreditTransaction(
                user_id=user_id,
                amount=amount,
                type=transaction_type,
                description=description or transaction_type.value.replace("_", " ").title(),
            ))
            balance = user.credits

        self.logger.info(f"Granted {amount} credits to {user_id} ({transaction_type.value})")
        return balance

    def balance(self, user_id: str) -> int:
        with self.db.get_session() as db_session:
            user = db_session.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found", details=f"user_id={user_id}")
            return user.credits

    def history(self, user_id: str, limit: int = 50) -> List[dict]:
        """Most recent ledger entries first."""
        with self.db.get_session() as db_session:
            stmt = (
                select(CreditTransaction)
                .where(CreditTransaction.user_id == user_id)
                .order_by(CreditTransaction.created_at.desc())
                .limit(limit)
            )
            return [entry.to_dict() for entry in db_session.execute(stmt).scalars()]

    def ledger_total(self, user_id: str) -> int:
        with self.db.get_session() as db_session:
            stmt = select(func.coalesce(func.sum(CreditTransaction.amount), 0)).where(
                CreditTransaction.user_id == user_id
            )
            return int(db_session.execute(stmt).scalar_one())

    def verify(self, user_id: str) -> bool:
        """Replay check: does the ledger sum equal the stored balance?"""
        total = self.ledger_total(user_id)
        balance = self.balance(user_id)
        if total != balance:
            self.logger.error(
                f"Credit drift for {user_id}: ledger={total}, balance={balance}"
            )
            return False
        return True
