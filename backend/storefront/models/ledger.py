from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

TRANSACTION_TYPES = ("sale", "withdrawal")


class AdminBalance(db.Model):
    """
    Running revenue balance for one staff account.

    WHY: Mutated only by sale finalization. version_id turns a concurrent
    read-modify-write into a StaleDataError instead of a lost update.
    """
    __tablename__ = "admin_balances"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True)

    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    total_earned_cents = db.Column(db.Integer, nullable=False, default=0)
    total_withdrawn_cents = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "current_balance_cents": self.current_balance_cents,
            "total_earned_cents": self.total_earned_cents,
            "total_withdrawn_cents": self.total_withdrawn_cents,
            "updated_at": to_utc_z(self.updated_at),
        }


class BalanceTransaction(db.Model):
    """
    Append-only balance ledger entry.

    balance_after_cents = balance_before_cents + signed amount, and the newest
    row per user matches AdminBalance.current_balance_cents.
    """
    __tablename__ = "balance_transactions"
    __table_args__ = (
        db.Index("ix_balance_transactions_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    type = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    balance_before_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order")

    @property
    def signed_amount_cents(self) -> int:
        return -self.amount_cents if self.type == "withdrawal" else self.amount_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "order_number": self.order.order_number if self.order else None,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "balance_before_cents": self.balance_before_cents,
            "balance_after_cents": self.balance_after_cents,
            "created_at": to_utc_z(self.created_at),
        }
