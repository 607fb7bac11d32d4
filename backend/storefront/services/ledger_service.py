# Overview: Service-layer operations for the revenue balance and its transaction ledger.

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import AdminBalance, BalanceTransaction, Order
from .concurrency import lock_for_update
"""
Balance Ledger Invariants (authoritative)

- balance_transactions is append-only: no updates, no deletes.
- Entries are written inside the same DB transaction as the balance change
  they record; callers own the commit.
- For every entry: balance_after = balance_before + signed(amount).
- Per user, entries chain: each balance_before equals the previous entry's
  balance_after (the first starts from 0).
- The newest entry's balance_after equals AdminBalance.current_balance_cents.
"""


def ensure_balance(user_id: int) -> AdminBalance:
    """
    Return the user's balance row, creating it at zero if missing.

    Creation happens in a savepoint so a concurrent creator's unique
    violation falls back to reading the winner's row. Never credits.
    """
    balance = lock_for_update(db.session.query(AdminBalance).filter_by(user_id=user_id)).first()
    if balance:
        return balance

    try:
        with db.session.begin_nested():
            balance = AdminBalance(
                user_id=user_id,
                current_balance_cents=0,
                total_earned_cents=0,
                total_withdrawn_cents=0,
            )
            db.session.add(balance)
            db.session.flush()
    except IntegrityError:
        balance = lock_for_update(db.session.query(AdminBalance).filter_by(user_id=user_id)).one()
    return balance


def record_sale(*, user_id: int, order: Order) -> BalanceTransaction:
    """
    Credit an order's total to the user's balance and append the ledger entry.

    Does not commit. A concurrent writer on the same balance row trips the
    version check at flush time (StaleDataError), which callers retry.
    """
    balance = ensure_balance(user_id)

    before = balance.current_balance_cents
    after = before + order.total_cents

    balance.current_balance_cents = after
    balance.total_earned_cents = balance.total_earned_cents + order.total_cents

    txn = BalanceTransaction(
        user_id=user_id,
        order_id=order.id,
        type="sale",
        amount_cents=order.total_cents,
        description=f"Sale from order {order.order_number}",
        balance_before_cents=before,
        balance_after_cents=after,
    )
    db.session.add(txn)
    db.session.flush()
    return txn


def get_balance(user_id: int) -> AdminBalance:
    """Read the balance, lazily creating the zero row on first access."""
    balance = ensure_balance(user_id)
    db.session.commit()
    return balance


def list_transactions(user_id: int | None = None, limit: int = 10) -> list[BalanceTransaction]:
    query = db.session.query(BalanceTransaction)
    if user_id is not None:
        query = query.filter(BalanceTransaction.user_id == user_id)
    return query.order_by(BalanceTransaction.id.desc()).limit(limit).all()


@dataclass
class ReconciliationResult:
    user_id: int
    current_balance_cents: int
    ledger_balance_cents: int
    transaction_count: int
    issues: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "current_balance_cents": self.current_balance_cents,
            "ledger_balance_cents": self.ledger_balance_cents,
            "transaction_count": self.transaction_count,
            "ok": self.ok,
            "issues": list(self.issues),
        }


def reconcile(user_id: int | None = None) -> list[ReconciliationResult]:
    """
    Walk each balance's ledger and report chain or total mismatches.

    Read-only; returns one result per AdminBalance row (or just user_id's).
    """
    query = db.session.query(AdminBalance)
    if user_id is not None:
        query = query.filter(AdminBalance.user_id == user_id)

    results = []
    for balance in query.order_by(AdminBalance.user_id.asc()).all():
        entries = (
            db.session.query(BalanceTransaction)
            .filter(BalanceTransaction.user_id == balance.user_id)
            .order_by(BalanceTransaction.id.asc())
            .all()
        )

        issues = []
        running = 0
        earned = 0
        for entry in entries:
            if entry.balance_before_cents != running:
                issues.append(
                    f"transaction {entry.id}: balance_before {entry.balance_before_cents} != previous balance_after {running}"
                )
            expected_after = entry.balance_before_cents + entry.signed_amount_cents
            if entry.balance_after_cents != expected_after:
                issues.append(
                    f"transaction {entry.id}: balance_after {entry.balance_after_cents} != {expected_after}"
                )
            if entry.type == "sale":
                earned += entry.amount_cents
            running = entry.balance_after_cents

        if running != balance.current_balance_cents:
            issues.append(f"ledger balance {running} != current balance {balance.current_balance_cents}")
        if earned != balance.total_earned_cents:
            issues.append(f"sum of sales {earned} != total earned {balance.total_earned_cents}")

        results.append(ReconciliationResult(
            user_id=balance.user_id,
            current_balance_cents=balance.current_balance_cents,
            ledger_balance_cents=running,
            transaction_count=len(entries),
            issues=issues,
        ))
    return results
