"""
Balance ledger tests.

Verifies:
- Lazy balance creation starts at zero and never credits
- Every entry satisfies after = before + amount and chains from the previous one
- Reconciliation flags a balance that drifted from its ledger
"""

from storefront.extensions import db
from storefront.models import AdminBalance, BalanceTransaction, Order, OrderStatus
from storefront.services import ledger_service


def _confirmed_order(total_cents: int, number: str) -> Order:
    order = Order(
        order_number=number,
        customer_name="Walk-in",
        customer_email="walkin@example.com",
        customer_phone="0000",
        total_cents=total_cents,
        status=OrderStatus.CONFIRMED.value,
    )
    db.session.add(order)
    db.session.commit()
    return order


class TestLazyBalance:

    def test_first_read_creates_zero_balance(self, admin_user):
        balance = ledger_service.get_balance(admin_user.id)
        assert balance.current_balance_cents == 0
        assert balance.total_earned_cents == 0
        assert db.session.query(BalanceTransaction).count() == 0

    def test_repeated_reads_reuse_row(self, admin_user):
        first = ledger_service.get_balance(admin_user.id)
        second = ledger_service.get_balance(admin_user.id)
        assert first.id == second.id
        assert db.session.query(AdminBalance).count() == 1

    def test_first_sale_credits_exactly_once(self, admin_user):
        order = _confirmed_order(12345, "ATL-000001-001")
        txn = ledger_service.record_sale(user_id=admin_user.id, order=order)
        db.session.commit()

        balance = db.session.query(AdminBalance).filter_by(user_id=admin_user.id).one()
        assert balance.current_balance_cents == 12345
        assert txn.balance_before_cents == 0
        assert txn.balance_after_cents == 12345


class TestReconcile:

    def test_clean_ledger_reconciles(self, admin_user):
        for index, total in enumerate((1000, 2500, 400)):
            order = _confirmed_order(total, f"ATL-00000{index}-00{index}")
            ledger_service.record_sale(user_id=admin_user.id, order=order)
            db.session.commit()

        [result] = ledger_service.reconcile(admin_user.id)
        assert result.ok
        assert result.ledger_balance_cents == 3900
        assert result.transaction_count == 3

    def test_drifted_balance_is_reported(self, admin_user):
        order = _confirmed_order(1000, "ATL-000009-009")
        ledger_service.record_sale(user_id=admin_user.id, order=order)
        db.session.commit()

        balance = db.session.query(AdminBalance).filter_by(user_id=admin_user.id).one()
        balance.current_balance_cents = 999
        db.session.commit()

        [result] = ledger_service.reconcile(admin_user.id)
        assert not result.ok
        assert any("current balance 999" in issue for issue in result.issues)

    def test_cli_reports_failures(self, app, admin_user):
        order = _confirmed_order(1000, "ATL-000010-010")
        ledger_service.record_sale(user_id=admin_user.id, order=order)
        db.session.commit()
        balance = db.session.query(AdminBalance).filter_by(user_id=admin_user.id).one()
        balance.total_earned_cents = 1
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["ledger", "reconcile", "--user-id", str(admin_user.id)])
        assert result.exit_code == 1
        assert "FAIL" in result.output
