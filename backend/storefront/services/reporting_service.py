# Overview: Read-only dashboard aggregates over orders, catalog, and the balance ledger.

from __future__ import annotations

import calendar

from sqlalchemy import func

from ..extensions import db
from ..models import Order, OrderItem, OrderStatus, Product
from ..time_utils import start_of_year, utcnow
from . import ledger_service

REVENUE_STATUSES = (OrderStatus.CONFIRMED.value, OrderStatus.SOLD.value)
DASHBOARD_LOW_STOCK_LEVEL = 10


def _monthly_sales(year_start) -> list[dict]:
    """Revenue per calendar month of the current year (bucketed in Python for portability)."""
    totals = [0] * 12
    rows = (
        db.session.query(Order.created_at, Order.total_cents)
        .filter(Order.status.in_(REVENUE_STATUSES), Order.created_at >= year_start)
        .all()
    )
    for created_at, total in rows:
        if created_at is not None:
            totals[created_at.month - 1] += total or 0
    return [
        {"month": calendar.month_name[index + 1], "amount_cents": amount}
        for index, amount in enumerate(totals)
        if amount
    ]


def _top_products(limit: int = 5) -> list[dict]:
    rows = (
        db.session.query(
            OrderItem.product_id,
            func.max(OrderItem.product_name),
            func.sum(OrderItem.quantity),
            func.sum(OrderItem.line_total_cents),
        )
        .join(Order, Order.id == OrderItem.order_id)
        .filter(Order.status.in_(REVENUE_STATUSES))
        .group_by(OrderItem.product_id)
        .order_by(func.sum(OrderItem.quantity).desc())
        .limit(limit)
        .all()
    )
    return [
        {"product_id": pid, "name": name, "units_sold": int(units or 0), "revenue_cents": int(revenue or 0)}
        for pid, name, units, revenue in rows
    ]


def dashboard(user_id: int) -> dict:
    """
    Dashboard payload for the signed-in staff user.

    The caller's balance row is created at zero on first view.
    """
    total_products = db.session.query(func.count(Product.id)).filter(Product.is_active.is_(True)).scalar()
    total_orders = db.session.query(func.count(Order.id)).scalar()
    total_customers = db.session.query(func.count(func.distinct(Order.customer_email))).scalar()
    total_sales = (
        db.session.query(func.coalesce(func.sum(Order.total_cents), 0))
        .filter(Order.status.in_(REVENUE_STATUSES))
        .scalar()
    )

    status_counts = {status.value: 0 for status in OrderStatus}
    for status, count in db.session.query(Order.status, func.count(Order.id)).group_by(Order.status).all():
        status_counts[status] = count

    recent_orders = (
        db.session.query(Order).order_by(Order.created_at.desc(), Order.id.desc()).limit(5).all()
    )
    low_stock = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.stock_quantity < DASHBOARD_LOW_STOCK_LEVEL)
        .order_by(Product.stock_quantity.asc(), Product.id.asc())
        .all()
    )

    balance = ledger_service.get_balance(user_id)
    reconciliation = ledger_service.reconcile(user_id)

    return {
        "totals": {
            "products": total_products,
            "orders": total_orders,
            "customers": total_customers,
            "sales_cents": int(total_sales or 0),
        },
        "balance": balance.to_dict(),
        "ledger_ok": all(r.ok for r in reconciliation),
        "monthly_sales": _monthly_sales(start_of_year(utcnow())),
        "top_products": _top_products(),
        "recent_orders": [o.to_dict() for o in recent_orders],
        "low_stock_products": [p.to_dict(include_collections=False) for p in low_stock],
        "status_counts": status_counts,
        "recent_transactions": [t.to_dict() for t in ledger_service.list_transactions(user_id, limit=10)],
    }
