# Overview: Customer views aggregated from orders (there is no separate customer table).

from __future__ import annotations

from sqlalchemy import case, func, or_

from ..extensions import db
from ..models import Order, OrderStatus
from ..time_utils import to_utc_z

REVENUE_STATUSES = (OrderStatus.CONFIRMED.value, OrderStatus.SOLD.value)


class CustomerNotFoundError(Exception):
    pass


def _aggregate_query():
    spent = func.coalesce(
        func.sum(case((Order.status.in_(REVENUE_STATUSES), Order.total_cents), else_=0)), 0
    )
    return db.session.query(
        Order.customer_email.label("email"),
        func.max(Order.customer_name).label("name"),
        func.max(Order.customer_phone).label("phone"),
        func.count(Order.id).label("total_orders"),
        spent.label("total_spent_cents"),
        func.min(Order.created_at).label("first_order_at"),
        func.max(Order.created_at).label("last_order_at"),
    ).group_by(Order.customer_email), spent


def _row_to_dict(row) -> dict:
    return {
        "email": row.email,
        "name": row.name,
        "phone": row.phone,
        "total_orders": row.total_orders,
        "total_spent_cents": int(row.total_spent_cents or 0),
        "first_order_at": to_utc_z(row.first_order_at),
        "last_order_at": to_utc_z(row.last_order_at),
    }


def list_customers(*, search: str | None = None, page: int = 1, limit: int = 20) -> dict:
    """Customers keyed by email, highest spend first."""
    page = max(page or 1, 1)
    limit = min(max(limit or 20, 1), 100)

    query, spent = _aggregate_query()
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            Order.customer_name.ilike(like),
            Order.customer_email.ilike(like),
            Order.customer_phone.ilike(like),
        ))

    total = query.order_by(None).count()
    rows = (
        query.order_by(spent.desc(), func.count(Order.id).desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": [_row_to_dict(r) for r in rows],
        "page": page,
        "limit": limit,
        "total": total,
    }


def get_customer(email: str) -> dict:
    query, _ = _aggregate_query()
    row = query.filter(Order.customer_email == email).first()
    if row is None:
        raise CustomerNotFoundError(email)

    orders = (
        db.session.query(Order)
        .filter(Order.customer_email == email)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    customer = _row_to_dict(row)
    latest_address = next((o.customer_address for o in orders if o.customer_address), None)
    customer["address"] = latest_address
    customer["orders"] = [o.to_dict(include_items=True) for o in orders]
    return customer
