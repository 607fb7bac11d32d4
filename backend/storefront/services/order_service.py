# Overview: Service-layer operations for the order lifecycle; ingestion, confirmation, and sale finalization.

"""
Order Service

WHY: Orders are inquiries. Stock is reserved only when staff confirm an
order, and revenue is recognized only when a confirmed order is marked sold.

Lifecycle (one-directional):
    Pending -> Confirmed -> Sold
    Pending -> Cancelled

- Ingestion persists the order and all items atomically and never touches
  stock. Item prices come from the client (storefront cart) and are trusted.
- Confirmation is the single stock decrement point. It validates every
  line before changing any product, so a failure leaves stock untouched.
- Sale finalization credits the acting user's balance and appends the
  ledger entry in the same transaction as the status change.
- Notifications are handed to the dispatcher after commit and never affect
  the outcome of the request.
"""
from __future__ import annotations

import random
import time
from datetime import datetime

from sqlalchemy import case, func, or_

from ..extensions import db, dispatcher
from ..models import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    Product,
    can_transition,
)
from ..schemas import OrderCreate
from ..time_utils import days_ago, to_utc_z, utcnow
from . import ledger_service
from .concurrency import lock_for_update, run_with_retry

SORTABLE_FIELDS = {
    "created_at": Order.created_at,
    "updated_at": Order.updated_at,
    "total_cents": Order.total_cents,
    "customer_name": Order.customer_name,
    "status": Order.status,
    "order_number": Order.order_number,
}
DEFAULT_LIMIT = 20
MAX_LIMIT = 100
REVENUE_STATUSES = (OrderStatus.CONFIRMED.value, OrderStatus.SOLD.value)


class OrderError(Exception):
    """Raised for order operation errors."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None, status_code: int | None = None):
        super().__init__(message)
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code


class OrderNotFoundError(OrderError):
    status_code = 404


class InvalidTransitionError(OrderError):
    status_code = 409


class InsufficientStockError(OrderError):
    status_code = 400


def generate_order_number() -> str:
    """ATL-<last 6 digits of epoch millis>-<3 random digits>."""
    millis = str(int(time.time() * 1000))
    return f"ATL-{millis[-6:]}-{random.randint(0, 999):03d}"


def _unique_order_number(attempts: int = 5) -> str:
    for _ in range(attempts):
        candidate = generate_order_number()
        if not db.session.query(Order.id).filter_by(order_number=candidate).first():
            return candidate
    raise OrderError("Could not allocate an order number", status_code=503)


# -- ingestion ---------------------------------------------------------------

def create_order(data: OrderCreate) -> Order:
    """
    Persist an order and its items in one transaction.

    Every product must exist and be active; otherwise nothing is written.
    Item names, images and categories are snapshotted from the catalog.
    """
    product_ids = {item.product_id for item in data.items}
    products = {
        p.id: p
        for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()
    }
    unavailable = sorted(pid for pid in product_ids if pid not in products or not products[pid].is_active)
    if unavailable:
        raise OrderError(
            f"Product {unavailable[0]} is not available",
            details={"product_ids": unavailable},
        )

    try:
        order = Order(
            order_number=_unique_order_number(),
            customer_name=data.customer_name,
            customer_email=str(data.customer_email),
            customer_phone=data.customer_phone,
            customer_address=data.customer_address,
            notes=data.notes,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            total_cents=0,
        )

        for line in data.items:
            product = products[line.product_id]
            order.items.append(OrderItem(
                product_id=product.id,
                product_name=product.title,
                product_image=product.primary_image_url,
                product_category=product.category.name if product.category else None,
                original_price_cents=product.original_price_cents,
                unit_price_cents=line.unit_price_cents,
                quantity=line.quantity,
                line_total_cents=line.unit_price_cents * line.quantity,
                size=line.size,
                color=line.color,
            ))

        # Total always derives from what is persisted
        order.total_cents = sum(item.line_total_cents for item in order.items)

        db.session.add(order)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    dispatcher.enqueue("order_created", order_id=order.id)
    return order


# -- transitions -------------------------------------------------------------

def _aggregate_quantities(items: list[OrderItem]) -> dict[int, int]:
    totals: dict[int, int] = {}
    for item in items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals


def _lock_order(order_id: int) -> Order | None:
    return lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()


def _confirm_locked(order: Order, actor_user_id: int | None) -> Order:
    if not order.items:
        raise OrderError("Order has no items", details={"order_id": order.id})

    requested = _aggregate_quantities(order.items)
    products = {
        p.id: p
        for p in lock_for_update(
            db.session.query(Product).filter(Product.id.in_(requested.keys()))
        ).all()
    }

    missing = sorted(pid for pid in requested if pid not in products)
    if missing:
        raise OrderError(f"Product {missing[0]} not found", details={"product_ids": missing})

    insufficient = []
    for product_id, quantity in requested.items():
        product = products[product_id]
        if product.stock_quantity < quantity:
            insufficient.append({
                "product_id": product_id,
                "product_name": product.title,
                "available": product.stock_quantity,
                "requested": quantity,
            })

    if insufficient:
        first = insufficient[0]
        raise InsufficientStockError(
            f"Insufficient stock for product {first['product_name']}. "
            f"Available: {first['available']}, Requested: {first['requested']}",
            details={"items": insufficient},
        )

    for product_id, quantity in requested.items():
        products[product_id].stock_quantity -= quantity

    order.status = OrderStatus.CONFIRMED.value
    order.confirmed_at = utcnow()
    order.confirmed_by_user_id = actor_user_id
    return order


def confirm_order(order_id: int, actor_user_id: int | None = None) -> Order:
    """
    Confirm a Pending order and decrement stock for every item.

    Raises:
        OrderNotFoundError: order missing or not Pending (404)
        OrderError: order has no items or references a missing product (400)
        InsufficientStockError: any product lacks stock; nothing changes (400)
    """
    def _op():
        order = _lock_order(order_id)
        if not order or not can_transition(order.status_enum, OrderStatus.CONFIRMED):
            raise OrderNotFoundError(
                "Order not found or not pending",
                details={"order_id": order_id, "status": order.status if order else None},
            )
        _confirm_locked(order, actor_user_id)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    dispatcher.enqueue("order_confirmed", order_id=order.id)
    return order


def mark_order_sold(order_id: int, actor_user_id: int):
    """
    Finalize a Confirmed order: credit the actor's balance and mark it Sold.

    Returns (order, balance_transaction). Irrevocable.

    Raises:
        OrderNotFoundError: order missing or not Confirmed (404)
    """
    if actor_user_id is None:
        raise OrderError("An acting user is required to finalize a sale")

    def _op():
        order = _lock_order(order_id)
        if not order or not can_transition(order.status_enum, OrderStatus.SOLD):
            raise OrderNotFoundError(
                "Order not found or not confirmed",
                details={"order_id": order_id, "status": order.status if order else None},
            )

        txn = ledger_service.record_sale(user_id=actor_user_id, order=order)

        order.status = OrderStatus.SOLD.value
        order.sold_at = utcnow()
        order.sold_by_user_id = actor_user_id
        db.session.commit()
        return order, txn

    return run_with_retry(_op)


def cancel_order(order_id: int, actor_user_id: int | None = None) -> Order:
    """Cancel a Pending order. Stock was never reserved, so nothing is restored."""
    def _op():
        order = _lock_order(order_id)
        if not order:
            raise OrderNotFoundError("Order not found", details={"order_id": order_id})
        if not can_transition(order.status_enum, OrderStatus.CANCELLED):
            raise InvalidTransitionError(
                f"Cannot cancel an order with status {order.status}",
                details={"order_id": order_id, "status": order.status},
            )
        order.status = OrderStatus.CANCELLED.value
        order.cancelled_at = utcnow()
        db.session.commit()
        return order

    return run_with_retry(_op)


def change_status(order_id: int, target: OrderStatus, actor_user_id: int | None = None) -> Order:
    """
    Generic status change; routes each target through its dedicated workflow
    so stock and ledger side effects can never be skipped.
    """
    if target is OrderStatus.CONFIRMED:
        return confirm_order(order_id, actor_user_id)
    if target is OrderStatus.SOLD:
        order, _ = mark_order_sold(order_id, actor_user_id)
        return order
    if target is OrderStatus.CANCELLED:
        return cancel_order(order_id, actor_user_id)

    order = get_order(order_id)
    raise InvalidTransitionError(
        f"Cannot move an order from {order.status} to {target.value}",
        details={"order_id": order_id, "status": order.status, "target": target.value},
    )


# -- admin edits -------------------------------------------------------------

def update_payment(order_id: int, payment_status: PaymentStatus, payment_method: str | None) -> Order:
    order = get_order(order_id)
    order.payment_status = payment_status.value
    if payment_method is not None:
        order.payment_method = payment_method
    db.session.commit()
    return order


def update_admin_notes(order_id: int, admin_notes: str | None) -> Order:
    order = get_order(order_id)
    order.admin_notes = admin_notes
    db.session.commit()
    return order


# -- reads -------------------------------------------------------------------

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise OrderNotFoundError("Order not found", details={"order_id": order_id})
    return order


def list_orders(
    *,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    status: str | None = None,
    payment_status: str | None = None,
    search: str | None = None,
    created_from: datetime | None = None,
    created_before: datetime | None = None,
    sort: str = "created_at",
    direction: str = "DESC",
) -> dict:
    """
    Paginated order listing; unknown sort fields fall back to created_at.

    created_from is inclusive, created_before exclusive.
    """
    page = max(page or 1, 1)
    limit = min(max(limit or DEFAULT_LIMIT, 1), MAX_LIMIT)
    sort_column = SORTABLE_FIELDS.get(sort, Order.created_at)
    ordering = sort_column.asc() if str(direction).upper() == "ASC" else sort_column.desc()

    query = db.session.query(Order)
    if status:
        query = query.filter(Order.status == status)
    if payment_status:
        query = query.filter(Order.payment_status == payment_status)
    if created_from:
        query = query.filter(Order.created_at >= created_from)
    if created_before:
        query = query.filter(Order.created_at < created_before)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            Order.customer_name.ilike(like),
            Order.customer_email.ilike(like),
            Order.order_number.ilike(like),
        ))

    total = query.count()
    orders = query.order_by(ordering, Order.id.desc()).offset((page - 1) * limit).limit(limit).all()

    item_counts = dict(
        db.session.query(OrderItem.order_id, func.count(OrderItem.id))
        .filter(OrderItem.order_id.in_([o.id for o in orders]))
        .group_by(OrderItem.order_id)
        .all()
    ) if orders else {}

    items = []
    for order in orders:
        data = order.to_dict()
        data["item_count"] = item_counts.get(order.id, 0)
        items.append(data)

    return {
        "items": items,
        "count": len(items),
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit,
    }


def order_stats(days: int = 30) -> dict:
    """Status counts and revenue over the trailing window."""
    since = days_ago(days)
    rows = (
        db.session.query(Order.status, func.count(Order.id), func.coalesce(func.sum(Order.total_cents), 0))
        .filter(Order.created_at >= since)
        .group_by(Order.status)
        .all()
    )
    counts = {status.value: 0 for status in OrderStatus}
    revenue = 0
    total_orders = 0
    for status, count, amount in rows:
        counts[status] = count
        total_orders += count
        if status in REVENUE_STATUSES:
            revenue += int(amount)

    revenue_orders = sum(counts[s] for s in REVENUE_STATUSES)
    return {
        "window_days": days,
        "total_orders": total_orders,
        "status_counts": counts,
        "total_revenue_cents": revenue,
        "average_order_value_cents": revenue // revenue_orders if revenue_orders else 0,
    }


def search_customers(q: str, limit: int = 10) -> list[dict]:
    like = f"%{q.strip()}%"
    rows = (
        db.session.query(
            Order.customer_email,
            func.max(Order.customer_name),
            func.max(Order.customer_phone),
            func.count(Order.id),
            func.coalesce(func.sum(case((Order.status.in_(REVENUE_STATUSES), Order.total_cents), else_=0)), 0),
            func.max(Order.created_at),
        )
        .filter(or_(
            Order.customer_name.ilike(like),
            Order.customer_email.ilike(like),
            Order.customer_phone.ilike(like),
        ))
        .group_by(Order.customer_email)
        .order_by(func.max(Order.created_at).desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "customer_email": email,
            "customer_name": name,
            "customer_phone": phone,
            "order_count": count,
            "total_spent_cents": int(spent),
            "last_order_at": to_utc_z(last),
        }
        for email, name, phone, count, spent, last in rows
    ]
