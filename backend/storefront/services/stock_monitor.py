# Overview: Periodic low-stock scan and the background thread that schedules it.

from __future__ import annotations

import threading

from ..extensions import db, dispatcher
from ..models import NotificationLog, Product
from . import notification_service


def find_low_stock_products(threshold: int) -> list[Product]:
    """Active products at or below the threshold, lowest stock first."""
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.stock_quantity <= threshold)
        .order_by(Product.stock_quantity.asc(), Product.id.asc())
        .all()
    )


def check_low_stock(threshold: int | None = None) -> dict:
    """
    Scan the catalog and hand a low_stock job to the dispatcher when needed.

    The threshold defaults to the stored setting. Each scan that finds
    products appends a summary NotificationLog row.
    """
    settings = notification_service.get_settings()
    threshold = settings.low_stock_threshold if threshold is None else threshold

    products = find_low_stock_products(threshold)
    result = {
        "threshold": threshold,
        "product_count": len(products),
        "products": [p.to_dict(include_collections=False) for p in products],
        "notified": False,
    }
    if not products:
        return result

    message = f"Low stock check found {len(products)} product(s) at or below {threshold}"
    db.session.add(NotificationLog(
        event="low_stock_check",
        channel="system",
        message=message,
        product_count=len(products),
        status="sent",
    ))
    db.session.commit()

    dispatcher.enqueue("low_stock", product_ids=[p.id for p in products], threshold=threshold)
    result["notified"] = True
    return result


class LowStockMonitor:
    """
    Runs check_low_stock after an initial delay and then on a fixed interval.

    Each run pushes its own app context; a failing run is logged and the
    schedule continues.
    """

    def __init__(self, app):
        self.app = app
        self.interval = float(app.config["LOW_STOCK_CHECK_INTERVAL_SECONDS"])
        self.initial_delay = float(app.config["LOW_STOCK_INITIAL_DELAY_SECONDS"])
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="low-stock-monitor", daemon=True)
        self._thread.start()
        self.app.logger.info("Low stock monitor started (every %ss)", int(self.interval))

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_once(self) -> dict | None:
        with self.app.app_context():
            try:
                result = check_low_stock()
            except Exception:
                db.session.rollback()
                self.app.logger.exception("Low stock check failed")
                return None
            self.app.logger.info(
                "Low stock check: %s product(s) at or below %s",
                result["product_count"], result["threshold"],
            )
            return result

    def _loop(self) -> None:
        if self._stop.wait(self.initial_delay):
            return
        while True:
            self.run_once()
            if self._stop.wait(self.interval):
                return
