# backend/wsgi.py
import atexit
import os

from storefront import create_app
from storefront.extensions import dispatcher
from storefront.services.stock_monitor import LowStockMonitor

app = create_app()

# Set LOW_STOCK_MONITOR_ENABLED=false for CLI sessions and extra worker processes.
if app.config["LOW_STOCK_MONITOR_ENABLED"] and not app.testing:
    monitor = LowStockMonitor(app)
    monitor.start()
    atexit.register(monitor.stop)

atexit.register(dispatcher.shutdown)


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", "5000")))
