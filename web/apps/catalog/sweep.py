"""Periodic low-stock sweep.

Reservations raise ``stock.low`` as they happen; the sweep re-announces every
product that is still at or below its threshold, so a consumer that missed
an alert (or a product that was created already low) is eventually seen.
"""

import logging
import threading

from django.conf import settings
from django.db import close_old_connections

from apps.events.dispatch import EventDispatcher
from apps.events.domain import LowStockAlert

from .service import ProductService

logger = logging.getLogger(__name__)


class LowStockSweep:
    """Publish a ``stock.low`` alert for each low-stock product.

    Args:
        service: Source of low-stock products.
        dispatcher: Best-effort publisher used for the alerts.
        interval: Seconds between cycles (``LOW_STOCK_SWEEP_INTERVAL``).
        error_delay: Seconds to wait after a failed cycle
            (``LOW_STOCK_SWEEP_ERROR_DELAY``).
    """

    def __init__(self, service: ProductService, dispatcher: EventDispatcher,
                 interval: float | None = None, error_delay: float | None = None):
        self.service = service
        self.dispatcher = dispatcher
        self.interval = float(interval if interval is not None else settings.LOW_STOCK_SWEEP_INTERVAL)
        self.error_delay = float(error_delay if error_delay is not None else settings.LOW_STOCK_SWEEP_ERROR_DELAY)

    def run_once(self) -> int:
        """One cycle; returns the number of alerts delivered."""
        products = self.service.get_low_stock_products()
        delivered = 0
        for product in products:
            alert = LowStockAlert(
                product_id=product.id,
                product_name=product.name,
                current_stock=product.stock_quantity,
                threshold=product.low_stock_threshold,
            )
            if self.dispatcher.emit(alert):
                delivered += 1
        if products:
            logger.info("processed low stock alerts", extra={"count": len(products), "delivered": delivered})
        return delivered

    def run_forever(self, stop_event: threading.Event) -> None:
        """Run cycles until ``stop_event`` is set."""
        logger.info("low stock sweep started", extra={"interval": self.interval})
        while not stop_event.is_set():
            # outside the request cycle nothing else drops a dead or expired connection
            close_old_connections()
            try:
                self.run_once()
                delay = self.interval
            except Exception:
                logger.exception("low stock sweep cycle failed")
                close_old_connections()
                delay = self.error_delay
            stop_event.wait(timeout=delay)
        logger.info("low stock sweep stopped")
