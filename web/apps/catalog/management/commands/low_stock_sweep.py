import signal
import threading

from django.core.management.base import BaseCommand

from apps.catalog.sweep import LowStockSweep
from apps.orders.providers import get_engine


class Command(BaseCommand):
    help = "Publish stock.low alerts for every product at or below its threshold."

    def add_arguments(self, parser):
        parser.add_argument("--once", action="store_true", help="Run a single cycle and exit.")
        parser.add_argument("--interval", type=float, default=None, help="Seconds between cycles.")

    def handle(self, *args, **options):
        with get_engine() as engine:
            sweep = LowStockSweep(engine.products, engine.dispatcher, interval=options["interval"])
            if options["once"]:
                delivered = sweep.run_once()
                self.stdout.write(f"delivered {delivered} low stock alert(s)")
                return

            stop_event = threading.Event()
            for sig in (signal.SIGINT, signal.SIGTERM):
                signal.signal(sig, lambda *_: stop_event.set())
            sweep.run_forever(stop_event)
