import logging
import threading
from typing import Callable, Optional

from .client import ApiResult

logger = logging.getLogger(__name__)

DEFAULT_POLL_SECONDS = 30


class DeliveryTrackingPoller:
    """Refresh one order's tracking on a fixed interval.

    Polling is what keeps the view correct; pushes only make it faster by
    waking the loop early through ``wake()``.
    """

    def __init__(self, coordinator, order_id, interval: float = DEFAULT_POLL_SECONDS,
                 on_update: Optional[Callable[[ApiResult], None]] = None):
        self.coordinator = coordinator
        self.order_id = str(order_id)
        self.interval = interval
        self.on_update = on_update
        self.last_tracking = None
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def poll_once(self) -> ApiResult:
        tracking = self.coordinator.track_delivery(self.order_id)
        if tracking.ok:
            self.last_tracking = tracking.data
            self.coordinator.fetch_order_by_id(self.order_id)
        else:
            logger.info("Tracking poll for order=%s failed: %s", self.order_id, tracking.code)
        if self.on_update is not None:
            self.on_update(tracking)
        return tracking

    def wake(self) -> None:
        self._wake.set()

    def handle_push(self, notification) -> bool:
        if str(notification.get("related_entity_id") or notification.get("entity_id") or "") != self.order_id:
            return False
        self.wake()
        return True

    def run(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            self.poll_once()
            self._wake.wait(self.interval)
            self._wake.clear()

    def start(self) -> threading.Thread:
        if self._thread is None or not self._thread.is_alive():
            self._stop.clear()
            self._thread = threading.Thread(target=self.run, args=(self._stop,), daemon=True)
            self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
