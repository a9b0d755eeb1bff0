"""Client-side view of one actor's orders.

Reads replace local state wholesale. Writes are applied to the local copy
only after the server accepted them, and are not followed by a refetch;
push notifications and the tracking poller bring in changes made by the
other parties.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .cache import ActorCache
from .client import ApiClient, ApiResult

logger = logging.getLogger(__name__)

IN_PROGRESS_STATUSES = ("confirmed", "dispatched")


class OrderCoordinator:
    def __init__(self, api: ApiClient, actor, cache: Optional[ActorCache] = None):
        self.api = api
        self.actor = actor
        self.cache = cache if cache is not None else ActorCache()
        self.orders: List[Dict[str, Any]] = []
        self.active_order: Optional[Dict[str, Any]] = None

    # Reads

    def fetch_orders(self, status: Optional[str] = None) -> ApiResult:
        result = self.api.get("order/orders/", params={"status": status} if status else None)
        if result.ok:
            self.orders = list(result.data.get("orders", []))
            self.cache.invalidate(self.actor)
        return result

    def fetch_order_by_id(self, token) -> ApiResult:
        result = self.api.get(f"order/orders/resolve/{token}/")
        if result.ok:
            self.active_order = result.data["order"]
            self._replace_in_list(self.active_order)
        return result

    def track_delivery(self, order_id) -> ApiResult:
        return self.api.get(f"logistics/orders/{order_id}/tracking/")

    def payment_status(self, order_id) -> ApiResult:
        return self.api.get(f"payment/cod/{order_id}/status/")

    # Writes

    def place_order(self, data: Dict[str, Any]) -> ApiResult:
        result = self.api.post("order/create/", data)
        if result.ok:
            self.fetch_orders()
        return result

    def update_status(self, order_id, status: str, **fields) -> ApiResult:
        result = self.api.post(f"order/orders/{order_id}/status/", {"status": status, **fields})
        if result.ok:
            self._apply(result.data["order"])
        return result

    def assign_delivery_partner(self, order_id, partner_id, instructions: Optional[str] = None) -> ApiResult:
        payload = {"delivery_partner_id": str(partner_id)}
        if instructions is not None:
            payload["delivery_instructions"] = instructions
        result = self.api.post(f"order/orders/{order_id}/assign-delivery/", payload)
        if result.ok:
            self._apply(result.data["order"])
        return result

    def record_delivery_update(self, order_id, status: str, latitude=None, longitude=None, notes=None) -> ApiResult:
        payload: Dict[str, Any] = {"status": status}
        if latitude is not None and longitude is not None:
            payload["latitude"] = str(latitude)
            payload["longitude"] = str(longitude)
        if notes:
            payload["notes"] = notes
        result = self.api.post(f"logistics/orders/{order_id}/updates/", payload)
        if result.ok:
            self._patch(order_id, status=result.data["order_status"])
        return result

    def submit_delivery_proof(self, order_id, receiver_name: str, photo_url=None, signature_url=None, notes=None) -> ApiResult:
        payload = {"receiver_name": receiver_name}
        for key, value in (("photo_url", photo_url), ("signature_url", signature_url), ("notes", notes)):
            if value:
                payload[key] = value
        result = self.api.post(f"logistics/orders/{order_id}/proof/", payload)
        if result.ok:
            self._patch(order_id, status=result.data["order_status"])
        return result

    def mark_payment_received(self, order_id, amount=None) -> ApiResult:
        payload: Dict[str, Any] = {"order_id": str(order_id)}
        if amount is not None:
            payload["amount"] = str(amount)
        result = self.api.post("payment/cod/mark-received/", payload)
        if result.ok and not result.partial:
            self._patch(order_id, payment_status=result.data["payment_status"])
        return result

    # Push and metrics

    def handle_push(self, notification: Dict[str, Any]) -> ApiResult:
        """Treat a push as a hint that something changed and refetch."""
        result = self.fetch_orders()
        entity_id = str(notification.get("related_entity_id") or notification.get("entity_id") or "")
        if self.active_order is not None and entity_id == str(self.active_order["id"]):
            self.fetch_order_by_id(entity_id)
        return result

    def dashboard_metrics(self) -> Dict[str, Any]:
        cached = self.cache.get(self.actor, "dashboard_metrics")
        if cached is not None:
            return cached

        by_status: Dict[str, int] = {}
        total_value = Decimal("0.00")
        unpaid_cod = Decimal("0.00")
        for order in self.orders:
            by_status[order["status"]] = by_status.get(order["status"], 0) + 1
            amount = Decimal(str(order["total_amount"]))
            if order["status"] != "rejected":
                total_value += amount
            if order["payment_method"] == "cod" and order["payment_status"] != "paid" and order["status"] != "rejected":
                unpaid_cod += amount

        metrics = {
            "total_orders": len(self.orders),
            "by_status": by_status,
            "pending_orders": by_status.get("placed", 0),
            "in_progress_orders": sum(by_status.get(status, 0) for status in IN_PROGRESS_STATUSES),
            "delivered_orders": by_status.get("delivered", 0),
            "total_value": total_value,
            "unpaid_cod_value": unpaid_cod,
        }
        self.cache.set(self.actor, "dashboard_metrics", metrics)
        return metrics

    def close(self) -> None:
        self.cache.invalidate(self.actor)
        self.orders = []
        self.active_order = None

    # Local state

    def _replace_in_list(self, order: Dict[str, Any]) -> None:
        for index, existing in enumerate(self.orders):
            if existing["id"] == order["id"]:
                self.orders[index] = order
                break

    def _apply(self, order: Dict[str, Any]) -> None:
        self._replace_in_list(order)
        if self.active_order is not None and self.active_order["id"] == order["id"]:
            self.active_order = order
        self.cache.invalidate(self.actor)

    def _patch(self, order_id, **changes) -> None:
        order_id = str(order_id)
        for order in self.orders:
            if order["id"] == order_id:
                order.update(changes)
        if self.active_order is not None and self.active_order["id"] == order_id:
            self.active_order.update(changes)
        self.cache.invalidate(self.actor)
        logger.debug("Patched local order %s with %s", order_id, changes)
