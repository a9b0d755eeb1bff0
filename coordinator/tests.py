import threading
from unittest.mock import Mock, patch

import requests
from django.db import DatabaseError
from django.test import SimpleTestCase
from rest_framework.test import APITestCase, RequestsClient
from rest_framework_simplejwt.tokens import RefreshToken

from order.models import Order
from order.testing import MarketplaceFixtures

from .cache import ActorCache
from .client import ApiClient, ApiResult
from .coordinator import OrderCoordinator
from .polling import DeliveryTrackingPoller


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def client_for(user):
    token = str(RefreshToken.for_user(user).access_token)
    return ApiClient("http://testserver", token=token, session=RequestsClient())


class ActorCacheTests(SimpleTestCase):
    def test_values_expire_after_ttl(self):
        clock = FakeClock()
        cache = ActorCache(ttl=60, clock=clock)
        cache.set("wholesaler-1", "dashboard_metrics", {"total_orders": 3})

        clock.now += 59
        self.assertEqual(cache.get("wholesaler-1", "dashboard_metrics"), {"total_orders": 3})
        clock.now += 1
        self.assertIsNone(cache.get("wholesaler-1", "dashboard_metrics"))
        self.assertEqual(len(cache), 0)

    def test_entries_are_scoped_per_actor(self):
        cache = ActorCache(clock=FakeClock())
        cache.set("a", "dashboard_metrics", 1)
        cache.set("b", "dashboard_metrics", 2)

        cache.invalidate("a")

        self.assertIsNone(cache.get("a", "dashboard_metrics"))
        self.assertEqual(cache.get("b", "dashboard_metrics"), 2)


class ApiClientTests(SimpleTestCase):
    def test_transport_error_becomes_upstream_result(self):
        session = Mock()
        session.request.side_effect = requests.ConnectionError("connection refused")

        result = ApiClient("http://orders.invalid", session=session).get("order/orders/")

        self.assertFalse(result.ok)
        self.assertEqual(result.status_code, 0)
        self.assertEqual(result.code, "upstream")

    def test_error_code_falls_back_to_http_status(self):
        response = Mock(ok=False, status_code=409, reason="Conflict", text="")
        response.json.side_effect = ValueError("no body")
        session = Mock()
        session.request.return_value = response

        result = ApiClient("http://orders.invalid/", token="abc", session=session).post("order/create/")

        self.assertEqual(result.code, "conflict")
        self.assertEqual(result.detail, "Conflict")
        headers = session.request.call_args.kwargs["headers"]
        self.assertEqual(headers["Authorization"], "Bearer abc")
        self.assertEqual(session.request.call_args.args[1], "http://orders.invalid/order/create/")


class OrderCoordinatorTests(MarketplaceFixtures, APITestCase):
    def setUp(self):
        self.create_marketplace()
        self.clock = FakeClock()
        self.retailer_view = OrderCoordinator(
            client_for(self.retailer), self.retailer.id, cache=ActorCache(ttl=60, clock=self.clock)
        )
        self.wholesaler_view = OrderCoordinator(
            client_for(self.wholesaler), self.wholesaler.id, cache=ActorCache(ttl=60, clock=self.clock)
        )

    def _place(self):
        result = self.retailer_view.place_order(
            {
                "wholesaler_id": str(self.wholesaler.id),
                "items": [{"product_id": str(self.product.id), "quantity": 2}],
                "payment_method": "cod",
            }
        )
        self.assertTrue(result.ok, result)
        return result.data["id"]

    def test_place_order_refreshes_the_list(self):
        order_id = self._place()

        self.assertEqual([o["id"] for o in self.retailer_view.orders], [order_id])
        self.assertEqual(self.retailer_view.orders[0]["status"], "placed")

    def test_status_update_is_applied_locally_without_refetch(self):
        order_id = self._place()
        self.wholesaler_view.fetch_orders()
        self.wholesaler_view.api.get = Mock(wraps=self.wholesaler_view.api.get)

        result = self.wholesaler_view.update_status(order_id, "confirmed")

        self.assertTrue(result.ok, result)
        self.assertEqual(self.wholesaler_view.orders[0]["status"], "confirmed")
        self.wholesaler_view.api.get.assert_not_called()

    def test_rejected_write_leaves_local_state_untouched(self):
        order_id = self._place()

        result = self.retailer_view.update_status(order_id, "confirmed")

        self.assertFalse(result.ok)
        self.assertEqual(result.status_code, 403)
        self.assertEqual(result.code, "unauthorized")
        self.assertEqual(self.retailer_view.orders[0]["status"], "placed")

    def test_push_triggers_refetch(self):
        order_id = self._place()
        self.retailer_view.fetch_order_by_id(order_id[:8])
        self.wholesaler_view.update_status(order_id, "confirmed")
        self.assertEqual(self.retailer_view.active_order["status"], "placed")

        self.retailer_view.handle_push({"related_entity_id": order_id, "title": "Order Confirmed"})

        self.assertEqual(self.retailer_view.orders[0]["status"], "confirmed")
        self.assertEqual(self.retailer_view.active_order["status"], "confirmed")

    def test_partial_payment_result_is_flagged(self):
        order_id = self._place()
        self.advance(Order.objects.get(pk=order_id), Order.Status.DELIVERED)
        self.wholesaler_view.fetch_orders()

        with patch("payment.services.cod._mark_order_paid", side_effect=DatabaseError("database is locked")):
            partial = self.wholesaler_view.mark_payment_received(order_id)

        self.assertTrue(partial.ok)
        self.assertTrue(partial.partial)
        self.assertEqual(partial.code, "partial_success")
        self.assertEqual(self.wholesaler_view.orders[0]["payment_status"], "pending")

        retry = self.wholesaler_view.mark_payment_received(order_id)
        self.assertTrue(retry.ok)
        self.assertFalse(retry.partial)
        self.assertEqual(self.wholesaler_view.orders[0]["payment_status"], "paid")

    def test_dashboard_metrics_are_cached_per_actor(self):
        self._place()
        self.wholesaler_view.fetch_orders()

        metrics = self.wholesaler_view.dashboard_metrics()
        self.assertEqual(metrics["total_orders"], 1)
        self.assertEqual(metrics["pending_orders"], 1)
        self.assertEqual(str(metrics["unpaid_cod_value"]), "500.00")

        self.wholesaler_view.orders.append(dict(self.wholesaler_view.orders[0], id="another"))
        self.assertEqual(self.wholesaler_view.dashboard_metrics()["total_orders"], 1)

        self.clock.now += 60
        self.assertEqual(self.wholesaler_view.dashboard_metrics()["total_orders"], 2)

    def test_delivery_updates_and_tracking(self):
        order_id = self._place()
        self.wholesaler_view.fetch_orders()
        self.wholesaler_view.update_status(order_id, "confirmed")
        self.wholesaler_view.assign_delivery_partner(order_id, self.partner.id, instructions="Gate 2")

        rider_view = OrderCoordinator(client_for(self.partner_user), self.partner_user.id)
        rider_view.fetch_orders()
        self.assertEqual(rider_view.orders[0]["status"], "dispatched")

        rider_view.record_delivery_update(order_id, "picked_up")
        proof = rider_view.submit_delivery_proof(order_id, "Asha")
        self.assertTrue(proof.ok, proof)
        self.assertEqual(rider_view.orders[0]["status"], "delivered")

        tracking = self.retailer_view.track_delivery(order_id)
        self.assertEqual(
            [u["status"] for u in tracking.data["updates"]], ["assigned", "picked_up", "delivered"]
        )


class DeliveryTrackingPollerTests(SimpleTestCase):
    def setUp(self):
        self.coordinator = Mock()
        self.coordinator.track_delivery.return_value = ApiResult(ok=True, status_code=200, data={"status": "dispatched"})

    def test_poll_once_refreshes_order_and_reports(self):
        seen = []
        poller = DeliveryTrackingPoller(self.coordinator, "order-1", on_update=seen.append)

        self.assertEqual(poller.interval, 30)
        poller.poll_once()

        self.coordinator.fetch_order_by_id.assert_called_once_with("order-1")
        self.assertEqual(poller.last_tracking, {"status": "dispatched"})
        self.assertEqual(len(seen), 1)

    def test_failed_poll_keeps_last_tracking(self):
        poller = DeliveryTrackingPoller(self.coordinator, "order-1")
        poller.poll_once()
        self.coordinator.track_delivery.return_value = ApiResult(ok=False, status_code=0, code="upstream")

        poller.poll_once()

        self.assertEqual(poller.last_tracking, {"status": "dispatched"})
        self.assertEqual(self.coordinator.fetch_order_by_id.call_count, 1)

    def test_push_for_other_orders_is_ignored(self):
        poller = DeliveryTrackingPoller(self.coordinator, "order-1")
        self.assertFalse(poller.handle_push({"related_entity_id": "order-2"}))
        self.assertTrue(poller.handle_push({"related_entity_id": "order-1"}))

    def test_run_stops_when_asked(self):
        stop = threading.Event()
        poller = DeliveryTrackingPoller(self.coordinator, "order-1", interval=5)

        def stop_after_first(result):
            stop.set()
            poller.wake()

        poller.on_update = stop_after_first
        poller.run(stop)

        self.assertEqual(self.coordinator.track_delivery.call_count, 1)
