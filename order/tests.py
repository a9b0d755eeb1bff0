import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.db import DatabaseError, close_old_connections, connection
from django.test import TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from catalog.models import Product
from notifications.models import Notification
from notifications.services import NotificationService

from .exceptions import Conflict, InvalidTransition, NotFound, OrderFlowError, Unauthorized, Upstream
from .models import Order, OrderItem
from .resolution import OrderResolver
from .state_machine import transition
from .testing import MarketplaceFixtures


class OrderPlacementTests(MarketplaceFixtures, APITestCase):
    def setUp(self):
        self.create_marketplace()
        self.client.force_authenticate(user=self.retailer)

    def _payload(self, quantity=2, product=None):
        return {
            "wholesaler_id": str(self.wholesaler.id),
            "items": [{"product_id": str((product or self.product).id), "quantity": quantity}],
            "payment_method": "cod",
            "notes": "Deliver before noon",
        }

    def test_place_order_snapshots_prices_and_reserves_stock(self):
        response = self.client.post("/order/create/", self._payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["status"], "placed")
        self.assertEqual(response.data["payment_status"], "pending")
        self.assertEqual(Decimal(response.data["total_amount"]), Decimal("500.00"))
        self.assertTrue(response.data["reference_number"].startswith("ORD-"))
        self.assertEqual(response.data["items"][0]["product_name"], "Basmati Rice 5kg")

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 8)

    def test_placement_notifies_retailer_and_wholesaler(self):
        response = self.client.post("/order/create/", self._payload(), format="json")
        order_id = response.data["id"]

        notes = Notification.objects.filter(related_entity_id=order_id)
        self.assertEqual(set(notes.values_list("user_id", flat=True)), {self.retailer.id, self.wholesaler.id})
        self.assertTrue(all(note.category == "info" for note in notes))
        self.assertEqual(notes.get(user=self.wholesaler).title, "New Order Received")

    def test_total_stays_frozen_after_catalog_price_change(self):
        order = self.place_order(quantity=2)
        self.product.price = Decimal("999.00")
        self.product.save()

        order.refresh_from_db()
        self.assertEqual(order.total_amount, Decimal("500.00"))
        self.assertEqual(order.items_total(), order.total_amount)
        self.assertEqual(OrderItem.objects.get(order=order).price, Decimal("250.00"))

    def test_insufficient_stock_rejected_without_side_effects(self):
        response = self.client.post("/order/create/", self._payload(quantity=11), format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["code"], "invalid_transition")
        self.assertIn("Insufficient stock", response.data["detail"])
        self.assertEqual(Order.objects.count(), 0)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 10)

    def test_product_of_another_wholesaler_is_not_found(self):
        foreign = Product.objects.create(
            wholesaler=self.other_wholesaler, name="Sugar", price=Decimal("40.00"), stock_quantity=5
        )
        response = self.client.post("/order/create/", self._payload(product=foreign), format="json")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND, response.data)
        self.assertEqual(response.data["code"], "not_found")

    def test_only_retailers_can_place_orders(self):
        self.client.force_authenticate(user=self.wholesaler)
        response = self.client.post("/order/create/", self._payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN, response.data)
        self.assertEqual(response.data["code"], "unauthorized")

    def test_empty_items_is_a_validation_error(self):
        payload = self._payload()
        payload["items"] = []
        response = self.client.post("/order/create/", payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid")
        self.assertIn("items", response.data["errors"])

    def test_list_is_scoped_to_the_actor(self):
        self.place_order()
        response = self.client.get("/order/orders/")
        self.assertEqual(len(response.data["orders"]), 1)

        self.client.force_authenticate(user=self.other_wholesaler)
        response = self.client.get("/order/orders/")
        self.assertEqual(response.data["orders"], [])

        self.client.force_authenticate(user=self.operator)
        response = self.client.get("/order/orders/", {"status": "placed"})
        self.assertEqual(len(response.data["orders"]), 1)

    def test_snapshot_includes_parties_and_items(self):
        order = self.place_order()
        response = self.client.get(f"/order/orders/{order.id}/snapshot/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["currency"], "INR")
        self.assertEqual(response.data["items_total"], "500.00")
        self.assertEqual(response.data["wholesaler"]["business_name"], "Bulk Foods")
        self.assertIsNone(response.data["transaction"])


class OrderResolutionTests(MarketplaceFixtures, TestCase):
    def setUp(self):
        self.create_marketplace()

    def _order_with_id(self, order_id, age_minutes=0):
        order = Order.objects.create(
            id=uuid.UUID(order_id),
            retailer=self.retailer,
            wholesaler=self.wholesaler,
            total_amount=Decimal("100.00"),
        )
        Order.objects.filter(pk=order.pk).update(created_at=timezone.now() - timedelta(minutes=age_minutes))
        return order

    def test_full_identifier_resolves_directly(self):
        order = self.place_order()
        resolved = OrderResolver().resolve(str(order.id))
        self.assertEqual(resolved.order, order)
        self.assertEqual(resolved.strategy, "direct")

    def test_truncated_identifier_with_one_match(self):
        order = self._order_with_id("abcdef12-0000-4000-8000-000000000001")
        resolved = OrderResolver().resolve("ABCDEF12")
        self.assertEqual(resolved.order, order)
        self.assertEqual(resolved.strategy, "prefix")

    def test_truncated_identifier_with_no_match(self):
        self._order_with_id("abcdef12-0000-4000-8000-000000000001")
        with self.assertRaises(NotFound):
            OrderResolver().resolve("99999999")

    def test_truncated_identifier_with_several_matches_prefers_newest(self):
        self._order_with_id("abcdef12-0000-4000-8000-000000000001", age_minutes=30)
        newest = self._order_with_id("abcdef12-0000-4000-8000-000000000002", age_minutes=1)

        with self.assertLogs("order.resolution", level="WARNING") as logs:
            resolved = OrderResolver().resolve("abcdef12")

        self.assertEqual(resolved.order, newest)
        self.assertIn("matches 2 orders", logs.output[0])

    def test_notification_identifier_follows_related_order(self):
        order = self.place_order()
        notification = Notification.objects.filter(user=self.retailer, related_entity_id=str(order.id)).first()

        resolved = OrderResolver().resolve(str(notification.id))
        self.assertEqual(resolved.order, order)
        self.assertEqual(resolved.strategy, "notification")

    def test_reference_number(self):
        order = self.place_order()
        resolved = OrderResolver().resolve(order.reference_number)
        self.assertEqual(resolved.order, order)
        self.assertEqual(resolved.strategy, "reference")

    def test_reference_lookup_skipped_without_column(self):
        order = self.place_order()
        with patch.object(connection.introspection, "get_table_description", return_value=[]):
            with self.assertRaises(NotFound):
                OrderResolver().resolve(order.reference_number)

    def test_substring_fragment(self):
        order = self._order_with_id("12345678-aaaa-4bbb-8ccc-0123456789ab")
        resolved = OrderResolver().resolve("4BBB-8CCC")
        self.assertEqual(resolved.order, order)
        self.assertEqual(resolved.strategy, "substring")

    def test_database_errors_surface_as_upstream(self):
        with patch.object(OrderResolver, "_by_direct", side_effect=DatabaseError("connection lost")):
            with self.assertRaises(Upstream):
                OrderResolver().resolve(str(uuid.uuid4()))

    def test_resolve_endpoint_hides_orders_from_strangers(self):
        order = self.place_order()
        api = APIClient()
        api.force_authenticate(user=self.retailer)
        response = api.get(f"/order/orders/resolve/{order.short_id}/")
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["order"]["id"], str(order.id))

        api.force_authenticate(user=self.other_wholesaler)
        response = api.get(f"/order/orders/resolve/{order.short_id}/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class OrderStateMachineTests(MarketplaceFixtures, TestCase):
    def setUp(self):
        self.create_marketplace()
        self.order = self.place_order()

    def test_wholesaler_confirms_and_retailer_is_notified(self):
        result = transition(self.order, Order.Status.CONFIRMED, self.wholesaler)

        self.assertEqual(result.previous_status, "placed")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "confirmed")
        note = Notification.objects.filter(user=self.retailer, title="Order Confirmed").get()
        self.assertEqual(note.category, "success")
        self.assertEqual(set(result.fanout.notified_roles), {"retailer", "wholesaler"})
        self.assertEqual(result.fanout.skipped, ["delivery_partner"])

    def test_retailer_and_foreign_wholesaler_cannot_confirm(self):
        with self.assertRaises(Unauthorized):
            transition(self.order, Order.Status.CONFIRMED, self.retailer)
        with self.assertRaises(Unauthorized):
            transition(self.order, Order.Status.CONFIRMED, self.other_wholesaler)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "placed")

    def test_rejecting_a_delivered_order_is_an_invalid_transition(self):
        self.advance(self.order, Order.Status.DELIVERED)
        with self.assertRaises(InvalidTransition):
            transition(self.order, Order.Status.REJECTED, self.wholesaler)

    def test_unlisted_transition_is_refused(self):
        with self.assertRaises(InvalidTransition):
            transition(self.order, Order.Status.DISPATCHED, self.wholesaler)
        with self.assertRaises(InvalidTransition):
            transition(self.order, "shipped", self.wholesaler)

    def test_delivered_only_through_delivery_pipeline(self):
        self.advance(self.order, Order.Status.DISPATCHED)
        with self.assertRaises(InvalidTransition):
            transition(self.order, Order.Status.DELIVERED, self.partner_user)

    def test_extra_fields_are_whitelisted_per_target(self):
        with self.assertRaises(InvalidTransition):
            transition(self.order, Order.Status.CONFIRMED, self.wholesaler, extra_fields={"rejection_reason": "x"})

        transition(self.order, Order.Status.REJECTED, self.wholesaler, extra_fields={"rejection_reason": "Out of stock"})
        self.order.refresh_from_db()
        self.assertEqual(self.order.rejection_reason, "Out of stock")
        note = Notification.objects.get(user=self.retailer, title="Order Rejected")
        self.assertEqual(note.category, "error")
        self.assertIn("Out of stock", note.message)

    def test_stale_snapshot_loses_compare_and_swap(self):
        first = Order.objects.get(pk=self.order.pk)
        second = Order.objects.get(pk=self.order.pk)

        transition(first, Order.Status.CONFIRMED, self.wholesaler)
        with self.assertRaises(Conflict) as ctx:
            transition(second, Order.Status.REJECTED, self.wholesaler)

        self.assertEqual(ctx.exception.extra["current_status"], "confirmed")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "confirmed")

    def test_failed_recipient_does_not_block_others(self):
        original = NotificationService.notify
        wholesaler = self.wholesaler

        def flaky_notify(**kwargs):
            if kwargs["user"] == wholesaler:
                raise DatabaseError("notifications table unavailable")
            return original(**kwargs)

        with patch.object(NotificationService, "notify", side_effect=flaky_notify):
            with self.assertLogs("notifications.fanout", level="ERROR"):
                result = transition(self.order, Order.Status.CONFIRMED, self.wholesaler)

        self.assertEqual(result.fanout.failed, ["wholesaler"])
        self.assertEqual(result.fanout.notified_roles, ["retailer"])
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "confirmed")

    def test_transition_rolls_back_when_fanout_cannot_run(self):
        with patch("order.state_machine.notify_order_status", side_effect=DatabaseError("down")):
            with self.assertRaises(DatabaseError):
                transition(self.order, Order.Status.CONFIRMED, self.wholesaler)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "placed")


class OrderStatusApiTests(MarketplaceFixtures, APITestCase):
    def setUp(self):
        self.create_marketplace()
        self.order = self.place_order()
        self.client.force_authenticate(user=self.wholesaler)

    def test_confirm_through_api(self):
        response = self.client.post(f"/order/orders/{self.order.id}/status/", {"status": "confirmed"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertTrue(response.data["success"])
        self.assertEqual(response.data["order"]["status"], "confirmed")
        self.assertIn("retailer", response.data["notifications"]["notified"])

    def test_status_endpoint_refuses_delivered(self):
        self.advance(self.order, Order.Status.DISPATCHED)
        response = self.client.post(f"/order/orders/{self.order.id}/status/", {"status": "delivered"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["code"], "invalid_transition")

    def test_dispatch_with_partner_goes_through_assignment(self):
        self.advance(self.order, Order.Status.CONFIRMED)
        response = self.client.post(
            f"/order/orders/{self.order.id}/status/",
            {"status": "dispatched", "delivery_partner_id": str(self.partner.id)},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["order"]["status"], "dispatched")
        self.assertEqual(response.data["order"]["delivery_partner"]["id"], str(self.partner.id))

    def test_assign_delivery_requires_confirmed_order(self):
        response = self.client.post(
            f"/order/orders/{self.order.id}/assign-delivery/",
            {"delivery_partner_id": str(self.partner.id)},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertIn("must be confirmed", response.data["detail"])

    def test_unknown_order_is_not_found(self):
        response = self.client.post(f"/order/orders/{uuid.uuid4()}/status/", {"status": "confirmed"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["code"], "not_found")

    def test_unauthenticated_requests_are_rejected(self):
        self.client.force_authenticate(user=None)
        response = self.client.get("/order/orders/")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class OrderConcurrencyTests(MarketplaceFixtures, TransactionTestCase):
    reset_sequences = True

    def setUp(self):
        self.create_marketplace()
        self.order = self.place_order()

    def _attempt_confirm(self, barrier):
        close_old_connections()
        try:
            order = Order.objects.get(pk=self.order.pk)
            barrier.wait(timeout=5)
            transition(order, Order.Status.CONFIRMED, self.wholesaler)
            return ("ok", "")
        except OrderFlowError as exc:
            return ("err", exc.code)
        except Exception as exc:
            return ("err", str(exc))
        finally:
            close_old_connections()

    def test_parallel_confirms_only_one_succeeds(self):
        barrier = threading.Barrier(2)

        with ThreadPoolExecutor(max_workers=2) as executor:
            futures = [executor.submit(self._attempt_confirm, barrier) for _ in range(2)]
            results = [f.result(timeout=20) for f in futures]

        success_count = len([r for r in results if r[0] == "ok"])
        self.assertEqual(success_count, 1, results)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "confirmed")
        error = [r[1] for r in results if r[0] == "err"][0].lower()
        self.assertTrue(("conflict" in error) or ("locked" in error), results)
