from decimal import Decimal
from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from notifications.models import Notification
from order.exceptions import Conflict, InvalidTransition, NotFound, Unauthorized, Upstream
from order.models import Order
from order.testing import MarketplaceFixtures

from .models import Transaction
from .services import compute_fee, mark_payment_received


class FeeTests(TestCase):
    def test_one_percent_rounded_half_up(self):
        self.assertEqual(compute_fee(Decimal("500.00")), Decimal("5.00"))
        self.assertEqual(compute_fee(Decimal("333.33")), Decimal("3.33"))
        self.assertEqual(compute_fee(Decimal("250.50")), Decimal("2.51"))

    def test_rate_comes_from_settings(self):
        with self.settings(COD_TRANSACTION_FEE_RATE=Decimal("0.02")):
            self.assertEqual(compute_fee(Decimal("500.00")), Decimal("10.00"))


class CodReconciliationTests(MarketplaceFixtures, TestCase):
    def setUp(self):
        self.create_marketplace()
        self.order = self.place_order()

    def test_cod_before_delivery_is_rejected_without_ledger_entry(self):
        self.advance(self.order, Order.Status.DISPATCHED)

        with self.assertRaises(InvalidTransition) as ctx:
            mark_payment_received(self.order.id, self.wholesaler)

        self.assertIn("must be delivered", ctx.exception.detail)
        self.assertFalse(Transaction.objects.exists())
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, "pending")

    def test_reconcile_records_ledger_and_marks_paid(self):
        self.advance(self.order, Order.Status.DELIVERED)

        result = mark_payment_received(self.order.id, self.wholesaler)

        self.assertTrue(result.created)
        self.assertEqual(result.transaction.amount, Decimal("500.00"))
        self.assertEqual(result.transaction.transaction_fee, Decimal("5.00"))
        self.assertEqual(result.transaction.recorded_by, self.wholesaler)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, "paid")
        self.assertEqual(
            set(Notification.objects.filter(related_entity_type="payment").values_list("user_id", flat=True)),
            {self.retailer.id, self.wholesaler.id},
        )

    def test_double_reconciliation_is_idempotent(self):
        self.advance(self.order, Order.Status.DELIVERED)

        first = mark_payment_received(self.order.id, self.wholesaler)
        second = mark_payment_received(self.order.id, self.wholesaler)

        self.assertTrue(first.created)
        self.assertFalse(second.created)
        self.assertEqual(first.transaction.id, second.transaction.id)
        self.assertEqual(Transaction.objects.filter(order=self.order).count(), 1)
        self.assertEqual(Notification.objects.filter(related_entity_type="payment").count(), 2)

    def test_resolves_short_identifiers(self):
        self.advance(self.order, Order.Status.DELIVERED)
        result = mark_payment_received(self.order.short_id, self.wholesaler)
        self.assertEqual(result.order.id, self.order.id)

    def test_custom_amount(self):
        self.advance(self.order, Order.Status.DELIVERED)
        result = mark_payment_received(self.order.id, self.wholesaler, amount="480")
        self.assertEqual(result.transaction.amount, Decimal("480.00"))
        self.assertEqual(result.transaction.transaction_fee, Decimal("4.80"))

    def test_non_positive_amount_is_rejected(self):
        self.advance(self.order, Order.Status.DELIVERED)
        with self.assertRaises(InvalidTransition):
            mark_payment_received(self.order.id, self.wholesaler, amount=Decimal("0"))

    def test_only_owning_wholesaler_or_operator(self):
        self.advance(self.order, Order.Status.DELIVERED)
        with self.assertRaises(Unauthorized):
            mark_payment_received(self.order.id, self.retailer)
        with self.assertRaises(Unauthorized):
            mark_payment_received(self.order.id, self.other_wholesaler)

        result = mark_payment_received(self.order.id, self.operator)
        self.assertTrue(result.created)

    def test_electronic_orders_are_not_cod(self):
        order = self.advance(self.place_order(quantity=1, payment_method="electronic"), Order.Status.DELIVERED)
        with self.assertRaises(InvalidTransition):
            mark_payment_received(order.id, self.wholesaler)

    def test_paid_without_ledger_is_a_conflict(self):
        self.advance(self.order, Order.Status.DELIVERED)
        Order.objects.filter(pk=self.order.pk).update(payment_status="paid")
        with self.assertRaises(Conflict):
            mark_payment_received(self.order.id, self.wholesaler)

    def test_ledger_outage_surfaces_as_upstream(self):
        self.advance(self.order, Order.Status.DELIVERED)
        with patch.object(Transaction.objects, "create", side_effect=DatabaseError("no such table: payment_transaction")):
            with self.assertLogs("payment.services.cod", level="ERROR"):
                with self.assertRaises(Upstream) as ctx:
                    mark_payment_received(self.order.id, self.wholesaler)

        self.assertIn("migrations", ctx.exception.detail)

    def test_concurrent_insert_is_an_idempotent_no_op(self):
        self.advance(self.order, Order.Status.DELIVERED)
        real_filter = Transaction.objects.filter
        lookups = []
        results = {}

        # The other caller finishes between this caller's ledger check and its insert.
        def race_on_first_lookup(*args, **kwargs):
            lookups.append(kwargs)
            if len(lookups) == 1:
                results["first"] = mark_payment_received(self.order.id, self.wholesaler)
                return Transaction.objects.none()
            return real_filter(*args, **kwargs)

        with patch.object(Transaction.objects, "filter", side_effect=race_on_first_lookup):
            with self.assertLogs("payment.services.cod", level="INFO") as logs:
                second = mark_payment_received(self.order.id, self.wholesaler)

        first = results["first"]

        self.assertTrue(first.created)
        self.assertFalse(second.created)
        self.assertEqual(first.transaction.id, second.transaction.id)
        self.assertEqual(Transaction.objects.filter(order=self.order).count(), 1)
        self.assertTrue(any("Concurrent COD reconciliation" in line for line in logs.output))
        self.assertEqual(
            Notification.objects.filter(user=self.retailer, title="Payment Successful").count(), 1
        )

    def test_id_fragments_do_not_settle_payments(self):
        self.advance(self.order, Order.Status.DELIVERED)
        fragment = str(self.order.id)[9:13]

        with self.assertRaises(NotFound):
            mark_payment_received(fragment, self.wholesaler)

        self.assertFalse(Transaction.objects.exists())
        result = mark_payment_received(self.order.reference_number, self.wholesaler)
        self.assertEqual(result.order.id, self.order.id)


class CodApiTests(MarketplaceFixtures, APITestCase):
    def setUp(self):
        self.create_marketplace()
        self.order = self.advance(self.place_order(), Order.Status.DELIVERED)
        self.client.force_authenticate(user=self.wholesaler)

    def test_mark_received_twice_reports_success_both_times(self):
        first = self.client.post("/payment/cod/mark-received/", {"order_id": str(self.order.id)}, format="json")
        second = self.client.post("/payment/cod/mark-received/", {"order_id": str(self.order.id)}, format="json")

        self.assertEqual(first.status_code, status.HTTP_200_OK, first.data)
        self.assertEqual(second.status_code, status.HTTP_200_OK, second.data)
        self.assertTrue(first.data["created"])
        self.assertFalse(second.data["created"])
        self.assertEqual(first.data["transaction"]["id"], second.data["transaction"]["id"])
        self.assertEqual(Transaction.objects.count(), 1)

    def test_partial_success_then_retry_completes(self):
        with patch("payment.services.cod._mark_order_paid", side_effect=DatabaseError("database is locked")):
            response = self.client.post("/payment/cod/mark-received/", {"order_id": str(self.order.id)}, format="json")

        self.assertEqual(response.status_code, status.HTTP_202_ACCEPTED, response.data)
        self.assertTrue(response.data["partial"])
        self.assertEqual(response.data["order_id"], str(self.order.id))
        ledger = Transaction.objects.get(order=self.order)
        self.assertEqual(response.data["transaction_id"], str(ledger.id))
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, "pending")

        retry = self.client.post("/payment/cod/mark-received/", {"order_id": str(self.order.id)}, format="json")
        self.assertEqual(retry.status_code, status.HTTP_200_OK, retry.data)
        self.assertFalse(retry.data["created"])
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, "paid")

    def test_retry_after_partial_success_notifies_once(self):
        with patch("payment.services.cod._mark_order_paid", side_effect=DatabaseError("database is locked")):
            self.client.post("/payment/cod/mark-received/", {"order_id": str(self.order.id)}, format="json")
        self.assertFalse(Notification.objects.filter(title="Payment Successful").exists())

        self.client.post("/payment/cod/mark-received/", {"order_id": str(self.order.id)}, format="json")
        self.client.post("/payment/cod/mark-received/", {"order_id": str(self.order.id)}, format="json")

        self.assertEqual(
            Notification.objects.filter(user=self.retailer, title="Payment Successful").count(), 1
        )
        self.assertEqual(
            Notification.objects.filter(user=self.wholesaler, title="Payment Successful").count(), 1
        )

    def test_status_and_ledger_listing(self):
        self.client.post("/payment/cod/mark-received/", {"order_id": str(self.order.id)}, format="json")

        self.client.force_authenticate(user=self.retailer)
        status_resp = self.client.get(f"/payment/cod/{self.order.id}/status/")
        self.assertEqual(status_resp.status_code, status.HTTP_200_OK, status_resp.data)
        self.assertEqual(status_resp.data["payment_status"], "paid")
        self.assertEqual(status_resp.data["transaction"]["transaction_fee"], "5.00")

        listing = self.client.get("/payment/transactions/")
        self.assertEqual(len(listing.data["transactions"]), 1)

        self.client.force_authenticate(user=self.other_wholesaler)
        self.assertEqual(self.client.get("/payment/transactions/").data["transactions"], [])
        self.assertEqual(self.client.get(f"/payment/cod/{self.order.id}/status/").status_code, status.HTTP_404_NOT_FOUND)

    def test_retailer_cannot_mark_received(self):
        self.client.force_authenticate(user=self.retailer)
        response = self.client.post("/payment/cod/mark-received/", {"order_id": str(self.order.id)}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["code"], "unauthorized")


class CodOrderLifecycleTests(MarketplaceFixtures, APITestCase):
    """A ₹500 cash-on-delivery order from placement to settled payment."""

    def setUp(self):
        self.create_marketplace()

    def _as(self, user):
        self.client.force_authenticate(user=user)
        return self.client

    def test_full_cod_lifecycle(self):
        created = self._as(self.retailer).post(
            "/order/create/",
            {
                "wholesaler_id": str(self.wholesaler.id),
                "items": [{"product_id": str(self.product.id), "quantity": 2}],
                "payment_method": "cod",
            },
            format="json",
        )
        self.assertEqual(created.status_code, status.HTTP_201_CREATED, created.data)
        order_id = created.data["id"]

        confirmed = self._as(self.wholesaler).post(f"/order/orders/{order_id}/status/", {"status": "confirmed"}, format="json")
        self.assertEqual(confirmed.status_code, status.HTTP_200_OK, confirmed.data)

        assigned = self._as(self.wholesaler).post(
            f"/order/orders/{order_id}/assign-delivery/",
            {"delivery_partner_id": str(self.partner.id), "delivery_instructions": "Use the loading bay"},
            format="json",
        )
        self.assertEqual(assigned.status_code, status.HTTP_200_OK, assigned.data)

        for step in ("picked_up", "in_transit", "delivered"):
            response = self._as(self.partner_user).post(
                f"/logistics/orders/{order_id}/updates/", {"status": step}, format="json"
            )
            self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)

        paid = self._as(self.wholesaler).post("/payment/cod/mark-received/", {"order_id": order_id}, format="json")
        self.assertEqual(paid.status_code, status.HTTP_200_OK, paid.data)

        order = Order.objects.get(pk=order_id)
        self.assertEqual(order.status, "delivered")
        self.assertEqual(order.payment_status, "paid")
        ledger = Transaction.objects.get(order=order)
        self.assertEqual(ledger.amount, Decimal("500.00"))
        self.assertEqual(ledger.transaction_fee, Decimal("5.00"))

        retailer_titles = list(
            Notification.objects.filter(user=self.retailer).order_by("created_at").values_list("title", flat=True)
        )
        self.assertEqual(
            retailer_titles,
            [
                "Order Placed",
                "Order Confirmed",
                "Order Dispatched",
                "Order Picked Up",
                "Order In Transit",
                "Order Delivered",
                "Payment Successful",
            ],
        )
        partner_titles = list(
            Notification.objects.filter(user=self.partner_user).order_by("created_at").values_list("title", flat=True)
        )
        self.assertEqual(
            partner_titles,
            [
                "Order Ready for Pickup",
                "Delivery Update: Picked Up",
                "Delivery Update: In Transit",
                "Delivery Update: Delivered",
            ],
        )
