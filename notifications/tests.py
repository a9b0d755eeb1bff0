from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase
from rest_framework.test import APIClient

from account.models import DeliveryPartner
from order.models import Order
from order.testing import MarketplaceFixtures

from .fanout import FanoutReport, category_for_status, format_amount, notify_order_status, notify_payment
from .models import DeviceToken, Notification
from .services import NotificationService


class NotificationsApiTests(MarketplaceFixtures, TestCase):
    def setUp(self):
        self.create_marketplace()
        self.client = APIClient()
        self.client.force_authenticate(self.retailer)

    def test_device_token_upsert_and_reassign(self):
        resp1 = self.client.post(
            "/api/notifications/device-token/",
            {"token": "token-123", "device_type": "web"},
            format="json",
        )
        self.assertEqual(resp1.status_code, 200, resp1.data)
        token_row = DeviceToken.objects.get(token="token-123")
        self.assertEqual(token_row.user_id, self.retailer.id)
        self.assertTrue(token_row.is_active)

        self.client.force_authenticate(self.wholesaler)
        resp2 = self.client.post(
            "/api/notifications/device-token/",
            {"token": "token-123", "device_type": "android"},
            format="json",
        )
        self.assertEqual(resp2.status_code, 200, resp2.data)
        token_row.refresh_from_db()
        self.assertEqual(token_row.user_id, self.wholesaler.id)
        self.assertEqual(token_row.device_type, "android")

    def test_device_token_deactivate(self):
        DeviceToken.objects.create(user=self.retailer, token="token-a", device_type="web", is_active=True)
        resp = self.client.delete(
            "/api/notifications/device-token/",
            {"token": "token-a"},
            format="json",
        )
        self.assertEqual(resp.status_code, 200, resp.data)
        self.assertEqual(resp.data["deactivated"], 1)
        self.assertFalse(DeviceToken.objects.get(token="token-a").is_active)

    def test_inbox_read_endpoints(self):
        order = self.place_order()
        transition_note = Notification.objects.get(user=self.retailer, related_entity_id=str(order.id))
        other = Notification.objects.create(user=self.retailer, title="Hello", message="Welcome aboard")

        list_resp = self.client.get("/api/notifications/")
        self.assertEqual(list_resp.status_code, 200, list_resp.data)
        self.assertEqual(list_resp.data["count"], 2)

        unread = self.client.get("/api/notifications/unread/")
        self.assertEqual(unread.data["count"], 2)

        read_one = self.client.patch(f"/api/notifications/{transition_note.id}/read/", {}, format="json")
        self.assertEqual(read_one.status_code, 200, read_one.data)
        transition_note.refresh_from_db()
        self.assertTrue(transition_note.is_read)

        only_unread = self.client.get("/api/notifications/", {"unread": "true"})
        self.assertEqual([row["id"] for row in only_unread.data["results"]], [str(other.id)])

        read_all = self.client.post("/api/notifications/mark-all-read/", {}, format="json")
        self.assertEqual(read_all.data["updated"], 1)
        other.refresh_from_db()
        self.assertTrue(other.is_read)

    def test_cannot_read_someone_elses_notification(self):
        note = Notification.objects.create(user=self.wholesaler, title="Private", message="Not yours")
        resp = self.client.patch(f"/api/notifications/{note.id}/read/", {}, format="json")
        self.assertEqual(resp.status_code, 404)
        note.refresh_from_db()
        self.assertFalse(note.is_read)


class OrderFanoutTests(MarketplaceFixtures, TestCase):
    def setUp(self):
        self.create_marketplace()
        self.order = self.place_order()

    def test_category_by_status(self):
        self.assertEqual(category_for_status("confirmed"), "success")
        self.assertEqual(category_for_status("delivered"), "success")
        self.assertEqual(category_for_status("placed"), "info")
        self.assertEqual(category_for_status("dispatched"), "info")
        self.assertEqual(category_for_status("rejected"), "error")
        self.assertEqual(category_for_status("in_transit"), "info")
        self.assertEqual(category_for_status("failed"), "info")

    def test_partner_skipped_until_assigned(self):
        report = notify_order_status(self.order, "confirmed", "delivery_partner")
        self.assertEqual(report.skipped, ["delivery_partner"])
        self.assertEqual(report.notified, [])

    def test_partner_without_login_is_skipped(self):
        offline = DeliveryPartner.objects.create(name="Walk-in rider")
        Order.objects.filter(pk=self.order.pk).update(delivery_partner=offline)
        self.order.refresh_from_db()

        report = notify_order_status(self.order, "dispatched", "all")
        self.assertEqual(report.notified_roles, ["retailer", "wholesaler"])
        self.assertEqual(report.skipped, ["delivery_partner"])

    def test_partner_gets_pickup_copy_with_delivery_link(self):
        self.advance(self.order, Order.Status.DISPATCHED)
        note = Notification.objects.get(user=self.partner_user, related_entity_type="delivery")
        self.assertEqual(note.title, "Order Ready for Pickup")
        self.assertIn(self.order.short_id, note.message)
        self.assertEqual(note.action_url, f"/delivery/orders/{self.order.id}")

    def test_unknown_audience_is_rejected(self):
        with self.assertRaises(ValueError):
            notify_order_status(self.order, "confirmed", "everyone")

    def test_report_ok_flag(self):
        self.assertTrue(FanoutReport().ok)
        self.assertFalse(FanoutReport(failed=["retailer"]).ok)

    def test_payment_copy_per_outcome(self):
        success = notify_payment(self.order, "success", self.retailer)
        failed = notify_payment(self.order, "failed", self.retailer)
        pending = notify_payment(self.order, "pending", self.retailer)

        self.assertEqual(success.title, "Payment Successful")
        self.assertIn("₹500.00", success.message)
        self.assertEqual(success.category, "success")
        self.assertEqual(failed.category, "error")
        self.assertEqual(pending.category, "info")
        self.assertEqual(success.related_entity_type, "payment")

    def test_payment_write_failure_is_swallowed(self):
        with patch.object(NotificationService, "notify", side_effect=RuntimeError("boom")):
            with self.assertLogs("notifications.fanout", level="ERROR"):
                self.assertIsNone(notify_payment(self.order, "success", self.retailer))

    def test_format_amount(self):
        self.assertEqual(format_amount(Decimal("5")), "₹5.00")
        with self.settings(ORDER_CURRENCY="KES"):
            self.assertEqual(format_amount(Decimal("12.5")), "KES 12.50")


class PushDeliveryTests(MarketplaceFixtures, TestCase):
    def setUp(self):
        self.create_marketplace()

    def test_push_is_sent_after_commit(self):
        with patch.object(NotificationService, "_send_push_to_user") as send:
            with self.captureOnCommitCallbacks(execute=True):
                note = NotificationService.notify(user=self.retailer, title="Hi", message="There")
                send.assert_not_called()

        send.assert_called_once()
        self.assertEqual(send.call_args.kwargs["data"]["notification_id"], str(note.id))

    def test_push_failure_does_not_affect_stored_notification(self):
        with patch.object(NotificationService, "_send_push_to_user", side_effect=RuntimeError("fcm down")):
            with self.assertLogs("notifications.services", level="ERROR"):
                with self.captureOnCommitCallbacks(execute=True):
                    NotificationService.notify(user=self.retailer, title="Hi", message="There")

        self.assertEqual(Notification.objects.filter(user=self.retailer, title="Hi").count(), 1)

    def test_unregistered_tokens_are_deactivated(self):
        from firebase_admin.exceptions import FirebaseError

        DeviceToken.objects.create(user=self.retailer, token="stale-token", device_type="android")
        error = FirebaseError("registration-token-not-registered", "Requested entity was not found.")

        with patch.object(NotificationService, "_push_ready", return_value=True):
            with patch("firebase_admin.messaging.send", side_effect=error):
                NotificationService._send_push_to_user(
                    user=self.retailer, title="Hi", message="There", data={"entity_id": "1"}
                )

        self.assertFalse(DeviceToken.objects.get(token="stale-token").is_active)
