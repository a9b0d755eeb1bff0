from unittest.mock import patch

from django.test import TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from account.models import DeliveryPartner, User
from notifications.models import Notification
from order.exceptions import Conflict, InvalidTransition, NotFound, Unauthorized
from order.models import Order
from order.testing import MarketplaceFixtures

from .models import DeliveryProof, DeliveryStatusUpdate
from .services import assign_delivery_partner, record_status_update, submit_delivery_proof, timeline


class DeliveryAssignmentTests(MarketplaceFixtures, TestCase):
    def setUp(self):
        self.create_marketplace()
        self.order = self.advance(self.place_order(), Order.Status.CONFIRMED)

    def test_assignment_dispatches_and_records_assigned_event(self):
        assign_delivery_partner(self.order, self.partner.id, self.wholesaler, instructions="Ring twice")

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "dispatched")
        self.assertEqual(self.order.delivery_partner_id, self.partner.id)
        self.assertEqual(self.order.delivery_instructions, "Ring twice")
        events = list(timeline(self.order))
        self.assertEqual([(e.sequence, e.status) for e in events], [(1, "assigned")])
        self.assertTrue(
            Notification.objects.filter(user=self.partner_user, title="Order Ready for Pickup").exists()
        )

    def test_only_owning_wholesaler_assigns(self):
        with self.assertRaises(Unauthorized):
            assign_delivery_partner(self.order, self.partner.id, self.other_wholesaler)
        with self.assertRaises(Unauthorized):
            assign_delivery_partner(self.order, self.partner.id, self.retailer)

    def test_inactive_partner_cannot_be_assigned(self):
        self.partner.is_active = False
        self.partner.save()
        with self.assertRaises(NotFound):
            assign_delivery_partner(self.order, self.partner.id, self.wholesaler)

    def test_reassignment_while_dispatched(self):
        assign_delivery_partner(self.order, self.partner.id, self.wholesaler)
        backup_user = User.objects.create_user(
            email="backup@example.com", password="pass1234", role=User.Role.DELIVERY_PARTNER
        )
        backup = DeliveryPartner.objects.create(user=backup_user, name="Backup")

        assign_delivery_partner(self.order, backup.id, self.wholesaler)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "dispatched")
        self.assertEqual(self.order.delivery_partner_id, backup.id)
        self.assertEqual(list(timeline(self.order).values_list("status", flat=True)), ["assigned", "assigned"])
        with self.assertRaises(Unauthorized):
            record_status_update(self.order, self.partner_user, "picked_up")
        record_status_update(self.order, backup_user, "picked_up")


class DeliveryPipelineTests(MarketplaceFixtures, TestCase):
    def setUp(self):
        self.create_marketplace()
        self.order = self.advance(self.place_order(), Order.Status.DISPATCHED)

    def test_timeline_is_ordered_and_in_transit_repeats(self):
        record_status_update(self.order, self.partner_user, "picked_up")
        record_status_update(self.order, self.partner_user, "in_transit", latitude="12.971600", longitude="77.594600")
        record_status_update(self.order, self.partner_user, "in_transit", latitude="12.975000", longitude="77.600000")

        events = list(timeline(self.order))
        self.assertEqual([e.sequence for e in events], [1, 2, 3, 4])
        self.assertEqual([e.status for e in events], ["assigned", "picked_up", "in_transit", "in_transit"])
        self.assertEqual(str(events[-1].latitude), "12.975000")

    def test_status_may_not_regress(self):
        record_status_update(self.order, self.partner_user, "in_transit")
        with self.assertRaises(InvalidTransition):
            record_status_update(self.order, self.partner_user, "picked_up")
        with self.assertRaises(InvalidTransition):
            record_status_update(self.order, self.partner_user, "assigned")

    def test_unassigned_partner_is_refused(self):
        stranger = User.objects.create_user(
            email="stranger@example.com", password="pass1234", role=User.Role.DELIVERY_PARTNER
        )
        DeliveryPartner.objects.create(user=stranger, name="Stranger")
        with self.assertRaises(Unauthorized):
            record_status_update(self.order, stranger, "picked_up")

    def test_delivered_event_and_order_status_move_together(self):
        event = record_status_update(self.order, self.partner_user, "delivered")

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "delivered")
        self.assertEqual(event.status, "delivered")
        self.assertEqual(timeline(self.order).last().status, "delivered")

    def test_delivered_event_rolled_back_when_order_update_fails(self):
        with patch("delivery.services.transition", side_effect=Conflict("Order changed")):
            with self.assertRaises(Conflict):
                record_status_update(self.order, self.partner_user, "delivered")

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "dispatched")
        self.assertFalse(DeliveryStatusUpdate.objects.filter(order=self.order, status="delivered").exists())

    def test_failed_attempt_keeps_order_dispatched_until_reassigned(self):
        record_status_update(self.order, self.partner_user, "failed", notes="Shop closed")

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "dispatched")
        with self.assertRaises(InvalidTransition):
            record_status_update(self.order, self.partner_user, "delivered")

        assign_delivery_partner(self.order, self.partner.id, self.wholesaler)
        record_status_update(self.order, self.partner_user, "delivered")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "delivered")

    def test_updates_need_a_dispatched_order(self):
        confirmed = self.advance(self.place_order(quantity=1), Order.Status.CONFIRMED)
        with self.assertRaises(InvalidTransition):
            record_status_update(confirmed, self.operator, "picked_up")

    def test_proof_marks_order_delivered(self):
        proof = submit_delivery_proof(
            self.order,
            self.partner_user,
            "Asha (store manager)",
            photo_url="https://cdn.example.com/proof/1.jpg",
        )

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "delivered")
        self.assertEqual(proof.delivery_partner_id, self.partner.id)
        self.assertEqual(timeline(self.order).last().notes, "Received by Asha (store manager)")

    def test_second_proof_is_a_conflict(self):
        submit_delivery_proof(self.order, self.partner_user, "Asha")
        with self.assertRaises(Conflict):
            submit_delivery_proof(self.order, self.partner_user, "Asha again")
        self.assertEqual(DeliveryProof.objects.filter(order=self.order).count(), 1)

    def test_operator_can_act_for_partner(self):
        record_status_update(self.order, self.operator, "picked_up")
        submit_delivery_proof(self.order, self.operator, "Asha")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, "delivered")


class DeliveryApiTests(MarketplaceFixtures, APITestCase):
    def setUp(self):
        self.create_marketplace()
        self.order = self.advance(self.place_order(), Order.Status.DISPATCHED)
        self.client.force_authenticate(user=self.partner_user)

    def test_partner_directory(self):
        DeliveryPartner.objects.create(name="Retired", is_active=False)
        response = self.client.get("/logistics/partners/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p["name"] for p in response.data["partners"]], ["Ravi"])

    def test_post_update_and_read_tracking(self):
        response = self.client.post(
            f"/logistics/orders/{self.order.id}/updates/",
            {"status": "in_transit", "latitude": "12.9716", "longitude": "77.5946", "notes": "On the highway"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["order_status"], "dispatched")
        self.assertEqual(response.data["update"]["sequence"], 2)

        self.client.force_authenticate(user=self.retailer)
        tracking = self.client.get(f"/logistics/orders/{self.order.id}/tracking/")
        self.assertEqual(tracking.status_code, status.HTTP_200_OK)
        self.assertEqual(tracking.data["status"], "dispatched")
        self.assertEqual([u["status"] for u in tracking.data["updates"]], ["assigned", "in_transit"])
        self.assertIsNone(tracking.data["proof"])

    def test_invalid_coordinates_are_rejected(self):
        response = self.client.post(
            f"/logistics/orders/{self.order.id}/updates/",
            {"status": "in_transit", "latitude": "123.0", "longitude": "77.5946"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("latitude", response.data["errors"])

    def test_proof_endpoint(self):
        response = self.client.post(
            f"/logistics/orders/{self.order.id}/proof/",
            {"receiver_name": "Asha", "signature_url": "https://cdn.example.com/sig/1.png"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["order_status"], "delivered")

        again = self.client.post(f"/logistics/orders/{self.order.id}/proof/", {"receiver_name": "Asha"}, format="json")
        self.assertEqual(again.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(again.data["code"], "conflict")

    def test_tracking_hidden_from_unrelated_parties(self):
        self.client.force_authenticate(user=self.other_wholesaler)
        response = self.client.get(f"/logistics/orders/{self.order.id}/tracking/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
