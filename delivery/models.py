import uuid
from django.conf import settings
from django.db import models

from account.models import DeliveryPartner
from order.models import Order


class DeliveryStatusUpdate(models.Model):
    class Status(models.TextChoices):
        ASSIGNED = "assigned", "Assigned"
        PICKED_UP = "picked_up", "Picked Up"
        IN_TRANSIT = "in_transit", "In Transit"
        DELIVERED = "delivered", "Delivered"
        FAILED = "failed", "Failed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, related_name="delivery_updates", on_delete=models.CASCADE)
    delivery_partner = models.ForeignKey(
        DeliveryPartner,
        related_name="status_updates",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
    )
    sequence = models.PositiveIntegerField()
    status = models.CharField(max_length=20, choices=Status.choices)
    latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    notes = models.TextField(blank=True)
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="delivery_updates",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "sequence"]
        constraints = [
            models.UniqueConstraint(fields=["order", "sequence"], name="delivery_update_order_seq_uniq"),
        ]

    def __str__(self):
        return f"{self.order_id} #{self.sequence} {self.status}"


class DeliveryProof(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.OneToOneField(Order, related_name="delivery_proof", on_delete=models.CASCADE)
    delivery_partner = models.ForeignKey(
        DeliveryPartner,
        related_name="proofs",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
    )
    receiver_name = models.CharField(max_length=120)
    photo_url = models.URLField(max_length=500, blank=True)
    signature_url = models.URLField(max_length=500, blank=True)
    notes = models.TextField(blank=True)
    submitted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="delivery_proofs",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Proof for {self.order_id}"
