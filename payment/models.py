import uuid
from django.conf import settings
from django.db import models

from order.models import Order


class Transaction(models.Model):
    """Ledger entry recording money received for an order.

    One entry per order at most; the one-to-one constraint is what makes
    repeated reconciliation attempts idempotent.
    """

    class Status(models.TextChoices):
        COMPLETED = "completed", "Completed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    reference = models.CharField(max_length=40, unique=True)
    order = models.OneToOneField(Order, on_delete=models.PROTECT, related_name="transaction")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=10, default="INR")
    payment_method = models.CharField(
        max_length=20,
        choices=Order.PaymentMethod.choices,
        default=Order.PaymentMethod.COD,
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.COMPLETED)
    transaction_fee = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="recorded_transactions",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["created_at"], name="payment_tx_created_idx"),
        ]

    def __str__(self):
        return f"{self.reference} - {self.amount}"

    @property
    def net_amount(self):
        return self.amount - self.transaction_fee
