import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.contrib.auth import get_user_model
User = get_user_model()

from account.models import DeliveryPartner
from catalog.models import Product


class Order(models.Model):
    class Status(models.TextChoices):
        PLACED = "placed", "Placed"
        CONFIRMED = "confirmed", "Confirmed"
        DISPATCHED = "dispatched", "Dispatched"
        DELIVERED = "delivered", "Delivered"
        REJECTED = "rejected", "Rejected"

    class PaymentMethod(models.TextChoices):
        COD = "cod", "Cash on Delivery"
        ELECTRONIC = "electronic", "Electronic"

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"

    TERMINAL_STATUSES = (Status.DELIVERED, Status.REJECTED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    reference_number = models.CharField(max_length=20, unique=True, blank=True, null=True)

    retailer = models.ForeignKey(User, on_delete=models.PROTECT, related_name="placed_orders")
    wholesaler = models.ForeignKey(User, on_delete=models.PROTECT, related_name="received_orders")
    delivery_partner = models.ForeignKey(
        DeliveryPartner,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="orders",
    )

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PLACED)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)

    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices, default=PaymentMethod.COD)
    payment_status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)

    notes = models.TextField(blank=True)
    delivery_instructions = models.TextField(blank=True)
    estimated_delivery = models.DateField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="order_status_idx"),
            models.Index(fields=["created_at"], name="order_created_idx"),
        ]

    def __str__(self):
        return self.reference_number or str(self.id)

    @property
    def short_id(self):
        return str(self.id)[: settings.ORDER_SHORT_ID_LENGTH]

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def items_total(self):
        return sum((item.line_total for item in self.items.all()), Decimal("0.00"))


class OrderItem(models.Model):
    order = models.ForeignKey(Order, related_name="items", on_delete=models.CASCADE)
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True)

    # Snapshot fields
    product_name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField()

    @property
    def line_total(self):
        return self.price * self.quantity
