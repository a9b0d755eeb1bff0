import uuid
from django.conf import settings
from django.db import models


class DeviceToken(models.Model):
    class DeviceType(models.TextChoices):
        WEB = "web", "Web"
        ANDROID = "android", "Android"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="device_tokens")
    token = models.TextField(unique=True)
    device_type = models.CharField(max_length=20, choices=DeviceType.choices)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["user", "is_active"], name="notif_token_user_active_idx"),
        ]


class Notification(models.Model):
    class Category(models.TextChoices):
        SUCCESS = "success", "Success"
        INFO = "info", "Info"
        WARNING = "warning", "Warning"
        ERROR = "error", "Error"

    class EntityType(models.TextChoices):
        ORDER = "order", "Order"
        PAYMENT = "payment", "Payment"
        DELIVERY = "delivery", "Delivery"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="notifications")
    title = models.CharField(max_length=255)
    message = models.TextField()
    category = models.CharField(max_length=20, choices=Category.choices, default=Category.INFO)
    related_entity_type = models.CharField(max_length=20, choices=EntityType.choices, blank=True)
    related_entity_id = models.CharField(max_length=64, blank=True)
    action_url = models.CharField(max_length=255, blank=True)
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "is_read"], name="notif_user_read_idx"),
            models.Index(fields=["related_entity_id"], name="notif_entity_idx"),
        ]

    def __str__(self):
        return f"{self.user_id} - {self.title}"
