from django.db import models
from django.utils.text import slugify
import uuid


class Product(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    wholesaler = models.ForeignKey(
        "account.User",
        on_delete=models.CASCADE,
        related_name="products",
        limit_choices_to={"role": "WHOLESALER"},
    )
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    sku = models.CharField(max_length=100, unique=True, blank=True, null=True)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    stock_quantity = models.PositiveIntegerField(default=0)
    unit = models.CharField(max_length=30, blank=True)  # e.g. "box", "kg"
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs):
        if not self.sku:
            base = slugify(self.name) if self.name else "product"
            base = (base or "product").upper().replace("-", "")
            base = base[:12] if base else "PRODUCT"
            candidate = f"{base}-{uuid.uuid4().hex[:6].upper()}"
            while Product.objects.filter(sku=candidate).exclude(pk=self.pk).exists():
                candidate = f"{base}-{uuid.uuid4().hex[:6].upper()}"
            self.sku = candidate
        super().save(*args, **kwargs)

    def __str__(self):
        return self.name
