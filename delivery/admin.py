from django.contrib import admin

from .models import DeliveryProof, DeliveryStatusUpdate


@admin.register(DeliveryStatusUpdate)
class DeliveryStatusUpdateAdmin(admin.ModelAdmin):
    list_display = ("order", "sequence", "status", "delivery_partner", "created_at")
    list_filter = ("status",)
    search_fields = ("order__id", "order__reference_number", "notes")


@admin.register(DeliveryProof)
class DeliveryProofAdmin(admin.ModelAdmin):
    list_display = ("order", "receiver_name", "delivery_partner", "created_at")
    search_fields = ("order__id", "order__reference_number", "receiver_name")
