from django.contrib import admin

from .models import Transaction


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ("reference", "order", "amount", "transaction_fee", "payment_method", "status", "recorded_by", "created_at")
    list_filter = ("payment_method", "status")
    search_fields = ("reference", "order__id", "order__reference_number", "recorded_by__email")
    readonly_fields = ("created_at",)
