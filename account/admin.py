from django.contrib import admin

from .models import DeliveryPartner, User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ("email", "role", "business_name", "is_active", "created_at")
    list_filter = ("role", "is_active")
    search_fields = ("email", "business_name", "phone_number")


@admin.register(DeliveryPartner)
class DeliveryPartnerAdmin(admin.ModelAdmin):
    list_display = ("name", "user", "phone_number", "is_active", "is_available", "created_at")
    list_filter = ("is_active", "is_available")
    search_fields = ("name", "phone_number", "user__email")
