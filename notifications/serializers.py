from rest_framework import serializers

from .models import DeviceToken, Notification


class DeviceTokenSerializer(serializers.ModelSerializer):
    # Re-registering a known token hands it to the caller instead of failing uniqueness.
    token = serializers.CharField(trim_whitespace=True, validators=[])

    class Meta:
        model = DeviceToken
        fields = ["id", "token", "device_type", "is_active"]
        read_only_fields = ["id", "is_active"]


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = [
            "id",
            "title",
            "message",
            "category",
            "related_entity_type",
            "related_entity_id",
            "action_url",
            "is_read",
            "created_at",
        ]
        read_only_fields = fields
