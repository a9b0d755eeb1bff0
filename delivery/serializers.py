from rest_framework import serializers

from .models import DeliveryProof, DeliveryStatusUpdate
from .services import PARTNER_STEPS


class DeliveryStatusUpdateSerializer(serializers.ModelSerializer):
    delivery_partner_id = serializers.UUIDField(read_only=True)
    delivery_partner_name = serializers.CharField(source="delivery_partner.name", read_only=True, default=None)

    class Meta:
        model = DeliveryStatusUpdate
        fields = [
            "id",
            "sequence",
            "status",
            "latitude",
            "longitude",
            "notes",
            "delivery_partner_id",
            "delivery_partner_name",
            "created_at",
        ]
        read_only_fields = fields


class DeliveryProofSerializer(serializers.ModelSerializer):
    delivery_partner_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = DeliveryProof
        fields = ["id", "receiver_name", "photo_url", "signature_url", "notes", "delivery_partner_id", "created_at"]
        read_only_fields = fields


class RecordDeliveryUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[(step.value, step.label) for step in PARTNER_STEPS])
    latitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-90, max_value=90, required=False, allow_null=True)
    longitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-180, max_value=180, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class SubmitProofSerializer(serializers.Serializer):
    receiver_name = serializers.CharField(max_length=120)
    photo_url = serializers.URLField(max_length=500, required=False, allow_blank=True)
    signature_url = serializers.URLField(max_length=500, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
