from rest_framework import serializers

from .models import Transaction


class TransactionSerializer(serializers.ModelSerializer):
    order_id = serializers.UUIDField(read_only=True)
    recorded_by_id = serializers.UUIDField(read_only=True)
    net_amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Transaction
        fields = [
            "id",
            "reference",
            "order_id",
            "amount",
            "transaction_fee",
            "net_amount",
            "currency",
            "payment_method",
            "status",
            "recorded_by_id",
            "created_at",
        ]
        read_only_fields = fields


class MarkCodReceivedSerializer(serializers.Serializer):
    order_id = serializers.CharField(max_length=64)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
