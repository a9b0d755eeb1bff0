from rest_framework import serializers

from account.serializers import DeliveryPartnerSerializer, PartyProfileSerializer

from .models import Order, OrderItem


class OrderLineSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)


class OrderCreateSerializer(serializers.Serializer):
    wholesaler_id = serializers.UUIDField()
    items = OrderLineSerializer(many=True, allow_empty=False)
    payment_method = serializers.ChoiceField(choices=Order.PaymentMethod.choices, default=Order.PaymentMethod.COD)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class OrderItemSerializer(serializers.ModelSerializer):
    product_id = serializers.UUIDField(read_only=True)
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = ["id", "product_id", "product_name", "price", "quantity", "line_total"]


class OrderSerializer(serializers.ModelSerializer):
    short_id = serializers.CharField(read_only=True)
    retailer = PartyProfileSerializer(read_only=True)
    wholesaler = PartyProfileSerializer(read_only=True)
    delivery_partner = DeliveryPartnerSerializer(read_only=True)
    items = OrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "short_id",
            "reference_number",
            "status",
            "payment_method",
            "payment_status",
            "total_amount",
            "retailer",
            "wholesaler",
            "delivery_partner",
            "items",
            "notes",
            "delivery_instructions",
            "estimated_delivery",
            "rejection_reason",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class OrderSnapshotSerializer(OrderSerializer):
    """Frozen view of an order used for invoices and receipts."""

    currency = serializers.SerializerMethodField()
    items_total = serializers.SerializerMethodField()
    transaction = serializers.SerializerMethodField()

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + ["currency", "items_total", "transaction"]
        read_only_fields = fields

    def get_currency(self, obj):
        return self.context.get("currency", "INR")

    def get_items_total(self, obj):
        return str(obj.items_total())

    def get_transaction(self, obj):
        transaction = getattr(obj, "transaction", None)
        if transaction is None:
            return None
        return {
            "id": str(transaction.id),
            "amount": str(transaction.amount),
            "transaction_fee": str(transaction.transaction_fee),
            "created_at": transaction.created_at,
        }


class OrderStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.Status.choices)
    rejection_reason = serializers.CharField(required=False, allow_blank=True)
    delivery_instructions = serializers.CharField(required=False, allow_blank=True)
    estimated_delivery = serializers.DateField(required=False)
    delivery_partner_id = serializers.UUIDField(required=False)


class AssignDeliverySerializer(serializers.Serializer):
    delivery_partner_id = serializers.UUIDField()
    delivery_instructions = serializers.CharField(required=False, allow_blank=True)
    estimated_delivery = serializers.DateField(required=False)
