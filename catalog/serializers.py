from rest_framework import serializers

from .models import Product


class ProductSerializer(serializers.ModelSerializer):
    wholesaler = serializers.PrimaryKeyRelatedField(read_only=True)

    class Meta:
        model = Product
        fields = [
            "id",
            "wholesaler",
            "name",
            "description",
            "sku",
            "price",
            "stock_quantity",
            "unit",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ("id", "sku", "created_at", "updated_at")

    def validate_price(self, value):
        if value <= 0:
            raise serializers.ValidationError("Price must be greater than zero.")
        return value

    def create(self, validated_data):
        user = self.context["request"].user
        if user.role != "WHOLESALER":
            raise serializers.ValidationError("Only wholesalers can list products.")
        validated_data["wholesaler"] = user
        return super().create(validated_data)
