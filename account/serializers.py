from rest_framework import serializers
from django.contrib.auth import get_user_model

from .models import DeliveryPartner

User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'email', 'role', 'first_name', 'last_name', 'business_name', 'phone_number', 'address', 'created_at', 'updated_at', 'password']
        extra_kwargs = {
            'password': {'write_only': True},}
        read_only_fields = ('id', 'created_at', 'updated_at')

    def validate_role(self, value):
        # Operators are provisioned through the admin, never self-registered.
        if value == User.Role.ADMIN:
            raise serializers.ValidationError("Admin accounts cannot be self-registered.")
        return value

    def create(self, validated_data):
        password = validated_data.pop('password', None)
        user = User.objects.create_user(password=password, **validated_data)
        if user.role == User.Role.DELIVERY_PARTNER:
            DeliveryPartner.objects.create(
                user=user,
                name=user.display_name,
                phone_number=user.phone_number,
            )
        return user


class PartyProfileSerializer(serializers.ModelSerializer):
    display_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = ['id', 'email', 'role', 'display_name', 'business_name', 'phone_number', 'address']


class DeliveryPartnerSerializer(serializers.ModelSerializer):
    user_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = DeliveryPartner
        fields = ['id', 'user_id', 'name', 'phone_number', 'vehicle_number', 'is_active', 'is_available']
