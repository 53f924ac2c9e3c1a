from rest_framework import serializers
from django.contrib.auth import authenticate

from .models import User, UserRole
from couriers.models import DeliveryPersonProfile


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "email",
            "role",
            "phone_number",
            "completed_deliveries",
        ]
        read_only_fields = ["id", "completed_deliveries"]


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField(write_only=True)

    def validate(self, data):
        user = authenticate(username=data["username"], password=data["password"])
        if not user:
            raise serializers.ValidationError("Invalid username or password")
        return user


class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True)
    # Admin accounts are created through the Django admin, never self-registered
    role = serializers.ChoiceField(
        choices=[UserRole.CLIENT, UserRole.DELIVERY_PERSON, UserRole.ESTABLISHMENT],
        default=UserRole.CLIENT,
    )
    vehicle_type = serializers.CharField(required=False)

    class Meta:
        model = User
        fields = ['username', 'password', 'email', 'role', 'phone_number', 'vehicle_type']

    def validate_email(self, value):
        if value and User.objects.filter(email=value).exists():
            raise serializers.ValidationError("Email already exists")
        return value

    def validate(self, data):
        if data['role'] == UserRole.DELIVERY_PERSON and not data.get('vehicle_type'):
            raise serializers.ValidationError({
                'vehicle_type': 'Vehicle type is required for delivery persons'
            })
        return data

    def create(self, validated_data):
        vehicle_type = validated_data.pop('vehicle_type', None)

        user = User.objects.create_user(
            username=validated_data['username'],
            email=validated_data.get('email', ''),
            password=validated_data['password'],
            role=validated_data['role'],
            phone_number=validated_data.get('phone_number', ''),
        )

        if user.role == UserRole.DELIVERY_PERSON:
            DeliveryPersonProfile.objects.create(user=user, vehicle_type=vehicle_type)

        return user
