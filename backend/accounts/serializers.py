from rest_framework import serializers
from django.contrib.auth.hashers import check_password
from django.contrib.auth.password_validation import validate_password

from .identity import lookup_identity_by_email
from .models import User


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "email",
            "role",
            "phone_number",
            "is_verified",
            "business_name",
            "vehicle_type",
        ]
        read_only_fields = ["id", "role", "is_verified"]


class ProfileUpdateSerializer(serializers.ModelSerializer):
    """Partial profile edits; role and verification are not self-service"""

    class Meta:
        model = User
        fields = ["username", "email", "phone_number", "business_name", "vehicle_type"]

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exclude(pk=self.instance.pk).exists():
            raise serializers.ValidationError("Email already exists")
        return value.lower()


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)

    def validate(self, data):
        """Resolve the identity through the cached email lookup; ``identity`` is None on bad credentials."""
        identity = lookup_identity_by_email(data["email"])
        if (not identity or not identity["is_active"]
                or not check_password(data["password"], identity["password"])):
            return {"email": data["email"], "identity": None}
        public = {key: value for key, value in identity.items() if key != "password"}
        return {"email": data["email"], "identity": public}


class PasswordChangeSerializer(serializers.Serializer):
    old_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(write_only=True)

    def validate_old_password(self, value):
        if not self.context["user"].check_password(value):
            raise serializers.ValidationError("Current password is incorrect")
        return value

    def validate_new_password(self, value):
        validate_password(value, self.context["user"])
        return value

    def save(self):
        user = self.context["user"]
        user.set_password(self.validated_data["new_password"])
        user.save(update_fields=["password"])
        return user


class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ['username', 'password', 'email', 'role', 'phone_number', 'business_name', 'vehicle_type']

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("Email already exists")
        return value.lower()

    def validate(self, data):
        # Riders need a vehicle, businesses a display name
        if data['role'] == User.ROLE_RIDER and not data.get('vehicle_type'):
            raise serializers.ValidationError({
                'vehicle_type': 'Vehicle type is required for riders'
            })
        if data['role'] == User.ROLE_BUSINESS and not data.get('business_name'):
            raise serializers.ValidationError({
                'business_name': 'Business name is required for businesses'
            })
        return data

    def create(self, validated_data):
        return User.objects.create_user(
            username=validated_data['username'],
            email=validated_data['email'],
            password=validated_data['password'],
            role=validated_data['role'],
            phone_number=validated_data.get('phone_number', ''),
            business_name=validated_data.get('business_name', ''),
            vehicle_type=validated_data.get('vehicle_type', ''),
        )
