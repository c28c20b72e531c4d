"""Serializers for the accounts app."""

import re

import phonenumbers
from django.contrib.auth import get_user_model
from rest_framework import serializers


User = get_user_model()


def normalize_phone_number(value):
    """Return ``value`` in E.164 form or raise a field validation error.

    Numbers without a leading ``+`` are assumed to start with the country code
    (mobile-money wallets are usually typed that way, e.g. ``2376...``).
    """

    raw = str(value or '').strip().replace(' ', '').replace('-', '')
    if not raw:
        raise serializers.ValidationError('Phone number is required.')
    try:
        parsed = phonenumbers.parse(raw if raw.startswith('+') else '+' + raw, None)
        if not phonenumbers.is_valid_number(parsed):
            raise ValueError
    except (phonenumbers.NumberParseException, ValueError):
        raise serializers.ValidationError(
            f'Phone number {value} is not valid. Include the country code (e.g. +237).'
        )
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


class UserSummarySerializer(serializers.ModelSerializer):
    """Compact user representation embedded in orders and deliveries."""

    full_name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'username', 'full_name', 'phone_number', 'user_type']

    def get_full_name(self, obj):
        return obj.get_full_name() or obj.username


class UserProfileSerializer(serializers.ModelSerializer):
    """The authenticated user's own profile."""

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'phone_number', 'user_type']
        read_only_fields = ['id', 'username', 'user_type']

    def validate_phone_number(self, value):
        if not value:
            return None
        return normalize_phone_number(value)


class RegisterSerializer(serializers.ModelSerializer):
    """Create a buyer or seller account.

    Delivery agents and administrators are created from the Django admin.
    """

    password = serializers.CharField(write_only=True, min_length=8)
    user_type = serializers.ChoiceField(choices=[(User.BUYER, 'Buyer'), (User.SELLER, 'Seller')], default=User.BUYER)
    phone_number = serializers.CharField(required=False, allow_blank=True)

    class Meta:
        model = User
        fields = ('id', 'username', 'password', 'email', 'user_type', 'phone_number')
        read_only_fields = ('id',)

    def validate_username(self, value):
        if not re.match(r'^[a-zA-Z0-9._]+$', value):
            raise serializers.ValidationError("اسم المستخدم يجب أن يحتوي على حروف وأرقام ونقطة أو شرطة سفلية فقط.")
        if len(value) < 4:
            raise serializers.ValidationError("اسم المستخدم يجب أن يكون 4 أحرف على الأقل.")
        return value

    def validate_email(self, value):
        return value.lower().strip()

    def validate_phone_number(self, value):
        if not value:
            return None
        return normalize_phone_number(value)

    def create(self, validated_data):
        password = validated_data.pop('password')
        return User.objects.create_user(password=password, **validated_data)
