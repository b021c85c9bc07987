"""
Serializers for registration, login and the current user
"""
from django.contrib.auth import authenticate
from django.contrib.auth.models import User
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from rest_framework import exceptions, serializers
from rest_framework_simplejwt.tokens import RefreshToken

from .models import UserProfile

INVALID_CREDENTIALS = 'No active account found with the given credentials'


def issue_tokens(user):
    """Return a fresh access/refresh pair for ``user``."""
    refresh = RefreshToken.for_user(user)
    return {
        'refresh': str(refresh),
        'access': str(refresh.access_token),
    }


class UserSerializer(serializers.ModelSerializer):
    """User with profile fields flattened in"""
    phone = serializers.CharField(source='profile.phone', read_only=True)
    avatar = serializers.CharField(source='profile.avatar', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'phone', 'avatar', 'date_joined']
        read_only_fields = fields


class RegisterSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    password = serializers.CharField(write_only=True, style={'input_type': 'password'})
    phone = serializers.CharField(max_length=20)
    email = serializers.EmailField()

    def validate_username(self, value):
        if User.objects.filter(username=value).exists():
            raise serializers.ValidationError('This username is already taken')
        return value

    def validate_phone(self, value):
        value = value.strip()
        if UserProfile.objects.filter(phone=value).exists():
            raise serializers.ValidationError('This phone number is already registered')
        return value

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError('This email is already registered')
        return value

    def validate(self, attrs):
        candidate = User(username=attrs['username'], email=attrs['email'])
        try:
            validate_password(attrs['password'], user=candidate)
        except DjangoValidationError as e:
            raise serializers.ValidationError({'password': list(e.messages)})
        return attrs

    def create(self, validated_data):
        with transaction.atomic():
            user = User.objects.create_user(
                username=validated_data['username'],
                email=validated_data['email'],
                password=validated_data['password'],
            )
            profile = user.profile
            profile.phone = validated_data['phone']
            profile.save(update_fields=['phone', 'updated_at'])
        return user


class LoginSerializer(serializers.Serializer):
    """Log in with phone number (or email) and password"""
    phone = serializers.CharField(required=False)
    email = serializers.EmailField(required=False)
    password = serializers.CharField(required=True, write_only=True)

    def validate(self, attrs):
        phone = attrs.get('phone')
        email = attrs.get('email')
        if not phone and not email:
            raise serializers.ValidationError('Phone number or email is required')

        if phone:
            account = User.objects.filter(profile__phone=phone.strip()).first()
        else:
            account = User.objects.filter(email__iexact=email).first()
        if account is None:
            raise exceptions.AuthenticationFailed(INVALID_CREDENTIALS)

        # Authenticate with username and password
        user = authenticate(username=account.username, password=attrs['password'])
        if user is None:
            raise exceptions.AuthenticationFailed(INVALID_CREDENTIALS)

        return {
            **issue_tokens(user),
            'user': UserSerializer(user).data,
        }
