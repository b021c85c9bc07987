"""
Serializers for API keys, request logs and text processing
"""
from django.conf import settings
from rest_framework import serializers

from apps.ai.models import AIRequestLog, ApiKey, Intent, Provider
from apps.common.encryption import DecryptionError


class ApiKeySerializer(serializers.ModelSerializer):
    """
    API key with a masked preview.

    The plaintext key is accepted on write and never returned.
    """
    model = serializers.CharField(max_length=100, required=False)
    api_key = serializers.CharField(write_only=True)
    key_preview = serializers.SerializerMethodField()

    class Meta:
        model = ApiKey
        fields = ['id', 'provider', 'model', 'api_key', 'key_preview', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def get_key_preview(self, obj):
        try:
            return obj.key_preview
        except DecryptionError:
            return None

    def validate(self, attrs):
        if not attrs.get('model'):
            attrs['model'] = settings.AI_PROVIDERS[attrs['provider']]['default_model']
        return attrs

    def create(self, validated_data):
        plaintext = validated_data.pop('api_key')
        instance = ApiKey(**validated_data)
        instance.set_key(plaintext)
        instance.save()
        return instance


class ApiKeyUpdateSerializer(serializers.ModelSerializer):
    """Replaces the stored key; provider and model are fixed once created"""
    api_key = serializers.CharField(write_only=True)

    class Meta:
        model = ApiKey
        fields = ['api_key']

    def update(self, instance, validated_data):
        if 'api_key' in validated_data:
            instance.set_key(validated_data['api_key'])
            instance.save(update_fields=['encrypted_key', 'updated_at'])
        return instance


class AIRequestLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = AIRequestLog
        fields = ['id', 'level', 'request', 'response', 'error', 'created_at']
        read_only_fields = fields


class ProcessTextSerializer(serializers.Serializer):
    text = serializers.CharField()
    intent = serializers.ChoiceField(choices=Intent.choices)
    provider = serializers.ChoiceField(choices=Provider.choices, required=False)
    model = serializers.CharField(max_length=100, required=False)
    stream = serializers.BooleanField(default=True)
