"""
Provider API keys and the AI request audit log
"""
from django.contrib.auth.models import User
from django.db import models
from django.utils import timezone

from apps.common.encryption import decrypt_value, encrypt_value, mask_secret
from apps.common.models import TimestampedModel, UUIDModel, UserOwnedQuerySet


class Provider(models.TextChoices):
    OPENAI = 'openai', 'OpenAI'
    ALIYUN = 'aliyun', 'Aliyun DashScope'


class Intent(models.TextChoices):
    REWRITE = 'rewrite', 'Rewrite'
    EXPAND = 'expand', 'Expand'
    SUMMARIZE = 'summarize', 'Summarize'


class ApiKey(TimestampedModel):
    """
    A user's credential for one provider/model pair.

    Only the Fernet ciphertext is stored; use ``set_key`` / ``get_key``.
    """
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='api_keys')
    provider = models.CharField(max_length=20, choices=Provider.choices)
    model = models.CharField(max_length=100)
    encrypted_key = models.TextField()

    objects = UserOwnedQuerySet.as_manager()

    class Meta:
        db_table = 'api_keys'
        ordering = ['provider', 'model']
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'provider', 'model'],
                name='unique_api_key_per_provider_model',
            ),
        ]

    def __str__(self):
        return f"{self.user.username}: {self.provider}/{self.model}"

    def set_key(self, plaintext: str):
        self.encrypted_key = encrypt_value(plaintext)

    def get_key(self) -> str:
        return decrypt_value(self.encrypted_key)

    @property
    def key_preview(self) -> str:
        return mask_secret(self.get_key())


class LogLevel(models.TextChoices):
    INFO = 'info', 'Info'
    SUCCESS = 'success', 'Success'
    ERROR = 'error', 'Error'


class AIRequestLogQuerySet(UserOwnedQuerySet):
    def active(self):
        return self.filter(deleted_at__isnull=True)

    def soft_delete(self) -> int:
        return self.filter(deleted_at__isnull=True).update(deleted_at=timezone.now())


class AIRequestLog(UUIDModel):
    """
    One row per provider attempt made while processing text.

    Rows are append-only; deletion only stamps ``deleted_at``.
    """
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='ai_request_logs')
    level = models.CharField(max_length=10, choices=LogLevel.choices, default=LogLevel.INFO)

    # {text, model, provider}
    request = models.JSONField(default=dict)
    # {content, duration}
    response = models.JSONField(null=True, blank=True)
    error = models.TextField(blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    objects = AIRequestLogQuerySet.as_manager()

    class Meta:
        db_table = 'ai_request_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', '-created_at'], name='ai_log_user_created_idx'),
        ]

    def __str__(self):
        return f"{self.level} {self.created_at}"

    def soft_delete(self):
        self.deleted_at = timezone.now()
        self.save(update_fields=['deleted_at'])
