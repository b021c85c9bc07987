from django.contrib import admin

from .models import AIRequestLog, ApiKey


@admin.register(ApiKey)
class ApiKeyAdmin(admin.ModelAdmin):
    list_display = ['user', 'provider', 'model', 'created_at', 'updated_at']
    list_filter = ['provider']
    search_fields = ['user__username', 'model']
    exclude = ['encrypted_key']
    raw_id_fields = ['user']


@admin.register(AIRequestLog)
class AIRequestLogAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'level', 'created_at', 'deleted_at']
    list_filter = ['level', 'created_at']
    search_fields = ['user__username', 'error']
    readonly_fields = ['request', 'response', 'error', 'created_at']
    raw_id_fields = ['user']
