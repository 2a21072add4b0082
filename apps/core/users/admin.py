from django.contrib import admin

from .models import AuditLog, User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'school', 'is_active', 'last_login')
    list_filter = ('role', 'school', 'is_active')
    search_fields = ('username', 'email', 'first_name', 'last_name')


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'action', 'user', 'school', 'target_model', 'target_id')
    list_filter = ('action', 'school', 'created_at')
    search_fields = ('details', 'target_model', 'target_id', 'user__username')
    readonly_fields = ('created_at',)
