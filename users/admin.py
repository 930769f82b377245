from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import User
from django.utils.html import format_html

from .models import AuditLog, Profile


class ProfileInline(admin.StackedInline):
    model = Profile
    can_delete = False
    fields = ['role', 'phone_number', 'last_login_ip']
    readonly_fields = ['last_login_ip']


class UserAdmin(BaseUserAdmin):
    inlines = [ProfileInline]
    list_display = ['username', 'email', 'get_full_name', 'role_badge', 'is_active', 'last_login']

    def role_badge(self, obj):
        profile = getattr(obj, 'profile', None)
        role = 'admin' if obj.is_superuser else (profile.role if profile else 'employee')
        color = '#dc3545' if role == 'admin' else '#007bff'
        return format_html(
            '<span style="background-color: {}; color: white; padding: 3px 10px; '
            'border-radius: 3px; font-weight: bold;">{}</span>',
            color, role.title()
        )
    role_badge.short_description = 'Role'


admin.site.unregister(User)
admin.site.register(User, UserAdmin)


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['action_date', 'user', 'action', 'entity_type', 'entity_id', 'ip_address']
    list_filter = ['action', 'entity_type', 'action_date']
    search_fields = ['details', 'entity_id', 'user__username']
    date_hierarchy = 'action_date'
    readonly_fields = ['user', 'action', 'entity_type', 'entity_id', 'details', 'ip_address', 'action_date']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
