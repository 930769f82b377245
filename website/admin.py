from django.contrib import admin

from inventory.admin import badge, export_to_csv

from .models import SupportTicket

PRIORITY_COLORS = {
    SupportTicket.PRIORITY_LOW: '#6c757d',
    SupportTicket.PRIORITY_MEDIUM: '#17a2b8',
    SupportTicket.PRIORITY_HIGH: '#fd7e14',
    SupportTicket.PRIORITY_CRITICAL: '#dc3545',
}


@admin.register(SupportTicket)
class SupportTicketAdmin(admin.ModelAdmin):
    list_display = ['ticket_number', 'title', 'category', 'priority_badge', 'status',
                    'created_by', 'assigned_to', 'created_at']
    list_filter = ['status', 'priority', 'category', 'created_at']
    search_fields = ['ticket_number', 'title', 'description']
    readonly_fields = ['ticket_number', 'created_by', 'created_at', 'assigned_date', 'resolved_date']
    actions = [export_to_csv]

    @admin.display(description='Priority')
    def priority_badge(self, obj):
        return badge(PRIORITY_COLORS.get(obj.priority, '#6c757d'), obj.priority)

    def has_add_permission(self, request):
        return False
