from django.contrib import admin
from .models import AuditEntry


@admin.register(AuditEntry)
class AuditEntryAdmin(admin.ModelAdmin):
    list_display = ["entity_type", "entity_id", "action_type", "field_name", "user_name", "timestamp"]
    list_filter = ["entity_type", "action_type"]
    search_fields = ["entity_id", "user_name", "field_name", "comments"]
    readonly_fields = [field.name for field in AuditEntry._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
