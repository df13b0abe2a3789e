from django.contrib import admin
from .models import QAInspection


@admin.register(QAInspection)
class QAInspectionAdmin(admin.ModelAdmin):
    list_display = ["inspection_number", "title", "status", "inspector", "version", "created_at"]
    list_filter = ["status"]
    search_fields = ["inspection_number", "title", "location"]
    readonly_fields = ["id", "inspection_number", "created_at", "updated_at", "version"]
