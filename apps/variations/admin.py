from django.contrib import admin
from .models import Variation, VariationAttachment


class VariationAttachmentInline(admin.TabularInline):
    model = VariationAttachment
    extra = 0
    readonly_fields = ["id", "file_name", "file_path", "file_size", "file_type", "public_url", "uploaded_by", "created_at"]


@admin.register(Variation)
class VariationAdmin(admin.ModelAdmin):
    list_display = ["variation_number", "title", "status", "cost_impact", "project_id", "created_at"]
    list_filter = ["status", "category", "priority"]
    search_fields = ["variation_number", "title", "client_email"]
    readonly_fields = ["id", "variation_number", "created_at", "updated_at"]
    inlines = [VariationAttachmentInline]
