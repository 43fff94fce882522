from django.contrib import admin
from .models import Snapshot


@admin.register(Snapshot)
class SnapshotAdmin(admin.ModelAdmin):
    list_display = ("id", "account", "snapshot_date", "total_units", "units_created", "units_deleted", "units_deactivated")
    search_fields = ("account__name",)
    date_hierarchy = "snapshot_date"
    readonly_fields = ("created_at", "updated_at")
