from django.contrib import admin
from .models import DailyCharge, Invoice, InvoiceLine


class InvoiceLineInline(admin.TabularInline):
    model = InvoiceLine
    extra = 0
    readonly_fields = ("module", "module_name", "module_code", "module_unit", "quantity",
                       "unit_price", "total_price", "currency", "pricing_type")


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ("id", "number", "account", "period", "total_amount", "currency", "status", "conversion_complete")
    list_filter = ("status", "currency", "conversion_complete")
    search_fields = ("number", "account__name")
    date_hierarchy = "period"
    readonly_fields = ("created_at", "sent_at", "paid_at", "sequence", "rate_date")
    inlines = [InvoiceLineInline]


@admin.register(DailyCharge)
class DailyChargeAdmin(admin.ModelAdmin):
    list_display = ("id", "account", "charge_date", "module_name", "total_units", "daily_cost", "currency")
    list_filter = ("pricing_type", "currency")
    search_fields = ("account__name", "module_name")
    date_hierarchy = "charge_date"
    readonly_fields = ("created_at", "updated_at")
