from django.contrib import admin
from .models import ExchangeRate


@admin.register(ExchangeRate)
class ExchangeRateAdmin(admin.ModelAdmin):
    list_display = ("id", "currency_from", "currency_to", "rate", "rate_date", "updated_at")
    list_filter = ("currency_from", "currency_to")
    date_hierarchy = "rate_date"
    readonly_fields = ("created_at", "updated_at")
