from django.contrib import admin
from .models import Account, Module, AccountModule


class AccountModuleInline(admin.TabularInline):
    model = AccountModule
    extra = 0


@admin.register(Module)
class ModuleAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "code", "price", "currency", "pricing_type", "billing_type", "created_at")
    list_filter = ("pricing_type", "billing_type", "currency")
    search_fields = ("name", "code")
    readonly_fields = ("created_at",)


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "external_id", "billing_currency", "is_billing_enabled", "contract_number", "invoice_sequence")
    list_filter = ("is_billing_enabled", "billing_currency", "is_active")
    search_fields = ("name", "external_id", "contract_number")
    readonly_fields = ("created_at", "updated_at", "invoice_sequence")
    inlines = [AccountModuleInline]
