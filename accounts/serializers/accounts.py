from rest_framework import serializers

from ..models import Account, Module


class ModuleOutSerializer(serializers.ModelSerializer):
    class Meta:
        model = Module
        fields = ("id", "name", "code", "description", "unit", "price", "currency",
                  "pricing_type", "billing_type", "created_at")
        read_only_fields = ("id", "created_at")


class ModuleCreateUpdateSerializer(serializers.ModelSerializer):
    class Meta:
        model = Module
        fields = ("name", "code", "description", "unit", "price", "currency", "pricing_type", "billing_type")

    def validate_currency(self, value: str) -> str:
        value = (value or "").strip().upper()
        if len(value) != 3:
            raise serializers.ValidationError("currency must be a 3-letter ISO code")
        return value

    def validate_price(self, value):
        if value < 0:
            raise serializers.ValidationError("price must be >= 0")
        return value


class AccountOutSerializer(serializers.ModelSerializer):
    modules = serializers.SerializerMethodField()

    class Meta:
        model = Account
        fields = (
            "id", "external_id", "name", "billing_currency", "is_billing_enabled", "is_active",
            "contract_number", "contract_date", "buyer_name", "buyer_email",
            "invoice_sequence", "modules", "created_at", "updated_at",
        )
        read_only_fields = fields

    def get_modules(self, obj: Account):
        return [{"id": m.id, "name": m.name, "pricing_type": m.pricing_type} for m in obj.modules.all()]


class AccountUpdateSerializer(serializers.ModelSerializer):
    class Meta:
        model = Account
        fields = ("name", "billing_currency", "is_billing_enabled", "is_active",
                  "contract_number", "contract_date", "buyer_name", "buyer_email")

    def validate_billing_currency(self, value: str) -> str:
        value = (value or "").strip().upper()
        if len(value) != 3:
            raise serializers.ValidationError("currency must be a 3-letter ISO code")
        return value


class BulkAssignSerializer(serializers.Serializer):
    module_id = serializers.IntegerField()
    account_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)


class BulkCurrencySerializer(serializers.Serializer):
    account_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
    currency = serializers.CharField(min_length=3, max_length=3)


class RegenerateInvoiceSerializer(serializers.Serializer):
    period = serializers.DateField(help_text="any day of the billed month")
