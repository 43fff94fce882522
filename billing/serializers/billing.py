from rest_framework import serializers

from billing.models import DailyCharge, Invoice, InvoiceLine


class DailyChargeOutSerializer(serializers.ModelSerializer):
    class Meta:
        model = DailyCharge
        fields = ("id", "account", "module", "charge_date", "total_units", "module_name", "pricing_type",
                  "unit_price", "currency", "days_in_month", "daily_cost", "updated_at")
        read_only_fields = fields


class InvoiceLineOutSerializer(serializers.ModelSerializer):
    class Meta:
        model = InvoiceLine
        fields = ("id", "module", "module_name", "module_code", "module_unit", "quantity",
                  "unit_price", "total_price", "currency", "pricing_type")
        read_only_fields = fields


class InvoiceOutSerializer(serializers.ModelSerializer):
    lines = InvoiceLineOutSerializer(many=True, read_only=True)
    mixed_currencies = serializers.SerializerMethodField()

    class Meta:
        model = Invoice
        fields = ("id", "account", "period", "number", "sequence", "total_amount", "currency",
                  "rate_date", "conversion_complete", "mixed_currencies", "status",
                  "created_at", "sent_at", "paid_at", "lines")
        read_only_fields = fields

    def get_mixed_currencies(self, obj: Invoice) -> bool:
        # total_amount additionne alors des lignes restées dans la devise du module
        return not obj.conversion_complete


class ChargesSummaryQuerySerializer(serializers.Serializer):
    account_id = serializers.IntegerField()
    year = serializers.IntegerField(min_value=2000, max_value=2100)
    month = serializers.IntegerField(min_value=1, max_value=12)


class RecalculateSerializer(serializers.Serializer):
    account_id = serializers.IntegerField()
    year = serializers.IntegerField(min_value=2000, max_value=2100)
    month = serializers.IntegerField(min_value=1, max_value=12)


class GenerateInvoicesSerializer(serializers.Serializer):
    """year + month (défaut: mois précédent), account_id optionnel."""
    year = serializers.IntegerField(min_value=2000, max_value=2100, required=False)
    month = serializers.IntegerField(min_value=1, max_value=12, required=False)
    account_id = serializers.IntegerField(required=False)

    def validate(self, attrs):
        if ("year" in attrs) != ("month" in attrs):
            raise serializers.ValidationError("year and month must be given together")
        return attrs
