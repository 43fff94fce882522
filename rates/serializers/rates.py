from rest_framework import serializers

from rates.models import ExchangeRate


class ExchangeRateOutSerializer(serializers.ModelSerializer):
    class Meta:
        model = ExchangeRate
        fields = ("id", "currency_from", "currency_to", "rate", "rate_date", "updated_at")
        read_only_fields = fields


class RateFetchSerializer(serializers.Serializer):
    rate_date = serializers.DateField(required=False)


class RateBackfillSerializer(serializers.Serializer):
    date_from = serializers.DateField()
    date_to = serializers.DateField()

    def validate(self, attrs):
        if attrs["date_from"] > attrs["date_to"]:
            raise serializers.ValidationError("date_from must be <= date_to")
        return attrs
