from rest_framework import serializers

from usage.models import Snapshot


class SnapshotOutSerializer(serializers.ModelSerializer):
    active_units = serializers.IntegerField(read_only=True)

    class Meta:
        model = Snapshot
        fields = ("id", "account", "snapshot_date", "total_units", "units_created", "units_deleted",
                  "units_deactivated", "active_units", "updated_at")
        read_only_fields = fields


class BackfillSerializer(serializers.Serializer):
    date_from = serializers.DateField()
    date_to = serializers.DateField()
    account_ids = serializers.ListField(child=serializers.IntegerField(), required=False, allow_empty=True)

    def validate(self, attrs):
        if attrs["date_from"] > attrs["date_to"]:
            raise serializers.ValidationError("date_from must be <= date_to")
        return attrs
