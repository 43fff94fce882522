from rest_framework import viewsets, mixins, status
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response

from .models import Snapshot
from .serializers.usage import SnapshotOutSerializer, BackfillSerializer
from .services.ingestion import clear_all_snapshots
from .tasks import backfill_snapshots_task


class SnapshotAdminViewSet(viewsets.GenericViewSet, mixins.ListModelMixin):
    """
    Super-admin: lecture des snapshots (filtrable via query params) + backfill.
    """
    permission_classes = [IsAdminUser]
    serializer_class = SnapshotOutSerializer

    def get_queryset(self):
        qs = Snapshot.objects.all().order_by("-snapshot_date", "account_id")
        account_id = self.request.query_params.get("account_id")
        date_from = self.request.query_params.get("from")
        date_to = self.request.query_params.get("to")
        if account_id:
            qs = qs.filter(account_id=account_id)
        if date_from:
            qs = qs.filter(snapshot_date__gte=date_from)
        if date_to:
            qs = qs.filter(snapshot_date__lte=date_to)
        return qs

    @action(detail=False, methods=["post"])
    def backfill(self, request):
        ser = BackfillSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        result = backfill_snapshots_task.delay(
            data["date_from"].isoformat(), data["date_to"].isoformat(), data.get("account_ids") or None
        )
        return Response({"task_id": result.id}, status=status.HTTP_202_ACCEPTED)

    @action(detail=False, methods=["post"])
    def clear(self, request):
        deleted = clear_all_snapshots()
        return Response({"deleted": deleted}, status=status.HTTP_200_OK)
