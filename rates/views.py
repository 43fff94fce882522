from datetime import date

import httpx
from rest_framework import viewsets, mixins, status
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response

from core.config import BillingConfig
from .models import ExchangeRate
from .serializers.rates import ExchangeRateOutSerializer, RateFetchSerializer, RateBackfillSerializer
from .services.nbk import NbkRateProvider
from .services.store import ExchangeRateStore
from .tasks import backfill_rates_task


class ExchangeRateAdminViewSet(viewsets.GenericViewSet, mixins.ListModelMixin):
    """
    Super-admin: lecture des taux + récupération manuelle NBK.
    """
    permission_classes = [IsAdminUser]
    serializer_class = ExchangeRateOutSerializer

    def get_queryset(self):
        qs = ExchangeRate.objects.all().order_by("-rate_date", "currency_from")
        currency = self.request.query_params.get("currency")
        date_from = self.request.query_params.get("from")
        date_to = self.request.query_params.get("to")
        if currency:
            qs = qs.filter(currency_from=currency.upper())
        if date_from:
            qs = qs.filter(rate_date__gte=date_from)
        if date_to:
            qs = qs.filter(rate_date__lte=date_to)
        return qs

    @action(detail=False, methods=["get"])
    def latest(self, request):
        store = ExchangeRateStore(BillingConfig.from_settings())
        return Response({k: str(v) for k, v in store.latest_rates().items()})

    @action(detail=False, methods=["post"])
    def fetch(self, request):
        ser = RateFetchSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        rate_date = ser.validated_data.get("rate_date") or date.today()
        provider = NbkRateProvider(BillingConfig.from_settings())
        try:
            saved = provider.fetch_rates_for_date(rate_date)
        except httpx.HTTPError as e:
            return Response({"detail": f"rate provider error: {e}"}, status=status.HTTP_502_BAD_GATEWAY)
        return Response({"rate_date": rate_date.isoformat(), "saved": saved}, status=status.HTTP_200_OK)

    @action(detail=False, methods=["post"])
    def backfill(self, request):
        ser = RateBackfillSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        result = backfill_rates_task.delay(
            ser.validated_data["date_from"].isoformat(), ser.validated_data["date_to"].isoformat()
        )
        return Response({"task_id": result.id}, status=status.HTTP_202_ACCEPTED)
