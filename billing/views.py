from datetime import date

from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import viewsets, mixins, status
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response

from accounts.models import Account
from core.dates import previous_month_start
from core.exceptions import InvalidInvoiceTransition, RateUnavailable
from .api import InvoiceTransitionError, RateUnavailableError
from .models import DailyCharge, Invoice
from .serializers.billing import (
    DailyChargeOutSerializer, InvoiceOutSerializer,
    ChargesSummaryQuerySerializer, RecalculateSerializer, GenerateInvoicesSerializer,
)
from .services.charges import DailyChargeCalculator
from .services.invoicing import build_invoice_generator
from .services.reports import charges_summary


class DailyChargeAdminViewSet(viewsets.GenericViewSet, mixins.ListModelMixin):
    """
    Super-admin: charges journalières (filtrables) + agrégat mensuel + recalcul.
    """
    permission_classes = [IsAdminUser]
    serializer_class = DailyChargeOutSerializer

    def get_queryset(self):
        qs = DailyCharge.objects.all().order_by("-charge_date", "module_name")
        account_id = self.request.query_params.get("account_id")
        module_id = self.request.query_params.get("module_id")
        date_from = self.request.query_params.get("from")
        date_to = self.request.query_params.get("to")
        if account_id:
            qs = qs.filter(account_id=account_id)
        if module_id:
            qs = qs.filter(module_id=module_id)
        if date_from:
            qs = qs.filter(charge_date__gte=date_from)
        if date_to:
            qs = qs.filter(charge_date__lte=date_to)
        return qs

    @action(detail=False, methods=["get"])
    def summary(self, request):
        ser = ChargesSummaryQuerySerializer(data=request.query_params)
        ser.is_valid(raise_exception=True)
        account = get_object_or_404(Account, pk=ser.validated_data["account_id"])
        return Response(charges_summary(account, ser.validated_data["year"], ser.validated_data["month"]))

    @action(detail=False, methods=["post"])
    def recalculate(self, request):
        ser = RecalculateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        account = get_object_or_404(Account, pk=ser.validated_data["account_id"])
        charges = DailyChargeCalculator().calculate_for_period(
            account, ser.validated_data["year"], ser.validated_data["month"]
        )
        return Response({"charges": len(charges)}, status=status.HTTP_200_OK)


class InvoiceAdminViewSet(viewsets.GenericViewSet,
                          mixins.ListModelMixin,
                          mixins.RetrieveModelMixin):
    """
    Super-admin: factures + transitions de statut.
    """
    permission_classes = [IsAdminUser]
    serializer_class = InvoiceOutSerializer
    filterset_fields = ("account", "status", "period", "currency")

    def get_queryset(self):
        return Invoice.objects.select_related("account").prefetch_related("lines").order_by("-period", "account_id")

    def _transition(self, pk, method: str):
        invoice = get_object_or_404(Invoice, pk=pk)
        try:
            getattr(invoice, method)()
        except InvalidInvoiceTransition as e:
            raise InvoiceTransitionError(str(e))
        return Response(InvoiceOutSerializer(invoice).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="mark-sent")
    def mark_sent(self, request, pk=None):
        return self._transition(pk, "mark_sent")

    @action(detail=True, methods=["post"], url_path="mark-paid")
    def mark_paid(self, request, pk=None):
        return self._transition(pk, "mark_paid")

    @action(detail=True, methods=["post"], url_path="mark-overdue")
    def mark_overdue(self, request, pk=None):
        return self._transition(pk, "mark_overdue")

    @action(detail=False, methods=["post"])
    def generate(self, request):
        """
        Génération à la demande: lot complet ou un seul compte (account_id),
        pour year/month ou, par défaut, le mois précédent.
        """
        ser = GenerateInvoicesSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        if "year" in data:
            period = date(data["year"], data["month"], 1)
        else:
            period = previous_month_start(timezone.now().date())

        generator = build_invoice_generator()
        try:
            if data.get("account_id"):
                account = get_object_or_404(Account, pk=data["account_id"])
                invoice = generator.generate_for_account(account.id, period)
                invoices = [invoice] if invoice is not None else []
            else:
                invoices = generator.generate_monthly(period)
        except RateUnavailable as e:
            raise RateUnavailableError(str(e))

        return Response({
            "period": period.isoformat(),
            "generated": len(invoices),
            "invoices": InvoiceOutSerializer(invoices, many=True).data,
        }, status=status.HTTP_200_OK)
