from django.db import transaction
from django.shortcuts import get_object_or_404
from rest_framework import viewsets, status, mixins
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response

from billing.api import RateUnavailableError
from billing.serializers.billing import InvoiceOutSerializer
from billing.services.invoicing import build_invoice_generator
from core.exceptions import RateUnavailable
from ..models import Account, Module
from ..serializers.accounts import (
    AccountOutSerializer, AccountUpdateSerializer,
    ModuleOutSerializer, ModuleCreateUpdateSerializer,
    BulkAssignSerializer, BulkCurrencySerializer, RegenerateInvoiceSerializer,
)
from ..services.assignments import assign_module_bulk, unassign_module_bulk, set_currency_bulk
from ..services.assignments import toggle_billing as toggle_account_billing


class AccountAdminViewSet(viewsets.GenericViewSet,
                          mixins.ListModelMixin,
                          mixins.RetrieveModelMixin):
    """
    Super-admin: comptes + actions (facturation on/off, devise, régénération de facture).
    """
    permission_classes = [IsAdminUser]
    serializer_class = AccountOutSerializer
    queryset = Account.objects.prefetch_related("modules").all().order_by("name")
    filterset_fields = ("is_billing_enabled", "is_active", "billing_currency")
    search_fields = ("name", "contract_number")

    @transaction.atomic
    def partial_update(self, request, pk=None):
        account = get_object_or_404(Account, pk=pk)
        ser = AccountUpdateSerializer(instance=account, data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        ser.save()
        return Response(AccountOutSerializer(account).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="toggle-billing")
    def toggle_billing(self, request, pk=None):
        account = toggle_account_billing(get_object_or_404(Account, pk=pk))
        return Response({"id": account.id, "is_billing_enabled": account.is_billing_enabled},
                        status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="regenerate-invoice")
    def regenerate_invoice(self, request, pk=None):
        account = get_object_or_404(Account, pk=pk)
        ser = RegenerateInvoiceSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            invoice = build_invoice_generator().generate_for_account(account.id, ser.validated_data["period"])
        except RateUnavailable as e:
            raise RateUnavailableError(str(e))
        if invoice is None:
            return Response({"detail": "nothing to invoice"}, status=status.HTTP_200_OK)
        return Response(InvoiceOutSerializer(invoice).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"], url_path="set-currency")
    def set_currency(self, request):
        ser = BulkCurrencySerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        updated = set_currency_bulk(ser.validated_data["account_ids"], ser.validated_data["currency"])
        return Response({"updated": updated}, status=status.HTTP_200_OK)


class ModuleAdminViewSet(viewsets.GenericViewSet,
                         mixins.ListModelMixin,
                         mixins.RetrieveModelMixin):
    """
    Super-admin: catalogue des modules + rattachements en masse.
    """
    permission_classes = [IsAdminUser]
    serializer_class = ModuleOutSerializer
    queryset = Module.objects.all().order_by("name")
    filterset_fields = ("pricing_type", "billing_type", "currency")

    @transaction.atomic
    def create(self, request):
        ser = ModuleCreateUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        module = ser.save()
        return Response(ModuleOutSerializer(module).data, status=status.HTTP_201_CREATED)

    @transaction.atomic
    def partial_update(self, request, pk=None):
        module = get_object_or_404(Module, pk=pk)
        ser = ModuleCreateUpdateSerializer(instance=module, data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        ser.save()
        return Response(ModuleOutSerializer(module).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=["post"])
    def assign(self, request):
        ser = BulkAssignSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        module = get_object_or_404(Module, pk=ser.validated_data["module_id"])
        created = assign_module_bulk(module, ser.validated_data["account_ids"])
        return Response({"assigned": created}, status=status.HTTP_200_OK)

    @action(detail=False, methods=["post"])
    def unassign(self, request):
        ser = BulkAssignSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        module = get_object_or_404(Module, pk=ser.validated_data["module_id"])
        deleted = unassign_module_bulk(module, ser.validated_data["account_ids"])
        return Response({"unassigned": deleted}, status=status.HTTP_200_OK)
