from django.db import models
from django.utils import timezone

from core.exceptions import InvalidInvoiceTransition


class DailyCharge(models.Model):
    """
    Charge journalière d'un module pour un compte, unique par (compte, jour, module),
    réécrite (upsert) à chaque recalcul.
    - total_units: objets actifs du jour (total - désactivés, >= 0)
    - module_name / pricing_type / unit_price / currency: copie figée du module
    - days_in_month: nombre de jours du mois (amortissement per_unit)
    - daily_cost: price * active / days_in_month (per_unit) ou price le 1er (fixed)
    """
    account = models.ForeignKey("accounts.Account", on_delete=models.CASCADE, related_name="daily_charges")
    snapshot = models.ForeignKey("usage.Snapshot", on_delete=models.SET_NULL, null=True, blank=True,
                                 related_name="daily_charges")
    module = models.ForeignKey("accounts.Module", on_delete=models.CASCADE, related_name="daily_charges")
    charge_date = models.DateField()
    total_units = models.PositiveIntegerField(default=0)
    module_name = models.CharField(max_length=255)
    pricing_type = models.CharField(max_length=16)
    unit_price = models.DecimalField(max_digits=14, decimal_places=2)
    currency = models.CharField(max_length=3)
    days_in_month = models.PositiveSmallIntegerField()
    daily_cost = models.DecimalField(max_digits=18, decimal_places=6)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "daily_charges"
        ordering = ["charge_date", "module_id"]
        constraints = [
            models.UniqueConstraint(fields=["account", "charge_date", "module"], name="uniq_daily_charge"),
        ]
        indexes = [
            models.Index(fields=["account", "charge_date"]),
        ]

    def __str__(self) -> str:
        return f"{self.account_id}:{self.module_name}@{self.charge_date:%Y-%m-%d}={self.daily_cost} {self.currency}"


class Invoice(models.Model):
    """
    Facture mensuelle d'un compte: une facture *courante* par (compte, période).
    period: 1er jour du mois facturé. Régénérer supprime l'ancienne facture et
    ses lignes puis en crée une nouvelle (pas de versionnement).
    conversion_complete: False si au moins une ligne est restée dans sa devise d'origine;
    total_amount est alors une somme de devises mélangées (exposé par l'API en mixed_currencies).
    """
    STATUS_DRAFT = "draft"
    STATUS_SENT = "sent"
    STATUS_PAID = "paid"
    STATUS_OVERDUE = "overdue"
    STATUS_CHOICES = [
        (STATUS_DRAFT, "Draft"),
        (STATUS_SENT, "Sent"),
        (STATUS_PAID, "Paid"),
        (STATUS_OVERDUE, "Overdue"),
    ]

    # statut courant -> statuts autorisés
    TRANSITIONS = {
        STATUS_DRAFT: {STATUS_SENT, STATUS_PAID, STATUS_OVERDUE},
        STATUS_SENT: {STATUS_PAID, STATUS_OVERDUE},
        STATUS_OVERDUE: {STATUS_PAID},
        STATUS_PAID: set(),
    }

    account = models.ForeignKey("accounts.Account", on_delete=models.CASCADE, related_name="invoices")
    period = models.DateField()
    number = models.CharField(max_length=64)
    sequence = models.PositiveIntegerField()
    total_amount = models.DecimalField(max_digits=16, decimal_places=2)
    currency = models.CharField(max_length=3)
    rate_date = models.DateField(null=True, blank=True)
    conversion_complete = models.BooleanField(default=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_DRAFT)
    created_at = models.DateTimeField(auto_now_add=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "invoices"
        ordering = ["-period", "account_id"]
        constraints = [
            models.UniqueConstraint(fields=["account", "period"], name="uniq_invoice_per_period"),
        ]

    def __str__(self) -> str:
        return f"Invoice {self.number} ({self.period:%m.%Y}, {self.total_amount} {self.currency}, {self.status})"

    def _transition(self, status: str, **stamps):
        if status not in self.TRANSITIONS.get(self.status, set()):
            raise InvalidInvoiceTransition(f"{self.status} -> {status}")
        self.status = status
        for field, value in stamps.items():
            setattr(self, field, value)
        self.save(update_fields=["status", *stamps.keys()])

    def mark_sent(self):
        self._transition(self.STATUS_SENT, sent_at=timezone.now())

    def mark_paid(self):
        self._transition(self.STATUS_PAID, paid_at=timezone.now())

    def mark_overdue(self):
        self._transition(self.STATUS_OVERDUE)


class InvoiceLine(models.Model):
    """
    Ligne de facture: copie figée du module (nom/code/unité), jamais modifiée
    hors régénération complète de la facture.
    """
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="lines")
    module = models.ForeignKey("accounts.Module", on_delete=models.SET_NULL, null=True, blank=True,
                               related_name="invoice_lines")
    module_name = models.CharField(max_length=255)
    module_code = models.CharField(max_length=64, blank=True, default="")
    module_unit = models.CharField(max_length=32, blank=True, default="")
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    unit_price = models.DecimalField(max_digits=16, decimal_places=2)
    total_price = models.DecimalField(max_digits=16, decimal_places=2)
    currency = models.CharField(max_length=3)
    pricing_type = models.CharField(max_length=16)

    class Meta:
        db_table = "invoice_lines"
        ordering = ["id"]

    def __str__(self) -> str:
        return f"{self.module_name}: {self.quantity} x {self.unit_price} = {self.total_price} {self.currency}"
