from django.db import models
from django.utils import timezone


class Module(models.Model):
    """
    Module facturable (service / fonctionnalité).
    - pricing_type: per_unit (prix mensuel par objet actif) | fixed (forfait mensuel)
    - billing_type: monthly | one_time
    - price + currency: copiés dans les charges et lignes de facture au moment du calcul
    - unit: libellé d'unité affiché sur la facture (ex: "объект", "шт")
    """
    PRICING_PER_UNIT = "per_unit"
    PRICING_FIXED = "fixed"
    PRICING_CHOICES = [
        (PRICING_PER_UNIT, "Per unit"),
        (PRICING_FIXED, "Fixed"),
    ]

    BILLING_MONTHLY = "monthly"
    BILLING_ONE_TIME = "one_time"
    BILLING_CHOICES = [
        (BILLING_MONTHLY, "Monthly"),
        (BILLING_ONE_TIME, "One time"),
    ]

    name = models.CharField(max_length=255)
    code = models.CharField(max_length=64, blank=True, default="")
    description = models.TextField(blank=True, default="")
    unit = models.CharField(max_length=32, blank=True, default="unit")
    price = models.DecimalField(max_digits=14, decimal_places=2)
    currency = models.CharField(max_length=3)
    pricing_type = models.CharField(max_length=16, choices=PRICING_CHOICES, default=PRICING_PER_UNIT)
    billing_type = models.CharField(max_length=16, choices=BILLING_CHOICES, default=BILLING_MONTHLY)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "modules"
        ordering = ["name"]

    def __str__(self) -> str:
        return f"{self.name} ({self.price} {self.currency}, {self.pricing_type})"

    @property
    def is_fixed(self) -> bool:
        return self.pricing_type == self.PRICING_FIXED


class Account(models.Model):
    """
    Compte de la plateforme de suivi de flotte.
    - external_id: identifiant du compte côté source (Wialon)
    - billing_currency: devise de facturation (figée dans chaque facture générée)
    - is_billing_enabled: participe aux snapshots / factures automatiques
    - contract_number: préfixe du numéro de facture ("{contrat}/{séquence}")
    - invoice_sequence: dernier numéro séquentiel attribué (jamais réutilisé)
    """
    external_id = models.BigIntegerField(unique=True, db_index=True)
    name = models.CharField(max_length=255)
    billing_currency = models.CharField(max_length=3, default="KZT")
    is_billing_enabled = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    contract_number = models.CharField(max_length=50, blank=True, default="")
    contract_date = models.DateField(null=True, blank=True)
    buyer_name = models.CharField(max_length=255, blank=True, default="")
    buyer_email = models.EmailField(blank=True, default="")

    invoice_sequence = models.PositiveIntegerField(default=0)
    modules = models.ManyToManyField(Module, through="AccountModule", related_name="accounts", blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "accounts"
        ordering = ["name"]

    def __str__(self) -> str:
        return f"{self.name} [{self.external_id}]"

    def assigned_modules(self):
        return list(self.modules.all().order_by("id"))


class AccountModule(models.Model):
    account = models.ForeignKey(Account, on_delete=models.CASCADE, related_name="module_links")
    module = models.ForeignKey(Module, on_delete=models.CASCADE, related_name="account_links")
    activated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "account_modules"
        constraints = [
            models.UniqueConstraint(fields=["account", "module"], name="uniq_account_module"),
        ]

    def __str__(self) -> str:
        return f"{self.account_id}:{self.module_id}"
