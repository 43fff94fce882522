import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

import httpx
from django.db import DatabaseError, transaction
from django.utils import timezone

from accounts.models import Account, Module
from accounts.services.assignments import billing_enabled_accounts
from core.config import BillingConfig
from core.dates import as_date, days_in_month, month_start, next_month_start, previous_month_start
from core.exceptions import BillingError, NoModulesAssigned, NoSnapshotsForPeriod, RateUnavailable
from core.money import round_money, round_units
from rates.services.nbk import NbkRateProvider
from rates.services.store import ExchangeRateStore
from usage.models import Snapshot
from billing.models import Invoice, InvoiceLine
from billing.services.charges import DailyChargeCalculator

logger = logging.getLogger(__name__)


@dataclass
class LineDraft:
    module: Module
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    currency: str
    converted: bool = True


def period_active_units(account: Account, period: date) -> int:
    """Somme des objets actifs quotidiens du mois; NoSnapshotsForPeriod si aucun relevé."""
    period = month_start(period)
    rows = list(Snapshot.objects
                .filter(account=account, snapshot_date__gte=period, snapshot_date__lt=next_month_start(period))
                .values_list("total_units", "units_deactivated"))
    if not rows:
        raise NoSnapshotsForPeriod(f"no snapshots for {account.name} in {period:%m.%Y}")
    return sum(max(0, t - d) for t, d in rows)


def average_active_units(account: Account, period: date) -> Decimal:
    """
    Moyenne des objets actifs sur le mois: somme des actifs quotidiens / jours du mois.
    0 sans snapshot. Les jours sans snapshot comptent pour 0.
    """
    try:
        total = period_active_units(account, period)
    except NoSnapshotsForPeriod as e:
        logger.info("%s, average = 0", e)
        return Decimal("0")
    return Decimal(total) / Decimal(days_in_month(period))


def format_invoice_number(contract_number: str, sequence: int) -> str:
    contract_number = (contract_number or "").strip()
    return f"{contract_number}/{sequence}" if contract_number else str(sequence)


class InvoiceGenerator:
    """
    Factures mensuelles: une facture courante par (compte, période), dans la
    devise de facturation du compte.

    - rate_store: conversions (pivot KZT), taux au 1er du mois suivant la période
    - rate_provider: fetch_rates_for_date(date), appelé une fois par date et par instance
    - calculator (optionnel): recalcul des charges avant recalculate_current_period()

    Régénération = verrou du compte + suppression + recréation dans une seule
    transaction; le numéro séquentiel n'est jamais réutilisé.
    """

    def __init__(self, config: BillingConfig, rate_store: ExchangeRateStore,
                 rate_provider=None, calculator=None):
        self.config = config
        self.rate_store = rate_store
        self.rate_provider = rate_provider
        self.calculator = calculator
        self._fetched: set[date] = set()

    # ------------------------------------------------------------------
    # taux
    # ------------------------------------------------------------------
    @staticmethod
    def rate_date_for(period) -> date:
        return next_month_start(period)

    def ensure_rates(self, rate_date: date) -> None:
        if self.rate_provider is None or rate_date in self._fetched:
            return
        self._fetched.add(rate_date)
        try:
            saved = self.rate_provider.fetch_rates_for_date(rate_date)
            logger.info("fetched %s rates for %s", saved, rate_date)
        except (httpx.HTTPError, DatabaseError) as e:
            # la conversion échouera ligne par ligne si le taux manque
            logger.warning("rate fetch for %s failed: %s", rate_date, e)

    # ------------------------------------------------------------------
    # lignes
    # ------------------------------------------------------------------
    def _unit_price(self, module: Module, currency: str, rate_date: date, strict: bool):
        """(prix unitaire arrondi, devise, converti?): convertir puis arrondir."""
        try:
            price = self.rate_store.convert(module.price, module.currency, currency, rate_date)
            return round_money(price), currency, True
        except RateUnavailable as e:
            if strict:
                raise
            logger.warning("module %s left in %s: %s", module.name, module.currency, e)
            return round_money(module.price), module.currency.upper(), False

    @staticmethod
    def billable_modules(account: Account) -> list[Module]:
        modules = account.assigned_modules()
        if not modules:
            raise NoModulesAssigned(f"account {account.name} has no modules")
        return modules

    def build_lines(self, modules, avg_units: Decimal, currency: str, rate_date: date,
                    strict: bool = False) -> list[LineDraft]:
        lines = []
        quantity = round_units(avg_units)
        for module in modules:
            unit_price, line_currency, converted = self._unit_price(module, currency, rate_date, strict)
            if module.is_fixed:
                lines.append(LineDraft(module, Decimal("1"), unit_price, unit_price, line_currency, converted))
            else:
                total = round_money(quantity * unit_price)
                lines.append(LineDraft(module, quantity, unit_price, total, line_currency, converted))
        return lines

    # ------------------------------------------------------------------
    # génération
    # ------------------------------------------------------------------
    def generate_for_account(self, account_id: int, period, strict: Optional[bool] = None) -> Optional[Invoice]:
        """
        Génère (ou régénère) la facture d'un compte pour le mois de `period`.
        Retourne None si aucun module n'est rattaché ou si le total est nul.
        Une erreur de persistance remonte à l'appelant.
        """
        period = month_start(period)
        rate_date = self.rate_date_for(period)
        strict = self.config.strict_conversion if strict is None else strict
        self.ensure_rates(rate_date)

        with transaction.atomic():
            account = Account.objects.select_for_update().get(pk=account_id)
            try:
                modules = self.billable_modules(account)
            except NoModulesAssigned as e:
                logger.info("%s, no invoice", e)
                return None

            currency = self.config.currency_for(account.billing_currency)
            avg_units = average_active_units(account, period)

            deleted, _ = Invoice.objects.filter(account=account, period=period).delete()
            if deleted:
                logger.info("replacing invoice of %s for %s", account.name, period)

            lines = self.build_lines(modules, avg_units, currency, rate_date, strict=strict)
            # best-effort: une ligne non convertie reste dans sa devise et entre telle quelle dans le total
            total = sum((ln.total_price for ln in lines), Decimal("0"))
            if total == 0:
                logger.info("zero total for %s on %s, invoice skipped", account.name, period)
                return None

            account.invoice_sequence += 1
            account.save(update_fields=["invoice_sequence", "updated_at"])

            invoice = Invoice.objects.create(
                account=account,
                period=period,
                number=format_invoice_number(account.contract_number, account.invoice_sequence),
                sequence=account.invoice_sequence,
                total_amount=round_money(total),
                currency=currency,
                rate_date=rate_date,
                conversion_complete=all(ln.converted for ln in lines),
                status=Invoice.STATUS_DRAFT,
            )
            InvoiceLine.objects.bulk_create([
                InvoiceLine(
                    invoice=invoice,
                    module=ln.module,
                    module_name=ln.module.name,
                    module_code=ln.module.code,
                    module_unit=ln.module.unit,
                    quantity=ln.quantity,
                    unit_price=ln.unit_price,
                    total_price=ln.total_price,
                    currency=ln.currency,
                    pricing_type=ln.module.pricing_type,
                )
                for ln in lines
            ])

        logger.info("invoice %s for %s: %s %s (avg %.2f units)",
                    invoice.number, account.name, invoice.total_amount, currency, avg_units)
        return invoice

    def generate_monthly(self, period=None, strict: Optional[bool] = None) -> list[Invoice]:
        """
        Lot mensuel (défaut: mois précédent). Un compte en échec est journalisé
        et le lot continue.
        """
        period = month_start(as_date(period)) if period else previous_month_start(timezone.now().date())
        self.ensure_rates(self.rate_date_for(period))

        invoices = []
        for account in billing_enabled_accounts():
            try:
                invoice = self.generate_for_account(account.id, period, strict=strict)
            except (BillingError, DatabaseError):
                logger.exception("invoice generation failed for %s (%s)", account.name, period)
                continue
            if invoice is not None:
                invoices.append(invoice)

        logger.info("generated %d invoices for %s", len(invoices), period)
        return invoices

    def recalculate_current_period(self, account: Account, today: Optional[date] = None) -> Optional[Invoice]:
        """Recalcule les charges du mois courant puis régénère sa facture."""
        period = month_start(today or timezone.now().date())
        if self.calculator is not None:
            self.calculator.calculate_for_period(account, period.year, period.month)
        return self.generate_for_account(account.id, period)


def build_invoice_generator(config: Optional[BillingConfig] = None) -> InvoiceGenerator:
    config = config or BillingConfig.from_settings()
    store = ExchangeRateStore(config)
    return InvoiceGenerator(
        config,
        rate_store=store,
        rate_provider=NbkRateProvider(config, store=store),
        calculator=DailyChargeCalculator(),
    )
