import logging
from decimal import Decimal

from django.db import transaction

from accounts.models import Account, Module
from core.dates import days_in_month, month_bounds
from core.money import to_decimal
from usage.models import Snapshot
from billing.models import DailyCharge

logger = logging.getLogger(__name__)

DAILY_COST_QUANT = Decimal("0.000001")


def compute_daily_cost(module: Module, active_units: int, charge_date) -> Decimal | None:
    """
    Coût d'un module pour un jour:
      - fixed: prix complet le 1er du mois, None les autres jours (pas de ligne)
      - per_unit: prix * actifs / jours du mois
    """
    if module.is_fixed:
        if charge_date.day != 1:
            return None
        return to_decimal(module.price)
    cost = to_decimal(module.price) * Decimal(active_units) / Decimal(days_in_month(charge_date))
    return cost.quantize(DAILY_COST_QUANT)


class DailyChargeCalculator:
    """
    Charges journalières dérivées d'un snapshot et des modules *actuellement*
    rattachés au compte. Aucune autre entrée: relancer donne le même résultat.
    """

    def calculate_for_snapshot(self, snapshot: Snapshot, modules=None) -> list[DailyCharge]:
        account = snapshot.account
        modules = modules if modules is not None else account.assigned_modules()
        charge_date = snapshot.snapshot_date
        active = snapshot.active_units
        dim = days_in_month(charge_date)

        charges = []
        for module in modules:
            cost = compute_daily_cost(module, active, charge_date)
            if cost is None:
                # forfait hors 1er du mois: aucune ligne (et pas de reliquat)
                DailyCharge.objects.filter(account=account, charge_date=charge_date, module=module).delete()
                continue
            charge, _ = DailyCharge.objects.update_or_create(
                account=account,
                charge_date=charge_date,
                module=module,
                defaults={
                    "snapshot": snapshot,
                    "total_units": active,
                    "module_name": module.name,
                    "pricing_type": module.pricing_type,
                    "unit_price": module.price,
                    "currency": module.currency,
                    "days_in_month": dim,
                    "daily_cost": cost,
                },
            )
            charges.append(charge)
        return charges

    @transaction.atomic
    def calculate_for_period(self, account: Account, year: int, month: int) -> list[DailyCharge]:
        """
        Recalcul d'un mois complet: purge des charges du mois puis recalcul
        depuis les snapshots du mois.
        """
        start, end = month_bounds(year, month)
        deleted, _ = DailyCharge.objects.filter(
            account=account, charge_date__gte=start, charge_date__lte=end
        ).delete()

        modules = account.assigned_modules()
        snapshots = (Snapshot.objects
                     .filter(account=account, snapshot_date__gte=start, snapshot_date__lte=end)
                     .select_related("account")
                     .order_by("snapshot_date"))
        charges = []
        for snap in snapshots:
            charges.extend(self.calculate_for_snapshot(snap, modules=modules))

        logger.info("recomputed %d daily charges for %s %02d.%d (%d removed)",
                    len(charges), account.name, month, year, deleted)
        return charges
