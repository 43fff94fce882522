from collections import defaultdict
from decimal import Decimal

from django.db.models import Count, Sum

from accounts.models import Account
from core.dates import month_bounds
from core.money import round_money
from billing.models import DailyCharge


def charges_summary(account: Account, year: int, month: int) -> dict:
    """
    Agrégats des charges journalières d'un compte pour un mois:
    totaux par module (unités, coût, jours, moyennes) et par devise.
    """
    start, end = month_bounds(year, month)
    rows = (DailyCharge.objects
            .filter(account=account, charge_date__gte=start, charge_date__lte=end)
            .values("module_id", "module_name", "pricing_type", "currency")
            .annotate(units=Sum("total_units"), cost=Sum("daily_cost"), days=Count("id"))
            .order_by("module_name"))

    modules = []
    by_currency: dict[str, Decimal] = defaultdict(Decimal)
    for r in rows:
        days = r["days"] or 0
        cost = r["cost"] or Decimal("0")
        units = r["units"] or 0
        modules.append({
            "module_id": r["module_id"],
            "module_name": r["module_name"],
            "pricing_type": r["pricing_type"],
            "currency": r["currency"],
            "days": days,
            "total_units": units,
            "total_cost": round_money(cost),
            "avg_units": round_money(Decimal(units) / days) if days else Decimal("0.00"),
            "avg_daily_cost": round_money(cost / days) if days else Decimal("0.00"),
        })
        by_currency[r["currency"]] += cost

    return {
        "account_id": account.id,
        "period": start.isoformat(),
        "modules": modules,
        "totals": {cur: round_money(v) for cur, v in sorted(by_currency.items())},
    }
