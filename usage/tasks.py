import logging

from celery import shared_task

from accounts.models import Account
from accounts.services.assignments import billing_enabled_accounts
from core.config import BillingConfig
from core.dates import as_date, date_range
from usage.services.ingestion import SnapshotIngestor
from usage.services.reconstruct import SnapshotReconstructor
from usage.services.sources import build_usage_source
from billing.services.charges import DailyChargeCalculator

logger = logging.getLogger(__name__)


@shared_task
def ensure_daily_snapshots_task():
    """Snapshot d'hier + charges du jour (idempotent, planifié toutes les heures)."""
    source = build_usage_source(BillingConfig.from_settings())
    try:
        snapshots = SnapshotIngestor(source, calculator=DailyChargeCalculator()).ensure_daily_snapshots()
    finally:
        source.close()
    return len(snapshots)


@shared_task
def backfill_snapshots_task(date_from: str, date_to: str, account_ids: list[int] | None = None):
    """
    Reconstitution des snapshots [date_from, date_to] puis recalcul des charges
    des mois touchés.
    """
    d_from, d_to = as_date(date_from), as_date(date_to)
    accounts = (list(Account.objects.filter(id__in=account_ids).prefetch_related("modules"))
                if account_ids else list(billing_enabled_accounts()))

    source = build_usage_source(BillingConfig.from_settings())
    try:
        snapshots = SnapshotReconstructor(source).backfill(d_from, d_to, accounts)
    finally:
        source.close()

    months = sorted({(d.year, d.month) for d in date_range(d_from, d_to)})
    calculator = DailyChargeCalculator()
    done = {s.account_id for s in snapshots}
    for account in accounts:
        if account.id not in done:
            continue
        for year, month in months:
            calculator.calculate_for_period(account, year, month)

    logger.info("backfill %s..%s: %d snapshots, %d accounts", d_from, d_to, len(snapshots), len(done))
    return {"snapshots": len(snapshots), "accounts": len(done)}
