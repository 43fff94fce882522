import logging
from datetime import date, timedelta
from typing import Iterable, Optional

import httpx
from django.db import DatabaseError, transaction
from django.utils import timezone

from accounts.models import Account
from accounts.services.assignments import billing_enabled_accounts
from core.exceptions import BillingError
from usage.models import Snapshot
from usage.services.sources import FleetUsageSource

logger = logging.getLogger(__name__)


class SnapshotIngestor:
    """
    Snapshot "live" d'un jour: total courant + deltas du jour + désactivés.
    calculator (optionnel): DailyChargeCalculator appelé sur chaque snapshot créé.
    """

    def __init__(self, source: FleetUsageSource, calculator=None):
        self.source = source
        self.calculator = calculator

    def record_account(self, account: Account, snapshot_date: date) -> Snapshot:
        ext_id = account.external_id
        deltas = [d for d in self.source.daily_unit_deltas(ext_id, snapshot_date, snapshot_date)
                  if d.day == snapshot_date]
        snap, _ = Snapshot.objects.update_or_create(
            account=account,
            snapshot_date=snapshot_date,
            defaults={
                "total_units": max(0, self.source.current_unit_usage(ext_id)),
                "units_created": sum(d.created for d in deltas),
                "units_deleted": sum(d.deleted for d in deltas),
                "units_deactivated": self.source.current_deactivated_count(ext_id),
            },
        )
        logger.info("snapshot %s for %s: %d units (+%d/-%d), %d deactivated",
                    snapshot_date, account.name, snap.total_units, snap.units_created,
                    snap.units_deleted, snap.units_deactivated)
        return snap

    def record_daily_snapshots(self, snapshot_date: date,
                               accounts: Optional[Iterable[Account]] = None) -> list[Snapshot]:
        accounts = list(accounts if accounts is not None else billing_enabled_accounts())
        if not accounts:
            logger.info("no billing-enabled accounts to snapshot")
            return []

        prefetch = getattr(self.source, "prefetch", None)
        if prefetch is not None:
            prefetch([a.external_id for a in accounts], snapshot_date, snapshot_date)

        snapshots = []
        for account in accounts:
            try:
                snap = self.record_account(account, snapshot_date)
                if self.calculator is not None:
                    self.calculator.calculate_for_snapshot(snap)
                snapshots.append(snap)
            except (BillingError, httpx.HTTPError, DatabaseError):
                logger.exception("snapshot failed for %s on %s", account.name, snapshot_date)
                continue
        return snapshots

    def ensure_daily_snapshots(self, today: Optional[date] = None) -> list[Snapshot]:
        """
        Idempotent: snapshot d'hier (UTC) pour les comptes qui n'en ont pas encore.
        """
        today = today or timezone.now().date()
        yesterday = today - timedelta(days=1)
        accounts = list(billing_enabled_accounts())
        done = set(Snapshot.objects
                   .filter(snapshot_date=yesterday, account__in=accounts)
                   .values_list("account_id", flat=True))
        missing = [a for a in accounts if a.id not in done]
        if not missing:
            logger.debug("snapshots for %s already present", yesterday)
            return []
        return self.record_daily_snapshots(yesterday, missing)


@transaction.atomic
def clear_all_snapshots() -> int:
    """Purge administrative de tous les snapshots (seul chemin de suppression)."""
    deleted, _ = Snapshot.objects.all().delete()
    logger.warning("cleared %d snapshots", deleted)
    return deleted
