import logging
from datetime import date
from typing import Iterable, Optional, Sequence

import httpx
from django.db import DatabaseError, transaction

from accounts.models import Account
from accounts.services.assignments import billing_enabled_accounts
from core.dates import date_range
from core.exceptions import BillingError
from usage.models import Snapshot
from usage.services.sources import DailyDelta, FleetUsageSource

logger = logging.getLogger(__name__)


def reconstruct_usage(current_usage: int, dates: Sequence[date], deltas: dict) -> dict:
    """
    Série quotidienne reconstituée à rebours depuis le total courant:
        usage[d_i] = max(0, usage[d_i+1] - created[d_i+1] + deleted[d_i+1])
    Le dernier jour reçoit current_usage; une fenêtre d'un jour n'itère pas.
    Un total négatif (deltas incohérents) est ramené à 0 sans erreur.
    """
    if not dates:
        return {}
    usage = {dates[-1]: int(current_usage)}
    for i in range(len(dates) - 2, -1, -1):
        nxt = dates[i + 1]
        delta = deltas.get(nxt)
        created = delta.created if delta else 0
        deleted = delta.deleted if delta else 0
        usage[dates[i]] = max(0, usage[nxt] - created + deleted)
    return usage


class SnapshotReconstructor:
    """
    Backfill des snapshots d'une fenêtre [date_from, date_to] à partir du seul
    total courant et des deltas created/deleted de la source.
    Écritures en upsert (compte, jour): relancer sur une fenêtre qui se recouvre
    écrase simplement les valeurs précédentes.
    """

    def __init__(self, source: FleetUsageSource):
        self.source = source

    def backfill_account(self, account: Account, date_from: date, date_to: date) -> list[Snapshot]:
        if date_from > date_to:
            raise ValueError("date_from must be <= date_to")

        dates = list(date_range(date_from, date_to))
        current = self.source.current_unit_usage(account.external_id)
        deltas = {d.day: d for d in self.source.daily_unit_deltas(account.external_id, date_from, date_to)}
        # Désactivés d'aujourd'hui appliqués à toute la fenêtre (pas d'historique)
        deactivated = self.source.current_deactivated_count(account.external_id)

        usage = reconstruct_usage(current, dates, deltas)

        snapshots = []
        with transaction.atomic():
            for d in dates:
                delta = deltas.get(d) or DailyDelta(day=d)
                snap, _ = Snapshot.objects.update_or_create(
                    account=account,
                    snapshot_date=d,
                    defaults={
                        "total_units": usage[d],
                        "units_created": delta.created,
                        "units_deleted": delta.deleted,
                        "units_deactivated": deactivated,
                    },
                )
                snapshots.append(snap)

        logger.info("backfilled %d snapshots for %s (usage %d -> %d)",
                    len(dates), account.name, usage[dates[0]], current)
        return snapshots

    def backfill(self, date_from: date, date_to: date,
                 accounts: Optional[Iterable[Account]] = None) -> list[Snapshot]:
        """Backfill multi-comptes; un compte en échec est journalisé puis ignoré."""
        accounts = list(accounts if accounts is not None else billing_enabled_accounts())
        if not accounts:
            logger.info("no billing-enabled accounts to backfill")
            return []

        prefetch = getattr(self.source, "prefetch", None)
        if prefetch is not None:
            prefetch([a.external_id for a in accounts], date_from, date_to)

        result = []
        for account in accounts:
            try:
                result.extend(self.backfill_account(account, date_from, date_to))
            except (BillingError, httpx.HTTPError, DatabaseError):
                logger.exception("backfill failed for %s", account.name)
                continue
        return result
