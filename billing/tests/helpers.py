from datetime import date

from core.dates import date_range
from usage.models import Snapshot


def fill_snapshots(account, date_from: date, date_to: date, total: int, deactivated: int = 0):
    for d in date_range(date_from, date_to):
        Snapshot.objects.update_or_create(
            account=account, snapshot_date=d,
            defaults={"total_units": total, "units_deactivated": deactivated},
        )
