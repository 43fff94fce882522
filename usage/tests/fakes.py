from datetime import date

from usage.services.sources import DailyDelta


class FakeUsageSource:
    """Source de flotte en mémoire: {external_id: (usage, {jour: (created, deleted)}, désactivés)}."""

    def __init__(self, data: dict):
        self.data = data
        self.prefetched = []

    def current_unit_usage(self, external_id: int) -> int:
        return self.data[external_id][0]

    def daily_unit_deltas(self, external_id: int, date_from: date, date_to: date):
        return [DailyDelta(day=d, created=c, deleted=dl)
                for d, (c, dl) in sorted(self.data[external_id][1].items())
                if date_from <= d <= date_to]

    def current_deactivated_count(self, external_id: int) -> int:
        return self.data[external_id][2]

    def prefetch(self, external_ids, date_from, date_to):
        self.prefetched.append((list(external_ids), date_from, date_to))
