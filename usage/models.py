from django.db import models


class Snapshot(models.Model):
    """
    Relevé quotidien des objets (unités) d'un compte, une ligne par (compte, jour).
    - total_units: objets connus de la source (actifs + désactivés)
    - units_created / units_deleted: deltas du jour
    - units_deactivated: objets désactivés

    Les snapshots reconstitués a posteriori (backfill) reprennent le nombre de
    désactivés *actuel* pour chaque jour de la fenêtre: l'historique des
    désactivations n'est pas reconstitué, c'est une approximation connue.

    Jamais supprimé individuellement (seulement purge globale administrative).
    """
    account = models.ForeignKey("accounts.Account", on_delete=models.CASCADE, related_name="snapshots")
    snapshot_date = models.DateField()
    total_units = models.PositiveIntegerField(default=0)
    units_created = models.PositiveIntegerField(default=0)
    units_deleted = models.PositiveIntegerField(default=0)
    units_deactivated = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "snapshots"
        ordering = ["-snapshot_date"]
        constraints = [
            models.UniqueConstraint(fields=["account", "snapshot_date"], name="uniq_snapshot_per_day"),
        ]
        indexes = [
            models.Index(fields=["snapshot_date"]),
        ]

    def __str__(self) -> str:
        return f"{self.account_id}@{self.snapshot_date:%Y-%m-%d}: {self.total_units} (-{self.units_deactivated})"

    @property
    def active_units(self) -> int:
        return max(0, self.total_units - self.units_deactivated)
