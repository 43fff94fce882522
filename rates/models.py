from django.db import models


class ExchangeRate(models.Model):
    """
    Taux de change quotidien: 1 unité de currency_from = rate unités de currency_to.
    currency_to est la devise pivot (KZT) pour tous les taux NBK.
    Unique par (from, to, date): un nouveau fetch du même jour écrase la valeur.
    """
    currency_from = models.CharField(max_length=3)
    currency_to = models.CharField(max_length=3, default="KZT")
    rate = models.DecimalField(max_digits=18, decimal_places=6)
    rate_date = models.DateField(db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "exchange_rates"
        ordering = ["-rate_date", "currency_from"]
        constraints = [
            models.UniqueConstraint(fields=["currency_from", "currency_to", "rate_date"], name="uniq_rate_per_day"),
        ]

    def __str__(self) -> str:
        return f"{self.currency_from}->{self.currency_to}={self.rate}@{self.rate_date:%Y-%m-%d}"
