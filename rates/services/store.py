import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from core.config import BillingConfig
from core.exceptions import RateUnavailable
from core.money import to_decimal
from rates.models import ExchangeRate

logger = logging.getLogger(__name__)


class ExchangeRateStore:
    """
    Lecture/écriture des taux et conversion via la devise pivot.
    Aucune valeur par défaut: un taux absent lève RateUnavailable.
    """

    def __init__(self, config: BillingConfig):
        self.config = config
        self.pivot = config.pivot_currency

    def save_rate(self, currency_from: str, rate, rate_date: date,
                  currency_to: Optional[str] = None) -> ExchangeRate:
        obj, _ = ExchangeRate.objects.update_or_create(
            currency_from=currency_from.upper(),
            currency_to=(currency_to or self.pivot).upper(),
            rate_date=rate_date,
            defaults={"rate": to_decimal(rate)},
        )
        return obj

    def get_rate(self, currency: str, rate_date: date) -> Decimal:
        """Taux currency -> pivot à la date exacte."""
        row = (ExchangeRate.objects
               .filter(currency_from=currency.upper(), currency_to=self.pivot, rate_date=rate_date)
               .values_list("rate", flat=True)
               .first())
        if row is None:
            raise RateUnavailable(currency.upper(), rate_date)
        return row

    def rates_available(self, rate_date: date, currency: Optional[str] = None) -> bool:
        currency = (currency or self.config.reference_currency).upper()
        return ExchangeRate.objects.filter(
            currency_from=currency, currency_to=self.pivot, rate_date=rate_date
        ).exists()

    def convert(self, amount, currency_from: str, currency_to: str, rate_date: date) -> Decimal:
        """
        amount(from) -> pivot -> to. Chaque taux manquant lève RateUnavailable.
        """
        amount = to_decimal(amount)
        currency_from, currency_to = currency_from.upper(), currency_to.upper()
        if currency_from == currency_to:
            return amount

        if currency_from == self.pivot:
            local = amount
        else:
            local = amount * self.get_rate(currency_from, rate_date)

        if currency_to == self.pivot:
            return local
        return local / self.get_rate(currency_to, rate_date)

    def latest_rates(self) -> dict:
        """Dernier taux connu par paire, ex: {"EUR_KZT": Decimal("512.3")}."""
        result = {}
        for r in ExchangeRate.objects.order_by("-rate_date", "-updated_at")[:200]:
            key = f"{r.currency_from}_{r.currency_to}"
            result.setdefault(key, r.rate)
        return result
