from dataclasses import dataclass, field
from typing import Optional

from django.conf import settings


@dataclass(frozen=True)
class BillingConfig:
    """
    Paramètres de facturation, construits depuis settings.BILLING et passés
    explicitement aux services (constructeurs).
    - pivot_currency: devise locale par laquelle passent toutes les conversions
    - default_currency: devise d'un compte sans devise renseignée
    - reference_currency: devise dont la présence du taux signifie "taux publiés"
    - tracked_currencies: devises récupérées auprès du fournisseur de taux
    - rate_retry_attempts / rate_retry_delay_s: politique de relance mensuelle
    - strict_conversion: True => une ligne non convertible invalide la facture
    - fetch_concurrency: taille du pool pour les appels à la source de flotte
    """
    pivot_currency: str = "KZT"
    default_currency: str = "KZT"
    reference_currency: str = "EUR"
    tracked_currencies: tuple = ("EUR", "RUB")
    rate_retry_attempts: int = 24
    rate_retry_delay_s: int = 3600
    strict_conversion: bool = False
    fetch_concurrency: int = 10
    http_timeout_s: float = 30.0
    nbk_url: str = "https://nationalbank.kz/rss/get_rates.cfm"
    wialon_base_url: str = "https://hst-api.wialon.com"
    wialon_token: str = field(default="", repr=False)

    @classmethod
    def from_settings(cls, overrides: Optional[dict] = None) -> "BillingConfig":
        raw = dict(getattr(settings, "BILLING", {}) or {})
        raw.update(overrides or {})
        known = cls.__dataclass_fields__
        kwargs = {}
        for key, value in raw.items():
            name = key.lower()
            if name not in known:
                continue
            if name == "tracked_currencies":
                value = tuple(value)
            kwargs[name] = value
        return cls(**kwargs)

    def currency_for(self, account_currency: str | None) -> str:
        return (account_currency or "").strip().upper() or self.default_currency
