import logging
from datetime import date

from celery import shared_task

from core.config import BillingConfig
from rates.services.nbk import NbkRateProvider

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=600)
def fetch_rates_task(self, rate_date: str | None = None):
    """
    Récupération quotidienne des taux NBK (date ISO optionnelle, défaut: aujourd'hui).
    """
    d = date.fromisoformat(rate_date) if rate_date else date.today()
    provider = NbkRateProvider(BillingConfig.from_settings())
    try:
        return provider.fetch_rates_for_date(d)
    except Exception as e:
        logger.warning("NBK fetch for %s failed: %s", d, e)
        raise self.retry(exc=e)


@shared_task
def backfill_rates_task(date_from: str, date_to: str):
    """Récupération des taux NBK jour par jour sur une plage (dates ISO)."""
    provider = NbkRateProvider(BillingConfig.from_settings())
    return provider.fetch_rates_for_range(date.fromisoformat(date_from), date.fromisoformat(date_to))
