import logging

from celery import shared_task
from django.utils import timezone

from core.config import BillingConfig
from core.dates import as_date, month_start, previous_month_start
from billing.services.invoicing import build_invoice_generator

logger = logging.getLogger(__name__)

GENERATE = "generate"
RETRY = "retry"
FALLBACK = "fallback"


def rate_wait_decision(rates_ready: bool, retries: int, attempts: int) -> str:
    """
    Politique d'attente des taux du lot mensuel:
    taux présents => generate; sinon retry tant que retries < attempts;
    au-delà => fallback (génération sans conversion).
    """
    if rates_ready:
        return GENERATE
    if retries < attempts:
        return RETRY
    return FALLBACK


@shared_task(bind=True, max_retries=24)
def generate_monthly_invoices_task(self, period: str | None = None):
    """
    Factures du mois précédent (ou `period` ISO). Attend les taux du 1er du mois
    suivant la période: relance horaire, puis génération best-effort.
    """
    config = BillingConfig.from_settings()
    period_d = month_start(as_date(period)) if period else previous_month_start(timezone.now().date())
    generator = build_invoice_generator(config)
    rate_date = generator.rate_date_for(period_d)

    generator.ensure_rates(rate_date)
    ready = generator.rate_store.rates_available(rate_date)
    decision = rate_wait_decision(ready, self.request.retries, config.rate_retry_attempts)

    if decision == RETRY:
        logger.warning("rates for %s not available yet (attempt %d/%d), retrying in %ss",
                       rate_date, self.request.retries + 1, config.rate_retry_attempts,
                       config.rate_retry_delay_s)
        raise self.retry(countdown=config.rate_retry_delay_s,
                         max_retries=config.rate_retry_attempts,
                         kwargs={"period": period_d.isoformat()})

    if decision == FALLBACK:
        logger.error("rates for %s still missing after %d attempts, generating without conversion",
                     rate_date, config.rate_retry_attempts)

    invoices = generator.generate_monthly(period_d, strict=False if decision == FALLBACK else None)
    return {"period": period_d.isoformat(), "invoices": len(invoices), "decision": decision}
