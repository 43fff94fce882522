import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional
from xml.etree import ElementTree as ET

import httpx

from core.config import BillingConfig
from core.dates import date_range
from rates.services.store import ExchangeRateStore

logger = logging.getLogger(__name__)


class NbkRateProvider:
    """
    Récupère les taux officiels de la Banque nationale du Kazakhstan (flux RSS XML)
    et les enregistre vers la devise pivot.

    Réponse attendue:
        <rates><item><title>EUR</title><description>512.30</description><quant>1</quant></item>...</rates>
    quant > 1 (ex: 100 RUB) => taux divisé par quant.
    """

    def __init__(self, config: BillingConfig, store: Optional[ExchangeRateStore] = None,
                 client: Optional[httpx.Client] = None):
        self.config = config
        self.store = store or ExchangeRateStore(config)
        self.client = client

    def _get(self, rate_date: date) -> httpx.Response:
        params = {"fdate": rate_date.strftime("%d.%m.%Y")}
        if self.client is not None:
            return self.client.get(self.config.nbk_url, params=params)
        with httpx.Client(timeout=self.config.http_timeout_s, verify=True) as client:
            return client.get(self.config.nbk_url, params=params)

    def fetch_rates_for_date(self, rate_date: date) -> int:
        """
        Enregistre les taux suivis pour rate_date; retourne le nombre sauvegardé.
        Erreur réseau / HTTP => exception; XML illisible => log + 0.
        """
        resp = self._get(rate_date)
        resp.raise_for_status()

        try:
            items = parse_rates(resp.content)
        except ET.ParseError as e:
            logger.warning("unparsable NBK response for %s: %s", rate_date, e)
            return 0

        tracked = {c.upper() for c in self.config.tracked_currencies}
        saved = 0
        for code, rate in items.items():
            if code not in tracked:
                continue
            self.store.save_rate(code, rate, rate_date)
            saved += 1

        if saved:
            logger.info("saved %d NBK rates for %s", saved, rate_date)
        return saved

    def fetch_rates_for_range(self, date_from: date, date_to: date) -> int:
        """
        Récupère jour par jour [date_from, date_to]; un jour en erreur réseau/HTTP
        est journalisé puis ignoré. Retourne le nombre de jours récupérés.
        """
        if date_from > date_to:
            raise ValueError("date_from must be <= date_to")
        fetched = 0
        for d in date_range(date_from, date_to):
            try:
                self.fetch_rates_for_date(d)
            except httpx.HTTPError as e:
                logger.warning("NBK fetch for %s failed, skipped: %s", d, e)
                continue
            fetched += 1
        logger.info("NBK backfill %s..%s: %d days fetched", date_from, date_to, fetched)
        return fetched

    def fetch_today(self, today: Optional[date] = None) -> int:
        return self.fetch_rates_for_date(today or date.today())


def parse_rates(body: bytes) -> dict:
    """{"EUR": Decimal("512.3"), ...}; items invalides ignorés."""
    root = ET.fromstring(body)
    result = {}
    for item in root.iter("item"):
        code = (item.findtext("title") or "").strip().upper()
        raw = (item.findtext("description") or "").strip().replace(",", ".")
        if not code or not raw:
            continue
        try:
            rate = Decimal(raw)
            quant = int((item.findtext("quant") or "1").strip() or 1)
        except (InvalidOperation, ValueError):
            continue
        if quant > 1:
            rate = rate / quant
        result[code] = rate
    return result
