import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional, Protocol

import httpx

from core.config import BillingConfig
from core.exceptions import FleetSourceError

logger = logging.getLogger(__name__)

# Code Wialon "session invalide": reconnexion puis nouvel essai
WIALON_INVALID_SESSION = 1
WIALON_ACCESS_DENIED = 4

# 1 (base) + 4 (billing: bact) + 128 (admin) + 256 (désactivation) + 1024 (étendu)
UNIT_STATUS_FLAGS = 1439


@dataclass(frozen=True)
class DailyDelta:
    day: date
    created: int = 0
    deleted: int = 0


class FleetUsageSource(Protocol):
    """Contrat de la source de flotte consommé par le backfill et l'ingestion."""

    def current_unit_usage(self, external_id: int) -> int: ...

    def daily_unit_deltas(self, external_id: int, date_from: date, date_to: date) -> list[DailyDelta]: ...

    def current_deactivated_count(self, external_id: int) -> int: ...


def _day_start_ts(d: date) -> int:
    return int(datetime.combine(d, time.min, tzinfo=timezone.utc).timestamp())


class WialonUsageSource:
    """
    Client Wialon Remote API (token/login + sid).
    - usage courant: account/get_account_data (settings.combined.services.avl_unit.usage), par lots de 50
    - deltas: core/get_statistics (avl_unit_created / avl_unit_deleted par jour)
    - désactivés: core/search_items sur avl_unit (act == 0 et dactt > 0)

    Les résultats sont mémorisés par instance (une instance par exécution).
    prefetch() parallélise les statistiques par compte avec un pool borné
    (config.fetch_concurrency) pour respecter les limites de l'API.
    """
    BATCH_SIZE = 50

    def __init__(self, config: BillingConfig, client: Optional[httpx.Client] = None):
        self.config = config
        self.base_url = config.wialon_base_url.rstrip("/")
        self.client = client or httpx.Client(timeout=config.http_timeout_s, verify=True)
        self.sid: str | None = None
        self._lock = threading.Lock()
        self._usage: dict[int, int] = {}
        self._deltas: dict[tuple, list[DailyDelta]] = {}
        self._deactivated: dict[int, int] | None = None

    # ------------------------------------------------------------------
    # transport
    # ------------------------------------------------------------------
    def close(self):
        self.client.close()

    def login(self) -> str:
        resp = self.client.get(
            f"{self.base_url}/wialon/ajax.html",
            params={"svc": "token/login", "params": json.dumps({"token": self.config.wialon_token})},
        )
        resp.raise_for_status()
        data = resp.json()
        if isinstance(data, dict) and data.get("error"):
            raise FleetSourceError("wialon login failed", code=data["error"])
        self.sid = data["eid"]
        return self.sid

    def _ensure_session(self) -> str:
        with self._lock:
            if not self.sid:
                self.login()
            return self.sid

    def _call(self, svc: str, params: dict, retry_session: bool = True):
        sid = self._ensure_session()
        resp = self.client.get(
            f"{self.base_url}/wialon/ajax.html",
            params={"svc": svc, "sid": sid, "params": json.dumps(params, separators=(",", ":"))},
        )
        resp.raise_for_status()
        data = resp.json()
        if isinstance(data, dict) and data.get("error"):
            code = data["error"]
            if retry_session and code in (WIALON_INVALID_SESSION, WIALON_ACCESS_DENIED):
                with self._lock:
                    if self.sid == sid:
                        self.sid = None
                return self._call(svc, params, retry_session=False)
            raise FleetSourceError(f"wialon {svc} failed", code=code)
        return data

    # ------------------------------------------------------------------
    # usage courant
    # ------------------------------------------------------------------
    @staticmethod
    def _extract_usage(account_data: dict) -> int:
        try:
            usage = account_data["settings"]["combined"]["services"]["avl_unit"]["usage"]
        except (KeyError, TypeError):
            return 0
        try:
            return int(usage)
        except (TypeError, ValueError):
            return 0

    def accounts_usage(self, external_ids: Iterable[int]) -> dict[int, int]:
        ids = [int(i) for i in external_ids]
        result: dict[int, int] = {}
        for start in range(0, len(ids), self.BATCH_SIZE):
            chunk = ids[start:start + self.BATCH_SIZE]
            batch = [{"svc": "account/get_account_data", "params": {"itemId": i, "type": 2}} for i in chunk]
            responses = self._call("core/batch", {"params": batch, "flags": 0})
            for ext_id, data in zip(chunk, responses or []):
                if isinstance(data, dict) and data.get("error"):
                    logger.warning("wialon account data error for %s: %s", ext_id, data["error"])
                    continue
                result[ext_id] = self._extract_usage(data)
        self._usage.update(result)
        return result

    def current_unit_usage(self, external_id: int) -> int:
        if external_id not in self._usage:
            self.accounts_usage([external_id])
        return self._usage.get(external_id, 0)

    # ------------------------------------------------------------------
    # deltas quotidiens
    # ------------------------------------------------------------------
    def statistics(self, external_id: int, date_from: date, date_to: date) -> list[DailyDelta]:
        data = self._call("core/get_statistics", {
            "resourceId": external_id,
            "timeFrom": _day_start_ts(date_from),
            "timeTo": _day_start_ts(date_to + timedelta(days=1)),
            "type": "items",
            "recursive": 0,
        })
        by_day: dict[date, list[int]] = {}
        for key, resources in (data or {}).items():
            if not str(key).isdigit() or not isinstance(resources, dict):
                continue
            day = datetime.fromtimestamp(int(key), tz=timezone.utc).date()
            acc = by_day.setdefault(day, [0, 0])
            for stats in resources.values():
                if not isinstance(stats, dict):
                    continue
                acc[0] += int(stats.get("avl_unit_created", 0) or 0)
                acc[1] += int(stats.get("avl_unit_deleted", 0) or 0)
        return [DailyDelta(day=d, created=c, deleted=dl) for d, (c, dl) in sorted(by_day.items())]

    def daily_unit_deltas(self, external_id: int, date_from: date, date_to: date) -> list[DailyDelta]:
        key = (external_id, date_from, date_to)
        if key not in self._deltas:
            self._deltas[key] = self.statistics(external_id, date_from, date_to)
        return self._deltas[key]

    # ------------------------------------------------------------------
    # désactivations
    # ------------------------------------------------------------------
    def deactivated_counts(self) -> dict[int, int]:
        if self._deactivated is None:
            data = self._call("core/search_items", {
                "spec": {"itemsType": "avl_unit", "propName": "sys_name", "propValueMask": "*", "sortType": "sys_name"},
                "force": 1,
                "flags": UNIT_STATUS_FLAGS,
                "from": 0,
                "to": 0,
            })
            counts: dict[int, int] = {}
            for item in (data or {}).get("items", []):
                if item.get("act") == 0 and (item.get("dactt") or 0) > 0:
                    counts[item.get("bact")] = counts.get(item.get("bact"), 0) + 1
            self._deactivated = counts
        return self._deactivated

    def current_deactivated_count(self, external_id: int) -> int:
        return self.deactivated_counts().get(external_id, 0)

    # ------------------------------------------------------------------
    # préchargement borné
    # ------------------------------------------------------------------
    def prefetch(self, external_ids: Iterable[int], date_from: date, date_to: date) -> None:
        ids = [int(i) for i in external_ids]
        if not ids:
            return
        self._ensure_session()
        self.accounts_usage(ids)
        try:
            self.deactivated_counts()
        except (FleetSourceError, httpx.HTTPError) as e:
            logger.warning("wialon deactivated units unavailable, counting 0: %s", e)
            self._deactivated = {}

        with ThreadPoolExecutor(max_workers=max(1, self.config.fetch_concurrency)) as pool:
            futures = {pool.submit(self.statistics, i, date_from, date_to): i for i in ids}
            for fut in as_completed(futures):
                ext_id = futures[fut]
                try:
                    self._deltas[(ext_id, date_from, date_to)] = fut.result()
                except (FleetSourceError, httpx.HTTPError) as e:
                    logger.warning("wialon statistics for %s failed, deltas = 0: %s", ext_id, e)
                    self._deltas[(ext_id, date_from, date_to)] = []


def build_usage_source(config: Optional[BillingConfig] = None) -> WialonUsageSource:
    return WialonUsageSource(config or BillingConfig.from_settings())
