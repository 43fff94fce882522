from datetime import date
from decimal import Decimal
from unittest import mock

import httpx
from django.contrib.auth import get_user_model
from django.test import TestCase, Client

from core.config import BillingConfig
from rates.services.store import ExchangeRateStore
from rates.tasks import backfill_rates_task


class RatesAdminApiTest(TestCase):
    def setUp(self):
        User = get_user_model()
        self.client = Client()
        self.client.force_login(User.objects.create_superuser("root", "root@example.com", "pass"))
        store = ExchangeRateStore(BillingConfig())
        store.save_rate("EUR", Decimal("500"), date(2025, 4, 1))
        store.save_rate("EUR", Decimal("505"), date(2025, 4, 2))

    def test_list_and_latest(self):
        resp = self.client.get("/api/v1/admin/rates/", {"currency": "eur", "from": "2025-04-02"})
        self.assertEqual(resp.status_code, 200, resp.content)
        self.assertEqual(len(resp.json()), 1)

        resp = self.client.get("/api/v1/admin/rates/latest/")
        self.assertEqual(Decimal(resp.json()["EUR_KZT"]), Decimal("505"))

    def test_fetch_provider_error(self):
        with mock.patch("rates.views.NbkRateProvider") as provider_cls:
            provider_cls.return_value.fetch_rates_for_date.side_effect = httpx.ConnectError("down")
            resp = self.client.post("/api/v1/admin/rates/fetch/", data={"rate_date": "2025-04-03"},
                                    content_type="application/json")
        self.assertEqual(resp.status_code, 502)

    def test_fetch(self):
        with mock.patch("rates.views.NbkRateProvider") as provider_cls:
            provider_cls.return_value.fetch_rates_for_date.return_value = 2
            resp = self.client.post("/api/v1/admin/rates/fetch/", data={"rate_date": "2025-04-03"},
                                    content_type="application/json")
        self.assertEqual(resp.json(), {"rate_date": "2025-04-03", "saved": 2})
        provider_cls.return_value.fetch_rates_for_date.assert_called_once_with(date(2025, 4, 3))

    def test_backfill_queues_task(self):
        with mock.patch("rates.views.backfill_rates_task") as task:
            task.delay.return_value.id = "task-9"
            resp = self.client.post("/api/v1/admin/rates/backfill/",
                                    data={"date_from": "2025-01-01", "date_to": "2025-01-31"},
                                    content_type="application/json")
        self.assertEqual(resp.status_code, 202, resp.content)
        self.assertEqual(resp.json(), {"task_id": "task-9"})
        task.delay.assert_called_once_with("2025-01-01", "2025-01-31")

    def test_backfill_rejects_inverted_range(self):
        resp = self.client.post("/api/v1/admin/rates/backfill/",
                                data={"date_from": "2025-02-01", "date_to": "2025-01-01"},
                                content_type="application/json")
        self.assertEqual(resp.status_code, 400)


class BackfillRatesTaskTest(TestCase):
    def test_task_runs_provider_range(self):
        with mock.patch("rates.tasks.NbkRateProvider") as provider_cls:
            provider_cls.return_value.fetch_rates_for_range.return_value = 3
            result = backfill_rates_task.apply(args=["2025-04-01", "2025-04-03"]).get()
        self.assertEqual(result, 3)
        provider_cls.return_value.fetch_rates_for_range.assert_called_once_with(date(2025, 4, 1), date(2025, 4, 3))
