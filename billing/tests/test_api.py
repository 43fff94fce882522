from datetime import date
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase, Client

from accounts.models import Account, Module
from billing.models import Invoice
from billing.services.charges import DailyChargeCalculator
from billing.services.invoicing import InvoiceGenerator
from core.config import BillingConfig
from rates.services.store import ExchangeRateStore
from .helpers import fill_snapshots


class BillingAdminApiTest(TestCase):
    def setUp(self):
        User = get_user_model()
        self.admin = User.objects.create_superuser("root", "root@example.com", "pass")
        self.client = Client()
        self.client.force_login(self.admin)

        self.account = Account.objects.create(external_id=1, name="Transit LLP", is_billing_enabled=True)
        self.module = Module.objects.create(name="Monitoring", price=Decimal("310.00"), currency="KZT")
        self.account.modules.add(self.module)
        self.invoice = Invoice.objects.create(account=self.account, period=date(2025, 3, 1), number="1",
                                              sequence=1, total_amount=Decimal("10.00"), currency="KZT")

    def test_requires_admin(self):
        User = get_user_model()
        user = User.objects.create_user("viewer", "viewer@example.com", "pass")
        client = Client()
        client.force_login(user)
        self.assertEqual(client.get("/api/v1/admin/invoices/").status_code, 403)

    def test_list_and_filter_invoices(self):
        resp = self.client.get("/api/v1/admin/invoices/", {"status": "draft"})
        self.assertEqual(resp.status_code, 200, resp.content)
        self.assertEqual([inv["number"] for inv in resp.json()], ["1"])

        resp = self.client.get("/api/v1/admin/invoices/", {"status": "paid"})
        self.assertEqual(resp.json(), [])

    def test_status_transitions(self):
        resp = self.client.post(f"/api/v1/admin/invoices/{self.invoice.id}/mark-paid/")
        self.assertEqual(resp.status_code, 200, resp.content)
        self.assertEqual(resp.json()["status"], "paid")

        resp = self.client.post(f"/api/v1/admin/invoices/{self.invoice.id}/mark-sent/")
        self.assertEqual(resp.status_code, 409)

    def test_charges_summary(self):
        fill_snapshots(self.account, date(2025, 3, 1), date(2025, 3, 31), total=4)
        DailyChargeCalculator().calculate_for_period(self.account, 2025, 3)

        resp = self.client.get("/api/v1/admin/charges/summary/",
                               {"account_id": self.account.id, "year": 2025, "month": 3})
        self.assertEqual(resp.status_code, 200, resp.content)
        data = resp.json()
        self.assertEqual(data["period"], "2025-03-01")
        row = data["modules"][0]
        self.assertEqual(row["days"], 31)
        self.assertEqual(row["total_units"], 124)
        self.assertEqual(Decimal(row["total_cost"]), Decimal("1240.00"))
        self.assertEqual(Decimal(data["totals"]["KZT"]), Decimal("1240.00"))

    def test_charges_summary_validation(self):
        resp = self.client.get("/api/v1/admin/charges/summary/", {"account_id": self.account.id, "year": 2025})
        self.assertEqual(resp.status_code, 400)

    def test_recalculate_charges(self):
        fill_snapshots(self.account, date(2025, 3, 1), date(2025, 3, 5), total=4)
        resp = self.client.post("/api/v1/admin/charges/recalculate/",
                                data={"account_id": self.account.id, "year": 2025, "month": 3},
                                content_type="application/json")
        self.assertEqual(resp.status_code, 200, resp.content)
        self.assertEqual(resp.json(), {"charges": 5})

        resp = self.client.get("/api/v1/admin/charges/", {"account_id": self.account.id, "from": "2025-03-04"})
        self.assertEqual(len(resp.json()), 2)


class GenerateInvoicesApiTest(TestCase):
    def setUp(self):
        User = get_user_model()
        self.client = Client()
        self.client.force_login(User.objects.create_superuser("root", "root@example.com", "pass"))

        self.module = Module.objects.create(name="Monitoring", price=Decimal("100.00"), currency="KZT")
        self.first = Account.objects.create(external_id=1, name="Transit LLP", is_billing_enabled=True,
                                            contract_number="C-1")
        self.second = Account.objects.create(external_id=2, name="Cargo", is_billing_enabled=True)
        for acc in (self.first, self.second):
            acc.modules.add(self.module)
            fill_snapshots(acc, date(2025, 3, 1), date(2025, 3, 31), total=2)

    def _generator(self, strict=False):
        config = BillingConfig(strict_conversion=strict)
        provider = mock.Mock()
        provider.fetch_rates_for_date.return_value = 0
        return InvoiceGenerator(config, rate_store=ExchangeRateStore(config), rate_provider=provider)

    def _post(self, payload, generator=None):
        with mock.patch("billing.views.build_invoice_generator", return_value=generator or self._generator()):
            return self.client.post("/api/v1/admin/invoices/generate/", data=payload,
                                    content_type="application/json")

    def test_generate_batch_for_month(self):
        resp = self._post({"year": 2025, "month": 3})
        self.assertEqual(resp.status_code, 200, resp.content)
        data = resp.json()
        self.assertEqual((data["period"], data["generated"]), ("2025-03-01", 2))
        self.assertEqual(sorted(inv["number"] for inv in data["invoices"]), ["1", "C-1/1"])
        self.assertEqual(Invoice.objects.filter(period=date(2025, 3, 1)).count(), 2)

    def test_generate_single_account(self):
        resp = self._post({"year": 2025, "month": 3, "account_id": self.second.id})
        self.assertEqual(resp.status_code, 200, resp.content)
        self.assertEqual(resp.json()["generated"], 1)
        self.assertEqual(list(Invoice.objects.values_list("account_id", flat=True)), [self.second.id])
        self.assertEqual(Decimal(resp.json()["invoices"][0]["total_amount"]), Decimal("200.00"))

    def test_generate_defaults_to_previous_month(self):
        with mock.patch("billing.views.timezone") as tz:
            tz.now.return_value.date.return_value = date(2025, 4, 3)
            resp = self._post({})
        self.assertEqual(resp.json()["period"], "2025-03-01")
        self.assertEqual(resp.json()["generated"], 2)

    def test_generate_single_account_strict_missing_rate(self):
        self.second.modules.add(Module.objects.create(name="Tracking", price=Decimal("1.00"), currency="EUR"))
        resp = self._post({"year": 2025, "month": 3, "account_id": self.second.id},
                          generator=self._generator(strict=True))
        self.assertEqual(resp.status_code, 409)
        self.assertFalse(Invoice.objects.exists())

    def test_generate_unknown_account(self):
        self.assertEqual(self._post({"year": 2025, "month": 3, "account_id": 999}).status_code, 404)

    def test_generate_requires_year_and_month_together(self):
        self.assertEqual(self._post({"year": 2025}).status_code, 400)

    def test_unconverted_invoice_flags_mixed_currencies(self):
        self.second.modules.add(Module.objects.create(name="Tracking", price=Decimal("1.00"), currency="EUR"))
        resp = self._post({"year": 2025, "month": 3, "account_id": self.second.id})
        invoice = resp.json()["invoices"][0]
        self.assertFalse(invoice["conversion_complete"])
        self.assertTrue(invoice["mixed_currencies"])
        self.assertEqual({ln["currency"] for ln in invoice["lines"]}, {"KZT", "EUR"})
