from datetime import date
from decimal import Decimal
from unittest import mock

import httpx
from django.db import DatabaseError
from django.test import TestCase

from accounts.models import Account, Module
from billing.models import Invoice, InvoiceLine
from billing.services.invoicing import InvoiceGenerator, average_active_units, format_invoice_number
from core.config import BillingConfig
from core.exceptions import InvalidInvoiceTransition, RateUnavailable
from rates.services.store import ExchangeRateStore
from .helpers import fill_snapshots

MARCH = date(2025, 3, 1)
RATE_DATE = date(2025, 4, 1)


class InvoiceGeneratorTest(TestCase):
    def setUp(self):
        self.config = BillingConfig()
        self.store = ExchangeRateStore(self.config)
        self.provider = mock.Mock()
        self.provider.fetch_rates_for_date.return_value = 0
        self.generator = InvoiceGenerator(self.config, rate_store=self.store, rate_provider=self.provider)

        self.account = Account.objects.create(external_id=1, name="Transit LLP", is_billing_enabled=True,
                                              billing_currency="KZT", contract_number="C-7")
        self.monitoring = Module.objects.create(name="Monitoring", code="MON", unit="obj",
                                                price=Decimal("1000.00"), currency="KZT")

    def test_per_unit_invoice_in_account_currency(self):
        self.account.modules.add(self.monitoring)
        fill_snapshots(self.account, date(2025, 3, 1), date(2025, 3, 31), total=100)

        invoice = self.generator.generate_for_account(self.account.id, date(2025, 3, 17))

        self.assertEqual(invoice.period, MARCH)
        self.assertEqual(invoice.rate_date, RATE_DATE)
        self.assertEqual(invoice.total_amount, Decimal("100000.00"))
        self.assertEqual(invoice.currency, "KZT")
        self.assertEqual(invoice.status, Invoice.STATUS_DRAFT)
        self.assertEqual(invoice.number, "C-7/1")
        line = invoice.lines.get()
        self.assertEqual((line.quantity, line.unit_price, line.total_price), (Decimal("100"), Decimal("1000.00"), Decimal("100000.00")))
        self.assertEqual((line.module_name, line.module_code, line.module_unit), ("Monitoring", "MON", "obj"))
        self.provider.fetch_rates_for_date.assert_called_once_with(RATE_DATE)

    def test_convert_then_round_then_multiply(self):
        module = Module.objects.create(name="Tracking", price=Decimal("1.00"), currency="EUR")
        self.account.modules.add(module)
        self.store.save_rate("EUR", Decimal("512.345"), RATE_DATE)
        fill_snapshots(self.account, date(2025, 3, 1), date(2025, 3, 31), total=3)

        invoice = self.generator.generate_for_account(self.account.id, MARCH)

        line = invoice.lines.get()
        self.assertEqual(line.unit_price, Decimal("512.35"))
        self.assertEqual(line.total_price, Decimal("1537.05"))
        self.assertEqual(line.currency, "KZT")
        self.assertTrue(invoice.conversion_complete)

    def test_quantity_rounds_half_up(self):
        self.account.modules.add(self.monitoring)
        fill_snapshots(self.account, date(2025, 4, 1), date(2025, 4, 15), total=5)

        self.assertEqual(average_active_units(self.account, date(2025, 4, 1)), Decimal("2.5"))
        invoice = self.generator.generate_for_account(self.account.id, date(2025, 4, 1))
        self.assertEqual(invoice.lines.get().quantity, Decimal("3"))

    def test_fixed_module_without_usage(self):
        support = Module.objects.create(name="Support", price=Decimal("4999.99"), currency="KZT",
                                        pricing_type=Module.PRICING_FIXED)
        self.account.modules.add(support, self.monitoring)

        invoice = self.generator.generate_for_account(self.account.id, MARCH)

        self.assertEqual(invoice.total_amount, Decimal("4999.99"))
        lines = {ln.module_name: ln for ln in invoice.lines.all()}
        self.assertEqual(lines["Support"].quantity, Decimal("1"))
        self.assertEqual(lines["Monitoring"].total_price, Decimal("0.00"))

    def test_missing_rate_leaves_line_unconverted(self):
        module = Module.objects.create(name="Tracking", price=Decimal("2.50"), currency="EUR")
        self.account.modules.add(module, self.monitoring)
        fill_snapshots(self.account, date(2025, 3, 1), date(2025, 3, 31), total=2)

        invoice = self.generator.generate_for_account(self.account.id, MARCH)

        self.assertFalse(invoice.conversion_complete)
        line = invoice.lines.get(module=module)
        self.assertEqual((line.unit_price, line.currency, line.total_price), (Decimal("2.50"), "EUR", Decimal("5.00")))

    def test_strict_conversion_raises(self):
        module = Module.objects.create(name="Tracking", price=Decimal("2.50"), currency="EUR")
        self.account.modules.add(module)
        fill_snapshots(self.account, date(2025, 3, 1), date(2025, 3, 31), total=2)

        with self.assertRaises(RateUnavailable):
            self.generator.generate_for_account(self.account.id, MARCH, strict=True)
        self.assertFalse(Invoice.objects.exists())

    def test_regeneration_replaces_invoice_with_new_number(self):
        self.account.modules.add(self.monitoring)
        fill_snapshots(self.account, date(2025, 3, 1), date(2025, 3, 31), total=10)

        first = self.generator.generate_for_account(self.account.id, MARCH)
        second = self.generator.generate_for_account(self.account.id, MARCH)

        self.assertEqual(Invoice.objects.filter(account=self.account, period=MARCH).count(), 1)
        self.assertEqual(InvoiceLine.objects.count(), 1)
        self.assertEqual(first.total_amount, second.total_amount)
        self.assertEqual((first.number, second.number), ("C-7/1", "C-7/2"))
        self.assertFalse(Invoice.objects.filter(pk=first.pk).exists())

    def test_zero_total_is_skipped(self):
        self.account.modules.add(self.monitoring)
        self.assertIsNone(self.generator.generate_for_account(self.account.id, MARCH))
        self.assertFalse(Invoice.objects.exists())
        self.account.refresh_from_db()
        self.assertEqual(self.account.invoice_sequence, 0)

    def test_no_modules_is_skipped(self):
        fill_snapshots(self.account, date(2025, 3, 1), date(2025, 3, 31), total=10)
        self.assertIsNone(self.generator.generate_for_account(self.account.id, MARCH))
        self.assertFalse(Invoice.objects.exists())

    def test_rate_fetch_error_is_not_fatal(self):
        self.provider.fetch_rates_for_date.side_effect = httpx.ConnectError("nbk down")
        self.account.modules.add(self.monitoring)
        fill_snapshots(self.account, date(2025, 3, 1), date(2025, 3, 31), total=1)

        invoice = self.generator.generate_for_account(self.account.id, MARCH)
        self.assertEqual(invoice.total_amount, Decimal("1000.00"))

    def test_rate_store_error_does_not_abort_batch(self):
        self.provider.fetch_rates_for_date.side_effect = DatabaseError("rates table locked")
        self.account.modules.add(self.monitoring)
        fill_snapshots(self.account, date(2025, 3, 1), date(2025, 3, 31), total=1)

        invoices = self.generator.generate_monthly(MARCH)
        self.assertEqual([inv.account_id for inv in invoices], [self.account.id])
        self.assertEqual(invoices[0].total_amount, Decimal("1000.00"))
        self.provider.fetch_rates_for_date.assert_called_once_with(RATE_DATE)

    def test_generate_monthly_isolates_account_failures(self):
        other = Account.objects.create(external_id=2, name="Cargo", is_billing_enabled=True)
        Account.objects.create(external_id=3, name="Disabled", is_billing_enabled=False)
        for acc in (self.account, other):
            acc.modules.add(self.monitoring)
            fill_snapshots(acc, date(2025, 3, 1), date(2025, 3, 31), total=1)

        real = self.generator.generate_for_account

        def flaky(account_id, period, strict=None):
            if account_id == self.account.id:
                raise DatabaseError("disk full")
            return real(account_id, period, strict=strict)

        with mock.patch.object(self.generator, "generate_for_account", side_effect=flaky):
            invoices = self.generator.generate_monthly(MARCH)

        self.assertEqual([inv.account_id for inv in invoices], [other.id])
        self.assertEqual(other.invoices.get().number, "1")
        self.provider.fetch_rates_for_date.assert_called_once_with(RATE_DATE)

    def test_recalculate_current_period(self):
        self.account.modules.add(self.monitoring)
        fill_snapshots(self.account, date(2025, 5, 1), date(2025, 5, 31), total=2)
        calculator = mock.Mock()
        generator = InvoiceGenerator(self.config, rate_store=self.store, rate_provider=self.provider,
                                     calculator=calculator)

        invoice = generator.recalculate_current_period(self.account, today=date(2025, 5, 20))

        calculator.calculate_for_period.assert_called_once_with(self.account, 2025, 5)
        self.assertEqual(invoice.period, date(2025, 5, 1))
        self.assertEqual(invoice.total_amount, Decimal("2000.00"))


class InvoiceNumberTest(TestCase):
    def test_format(self):
        self.assertEqual(format_invoice_number("C-7", 12), "C-7/12")
        self.assertEqual(format_invoice_number("  ", 3), "3")
        self.assertEqual(format_invoice_number("", 1), "1")


class InvoiceLifecycleTest(TestCase):
    def setUp(self):
        account = Account.objects.create(external_id=1, name="Transit LLP")
        self.invoice = Invoice.objects.create(account=account, period=MARCH, number="1", sequence=1,
                                              total_amount=Decimal("10.00"), currency="KZT")

    def test_draft_sent_paid(self):
        self.invoice.mark_sent()
        self.assertIsNotNone(self.invoice.sent_at)
        self.invoice.mark_paid()
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, Invoice.STATUS_PAID)
        self.assertIsNotNone(self.invoice.paid_at)

    def test_overdue_then_paid(self):
        self.invoice.mark_overdue()
        self.invoice.mark_paid()
        self.assertEqual(self.invoice.status, Invoice.STATUS_PAID)

    def test_invalid_transition(self):
        self.invoice.mark_paid()
        with self.assertRaises(InvalidInvoiceTransition):
            self.invoice.mark_sent()
