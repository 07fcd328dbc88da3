import json
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from io import StringIO

from dateutil.relativedelta import relativedelta
from django.core.management import CommandError, call_command
from django.test import SimpleTestCase

from core.exceptions import ConcurrencyError, DataConsistencyWarning, SaleStateError
from finance.models import PaymentApplication, PaymentReceipt
from finance.reconciliation import (
    LEDGER_MISMATCH,
    MISSING_LEDGER,
    MISSING_OFFER,
    InstallmentSnapshot,
    ReportingPeriod,
    SaleSnapshot,
    reconcile,
    sale_contribution,
)
from finance.selectors import financial_summary, load_snapshot
from finance.services import record_installment_payment
from sales.models import InstallmentPayment, Sale, SaleLog
from sales.services import cancel_sale
from sales.terms import FullTerms, InstallmentTerms, OfferTerms, PromiseTerms
from tests.base import BaseAppTestCase
from tests.factories import Factory

D = Decimal
OFFER = OfferTerms(
    price_per_m2=D("500"),
    advance_mode="fixed",
    advance_value=D("2000"),
    calc_mode="months",
    months=10,
)


def _installments(count=10, amount=D("4800.00"), first_due=date(2024, 2, 15), paid=0):
    rows = []
    for n in range(1, count + 1):
        is_paid = n <= paid
        rows.append(
            InstallmentSnapshot(
                installment_number=n,
                amount_due=amount,
                amount_paid=amount if is_paid else D("0.00"),
                due_date=first_due + relativedelta(months=n - 1),
                status="paid" if is_paid else "pending",
            )
        )
    return tuple(rows)


def _installment_sale(sale_id="inst", installments=None, status="completed", offer=OFFER, **kwargs):
    defaults = dict(
        sale_id=sale_id,
        status=status,
        terms=InstallmentTerms(
            sale_price=D("50000.00"),
            deposit_amount=D("1000.00"),
            offer=offer,
            sale_date=date(2024, 1, 15),
        ),
        sale_date=date(2024, 1, 15),
        installments=_installments() if installments is None else installments,
        seller_id=1,
        seller="Ana",
        location="Hammamet",
        piece_id=2,
        client_id=2,
    )
    defaults.update(kwargs)
    return SaleSnapshot(**defaults)


def _full_sale(sale_id="full", status="completed", **kwargs):
    defaults = dict(
        sale_id=sale_id,
        status=status,
        terms=FullTerms(sale_price=D("40000.00"), deposit_amount=D("5000.00")),
        sale_date=date(2024, 1, 10),
        seller_id=1,
        seller="Ana",
        location="Hammamet",
        piece_id=1,
        client_id=1,
    )
    defaults.update(kwargs)
    return SaleSnapshot(**defaults)


def _promise_sale(sale_id="promise", status="pending", **kwargs):
    defaults = dict(
        sale_id=sale_id,
        status=status,
        terms=PromiseTerms(
            sale_price=D("40000.00"),
            deposit_amount=D("3000.00"),
            partial_payment_amount=D("8000.00"),
        ),
        sale_date=date(2024, 3, 1),
        seller_id=2,
        seller="Bruno",
        location="Nabeul",
        piece_id=3,
        client_id=3,
    )
    defaults.update(kwargs)
    return SaleSnapshot(**defaults)


def _mixed_portfolio():
    first_rows = _installments(paid=2)
    partial = first_rows[2]
    rows = first_rows[:2] + (
        InstallmentSnapshot(
            installment_number=3,
            amount_due=partial.amount_due,
            amount_paid=D("1000.00"),
            due_date=partial.due_date,
            status="pending",
        ),
    ) + first_rows[3:]
    return [
        _full_sale(company_fee_amount=D("800.00")),
        _installment_sale(installments=rows),
        _promise_sale(),
        _full_sale(sale_id="cancelled", status="cancelled", piece_id=9, client_id=9),
    ]


class ReportingPeriodTests(SimpleTestCase):
    def test_month_of(self):
        period = ReportingPeriod.month_of(date(2024, 2, 10))
        self.assertEqual(period.start, date(2024, 2, 1))
        self.assertEqual(period.end, date(2024, 2, 29))
        self.assertIn(date(2024, 2, 29), period)
        self.assertNotIn(date(2024, 3, 1), period)

    def test_end_before_start_is_rejected(self):
        with self.assertRaises(ValueError):
            ReportingPeriod(start=date(2024, 2, 1), end=date(2024, 1, 31))


class ReconcileTests(SimpleTestCase):
    reference = date(2024, 5, 20)

    def test_portfolio_totals(self):
        summary = reconcile(_mixed_portfolio(), self.reference)

        self.assertEqual(summary.sale_count, 3)
        self.assertEqual(summary.total_revenue, D("90000.00"))
        self.assertEqual(summary.categories.deposit, D("9000.00"))
        self.assertEqual(summary.categories.advance, D("1000.00"))
        self.assertEqual(summary.categories.full_payment, D("35000.00"))
        # La cuota 3 tiene un abono parcial: no cuenta como pagada
        self.assertEqual(summary.categories.installment, D("9600.00"))
        self.assertEqual(summary.categories.promise, D("5000.00"))
        self.assertEqual(summary.commission, D("800.00"))
        self.assertEqual(summary.total_collected, D("59600.00"))
        self.assertEqual(summary.unpaid_amount, D("8600.00"))
        self.assertEqual(summary.unpaid_installments, 2)
        self.assertEqual(summary.unpaid_clients, 1)
        self.assertEqual(summary.expected_this_period, D("4800.00"))
        self.assertEqual(summary.anomalies, ())

    def test_categories_are_disjoint_per_sale(self):
        period = ReportingPeriod.month_of(self.reference)
        for sale in _mixed_portfolio():
            with self.subTest(sale=sale.sale_id):
                c = sale_contribution(sale, self.reference, period)
                parts = [
                    c.categories.deposit,
                    c.categories.advance,
                    c.categories.full_payment,
                    c.categories.installment,
                    c.categories.promise,
                ]
                self.assertEqual(sum(parts, D("0")), c.collected)
                self.assertLessEqual(c.collected, sale.terms.sale_price)

    def test_cancelled_sale_contributes_nothing(self):
        without = reconcile(_mixed_portfolio()[:3], self.reference)
        with_cancelled = reconcile(_mixed_portfolio(), self.reference)
        self.assertEqual(without, with_cancelled)

        only_cancelled = reconcile(
            [_installment_sale(status="cancelled", installments=_installments())],
            date(2025, 1, 1),
        )
        self.assertEqual(only_cancelled.total_revenue, D("0"))
        self.assertEqual(only_cancelled.total_collected, D("0"))
        self.assertEqual(only_cancelled.unpaid_amount, D("0"))
        self.assertEqual(only_cancelled.expected_this_period, D("0"))

    def test_overdue_installment_scenario(self):
        offer = OfferTerms(price_per_m2=D("20"), advance_mode="fixed", advance_value=D("0"), calc_mode="months", months=1)
        sale = SaleSnapshot(
            sale_id="d",
            status="completed",
            terms=InstallmentTerms(D("2000.00"), D("1000.00"), offer, date(2023, 12, 1)),
            sale_date=date(2023, 12, 1),
            installments=(
                InstallmentSnapshot(1, D("1000.00"), D("0.00"), date(2024, 1, 1), "pending"),
            ),
        )
        summary = reconcile([sale], date(2024, 2, 1))

        self.assertEqual(summary.unpaid_amount, D("1000.00"))
        self.assertEqual(summary.unpaid_installments, 1)

    def test_promise_scenario(self):
        summary = reconcile([_promise_sale()], self.reference)

        self.assertEqual(summary.categories.promise, D("5000.00"))
        self.assertEqual(summary.categories.deposit, D("3000.00"))
        self.assertEqual(summary.total_revenue, D("0"))

    def test_promise_below_deposit_counts_zero(self):
        sale = _promise_sale(
            terms=PromiseTerms(D("40000.00"), D("3000.00"), D("2000.00")),
        )
        summary = reconcile([sale], self.reference)
        self.assertEqual(summary.categories.promise, D("0.00"))

    def test_pending_full_sale_counts_deposit_only(self):
        summary = reconcile([_full_sale(status="pending")], self.reference)

        self.assertEqual(summary.total_revenue, D("0"))
        self.assertEqual(summary.total_collected, D("5000.00"))

    def test_stored_overdue_status_counts_as_unpaid(self):
        rows = tuple(
            InstallmentSnapshot(r.installment_number, r.amount_due, r.amount_paid, r.due_date, "overdue")
            for r in _installments()
        )
        summary = reconcile([_installment_sale(installments=rows)], self.reference)

        self.assertEqual(summary.unpaid_installments, 4)
        self.assertEqual(summary.categories.installment, D("0"))

    def test_missing_ledger_keeps_revenue(self):
        with self.assertLogs("finance.reconciliation", level="INFO") as logs:
            summary = reconcile([_installment_sale(installments=())], self.reference)

        self.assertEqual(summary.total_revenue, D("50000.00"))
        self.assertEqual(summary.categories.advance, D("1000.00"))
        self.assertEqual(summary.categories.installment, D("0"))
        self.assertEqual(summary.unpaid_amount, D("0"))
        self.assertEqual([a.kind for a in summary.anomalies], [MISSING_LEDGER])
        self.assertIn("sin cronograma", logs.output[0])

    def test_pending_installment_sale_without_ledger_is_not_an_anomaly(self):
        summary = reconcile([_installment_sale(status="pending", installments=())], self.reference)
        self.assertEqual(summary.anomalies, ())
        self.assertEqual(summary.categories.advance, D("0"))

    def test_ledger_mismatch_is_flagged_and_excluded(self):
        rows = _installments(amount=D("4000.00"), paid=3)
        with self.assertWarns(DataConsistencyWarning):
            summary = reconcile([_installment_sale(installments=rows)], self.reference)

        self.assertEqual([a.kind for a in summary.anomalies], [LEDGER_MISMATCH])
        self.assertEqual(summary.total_revenue, D("50000.00"))
        self.assertEqual(summary.categories.deposit, D("1000.00"))
        self.assertEqual(summary.categories.installment, D("0"))
        self.assertEqual(summary.unpaid_amount, D("0"))
        self.assertEqual(summary.expected_this_period, D("0"))

    def test_mismatch_within_tolerance_is_accepted(self):
        rows = _installments()[:-1] + (
            InstallmentSnapshot(10, D("4800.01"), D("0"), date(2024, 11, 15), "pending"),
        )
        summary = reconcile([_installment_sale(installments=rows)], self.reference, tolerance=D("0.01"))
        self.assertEqual(summary.anomalies, ())

    def test_installment_sale_without_offer(self):
        summary = reconcile([_installment_sale(offer=None)], self.reference)

        self.assertEqual([a.kind for a in summary.anomalies], [MISSING_OFFER])
        self.assertEqual(summary.categories.advance, D("0"))
        self.assertEqual(summary.total_revenue, D("50000.00"))

    def test_breakdowns_are_sorted_by_collected(self):
        summary = reconcile(_mixed_portfolio(), self.reference)

        self.assertEqual([row.seller for row in summary.by_seller], ["Ana", "Bruno"])
        self.assertEqual(summary.by_seller[0].collected, D("51600.00"))
        self.assertEqual(summary.by_seller[0].sales, 2)
        self.assertEqual(summary.by_seller[1].categories.promise, D("5000.00"))

        hammamet, nabeul = summary.by_location
        self.assertEqual(hammamet.location, "Hammamet")
        self.assertEqual(hammamet.revenue, D("90000.00"))
        self.assertEqual(hammamet.collected, D("51600.00"))
        self.assertEqual((hammamet.pieces, hammamet.clients), (2, 2))
        self.assertEqual(nabeul.collected, D("8000.00"))

    def test_namesake_sellers_get_separate_rows(self):
        sales = [
            _full_sale(sale_id="a", seller_id=10, seller="Ana Ben", piece_id=1, client_id=1),
            _full_sale(sale_id="b", seller_id=11, seller="Ana Ben", piece_id=2, client_id=2),
        ]
        summary = reconcile(sales, self.reference)

        self.assertEqual(len(summary.by_seller), 2)
        self.assertEqual({row.seller_id for row in summary.by_seller}, {10, 11})
        self.assertTrue(all(row.sales == 1 for row in summary.by_seller))
        self.assertEqual(summary.as_dict()["bySeller"][0]["seller"], "Ana Ben")

    def test_settled_row_without_paid_status_is_not_unpaid(self):
        offer = OfferTerms(price_per_m2=D("1"), advance_mode="fixed", advance_value=D("0"), calc_mode="months", months=2)
        sale = SaleSnapshot(
            sale_id="zero",
            status="completed",
            terms=InstallmentTerms(D("100.00"), D("99.95"), offer, date(2024, 1, 1)),
            sale_date=date(2024, 1, 1),
            client_id=7,
            installments=(
                InstallmentSnapshot(1, D("0.00"), D("0.00"), date(2024, 2, 1), "pending"),
                InstallmentSnapshot(2, D("0.05"), D("0.00"), date(2024, 3, 1), "pending"),
            ),
        )
        summary = reconcile([sale], date(2025, 1, 1))

        self.assertEqual(summary.anomalies, ())
        self.assertEqual(summary.unpaid_amount, D("0.05"))
        self.assertEqual(summary.unpaid_installments, 1)
        self.assertEqual(summary.unpaid_clients, 1)

        paid_off = SaleSnapshot(
            sale_id="settled",
            status="completed",
            terms=sale.terms,
            sale_date=sale.sale_date,
            client_id=8,
            installments=(
                InstallmentSnapshot(1, D("0.00"), D("0.00"), date(2024, 2, 1), "pending"),
                InstallmentSnapshot(2, D("0.05"), D("0.05"), date(2024, 3, 1), "paid"),
            ),
        )
        summary = reconcile([paid_off], date(2025, 1, 1))
        self.assertEqual(summary.unpaid_installments, 0)
        self.assertEqual(summary.unpaid_clients, 0)

    def test_parallel_map_gives_same_result(self):
        sales = _mixed_portfolio() * 5
        with ThreadPoolExecutor(max_workers=4) as executor:
            parallel = reconcile(sales, self.reference, executor=executor)
        self.assertEqual(parallel, reconcile(sales, self.reference))

    def test_explicit_period(self):
        period = ReportingPeriod(start=date(2024, 6, 1), end=date(2024, 8, 31))
        summary = reconcile([_installment_sale()], self.reference, period=period)
        self.assertEqual(summary.expected_this_period, D("14400.00"))

    def test_as_dict_is_json_ready(self):
        payload = reconcile(_mixed_portfolio(), self.reference).as_dict()

        self.assertEqual(payload["totalCollected"], "59600.00")
        self.assertEqual(payload["period"], {"start": "2024-05-01", "end": "2024-05-31"})
        json.dumps(payload)


class RecordInstallmentPaymentTests(BaseAppTestCase):
    def setUp(self):
        self.user = self.make_user(username="caja")
        self.sale = self.make_installment_sale()
        self.first = self.sale.installments.get(installment_number=1)

    def test_payment_spills_over_to_next_installments(self):
        receipt = record_installment_payment(
            self.first, D("10000.00"), date_paid=date(2024, 2, 10), created_by=self.user
        )

        self.assertEqual(receipt.surplus, D("0.00"))
        applied = list(receipt.applications.values_list("installment__installment_number", "amount"))
        self.assertEqual(applied, [(1, D("4800.00")), (2, D("4800.00")), (3, D("400.00"))])
        third = self.sale.installments.get(installment_number=3)
        self.assertEqual(third.status, InstallmentPayment.Status.PENDING)
        self.assertEqual(third.amount_paid, D("400.00"))
        self.assertEqual(
            self.sale.installments.filter(status=InstallmentPayment.Status.PAID).count(), 2
        )
        self.assertTrue(SaleLog.objects.filter(sale=self.sale, action=SaleLog.Action.PAYMENT).exists())

    def test_overpayment_is_kept_as_surplus(self):
        receipt = record_installment_payment(self.first, D("48500.00"), date_paid=date(2024, 2, 10))

        self.assertEqual(receipt.surplus, D("500.00"))
        self.assertFalse(self.sale.installments.exclude(status=InstallmentPayment.Status.PAID).exists())
        self.assertEqual(PaymentApplication.objects.filter(receipt=receipt).count(), 10)

    def test_stale_installment_rolls_back_whole_payment(self):
        stale = InstallmentPayment.objects.get(pk=self.first.pk)
        record_installment_payment(self.first, D("100.00"))

        with self.assertRaises(ConcurrencyError):
            record_installment_payment(stale, D("9000.00"))

        self.assertEqual(PaymentReceipt.objects.count(), 1)
        self.first.refresh_from_db()
        self.assertEqual(self.first.amount_paid, D("100.00"))
        self.assertEqual(self.sale.installments.get(installment_number=2).amount_paid, D("0.00"))

    def test_non_positive_amount_is_rejected(self):
        with self.assertRaises(SaleStateError):
            record_installment_payment(self.first, D("0"))

    def test_pending_sale_does_not_accept_payments(self):
        sale = Factory.sale(payment_method=Sale.PaymentMethod.INSTALLMENT)
        item = Factory.installment(sale=sale)
        with self.assertRaises(SaleStateError):
            record_installment_payment(item, D("100.00"))
        self.assertFalse(PaymentReceipt.objects.filter(sale=sale).exists())

    def test_paid_installment_is_rejected(self):
        record_installment_payment(self.first, D("4800.00"))
        self.first.refresh_from_db()
        with self.assertRaises(SaleStateError):
            record_installment_payment(self.first, D("10.00"))


class FinancialSummaryTests(BaseAppTestCase):
    def setUp(self):
        self.seller = self.make_user(username="ana", first_name="Ana", last_name="Ben Salah")
        self.sale = self.make_installment_sale(sold_by=self.seller)
        first = self.sale.installments.get(installment_number=1)
        record_installment_payment(first, D("4800.00"), date_paid=date(2024, 2, 14))

    def test_load_snapshot_excludes_cancelled_sales(self):
        cancelled = self.make_installment_sale()
        cancel_sale(cancelled)

        snapshots = load_snapshot()

        self.assertEqual([s.sale_id for s in snapshots], [str(self.sale.pk)])
        snapshot = snapshots[0]
        self.assertEqual(snapshot.seller, "Ana Ben Salah")
        self.assertEqual(snapshot.seller_id, self.seller.pk)
        self.assertEqual(snapshot.location, "Hammamet")
        self.assertEqual(len(snapshot.installments), 10)

    def test_load_snapshot_filters_by_sale_date(self):
        self.assertEqual(load_snapshot(date_from=date(2024, 2, 1)), [])
        self.assertEqual(len(load_snapshot(date_to=date(2024, 1, 31))), 1)

    def test_summary_from_database(self):
        summary = financial_summary(reference_date=date(2024, 3, 20))

        self.assertEqual(summary.total_revenue, D("50000.00"))
        self.assertEqual(summary.categories.deposit, D("1000.00"))
        self.assertEqual(summary.categories.advance, D("1000.00"))
        self.assertEqual(summary.categories.installment, D("4800.00"))
        self.assertEqual(summary.total_collected, D("6800.00"))
        self.assertEqual(summary.unpaid_amount, D("4800.00"))
        self.assertEqual(summary.expected_this_period, D("4800.00"))

    def test_command_prints_json_summary(self):
        out = StringIO()
        call_command("financial_summary", "--reference-date", "2024-03-20", stdout=out)

        payload = json.loads(out.getvalue())
        self.assertEqual(payload["totalRevenue"], "50000.00")
        self.assertEqual(payload["unpaidInstallments"], 1)
        self.assertEqual(payload["bySeller"][0]["seller"], "Ana Ben Salah")

    def test_command_prints_sale_ledger(self):
        out = StringIO()
        call_command(
            "financial_summary", "--sale", str(self.sale.pk), "--reference-date", "2024-03-20", stdout=out
        )

        payload = json.loads(out.getvalue())
        self.assertEqual(payload["paidCount"], 1)
        self.assertEqual(payload["overdueCount"], 1)
        self.assertEqual(payload["nextDueDate"], "2024-04-15")

    def test_command_rejects_bad_dates(self):
        with self.assertRaises(CommandError):
            call_command("financial_summary", "--from", "2024-13-01", stdout=StringIO())
        with self.assertRaises(CommandError):
            call_command("financial_summary", "--sale", "no-es-un-uuid", stdout=StringIO())
