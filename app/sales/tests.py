from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal

from django.test import SimpleTestCase, override_settings

from core.exceptions import ConcurrencyError, ConfigurationError, PricingError, SaleStateError
from inventory.models import LandPiece, PaymentOffer
from sales.ledger import (
    OVERDUE,
    PAID,
    PENDING,
    apply_payment,
    installment_state,
    outstanding,
    summarize_ledger,
)
from sales.models import InstallmentPayment, Sale, SaleLog
from sales.plans import advance_after_deposit, build_plan, build_plan_for_terms
from sales.services import cancel_sale, confirm_sale, create_sale, record_promise_payment
from sales.terms import InstallmentTerms, OfferTerms, PromiseTerms
from tests.base import BaseAppTestCase
from tests.factories import Factory


def _offer(**kwargs):
    defaults = {
        "price_per_m2": Decimal("500"),
        "advance_mode": "fixed",
        "advance_value": Decimal("2000"),
        "calc_mode": "months",
        "months": 10,
    }
    defaults.update(kwargs)
    return OfferTerms(**defaults)


class BuildPlanTests(SimpleTestCase):
    def test_months_mode_scenario(self):
        plan = build_plan(Decimal("50000"), Decimal("1000"), _offer(), date(2024, 1, 15))

        self.assertEqual(plan.advance_after_deposit, Decimal("1000.00"))
        self.assertEqual(plan.remaining_for_installments, Decimal("48000.00"))
        self.assertEqual(plan.installment_count, 10)
        self.assertEqual({item.amount_due for item in plan.items}, {Decimal("4800.00")})
        self.assertEqual(
            [item.due_date for item in plan.items[:3]],
            [date(2024, 2, 15), date(2024, 3, 15), date(2024, 4, 15)],
        )
        self.assertEqual(plan.items[-1].due_date, date(2024, 11, 15))

    def test_monthly_amount_exact_division(self):
        offer = _offer(calc_mode="monthlyAmount", monthly_amount=Decimal("3000"), months=None)
        plan = build_plan(Decimal("50000"), Decimal("1000"), offer, date(2024, 1, 15))

        self.assertEqual(plan.remaining_for_installments, Decimal("48000.00"))
        self.assertEqual(plan.installment_count, 16)
        self.assertTrue(all(item.amount_due == Decimal("3000.00") for item in plan.items))

    def test_monthly_amount_with_residual_installment(self):
        offer = _offer(calc_mode="monthlyAmount", monthly_amount=Decimal("3000"), months=None)
        plan = build_plan(Decimal("50500"), Decimal("1000"), offer, date(2024, 1, 15))

        self.assertEqual(plan.remaining_for_installments, Decimal("48500.00"))
        self.assertEqual(plan.installment_count, 17)
        self.assertTrue(all(item.amount_due == Decimal("3000.00") for item in plan.items[:16]))
        self.assertEqual(plan.items[16].amount_due, Decimal("500.00"))

    def test_months_mode_last_installment_absorbs_residual(self):
        offer = _offer(advance_value=Decimal("0"), months=3)
        plan = build_plan(Decimal("1000"), Decimal("0"), offer, date(2024, 1, 15))

        self.assertEqual(
            [item.amount_due for item in plan.items],
            [Decimal("333.33"), Decimal("333.33"), Decimal("333.34")],
        )

    def test_schedule_reconciles_to_sale_price(self):
        cases = [
            (Decimal("50000"), Decimal("1000"), _offer()),
            (Decimal("50500"), Decimal("0"), _offer(advance_mode="percent", advance_value=Decimal("12.5"), months=7)),
            (Decimal("48750.55"), Decimal("3000"), _offer(calc_mode="monthlyAmount", monthly_amount=Decimal("1999.99"))),
        ]
        for sale_price, deposit, offer in cases:
            with self.subTest(sale_price=sale_price, offer=offer.calc_mode):
                plan = build_plan(sale_price, deposit, offer, date(2024, 1, 15))
                self.assertEqual(
                    plan.deposit_amount + plan.advance_after_deposit + plan.total_scheduled,
                    sale_price,
                )

    def test_plan_is_idempotent(self):
        args = (Decimal("50500"), Decimal("1000"), _offer(months=9), date(2024, 5, 31))
        self.assertEqual(build_plan(*args), build_plan(*args))

    def test_percent_advance_zero(self):
        offer = _offer(advance_mode="percent", advance_value=Decimal("0"))
        self.assertEqual(advance_after_deposit(Decimal("50000"), Decimal("0"), offer), Decimal("0.00"))

    def test_deposit_covering_advance(self):
        plan = build_plan(Decimal("50000"), Decimal("3000"), _offer(), date(2024, 1, 15))

        self.assertEqual(plan.advance_after_deposit, Decimal("0.00"))
        self.assertEqual(plan.remaining_for_installments, Decimal("47000.00"))

    def test_percent_advance(self):
        offer = _offer(advance_mode="percent", advance_value=Decimal("10"))
        plan = build_plan(Decimal("50000"), Decimal("1000"), offer, date(2024, 1, 15))

        self.assertEqual(plan.advance_amount, Decimal("5000.00"))
        self.assertEqual(plan.advance_after_deposit, Decimal("4000.00"))

    def test_due_dates_clamp_to_month_end(self):
        plan = build_plan(Decimal("50000"), Decimal("1000"), _offer(months=4), date(2024, 1, 31))

        self.assertEqual(
            [item.due_date for item in plan.items],
            [date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30), date(2024, 5, 31)],
        )

    def test_explicit_start_date_is_first_due_date(self):
        plan = build_plan(
            Decimal("50000"),
            Decimal("1000"),
            _offer(months=2),
            date(2024, 1, 15),
            installment_start_date=date(2024, 3, 5),
        )
        self.assertEqual([item.due_date for item in plan.items], [date(2024, 3, 5), date(2024, 4, 5)])

    def test_zero_remaining_gives_empty_schedule(self):
        plan = build_plan(Decimal("2000"), Decimal("0"), _offer(), date(2024, 1, 15))

        self.assertEqual(plan.remaining_for_installments, Decimal("0.00"))
        self.assertEqual(plan.items, ())

    def test_invalid_offers_raise_configuration_error(self):
        invalid = [
            _offer(months=0),
            _offer(months=None),
            _offer(calc_mode="monthlyAmount", monthly_amount=Decimal("0"), months=None),
            _offer(calc_mode="monthlyAmount", monthly_amount=None, months=None),
            _offer(advance_mode="percent", advance_value=Decimal("120")),
            _offer(advance_mode="weekly"),
            _offer(calc_mode="weeks"),
        ]
        for offer in invalid:
            with self.subTest(offer=offer):
                with self.assertRaises(ConfigurationError):
                    build_plan(Decimal("50000"), Decimal("1000"), offer, date(2024, 1, 15))

    def test_months_above_limit(self):
        with self.assertRaises(ConfigurationError):
            build_plan(Decimal("50000"), Decimal("1000"), _offer(months=121), date(2024, 1, 15), max_months=120)

    def test_months_mode_rejects_sub_cent_installments(self):
        offer = _offer(advance_value=Decimal("0"), months=10)
        with self.assertRaises(ConfigurationError):
            build_plan(Decimal("0.05"), Decimal("0"), offer, date(2024, 1, 15))

        plan = build_plan(Decimal("0.10"), Decimal("0"), offer, date(2024, 1, 15))
        self.assertEqual({item.amount_due for item in plan.items}, {Decimal("0.01")})

    def test_build_plan_for_terms(self):
        terms = InstallmentTerms(
            sale_price=Decimal("50000"),
            deposit_amount=Decimal("1000"),
            offer=_offer(),
            sale_date=date(2024, 1, 15),
        )
        self.assertEqual(build_plan_for_terms(terms).installment_count, 10)


class LedgerStateTests(SimpleTestCase):
    def test_unpaid_past_due_is_overdue(self):
        item = InstallmentPayment(
            installment_number=1,
            amount_due=Decimal("1000.00"),
            amount_paid=Decimal("0.00"),
            due_date=date(2024, 1, 1),
            status=PENDING,
        )
        self.assertEqual(installment_state(item.status, item.due_date, date(2024, 2, 1)), OVERDUE)
        self.assertEqual(outstanding(item), Decimal("1000.00"))

    def test_due_on_reference_date_is_not_overdue(self):
        self.assertEqual(installment_state(PENDING, date(2024, 2, 1), date(2024, 2, 1)), PENDING)

    def test_paid_is_never_overdue(self):
        self.assertEqual(installment_state(PAID, date(2024, 1, 1), date(2024, 6, 1)), PAID)

    def test_stored_overdue_is_evaluated_again(self):
        self.assertEqual(installment_state(OVERDUE, date(2024, 3, 1), date(2024, 2, 1)), PENDING)

    @override_settings(TIME_ZONE="Africa/Tunis")
    def test_aware_datetime_reference_uses_local_date(self):
        # 23:30 UTC del 31 de enero ya es 1 de febrero en Túnez
        reference = datetime(2024, 1, 31, 23, 30, tzinfo=dt_timezone.utc)
        self.assertEqual(installment_state(PENDING, date(2024, 1, 31), reference), OVERDUE)

    def test_summarize_ledger(self):
        rows = [
            InstallmentPayment(installment_number=1, amount_due=Decimal("1000"), amount_paid=Decimal("1000"), due_date=date(2024, 1, 1), status=PAID),
            InstallmentPayment(installment_number=2, amount_due=Decimal("1000"), amount_paid=Decimal("400"), due_date=date(2024, 2, 1), status=PENDING),
            InstallmentPayment(installment_number=3, amount_due=Decimal("1000"), amount_paid=Decimal("0"), due_date=date(2024, 3, 1), status=PENDING),
            InstallmentPayment(installment_number=4, amount_due=Decimal("1000"), amount_paid=Decimal("0"), due_date=date(2024, 4, 1), status=PENDING),
        ]
        summary = summarize_ledger(rows, date(2024, 3, 1))

        self.assertEqual(summary.paid_count, 1)
        self.assertEqual(summary.total_paid, Decimal("1400"))
        self.assertEqual(summary.outstanding, Decimal("2600"))
        self.assertEqual(summary.overdue_count, 1)
        self.assertEqual(summary.overdue_amount, Decimal("600"))
        self.assertEqual(summary.next_due_date, date(2024, 3, 1))
        self.assertEqual(summary.progress, Decimal("35.00"))


class ApplyPaymentTests(BaseAppTestCase):
    def setUp(self):
        self.sale = Factory.sale(
            payment_method=Sale.PaymentMethod.INSTALLMENT,
            status=Sale.State.COMPLETED,
        )
        self.item = Factory.installment(sale=self.sale, amount_due=Decimal("1000.00"))

    def test_partial_payment_keeps_installment_pending(self):
        applied = apply_payment(self.item, Decimal("400.00"), date(2024, 2, 10))

        self.assertEqual(applied, Decimal("400.00"))
        self.item.refresh_from_db()
        self.assertEqual(self.item.status, InstallmentPayment.Status.PENDING)
        self.assertEqual(self.item.amount_paid, Decimal("400.00"))
        self.assertIsNone(self.item.paid_date)
        self.assertEqual(self.item.version, 1)

    def test_full_payment_marks_paid(self):
        apply_payment(self.item, Decimal("400.00"), date(2024, 2, 10))
        applied = apply_payment(self.item, Decimal("900.00"), date(2024, 2, 12))

        self.assertEqual(applied, Decimal("600.00"))
        self.item.refresh_from_db()
        self.assertEqual(self.item.status, InstallmentPayment.Status.PAID)
        self.assertEqual(self.item.amount_paid, Decimal("1000.00"))
        self.assertEqual(self.item.paid_date, date(2024, 2, 12))

    def test_stale_instance_raises_concurrency_error(self):
        stale = InstallmentPayment.objects.get(pk=self.item.pk)
        apply_payment(self.item, Decimal("700.00"), date(2024, 2, 10))

        with self.assertRaises(ConcurrencyError) as ctx:
            apply_payment(stale, Decimal("700.00"), date(2024, 2, 10))

        self.assertEqual(ctx.exception.installment_id, self.item.pk)
        fresh = InstallmentPayment.objects.get(pk=self.item.pk)
        self.assertEqual(fresh.amount_paid, Decimal("700.00"))
        self.assertEqual(fresh.version, 1)

    def test_paid_installment_accepts_nothing(self):
        apply_payment(self.item, Decimal("1000.00"), date(2024, 2, 10))
        self.assertEqual(apply_payment(self.item, Decimal("50.00"), date(2024, 2, 11)), Decimal("0.00"))


class SaleLifecycleTests(BaseAppTestCase):
    def setUp(self):
        self.seller = self.make_user(username="vendedor")
        self.batch = Factory.batch(price_per_m2_cash=Decimal("400.00"))
        self.piece = Factory.piece(batch=self.batch)
        self.offer = Factory.offer(batch=self.batch)
        self.client_obj = Factory.client()

    def test_create_sale_reserves_piece_and_logs(self):
        sale = create_sale(
            client=self.client_obj,
            piece=self.piece,
            payment_method=Sale.PaymentMethod.FULL,
            deposit_amount=Decimal("5000"),
            sold_by=self.seller,
        )

        self.assertEqual(sale.status, Sale.State.PENDING)
        self.assertEqual(sale.sale_price, Decimal("40000.00"))
        self.piece.refresh_from_db()
        self.assertEqual(self.piece.status, LandPiece.Status.RESERVED)
        self.assertTrue(SaleLog.objects.filter(sale=sale, action=SaleLog.Action.CREATED).exists())

    def test_piece_cannot_be_sold_twice(self):
        create_sale(client=self.client_obj, piece=self.piece, payment_method=Sale.PaymentMethod.FULL)

        with self.assertRaises(SaleStateError):
            create_sale(client=Factory.client(), piece=self.piece, payment_method=Sale.PaymentMethod.FULL)
        self.assertEqual(Sale.objects.count(), 1)

    def test_invalid_offer_rejects_sale_before_persistence(self):
        bad_offer = Factory.offer(batch=self.batch, months=0)

        with self.assertRaises(ConfigurationError):
            create_sale(
                client=self.client_obj,
                piece=self.piece,
                payment_method=Sale.PaymentMethod.INSTALLMENT,
                payment_offer=bad_offer,
            )
        self.assertFalse(Sale.objects.exists())
        self.piece.refresh_from_db()
        self.assertEqual(self.piece.status, LandPiece.Status.AVAILABLE)

    def test_installment_sale_requires_offer(self):
        with self.assertRaises(ConfigurationError):
            create_sale(client=self.client_obj, piece=self.piece, payment_method=Sale.PaymentMethod.INSTALLMENT)

    def test_deposit_above_price_is_rejected(self):
        with self.assertRaises(PricingError):
            create_sale(
                client=self.client_obj,
                piece=self.piece,
                payment_method=Sale.PaymentMethod.FULL,
                deposit_amount=Decimal("40000.01"),
            )

    def test_missing_price_is_rejected(self):
        batch = Factory.batch(price_per_m2_cash=None)
        piece = Factory.piece(batch=batch)
        with self.assertRaises(PricingError):
            create_sale(client=self.client_obj, piece=piece, payment_method=Sale.PaymentMethod.FULL)
        self.assertFalse(Sale.objects.exists())

    def test_confirm_installment_sale_materializes_plan(self):
        sale = self.make_installment_sale(piece=self.piece, offer=self.offer, confirm=False)

        confirm_sale(sale, confirmed_by=self.seller)

        sale.refresh_from_db()
        self.assertEqual(sale.status, Sale.State.COMPLETED)
        rows = list(sale.installments.order_by("installment_number"))
        self.assertEqual(len(rows), 10)
        self.assertEqual(sum(r.amount_due for r in rows), Decimal("48000.00"))
        self.assertEqual(rows[0].due_date, date(2024, 2, 15))
        self.piece.refresh_from_db()
        self.assertEqual(self.piece.status, LandPiece.Status.SOLD)
        self.assertTrue(SaleLog.objects.filter(sale=sale, action=SaleLog.Action.CONFIRMED).exists())

    def test_confirm_with_start_date(self):
        sale = self.make_installment_sale(piece=self.piece, offer=self.offer, confirm=False)

        confirm_sale(sale, installment_start_date=date(2024, 4, 1))

        first = sale.installments.order_by("installment_number").first()
        self.assertEqual(first.due_date, date(2024, 4, 1))

    def test_confirm_twice_is_rejected(self):
        sale = self.make_installment_sale(piece=self.piece, offer=self.offer)

        with self.assertRaises(SaleStateError):
            confirm_sale(sale)
        self.assertEqual(sale.installments.count(), 10)

    @override_settings(INSTALLMENT_MAX_MONTHS=6)
    def test_months_limit_comes_from_settings(self):
        with self.assertRaises(ConfigurationError):
            self.make_installment_sale(piece=self.piece, offer=self.offer, confirm=False)

    def test_promise_payments_accumulate(self):
        sale = create_sale(
            client=self.client_obj,
            piece=self.piece,
            payment_method=Sale.PaymentMethod.PROMISE,
            deposit_amount=Decimal("3000"),
        )

        record_promise_payment(sale, Decimal("2000"))
        record_promise_payment(sale, Decimal("3000"))

        self.assertEqual(sale.partial_payment_amount, Decimal("8000.00"))
        self.assertEqual(sale.terms(), PromiseTerms(Decimal("40000.00"), Decimal("3000.00"), Decimal("8000.00")))
        self.assertEqual(sale.terms().promise_collected, Decimal("5000.00"))
        self.assertEqual(
            SaleLog.objects.filter(sale=sale, action=SaleLog.Action.PROMISE_PAYMENT).count(), 2
        )

    def test_promise_payment_cannot_exceed_price(self):
        sale = create_sale(
            client=self.client_obj,
            piece=self.piece,
            payment_method=Sale.PaymentMethod.PROMISE,
            deposit_amount=Decimal("3000"),
        )
        with self.assertRaises(SaleStateError):
            record_promise_payment(sale, Decimal("37000.01"))

    def test_promise_payment_only_on_promise_sales(self):
        sale = create_sale(client=self.client_obj, piece=self.piece, payment_method=Sale.PaymentMethod.FULL)
        with self.assertRaises(SaleStateError):
            record_promise_payment(sale, Decimal("100"))

    def test_cancel_sale_removes_ledger_and_releases_piece(self):
        sale = self.make_installment_sale(piece=self.piece, offer=self.offer)

        cancel_sale(sale, user=self.seller, reason="Desistimiento")

        self.assertEqual(sale.status, Sale.State.CANCELLED)
        self.assertFalse(InstallmentPayment.objects.filter(sale=sale).exists())
        self.piece.refresh_from_db()
        self.assertEqual(self.piece.status, LandPiece.Status.AVAILABLE)
        log = SaleLog.objects.get(sale=sale, action=SaleLog.Action.CANCELLED)
        self.assertEqual(log.metadata["deleted_rows"], "10")

    def test_cancel_twice_is_rejected(self):
        sale = create_sale(client=self.client_obj, piece=self.piece, payment_method=Sale.PaymentMethod.FULL)
        cancel_sale(sale)
        with self.assertRaises(SaleStateError):
            cancel_sale(sale)

    def test_client_document_and_phone_are_normalized(self):
        client = Factory.client(id_number="12.345.678-k", phone="+216 (20) 123-456")
        self.assertEqual(client.id_number, "12345678k")
        self.assertEqual(client.phone, "21620123456")

    def test_offer_scoped_to_piece(self):
        offer = Factory.offer(piece=self.piece, batch=None, calc_mode=PaymentOffer.CalcMode.MONTHS, months=5)
        sale = self.make_installment_sale(piece=self.piece, offer=offer)
        self.assertEqual(sale.installments.count(), 5)
