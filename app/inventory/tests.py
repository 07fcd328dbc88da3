from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, TestCase

from core.exceptions import PricingError
from inventory.models import LandPiece, PaymentOffer
from inventory.pricing import (
    SOURCE_BATCH,
    SOURCE_INSTALLMENT,
    SOURCE_PIECE,
    calculate_sale_price,
    quote_piece,
)
from tests.factories import Factory


class CalculateSalePriceTests(SimpleTestCase):
    def test_installment_sale_uses_offer_price(self):
        quote = calculate_sale_price(
            Decimal("100"),
            "installment",
            installment_price_per_m2=Decimal("500"),
            piece_price_per_m2=Decimal("450"),
            batch_price_per_m2=Decimal("400"),
        )
        self.assertEqual(quote.sale_price, Decimal("50000.00"))
        self.assertEqual(quote.source, SOURCE_INSTALLMENT)

    def test_full_sale_ignores_offer_price(self):
        quote = calculate_sale_price(
            Decimal("100"),
            "full",
            installment_price_per_m2=Decimal("500"),
            piece_price_per_m2=Decimal("450"),
            batch_price_per_m2=Decimal("400"),
        )
        self.assertEqual(quote.sale_price, Decimal("45000.00"))
        self.assertEqual(quote.source, SOURCE_PIECE)

    def test_falls_back_to_batch_price(self):
        quote = calculate_sale_price(
            Decimal("120.5"),
            "promise",
            piece_price_per_m2=None,
            batch_price_per_m2=Decimal("400"),
        )
        self.assertEqual(quote.sale_price, Decimal("48200.00"))
        self.assertEqual(quote.source, SOURCE_BATCH)

    def test_zero_price_is_skipped(self):
        quote = calculate_sale_price(
            Decimal("100"),
            "installment",
            installment_price_per_m2=Decimal("0"),
            piece_price_per_m2=Decimal("0"),
            batch_price_per_m2=Decimal("400"),
        )
        self.assertEqual(quote.source, SOURCE_BATCH)

    def test_result_is_rounded_to_cents(self):
        quote = calculate_sale_price(Decimal("33.333"), "full", batch_price_per_m2=Decimal("3"))
        self.assertEqual(quote.sale_price, Decimal("100.00"))

    def test_no_price_source_raises(self):
        with self.assertRaises(PricingError):
            calculate_sale_price(Decimal("100"), "full")

    def test_non_positive_surface_raises(self):
        with self.assertRaises(PricingError):
            calculate_sale_price(Decimal("0"), "full", batch_price_per_m2=Decimal("400"))


class QuotePieceTests(TestCase):
    def test_piece_direct_price_overrides_batch(self):
        batch = Factory.batch(price_per_m2_cash=Decimal("400.00"))
        piece = Factory.piece(batch=batch, direct_price_per_m2=Decimal("420.00"))

        quote = quote_piece(piece, "full")

        self.assertEqual(quote.sale_price, Decimal("42000.00"))

    def test_offer_price_for_installment_sale(self):
        piece = Factory.piece()
        offer = Factory.offer(batch=piece.batch, price_per_m2_installment=Decimal("500.00"))

        quote = quote_piece(piece, "installment", offer)

        self.assertEqual(quote.sale_price, Decimal("50000.00"))


class LandModelsTests(TestCase):
    def test_new_piece_is_available(self):
        piece = Factory.piece()
        self.assertEqual(piece.status, LandPiece.Status.AVAILABLE)

    def test_offer_must_belong_to_batch_or_piece(self):
        piece = Factory.piece()
        offer = PaymentOffer(
            batch=piece.batch,
            piece=piece,
            price_per_m2_installment=Decimal("500.00"),
        )
        with self.assertRaises(ValidationError):
            offer.clean()

    def test_offer_as_terms(self):
        offer = Factory.offer(
            calc_mode=PaymentOffer.CalcMode.MONTHLY_AMOUNT,
            monthly_amount=Decimal("3000.00"),
            months=None,
        )
        terms = offer.as_terms()
        self.assertEqual(terms.calc_mode, "monthlyAmount")
        self.assertEqual(terms.monthly_amount, Decimal("3000.00"))
        self.assertEqual(terms.price_per_m2, Decimal("500.00"))
