"""
Condiciones económicas de una venta, modeladas como variantes por forma de pago.

Cada variante lleva solo los campos que tienen sentido para su forma de pago,
así el resto del dominio despacha por tipo en lugar de revisar opcionales.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Union

from core.money import ZERO, to_decimal

FULL = "full"
INSTALLMENT = "installment"
PROMISE = "promise"

ADVANCE_FIXED = "fixed"
ADVANCE_PERCENT = "percent"
CALC_MONTHLY_AMOUNT = "monthlyAmount"
CALC_MONTHS = "months"


@dataclass(frozen=True)
class OfferTerms:
    price_per_m2: Decimal
    advance_mode: str
    advance_value: Decimal
    calc_mode: str
    monthly_amount: Optional[Decimal] = None
    months: Optional[int] = None


@dataclass(frozen=True)
class FullTerms:
    sale_price: Decimal
    deposit_amount: Decimal

    payment_method = FULL


@dataclass(frozen=True)
class InstallmentTerms:
    sale_price: Decimal
    deposit_amount: Decimal
    offer: OfferTerms
    sale_date: date
    installment_start_date: Optional[date] = None

    payment_method = INSTALLMENT


@dataclass(frozen=True)
class PromiseTerms:
    sale_price: Decimal
    deposit_amount: Decimal
    partial_payment_amount: Optional[Decimal] = None

    payment_method = PROMISE

    @property
    def promise_collected(self):
        """Lo cobrado en la promesa sin contar el depósito (nunca negativo)."""
        if self.partial_payment_amount is None:
            return ZERO
        return max(to_decimal(self.partial_payment_amount) - self.deposit_amount, ZERO)


SaleTerms = Union[FullTerms, InstallmentTerms, PromiseTerms]
