"""
Generación del plan de cuotas de una venta a plazos.

Flujo de pago:
  1. Depósito, cobrado al registrar la venta.
  2. Anticipo después del depósito, cobrado al confirmar.
  3. Cuotas mensuales sobre el saldo restante.

Todo es cálculo puro: las mismas entradas producen siempre el mismo plan.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_CEILING
from typing import Optional, Tuple

from dateutil.relativedelta import relativedelta

from core.exceptions import ConfigurationError
from core.money import ZERO, money, money_down, to_decimal

from .terms import (
    ADVANCE_FIXED,
    ADVANCE_PERCENT,
    CALC_MONTHLY_AMOUNT,
    CALC_MONTHS,
    InstallmentTerms,
    OfferTerms,
)


@dataclass(frozen=True)
class ScheduleItem:
    installment_number: int
    amount_due: Decimal
    due_date: date


@dataclass(frozen=True)
class InstallmentPlan:
    sale_price: Decimal
    deposit_amount: Decimal
    advance_amount: Decimal
    advance_after_deposit: Decimal
    remaining_for_installments: Decimal
    installment_amount: Decimal
    items: Tuple[ScheduleItem, ...]

    @property
    def installment_count(self):
        return len(self.items)

    @property
    def total_scheduled(self):
        return sum((item.amount_due for item in self.items), ZERO)


def advance_amount(sale_price, offer: OfferTerms):
    value = to_decimal(offer.advance_value)
    if offer.advance_mode == ADVANCE_FIXED:
        return money(value)
    if offer.advance_mode == ADVANCE_PERCENT:
        return money(to_decimal(sale_price) * value / Decimal("100"))
    raise ConfigurationError(f"Modo de anticipo desconocido: {offer.advance_mode!r}")


def advance_after_deposit(sale_price, deposit_amount, offer: OfferTerms):
    """max(0, anticipo − depósito)."""
    return max(advance_amount(sale_price, offer) - money(deposit_amount), ZERO)


def _due_dates(count, sale_date, installment_start_date=None):
    # Se calcula cada fecha desde el ancla para no arrastrar el recorte de fin de mes.
    if installment_start_date is not None:
        anchor, offset = installment_start_date, 0
    else:
        anchor, offset = sale_date, 1
    return [anchor + relativedelta(months=offset + i) for i in range(count)]


def _amounts_by_months(remaining, months, max_months):
    if months is None or months < 1:
        raise ConfigurationError("El número de meses debe ser al menos 1.")
    if max_months is not None and months > max_months:
        raise ConfigurationError(
            f"El número de meses ({months}) supera el máximo permitido ({max_months})."
        )
    regular = money_down(remaining / months)
    if remaining > 0 and regular <= 0:
        raise ConfigurationError(
            f"El saldo ({remaining}) no alcanza para {months} cuotas de al menos un céntimo."
        )
    last = remaining - regular * (months - 1)
    return regular, [regular] * (months - 1) + [last]


def _amounts_by_monthly_amount(remaining, monthly_amount):
    monthly = money(monthly_amount) if monthly_amount is not None else ZERO
    if monthly <= 0:
        raise ConfigurationError("La cuota mensual debe ser mayor que cero.")
    count = int((remaining / monthly).to_integral_value(rounding=ROUND_CEILING))
    last = remaining - monthly * (count - 1)
    return monthly, [monthly] * (count - 1) + [last]


def build_plan(
    sale_price,
    deposit_amount,
    offer: OfferTerms,
    sale_date: date,
    installment_start_date: Optional[date] = None,
    max_months: Optional[int] = None,
) -> InstallmentPlan:
    sale_price = money(sale_price)
    deposit = money(deposit_amount)

    advance = advance_amount(sale_price, offer)
    advance_net = max(advance - deposit, ZERO)
    remaining = sale_price - deposit - advance_net
    if remaining < 0:
        raise ConfigurationError(
            f"El saldo para cuotas es negativo ({remaining}): el anticipo supera el precio de venta."
        )

    if offer.calc_mode == CALC_MONTHS:
        regular, amounts = _amounts_by_months(remaining, offer.months, max_months)
    elif offer.calc_mode == CALC_MONTHLY_AMOUNT:
        regular, amounts = _amounts_by_monthly_amount(remaining, offer.monthly_amount)
    else:
        raise ConfigurationError(f"Modo de cálculo desconocido: {offer.calc_mode!r}")

    if remaining == 0:
        amounts = []

    dates = _due_dates(len(amounts), sale_date, installment_start_date)
    items = tuple(
        ScheduleItem(installment_number=n, amount_due=amount, due_date=due)
        for n, (amount, due) in enumerate(zip(amounts, dates), start=1)
    )
    return InstallmentPlan(
        sale_price=sale_price,
        deposit_amount=deposit,
        advance_amount=advance,
        advance_after_deposit=advance_net,
        remaining_for_installments=remaining,
        installment_amount=regular,
        items=items,
    )


def build_plan_for_terms(terms: InstallmentTerms, max_months=None) -> InstallmentPlan:
    return build_plan(
        terms.sale_price,
        terms.deposit_amount,
        terms.offer,
        terms.sale_date,
        installment_start_date=terms.installment_start_date,
        max_months=max_months,
    )
