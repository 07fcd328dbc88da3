"""
Libro de cuotas: estado de cada cuota y escritura atómica de pagos.

La mora no es un estado persistido: una cuota está vencida si no está pagada
y su vencimiento es anterior a la fecha de referencia de quien la evalúa.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from django.db.models import F
from django.utils import timezone

from core.exceptions import ConcurrencyError
from core.money import ZERO

from .models import InstallmentPayment

logger = logging.getLogger(__name__)

PENDING = InstallmentPayment.Status.PENDING.value
PAID = InstallmentPayment.Status.PAID.value
OVERDUE = InstallmentPayment.Status.OVERDUE.value


def as_date(reference) -> date:
    if isinstance(reference, datetime):
        if timezone.is_aware(reference):
            return timezone.localtime(reference).date()
        return reference.date()
    return reference


def installment_state(status, due_date, reference) -> str:
    if status == PAID:
        return PAID
    if due_date < as_date(reference):
        return OVERDUE
    return PENDING


def is_overdue(installment, reference) -> bool:
    return installment_state(installment.status, installment.due_date, reference) == OVERDUE


def outstanding(installment) -> Decimal:
    """Lo que falta por pagar de la cuota (amount_due − amount_paid)."""
    return max(installment.amount_due - installment.amount_paid, ZERO)


@dataclass(frozen=True)
class LedgerSummary:
    installment_count: int
    paid_count: int
    total_due: Decimal
    total_paid: Decimal
    outstanding: Decimal
    overdue_amount: Decimal
    overdue_count: int
    next_due_date: Optional[date]
    next_due_amount: Decimal
    progress: Decimal


def summarize_ledger(installments, reference) -> LedgerSummary:
    rows = sorted(installments, key=lambda i: i.installment_number)
    total_due = sum((i.amount_due for i in rows), ZERO)
    total_paid = sum((i.amount_paid for i in rows), ZERO)
    overdue = [i for i in rows if is_overdue(i, reference)]
    upcoming = [
        i for i in rows
        if installment_state(i.status, i.due_date, reference) == PENDING
    ]
    next_item = upcoming[0] if upcoming else None
    progress = ZERO
    if total_due > 0:
        progress = (total_paid * Decimal("100") / total_due).quantize(Decimal("0.01"))
    return LedgerSummary(
        installment_count=len(rows),
        paid_count=sum(1 for i in rows if i.status == PAID),
        total_due=total_due,
        total_paid=total_paid,
        outstanding=sum((outstanding(i) for i in rows if i.status != PAID), ZERO),
        overdue_amount=sum((outstanding(i) for i in overdue), ZERO),
        overdue_count=len(overdue),
        next_due_date=next_item.due_date if next_item else None,
        next_due_amount=outstanding(next_item) if next_item else ZERO,
        progress=progress,
    )


def materialize_plan(sale, plan):
    """Inserta en bloque las cuotas del plan; se llama dentro de la transacción de confirmación."""
    rows = [
        InstallmentPayment(
            sale=sale,
            installment_number=item.installment_number,
            amount_due=item.amount_due,
            amount_paid=ZERO,
            due_date=item.due_date,
            status=PENDING,
        )
        for item in plan.items
    ]
    created = InstallmentPayment.objects.bulk_create(rows)
    logger.info(
        "Plan materializado para la venta %s: %s cuotas por %s",
        sale.pk,
        len(created),
        plan.total_scheduled,
    )
    return created


def apply_payment(installment, amount, paid_on) -> Decimal:
    """Aplica hasta `amount` a la cuota y devuelve lo efectivamente aplicado.

    La escritura es un compare-and-set sobre (id, version): si otra operación
    modificó la fila desde que se leyó, se lanza ConcurrencyError y no se
    aplica nada.
    """
    remaining = outstanding(installment)
    if installment.status == PAID or remaining <= 0 or amount <= 0:
        return ZERO

    applied = min(amount, remaining)
    new_paid = installment.amount_paid + applied
    fully_paid = new_paid >= installment.amount_due
    values = {
        "amount_paid": new_paid,
        "status": PAID if fully_paid else PENDING,
        "version": F("version") + 1,
        "updated_at": timezone.now(),
    }
    if fully_paid:
        values["paid_date"] = paid_on

    updated = InstallmentPayment.objects.filter(
        pk=installment.pk,
        version=installment.version,
    ).update(**values)
    if updated != 1:
        logger.warning(
            "Conflicto de versión en la cuota %s (versión leída %s)",
            installment.pk,
            installment.version,
        )
        raise ConcurrencyError(
            "La cuota fue modificada por otra operación; vuelve a cargarla e intenta de nuevo.",
            installment_id=installment.pk,
            expected_version=installment.version,
        )

    installment.amount_paid = new_paid
    installment.status = values["status"]
    installment.version += 1
    if fully_paid:
        installment.paid_date = paid_on
    return applied
