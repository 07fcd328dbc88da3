import logging

from django.db import transaction
from django.utils import timezone

from core.exceptions import SaleStateError
from core.money import money
from sales.models import InstallmentPayment, Sale, SaleLog

from .models import PaymentReceipt

logger = logging.getLogger(__name__)


@transaction.atomic
def record_installment_payment(installment, amount, *, date_paid=None, created_by=None, notes=""):
    """Registra un pago sobre una cuota de una venta completada.

    El excedente pasa a las cuotas siguientes en orden. Si alguna fila cambió
    desde que se leyó se lanza ConcurrencyError y la transacción completa se
    revierte (recibo incluido): el pago nunca queda a medias.
    """
    amount = money(amount)
    if amount <= 0:
        raise SaleStateError("El valor del pago debe ser mayor que cero.")

    sale = Sale.objects.get(pk=installment.sale_id)
    if sale.status != Sale.State.COMPLETED:
        raise SaleStateError("Solo se registran pagos de cuotas en ventas completadas.")
    if installment.status == InstallmentPayment.Status.PAID:
        raise SaleStateError(f"La cuota #{installment.installment_number} ya está pagada.")

    receipt = PaymentReceipt.objects.create(
        sale=sale,
        installment=installment,
        amount=amount,
        date_paid=date_paid or timezone.localdate(),
        notes=notes,
        created_by=created_by,
    )
    surplus = receipt.apply_to_installments(installment)
    applied = amount - surplus

    SaleLog.objects.create(
        sale=sale,
        action=SaleLog.Action.PAYMENT,
        message=f"Pago de {amount} desde la cuota #{installment.installment_number}.",
        metadata={"receipt": receipt.pk, "applied": str(applied), "surplus": str(surplus)},
        created_by=created_by,
    )
    logger.info(
        "Recibo %s de la venta %s: aplicado %s, saldo a favor %s",
        receipt.pk,
        sale.pk,
        applied,
        surplus,
    )
    return receipt
