import logging

from django.conf import settings
from django.db import transaction

from core.exceptions import ConfigurationError, PricingError, SaleStateError
from core.money import ZERO, money
from inventory.models import LandPiece
from inventory.pricing import quote_piece

from .ledger import materialize_plan
from .models import InstallmentPayment, Sale, SaleLog
from .plans import build_plan

logger = logging.getLogger(__name__)


def _max_months():
    return getattr(settings, "INSTALLMENT_MAX_MONTHS", None)


def _log(sale, action, message, user=None, **metadata):
    SaleLog.objects.create(
        sale=sale,
        action=action,
        message=message[:255],
        metadata={key: str(value) for key, value in metadata.items()},
        created_by=user,
    )


def _check_deposit(deposit, sale_price):
    if deposit < 0:
        raise PricingError("El depósito no puede ser negativo.")
    if deposit > sale_price:
        raise PricingError(
            f"El depósito ({deposit}) no puede superar el precio de venta ({sale_price})."
        )


def preview_plan(sale_price, deposit_amount, offer, sale_date, installment_start_date=None):
    """Plan de cuotas para una oferta, sin tocar la base de datos."""
    if offer is None:
        raise ConfigurationError("Una venta a plazos requiere una oferta de pago.")
    return build_plan(
        sale_price,
        deposit_amount,
        offer.as_terms(),
        sale_date,
        installment_start_date=installment_start_date,
        max_months=_max_months(),
    )


def create_sale(
    *,
    client,
    piece,
    payment_method,
    deposit_amount=ZERO,
    payment_offer=None,
    partial_payment_amount=None,
    company_fee_amount=None,
    sale_date=None,
    installment_start_date=None,
    sold_by=None,
    notes="",
):
    """Registra una venta pendiente y reserva la parcela.

    Precio y oferta se validan antes de escribir nada: un error de precio o de
    configuración rechaza la venta completa.
    """
    if payment_method not in Sale.PaymentMethod.values:
        raise ConfigurationError(f"Forma de pago desconocida: {payment_method!r}")
    if payment_method == Sale.PaymentMethod.INSTALLMENT and payment_offer is None:
        raise ConfigurationError("Una venta a plazos requiere una oferta de pago.")
    if payment_method != Sale.PaymentMethod.INSTALLMENT:
        payment_offer = None

    quote = quote_piece(piece, payment_method, payment_offer)
    deposit = money(deposit_amount)
    _check_deposit(deposit, quote.sale_price)

    sale = Sale(
        client=client,
        piece=piece,
        batch=piece.batch,
        payment_method=payment_method,
        payment_offer=payment_offer,
        sale_price=quote.sale_price,
        deposit_amount=deposit,
        partial_payment_amount=(
            money(partial_payment_amount)
            if payment_method == Sale.PaymentMethod.PROMISE and partial_payment_amount is not None
            else None
        ),
        company_fee_amount=money(company_fee_amount) if company_fee_amount is not None else None,
        installment_start_date=installment_start_date,
        sold_by=sold_by,
        notes=notes,
    )
    if sale_date is not None:
        sale.sale_date = sale_date

    if payment_method == Sale.PaymentMethod.INSTALLMENT:
        preview_plan(
            sale.sale_price,
            sale.deposit_amount,
            payment_offer,
            sale.sale_date,
            installment_start_date=installment_start_date,
        )
    if sale.partial_payment_amount is not None and sale.partial_payment_amount > sale.sale_price:
        raise PricingError("Lo cobrado en la promesa no puede superar el precio de venta.")

    with transaction.atomic():
        locked_piece = LandPiece.objects.select_for_update().get(pk=piece.pk)
        if locked_piece.status != LandPiece.Status.AVAILABLE:
            raise SaleStateError(f"La parcela {locked_piece} no está disponible.")
        locked_piece.status = LandPiece.Status.RESERVED
        locked_piece.save(update_fields=["status", "updated_at"])
        piece.status = locked_piece.status

        sale.save()
        _log(
            sale,
            SaleLog.Action.CREATED,
            "Venta registrada.",
            user=sold_by,
            sale_price=sale.sale_price,
            price_source=quote.source,
            deposit=sale.deposit_amount,
        )

    logger.info(
        "Venta %s creada (%s) por %s, depósito %s",
        sale.pk,
        payment_method,
        sale.sale_price,
        sale.deposit_amount,
    )
    return sale


@transaction.atomic
def confirm_sale(
    sale,
    *,
    confirmed_by=None,
    installment_start_date=None,
    company_fee_amount=None,
    promise_payment_amount=None,
):
    """Pasa la venta de pendiente a completada.

    En ventas a plazos genera el plan y crea las cuotas en la misma
    transacción; si el plan falla no queda ninguna fila escrita.
    """
    locked = (
        Sale.objects.select_for_update()
        .select_related("payment_offer", "piece")
        .get(pk=sale.pk)
    )
    if locked.status != Sale.State.PENDING:
        raise SaleStateError("Solo se pueden confirmar ventas pendientes.")

    if installment_start_date is not None:
        locked.installment_start_date = installment_start_date
    if company_fee_amount is not None:
        locked.company_fee_amount = money(company_fee_amount)

    plan = None
    if locked.payment_method == Sale.PaymentMethod.INSTALLMENT:
        plan = preview_plan(
            locked.sale_price,
            locked.deposit_amount,
            locked.payment_offer,
            locked.sale_date,
            installment_start_date=locked.installment_start_date,
        )
        if InstallmentPayment.objects.filter(sale=locked).exists():
            raise SaleStateError("La venta ya tiene cuotas generadas.")
    elif locked.payment_method == Sale.PaymentMethod.PROMISE and promise_payment_amount is not None:
        _add_promise_payment(locked, promise_payment_amount)

    locked.status = Sale.State.COMPLETED
    locked.confirmed_by = confirmed_by
    locked.save()

    locked.piece.status = LandPiece.Status.SOLD
    locked.piece.save(update_fields=["status", "updated_at"])

    if plan is not None:
        materialize_plan(locked, plan)

    _log(
        locked,
        SaleLog.Action.CONFIRMED,
        "Venta confirmada.",
        user=confirmed_by,
        advance_after_deposit=plan.advance_after_deposit if plan else ZERO,
        installments=plan.installment_count if plan else 0,
    )
    logger.info("Venta %s confirmada", locked.pk)

    sale.refresh_from_db()
    return sale


def _add_promise_payment(sale, amount):
    amount = money(amount)
    if amount <= 0:
        raise SaleStateError("El pago de la promesa debe ser mayor que cero.")
    collected = sale.partial_payment_amount
    if collected is None:
        collected = sale.deposit_amount
    new_total = collected + amount
    if new_total > sale.sale_price:
        raise SaleStateError(
            f"El pago ({amount}) supera el saldo de la promesa ({sale.sale_price - collected})."
        )
    sale.partial_payment_amount = new_total
    return new_total


@transaction.atomic
def record_promise_payment(sale, amount, *, user=None):
    """Acumula un cobro parcial en una promesa de venta aún pendiente."""
    locked = Sale.objects.select_for_update().get(pk=sale.pk)
    if locked.payment_method != Sale.PaymentMethod.PROMISE:
        raise SaleStateError("Solo las promesas de venta aceptan pagos parciales.")
    if locked.status != Sale.State.PENDING:
        raise SaleStateError("La promesa ya no está pendiente.")

    new_total = _add_promise_payment(locked, amount)
    locked.save(update_fields=["partial_payment_amount", "updated_at"])
    _log(
        locked,
        SaleLog.Action.PROMISE_PAYMENT,
        "Pago parcial de promesa registrado.",
        user=user,
        amount=money(amount),
        collected=new_total,
    )
    logger.info("Promesa %s: cobrado acumulado %s", locked.pk, new_total)
    sale.refresh_from_db()
    return sale


@transaction.atomic
def cancel_sale(sale, *, user=None, reason=""):
    """Cancela la venta, elimina sus cuotas y libera la parcela."""
    locked = Sale.objects.select_for_update().select_related("piece").get(pk=sale.pk)
    if locked.status == Sale.State.CANCELLED:
        raise SaleStateError("La venta ya está cancelada.")

    ledger_rows = InstallmentPayment.objects.filter(sale=locked)
    deleted = ledger_rows.count()
    ledger_rows.delete()
    locked.status = Sale.State.CANCELLED
    locked.save(update_fields=["status", "updated_at"])

    locked.piece.status = LandPiece.Status.AVAILABLE
    locked.piece.save(update_fields=["status", "updated_at"])

    _log(
        locked,
        SaleLog.Action.CANCELLED,
        reason or "Venta cancelada.",
        user=user,
        deleted_rows=deleted,
    )
    logger.info("Venta %s cancelada (%s filas del cronograma eliminadas)", locked.pk, deleted)
    sale.refresh_from_db()
    return sale
