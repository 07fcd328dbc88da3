from django.conf import settings
from django.db.models import Prefetch
from django.utils import timezone

from core.money import ZERO, to_decimal
from sales.models import InstallmentPayment, Sale

from .reconciliation import (
    NO_LOCATION,
    NO_SELLER,
    InstallmentSnapshot,
    ReportingPeriod,
    SaleSnapshot,
    reconcile,
)


def _seller_label(user):
    if user is None:
        return NO_SELLER
    return user.get_full_name() or user.get_username()


def sale_snapshot(sale):
    """Foto inmutable de una venta con su cronograma (usa el prefetch si existe)."""
    installments = tuple(
        InstallmentSnapshot(
            installment_number=item.installment_number,
            amount_due=item.amount_due,
            amount_paid=item.amount_paid,
            due_date=item.due_date,
            status=item.status,
        )
        for item in sale.installments.all()
    )
    batch = sale.batch
    return SaleSnapshot(
        sale_id=str(sale.pk),
        status=sale.status,
        terms=sale.terms(),
        sale_date=sale.sale_date,
        company_fee_amount=to_decimal(sale.company_fee_amount) if sale.company_fee_amount is not None else ZERO,
        seller_id=sale.sold_by_id,
        seller=_seller_label(sale.sold_by),
        location=(batch.location or batch.name) if batch else NO_LOCATION,
        piece_id=sale.piece_id,
        client_id=sale.client_id,
        installments=installments,
    )


def sales_for_report(date_from=None, date_to=None, sale_ids=None):
    qs = (
        Sale.objects.exclude(status=Sale.State.CANCELLED)
        .select_related("payment_offer", "batch", "sold_by")
        .prefetch_related(
            Prefetch(
                "installments",
                queryset=InstallmentPayment.objects.order_by("installment_number"),
            )
        )
        .order_by("sale_date", "created_at")
    )
    if date_from:
        qs = qs.filter(sale_date__gte=date_from)
    if date_to:
        qs = qs.filter(sale_date__lte=date_to)
    if sale_ids:
        qs = qs.filter(pk__in=sale_ids)
    return qs


def load_snapshot(date_from=None, date_to=None, sale_ids=None):
    """Ventas no canceladas del rango de fechas, listas para conciliar."""
    return [sale_snapshot(sale) for sale in sales_for_report(date_from, date_to, sale_ids)]


def financial_summary(date_from=None, date_to=None, reference_date=None, period=None, executor=None):
    reference = reference_date or timezone.localdate()
    if period is None:
        period = ReportingPeriod.month_of(reference)
    tolerance = to_decimal(getattr(settings, "RECONCILIATION_TOLERANCE", "0.01"))
    return reconcile(
        load_snapshot(date_from, date_to),
        reference,
        period=period,
        tolerance=tolerance,
        executor=executor,
    )
