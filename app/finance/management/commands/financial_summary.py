"""
Resumen financiero de ventas en formato JSON.

Uso:
    python manage.py financial_summary
    python manage.py financial_summary --from 2024-01-01 --to 2024-12-31 --reference-date 2024-06-30
    python manage.py financial_summary --sale <uuid>
"""
import json
from datetime import date

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from finance.reconciliation import ReportingPeriod
from finance.selectors import financial_summary
from sales.ledger import summarize_ledger
from sales.models import Sale


def _parse_date(value, option):
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise CommandError(f"{option}: fecha inválida {value!r} (usa AAAA-MM-DD).")


class Command(BaseCommand):
    help = (
        "Imprime la conciliación de ventas (recaudo por categoría, cartera vencida, "
        "lo esperado en el periodo y desgloses) o el estado de cuenta de una venta."
    )

    def add_arguments(self, parser):
        parser.add_argument("--from", dest="date_from", default=None, help="Fecha de venta inicial (AAAA-MM-DD).")
        parser.add_argument("--to", dest="date_to", default=None, help="Fecha de venta final (AAAA-MM-DD).")
        parser.add_argument(
            "--reference-date",
            dest="reference_date",
            default=None,
            help="Fecha de corte para evaluar mora. Por omisión, hoy.",
        )
        parser.add_argument("--sale", dest="sale", default=None, help="UUID de una venta.")

    def handle(self, *args, **options):
        date_from = _parse_date(options["date_from"], "--from") if options["date_from"] else None
        date_to = _parse_date(options["date_to"], "--to") if options["date_to"] else None
        reference = (
            _parse_date(options["reference_date"], "--reference-date")
            if options["reference_date"]
            else timezone.localdate()
        )
        if date_from and date_to and date_to < date_from:
            raise CommandError("--to no puede ser anterior a --from.")

        if options["sale"]:
            payload = self._sale_payload(options["sale"], reference)
        else:
            summary = financial_summary(
                date_from=date_from,
                date_to=date_to,
                reference_date=reference,
                period=ReportingPeriod.month_of(reference),
            )
            payload = summary.as_dict()

        self.stdout.write(json.dumps(payload, indent=2, ensure_ascii=False))

    def _sale_payload(self, sale_id, reference):
        try:
            sale = Sale.objects.select_related("client", "piece").get(pk=sale_id)
        except (Sale.DoesNotExist, ValidationError) as exc:
            raise CommandError(f"Venta no encontrada: {sale_id}") from exc

        ledger = summarize_ledger(sale.installments.all(), reference)
        return {
            "saleId": str(sale.pk),
            "client": sale.client.name,
            "piece": str(sale.piece),
            "paymentMethod": sale.payment_method,
            "status": sale.status,
            "salePrice": str(sale.sale_price),
            "referenceDate": reference.isoformat(),
            "installmentCount": ledger.installment_count,
            "paidCount": ledger.paid_count,
            "totalDue": str(ledger.total_due),
            "totalPaid": str(ledger.total_paid),
            "outstanding": str(ledger.outstanding),
            "overdueAmount": str(ledger.overdue_amount),
            "overdueCount": ledger.overdue_count,
            "nextDueDate": ledger.next_due_date.isoformat() if ledger.next_due_date else None,
            "nextDueAmount": str(ledger.next_due_amount),
            "progress": str(ledger.progress),
        }
