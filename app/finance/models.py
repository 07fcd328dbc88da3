from django.conf import settings
from django.db import models, transaction

from core.money import ZERO
from sales.ledger import apply_payment
from sales.models import InstallmentPayment


# ---------------------------------------------------------------------------
# Recibo de caja (pago de cuotas)
# ---------------------------------------------------------------------------

class PaymentReceipt(models.Model):
    sale = models.ForeignKey(
        "sales.Sale", on_delete=models.PROTECT, related_name="receipts"
    )
    # Cuota desde la que se empezó a aplicar el recibo
    installment = models.ForeignKey(
        "sales.InstallmentPayment",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="receipts",
    )
    amount = models.DecimalField("Valor recibido", max_digits=14, decimal_places=2)
    date_paid = models.DateField("Fecha real de pago")
    notes = models.TextField("Observaciones", blank=True)
    surplus = models.DecimalField(
        "Saldo a favor", max_digits=14, decimal_places=2, default=0
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        verbose_name="Elaborado por",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Recibo #{self.pk} – {self.amount:,.2f}"

    # ------------------------------------------------------------------
    # Aplicación del pago al cronograma
    # ------------------------------------------------------------------
    @transaction.atomic
    def apply_to_installments(self, start):
        """Distribuye el monto en la cuota `start` y luego en las siguientes.

        `start` es la instancia tal como la leyó quien registra el pago: su
        versión es la que se verifica. Las cuotas siguientes se leen aquí
        mismo. Lo que sobra después de la última cuota queda como saldo a
        favor y no se aplica.
        """
        remaining = self.amount
        following = (
            InstallmentPayment.objects.filter(
                sale_id=start.sale_id,
                installment_number__gt=start.installment_number,
            )
            .exclude(status=InstallmentPayment.Status.PAID)
            .order_by("installment_number")
        )

        for item in [start, *following]:
            if remaining <= 0:
                break
            applied = apply_payment(item, remaining, self.date_paid)
            if applied <= 0:
                continue
            PaymentApplication.objects.create(
                receipt=self,
                installment=item,
                amount=applied,
            )
            remaining -= applied

        self.surplus = max(remaining, ZERO)
        self.save(update_fields=["surplus"])
        return self.surplus


# ---------------------------------------------------------------------------
# Detalle de aplicación a cuotas
# ---------------------------------------------------------------------------

class PaymentApplication(models.Model):
    receipt = models.ForeignKey(
        PaymentReceipt, on_delete=models.CASCADE, related_name="applications"
    )
    installment = models.ForeignKey(
        "sales.InstallmentPayment",
        on_delete=models.CASCADE,
        related_name="applications",
    )
    amount = models.DecimalField("Monto aplicado", max_digits=14, decimal_places=2)

    class Meta:
        ordering = ["installment__installment_number"]

    def __str__(self):
        return f"{self.amount:,.2f} → Cuota #{self.installment.installment_number}"
