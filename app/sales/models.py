import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.normalization import normalize_document_number, normalize_phone

from .terms import FullTerms, InstallmentTerms, PromiseTerms


class Client(models.Model):
    name = models.CharField("Nombre completo", max_length=200)
    id_number = models.CharField("Documento", max_length=50, db_index=True, blank=True)
    phone = models.CharField("Teléfono", max_length=30, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        self.id_number = normalize_document_number(self.id_number)
        self.phone = normalize_phone(self.phone)
        super().save(*args, **kwargs)


class Sale(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    client = models.ForeignKey(Client, on_delete=models.PROTECT, related_name="sales")
    piece = models.ForeignKey("inventory.LandPiece", on_delete=models.PROTECT, related_name="sales")
    batch = models.ForeignKey("inventory.LandBatch", on_delete=models.PROTECT, related_name="sales")

    class PaymentMethod(models.TextChoices):
        FULL = "full", "Al contado"
        INSTALLMENT = "installment", "A plazos"
        PROMISE = "promise", "Promesa de venta"

    payment_method = models.CharField(max_length=12, choices=PaymentMethod.choices)
    payment_offer = models.ForeignKey(
        "inventory.PaymentOffer",
        on_delete=models.PROTECT,
        related_name="sales",
        blank=True,
        null=True,
    )

    sale_price = models.DecimalField("Precio de venta", max_digits=14, decimal_places=2)
    deposit_amount = models.DecimalField("Depósito", max_digits=14, decimal_places=2, default=0)
    partial_payment_amount = models.DecimalField(
        "Cobrado en promesa (incluye depósito)",
        max_digits=14,
        decimal_places=2,
        blank=True,
        null=True,
    )
    company_fee_amount = models.DecimalField(
        "Comisión de la empresa",
        max_digits=14,
        decimal_places=2,
        blank=True,
        null=True,
    )

    class State(models.TextChoices):
        PENDING = "pending", "Pendiente"
        COMPLETED = "completed", "Completada"
        CANCELLED = "cancelled", "Cancelada"

    status = models.CharField(max_length=10, choices=State.choices, default=State.PENDING)

    sale_date = models.DateField("Fecha de venta", default=timezone.localdate)
    installment_start_date = models.DateField("Inicio de cuotas", blank=True, null=True)
    sold_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sales_made",
    )
    confirmed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sales_confirmed",
    )
    notes = models.TextField("Observaciones", blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-sale_date", "-created_at"]

    def __str__(self):
        return f"Venta {self.id}"

    def terms(self):
        """Condiciones económicas como variante según la forma de pago."""
        if self.payment_method == self.PaymentMethod.INSTALLMENT:
            return InstallmentTerms(
                sale_price=self.sale_price,
                deposit_amount=self.deposit_amount,
                offer=self.payment_offer.as_terms() if self.payment_offer_id else None,
                sale_date=self.sale_date,
                installment_start_date=self.installment_start_date,
            )
        if self.payment_method == self.PaymentMethod.PROMISE:
            return PromiseTerms(
                sale_price=self.sale_price,
                deposit_amount=self.deposit_amount,
                partial_payment_amount=self.partial_payment_amount,
            )
        return FullTerms(sale_price=self.sale_price, deposit_amount=self.deposit_amount)


class InstallmentPayment(models.Model):
    sale = models.ForeignKey(Sale, on_delete=models.CASCADE, related_name="installments")
    installment_number = models.PositiveIntegerField("Número de cuota")
    amount_due = models.DecimalField("Valor de la cuota", max_digits=14, decimal_places=2)
    amount_paid = models.DecimalField("Valor pagado", max_digits=14, decimal_places=2, default=0)
    due_date = models.DateField("Vencimiento")
    paid_date = models.DateField("Fecha de pago", blank=True, null=True)

    class Status(models.TextChoices):
        PENDING = "pending", "Pendiente"
        PAID = "paid", "Pagada"
        # Solo filas heredadas; la mora se deriva de la fecha, no se persiste.
        OVERDUE = "overdue", "Vencida"

    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    # Control optimista de concurrencia para el registro de pagos
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["sale", "installment_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["sale", "installment_number"],
                name="unique_installment_number_per_sale",
            ),
        ]

    def __str__(self):
        return f"Cuota #{self.installment_number} – {self.sale_id}"


class SaleLog(models.Model):
    class Action(models.TextChoices):
        CREATED = "CREATED", "Creación"
        CONFIRMED = "CONFIRMED", "Confirmación"
        PROMISE_PAYMENT = "PROMISE_PAYMENT", "Pago de promesa"
        PAYMENT = "PAYMENT", "Pago de cuota"
        CANCELLED = "CANCELLED", "Cancelado"

    sale = models.ForeignKey(Sale, on_delete=models.CASCADE, related_name="logs")
    action = models.CharField(max_length=20, choices=Action.choices)
    message = models.CharField(max_length=255, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sale_logs",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
