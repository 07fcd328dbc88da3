from django.core.exceptions import ValidationError
from django.db import models

from sales.terms import OfferTerms


class LandBatch(models.Model):
    """
    Lote de terreno adquirido (agrupa parcelas de una misma ubicación).
    """
    name = models.CharField("Nombre del lote", max_length=150)
    location = models.CharField("Ubicación", max_length=150, blank=True)
    total_surface = models.DecimalField("Superficie total (m²)", max_digits=14, decimal_places=2, blank=True, null=True)
    price_per_m2_cash = models.DecimalField(
        "Precio al contado por m²",
        max_digits=14,
        decimal_places=2,
        blank=True,
        null=True,
    )
    date_acquired = models.DateField("Fecha de adquisición", blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class LandPiece(models.Model):
    """
    La parcela vendible.
    """
    batch = models.ForeignKey(LandBatch, on_delete=models.CASCADE, related_name="pieces")
    piece_number = models.CharField("Número de parcela", max_length=50)
    surface_m2 = models.DecimalField("Superficie (m²)", max_digits=12, decimal_places=2)
    # Sobrescribe el precio al contado del lote (por m²)
    direct_price_per_m2 = models.DecimalField(
        "Precio directo por m²",
        max_digits=14,
        decimal_places=2,
        blank=True,
        null=True,
    )

    class Status(models.TextChoices):
        AVAILABLE = "AVAILABLE", "Disponible"
        RESERVED = "RESERVED", "Reservada"
        SOLD = "SOLD", "Vendida"

    status = models.CharField(max_length=10, choices=Status.choices, default=Status.AVAILABLE)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["batch__name", "piece_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["batch", "piece_number"],
                name="unique_piece_number_per_batch",
            ),
        ]

    def __str__(self):
        return f"{self.piece_number} ({self.batch.name})"


class PaymentOffer(models.Model):
    """
    Oferta de pago a plazos, definida para un lote o para una parcela puntual.
    """

    class AdvanceMode(models.TextChoices):
        FIXED = "fixed", "Monto fijo"
        PERCENT = "percent", "Porcentaje"

    class CalcMode(models.TextChoices):
        MONTHLY_AMOUNT = "monthlyAmount", "Monto mensual"
        MONTHS = "months", "Número de meses"

    batch = models.ForeignKey(
        LandBatch,
        on_delete=models.CASCADE,
        related_name="payment_offers",
        blank=True,
        null=True,
    )
    piece = models.ForeignKey(
        LandPiece,
        on_delete=models.CASCADE,
        related_name="payment_offers",
        blank=True,
        null=True,
    )
    name = models.CharField("Nombre de la oferta", max_length=150, blank=True)
    price_per_m2_installment = models.DecimalField("Precio a plazos por m²", max_digits=14, decimal_places=2)
    advance_mode = models.CharField(max_length=10, choices=AdvanceMode.choices, default=AdvanceMode.FIXED)
    advance_value = models.DecimalField("Anticipo", max_digits=14, decimal_places=2, default=0)
    calc_mode = models.CharField(max_length=15, choices=CalcMode.choices, default=CalcMode.MONTHS)
    monthly_amount = models.DecimalField("Cuota mensual", max_digits=14, decimal_places=2, blank=True, null=True)
    months = models.PositiveIntegerField("Número de meses", blank=True, null=True)
    is_default = models.BooleanField("Oferta por defecto", default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self):
        return self.name or f"Oferta {self.pk}"

    def clean(self):
        if bool(self.batch_id) == bool(self.piece_id):
            raise ValidationError("La oferta debe pertenecer a un lote o a una parcela, no a ambos.")

    def as_terms(self):
        return OfferTerms(
            price_per_m2=self.price_per_m2_installment,
            advance_mode=self.advance_mode,
            advance_value=self.advance_value,
            calc_mode=self.calc_mode,
            monthly_amount=self.monthly_amount,
            months=self.months,
        )
