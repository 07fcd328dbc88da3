from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="LandBatch",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=150, verbose_name="Nombre del lote")),
                ("location", models.CharField(blank=True, max_length=150, verbose_name="Ubicación")),
                ("total_surface", models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True, verbose_name="Superficie total (m²)")),
                ("price_per_m2_cash", models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True, verbose_name="Precio al contado por m²")),
                ("date_acquired", models.DateField(blank=True, null=True, verbose_name="Fecha de adquisición")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="LandPiece",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("piece_number", models.CharField(max_length=50, verbose_name="Número de parcela")),
                ("surface_m2", models.DecimalField(decimal_places=2, max_digits=12, verbose_name="Superficie (m²)")),
                ("direct_price_per_m2", models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True, verbose_name="Precio directo por m²")),
                ("status", models.CharField(choices=[("AVAILABLE", "Disponible"), ("RESERVED", "Reservada"), ("SOLD", "Vendida")], default="AVAILABLE", max_length=10)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("batch", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="pieces", to="inventory.landbatch")),
            ],
            options={
                "ordering": ["batch__name", "piece_number"],
                "constraints": [
                    models.UniqueConstraint(fields=("batch", "piece_number"), name="unique_piece_number_per_batch"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentOffer",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(blank=True, max_length=150, verbose_name="Nombre de la oferta")),
                ("price_per_m2_installment", models.DecimalField(decimal_places=2, max_digits=14, verbose_name="Precio a plazos por m²")),
                ("advance_mode", models.CharField(choices=[("fixed", "Monto fijo"), ("percent", "Porcentaje")], default="fixed", max_length=10)),
                ("advance_value", models.DecimalField(decimal_places=2, default=0, max_digits=14, verbose_name="Anticipo")),
                ("calc_mode", models.CharField(choices=[("monthlyAmount", "Monto mensual"), ("months", "Número de meses")], default="months", max_length=15)),
                ("monthly_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True, verbose_name="Cuota mensual")),
                ("months", models.PositiveIntegerField(blank=True, null=True, verbose_name="Número de meses")),
                ("is_default", models.BooleanField(default=False, verbose_name="Oferta por defecto")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("batch", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name="payment_offers", to="inventory.landbatch")),
                ("piece", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name="payment_offers", to="inventory.landpiece")),
            ],
            options={
                "ordering": ["name", "id"],
            },
        ),
    ]
