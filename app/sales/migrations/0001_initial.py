import uuid

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("inventory", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Client",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200, verbose_name="Nombre completo")),
                ("id_number", models.CharField(blank=True, db_index=True, max_length=50, verbose_name="Documento")),
                ("phone", models.CharField(blank=True, max_length=30, verbose_name="Teléfono")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Sale",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("payment_method", models.CharField(choices=[("full", "Al contado"), ("installment", "A plazos"), ("promise", "Promesa de venta")], max_length=12)),
                ("sale_price", models.DecimalField(decimal_places=2, max_digits=14, verbose_name="Precio de venta")),
                ("deposit_amount", models.DecimalField(decimal_places=2, default=0, max_digits=14, verbose_name="Depósito")),
                ("partial_payment_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True, verbose_name="Cobrado en promesa (incluye depósito)")),
                ("company_fee_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True, verbose_name="Comisión de la empresa")),
                ("status", models.CharField(choices=[("pending", "Pendiente"), ("completed", "Completada"), ("cancelled", "Cancelada")], default="pending", max_length=10)),
                ("sale_date", models.DateField(default=django.utils.timezone.localdate, verbose_name="Fecha de venta")),
                ("installment_start_date", models.DateField(blank=True, null=True, verbose_name="Inicio de cuotas")),
                ("notes", models.TextField(blank=True, verbose_name="Observaciones")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("batch", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="sales", to="inventory.landbatch")),
                ("client", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="sales", to="sales.client")),
                ("confirmed_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="sales_confirmed", to=settings.AUTH_USER_MODEL)),
                ("payment_offer", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="sales", to="inventory.paymentoffer")),
                ("piece", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="sales", to="inventory.landpiece")),
                ("sold_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="sales_made", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-sale_date", "-created_at"],
            },
        ),
        migrations.CreateModel(
            name="InstallmentPayment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("installment_number", models.PositiveIntegerField(verbose_name="Número de cuota")),
                ("amount_due", models.DecimalField(decimal_places=2, max_digits=14, verbose_name="Valor de la cuota")),
                ("amount_paid", models.DecimalField(decimal_places=2, default=0, max_digits=14, verbose_name="Valor pagado")),
                ("due_date", models.DateField(verbose_name="Vencimiento")),
                ("paid_date", models.DateField(blank=True, null=True, verbose_name="Fecha de pago")),
                ("status", models.CharField(choices=[("pending", "Pendiente"), ("paid", "Pagada"), ("overdue", "Vencida")], default="pending", max_length=10)),
                ("version", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("sale", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="installments", to="sales.sale")),
            ],
            options={
                "ordering": ["sale", "installment_number"],
                "constraints": [
                    models.UniqueConstraint(fields=("sale", "installment_number"), name="unique_installment_number_per_sale"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SaleLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("action", models.CharField(choices=[("CREATED", "Creación"), ("CONFIRMED", "Confirmación"), ("PROMISE_PAYMENT", "Pago de promesa"), ("PAYMENT", "Pago de cuota"), ("CANCELLED", "Cancelado")], max_length=20)),
                ("message", models.CharField(blank=True, max_length=255)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="sale_logs", to=settings.AUTH_USER_MODEL)),
                ("sale", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="logs", to="sales.sale")),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]
