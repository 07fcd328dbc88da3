from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("sales", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="PaymentReceipt",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("amount", models.DecimalField(decimal_places=2, max_digits=14, verbose_name="Valor recibido")),
                ("date_paid", models.DateField(verbose_name="Fecha real de pago")),
                ("notes", models.TextField(blank=True, verbose_name="Observaciones")),
                ("surplus", models.DecimalField(decimal_places=2, default=0, max_digits=14, verbose_name="Saldo a favor")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL, verbose_name="Elaborado por")),
                ("installment", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="receipts", to="sales.installmentpayment")),
                ("sale", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="receipts", to="sales.sale")),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="PaymentApplication",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("amount", models.DecimalField(decimal_places=2, max_digits=14, verbose_name="Monto aplicado")),
                ("installment", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="applications", to="sales.installmentpayment")),
                ("receipt", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="applications", to="finance.paymentreceipt")),
            ],
            options={
                "ordering": ["installment__installment_number"],
            },
        ),
    ]
