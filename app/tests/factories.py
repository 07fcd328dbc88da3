from datetime import date
from decimal import Decimal
from itertools import count

from django.contrib.auth import get_user_model

from inventory.models import LandBatch, LandPiece, PaymentOffer
from sales.models import Client, InstallmentPayment, Sale


class Factory:
    _seq = count(1)

    @classmethod
    def _n(cls):
        return next(cls._seq)

    @classmethod
    def user(cls, *, password="pass1234", **kwargs):
        n = cls._n()
        defaults = {
            "username": f"user{n}",
            "email": f"user{n}@example.com",
            "is_active": True,
        }
        defaults.update(kwargs)
        return get_user_model().objects.create_user(password=password, **defaults)

    @classmethod
    def batch(cls, **kwargs):
        n = cls._n()
        defaults = {
            "name": f"Lote {n}",
            "location": "Hammamet",
            "price_per_m2_cash": Decimal("400.00"),
        }
        defaults.update(kwargs)
        return LandBatch.objects.create(**defaults)

    @classmethod
    def piece(cls, *, batch=None, **kwargs):
        n = cls._n()
        defaults = {
            "batch": batch or cls.batch(),
            "piece_number": f"P-{n}",
            "surface_m2": Decimal("100.00"),
        }
        defaults.update(kwargs)
        return LandPiece.objects.create(**defaults)

    @classmethod
    def offer(cls, *, batch=None, piece=None, **kwargs):
        n = cls._n()
        defaults = {
            "name": f"Oferta {n}",
            "price_per_m2_installment": Decimal("500.00"),
            "advance_mode": PaymentOffer.AdvanceMode.FIXED,
            "advance_value": Decimal("2000.00"),
            "calc_mode": PaymentOffer.CalcMode.MONTHS,
            "months": 10,
        }
        if piece is None and batch is None:
            batch = cls.batch()
        defaults.update(kwargs)
        return PaymentOffer.objects.create(batch=batch, piece=piece, **defaults)

    @classmethod
    def client(cls, **kwargs):
        n = cls._n()
        defaults = {
            "name": f"Cliente {n}",
            "id_number": f"{10000000 + n}",
            "phone": "+216 20 000 000",
        }
        defaults.update(kwargs)
        return Client.objects.create(**defaults)

    @classmethod
    def sale(cls, *, piece=None, client=None, status=Sale.State.PENDING, **kwargs):
        """Venta escrita directamente (sin pasar por los servicios)."""
        piece = piece or cls.piece()
        defaults = {
            "client": client or cls.client(),
            "piece": piece,
            "batch": piece.batch,
            "payment_method": Sale.PaymentMethod.FULL,
            "sale_price": Decimal("40000.00"),
            "deposit_amount": Decimal("0.00"),
            "status": status,
            "sale_date": date(2024, 1, 15),
        }
        defaults.update(kwargs)
        return Sale.objects.create(**defaults)

    @classmethod
    def installment(cls, *, sale, **kwargs):
        defaults = {
            "installment_number": sale.installments.count() + 1,
            "amount_due": Decimal("1000.00"),
            "amount_paid": Decimal("0.00"),
            "due_date": date(2024, 2, 15),
            "status": InstallmentPayment.Status.PENDING,
        }
        defaults.update(kwargs)
        return InstallmentPayment.objects.create(sale=sale, **defaults)
