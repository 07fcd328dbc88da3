from datetime import date
from decimal import Decimal

from django.test import TestCase

from sales.models import Sale
from sales.services import confirm_sale, create_sale

from .factories import Factory


class BaseAppTestCase(TestCase):
    default_password = "pass1234"

    def make_user(self, **kwargs):
        return Factory.user(password=self.default_password, **kwargs)

    def make_installment_sale(self, *, offer=None, piece=None, deposit=Decimal("1000.00"), sale_date=date(2024, 1, 15), confirm=True, **kwargs):
        """Venta a plazos por los servicios: 100 m² a 500/m², anticipo 2000, 10 meses."""
        piece = piece or Factory.piece()
        offer = offer or Factory.offer(batch=piece.batch)
        sale = create_sale(
            client=kwargs.pop("client", None) or Factory.client(),
            piece=piece,
            payment_method=Sale.PaymentMethod.INSTALLMENT,
            deposit_amount=deposit,
            payment_offer=offer,
            sale_date=sale_date,
            **kwargs,
        )
        if confirm:
            confirm_sale(sale)
        return sale
