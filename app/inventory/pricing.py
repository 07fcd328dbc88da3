from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from core.exceptions import PricingError
from core.money import money, to_decimal
from sales.terms import INSTALLMENT

SOURCE_INSTALLMENT = "installment"
SOURCE_PIECE = "piece"
SOURCE_BATCH = "batch"


@dataclass(frozen=True)
class PriceQuote:
    sale_price: Decimal
    price_per_m2: Decimal
    source: str


def _usable(price):
    return price is not None and to_decimal(price) > 0


def calculate_sale_price(
    surface_m2,
    payment_method: str,
    *,
    installment_price_per_m2=None,
    piece_price_per_m2=None,
    batch_price_per_m2=None,
) -> PriceQuote:
    """Precio total de la parcela = superficie × precio por m² aplicable.

    Prioridad: precio de la oferta a plazos (solo si la venta es a plazos),
    precio directo de la parcela, precio al contado del lote.
    """
    candidates = []
    if payment_method == INSTALLMENT:
        candidates.append((SOURCE_INSTALLMENT, installment_price_per_m2))
    candidates.append((SOURCE_PIECE, piece_price_per_m2))
    candidates.append((SOURCE_BATCH, batch_price_per_m2))

    for source, price in candidates:
        if not _usable(price):
            continue
        price = to_decimal(price)
        sale_price = money(to_decimal(surface_m2) * price)
        if sale_price <= 0:
            raise PricingError(
                f"El precio calculado ({sale_price}) no es positivo; revisa la superficie de la parcela."
            )
        return PriceQuote(sale_price=sale_price, price_per_m2=price, source=source)

    raise PricingError("No hay precio por m² aplicable para esta parcela.")


def quote_piece(piece, payment_method, offer=None) -> PriceQuote:
    return calculate_sale_price(
        piece.surface_m2,
        payment_method,
        installment_price_per_m2=offer.price_per_m2_installment if offer else None,
        piece_price_per_m2=piece.direct_price_per_m2,
        batch_price_per_m2=piece.batch.price_per_m2_cash,
    )
