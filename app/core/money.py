from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value):
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value, rounding=ROUND_HALF_UP):
    """Redondea al céntimo (unidad mínima de la moneda)."""
    return to_decimal(value).quantize(CENT, rounding=rounding)


def money_down(value):
    return money(value, rounding=ROUND_DOWN)

