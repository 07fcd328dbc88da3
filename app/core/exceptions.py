import warnings


class LandSalesError(Exception):
    """Base de los errores de dominio."""


class PricingError(LandSalesError):
    """No hay fuente de precio aplicable o el precio resultante no es válido."""


class ConfigurationError(LandSalesError):
    """Parámetros de la oferta de pago inválidos para generar el plan."""


class ConcurrencyError(LandSalesError):
    """La cuota cambió desde que se leyó; reintentar con el estado actual."""

    def __init__(self, message, *, installment_id=None, expected_version=None):
        super().__init__(message)
        self.installment_id = installment_id
        self.expected_version = expected_version


class SaleStateError(LandSalesError):
    """Transición de ciclo de vida no permitida para la venta o la parcela."""


class DataConsistencyWarning(UserWarning):
    """El cronograma de una venta no cuadra con su precio de venta."""


def warn_inconsistency(message):
    warnings.warn(message, DataConsistencyWarning, stacklevel=3)
