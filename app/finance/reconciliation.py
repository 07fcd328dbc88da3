"""
Conciliación financiera de ventas y cuotas.

El motor trabaja sobre una foto inmutable (SaleSnapshot / InstallmentSnapshot)
y una fecha de referencia explícita. Cada venta se evalúa por separado (map)
y los resultados se suman por categoría (reduce), de modo que la evaluación
por venta puede repartirse en un executor sin cambiar el resultado.

Categorías de lo cobrado, disjuntas por venta:
  - deposit:      depósito de cualquier venta no cancelada
  - advance:      anticipo después del depósito (ventas a plazos completadas)
  - full_payment: saldo de contado (precio − depósito, ventas completadas)
  - installment:  lo pagado en cuotas con estado pagada
  - promise:      lo cobrado en promesa por encima del depósito

La comisión de la empresa se reporta aparte y no suma en lo cobrado.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field, fields
from datetime import date, timedelta
from decimal import Decimal
from functools import partial
from typing import Optional, Tuple

from dateutil.relativedelta import relativedelta

from core.exceptions import warn_inconsistency
from core.money import ZERO, money
from sales.ledger import OVERDUE, PAID, as_date, installment_state, outstanding
from sales.plans import advance_after_deposit
from sales.terms import FullTerms, InstallmentTerms, PromiseTerms, SaleTerms

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = Decimal("0.01")

COMPLETED = "completed"
CANCELLED = "cancelled"

MISSING_LEDGER = "missing_ledger"
LEDGER_MISMATCH = "ledger_mismatch"
MISSING_OFFER = "missing_offer"

NO_SELLER = "Sin vendedor"
NO_LOCATION = "Sin ubicación"


# ---------------------------------------------------------------------------
# Foto de entrada
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InstallmentSnapshot:
    installment_number: int
    amount_due: Decimal
    amount_paid: Decimal
    due_date: date
    status: str


@dataclass(frozen=True)
class SaleSnapshot:
    sale_id: str
    status: str
    terms: SaleTerms
    sale_date: date
    company_fee_amount: Decimal = ZERO
    seller_id: Optional[int] = None
    seller: str = NO_SELLER
    location: str = NO_LOCATION
    piece_id: Optional[int] = None
    client_id: Optional[int] = None
    installments: Tuple[InstallmentSnapshot, ...] = ()


@dataclass(frozen=True)
class ReportingPeriod:
    """Periodo de reporte con ambos extremos incluidos."""

    start: date
    end: date

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError("El periodo termina antes de empezar.")

    @classmethod
    def month_of(cls, day):
        day = as_date(day)
        start = day.replace(day=1)
        end = start + relativedelta(months=1) - timedelta(days=1)
        return cls(start=start, end=end)

    def __contains__(self, day):
        return self.start <= day <= self.end

    def as_dict(self):
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


# ---------------------------------------------------------------------------
# Resultados
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CategoryTotals:
    deposit: Decimal = ZERO
    advance: Decimal = ZERO
    full_payment: Decimal = ZERO
    installment: Decimal = ZERO
    promise: Decimal = ZERO
    commission: Decimal = ZERO

    @property
    def collected(self):
        return self.deposit + self.advance + self.full_payment + self.installment + self.promise

    def __add__(self, other):
        if not isinstance(other, CategoryTotals):
            return NotImplemented
        return CategoryTotals(
            **{f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)}
        )

    def as_dict(self):
        data = {f.name: str(getattr(self, f.name)) for f in fields(self)}
        data["collected"] = str(self.collected)
        return data


@dataclass(frozen=True)
class ReconciliationAnomaly:
    sale_id: str
    kind: str
    message: str
    level: int = logging.INFO

    def as_dict(self):
        return {"saleId": self.sale_id, "kind": self.kind, "message": self.message}


@dataclass(frozen=True)
class SaleContribution:
    sale_id: str
    seller_id: Optional[int]
    seller: str
    location: str
    piece_id: Optional[int]
    client_id: Optional[int]
    revenue: Decimal = ZERO
    categories: CategoryTotals = field(default_factory=CategoryTotals)
    unpaid_amount: Decimal = ZERO
    unpaid_installments: int = 0
    expected_this_period: Decimal = ZERO
    counted: bool = True
    anomalies: Tuple[ReconciliationAnomaly, ...] = ()

    @property
    def collected(self):
        return self.categories.collected


@dataclass(frozen=True)
class SellerBreakdown:
    seller_id: Optional[int]
    seller: str
    sales: int
    categories: CategoryTotals

    @property
    def collected(self):
        return self.categories.collected

    def as_dict(self):
        return {"sellerId": self.seller_id, "seller": self.seller, "sales": self.sales, **self.categories.as_dict()}


@dataclass(frozen=True)
class LocationBreakdown:
    location: str
    revenue: Decimal
    collected: Decimal
    pieces: int
    clients: int

    def as_dict(self):
        return {
            "location": self.location,
            "revenue": str(self.revenue),
            "collected": str(self.collected),
            "pieces": self.pieces,
            "clients": self.clients,
        }


@dataclass(frozen=True)
class FinancialSummary:
    reference_date: date
    period: ReportingPeriod
    total_revenue: Decimal
    categories: CategoryTotals
    unpaid_amount: Decimal
    unpaid_installments: int
    unpaid_clients: int
    expected_this_period: Decimal
    by_seller: Tuple[SellerBreakdown, ...]
    by_location: Tuple[LocationBreakdown, ...]
    anomalies: Tuple[ReconciliationAnomaly, ...]
    sale_count: int

    @property
    def total_collected(self):
        return self.categories.collected

    @property
    def commission(self):
        return self.categories.commission

    def as_dict(self):
        return {
            "referenceDate": self.reference_date.isoformat(),
            "period": self.period.as_dict(),
            "saleCount": self.sale_count,
            "totalRevenue": str(self.total_revenue),
            "totalCollected": str(self.total_collected),
            "commission": str(self.commission),
            "unpaidAmount": str(self.unpaid_amount),
            "unpaidInstallments": self.unpaid_installments,
            "unpaidClients": self.unpaid_clients,
            "expectedThisPeriod": str(self.expected_this_period),
            "categories": self.categories.as_dict(),
            "bySeller": [row.as_dict() for row in self.by_seller],
            "byLocation": [row.as_dict() for row in self.by_location],
            "anomalies": [a.as_dict() for a in self.anomalies],
        }


# ---------------------------------------------------------------------------
# Map: aporte de una venta
# ---------------------------------------------------------------------------

def _ledger_amounts(installments, reference, period):
    paid = ZERO
    unpaid = ZERO
    unpaid_count = 0
    expected = ZERO
    for item in installments:
        state = installment_state(item.status, item.due_date, reference)
        if state == PAID:
            paid += item.amount_paid
            continue
        due = outstanding(item)
        # Una fila sin saldo no es cartera aunque no figure como pagada
        if due <= 0:
            continue
        if state == OVERDUE:
            unpaid += due
            unpaid_count += 1
        if item.due_date in period:
            expected += due
    return paid, unpaid, unpaid_count, expected


def _check_ledger(sale, terms, advance, tolerance):
    """Devuelve una anomalía si el cronograma no cuadra con el precio de venta."""
    scheduled = sum((i.amount_due for i in sale.installments), ZERO)
    expected_schedule = terms.sale_price - terms.deposit_amount - advance
    if not sale.installments:
        if expected_schedule > 0:
            return ReconciliationAnomaly(
                sale_id=sale.sale_id,
                kind=MISSING_LEDGER,
                message="Venta a plazos sin cronograma: el plan aún no está activo.",
            )
        return None
    difference = abs(terms.deposit_amount + advance + scheduled - terms.sale_price)
    if difference > tolerance:
        return ReconciliationAnomaly(
            sale_id=sale.sale_id,
            kind=LEDGER_MISMATCH,
            message=(
                f"Depósito + anticipo + cuotas = {terms.deposit_amount + advance + scheduled}, "
                f"precio de venta = {terms.sale_price} (diferencia {difference})."
            ),
            level=logging.WARNING,
        )
    return None


def sale_contribution(sale: SaleSnapshot, reference_date, period: ReportingPeriod, tolerance=DEFAULT_TOLERANCE):
    """Aporte de una venta a cada total del reporte."""
    base = dict(
        sale_id=sale.sale_id,
        seller_id=sale.seller_id,
        seller=sale.seller,
        location=sale.location,
        piece_id=sale.piece_id,
        client_id=sale.client_id,
    )
    if sale.status == CANCELLED:
        return SaleContribution(counted=False, **base)

    reference = as_date(reference_date)
    terms = sale.terms
    completed = sale.status == COMPLETED
    deposit = money(terms.deposit_amount)
    commission = money(sale.company_fee_amount or ZERO)
    anomalies = []

    advance = full_payment = installment_paid = promise = ZERO
    unpaid = expected = ZERO
    unpaid_count = 0

    if isinstance(terms, FullTerms):
        if completed:
            full_payment = terms.sale_price - deposit
    elif isinstance(terms, PromiseTerms):
        promise = terms.promise_collected
    elif isinstance(terms, InstallmentTerms):
        use_ledger = bool(sale.installments)
        if terms.offer is None:
            anomalies.append(
                ReconciliationAnomaly(
                    sale_id=sale.sale_id,
                    kind=MISSING_OFFER,
                    message="Venta a plazos sin oferta de pago: anticipo y cuotas fuera del reporte.",
                    level=logging.WARNING,
                )
            )
            use_ledger = False
        else:
            net_advance = advance_after_deposit(terms.sale_price, deposit, terms.offer)
            if completed:
                advance = net_advance
            anomaly = _check_ledger(sale, terms, net_advance, tolerance) if completed or use_ledger else None
            if anomaly is not None:
                anomalies.append(anomaly)
                use_ledger = False
        if use_ledger:
            installment_paid, unpaid, unpaid_count, expected = _ledger_amounts(
                sale.installments, reference, period
            )
    else:
        raise TypeError(f"Condiciones de venta no soportadas: {type(terms).__name__}")

    return SaleContribution(
        revenue=terms.sale_price if completed else ZERO,
        categories=CategoryTotals(
            deposit=deposit,
            advance=advance,
            full_payment=full_payment,
            installment=installment_paid,
            promise=promise,
            commission=commission,
        ),
        unpaid_amount=unpaid,
        unpaid_installments=unpaid_count,
        expected_this_period=expected,
        anomalies=tuple(anomalies),
        **base,
    )


# ---------------------------------------------------------------------------
# Reduce
# ---------------------------------------------------------------------------

def _report_anomalies(anomalies):
    for anomaly in anomalies:
        logger.log(anomaly.level, "Venta %s: %s", anomaly.sale_id, anomaly.message)
        if anomaly.kind == LEDGER_MISMATCH:
            warn_inconsistency(f"Venta {anomaly.sale_id}: {anomaly.message}")


def combine(contributions, reference_date, period):
    contributions = [c for c in contributions if c.counted]

    categories = sum((c.categories for c in contributions), CategoryTotals())

    # Agrupado por id: el nombre solo se muestra
    sellers = defaultdict(lambda: [NO_SELLER, 0, CategoryTotals()])
    for c in contributions:
        row = sellers[c.seller_id]
        row[0] = c.seller
        row[1] += 1
        row[2] = row[2] + c.categories
    by_seller = sorted(
        (
            SellerBreakdown(seller_id=seller_id, seller=name, sales=n, categories=cats)
            for seller_id, (name, n, cats) in sellers.items()
        ),
        key=lambda row: (-row.collected, row.seller, row.seller_id or 0),
    )

    locations = defaultdict(lambda: {"revenue": ZERO, "collected": ZERO, "pieces": set(), "clients": set()})
    for c in contributions:
        row = locations[c.location]
        row["revenue"] += c.revenue
        row["collected"] += c.collected
        if c.piece_id is not None:
            row["pieces"].add(c.piece_id)
        if c.client_id is not None:
            row["clients"].add(c.client_id)
    by_location = sorted(
        (
            LocationBreakdown(
                location=name,
                revenue=row["revenue"],
                collected=row["collected"],
                pieces=len(row["pieces"]),
                clients=len(row["clients"]),
            )
            for name, row in locations.items()
        ),
        key=lambda row: (-row.collected, row.location),
    )

    anomalies = tuple(a for c in contributions for a in c.anomalies)
    _report_anomalies(anomalies)

    return FinancialSummary(
        reference_date=as_date(reference_date),
        period=period,
        total_revenue=sum((c.revenue for c in contributions), ZERO),
        categories=categories,
        unpaid_amount=sum((c.unpaid_amount for c in contributions), ZERO),
        unpaid_installments=sum(c.unpaid_installments for c in contributions),
        unpaid_clients=len(
            {c.client_id for c in contributions if c.unpaid_installments and c.client_id is not None}
        ),
        expected_this_period=sum((c.expected_this_period for c in contributions), ZERO),
        by_seller=tuple(by_seller),
        by_location=tuple(by_location),
        anomalies=anomalies,
        sale_count=len(contributions),
    )


def reconcile(sales, reference_date, period=None, tolerance=None, executor=None) -> FinancialSummary:
    """Resumen financiero de un conjunto de ventas a una fecha de referencia.

    `period` define "lo esperado en el periodo"; por omisión es el mes de la
    fecha de referencia. Con `executor` (p. ej. un ThreadPoolExecutor) el
    aporte de cada venta se calcula en paralelo.
    """
    reference = as_date(reference_date)
    if period is None:
        period = ReportingPeriod.month_of(reference)
    if tolerance is None:
        tolerance = DEFAULT_TOLERANCE

    evaluate = partial(sale_contribution, reference_date=reference, period=period, tolerance=tolerance)
    mapper = executor.map if executor is not None else map
    contributions = list(mapper(evaluate, sales))
    return combine(contributions, reference, period)
