"""
Libro de ventas: transformaciones puras sobre Sale

Cada operación recibe un valor inmutable y devuelve uno nuevo (versión + 1)
o lanza un error tipado sin haber construido nada. Los saldos se recalculan
siempre sumando de nuevo pagos y aplicaciones de crédito, y el estado sale
exclusivamente de derive_status.

Reglas de saldo inicial:
- cash: pagada por completo al crearse
- credit: solo el avance (si hay) cuenta como cobrado
- mixed: cash_amount + credit_amount == total; solo el avance cuenta como cobrado
"""

from decimal import Decimal
from typing import Callable, Iterable, Optional
from uuid import uuid4
from datetime import date, datetime, timezone

from salesledger.common.utils import field_value
from salesledger.core.config import settings
from salesledger.core.exceptions import (
    ValidationError, InvalidAmountError, OverpaymentError, InvalidStateError
)
from salesledger.modules.sales.models import (
    Sale, SaleItem, SaleType, SaleStatus, Payment, PaymentMethod, CreditApplication
)
from salesledger.modules.taxes.calculator import (
    ZERO, round2, to_decimal, itbis, line_subtotal, calculate_totals
)

IdGenerator = Callable[[], str]
Clock = Callable[[], datetime]


def default_id_generator() -> str:
    return str(uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _checked_amount(amount, remaining_balance: Decimal, label: str) -> Decimal:
    """
    Validar un monto contra el saldo sin redondearlo antes

    Raises:
        InvalidAmountError: monto no positivo o con más de 2 decimales
        OverpaymentError: monto mayor al saldo pendiente
    """
    amount = to_decimal(amount)
    if amount <= 0:
        raise InvalidAmountError(f"El monto {label} debe ser mayor a 0")
    if amount > remaining_balance:
        raise OverpaymentError(amount, remaining_balance)
    if round2(amount) != amount:
        raise InvalidAmountError(f"El monto {label} no puede tener más de 2 decimales")
    return round2(amount)


def derive_status(
    sale_type: SaleType,
    total: Decimal,
    total_paid: Decimal,
    cancelled: bool = False
) -> SaleStatus:
    """
    Única fuente del estado de una venta

    Args:
        sale_type: Tipo de venta
        total: Total de la venta
        total_paid: Pagos + avance + créditos aplicados
        cancelled: Anulación externa; prevalece sobre cualquier otro estado

    Returns:
        SaleStatus derivado
    """
    if cancelled:
        return SaleStatus.CANCELLED
    if sale_type == SaleType.CASH:
        return SaleStatus.COMPLETED
    if total - total_paid <= ZERO:
        return SaleStatus.COMPLETED
    if total_paid <= ZERO:
        return SaleStatus.PENDING
    return SaleStatus.PARTIAL


def _initial_collected(sale_type: SaleType, total: Decimal, advance_payment: Decimal) -> Decimal:
    if sale_type == SaleType.CASH:
        return total
    return advance_payment


def _balances(
    sale_type: SaleType,
    total: Decimal,
    advance_payment: Decimal,
    payments: Iterable[Payment],
    credit_applications: Iterable[CreditApplication],
    cancelled: bool
) -> dict:
    # Resumar todo en cada mutación, sin acumular sobre el valor anterior
    payments_total = _initial_collected(sale_type, total, advance_payment)
    payments_total += sum((p.amount for p in payments), ZERO)
    credited_total = sum((c.amount for c in credit_applications), ZERO)
    total_paid = payments_total + credited_total

    return {
        "payments_total": payments_total,
        "credited_total": credited_total,
        "total_paid": total_paid,
        "remaining_balance": total - total_paid,
        "status": derive_status(sale_type, total, total_paid, cancelled),
    }


def _rebuild(sale: Sale, **changes) -> Sale:
    """Nueva versión de la venta con los campos derivados recalculados"""
    payments = changes.get("payments", sale.payments)
    credit_applications = changes.get("credit_applications", sale.credit_applications)
    cancelled = changes.get("cancelled", sale.cancelled)

    changes.update(_balances(
        sale.type, sale.total, sale.advance_payment,
        payments, credit_applications, cancelled
    ))
    changes["version"] = sale.version + 1
    return sale.model_copy(update=changes)


def _build_items(items, id_generator: IdGenerator) -> tuple:
    if not items:
        raise ValidationError("La venta debe tener al menos un ítem")

    built = []
    for position, item in enumerate(items, start=1):
        if field_value(item, "quantity") is None:
            raise ValidationError(f"El ítem {position} no tiene cantidad")
        if field_value(item, "unit_price") is None:
            raise ValidationError(f"El ítem {position} no tiene precio unitario")

        quantity = to_decimal(field_value(item, "quantity"))
        unit_price = to_decimal(field_value(item, "unit_price"))
        if quantity <= 0:
            raise ValidationError(f"El ítem {position} debe tener cantidad mayor a 0")
        if unit_price < 0:
            raise ValidationError(f"El ítem {position} no puede tener precio negativo")

        itbis_amount = field_value(item, "itbis_amount")
        if itbis_amount is None:
            itbis_amount = itbis(line_subtotal(quantity, unit_price))
        itbis_amount = round2(itbis_amount)
        if itbis_amount < 0:
            raise ValidationError(f"El ítem {position} no puede tener ITBIS negativo")

        built.append(SaleItem(
            id=field_value(item, "id") or id_generator(),
            product_id=str(field_value(item, "product_id")),
            quantity=quantity,
            unit_price=unit_price,
            itbis_amount=itbis_amount
        ))
    return tuple(built)


def _split_amounts(
    sale_type: SaleType,
    total: Decimal,
    cash_amount,
    credit_amount,
    tolerance: Decimal
):
    if sale_type == SaleType.CASH:
        return total, None
    if sale_type == SaleType.CREDIT:
        return None, total

    if cash_amount is None or credit_amount is None:
        raise ValidationError("Una venta mixta requiere monto en efectivo y monto a crédito")
    cash_amount = round2(cash_amount)
    credit_amount = round2(credit_amount)
    if cash_amount < 0 or credit_amount < 0:
        raise ValidationError("Los montos de contado y crédito no pueden ser negativos")
    if abs((cash_amount + credit_amount) - total) > tolerance:
        raise ValidationError(
            f"Efectivo ({cash_amount}) + crédito ({credit_amount}) "
            f"no coincide con el total de la venta ({total})"
        )
    return cash_amount, credit_amount


def create_sale(
    client_id: str,
    items,
    sale_type: SaleType,
    *,
    cash_amount=None,
    credit_amount=None,
    advance_payment=None,
    sale_date: Optional[date] = None,
    id_generator: IdGenerator = default_id_generator,
    tolerance: Optional[Decimal] = None
) -> Sale:
    """
    Construir una venta a partir de sus ítems y su configuración de tipo

    Args:
        client_id: ID del cliente
        items: Ítems con product_id, quantity, unit_price e itbis_amount
            (si itbis_amount es None se calcula a la tasa configurada)
        sale_type: cash, credit o mixed
        cash_amount: Parte de contado (solo mixed)
        credit_amount: Parte a crédito (solo mixed)
        advance_payment: Avance cobrado al crear (credit/mixed)
        sale_date: Fecha de la venta (hoy por defecto)
        id_generator: Generador de IDs inyectado
        tolerance: Tolerancia de la división mixta (settings.MIXED_SPLIT_TOLERANCE)

    Returns:
        Sale versión 1 sin pagos

    Raises:
        ValidationError: ítems vacíos o inválidos, división mixta incorrecta,
            avance inválido
    """
    sale_type = SaleType(sale_type)
    if tolerance is None:
        tolerance = settings.MIXED_SPLIT_TOLERANCE

    sale_items = _build_items(items, id_generator)
    totals = calculate_totals(sale_items)

    cash_amount, credit_amount = _split_amounts(
        sale_type, totals.total, cash_amount, credit_amount, tolerance
    )

    advance = round2(advance_payment) if advance_payment is not None else ZERO
    if advance < 0:
        raise ValidationError("El avance no puede ser negativo")
    if advance > 0 and sale_type == SaleType.CASH:
        raise ValidationError("Las ventas de contado no admiten avance")
    if advance > totals.total:
        raise ValidationError("El avance no puede ser mayor al total de la venta")

    sale_fields = dict(
        id=id_generator(),
        client_id=str(client_id),
        date=sale_date or date.today(),
        type=sale_type,
        items=sale_items,
        subtotal=totals.subtotal,
        itbis_total=totals.itbis_total,
        total=totals.total,
        cash_amount=cash_amount,
        credit_amount=credit_amount,
        advance_payment=advance,
        payments=(),
        credit_applications=(),
        cancelled=False,
        version=1,
    )
    sale_fields.update(_balances(sale_type, totals.total, advance, (), (), False))
    return Sale(**sale_fields)


def add_payment(
    sale: Sale,
    amount,
    method: PaymentMethod = PaymentMethod.EFECTIVO,
    *,
    payment_date: Optional[date] = None,
    reference: Optional[str] = None,
    id_generator: IdGenerator = default_id_generator
) -> Sale:
    """
    Registrar un pago contra la venta

    Cada llamada genera un ID nuevo, así que reintentar la misma llamada
    registra dos pagos; evitar reenvíos es responsabilidad de quien llama.

    Raises:
        InvalidStateError: la venta está anulada
        InvalidAmountError: amount <= 0 o con más de 2 decimales
        OverpaymentError: amount > remaining_balance
    """
    if sale.cancelled:
        raise InvalidStateError("No se pueden agregar pagos a ventas anuladas")

    amount = _checked_amount(amount, sale.remaining_balance, "del pago")

    payment = Payment(
        id=id_generator(),
        date=payment_date or date.today(),
        amount=amount,
        method=PaymentMethod(method),
        reference=reference or None
    )
    return _rebuild(sale, payments=sale.payments + (payment,))


def apply_credit(
    sale: Sale,
    credit_note_id: str,
    numero: str,
    amount,
    applied_at: Optional[datetime] = None
) -> Sale:
    """
    Reducir el saldo de la venta con una nota de crédito

    El crédito queda en credit_applications y no en payments, para que los
    reportes por método de pago no lo incluyan.

    Raises:
        InvalidStateError: venta anulada o nota ya aplicada a esta venta
        InvalidAmountError: amount <= 0 o con más de 2 decimales
        OverpaymentError: amount > remaining_balance
    """
    if sale.cancelled:
        raise InvalidStateError("No se pueden aplicar notas de crédito a ventas anuladas")
    if any(c.credit_note_id == credit_note_id for c in sale.credit_applications):
        raise InvalidStateError(
            f"La nota de crédito {numero} ya fue aplicada a la venta {sale.id}"
        )

    amount = _checked_amount(amount, sale.remaining_balance, "de la nota de crédito")

    application = CreditApplication(
        credit_note_id=credit_note_id,
        numero=numero,
        amount=amount,
        date=applied_at or utc_now()
    )
    return _rebuild(sale, credit_applications=sale.credit_applications + (application,))


def cancel_sale(sale: Sale, reason: Optional[str] = None) -> Sale:
    """Anular la venta; pagos y créditos se conservan para auditoría"""
    if sale.cancelled:
        raise InvalidStateError("La venta ya está anulada")
    return _rebuild(sale, cancelled=True, cancellation_reason=reason)
