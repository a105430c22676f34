"""
Reportes derivados del libro de ventas

- Progreso de pago de una venta
- Totales cobrados por método de pago (sin créditos ni avances)
- Estado de cuenta de un cliente con saldo corrido
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

from salesledger.modules.credit_notes.models import CreditNote, CreditNoteStatus
from salesledger.modules.sales.models import Sale, SaleType, PaymentMethod
from salesledger.modules.sales.schemas import (
    PaymentStats, PaymentMethodSummary,
    AccountStatement, AccountStatementLine, StatementEntryType
)
from salesledger.modules.taxes.calculator import ZERO


def payment_stats(sale: Sale) -> PaymentStats:
    """Porcentaje pagado (0-100) y montos de la barra de progreso"""
    if sale.total > 0:
        percentage = (sale.total_paid / sale.total * 100).quantize(
            Decimal('1'), rounding=ROUND_HALF_UP
        )
        percentage = min(int(percentage), 100)
    else:
        percentage = 100

    return PaymentStats(
        total_amount=sale.total,
        total_paid=sale.total_paid,
        remaining_amount=sale.remaining_balance,
        payment_percentage=percentage
    )


def payments_by_method(sales: Iterable[Sale]) -> PaymentMethodSummary:
    """
    Sumar los pagos registrados por método

    Solo cuenta la lista payments de cada venta; las notas de crédito
    aplicadas y los avances no son pagos y no aparecen aquí.
    """
    totals = {method: ZERO for method in PaymentMethod}
    count = 0
    for sale in sales:
        for payment in sale.payments:
            totals[payment.method] += payment.amount
            count += 1

    return PaymentMethodSummary(
        totals=totals,
        total=sum(totals.values(), ZERO),
        payments_count=count
    )


def build_account_statement(
    client_id: str,
    sales: Iterable[Sale],
    credit_notes: Optional[Iterable[CreditNote]] = None
) -> AccountStatement:
    """
    Estado de cuenta del cliente

    Cada venta no anulada es un débito; su cobro inicial (contado o avance),
    sus pagos y sus notas de crédito aplicadas son créditos. Las notas
    aplicadas sin factura original también acreditan la cuenta. Las líneas
    se ordenan por fecha y el saldo se acumula línea a línea.
    """
    entries = []
    order = 0

    def add(entry_id, entry_date, description, amount, entry_type, sale_id=None):
        nonlocal order
        entries.append((entry_date, order, AccountStatementLine(
            id=entry_id,
            client_id=client_id,
            date=entry_date,
            description=description,
            amount=amount,
            type=entry_type,
            balance=ZERO,
            sale_id=sale_id
        )))
        order += 1

    for sale in sales:
        if sale.client_id != client_id or sale.cancelled:
            continue

        add(sale.id, sale.date, f"Venta {sale.id}", sale.total, StatementEntryType.DEBIT, sale.id)

        if sale.type == SaleType.CASH:
            add(f"{sale.id}-contado", sale.date, f"Pago de contado venta {sale.id}",
                sale.total, StatementEntryType.CREDIT, sale.id)
        elif sale.advance_payment > 0:
            add(f"{sale.id}-avance", sale.date, f"Avance venta {sale.id}",
                sale.advance_payment, StatementEntryType.CREDIT, sale.id)

        for payment in sale.payments:
            description = f"Pago ({payment.method.value}) venta {sale.id}"
            if payment.reference:
                description += f" ref. {payment.reference}"
            add(payment.id, payment.date, description, payment.amount,
                StatementEntryType.CREDIT, sale.id)

        for application in sale.credit_applications:
            add(application.credit_note_id, application.date.date(),
                f"Nota de crédito {application.numero} venta {sale.id}",
                application.amount, StatementEntryType.CREDIT, sale.id)

    for note in credit_notes or ():
        if (
            note.client_id != client_id
            or note.status != CreditNoteStatus.APLICADA
            or note.factura_original_id
        ):
            continue
        applied_on = (note.fecha_aplicacion or note.fecha_emision).date()
        add(note.id, applied_on, f"Nota de crédito {note.numero}",
            note.monto_total, StatementEntryType.CREDIT)

    entries.sort(key=lambda entry: (entry[0], entry[1]))

    lines: List[AccountStatementLine] = []
    balance = ZERO
    total_debits = ZERO
    total_credits = ZERO
    for _, _, line in entries:
        if line.type == StatementEntryType.DEBIT:
            balance += line.amount
            total_debits += line.amount
        else:
            balance -= line.amount
            total_credits += line.amount
        lines.append(line.model_copy(update={"balance": balance}))

    return AccountStatement(
        client_id=client_id,
        lines=lines,
        total_debits=total_debits,
        total_credits=total_credits,
        balance=balance
    )
