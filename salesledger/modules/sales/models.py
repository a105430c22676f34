from pydantic import BaseModel, ConfigDict
from decimal import Decimal
from typing import Optional, Tuple
from datetime import date, datetime
from enum import Enum


class SaleType(str, Enum):
    CASH = "cash"        # Contado: pago completo al crear
    CREDIT = "credit"    # Crédito: saldo pendiente, admite avance
    MIXED = "mixed"      # Mixta: parte contado, parte crédito


class SaleStatus(str, Enum):
    PENDING = "pending"        # Sin pagos
    PARTIAL = "partial"        # Pago parcial
    COMPLETED = "completed"    # Pagada completamente
    CANCELLED = "cancelled"    # Anulada (estado terminal externo)


class PaymentMethod(str, Enum):
    EFECTIVO = "efectivo"
    TRANSFERENCIA = "transferencia"
    TARJETA = "tarjeta"
    CHEQUE = "cheque"
    OTRO = "otro"


class SaleItem(BaseModel):
    """Línea de venta; inmutable, las correcciones se hacen con notas de crédito"""
    model_config = ConfigDict(frozen=True)

    id: str
    product_id: str
    quantity: Decimal
    unit_price: Decimal
    itbis_amount: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.quantity * self.unit_price

    @property
    def line_total(self) -> Decimal:
        return self.subtotal + self.itbis_amount


class Payment(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    date: date
    amount: Decimal
    method: PaymentMethod
    reference: Optional[str] = None


class CreditApplication(BaseModel):
    """Nota de crédito aplicada a la venta; se lleva aparte de los pagos"""
    model_config = ConfigDict(frozen=True)

    credit_note_id: str
    numero: str
    amount: Decimal
    date: datetime


class Sale(BaseModel):
    """
    Venta con sus campos derivados

    payments_total, credited_total, total_paid, remaining_balance y status se
    calculan siempre en salesledger.modules.sales.ledger; nunca se asignan a mano.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    client_id: str
    date: date
    type: SaleType
    items: Tuple[SaleItem, ...]

    # Totals (calculated)
    subtotal: Decimal
    itbis_total: Decimal
    total: Decimal

    # Distribución contado/crédito
    cash_amount: Optional[Decimal] = None
    credit_amount: Optional[Decimal] = None
    advance_payment: Decimal = Decimal('0.00')

    payments: Tuple[Payment, ...] = ()
    credit_applications: Tuple[CreditApplication, ...] = ()

    # Balance (calculated)
    payments_total: Decimal
    credited_total: Decimal
    total_paid: Decimal
    remaining_balance: Decimal
    status: SaleStatus

    cancelled: bool = False
    cancellation_reason: Optional[str] = None
    version: int = 1
