from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List, Dict
import datetime as dt
from enum import Enum

from salesledger.modules.sales.models import Sale, SaleType, SaleStatus, PaymentMethod


# Sale Schemas
class SaleItemCreate(BaseModel):
    product_id: str = Field(..., min_length=1, description="ID del producto")
    quantity: Decimal = Field(..., gt=0, description="Cantidad")
    unit_price: Optional[Decimal] = Field(
        None, ge=0, description="Precio unitario sin ITBIS; si falta se toma del inventario"
    )
    itbis_amount: Optional[Decimal] = Field(
        None, ge=0, description="ITBIS de la línea; si falta se calcula al 18%"
    )


class SaleCreate(BaseModel):
    client_id: str = Field(..., min_length=1)
    type: Optional[SaleType] = Field(
        None, description="Tipo de venta; si falta se usa la facturación preferida del cliente"
    )
    items: List[SaleItemCreate]
    cash_amount: Optional[Decimal] = Field(None, description="Parte de contado (ventas mixtas)")
    credit_amount: Optional[Decimal] = Field(None, description="Parte a crédito (ventas mixtas)")
    advance_payment: Optional[Decimal] = Field(None, description="Avance (ventas a crédito o mixtas)")
    date: Optional[dt.date] = None


class SaleCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)
    expected_version: Optional[int] = Field(None, ge=1)


class SaleList(BaseModel):
    items: List[Sale]
    total: int
    limit: int
    offset: int


# Payment Schemas
class PaymentCreate(BaseModel):
    amount: Decimal
    method: PaymentMethod = PaymentMethod.EFECTIVO
    date: Optional[dt.date] = None
    reference: Optional[str] = Field(None, max_length=100)
    expected_version: Optional[int] = Field(
        None, ge=1, description="Versión de la venta que vio quien registra el pago"
    )


class PaymentStats(BaseModel):
    total_amount: Decimal
    total_paid: Decimal
    remaining_amount: Decimal
    payment_percentage: int


class PaymentMethodSummary(BaseModel):
    totals: Dict[PaymentMethod, Decimal]
    total: Decimal
    payments_count: int


# Account statement Schemas
class StatementEntryType(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class AccountStatementLine(BaseModel):
    id: str
    client_id: str
    date: dt.date
    description: str
    amount: Decimal
    type: StatementEntryType
    balance: Decimal
    sale_id: Optional[str] = None


class AccountStatement(BaseModel):
    client_id: str
    lines: List[AccountStatementLine]
    total_debits: Decimal
    total_credits: Decimal
    balance: Decimal


class SaleFilters(BaseModel):
    client_id: Optional[str] = None
    status: Optional[SaleStatus] = None
    type: Optional[SaleType] = None
