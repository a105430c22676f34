from pydantic import BaseModel, ConfigDict
from decimal import Decimal
from typing import Optional, Tuple
from datetime import datetime
from enum import Enum


class CreditNoteType(str, Enum):
    DEVOLUCION = "devolucion"
    DESCUENTO = "descuento"
    AJUSTE = "ajuste"
    ANULACION = "anulacion"


class CreditNoteStatus(str, Enum):
    PENDIENTE = "pendiente"    # Emitida, aún no afecta saldos
    APLICADA = "aplicada"      # Terminal: redujo el saldo de la factura
    CANCELADA = "cancelada"    # Terminal: sin efecto sobre ventas


class CreditNoteItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    quantity: Decimal
    unit_price: Decimal
    subtotal: Decimal       # quantity * unit_price
    itbis: Decimal          # subtotal * 18%
    total: Decimal          # subtotal + itbis
    reason: Optional[str] = None


class CreditNote(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    numero: str
    client_id: str
    # Referencia débil a la venta original: solo búsqueda, sin borrado en cascada
    factura_original_id: Optional[str] = None
    tipo: CreditNoteType
    motivo: str
    items: Tuple[CreditNoteItem, ...]

    subtotal: Decimal
    itbis_total: Decimal
    monto_total: Decimal

    status: CreditNoteStatus = CreditNoteStatus.PENDIENTE
    observaciones: Optional[str] = None
    fecha_emision: datetime
    fecha_aplicacion: Optional[datetime] = None
    version: int = 1

    @property
    def is_terminal(self) -> bool:
        return self.status != CreditNoteStatus.PENDIENTE
