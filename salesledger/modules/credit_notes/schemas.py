"""
Esquemas Pydantic para el módulo de Notas de Crédito

Define la validación de datos de entrada y salida:
- Creación y actualización de notas (solo pendientes)
- Filtros de búsqueda
- Estadísticas agregadas
- Respuestas envueltas en nota_credito / notas_credito
"""

from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List
from datetime import date

from salesledger.modules.credit_notes.models import (
    CreditNote, CreditNoteType, CreditNoteStatus
)
from salesledger.modules.sales.models import Sale


class CreditNoteItemCreate(BaseModel):
    product_id: Optional[str] = Field(None, description="ID del producto devuelto o ajustado")
    product_name: Optional[str] = Field(None, max_length=200)
    quantity: Decimal = Field(..., gt=0, description="Cantidad")
    unit_price: Decimal = Field(..., ge=0, description="Precio unitario sin ITBIS")
    reason: Optional[str] = Field(None, max_length=300)


class CreditNoteCreate(BaseModel):
    client_id: str = Field(..., min_length=1, description="ID del cliente")
    factura_original_id: Optional[str] = Field(None, description="Venta a la que se aplica")
    tipo: CreditNoteType = CreditNoteType.DEVOLUCION
    motivo: str = Field(..., description="Motivo de la nota de crédito")
    items: List[CreditNoteItemCreate]
    observaciones: Optional[str] = None


class CreditNoteUpdate(BaseModel):
    factura_original_id: Optional[str] = None
    tipo: Optional[CreditNoteType] = None
    motivo: Optional[str] = None
    items: Optional[List[CreditNoteItemCreate]] = None
    observaciones: Optional[str] = None
    expected_version: Optional[int] = Field(None, ge=1)


class CreditNoteFilters(BaseModel):
    search: Optional[str] = None
    client_id: Optional[str] = None
    tipo: Optional[CreditNoteType] = None
    status: Optional[CreditNoteStatus] = None
    fecha_desde: Optional[date] = None
    fecha_hasta: Optional[date] = None
    factura_original_id: Optional[str] = None

    @field_validator('search')
    @classmethod
    def normalize_search(cls, v):
        if v is not None:
            v = v.strip()
        return v or None


class CreditNoteStats(BaseModel):
    total_notas_credito: int
    monto_total_creditos: Decimal
    notas_pendientes: int
    notas_aplicadas: int
    monto_pendiente: Decimal
    monto_aplicado: Decimal


class CreditNoteResponse(BaseModel):
    nota_credito: CreditNote


class CreditNoteListResponse(BaseModel):
    notas_credito: List[CreditNote]
    total: int
    limit: int
    offset: int


class CreditNoteApplyResponse(BaseModel):
    nota_credito: CreditNote
    venta: Optional[Sale] = None
