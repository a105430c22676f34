"""
Router FastAPI para Notas de Crédito

- Emisión, edición y eliminación de notas pendientes
- Aplicación contra la factura original (reduce su saldo)
- Cancelación
- Búsqueda con filtros y estadísticas
"""

from fastapi import APIRouter, status, Query, Path, Response
from typing import Optional
from datetime import date

from salesledger.dependencies.ledgerDependencies import credit_note_service_dependency
from salesledger.modules.credit_notes.models import CreditNoteStatus, CreditNoteType
from salesledger.modules.credit_notes.schemas import (
    CreditNoteCreate, CreditNoteUpdate, CreditNoteFilters, CreditNoteStats,
    CreditNoteResponse, CreditNoteListResponse, CreditNoteApplyResponse
)

credit_notes_router = APIRouter(prefix="/notas-credito", tags=["Credit Notes"])


@credit_notes_router.post("", response_model=CreditNoteResponse, status_code=status.HTTP_201_CREATED)
def create_credit_note(note_data: CreditNoteCreate, service: credit_note_service_dependency):
    """
    Emitir una nota de crédito

    - **tipo**: devolucion, descuento, ajuste o anulacion
    - **factura_original_id**: venta a la que se aplicará (opcional)
    - **items**: ITBIS al 18% calculado por línea
    """
    return CreditNoteResponse(nota_credito=service.create_credit_note(note_data))


@credit_notes_router.get("", response_model=CreditNoteListResponse)
def list_credit_notes(
    service: credit_note_service_dependency,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    search: Optional[str] = Query(None, description="Buscar en número, motivo u observaciones"),
    client_id: Optional[str] = Query(None),
    tipo: Optional[CreditNoteType] = Query(None),
    status: Optional[CreditNoteStatus] = Query(None),
    fecha_desde: Optional[date] = Query(None),
    fecha_hasta: Optional[date] = Query(None),
    factura_original_id: Optional[str] = Query(None)
):
    filters = CreditNoteFilters(
        search=search,
        client_id=client_id,
        tipo=tipo,
        status=status,
        fecha_desde=fecha_desde,
        fecha_hasta=fecha_hasta,
        factura_original_id=factura_original_id
    )
    return service.list_credit_notes(filters, limit, offset)


@credit_notes_router.get("/stats", response_model=CreditNoteStats)
def get_credit_note_stats(service: credit_note_service_dependency):
    return service.get_stats()


@credit_notes_router.get("/{note_id}", response_model=CreditNoteResponse)
def get_credit_note(service: credit_note_service_dependency, note_id: str = Path(...)):
    return CreditNoteResponse(nota_credito=service.get_credit_note(note_id))


@credit_notes_router.put("/{note_id}", response_model=CreditNoteResponse)
def update_credit_note(
    note_update: CreditNoteUpdate,
    service: credit_note_service_dependency,
    note_id: str = Path(...)
):
    """Editar una nota; solo permitido en estado pendiente"""
    return CreditNoteResponse(nota_credito=service.update_credit_note(note_id, note_update))


@credit_notes_router.put("/{note_id}/aplicar", response_model=CreditNoteApplyResponse)
def apply_credit_note(service: credit_note_service_dependency, note_id: str = Path(...)):
    """
    Aplicar la nota

    Si referencia una venta, el monto total reduce su saldo pendiente. Una
    nota ya aplicada o cancelada responde 409.
    """
    return service.apply_credit_note(note_id)


@credit_notes_router.put("/{note_id}/cancelar", response_model=CreditNoteResponse)
def cancel_credit_note(service: credit_note_service_dependency, note_id: str = Path(...)):
    return CreditNoteResponse(nota_credito=service.cancel_credit_note(note_id))


@credit_notes_router.delete("/{note_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_credit_note(service: credit_note_service_dependency, note_id: str = Path(...)):
    """Eliminar una nota pendiente"""
    service.delete_credit_note(note_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
