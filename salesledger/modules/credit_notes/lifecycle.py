"""
Ciclo de vida de las notas de crédito

Máquina de estados:

    pendiente --apply--> aplicada
    pendiente --cancel--> cancelada

Ambos destinos son terminales. Solo una nota pendiente puede editarse o
eliminarse. Al aplicar una nota con factura_original_id la venta referenciada
recibe el crédito en su libro paralelo (credit_applications).
"""

from typing import Iterable, List, Optional, Tuple
from datetime import datetime

from salesledger.common.utils import field_value
from salesledger.core.exceptions import ValidationError, InvalidStateError
from salesledger.modules.credit_notes.models import (
    CreditNote, CreditNoteItem, CreditNoteStatus, CreditNoteType
)
from salesledger.modules.credit_notes.schemas import CreditNoteFilters, CreditNoteStats
from salesledger.modules.sales.ledger import IdGenerator, default_id_generator, apply_credit, utc_now
from salesledger.modules.sales.models import Sale
from salesledger.modules.taxes.calculator import ZERO, ITBISCalculator


def _build_items(items, id_generator: IdGenerator, calculator: ITBISCalculator) -> tuple:
    if not items:
        raise ValidationError("La nota de crédito debe tener al menos un ítem")

    built = []
    for position, item in enumerate(items, start=1):
        quantity = field_value(item, "quantity")
        unit_price = field_value(item, "unit_price")
        if quantity is None or unit_price is None:
            raise ValidationError(f"El ítem {position} requiere cantidad y precio unitario")

        line = calculator.calculate_line(quantity, unit_price)
        if line.quantity <= 0:
            raise ValidationError(f"El ítem {position} debe tener cantidad mayor a 0")
        if line.unit_price < 0:
            raise ValidationError(f"El ítem {position} no puede tener precio negativo")

        product_id = field_value(item, "product_id")
        built.append(CreditNoteItem(
            id=field_value(item, "id") or id_generator(),
            product_id=str(product_id) if product_id is not None else None,
            product_name=field_value(item, "product_name"),
            quantity=line.quantity,
            unit_price=line.unit_price,
            subtotal=line.subtotal,
            itbis=line.itbis,
            total=line.total,
            reason=field_value(item, "reason")
        ))
    return tuple(built)


def _totals(items: Iterable[CreditNoteItem]) -> dict:
    items = list(items)
    monto_total = sum((item.total for item in items), ZERO)
    if monto_total <= 0:
        raise ValidationError("El monto total debe ser mayor a 0")
    return {
        "subtotal": sum((item.subtotal for item in items), ZERO),
        "itbis_total": sum((item.itbis for item in items), ZERO),
        "monto_total": monto_total,
    }


def _require_motivo(motivo: Optional[str]) -> str:
    if motivo is None or not motivo.strip():
        raise ValidationError("El motivo es obligatorio")
    return motivo.strip()


def _require_pending(note: CreditNote, action: str) -> None:
    if note.status != CreditNoteStatus.PENDIENTE:
        raise InvalidStateError(
            f"No se puede {action} la nota de crédito {note.numero} "
            f"en estado '{note.status.value}'"
        )


def build_credit_note(
    *,
    numero: str,
    client_id: str,
    tipo: CreditNoteType,
    motivo: str,
    items,
    factura_original_id: Optional[str] = None,
    observaciones: Optional[str] = None,
    fecha_emision: Optional[datetime] = None,
    id_generator: IdGenerator = default_id_generator,
    calculator: Optional[ITBISCalculator] = None
) -> CreditNote:
    """
    Emitir una nota de crédito pendiente

    Cada ítem calcula subtotal = cantidad * precio, ITBIS al 18% redondeado
    por línea y total = subtotal + ITBIS; monto_total es la suma de totales.

    Raises:
        ValidationError: sin ítems, motivo vacío o monto total no positivo
    """
    calculator = calculator or ITBISCalculator()
    motivo = _require_motivo(motivo)
    note_items = _build_items(items, id_generator, calculator)

    return CreditNote(
        id=id_generator(),
        numero=numero,
        client_id=str(client_id),
        factura_original_id=factura_original_id,
        tipo=CreditNoteType(tipo),
        motivo=motivo,
        items=note_items,
        status=CreditNoteStatus.PENDIENTE,
        observaciones=observaciones,
        fecha_emision=fecha_emision or utc_now(),
        version=1,
        **_totals(note_items)
    )


def update_credit_note(
    note: CreditNote,
    update_data: dict,
    *,
    id_generator: IdGenerator = default_id_generator,
    calculator: Optional[ITBISCalculator] = None
) -> CreditNote:
    """
    Editar una nota pendiente

    Solo se tocan las claves presentes en update_data. factura_original_id y
    observaciones admiten None para quitar el valor; tipo, motivo e items no.

    Raises:
        InvalidStateError: la nota no está pendiente
        ValidationError: motivo vacío, ítems inválidos o campo obligatorio en None
    """
    _require_pending(note, "modificar")

    for field in ("tipo", "motivo", "items"):
        if field in update_data and update_data[field] is None:
            raise ValidationError(f"El campo {field} no puede quedar vacío")

    changes = {}
    if "factura_original_id" in update_data:
        changes["factura_original_id"] = update_data["factura_original_id"] or None
    if "observaciones" in update_data:
        changes["observaciones"] = update_data["observaciones"]
    if "tipo" in update_data:
        changes["tipo"] = CreditNoteType(update_data["tipo"])
    if "motivo" in update_data:
        changes["motivo"] = _require_motivo(update_data["motivo"])
    if "items" in update_data:
        items = update_data["items"]
        note_items = _build_items(items, id_generator, calculator or ITBISCalculator())
        changes["items"] = note_items
        changes.update(_totals(note_items))

    changes["version"] = note.version + 1
    return note.model_copy(update=changes)


def apply_credit_note(
    note: CreditNote,
    sale: Optional[Sale] = None,
    *,
    now: Optional[datetime] = None
) -> Tuple[CreditNote, Optional[Sale]]:
    """
    Aplicar la nota de crédito

    Si la nota referencia una venta, esa venta debe pasarse en `sale`; se
    devuelve la venta con el saldo reducido por monto_total. Ambos valores se
    construyen antes de devolver nada, así que un error no deja la nota
    aplicada con la venta intacta.

    Returns:
        (nota aplicada, venta actualizada o None)

    Raises:
        InvalidStateError: la nota no está pendiente, o la venta está anulada
            o ya tiene esta nota
        ValidationError: falta la venta referenciada o no corresponde
        OverpaymentError: monto_total excede el saldo pendiente de la venta
    """
    _require_pending(note, "aplicar")
    applied_at = now or utc_now()

    updated_sale = None
    if note.factura_original_id:
        if sale is None:
            raise ValidationError(
                f"La nota {note.numero} referencia la venta {note.factura_original_id}; "
                "se requiere la venta para aplicarla"
            )
        if sale.id != note.factura_original_id:
            raise ValidationError(
                f"La venta {sale.id} no es la factura original de la nota {note.numero}"
            )
        if sale.client_id != note.client_id:
            raise ValidationError(
                f"La venta {sale.id} no pertenece al cliente de la nota {note.numero}"
            )
        updated_sale = apply_credit(sale, note.id, note.numero, note.monto_total, applied_at)
    elif sale is not None:
        raise ValidationError(f"La nota {note.numero} no referencia ninguna venta")

    applied = note.model_copy(update={
        "status": CreditNoteStatus.APLICADA,
        "fecha_aplicacion": applied_at,
        "version": note.version + 1,
    })
    return applied, updated_sale


def cancel_credit_note(note: CreditNote) -> CreditNote:
    """Cancelar una nota pendiente; no afecta ninguna venta"""
    _require_pending(note, "cancelar")
    return note.model_copy(update={
        "status": CreditNoteStatus.CANCELADA,
        "version": note.version + 1,
    })


def ensure_deletable(note: CreditNote) -> None:
    """Solo las notas pendientes pueden eliminarse"""
    _require_pending(note, "eliminar")


def matches_filters(note: CreditNote, filters: CreditNoteFilters) -> bool:
    if filters.client_id and note.client_id != filters.client_id:
        return False
    if filters.tipo and note.tipo != filters.tipo:
        return False
    if filters.status and note.status != filters.status:
        return False
    if filters.factura_original_id and note.factura_original_id != filters.factura_original_id:
        return False
    if filters.fecha_desde and note.fecha_emision.date() < filters.fecha_desde:
        return False
    if filters.fecha_hasta and note.fecha_emision.date() > filters.fecha_hasta:
        return False
    if filters.search:
        term = filters.search.lower()
        haystack = " ".join(
            value for value in (note.numero, note.motivo, note.observaciones) if value
        ).lower()
        if term not in haystack:
            return False
    return True


def filter_credit_notes(notes: Iterable[CreditNote], filters: CreditNoteFilters) -> List[CreditNote]:
    return [note for note in notes if matches_filters(note, filters)]


def calculate_credit_note_stats(notes: Iterable[CreditNote]) -> CreditNoteStats:
    notes = list(notes)
    pending = [n for n in notes if n.status == CreditNoteStatus.PENDIENTE]
    applied = [n for n in notes if n.status == CreditNoteStatus.APLICADA]

    return CreditNoteStats(
        total_notas_credito=len(notes),
        monto_total_creditos=sum((n.monto_total for n in notes), ZERO),
        notas_pendientes=len(pending),
        notas_aplicadas=len(applied),
        monto_pendiente=sum((n.monto_total for n in pending), ZERO),
        monto_aplicado=sum((n.monto_total for n in applied), ZERO),
    )
