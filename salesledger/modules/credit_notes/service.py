from typing import Optional
import logging

from salesledger.core.config import settings
from salesledger.core.exceptions import LedgerError, ValidationError, NotFoundError
from salesledger.database.repositories import CreditNoteRepository, SaleRepository
from salesledger.modules.credit_notes import lifecycle
from salesledger.modules.credit_notes.models import CreditNote
from salesledger.modules.credit_notes.schemas import (
    CreditNoteCreate, CreditNoteUpdate, CreditNoteFilters, CreditNoteStats,
    CreditNoteListResponse, CreditNoteApplyResponse
)
from salesledger.modules.sales.ledger import IdGenerator, Clock, default_id_generator, utc_now

logger = logging.getLogger(__name__)


class CreditNoteService:
    """Servicio para gestión de notas de crédito"""

    def __init__(
        self,
        notes: CreditNoteRepository,
        sales: SaleRepository,
        id_generator: IdGenerator = default_id_generator,
        clock: Clock = utc_now
    ):
        self.notes = notes
        self.sales = sales
        self.id_generator = id_generator
        self.clock = clock

    def _require_original_sale(self, sale_id: Optional[str], client_id: str) -> None:
        if not sale_id:
            return
        try:
            sale = self.sales.get(sale_id)
        except NotFoundError:
            raise ValidationError(f"La factura original {sale_id} no existe")
        if sale.client_id != client_id:
            raise ValidationError(
                f"La factura original {sale_id} no pertenece al cliente {client_id}"
            )

    def create_credit_note(self, note_data: CreditNoteCreate) -> CreditNote:
        """Emitir una nota de crédito en estado pendiente"""
        try:
            self._require_original_sale(note_data.factura_original_id, note_data.client_id)
            note = lifecycle.build_credit_note(
                numero=self.notes.next_number(),
                client_id=note_data.client_id,
                tipo=note_data.tipo,
                motivo=note_data.motivo,
                items=note_data.items,
                factura_original_id=note_data.factura_original_id,
                observaciones=note_data.observaciones,
                fecha_emision=self.clock(),
                id_generator=self.id_generator
            )
            note = self.notes.save(note)
        except LedgerError as e:
            logger.warning(f"Credit note rejected for client {note_data.client_id}: {e.message}")
            raise

        logger.info(f"Credit note {note.numero} created: monto_total={note.monto_total}")
        return note

    def get_credit_note(self, note_id: str) -> CreditNote:
        return self.notes.get(note_id)

    def list_credit_notes(
        self,
        filters: Optional[CreditNoteFilters] = None,
        limit: int = None,
        offset: int = 0
    ) -> CreditNoteListResponse:
        filters = filters or CreditNoteFilters()
        limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
        notes = lifecycle.filter_credit_notes(self.notes.list(), filters)

        return CreditNoteListResponse(
            notas_credito=notes[offset:offset + limit],
            total=len(notes),
            limit=limit,
            offset=offset
        )

    def update_credit_note(self, note_id: str, note_update: CreditNoteUpdate) -> CreditNote:
        """Modificar una nota pendiente"""
        note = self.notes.get(note_id)
        expected_version = note_update.expected_version or note.version
        update_data = note_update.model_dump(exclude_unset=True, exclude={"expected_version"})
        try:
            if update_data.get("factura_original_id"):
                self._require_original_sale(update_data["factura_original_id"], note.client_id)
            updated = lifecycle.update_credit_note(
                note, update_data, id_generator=self.id_generator
            )
            updated = self.notes.save(updated, expected_version=expected_version)
        except LedgerError as e:
            logger.warning(f"Update rejected for credit note {note.numero}: {e.message}")
            raise

        logger.info(f"Credit note {updated.numero} updated: monto_total={updated.monto_total}")
        return updated

    def apply_credit_note(self, note_id: str) -> CreditNoteApplyResponse:
        """
        Aplicar la nota de crédito

        La nota se guarda primero (compare-and-swap sobre su versión), de modo
        que dos aplicaciones simultáneas no pueden pasar ambas. Si luego falla
        el guardado de la venta, la nota vuelve a su versión pendiente.
        """
        note = self.notes.get(note_id)
        sale = self.sales.get(note.factura_original_id) if note.factura_original_id else None

        try:
            applied, updated_sale = lifecycle.apply_credit_note(note, sale, now=self.clock())
            applied = self.notes.save(applied, expected_version=note.version)
        except LedgerError as e:
            logger.warning(f"Apply rejected for credit note {note.numero}: {e.message}")
            raise

        if updated_sale is not None:
            try:
                updated_sale = self.sales.save(updated_sale, expected_version=sale.version)
            except LedgerError as e:
                logger.error(
                    f"Sale {sale.id} changed while applying credit note {note.numero}; "
                    f"reverting note: {e.message}"
                )
                self.notes.save(
                    note.model_copy(update={"version": applied.version + 1}),
                    expected_version=applied.version
                )
                raise

        if updated_sale is not None:
            logger.info(
                f"Credit note {applied.numero} applied to sale {updated_sale.id}: "
                f"remaining={updated_sale.remaining_balance} status={updated_sale.status.value}"
            )
        else:
            logger.info(f"Credit note {applied.numero} applied to client {applied.client_id}")
        return CreditNoteApplyResponse(nota_credito=applied, venta=updated_sale)

    def cancel_credit_note(self, note_id: str) -> CreditNote:
        note = self.notes.get(note_id)
        try:
            cancelled = lifecycle.cancel_credit_note(note)
            cancelled = self.notes.save(cancelled, expected_version=note.version)
        except LedgerError as e:
            logger.warning(f"Cancel rejected for credit note {note.numero}: {e.message}")
            raise

        logger.info(f"Credit note {cancelled.numero} cancelled")
        return cancelled

    def delete_credit_note(self, note_id: str) -> None:
        """Eliminar una nota; solo permitido mientras esté pendiente"""
        note = self.notes.get(note_id)
        try:
            lifecycle.ensure_deletable(note)
            self.notes.delete(note_id, expected_version=note.version)
        except LedgerError as e:
            logger.warning(f"Delete rejected for credit note {note.numero}: {e.message}")
            raise
        logger.info(f"Credit note {note.numero} deleted")

    def get_stats(self) -> CreditNoteStats:
        return lifecycle.calculate_credit_note_stats(self.notes.list())
