from typing import Optional
import logging

from salesledger.core.config import settings
from salesledger.core.exceptions import LedgerError, ValidationError, NotFoundError
from salesledger.database.repositories import (
    SaleRepository, CreditNoteRepository, ProductCatalog, ClientDirectory
)
from salesledger.modules.contacts.models import default_sale_type
from salesledger.modules.inventory.models import check_stock
from salesledger.modules.sales import ledger
from salesledger.modules.sales.ledger import IdGenerator, Clock, default_id_generator, utc_now
from salesledger.modules.sales.models import Sale
from salesledger.modules.sales.schemas import (
    SaleCreate, SaleItemCreate, SaleFilters, SaleList, SaleCancel, PaymentCreate,
    PaymentStats, PaymentMethodSummary, AccountStatement
)
from salesledger.modules.sales.statement import (
    payment_stats, payments_by_method, build_account_statement
)
from salesledger.modules.taxes.calculator import itbis, line_subtotal

logger = logging.getLogger(__name__)


class SaleService:
    """
    Orquesta el libro de ventas: leer, transformar con funciones puras y guardar

    Los colaboradores (repositorios, catálogo, clientes, generador de IDs y
    reloj) se inyectan; el servicio no guarda estado propio.
    """

    def __init__(
        self,
        sales: SaleRepository,
        clients: Optional[ClientDirectory] = None,
        catalog: Optional[ProductCatalog] = None,
        id_generator: IdGenerator = default_id_generator,
        clock: Clock = utc_now
    ):
        self.sales = sales
        self.clients = clients
        self.catalog = catalog
        self.id_generator = id_generator
        self.clock = clock

    def _resolve_sale_type(self, sale_data: SaleCreate):
        if sale_data.type is not None:
            return sale_data.type
        if self.clients is None:
            raise ValidationError("Debe indicar el tipo de venta")
        try:
            client = self.clients.get_client_by_id(sale_data.client_id)
        except NotFoundError:
            raise ValidationError(f"El cliente {sale_data.client_id} no existe")
        return default_sale_type(client)

    def _resolve_items(self, items):
        """Completar precio e ITBIS desde el inventario cuando el ítem no los trae"""
        resolved = []
        for item in items:
            if item.unit_price is None and self.catalog is not None:
                try:
                    product = self.catalog.get_product_by_id(item.product_id)
                except NotFoundError:
                    raise ValidationError(f"El producto {item.product_id} no existe")
                unit_price = product.precio_venta
                item = SaleItemCreate(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=unit_price,
                    itbis_amount=item.itbis_amount
                    if item.itbis_amount is not None
                    else itbis(line_subtotal(item.quantity, unit_price))
                )
            resolved.append(item)
        return resolved

    def create_sale(self, sale_data: SaleCreate) -> Sale:
        """Crear una venta; valida existencias si hay catálogo de inventario"""
        try:
            sale_type = self._resolve_sale_type(sale_data)
            items = self._resolve_items(sale_data.items)
            if self.catalog is not None and items:
                check_stock(items, self.catalog)

            sale = ledger.create_sale(
                sale_data.client_id,
                items,
                sale_type,
                cash_amount=sale_data.cash_amount,
                credit_amount=sale_data.credit_amount,
                advance_payment=sale_data.advance_payment,
                sale_date=sale_data.date or self.clock().date(),
                id_generator=self.id_generator
            )
            sale = self.sales.save(sale)
        except LedgerError as e:
            logger.warning(f"Sale rejected for client {sale_data.client_id}: {e.message}")
            raise

        logger.info(
            f"Sale {sale.id} created: type={sale.type.value} total={sale.total} "
            f"status={sale.status.value}"
        )
        return sale

    def get_sale(self, sale_id: str) -> Sale:
        return self.sales.get(sale_id)

    def list_sales(
        self,
        filters: Optional[SaleFilters] = None,
        limit: int = None,
        offset: int = 0
    ) -> SaleList:
        """Listar ventas con filtros por cliente, estado y tipo"""
        filters = filters or SaleFilters()
        limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)

        sales = self.sales.list(client_id=filters.client_id)
        if filters.status:
            sales = [s for s in sales if s.status == filters.status]
        if filters.type:
            sales = [s for s in sales if s.type == filters.type]

        return SaleList(
            items=sales[offset:offset + limit],
            total=len(sales),
            limit=limit,
            offset=offset
        )

    def add_payment(self, sale_id: str, payment_data: PaymentCreate) -> Sale:
        """Registrar un pago; la venta se guarda con compare-and-swap"""
        sale = self.sales.get(sale_id)
        expected_version = payment_data.expected_version or sale.version
        try:
            updated = ledger.add_payment(
                sale,
                payment_data.amount,
                payment_data.method,
                payment_date=payment_data.date or self.clock().date(),
                reference=payment_data.reference,
                id_generator=self.id_generator
            )
            updated = self.sales.save(updated, expected_version=expected_version)
        except LedgerError as e:
            logger.warning(f"Payment rejected for sale {sale_id}: {e.message}")
            raise

        logger.info(
            f"Payment of {payment_data.amount} ({payment_data.method.value}) added to sale "
            f"{sale_id}: remaining={updated.remaining_balance} status={updated.status.value}"
        )
        return updated

    def cancel_sale(self, sale_id: str, cancel_data: Optional[SaleCancel] = None) -> Sale:
        cancel_data = cancel_data or SaleCancel()
        sale = self.sales.get(sale_id)
        expected_version = cancel_data.expected_version or sale.version
        try:
            updated = ledger.cancel_sale(sale, cancel_data.reason)
            updated = self.sales.save(updated, expected_version=expected_version)
        except LedgerError as e:
            logger.warning(f"Cancellation rejected for sale {sale_id}: {e.message}")
            raise

        logger.info(f"Sale {sale_id} cancelled. Reason: {cancel_data.reason}")
        return updated

    def get_payment_stats(self, sale_id: str) -> PaymentStats:
        return payment_stats(self.sales.get(sale_id))

    def get_payments_by_method(self, client_id: Optional[str] = None) -> PaymentMethodSummary:
        return payments_by_method(self.sales.list(client_id=client_id))

    def get_account_statement(
        self,
        client_id: str,
        credit_notes: Optional[CreditNoteRepository] = None
    ) -> AccountStatement:
        notes = credit_notes.list() if credit_notes is not None else None
        return build_account_statement(client_id, self.sales.list(client_id=client_id), notes)
