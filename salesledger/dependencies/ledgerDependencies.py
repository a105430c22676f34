from fastapi import Depends
from typing import Annotated, Optional

from salesledger.database.repositories import (
    InMemorySaleRepository, InMemoryCreditNoteRepository,
    InMemoryClientDirectory,
    SaleRepository, CreditNoteRepository, ProductCatalog, ClientDirectory
)
from salesledger.modules.sales.ledger import IdGenerator, Clock, default_id_generator, utc_now
from salesledger.modules.sales.service import SaleService
from salesledger.modules.credit_notes.service import CreditNoteService

# Instancias de proceso; las pruebas las reemplazan con app.dependency_overrides
sale_repository = InMemorySaleRepository()
credit_note_repository = InMemoryCreditNoteRepository()
# Sin inventario conectado no se validan existencias
product_catalog: Optional[ProductCatalog] = None
client_directory = InMemoryClientDirectory()


def get_sale_repository() -> SaleRepository:
    return sale_repository


def get_credit_note_repository() -> CreditNoteRepository:
    return credit_note_repository


def get_product_catalog() -> Optional[ProductCatalog]:
    return product_catalog


def get_client_directory() -> ClientDirectory:
    return client_directory


def get_id_generator() -> IdGenerator:
    return default_id_generator


def get_clock() -> Clock:
    return utc_now


sale_repository_dependency = Annotated[SaleRepository, Depends(get_sale_repository)]
credit_note_repository_dependency = Annotated[CreditNoteRepository, Depends(get_credit_note_repository)]
product_catalog_dependency = Annotated[Optional[ProductCatalog], Depends(get_product_catalog)]
client_directory_dependency = Annotated[ClientDirectory, Depends(get_client_directory)]
id_generator_dependency = Annotated[IdGenerator, Depends(get_id_generator)]
clock_dependency = Annotated[Clock, Depends(get_clock)]


def get_sale_service(
    sales: sale_repository_dependency,
    clients: client_directory_dependency,
    catalog: product_catalog_dependency,
    id_generator: id_generator_dependency,
    clock: clock_dependency
) -> SaleService:
    return SaleService(sales, clients, catalog, id_generator, clock)


def get_credit_note_service(
    notes: credit_note_repository_dependency,
    sales: sale_repository_dependency,
    id_generator: id_generator_dependency,
    clock: clock_dependency
) -> CreditNoteService:
    return CreditNoteService(notes, sales, id_generator, clock)


sale_service_dependency = Annotated[SaleService, Depends(get_sale_service)]
credit_note_service_dependency = Annotated[CreditNoteService, Depends(get_credit_note_service)]
