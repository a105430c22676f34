"""
Repositorios que consume el libro de ventas

Los servicios reciben estas interfaces por inyección; no existe ningún
registro global de ventas o clientes dentro del núcleo. Las implementaciones
en memoria sirven para desarrollo, pruebas y para la capa HTTP de ejemplo.
"""

from typing import Iterable, List, Optional, Protocol
import itertools
import threading

from salesledger.core.config import settings
from salesledger.database.database import VersionedStore
from salesledger.modules.contacts.models import Client
from salesledger.modules.credit_notes.models import CreditNote
from salesledger.modules.inventory.models import Product
from salesledger.modules.sales.models import Sale


# ===== INTERFACES =====

class SaleRepository(Protocol):
    def get(self, sale_id: str) -> Sale: ...
    def list(self, client_id: Optional[str] = None) -> List[Sale]: ...
    def save(self, sale: Sale, expected_version: Optional[int] = None) -> Sale: ...


class CreditNoteRepository(Protocol):
    def get(self, note_id: str) -> CreditNote: ...
    def list(self) -> List[CreditNote]: ...
    def save(self, note: CreditNote, expected_version: Optional[int] = None) -> CreditNote: ...
    def delete(self, note_id: str, expected_version: Optional[int] = None) -> None: ...
    def next_number(self) -> str: ...


class ProductCatalog(Protocol):
    def get_product_by_id(self, product_id: str) -> Product: ...


class ClientDirectory(Protocol):
    def get_client_by_id(self, client_id: str) -> Client: ...


# ===== IMPLEMENTACIONES EN MEMORIA =====

class InMemorySaleRepository:
    def __init__(self):
        self._store: VersionedStore[Sale] = VersionedStore("Venta")

    def get(self, sale_id: str) -> Sale:
        return self._store.get(sale_id)

    def list(self, client_id: Optional[str] = None) -> List[Sale]:
        sales = self._store.all()
        if client_id is not None:
            sales = [s for s in sales if s.client_id == client_id]
        return sorted(sales, key=lambda s: s.date)

    def save(self, sale: Sale, expected_version: Optional[int] = None) -> Sale:
        return self._store.save(sale, expected_version)


class InMemoryCreditNoteRepository:
    def __init__(self, prefix: Optional[str] = None, digits: Optional[int] = None):
        self._store: VersionedStore[CreditNote] = VersionedStore("Nota de crédito")
        self.prefix = prefix if prefix is not None else settings.CREDIT_NOTE_PREFIX
        self.digits = digits or settings.CREDIT_NOTE_NUMBER_DIGITS
        self._sequence = itertools.count(1)
        self._sequence_lock = threading.Lock()

    def get(self, note_id: str) -> CreditNote:
        return self._store.get(note_id)

    def list(self) -> List[CreditNote]:
        return sorted(self._store.all(), key=lambda n: n.fecha_emision)

    def save(self, note: CreditNote, expected_version: Optional[int] = None) -> CreditNote:
        return self._store.save(note, expected_version)

    def delete(self, note_id: str, expected_version: Optional[int] = None) -> None:
        self._store.delete(note_id, expected_version)

    def next_number(self) -> str:
        """Número secuencial formateado, ej. NC-00000001"""
        with self._sequence_lock:
            current = next(self._sequence)
        return f"{self.prefix}{current:0{self.digits}d}"


class InMemoryProductCatalog:
    def __init__(self, products: Iterable[Product] = ()):
        self._store: VersionedStore[Product] = VersionedStore("Producto")
        for product in products:
            self.add(product)

    def add(self, product: Product) -> Product:
        return self._store.put(product.id, product)

    def get_product_by_id(self, product_id: str) -> Product:
        return self._store.get(product_id)


class InMemoryClientDirectory:
    def __init__(self, clients: Iterable[Client] = ()):
        self._store: VersionedStore[Client] = VersionedStore("Cliente")
        for client in clients:
            self.add(client)

    def add(self, client: Client) -> Client:
        return self._store.put(client.id, client)

    def get_client_by_id(self, client_id: str) -> Client:
        return self._store.get(client_id)
