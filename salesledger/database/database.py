"""
Almacén en memoria con control de versiones

No es un motor de persistencia: es el colaborador mínimo que necesita el libro
de ventas para probar el contrato "dada la venta en versión N, guardar la
versión N+1 o fallar". Cada registro expone `id` y `version`; save() hace
compare-and-swap contra la versión almacenada.
"""

from typing import Dict, Generic, List, Optional, TypeVar
import threading
import logging

from salesledger.core.exceptions import ConcurrencyError, NotFoundError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class VersionedStore(Generic[T]):
    """Diccionario id -> registro con escritura condicionada a la versión"""

    def __init__(self, name: str):
        self.name = name
        self._records: Dict[str, T] = {}
        self._lock = threading.Lock()

    def get(self, record_id: str) -> T:
        record = self._records.get(record_id)
        if record is None:
            raise NotFoundError(f"{self.name} {record_id} no encontrado")
        return record

    def find(self, record_id: str) -> Optional[T]:
        return self._records.get(record_id)

    def all(self) -> List[T]:
        return list(self._records.values())

    def save(self, record: T, expected_version: Optional[int] = None) -> T:
        """
        Guardar un registro

        Args:
            record: Valor nuevo a guardar
            expected_version: Versión que quien llama leyó antes de transformar.
                None significa "registro nuevo" si no existe, o
                "versión anterior a la del valor" si ya existe.

        Raises:
            ConcurrencyError: la versión almacenada no es la esperada
        """
        with self._lock:
            current = self._records.get(record.id)
            if current is None:
                if expected_version is not None:
                    raise ConcurrencyError(record.id, expected_version, 0)
            else:
                if expected_version is None:
                    expected_version = record.version - 1
                if current.version != expected_version:
                    logger.warning(
                        f"Version conflict on {self.name} {record.id}: "
                        f"expected {expected_version}, found {current.version}"
                    )
                    raise ConcurrencyError(record.id, expected_version, current.version)
            self._records[record.id] = record
            return record

    def put(self, record_id: str, record: T) -> T:
        """Escritura incondicional, para catálogos de solo lectura"""
        with self._lock:
            self._records[record_id] = record
            return record

    def delete(self, record_id: str, expected_version: Optional[int] = None) -> None:
        """
        Eliminar un registro; con expected_version solo si nadie lo cambió

        Raises:
            NotFoundError: el registro no existe
            ConcurrencyError: la versión almacenada no es la esperada
        """
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                raise NotFoundError(f"{self.name} {record_id} no encontrado")
            if expected_version is not None and current.version != expected_version:
                logger.warning(
                    f"Version conflict deleting {self.name} {record_id}: "
                    f"expected {expected_version}, found {current.version}"
                )
                raise ConcurrencyError(record_id, expected_version, current.version)
            del self._records[record_id]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
