"""
Errores tipados del libro de ventas

Todas las operaciones del núcleo validan por completo antes de construir un
valor nuevo; si algo falla se lanza uno de estos errores y no queda ninguna
mutación parcial. La capa que llama (router, UI) decide si reintenta o
notifica al usuario.
"""


class LedgerError(Exception):
    """Error base del libro de ventas"""

    code = "ledger_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    """Datos de entrada mal formados (ítems vacíos, división mixta incorrecta, ...)"""

    code = "validation_error"


class InvalidAmountError(LedgerError):
    """Monto de pago no positivo"""

    code = "invalid_amount"


class OverpaymentError(LedgerError):
    """El monto excede el saldo pendiente de la venta"""

    code = "overpayment"

    def __init__(self, amount, remaining_balance):
        super().__init__(
            f"El pago de ${amount} excede el saldo pendiente de ${remaining_balance}"
        )
        self.amount = amount
        self.remaining_balance = remaining_balance


class InvalidStateError(LedgerError):
    """Transición de estado no permitida"""

    code = "invalid_state"


class NotFoundError(LedgerError):
    """El recurso solicitado no existe en el repositorio"""

    code = "not_found"


class ConcurrencyError(LedgerError):
    """Escritura con una versión obsoleta (compare-and-swap fallido)"""

    code = "version_conflict"

    def __init__(self, entity_id: str, expected_version: int, current_version: int):
        super().__init__(
            f"El registro {entity_id} cambió: versión esperada {expected_version}, "
            f"versión actual {current_version}"
        )
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.current_version = current_version
