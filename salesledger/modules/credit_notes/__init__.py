"""
Módulo de Notas de Crédito

Notas pendientes que pueden editarse, aplicarse contra su factura original
o cancelarse. La aplicación reduce el saldo de la venta en su libro de
créditos, separado de los pagos.
"""

from .models import CreditNote, CreditNoteItem, CreditNoteType, CreditNoteStatus

__all__ = [
    "CreditNote",
    "CreditNoteItem",
    "CreditNoteType",
    "CreditNoteStatus"
]
