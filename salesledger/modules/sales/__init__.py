"""
Módulo de Ventas - Sales Ledger

Libro de ventas con ITBIS dominicano:
- Ventas de contado, a crédito y mixtas
- Avances y pagos parciales con control de sobrepago
- Estado derivado (pending, partial, completed, cancelled)
- Estado de cuenta del cliente y reportes de cobro

Componentes:
- models.py: valores inmutables (Sale, SaleItem, Payment, CreditApplication)
- ledger.py: transformaciones puras del libro
- statement.py: reportes derivados
- schemas.py: esquemas de entrada y salida
- service.py: orquestación con repositorios inyectados
- router.py: endpoints REST
- tests.py: pruebas unitarias y de integración
"""

from .models import Sale, SaleItem, SaleType, SaleStatus, Payment, PaymentMethod, CreditApplication

__all__ = [
    "Sale",
    "SaleItem",
    "SaleType",
    "SaleStatus",
    "Payment",
    "PaymentMethod",
    "CreditApplication"
]
