"""
Módulo de Contactos

Contrato de solo lectura del directorio de clientes que consulta el libro
de ventas (forma de facturación y tipo de NCF).
"""

from .models import Client, BillingType, NcfType, ClientStatus, default_sale_type

__all__ = [
    "Client",
    "BillingType",
    "NcfType",
    "ClientStatus",
    "default_sale_type"
]
