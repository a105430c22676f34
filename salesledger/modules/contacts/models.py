"""
Contrato del colaborador de Clientes

El libro de ventas no es dueño de los clientes; solo los consulta para
mostrar nombres y para proponer el tipo de venta por defecto según la
forma de facturación preferida del cliente.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from enum import Enum

from salesledger.modules.sales.models import SaleType


# ===== ENUMS =====

class BillingType(str, Enum):
    """Forma de facturación preferida"""
    CONTADO = "contado"
    CREDITO = "credito"
    MIXTO = "mixto"


class NcfType(str, Enum):
    """Tipo de comprobante fiscal (NCF) que se asigna al cliente"""
    CONSUMIDOR_FINAL = "consumidor_final"    # 02
    CREDITO_FISCAL = "credito_fiscal"        # 01
    GUBERNAMENTAL = "gubernamental"          # 15
    REGIMEN_ESPECIAL = "regimen_especial"    # 14


class ClientStatus(str, Enum):
    ACTIVO = "activo"
    INACTIVO = "inactivo"


# ===== MODELOS =====

class Client(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = Field(..., min_length=1, max_length=200)
    rnc: str = Field(..., description="RNC o cédula")
    phone: Optional[str] = None
    email: Optional[str] = None
    billing_type: BillingType = BillingType.CONTADO
    ncf_type: NcfType = NcfType.CONSUMIDOR_FINAL
    status: ClientStatus = ClientStatus.ACTIVO


_SALE_TYPE_BY_BILLING = {
    BillingType.CONTADO: SaleType.CASH,
    BillingType.CREDITO: SaleType.CREDIT,
    BillingType.MIXTO: SaleType.MIXED,
}


def default_sale_type(client: Client) -> SaleType:
    """Tipo de venta sugerido según la forma de facturación del cliente"""
    return _SALE_TYPE_BY_BILLING[client.billing_type]
