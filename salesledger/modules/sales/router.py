"""
Routers FastAPI para el libro de ventas

Endpoints que consume la UI:
- Ventas: creación (contado, crédito, mixta), listado y detalle
- Pagos: registro con control de sobrepago y estado automático
- Anulación de ventas
- Reportes: progreso de pago, totales por método y estado de cuenta

Los errores del libro (LedgerError) se traducen a HTTP en salesledger.main.
"""

from fastapi import APIRouter, status, Query, Path
from typing import Optional

from salesledger.dependencies.ledgerDependencies import (
    sale_service_dependency, credit_note_repository_dependency
)
from salesledger.modules.sales.models import Sale, SaleStatus, SaleType
from salesledger.modules.sales.schemas import (
    SaleCreate, SaleList, SaleFilters, SaleCancel, PaymentCreate,
    PaymentStats, PaymentMethodSummary, AccountStatement
)

sales_router = APIRouter(prefix="/sales", tags=["Sales"])
clients_router = APIRouter(prefix="/clients", tags=["Clients"])


# ===== SALES ENDPOINTS =====

@sales_router.post("", response_model=Sale, status_code=status.HTTP_201_CREATED)
def create_sale(sale_data: SaleCreate, service: sale_service_dependency):
    """
    Crear una venta

    - **type**: cash, credit o mixed; si falta se usa la facturación del cliente
    - **items**: al menos un ítem; el precio y el ITBIS se completan desde inventario
    - **cash_amount / credit_amount**: obligatorios en ventas mixtas y deben sumar el total
    - **advance_payment**: avance opcional en ventas a crédito o mixtas
    """
    return service.create_sale(sale_data)


@sales_router.get("", response_model=SaleList)
def list_sales(
    service: sale_service_dependency,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    client_id: Optional[str] = Query(None, description="Filtrar por cliente"),
    status: Optional[SaleStatus] = Query(None, description="Filtrar por estado"),
    type: Optional[SaleType] = Query(None, description="Filtrar por tipo de venta")
):
    """Listar ventas con filtros opcionales"""
    filters = SaleFilters(client_id=client_id, status=status, type=type)
    return service.list_sales(filters, limit, offset)


@sales_router.get("/reports/payments-by-method", response_model=PaymentMethodSummary)
def get_payments_by_method(
    service: sale_service_dependency,
    client_id: Optional[str] = Query(None, description="Limitar a un cliente")
):
    """Totales cobrados por método de pago (no incluye avances ni notas de crédito)"""
    return service.get_payments_by_method(client_id)


@sales_router.get("/{sale_id}", response_model=Sale)
def get_sale(service: sale_service_dependency, sale_id: str = Path(...)):
    return service.get_sale(sale_id)


@sales_router.post("/{sale_id}/payments", response_model=Sale, status_code=status.HTTP_201_CREATED)
def add_payment(
    payment_data: PaymentCreate,
    service: sale_service_dependency,
    sale_id: str = Path(...)
):
    """
    Registrar un pago

    El monto debe ser positivo y no exceder el saldo pendiente. Si se envía
    expected_version y la venta cambió mientras tanto, responde 409.
    """
    return service.add_payment(sale_id, payment_data)


@sales_router.post("/{sale_id}/cancel", response_model=Sale)
def cancel_sale(
    service: sale_service_dependency,
    sale_id: str = Path(...),
    cancel_data: Optional[SaleCancel] = None
):
    """Anular una venta; los pagos registrados se conservan para auditoría"""
    return service.cancel_sale(sale_id, cancel_data)


@sales_router.get("/{sale_id}/payment-stats", response_model=PaymentStats)
def get_payment_stats(service: sale_service_dependency, sale_id: str = Path(...)):
    return service.get_payment_stats(sale_id)


# ===== CLIENTS ENDPOINTS =====

@clients_router.get("/{client_id}/account-statement", response_model=AccountStatement)
def get_account_statement(
    service: sale_service_dependency,
    credit_notes: credit_note_repository_dependency,
    client_id: str = Path(...)
):
    """
    Estado de cuenta del cliente

    Ventas como débitos; cobros iniciales, pagos y notas de crédito aplicadas
    como créditos, con saldo corrido.
    """
    return service.get_account_statement(client_id, credit_notes)
