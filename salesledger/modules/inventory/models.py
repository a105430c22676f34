"""
Contrato del colaborador de Inventario

Solo lectura: precios para prellenar ítems y existencias para validar una
venta antes de registrarla. El descuento de stock lo hace quien llama, con
su propio movimiento de inventario.
"""

from pydantic import BaseModel, ConfigDict
from decimal import Decimal
from typing import Dict, Iterable

from salesledger.common.utils import field_value
from salesledger.core.exceptions import ValidationError, NotFoundError
from salesledger.modules.taxes.calculator import to_decimal


class Product(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    nombre: str
    precio_venta: Decimal
    stock: Decimal = Decimal('0')


def check_stock(items: Iterable, catalog) -> None:
    """
    Validar que haya existencias suficientes para todos los ítems

    Las cantidades del mismo producto en varias líneas se suman antes de
    comparar con el stock.

    Raises:
        ValidationError: producto inexistente o stock insuficiente
    """
    requested: Dict[str, Decimal] = {}
    for item in items:
        product_id = str(field_value(item, "product_id"))
        requested[product_id] = requested.get(product_id, Decimal('0')) + to_decimal(
            field_value(item, "quantity")
        )

    shortages = []
    for product_id, quantity in requested.items():
        try:
            product = catalog.get_product_by_id(product_id)
        except NotFoundError:
            raise ValidationError(f"El producto {product_id} no existe")
        if product.stock < quantity:
            shortages.append(
                f"{product.nombre} (disponible: {product.stock}, solicitado: {quantity})"
            )

    if shortages:
        raise ValidationError(
            "Uno o más productos no tienen suficiente stock disponible: "
            + ", ".join(shortages)
        )
