"""
Helper para cálculo de ITBIS y totales de venta

Funciones puras sobre valores primitivos. El redondeo a 2 decimales
(ROUND_HALF_UP) se hace en el punto donde se calcula el impuesto de cada
línea y no al agregar, para que la suma de muchas líneas no acumule deriva.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Union

from pydantic import BaseModel

from salesledger.core.config import settings


CENT = Decimal('0.01')
ZERO = Decimal('0.00')

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    """Convertir a Decimal; los float pasan por str para no heredar el error binario"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round2(value: Number) -> Decimal:
    """Redondear a 2 decimales usando ROUND_HALF_UP (redondeo comercial)"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_subtotal(quantity: Number, unit_price: Number) -> Decimal:
    return round2(to_decimal(quantity) * to_decimal(unit_price))


def itbis(subtotal: Number, rate: Number = None) -> Decimal:
    """
    Calcular el ITBIS de un subtotal

    Args:
        subtotal: Valor base sobre el cual calcular el impuesto
        rate: Tasa (ej. 0.18 para 18%); por defecto settings.ITBIS_RATE

    Returns:
        Valor del impuesto redondeado a 2 decimales
    """
    if rate is None:
        rate = settings.ITBIS_RATE
    return round2(to_decimal(subtotal) * to_decimal(rate))


def line_total(item) -> Decimal:
    """quantity * unit_price + itbis_amount de una línea de venta"""
    return round2(
        to_decimal(item.quantity) * to_decimal(item.unit_price)
        + to_decimal(item.itbis_amount)
    )


class ItbisLine(BaseModel):
    quantity: Decimal
    unit_price: Decimal
    subtotal: Decimal
    itbis: Decimal
    total: Decimal


class SaleTotals(BaseModel):
    subtotal: Decimal
    itbis_total: Decimal
    total: Decimal


def calculate_totals(items: Iterable) -> SaleTotals:
    """
    Calcular totales de una venta a partir de sus líneas

    Cada línea debe exponer quantity, unit_price e itbis_amount. El ITBIS ya
    viene redondeado por línea, aquí solo se suma.
    """
    subtotal = ZERO
    itbis_total = ZERO
    for item in items:
        subtotal += line_subtotal(item.quantity, item.unit_price)
        itbis_total += round2(item.itbis_amount)

    return SaleTotals(
        subtotal=subtotal,
        itbis_total=itbis_total,
        total=subtotal + itbis_total
    )


class ITBISCalculator:
    """Helper para calcular ITBIS según la tasa configurada"""

    def __init__(self, rate: Number = None):
        self.rate = to_decimal(rate if rate is not None else settings.ITBIS_RATE)

    def calculate_line(self, quantity: Number, unit_price: Number) -> ItbisLine:
        """
        Calcular subtotal, ITBIS y total de una línea

        Args:
            quantity: Cantidad
            unit_price: Precio unitario sin impuestos

        Returns:
            ItbisLine con los montos redondeados
        """
        quantity = to_decimal(quantity)
        unit_price = to_decimal(unit_price)
        subtotal = line_subtotal(quantity, unit_price)
        tax_amount = itbis(subtotal, self.rate)

        return ItbisLine(
            quantity=quantity,
            unit_price=unit_price,
            subtotal=subtotal,
            itbis=tax_amount,
            total=subtotal + tax_amount
        )
