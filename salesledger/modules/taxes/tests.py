"""
Tests para el cálculo de ITBIS y totales

- Redondeo comercial a 2 decimales
- Redondeo por línea sin deriva al sumar muchas líneas
- Conversión de float sin error binario
"""

import pytest
from decimal import Decimal

from salesledger.modules.sales.schemas import SaleItemCreate
from salesledger.modules.taxes.calculator import (
    ITBISCalculator, calculate_totals, itbis, line_subtotal, line_total, round2, to_decimal
)


class TestRounding:
    """Tests para round2 y to_decimal"""

    def test_round_half_up(self):
        assert round2(Decimal("2.345")) == Decimal("2.35")
        assert round2(Decimal("2.344")) == Decimal("2.34")
        assert round2(Decimal("-2.345")) == Decimal("-2.35")

    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")
        assert round2(0.1 + 0.2) == Decimal("0.30")

    def test_int_and_str(self):
        assert to_decimal(5) == Decimal("5")
        assert to_decimal("19.99") == Decimal("19.99")


class TestItbis:
    """Tests para el impuesto por línea"""

    def test_default_rate_is_18_percent(self):
        assert itbis(Decimal("200")) == Decimal("36.00")
        assert itbis(Decimal("127.12")) == Decimal("22.88")

    def test_custom_rate(self):
        assert itbis(Decimal("100"), Decimal("0.16")) == Decimal("16.00")

    def test_line_subtotal_rounds(self):
        assert line_subtotal(Decimal("3"), Decimal("0.333")) == Decimal("1.00")

    def test_line_total(self):
        item = SaleItemCreate(
            product_id="p1", quantity=Decimal("2"), unit_price=Decimal("100"),
            itbis_amount=Decimal("36")
        )
        assert line_total(item) == Decimal("236.00")

    def test_calculator_line(self):
        line = ITBISCalculator().calculate_line(Decimal("1"), Decimal("127.12"))

        assert line.subtotal == Decimal("127.12")
        assert line.itbis == Decimal("22.88")
        assert line.total == Decimal("150.00")

    def test_calculator_custom_rate(self):
        line = ITBISCalculator(rate="0.10").calculate_line(2, "50")
        assert line.itbis == Decimal("10.00")
        assert line.total == Decimal("110.00")


class TestTotals:
    """Tests para la suma de líneas"""

    def test_many_small_lines_do_not_drift(self):
        items = [
            SaleItemCreate(
                product_id=f"p{i}", quantity=Decimal("1"), unit_price=Decimal("0.1"),
                itbis_amount=itbis(Decimal("0.1"))
            )
            for i in range(100)
        ]

        totals = calculate_totals(items)

        assert totals.subtotal == Decimal("10.00")
        assert totals.itbis_total == Decimal("2.00")
        assert totals.total == Decimal("12.00")

    def test_totals_are_sum_of_lines(self):
        items = [
            SaleItemCreate(product_id="a", quantity=2, unit_price="100", itbis_amount="36"),
            SaleItemCreate(product_id="b", quantity=3, unit_price="19.99", itbis_amount="10.79"),
        ]

        totals = calculate_totals(items)

        assert totals.subtotal == Decimal("259.97")
        assert totals.itbis_total == Decimal("46.79")
        assert totals.total == sum((line_total(item) for item in items), Decimal("0"))

    @pytest.mark.parametrize("count", [0, 1, 7])
    def test_empty_and_small_sets(self, count):
        items = [
            SaleItemCreate(product_id="x", quantity=1, unit_price="10", itbis_amount="1.80")
            for _ in range(count)
        ]
        assert calculate_totals(items).total == Decimal("11.80") * count
