"""
Tests para el libro de ventas

Cubren:
- Creación de ventas de contado, crédito y mixtas
- Avances, pagos parciales y sobrepagos
- Derivación de estado y anulación
- Servicio con repositorios en memoria y compare-and-swap
- Reportes (progreso de pago, totales por método, estado de cuenta)
- Endpoints REST a través de TestClient
"""

import itertools
import pytest
from fastapi.testclient import TestClient
from datetime import date, datetime, timezone
from decimal import Decimal

from salesledger.core.exceptions import (
    ValidationError, InvalidAmountError, OverpaymentError, InvalidStateError,
    NotFoundError, ConcurrencyError
)
from salesledger.database.repositories import (
    InMemorySaleRepository, InMemoryCreditNoteRepository,
    InMemoryProductCatalog, InMemoryClientDirectory
)
from salesledger.dependencies.ledgerDependencies import (
    get_sale_repository, get_credit_note_repository, get_product_catalog,
    get_client_directory, get_id_generator, get_clock
)
from salesledger.main import app
from salesledger.modules.contacts.models import Client, BillingType
from salesledger.modules.inventory.models import Product
from salesledger.modules.sales import ledger
from salesledger.modules.sales.ledger import derive_status
from salesledger.modules.sales.models import SaleType, SaleStatus, PaymentMethod
from salesledger.modules.sales.schemas import (
    SaleCreate, SaleItemCreate, SaleFilters, SaleCancel, PaymentCreate
)
from salesledger.modules.sales.service import SaleService
from salesledger.modules.sales.statement import (
    payment_stats, payments_by_method, build_account_statement
)


client = TestClient(app)

FIXED_NOW = datetime(2024, 3, 15, 10, 30, tzinfo=timezone.utc)


# ===== FIXTURES =====

@pytest.fixture
def id_generator():
    """IDs deterministas: id-1, id-2, ..."""
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def cash_items():
    """2 unidades a 100 con ITBIS 36 -> total 236"""
    return [{"product_id": "prod-1", "quantity": 2, "unit_price": Decimal("100"),
             "itbis_amount": Decimal("36")}]


@pytest.fixture
def credit_items():
    """Una línea de 1000 exenta -> total 1000"""
    return [{"product_id": "prod-2", "quantity": 1, "unit_price": Decimal("1000"),
             "itbis_amount": Decimal("0")}]


@pytest.fixture
def credit_sale(credit_items, id_generator):
    return ledger.create_sale(
        "client-1", credit_items, SaleType.CREDIT,
        sale_date=date(2024, 3, 1), id_generator=id_generator
    )


@pytest.fixture
def sale_repository():
    return InMemorySaleRepository()


@pytest.fixture
def catalog():
    return InMemoryProductCatalog([
        Product(id="prod-1", nombre="Arroz 25 lb", precio_venta=Decimal("100"), stock=Decimal("50")),
        Product(id="prod-2", nombre="Nevera", precio_venta=Decimal("1000"), stock=Decimal("3")),
    ])


@pytest.fixture
def clients():
    return InMemoryClientDirectory([
        Client(id="client-1", name="Colmado La Esquina", rnc="101234567",
               billing_type=BillingType.CREDITO),
        Client(id="client-2", name="Juan Pérez", rnc="00112345678"),
    ])


@pytest.fixture
def sale_service(sale_repository, clients, catalog, id_generator):
    return SaleService(
        sale_repository, clients, catalog,
        id_generator=id_generator, clock=lambda: FIXED_NOW
    )


# ===== TESTS DE CREACIÓN =====

class TestCreateSale:
    """Tests para create_sale"""

    def test_cash_sale_is_completed(self, cash_items, id_generator):
        sale = ledger.create_sale("client-1", cash_items, SaleType.CASH, id_generator=id_generator)

        assert sale.subtotal == Decimal("200.00")
        assert sale.itbis_total == Decimal("36.00")
        assert sale.total == Decimal("236.00")
        assert sale.total_paid == Decimal("236.00")
        assert sale.remaining_balance == Decimal("0.00")
        assert sale.status == SaleStatus.COMPLETED
        assert sale.cash_amount == Decimal("236.00")
        assert sale.payments == ()
        assert sale.version == 1

    def test_cash_sale_two_lines(self, id_generator):
        """Dos líneas de 1 a 100 con ITBIS 18 cada una -> 236"""
        items = [
            {"product_id": "prod-1", "quantity": 1, "unit_price": "100", "itbis_amount": "18"},
            {"product_id": "prod-3", "quantity": 1, "unit_price": "100", "itbis_amount": "18"},
        ]
        sale = ledger.create_sale("client-1", items, SaleType.CASH, id_generator=id_generator)

        assert len(sale.items) == 2
        assert sale.subtotal == Decimal("200.00")
        assert sale.itbis_total == Decimal("36.00")
        assert sale.total == Decimal("236.00")
        assert sale.remaining_balance == Decimal("0.00")
        assert sale.status == SaleStatus.COMPLETED

    def test_credit_sale_is_pending(self, credit_sale):
        assert credit_sale.total == Decimal("1000.00")
        assert credit_sale.total_paid == Decimal("0.00")
        assert credit_sale.remaining_balance == Decimal("1000.00")
        assert credit_sale.status == SaleStatus.PENDING
        assert credit_sale.credit_amount == Decimal("1000.00")

    def test_ids_come_from_generator(self, cash_items, id_generator):
        sale = ledger.create_sale("client-1", cash_items, SaleType.CASH, id_generator=id_generator)

        assert sale.items[0].id == "id-1"
        assert sale.id == "id-2"

    def test_itbis_is_computed_when_missing(self, id_generator):
        items = [{"product_id": "p", "quantity": 1, "unit_price": "127.12"}]
        sale = ledger.create_sale("c", items, SaleType.CASH, id_generator=id_generator)

        assert sale.itbis_total == Decimal("22.88")
        assert sale.total == Decimal("150.00")

    def test_many_lines_no_drift(self, id_generator):
        items = [{"product_id": "p", "quantity": 1, "unit_price": 0.1} for _ in range(100)]
        sale = ledger.create_sale("c", items, SaleType.CREDIT, id_generator=id_generator)

        assert sale.subtotal == Decimal("10.00")
        assert sale.itbis_total == Decimal("2.00")
        assert sale.total == Decimal("12.00")

    def test_empty_items_rejected(self):
        with pytest.raises(ValidationError):
            ledger.create_sale("c", [], SaleType.CASH)

    @pytest.mark.parametrize("item", [
        {"product_id": "p", "quantity": 0, "unit_price": 10},
        {"product_id": "p", "quantity": -1, "unit_price": 10},
        {"product_id": "p", "quantity": 1, "unit_price": -10},
        {"product_id": "p", "quantity": 1},
        {"product_id": "p", "unit_price": 10},
        {"product_id": "p", "quantity": 1, "unit_price": 10, "itbis_amount": -1},
    ])
    def test_invalid_items_rejected(self, item):
        with pytest.raises(ValidationError):
            ledger.create_sale("c", [item], SaleType.CASH)

    def test_accepts_schema_items(self, id_generator):
        items = [SaleItemCreate(product_id="p", quantity=2, unit_price="100", itbis_amount="36")]
        sale = ledger.create_sale("c", items, SaleType.CASH, id_generator=id_generator)

        assert sale.total == Decimal("236.00")


class TestMixedSale:
    """Tests para ventas mixtas"""

    def test_split_matching_total(self, credit_items):
        sale = ledger.create_sale(
            "c", credit_items, SaleType.MIXED,
            cash_amount=Decimal("300"), credit_amount=Decimal("700")
        )

        assert sale.cash_amount == Decimal("300.00")
        assert sale.credit_amount == Decimal("700.00")
        assert sale.total_paid == Decimal("0.00")
        assert sale.status == SaleStatus.PENDING

    def test_split_not_matching_total(self, credit_items):
        with pytest.raises(ValidationError):
            ledger.create_sale(
                "c", credit_items, SaleType.MIXED,
                cash_amount=Decimal("300"), credit_amount=Decimal("600")
            )

    def test_split_within_tolerance(self, credit_items):
        sale = ledger.create_sale(
            "c", credit_items, SaleType.MIXED,
            cash_amount=Decimal("300.01"), credit_amount=Decimal("700")
        )
        assert sale.total == Decimal("1000.00")

    def test_split_outside_tolerance(self, credit_items):
        with pytest.raises(ValidationError):
            ledger.create_sale(
                "c", credit_items, SaleType.MIXED,
                cash_amount=Decimal("300.02"), credit_amount=Decimal("700")
            )

    def test_split_required(self, credit_items):
        with pytest.raises(ValidationError):
            ledger.create_sale("c", credit_items, SaleType.MIXED, cash_amount=Decimal("300"))

    def test_negative_split_rejected(self, credit_items):
        with pytest.raises(ValidationError):
            ledger.create_sale(
                "c", credit_items, SaleType.MIXED,
                cash_amount=Decimal("-100"), credit_amount=Decimal("1100")
            )

    def test_mixed_with_advance(self, credit_items):
        sale = ledger.create_sale(
            "c", credit_items, SaleType.MIXED,
            cash_amount=Decimal("300"), credit_amount=Decimal("700"),
            advance_payment=Decimal("300")
        )

        assert sale.total_paid == Decimal("300.00")
        assert sale.remaining_balance == Decimal("700.00")
        assert sale.status == SaleStatus.PARTIAL


class TestAdvancePayment:
    """Tests para el avance en ventas a crédito"""

    def test_credit_sale_with_advance(self, credit_items):
        sale = ledger.create_sale("c", credit_items, SaleType.CREDIT, advance_payment=Decimal("250"))

        assert sale.advance_payment == Decimal("250.00")
        assert sale.payments_total == Decimal("250.00")
        assert sale.remaining_balance == Decimal("750.00")
        assert sale.status == SaleStatus.PARTIAL

    def test_advance_equal_to_total(self, credit_items):
        sale = ledger.create_sale("c", credit_items, SaleType.CREDIT, advance_payment=Decimal("1000"))

        assert sale.remaining_balance == Decimal("0.00")
        assert sale.status == SaleStatus.COMPLETED

    def test_advance_greater_than_total(self, credit_items):
        with pytest.raises(ValidationError):
            ledger.create_sale("c", credit_items, SaleType.CREDIT, advance_payment=Decimal("1000.01"))

    def test_negative_advance(self, credit_items):
        with pytest.raises(ValidationError):
            ledger.create_sale("c", credit_items, SaleType.CREDIT, advance_payment=Decimal("-1"))

    def test_cash_sale_rejects_advance(self, cash_items):
        with pytest.raises(ValidationError):
            ledger.create_sale("c", cash_items, SaleType.CASH, advance_payment=Decimal("10"))

    def test_advance_is_not_a_payment(self, credit_items):
        sale = ledger.create_sale("c", credit_items, SaleType.CREDIT, advance_payment=Decimal("250"))

        assert sale.payments == ()
        assert payments_by_method([sale]).total == Decimal("0.00")


# ===== TESTS DE PAGOS =====

class TestAddPayment:
    """Tests para add_payment"""

    def test_partial_payment(self, credit_sale):
        sale = ledger.add_payment(credit_sale, Decimal("400"), PaymentMethod.TRANSFERENCIA)

        assert sale.total_paid == Decimal("400.00")
        assert sale.remaining_balance == Decimal("600.00")
        assert sale.status == SaleStatus.PARTIAL
        assert sale.payments[0].method == PaymentMethod.TRANSFERENCIA
        assert sale.version == credit_sale.version + 1

    def test_full_payment_completes(self, credit_sale):
        sale = ledger.add_payment(credit_sale, Decimal("400"))
        sale = ledger.add_payment(sale, Decimal("600"))

        assert sale.remaining_balance == Decimal("0.00")
        assert sale.status == SaleStatus.COMPLETED

    def test_overpayment_after_completion(self, credit_sale):
        sale = ledger.add_payment(credit_sale, Decimal("1000"))

        with pytest.raises(OverpaymentError) as exc_info:
            ledger.add_payment(sale, Decimal("0.01"))

        assert exc_info.value.remaining_balance == Decimal("0.00")

    def test_overpayment_rejected(self, credit_sale):
        with pytest.raises(OverpaymentError):
            ledger.add_payment(credit_sale, Decimal("1000.01"))

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), Decimal("0.004")])
    def test_non_positive_amount(self, credit_sale, amount):
        with pytest.raises(InvalidAmountError):
            ledger.add_payment(credit_sale, amount)

    def test_sub_cent_excess_is_overpayment(self, credit_sale):
        sale = ledger.add_payment(credit_sale, Decimal("400"))

        with pytest.raises(OverpaymentError) as exc_info:
            ledger.add_payment(sale, Decimal("600.004"))

        assert exc_info.value.amount == Decimal("600.004")
        assert sale.remaining_balance == Decimal("600.00")
        assert len(sale.payments) == 1

    def test_more_than_two_decimals_rejected(self, credit_sale):
        with pytest.raises(InvalidAmountError):
            ledger.add_payment(credit_sale, Decimal("100.005"))

    def test_float_amount_accepted(self, credit_sale):
        sale = ledger.add_payment(credit_sale, 0.1)

        assert sale.payments[0].amount == Decimal("0.10")
        assert sale.remaining_balance == Decimal("999.90")

    def test_input_sale_is_not_mutated(self, credit_sale):
        ledger.add_payment(credit_sale, Decimal("400"))

        assert credit_sale.payments == ()
        assert credit_sale.remaining_balance == Decimal("1000.00")

    def test_balance_invariant_holds(self, credit_sale):
        sale = credit_sale
        for amount in ("100", "0.10", "250.55", "49.35"):
            sale = ledger.add_payment(sale, Decimal(amount))
            assert sale.remaining_balance == sale.total - sale.total_paid
            assert sale.total_paid <= sale.total

        assert sale.total_paid == Decimal("400.00")

    def test_payment_date_and_reference(self, credit_sale):
        sale = ledger.add_payment(
            credit_sale, Decimal("50"), PaymentMethod.CHEQUE,
            payment_date=date(2024, 3, 5), reference="CHK-001"
        )

        payment = sale.payments[0]
        assert payment.date == date(2024, 3, 5)
        assert payment.reference == "CHK-001"

    def test_retry_registers_twice(self, credit_sale):
        sale = ledger.add_payment(credit_sale, Decimal("100"))
        sale = ledger.add_payment(sale, Decimal("100"))

        assert len(sale.payments) == 2
        assert sale.payments[0].id != sale.payments[1].id


# ===== TESTS DE ESTADO =====

class TestDeriveStatus:
    """Tests para derive_status"""

    @pytest.mark.parametrize("sale_type,total,paid,expected", [
        (SaleType.CASH, "100", "0", SaleStatus.COMPLETED),
        (SaleType.CREDIT, "100", "0", SaleStatus.PENDING),
        (SaleType.CREDIT, "100", "40", SaleStatus.PARTIAL),
        (SaleType.CREDIT, "100", "100", SaleStatus.COMPLETED),
        (SaleType.MIXED, "100", "0", SaleStatus.PENDING),
        (SaleType.MIXED, "100", "99.99", SaleStatus.PARTIAL),
        (SaleType.CREDIT, "0", "0", SaleStatus.COMPLETED),
    ])
    def test_status_table(self, sale_type, total, paid, expected):
        assert derive_status(sale_type, Decimal(total), Decimal(paid)) == expected

    def test_cancelled_wins(self):
        assert derive_status(SaleType.CASH, Decimal("100"), Decimal("100"), True) == SaleStatus.CANCELLED

    def test_deterministic(self):
        args = (SaleType.CREDIT, Decimal("100"), Decimal("40"))
        assert derive_status(*args) == derive_status(*args)


class TestCancelSale:
    """Tests para cancel_sale"""

    def test_cancel_keeps_payments(self, credit_sale):
        sale = ledger.add_payment(credit_sale, Decimal("100"))
        cancelled = ledger.cancel_sale(sale, "Cliente desistió")

        assert cancelled.status == SaleStatus.CANCELLED
        assert cancelled.cancelled is True
        assert cancelled.cancellation_reason == "Cliente desistió"
        assert len(cancelled.payments) == 1
        assert cancelled.remaining_balance == Decimal("900.00")

    def test_cancel_twice(self, credit_sale):
        cancelled = ledger.cancel_sale(credit_sale)

        with pytest.raises(InvalidStateError):
            ledger.cancel_sale(cancelled)

    def test_no_payments_after_cancel(self, credit_sale):
        cancelled = ledger.cancel_sale(credit_sale)

        with pytest.raises(InvalidStateError):
            ledger.add_payment(cancelled, Decimal("10"))

    def test_no_credit_after_cancel(self, credit_sale):
        cancelled = ledger.cancel_sale(credit_sale)

        with pytest.raises(InvalidStateError):
            ledger.apply_credit(cancelled, "nc-1", "NC-00000001", Decimal("10"))


class TestApplyCredit:
    """Tests para apply_credit sobre la venta"""

    def test_credit_reduces_balance(self, credit_sale):
        sale = ledger.add_payment(credit_sale, Decimal("400"))
        sale = ledger.apply_credit(sale, "nc-1", "NC-00000001", Decimal("150"))

        assert sale.credited_total == Decimal("150.00")
        assert sale.payments_total == Decimal("400.00")
        assert sale.total_paid == Decimal("550.00")
        assert sale.remaining_balance == Decimal("450.00")
        assert len(sale.payments) == 1

        with pytest.raises(OverpaymentError):
            ledger.add_payment(sale, Decimal("450.01"))
        assert ledger.add_payment(sale, Decimal("450")).status == SaleStatus.COMPLETED

    def test_same_note_twice(self, credit_sale):
        sale = ledger.apply_credit(credit_sale, "nc-1", "NC-00000001", Decimal("100"))

        with pytest.raises(InvalidStateError):
            ledger.apply_credit(sale, "nc-1", "NC-00000001", Decimal("100"))

    def test_credit_exceeding_balance(self, credit_sale):
        with pytest.raises(OverpaymentError):
            ledger.apply_credit(credit_sale, "nc-1", "NC-00000001", Decimal("1000.01"))

    def test_credit_sub_cent_excess(self, credit_sale):
        with pytest.raises(OverpaymentError):
            ledger.apply_credit(credit_sale, "nc-1", "NC-00000001", Decimal("1000.004"))


# ===== TESTS DE REPORTES =====

class TestReports:
    """Tests para progreso de pago, totales por método y estado de cuenta"""

    def test_payment_stats(self, credit_sale):
        stats = payment_stats(ledger.add_payment(credit_sale, Decimal("400")))

        assert stats.total_amount == Decimal("1000.00")
        assert stats.total_paid == Decimal("400.00")
        assert stats.remaining_amount == Decimal("600.00")
        assert stats.payment_percentage == 40

    def test_payment_stats_rounds_half_up(self, credit_sale):
        stats = payment_stats(ledger.add_payment(credit_sale, Decimal("5")))
        assert stats.payment_percentage == 1

    def test_payment_stats_zero_total(self, id_generator):
        sale = ledger.create_sale(
            "c", [{"product_id": "p", "quantity": 1, "unit_price": 0}], SaleType.CREDIT
        )
        assert payment_stats(sale).payment_percentage == 100

    def test_payments_by_method(self, credit_sale):
        sale = ledger.add_payment(credit_sale, Decimal("100"), PaymentMethod.EFECTIVO)
        sale = ledger.add_payment(sale, Decimal("200"), PaymentMethod.TARJETA)
        sale = ledger.add_payment(sale, Decimal("50"), PaymentMethod.EFECTIVO)
        sale = ledger.apply_credit(sale, "nc-1", "NC-00000001", Decimal("100"))

        summary = payments_by_method([sale])

        assert summary.totals[PaymentMethod.EFECTIVO] == Decimal("150.00")
        assert summary.totals[PaymentMethod.TARJETA] == Decimal("200.00")
        assert summary.totals[PaymentMethod.CHEQUE] == Decimal("0.00")
        assert summary.total == Decimal("350.00")
        assert summary.payments_count == 3

    def test_account_statement(self, cash_items, credit_items, id_generator):
        cash_sale = ledger.create_sale(
            "client-1", cash_items, SaleType.CASH,
            sale_date=date(2024, 3, 1), id_generator=id_generator
        )
        credit_sale = ledger.create_sale(
            "client-1", credit_items, SaleType.CREDIT, advance_payment=Decimal("100"),
            sale_date=date(2024, 3, 2), id_generator=id_generator
        )
        credit_sale = ledger.add_payment(
            credit_sale, Decimal("300"), payment_date=date(2024, 3, 3), id_generator=id_generator
        )
        other_client = ledger.create_sale(
            "client-2", credit_items, SaleType.CREDIT, id_generator=id_generator
        )
        cancelled = ledger.cancel_sale(ledger.create_sale(
            "client-1", credit_items, SaleType.CREDIT, id_generator=id_generator
        ))

        statement = build_account_statement(
            "client-1", [credit_sale, cash_sale, other_client, cancelled]
        )

        assert [line.amount for line in statement.lines] == [
            Decimal("236.00"), Decimal("236.00"), Decimal("1000.00"),
            Decimal("100.00"), Decimal("300.00")
        ]
        assert [line.balance for line in statement.lines] == [
            Decimal("236.00"), Decimal("0.00"), Decimal("1000.00"),
            Decimal("900.00"), Decimal("600.00")
        ]
        assert statement.lines[1].id == f"{cash_sale.id}-contado"
        assert statement.lines[3].id == f"{credit_sale.id}-avance"
        assert statement.total_debits == Decimal("1236.00")
        assert statement.total_credits == Decimal("636.00")
        assert statement.balance == credit_sale.remaining_balance + cash_sale.remaining_balance


# ===== TESTS DEL SERVICIO =====

class TestSaleService:
    """Tests para SaleService con colaboradores en memoria"""

    def test_create_and_get(self, sale_service):
        sale = sale_service.create_sale(SaleCreate(
            client_id="client-2",
            type=SaleType.CASH,
            items=[SaleItemCreate(product_id="prod-1", quantity=2, itbis_amount="36")]
        ))

        assert sale.total == Decimal("236.00")
        assert sale.date == FIXED_NOW.date()
        assert sale_service.get_sale(sale.id) == sale

    def test_price_and_itbis_from_catalog(self, sale_service):
        sale = sale_service.create_sale(SaleCreate(
            client_id="client-2", type=SaleType.CASH,
            items=[SaleItemCreate(product_id="prod-1", quantity=2)]
        ))

        assert sale.items[0].unit_price == Decimal("100")
        assert sale.itbis_total == Decimal("36.00")

    def test_type_defaults_to_client_billing(self, sale_service):
        sale = sale_service.create_sale(SaleCreate(
            client_id="client-1",
            items=[SaleItemCreate(product_id="prod-2", quantity=1, unit_price="1000", itbis_amount="0")]
        ))

        assert sale.type == SaleType.CREDIT
        assert sale.status == SaleStatus.PENDING

    def test_unknown_client_without_type(self, sale_service):
        with pytest.raises(ValidationError):
            sale_service.create_sale(SaleCreate(
                client_id="nobody",
                items=[SaleItemCreate(product_id="prod-1", quantity=1)]
            ))

    def test_insufficient_stock(self, sale_service, sale_repository):
        with pytest.raises(ValidationError, match="stock"):
            sale_service.create_sale(SaleCreate(
                client_id="client-2", type=SaleType.CASH,
                items=[
                    SaleItemCreate(product_id="prod-2", quantity=2),
                    SaleItemCreate(product_id="prod-2", quantity=2),
                ]
            ))

        assert sale_repository.list() == []

    def test_unknown_product(self, sale_service):
        with pytest.raises(ValidationError):
            sale_service.create_sale(SaleCreate(
                client_id="client-2", type=SaleType.CASH,
                items=[SaleItemCreate(product_id="missing", quantity=1)]
            ))

    def test_without_collaborators(self, sale_repository, id_generator):
        service = SaleService(sale_repository, id_generator=id_generator)
        sale = service.create_sale(SaleCreate(
            client_id="c", type=SaleType.CREDIT,
            items=[SaleItemCreate(product_id="anything", quantity=1, unit_price="50")]
        ))

        assert sale.total == Decimal("59.00")

    def test_add_payment_persists(self, sale_service):
        sale = sale_service.create_sale(SaleCreate(
            client_id="client-1",
            items=[SaleItemCreate(product_id="prod-2", quantity=1, itbis_amount="0")]
        ))

        updated = sale_service.add_payment(sale.id, PaymentCreate(amount=Decimal("400")))

        assert updated.version == 2
        assert sale_service.get_sale(sale.id).remaining_balance == Decimal("600.00")
        assert updated.payments[0].date == FIXED_NOW.date()

    def test_stale_version_rejected(self, sale_service):
        sale = sale_service.create_sale(SaleCreate(
            client_id="client-1",
            items=[SaleItemCreate(product_id="prod-2", quantity=1, itbis_amount="0")]
        ))

        sale_service.add_payment(sale.id, PaymentCreate(amount=Decimal("400"), expected_version=1))
        with pytest.raises(ConcurrencyError):
            sale_service.add_payment(sale.id, PaymentCreate(amount=Decimal("400"), expected_version=1))

        assert sale_service.get_sale(sale.id).total_paid == Decimal("400.00")

    def test_missing_sale(self, sale_service):
        with pytest.raises(NotFoundError):
            sale_service.add_payment("missing", PaymentCreate(amount=Decimal("1")))

    def test_cancel(self, sale_service):
        sale = sale_service.create_sale(SaleCreate(
            client_id="client-1",
            items=[SaleItemCreate(product_id="prod-2", quantity=1)]
        ))

        cancelled = sale_service.cancel_sale(sale.id, SaleCancel(reason="Error de digitación"))

        assert cancelled.status == SaleStatus.CANCELLED
        with pytest.raises(InvalidStateError):
            sale_service.cancel_sale(sale.id)

    def test_list_filters_and_pagination(self, sale_service):
        for client_id in ("client-1", "client-1", "client-2"):
            sale_service.create_sale(SaleCreate(
                client_id=client_id,
                type=SaleType.CREDIT,
                items=[SaleItemCreate(product_id="prod-1", quantity=1)]
            ))

        assert sale_service.list_sales(SaleFilters(client_id="client-1")).total == 2
        assert sale_service.list_sales(SaleFilters(status=SaleStatus.PENDING)).total == 3
        assert sale_service.list_sales(SaleFilters(type=SaleType.CASH)).total == 0

        page = sale_service.list_sales(limit=2, offset=2)
        assert page.total == 3
        assert len(page.items) == 1

    def test_statement_through_service(self, sale_service):
        sale = sale_service.create_sale(SaleCreate(
            client_id="client-1",
            items=[SaleItemCreate(product_id="prod-2", quantity=1, itbis_amount="0")]
        ))
        sale_service.add_payment(sale.id, PaymentCreate(amount=Decimal("250")))

        statement = sale_service.get_account_statement("client-1", InMemoryCreditNoteRepository())

        assert statement.balance == Decimal("750.00")
        assert sale_service.get_payment_stats(sale.id).payment_percentage == 25
        assert sale_service.get_payments_by_method("client-1").total == Decimal("250.00")


# ===== TESTS DE API =====

@pytest.fixture
def api_repositories(catalog, clients, id_generator):
    """Sustituye los repositorios del proceso por instancias limpias"""
    sales = InMemorySaleRepository()
    notes = InMemoryCreditNoteRepository()

    app.dependency_overrides[get_sale_repository] = lambda: sales
    app.dependency_overrides[get_credit_note_repository] = lambda: notes
    app.dependency_overrides[get_product_catalog] = lambda: catalog
    app.dependency_overrides[get_client_directory] = lambda: clients
    app.dependency_overrides[get_id_generator] = lambda: id_generator
    app.dependency_overrides[get_clock] = lambda: (lambda: FIXED_NOW)
    yield {"sales": sales, "notes": notes}
    app.dependency_overrides.clear()


def create_credit_sale_via_api():
    response = client.post("/sales", json={
        "client_id": "client-1",
        "type": "credit",
        "items": [{"product_id": "prod-2", "quantity": "1", "unit_price": "1000", "itbis_amount": "0"}]
    })
    assert response.status_code == 201
    return response.json()


class TestSalesAPI:
    """Tests de los endpoints de ventas"""

    def test_create_cash_sale(self, api_repositories):
        response = client.post("/sales", json={
            "client_id": "client-2",
            "type": "cash",
            "items": [{"product_id": "prod-1", "quantity": "2", "unit_price": "100", "itbis_amount": "36"}]
        })

        assert response.status_code == 201
        data = response.json()
        assert Decimal(data["total"]) == Decimal("236")
        assert data["status"] == "completed"

    def test_payment_flow(self, api_repositories):
        sale = create_credit_sale_via_api()

        response = client.post(f"/sales/{sale['id']}/payments", json={
            "amount": "400", "method": "transferencia"
        })
        assert response.status_code == 201
        assert response.json()["status"] == "partial"
        assert Decimal(response.json()["remaining_balance"]) == Decimal("600")

        stats = client.get(f"/sales/{sale['id']}/payment-stats").json()
        assert stats["payment_percentage"] == 40

        report = client.get("/sales/reports/payments-by-method").json()
        assert Decimal(report["totals"]["transferencia"]) == Decimal("400")

    def test_overpayment_is_400(self, api_repositories):
        sale = create_credit_sale_via_api()

        response = client.post(f"/sales/{sale['id']}/payments", json={"amount": "1000.01"})

        assert response.status_code == 400
        assert response.json()["code"] == "overpayment"

    def test_zero_payment_is_400(self, api_repositories):
        sale = create_credit_sale_via_api()

        response = client.post(f"/sales/{sale['id']}/payments", json={"amount": "0"})

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_amount"

    def test_mixed_mismatch_is_400(self, api_repositories):
        response = client.post("/sales", json={
            "client_id": "client-1",
            "type": "mixed",
            "items": [{"product_id": "prod-2", "quantity": "1", "unit_price": "1000", "itbis_amount": "0"}],
            "cash_amount": "300",
            "credit_amount": "600"
        })

        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    def test_invalid_quantity_is_422(self, api_repositories):
        response = client.post("/sales", json={
            "client_id": "client-1", "type": "cash",
            "items": [{"product_id": "prod-1", "quantity": "0"}]
        })
        assert response.status_code == 422

    def test_missing_sale_is_404(self, api_repositories):
        assert client.get("/sales/missing").status_code == 404

    def test_stale_version_is_409(self, api_repositories):
        sale = create_credit_sale_via_api()
        client.post(f"/sales/{sale['id']}/payments", json={"amount": "100", "expected_version": 1})

        response = client.post(f"/sales/{sale['id']}/payments", json={"amount": "100", "expected_version": 1})

        assert response.status_code == 409
        assert response.json()["code"] == "version_conflict"

    def test_cancel_and_pay_is_409(self, api_repositories):
        sale = create_credit_sale_via_api()

        response = client.post(f"/sales/{sale['id']}/cancel", json={"reason": "Duplicada"})
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        response = client.post(f"/sales/{sale['id']}/payments", json={"amount": "10"})
        assert response.status_code == 409

    def test_list_sales(self, api_repositories):
        create_credit_sale_via_api()
        create_credit_sale_via_api()

        data = client.get("/sales", params={"client_id": "client-1", "status": "pending"}).json()

        assert data["total"] == 2
        assert data["limit"] == 20

    def test_account_statement(self, api_repositories):
        sale = create_credit_sale_via_api()
        client.post(f"/sales/{sale['id']}/payments", json={"amount": "300"})

        data = client.get("/clients/client-1/account-statement").json()

        assert len(data["lines"]) == 2
        assert Decimal(data["balance"]) == Decimal("700")

    def test_health(self):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestDefaultWiring:
    """La aplicación sin overrides de inventario acepta ventas"""

    @pytest.fixture
    def isolated_repositories(self):
        sales = InMemorySaleRepository()
        app.dependency_overrides[get_sale_repository] = lambda: sales
        app.dependency_overrides[get_credit_note_repository] = lambda: InMemoryCreditNoteRepository()
        yield sales
        app.dependency_overrides.clear()

    def test_no_catalog_by_default(self):
        assert get_product_catalog() is None

    def test_create_sale_without_inventory(self, isolated_repositories):
        response = client.post("/sales", json={
            "client_id": "client-9",
            "type": "credit",
            "items": [{"product_id": "p1", "quantity": "1", "unit_price": "1000", "itbis_amount": "0"}]
        })

        assert response.status_code == 201
        data = response.json()
        assert Decimal(data["total"]) == Decimal("1000")
        assert data["status"] == "pending"
        assert len(isolated_repositories.list()) == 1
