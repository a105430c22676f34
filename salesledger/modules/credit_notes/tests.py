"""
Tests para el módulo de Notas de Crédito

- Emisión con ITBIS por línea y numeración secuencial
- Máquina de estados (pendiente -> aplicada | cancelada)
- Aplicación contra la factura original y su efecto en el saldo
- Reversión de la nota cuando la venta cambió mientras se aplicaba
- Filtros, estadísticas y endpoints REST
"""

import itertools
import pytest
from fastapi.testclient import TestClient
from datetime import date, datetime, timezone
from decimal import Decimal

from salesledger.core.exceptions import (
    ValidationError, InvalidStateError, OverpaymentError, ConcurrencyError, NotFoundError
)
from salesledger.database.repositories import (
    InMemorySaleRepository, InMemoryCreditNoteRepository
)
from salesledger.dependencies.ledgerDependencies import (
    get_sale_repository, get_credit_note_repository, get_product_catalog,
    get_id_generator, get_clock
)
from salesledger.main import app
from salesledger.modules.credit_notes import lifecycle
from salesledger.modules.credit_notes.models import CreditNoteStatus, CreditNoteType
from salesledger.modules.credit_notes.schemas import (
    CreditNoteCreate, CreditNoteItemCreate, CreditNoteUpdate, CreditNoteFilters
)
from salesledger.modules.credit_notes.service import CreditNoteService
from salesledger.modules.sales import ledger
from salesledger.modules.sales.ledger import utc_now
from salesledger.modules.sales.models import SaleType, SaleStatus
from salesledger.modules.sales.statement import build_account_statement, payments_by_method


client = TestClient(app)

FIXED_NOW = datetime(2024, 3, 15, 10, 30, tzinfo=timezone.utc)


# ===== FIXTURES =====

@pytest.fixture
def id_generator():
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def note_items():
    """Una línea de 127.12 + ITBIS 22.88 -> 150.00"""
    return [CreditNoteItemCreate(product_id="prod-2", quantity=1, unit_price=Decimal("127.12"),
                                 reason="Producto defectuoso")]


@pytest.fixture
def sale_repository():
    return InMemorySaleRepository()


@pytest.fixture
def note_repository():
    return InMemoryCreditNoteRepository()


@pytest.fixture
def credit_sale(sale_repository, id_generator):
    """Venta a crédito de 1000 con un pago de 400 (saldo 600)"""
    sale = ledger.create_sale(
        "client-1",
        [{"product_id": "prod-2", "quantity": 1, "unit_price": "1000", "itbis_amount": "0"}],
        SaleType.CREDIT,
        sale_date=date(2024, 3, 1),
        id_generator=id_generator
    )
    sale = ledger.add_payment(sale, Decimal("400"), id_generator=id_generator)
    return sale_repository.save(sale)


@pytest.fixture
def service(note_repository, sale_repository, id_generator):
    return CreditNoteService(
        note_repository, sale_repository, id_generator=id_generator, clock=lambda: FIXED_NOW
    )


def build_note(note_items, **overrides):
    fields = dict(
        numero="NC-00000001",
        client_id="client-1",
        tipo=CreditNoteType.DEVOLUCION,
        motivo="Devolución de mercancía",
        items=note_items,
        fecha_emision=FIXED_NOW
    )
    fields.update(overrides)
    return lifecycle.build_credit_note(**fields)


# ===== TESTS DEL CICLO DE VIDA =====

class TestBuildCreditNote:
    """Tests para build_credit_note"""

    def test_totals(self, note_items):
        note = build_note(note_items)

        assert note.subtotal == Decimal("127.12")
        assert note.itbis_total == Decimal("22.88")
        assert note.monto_total == Decimal("150.00")
        assert note.status == CreditNoteStatus.PENDIENTE
        assert note.items[0].reason == "Producto defectuoso"
        assert note.is_terminal is False

    def test_multiple_lines(self):
        note = build_note([
            {"quantity": 2, "unit_price": "50"},
            {"quantity": 1, "unit_price": "10.05"},
        ])

        assert note.subtotal == Decimal("110.05")
        assert note.itbis_total == Decimal("19.81")
        assert note.monto_total == Decimal("129.86")

    def test_without_items(self):
        with pytest.raises(ValidationError):
            build_note([])

    @pytest.mark.parametrize("motivo", ["", "   ", None])
    def test_requires_motivo(self, note_items, motivo):
        with pytest.raises(ValidationError):
            build_note(note_items, motivo=motivo)

    def test_zero_total(self):
        with pytest.raises(ValidationError):
            build_note([{"quantity": 1, "unit_price": "0"}])


class TestCreditNoteStateMachine:
    """Tests para las transiciones de estado"""

    def test_update_pending(self, note_items):
        note = build_note(note_items)
        updated = lifecycle.update_credit_note(note, {
            "motivo": "Descuento por volumen",
            "tipo": CreditNoteType.DESCUENTO,
            "items": [{"quantity": 1, "unit_price": "100"}],
        })

        assert updated.motivo == "Descuento por volumen"
        assert updated.tipo == CreditNoteType.DESCUENTO
        assert updated.monto_total == Decimal("118.00")
        assert updated.numero == note.numero
        assert updated.version == note.version + 1

    def test_cancel(self, note_items):
        cancelled = lifecycle.cancel_credit_note(build_note(note_items))

        assert cancelled.status == CreditNoteStatus.CANCELADA
        assert cancelled.is_terminal is True

    def test_terminal_states_are_final(self, note_items):
        cancelled = lifecycle.cancel_credit_note(build_note(note_items))
        applied, _ = lifecycle.apply_credit_note(build_note(note_items), now=FIXED_NOW)

        for note in (cancelled, applied):
            with pytest.raises(InvalidStateError):
                lifecycle.apply_credit_note(note, now=FIXED_NOW)
            with pytest.raises(InvalidStateError):
                lifecycle.cancel_credit_note(note)
            with pytest.raises(InvalidStateError):
                lifecycle.update_credit_note(note, {"motivo": "x"})
            with pytest.raises(InvalidStateError):
                lifecycle.ensure_deletable(note)

    def test_update_clears_optional_fields(self, note_items):
        note = build_note(note_items, factura_original_id="sale-1", observaciones="Revisar")

        updated = lifecycle.update_credit_note(note, {"factura_original_id": None, "observaciones": None})

        assert updated.factura_original_id is None
        assert updated.observaciones is None
        assert updated.motivo == note.motivo
        assert updated.monto_total == note.monto_total

    @pytest.mark.parametrize("field", ["motivo", "tipo", "items"])
    def test_update_cannot_clear_required_fields(self, note_items, field):
        with pytest.raises(ValidationError):
            lifecycle.update_credit_note(build_note(note_items), {field: None})

    def test_pending_is_deletable(self, note_items):
        lifecycle.ensure_deletable(build_note(note_items))


class TestApplyCreditNote:
    """Tests para apply_credit_note"""

    def test_reduces_sale_balance(self, note_items, credit_sale):
        note = build_note(note_items, factura_original_id=credit_sale.id)

        applied, sale = lifecycle.apply_credit_note(note, credit_sale, now=FIXED_NOW)

        assert applied.status == CreditNoteStatus.APLICADA
        assert applied.fecha_aplicacion == FIXED_NOW
        assert sale.remaining_balance == Decimal("450.00")
        assert sale.credit_applications[0].numero == "NC-00000001"

        with pytest.raises(OverpaymentError):
            ledger.add_payment(sale, Decimal("450.01"))
        assert ledger.add_payment(sale, Decimal("450")).status == SaleStatus.COMPLETED

    def test_credit_is_not_a_payment(self, note_items, credit_sale):
        note = build_note(note_items, factura_original_id=credit_sale.id)
        _, sale = lifecycle.apply_credit_note(note, credit_sale, now=FIXED_NOW)

        assert len(sale.payments) == 1
        assert payments_by_method([sale]).total == Decimal("400.00")

    def test_requires_referenced_sale(self, note_items, credit_sale):
        note = build_note(note_items, factura_original_id=credit_sale.id)

        with pytest.raises(ValidationError):
            lifecycle.apply_credit_note(note, None, now=FIXED_NOW)

    def test_rejects_other_sale(self, note_items, credit_sale):
        note = build_note(note_items, factura_original_id="another-sale")

        with pytest.raises(ValidationError):
            lifecycle.apply_credit_note(note, credit_sale, now=FIXED_NOW)

    def test_rejects_other_client(self, note_items, credit_sale):
        note = build_note(note_items, client_id="client-2", factura_original_id=credit_sale.id)

        with pytest.raises(ValidationError):
            lifecycle.apply_credit_note(note, credit_sale, now=FIXED_NOW)

    def test_exceeding_balance(self, credit_sale):
        note = build_note([{"quantity": 1, "unit_price": "600"}], factura_original_id=credit_sale.id)

        with pytest.raises(OverpaymentError):
            lifecycle.apply_credit_note(note, credit_sale, now=FIXED_NOW)

    def test_note_without_sale(self, note_items):
        applied, sale = lifecycle.apply_credit_note(build_note(note_items), now=FIXED_NOW)

        assert applied.status == CreditNoteStatus.APLICADA
        assert sale is None

    def test_applied_note_in_statement(self, note_items, credit_sale):
        note = build_note(note_items, factura_original_id=credit_sale.id)
        applied, sale = lifecycle.apply_credit_note(note, credit_sale, now=FIXED_NOW)
        loose, _ = lifecycle.apply_credit_note(
            build_note([{"quantity": 1, "unit_price": "50"}]), now=FIXED_NOW
        )

        statement = build_account_statement("client-1", [sale], [applied, loose])

        assert statement.total_credits == Decimal("400.00") + Decimal("150.00") + Decimal("59.00")
        assert statement.balance == Decimal("391.00")


# ===== TESTS DE FILTROS Y ESTADÍSTICAS =====

class TestFiltersAndStats:
    """Tests para filter_credit_notes y calculate_credit_note_stats"""

    @pytest.fixture
    def notes(self, note_items):
        pending = build_note(note_items, numero="NC-00000001", motivo="Devolución parcial")
        applied, _ = lifecycle.apply_credit_note(
            build_note([{"quantity": 1, "unit_price": "100"}], numero="NC-00000002",
                       motivo="Descuento comercial", tipo=CreditNoteType.DESCUENTO,
                       client_id="client-2", fecha_emision=datetime(2024, 2, 1, tzinfo=timezone.utc)),
            now=FIXED_NOW
        )
        cancelled = lifecycle.cancel_credit_note(
            build_note(note_items, numero="NC-00000003", motivo="Error de precio",
                       tipo=CreditNoteType.AJUSTE, observaciones="Duplicada")
        )
        return [pending, applied, cancelled]

    def test_search(self, notes):
        assert [n.numero for n in lifecycle.filter_credit_notes(
            notes, CreditNoteFilters(search="devol")
        )] == ["NC-00000001"]
        assert len(lifecycle.filter_credit_notes(notes, CreditNoteFilters(search="duplicada"))) == 1
        assert len(lifecycle.filter_credit_notes(notes, CreditNoteFilters(search="NC-0000000"))) == 3

    def test_blank_search_is_ignored(self, notes):
        assert len(lifecycle.filter_credit_notes(notes, CreditNoteFilters(search="   "))) == 3

    def test_filter_by_fields(self, notes):
        assert len(lifecycle.filter_credit_notes(notes, CreditNoteFilters(client_id="client-2"))) == 1
        assert len(lifecycle.filter_credit_notes(
            notes, CreditNoteFilters(status=CreditNoteStatus.PENDIENTE)
        )) == 1
        assert len(lifecycle.filter_credit_notes(
            notes, CreditNoteFilters(tipo=CreditNoteType.AJUSTE)
        )) == 1

    def test_filter_by_dates(self, notes):
        since_march = CreditNoteFilters(fecha_desde=date(2024, 3, 1))
        until_february = CreditNoteFilters(fecha_hasta=date(2024, 2, 28))

        assert len(lifecycle.filter_credit_notes(notes, since_march)) == 2
        assert [n.numero for n in lifecycle.filter_credit_notes(notes, until_february)] == ["NC-00000002"]

    def test_stats(self, notes):
        stats = lifecycle.calculate_credit_note_stats(notes)

        assert stats.total_notas_credito == 3
        assert stats.notas_pendientes == 1
        assert stats.notas_aplicadas == 1
        assert stats.monto_pendiente == Decimal("150.00")
        assert stats.monto_aplicado == Decimal("118.00")
        assert stats.monto_total_creditos == Decimal("418.00")


# ===== TESTS DEL SERVICIO =====

class TestCreditNoteService:
    """Tests para CreditNoteService"""

    def test_sequential_numbering(self, service, note_items):
        first = service.create_credit_note(CreditNoteCreate(
            client_id="client-1", motivo="Devolución", items=note_items
        ))
        second = service.create_credit_note(CreditNoteCreate(
            client_id="client-1", motivo="Devolución", items=note_items
        ))

        assert first.numero == "NC-00000001"
        assert second.numero == "NC-00000002"
        assert first.fecha_emision == FIXED_NOW

    def test_original_sale_must_exist(self, service, note_items):
        with pytest.raises(ValidationError):
            service.create_credit_note(CreditNoteCreate(
                client_id="client-1", factura_original_id="missing",
                motivo="Devolución", items=note_items
            ))

    def test_original_sale_must_belong_to_client(self, service, note_items, credit_sale):
        with pytest.raises(ValidationError):
            service.create_credit_note(CreditNoteCreate(
                client_id="client-2", factura_original_id=credit_sale.id,
                motivo="Devolución", items=note_items
            ))

    def test_apply_updates_sale(self, service, note_items, credit_sale, sale_repository):
        note = service.create_credit_note(CreditNoteCreate(
            client_id="client-1", factura_original_id=credit_sale.id,
            motivo="Devolución", items=note_items
        ))

        result = service.apply_credit_note(note.id)

        assert result.nota_credito.status == CreditNoteStatus.APLICADA
        assert result.venta.remaining_balance == Decimal("450.00")
        assert sale_repository.get(credit_sale.id).remaining_balance == Decimal("450.00")

    def test_double_apply(self, service, note_items, credit_sale, sale_repository):
        note = service.create_credit_note(CreditNoteCreate(
            client_id="client-1", factura_original_id=credit_sale.id,
            motivo="Devolución", items=note_items
        ))
        service.apply_credit_note(note.id)

        with pytest.raises(InvalidStateError):
            service.apply_credit_note(note.id)

        sale = sale_repository.get(credit_sale.id)
        assert sale.remaining_balance == Decimal("450.00")
        assert len(sale.credit_applications) == 1

    def test_apply_reverts_note_when_sale_save_fails(self, note_repository, note_items, credit_sale):
        class ConflictingSaleRepository(InMemorySaleRepository):
            def save(self, sale, expected_version=None):
                raise ConcurrencyError(sale.id, expected_version, expected_version + 1)

        sales = ConflictingSaleRepository()
        sales._store.put(credit_sale.id, credit_sale)
        service = CreditNoteService(note_repository, sales, clock=lambda: FIXED_NOW)
        note = service.create_credit_note(CreditNoteCreate(
            client_id="client-1", factura_original_id=credit_sale.id,
            motivo="Devolución", items=note_items
        ))

        with pytest.raises(ConcurrencyError):
            service.apply_credit_note(note.id)

        stored = note_repository.get(note.id)
        assert stored.status == CreditNoteStatus.PENDIENTE
        assert stored.fecha_aplicacion is None
        assert stored.version == note.version + 2

    def test_update_and_cancel(self, service, note_items):
        note = service.create_credit_note(CreditNoteCreate(
            client_id="client-1", motivo="Devolución", items=note_items
        ))

        updated = service.update_credit_note(note.id, CreditNoteUpdate(observaciones="Revisada"))
        assert updated.observaciones == "Revisada"

        with pytest.raises(ConcurrencyError):
            service.update_credit_note(note.id, CreditNoteUpdate(motivo="Otra", expected_version=1))

        cancelled = service.cancel_credit_note(note.id)
        assert cancelled.status == CreditNoteStatus.CANCELADA

        with pytest.raises(InvalidStateError):
            service.delete_credit_note(note.id)

    def test_delete_pending(self, service, note_items):
        note = service.create_credit_note(CreditNoteCreate(
            client_id="client-1", motivo="Devolución", items=note_items
        ))

        service.delete_credit_note(note.id)

        with pytest.raises(NotFoundError):
            service.get_credit_note(note.id)

    def test_update_clears_original_sale(self, service, note_items, credit_sale):
        note = service.create_credit_note(CreditNoteCreate(
            client_id="client-1", factura_original_id=credit_sale.id,
            motivo="Devolución", items=note_items
        ))

        updated = service.update_credit_note(note.id, CreditNoteUpdate(factura_original_id=None))

        assert updated.factura_original_id is None
        assert updated.motivo == "Devolución"

    def test_delete_loses_race_with_apply(self, service, note_items, credit_sale,
                                          note_repository, sale_repository, monkeypatch):
        note = service.create_credit_note(CreditNoteCreate(
            client_id="client-1", factura_original_id=credit_sale.id,
            motivo="Devolución", items=note_items
        ))
        ensure_deletable = lifecycle.ensure_deletable

        def apply_after_check(checked):
            ensure_deletable(checked)
            service.apply_credit_note(checked.id)

        monkeypatch.setattr(lifecycle, "ensure_deletable", apply_after_check)

        with pytest.raises(ConcurrencyError):
            service.delete_credit_note(note.id)

        assert note_repository.get(note.id).status == CreditNoteStatus.APLICADA
        assert sale_repository.get(credit_sale.id).credited_total == Decimal("150.00")

    def test_delete_with_stale_version(self, service, note_items, note_repository):
        note = service.create_credit_note(CreditNoteCreate(
            client_id="client-1", motivo="Devolución", items=note_items
        ))
        service.update_credit_note(note.id, CreditNoteUpdate(observaciones="Revisada"))

        with pytest.raises(ConcurrencyError):
            note_repository.delete(note.id, expected_version=1)

        assert note_repository.get(note.id).observaciones == "Revisada"

    def test_default_clock_is_utc(self, note_repository, sale_repository, note_items):
        service = CreditNoteService(note_repository, sale_repository)

        note = service.create_credit_note(CreditNoteCreate(
            client_id="client-1", motivo="Devolución", items=note_items
        ))

        assert utc_now().tzinfo is timezone.utc
        assert note.fecha_emision.tzinfo is not None

    def test_list_and_stats(self, service, note_items):
        for motivo in ("Devolución", "Ajuste de precio", "Devolución parcial"):
            service.create_credit_note(CreditNoteCreate(
                client_id="client-1", motivo=motivo, items=note_items
            ))

        page = service.list_credit_notes(CreditNoteFilters(search="devol"), limit=1)
        assert page.total == 2
        assert len(page.notas_credito) == 1

        assert service.get_stats().monto_pendiente == Decimal("450.00")


# ===== TESTS DE API =====

@pytest.fixture
def api_repositories(sale_repository, note_repository, credit_sale, id_generator):
    app.dependency_overrides[get_sale_repository] = lambda: sale_repository
    app.dependency_overrides[get_credit_note_repository] = lambda: note_repository
    app.dependency_overrides[get_product_catalog] = lambda: None
    app.dependency_overrides[get_id_generator] = lambda: id_generator
    app.dependency_overrides[get_clock] = lambda: (lambda: FIXED_NOW)
    yield credit_sale
    app.dependency_overrides.clear()


def create_note_via_api(sale_id=None, unit_price="127.12"):
    response = client.post("/notas-credito", json={
        "client_id": "client-1",
        "factura_original_id": sale_id,
        "tipo": "devolucion",
        "motivo": "Producto defectuoso",
        "items": [{"product_id": "prod-2", "quantity": "1", "unit_price": unit_price}]
    })
    assert response.status_code == 201
    return response.json()["nota_credito"]


class TestCreditNotesAPI:
    """Tests de los endpoints de notas de crédito"""

    def test_create_and_get(self, api_repositories):
        note = create_note_via_api(api_repositories.id)

        assert note["numero"] == "NC-00000001"
        assert Decimal(note["monto_total"]) == Decimal("150")

        response = client.get(f"/notas-credito/{note['id']}")
        assert response.status_code == 200
        assert response.json()["nota_credito"]["status"] == "pendiente"

    def test_apply_twice_is_409(self, api_repositories):
        note = create_note_via_api(api_repositories.id)

        response = client.put(f"/notas-credito/{note['id']}/aplicar")
        assert response.status_code == 200
        assert Decimal(response.json()["venta"]["remaining_balance"]) == Decimal("450")

        response = client.put(f"/notas-credito/{note['id']}/aplicar")
        assert response.status_code == 409
        assert response.json()["code"] == "invalid_state"

    def test_apply_exceeding_balance_is_400(self, api_repositories):
        note = create_note_via_api(api_repositories.id, unit_price="600")

        response = client.put(f"/notas-credito/{note['id']}/aplicar")

        assert response.status_code == 400
        assert response.json()["code"] == "overpayment"

    def test_update_cancel_delete(self, api_repositories):
        note = create_note_via_api()

        response = client.put(f"/notas-credito/{note['id']}", json={"observaciones": "Revisar"})
        assert response.status_code == 200
        assert response.json()["nota_credito"]["observaciones"] == "Revisar"

        assert client.put(f"/notas-credito/{note['id']}/cancelar").status_code == 200
        assert client.delete(f"/notas-credito/{note['id']}").status_code == 409

        other = create_note_via_api()
        assert client.delete(f"/notas-credito/{other['id']}").status_code == 204
        assert client.get(f"/notas-credito/{other['id']}").status_code == 404

    def test_update_unlinks_original_sale(self, api_repositories):
        note = create_note_via_api(api_repositories.id)

        response = client.put(f"/notas-credito/{note['id']}", json={"factura_original_id": None})

        assert response.status_code == 200
        assert response.json()["nota_credito"]["factura_original_id"] is None
        assert response.json()["nota_credito"]["motivo"] == "Producto defectuoso"

    def test_list_and_stats(self, api_repositories):
        create_note_via_api()
        applied = create_note_via_api(api_repositories.id)
        client.put(f"/notas-credito/{applied['id']}/aplicar")

        data = client.get("/notas-credito", params={"status": "aplicada"}).json()
        assert data["total"] == 1

        stats = client.get("/notas-credito/stats").json()
        assert stats["total_notas_credito"] == 2
        assert stats["notas_aplicadas"] == 1
        assert Decimal(stats["monto_aplicado"]) == Decimal("150")

    def test_statement_includes_credit(self, api_repositories):
        note = create_note_via_api(api_repositories.id)
        client.put(f"/notas-credito/{note['id']}/aplicar")

        data = client.get("/clients/client-1/account-statement").json()

        assert Decimal(data["balance"]) == Decimal("450")
