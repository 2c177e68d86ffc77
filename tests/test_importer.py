from decimal import Decimal

import pytest

from estoque.errors import StorageUnavailable, ValidationError
from estoque.services.catalog import insert_product, list_products
from estoque.services.code_allocator import ScanCodeAllocator, SequenceCodeAllocator
from estoque.services.import_progress import ImportProgress
from estoque.services.importer import ImportReconciler, check_mode


def _by_name(products):
    return {p.name: p for p in products}


def test_check_mode():
    assert check_mode("insert") == "insert"
    assert check_mode("upsert") == "upsert"
    with pytest.raises(ValidationError):
        check_mode("merge")


def test_insert_all_creates_one_product_per_row(run_db):
    rows = [
        {"NOME": "A", "CUSTO": "R$ 10,50", "VENDA": "20,00"},
        {"Nome": "B"},
    ]

    async def scenario(sessionmaker):
        progress = ImportProgress()
        reconciler = ImportReconciler(sessionmaker, ScanCodeAllocator(), progress)
        state = await reconciler.run(rows, "insert")
        async with sessionmaker() as session:
            return state, await list_products(session)

    state, products = run_db(scenario)
    assert len(products) == 2
    by_name = _by_name(products)
    assert by_name["A"].cost_price == Decimal("10.50")
    assert by_name["A"].sale_price == Decimal("20.00")
    assert by_name["B"].stock == 0
    assert sorted(p.code for p in products) == ["0001", "0002"]
    assert state["status"] == "done"
    assert state["inserted"] == 2


def test_insert_all_ignores_sheet_codes_and_duplicates_rows(run_db):
    rows = [{"Codigo": "0001", "Nome": "Repetido"}]

    async def scenario(sessionmaker):
        reconciler = ImportReconciler(sessionmaker, SequenceCodeAllocator(), ImportProgress())
        async with sessionmaker() as session:
            await reconciler.allocator.setup(session)
        await reconciler.run(rows, "insert")
        await reconciler.run(rows, "insert")
        async with sessionmaker() as session:
            return await list_products(session)

    products = run_db(scenario)
    assert [p.code for p in products] == ["0001", "0002"]
    assert all(p.name == "Repetido" for p in products)


def test_upsert_updates_existing_and_inserts_new_codes(run_db):
    async def scenario(sessionmaker):
        async with sessionmaker() as session:
            await insert_product(session, {"code": "0001", "name": "Antigo", "stock": 9, "color": "azul"})

        reconciler = ImportReconciler(sessionmaker, ScanCodeAllocator(), ImportProgress())
        await reconciler.run([{"Código": "1", "Nome": "Novo", "Estoque": "4"}], "upsert")
        async with sessionmaker() as session:
            after_update = await list_products(session)

        await reconciler.run([{"Código": "0042", "Nome": "Outro"}], "upsert")
        async with sessionmaker() as session:
            after_insert = await list_products(session)
        return after_update, after_insert

    after_update, after_insert = run_db(scenario)
    assert len(after_update) == 1
    updated = after_update[0]
    assert (updated.code, updated.name, updated.stock) == ("0001", "Novo", 4)
    # Every mapped field is overwritten, missing columns included
    assert updated.color == ""

    assert len(after_insert) == 2
    assert _by_name(after_insert)["Outro"].code == "0042"


def test_upsert_counts_skipped_rows_as_processed(run_db):
    rows = [
        {"Codigo": "10", "Nome": "um"},
        {"Codigo": "11", "Nome": "dois"},
        {"Codigo": "", "Nome": "sem codigo"},
        {"Codigo": "12", "Nome": "tres"},
        {"Codigo": "13", "Nome": "quatro"},
    ]

    async def scenario(sessionmaker):
        progress = ImportProgress()
        reconciler = ImportReconciler(sessionmaker, ScanCodeAllocator(), progress)
        await reconciler.run(rows, "upsert")
        async with sessionmaker() as session:
            return progress.snapshot(), await list_products(session)

    state, products = run_db(scenario)
    assert state["total"] == 5
    assert state["atual"] == 5
    assert state["status"] == "done"
    assert state["skipped"] == 1
    assert state["inserted"] == 4
    assert len(products) == 4


class FailingAllocator(SequenceCodeAllocator):
    """Gives out two codes, then loses the database."""

    def __init__(self):
        super().__init__()
        self.calls = 0

    async def allocate_code(self, session):
        self.calls += 1
        if self.calls > 2:
            raise StorageUnavailable()
        return await super().allocate_code(session)


def test_batch_failure_stops_and_keeps_written_rows(run_db):
    rows = [{"Nome": f"item {i}"} for i in range(5)]

    async def scenario(sessionmaker):
        progress = ImportProgress()
        reconciler = ImportReconciler(sessionmaker, FailingAllocator(), progress)
        state = await reconciler.run(rows, "insert")
        async with sessionmaker() as session:
            return state, await list_products(session)

    state, products = run_db(scenario)
    assert state["status"] == "error"
    assert state["atual"] == 2
    assert state["total"] == 5
    assert "Import failed" in state["message"]
    assert len(products) == 2


def test_empty_sheet_finishes_immediately(run_db):
    async def scenario(sessionmaker):
        reconciler = ImportReconciler(sessionmaker, ScanCodeAllocator(), ImportProgress())
        return await reconciler.run([], "upsert")

    state = run_db(scenario)
    assert state["status"] == "done"
    assert state["total"] == state["atual"] == 0


def test_upsert_inserts_move_the_sequence_past_sheet_codes(run_db):
    async def scenario(sessionmaker):
        allocator = SequenceCodeAllocator()
        async with sessionmaker() as session:
            await allocator.setup(session)
        reconciler = ImportReconciler(sessionmaker, allocator, ImportProgress())
        await reconciler.run([{"Codigo": "2", "Nome": "da planilha"}], "upsert")
        await reconciler.run([{"Nome": "a"}, {"Nome": "b"}], "insert")
        async with sessionmaker() as session:
            return await list_products(session)

    products = run_db(scenario)
    assert [(p.code, p.name) for p in products] == [("0002", "da planilha"), ("0003", "a"), ("0004", "b")]


def test_out_of_range_numbers_fall_back_instead_of_failing(run_db):
    rows = [
        {"Nome": "ok"},
        {"Nome": "big", "Estoque": "1e20", "Ano": "99999999999", "Custo": "1e20"},
        {"Nome": "after"},
    ]

    async def scenario(sessionmaker):
        reconciler = ImportReconciler(sessionmaker, ScanCodeAllocator(), ImportProgress())
        state = await reconciler.run(rows, "insert")
        async with sessionmaker() as session:
            return state, await list_products(session)

    state, products = run_db(scenario)
    assert state["status"] == "done"
    assert state["inserted"] == 3
    big = _by_name(products)["big"]
    assert big.stock == 0
    assert big.year is None
    assert big.cost_price == Decimal("0.00")
