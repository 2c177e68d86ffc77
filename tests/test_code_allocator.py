from estoque.services.catalog import insert_product
from estoque.services.code_allocator import (
    ScanCodeAllocator,
    SequenceCodeAllocator,
    build_allocator,
    format_code,
    max_numeric_code,
)


def test_format_code_pads_to_four_digits_and_grows():
    assert format_code(7) == "0007"
    assert format_code(1234) == "1234"
    assert format_code(12345) == "12345"


def test_max_numeric_code_ignores_legacy_codes():
    assert max_numeric_code(["0003", "ABC-9", "", None, "0011", "12a", "\u00b2", "9\u00b2"]) == 11
    assert max_numeric_code([]) == 0


def test_build_allocator_rejects_unknown_strategy():
    assert isinstance(build_allocator("scan"), ScanCodeAllocator)
    assert isinstance(build_allocator("sequence"), SequenceCodeAllocator)
    try:
        build_allocator("random")
        assert False, "expected ValueError"
    except ValueError:
        pass


def test_scan_allocations_are_strictly_increasing(run_db):
    async def scenario(sessionmaker):
        allocator = ScanCodeAllocator()
        codes = []
        async with sessionmaker() as session:
            for i in range(5):
                code = await allocator.allocate_code(session)
                await insert_product(session, {"code": code, "name": f"item {i}"})
                codes.append(code)
        return codes

    codes = run_db(scenario)
    assert codes == ["0001", "0002", "0003", "0004", "0005"]


def test_scan_peek_matches_next_allocation_and_skips_non_numeric(run_db):
    async def scenario(sessionmaker):
        allocator = ScanCodeAllocator()
        async with sessionmaker() as session:
            await insert_product(session, {"code": "0041", "name": "numeric"})
            await insert_product(session, {"code": "LEGACY-99", "name": "legacy"})
            peeked = await allocator.peek_next_code(session)
            again = await allocator.peek_next_code(session)
            allocated = await allocator.allocate_code(session)
        return peeked, again, allocated

    peeked, again, allocated = run_db(scenario)
    assert peeked == again == allocated == "0042"


def test_sequence_is_seeded_from_existing_codes(run_db):
    async def scenario(sessionmaker):
        async with sessionmaker() as session:
            await insert_product(session, {"code": "0005", "name": "a"})
            await insert_product(session, {"code": "XYZ", "name": "b"})
            allocator = SequenceCodeAllocator()
            await allocator.setup(session)
            return await allocator.peek_next_code(session)

    assert run_db(scenario) == "0006"


def test_sequence_allocations_are_distinct_without_inserts(run_db):
    async def scenario(sessionmaker):
        allocator = SequenceCodeAllocator()
        async with sessionmaker() as session:
            await allocator.setup(session)
            codes = [await allocator.allocate_code(session) for _ in range(4)]
            await session.commit()
            peeked = await allocator.peek_next_code(session)
        return codes, peeked

    codes, peeked = run_db(scenario)
    assert codes == ["0001", "0002", "0003", "0004"]
    assert len(set(codes)) == 4
    assert peeked == "0005"


def test_sequence_setup_keeps_an_existing_counter(run_db):
    async def scenario(sessionmaker):
        allocator = SequenceCodeAllocator()
        async with sessionmaker() as session:
            await allocator.setup(session)
            await allocator.allocate_code(session)
            await allocator.allocate_code(session)
            await session.commit()
            # A restart must not move the counter back
            await SequenceCodeAllocator().setup(session)
            return await allocator.allocate_code(session)

    assert run_db(scenario) == "0003"


def test_sequence_reset_restarts_codes(run_db):
    async def scenario(sessionmaker):
        allocator = SequenceCodeAllocator()
        async with sessionmaker() as session:
            await allocator.setup(session)
            for _ in range(3):
                await allocator.allocate_code(session)
            await allocator.reset(session)
            await session.commit()
            return await allocator.allocate_code(session)

    assert run_db(scenario) == "0001"


def test_sequence_force_seed_moves_counter_to_current_max(run_db):
    async def scenario(sessionmaker):
        allocator = SequenceCodeAllocator()
        async with sessionmaker() as session:
            await allocator.setup(session)
            await insert_product(session, {"code": "0100", "name": "restored high code"})
            await allocator.seed(session, force=True)
            return await allocator.allocate_code(session)

    assert run_db(scenario) == "0101"


def test_superscript_codes_do_not_break_allocation(run_db):
    async def scenario(sessionmaker):
        allocator = ScanCodeAllocator()
        async with sessionmaker() as session:
            await insert_product(session, {"code": "²", "name": "superscript"})
            await insert_product(session, {"code": "0004", "name": "numeric"})
            return await allocator.peek_next_code(session), await allocator.allocate_code(session)

    assert run_db(scenario) == ("0005", "0005")


def test_scan_batch_counts_from_one_scan(run_db):
    async def scenario(sessionmaker):
        allocator = ScanCodeAllocator()
        async with sessionmaker() as session:
            await insert_product(session, {"code": "0010", "name": "existing"})
            allocate = await allocator.batch(session)
            return [await allocate() for _ in range(3)]

    assert run_db(scenario) == ["0011", "0012", "0013"]


def test_sequence_claim_moves_counter_past_literal_codes(run_db):
    async def scenario(sessionmaker):
        allocator = SequenceCodeAllocator()
        async with sessionmaker() as session:
            await allocator.setup(session)
            await allocator.claim_code(session, "0007")
            # Lower and non-numeric codes leave the counter alone
            await allocator.claim_code(session, "0003")
            await allocator.claim_code(session, "ABC-99")
            await session.commit()
            return await allocator.allocate_code(session)

    assert run_db(scenario) == "0008"
