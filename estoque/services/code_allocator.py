"""
Product code allocation.

Two strategies exist and a deployment picks exactly one of them through
``settings.code_strategy``:

* ``ScanCodeAllocator`` computes ``max(numeric codes) + 1`` on every call.
  Peeking is exact, but two concurrent callers can compute the same value;
  the unique index on ``products.code`` then rejects the second insert with
  ``DuplicateCodeError``. Allocation is best-effort only.
* ``SequenceCodeAllocator`` keeps a persistent counter in ``code_sequences``
  and increments it with a single ``UPDATE ... RETURNING``, so concurrent
  allocations are serialized by the database. Its ``peek_next_code`` is an
  approximation: another caller may consume the value before it is used.

Switching strategy on a live catalog requires re-seeding the sequence from
the highest existing code (``SequenceCodeAllocator.seed``).
"""
import logging
from typing import Awaitable, Callable, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from estoque.errors import storage_errors
from estoque.models.code_sequence import CodeSequence
from estoque.models.product import Product

logger = logging.getLogger(__name__)

DEFAULT_WIDTH = 4
SEQUENCE_NAME = "product_code"


def format_code(value: int, width: int = DEFAULT_WIDTH) -> str:
    """Zero-pad ``value`` to ``width`` digits, growing wider when needed."""
    return str(value).zfill(width)


def max_numeric_code(codes: Iterable[Optional[str]]) -> int:
    """Highest purely numeric code, ignoring legacy non-numeric ones."""
    highest = 0
    for code in codes:
        if code and code.isdecimal():
            highest = max(highest, int(code))
    return highest


async def current_max_code(session: AsyncSession) -> int:
    with storage_errors():
        result = await session.execute(select(Product.code))
    return max_numeric_code(result.scalars().all())


class CodeAllocator:
    """Interface shared by both allocation strategies."""

    strategy = ""
    # Whether peek_next_code is guaranteed to match the next allocate_code
    exact_peek = False

    def __init__(self, width: int = DEFAULT_WIDTH):
        self.width = width

    async def setup(self, session: AsyncSession) -> None:
        """Prepare persistent state at start-up."""

    async def peek_next_code(self, session: AsyncSession) -> str:
        raise NotImplementedError

    async def allocate_code(self, session: AsyncSession) -> str:
        raise NotImplementedError

    async def reset(self, session: AsyncSession) -> None:
        """Called after the whole catalog has been wiped."""

    async def claim_code(self, session: AsyncSession, code: str) -> None:
        """
        Record a code that is about to be stored without being allocated.

        Must run in the same transaction as the insert or update that stores
        ``code``, so a failed write leaves the allocator untouched.
        """

    async def batch(self, session: AsyncSession) -> Callable[[], Awaitable[str]]:
        """Return an allocation function for a run of inserts on ``session``."""
        async def allocate() -> str:
            return await self.allocate_code(session)

        return allocate


class ScanCodeAllocator(CodeAllocator):
    strategy = "scan"
    exact_peek = True

    async def peek_next_code(self, session: AsyncSession) -> str:
        return format_code(await current_max_code(session) + 1, self.width)

    async def allocate_code(self, session: AsyncSession) -> str:
        # Nothing is reserved; the insert that follows is what claims the code
        return await self.peek_next_code(session)

    async def batch(self, session: AsyncSession) -> Callable[[], Awaitable[str]]:
        # Scan once and count locally instead of re-reading every code per row
        highest = await current_max_code(session)

        async def allocate() -> str:
            nonlocal highest
            highest += 1
            return format_code(highest, self.width)

        return allocate


class SequenceCodeAllocator(CodeAllocator):
    strategy = "sequence"
    exact_peek = False

    def __init__(self, width: int = DEFAULT_WIDTH, name: str = SEQUENCE_NAME, start: int = 0):
        super().__init__(width)
        self.name = name
        self.start = start

    async def setup(self, session: AsyncSession) -> None:
        await self.seed(session)

    async def seed(self, session: AsyncSession, force: bool = False) -> int:
        """
        Create the counter at ``max(existing codes)`` when it does not exist.

        With ``force`` an existing counter is moved to the current maximum,
        which is the migration step when switching from the scan strategy.
        """
        highest = await current_max_code(session)
        with storage_errors():
            row = await session.get(CodeSequence, self.name)
            if row is None:
                session.add(CodeSequence(name=self.name, value=max(highest, self.start)))
            elif force:
                row.value = max(highest, self.start)
            await session.commit()
        logger.info("Code sequence %s seeded at %s", self.name, max(highest, self.start))
        return highest

    async def peek_next_code(self, session: AsyncSession) -> str:
        with storage_errors():
            result = await session.execute(
                select(CodeSequence.value).where(CodeSequence.name == self.name)
            )
        current = result.scalar_one_or_none()
        return format_code((current if current is not None else self.start) + 1, self.width)

    async def allocate_code(self, session: AsyncSession) -> str:
        # Increment-and-return in one statement; the row lock serializes callers
        with storage_errors():
            result = await session.execute(
                update(CodeSequence)
                .where(CodeSequence.name == self.name)
                .values(value=CodeSequence.value + 1)
                .returning(CodeSequence.value)
            )
            value = result.scalar_one_or_none()
            if value is None:
                session.add(CodeSequence(name=self.name, value=self.start + 1))
                await session.flush()
                value = self.start + 1
        return format_code(value, self.width)

    async def reset(self, session: AsyncSession) -> None:
        with storage_errors():
            await session.execute(
                update(CodeSequence)
                .where(CodeSequence.name == self.name)
                .values(value=self.start)
            )
        logger.info("Code sequence %s reset to %s", self.name, self.start)

    async def claim_code(self, session: AsyncSession, code: str) -> None:
        # Literal numeric codes push the counter forward so it never hands them out
        if not code or not code.isdecimal():
            return
        with storage_errors():
            await session.execute(
                update(CodeSequence)
                .where(CodeSequence.name == self.name, CodeSequence.value < int(code))
                .values(value=int(code))
            )


def build_allocator(strategy: str, width: int = DEFAULT_WIDTH) -> CodeAllocator:
    if strategy == "sequence":
        return SequenceCodeAllocator(width=width)
    if strategy == "scan":
        return ScanCodeAllocator(width=width)
    raise ValueError(f"Unknown code strategy: {strategy}")
