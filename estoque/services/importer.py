"""
Spreadsheet import reconciliation.

Two modes are supported:

* ``insert``: every row becomes a new product with a freshly allocated code.
  Nothing is de-duplicated, so importing the same sheet twice doubles the
  catalog entries.
* ``upsert``: rows are matched on their code column. Rows without a code are
  skipped, rows with a known code overwrite every mapped field of the
  existing product, and rows with an unknown code are inserted with that
  literal code, which the allocator records so it never hands it out again.

Rows are written one at a time and committed individually. A failure that is
not a row-level normalization issue (storage down, code collision) stops the
loop and marks the progress as ``error``; rows committed before it stay.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from estoque.errors import ValidationError
from estoque.services.catalog import commit_changes, find_by_code, insert_product
from estoque.services.code_allocator import DEFAULT_WIDTH, CodeAllocator
from estoque.services.import_progress import INSERTED, SKIPPED, UPDATED, ImportProgress
from estoque.utils.sheet_parser import ProductRecord, map_row

logger = logging.getLogger(__name__)

INSERT_ALL = "insert"
UPSERT_BY_CODE = "upsert"
IMPORT_MODES = (INSERT_ALL, UPSERT_BY_CODE)


def check_mode(mode: str) -> str:
    if mode not in IMPORT_MODES:
        raise ValidationError(f"Import mode must be one of: {', '.join(IMPORT_MODES)}")
    return mode


class ImportReconciler:
    def __init__(self, sessionmaker: async_sessionmaker, allocator: CodeAllocator,
                 progress: ImportProgress, width: int = DEFAULT_WIDTH):
        self.sessionmaker = sessionmaker
        self.allocator = allocator
        self.progress = progress
        self.width = width

    async def run(self, rows: List[Dict[str, Any]], mode: str = INSERT_ALL) -> Dict[str, Any]:
        """Reset progress for ``rows`` and process them."""
        check_mode(mode)
        self.progress.start(len(rows), message=f"Importing {len(rows)} rows ({mode})")
        return await self.process(rows, mode)

    async def process(self, rows: List[Dict[str, Any]], mode: str) -> Dict[str, Any]:
        """Apply every row; progress must already be started."""
        logger.info("Import started: %s rows, mode=%s", len(rows), mode)
        try:
            async with self.sessionmaker() as session:
                allocate = await self.allocator.batch(session) if mode == INSERT_ALL else None
                for row in rows:
                    record = map_row(row, width=self.width)
                    outcome = await self.apply(session, record, mode, allocate)
                    self.progress.advance(outcome)
        except Exception as e:
            state = self.progress.snapshot()
            logger.exception("Import failed after %s of %s rows", state["atual"], state["total"])
            return self.progress.fail(f"Import failed: {e}")

        state = self.progress.finish()
        logger.info(
            "Import finished: %s inserted, %s updated, %s skipped",
            state["inserted"], state["updated"], state["skipped"],
        )
        return state

    async def apply(self, session: AsyncSession, record: ProductRecord, mode: str,
                    allocate: Optional[Callable[[], Awaitable[str]]] = None) -> str:
        if mode == INSERT_ALL:
            fields = record.as_columns()
            if allocate is None:
                allocate = await self.allocator.batch(session)
            fields["code"] = await allocate()
            await insert_product(session, fields, refresh=False)
            return INSERTED

        if not record.code:
            return SKIPPED

        existing = await find_by_code(session, record.code)
        if existing is None:
            await self.allocator.claim_code(session, record.code)
            await insert_product(session, record.as_columns(), refresh=False)
            return INSERTED

        for field, value in record.as_columns().items():
            if field != "code":
                setattr(existing, field, value)
        await commit_changes(session, conflict=record.code)
        return UPDATED
