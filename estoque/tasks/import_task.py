import asyncio
import logging
from typing import Any, Dict, List

from estoque.config import settings
from estoque.database import build_engine, build_sessionmaker
from estoque.services.code_allocator import build_allocator
from estoque.services.import_progress import RedisImportProgress
from estoque.services.importer import ImportReconciler
from estoque.tasks.celery_app import celery_app, make_redis_client

logger = logging.getLogger(__name__)


async def _run_import(rows: List[Dict[str, Any]], mode: str, progress) -> Dict[str, Any]:
    # The worker's event loop is new for every task, so is the engine
    engine = build_engine(settings.database_url)
    try:
        allocator = build_allocator(settings.code_strategy, settings.code_width)
        reconciler = ImportReconciler(build_sessionmaker(engine), allocator, progress, settings.code_width)
        return await reconciler.process(rows, mode)
    finally:
        await engine.dispose()


@celery_app.task(bind=True, ignore_result=True)
def import_products_task(self, rows: List[Dict[str, Any]], mode: str):
    """
    Run a spreadsheet import on a worker.

    The API has already parsed the file and reset the progress document;
    this task only writes the rows.
    """
    progress = RedisImportProgress(make_redis_client())
    logger.info("Worker import %s: %s rows, mode=%s", self.request.id, len(rows), mode)
    state = asyncio.run(_run_import(rows, mode, progress))
    return {"status": state["status"], "atual": state["atual"], "total": state["total"]}
