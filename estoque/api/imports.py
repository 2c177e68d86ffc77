from fastapi import APIRouter, BackgroundTasks, Depends, File, Query, Request, UploadFile
from typing import Optional
from estoque.config import settings
from estoque.deps import get_allocator, get_current_principal, get_progress
from estoque.errors import UploadError
from estoque.schemas import ErrorResponse, ImportProgressResponse
from estoque.services.code_allocator import CodeAllocator
from estoque.services.import_progress import ImportProgress
from estoque.services.importer import ImportReconciler, check_mode
from estoque.utils.sheet_parser import read_rows

router = APIRouter(
    prefix="/api/import",
    tags=["import"],
    dependencies=[Depends(get_current_principal)],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)


@router.post("", response_model=ImportProgressResponse, status_code=202)
async def upload_sheet(
    request: Request,
    background_tasks: BackgroundTasks,
    file: Optional[UploadFile] = File(None, description="Spreadsheet (.xlsx, .xls) or CSV file"),
    mode: Optional[str] = Query(None, description="insert (every row is new) or upsert (match on code)"),
    allocator: CodeAllocator = Depends(get_allocator),
    progress: ImportProgress = Depends(get_progress),
):
    """
    Upload a spreadsheet and import its first sheet.

    The file is parsed before responding; rows are written in the background.
    Poll /api/import/progress for the outcome.
    """
    mode = check_mode(mode or settings.import_mode)

    if file is None or not file.filename:
        raise UploadError("No file provided")

    content = await file.read()
    if len(content) > settings.max_upload_bytes:
        raise UploadError(
            f"File size ({len(content) / 1024 / 1024:.2f}MB) exceeds maximum allowed size "
            f"({settings.max_upload_bytes / 1024 / 1024:.0f}MB)"
        )

    try:
        rows = read_rows(content, file.filename)
    except UploadError as e:
        progress.start(0)
        progress.fail(e.message)
        raise

    state = progress.start(len(rows), message=f"Importing {len(rows)} rows from {file.filename} ({mode})")

    if settings.import_backend == "celery":
        # Imported here so the inline backend does not need a broker configured
        from estoque.tasks.import_task import import_products_task

        import_products_task.delay(rows, mode)
    else:
        reconciler = ImportReconciler(request.app.state.sessionmaker, allocator, progress, settings.code_width)
        background_tasks.add_task(reconciler.process, rows, mode)

    return ImportProgressResponse(**state)


@router.get("/progress", response_model=ImportProgressResponse)
async def get_import_progress(progress: ImportProgress = Depends(get_progress)):
    """Progress of the current (or last) import."""
    return ImportProgressResponse(**progress.snapshot())
