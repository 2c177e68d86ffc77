import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from estoque.api import auth, imports, products, suppliers
from estoque.config import settings
from estoque.database import build_engine, build_sessionmaker, create_tables
from estoque.errors import EstoqueError
from estoque.schemas import ErrorResponse
from estoque.services.code_allocator import build_allocator
from estoque.services.import_progress import ImportProgress
from estoque.services.undo_buffer import RecentlyDeleted

logging.basicConfig(level=settings.log_level, format=settings.log_format)
logger = logging.getLogger(__name__)


def build_progress() -> ImportProgress:
    if settings.import_backend == "celery":
        from estoque.services.import_progress import RedisImportProgress
        from estoque.tasks.celery_app import make_redis_client

        return RedisImportProgress(make_redis_client())
    return ImportProgress()


def create_app(engine: Optional[AsyncEngine] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db_engine = engine or build_engine(settings.database_url)
        app.state.engine = db_engine
        app.state.sessionmaker = build_sessionmaker(db_engine)
        app.state.code_allocator = build_allocator(settings.code_strategy, settings.code_width)
        app.state.import_progress = build_progress()
        app.state.recently_deleted = RecentlyDeleted(settings.undo_capacity)

        # Tables are created here; there is no migration tool
        await create_tables(db_engine)
        async with app.state.sessionmaker() as session:
            await app.state.code_allocator.setup(session)
        logger.info(
            "Started with code strategy %s, import backend %s",
            settings.code_strategy, settings.import_backend,
        )

        yield

        await db_engine.dispose()

    app = FastAPI(
        title=settings.api_title,
        description="Product catalog with spreadsheet import and code allocation",
        version=settings.api_version,
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router)
    app.include_router(products.router)
    app.include_router(suppliers.router)
    app.include_router(imports.router)

    @app.exception_handler(EstoqueError)
    async def estoque_error_handler(request: Request, exc: EstoqueError):
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(detail=exc.message, error=exc.kind).model_dump(),
            headers=headers,
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        content = {"detail": "Internal server error", "error": "internal"}
        if settings.debug:
            content["message"] = str(exc)
        return JSONResponse(status_code=500, content=content)

    @app.get("/")
    async def root():
        return {"status": "ok", "app_name": settings.api_title, "version": settings.api_version}

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("estoque.main:app", host="0.0.0.0", port=8000)
