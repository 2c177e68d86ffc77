from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from estoque.config import settings
from estoque.database import get_db
from estoque.deps import get_allocator, get_current_principal, get_recently_deleted
from estoque.schemas import (
    DeleteAllRequest, DeleteAllResponse, DeletedProduct, ErrorResponse, FieldUpdate, NextCodeResponse,
    ProductCreate, ProductListResponse, ProductResponse,
)
from estoque.services import catalog
from estoque.services.code_allocator import CodeAllocator
from estoque.services.security import Principal
from estoque.services.undo_buffer import RecentlyDeleted

router = APIRouter(
    prefix="/api/products",
    tags=["products"],
    dependencies=[Depends(get_current_principal)],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)


@router.get("", response_model=ProductListResponse)
async def list_products(
    name: Optional[str] = Query(None, description="Filter by name (partial match)"),
    db: AsyncSession = Depends(get_db),
):
    """List products ordered by code."""
    products = await catalog.list_products(db, name)
    return ProductListResponse(
        items=[ProductResponse.model_validate(p) for p in products],
        total=len(products),
    )


@router.get("/next-code", response_model=NextCodeResponse)
async def next_code(
    db: AsyncSession = Depends(get_db),
    allocator: CodeAllocator = Depends(get_allocator),
):
    """Preview the code the next created product would get. Does not reserve it."""
    code = await allocator.peek_next_code(db)
    return NextCodeResponse(code=code, strategy=allocator.strategy, exact=allocator.exact_peek)


@router.get("/recently-deleted", response_model=List[DeletedProduct])
async def recently_deleted(buffer: RecentlyDeleted = Depends(get_recently_deleted)):
    """Products that can still be restored, oldest first."""
    return buffer.entries()


@router.post("/undo", response_model=ProductResponse, status_code=201)
async def undo_delete(
    db: AsyncSession = Depends(get_db),
    buffer: RecentlyDeleted = Depends(get_recently_deleted),
    allocator: CodeAllocator = Depends(get_allocator),
):
    """Restore the most recently deleted product."""
    product = await catalog.restore_last_deleted(db, buffer, allocator)
    return ProductResponse.model_validate(product)


@router.post("/delete-all", response_model=DeleteAllResponse)
async def delete_all_products(
    body: DeleteAllRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    allocator: CodeAllocator = Depends(get_allocator),
):
    """Delete every product. Requires the admin's username and password again."""
    count = await catalog.delete_all_products(db, allocator, principal, body.usuario, body.senha)
    return DeleteAllResponse(message=f"Deleted {count} products", deleted_count=count)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    """Get a single product by ID."""
    return ProductResponse.model_validate(await catalog.get_product(db, product_id))


@router.post("", response_model=ProductResponse, status_code=201)
async def create_product(
    product: ProductCreate,
    db: AsyncSession = Depends(get_db),
    allocator: CodeAllocator = Depends(get_allocator),
):
    """Create a new product, allocating a code when none is given."""
    db_product = await catalog.create_product(db, allocator, product.model_dump(), settings.code_width)
    return ProductResponse.model_validate(db_product)


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product_field(
    product_id: int,
    update: FieldUpdate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    allocator: CodeAllocator = Depends(get_allocator),
):
    """Change a single field of a product."""
    product = await catalog.update_field(
        db, product_id, update.field, update.value, principal, settings.code_width, allocator
    )
    return ProductResponse.model_validate(product)


@router.delete("/{product_id}", response_model=DeletedProduct)
async def delete_product(
    product_id: int,
    db: AsyncSession = Depends(get_db),
    buffer: RecentlyDeleted = Depends(get_recently_deleted),
):
    """Delete a single product; it can be restored with /undo."""
    return await catalog.delete_product(db, product_id, buffer)
