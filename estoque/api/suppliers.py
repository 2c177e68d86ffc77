from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from estoque.database import get_db
from estoque.deps import get_current_principal
from estoque.schemas import ErrorResponse, SupplierCreate, SupplierResponse
from estoque.services import catalog

router = APIRouter(
    prefix="/api/suppliers",
    tags=["suppliers"],
    dependencies=[Depends(get_current_principal)],
    responses={401: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)


@router.get("", response_model=List[SupplierResponse])
async def list_suppliers(db: AsyncSession = Depends(get_db)):
    """List suppliers by name."""
    suppliers = await catalog.list_suppliers(db)
    return [SupplierResponse.model_validate(s) for s in suppliers]


@router.post("", response_model=SupplierResponse, status_code=201)
async def create_supplier(supplier: SupplierCreate, db: AsyncSession = Depends(get_db)):
    """Create a new supplier."""
    db_supplier = await catalog.create_supplier(db, supplier.name)
    return SupplierResponse.model_validate(db_supplier)


@router.delete("/{supplier_id}", status_code=204)
async def delete_supplier(supplier_id: int, db: AsyncSession = Depends(get_db)):
    """Delete a supplier. Products keep the supplier name they were saved with."""
    await catalog.delete_supplier(db, supplier_id)
    return None
