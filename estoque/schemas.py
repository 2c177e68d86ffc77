from pydantic import BaseModel, ConfigDict, Field
from typing import Any, List, Optional
from decimal import Decimal
from datetime import datetime

from estoque.utils.sheet_parser import MAX_INTEGER


# Product Schemas
class ProductBase(BaseModel):
    name: str = Field("", max_length=255, description="Product name")
    supplier: str = Field("", max_length=255, description="Supplier name (free text)")
    sku: str = Field("", max_length=255)
    color: str = Field("", max_length=100)
    size: str = Field("", max_length=50)
    stock: int = Field(0, ge=-MAX_INTEGER, le=MAX_INTEGER, description="Units in stock")
    cost_price: Decimal = Field(Decimal("0"), max_digits=12, decimal_places=2)
    sale_price: Decimal = Field(Decimal("0"), max_digits=12, decimal_places=2)
    markup: str = Field("", max_length=32, description="Markup percentage; computed when blank")
    barcode: str = Field("", max_length=64)
    year: Optional[int] = Field(None, ge=-MAX_INTEGER, le=MAX_INTEGER)


class ProductCreate(ProductBase):
    code: Optional[str] = Field(None, max_length=32, description="Business code; allocated when omitted")


class FieldUpdate(BaseModel):
    field: str = Field(..., description="Column to change")
    value: Any = None


class ProductResponse(ProductBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DeletedProduct(ProductBase):
    id: int
    code: str


class NextCodeResponse(BaseModel):
    code: str
    strategy: str
    exact: bool = Field(..., description="False when another caller may take the code first")


class DeleteAllRequest(BaseModel):
    usuario: str
    senha: str


class DeleteAllResponse(BaseModel):
    message: str
    deleted_count: int


# Supplier Schemas
class SupplierCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class SupplierResponse(SupplierCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int


# Import Progress Schemas
class ImportProgressResponse(BaseModel):
    total: int = 0
    atual: int = 0
    status: str = "idle"  # idle, running, done, error
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    message: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


# Auth Schemas
class Credentials(BaseModel):
    usuario: str
    senha: str


class RegisterRequest(Credentials):
    nivel: str = "comum"


class TokenResponse(BaseModel):
    token: str


class UserResponse(BaseModel):
    id: int
    usuario: str
    nivel: str


class ProfileResponse(BaseModel):
    usuario: str
    nivel: str


class ErrorResponse(BaseModel):
    detail: str
    error: str


class ProductListResponse(BaseModel):
    items: List[ProductResponse]
    total: int
