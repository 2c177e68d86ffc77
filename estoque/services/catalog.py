import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from estoque.errors import (
    AuthError,
    DuplicateCodeError,
    DuplicateSupplierError,
    EstoqueError,
    NotFoundError,
    ValidationError,
    storage_errors,
)
from estoque.models.product import Product
from estoque.models.supplier import Supplier
from estoque.services.code_allocator import DEFAULT_WIDTH, CodeAllocator
from estoque.services.security import Principal, authenticate, require_admin
from estoque.services.undo_buffer import RecentlyDeleted
from estoque.utils.sheet_parser import (
    compute_markup,
    normalize_code,
    parse_integer,
    try_parse_decimal,
)

logger = logging.getLogger(__name__)

TEXT_COLUMNS = ("name", "supplier", "sku", "color", "size", "markup", "barcode")
EDITABLE_FIELDS = ("code",) + TEXT_COLUMNS + ("stock", "cost_price", "sale_price", "year")
ADMIN_ONLY_FIELDS = ("code", "cost_price")


async def commit_changes(session: AsyncSession, on_integrity=DuplicateCodeError, conflict: Optional[str] = None):
    try:
        with storage_errors(on_integrity, conflict):
            await session.commit()
    except EstoqueError:
        await session.rollback()
        raise


async def list_products(session: AsyncSession, name: Optional[str] = None) -> List[Product]:
    query = select(Product)
    if name:
        query = query.where(Product.name.ilike(f"%{name}%"))
    with storage_errors():
        result = await session.execute(query.order_by(Product.code))
    return list(result.scalars().all())


async def get_product(session: AsyncSession, product_id: int) -> Product:
    with storage_errors():
        product = await session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


async def find_by_code(session: AsyncSession, code: str) -> Optional[Product]:
    with storage_errors():
        result = await session.execute(select(Product).where(Product.code == code))
    return result.scalar_one_or_none()


async def insert_product(session: AsyncSession, fields: Dict[str, Any], refresh: bool = True) -> Product:
    """Add and commit a product; a taken code raises DuplicateCodeError."""
    product = Product(**fields)
    session.add(product)
    await commit_changes(session, DuplicateCodeError, fields.get("code"))
    if refresh:
        # Load server-side timestamps
        await session.refresh(product)
    return product


async def create_product(session: AsyncSession, allocator: CodeAllocator, data: Dict[str, Any],
                         width: int = DEFAULT_WIDTH) -> Product:
    """
    Create a single product.

    An explicit ``code`` is used as given (after numeric normalization),
    otherwise the allocator supplies the next one.
    """
    fields = {k: v for k, v in data.items() if k in EDITABLE_FIELDS and v is not None}
    code = normalize_code(fields.pop("code", ""), width)
    if code:
        await allocator.claim_code(session, code)
    else:
        code = await allocator.allocate_code(session)
    fields["code"] = code
    if not fields.get("markup"):
        fields["markup"] = compute_markup(fields.get("cost_price") or 0, fields.get("sale_price") or 0)

    product = await insert_product(session, fields)
    logger.info("Created product %s (%s)", product.code, product.name)
    return product


def _coerce_field(field: str, value: Any, width: int) -> Any:
    if field == "code":
        code = normalize_code(value, width)
        if not code:
            raise ValidationError("Code cannot be empty")
        return code
    if field in TEXT_COLUMNS:
        return "" if value is None else str(value).strip()
    if field in ("cost_price", "sale_price"):
        parsed = try_parse_decimal(value)
        if parsed is None:
            raise ValidationError(f"Invalid number for {field}: {value!r}")
        return parsed
    if field == "stock":
        parsed = parse_integer(value)
        if parsed is None:
            raise ValidationError(f"Invalid integer for stock: {value!r}")
        return parsed
    # year
    if value is None or str(value).strip() == "":
        return None
    parsed = parse_integer(value)
    if parsed is None:
        raise ValidationError(f"Invalid year: {value!r}")
    return parsed


async def update_field(session: AsyncSession, product_id: int, field: str, value: Any,
                       principal: Principal, width: int = DEFAULT_WIDTH,
                       allocator: Optional[CodeAllocator] = None) -> Product:
    """Patch one column of a product; editing a price recomputes the markup."""
    if field not in EDITABLE_FIELDS:
        raise ValidationError(f"Field '{field}' cannot be edited")
    if field in ADMIN_ONLY_FIELDS:
        require_admin(principal)

    coerced = _coerce_field(field, value, width)
    product = await get_product(session, product_id)
    setattr(product, field, coerced)
    if field in ("cost_price", "sale_price"):
        product.markup = compute_markup(product.cost_price, product.sale_price)
    if field == "code" and allocator is not None:
        await allocator.claim_code(session, coerced)

    await commit_changes(session, DuplicateCodeError, coerced if field == "code" else None)
    await session.refresh(product)
    return product


async def delete_product(session: AsyncSession, product_id: int, recently_deleted: RecentlyDeleted) -> Dict[str, Any]:
    """Delete a product, keeping its snapshot for undo."""
    product = await get_product(session, product_id)
    snapshot = product.snapshot()

    await session.delete(product)
    await commit_changes(session)
    recently_deleted.push(snapshot)
    logger.info("Deleted product %s (%s)", snapshot["code"], snapshot["name"])
    return snapshot


async def restore_last_deleted(session: AsyncSession, recently_deleted: RecentlyDeleted,
                               allocator: Optional[CodeAllocator] = None) -> Product:
    """Re-insert the most recently deleted product under its original code."""
    snapshot = recently_deleted.peek()
    fields = {k: snapshot[k] for k in Product.RESTORABLE_FIELDS}
    if allocator is not None:
        await allocator.claim_code(session, fields["code"])

    product = await insert_product(session, fields)
    recently_deleted.pop()
    logger.info("Restored product %s (%s)", product.code, product.name)
    return product


async def delete_all_products(session: AsyncSession, allocator: CodeAllocator, principal: Principal,
                              username: str, password: str) -> int:
    """
    Wipe the catalog after re-authenticating the caller by credential.

    The credentials must belong to the same user as the session token and
    that user must be an admin. The delete and the allocator reset share one
    transaction.
    """
    confirmed = await authenticate(session, username, password)
    if confirmed.id != principal.id:
        raise AuthError("Credentials do not match the current session")
    require_admin(confirmed)

    with storage_errors():
        result = await session.execute(delete(Product))
        await allocator.reset(session)
    await commit_changes(session)
    deleted = result.rowcount or 0
    logger.warning("Catalog wiped by %s: %s products deleted", confirmed.username, deleted)
    return deleted


async def list_suppliers(session: AsyncSession) -> List[Supplier]:
    with storage_errors():
        result = await session.execute(select(Supplier).order_by(Supplier.name))
    return list(result.scalars().all())


async def create_supplier(session: AsyncSession, name: str) -> Supplier:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Supplier name is required")
    supplier = Supplier(name=name)
    session.add(supplier)
    await commit_changes(session, DuplicateSupplierError, f"Supplier '{name}' already exists")
    return supplier


async def delete_supplier(session: AsyncSession, supplier_id: int) -> None:
    with storage_errors():
        supplier = await session.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFoundError("Supplier not found")
    await session.delete(supplier)
    await commit_changes(session)
