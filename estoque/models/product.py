from sqlalchemy import Column, Integer, String, Numeric, DateTime
from sqlalchemy.sql import func
from estoque.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(32), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False, default="", index=True)
    supplier = Column(String(255), nullable=False, default="")
    sku = Column(String(255), nullable=False, default="")
    color = Column(String(100), nullable=False, default="")
    size = Column(String(50), nullable=False, default="")
    stock = Column(Integer, nullable=False, default=0)
    cost_price = Column(Numeric(12, 2), nullable=False, default=0)
    sale_price = Column(Numeric(12, 2), nullable=False, default=0)
    markup = Column(String(32), nullable=False, default="")
    barcode = Column(String(64), nullable=False, default="")
    year = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Columns copied into the recently-deleted buffer and written back on undo
    RESTORABLE_FIELDS = (
        "code", "name", "supplier", "sku", "color", "size", "stock",
        "cost_price", "sale_price", "markup", "barcode", "year",
    )

    def snapshot(self) -> dict:
        return {field: getattr(self, field) for field in ("id",) + self.RESTORABLE_FIELDS}

    def __repr__(self):
        return f"<Product(id={self.id}, code='{self.code}', name='{self.name}')>"
