from sqlalchemy import Column, Integer, String
from estoque.database import Base


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, unique=True)

    def __repr__(self):
        return f"<Supplier(id={self.id}, name='{self.name}')>"
