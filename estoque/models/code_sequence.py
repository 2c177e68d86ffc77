from sqlalchemy import BigInteger, Column, String
from estoque.database import Base


class CodeSequence(Base):
    """Persistent counter behind the sequence code allocator."""

    __tablename__ = "code_sequences"

    name = Column(String(64), primary_key=True)
    value = Column(BigInteger, nullable=False, default=0)
