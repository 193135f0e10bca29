# db/base_class.py
from datetime import datetime
from sqlalchemy import Column, DateTime
from sqlalchemy.orm import as_declarative, declared_attr


@as_declarative()
class Base:
    """Declarative base; tables default to the lowercased class name."""

    @declared_attr
    def __tablename__(cls) -> str:
        return cls.__name__.lower()

    # Row bookkeeping, separate from the domain timestamps
    # (assigned_at, ledger timestamp, last_assigned_at)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
