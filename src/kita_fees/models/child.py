"""Child model - children enrolled in the Kita"""
import uuid
from datetime import date, datetime
from typing import List, Optional
from sqlalchemy import String, Boolean, Integer, Date, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.kita_fees.models.base import Base


class Child(Base):
    __tablename__ = "children"
    
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    member_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    birth_date: Mapped[date] = mapped_column(Date, nullable=False)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    street: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    street_no: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    legal_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    care_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )
    
    parent_links: Mapped[List["ChildParent"]] = relationship(
        back_populates="child",
        cascade="all, delete-orphan"
    )

    @property
    def parents(self) -> list:
        return [link.parent for link in self.parent_links]
