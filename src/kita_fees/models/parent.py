"""Parent model and the child/parent link table"""
import uuid
from datetime import datetime
from typing import List, Optional
from sqlalchemy import String, Boolean, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.kita_fees.models.base import Base


class Parent(Base):
    __tablename__ = "parents"
    
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    first_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
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
    
    child_links: Mapped[List["ChildParent"]] = relationship(
        back_populates="parent",
        cascade="all, delete-orphan"
    )


class ChildParent(Base):
    __tablename__ = "child_parents"
    
    child_id: Mapped[str] = mapped_column(String(36), ForeignKey("children.id"), primary_key=True)
    parent_id: Mapped[str] = mapped_column(String(36), ForeignKey("parents.id"), primary_key=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    
    child = relationship("Child", back_populates="parent_links")
    parent = relationship("Parent", back_populates="child_links")
