"""Database models"""
from src.kita_fees.models.base import Base
from src.kita_fees.models.user import User
from src.kita_fees.models.child import Child
from src.kita_fees.models.parent import Parent, ChildParent
from src.kita_fees.models.audit_log import AuditLog

__all__ = ["Base", "User", "Child", "Parent", "ChildParent", "AuditLog"]
