"""API dependencies - authentication and database session"""
from typing import Annotated
from fastapi import Depends, HTTPException, Header
from sqlalchemy.orm import Session
from sqlalchemy import select

from src.kita_fees.database import get_db
from src.kita_fees.models.user import User


def get_current_user(
    db: Session = Depends(get_db),
    x_user_id: int = Header(..., description="User ID for simple auth")
) -> User:
    user = db.execute(
        select(User).where(User.id == x_user_id, User.is_active == True)
    ).scalar_one_or_none()
    
    if not user:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    
    return user


def require_importer(current_user: User = Depends(get_current_user)) -> User:
    """Editors and admins may import children"""
    if not current_user.can_import:
        raise HTTPException(status_code=403, detail="Editor or Admin access required")
    return current_user


ImporterUser = Annotated[User, Depends(require_importer)]
DbSession = Annotated[Session, Depends(get_db)]
