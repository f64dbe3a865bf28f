"""UI Authentication endpoints - login/logout with session management"""
from datetime import datetime, timezone
from typing import Optional, Tuple
from fastapi import APIRouter, Request, Form, Depends
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session
from sqlalchemy import select

from src.kita_fees.database import get_db
from src.kita_fees.models.user import User
from src.kita_fees.config import settings
from src.kita_fees.services.password import verify_password
from src.kita_fees.templating import templates

router = APIRouter(prefix="/ui", tags=["UI Auth"])


def get_base_context(request: Request, user: Optional[User] = None):
    return {
        "request": request,
        "current_user": user,
        "app_env": settings.APP_ENV,
        "is_production": settings.is_production,
    }


def get_current_user(request: Request, db: Session) -> Optional[User]:
    user_id = request.session.get("user_id")
    if not user_id:
        return None
    return db.execute(
        select(User).where(User.id == user_id, User.is_active == True)
    ).scalar_one_or_none()


def require_login(request: Request, db: Session) -> Tuple[Optional[User], Optional[RedirectResponse]]:
    user = get_current_user(request, db)
    if not user:
        return None, RedirectResponse(url="/ui/login", status_code=302)
    return user, None


@router.get("/login", response_class=HTMLResponse)
async def login_page(request: Request, error: Optional[str] = None):
    if request.session.get("user_id"):
        return RedirectResponse(url="/ui/children", status_code=302)
    
    return templates.TemplateResponse(request, "login.html", {
        **get_base_context(request),
        "error": error,
    })


@router.post("/login")
async def login(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_db)
):
    user = db.execute(
        select(User).where(User.email == email.lower().strip(), User.is_active == True)
    ).scalar_one_or_none()
    
    if not user or not verify_password(password, user.password_hash):
        return templates.TemplateResponse(request, "login.html", {
            **get_base_context(request),
            "error": "E-Mail-Adresse oder Passwort ist falsch",
            "email": email,
        }, status_code=401)
    
    user.last_login_at = datetime.now(timezone.utc)
    db.commit()

    request.session["user_id"] = user.id
    request.session["user_role"] = user.role.value
    
    return RedirectResponse(url="/ui/children", status_code=302)


@router.get("/logout")
async def logout(request: Request):
    request.session.clear()
    return RedirectResponse(url="/ui/login", status_code=302)
