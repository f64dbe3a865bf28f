"""UI children list - landing page of the import wizard"""
from typing import Optional
from fastapi import APIRouter, Request, Depends, Query
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session
from sqlalchemy import select, func, or_

from src.kita_fees.database import get_db
from src.kita_fees.models.child import Child
from src.kita_fees.api.endpoints.ui_auth import get_base_context, require_login
from src.kita_fees.templating import templates

router = APIRouter(prefix="/ui", tags=["UI Children"])

PAGE_SIZE = 50


@router.get("/children", response_class=HTMLResponse)
async def children_list(
    request: Request,
    q: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    db: Session = Depends(get_db)
):
    user, redirect = require_login(request, db)
    if redirect:
        return redirect
    
    query = select(Child).where(Child.is_active == True)
    if q:
        pattern = f"%{q.strip()}%"
        query = query.where(or_(
            Child.member_number.ilike(pattern),
            Child.first_name.ilike(pattern),
            Child.last_name.ilike(pattern),
        ))
    
    total = db.execute(select(func.count()).select_from(query.subquery())).scalar() or 0
    children = db.execute(
        query.order_by(Child.last_name, Child.first_name)
        .offset((page - 1) * PAGE_SIZE)
        .limit(PAGE_SIZE)
    ).scalars().all()
    
    return templates.TemplateResponse(request, "children.html", {
        **get_base_context(request, user),
        "children": children,
        "total": total,
        "page": page,
        "page_size": PAGE_SIZE,
        "q": q or "",
    })
