"""Liveness of the app, its database and the in-process import wizards"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.kita_fees.config import settings
from src.kita_fees.database import get_db
from src.kita_fees.services.import_wizard import IMPORT_WIZARDS

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    body = {
        "status": "ok",
        "environment": settings.APP_ENV,
        "database": "connected",
        "openImportWizards": len(IMPORT_WIZARDS),
    }
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check could not reach the database: {e}")
        body["status"] = "degraded"
        body["database"] = f"error: {e.__class__.__name__}"
        return JSONResponse(status_code=503, content=body)
    return body
