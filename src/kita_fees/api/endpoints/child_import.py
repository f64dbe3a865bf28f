"""Children CSV import endpoints: parse, preview and execute"""
from fastapi import APIRouter, UploadFile, File, HTTPException

from src.kita_fees.api.deps import ImporterUser, DbSession
from src.kita_fees.config import settings
from src.kita_fees.schemas.child_import import (
    ExecuteRequest,
    ExecuteResult,
    ParsedFile,
    PreviewRequest,
    PreviewResult,
)
from src.kita_fees.services.audit import log_children_import
from src.kita_fees.services.child_import import ChildImportService, ImportServiceError
from src.kita_fees.services.import_wizard import ALLOWED_EXTENSIONS

router = APIRouter(prefix="/children/import")


@router.post("/parse", response_model=ParsedFile)
async def parse_children_csv(
    db: DbSession,
    current_user: ImporterUser,
    file: UploadFile = File(...)
):
    """
    Parse an uploaded CSV file.
    Returns headers, detected separator, the first sample rows and the row count.
    """
    if not file.filename or not file.filename.lower().endswith(ALLOWED_EXTENSIONS):
        raise HTTPException(status_code=400, detail="Datei muss eine CSV-Datei sein")
    
    content = await file.read()
    if len(content) > settings.csv_max_upload_bytes:
        raise HTTPException(status_code=400, detail="Datei zu groß")
    
    try:
        return ChildImportService(db).parse_csv(content)
    except ImportServiceError as e:
        raise HTTPException(status_code=400, detail=f"Fehler beim Parsen der CSV: {e}")


@router.post("/preview", response_model=PreviewResult)
async def preview_children_import(
    db: DbSession,
    current_user: ImporterUser,
    request: PreviewRequest
):
    """
    Apply the field mapping to the whole file and classify every row
    as valid, invalid or duplicate of a stored child.
    """
    try:
        return ChildImportService(db).preview(request)
    except ImportServiceError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/execute", response_model=ExecuteResult)
async def execute_children_import(
    db: DbSession,
    current_user: ImporterUser,
    request: ExecuteRequest
):
    """
    Create new children, merge into existing ones and link parents.
    Row-level failures are reported in the result, not as HTTP errors.
    """
    try:
        result = ChildImportService(db).execute(request)
    except ImportServiceError as e:
        raise HTTPException(status_code=400, detail=str(e))
    
    log_children_import(db, current_user, result)
    
    return result
