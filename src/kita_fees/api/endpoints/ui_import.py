"""UI children import wizard: upload, column mapping, preview and results"""
import logging
from typing import Optional
from fastapi import APIRouter, Request, Depends, UploadFile, File, Form
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from src.kita_fees.database import get_db
from src.kita_fees.models.user import User
from src.kita_fees.config import settings
from src.kita_fees.api.endpoints.ui_auth import get_base_context, require_login
from src.kita_fees.schemas.child_import import ConflictResolution, ParentAction
from src.kita_fees.services.audit import log_children_import
from src.kita_fees.services.child_import import ChildImportService, ImportServiceError
from src.kita_fees.services.csv_normalizer import parse_date, parse_int
from src.kita_fees.services.field_mapping import SYSTEM_FIELDS, CHILD_FIELDS, PARENT_FIELDS, FIELD_LABELS
from src.kita_fees.services.import_wizard import (
    IMPORT_WIZARDS,
    ImportWizard,
    ImportWizardError,
    WizardStage,
)
from src.kita_fees.services.reconciliation import ReconciliationError
from src.kita_fees.templating import templates

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ui/children/import", tags=["UI Import"])

SESSION_KEY = "import_wizard_id"


def get_wizard(request: Request) -> ImportWizard:
    wizard = IMPORT_WIZARDS.get(request.session.get(SESSION_KEY))
    if wizard is None:
        wizard = IMPORT_WIZARDS.create()
        request.session[SESSION_KEY] = wizard.id
    return wizard


def render(request: Request, user: User, wizard: ImportWizard, validation_error: Optional[str] = None):
    return templates.TemplateResponse(request, "children_import.html", {
        **get_base_context(request, user),
        "wizard": wizard,
        "step": wizard.stage.value,
        "stages": list(WizardStage),
        "validation_error": validation_error,
        "child_fields": CHILD_FIELDS,
        "parent_fields": PARENT_FIELDS,
        "field_labels": FIELD_LABELS,
        "controller": wizard.reconciliation,
        "error_lines": wizard.result_error_lines(),
    })


def require_importer(request: Request, db: Session):
    user, redirect = require_login(request, db)
    if redirect:
        return None, redirect
    if not user.can_import:
        return None, RedirectResponse(url="/ui/children", status_code=302)
    return user, None


@router.get("", response_class=HTMLResponse)
async def import_page(request: Request, db: Session = Depends(get_db)):
    user, redirect = require_importer(request, db)
    if redirect:
        return redirect
    return render(request, user, get_wizard(request))


@router.post("/upload", response_class=HTMLResponse)
async def import_upload(
    request: Request,
    file: UploadFile = File(...),
    db: Session = Depends(get_db)
):
    user, redirect = require_importer(request, db)
    if redirect:
        return redirect
    wizard = get_wizard(request)

    content = await file.read()
    if len(content) > settings.csv_max_upload_bytes:
        return render(request, user, wizard,
                      f"Datei zu groß (maximal {settings.CSV_MAX_UPLOAD_MB} MB)")

    try:
        wizard.upload(ChildImportService(db), file.filename or "", content)
    except ImportWizardError as e:
        return render(request, user, wizard, str(e))
    except ImportServiceError:
        # message is kept on wizard.error
        return render(request, user, wizard)
    return render(request, user, wizard)


@router.post("/preview", response_class=HTMLResponse)
async def import_preview(request: Request, db: Session = Depends(get_db)):
    user, redirect = require_importer(request, db)
    if redirect:
        return redirect
    wizard = get_wizard(request)

    form = await request.form()
    mapping = {}
    for field in SYSTEM_FIELDS:
        raw = str(form.get(f"map_{field.key}", "")).strip()
        mapping[field.key] = int(raw) if raw.isdigit() else None

    try:
        wizard.replace_mapping(mapping)
        wizard.request_preview(ChildImportService(db))
    except ImportWizardError as e:
        return render(request, user, wizard, str(e))
    except ImportServiceError:
        # message is kept on wizard.error
        return render(request, user, wizard)
    return render(request, user, wizard)


@router.post("/rows/{index}/select", response_class=HTMLResponse)
async def import_toggle_row(request: Request, index: int, db: Session = Depends(get_db)):
    user, redirect = require_importer(request, db)
    if redirect:
        return redirect
    wizard = get_wizard(request)

    try:
        wizard.controller().toggle_selected(index)
    except (ImportWizardError, ReconciliationError) as e:
        return render(request, user, wizard, str(e))
    return render(request, user, wizard)


@router.post("/select-all", response_class=HTMLResponse)
async def import_select_all(
    request: Request,
    selected: bool = Form(True),
    db: Session = Depends(get_db)
):
    user, redirect = require_importer(request, db)
    if redirect:
        return redirect
    wizard = get_wizard(request)

    try:
        wizard.controller().select_all(selected)
    except ImportWizardError as e:
        return render(request, user, wizard, str(e))
    return render(request, user, wizard)


@router.post("/rows/{index}/merge", response_class=HTMLResponse)
async def import_toggle_merge(request: Request, index: int, db: Session = Depends(get_db)):
    user, redirect = require_importer(request, db)
    if redirect:
        return redirect
    wizard = get_wizard(request)

    try:
        wizard.controller().toggle_merge(index)
    except (ImportWizardError, ReconciliationError) as e:
        return render(request, user, wizard, str(e))
    return render(request, user, wizard)


@router.post("/rows/{index}/edit", response_class=HTMLResponse)
async def import_edit_row(
    request: Request,
    index: int,
    member_number: str = Form(""),
    first_name: str = Form(""),
    last_name: str = Form(""),
    birth_date: str = Form(""),
    entry_date: str = Form(""),
    legal_hours: str = Form(""),
    care_hours: str = Form(""),
    db: Session = Depends(get_db)
):
    user, redirect = require_importer(request, db)
    if redirect:
        return redirect
    wizard = get_wizard(request)

    try:
        parsed_birth = parse_date(birth_date)
        parsed_entry = parse_date(entry_date)
    except ValueError as e:
        return render(request, user, wizard, f"Ungültiges Datum: {e}")

    try:
        wizard.controller().edit_row(
            index,
            member_number=member_number,
            first_name=first_name,
            last_name=last_name,
            birth_date=parsed_birth.isoformat() if parsed_birth else "",
            entry_date=parsed_entry.isoformat() if parsed_entry else "",
            legal_hours=parse_int(legal_hours),
            care_hours=parse_int(care_hours),
        )
    except (ImportWizardError, ReconciliationError) as e:
        return render(request, user, wizard, str(e))
    return render(request, user, wizard)


@router.post("/rows/{index}/conflicts", response_class=HTMLResponse)
async def import_resolve_conflict(
    request: Request,
    index: int,
    field: str = Form(...),
    resolution: ConflictResolution = Form(...),
    db: Session = Depends(get_db)
):
    user, redirect = require_importer(request, db)
    if redirect:
        return redirect
    wizard = get_wizard(request)

    try:
        wizard.controller().resolve_conflict(index, field, resolution)
    except (ImportWizardError, ReconciliationError) as e:
        return render(request, user, wizard, str(e))
    return render(request, user, wizard)


@router.post("/rows/{index}/parents/{slot}", response_class=HTMLResponse)
async def import_parent_decision(
    request: Request,
    index: int,
    slot: int,
    action: ParentAction = Form(...),
    existing_parent_id: str = Form(""),
    db: Session = Depends(get_db)
):
    user, redirect = require_importer(request, db)
    if redirect:
        return redirect
    wizard = get_wizard(request)

    try:
        wizard.controller().set_parent_decision(index, slot, action, existing_parent_id or None)
    except (ImportWizardError, ReconciliationError) as e:
        return render(request, user, wizard, str(e))
    return render(request, user, wizard)


@router.post("/execute", response_class=HTMLResponse)
async def import_execute(request: Request, db: Session = Depends(get_db)):
    user, redirect = require_importer(request, db)
    if redirect:
        return redirect
    wizard = get_wizard(request)

    try:
        result = wizard.execute(ChildImportService(db))
    except (ImportWizardError, ReconciliationError) as e:
        return render(request, user, wizard, str(e))
    except ImportServiceError:
        return render(request, user, wizard)

    log_children_import(db, user, result, wizard.file_name)
    return render(request, user, wizard)


@router.post("/back", response_class=HTMLResponse)
async def import_back(request: Request, db: Session = Depends(get_db)):
    user, redirect = require_importer(request, db)
    if redirect:
        return redirect
    wizard = get_wizard(request)

    try:
        wizard.back()
    except ImportWizardError as e:
        return render(request, user, wizard, str(e))
    return render(request, user, wizard)


@router.post("/dismiss-error", response_class=HTMLResponse)
async def import_dismiss_error(request: Request, db: Session = Depends(get_db)):
    user, redirect = require_importer(request, db)
    if redirect:
        return redirect
    wizard = get_wizard(request)
    wizard.dismiss_error()
    return render(request, user, wizard)


@router.post("/cancel")
async def import_cancel(request: Request, db: Session = Depends(get_db)):
    user, redirect = require_importer(request, db)
    if redirect:
        return redirect

    wizard_id = request.session.pop(SESSION_KEY, None)
    wizard = IMPORT_WIZARDS.get(wizard_id)
    if wizard:
        wizard.cancel()
    IMPORT_WIZARDS.discard(wizard_id)
    return RedirectResponse(url="/ui/children", status_code=303)
