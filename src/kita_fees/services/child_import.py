"""Children CSV import service: parse, preview with duplicate detection, execute"""
import base64
import binascii
import csv
import logging
from datetime import date
from typing import Dict, List, Optional, Tuple
from email_validator import validate_email, EmailNotValidError
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.kita_fees.config import settings
from src.kita_fees.models.child import Child
from src.kita_fees.models.parent import Parent, ChildParent
from src.kita_fees.schemas.child_import import (
    ChildPreview,
    ExecuteRequest,
    ExecuteResult,
    FieldConflict,
    ImportRow,
    ImportRowError,
    ParentAction,
    ParentDecision,
    ParentMatch,
    ParentPreview,
    ParsedFile,
    PreviewAction,
    PreviewRequest,
    PreviewResult,
    PreviewRow,
)
from src.kita_fees.services.csv_normalizer import (
    decode_csv_content,
    detect_separator,
    normalize_text,
    parse_date,
    parse_int,
    read_rows,
)

logger = logging.getLogger(__name__)


class ImportServiceError(ValueError):
    """Parse, preview or execute could not be carried out."""


class CSVParseError(ImportServiceError):
    pass


def _cell(row: List[str], mapping: Dict[str, int], key: str) -> str:
    idx = mapping.get(key)
    if idx is None or idx < 0 or idx >= len(row):
        return ""
    return normalize_text(row[idx])


def _read_rows(text: str, separator: str) -> List[List[str]]:
    try:
        return read_rows(text, separator)
    except csv.Error as e:
        raise CSVParseError(f"Ungültiges CSV-Format: {e}") from e


def _iso(value: Optional[date]) -> str:
    return value.isoformat() if value else ""


def child_snapshot(child: Child) -> ChildPreview:
    return ChildPreview(
        member_number=child.member_number,
        first_name=child.first_name,
        last_name=child.last_name,
        birth_date=_iso(child.birth_date),
        entry_date=_iso(child.entry_date),
        street=child.street or "",
        street_no=child.street_no or "",
        postal_code=child.postal_code or "",
        city=child.city or "",
        legal_hours=child.legal_hours,
        care_hours=child.care_hours,
    )


def detect_field_conflicts(imported: ChildPreview, existing: Child) -> List[FieldConflict]:
    conflicts = []

    for field, label, new_value, existing_value in [
        ("firstName", "Vorname", imported.first_name, existing.first_name),
        ("lastName", "Nachname", imported.last_name, existing.last_name),
        ("birthDate", "Geburtsdatum", imported.birth_date, _iso(existing.birth_date)),
        ("entryDate", "Eintrittsdatum", imported.entry_date, _iso(existing.entry_date)),
    ]:
        if new_value and new_value != existing_value:
            conflicts.append(FieldConflict(
                field=field,
                field_label=label,
                existing_value=existing_value,
                new_value=new_value,
            ))

    for field, label, new_hours, existing_hours in [
        ("legalHours", "Rechtsanspruch", imported.legal_hours, existing.legal_hours),
        ("careHours", "Betreuungszeit", imported.care_hours, existing.care_hours),
    ]:
        if new_hours is not None and new_hours != (existing_hours or 0):
            conflicts.append(FieldConflict(
                field=field,
                field_label=label,
                existing_value=str(existing_hours or 0),
                new_value=str(new_hours),
            ))

    return conflicts


class ChildImportService:
    def __init__(self, db: Session):
        self.db = db

    def parse_csv(self, content: bytes) -> ParsedFile:
        if b"\x00" in content:
            raise CSVParseError("Die Datei ist keine Textdatei (CSV)")

        text = decode_csv_content(content)
        separator = detect_separator(text)
        rows = _read_rows(text, separator)
        if not rows:
            raise CSVParseError("Die Datei enthält keine Daten")

        headers, data_rows = rows[0], rows[1:]
        logger.info(
            f"Parsed children CSV: {len(headers)} columns, {len(data_rows)} rows, separator={separator!r}"
        )
        return ParsedFile(
            headers=headers,
            detected_separator=separator,
            sample_rows=data_rows[:settings.IMPORT_SAMPLE_ROWS],
            total_rows=len(data_rows),
        )

    def preview(self, request: PreviewRequest) -> PreviewResult:
        if not request.file_content:
            raise ImportServiceError("Keine Datei-Daten")
        if not request.mapping:
            raise ImportServiceError("Keine Feld-Zuordnung")

        try:
            content = base64.b64decode(request.file_content, validate=True)
        except (binascii.Error, ValueError):
            raise ImportServiceError("Ungültige Datei-Kodierung")

        separator = request.separator[:1] or ";"
        rows = _read_rows(decode_csv_content(content), separator)
        if request.skip_header and rows:
            rows = rows[1:]

        try:
            preview_rows = [self._process_row(idx, row, request.mapping) for idx, row in enumerate(rows)]
        except SQLAlchemyError as e:
            logger.error(f"Preview lookup failed: {e}")
            raise ImportServiceError(f"Datenbankfehler: {e.__class__.__name__}") from e
        valid_count = sum(1 for r in preview_rows if r.is_valid and not r.is_duplicate)

        logger.info(f"Preview of {len(preview_rows)} rows: {valid_count} valid")
        return PreviewResult(
            rows=preview_rows,
            valid_count=valid_count,
            error_count=len(preview_rows) - valid_count,
        )

    def _process_row(self, index: int, row: List[str], mapping: Dict[str, int]) -> PreviewRow:
        warnings: List[str] = []

        child = ChildPreview(
            member_number=_cell(row, mapping, "memberNumber"),
            first_name=_cell(row, mapping, "firstName"),
            last_name=_cell(row, mapping, "lastName"),
            street=_cell(row, mapping, "street"),
            street_no=_cell(row, mapping, "streetNo"),
            postal_code=_cell(row, mapping, "postalCode"),
            city=_cell(row, mapping, "city"),
        )

        for key, attr, label in [
            ("birthDate", "birth_date", "Geburtsdatum"),
            ("entryDate", "entry_date", "Eintrittsdatum"),
        ]:
            raw = _cell(row, mapping, key)
            try:
                setattr(child, attr, _iso(parse_date(raw)))
            except ValueError:
                warnings.append(f"Ungültiges {label}: {raw}")

        for key, attr in [("legalHours", "legal_hours"), ("careHours", "care_hours")]:
            hours = parse_int(_cell(row, mapping, key))
            if hours is not None and hours > 0:
                setattr(child, attr, hours)

        existing = None
        existing_parents: List[Parent] = []
        if child.member_number:
            existing = self.db.execute(
                select(Child).where(Child.member_number == child.member_number)
            ).scalar_one_or_none()

        is_valid = True
        if existing:
            existing_parents = existing.parents
            warnings.append(f"Kind mit Mitgliedsnummer {child.member_number} existiert bereits")
        else:
            for value, message in [
                (child.member_number, "Mitgliedsnummer fehlt"),
                (child.first_name, "Vorname fehlt"),
                (child.last_name, "Nachname fehlt"),
                (child.birth_date, "Geburtsdatum fehlt"),
                (child.entry_date, "Eintrittsdatum fehlt"),
            ]:
                if not value:
                    warnings.append(message)
                    is_valid = False

        parents: Dict[int, ParentPreview] = {}
        for slot in (1, 2):
            parent = self._extract_parent(row, mapping, slot, warnings)
            if parent is None:
                continue
            if existing:
                self._check_already_linked(parent, existing_parents)
            if not parent.already_linked:
                parent.existing_matches = self._find_parent_matches(parent.first_name, parent.last_name)
            parents[slot] = parent

        # pydantic copies the list on validation, so build the row once all warnings are in
        preview = PreviewRow(
            index=index,
            child=child,
            parent1=parents.get(1),
            parent2=parents.get(2),
            warnings=warnings,
            is_valid=is_valid,
        )
        if existing:
            preview.is_duplicate = True
            preview.existing_child_id = existing.id
            preview.existing_child = child_snapshot(existing)
            preview.field_conflicts = detect_field_conflicts(child, existing)
            preview.action = PreviewAction.UPDATE if preview.field_conflicts else PreviewAction.NO_CHANGE
        return preview

    def _extract_parent(
        self,
        row: List[str],
        mapping: Dict[str, int],
        slot: int,
        warnings: List[str],
    ) -> Optional[ParentPreview]:
        prefix = f"parent{slot}"
        parent = ParentPreview(
            first_name=_cell(row, mapping, f"{prefix}FirstName"),
            last_name=_cell(row, mapping, f"{prefix}LastName"),
            email=_cell(row, mapping, f"{prefix}Email") or None,
            phone=_cell(row, mapping, f"{prefix}Phone") or None,
        )
        if not parent.has_name:
            return None

        if parent.email:
            try:
                validate_email(parent.email, check_deliverability=False)
            except EmailNotValidError:
                warnings.append(f"Ungültige E-Mail für Elternteil {slot}: {parent.email}")
        return parent

    def _check_already_linked(self, parent: ParentPreview, existing_parents: List[Parent]) -> None:
        for existing in existing_parents:
            if (
                existing.first_name.lower() == parent.first_name.lower()
                and existing.last_name.lower() == parent.last_name.lower()
            ):
                parent.already_linked = True
                parent.linked_parent_id = existing.id
                return

    def _find_parent_matches(self, first_name: str, last_name: str) -> List[ParentMatch]:
        if not first_name and not last_name:
            return []

        parents = self.db.execute(
            select(Parent)
            .where(
                func.lower(Parent.first_name) == first_name.lower(),
                func.lower(Parent.last_name) == last_name.lower(),
            )
            .order_by(Parent.last_name, Parent.first_name)
            .limit(settings.IMPORT_PARENT_MATCH_LIMIT)
        ).scalars().all()

        return [
            ParentMatch(id=p.id, first_name=p.first_name, last_name=p.last_name, email=p.email)
            for p in parents
        ]

    def execute(self, request: ExecuteRequest) -> ExecuteResult:
        if not request.rows:
            raise ImportServiceError("Keine Daten zum Importieren")

        result = ExecuteResult()
        decisions: Dict[Tuple[int, int], ParentDecision] = {
            (d.row_index, d.parent_index): d for d in request.parent_decisions
        }

        for row in request.rows:
            try:
                with self.db.begin_nested():
                    errors = self._execute_row(row, decisions, result)
            except SQLAlchemyError as e:
                logger.warning(f"Import of row {row.index} failed: {e}")
                errors = [f"Datenbankfehler: {e.__class__.__name__}"]
            for error in errors:
                result.errors.append(ImportRowError(row_index=row.index, error=error))

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Children import commit failed: {e}")
            raise ImportServiceError(f"Datenbankfehler: {e.__class__.__name__}") from e
        logger.info(
            f"Children import done: created={result.children_created} updated={result.children_updated} "
            f"parents_created={result.parents_created} parents_linked={result.parents_linked} "
            f"errors={len(result.errors)}"
        )
        return result

    def _execute_row(
        self,
        row: ImportRow,
        decisions: Dict[Tuple[int, int], ParentDecision],
        result: ExecuteResult,
    ) -> List[str]:
        """Import one row. Business errors are returned as messages, not raised.

        Counters are only touched after all writes of the row succeeded, so a
        rolled back savepoint never leaves them inflated.
        """
        errors: List[str] = []
        counts = {"created": 0, "updated": 0, "parents_created": 0, "parents_linked": 0}

        if row.existing_child_id:
            child = self.db.get(Child, row.existing_child_id)
            if child is None:
                return ["Kind nicht gefunden"]
            is_new_child = False
            if not row.merge_parents and row.field_updates:
                if self._apply_field_updates(child, row.field_updates):
                    counts["updated"] += 1
        else:
            try:
                birth_date = date.fromisoformat(row.child.birth_date)
            except ValueError:
                return ["Ungültiges Geburtsdatum"]
            try:
                entry_date = date.fromisoformat(row.child.entry_date)
            except ValueError:
                return ["Ungültiges Eintrittsdatum"]

            taken = self.db.execute(
                select(Child.id).where(Child.member_number == row.child.member_number)
            ).first()
            if taken:
                return [f"Mitgliedsnummer {row.child.member_number} existiert bereits"]

            child = Child(
                member_number=row.child.member_number,
                first_name=row.child.first_name,
                last_name=row.child.last_name,
                birth_date=birth_date,
                entry_date=entry_date,
                street=row.child.street or None,
                street_no=row.child.street_no or None,
                postal_code=row.child.postal_code or None,
                city=row.child.city or None,
                legal_hours=row.child.legal_hours,
                care_hours=row.child.care_hours,
                is_active=True,
            )
            self.db.add(child)
            self.db.flush()
            is_new_child = True
            counts["created"] += 1

        for slot, parent in ((1, row.parent1), (2, row.parent2)):
            if parent is None or not parent.first_name or not parent.last_name:
                continue
            if parent.already_linked:
                continue

            parent_id, created, error = self._resolve_parent(parent, decisions.get((row.index, slot)))
            if error:
                errors.append(f"Fehler bei Elternteil {slot}: {error}")
                continue

            already = self.db.get(ChildParent, (child.id, parent_id))
            if already is None:
                self.db.add(ChildParent(
                    child_id=child.id,
                    parent_id=parent_id,
                    is_primary=is_new_child and slot == 1,
                ))
                self.db.flush()
            counts["parents_created" if created else "parents_linked"] += 1

        result.children_created += counts["created"]
        result.children_updated += counts["updated"]
        result.parents_created += counts["parents_created"]
        result.parents_linked += counts["parents_linked"]
        return errors

    def _apply_field_updates(self, child: Child, updates: Dict[str, str]) -> bool:
        updated = False
        for field, value in updates.items():
            if field == "firstName" and value:
                child.first_name = value
                updated = True
            elif field == "lastName" and value:
                child.last_name = value
                updated = True
            elif field in ("birthDate", "entryDate"):
                try:
                    parsed = date.fromisoformat(value)
                except ValueError:
                    continue
                setattr(child, "birth_date" if field == "birthDate" else "entry_date", parsed)
                updated = True
            elif field in ("legalHours", "careHours"):
                hours = parse_int(value)
                if hours is None:
                    continue
                setattr(child, "legal_hours" if field == "legalHours" else "care_hours", hours)
                updated = True
        if updated:
            self.db.flush()
        return updated

    def _resolve_parent(
        self,
        parent: ParentPreview,
        decision: Optional[ParentDecision],
    ) -> Tuple[Optional[str], bool, Optional[str]]:
        """Returns (parent_id, created, error)."""
        if decision and decision.action == ParentAction.LINK and decision.existing_parent_id:
            existing = self.db.get(Parent, decision.existing_parent_id)
            if existing is None:
                return None, False, "Elternteil nicht gefunden"
            return existing.id, False, None

        if parent.email:
            existing = self.db.execute(
                select(Parent).where(
                    func.lower(Parent.first_name) == parent.first_name.lower(),
                    func.lower(Parent.last_name) == parent.last_name.lower(),
                    func.lower(Parent.email) == parent.email.lower(),
                )
            ).scalars().first()
            if existing:
                return existing.id, False, None

        new_parent = Parent(
            first_name=parent.first_name,
            last_name=parent.last_name,
            email=parent.email or None,
            phone=parent.phone or None,
        )
        self.db.add(new_parent)
        self.db.flush()
        return new_parent.id, True, None
