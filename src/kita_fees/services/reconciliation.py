"""Preview reconciliation: turns classified preview rows into an import plan.

Each preview row gets one ``RowState`` keyed by its stable ``index``. The
row's status is derived from the row itself plus a single ``included``
flag, so a row can be selected for creation or flagged for merging, never
both.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from src.kita_fees.schemas.child_import import (
    ChildPreview,
    ConflictResolution,
    ExecuteRequest,
    ImportRow,
    ParentAction,
    ParentDecision,
    PreviewAction,
    PreviewResult,
    PreviewRow,
)

logger = logging.getLogger(__name__)

DAILY_HOURS_THRESHOLD = 12
WORKDAYS_PER_WEEK = 5

PARENT_SLOTS = (1, 2)

EDITABLE_CHILD_FIELDS = {
    "member_number",
    "first_name",
    "last_name",
    "birth_date",
    "entry_date",
    "legal_hours",
    "care_hours",
}


def normalize_care_hours(hours: Optional[int]) -> Optional[int]:
    """Values below 12 are daily hours and become weekly hours (x5).

    Apply exactly once, when building the submission. It is not idempotent
    for small values.
    """
    if hours is None:
        return None
    if hours < DAILY_HOURS_THRESHOLD:
        return hours * WORKDAYS_PER_WEEK
    return hours


def has_required_fields(child: ChildPreview, is_duplicate: bool) -> bool:
    if is_duplicate:
        return bool(child.member_number.strip())
    return all(
        value.strip()
        for value in (
            child.member_number,
            child.first_name,
            child.last_name,
            child.birth_date,
            child.entry_date,
        )
    )


class ReconciliationError(ValueError):
    """Operation not allowed for the current state of a row."""


class NothingToImportError(ReconciliationError):
    pass


class RowStatus(str, enum.Enum):
    ERROR = "error"
    NEW = "new"
    DUPLICATE = "duplicate"
    MERGING = "merging"


@dataclass
class RowState:
    row: PreviewRow
    included: bool = False
    parent_decisions: Dict[int, ParentDecision] = field(default_factory=dict)
    resolutions: Dict[str, ConflictResolution] = field(default_factory=dict)

    @property
    def index(self) -> int:
        return self.row.index

    @property
    def can_merge(self) -> bool:
        return self.row.is_duplicate and bool(self.row.existing_child_id)

    @property
    def status(self) -> RowStatus:
        if self.row.is_duplicate:
            if self.included and self.can_merge:
                return RowStatus.MERGING
            return RowStatus.DUPLICATE
        if not self.row.is_valid:
            return RowStatus.ERROR
        return RowStatus.NEW

    @property
    def is_selected(self) -> bool:
        return self.included and self.status == RowStatus.NEW

    @property
    def is_merging(self) -> bool:
        return self.status == RowStatus.MERGING

    def resolution(self, field_name: str) -> ConflictResolution:
        return self.resolutions.get(field_name, ConflictResolution.EXISTING)

    def field_updates(self) -> Dict[str, str]:
        updates = {}
        for conflict in self.row.field_conflicts:
            if self.resolution(conflict.field) == ConflictResolution.NEW:
                updates[conflict.field] = conflict.new_value
        return updates

    def decision(self, slot: int) -> ParentDecision:
        decision = self.parent_decisions.get(slot)
        if decision is None:
            decision = ParentDecision(row_index=self.index, parent_index=slot, action=ParentAction.CREATE)
        return decision


class ReconciliationController:
    def __init__(self, preview: PreviewResult):
        self.states: Dict[int, RowState] = {}
        self.duplicate_member_numbers: Set[str] = set()
        for row in preview.rows:
            row = row.model_copy(deep=True)
            state = RowState(row=row)
            state.included = row.is_valid and not row.is_duplicate
            self.states[row.index] = state
            if row.is_duplicate and row.child.member_number:
                self.duplicate_member_numbers.add(row.child.member_number)
        self.valid_count = 0
        self.error_count = 0
        self._recount()

    @property
    def rows(self) -> List[RowState]:
        return [self.states[i] for i in sorted(self.states)]

    @property
    def selected_indices(self) -> Set[int]:
        return {i for i, s in self.states.items() if s.is_selected}

    @property
    def merge_indices(self) -> Set[int]:
        return {i for i, s in self.states.items() if s.is_merging}

    @property
    def submit_count(self) -> int:
        return len(self.selected_indices) + len(self.merge_indices)

    def get(self, index: int) -> RowState:
        if index not in self.states:
            raise ReconciliationError(f"Zeile {index + 1} existiert nicht")
        return self.states[index]

    def toggle_selected(self, index: int) -> bool:
        state = self.get(index)
        if state.status != RowStatus.NEW:
            raise ReconciliationError(f"Zeile {index + 1} kann nicht als neu ausgewählt werden")
        state.included = not state.included
        return state.included

    def select_all(self, selected: bool = True) -> None:
        for state in self.states.values():
            if state.status == RowStatus.NEW:
                state.included = selected

    def toggle_merge(self, index: int) -> bool:
        state = self.get(index)
        if not state.can_merge:
            raise ReconciliationError(f"Zeile {index + 1} kann nicht zusammengeführt werden")
        state.included = not state.included
        return state.included

    def edit_row(self, index: int, **fields) -> RowState:
        state = self.get(index)
        unknown = set(fields) - EDITABLE_CHILD_FIELDS
        if unknown:
            raise ReconciliationError(f"Nicht editierbare Felder: {', '.join(sorted(unknown))}")

        row = state.row
        old_member_number = row.child.member_number
        for name, value in fields.items():
            if isinstance(value, str):
                value = value.strip()
            setattr(row.child, name, value)

        was_duplicate = row.is_duplicate
        was_valid = row.is_valid
        renumbered = row.child.member_number != old_member_number
        if renumbered:
            row.is_duplicate = self._is_duplicate(index, row.child.member_number)

        row.is_valid = has_required_fields(row.child, row.is_duplicate)

        if was_duplicate and renumbered:
            # the stored child behind the new number is unknown until the next preview
            row.existing_child_id = None
            row.existing_child = None
            row.field_conflicts = []
            row.action = PreviewAction.NO_CHANGE
            state.resolutions.clear()

        if was_duplicate and not row.is_duplicate:
            row.action = PreviewAction.CREATE
            state.included = row.is_valid
        elif was_duplicate and renumbered:
            state.included = False
        elif row.is_duplicate and not was_duplicate:
            state.included = False
        elif not row.is_duplicate and row.is_valid != was_valid:
            state.included = row.is_valid

        logger.debug(
            f"Row {index} edited: duplicate={row.is_duplicate} valid={row.is_valid} status={state.status.value}"
        )
        self._recount()
        return state

    def resolve_conflict(self, index: int, field_name: str, resolution: ConflictResolution) -> None:
        state = self.get(index)
        if not state.is_merging:
            raise ReconciliationError(f"Zeile {index + 1} wird nicht zusammengeführt")
        if field_name not in {c.field for c in state.row.field_conflicts}:
            raise ReconciliationError(f"Kein Konflikt für Feld {field_name} in Zeile {index + 1}")
        state.resolutions[field_name] = ConflictResolution(resolution)

    def set_parent_decision(
        self,
        index: int,
        slot: int,
        action: ParentAction,
        existing_parent_id: Optional[str] = None,
    ) -> ParentDecision:
        state = self.get(index)
        if slot not in PARENT_SLOTS:
            raise ReconciliationError(f"Ungültiger Elternteil: {slot}")
        if state.row.parent(slot) is None:
            raise ReconciliationError(f"Zeile {index + 1} hat keinen Elternteil {slot}")
        action = ParentAction(action)
        if action == ParentAction.LINK and not existing_parent_id:
            raise ReconciliationError("Zum Verknüpfen muss ein bestehender Elternteil gewählt werden")

        decision = ParentDecision(
            row_index=index,
            parent_index=slot,
            action=action,
            existing_parent_id=existing_parent_id if action == ParentAction.LINK else None,
        )
        state.parent_decisions[slot] = decision
        return decision

    def build_execute_request(self) -> ExecuteRequest:
        rows: List[ImportRow] = []
        decisions: List[ParentDecision] = []

        for state in self.rows:
            if state.is_selected:
                rows.append(self._import_row(state))
            elif state.is_merging:
                updates = state.field_updates()
                if "careHours" in updates:
                    updates["careHours"] = _normalize_care_hours_text(updates["careHours"])
                rows.append(self._import_row(
                    state,
                    existing_child_id=state.row.existing_child_id,
                    merge_parents=not updates,
                    field_updates=updates,
                ))
            else:
                continue

            for slot in PARENT_SLOTS:
                parent = state.row.parent(slot)
                if parent is not None and parent.has_name:
                    decisions.append(state.decision(slot))

        if not rows:
            raise NothingToImportError("Keine Zeilen zum Importieren ausgewählt")

        return ExecuteRequest(rows=rows, parent_decisions=decisions)

    def _import_row(self, state: RowState, **extra) -> ImportRow:
        row = state.row
        child = row.child.model_copy(update={"care_hours": normalize_care_hours(row.child.care_hours)})
        return ImportRow(
            index=row.index,
            child=child,
            parent1=row.parent1,
            parent2=row.parent2,
            **extra,
        )

    def _is_duplicate(self, index: int, member_number: str) -> bool:
        if not member_number:
            return False
        if member_number in self.duplicate_member_numbers:
            return True
        return any(
            other.row.child.member_number == member_number
            for i, other in self.states.items()
            if i != index
        )

    def _recount(self) -> None:
        self.valid_count = sum(
            1 for s in self.states.values() if s.row.is_valid and not s.row.is_duplicate
        )
        self.error_count = len(self.states) - self.valid_count


def _normalize_care_hours_text(value: str) -> str:
    try:
        hours = int(value)
    except ValueError:
        return value
    return str(normalize_care_hours(hours))
