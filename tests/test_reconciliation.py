"""
Tests for the preview reconciliation controller
"""
import pytest

from src.kita_fees.schemas.child_import import (
    ChildPreview,
    ConflictResolution,
    FieldConflict,
    ParentAction,
    ParentMatch,
    ParentPreview,
    PreviewAction,
    PreviewResult,
    PreviewRow,
)
from src.kita_fees.services.reconciliation import (
    NothingToImportError,
    ReconciliationController,
    ReconciliationError,
    RowStatus,
    normalize_care_hours,
)


def make_child(member_number="2001", **overrides):
    values = dict(
        member_number=member_number,
        first_name="Ben",
        last_name="Schulz",
        birth_date="2021-05-01",
        entry_date="2024-09-01",
    )
    values.update(overrides)
    return ChildPreview(**values)


def new_row(index, member_number, **overrides):
    return PreviewRow(index=index, child=make_child(member_number, **overrides))


def invalid_row(index, member_number=""):
    return PreviewRow(
        index=index,
        child=make_child(member_number, first_name=""),
        warnings=["Vorname fehlt"],
        is_valid=False,
    )


def duplicate_row(index, member_number, existing_child_id="c1", conflicts=None):
    return PreviewRow(
        index=index,
        child=make_child(member_number),
        is_duplicate=True,
        existing_child_id=existing_child_id,
        existing_child=make_child(member_number),
        action=PreviewAction.UPDATE if conflicts else PreviewAction.NO_CHANGE,
        field_conflicts=conflicts or [],
    )


def controller_for(*rows):
    valid = sum(1 for r in rows if r.is_valid and not r.is_duplicate)
    return ReconciliationController(PreviewResult(rows=list(rows), valid_count=valid, error_count=len(rows) - valid))


class TestNormalizeCareHours:
    @pytest.mark.parametrize("hours, expected", [
        (6, 30),
        (11, 55),
        (12, 12),
        (35, 35),
        (0, 0),
        (None, None),
    ])
    def test_daily_hours_become_weekly(self, hours, expected):
        assert normalize_care_hours(hours) == expected


class TestInitialState:
    def test_valid_new_rows_are_preselected(self):
        controller = controller_for(new_row(0, "2001"), invalid_row(1), duplicate_row(2, "1001"))

        assert controller.selected_indices == {0}
        assert controller.merge_indices == set()
        assert controller.valid_count == 1
        assert controller.error_count == 2

    def test_status_per_row(self):
        controller = controller_for(new_row(0, "2001"), invalid_row(1), duplicate_row(2, "1001"))

        assert [s.status for s in controller.rows] == [RowStatus.NEW, RowStatus.ERROR, RowStatus.DUPLICATE]

    def test_preview_rows_are_not_mutated(self):
        row = duplicate_row(0, "1001")
        controller = controller_for(row)

        controller.edit_row(0, member_number="9999")

        assert row.child.member_number == "1001"
        assert row.is_duplicate is True


class TestSelection:
    def test_toggle_selected(self):
        controller = controller_for(new_row(0, "2001"))

        assert controller.toggle_selected(0) is False
        assert controller.selected_indices == set()
        assert controller.toggle_selected(0) is True
        assert controller.selected_indices == {0}

    def test_cannot_select_duplicate_or_invalid(self):
        controller = controller_for(invalid_row(0), duplicate_row(1, "1001"))

        with pytest.raises(ReconciliationError):
            controller.toggle_selected(0)
        with pytest.raises(ReconciliationError):
            controller.toggle_selected(1)

    def test_select_all_only_touches_new_rows(self):
        controller = controller_for(new_row(0, "2001"), new_row(1, "2002"), duplicate_row(2, "1001"))
        controller.toggle_merge(2)

        controller.select_all(False)
        assert controller.selected_indices == set()
        assert controller.merge_indices == {2}

        controller.select_all(True)
        assert controller.selected_indices == {0, 1}

    def test_unknown_row(self):
        controller = controller_for(new_row(0, "2001"))

        with pytest.raises(ReconciliationError, match="Zeile 6 existiert nicht"):
            controller.toggle_selected(5)


class TestMerge:
    def test_toggle_merge(self):
        controller = controller_for(duplicate_row(0, "1001"))

        assert controller.toggle_merge(0) is True
        assert controller.merge_indices == {0}
        assert controller.rows[0].status == RowStatus.MERGING
        assert controller.toggle_merge(0) is False
        assert controller.rows[0].status == RowStatus.DUPLICATE

    def test_merge_requires_existing_child(self):
        controller = controller_for(duplicate_row(0, "1001", existing_child_id=None), new_row(1, "2001"))

        with pytest.raises(ReconciliationError):
            controller.toggle_merge(0)
        with pytest.raises(ReconciliationError):
            controller.toggle_merge(1)

    def test_resolve_conflict_requires_merging_row(self):
        conflict = FieldConflict(field="careHours", field_label="Betreuungszeit", existing_value="20", new_value="25")
        controller = controller_for(duplicate_row(0, "1001", conflicts=[conflict]))

        with pytest.raises(ReconciliationError):
            controller.resolve_conflict(0, "careHours", ConflictResolution.NEW)

        controller.toggle_merge(0)
        with pytest.raises(ReconciliationError):
            controller.resolve_conflict(0, "firstName", ConflictResolution.NEW)

    def test_merge_with_resolved_conflict(self):
        conflict = FieldConflict(field="careHours", field_label="Betreuungszeit", existing_value="20", new_value="25")
        controller = controller_for(duplicate_row(0, "1001", existing_child_id="c1", conflicts=[conflict]))

        controller.toggle_merge(0)
        controller.resolve_conflict(0, "careHours", ConflictResolution.NEW)
        request = controller.build_execute_request()

        assert len(request.rows) == 1
        entry = request.rows[0]
        assert entry.index == 0
        assert entry.existing_child_id == "c1"
        assert entry.field_updates == {"careHours": "25"}
        assert entry.merge_parents is False

    def test_merge_without_updates_only_merges_parents(self):
        conflict = FieldConflict(field="firstName", field_label="Vorname", existing_value="Ben", new_value="Benno")
        controller = controller_for(duplicate_row(0, "1001", conflicts=[conflict]))

        controller.toggle_merge(0)
        entry = controller.build_execute_request().rows[0]

        assert entry.field_updates == {}
        assert entry.merge_parents is True

    def test_daily_care_hours_update_is_normalized(self):
        conflict = FieldConflict(field="careHours", field_label="Betreuungszeit", existing_value="20", new_value="7")
        controller = controller_for(duplicate_row(0, "1001", conflicts=[conflict]))

        controller.toggle_merge(0)
        controller.resolve_conflict(0, "careHours", ConflictResolution.NEW)

        assert controller.build_execute_request().rows[0].field_updates == {"careHours": "35"}


class TestEditRow:
    def test_edit_to_duplicate_number_deselects(self):
        controller = controller_for(new_row(0, "2001"), duplicate_row(1, "1001"))

        state = controller.edit_row(0, member_number="1001")

        assert state.status == RowStatus.DUPLICATE
        assert controller.selected_indices == set()
        assert controller.valid_count == 0

    def test_edit_to_number_of_other_row(self):
        controller = controller_for(new_row(0, "2001"), new_row(1, "2002"))

        state = controller.edit_row(1, member_number="2001")

        assert state.row.is_duplicate is True
        assert controller.selected_indices == {0}

    def test_edit_duplicate_to_unique_number(self):
        conflict = FieldConflict(field="careHours", field_label="Betreuungszeit", existing_value="20", new_value="25")
        controller = controller_for(duplicate_row(0, "1001", conflicts=[conflict]))
        controller.toggle_merge(0)
        controller.resolve_conflict(0, "careHours", ConflictResolution.NEW)

        state = controller.edit_row(0, member_number="3001")

        assert state.status == RowStatus.NEW
        assert state.is_selected is True
        assert state.row.existing_child_id is None
        assert state.row.field_conflicts == []
        assert state.resolutions == {}
        assert controller.merge_indices == set()
        assert controller.selected_indices == {0}

    def test_renumbered_duplicate_loses_its_merge_target(self):
        conflict = FieldConflict(field="careHours", field_label="Betreuungszeit", existing_value="20", new_value="25")
        controller = controller_for(duplicate_row(0, "1001", conflicts=[conflict]), duplicate_row(1, "1002", "c2"))
        controller.toggle_merge(0)
        controller.resolve_conflict(0, "careHours", ConflictResolution.NEW)

        state = controller.edit_row(0, member_number="1002")

        assert state.status == RowStatus.DUPLICATE
        assert state.can_merge is False
        assert state.row.existing_child_id is None
        assert state.row.field_conflicts == []
        assert state.resolutions == {}
        assert controller.merge_indices == set()
        with pytest.raises(ReconciliationError):
            controller.toggle_merge(0)

    def test_fixing_required_field_makes_row_selectable(self):
        controller = controller_for(invalid_row(0, "2001"))

        state = controller.edit_row(0, first_name="  Mia ")

        assert state.row.child.first_name == "Mia"
        assert state.status == RowStatus.NEW
        assert controller.selected_indices == {0}
        assert controller.error_count == 0

    def test_clearing_required_field_makes_row_an_error(self):
        controller = controller_for(new_row(0, "2001"))

        state = controller.edit_row(0, last_name="")

        assert state.status == RowStatus.ERROR
        assert controller.selected_indices == set()

    def test_deselected_row_stays_deselected_after_edit(self):
        controller = controller_for(new_row(0, "2001"))
        controller.toggle_selected(0)

        controller.edit_row(0, first_name="Lena")

        assert controller.selected_indices == set()

    def test_duplicate_only_needs_member_number(self):
        controller = controller_for(duplicate_row(0, "1001"))

        state = controller.edit_row(0, first_name="", birth_date="")

        assert state.row.is_valid is True
        assert state.can_merge is True

    def test_rejects_unknown_fields(self):
        controller = controller_for(new_row(0, "2001"))

        with pytest.raises(ReconciliationError):
            controller.edit_row(0, street="Hauptstraße")

    def test_selected_and_merging_are_disjoint(self):
        controller = controller_for(new_row(0, "2001"), duplicate_row(1, "1001"), new_row(2, "2003"))
        controller.toggle_merge(1)

        controller.edit_row(0, member_number="1001")
        controller.edit_row(1, member_number="4001")
        controller.select_all(True)

        assert controller.selected_indices.isdisjoint(controller.merge_indices)


class TestParentDecisions:
    def make_row_with_parents(self):
        row = new_row(0, "2001")
        row.parent1 = ParentPreview(
            first_name="Anna",
            last_name="Schulz",
            existing_matches=[ParentMatch(id="p1", first_name="Anna", last_name="Schulz")],
        )
        row.parent2 = ParentPreview(first_name="Tom", last_name="Schulz")
        return row

    def test_missing_decisions_default_to_create(self):
        controller = controller_for(self.make_row_with_parents())

        request = controller.build_execute_request()

        assert [(d.row_index, d.parent_index, d.action) for d in request.parent_decisions] == [
            (0, 1, ParentAction.CREATE),
            (0, 2, ParentAction.CREATE),
        ]

    def test_link_decision(self):
        controller = controller_for(self.make_row_with_parents())

        controller.set_parent_decision(0, 1, ParentAction.LINK, "p1")
        decisions = controller.build_execute_request().parent_decisions

        assert decisions[0].action == ParentAction.LINK
        assert decisions[0].existing_parent_id == "p1"

    def test_link_requires_parent_id(self):
        controller = controller_for(self.make_row_with_parents())

        with pytest.raises(ReconciliationError):
            controller.set_parent_decision(0, 1, ParentAction.LINK)

    def test_invalid_slot(self):
        controller = controller_for(self.make_row_with_parents())

        with pytest.raises(ReconciliationError):
            controller.set_parent_decision(0, 3, ParentAction.CREATE)

    def test_rows_not_submitted_have_no_decisions(self):
        controller = controller_for(self.make_row_with_parents(), new_row(1, "2002"))
        controller.toggle_selected(0)

        request = controller.build_execute_request()

        assert [r.index for r in request.rows] == [1]
        assert request.parent_decisions == []


class TestBuildExecuteRequest:
    def test_daily_care_hours_are_normalized(self):
        controller = controller_for(new_row(0, "2001", care_hours=6))

        request = controller.build_execute_request()

        assert request.rows[0].child.care_hours == 30
        assert controller.rows[0].row.child.care_hours == 6

    def test_weekly_care_hours_unchanged(self):
        controller = controller_for(new_row(0, "2001", care_hours=35))

        assert controller.build_execute_request().rows[0].child.care_hours == 35

    def test_rows_in_index_order(self):
        controller = controller_for(new_row(0, "2001"), duplicate_row(1, "1001"), new_row(2, "2003"))
        controller.toggle_merge(1)

        request = controller.build_execute_request()

        assert [r.index for r in request.rows] == [0, 1, 2]
        assert controller.submit_count == 3

    def test_nothing_to_import(self):
        controller = controller_for(new_row(0, "2001"), duplicate_row(1, "1001"))
        controller.toggle_selected(0)

        with pytest.raises(NothingToImportError):
            controller.build_execute_request()

    def test_wire_names_are_camel_case(self):
        controller = controller_for(new_row(0, "2001"))

        payload = controller.build_execute_request().model_dump(by_alias=True)

        assert "parentDecisions" in payload
        assert payload["rows"][0]["child"]["memberNumber"] == "2001"
        assert payload["rows"][0]["mergeParents"] is False
