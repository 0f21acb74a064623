"""
Tests for RosterService.

Covers the student/roster-summary dual write (including a failing second
step and reconciliation), receipt log edits, and distribution records.
"""

import pytest

from uniform_kernel.db import SCHOOLS, STUDENTS
from uniform_kernel.exceptions import (
    DualWriteInconsistencyError,
    LogEntryNotFoundError,
    SchoolNotFoundError,
    StudentNotFoundError,
    ValidationError,
)


def _summaries(store, school_id):
    return store.get(SCHOOLS, school_id)["students"]


@pytest.fixture
def failing_school_updates(store, monkeypatch):
    """Make every update of a school document fail."""
    original = store.update

    def update(collection, doc_id, changes):
        if collection == SCHOOLS:
            raise ConnectionError("network dropped")
        return original(collection, doc_id, changes)

    monkeypatch.setattr(store, "update", update)


class TestDualWrite:
    def test_add_writes_both(self, roster_service, store, school, student):
        assert store.get(STUDENTS, student.id)["schoolId"] == school.id
        assert _summaries(store, school.id) == [
            {"id": student.id, "name": "Chikondi Phiri", "form": "1A", "level": "Junior", "gender": "Boys"}
        ]

    def test_add_requires_school(self, roster_service, store):
        with pytest.raises(SchoolNotFoundError):
            roster_service.add_student("ghost", "Name", "Junior", "Boys")

        assert store.query(STUDENTS) == []

    def test_add_validates(self, roster_service, school):
        with pytest.raises(ValidationError):
            roster_service.add_student(school.id, "", "Junior", "Boys")

    def test_update_replaces_summary(self, roster_service, store, school, student):
        updated = roster_service.update_student(student.id, form="2B", level="Senior")

        assert updated.form == "2B"
        assert _summaries(store, school.id)[0]["level"] == "Senior"
        assert store.get(STUDENTS, student.id)["level"] == "Senior"

    def test_update_rejects_other_fields(self, roster_service, student):
        with pytest.raises(ValidationError) as exc_info:
            roster_service.update_student(student.id, uniformLog=[])

        assert exc_info.value.field == "uniformLog"

    def test_delete_removes_both(self, roster_service, store, school, student):
        roster_service.delete_student(student.id)

        assert store.get(STUDENTS, student.id) is None
        assert _summaries(store, school.id) == []

    def test_delete_unknown(self, roster_service):
        with pytest.raises(StudentNotFoundError):
            roster_service.delete_student("ghost")

    def test_second_step_failure_on_add(self, roster_service, store, school, failing_school_updates, captured_logs):
        with pytest.raises(DualWriteInconsistencyError) as exc_info:
            roster_service.add_student(school.id, "Thoko Banda", "Junior", "Girls")

        error = exc_info.value
        assert error.completed_step == "student_created"
        assert error.failed_step == "roster_summary_added"
        assert isinstance(error.__cause__, ConnectionError)
        assert store.get(STUDENTS, error.student_id) is not None
        assert _summaries(store, school.id) == []

        failures = [r for r in captured_logs() if r["message"] == "roster_dual_write_failed"]
        assert failures[0]["level"] == "ERROR"
        assert failures[0]["failed_step"] == "roster_summary_added"

    def test_second_step_failure_on_delete(self, roster_service, store, school, student, failing_school_updates):
        with pytest.raises(DualWriteInconsistencyError) as exc_info:
            roster_service.delete_student(student.id)

        assert exc_info.value.completed_step == "student_deleted"
        assert len(_summaries(store, school.id)) == 1

    def test_rebuild_reconciles(self, roster_service, store, school, student, monkeypatch):
        original = store.update

        def drop_school_updates(collection, doc_id, changes):
            if collection == SCHOOLS:
                raise ConnectionError("network dropped")
            return original(collection, doc_id, changes)

        monkeypatch.setattr(store, "update", drop_school_updates)
        with pytest.raises(DualWriteInconsistencyError):
            roster_service.add_student(school.id, "Thoko Banda", "Junior", "Girls")
        monkeypatch.undo()

        roster = roster_service.rebuild_roster_summary(school.id)

        assert sorted(s["name"] for s in roster) == ["Chikondi Phiri", "Thoko Banda"]
        assert len(_summaries(store, school.id)) == 2

    def test_list_students_by_name(self, roster_service, school, student):
        roster_service.add_student(school.id, "Alinafe Mwale", "Junior", "Girls")

        names = [s.name for s in roster_service.list_students(school.id)]

        assert names == ["Alinafe Mwale", "Chikondi Phiri"]


class TestReceiptLog:
    def test_remove_entry_shifts_later_entries(self, roster_service, logging_service, store, student):
        for wanted in ("S", "M", "L"):
            logging_service.log_uniform_received(student.id, {"id": "shirt"}, 0, size_wanted=wanted)

        roster_service.remove_log_entry(student.id, 1)

        assert [e["sizeWanted"] for e in store.get(STUDENTS, student.id)["uniformLog"]] == ["S", "L"]

    def test_remove_out_of_range(self, roster_service, student):
        with pytest.raises(LogEntryNotFoundError):
            roster_service.remove_log_entry(student.id, 0)


class TestDistributions:
    def test_add_lines_accumulate(self, roster_service, store, student, clock):
        roster_service.add_distribution(student.id, 0, "M", 2, issued_by="Storekeeper")
        distribution = roster_service.add_distribution(student.id, 0, "L", 1)

        assert distribution.total_received == 3
        stored = store.get(STUDENTS, student.id)["uniformDistribution"]["BOYS-0"]
        assert stored["totalReceived"] == 3
        assert stored["distributions"][0] == {
            "size": "M",
            "quantity": 2,
            "receivedAt": clock.isoformat(),
            "issuedBy": "Storekeeper",
            "issuedById": None,
        }

    @pytest.mark.parametrize("quantity", [0, -1, 1.5])
    def test_quantity_must_be_positive(self, roster_service, student, quantity):
        with pytest.raises(ValidationError):
            roster_service.add_distribution(student.id, 0, "M", quantity)

    def test_remove_line_recomputes_total(self, roster_service, store, student):
        roster_service.add_distribution(student.id, 0, "M", 2)
        roster_service.add_distribution(student.id, 0, "L", 1)

        distribution = roster_service.remove_distribution(student.id, 0, 0)

        assert distribution.total_received == 1
        assert store.get(STUDENTS, student.id)["uniformDistribution"]["BOYS-0"]["totalReceived"] == 1

    def test_remove_unknown_line(self, roster_service, student):
        with pytest.raises(LogEntryNotFoundError) as exc_info:
            roster_service.remove_distribution(student.id, 3, 0)

        assert exc_info.value.key == "BOYS-3"

    def test_key_follows_student_gender(self, roster_service, store, school):
        girl = roster_service.add_student(school.id, "Thoko Banda", "Junior", "Girls")

        roster_service.add_distribution(girl.id, 2, "S", 1)

        assert list(store.get(STUDENTS, girl.id)["uniformDistribution"]) == ["GIRLS-2"]

    @pytest.mark.parametrize("requirement_index", [-1, "BOYS-0", True])
    def test_requirement_index_validated(self, roster_service, store, student, requirement_index):
        with pytest.raises(ValidationError):
            roster_service.add_distribution(student.id, requirement_index, "M", 1)

        assert store.get(STUDENTS, student.id)["uniformDistribution"] == {}

    def test_unknown_student(self, roster_service):
        with pytest.raises(StudentNotFoundError):
            roster_service.add_distribution("ghost", 0, "M", 1)
