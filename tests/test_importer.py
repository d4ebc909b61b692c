"""Tests for importing external task records."""

import pytest

from designer_scheduler.core import tasks as tasks_mod
from designer_scheduler.core.importer import external_record_to_request, import_external_tasks
from designer_scheduler.core.validation import NotFoundError, ValidationError
from designer_scheduler.db.models import Priority, Status


def record(studio, **overrides):
    data = {
        "name": "Summer banner",
        "category_id": studio.banner.id,
        "brand_id": "acme",
    }
    data.update(overrides)
    return data


class TestRecordTranslation:
    def test_labels_mapped(self, db, studio):
        request, status = external_record_to_request(
            db, record(studio, status="In Progress", priority="Critical")
        )
        assert status == Status.IN_PROGRESS
        assert request.priority == Priority.URGENT
        assert request.duration_days == 3

    def test_defaults(self, db, studio):
        request, status = external_record_to_request(db, record(studio, duration_days=1.5))
        assert status == Status.TO_DO
        assert request.priority == Priority.NORMAL
        assert request.duration_days == 1.5

    def test_finished_record(self, db, studio):
        assert external_record_to_request(db, record(studio, status="Closed")) is None

    def test_unknown_category(self, db, studio):
        with pytest.raises(NotFoundError):
            external_record_to_request(db, record(studio, category_id=99))

    def test_not_an_object(self, db, studio):
        with pytest.raises(ValidationError):
            external_record_to_request(db, "Summer banner")


class TestImport:
    def test_import(self, db, ctx, studio):
        report = import_external_tasks(
            db,
            ctx,
            [
                record(studio, status="in_review", priority="high"),
                record(studio, name="Old reel", category_id=studio.reel.id, status="Done"),
                record(studio, name="Broken", category_id=99),
                "garbage",
            ],
        )

        assert [t.id for t in report.imported] == ["summer-banner"]
        task = report.imported[0]
        assert task.status == Status.ON_APPROVAL
        assert task.priority == Priority.HIGH
        assert task.assignees == ["alice"]

        assert report.skipped == ["Old reel"]
        assert [e["index"] for e in report.errors] == [2, 3]
        assert "Category not found" in report.errors[0]["error"]
        assert [t.id for t in tasks_mod.list_tasks(db)] == ["summer-banner"]

    def test_imported_tasks_are_queued(self, db, ctx, studio):
        import_external_tasks(
            db,
            ctx,
            [
                record(studio, name="First", priority="low"),
                record(studio, name="Second", priority="urgent"),
            ],
        )
        queue = tasks_mod.list_user_queue(db, "alice")
        assert [t.name for t in queue] == ["Second", "First"]

    def test_requires_list(self, db, ctx, studio):
        with pytest.raises(ValidationError):
            import_external_tasks(db, ctx, {"name": "Summer banner"})
