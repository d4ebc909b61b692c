"""Import tasks exported from an external project-management tool.

External records carry free-form status and priority labels. They are mapped
onto local values; records whose status means the work is finished are
skipped. Every other record is scheduled like a newly created task.
"""

import logging
import sqlite3
from dataclasses import dataclass, field

from designer_scheduler.config import Config
from designer_scheduler.core import catalog as catalog_mod
from designer_scheduler.core.assignment import change_task_status, create_assigned_task
from designer_scheduler.core.context import SchedulingContext
from designer_scheduler.core.status_mapping import map_external_priority, map_external_status
from designer_scheduler.core.validation import (
    NoCandidateError,
    NotFoundError,
    TaskRequest,
    ValidationError,
    parse_positive_int,
)
from designer_scheduler.db.models import Status, Task

logger = logging.getLogger(__name__)


@dataclass
class ImportReport:
    imported: list[Task] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)


def external_record_to_request(
    db: sqlite3.Connection, record: dict
) -> tuple[TaskRequest, Status] | None:
    """Translate one external record, or None when its status says it is finished.

    A record without ``duration_days`` takes its category's tier duration.
    """
    if not isinstance(record, dict):
        raise ValidationError("record", "must be an object")

    status = map_external_status(record.get("status"))
    if status is None:
        return None

    data = dict(record)
    data["priority"] = map_external_priority(record.get("priority"))
    if data.get("duration_days") in (None, ""):
        category_id = parse_positive_int("category_id", record.get("category_id"))
        category = catalog_mod.get_category(db, category_id)
        if not category:
            raise NotFoundError("Category", category_id)
        data["duration_days"] = category.duration
    return TaskRequest.from_dict(data), status


def import_external_tasks(
    db: sqlite3.Connection,
    ctx: SchedulingContext,
    records: list,
    config: Config | None = None,
) -> ImportReport:
    """Schedule every unfinished external record; bad records are reported, not fatal."""
    if not isinstance(records, list):
        raise ValidationError("tasks", "must be a list")

    report = ImportReport()
    for index, record in enumerate(records):
        try:
            translated = external_record_to_request(db, record)
            if translated is None:
                report.skipped.append(str(record.get("name") or index))
                continue

            request, status = translated
            task = create_assigned_task(db, ctx, request, config=config).task
            if status != Status.TO_DO:
                task = change_task_status(db, ctx, task.id, status, config=config)
            report.imported.append(task)
        except (ValidationError, NotFoundError, NoCandidateError) as e:
            logger.warning("Skipping external record %d: %s", index, e)
            report.errors.append({"index": index, "error": str(e)})

    logger.info(
        "Imported %d external task(s), skipped %d finished, %d failed",
        len(report.imported), len(report.skipped), len(report.errors),
    )
    return report
