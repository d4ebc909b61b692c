"""Tests for external status and priority mapping."""

import pytest

from designer_scheduler.core.status_mapping import (
    is_active_external_status,
    map_external_priority,
    map_external_status,
)
from designer_scheduler.db.models import Priority, Status


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Awaiting Approval", Status.ON_APPROVAL),
        ("in review", Status.ON_APPROVAL),
        ("QA", Status.ON_APPROVAL),
        ("Testing", Status.ON_APPROVAL),
        ("to check", Status.ON_APPROVAL),
        ("In Progress", Status.IN_PROGRESS),
        ("in_progress", Status.IN_PROGRESS),
        ("Working on it", Status.IN_PROGRESS),
        ("development", Status.IN_PROGRESS),
        ("Doing", Status.IN_PROGRESS),
        ("TO DO", Status.TO_DO),
        ("to-do", Status.TO_DO),
        ("Open", Status.TO_DO),
        ("backlog", Status.TO_DO),
        ("Ready", Status.TO_DO),
        ("Done", None),
        ("complete", None),
        ("Closed", None),
        ("Delivered", None),
        ("merged", None),
        ("something else", Status.TO_DO),
        ("", Status.TO_DO),
        (None, Status.TO_DO),
    ],
)
def test_map_external_status(raw, expected):
    assert map_external_status(raw) == expected


def test_first_rule_wins():
    # "review" is matched before "done"
    assert map_external_status("review done") == Status.ON_APPROVAL


def test_is_active_external_status():
    assert is_active_external_status("in progress")
    assert not is_active_external_status("finished")


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Urgent", Priority.URGENT),
        ("critical", Priority.URGENT),
        ("HIGH", Priority.HIGH),
        ("low", Priority.LOW),
        ("normal", Priority.NORMAL),
        ("whatever", Priority.NORMAL),
        (None, Priority.NORMAL),
    ],
)
def test_map_external_priority(raw, expected):
    assert map_external_priority(raw) == expected
