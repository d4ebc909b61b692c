"""Shared fixtures: a temporary database seeded with a small studio."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

from designer_scheduler.core import catalog as catalog_mod
from designer_scheduler.core import tasks as tasks_mod
from designer_scheduler.core import users as users_mod
from designer_scheduler.core.context import SchedulingContext
from designer_scheduler.db.engine import init_db
from designer_scheduler.db.models import Priority, Status

# Monday
NOW = datetime(2025, 6, 30, 10, 0, tzinfo=timezone.utc)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def db():
    """Create a temporary SQLite database for testing."""
    with tempfile.TemporaryDirectory() as tmp:
        conn = init_db(Path(tmp) / "test.db")
        yield conn
        conn.close()


@pytest.fixture
def ctx():
    return SchedulingContext(clock=lambda: NOW)


@pytest.fixture
def studio(db):
    """Two brands, two task types, a specialist (alice) and a generalist (bob).

    alice: Design for acme only. bob: Design and Video for every brand.
    """
    design = catalog_mod.create_type(db, "Design")
    video = catalog_mod.create_type(db, "Video")
    catalog_mod.create_brand(db, "acme", "Acme")
    catalog_mod.create_brand(db, "globex", "Globex")
    banner = catalog_mod.create_category(db, "Banner", design.id, "D")
    reel = catalog_mod.create_category(db, "Reel", video.id, "C")

    users_mod.create_user(db, "alice", "Alice", "alice@example.com")
    users_mod.add_role(db, "alice", design.id, "acme")
    users_mod.create_user(db, "bob", "Bob")
    users_mod.add_role(db, "bob", design.id)
    users_mod.add_role(db, "bob", video.id)

    return SimpleNamespace(design=design, video=video, banner=banner, reel=reel)


@pytest.fixture
def add_task(db, studio):
    """Insert a Design/acme task with explicit dates; durations default to 1 day."""

    def _add(
        name,
        assignees,
        start,
        deadline,
        priority=Priority.NORMAL,
        days=1.0,
        status=Status.TO_DO,
        type_id=None,
        category_id=None,
        brand_id="acme",
    ):
        return tasks_mod.create_task(
            db,
            name,
            type_id=type_id or studio.design.id,
            category_id=category_id or studio.banner.id,
            brand_id=brand_id,
            start_date=start,
            deadline=deadline,
            priority=priority,
            status=status,
            custom_duration=days,
            assignees=list(assignees),
        )

    return _add
