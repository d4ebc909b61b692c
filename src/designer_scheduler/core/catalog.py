"""Brand, task type, tier and category operations."""

import sqlite3
from datetime import datetime

from designer_scheduler.core.validation import (
    MAX_DURATION_DAYS,
    MIN_DURATION_DAYS,
    NotFoundError,
    ValidationError,
)
from designer_scheduler.db.models import TIER_NAMES, Brand, TaskCategory, TaskType, TierList


# ── Brands ────────────────────────────────────────────────────────────────────


def create_brand(
    db: sqlite3.Connection,
    brand_id: str,
    name: str,
    is_active: bool = True,
) -> Brand:
    """Create a brand. Brands keep the id of the external workspace list they mirror."""
    db.execute(
        "INSERT INTO brands (id, name, is_active) VALUES (?, ?, ?)",
        (brand_id, name, int(is_active)),
    )
    db.commit()
    return get_brand(db, brand_id)


def get_brand(db: sqlite3.Connection, brand_id: str) -> Brand | None:
    row = db.execute("SELECT * FROM brands WHERE id = ?", (brand_id,)).fetchone()
    if not row:
        return None
    return _row_to_brand(row)


def list_brands(db: sqlite3.Connection, active_only: bool = False) -> list[Brand]:
    """List brands in creation order."""
    query = "SELECT * FROM brands"
    if active_only:
        query += " WHERE is_active = 1"
    query += " ORDER BY created_at ASC, rowid ASC"
    return [_row_to_brand(r) for r in db.execute(query).fetchall()]


def require_brand(db: sqlite3.Connection, brand_id: str) -> Brand:
    brand = get_brand(db, brand_id)
    if not brand:
        raise NotFoundError("Brand", brand_id)
    return brand


def set_brand_active(db: sqlite3.Connection, brand_id: str, is_active: bool) -> Brand | None:
    db.execute("UPDATE brands SET is_active = ? WHERE id = ?", (int(is_active), brand_id))
    db.commit()
    return get_brand(db, brand_id)


# ── Task types ────────────────────────────────────────────────────────────────


def create_type(db: sqlite3.Connection, name: str) -> TaskType:
    cursor = db.execute("INSERT INTO task_types (name) VALUES (?)", (name,))
    db.commit()
    return get_type(db, cursor.lastrowid)


def get_type(db: sqlite3.Connection, type_id: int) -> TaskType | None:
    row = db.execute("SELECT * FROM task_types WHERE id = ?", (type_id,)).fetchone()
    if not row:
        return None
    return TaskType(id=row["id"], name=row["name"])


def require_type(db: sqlite3.Connection, type_id: int) -> TaskType:
    task_type = get_type(db, type_id)
    if not task_type:
        raise NotFoundError("Task type", type_id)
    return task_type


def list_types(db: sqlite3.Connection) -> list[TaskType]:
    rows = db.execute("SELECT * FROM task_types ORDER BY name").fetchall()
    return [TaskType(id=r["id"], name=r["name"]) for r in rows]


# ── Tiers ─────────────────────────────────────────────────────────────────────


def list_tiers(db: sqlite3.Connection) -> list[TierList]:
    rows = db.execute("SELECT * FROM tier_lists").fetchall()
    tiers = [TierList(id=r["id"], name=r["name"], duration=r["duration"]) for r in rows]
    return sorted(tiers, key=lambda t: TIER_NAMES.index(t.name))


def get_tier_by_name(db: sqlite3.Connection, name: str) -> TierList | None:
    row = db.execute("SELECT * FROM tier_lists WHERE name = ?", (name.upper(),)).fetchone()
    if not row:
        return None
    return TierList(id=row["id"], name=row["name"], duration=row["duration"])


def set_tier_duration(db: sqlite3.Connection, name: str, duration) -> TierList:
    """Change a tier's canonical duration (days)."""
    tier = get_tier_by_name(db, name)
    if not tier:
        raise NotFoundError("Tier", name)
    try:
        days = float(duration)
    except (TypeError, ValueError):
        raise ValidationError("duration", "must be a number") from None
    # Tier durations become task durations, so they share the task limits
    if not MIN_DURATION_DAYS <= days <= MAX_DURATION_DAYS:
        raise ValidationError(
            "duration", f"must be between {MIN_DURATION_DAYS} and {MAX_DURATION_DAYS} days"
        )
    db.execute("UPDATE tier_lists SET duration = ? WHERE id = ?", (days, tier.id))
    db.commit()
    return get_tier_by_name(db, name)


# ── Categories ────────────────────────────────────────────────────────────────


_CATEGORY_SELECT = """
    SELECT c.*, t.name AS tier_name, t.duration AS tier_duration
    FROM task_categories c JOIN tier_lists t ON t.id = c.tier_id
"""


def create_category(db: sqlite3.Connection, name: str, type_id: int, tier_name: str) -> TaskCategory:
    if not get_type(db, type_id):
        raise NotFoundError("Task type", type_id)
    tier = get_tier_by_name(db, tier_name)
    if not tier:
        raise ValidationError("tier", f"must be one of {', '.join(TIER_NAMES)}")
    cursor = db.execute(
        "INSERT INTO task_categories (name, type_id, tier_id) VALUES (?, ?, ?)",
        (name, type_id, tier.id),
    )
    db.commit()
    return get_category(db, cursor.lastrowid)


def get_category(db: sqlite3.Connection, category_id: int) -> TaskCategory | None:
    row = db.execute(_CATEGORY_SELECT + " WHERE c.id = ?", (category_id,)).fetchone()
    if not row:
        return None
    return _row_to_category(row)


def list_categories(db: sqlite3.Connection, type_id: int | None = None) -> list[TaskCategory]:
    query = _CATEGORY_SELECT
    params: list = []
    if type_id is not None:
        query += " WHERE c.type_id = ?"
        params.append(type_id)
    query += " ORDER BY c.name"
    return [_row_to_category(r) for r in db.execute(query, params).fetchall()]


def _row_to_brand(row: sqlite3.Row) -> Brand:
    return Brand(
        id=row["id"],
        name=row["name"],
        is_active=bool(row["is_active"]),
        created_at=_parse_dt(row["created_at"]),
    )


def _row_to_category(row: sqlite3.Row) -> TaskCategory:
    return TaskCategory(
        id=row["id"],
        name=row["name"],
        type_id=row["type_id"],
        tier_id=row["tier_id"],
        tier_name=row["tier_name"],
        duration=row["tier_duration"],
    )


def _parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    return datetime.fromisoformat(val)
