"""Designer, role and vacation operations."""

import logging
import sqlite3
from datetime import date, datetime

from designer_scheduler.core import catalog as catalog_mod
from designer_scheduler.core.cache import (
    CacheService,
    invalidate_task_assignment_cache,
    invalidate_vacation_aware_cache,
)
from designer_scheduler.core.validation import NotFoundError, ValidationError
from designer_scheduler.db.models import User, UserRole, UserVacation

logger = logging.getLogger(__name__)


def create_user(
    db: sqlite3.Connection,
    user_id: str,
    name: str,
    email: str | None = None,
    active: bool = True,
) -> User:
    """Create a designer."""
    db.execute(
        "INSERT INTO users (id, name, email, active) VALUES (?, ?, ?, ?)",
        (user_id, name, email, int(active)),
    )
    db.commit()
    return get_user(db, user_id)


def get_user(db: sqlite3.Connection, user_id: str) -> User | None:
    """Get a designer with roles and all vacations."""
    row = db.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    if not row:
        return None
    user = _row_to_user(row)
    user.roles = list_roles(db, user_id)
    user.vacations = list_vacations(db, user_id)
    return user


def require_user(db: sqlite3.Connection, user_id: str) -> User:
    user = get_user(db, user_id)
    if not user:
        raise NotFoundError("User", user_id)
    return user


def list_users(db: sqlite3.Connection, active_only: bool = False) -> list[User]:
    query = "SELECT * FROM users"
    if active_only:
        query += " WHERE active = 1"
    query += " ORDER BY name"
    users = []
    for row in db.execute(query).fetchall():
        user = _row_to_user(row)
        user.roles = list_roles(db, user.id)
        user.vacations = list_vacations(db, user.id)
        users.append(user)
    return users


def set_user_active(
    db: sqlite3.Connection,
    user_id: str,
    active: bool,
    cache: CacheService | None = None,
) -> User | None:
    if not get_user(db, user_id):
        return None
    db.execute("UPDATE users SET active = ? WHERE id = ?", (int(active), user_id))
    db.commit()
    if cache is not None:
        invalidate_task_assignment_cache(cache)
    return get_user(db, user_id)


# ── Roles ─────────────────────────────────────────────────────────────────────


def add_role(
    db: sqlite3.Connection,
    user_id: str,
    type_id: int,
    brand_id: str | None = None,
    cache: CacheService | None = None,
) -> UserRole:
    """Give a designer a role. A role without a brand covers every brand of the type."""
    require_user(db, user_id)
    catalog_mod.require_type(db, type_id)
    if brand_id is not None:
        catalog_mod.require_brand(db, brand_id)

    # UNIQUE does not catch duplicate NULL brands
    duplicate = db.execute(
        "SELECT id FROM user_roles WHERE user_id = ? AND type_id = ? AND brand_id IS ?",
        (user_id, type_id, brand_id),
    ).fetchone()
    if duplicate:
        raise ValidationError("role", "user already has this role")

    cursor = db.execute(
        "INSERT INTO user_roles (user_id, type_id, brand_id) VALUES (?, ?, ?)",
        (user_id, type_id, brand_id),
    )
    db.commit()
    if cache is not None:
        invalidate_task_assignment_cache(cache)
    logger.info("Role added: user=%s type=%s brand=%s", user_id, type_id, brand_id or "global")
    return UserRole(id=cursor.lastrowid, user_id=user_id, type_id=type_id, brand_id=brand_id)


def remove_role(db: sqlite3.Connection, role_id: int, cache: CacheService | None = None) -> bool:
    cursor = db.execute("DELETE FROM user_roles WHERE id = ?", (role_id,))
    db.commit()
    if cursor.rowcount and cache is not None:
        invalidate_task_assignment_cache(cache)
    return cursor.rowcount > 0


def list_roles(db: sqlite3.Connection, user_id: str) -> list[UserRole]:
    rows = db.execute(
        "SELECT * FROM user_roles WHERE user_id = ? ORDER BY id", (user_id,)
    ).fetchall()
    return [_row_to_role(r) for r in rows]


def list_compatible_users(db: sqlite3.Connection, type_id: int, brand_id: str) -> list[User]:
    """Active designers holding a role for the type, scoped to the brand or global.

    Each user's ``roles`` only contains the roles visible for ``brand_id``.
    """
    rows = db.execute(
        """SELECT DISTINCT u.* FROM users u
           JOIN user_roles r ON r.user_id = u.id
           WHERE u.active = 1 AND r.type_id = ? AND (r.brand_id = ? OR r.brand_id IS NULL)
           ORDER BY u.name""",
        (type_id, brand_id),
    ).fetchall()
    users = []
    for row in rows:
        user = _row_to_user(row)
        role_rows = db.execute(
            """SELECT * FROM user_roles
               WHERE user_id = ? AND (brand_id = ? OR brand_id IS NULL) ORDER BY id""",
            (user.id, brand_id),
        ).fetchall()
        user.roles = [_row_to_role(r) for r in role_rows]
        users.append(user)
    return users


# ── Vacations ─────────────────────────────────────────────────────────────────


def add_vacation(
    db: sqlite3.Connection,
    user_id: str,
    start_date: date,
    end_date: date,
    cache: CacheService | None = None,
) -> UserVacation:
    """Record a vacation. Rejected if it overlaps another vacation of the same designer."""
    if not get_user(db, user_id):
        raise NotFoundError("User", user_id)
    if end_date < start_date:
        raise ValidationError("end_date", "must be on or after start_date")

    overlapping = db.execute(
        """SELECT start_date, end_date FROM user_vacations
           WHERE user_id = ? AND start_date <= ? AND end_date >= ?""",
        (user_id, end_date.isoformat(), start_date.isoformat()),
    ).fetchone()
    if overlapping:
        raise ValidationError(
            "start_date",
            f"overlaps existing vacation {overlapping['start_date']} to {overlapping['end_date']}",
        )

    cursor = db.execute(
        "INSERT INTO user_vacations (user_id, start_date, end_date) VALUES (?, ?, ?)",
        (user_id, start_date.isoformat(), end_date.isoformat()),
    )
    db.commit()
    if cache is not None:
        invalidate_vacation_aware_cache(cache)
    return UserVacation(
        id=cursor.lastrowid, user_id=user_id, start_date=start_date, end_date=end_date
    )


def remove_vacation(
    db: sqlite3.Connection, vacation_id: int, cache: CacheService | None = None
) -> bool:
    cursor = db.execute("DELETE FROM user_vacations WHERE id = ?", (vacation_id,))
    db.commit()
    if cursor.rowcount and cache is not None:
        invalidate_vacation_aware_cache(cache)
    return cursor.rowcount > 0


def list_vacations(
    db: sqlite3.Connection,
    user_id: str,
    ending_on_or_after: date | None = None,
) -> list[UserVacation]:
    """List a designer's vacations by start date, optionally only those not yet over."""
    query = "SELECT * FROM user_vacations WHERE user_id = ?"
    params: list = [user_id]
    if ending_on_or_after is not None:
        query += " AND end_date >= ?"
        params.append(ending_on_or_after.isoformat())
    query += " ORDER BY start_date"
    return [_row_to_vacation(r) for r in db.execute(query, params).fetchall()]


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        active=bool(row["active"]),
        created_at=_parse_dt(row["created_at"]),
    )


def _row_to_role(row: sqlite3.Row) -> UserRole:
    return UserRole(
        id=row["id"],
        user_id=row["user_id"],
        type_id=row["type_id"],
        brand_id=row["brand_id"],
    )


def _row_to_vacation(row: sqlite3.Row) -> UserVacation:
    return UserVacation(
        id=row["id"],
        user_id=row["user_id"],
        start_date=date.fromisoformat(row["start_date"]),
        end_date=date.fromisoformat(row["end_date"]),
    )


def _parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    return datetime.fromisoformat(val)
