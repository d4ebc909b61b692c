"""Settings store: environment defaults overridden by values saved in the database."""

import json
import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from designer_scheduler.config import Config
from designer_scheduler.core import catalog as catalog_mod
from designer_scheduler.core.cache import CacheService, invalidate_task_assignment_cache
from designer_scheduler.core.calendar import WorkHours, WorkingCalendar
from designer_scheduler.core.context import SchedulingContext, Thresholds, utcnow
from designer_scheduler.core.validation import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

TIER_CATEGORY = "tier_durations"


@dataclass(frozen=True)
class SettingDefinition:
    category: str
    key: str
    label: str
    min_value: float
    max_value: float
    config_attr: str
    integer: bool = True


SETTING_DEFINITIONS = [
    SettingDefinition("work_hours", "start", "Work start hour", 0, 23, "work_start"),
    SettingDefinition("work_hours", "lunch_start", "Lunch start hour", 0, 24, "lunch_start"),
    SettingDefinition("work_hours", "lunch_end", "Lunch end hour", 0, 24, "lunch_end"),
    SettingDefinition("work_hours", "end", "Work end hour", 1, 24, "work_end"),
    SettingDefinition("work_hours", "utc_offset", "Home UTC offset (hours)", -12, 14, "utc_offset_hours"),
    SettingDefinition(
        "task_assignment",
        "deadline_difference_to_force_generalist",
        "Days difference to force a generalist",
        1,
        30,
        "generalist_threshold_days",
        integer=False,
    ),
    SettingDefinition(
        "task_assignment",
        "normal_tasks_before_low_threshold",
        "NORMAL tasks allowed before a LOW task",
        1,
        20,
        "normal_before_low_threshold",
    ),
    SettingDefinition(
        "task_assignment",
        "consecutive_low_tasks_threshold",
        "Consecutive LOW tasks allowed",
        1,
        10,
        "consecutive_low_threshold",
    ),
    SettingDefinition("cache", "default_ttl_seconds", "Cache TTL (seconds)", 0, 3600, "cache_ttl_seconds"),
]

_DEFINITIONS = {(d.category, d.key): d for d in SETTING_DEFINITIONS}


def _definition(category: str, key: str) -> SettingDefinition:
    definition = _DEFINITIONS.get((category, key))
    if not definition:
        raise NotFoundError("Setting", f"{category}.{key}")
    return definition


def _stored(db: sqlite3.Connection, category: str) -> dict:
    rows = db.execute(
        "SELECT key, value FROM settings WHERE category = ?", (category,)
    ).fetchall()
    return {r["key"]: json.loads(r["value"]) for r in rows}


def get_setting(db: sqlite3.Connection, category: str, key: str, config: Config | None = None):
    """Return a stored value, falling back to the configured default."""
    if category == TIER_CATEGORY:
        tier = catalog_mod.get_tier_by_name(db, key)
        if not tier:
            raise NotFoundError("Tier", key)
        return tier.duration

    definition = _definition(category, key)
    row = db.execute(
        "SELECT value FROM settings WHERE category = ? AND key = ?", (category, key)
    ).fetchone()
    if row:
        return json.loads(row["value"])
    return getattr(config or Config(), definition.config_attr)


def get_settings_by_category(
    db: sqlite3.Connection, category: str, config: Config | None = None
) -> dict:
    if category == TIER_CATEGORY:
        return {t.name: t.duration for t in catalog_mod.list_tiers(db)}

    config = config or Config()
    stored = _stored(db, category)
    keys = [d for d in SETTING_DEFINITIONS if d.category == category]
    if not keys:
        raise NotFoundError("Setting category", category)
    return {d.key: stored.get(d.key, getattr(config, d.config_attr)) for d in keys}


def list_settings(db: sqlite3.Connection, config: Config | None = None) -> list[dict]:
    """All settings with their effective value, for display."""
    config = config or Config()
    result = []
    for category in dict.fromkeys(d.category for d in SETTING_DEFINITIONS):
        stored = _stored(db, category)
        for d in SETTING_DEFINITIONS:
            if d.category != category:
                continue
            result.append({
                "category": d.category,
                "key": d.key,
                "label": d.label,
                "value": stored.get(d.key, getattr(config, d.config_attr)),
                "overridden": d.key in stored,
            })
    for tier in catalog_mod.list_tiers(db):
        result.append({
            "category": TIER_CATEGORY,
            "key": tier.name,
            "label": f"Tier {tier.name} duration (days)",
            "value": tier.duration,
            "overridden": True,
        })
    return result


def _coerce(definition: SettingDefinition, value):
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{definition.category}.{definition.key}", "must be a number") from None
    if definition.integer:
        if number != int(number):
            raise ValidationError(f"{definition.category}.{definition.key}", "must be a whole number")
        number = int(number)
    if not definition.min_value <= number <= definition.max_value:
        raise ValidationError(
            f"{definition.category}.{definition.key}",
            f"must be between {definition.min_value} and {definition.max_value}",
        )
    return number


def update_setting(
    db: sqlite3.Connection,
    category: str,
    key: str,
    value,
    config: Config | None = None,
    cache: CacheService | None = None,
):
    """Validate and store a setting override. Returns the stored value."""
    if category == TIER_CATEGORY:
        tier = catalog_mod.set_tier_duration(db, key, value)
        stored_value = tier.duration
    else:
        definition = _definition(category, key)
        stored_value = _coerce(definition, value)

        if category == "work_hours":
            current = get_settings_by_category(db, category, config)
            current[key] = stored_value
            try:
                _work_hours_from(current)
            except ValueError as e:
                raise ValidationError(f"{category}.{key}", str(e)) from None

        db.execute(
            """INSERT INTO settings (category, key, value) VALUES (?, ?, ?)
               ON CONFLICT(category, key) DO UPDATE
               SET value = excluded.value, updated_at = datetime('now')""",
            (category, key, json.dumps(stored_value)),
        )
        db.commit()

    logger.info("Setting %s.%s updated to %s", category, key, stored_value)
    if cache is not None:
        invalidate_task_assignment_cache(cache)
    return stored_value


def reset_settings(
    db: sqlite3.Connection,
    category: str | None = None,
    cache: CacheService | None = None,
) -> int:
    """Drop stored overrides (all, or one category). Returns how many were removed."""
    if category:
        cursor = db.execute("DELETE FROM settings WHERE category = ?", (category,))
    else:
        cursor = db.execute("DELETE FROM settings")
    db.commit()
    if cache is not None:
        invalidate_task_assignment_cache(cache)
    return cursor.rowcount


def _work_hours_from(values: dict) -> WorkHours:
    return WorkHours(
        start=values["start"],
        lunch_start=values["lunch_start"],
        lunch_end=values["lunch_end"],
        end=values["end"],
        utc_offset_hours=values["utc_offset"],
    )


def load_work_hours(db: sqlite3.Connection, config: Config | None = None) -> WorkHours:
    return _work_hours_from(get_settings_by_category(db, "work_hours", config))


def load_thresholds(db: sqlite3.Connection, config: Config | None = None) -> Thresholds:
    values = get_settings_by_category(db, "task_assignment", config)
    return Thresholds(
        generalist_threshold_days=values["deadline_difference_to_force_generalist"],
        normal_before_low=values["normal_tasks_before_low_threshold"],
        consecutive_low=values["consecutive_low_tasks_threshold"],
    )


def build_context(
    db: sqlite3.Connection,
    config: Config | None = None,
    cache: CacheService | None = None,
    clock: Callable[[], datetime] | None = None,
) -> SchedulingContext:
    """Assemble the scheduling context from configuration and stored settings."""
    config = config or Config()
    if cache is None:
        cache = CacheService(ttl_seconds=get_setting(db, "cache", "default_ttl_seconds", config))
    return SchedulingContext(
        calendar=WorkingCalendar(load_work_hours(db, config), holidays=config.holidays),
        thresholds=load_thresholds(db, config),
        cache=cache,
        clock=clock or utcnow,
    )
