"""Choose the designer who should receive a new task."""

import logging
import sqlite3
from datetime import timedelta

from designer_scheduler.core import catalog as catalog_mod
from designer_scheduler.core.cache import BEST_USER_SELECTION_PREFIX, MISSING
from designer_scheduler.core.context import SchedulingContext
from designer_scheduler.core.slots import calculate_vacation_aware_slots
from designer_scheduler.core.validation import require_priority
from designer_scheduler.db.models import (
    AssignmentDiagnostics,
    Priority,
    UserSlot,
    VacationAwareUserSlot,
)

logger = logging.getLogger(__name__)


def _rank_key(slot: UserSlot):
    return (slot.available_date, slot.total_assigned_days, slot.user_id)


def select_best_slot(slots: list[UserSlot], threshold_days: float) -> UserSlot | None:
    """Pick the best slot, preferring specialists unless one is much later than a generalist.

    Within a pool, the earliest available designer wins and ties go to the
    one with less assigned work. A specialist loses to the best generalist only
    when their start is more than ``threshold_days`` later.
    """
    specialists = sorted((s for s in slots if s.is_specialist), key=_rank_key)
    generalists = sorted((s for s in slots if not s.is_specialist), key=_rank_key)

    best_specialist = specialists[0] if specialists else None
    best_generalist = generalists[0] if generalists else None

    if not best_specialist:
        return best_generalist
    if not best_generalist:
        return best_specialist

    lag = best_specialist.available_date - best_generalist.available_date
    if lag > timedelta(days=threshold_days):
        logger.info(
            "Specialist %s free %s after generalist %s; choosing the generalist",
            best_specialist.user_name, lag, best_generalist.user_name,
        )
        return best_generalist
    return best_specialist


def get_best_user_with_cache(
    db: sqlite3.Connection,
    ctx: SchedulingContext,
    type_id: int,
    brand_id: str,
    priority: Priority,
    duration_days: float,
) -> UserSlot | None:
    """Best designer for a task of (type, brand, priority, duration), or None if nobody fits.

    Results, including ``None``, are memoised until they expire or roles,
    vacations or tasks change. An unknown type or brand raises NotFoundError.
    """
    priority = require_priority(priority)
    catalog_mod.require_type(db, type_id)
    catalog_mod.require_brand(db, brand_id)
    key = f"{BEST_USER_SELECTION_PREFIX}{type_id}-{brand_id}-{priority.value}-{duration_days}"
    cached = ctx.cache.get(key)
    if cached is not MISSING:
        return cached

    slots = calculate_vacation_aware_slots(db, ctx, type_id, brand_id, duration_days)
    best = select_best_slot(slots, ctx.thresholds.generalist_threshold_days)
    result = best.to_user_slot() if best else None

    if result:
        logger.info(
            "Best designer for type=%s brand=%s: %s (%s, available %s)",
            type_id, brand_id, result.user_name,
            "specialist" if result.is_specialist else "generalist",
            result.available_date.isoformat(),
        )
    else:
        logger.info("No compatible designer for type=%s brand=%s", type_id, brand_id)

    ctx.cache.set(key, result)
    return result


def find_available_designers(
    db: sqlite3.Connection,
    ctx: SchedulingContext,
    type_id: int,
    brand_id: str,
    duration_days: float,
) -> tuple[list[VacationAwareUserSlot], AssignmentDiagnostics]:
    """Designers who can start the task without moving past a vacation, with counts."""
    catalog_mod.require_type(db, type_id)
    catalog_mod.require_brand(db, brand_id)
    slots = calculate_vacation_aware_slots(db, ctx, type_id, brand_id, duration_days)
    available = sorted((s for s in slots if not s.has_vacation_conflict), key=_rank_key)
    diagnostics = AssignmentDiagnostics(
        total_compatible=len(slots),
        total_available=len(available),
        all_on_vacation=bool(slots) and not available,
    )
    return available, diagnostics


def get_best_user_any_brand(
    db: sqlite3.Connection,
    ctx: SchedulingContext,
    type_id: int,
    priority: Priority,
    duration_days: float,
) -> tuple[str, UserSlot] | None:
    """Try every active brand in creation order; the first brand with a candidate wins."""
    catalog_mod.require_type(db, type_id)
    for brand in catalog_mod.list_brands(db, active_only=True):
        slot = get_best_user_with_cache(db, ctx, type_id, brand.id, priority, duration_days)
        if slot:
            return brand.id, slot
    return None
