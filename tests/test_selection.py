"""Tests for best-designer selection."""

from datetime import date, timedelta

import pytest
from conftest import utc

from designer_scheduler.core import catalog as catalog_mod
from designer_scheduler.core import users as users_mod
from designer_scheduler.core.cache import invalidate_task_assignment_cache
from designer_scheduler.core.selection import (
    find_available_designers,
    get_best_user_any_brand,
    get_best_user_with_cache,
    select_best_slot,
)
from designer_scheduler.core.validation import NotFoundError, UnknownPriorityError
from designer_scheduler.db.models import Priority, UserSlot


def slot(user_id, available, specialist, assigned=0.0):
    return UserSlot(
        user_id=user_id,
        user_name=user_id.title(),
        available_date=available,
        is_specialist=specialist,
        total_assigned_days=assigned,
    )


class TestSelectBestSlot:
    def test_empty(self):
        assert select_best_slot([], 10) is None

    def test_only_generalists(self):
        slots = [slot("g1", utc(2025, 7, 3), False), slot("g2", utc(2025, 7, 2), False)]
        assert select_best_slot(slots, 10).user_id == "g2"

    def test_only_specialists(self):
        slots = [slot("s1", utc(2025, 7, 30), True)]
        assert select_best_slot(slots, 10).user_id == "s1"

    def test_specialist_preferred_within_threshold(self):
        slots = [slot("s", utc(2025, 7, 8), True), slot("g", utc(2025, 7, 1), False)]
        assert select_best_slot(slots, 10).user_id == "s"

    def test_exactly_threshold_keeps_specialist(self):
        slots = [slot("s", utc(2025, 7, 11), True), slot("g", utc(2025, 7, 1), False)]
        assert select_best_slot(slots, 10).user_id == "s"

    def test_generalist_when_specialist_too_late(self):
        slots = [slot("s", utc(2025, 7, 20), True), slot("g", utc(2025, 7, 1), False)]
        assert select_best_slot(slots, 10).user_id == "g"

    def test_tie_broken_by_assigned_work(self):
        slots = [
            slot("busy", utc(2025, 7, 1), True, assigned=9),
            slot("light", utc(2025, 7, 1), True, assigned=2),
        ]
        assert select_best_slot(slots, 10).user_id == "light"

    @pytest.mark.parametrize("lag_hours", [0, 23, 24 * 5, 24 * 10, 24 * 10 + 1, 24 * 30])
    @pytest.mark.parametrize("threshold", [1, 5, 10])
    def test_threshold_property(self, lag_hours, threshold):
        generalist = slot("g", utc(2025, 7, 1), False)
        specialist = slot("s", utc(2025, 7, 1) + timedelta(hours=lag_hours), True)
        chosen = select_best_slot([specialist, generalist], threshold)
        if timedelta(hours=lag_hours) > timedelta(days=threshold):
            assert chosen is generalist
        else:
            assert chosen is specialist


class TestBestUserWithCache:
    def test_specialist_wins_when_free(self, db, ctx, studio):
        best = get_best_user_with_cache(db, ctx, studio.design.id, "acme", Priority.NORMAL, 2)
        assert best.user_id == "alice"
        assert best.is_specialist
        assert best.available_date == utc(2025, 6, 30, 15)

    def test_busy_specialist_loses(self, db, ctx, studio, add_task):
        add_task("Campaign", ["alice"], utc(2025, 7, 1, 15), utc(2025, 7, 25), days=18)
        best = get_best_user_with_cache(db, ctx, studio.design.id, "acme", Priority.NORMAL, 2)
        assert best.user_id == "bob"
        assert not best.is_specialist

    def test_returns_plain_user_slot(self, db, ctx, studio):
        best = get_best_user_with_cache(db, ctx, studio.design.id, "acme", Priority.HIGH, 1)
        assert type(best) is UserSlot

    def test_none_is_cached_until_invalidated(self, db, ctx, studio):
        motion = catalog_mod.create_type(db, "Motion")
        assert get_best_user_with_cache(db, ctx, motion.id, "acme", Priority.NORMAL, 1) is None

        users_mod.add_role(db, "alice", motion.id)
        assert get_best_user_with_cache(db, ctx, motion.id, "acme", Priority.NORMAL, 1) is None

        invalidate_task_assignment_cache(ctx.cache)
        best = get_best_user_with_cache(db, ctx, motion.id, "acme", Priority.NORMAL, 1)
        assert best.user_id == "alice"

    def test_role_change_with_cache_invalidates(self, db, ctx, studio):
        motion = catalog_mod.create_type(db, "Motion")
        assert get_best_user_with_cache(db, ctx, motion.id, "acme", Priority.NORMAL, 1) is None
        users_mod.add_role(db, "bob", motion.id, cache=ctx.cache)
        assert get_best_user_with_cache(db, ctx, motion.id, "acme", Priority.NORMAL, 1).user_id == "bob"

    def test_unknown_priority_raises(self, db, ctx, studio):
        with pytest.raises(UnknownPriorityError):
            get_best_user_with_cache(db, ctx, studio.design.id, "acme", "HIGH", 1)


class TestUnknownEntities:
    def test_unknown_type(self, db, ctx, studio):
        with pytest.raises(NotFoundError) as exc:
            get_best_user_with_cache(db, ctx, 999, "acme", Priority.NORMAL, 1)
        assert exc.value.entity == "Task type"
        assert ctx.cache.keys() == []

    def test_unknown_brand(self, db, ctx, studio):
        with pytest.raises(NotFoundError) as exc:
            get_best_user_with_cache(db, ctx, studio.design.id, "initech", Priority.NORMAL, 1)
        assert exc.value.entity == "Brand"

    def test_any_brand_unknown_type(self, db, ctx, studio):
        with pytest.raises(NotFoundError):
            get_best_user_any_brand(db, ctx, 999, Priority.NORMAL, 1)

    @pytest.mark.parametrize("type_id,brand_id", [(999, "acme"), (1, "initech")])
    def test_available_designers(self, db, ctx, studio, type_id, brand_id):
        with pytest.raises(NotFoundError):
            find_available_designers(db, ctx, type_id, brand_id, 1)


class TestAvailableDesigners:
    def test_vacation_excludes_designer(self, db, ctx, studio):
        users_mod.add_vacation(db, "alice", date(2025, 6, 30), date(2025, 7, 20))
        available, diagnostics = find_available_designers(db, ctx, studio.design.id, "acme", 2)
        assert [s.user_id for s in available] == ["bob"]
        assert diagnostics.total_compatible == 2
        assert diagnostics.total_available == 1
        assert not diagnostics.all_on_vacation

    def test_all_on_vacation(self, db, ctx, studio):
        users_mod.add_vacation(db, "alice", date(2025, 6, 30), date(2025, 7, 20))
        users_mod.add_vacation(db, "bob", date(2025, 6, 28), date(2025, 7, 4))
        available, diagnostics = find_available_designers(db, ctx, studio.design.id, "acme", 2)
        assert available == []
        assert diagnostics.all_on_vacation

    def test_nobody_compatible(self, db, ctx, studio):
        motion = catalog_mod.create_type(db, "Motion")
        available, diagnostics = find_available_designers(db, ctx, motion.id, "acme", 2)
        assert available == []
        assert diagnostics.total_compatible == 0
        assert not diagnostics.all_on_vacation


class TestAnyBrand:
    def test_first_brand_in_creation_order(self, db, ctx, studio):
        brand_id, best = get_best_user_any_brand(db, ctx, studio.video.id, Priority.NORMAL, 1)
        assert brand_id == "acme"
        assert best.user_id == "bob"

    def test_falls_back_to_later_brand(self, db, ctx, studio):
        print_type = catalog_mod.create_type(db, "Print")
        users_mod.create_user(db, "carol", "Carol")
        users_mod.add_role(db, "carol", print_type.id, "globex")

        brand_id, best = get_best_user_any_brand(db, ctx, print_type.id, Priority.NORMAL, 1)
        assert brand_id == "globex"
        assert best.user_id == "carol"

    def test_inactive_brands_skipped(self, db, ctx, studio):
        print_type = catalog_mod.create_type(db, "Print")
        users_mod.create_user(db, "carol", "Carol")
        users_mod.add_role(db, "carol", print_type.id, "globex")
        catalog_mod.set_brand_active(db, "globex", False)

        assert get_best_user_any_brand(db, ctx, print_type.id, Priority.NORMAL, 1) is None
