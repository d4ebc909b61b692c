"""Tests for the settings store and context assembly."""

from datetime import date

import pytest

from designer_scheduler.config import Config
from designer_scheduler.core import catalog as catalog_mod
from designer_scheduler.core import settings as settings_mod
from designer_scheduler.core.cache import CacheService
from designer_scheduler.core.calendar import WorkHours
from designer_scheduler.core.validation import NotFoundError, ValidationError


class TestDefaults:
    def test_falls_back_to_config(self, db):
        assert settings_mod.get_setting(db, "work_hours", "start") == 15
        assert settings_mod.get_setting(db, "work_hours", "start", Config(work_start=9)) == 9

    def test_category(self, db):
        values = settings_mod.get_settings_by_category(db, "task_assignment")
        assert values == {
            "deadline_difference_to_force_generalist": 10,
            "normal_tasks_before_low_threshold": 5,
            "consecutive_low_tasks_threshold": 4,
        }

    def test_tier_durations_category(self, db):
        values = settings_mod.get_settings_by_category(db, settings_mod.TIER_CATEGORY)
        assert values["S"] == 30
        assert settings_mod.get_setting(db, settings_mod.TIER_CATEGORY, "E") == 0.5

    def test_unknown_setting(self, db):
        with pytest.raises(NotFoundError):
            settings_mod.get_setting(db, "work_hours", "siesta")

    def test_unknown_category(self, db):
        with pytest.raises(NotFoundError):
            settings_mod.get_settings_by_category(db, "colors")

    def test_list_settings_marks_overrides(self, db):
        settings_mod.update_setting(db, "cache", "default_ttl_seconds", 60)
        items = {(i["category"], i["key"]): i for i in settings_mod.list_settings(db)}
        assert items[("cache", "default_ttl_seconds")]["overridden"]
        assert items[("cache", "default_ttl_seconds")]["value"] == 60
        assert not items[("work_hours", "start")]["overridden"]
        assert ("tier_durations", "A") in items


class TestUpdate:
    def test_store_and_read(self, db):
        assert settings_mod.update_setting(db, "task_assignment", "consecutive_low_tasks_threshold", "3") == 3
        assert settings_mod.get_setting(db, "task_assignment", "consecutive_low_tasks_threshold") == 3

    def test_float_setting(self, db):
        stored = settings_mod.update_setting(
            db, "task_assignment", "deadline_difference_to_force_generalist", 7.5
        )
        assert stored == 7.5

    @pytest.mark.parametrize(
        "category,key,value",
        [
            ("task_assignment", "consecutive_low_tasks_threshold", 0),
            ("task_assignment", "consecutive_low_tasks_threshold", 2.5),
            ("task_assignment", "normal_tasks_before_low_threshold", "many"),
            ("cache", "default_ttl_seconds", 99999),
            ("work_hours", "end", 25),
        ],
    )
    def test_invalid_values(self, db, category, key, value):
        with pytest.raises(ValidationError):
            settings_mod.update_setting(db, category, key, value)

    def test_inconsistent_work_hours(self, db):
        # Lunch cannot start before work does
        with pytest.raises(ValidationError):
            settings_mod.update_setting(db, "work_hours", "lunch_start", 10)
        assert settings_mod.get_setting(db, "work_hours", "lunch_start") == 19

    def test_tier_duration(self, db):
        settings_mod.update_setting(db, settings_mod.TIER_CATEGORY, "C", 6)
        assert catalog_mod.get_tier_by_name(db, "C").duration == 6

    def test_invalidates_cache(self, db):
        cache = CacheService()
        cache.set("best_user:1-acme-NORMAL-1", "alice")
        settings_mod.update_setting(db, "work_hours", "utc_offset", 2, cache=cache)
        assert cache.keys() == []

    def test_reset(self, db):
        settings_mod.update_setting(db, "work_hours", "start", 14)
        settings_mod.update_setting(db, "cache", "default_ttl_seconds", 60)
        assert settings_mod.reset_settings(db, "cache") == 1
        assert settings_mod.get_setting(db, "cache", "default_ttl_seconds") == 300
        assert settings_mod.get_setting(db, "work_hours", "start") == 14
        assert settings_mod.reset_settings(db) == 1
        assert settings_mod.get_setting(db, "work_hours", "start") == 15


class TestBuildContext:
    def test_defaults(self, db):
        ctx = settings_mod.build_context(db)
        assert ctx.calendar.work_hours == WorkHours()
        assert ctx.thresholds.generalist_threshold_days == 10
        assert ctx.cache.ttl_seconds == 300

    def test_overrides_and_config(self, db):
        config = Config(work_start=8, lunch_start=12, lunch_end=13, work_end=17, holidays=[date(2025, 12, 25)])
        settings_mod.update_setting(db, "work_hours", "end", 18, config)
        settings_mod.update_setting(db, "task_assignment", "normal_tasks_before_low_threshold", 2, config)

        ctx = settings_mod.build_context(db, config)
        assert ctx.calendar.work_hours == WorkHours(start=8, lunch_start=12, lunch_end=13, end=18)
        assert ctx.thresholds.normal_before_low == 2
        assert not ctx.calendar.is_working_day(date(2025, 12, 25))

    def test_shared_cache_kept(self, db):
        cache = CacheService(ttl_seconds=5)
        assert settings_mod.build_context(db, cache=cache).cache is cache
