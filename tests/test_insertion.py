"""Tests for priority insertion and push-chain re-stamping."""

from datetime import date

import pytest
from conftest import NOW, utc

from designer_scheduler.core import tasks as tasks_mod
from designer_scheduler.core import users as users_mod
from designer_scheduler.core.context import SchedulingContext, Thresholds
from designer_scheduler.core.insertion import (
    calculate_priority_insertion,
    find_insertion_index,
    plan_insertion,
    restamp_chain,
    shift_tasks_after_insertion,
)
from designer_scheduler.core.validation import NotFoundError, UnknownPriorityError
from designer_scheduler.db.models import Priority, Task

N, L, H, U = Priority.NORMAL, Priority.LOW, Priority.HIGH, Priority.URGENT


def make_queue(ctx, priorities, first_start=utc(2025, 7, 1, 15)):
    """Back-to-back 1-day tasks named t0, t1, ..."""
    queue = []
    start = first_start
    for i, priority in enumerate(priorities):
        start = ctx.calendar.next_available_start(start)
        deadline = ctx.calendar.deadline_for_days(start, 1)
        queue.append(
            Task(
                id=f"t{i}",
                name=f"t{i}",
                type_id=1,
                category_id=1,
                brand_id="acme",
                start_date=start,
                deadline=deadline,
                priority=priority,
                custom_duration=1.0,
            )
        )
        start = deadline
    return queue


class TestInsertionIndex:
    @pytest.mark.parametrize("priority", [L, N, H, U])
    def test_empty_queue_inserts_first(self, ctx, priority):
        index, _ = find_insertion_index([], priority, Thresholds())
        assert index == 0

    @pytest.mark.parametrize(
        "priority,queue,expected",
        [
            (U, [N, L], 0),
            (H, [N, L], 1),
            (H, [N], 1),
            (N, [N, N, L], 2),
            (N, [L, N, N, L], 3),
            (N, [N, H], 2),
            (L, [N, L, L, L], 4),
            (L, [N, L, L, L, L], 1),
            (L, [L, L, L, L], 0),
        ],
    )
    def test_default_thresholds(self, ctx, priority, queue, expected):
        index, reason = find_insertion_index(make_queue(ctx, queue), priority, Thresholds())
        assert index == expected
        assert reason.startswith(priority.value)

    def test_normal_respects_normal_before_low(self, ctx):
        thresholds = Thresholds(normal_before_low=2)
        assert find_insertion_index(make_queue(ctx, [N, N, L]), N, thresholds)[0] == 3
        assert find_insertion_index(make_queue(ctx, [L, N, N, L]), N, thresholds)[0] == 0

    def test_low_respects_consecutive_low(self, ctx):
        thresholds = Thresholds(consecutive_low=2)
        assert find_insertion_index(make_queue(ctx, [N, L]), L, thresholds)[0] == 2
        assert find_insertion_index(make_queue(ctx, [N, L, L]), L, thresholds)[0] == 1

    def test_unknown_priority(self, ctx):
        with pytest.raises(UnknownPriorityError):
            find_insertion_index([], "URGENT", Thresholds())


class TestPlanInsertion:
    def test_urgent_pushes_everything_in_order(self, ctx):
        queue = make_queue(ctx, [N, L])
        result = plan_insertion(ctx, queue, U, 1, now=NOW)

        assert result.start_date == utc(2025, 6, 30, 15)
        assert result.deadline == utc(2025, 7, 1)
        assert [t.id for t in result.affected_tasks] == ["t0", "t1"]

        chain = restamp_chain(ctx, result.affected_tasks, result.deadline)
        assert [r.task.id for r in chain] == ["t0", "t1"]
        assert chain[0].new_start > result.deadline
        assert chain[1].new_start >= chain[0].new_deadline

    def test_high_starts_after_first_task(self, ctx):
        queue = make_queue(ctx, [N, N, L])
        result = plan_insertion(ctx, queue, H, 1, now=NOW)
        assert result.start_date == ctx.calendar.next_available_start(queue[0].deadline)
        assert [t.id for t in result.affected_tasks] == ["t1", "t2"]

    def test_normal_append_pushes_nothing(self, ctx):
        queue = make_queue(ctx, [N, H])
        result = plan_insertion(ctx, queue, N, 2, now=NOW)
        assert result.affected_tasks == []
        assert result.start_date == utc(2025, 7, 3, 15)
        assert result.deadline == utc(2025, 7, 5)

    def test_low_run_at_threshold_is_pushed(self, ctx):
        queue = make_queue(ctx, [N, L, L, L, L])
        result = plan_insertion(ctx, queue, L, 1, now=NOW)
        assert [t.id for t in result.affected_tasks] == ["t1", "t2", "t3", "t4"]
        assert result.start_date == ctx.calendar.next_available_start(queue[0].deadline)

    def test_empty_queue_starts_now(self, ctx):
        result = plan_insertion(ctx, [], L, 0.5, now=NOW)
        assert result.start_date == utc(2025, 6, 30, 15)
        assert result.deadline == utc(2025, 6, 30, 19)
        assert result.affected_tasks == []

    def test_overdue_predecessor_does_not_start_in_the_past(self, ctx):
        queue = make_queue(ctx, [N], first_start=utc(2025, 6, 20, 15))
        result = plan_insertion(ctx, queue, N, 1, now=NOW)
        assert result.start_date == utc(2025, 6, 30, 15)


class TestRestampChain:
    def test_uses_each_task_duration(self, ctx):
        queue = make_queue(ctx, [N, N])
        queue[0].custom_duration = 0.5
        queue[1].custom_duration = 2

        chain = restamp_chain(ctx, queue, utc(2025, 7, 3))
        assert (chain[0].new_start, chain[0].new_deadline) == (utc(2025, 7, 3, 15), utc(2025, 7, 3, 19))
        assert (chain[1].new_start, chain[1].new_deadline) == (utc(2025, 7, 3, 20), utc(2025, 7, 7, 19))

    def test_does_not_mutate_tasks(self, ctx):
        queue = make_queue(ctx, [N])
        before = (queue[0].start_date, queue[0].deadline)
        restamp_chain(ctx, queue, utc(2025, 7, 10))
        assert (queue[0].start_date, queue[0].deadline) == before

    def test_empty(self, ctx):
        assert restamp_chain(ctx, [], NOW) == []


class TestCalculatePriorityInsertion:
    def test_unknown_user(self, db, ctx, studio):
        with pytest.raises(NotFoundError):
            calculate_priority_insertion(db, ctx, "nobody", N, 1)

    def test_queue_spans_every_type(self, db, ctx, studio, add_task):
        add_task("Banner", ["bob"], utc(2025, 7, 1, 15), utc(2025, 7, 2))
        add_task(
            "Reel", ["bob"], utc(2025, 7, 2, 15), utc(2025, 7, 3),
            type_id=studio.video.id, category_id=studio.reel.id,
        )
        result = calculate_priority_insertion(db, ctx, "bob", U, 1)
        assert [t.name for t in result.affected_tasks] == ["Banner", "Reel"]

    def test_adjusts_for_vacations(self, db, ctx, studio, add_task):
        add_task("Poster", ["alice"], utc(2025, 7, 1, 15), utc(2025, 7, 2))
        users_mod.add_vacation(db, "alice", date(2025, 7, 3), date(2025, 7, 10))

        result = calculate_priority_insertion(db, ctx, "alice", N, 2)
        assert result.start_date == utc(2025, 7, 11, 15)
        assert result.deadline == utc(2025, 7, 15)
        assert result.reason.endswith("(adjusted for vacations)")
        assert result.vacation_adjustment.original_date == utc(2025, 7, 2, 15)
        assert result.vacation_adjustment.conflicting_vacations == ["2025-07-03 to 2025-07-10"]

    def test_can_ignore_vacations(self, db, ctx, studio, add_task):
        add_task("Poster", ["alice"], utc(2025, 7, 1, 15), utc(2025, 7, 2))
        users_mod.add_vacation(db, "alice", date(2025, 7, 3), date(2025, 7, 10))

        result = calculate_priority_insertion(db, ctx, "alice", N, 2, respect_vacations=False)
        assert result.start_date == utc(2025, 7, 2, 15)
        assert result.vacation_adjustment is None


class TestShiftTasks:
    def test_persists_new_dates(self, db, ctx, studio, add_task):
        a = add_task("A", ["alice"], utc(2025, 7, 1, 15), utc(2025, 7, 2))
        b = add_task("B", ["alice"], utc(2025, 7, 2, 15), utc(2025, 7, 3), priority=Priority.LOW)

        plan = shift_tasks_after_insertion(db, ctx, [a, b], utc(2025, 7, 3))
        assert [r.task.id for r in plan] == [a.id, b.id]

        a2 = tasks_mod.get_task(db, a.id)
        b2 = tasks_mod.get_task(db, b.id)
        assert (a2.start_date, a2.deadline) == (utc(2025, 7, 3, 15), utc(2025, 7, 4))
        assert (b2.start_date, b2.deadline) == (utc(2025, 7, 4, 15), utc(2025, 7, 5))
        assert "rescheduled" in [e.event_type for e in tasks_mod.get_task_events(db, a.id)]

    def test_failure_rolls_back_whole_chain(self, db, ctx, studio, add_task, monkeypatch):
        a = add_task("A", ["alice"], utc(2025, 7, 1, 15), utc(2025, 7, 2))
        b = add_task("B", ["alice"], utc(2025, 7, 2, 15), utc(2025, 7, 3))

        original = tasks_mod._update_task_dates
        calls = []

        def flaky(db, task_id, start, deadline):
            calls.append(task_id)
            if len(calls) == 2:
                raise RuntimeError("disk full")
            original(db, task_id, start, deadline)

        monkeypatch.setattr(tasks_mod, "_update_task_dates", flaky)
        with pytest.raises(RuntimeError):
            shift_tasks_after_insertion(db, ctx, [a, b], utc(2025, 7, 3))

        a2 = tasks_mod.get_task(db, a.id)
        assert (a2.start_date, a2.deadline) == (a.start_date, a.deadline)
        assert "rescheduled" not in [e.event_type for e in tasks_mod.get_task_events(db, a.id)]

    def test_invalidates_cache(self, db, studio, add_task):
        ctx = SchedulingContext(clock=lambda: NOW)
        a = add_task("A", ["alice"], utc(2025, 7, 1, 15), utc(2025, 7, 2))
        ctx.cache.set("best_user:1-acme-NORMAL-1", None)
        shift_tasks_after_insertion(db, ctx, [a], utc(2025, 7, 3))
        assert ctx.cache.keys() == []
