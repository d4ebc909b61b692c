"""CLI entry point for the designer scheduler."""

import functools
import json
import logging
import sqlite3
import sys

import click

from designer_scheduler.config import get_config
from designer_scheduler.core import catalog as catalog_mod
from designer_scheduler.core import settings as settings_mod
from designer_scheduler.core import tasks as tasks_mod
from designer_scheduler.core import users as users_mod
from designer_scheduler.core.assignment import change_task_status, create_assigned_task
from designer_scheduler.core.importer import import_external_tasks
from designer_scheduler.core.insertion import calculate_priority_insertion
from designer_scheduler.core.selection import (
    find_available_designers,
    get_best_user_any_brand,
    get_best_user_with_cache,
)
from designer_scheduler.core.validation import (
    NoCandidateError,
    NotFoundError,
    TaskRequest,
    ValidationError,
    parse_duration,
)
from designer_scheduler.db.engine import get_db
from designer_scheduler.db.models import Priority, Status

PRIORITY_CHOICE = click.Choice([p.value for p in Priority], case_sensitive=False)
STATUS_CHOICE = click.Choice([s.value for s in Status], case_sensitive=False)
DATE = click.DateTime(formats=["%Y-%m-%d"])


def _get_db():
    config = get_config()
    return get_db(config.db_path)


def _handle_errors(func):
    """Report domain errors as ``Error: ...`` on stderr and exit 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (ValidationError, NotFoundError, sqlite3.IntegrityError) as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        except NoCandidateError as e:
            d = e.diagnostics
            click.echo(f"Error: {e}", err=True)
            if d.all_on_vacation:
                click.echo("  Every compatible designer is on vacation.", err=True)
            sys.exit(1)

    return wrapper


def _duration_or_category(db, duration, category_id) -> float:
    if duration is not None:
        return parse_duration(duration)
    if category_id is not None:
        category = catalog_mod.get_category(db, category_id)
        if not category:
            raise NotFoundError("Category", category_id)
        return category.duration
    raise ValidationError("duration", "pass --duration or --category")


@click.group()
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (default: DS_LOG_LEVEL or WARNING)",
)
def main(log_level):
    """ds - Designer Scheduler CLI"""
    level = (log_level or get_config().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ── Catalog Commands ──────────────────────────────────────────────────────────


@main.group("brand")
def brand_group():
    """Manage brands."""
    pass


@brand_group.command("add")
@click.argument("brand_id")
@click.argument("name")
@click.option("--inactive", is_flag=True, help="Create the brand as inactive")
@_handle_errors
def brand_add(brand_id, name, inactive):
    """Create a brand."""
    with _get_db() as db:
        brand = catalog_mod.create_brand(db, brand_id, name, is_active=not inactive)
        click.echo(f"Brand created: {brand.id} ({brand.name})")


@brand_group.command("list")
@click.option("--active-only", is_flag=True, help="Only active brands")
def brand_list(active_only):
    """List brands in creation order."""
    with _get_db() as db:
        brands = catalog_mod.list_brands(db, active_only=active_only)
        if not brands:
            click.echo("No brands found.")
            return
        for b in brands:
            state = "active" if b.is_active else "inactive"
            click.echo(f"  {b.id}: {b.name} ({state})")


@brand_group.command("activate")
@click.argument("brand_id")
@click.option("--off", is_flag=True, help="Deactivate instead")
def brand_activate(brand_id, off):
    """Activate or deactivate a brand."""
    with _get_db() as db:
        brand = catalog_mod.set_brand_active(db, brand_id, not off)
        if not brand:
            click.echo(f"Brand not found: {brand_id}", err=True)
            sys.exit(1)
        click.echo(f"Brand {brand.id} is now {'active' if brand.is_active else 'inactive'}")


@main.group("type")
def type_group():
    """Manage task types."""
    pass


@type_group.command("add")
@click.argument("name")
@_handle_errors
def type_add(name):
    """Create a task type."""
    with _get_db() as db:
        task_type = catalog_mod.create_type(db, name)
        click.echo(f"Task type created: {task_type.id} ({task_type.name})")


@type_group.command("list")
def type_list():
    """List task types."""
    with _get_db() as db:
        for t in catalog_mod.list_types(db):
            click.echo(f"  {t.id}: {t.name}")


@main.group("tier")
def tier_group():
    """Show and tune tier durations."""
    pass


@tier_group.command("list")
def tier_list():
    """List tiers with their durations in days."""
    with _get_db() as db:
        for t in catalog_mod.list_tiers(db):
            click.echo(f"  {t.name}: {t.duration:g} days")


@tier_group.command("set")
@click.argument("name")
@click.argument("days")
@_handle_errors
def tier_set(name, days):
    """Change a tier's duration."""
    with _get_db() as db:
        tier = catalog_mod.set_tier_duration(db, name, days)
        click.echo(f"Tier {tier.name}: {tier.duration:g} days")


@main.group("category")
def category_group():
    """Manage task categories."""
    pass


@category_group.command("add")
@click.argument("name")
@click.option("--type", "type_id", required=True, type=int, help="Task type ID")
@click.option("--tier", "tier_name", required=True, help="Tier name (S, A, B, C, D, E)")
@_handle_errors
def category_add(name, type_id, tier_name):
    """Create a task category."""
    with _get_db() as db:
        category = catalog_mod.create_category(db, name, type_id, tier_name)
        click.echo(
            f"Category created: {category.id} ({category.name}, tier {category.tier_name}, "
            f"{category.duration:g} days)"
        )


@category_group.command("list")
@click.option("--type", "type_id", default=None, type=int, help="Filter by task type ID")
def category_list(type_id):
    """List task categories."""
    with _get_db() as db:
        categories = catalog_mod.list_categories(db, type_id=type_id)
        if not categories:
            click.echo("No categories found.")
            return
        for c in categories:
            click.echo(f"  {c.id}: {c.name} [type {c.type_id}] tier {c.tier_name} ({c.duration:g} days)")


# ── Designer Commands ─────────────────────────────────────────────────────────


@main.group("designer")
def designer_group():
    """Manage designers."""
    pass


@designer_group.command("add")
@click.argument("user_id")
@click.argument("name")
@click.option("--email", default=None, help="Email address")
@_handle_errors
def designer_add(user_id, name, email):
    """Create a designer."""
    with _get_db() as db:
        user = users_mod.create_user(db, user_id, name, email)
        click.echo(f"Designer created: {user.id} ({user.name})")


@designer_group.command("list")
@click.option("--active-only", is_flag=True, help="Only active designers")
def designer_list(active_only):
    """List designers with their roles."""
    with _get_db() as db:
        users = users_mod.list_users(db, active_only=active_only)
        if not users:
            click.echo("No designers found.")
            return
        for u in users:
            roles = ", ".join(
                f"type {r.type_id}@{r.brand_id or '*'}" for r in u.roles
            ) or "no roles"
            state = "" if u.active else " (inactive)"
            click.echo(f"  {u.id}: {u.name}{state} [{roles}]")


@designer_group.command("show")
@click.argument("user_id")
def designer_show(user_id):
    """Show a designer's roles and vacations."""
    with _get_db() as db:
        user = users_mod.get_user(db, user_id)
        if not user:
            click.echo(f"Designer not found: {user_id}", err=True)
            sys.exit(1)
        click.echo(f"Designer: {user.id}")
        click.echo(f"  Name: {user.name}")
        if user.email:
            click.echo(f"  Email: {user.email}")
        click.echo(f"  Active: {'yes' if user.active else 'no'}")
        if user.roles:
            click.echo("  Roles:")
            for r in user.roles:
                click.echo(f"    [{r.id}] type {r.type_id}, brand {r.brand_id or 'all'}")
        if user.vacations:
            click.echo("  Vacations:")
            for v in user.vacations:
                click.echo(f"    [{v.id}] {v.start_date} to {v.end_date}")


@designer_group.command("activate")
@click.argument("user_id")
@click.option("--off", is_flag=True, help="Deactivate instead")
def designer_activate(user_id, off):
    """Activate or deactivate a designer."""
    with _get_db() as db:
        user = users_mod.set_user_active(db, user_id, not off)
        if not user:
            click.echo(f"Designer not found: {user_id}", err=True)
            sys.exit(1)
        click.echo(f"Designer {user.id} is now {'active' if user.active else 'inactive'}")


@main.group("role")
def role_group():
    """Manage designer roles."""
    pass


@role_group.command("add")
@click.argument("user_id")
@click.argument("type_id", type=int)
@click.option("--brand", "brand_id", default=None, help="Brand ID (omit for every brand)")
@_handle_errors
def role_add(user_id, type_id, brand_id):
    """Give a designer a role for a task type."""
    with _get_db() as db:
        role = users_mod.add_role(db, user_id, type_id, brand_id)
        click.echo(f"Role added: {role.id} (type {role.type_id}, brand {role.brand_id or 'all'})")


@role_group.command("remove")
@click.argument("role_id", type=int)
def role_remove(role_id):
    """Remove a role."""
    with _get_db() as db:
        if not users_mod.remove_role(db, role_id):
            click.echo(f"Role not found: {role_id}", err=True)
            sys.exit(1)
        click.echo(f"Role removed: {role_id}")


@main.group("vacation")
def vacation_group():
    """Manage designer vacations."""
    pass


@vacation_group.command("add")
@click.argument("user_id")
@click.argument("start", type=DATE)
@click.argument("end", type=DATE)
@_handle_errors
def vacation_add(user_id, start, end):
    """Record a vacation (whole days, END included)."""
    with _get_db() as db:
        vacation = users_mod.add_vacation(db, user_id, start.date(), end.date())
        click.echo(f"Vacation added: {vacation.id} ({vacation.start_date} to {vacation.end_date})")


@vacation_group.command("list")
@click.argument("user_id")
def vacation_list(user_id):
    """List a designer's vacations."""
    with _get_db() as db:
        vacations = users_mod.list_vacations(db, user_id)
        if not vacations:
            click.echo("No vacations found.")
            return
        for v in vacations:
            click.echo(f"  [{v.id}] {v.start_date} to {v.end_date}")


@vacation_group.command("remove")
@click.argument("vacation_id", type=int)
def vacation_remove(vacation_id):
    """Remove a vacation."""
    with _get_db() as db:
        if not users_mod.remove_vacation(db, vacation_id):
            click.echo(f"Vacation not found: {vacation_id}", err=True)
            sys.exit(1)
        click.echo(f"Vacation removed: {vacation_id}")


# ── Scheduling Commands ───────────────────────────────────────────────────────


@main.command("suggest")
@click.option("--type", "type_id", required=True, type=int, help="Task type ID")
@click.option("--brand", "brand_id", default=None, help="Brand ID (omit to try every active brand)")
@click.option("--priority", "-p", default="NORMAL", type=PRIORITY_CHOICE, help="Task priority")
@click.option("--duration", default=None, help="Duration in working days")
@click.option("--category", "category_id", default=None, type=int, help="Use the category's tier duration")
@_handle_errors
def suggest(type_id, brand_id, priority, duration, category_id):
    """Suggest the best designer for a task."""
    config = get_config()
    with _get_db() as db:
        ctx = settings_mod.build_context(db, config)
        days = _duration_or_category(db, duration, category_id)
        priority = Priority(priority.upper())

        if brand_id:
            slot = get_best_user_with_cache(db, ctx, type_id, brand_id, priority, days)
        else:
            found = get_best_user_any_brand(db, ctx, type_id, priority, days)
            brand_id, slot = found if found else (None, None)

        if not slot:
            click.echo("No compatible designer found.")
            sys.exit(1)

        kind = "specialist" if slot.is_specialist else "generalist"
        click.echo(f"Best designer: {slot.user_id} ({slot.user_name}, {kind})")
        click.echo(f"  Brand: {brand_id}")
        click.echo(f"  Available: {slot.available_date.isoformat()}")
        click.echo(f"  Active tasks: {slot.task_count} ({slot.total_assigned_days:g} days)")


@main.command("available")
@click.option("--type", "type_id", required=True, type=int, help="Task type ID")
@click.option("--brand", "brand_id", required=True, help="Brand ID")
@click.option("--duration", default=None, help="Duration in working days")
@click.option("--category", "category_id", default=None, type=int, help="Use the category's tier duration")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
@_handle_errors
def available(type_id, brand_id, duration, category_id, json_output):
    """List designers who can start a task without a vacation in the way."""
    config = get_config()
    with _get_db() as db:
        ctx = settings_mod.build_context(db, config)
        days = _duration_or_category(db, duration, category_id)
        slots, diagnostics = find_available_designers(db, ctx, type_id, brand_id, days)

        if json_output:
            click.echo(json.dumps({
                "designers": [
                    {
                        "user_id": s.user_id,
                        "available_date": s.available_date.isoformat(),
                        "potential_task_end": s.potential_task_end.isoformat(),
                        "is_specialist": s.is_specialist,
                        "working_days_until_available": s.working_days_until_available,
                    }
                    for s in slots
                ],
                "total_compatible": diagnostics.total_compatible,
                "total_available": diagnostics.total_available,
                "all_on_vacation": diagnostics.all_on_vacation,
            }, indent=2))
            return

        click.echo(
            f"{diagnostics.total_available} of {diagnostics.total_compatible} compatible designers available"
        )
        if diagnostics.all_on_vacation:
            click.echo("  Every compatible designer is on vacation.")
        for s in slots:
            kind = "S" if s.is_specialist else "G"
            click.echo(
                f"  [{kind}] {s.user_id}: {s.available_date:%Y-%m-%d %H:%M} -> "
                f"{s.potential_task_end:%Y-%m-%d %H:%M} UTC"
            )


@main.command("queue")
@click.argument("user_id")
@click.option("--priority", "-p", default=None, type=PRIORITY_CHOICE, help="Preview inserting a task with this priority")
@click.option("--duration", default=None, help="Duration of the previewed task in working days")
@click.option("--ignore-vacations", is_flag=True, help="Do not move the previewed task past vacations")
@_handle_errors
def queue(user_id, priority, duration, ignore_vacations):
    """Show a designer's active queue, optionally previewing an insertion."""
    config = get_config()
    with _get_db() as db:
        users_mod.require_user(db, user_id)
        tasks = tasks_mod.list_user_queue(db, user_id)
        if not tasks:
            click.echo("Queue is empty.")
        for t in tasks:
            click.echo(
                f"  {t.start_date:%Y-%m-%d %H:%M} -> {t.deadline:%Y-%m-%d %H:%M} "
                f"[{t.priority.value}] {t.id}: {t.name} ({t.status.value})"
            )

        if not priority:
            return

        ctx = settings_mod.build_context(db, config)
        result = calculate_priority_insertion(
            db,
            ctx,
            user_id,
            Priority(priority.upper()),
            parse_duration(duration),
            respect_vacations=not ignore_vacations,
        )
        click.echo(f"Insertion: {result.start_date.isoformat()} -> {result.deadline.isoformat()}")
        click.echo(f"  Reason: {result.reason}")
        if result.affected_tasks:
            click.echo(f"  Pushes: {', '.join(t.id for t in result.affected_tasks)}")


# ── Task Commands ─────────────────────────────────────────────────────────────


@main.group("task")
def task_group():
    """Manage tasks."""
    pass


@task_group.command("add")
@click.argument("name")
@click.option("--category", "category_id", required=True, type=int, help="Task category ID")
@click.option("--brand", "brand_id", required=True, help="Brand ID")
@click.option("--priority", "-p", default="NORMAL", type=PRIORITY_CHOICE, help="Task priority")
@click.option("--duration", default=None, help="Duration in working days (default: the tier's)")
@click.option("--assign", "assignees", multiple=True, help="Designer ID (repeatable; default: best designer)")
@click.option("--description", "-d", default="", help="Task description")
@_handle_errors
def task_add(name, category_id, brand_id, priority, duration, assignees, description):
    """Create a task and schedule it."""
    config = get_config()
    with _get_db() as db:
        ctx = settings_mod.build_context(db, config)
        if duration is None:
            duration = _duration_or_category(db, None, category_id)
        request = TaskRequest.from_dict({
            "name": name,
            "description": description,
            "category_id": category_id,
            "brand_id": brand_id,
            "priority": priority,
            "duration_days": duration,
            "assigned_user_ids": list(assignees),
        })
        outcome = create_assigned_task(db, ctx, request, config=config)
        task = outcome.task
        click.echo(f"Created task: {task.id}")
        click.echo(f"  Assignees: {', '.join(task.assignees)}")
        click.echo(f"  Priority: {task.priority.value}")
        click.echo(f"  Start: {task.start_date.isoformat()}")
        click.echo(f"  Deadline: {task.deadline.isoformat()}")
        click.echo(f"  Reason: {outcome.insertion.reason}")
        for r in outcome.restamped:
            click.echo(f"  Rescheduled {r.task.id}: {r.new_start.isoformat()} -> {r.new_deadline.isoformat()}")


@task_group.command("import")
@click.argument("source", type=click.File("r"))
@_handle_errors
def task_import(source):
    """Import tasks from a JSON list of external records.

    Each record has name, category_id and brand_id, plus optional free-form
    status and priority labels, duration_days and assigned_user_ids.
    """
    try:
        records = json.load(source)
    except ValueError:
        raise ValidationError("source", "must be a JSON list") from None

    config = get_config()
    with _get_db() as db:
        ctx = settings_mod.build_context(db, config)
        report = import_external_tasks(db, ctx, records, config=config)
        for t in report.imported:
            click.echo(f"  Imported {t.id} [{t.priority.value}, {t.status.value}] ({', '.join(t.assignees)})")
        for name in report.skipped:
            click.echo(f"  Skipped finished task: {name}")
        for e in report.errors:
            click.echo(f"  Error in record {e['index']}: {e['error']}", err=True)
        click.echo(
            f"Imported {len(report.imported)} task(s), skipped {len(report.skipped)}, "
            f"{len(report.errors)} error(s)."
        )


@task_group.command("list")
@click.option("--status", default=None, type=STATUS_CHOICE, help="Filter by status")
@click.option("--user", "user_id", default=None, help="Filter by designer")
@click.option("--brand", "brand_id", default=None, help="Filter by brand")
@click.option("--active", is_flag=True, help="Hide completed tasks")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def task_list(status, user_id, brand_id, active, json_output):
    """List tasks by start date."""
    with _get_db() as db:
        tasks = tasks_mod.list_tasks(
            db,
            status=Status(status.upper()) if status else None,
            user_id=user_id,
            brand_id=brand_id,
            include_complete=not active,
        )

        if json_output:
            click.echo(json.dumps([_task_dict(t) for t in tasks], indent=2))
            return

        if not tasks:
            click.echo("No tasks found.")
            return

        status_icons = {
            Status.TO_DO: "○",
            Status.IN_PROGRESS: "●",
            Status.ON_APPROVAL: "◐",
            Status.COMPLETE: "✓",
        }
        for t in tasks:
            icon = status_icons.get(t.status, "?")
            who = ", ".join(t.assignees) or "unassigned"
            click.echo(
                f"  {icon} [{t.priority.value}] {t.id}: {t.name} "
                f"{t.start_date:%Y-%m-%d} -> {t.deadline:%Y-%m-%d} ({who})"
            )


@task_group.command("show")
@click.argument("task_id")
def task_show(task_id):
    """Show task details."""
    with _get_db() as db:
        task = tasks_mod.get_task(db, task_id)
        if not task:
            click.echo(f"Task not found: {task_id}", err=True)
            sys.exit(1)

        click.echo(f"Task: {task.id}")
        click.echo(f"  Name: {task.name}")
        click.echo(f"  Priority: {task.priority.value}")
        click.echo(f"  Status: {task.status.value}")
        click.echo(f"  Brand: {task.brand_id}")
        click.echo(f"  Duration: {task.duration_days:g} days")
        click.echo(f"  Start: {task.start_date.isoformat()}")
        click.echo(f"  Deadline: {task.deadline.isoformat()}")
        if task.assignees:
            click.echo(f"  Assignees: {', '.join(task.assignees)}")
        if task.description:
            click.echo(f"  Description: {task.description}")

        events = tasks_mod.get_task_events(db, task_id)
        if events:
            click.echo("  History:")
            for e in events:
                click.echo(f"    [{e.created_at}] {e.event_type}: {e.old_value} -> {e.new_value}")


@task_group.command("status")
@click.argument("task_id")
@click.argument("status", type=STATUS_CHOICE)
@_handle_errors
def task_status(task_id, status):
    """Change a task's status."""
    config = get_config()
    with _get_db() as db:
        ctx = settings_mod.build_context(db, config)
        task = change_task_status(db, ctx, task_id, Status(status.upper()), config=config)
        click.echo(f"Task {task.id} is now {task.status.value}")


# ── Settings Commands ─────────────────────────────────────────────────────────


@main.group("settings")
def settings_group():
    """Show and change scheduling settings."""
    pass


@settings_group.command("list")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def settings_list(json_output):
    """List every setting with its effective value."""
    with _get_db() as db:
        items = settings_mod.list_settings(db, get_config())
        if json_output:
            click.echo(json.dumps(items, indent=2))
            return
        for item in items:
            marker = "*" if item["overridden"] else " "
            click.echo(f" {marker} {item['category']}.{item['key']} = {item['value']}  ({item['label']})")


@settings_group.command("set")
@click.argument("category")
@click.argument("key")
@click.argument("value")
@_handle_errors
def settings_set(category, key, value):
    """Override a setting."""
    with _get_db() as db:
        stored = settings_mod.update_setting(db, category, key, value, get_config())
        click.echo(f"{category}.{key} = {stored}")


@settings_group.command("reset")
@click.option("--category", default=None, help="Only reset this category")
def settings_reset(category):
    """Drop stored overrides and go back to the configured defaults."""
    with _get_db() as db:
        removed = settings_mod.reset_settings(db, category)
        click.echo(f"Reset {removed} setting(s).")


# ── Server Command ────────────────────────────────────────────────────────────


@main.command("serve")
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8787, type=int, help="Port to listen on")
def serve(host, port):
    """Run the JSON API."""
    from designer_scheduler.web.app import run_server

    click.echo(f"Serving at http://{host}:{port}")
    run_server(host=host, port=port)


# ── Helpers ───────────────────────────────────────────────────────────────────


def _task_dict(task) -> dict:
    return {
        "id": task.id,
        "name": task.name,
        "priority": task.priority.value,
        "status": task.status.value,
        "brand": task.brand_id,
        "category": task.category_id,
        "start_date": task.start_date.isoformat(),
        "deadline": task.deadline.isoformat(),
        "duration_days": task.duration_days,
        "assignees": task.assignees,
    }


if __name__ == "__main__":
    main()
