"""JSON API for designer assignment and scheduling."""

import logging

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from designer_scheduler.config import get_config
from designer_scheduler.core import catalog as catalog_mod
from designer_scheduler.core import tasks as tasks_mod
from designer_scheduler.core import users as users_mod
from designer_scheduler.core.assignment import create_assigned_task
from designer_scheduler.core.cache import CacheService
from designer_scheduler.core.importer import import_external_tasks
from designer_scheduler.core.insertion import calculate_priority_insertion
from designer_scheduler.core.selection import (
    find_available_designers,
    get_best_user_any_brand,
    get_best_user_with_cache,
)
from designer_scheduler.core.settings import build_context, get_setting
from designer_scheduler.core.validation import (
    NoCandidateError,
    NotFoundError,
    TaskRequest,
    ValidationError,
    parse_duration,
    parse_positive_int,
    parse_priority,
)
from designer_scheduler.db.engine import init_db

logger = logging.getLogger(__name__)


def _get_db():
    config = get_config()
    return init_db(config.db_path)


def _context(request: Request, db):
    state = request.app.state
    if state.cache is None:
        ttl = get_setting(db, "cache", "default_ttl_seconds", get_config())
        state.cache = CacheService(ttl_seconds=ttl)
    return build_context(db, get_config(), cache=state.cache, clock=state.clock)


def _duration(db, params) -> float:
    """Explicit ``duration_days``, else the duration of ``category_id``'s tier."""
    if params.get("duration_days"):
        return parse_duration(params.get("duration_days"))
    if params.get("category_id"):
        category_id = parse_positive_int("category_id", params.get("category_id"))
        category = catalog_mod.get_category(db, category_id)
        if not category:
            raise NotFoundError("Category", category_id)
        return category.duration
    raise ValidationError("duration_days", "is required")


def _flag(value: str | None, default: bool = True) -> bool:
    if value is None:
        return default
    return value.lower() not in ("0", "false", "no", "off")


# ── Handlers ──────────────────────────────────────────────────────────────────


async def api_best_designer(request: Request):
    params = request.query_params
    db = _get_db()
    try:
        ctx = _context(request, db)
        type_id = parse_positive_int("type_id", params.get("type_id"))
        priority = parse_priority(params.get("priority") or "NORMAL")
        duration = _duration(db, params)
        brand_id = params.get("brand_id")

        if brand_id:
            slot = get_best_user_with_cache(db, ctx, type_id, brand_id, priority, duration)
        else:
            found = get_best_user_any_brand(db, ctx, type_id, priority, duration)
            brand_id, slot = found if found else (None, None)

        return JSONResponse({
            "brand_id": brand_id,
            "designer": _slot_dict(slot) if slot else None,
        })
    finally:
        db.close()


async def api_available_designers(request: Request):
    params = request.query_params
    db = _get_db()
    try:
        ctx = _context(request, db)
        type_id = parse_positive_int("type_id", params.get("type_id"))
        brand_id = params.get("brand_id")
        if not brand_id:
            raise ValidationError("brand_id", "is required")
        duration = _duration(db, params)

        slots, diagnostics = find_available_designers(db, ctx, type_id, brand_id, duration)
        return JSONResponse({
            "designers": [_vacation_slot_dict(s) for s in slots],
            "diagnostics": _diagnostics_dict(diagnostics),
        })
    finally:
        db.close()


async def api_user_queue(request: Request):
    user_id = request.path_params["user_id"]
    db = _get_db()
    try:
        users_mod.require_user(db, user_id)
        return JSONResponse([_task_dict(t) for t in tasks_mod.list_user_queue(db, user_id)])
    finally:
        db.close()


async def api_user_insertion(request: Request):
    user_id = request.path_params["user_id"]
    params = request.query_params
    db = _get_db()
    try:
        ctx = _context(request, db)
        result = calculate_priority_insertion(
            db,
            ctx,
            user_id,
            parse_priority(params.get("priority")),
            _duration(db, params),
            respect_vacations=_flag(params.get("respect_vacations")),
        )
        return JSONResponse(_insertion_dict(result))
    finally:
        db.close()


async def api_create_task(request: Request):
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError("body", "must be a JSON object") from None
    if not isinstance(payload, dict):
        raise ValidationError("body", "must be a JSON object")

    task_request = TaskRequest.from_dict(payload)
    config = get_config()
    db = _get_db()
    try:
        ctx = _context(request, db)
        outcome = create_assigned_task(db, ctx, task_request, config=config)
        body = _task_dict(outcome.task)
        body["reason"] = outcome.insertion.reason
        body["auto_assigned"] = outcome.auto_assigned
        body["rescheduled"] = [
            {
                "id": r.task.id,
                "start_date": r.new_start.isoformat(),
                "deadline": r.new_deadline.isoformat(),
            }
            for r in outcome.restamped
        ]
        return JSONResponse(body, status_code=201)
    finally:
        db.close()


async def api_import_tasks(request: Request):
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError("body", "must be a JSON list of tasks") from None

    config = get_config()
    db = _get_db()
    try:
        ctx = _context(request, db)
        report = import_external_tasks(db, ctx, payload, config=config)
        return JSONResponse({
            "imported": [_task_dict(t) for t in report.imported],
            "skipped": report.skipped,
            "errors": report.errors,
        })
    finally:
        db.close()


async def api_get_task(request: Request):
    task_id = request.path_params["task_id"]
    db = _get_db()
    try:
        task = tasks_mod.get_task(db, task_id)
        if not task:
            raise NotFoundError("Task", task_id)
        td = _task_dict(task)
        td["events"] = [_event_dict(e) for e in tasks_mod.get_task_events(db, task_id)]
        return JSONResponse(td)
    finally:
        db.close()


# ── Errors ────────────────────────────────────────────────────────────────────


async def validation_error(request: Request, exc: ValidationError):
    return JSONResponse({"error": str(exc), "field": exc.field}, status_code=400)


async def not_found_error(request: Request, exc: NotFoundError):
    return JSONResponse({"error": str(exc)}, status_code=404)


async def no_candidate_error(request: Request, exc: NoCandidateError):
    return JSONResponse(
        {"error": str(exc), "diagnostics": _diagnostics_dict(exc.diagnostics)},
        status_code=409,
    )


# ── Serialization ─────────────────────────────────────────────────────────────


def _iso(value):
    return value.isoformat() if value else None


def _task_dict(t) -> dict:
    return {
        "id": t.id,
        "name": t.name,
        "description": t.description,
        "type_id": t.type_id,
        "category_id": t.category_id,
        "brand_id": t.brand_id,
        "priority": t.priority.value,
        "status": t.status.value,
        "start_date": _iso(t.start_date),
        "deadline": _iso(t.deadline),
        "duration_days": t.duration_days,
        "custom_duration": t.custom_duration,
        "assignees": t.assignees,
        "url": t.url,
        "created_at": _iso(t.created_at),
        "updated_at": _iso(t.updated_at),
    }


def _slot_dict(s) -> dict:
    return {
        "user_id": s.user_id,
        "user_name": s.user_name,
        "available_date": _iso(s.available_date),
        "task_count": s.task_count,
        "is_specialist": s.is_specialist,
        "last_task_deadline": _iso(s.last_task_deadline),
        "total_assigned_days": s.total_assigned_days,
    }


def _vacation_slot_dict(s) -> dict:
    d = _slot_dict(s)
    d.update({
        "potential_task_start": _iso(s.potential_task_start),
        "potential_task_end": _iso(s.potential_task_end),
        "has_vacation_conflict": s.has_vacation_conflict,
        "vacations_skipped": s.vacations_skipped,
        "vacation_conflict_details": s.vacation_conflict_details,
        "upcoming_vacations": [
            {"start_date": _iso(v.start_date), "end_date": _iso(v.end_date)}
            for v in s.upcoming_vacations
        ],
        "working_days_until_available": s.working_days_until_available,
    })
    return d


def _insertion_dict(r) -> dict:
    adjustment = r.vacation_adjustment
    return {
        "start_date": _iso(r.start_date),
        "deadline": _iso(r.deadline),
        "reason": r.reason,
        "affected_tasks": [_task_dict(t) for t in r.affected_tasks],
        "vacation_adjustment": {
            "original_date": _iso(adjustment.original_date),
            "adjusted_date": _iso(adjustment.adjusted_date),
            "conflicting_vacations": adjustment.conflicting_vacations,
        } if adjustment else None,
    }


def _diagnostics_dict(d) -> dict:
    return {
        "total_compatible": d.total_compatible,
        "total_available": d.total_available,
        "all_on_vacation": d.all_on_vacation,
    }


def _event_dict(e) -> dict:
    return {
        "id": e.id,
        "event_type": e.event_type,
        "old_value": e.old_value,
        "new_value": e.new_value,
        "created_at": _iso(e.created_at),
    }


# ── App ───────────────────────────────────────────────────────────────────────


def create_app(cache: CacheService | None = None, clock=None) -> Starlette:
    routes = [
        Route("/api/designers/best", api_best_designer),
        Route("/api/designers/available", api_available_designers),
        Route("/api/users/{user_id}/queue", api_user_queue),
        Route("/api/users/{user_id}/insertion", api_user_insertion),
        Route("/api/tasks", api_create_task, methods=["POST"]),
        Route("/api/tasks/import", api_import_tasks, methods=["POST"]),
        Route("/api/tasks/{task_id}", api_get_task),
    ]
    exception_handlers = {
        ValidationError: validation_error,
        NotFoundError: not_found_error,
        NoCandidateError: no_candidate_error,
    }
    app = Starlette(routes=routes, exception_handlers=exception_handlers)
    app.state.cache = cache
    app.state.clock = clock
    return app


def run_server(host: str = "127.0.0.1", port: int = 8787):
    app = create_app()
    logger.info("Serving on http://%s:%d", host, port)
    uvicorn.run(app, host=host, port=port)
