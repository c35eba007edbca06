"""JSON API for the action tracker."""

import contextlib
import json

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from action_tracker.core import entities as entities_mod
from action_tracker.core import history as history_mod
from action_tracker.core.entities import EntityNotFoundError, RepositoryError
from action_tracker.core.rules import EntityKind, get_rules
from action_tracker.core.serialize import entity_dict, log_dict, rules_dict
from action_tracker.core.summary import status_summary
from action_tracker.db.engine import get_db
from action_tracker.services import Services, create_services

KIND_PATHS = {
    "tasks": EntityKind.TASK,
    "action-plans": EntityKind.ACTION_PLAN,
}


def _services(request: Request) -> Services:
    return request.app.state.services


def _db(request: Request):
    return get_db(_services(request).config.db_path)


def _kind(request: Request) -> EntityKind | None:
    return KIND_PATHS.get(request.path_params["kind"])


def _unknown_kind(request: Request) -> JSONResponse:
    return JSONResponse({"error": f"Unknown collection: {request.path_params['kind']}"}, status_code=404)


# ── Handlers ──────────────────────────────────────────────────────────────────


async def api_list(request: Request):
    kind = _kind(request)
    if kind is None:
        return _unknown_kind(request)
    status_filter = request.query_params.get("status")
    with _db(request) as db:
        try:
            items = entities_mod.list_entities(db, kind, status=status_filter)
        except ValueError as e:
            return JSONResponse({"error": str(e)}, status_code=400)
    return JSONResponse([entity_dict(e) for e in items])


async def api_summary(request: Request):
    kind = _kind(request)
    if kind is None:
        return _unknown_kind(request)
    with _db(request) as db:
        items = entities_mod.list_entities(db, kind)
    return JSONResponse(status_summary(items, kind).to_dict())


async def api_get(request: Request):
    kind = _kind(request)
    if kind is None:
        return _unknown_kind(request)
    entity_id = request.path_params["entity_id"]
    with _db(request) as db:
        item = entities_mod.get_entity(db, kind, entity_id)
    if not item:
        return JSONResponse({"error": f"Not found: {entity_id}"}, status_code=404)
    return JSONResponse(entity_dict(item, include_logs=True))


async def api_history(request: Request):
    kind = _kind(request)
    if kind is None:
        return _unknown_kind(request)
    entity_id = request.path_params["entity_id"]
    with _db(request) as db:
        item = entities_mod.get_entity(db, kind, entity_id)
    if not item:
        return JSONResponse({"error": f"Not found: {entity_id}"}, status_code=404)
    return JSONResponse([_history_dict(h) for h in history_mod.collect_history([item], tag_source=False)])


async def api_available(request: Request):
    kind = _kind(request)
    if kind is None:
        return _unknown_kind(request)
    entity_id = request.path_params["entity_id"]
    with _db(request) as db:
        item = entities_mod.get_entity(db, kind, entity_id)
    if not item:
        return JSONResponse({"error": f"Not found: {entity_id}"}, status_code=404)
    rules = get_rules(kind)
    return JSONResponse({
        "status": str(item.status),
        "available": [
            {"status": s, "label": rules.label(s)} for s in sorted(rules.available(item.status))
        ],
    })


async def api_change_status(request: Request):
    kind = _kind(request)
    if kind is None:
        return _unknown_kind(request)
    entity_id = request.path_params["entity_id"]
    try:
        body = await request.json()
    except json.JSONDecodeError:
        return JSONResponse({"error": "Request body must be JSON"}, status_code=400)
    if not isinstance(body, dict) or not body.get("status"):
        return JSONResponse({"error": "Missing 'status'"}, status_code=400)

    executor = _services(request).executor(kind)
    try:
        outcome = executor.apply(
            entity_id,
            body["status"],
            justification=body.get("justification"),
            actor=body.get("actor"),
            actor_id=body.get("actor_id"),
        )
    except EntityNotFoundError:
        return JSONResponse({"error": f"Not found: {entity_id}"}, status_code=404)
    except RepositoryError as e:
        return JSONResponse({"error": str(e), "retry": True}, status_code=503)

    if not outcome.applied:
        return JSONResponse({"error": outcome.message}, status_code=409)
    return JSONResponse({
        "entity": entity_dict(outcome.entity, include_logs=True),
        "log_entry": log_dict(outcome.log_entry),
        "message": outcome.message,
    })


async def api_delete(request: Request):
    kind = _kind(request)
    if kind is None:
        return _unknown_kind(request)
    entity_id = request.path_params["entity_id"]
    try:
        deleted = _services(request).delete_entity(kind, entity_id)
    except RepositoryError as e:
        return JSONResponse({"error": str(e), "retry": True}, status_code=503)
    if not deleted:
        return JSONResponse({"error": f"Not found: {entity_id}"}, status_code=404)
    return JSONResponse({"deleted": entity_id})


async def api_all_history(request: Request):
    try:
        limit = int(request.query_params.get("limit", 100))
    except ValueError:
        return JSONResponse({"error": "'limit' must be an integer"}, status_code=400)
    pooled = []
    with _db(request) as db:
        for kind in EntityKind:
            pooled.extend(entities_mod.list_entities(db, kind))
    items = history_mod.collect_history(pooled)[:limit]
    return JSONResponse([_history_dict(h) for h in items])


async def api_rules(request: Request):
    kind = _kind(request)
    if kind is None:
        return _unknown_kind(request)
    return JSONResponse(rules_dict(kind))


# ── Serialization ─────────────────────────────────────────────────────────────


def _history_dict(item: history_mod.HistoryItem) -> dict:
    d = log_dict(item.entry)
    d["kind"] = str(item.kind)
    d["source"] = item.source
    d["text"] = history_mod.render_item(item)
    return d


# ── App ───────────────────────────────────────────────────────────────────────


def create_app(services: Services | None = None) -> Starlette:
    services = services or create_services()

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        services.refresh_stores()
        if services.config.monitor_enabled:
            services.start_monitors()
        try:
            yield
        finally:
            services.stop_monitors()

    routes = [
        Route("/api/history", api_all_history),
        Route("/api/rules/{kind}", api_rules),
        Route("/api/{kind}", api_list),
        Route("/api/{kind}/summary", api_summary),
        Route("/api/{kind}/{entity_id}", api_get),
        Route("/api/{kind}/{entity_id}", api_delete, methods=["DELETE"]),
        Route("/api/{kind}/{entity_id}/history", api_history),
        Route("/api/{kind}/{entity_id}/available", api_available),
        Route("/api/{kind}/{entity_id}/status", api_change_status, methods=["POST"]),
    ]
    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.services = services
    return app


def run_server(host: str = "127.0.0.1", port: int = 8787):
    app = create_app()
    uvicorn.run(app, host=host, port=port)
