"""
HTTP server implementation for EntStore.

This module exposes the entity store as a small JSON API:

    GET    /v1/health
    GET    /v1/schema
    GET    /v1/stats
    GET    /v1/entities/{entity_type}/records          list (limit, offset, order_by, direction)
    POST   /v1/entities/{entity_type}/records          create (body: fields, optional "id")
    GET    /v1/entities/{entity_type}/records/{id}     fetch
    PUT    /v1/entities/{entity_type}/records/{id}     full replace
    PATCH  /v1/entities/{entity_type}/records/{id}     partial replace
    DELETE /v1/entities/{entity_type}/records/{id}     delete
    POST   /v1/entities/{entity_type}/query            filters, ordering, paging, fuzzy, joins

Invariants:
    - HTTP endpoints have the same semantics as the EntityStore methods
    - Errors are JSON bodies {"error", "error_code", "details"}
    - Datetimes are serialized as ISO-8601 strings

How to change safely:
    - Version the API if breaking changes are needed
    - Keep the status mapping in _STATUS_BY_ERROR in sync with errors.py
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime
from functools import partial
from typing import Any

from aiohttp import web

from .._version import __version__
from ..config import HttpConfig
from ..errors import (
    DuplicateError,
    EntStoreError,
    InvalidFieldError,
    InvalidJoinError,
    InvalidQueryError,
    NotFoundError,
    SchemaError,
    ValidationError,
)
from ..query.engine import Query
from ..query.join import JoinQuery
from ..store import EntityStore

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[EntStoreError], int]] = [
    (NotFoundError, 404),
    (DuplicateError, 409),
    (ValidationError, 400),
    (InvalidFieldError, 400),
    (InvalidQueryError, 400),
    (InvalidJoinError, 400),
    (SchemaError, 400),
]

# Keys of a flattened record that are not fields
_RECORD_META_KEYS = ("id", "entityType")


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


_dumps = partial(json.dumps, default=_json_default)


def json_response(data: Any, status: int = 200) -> web.Response:
    """JSON response that serializes datetimes as ISO-8601."""
    return web.json_response(data, status=status, dumps=_dumps)


def error_status(error: EntStoreError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 500


def create_http_app(
    store: EntityStore,
    config: HttpConfig | None = None,
) -> web.Application:
    """Create an HTTP application for EntStore.

    Args:
        store: EntityStore instance
        config: HTTP server configuration

    Returns:
        aiohttp Application instance
    """
    config = config or HttpConfig()

    @web.middleware
    async def cors_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        if request.method == "OPTIONS":
            response = web.Response()
        else:
            try:
                response = await handler(request)
            except web.HTTPException as e:
                response = e

        origin = request.headers.get("Origin", "*")
        if "*" in config.cors_origins or origin in config.cors_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Methods"] = (
            "GET, POST, PUT, PATCH, DELETE, OPTIONS"
        )
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"

        return response

    @web.middleware
    async def error_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except EntStoreError as e:
            status = error_status(e)
            logger.info(
                "Request failed",
                extra={
                    "path": request.path,
                    "method": request.method,
                    "error_code": e.code,
                    "status": status,
                },
            )
            return json_response(e.to_dict(), status=status)
        except Exception as e:
            logger.error(f"HTTP handler error: {e}", exc_info=True)
            return json_response(
                {"error": str(e), "error_code": "INTERNAL", "details": {}},
                status=500,
            )

    app = web.Application(middlewares=[cors_middleware, error_middleware])

    app.router.add_get("/v1/health", lambda r: handle_health(r, store))
    app.router.add_get("/v1/schema", lambda r: handle_schema(r, store))
    app.router.add_get("/v1/stats", lambda r: handle_stats(r, store))
    app.router.add_get(
        "/v1/entities/{entity_type}/records", lambda r: handle_list_records(r, store)
    )
    app.router.add_post(
        "/v1/entities/{entity_type}/records", lambda r: handle_create_record(r, store)
    )
    app.router.add_get(
        "/v1/entities/{entity_type}/records/{record_id}", lambda r: handle_get_record(r, store)
    )
    app.router.add_put(
        "/v1/entities/{entity_type}/records/{record_id}",
        lambda r: handle_update_record(r, store),
    )
    app.router.add_patch(
        "/v1/entities/{entity_type}/records/{record_id}",
        lambda r: handle_patch_record(r, store),
    )
    app.router.add_delete(
        "/v1/entities/{entity_type}/records/{record_id}",
        lambda r: handle_delete_record(r, store),
    )
    app.router.add_post("/v1/entities/{entity_type}/query", lambda r: handle_query(r, store))

    return app


async def read_json_object(request: web.Request) -> dict[str, Any]:
    """Parse the request body as a JSON object.

    Raises:
        web.HTTPBadRequest: If the body is not a JSON object
    """
    try:
        body = await request.json()
    except json.JSONDecodeError:
        raise web.HTTPBadRequest(
            text=json.dumps(
                {"error": "Invalid JSON body", "error_code": "INVALID_JSON", "details": {}}
            ),
            content_type="application/json",
        )
    if not isinstance(body, dict):
        raise web.HTTPBadRequest(
            text=json.dumps(
                {"error": "JSON body must be an object", "error_code": "INVALID_JSON", "details": {}}
            ),
            content_type="application/json",
        )
    return body


def _fields_from_body(body: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in body.items() if k not in _RECORD_META_KEYS}


async def handle_health(request: web.Request, store: EntityStore) -> web.Response:
    """Handle GET /v1/health - Health check."""
    return json_response(
        {
            "healthy": True,
            "version": __version__,
            "entity_types": len(list(store.registry.entity_types())),
            "schema_fingerprint": store.registry.fingerprint,
        }
    )


async def handle_schema(request: web.Request, store: EntityStore) -> web.Response:
    """Handle GET /v1/schema - Registered entity types."""
    result = store.registry.to_dict()
    result["fingerprint"] = store.registry.fingerprint
    return json_response(result)


async def handle_stats(request: web.Request, store: EntityStore) -> web.Response:
    """Handle GET /v1/stats - Record counts per entity type."""
    return json_response({"entity_types": store.stats()})


async def handle_list_records(request: web.Request, store: EntityStore) -> web.Response:
    """Handle GET /v1/entities/{entity_type}/records - List records."""
    entity_type = request.match_info["entity_type"]
    try:
        limit = request.query.get("limit")
        query = Query(
            entity_type=entity_type,
            order_by=request.query.get("order_by"),
            direction=request.query.get("direction", "ASC"),
            limit=int(limit) if limit is not None else None,
            offset=int(request.query.get("offset", 0)),
        )
    except ValueError as e:
        raise InvalidQueryError(f"Invalid paging parameter: {e}")

    records = store.query(query)
    return json_response(
        {"records": [r.to_dict() for r in records], "count": len(records)}
    )


async def handle_create_record(request: web.Request, store: EntityStore) -> web.Response:
    """Handle POST /v1/entities/{entity_type}/records - Create record."""
    entity_type = request.match_info["entity_type"]
    body = await read_json_object(request)
    record = store.create(entity_type, _fields_from_body(body), record_id=body.get("id"))
    return json_response(record.to_dict(), status=201)


async def handle_get_record(request: web.Request, store: EntityStore) -> web.Response:
    """Handle GET /v1/entities/{entity_type}/records/{record_id} - Get record."""
    record = store.get_by_id(request.match_info["entity_type"], request.match_info["record_id"])
    return json_response(record.to_dict())


async def handle_update_record(request: web.Request, store: EntityStore) -> web.Response:
    """Handle PUT /v1/entities/{entity_type}/records/{record_id} - Replace record."""
    body = await read_json_object(request)
    record = store.update(
        request.match_info["entity_type"],
        request.match_info["record_id"],
        _fields_from_body(body),
    )
    return json_response(record.to_dict())


async def handle_patch_record(request: web.Request, store: EntityStore) -> web.Response:
    """Handle PATCH /v1/entities/{entity_type}/records/{record_id} - Patch record."""
    body = await read_json_object(request)
    record = store.patch(
        request.match_info["entity_type"],
        request.match_info["record_id"],
        _fields_from_body(body),
    )
    return json_response(record.to_dict())


async def handle_delete_record(request: web.Request, store: EntityStore) -> web.Response:
    """Handle DELETE /v1/entities/{entity_type}/records/{record_id} - Delete record.

    A missing record is reported as 404.
    """
    entity_type = request.match_info["entity_type"]
    record_id = request.match_info["record_id"]
    if not store.delete(entity_type, record_id):
        raise NotFoundError(
            f"Record '{record_id}' not found in '{entity_type}'", entity_type, record_id
        )
    return json_response({"deleted": True, "id": record_id})


async def handle_query(request: web.Request, store: EntityStore) -> web.Response:
    """Handle POST /v1/entities/{entity_type}/query - Filter and join query.

    Body:
        {
            "filters": [{"field": "price", "op": "gte", "value": 20.0}],
            "order_by": "price", "direction": "DESC",
            "limit": 10, "offset": 0,
            "fuzzy": {"threshold": 0.7, "max_distance": 3},
            "joins": [{"entity_type": "review", "local_field": "id",
                       "foreign_field": "productId", "alias": "reviews",
                       "join_type": "inner", "filters": [...]}]
        }
    """
    entity_type = request.match_info["entity_type"]
    body = await read_json_object(request)

    if body.get("joins"):
        joined = store.join_query(JoinQuery.from_dict(body, entity_type))
        results = [j.to_dict() for j in joined]
    else:
        records = store.query(Query.from_dict(body, entity_type))
        results = [r.to_dict() for r in records]

    return json_response({"records": results, "count": len(results)})


async def run_http_server(
    store: EntityStore,
    config: HttpConfig | None = None,
) -> web.AppRunner:
    """Start serving the HTTP API.

    Args:
        store: EntityStore instance
        config: HTTP server configuration

    Returns:
        The started AppRunner; call cleanup() on it to stop serving
    """
    config = config or HttpConfig()
    app = create_http_app(store, config)

    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, config.host, config.port)
    await site.start()

    logger.info(f"HTTP server running on http://{config.host}:{config.port}")
    return runner

