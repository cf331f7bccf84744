"""Management HTTP API — alert queries, silences, rule CRUD, health, metrics.

Exposes (all JSON bodies use the ``{success, data, message}`` envelope):

- ``GET    /api/v1/alerts``                 → alert history (status/severity/type/source filters)
- ``GET    /api/v1/alerts/active``          → active alerts
- ``GET    /api/v1/alerts/stats``           → counts over ``?period=24h``
- ``GET    /api/v1/alerts/{id}``            → one alert
- ``POST   /api/v1/alerts/{id}/silence``    → ``{"duration": "1h", "reason": ""}``
- ``POST   /api/v1/alerts/{id}/resolve``
- ``GET    /api/v1/alert-rules`` / ``POST`` → list / create rules
- ``GET    /api/v1/alert-rules/{id}`` / ``PUT`` / ``DELETE``
- ``GET    /api/v1/health/status``          → 503 when unhealthy or monitoring is off
- ``GET    /metrics``                       → Prometheus exposition
"""

from __future__ import annotations

import json
import time
from collections import Counter
from typing import Annotated, Any

import structlog
from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import AfterValidator, BaseModel

from opswatch.alert.condition import is_supported_operator, normalize_operator
from opswatch.alert.store import FILTER_KEYS
from opswatch.alert.types import AlertStatus, AlertType, Severity, new_rule
from opswatch.core.config import Seconds, parse_duration
from opswatch.core.exceptions import NotFoundError
from opswatch.health.types import HealthStatus
from opswatch.system import AlertSystem

logger = structlog.get_logger(__name__)

DEFAULT_STATS_PERIOD = "24h"


# ── Request bodies ──────────────────────────────────────────────


def _check_operator(v: str) -> str:
    if not is_supported_operator(v):
        raise ValueError(f"unsupported operator: {v!r}")
    return normalize_operator(v)


Operator = Annotated[str, AfterValidator(_check_operator)]


class SilenceRequest(BaseModel):
    duration: Seconds
    reason: str = ""


class CreateRuleRequest(BaseModel):
    name: str
    type: AlertType
    severity: Severity
    description: str = ""
    query: str
    threshold: float
    operator: Operator = ">"
    duration: Seconds = 0.0
    labels: dict[str, str] = {}
    annotations: dict[str, str] = {}
    enabled: bool = True


class UpdateRuleRequest(BaseModel):
    name: str | None = None
    type: AlertType | None = None
    severity: Severity | None = None
    description: str | None = None
    query: str | None = None
    threshold: float | None = None
    operator: Operator | None = None
    duration: Seconds | None = None
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None
    enabled: bool | None = None


# ── Envelope ────────────────────────────────────────────────────


def _ok(data: Any = None, message: str = "", status: int = 200) -> web.Response:
    return web.json_response(
        {"success": True, "data": data, "message": message}, status=status,
    )


def _fail(status: int, message: str, data: Any = None) -> web.Response:
    return web.json_response(
        {"success": False, "data": data, "message": message}, status=status,
    )


@web.middleware
async def _error_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    """Map domain errors onto HTTP status codes."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except NotFoundError as exc:
        return _fail(404, str(exc))
    except ValueError as exc:
        # Covers malformed JSON and pydantic ValidationError.
        return _fail(400, str(exc))
    except Exception:
        logger.exception("api_handler_error", path=request.path, method=request.method)
        return _fail(500, "internal server error")


async def _json_body(request: web.Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid JSON body: {exc}") from exc
    if not isinstance(body, dict):
        raise ValueError("request body must be a JSON object")
    return body


def _system(request: web.Request) -> AlertSystem:
    return request.app["system"]


# ── Alerts ──────────────────────────────────────────────────────


async def _handle_list_alerts(request: web.Request) -> web.Response:
    filters = {k: request.query[k] for k in FILTER_KEYS if request.query.get(k)}
    alerts = await _system(request).manager.get_alerts(filters)
    return _ok([a.model_dump(mode="json") for a in alerts])


async def _handle_active_alerts(request: web.Request) -> web.Response:
    alerts = _system(request).manager.get_active_alerts()
    return _ok([a.model_dump(mode="json") for a in alerts])


async def _handle_alert_stats(request: web.Request) -> web.Response:
    period = request.query.get("period", DEFAULT_STATS_PERIOD)
    seconds = parse_duration(period)
    since = time.time() - seconds

    alerts = [
        a for a in await _system(request).manager.get_alerts()
        if a.created_at >= since
    ]
    statuses = Counter(a.status.value for a in alerts)
    stats = {
        "period": period,
        "since": since,
        "total": len(alerts),
        "active": statuses[AlertStatus.FIRING.value],
        "resolved": statuses[AlertStatus.RESOLVED.value],
        "silenced": statuses[AlertStatus.SILENCED.value],
        "by_severity": dict(Counter(a.severity.value for a in alerts)),
        "by_type": dict(Counter(a.type.value for a in alerts)),
    }
    return _ok(stats)


async def _handle_get_alert(request: web.Request) -> web.Response:
    alert = await _system(request).manager.get_alert(request.match_info["alert_id"])
    return _ok(alert.model_dump(mode="json"))


async def _handle_silence_alert(request: web.Request) -> web.Response:
    alert_id = request.match_info["alert_id"]
    body = SilenceRequest(**await _json_body(request))
    await _system(request).manager.silence_alert(alert_id, body.duration)
    logger.info(
        "alert_silenced_via_api",
        alert_id=alert_id,
        duration_secs=body.duration,
        reason=body.reason,
    )
    return _ok(
        {"alert_id": alert_id, "duration": body.duration, "reason": body.reason},
        message="alert silenced",
    )


async def _handle_resolve_alert(request: web.Request) -> web.Response:
    alert_id = request.match_info["alert_id"]
    await _system(request).manager.resolve_alert(alert_id)
    return _ok({"alert_id": alert_id}, message="alert resolved")


# ── Rules ───────────────────────────────────────────────────────


async def _handle_list_rules(request: web.Request) -> web.Response:
    rules = _system(request).manager.get_rules()
    return _ok([r.model_dump(mode="json") for r in rules])


async def _handle_create_rule(request: web.Request) -> web.Response:
    body = CreateRuleRequest(**await _json_body(request))
    rule = new_rule(body.name, body.type, body.severity).model_copy(
        update=body.model_dump(exclude={"name", "type", "severity"}),
    )
    await _system(request).manager.add_rule(rule)
    return _ok(rule.model_dump(mode="json"), message="rule created", status=201)


async def _handle_get_rule(request: web.Request) -> web.Response:
    rule = await _system(request).manager.get_rule(request.match_info["rule_id"])
    return _ok(rule.model_dump(mode="json"))


async def _handle_update_rule(request: web.Request) -> web.Response:
    manager = _system(request).manager
    body = UpdateRuleRequest(**await _json_body(request))
    current = await manager.get_rule(request.match_info["rule_id"])
    rule = current.model_copy(update=body.model_dump(exclude_none=True))
    await manager.update_rule(rule)
    return _ok(rule.model_dump(mode="json"), message="rule updated")


async def _handle_delete_rule(request: web.Request) -> web.Response:
    rule_id = request.match_info["rule_id"]
    await _system(request).manager.remove_rule(rule_id)
    return _ok({"rule_id": rule_id}, message="rule deleted")


# ── Health & metrics ────────────────────────────────────────────


async def _handle_health_status(request: web.Request) -> web.Response:
    monitor = _system(request).health_monitor
    if monitor is None:
        return _fail(503, "health monitor is disabled")

    overall = monitor.get_overall_status()
    data = {
        "overall_status": overall.value,
        "checks": {
            name: check.model_dump(mode="json")
            for name, check in monitor.get_health_status().items()
        },
    }
    if overall == HealthStatus.UNHEALTHY:
        return _fail(503, "system is unhealthy", data)
    return _ok(data)


async def _handle_metrics(request: web.Request) -> web.Response:
    body = generate_latest(_system(request).metrics.registry)
    return web.Response(body=body, headers={"Content-Type": CONTENT_TYPE_LATEST})


# ── App ─────────────────────────────────────────────────────────


def create_app(system: AlertSystem) -> web.Application:
    """Create the aiohttp application around an initialized alert system."""
    app = web.Application(middlewares=[_error_middleware])
    app["system"] = system

    app.router.add_get("/api/v1/alerts", _handle_list_alerts)
    app.router.add_get("/api/v1/alerts/active", _handle_active_alerts)
    app.router.add_get("/api/v1/alerts/stats", _handle_alert_stats)
    app.router.add_get("/api/v1/alerts/{alert_id}", _handle_get_alert)
    app.router.add_post("/api/v1/alerts/{alert_id}/silence", _handle_silence_alert)
    app.router.add_post("/api/v1/alerts/{alert_id}/resolve", _handle_resolve_alert)

    app.router.add_get("/api/v1/alert-rules", _handle_list_rules)
    app.router.add_post("/api/v1/alert-rules", _handle_create_rule)
    app.router.add_get("/api/v1/alert-rules/{rule_id}", _handle_get_rule)
    app.router.add_put("/api/v1/alert-rules/{rule_id}", _handle_update_rule)
    app.router.add_delete("/api/v1/alert-rules/{rule_id}", _handle_delete_rule)

    app.router.add_get("/api/v1/health/status", _handle_health_status)
    app.router.add_get("/metrics", _handle_metrics)
    return app


async def start_api_server(
    system: AlertSystem,
    host: str = "0.0.0.0",
    port: int = 8081,
) -> web.AppRunner:
    """Start the management API. Returns the runner for cleanup."""
    app = create_app(system)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("api_server_started", host=host, port=port)
    return runner
