from __future__ import annotations

from flask import Blueprint, request, current_app
from flask_jwt_extended import get_jwt

from lms_api.models.employes import SyncSession
from lms_api.common.auth import requires_perms
from lms_api.common.http import ok as _ok, fail as _fail, partial as _partial
from lms_api.services.employes_client import EmployesAPIError, EmployesClient
from lms_api.services import employes_sync as sync

bp = Blueprint("employes_sync", __name__, url_prefix="/api/v1/employes")

CLIENT_ACTIONS = ("full_sync", "collect_snapshots", "collect_history", "compare_staff", "test_connection")
LOCAL_ACTIONS = ("sync_contracts", "get_sync_statistics", "get_sync_sessions")


def _client() -> EmployesClient:
    return EmployesClient.from_app()


def _who() -> str | None:
    claims = get_jwt() or {}
    return claims.get("email") or claims.get("sub")


@bp.post("/sync")
@requires_perms("employes.sync")
def run_sync():
    d = request.get_json(silent=True, force=True) or {}
    action = (d.get("action") or "full_sync").strip()
    if action not in CLIENT_ACTIONS + LOCAL_ACTIONS:
        return _fail(f"Unknown action: {action}", 422, code="UNKNOWN_ACTION",
                     detail={"allowed": list(CLIENT_ACTIONS + LOCAL_ACTIONS)})

    if action == "get_sync_statistics":
        return _ok(sync.sync_statistics())
    if action == "get_sync_sessions":
        try:
            limit = min(max(int(d.get("limit") or 20), 1), 100)
        except (TypeError, ValueError):
            return _fail("limit must be an integer", 422)
        rows = SyncSession.query.order_by(SyncSession.started_at.desc(), SyncSession.id.desc()).limit(limit).all()
        return _ok([sync.session_row(s) for s in rows])
    if action == "sync_contracts":
        res = sync.sync_contracts()
        return _partial(res, res["errors"])

    try:
        client = _client()
    except EmployesAPIError as e:
        return _fail(str(e), 503, code="EMPLOYES_NOT_CONFIGURED")

    try:
        if action == "test_connection":
            return _ok(client.test_connection())
        if action == "compare_staff":
            return _ok(sync.compare_staff(client))
        if action == "collect_snapshots":
            res = sync.collect_snapshots(client)
            return _partial(res, res["errors"])
        if action == "collect_history":
            res = sync.collect_history(client)
            return _partial(res, res["errors"])
    except EmployesAPIError as e:
        current_app.logger.warning("Employes %s failed: %s", action, e)
        return _fail(str(e), 502, code="EMPLOYES_API_ERROR", detail={"status_code": e.status_code})

    res = sync.run_full_sync(client, source="manual", triggered_by=_who())
    return _partial(res, res["summary"]["errors"])
