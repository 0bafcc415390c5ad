from __future__ import annotations

from datetime import date

from flask import Blueprint, request, send_file

from lms_api.common.auth import requires_perms
from lms_api.common.http import ok as _ok, fail as _fail
from lms_api.common.paging import parse_date, iso
from lms_api.services.compliance import (
    EXPIRY_LOOKAHEAD_DAYS,
    calculate_termination_notice,
    current_contract,
    daily_wage,
    detect_salary_alerts,
    evaluate_chain_rule,
)
from lms_api.services.reports import (
    XLSX_MIMETYPE,
    active_staff,
    alerts_summary,
    alerts_workbook,
    collect_alerts,
    collect_expiring,
)

bp = Blueprint("compliance", __name__, url_prefix="/api/v1/compliance")

NOTICE_STATUSES = ("overdue", "critical", "urgent", "ideal", "early")
CHAIN_LEVELS = ("safe", "warning", "critical", "permanent_required")


def _as_of():
    raw = request.args.get("on")
    if not raw:
        return date.today()
    d = parse_date(raw)
    if not d:
        raise ValueError("invalid on date (use YYYY-MM-DD)")
    return d


def _staff_rows():
    return active_staff((request.args.get("location") or "").strip() or None)


@bp.get("/alerts")
@requires_perms("compliance.view")
def alerts():
    try:
        today = _as_of()
    except ValueError as ex:
        return _fail(str(ex), 422)
    items = collect_alerts(today, _staff_rows())

    severity = (request.args.get("severity") or "").strip().lower()
    if severity:
        items = [a for a in items if a.severity == severity]
    atype = (request.args.get("type") or "").strip().lower()
    if atype:
        items = [a for a in items if a.type == atype]

    return _ok([a.as_dict() for a in items], as_of=today.isoformat(), summary=alerts_summary(items))


@bp.get("/termination-notices")
@requires_perms("compliance.view")
def termination_notices():
    try:
        today = _as_of()
    except ValueError as ex:
        return _fail(str(ex), 422)
    want = (request.args.get("status") or "").strip().lower()
    if want and want not in NOTICE_STATUSES:
        return _fail(f"status must be one of {list(NOTICE_STATUSES)}", 422)

    out = []
    for s in _staff_rows():
        c = current_contract(s.contracts)
        if c is None or c.status != "active" or not c.end_date:
            continue
        latest = s.salary_periods[0] if s.salary_periods else None
        n = calculate_termination_notice(c.end_date, daily_wage(latest, c.hours_per_week or s.hours_per_week), today)
        if n is None or (want and n.status != want):
            continue
        out.append({
            "staff_id": s.id,
            "staff_name": s.full_name,
            "contract_id": c.id,
            "contract_end_date": iso(c.end_date),
            **n.as_dict(),
        })
    out.sort(key=lambda r: r["days_until_deadline"])
    return _ok(out, as_of=today.isoformat(), total=len(out))


@bp.get("/chain-rule")
@requires_perms("compliance.view")
def chain_rule():
    try:
        today = _as_of()
    except ValueError as ex:
        return _fail(str(ex), 422)
    level = (request.args.get("level") or "").strip().lower()
    if level and level not in CHAIN_LEVELS:
        return _fail(f"level must be one of {list(CHAIN_LEVELS)}", 422)

    out = []
    for s in _staff_rows():
        if not s.contracts:
            continue
        st = evaluate_chain_rule(s.contracts, today)
        if level and st.warning_level != level:
            continue
        out.append({"staff_id": s.id, "staff_name": s.full_name, **st.as_dict()})
    rank = {lvl: i for i, lvl in enumerate(reversed(CHAIN_LEVELS))}
    out.sort(key=lambda r: (rank[r["warning_level"]], -r["total_months"]))
    return _ok(out, as_of=today.isoformat(), total=len(out))


@bp.get("/expiring-contracts")
@requires_perms("compliance.view")
def expiring_contracts():
    try:
        today = _as_of()
        days = int(request.args.get("days", EXPIRY_LOOKAHEAD_DAYS))
    except ValueError as ex:
        return _fail(str(ex), 422)
    if days < 0 or days > 365:
        return _fail("days must be between 0 and 365", 422)

    items = collect_expiring(today, days, _staff_rows())
    counts = {}
    for i in items:
        counts[i["compliance_type"]] = counts.get(i["compliance_type"], 0) + 1
    return _ok(items, as_of=today.isoformat(), total=len(items), by_type=counts)


@bp.get("/salary-alerts")
@requires_perms("compliance.view", "salary.read")
def salary_alerts():
    try:
        today = _as_of()
    except ValueError as ex:
        return _fail(str(ex), 422)
    out = []
    for s in _staff_rows():
        for a in detect_salary_alerts(s.salary_periods, today):
            a.staff_id = s.id
            a.staff_name = s.full_name
            out.append(a.as_dict())
    out.sort(key=lambda r: -(r["months"] or 0))
    return _ok(out, as_of=today.isoformat(), total=len(out))


@bp.get("/export.xlsx")
@requires_perms("compliance.view")
def export_xlsx():
    try:
        today = _as_of()
    except ValueError as ex:
        return _fail(str(ex), 422)
    rows = _staff_rows()
    bio = alerts_workbook(collect_alerts(today, rows), collect_expiring(today, staff_rows=rows), today)
    return send_file(bio, mimetype=XLSX_MIMETYPE, as_attachment=True,
                     download_name=f"compliance_{today.strftime('%Y%m%d')}.xlsx")
