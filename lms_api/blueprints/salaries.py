from __future__ import annotations

from decimal import Decimal

from flask import Blueprint, request

from lms_api.extensions import db
from lms_api.models.salary import SalaryPeriod
from lms_api.models.staff import Staff
from lms_api.common.auth import requires_perms
from lms_api.common.http import ok as _ok, fail as _fail
from lms_api.common.paging import parse_date, iso
from lms_api.services.cao import detect_trede
from lms_api.services.compliance import detect_salary_alerts
from lms_api.services.staff_records import record_salary_change, salary_progression

bp = Blueprint("salaries", __name__, url_prefix="/api/v1/staff")


def _f(v):
    return float(v) if v is not None else None


def _row(p: SalaryPeriod):
    return {
        "id": p.id,
        "staff_id": p.staff_id,
        "valid_from": iso(p.valid_from),
        "valid_to": iso(p.valid_to),
        "hourly_wage": _f(p.hourly_wage),
        "monthly_wage": _f(p.monthly_wage),
        "yearly_wage": _f(p.yearly_wage),
        "cao_scale": p.cao_scale,
        "cao_trede": p.cao_trede,
        "source": p.source,
        "reason": p.reason,
    }


def _money(d: dict, key: str):
    v = d.get(key)
    if v is None or v == "":
        return None
    try:
        m = Decimal(str(v))
    except Exception:
        raise ValueError(f"{key} must be a number")
    if m < 0:
        raise ValueError(f"{key} cannot be negative")
    return m


@bp.get("/<int:sid>/salaries")
@requires_perms("salary.read")
def list_salaries(sid: int):
    staff = db.session.get(Staff, sid)
    if not staff:
        return _fail("Staff member not found", 404)
    periods = list(staff.salary_periods)
    current = next((p for p in periods if p.valid_to is None), None)

    cao = None
    if current is not None and current.monthly_wage is not None and staff.hours_per_week:
        cao = detect_trede(float(current.monthly_wage), float(staff.hours_per_week),
                           current.cao_scale or 6)

    return _ok(
        [_row(p) for p in periods],
        progression=salary_progression(periods),
        alerts=[a.as_dict() for a in detect_salary_alerts(periods)],
        cao_check=cao,
    )


@bp.post("/<int:sid>/salaries")
@requires_perms("salary.write")
def create_salary(sid: int):
    staff = db.session.get(Staff, sid)
    if not staff:
        return _fail("Staff member not found", 404)
    d = request.get_json(silent=True, force=True) or {}

    valid_from = parse_date(d.get("valid_from"))
    if not valid_from:
        return _fail("valid_from is required (YYYY-MM-DD)", 422)
    try:
        hourly = _money(d, "hourly_wage")
        monthly = _money(d, "monthly_wage")
        yearly = _money(d, "yearly_wage")
    except ValueError as ex:
        return _fail(str(ex), 422)

    p = record_salary_change(
        staff, valid_from,
        hourly_wage=hourly, monthly_wage=monthly, yearly_wage=yearly,
        cao_scale=d.get("cao_scale"), cao_trede=d.get("cao_trede"),
        reason=(d.get("reason") or "").strip() or None,
    )
    db.session.commit()
    return _ok(_row(p), status=201)
