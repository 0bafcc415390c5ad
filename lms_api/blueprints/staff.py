from __future__ import annotations

from datetime import date
from decimal import Decimal

from flask import Blueprint, request

from lms_api.extensions import db
from lms_api.models.staff import Staff
from lms_api.models.review import StaffReview
from lms_api.models.employes import TimelineEvent
from lms_api.common.auth import requires_perms
from lms_api.common.http import ok as _ok, fail as _fail
from lms_api.common.paging import page_limit, apply_sort, apply_q_search, bool_arg, parse_date, iso
from lms_api.services.compliance import (
    calculate_termination_notice,
    current_contract,
    daily_wage,
    evaluate_chain_rule,
)
from lms_api.services.reviews import review_status
from lms_api.services.staff_records import salary_progression

bp = Blueprint("staff", __name__, url_prefix="/api/v1/staff")

_SORTABLE = {
    "full_name": Staff.full_name,
    "start_date": Staff.start_date,
    "created_at": Staff.created_at,
    "location": Staff.location,
}


def _num(v):
    return float(v) if v is not None else None


def _row(x: Staff):
    return {
        "id": x.id,
        "user_id": x.user_id,
        "employes_id": x.employes_id,
        "full_name": x.full_name,
        "email": x.email,
        "phone": x.phone,
        "location": x.location,
        "role_title": x.role_title,
        "status": x.status,
        "is_intern": x.is_intern,
        "intern_year": x.intern_year,
        "start_date": iso(x.start_date),
        "hours_per_week": _num(x.hours_per_week),
        "created_at": x.created_at.isoformat() if x.created_at else None,
    }


def _contract_row(c):
    return {
        "id": c.id,
        "start_date": iso(c.start_date),
        "end_date": iso(c.end_date),
        "contract_type": c.contract_type,
        "status": c.status,
        "chain_sequence": c.chain_sequence,
        "hours_per_week": _num(c.hours_per_week),
        "source": c.source,
    }


def _parse_hours(v):
    if v is None or v == "":
        return None
    try:
        h = Decimal(str(v))
    except Exception:
        raise ValueError("hours_per_week must be a number")
    if h < 0 or h > 60:
        raise ValueError("hours_per_week must be between 0 and 60")
    return h


def _get_or_404(sid: int):
    return db.session.get(Staff, sid)


# ---------- routes ----------

@bp.get("")
@requires_perms("staff.read")
def list_staff():
    q = Staff.query

    status = (request.args.get("status") or "").strip().lower()
    if status:
        q = q.filter(Staff.status == status)
    location = (request.args.get("location") or "").strip()
    if location:
        q = q.filter(Staff.location == location)
    try:
        intern = bool_arg("is_intern")
    except ValueError as ex:
        return _fail(str(ex), 422)
    if intern is not None:
        q = q.filter(Staff.is_intern.is_(intern))

    q = apply_q_search(q, Staff.full_name, Staff.email, Staff.role_title)
    q = apply_sort(q, _SORTABLE, default=Staff.full_name.asc())

    page, size = page_limit()
    total = q.count()
    items = q.offset((page - 1) * size).limit(size).all()
    return _ok([_row(i) for i in items], page=page, size=size, total=total)


@bp.get("/<int:sid>")
@requires_perms("staff.read")
def get_staff(sid: int):
    x = _get_or_404(sid)
    if not x:
        return _fail("Staff member not found", 404)
    return _ok(_row(x))


@bp.post("")
@requires_perms("staff.write")
def create_staff():
    d = request.get_json(silent=True, force=True) or {}
    full_name = (d.get("full_name") or "").strip()
    if not full_name:
        return _fail("full_name is required", 422)

    email = (d.get("email") or "").strip().lower() or None
    if email and Staff.query.filter_by(email=email).first():
        return _fail("Email already exists", 409)
    employes_id = (str(d.get("employes_id")).strip() if d.get("employes_id") else None)
    if employes_id and Staff.query.filter_by(employes_id=employes_id).first():
        return _fail("employes_id already linked to another staff member", 409)

    start = parse_date(d.get("start_date"))
    if d.get("start_date") and not start:
        return _fail("invalid start_date (use YYYY-MM-DD)", 422)
    try:
        hours = _parse_hours(d.get("hours_per_week"))
    except ValueError as ex:
        return _fail(str(ex), 422)

    x = Staff(
        full_name=full_name,
        email=email,
        phone=(d.get("phone") or "").strip() or None,
        location=(d.get("location") or "").strip() or None,
        role_title=(d.get("role_title") or "").strip() or None,
        employes_id=employes_id,
        is_intern=bool(d.get("is_intern", False)),
        intern_year=d.get("intern_year"),
        start_date=start,
        hours_per_week=hours,
        status="active",
    )
    db.session.add(x)
    db.session.commit()
    return _ok(_row(x), status=201)


@bp.patch("/<int:sid>")
@requires_perms("staff.write")
def update_staff(sid: int):
    x = _get_or_404(sid)
    if not x:
        return _fail("Staff member not found", 404)
    d = request.get_json(silent=True, force=True) or {}

    if "full_name" in d:
        name = (d["full_name"] or "").strip()
        if not name:
            return _fail("full_name cannot be empty", 422)
        x.full_name = name
    if "email" in d:
        email = (d["email"] or "").strip().lower() or None
        if email and Staff.query.filter(Staff.id != sid, Staff.email == email).first():
            return _fail("Email already exists", 409)
        x.email = email
    if "employes_id" in d:
        eid = str(d["employes_id"]).strip() if d["employes_id"] else None
        if eid and Staff.query.filter(Staff.id != sid, Staff.employes_id == eid).first():
            return _fail("employes_id already linked to another staff member", 409)
        x.employes_id = eid
    for key in ("phone", "location", "role_title"):
        if key in d:
            setattr(x, key, (d[key] or "").strip() or None)
    if "status" in d:
        status = (d["status"] or "").strip().lower()
        if status not in ("active", "inactive"):
            return _fail("status must be active or inactive", 422)
        x.status = status
    if "is_intern" in d:
        x.is_intern = bool(d["is_intern"])
    if "intern_year" in d:
        x.intern_year = d["intern_year"]
    if "start_date" in d:
        start = parse_date(d["start_date"])
        if d["start_date"] and not start:
            return _fail("invalid start_date (use YYYY-MM-DD)", 422)
        x.start_date = start
    if "hours_per_week" in d:
        try:
            x.hours_per_week = _parse_hours(d["hours_per_week"])
        except ValueError as ex:
            return _fail(str(ex), 422)

    db.session.commit()
    return _ok(_row(x))


@bp.delete("/<int:sid>")
@requires_perms("staff.write")
def deactivate_staff(sid: int):
    x = _get_or_404(sid)
    if not x:
        return _fail("Staff member not found", 404)
    x.deactivate()
    db.session.commit()
    return _ok({"id": sid, "status": x.status})


@bp.get("/<int:sid>/journey")
@requires_perms("staff.read")
def staff_journey(sid: int):
    """Everything HR needs on one page: contracts, chain rule, notice deadline, wages, reviews, timeline."""
    x = _get_or_404(sid)
    if not x:
        return _fail("Staff member not found", 404)

    today = parse_date(request.args.get("on")) or date.today()
    contracts = list(x.contracts)
    periods = list(x.salary_periods)
    current = current_contract(contracts)
    latest_salary = periods[0] if periods else None

    notice = None
    if current is not None and current.end_date:
        hours = current.hours_per_week or x.hours_per_week
        n = calculate_termination_notice(current.end_date, daily_wage(latest_salary, hours), today)
        notice = n.as_dict() if n else None

    reviews = StaffReview.query.filter_by(staff_id=sid).order_by(StaffReview.created_at.desc()).all()

    timeline = []
    if x.employes_id:
        events = (
            TimelineEvent.query.filter_by(employee_id=x.employes_id)
            .order_by(TimelineEvent.event_date.desc())
            .limit(50)
            .all()
        )
        timeline = [
            {
                "event_type": e.event_type,
                "event_date": e.event_date.isoformat() if e.event_date else None,
                "title": e.event_title,
                "description": e.event_description,
            }
            for e in events
        ]

    return _ok({
        "staff": _row(x),
        "contracts": [_contract_row(c) for c in contracts],
        "current_contract": _contract_row(current) if current is not None else None,
        "chain_rule": evaluate_chain_rule(contracts, today).as_dict(),
        "termination_notice": notice,
        "salary_progression": salary_progression(periods),
        "reviews": review_status(x.start_date, reviews, today),
        "timeline": timeline,
    }, as_of=today.isoformat())
