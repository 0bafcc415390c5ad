from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation

from flask import Blueprint, request
from flask_jwt_extended import get_jwt_identity

from lms_api.extensions import db
from lms_api.models.review import StaffReview, REVIEW_STATUSES, REVIEW_TYPES
from lms_api.models.staff import Staff
from lms_api.common.auth import requires_perms
from lms_api.common.http import ok as _ok, fail as _fail
from lms_api.common.paging import page_limit, parse_date, iso
from lms_api.services.reviews import review_status

bp = Blueprint("reviews", __name__, url_prefix="/api/v1/reviews")


def _row(r: StaffReview):
    return {
        "id": r.id,
        "staff_id": r.staff_id,
        "staff_name": r.staff.full_name if r.staff else None,
        "reviewer_user_id": r.reviewer_user_id,
        "review_type": r.review_type,
        "status": r.status,
        "scheduled_date": iso(r.scheduled_date),
        "review_date": iso(r.review_date),
        "overall_score": float(r.overall_score) if r.overall_score is not None else None,
        "performance_level": r.performance_level,
        "notes": r.notes,
    }


@bp.get("")
@requires_perms("reviews.read")
def list_reviews():
    q = StaffReview.query
    sid = request.args.get("staff_id")
    if sid:
        try:
            q = q.filter(StaffReview.staff_id == int(sid))
        except ValueError:
            return _fail("staff_id must be an integer", 422)
    status = (request.args.get("status") or "").strip().lower()
    if status:
        if status not in REVIEW_STATUSES:
            return _fail(f"status must be one of {list(REVIEW_STATUSES)}", 422)
        q = q.filter(StaffReview.status == status)
    rtype = (request.args.get("type") or "").strip().lower()
    if rtype:
        q = q.filter(StaffReview.review_type == rtype)

    page, size = page_limit()
    total = q.count()
    items = (
        q.order_by(StaffReview.scheduled_date.desc(), StaffReview.id.desc())
        .offset((page - 1) * size).limit(size).all()
    )
    return _ok([_row(r) for r in items], page=page, size=size, total=total)


@bp.post("")
@requires_perms("reviews.write")
def schedule_review():
    d = request.get_json(silent=True, force=True) or {}
    try:
        staff_id = int(d.get("staff_id"))
    except (TypeError, ValueError):
        return _fail("staff_id is required and must be integer", 422)
    if not db.session.get(Staff, staff_id):
        return _fail("Invalid staff_id", 422)

    rtype = (d.get("review_type") or "yearly").lower()
    if rtype not in REVIEW_TYPES:
        return _fail(f"review_type must be one of {list(REVIEW_TYPES)}", 422)
    when = parse_date(d.get("scheduled_date"))
    if not when:
        return _fail("scheduled_date is required (YYYY-MM-DD)", 422)

    reviewer = d.get("reviewer_user_id")
    if reviewer is None:
        ident = get_jwt_identity()
        reviewer = int(ident) if ident and str(ident).isdigit() else None

    r = StaffReview(
        staff_id=staff_id,
        reviewer_user_id=reviewer,
        review_type=rtype,
        status="scheduled",
        scheduled_date=when,
        notes=d.get("notes"),
    )
    db.session.add(r)
    db.session.commit()
    return _ok(_row(r), status=201)


@bp.post("/<int:rid>/complete")
@requires_perms("reviews.write")
def complete_review(rid: int):
    r = db.session.get(StaffReview, rid)
    if not r:
        return _fail("Review not found", 404)
    if r.status != "scheduled":
        return _fail(f"review is already {r.status}", 409)
    d = request.get_json(silent=True, force=True) or {}

    score = d.get("overall_score")
    if score is not None:
        try:
            score = Decimal(str(score))
        except InvalidOperation:
            return _fail("overall_score must be a number", 422)
        if not Decimal("1") <= score <= Decimal("5"):
            return _fail("overall_score must be between 1 and 5", 422)

    r.review_date = parse_date(d.get("review_date")) or date.today()
    r.overall_score = score
    r.performance_level = (d.get("performance_level") or "").strip() or None
    if d.get("notes"):
        r.notes = d["notes"]
    r.status = "completed"
    db.session.commit()
    return _ok(_row(r))


@bp.get("/overdue")
@requires_perms("reviews.read")
def overdue_reviews():
    on = request.args.get("on")
    today = parse_date(on) if on else date.today()
    if not today:
        return _fail("invalid on date (use YYYY-MM-DD)", 422)

    out = []
    for s in Staff.query.filter(Staff.status == "active").order_by(Staff.full_name.asc()).all():
        reviews = StaffReview.query.filter_by(staff_id=s.id).all()
        st = review_status(s.start_date, reviews, today)
        if st["is_overdue"] and not st["next_scheduled"]:
            out.append({"staff_id": s.id, "staff_name": s.full_name, **st})
    out.sort(key=lambda r: r["days_until_due"] if r["days_until_due"] is not None else 0)
    return _ok(out, as_of=today.isoformat(), total=len(out))
