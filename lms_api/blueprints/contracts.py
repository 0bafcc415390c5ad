from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from flask import Blueprint, request

from lms_api.extensions import db
from lms_api.models.contract import Contract, CONTRACT_STATUSES, CONTRACT_TYPES
from lms_api.models.staff import Staff
from lms_api.common.auth import requires_perms
from lms_api.common.http import ok as _ok, fail as _fail
from lms_api.common.paging import page_limit, apply_sort, parse_date, iso
from lms_api.services.compliance import calculate_termination_notice, evaluate_chain_rule
from lms_api.services.staff_records import create_contract, renew_contract, terminate_contract

bp = Blueprint("contracts", __name__, url_prefix="/api/v1/contracts")

_SORTABLE = {
    "start_date": Contract.start_date,
    "end_date": Contract.end_date,
    "created_at": Contract.created_at,
}


def _row(c: Contract, today: date | None = None):
    notice = calculate_termination_notice(c.end_date, today=today) if c.status == "active" else None
    return {
        "id": c.id,
        "staff_id": c.staff_id,
        "staff_name": c.staff.full_name if c.staff else None,
        "start_date": iso(c.start_date),
        "end_date": iso(c.end_date),
        "contract_type": c.contract_type,
        "status": c.status,
        "chain_sequence": c.chain_sequence,
        "hours_per_week": float(c.hours_per_week) if c.hours_per_week is not None else None,
        "employes_employment_id": c.employes_employment_id,
        "source": c.source,
        "notes": c.notes,
        "termination_deadline": iso(notice.deadline_date) if notice else None,
        "notice_status": notice.status if notice else None,
    }


def _int_arg(name: str):
    v = request.args.get(name)
    if v in (None, "", "null"):
        return None
    try:
        return int(v)
    except ValueError:
        raise ValueError(f"{name} must be an integer")


def _hours(v):
    if v is None or v == "":
        return None
    try:
        return Decimal(str(v))
    except Exception:
        raise ValueError("hours_per_week must be a number")


# ---------- routes ----------

@bp.get("")
@requires_perms("contracts.read")
def list_contracts():
    q = Contract.query
    try:
        staff_id = _int_arg("staff_id")
        within = _int_arg("expiring_within")
    except ValueError as ex:
        return _fail(str(ex), 422)

    if staff_id:
        q = q.filter(Contract.staff_id == staff_id)
    status = (request.args.get("status") or "").strip().lower()
    if status:
        if status not in CONTRACT_STATUSES:
            return _fail(f"status must be one of {list(CONTRACT_STATUSES)}", 422)
        q = q.filter(Contract.status == status)
    ctype = (request.args.get("type") or "").strip().lower()
    if ctype:
        if ctype not in CONTRACT_TYPES:
            return _fail(f"type must be one of {list(CONTRACT_TYPES)}", 422)
        q = q.filter(Contract.contract_type == ctype)
    if within is not None:
        today = date.today()
        q = q.filter(
            Contract.status == "active",
            Contract.end_date.isnot(None),
            Contract.end_date >= today,
            Contract.end_date <= today + timedelta(days=within),
        )

    q = apply_sort(q, _SORTABLE, default=Contract.start_date.desc())
    page, size = page_limit()
    total = q.count()
    items = q.offset((page - 1) * size).limit(size).all()
    return _ok([_row(c) for c in items], page=page, size=size, total=total)


@bp.get("/<int:cid>")
@requires_perms("contracts.read")
def get_contract(cid: int):
    c = db.session.get(Contract, cid)
    if not c:
        return _fail("Contract not found", 404)
    return _ok(_row(c))


@bp.post("")
@requires_perms("contracts.write")
def create():
    d = request.get_json(silent=True, force=True) or {}
    try:
        staff_id = int(d.get("staff_id"))
    except (TypeError, ValueError):
        return _fail("staff_id is required and must be integer", 422)
    staff = db.session.get(Staff, staff_id)
    if not staff:
        return _fail("Invalid staff_id", 422)

    start = parse_date(d.get("start_date"))
    if not start:
        return _fail("start_date is required (YYYY-MM-DD)", 422)
    end = parse_date(d.get("end_date"))
    if d.get("end_date") and not end:
        return _fail("invalid end_date (use YYYY-MM-DD)", 422)
    try:
        hours = _hours(d.get("hours_per_week"))
    except ValueError as ex:
        return _fail(str(ex), 422)

    c = create_contract(
        staff,
        start_date=start,
        end_date=end,
        contract_type=(d.get("contract_type") or ("fixed" if end else "permanent")).lower(),
        hours_per_week=hours,
        notes=d.get("notes"),
    )
    db.session.commit()
    chain = evaluate_chain_rule(staff.contracts)
    return _ok(_row(c), status=201, chain_rule=chain.as_dict())


@bp.patch("/<int:cid>")
@requires_perms("contracts.write")
def update_contract(cid: int):
    c = db.session.get(Contract, cid)
    if not c:
        return _fail("Contract not found", 404)
    d = request.get_json(silent=True, force=True) or {}

    if "end_date" in d:
        end = parse_date(d["end_date"])
        if d["end_date"] and not end:
            return _fail("invalid end_date (use YYYY-MM-DD)", 422)
        if end and end < c.start_date:
            return _fail("end_date must be on or after start_date", 422)
        c.end_date = end
    if "contract_type" in d:
        ctype = (d["contract_type"] or "").lower()
        if ctype not in CONTRACT_TYPES:
            return _fail(f"contract_type must be one of {list(CONTRACT_TYPES)}", 422)
        c.contract_type = ctype
    if c.contract_type == "permanent" and c.end_date:
        return _fail("permanent contracts have no end_date", 422)
    if "hours_per_week" in d:
        try:
            c.hours_per_week = _hours(d["hours_per_week"])
        except ValueError as ex:
            return _fail(str(ex), 422)
    if "notes" in d:
        c.notes = d["notes"]

    db.session.commit()
    return _ok(_row(c))


@bp.post("/<int:cid>/renew")
@requires_perms("contracts.write")
def renew(cid: int):
    c = db.session.get(Contract, cid)
    if not c:
        return _fail("Contract not found", 404)
    d = request.get_json(silent=True, force=True) or {}

    ctype = (d.get("contract_type") or "fixed").lower()
    end = parse_date(d.get("end_date"))
    if ctype != "permanent" and not end:
        return _fail("end_date is required for a fixed-term renewal", 422)
    try:
        hours = _hours(d.get("hours_per_week"))
    except ValueError as ex:
        return _fail(str(ex), 422)

    new_contract, chain = renew_contract(c, end if ctype != "permanent" else None, ctype, hours)
    db.session.commit()
    return _ok({
        "previous": _row(c),
        "contract": _row(new_contract),
        "chain_rule": chain.as_dict(),
    }, status=201)


@bp.post("/<int:cid>/terminate")
@requires_perms("contracts.write")
def terminate(cid: int):
    c = db.session.get(Contract, cid)
    if not c:
        return _fail("Contract not found", 404)
    d = request.get_json(silent=True, force=True) or {}
    on = parse_date(d.get("date")) or date.today()
    terminate_contract(c, on, d.get("reason"))
    db.session.commit()
    return _ok(_row(c))
