"""
Employes.nl → local database synchronisation.

A full sync runs three steps in order: snapshot (employee details), history
(employment records) and contracts (materialise Contract / SalaryPeriod rows
from the latest raw payloads). A failing step is recorded on the
SyncSession and the next step still runs; there is no retry.
"""
from __future__ import annotations

import hashlib
import json
import logging
from datetime import date, datetime
from typing import Any, Iterable, List, Optional

from sqlalchemy import func

from lms_api.extensions import db
from lms_api.models.contract import Contract
from lms_api.models.employes import EmployesChange, EmployesRawData, SyncSession, TimelineEvent
from lms_api.models.salary import SalaryPeriod
from lms_api.models.staff import Staff
from lms_api.services.employes_client import EmployesAPIError, EmployesClient
from lms_api.services.staff_records import next_chain_sequence

log = logging.getLogger(__name__)

EMPLOYEE_ENDPOINT = "/employee"
EMPLOYMENTS_ENDPOINT = "/employments"

TRACKED_FIELDS = {
    EMPLOYEE_ENDPOINT: [
        ("status", "Status"),
        ("email", "Email"),
        ("phone_number", "Phone"),
        ("employment.salary.hour_wage", "Hourly Wage"),
        ("employment.salary.month_wage", "Monthly Wage"),
        ("employment.contract.hours_per_week", "Hours/Week"),
        ("employment.contract.start_date", "Contract Start"),
        ("employment.contract.end_date", "Contract End"),
    ],
    EMPLOYMENTS_ENDPOINT: [
        ("start_date", "Employment Start"),
        ("end_date", "Employment End"),
        ("contract.contract_type", "Contract Type"),
        ("contract.end_date", "Contract End"),
    ],
}

PERMANENT_MARKERS = ("permanent", "indefinite", "onbepaalde tijd", "vast")


# ---------- helpers ----------

def data_hash(payload: Any) -> str:
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def get_nested(obj: Any, path: str) -> Any:
    value = obj
    for key in path.split("."):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return None
    return value


def _to_date(v) -> Optional[date]:
    if not v:
        return None
    if isinstance(v, date):
        return v
    try:
        return datetime.fromisoformat(str(v)[:10]).date()
    except ValueError:
        return None


def _as_list(v) -> list:
    if v is None:
        return []
    return v if isinstance(v, list) else [v]


def full_name(payload: dict) -> str:
    parts = [payload.get("first_name"), payload.get("surname_prefix"), payload.get("surname")]
    return " ".join(p.strip() for p in parts if p and str(p).strip())


def _event_for(field_path: str, old, new, label: str):
    if "salary" in field_path:
        try:
            old_v, new_v = float(old or 0), float(new or 0)
        except (TypeError, ValueError):
            old_v = new_v = 0.0
        diff = new_v - old_v
        pct = f"{diff / old_v * 100:.1f}" if old_v > 0 else "0"
        title = ("Salary Increase" if diff > 0 else "Salary Change") + f" ({'+' if diff > 0 else ''}{pct}%)"
        return "salary_change", title
    if "hours_per_week" in field_path:
        return "hours_change", f"Hours Changed: {old} → {new}"
    if "contract" in field_path:
        return "contract_change", "Contract Updated"
    if field_path == "status":
        return "status_change", f"Status: {old} → {new}"
    return "data_update", f"{label} Updated"


def detect_changes(employee_id: str, new: dict, old: Optional[dict], endpoint: str,
                   store_changes: bool = True, when: Optional[datetime] = None) -> int:
    """
    Compare tracked fields between two payload versions. Each difference is
    stored as an EmployesChange plus a TimelineEvent; a first sighting of an
    employee yields a single `employee_added` event. Returns events created.
    """
    when = when or datetime.utcnow()

    if old is None:
        if endpoint != EMPLOYEE_ENDPOINT:
            return 0
        db.session.add(TimelineEvent(
            employee_id=employee_id,
            event_type="employee_added",
            event_date=when,
            event_title="Employee Added",
            event_description=f"{full_name(new) or employee_id} was added to the system",
            event_data={"status": new.get("status")},
        ))
        return 1

    created = 0
    for path, label in TRACKED_FIELDS.get(endpoint, []):
        old_v, new_v = get_nested(old, path), get_nested(new, path)
        if json.dumps(old_v, default=str) == json.dumps(new_v, default=str):
            continue

        change = None
        if store_changes:
            change = EmployesChange(
                employee_id=employee_id, endpoint=endpoint, field_path=path, field_label=label,
                old_value=old_v, new_value=new_v, change_type="updated", detected_at=when,
            )
            db.session.add(change)
            db.session.flush()

        event_type, title = _event_for(path, old_v, new_v, label)
        db.session.add(TimelineEvent(
            employee_id=employee_id,
            event_type=event_type,
            event_date=when,
            event_title=title,
            event_description=f"{label}: {old_v} → {new_v}",
            event_data={"field_path": path, "old_value": old_v, "new_value": new_v},
            change_id=change.id if change else None,
        ))
        created += 1
    return created


def _latest_raw(employee_id: str, endpoint: str, record_key: Optional[str] = None) -> Optional[EmployesRawData]:
    q = EmployesRawData.query.filter_by(employee_id=employee_id, endpoint=endpoint, is_latest=True)
    if record_key is not None:
        q = q.filter(EmployesRawData.record_key == record_key)
    return q.order_by(EmployesRawData.collected_at.desc(), EmployesRawData.id.desc()).first()


def store_payload(employee_id: str, endpoint: str, payload: dict, session_id: Optional[int] = None,
                  record_key: Optional[str] = None, effective_from: Optional[datetime] = None) -> tuple[bool, int]:
    """
    Version `payload` in employes_raw_data. Returns (stored, changes):
    (False, 0) when the latest stored version has the same hash.
    """
    now = datetime.utcnow()
    digest = data_hash(payload)
    latest = _latest_raw(employee_id, endpoint, record_key)

    if latest is not None and latest.data_hash == digest:
        latest.last_verified_at = now
        return False, 0

    old_payload = latest.api_response if latest is not None else None
    if latest is not None:
        latest.is_latest = False
        latest.effective_to = now

    db.session.add(EmployesRawData(
        employee_id=employee_id,
        endpoint=endpoint,
        record_key=record_key,
        api_response=payload,
        data_hash=digest,
        collected_at=now,
        last_verified_at=now,
        effective_from=effective_from or now,
        is_latest=True,
        session_id=session_id,
    ))
    changes = detect_changes(employee_id, payload, old_payload, endpoint, when=now)
    return True, changes


def link_staff(payload: dict) -> Optional[Staff]:
    """Find the local staff row for an Employes employee, linking by email on first contact."""
    emp_id = str(payload.get("id") or "")
    if not emp_id:
        return None
    staff = Staff.query.filter_by(employes_id=emp_id).first()
    if staff:
        return staff
    email = (payload.get("email") or "").strip().lower()
    if email:
        staff = Staff.query.filter(func.lower(Staff.email) == email, Staff.employes_id.is_(None)).first()
        if staff:
            staff.employes_id = emp_id
            log.info("Linked staff %s to Employes employee %s", staff.id, emp_id)
    return staff


# ---------- steps ----------

def collect_snapshots(client: EmployesClient, session_id: Optional[int] = None,
                      employees: Optional[List[dict]] = None) -> dict:
    employees = employees if employees is not None else client.list_employees()
    processed = skipped = changes = 0
    errors: List[str] = []

    for emp in employees:
        emp_id = str(emp.get("id") or "")
        if not emp_id:
            continue
        try:
            details = client.get_employee(emp_id)
            stored, n = store_payload(emp_id, EMPLOYEE_ENDPOINT, details, session_id)
            link_staff(details)
            db.session.commit()
        except EmployesAPIError as e:
            db.session.rollback()
            errors.append(f"Employee {emp_id}: {e.status_code or e}")
            continue
        except Exception as e:
            db.session.rollback()
            log.exception("Snapshot for employee %s failed", emp_id)
            errors.append(f"Employee {emp_id}: {e}")
            continue

        if stored:
            processed += 1
            changes += n
        else:
            skipped += 1

    log.info("Snapshot step: %s stored, %s unchanged, %s errors", processed, skipped, len(errors))
    return {"employees_processed": processed, "employees_skipped": skipped,
            "changes_detected": changes, "total_employees": len(employees), "errors": errors}


def collect_history(client: EmployesClient, session_id: Optional[int] = None,
                    employees: Optional[List[dict]] = None) -> dict:
    employees = employees if employees is not None else client.list_employees()
    processed = skipped = changes = employees_done = 0
    errors: List[str] = []

    for emp in employees:
        emp_id = str(emp.get("id") or "")
        if not emp_id:
            continue
        try:
            for employment in client.get_employments(emp_id):
                key = str(employment.get("id") or employment.get("start_date") or "")
                effective = _to_date(employment.get("start_date"))
                stored, n = store_payload(
                    emp_id, EMPLOYMENTS_ENDPOINT, employment, session_id, record_key=key,
                    effective_from=datetime.combine(effective, datetime.min.time()) if effective else None,
                )
                if stored:
                    processed += 1
                    changes += n
                else:
                    skipped += 1
            db.session.commit()
            employees_done += 1
        except EmployesAPIError as e:
            db.session.rollback()
            errors.append(f"Employments {emp_id}: {e.status_code or e}")
        except Exception as e:
            db.session.rollback()
            log.exception("History for employee %s failed", emp_id)
            errors.append(f"History {emp_id}: {e}")

    log.info("History step: %s stored, %s unchanged, %s errors", processed, skipped, len(errors))
    return {"employees_processed": employees_done, "history_processed": processed,
            "history_skipped": skipped, "changes_detected": changes, "errors": errors}


def _contract_type(employment: dict, end: Optional[date]) -> str:
    raw = " ".join(str(get_nested(employment, p) or "") for p in
                   ("contract.contract_type", "contract.employment_type", "contract_type")).lower()
    if any(m in raw for m in PERMANENT_MARKERS):
        return "permanent"
    if "intern" in raw or "stage" in raw:
        return "intern"
    return "fixed" if end else "permanent"


def _latest_by_start(entries: Iterable[dict]) -> Optional[dict]:
    rows = [e for e in entries if isinstance(e, dict)]
    if not rows:
        return None
    return max(rows, key=lambda e: str(e.get("start_date") or ""))


def _upsert_contract(staff: Staff, employment: dict, key: str) -> bool:
    start = _to_date(employment.get("start_date") or get_nested(employment, "contract.start_date"))
    if not start:
        return False
    end = _to_date(employment.get("end_date") or get_nested(employment, "contract.end_date"))
    hours = _latest_by_start(_as_list(employment.get("hours")))
    contract_type = _contract_type(employment, end)

    c = Contract.query.filter_by(employes_employment_id=key).first()
    created = c is None
    if created:
        c = Contract(staff_id=staff.id, employes_employment_id=key, source="employes", status="active",
                     chain_sequence=next_chain_sequence(staff.id))
        db.session.add(c)
    c.start_date = start
    c.end_date = end if contract_type != "permanent" else None
    c.contract_type = contract_type
    if hours and hours.get("hours_per_week") is not None:
        c.hours_per_week = hours["hours_per_week"]
    if employment.get("is_active") is False or (end and end < date.today()):
        if c.status == "active":
            c.status = "ended"
    db.session.flush()
    return created


def _upsert_salaries(staff: Staff, employment: dict) -> int:
    touched = 0
    for entry in _as_list(employment.get("salary")):
        if not isinstance(entry, dict):
            continue
        start = _to_date(entry.get("start_date"))
        if not start:
            continue
        p = SalaryPeriod.query.filter_by(staff_id=staff.id, valid_from=start).first()
        if p is None:
            p = SalaryPeriod(staff_id=staff.id, valid_from=start, source="employes", reason="sync")
            db.session.add(p)
        p.valid_to = _to_date(entry.get("end_date"))
        p.hourly_wage = entry.get("hour_wage")
        p.monthly_wage = entry.get("month_wage")
        p.yearly_wage = entry.get("yearly_wage")
        touched += 1
    db.session.flush()
    return touched


def sync_contracts(session_id: Optional[int] = None) -> dict:
    """Materialise Contract and SalaryPeriod rows from the latest employment payloads."""
    created = updated = wages = skipped = 0
    errors: List[str] = []

    rows = EmployesRawData.query.filter_by(endpoint=EMPLOYMENTS_ENDPOINT, is_latest=True).all()
    for raw in rows:
        staff = Staff.query.filter_by(employes_id=raw.employee_id).first()
        if staff is None:
            skipped += 1
            continue
        key = f"{raw.employee_id}:{raw.record_key}"
        try:
            if _upsert_contract(staff, raw.api_response or {}, key):
                created += 1
            else:
                updated += 1
            wages += _upsert_salaries(staff, raw.api_response or {})
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            log.exception("Contract sync for %s failed", key)
            errors.append(f"Contract {key}: {e}")

    log.info("Contracts step: %s created, %s updated, %s wage periods", created, updated, wages)
    return {"contracts_created": created, "contracts_updated": updated, "wages_updated": wages,
            "unlinked_employees": skipped, "errors": errors}


def compare_staff(client: EmployesClient) -> dict:
    remote = client.list_employees()
    local = Staff.query.all()
    by_id = {s.employes_id: s for s in local if s.employes_id}
    by_name = {s.full_name.strip().lower(): s for s in local if s.full_name}

    matched, employes_only, seen = [], [], set()
    for emp in remote:
        s = by_id.get(str(emp.get("id")))
        how = "employes_id"
        if s is None:
            s = by_name.get(full_name(emp).lower())
            how = "name"
        if s is None or s.id in seen:
            employes_only.append({"employes_id": emp.get("id"), "name": full_name(emp)})
            continue
        seen.add(s.id)
        matched.append({"staff_id": s.id, "employes_id": emp.get("id"), "name": s.full_name, "matched_by": how})

    lms_only = [{"staff_id": s.id, "name": s.full_name} for s in local if s.id not in seen]
    return {"matches": matched, "employes_only": employes_only, "lms_only": lms_only,
            "totals": {"matches": len(matched), "employes_only": len(employes_only), "lms_only": len(lms_only)}}


# ---------- orchestrator ----------

def run_full_sync(client: EmployesClient, source: str = "manual", triggered_by: Optional[str] = None) -> dict:
    session = SyncSession(session_type="full_sync", status="running", source=source, triggered_by=triggered_by)
    db.session.add(session)
    db.session.commit()
    log.info("Sync session %s started (%s, %s)", session.id, source, triggered_by)

    results = {"snapshot": None, "history": None, "contracts": None}
    errors: List[str] = []

    employees = None
    try:
        employees = client.list_employees()
    except EmployesAPIError as e:
        errors.append(f"Employee list failed: {e}")

    def _step(name: str, fn):
        try:
            results[name] = fn()
            errors.extend(results[name].get("errors") or [])
        except Exception as e:
            db.session.rollback()
            log.exception("Sync step %s failed", name)
            errors.append(f"{name.capitalize()} step failed: {e}")

    if employees is not None:
        _step("snapshot", lambda: collect_snapshots(client, session.id, employees))
        _step("history", lambda: collect_history(client, session.id, employees))
    _step("contracts", lambda: sync_contracts(session.id))

    snapshot = results["snapshot"] or {}
    history = results["history"] or {}
    contracts = results["contracts"] or {}
    total = snapshot.get("total_employees", 0)

    session.status = "completed_with_errors" if errors else "completed"
    session.completed_at = datetime.utcnow()
    session.total_records = total
    session.failed_records = len(errors)
    session.successful_records = max(total - len(errors), 0)
    session.sync_details = {
        "employees_processed": snapshot.get("employees_processed", 0),
        "history_collected": history.get("history_processed", 0),
        "changes_detected": snapshot.get("changes_detected", 0) + history.get("changes_detected", 0),
        "contracts_created": contracts.get("contracts_created", 0),
        "contracts_updated": contracts.get("contracts_updated", 0),
        "wages_updated": contracts.get("wages_updated", 0),
        "errors": errors,
    }
    db.session.commit()
    log.info("Sync session %s finished: %s (%s errors)", session.id, session.status, len(errors))

    return {"session_id": session.id, "status": session.status,
            "summary": session.sync_details, "success": not errors}


def sync_statistics() -> dict:
    last = SyncSession.query.order_by(SyncSession.started_at.desc(), SyncSession.id.desc()).first()
    return {
        "linked_staff": Staff.query.filter(Staff.employes_id.isnot(None)).count(),
        "unlinked_staff": Staff.query.filter(Staff.employes_id.is_(None)).count(),
        "raw_records": EmployesRawData.query.filter_by(is_latest=True).count(),
        "changes": EmployesChange.query.count(),
        "timeline_events": TimelineEvent.query.count(),
        "synced_contracts": Contract.query.filter_by(source="employes").count(),
        "last_session": session_row(last) if last else None,
    }


def session_row(s: SyncSession) -> dict:
    return {
        "id": s.id,
        "session_type": s.session_type,
        "status": s.status,
        "source": s.source,
        "triggered_by": s.triggered_by,
        "started_at": s.started_at.isoformat() if s.started_at else None,
        "completed_at": s.completed_at.isoformat() if s.completed_at else None,
        "total_records": s.total_records,
        "successful_records": s.successful_records,
        "failed_records": s.failed_records,
        "sync_details": s.sync_details,
    }


def rebuild_timeline(employee_id: str) -> dict:
    """
    Regenerate an employee's timeline from the stored payload versions. The
    /employee chain and every /employments chain (one per record_key) are
    replayed in collection order.
    """
    TimelineEvent.query.filter_by(employee_id=employee_id).delete()
    rows = (
        EmployesRawData.query
        .filter(EmployesRawData.employee_id == employee_id,
                EmployesRawData.endpoint.in_(list(TRACKED_FIELDS)))
        .order_by(EmployesRawData.collected_at.asc(), EmployesRawData.id.asc())
        .all()
    )
    chains: dict = {}
    for r in rows:
        chains.setdefault((r.endpoint, r.record_key), []).append(r)

    events = 0
    for (endpoint, _key), versions in chains.items():
        prev = None
        for v in versions:
            events += detect_changes(employee_id, v.api_response, prev, endpoint,
                                     store_changes=False, when=v.collected_at)
            prev = v.api_response
    db.session.commit()

    employee_versions = sum(1 for r in rows if r.endpoint == EMPLOYEE_ENDPOINT)
    return {"employee_id": employee_id, "versions": employee_versions,
            "employment_versions": len(rows) - employee_versions, "events_created": events}
