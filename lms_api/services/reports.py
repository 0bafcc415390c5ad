from __future__ import annotations

from datetime import date
from io import BytesIO
from typing import Iterable, List, Optional

from openpyxl import Workbook
from openpyxl.styles import Font

from lms_api.models.staff import Staff
from lms_api.services.compliance import (
    ComplianceAlert,
    build_staff_alerts,
    classify_expiring_contract,
    sort_alerts,
)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def active_staff(location: Optional[str] = None) -> List[Staff]:
    q = Staff.query.filter(Staff.status == "active")
    if location:
        q = q.filter(Staff.location == location)
    return q.order_by(Staff.full_name.asc()).all()


def collect_alerts(today: Optional[date] = None, staff_rows: Optional[Iterable[Staff]] = None) -> List[ComplianceAlert]:
    today = today or date.today()
    rows = staff_rows if staff_rows is not None else active_staff()
    alerts: List[ComplianceAlert] = []
    for s in rows:
        alerts.extend(build_staff_alerts(s, s.contracts, s.salary_periods, today))
    return sort_alerts(alerts)


def alerts_summary(alerts: Iterable[ComplianceAlert]) -> dict:
    out = {"total": 0, "critical": 0, "warning": 0, "info": 0, "by_type": {}}
    for a in alerts:
        out["total"] += 1
        out[a.severity] = out.get(a.severity, 0) + 1
        out["by_type"][a.type] = out["by_type"].get(a.type, 0) + 1
    return out


def collect_expiring(today: Optional[date] = None, lookahead_days: int = 90,
                     staff_rows: Optional[Iterable[Staff]] = None) -> List[dict]:
    today = today or date.today()
    rows = staff_rows if staff_rows is not None else active_staff()
    out = []
    for s in rows:
        for c in s.contracts:
            if c.status != "active":
                continue
            item = classify_expiring_contract(c, today, lookahead_days)
            if item is None:
                continue
            item.extra = {"staff_name": s.full_name, "location": s.location}
            out.append(item)
    out.sort(key=lambda x: x.days_until_expiry)
    return [x.as_dict() for x in out]


def alerts_workbook(alerts: Iterable[ComplianceAlert], expiring: Iterable[dict], today: date) -> BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = "ALERTS"
    ws.append(["STAFF ID", "NAME", "TYPE", "SEVERITY", "MESSAGE", "ACTION",
               "DEADLINE", "DAYS REMAINING", "CONTRACT END"])
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for a in alerts:
        ws.append([
            a.staff_id, a.staff_name, a.type, a.severity, a.message, a.action_required,
            a.deadline, a.days_remaining, a.contract_end_date,
        ])

    ws_exp = wb.create_sheet("EXPIRING")
    ws_exp.append(["CONTRACT ID", "STAFF ID", "NAME", "END DATE", "DAYS UNTIL EXPIRY",
                   "TYPE", "LEVEL", "ACTION DEADLINE"])
    for cell in ws_exp[1]:
        cell.font = Font(bold=True)
    for e in expiring:
        ws_exp.append([
            e.get("contract_id"), e.get("staff_id"), e.get("staff_name"), e.get("end_date"),
            e.get("days_until_expiry"), e.get("compliance_type"), e.get("warning_level"),
            e.get("action_deadline"),
        ])

    ws_meta = wb.create_sheet("INFO")
    ws_meta.append(["Generated for", today.isoformat()])

    bio = BytesIO()
    wb.save(bio)
    bio.seek(0)
    return bio
