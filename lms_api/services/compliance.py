"""
Dutch employment compliance rules used by the dashboard endpoints.

Everything here is a pure function over already-loaded rows (ORM objects or
plain dicts). Nothing raises on missing data: a null end date, an empty
contract list or an empty salary history simply produce no result.
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional

# Dutch labour law (BW 7:668 aanzegtermijn, 7:668a ketenregeling)
TERMINATION_NOTICE_DAYS = 30
URGENT_NOTICE_DAYS = 30
IDEAL_NOTICE_DAYS = 60

MAX_CHAIN_CONTRACTS = 3
MAX_CHAIN_MONTHS = 36
CHAIN_WARNING_MONTHS = 30
CHAIN_BREAK_MONTHS = 6
SINGLE_CONTRACT_WATCH_MONTHS = 18

SALARY_REVIEW_MONTHS = 12
SALARY_REVIEW_CRITICAL_MONTHS = 18
SALARY_STAGNATION_MONTHS = 13

EXPIRY_LOOKAHEAD_DAYS = 90
NOTICE_WARNING_DAYS = 14

SEVERITY_ORDER = {"critical": 0, "warning": 1, "info": 2}


# ---------- date helpers ----------

def _get(obj, name, default=None):
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _num(v) -> float:
    if v is None or v == "":
        return 0.0
    if isinstance(v, Decimal):
        return float(v)
    try:
        return float(v)
    except (TypeError, ValueError):
        return 0.0


def add_months(d: date, months: int) -> date:
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def months_between(start: date, end: date) -> int:
    """Whole calendar months from `start` up to `end` (0 when end precedes start)."""
    if not start or not end or end <= start:
        return 0
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return max(months, 0)


# ---------- result records ----------

@dataclass
class TerminationNotice:
    deadline_date: date
    days_until_deadline: int
    status: str               # early/ideal/urgent/critical/overdue
    days_overdue: int
    penalty_amount: float
    should_notify: bool

    def as_dict(self):
        return {
            "deadline_date": self.deadline_date.isoformat(),
            "days_until_deadline": self.days_until_deadline,
            "status": self.status,
            "days_overdue": self.days_overdue,
            "penalty_amount": round(self.penalty_amount, 2),
            "should_notify": self.should_notify,
        }


@dataclass
class ChainRuleStatus:
    total_contracts: int
    total_months: int
    requires_permanent: bool
    warning_level: str        # safe/warning/critical/permanent_required
    message: str
    chain_start: Optional[date] = None

    def as_dict(self):
        return {
            "total_contracts": self.total_contracts,
            "total_months": self.total_months,
            "requires_permanent": self.requires_permanent,
            "warning_level": self.warning_level,
            "message": self.message,
            "chain_start": self.chain_start.isoformat() if self.chain_start else None,
        }


@dataclass
class ComplianceAlert:
    type: str                 # termination_notice/chain_rule/permanent_required/salary_review/salary_stagnation
    severity: str             # info/warning/critical
    message: str
    action_required: str = ""
    deadline: Optional[date] = None
    days_remaining: Optional[int] = None
    staff_id: Optional[int] = None
    staff_name: Optional[str] = None
    contract_end_date: Optional[date] = None
    months: Optional[int] = None

    def as_dict(self):
        return {
            "type": self.type,
            "severity": self.severity,
            "message": self.message,
            "action_required": self.action_required,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "days_remaining": self.days_remaining,
            "staff_id": self.staff_id,
            "staff_name": self.staff_name,
            "contract_end_date": self.contract_end_date.isoformat() if self.contract_end_date else None,
            "months": self.months,
        }


@dataclass
class ExpiringContract:
    contract_id: Optional[int]
    staff_id: Optional[int]
    start_date: Optional[date]
    end_date: date
    days_until_expiry: int
    notice_deadline_days: int
    needs_termination_notice: bool
    missed_termination_notice: bool
    needs_salary_review: bool
    duration_months: int
    compliance_type: str      # legal_risk/termination_notice/salary_review/renewal
    warning_level: str        # critical/urgent/upcoming
    action_deadline: Optional[date] = None
    calendar_event: str = "upcoming"
    extra: dict = field(default_factory=dict)

    def as_dict(self):
        return {
            "contract_id": self.contract_id,
            "staff_id": self.staff_id,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat(),
            "days_until_expiry": self.days_until_expiry,
            "notice_deadline_days": self.notice_deadline_days,
            "needs_termination_notice": self.needs_termination_notice,
            "missed_termination_notice": self.missed_termination_notice,
            "needs_salary_review": self.needs_salary_review,
            "duration_months": self.duration_months,
            "compliance_type": self.compliance_type,
            "warning_level": self.warning_level,
            "action_deadline": self.action_deadline.isoformat() if self.action_deadline else None,
            "calendar_event": self.calendar_event,
            **self.extra,
        }


# ---------- termination notice ----------

def calculate_termination_notice(end_date: Optional[date], daily_wage=0, today: Optional[date] = None) -> Optional[TerminationNotice]:
    """
    Notice ("aanzegging") must reach the employee 30 days before a fixed-term
    contract ends. Permanent contracts (no end date) return None.
    """
    if not end_date:
        return None
    today = today or date.today()

    deadline = end_date - timedelta(days=TERMINATION_NOTICE_DAYS)
    days_left = (deadline - today).days

    if days_left < 0:
        status = "overdue"
    elif days_left == 0:
        status = "critical"
    elif days_left <= URGENT_NOTICE_DAYS:
        status = "urgent"
    elif days_left <= IDEAL_NOTICE_DAYS:
        status = "ideal"
    else:
        status = "early"

    days_overdue = abs(days_left) if days_left < 0 else 0
    return TerminationNotice(
        deadline_date=deadline,
        days_until_deadline=days_left,
        status=status,
        days_overdue=days_overdue,
        penalty_amount=days_overdue * _num(daily_wage),
        should_notify=status != "early",
    )


# ---------- chain rule ----------

def _contract_end_exclusive(contract, today: date) -> date:
    end = _get(contract, "end_date")
    return end + timedelta(days=1) if end else today


def current_chain(contracts: Iterable) -> list:
    """
    Contracts of the running chain, oldest first. A gap of more than six
    months between two contracts starts a new chain.
    """
    ordered = sorted(
        (c for c in contracts if _get(c, "start_date") and _get(c, "status") != "superseded"),
        key=lambda c: _get(c, "start_date"),
    )
    chain: list = []
    for c in ordered:
        if chain:
            prev_end = _get(chain[-1], "end_date")
            if prev_end and _get(c, "start_date") > add_months(prev_end, CHAIN_BREAK_MONTHS):
                chain = []
        chain.append(c)
    return chain


def evaluate_chain_rule(contracts: Iterable, today: Optional[date] = None) -> ChainRuleStatus:
    today = today or date.today()
    chain = current_chain(contracts)

    total = len(chain)
    months = sum(
        months_between(_get(c, "start_date"), _contract_end_exclusive(c, today)) for c in chain
    )
    start = _get(chain[0], "start_date") if chain else None
    years = months // 12

    if any(_get(c, "contract_type") == "permanent" for c in chain):
        return ChainRuleStatus(total, months, False, "safe", "Employee has a permanent contract", start)

    if total >= MAX_CHAIN_CONTRACTS or months >= MAX_CHAIN_MONTHS:
        return ChainRuleStatus(
            total, months, True, "permanent_required",
            f"Next contract must be permanent ({total} contracts / {years} years)", start,
        )

    if total == MAX_CHAIN_CONTRACTS - 1 or months >= CHAIN_WARNING_MONTHS:
        return ChainRuleStatus(
            total, months, False, "critical",
            f"Approaching limit: {total}/{MAX_CHAIN_CONTRACTS} contracts, {months}/{MAX_CHAIN_MONTHS} months", start,
        )

    if total == 1 and months > SINGLE_CONTRACT_WATCH_MONTHS:
        return ChainRuleStatus(total, months, False, "warning",
                               f"Monitor: {total} contract, {months} months", start)

    return ChainRuleStatus(total, months, False, "safe",
                           f"Safe: {total}/{MAX_CHAIN_CONTRACTS} contracts", start)


# ---------- salary review / stagnation ----------

def _comparable_wages(latest, previous):
    """Hourly wages when both periods have one, else monthly; (None, None) when neither pair is complete."""
    for key in ("hourly_wage", "monthly_wage"):
        a, b = _get(latest, key), _get(previous, key)
        if a not in (None, "") and b not in (None, ""):
            return _num(a), _num(b)
    return None, None


def detect_salary_alerts(periods: Iterable, today: Optional[date] = None) -> List[ComplianceAlert]:
    today = today or date.today()
    ordered = sorted(
        (p for p in periods if _get(p, "valid_from")),
        key=lambda p: _get(p, "valid_from"),
        reverse=True,
    )
    if not ordered:
        return []

    latest = ordered[0]
    months = months_between(_get(latest, "valid_from"), today)
    alerts: List[ComplianceAlert] = []

    if months >= SALARY_REVIEW_MONTHS:
        alerts.append(ComplianceAlert(
            type="salary_review",
            severity="critical" if months >= SALARY_REVIEW_CRITICAL_MONTHS else "warning",
            message=f"No salary review in {months} months",
            action_required="Schedule a compensation review",
            months=months,
        ))

    if len(ordered) > 1 and months >= SALARY_STAGNATION_MONTHS:
        current, previous = _comparable_wages(latest, ordered[1])
        if current is not None and current <= previous:
            alerts.append(ComplianceAlert(
                type="salary_stagnation",
                severity="warning",
                message=f"No salary increase in {months} months",
                action_required="Consider scheduling a compensation review",
                months=months,
            ))
    return alerts


# ---------- expiring contracts (dashboard widget) ----------

def _calendar_event(deadline: Optional[date], today: date) -> str:
    if not deadline:
        return "upcoming"
    diff = (deadline - today).days
    if diff < 0:
        return "overdue"
    if diff == 0:
        return "due_today"
    if diff <= 7:
        return "due_this_week"
    return "upcoming"


def classify_expiring_contract(contract, today: Optional[date] = None,
                               lookahead_days: int = EXPIRY_LOOKAHEAD_DAYS) -> Optional[ExpiringContract]:
    today = today or date.today()
    end = _get(contract, "end_date")
    if not end or _get(contract, "contract_type") == "permanent":
        return None
    days_until_expiry = (end - today).days
    if days_until_expiry < 0 or days_until_expiry > lookahead_days:
        return None

    start = _get(contract, "start_date")
    notice_days = days_until_expiry - TERMINATION_NOTICE_DAYS
    needs_notice = 0 < notice_days <= NOTICE_WARNING_DAYS
    missed_notice = notice_days <= 0 < days_until_expiry
    duration = months_between(start, end) if start else 0
    needs_review = duration >= 12 and TERMINATION_NOTICE_DAYS < days_until_expiry <= 60

    if missed_notice:
        kind, level = "legal_risk", "critical"
    elif needs_notice:
        kind, level = "termination_notice", "urgent"
    elif needs_review:
        kind, level = "salary_review", "upcoming"
    else:
        kind = "renewal"
        level = "critical" if days_until_expiry <= 7 else "urgent" if days_until_expiry <= 30 else "upcoming"

    if kind in ("legal_risk", "termination_notice"):
        action = end - timedelta(days=TERMINATION_NOTICE_DAYS)
    elif kind == "salary_review":
        action = end - timedelta(days=60)
    else:
        action = end

    return ExpiringContract(
        contract_id=_get(contract, "id"),
        staff_id=_get(contract, "staff_id"),
        start_date=start,
        end_date=end,
        days_until_expiry=days_until_expiry,
        notice_deadline_days=notice_days,
        needs_termination_notice=needs_notice,
        missed_termination_notice=missed_notice,
        needs_salary_review=needs_review,
        duration_months=duration,
        compliance_type=kind,
        warning_level=level,
        action_deadline=action,
        calendar_event=_calendar_event(action, today),
    )


# ---------- per-staff aggregation ----------

def current_contract(contracts: Iterable):
    rows = [c for c in contracts if _get(c, "start_date")]
    if not rows:
        return None
    active = [c for c in rows if _get(c, "status", "active") == "active"]
    return max(active or rows, key=lambda c: _get(c, "start_date"))


def daily_wage(salary_period, hours_per_week=None) -> float:
    """Average working-day wage used for the late-notice penalty."""
    if salary_period is None:
        return 0.0
    hourly = _num(_get(salary_period, "hourly_wage"))
    hours = _num(hours_per_week) or 36.0
    if hourly:
        return hourly * hours / 5
    monthly = _num(_get(salary_period, "monthly_wage"))
    return monthly * 3 / 65 if monthly else 0.0


_NOTICE_ALERTS = {
    "overdue": ("critical", "Termination deadline passed {days_overdue} days ago",
                "Penalty accrues: {penalty:.2f} EUR so far"),
    "critical": ("critical", "Legal deadline TODAY - must notify employee",
                 "Send termination or renewal notice immediately"),
    "urgent": ("warning", "{days} days until legal deadline",
               "Decide on contract renewal/termination"),
    "ideal": ("info", "{days} days until termination deadline",
              "Ideal time to start renewal discussions"),
}


def build_staff_alerts(staff, contracts: Iterable, salary_periods: Iterable,
                       today: Optional[date] = None) -> List[ComplianceAlert]:
    today = today or date.today()
    contracts = list(contracts)
    periods = list(salary_periods)
    staff_id = _get(staff, "id")
    staff_name = _get(staff, "full_name")

    alerts: List[ComplianceAlert] = []
    current = current_contract(contracts)
    end = _get(current, "end_date") if current is not None else None
    days_to_end = (end - today).days if end else None

    chain = evaluate_chain_rule(contracts, today)
    if chain.warning_level == "permanent_required":
        alerts.append(ComplianceAlert(
            type="permanent_required", severity="critical", message=chain.message,
            action_required="Next contract MUST be permanent (vast contract)",
            deadline=end, days_remaining=days_to_end,
        ))
    elif chain.warning_level == "critical":
        alerts.append(ComplianceAlert(
            type="chain_rule", severity="warning", message=chain.message,
            action_required="Monitor contract count and duration",
            deadline=end, days_remaining=days_to_end,
        ))

    # ended or terminated contracts need no notice
    if end and _get(current, "status", "active") == "active":
        latest_salary = max(periods, key=lambda p: _get(p, "valid_from"), default=None) if periods else None
        hours = _get(current, "hours_per_week") or _get(staff, "hours_per_week")
        notice = calculate_termination_notice(end, daily_wage(latest_salary, hours), today)
        if notice and notice.should_notify:
            severity, msg, action = _NOTICE_ALERTS[notice.status]
            alerts.append(ComplianceAlert(
                type="termination_notice",
                severity=severity,
                message=msg.format(days_overdue=notice.days_overdue, days=notice.days_until_deadline),
                action_required=action.format(penalty=notice.penalty_amount),
                deadline=notice.deadline_date,
                days_remaining=notice.days_until_deadline,
            ))

    alerts.extend(detect_salary_alerts(periods, today))

    for a in alerts:
        a.staff_id = staff_id
        a.staff_name = staff_name
        a.contract_end_date = end
    return alerts


def sort_alerts(alerts: Iterable[ComplianceAlert]) -> List[ComplianceAlert]:
    """Severity first (critical, warning, info), then fewest days remaining; unknown days last."""
    return sorted(
        alerts,
        key=lambda a: (
            SEVERITY_ORDER.get(a.severity, len(SEVERITY_ORDER)),
            a.days_remaining is None,
            a.days_remaining if a.days_remaining is not None else 0,
        ),
    )
