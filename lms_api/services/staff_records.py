from __future__ import annotations
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

from lms_api.common.errors import APIError
from lms_api.extensions import db
from lms_api.models.contract import Contract, CONTRACT_TYPES
from lms_api.models.salary import SalaryPeriod
from lms_api.models.staff import Staff
from lms_api.services.compliance import evaluate_chain_rule


def _check_type(contract_type: str):
    if contract_type not in CONTRACT_TYPES:
        raise APIError("INVALID_CONTRACT_TYPE", f"contract_type must be one of {list(CONTRACT_TYPES)}", 422)


def _check_dates(start: date, end: Optional[date]):
    if end and end < start:
        raise APIError("INVALID_DATES", "end_date must be on or after start_date", 422)


def next_chain_sequence(staff_id: int) -> int:
    n = (
        Contract.query
        .filter(Contract.staff_id == staff_id, Contract.status != "superseded")
        .count()
    )
    return n + 1


def create_contract(staff: Staff, start_date: date, end_date: Optional[date] = None,
                    contract_type: str = "fixed", hours_per_week=None,
                    source: str = "manual", notes: Optional[str] = None) -> Contract:
    """
    Adds a contract to the staff member's chain. Chain-rule violations are
    reported by the compliance endpoints, not rejected here.
    """
    _check_type(contract_type)
    _check_dates(start_date, end_date)
    if contract_type == "permanent" and end_date:
        raise APIError("INVALID_DATES", "permanent contracts have no end_date", 422)

    c = Contract(
        staff_id=staff.id,
        start_date=start_date,
        end_date=end_date,
        contract_type=contract_type,
        status="active",
        chain_sequence=next_chain_sequence(staff.id),
        hours_per_week=hours_per_week if hours_per_week is not None else staff.hours_per_week,
        source=source,
        notes=notes,
    )
    db.session.add(c)
    db.session.flush()
    return c


def renew_contract(contract: Contract, new_end_date: Optional[date], contract_type: str = "fixed",
                   hours_per_week=None, today: Optional[date] = None):
    """
    Closes `contract` and opens the next one the day after it ends.
    Returns (new_contract, chain_status) where chain_status reflects the chain
    *including* the new contract.
    """
    if contract.status != "active":
        raise APIError("CONTRACT_NOT_ACTIVE", "only active contracts can be renewed", 409)
    if not contract.end_date:
        raise APIError("CONTRACT_PERMANENT", "open-ended contracts cannot be renewed", 409)

    _check_type(contract_type)
    _check_dates(contract.end_date + timedelta(days=1), new_end_date)

    contract.status = "ended"
    new_contract = create_contract(
        contract.staff,
        start_date=contract.end_date + timedelta(days=1),
        end_date=new_end_date,
        contract_type=contract_type,
        hours_per_week=hours_per_week if hours_per_week is not None else contract.hours_per_week,
    )
    chain = evaluate_chain_rule(Contract.query.filter_by(staff_id=contract.staff_id).all(), today)
    return new_contract, chain


def terminate_contract(contract: Contract, on_date: date, reason: Optional[str] = None) -> Contract:
    if contract.status in ("terminated", "superseded"):
        raise APIError("CONTRACT_CLOSED", f"contract already {contract.status}", 409)
    if on_date < contract.start_date:
        raise APIError("INVALID_DATES", "termination date precedes contract start", 422)
    if contract.end_date and on_date > contract.end_date:
        raise APIError("INVALID_DATES", "termination date is after contract end", 422)

    contract.end_date = on_date
    contract.status = "terminated"
    if reason:
        contract.notes = ((contract.notes + "\n") if contract.notes else "") + f"Terminated: {reason}"
    return contract


def open_salary_period(staff_id: int) -> Optional[SalaryPeriod]:
    return (
        SalaryPeriod.query
        .filter(SalaryPeriod.staff_id == staff_id, SalaryPeriod.valid_to.is_(None))
        .order_by(SalaryPeriod.valid_from.desc())
        .first()
    )


def record_salary_change(staff: Staff, valid_from: date, hourly_wage=None, monthly_wage=None,
                         yearly_wage=None, cao_scale=None, cao_trede=None,
                         reason: Optional[str] = None, source: str = "manual") -> SalaryPeriod:
    """Supersedes the open salary period (valid_to = day before) and opens a new one."""
    if hourly_wage is None and monthly_wage is None and yearly_wage is None:
        raise APIError("SALARY_REQUIRED", "one of hourly_wage, monthly_wage, yearly_wage is required", 422)

    current = open_salary_period(staff.id)
    if current:
        if valid_from <= current.valid_from:
            raise APIError("SALARY_OVERLAP", "valid_from must be after the current period's valid_from", 422)
        current.valid_to = valid_from - timedelta(days=1)

    if monthly_wage is not None and yearly_wage is None:
        yearly_wage = Decimal(str(monthly_wage)) * 12

    p = SalaryPeriod(
        staff_id=staff.id,
        valid_from=valid_from,
        hourly_wage=hourly_wage,
        monthly_wage=monthly_wage,
        yearly_wage=yearly_wage,
        cao_scale=cao_scale,
        cao_trede=cao_trede,
        reason=reason or ("hire" if current is None else "raise"),
        source=source,
    )
    db.session.add(p)
    db.session.flush()
    return p


def salary_progression(periods) -> List[dict]:
    """Oldest-first wage changes with percentage increase on the hourly wage."""
    ordered = sorted(periods, key=lambda p: p.valid_from)
    out = []
    prev = None
    for p in ordered:
        pct = 0.0
        if prev is not None and prev.hourly_wage and p.hourly_wage is not None:
            pct = round((float(p.hourly_wage) - float(prev.hourly_wage)) / float(prev.hourly_wage) * 100, 2)
        out.append({
            "valid_from": p.valid_from.isoformat(),
            "valid_to": p.valid_to.isoformat() if p.valid_to else None,
            "hourly_wage": float(p.hourly_wage) if p.hourly_wage is not None else None,
            "monthly_wage": float(p.monthly_wage) if p.monthly_wage is not None else None,
            "yearly_wage": float(p.yearly_wage) if p.yearly_wage is not None else None,
            "increase_percent": pct,
            "reason": p.reason or ("hire" if prev is None else "raise"),
        })
        prev = p
    return out
