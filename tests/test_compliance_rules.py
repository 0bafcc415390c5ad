from datetime import date

import pytest

from lms_api.services.compliance import (
    ComplianceAlert,
    add_months,
    build_staff_alerts,
    calculate_termination_notice,
    classify_expiring_contract,
    current_chain,
    daily_wage,
    detect_salary_alerts,
    evaluate_chain_rule,
    months_between,
    sort_alerts,
)

TODAY = date(2025, 1, 1)


def _c(start, end, ctype="fixed", status="ended", **kw):
    return {"start_date": start, "end_date": end, "contract_type": ctype, "status": status, **kw}


# ---------- date helpers ----------

def test_add_months_clamps_to_month_end():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
    assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)


def test_months_between_counts_whole_months():
    assert months_between(date(2024, 1, 1), date(2025, 1, 1)) == 12
    assert months_between(date(2024, 1, 15), date(2024, 2, 14)) == 0
    assert months_between(date(2024, 1, 15), date(2024, 2, 15)) == 1
    assert months_between(date(2025, 1, 1), date(2024, 1, 1)) == 0


# ---------- termination notice ----------

def test_notice_deadline_is_thirty_days_before_end():
    n = calculate_termination_notice(date(2025, 3, 31), today=TODAY)
    assert n.deadline_date == date(2025, 3, 1)
    assert n.days_until_deadline == 59
    assert n.status == "ideal"
    assert n.should_notify is True


@pytest.mark.parametrize("end, status", [
    (date(2025, 6, 30), "early"),
    (date(2025, 4, 1), "ideal"),      # 60 days to deadline
    (date(2025, 4, 2), "early"),      # 61 days
    (date(2025, 3, 3), "ideal"),      # 31 days
    (date(2025, 1, 31), "critical"),
    (date(2025, 2, 15), "urgent"),
    (date(2025, 1, 21), "overdue"),
])
def test_notice_status_bands(end, status):
    assert calculate_termination_notice(end, today=TODAY).status == status


def test_notice_exactly_thirty_days_to_deadline_is_urgent():
    n = calculate_termination_notice(date(2025, 3, 2), today=TODAY)
    assert n.days_until_deadline == 30
    assert n.status == "urgent"


def test_notice_overdue_accrues_penalty():
    n = calculate_termination_notice(date(2025, 1, 21), daily_wage=150, today=TODAY)
    assert n.days_overdue == 10
    assert n.penalty_amount == 1500
    assert n.as_dict()["deadline_date"] == "2024-12-22"


def test_notice_early_does_not_notify_and_has_no_penalty():
    n = calculate_termination_notice(date(2025, 12, 31), daily_wage=150, today=TODAY)
    assert n.status == "early"
    assert n.should_notify is False
    assert n.penalty_amount == 0


def test_notice_permanent_contract_has_no_deadline():
    assert calculate_termination_notice(None, today=TODAY) is None


def test_daily_wage_from_hourly_or_monthly():
    assert daily_wage({"hourly_wage": 20}, 36) == 144
    assert daily_wage({"hourly_wage": 20}) == 144
    assert daily_wage({"monthly_wage": 3250}) == 150
    assert daily_wage(None) == 0


# ---------- chain rule ----------

def test_chain_empty_is_safe():
    st = evaluate_chain_rule([], TODAY)
    assert st.total_contracts == 0
    assert st.warning_level == "safe"
    assert st.requires_permanent is False


def test_chain_three_contracts_requires_permanent():
    contracts = [
        _c(date(2023, 1, 1), date(2023, 6, 30)),
        _c(date(2023, 7, 1), date(2023, 12, 31)),
        _c(date(2024, 1, 1), date(2024, 6, 30), status="active"),
    ]
    st = evaluate_chain_rule(contracts, TODAY)
    assert st.total_contracts == 3
    assert st.total_months == 18
    assert st.requires_permanent is True
    assert st.warning_level == "permanent_required"


def test_chain_two_contracts_is_critical():
    contracts = [
        _c(date(2024, 1, 1), date(2024, 6, 30)),
        _c(date(2024, 7, 1), date(2024, 12, 31), status="active"),
    ]
    st = evaluate_chain_rule(contracts, TODAY)
    assert st.total_contracts == 2
    assert st.total_months == 12
    assert st.warning_level == "critical"
    assert st.requires_permanent is False


def test_chain_thirty_six_months_requires_permanent():
    st = evaluate_chain_rule([_c(date(2022, 1, 1), date(2024, 12, 31), status="active")], TODAY)
    assert st.total_months == 36
    assert st.warning_level == "permanent_required"


def test_chain_thirty_months_is_critical():
    st = evaluate_chain_rule([_c(date(2022, 1, 1), date(2024, 7, 31), status="active")], TODAY)
    assert st.total_months == 31
    assert st.warning_level == "critical"


def test_chain_single_long_contract_is_watched():
    st = evaluate_chain_rule([_c(date(2023, 1, 1), date(2024, 12, 31), status="active")], TODAY)
    assert st.total_months == 24
    assert st.warning_level == "warning"


def test_chain_single_short_contract_is_safe():
    st = evaluate_chain_rule([_c(date(2024, 6, 1), date(2025, 5, 31), status="active")], TODAY)
    assert st.total_months == 12
    assert st.warning_level == "safe"


def test_chain_open_fixed_contract_counts_until_today():
    st = evaluate_chain_rule([_c(date(2024, 1, 1), None, status="active")], TODAY)
    assert st.total_months == 12


def test_chain_gap_over_six_months_resets():
    contracts = [
        _c(date(2020, 1, 1), date(2020, 12, 31)),
        _c(date(2021, 9, 1), date(2022, 8, 31)),
        _c(date(2022, 9, 1), date(2023, 2, 28), status="active"),
    ]
    assert len(current_chain(contracts)) == 2
    st = evaluate_chain_rule(contracts, TODAY)
    assert st.total_contracts == 2
    assert st.chain_start == date(2021, 9, 1)


def test_chain_superseded_contracts_are_ignored():
    contracts = [
        _c(date(2023, 1, 1), date(2023, 6, 30), status="superseded"),
        _c(date(2023, 7, 1), date(2023, 12, 31)),
    ]
    assert evaluate_chain_rule(contracts, TODAY).total_contracts == 1


def test_chain_with_permanent_contract_is_safe():
    contracts = [
        _c(date(2022, 1, 1), date(2022, 12, 31)),
        _c(date(2023, 1, 1), date(2023, 12, 31)),
        _c(date(2024, 1, 1), None, ctype="permanent", status="active"),
    ]
    st = evaluate_chain_rule(contracts, TODAY)
    assert st.warning_level == "safe"
    assert st.requires_permanent is False


# ---------- salary alerts ----------

def test_salary_review_due_after_twelve_months():
    alerts = detect_salary_alerts([{"valid_from": date(2024, 1, 1), "hourly_wage": 15}], date(2025, 1, 15))
    assert [a.type for a in alerts] == ["salary_review"]
    assert alerts[0].severity == "warning"
    assert alerts[0].months == 12


def test_salary_review_critical_after_eighteen_months():
    alerts = detect_salary_alerts([{"valid_from": date(2024, 1, 1), "hourly_wage": 15}], date(2025, 7, 1))
    assert alerts[0].severity == "critical"


def test_salary_recent_change_no_alert():
    assert detect_salary_alerts([{"valid_from": date(2024, 3, 1), "hourly_wage": 15}], TODAY) == []


def test_salary_stagnation_when_wage_not_increased():
    periods = [
        {"valid_from": date(2023, 1, 1), "hourly_wage": 15},
        {"valid_from": date(2023, 12, 1), "hourly_wage": 15},
    ]
    types = {a.type for a in detect_salary_alerts(periods, TODAY)}
    assert types == {"salary_review", "salary_stagnation"}


def test_salary_raise_is_not_stagnation():
    periods = [
        {"valid_from": date(2023, 1, 1), "hourly_wage": 15},
        {"valid_from": date(2023, 12, 1), "hourly_wage": 16},
    ]
    types = {a.type for a in detect_salary_alerts(periods, TODAY)}
    assert types == {"salary_review"}


def test_salary_monthly_only_raise_is_not_stagnation():
    periods = [
        {"valid_from": date(2023, 1, 1), "hourly_wage": None, "monthly_wage": 2400},
        {"valid_from": date(2023, 11, 1), "hourly_wage": None, "monthly_wage": 2700},
    ]
    types = {a.type for a in detect_salary_alerts(periods, TODAY)}
    assert types == {"salary_review"}


def test_salary_monthly_only_flat_wage_is_stagnation():
    periods = [
        {"valid_from": date(2023, 1, 1), "monthly_wage": 2400},
        {"valid_from": date(2023, 11, 1), "monthly_wage": 2400},
    ]
    types = {a.type for a in detect_salary_alerts(periods, TODAY)}
    assert types == {"salary_review", "salary_stagnation"}


def test_salary_missing_wage_on_one_side_skips_stagnation():
    periods = [
        {"valid_from": date(2023, 1, 1), "hourly_wage": 15},
        {"valid_from": date(2023, 11, 1), "monthly_wage": 2700},
    ]
    types = {a.type for a in detect_salary_alerts(periods, TODAY)}
    assert types == {"salary_review"}


def test_salary_empty_history():
    assert detect_salary_alerts([], TODAY) == []


# ---------- expiring contracts ----------

def test_expiring_missed_notice_is_legal_risk():
    e = classify_expiring_contract(_c(date(2024, 1, 1), date(2025, 1, 20), status="active"), TODAY)
    assert e.days_until_expiry == 19
    assert e.missed_termination_notice is True
    assert e.compliance_type == "legal_risk"
    assert e.warning_level == "critical"
    assert e.calendar_event == "overdue"


def test_expiring_notice_window():
    e = classify_expiring_contract(_c(date(2024, 6, 1), date(2025, 2, 10), status="active"), TODAY)
    assert e.notice_deadline_days == 10
    assert e.needs_termination_notice is True
    assert e.compliance_type == "termination_notice"
    assert e.action_deadline == date(2025, 1, 11)


def test_expiring_long_contract_gets_salary_review():
    e = classify_expiring_contract(_c(date(2024, 1, 1), date(2025, 2, 28), status="active"), TODAY)
    assert e.duration_months == 13
    assert e.compliance_type == "salary_review"
    assert e.warning_level == "upcoming"


def test_expiring_plain_renewal():
    e = classify_expiring_contract(_c(date(2024, 10, 1), date(2025, 3, 31), status="active"), TODAY)
    assert e.compliance_type == "renewal"
    assert e.warning_level == "upcoming"


def test_expiring_outside_window_or_permanent():
    assert classify_expiring_contract(_c(date(2024, 1, 1), date(2025, 5, 1)), TODAY) is None
    assert classify_expiring_contract(_c(date(2024, 1, 1), date(2024, 12, 1)), TODAY) is None
    assert classify_expiring_contract(_c(date(2024, 1, 1), None, ctype="permanent"), TODAY) is None


# ---------- aggregation ----------

def test_build_staff_alerts_combines_rules():
    staff = {"id": 7, "full_name": "Anna Jansen", "hours_per_week": 36}
    contracts = [
        _c(date(2022, 1, 1), date(2022, 12, 31)),
        _c(date(2023, 1, 1), date(2023, 12, 31)),
        _c(date(2024, 1, 1), date(2025, 1, 21), status="active"),
    ]
    periods = [{"valid_from": date(2024, 1, 1), "hourly_wage": 20}]

    alerts = sort_alerts(build_staff_alerts(staff, contracts, periods, TODAY))

    assert [a.type for a in alerts] == ["termination_notice", "permanent_required", "salary_review"]
    notice = alerts[0]
    assert notice.severity == "critical"
    assert notice.days_remaining == -10
    assert "1440.00" in notice.action_required
    assert all(a.staff_id == 7 and a.contract_end_date == date(2025, 1, 21) for a in alerts)


def test_build_staff_alerts_quiet_for_permanent_staff():
    staff = {"id": 1, "full_name": "Bo"}
    contracts = [_c(date(2024, 6, 1), None, ctype="permanent", status="active")]
    periods = [{"valid_from": date(2024, 6, 1), "hourly_wage": 18}]
    assert build_staff_alerts(staff, contracts, periods, TODAY) == []


def test_build_staff_alerts_no_notice_for_terminated_contract():
    staff = {"id": 3, "full_name": "Cas", "hours_per_week": 36}
    contracts = [_c(date(2023, 1, 1), date(2024, 3, 1), status="terminated")]
    periods = [{"valid_from": date(2024, 6, 1), "hourly_wage": 18}]

    alerts = build_staff_alerts(staff, contracts, periods, TODAY)

    assert [a.type for a in alerts] == []


def test_sort_alerts_severity_then_days():
    a = ComplianceAlert(type="x", severity="info", message="", days_remaining=1)
    b = ComplianceAlert(type="x", severity="critical", message="", days_remaining=None)
    c = ComplianceAlert(type="x", severity="critical", message="", days_remaining=5)
    d = ComplianceAlert(type="x", severity="warning", message="", days_remaining=-3)
    assert sort_alerts([a, b, c, d]) == [c, b, d, a]
