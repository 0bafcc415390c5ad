import copy
import os
from datetime import date, timedelta

import pytest
from flask_jwt_extended import create_access_token

from lms_api import create_app
from lms_api.extensions import db
from lms_api.models.contract import Contract
from lms_api.models.salary import SalaryPeriod
from lms_api.models.staff import Staff
from lms_api.models.user import User
from lms_api.services.employes_client import EmployesAPIError
from lms_api.services.reports import XLSX_MIMETYPE


@pytest.fixture(scope="function")
def app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    with app.app_context():
        db.create_all()
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_headers(app):
    token = create_access_token(identity="1", additional_claims={"roles": ["admin"]})
    return {"Authorization": f"Bearer {token}"}


def _staff(**kw):
    s = Staff(full_name=kw.pop("full_name", "Anna Jansen"), **kw)
    db.session.add(s)
    db.session.commit()
    return s


# ---------- health / auth ----------

def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.get_json()["data"]["database"] == "ok"


def test_login_and_me(client):
    u = User(email="hr@example.nl", full_name="HR", status="active")
    u.set_password("pw")
    db.session.add(u)
    db.session.commit()

    bad = client.post("/api/v1/auth/login", json={"email": "hr@example.nl", "password": "nope"})
    assert bad.status_code == 401

    r = client.post("/api/v1/auth/login", json={"email": "HR@example.nl", "password": "pw"})
    assert r.status_code == 200
    access = r.get_json()["access"]

    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {access}"})
    assert me.status_code == 200
    assert me.get_json()["data"]["email"] == "hr@example.nl"


def test_admin_provisions_user_with_role(app, client, admin_headers):
    app.test_cli_runner().invoke(args=["seed-auth"])
    s = _staff(email="anna@example.nl")

    r = client.post("/api/v1/auth/users", json={
        "email": "Manager@Example.nl", "password": "pw", "full_name": "Mia Manager",
        "roles": ["manager"], "staff_id": s.id,
    }, headers=admin_headers)
    assert r.status_code == 201
    assert r.get_json()["data"]["roles"] == ["manager"]
    assert r.get_json()["data"]["staff_id"] == s.id

    bad = client.post("/api/v1/auth/users", json={"email": "x@example.nl", "password": "pw", "roles": ["owner"]},
                      headers=admin_headers)
    assert bad.status_code == 422

    login = client.post("/api/v1/auth/login", json={"email": "manager@example.nl", "password": "pw"}).get_json()
    h = {"Authorization": f"Bearer {login['access']}"}
    assert client.get("/api/v1/staff", headers=h).status_code == 200
    assert client.post("/api/v1/staff", json={"full_name": "X"}, headers=h).status_code == 403
    assert client.post("/api/v1/auth/grant-role", json={"email": "manager@example.nl", "role": "hr"},
                       headers=h).status_code == 403

    g = client.post("/api/v1/auth/grant-role", json={"email": "manager@example.nl", "role": "hr"},
                    headers=admin_headers)
    assert g.get_json()["data"]["granted"] is True
    # perms are re-read from the database, so the old token now passes
    assert client.post("/api/v1/staff", json={"full_name": "X"}, headers=h).status_code == 201


def test_missing_token_is_401(client):
    assert client.get("/api/v1/staff").status_code == 401


def test_permission_claims_are_enforced(client):
    u = User(email="viewer@example.nl", full_name="Viewer", status="active")
    u.set_password("pw")
    db.session.add(u)
    db.session.commit()
    token = create_access_token(identity=str(u.id), additional_claims={"roles": [], "perms": ["staff.read"]})
    h = {"Authorization": f"Bearer {token}"}

    assert client.get("/api/v1/staff", headers=h).status_code == 200
    assert client.post("/api/v1/staff", json={"full_name": "X"}, headers=h).status_code == 403


# ---------- staff ----------

def test_staff_crud(client, admin_headers):
    r = client.post("/api/v1/staff", json={
        "full_name": "Anna Jansen", "email": "Anna@Example.nl", "start_date": "2024-01-01",
        "hours_per_week": 32, "location": "Amsterdam",
    }, headers=admin_headers)
    assert r.status_code == 201
    sid = r.get_json()["data"]["id"]
    assert r.get_json()["data"]["email"] == "anna@example.nl"

    dup = client.post("/api/v1/staff", json={"full_name": "Other", "email": "anna@example.nl"}, headers=admin_headers)
    assert dup.status_code == 409

    bad = client.post("/api/v1/staff", json={"full_name": "Y", "hours_per_week": "lots"}, headers=admin_headers)
    assert bad.status_code == 422

    lst = client.get("/api/v1/staff?q=jans", headers=admin_headers).get_json()
    assert lst["meta"]["total"] == 1

    p = client.patch(f"/api/v1/staff/{sid}", json={"role_title": "Pedagogisch medewerker"}, headers=admin_headers)
    assert p.get_json()["data"]["role_title"] == "Pedagogisch medewerker"

    d = client.delete(f"/api/v1/staff/{sid}", headers=admin_headers)
    assert d.get_json()["data"]["status"] == "inactive"
    assert client.get("/api/v1/staff?status=active", headers=admin_headers).get_json()["meta"]["total"] == 0

    assert client.get("/api/v1/staff/999", headers=admin_headers).status_code == 404


def test_staff_journey(client, admin_headers):
    s = _staff(start_date=date(2024, 1, 1), hours_per_week=36)
    db.session.add(Contract(staff_id=s.id, start_date=date(2024, 1, 1), end_date=date(2025, 1, 21),
                            contract_type="fixed", status="active"))
    db.session.add(SalaryPeriod(staff_id=s.id, valid_from=date(2024, 1, 1), hourly_wage=20))
    db.session.commit()

    r = client.get(f"/api/v1/staff/{s.id}/journey?on=2025-01-01", headers=admin_headers)
    data = r.get_json()["data"]
    assert r.status_code == 200
    assert data["termination_notice"]["status"] == "overdue"
    assert data["termination_notice"]["penalty_amount"] == 1440.0
    assert data["chain_rule"]["total_contracts"] == 1
    assert data["salary_progression"][0]["hourly_wage"] == 20.0
    assert data["reviews"]["is_overdue"] is True


# ---------- contracts / salaries ----------

def test_contract_lifecycle(client, admin_headers):
    s = _staff()
    r = client.post("/api/v1/contracts", json={
        "staff_id": s.id, "start_date": "2024-01-01", "end_date": "2024-12-31",
    }, headers=admin_headers)
    assert r.status_code == 201
    cid = r.get_json()["data"]["id"]
    assert r.get_json()["data"]["contract_type"] == "fixed"
    assert r.get_json()["meta"]["chain_rule"]["total_contracts"] == 1

    bad = client.post(f"/api/v1/contracts/{cid}/renew", json={"end_date": "2024-06-01"}, headers=admin_headers)
    assert bad.status_code == 422
    assert bad.get_json()["error"]["code"] == "INVALID_DATES"

    rn = client.post(f"/api/v1/contracts/{cid}/renew", json={"end_date": "2025-12-31"}, headers=admin_headers)
    assert rn.status_code == 201
    body = rn.get_json()["data"]
    assert body["previous"]["status"] == "ended"
    assert body["contract"]["start_date"] == "2025-01-01"
    assert body["contract"]["chain_sequence"] == 2
    assert body["chain_rule"]["warning_level"] == "critical"

    again = client.post(f"/api/v1/contracts/{cid}/renew", json={"end_date": "2026-12-31"}, headers=admin_headers)
    assert again.status_code == 409

    new_id = body["contract"]["id"]
    t = client.post(f"/api/v1/contracts/{new_id}/terminate", json={"date": "2025-06-30", "reason": "moved"},
                    headers=admin_headers)
    assert t.get_json()["data"]["status"] == "terminated"
    assert t.get_json()["data"]["end_date"] == "2025-06-30"

    lst = client.get(f"/api/v1/contracts?staff_id={s.id}&status=terminated", headers=admin_headers).get_json()
    assert lst["meta"]["total"] == 1


def test_contract_filters_validate(client, admin_headers):
    assert client.get("/api/v1/contracts?type=freelance", headers=admin_headers).status_code == 422
    assert client.get("/api/v1/contracts?staff_id=abc", headers=admin_headers).status_code == 422


def test_contracts_expiring_within(client, admin_headers):
    s = _staff()
    today = date.today()
    db.session.add_all([
        Contract(staff_id=s.id, start_date=today - timedelta(days=300), end_date=today + timedelta(days=10),
                 contract_type="fixed", status="active"),
        Contract(staff_id=s.id, start_date=today - timedelta(days=900), end_date=today - timedelta(days=301),
                 contract_type="fixed", status="ended"),
    ])
    db.session.commit()
    lst = client.get("/api/v1/contracts?expiring_within=30", headers=admin_headers).get_json()
    assert lst["meta"]["total"] == 1
    assert lst["data"][0]["notice_status"] == "overdue"


def test_salary_history(client, admin_headers):
    s = _staff(hours_per_week=18)
    r1 = client.post(f"/api/v1/staff/{s.id}/salaries", json={"valid_from": "2024-01-01", "hourly_wage": 20,
                                                            "monthly_wage": 1700}, headers=admin_headers)
    assert r1.status_code == 201
    r2 = client.post(f"/api/v1/staff/{s.id}/salaries", json={"valid_from": "2023-01-01", "hourly_wage": 21},
                     headers=admin_headers)
    assert r2.status_code == 422
    client.post(f"/api/v1/staff/{s.id}/salaries", json={"valid_from": "2025-01-01", "hourly_wage": 22,
                                                       "monthly_wage": 1700}, headers=admin_headers)

    body = client.get(f"/api/v1/staff/{s.id}/salaries", headers=admin_headers).get_json()
    assert [p["valid_from"] for p in body["data"]] == ["2025-01-01", "2024-01-01"]
    assert body["data"][1]["valid_to"] == "2024-12-31"
    assert body["meta"]["progression"][1]["increase_percent"] == 10.0
    assert body["meta"]["cao_check"]["trede"] == 10


def test_cao_endpoints(client, admin_headers):
    r = client.get("/api/v1/cao/salary?scale=6&trede=10&hours=18&km=12", headers=admin_headers).get_json()["data"]
    assert r["gross_monthly"] == 1700.0
    assert r["travel_allowance"] > 0
    assert client.get("/api/v1/cao/salary?scale=6&trede=25", headers=admin_headers).status_code == 422
    d = client.get("/api/v1/cao/detect?monthly_salary=3400", headers=admin_headers).get_json()["data"]
    assert d["status"] == "compliant"
    assert client.get("/api/v1/cao/detect", headers=admin_headers).status_code == 422


# ---------- compliance ----------

def _chain_staff():
    s = _staff(hours_per_week=36, start_date=date(2022, 1, 1))
    db.session.add_all([
        Contract(staff_id=s.id, start_date=date(2022, 1, 1), end_date=date(2022, 12, 31), status="ended"),
        Contract(staff_id=s.id, start_date=date(2023, 1, 1), end_date=date(2023, 12, 31), status="ended"),
        Contract(staff_id=s.id, start_date=date(2024, 1, 1), end_date=date(2025, 1, 21), status="active"),
        SalaryPeriod(staff_id=s.id, valid_from=date(2024, 1, 1), hourly_wage=20),
    ])
    db.session.commit()
    return s


def test_compliance_alerts(client, admin_headers):
    _chain_staff()
    _staff(full_name="Quiet Permanent", email="q@example.nl")

    body = client.get("/api/v1/compliance/alerts?on=2025-01-01", headers=admin_headers).get_json()
    assert [a["type"] for a in body["data"]] == ["termination_notice", "permanent_required", "salary_review"]
    assert body["meta"]["summary"]["critical"] == 2

    crit = client.get("/api/v1/compliance/alerts?on=2025-01-01&severity=warning", headers=admin_headers).get_json()
    assert [a["type"] for a in crit["data"]] == ["salary_review"]

    assert client.get("/api/v1/compliance/alerts?on=someday", headers=admin_headers).status_code == 422


def test_compliance_views(client, admin_headers):
    _chain_staff()
    h = admin_headers

    notices = client.get("/api/v1/compliance/termination-notices?on=2025-01-01", headers=h).get_json()
    assert notices["data"][0]["status"] == "overdue"
    assert notices["data"][0]["days_overdue"] == 10

    chain = client.get("/api/v1/compliance/chain-rule?on=2025-01-01", headers=h).get_json()
    assert chain["data"][0]["warning_level"] == "permanent_required"

    exp = client.get("/api/v1/compliance/expiring-contracts?on=2025-01-01", headers=h).get_json()
    assert exp["data"][0]["compliance_type"] == "legal_risk"
    assert exp["meta"]["by_type"] == {"legal_risk": 1}

    sal = client.get("/api/v1/compliance/salary-alerts?on=2025-01-01", headers=h).get_json()
    assert sal["data"][0]["type"] == "salary_review"


def test_compliance_export_xlsx(client, admin_headers):
    _chain_staff()
    r = client.get("/api/v1/compliance/export.xlsx?on=2025-01-01", headers=admin_headers)
    assert r.status_code == 200
    assert r.mimetype == XLSX_MIMETYPE
    assert r.data[:2] == b"PK"


# ---------- reviews ----------

def test_review_flow(client, admin_headers):
    s = _staff(start_date=date(2024, 1, 1))
    h = admin_headers

    over = client.get("/api/v1/reviews/overdue?on=2024-08-01", headers=h).get_json()
    assert [r["staff_id"] for r in over["data"]] == [s.id]

    r = client.post("/api/v1/reviews", json={"staff_id": s.id, "review_type": "six_month",
                                             "scheduled_date": "2024-08-15"}, headers=h)
    assert r.status_code == 201
    rid = r.get_json()["data"]["id"]

    # scheduled reviews drop off the overdue list
    assert client.get("/api/v1/reviews/overdue?on=2024-08-01", headers=h).get_json()["data"] == []

    bad = client.post(f"/api/v1/reviews/{rid}/complete", json={"overall_score": 7}, headers=h)
    assert bad.status_code == 422
    done = client.post(f"/api/v1/reviews/{rid}/complete", json={"overall_score": 4.5, "review_date": "2024-08-15"},
                       headers=h)
    assert done.get_json()["data"]["status"] == "completed"
    assert client.post(f"/api/v1/reviews/{rid}/complete", json={}, headers=h).status_code == 409

    lst = client.get(f"/api/v1/reviews?staff_id={s.id}&status=completed", headers=h).get_json()
    assert lst["meta"]["total"] == 1


# ---------- employes sync ----------

class FakeClient:
    def __init__(self, fail_detail=False):
        self.fail_detail = fail_detail

    def list_employees(self):
        return [{"id": "e1"}]

    def get_employee(self, employee_id):
        if self.fail_detail:
            raise EmployesAPIError("GET /employees/e1 returned 500", 500)
        return copy.deepcopy({"id": "e1", "first_name": "Anna", "surname": "Jansen", "status": "active"})

    def get_employments(self, employee_id):
        return []

    def test_connection(self):
        return {"connected": True, "total_employees": 1}


def test_employes_sync_actions(client, admin_headers, monkeypatch):
    import lms_api.blueprints.employes_sync as bp_mod

    monkeypatch.setattr(bp_mod, "_client", lambda: FakeClient())
    h = admin_headers

    bad = client.post("/api/v1/employes/sync", json={"action": "drop_tables"}, headers=h)
    assert bad.status_code == 422
    assert bad.get_json()["error"]["code"] == "UNKNOWN_ACTION"

    conn = client.post("/api/v1/employes/sync", json={"action": "test_connection"}, headers=h)
    assert conn.get_json()["data"]["connected"] is True

    full = client.post("/api/v1/employes/sync", json={"action": "full_sync"}, headers=h)
    assert full.status_code == 200
    assert full.get_json()["data"]["status"] == "completed"

    sessions = client.post("/api/v1/employes/sync", json={"action": "get_sync_sessions"}, headers=h).get_json()
    assert len(sessions["data"]) == 1

    stats = client.post("/api/v1/employes/sync", json={"action": "get_sync_statistics"}, headers=h).get_json()
    assert stats["data"]["raw_records"] == 1


def test_employes_full_sync_partial_failure_is_207(client, admin_headers, monkeypatch):
    import lms_api.blueprints.employes_sync as bp_mod

    monkeypatch.setattr(bp_mod, "_client", lambda: FakeClient(fail_detail=True))
    r = client.post("/api/v1/employes/sync", json={"action": "full_sync"}, headers=admin_headers)
    assert r.status_code == 207
    assert r.get_json()["data"]["status"] == "completed_with_errors"


def test_employes_not_configured(client, admin_headers):
    r = client.post("/api/v1/employes/sync", json={"action": "test_connection"}, headers=admin_headers)
    assert r.status_code == 503


# ---------- queue ----------

def test_queue_endpoints(client, admin_headers):
    h = admin_headers
    assert client.post("/api/v1/queue/jobs", json={"job_type": "bogus"}, headers=h).status_code == 422

    r = client.post("/api/v1/queue/jobs", json={"job_type": "timeline_processing",
                                                "payload": {"employee_id": "e1"}}, headers=h)
    assert r.status_code == 201
    assert r.get_json()["data"]["status"] == "pending"

    p = client.post("/api/v1/queue/process", json={"job_type": "timeline_processing"}, headers=h).get_json()
    assert p["data"]["status"] == "completed"

    empty = client.post("/api/v1/queue/process", json={}, headers=h).get_json()
    assert empty["data"]["processed"] is False

    lst = client.get("/api/v1/queue/jobs?status=completed", headers=h).get_json()
    assert lst["meta"]["total"] == 1


def test_queue_failed_job_reports_failure_envelope(client, admin_headers):
    h = admin_headers
    client.post("/api/v1/queue/jobs", json={"job_type": "timeline_processing", "max_attempts": 2}, headers=h)

    retry = client.post("/api/v1/queue/process", json={}, headers=h)
    assert retry.status_code == 207
    body = retry.get_json()
    assert body["success"] is False
    assert body["error"]["code"] == "JOB_WILL_RETRY"
    assert body["error"]["detail"]["will_retry"] is True

    failed = client.post("/api/v1/queue/process", json={}, headers=h)
    assert failed.status_code == 500
    body = failed.get_json()
    assert body["success"] is False
    assert body["error"]["code"] == "JOB_FAILED"
    assert "employee_id" in body["error"]["message"]
    assert body["error"]["detail"]["status"] == "failed"


# ---------- CLI ----------

def test_seed_auth_then_login_carries_perms(app, client):
    runner = app.test_cli_runner()
    res = runner.invoke(args=["seed-auth", "--admin-email", "boss@example.nl", "--password", "pw"])
    assert res.exit_code == 0
    assert "boss@example.nl (created)" in res.output

    again = runner.invoke(args=["seed-auth", "--admin-email", "boss@example.nl", "--password", "pw"])
    assert "(existing)" in again.output
    assert "0 role grants" in again.output

    r = client.post("/api/v1/auth/login", json={"email": "boss@example.nl", "password": "pw"})
    assert r.status_code == 200
    assert r.get_json()["user"]["roles"] == ["admin"]


def test_compliance_report_cli(app):
    _chain_staff()
    res = app.test_cli_runner().invoke(args=["compliance", "report", "--date", "2025-01-01"])
    assert res.exit_code == 0
    assert "3 alerts (2 critical, 1 warning, 0 info)" in res.output
