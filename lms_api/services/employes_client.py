"""
Thin REST client for the Employes.nl payroll API (v4).

Employees:   GET {base}/{company}/employees?page=N&per_page=100
Details:     GET {base}/{company}/employees/{id}
Employments: GET {base}/{company}/employees/{id}/employments
"""
from __future__ import annotations

import logging
from typing import Any, List, Optional

import requests
from flask import current_app

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://connect.employes.nl/v4"
PER_PAGE = 100


class EmployesAPIError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class EmployesClient:
    def __init__(self, api_key: str, company_id: str, base_url: str = DEFAULT_BASE_URL,
                 timeout: float = 30, session: Optional[requests.Session] = None):
        if not api_key:
            raise EmployesAPIError("EMPLOYES_API_KEY not set")
        if not company_id:
            raise EmployesAPIError("EMPLOYES_COMPANY_ID not set")
        self.base_url = base_url.rstrip("/")
        self.company_id = company_id
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
        })

    @classmethod
    def from_app(cls, app=None, session=None) -> "EmployesClient":
        cfg = (app or current_app).config
        return cls(
            api_key=cfg.get("EMPLOYES_API_KEY"),
            company_id=cfg.get("EMPLOYES_COMPANY_ID"),
            base_url=cfg.get("EMPLOYES_BASE_URL") or DEFAULT_BASE_URL,
            timeout=float(cfg.get("EMPLOYES_TIMEOUT") or 30),
            session=session,
        )

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{self.company_id}{path}"

    def _get(self, path: str, params: Optional[dict] = None) -> Any:
        url = self._url(path)
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise EmployesAPIError(f"GET {path} failed: {e}") from e

        if resp.status_code >= 400:
            text = resp.text or ""
            log.error("Employes API %s -> %s: %s", path, resp.status_code, text[:200])
            raise EmployesAPIError(f"GET {path} returned {resp.status_code}", resp.status_code, text)

        if not (resp.text or "").strip():
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise EmployesAPIError(f"Invalid JSON from {path}", resp.status_code, resp.text[:200]) from e

    def list_employees(self) -> List[dict]:
        out: List[dict] = []
        page, pages = 1, 1
        while page <= pages:
            body = self._get("/employees", params={"page": page, "per_page": PER_PAGE}) or {}
            out.extend(body.get("data") or [])
            if page == 1:
                pages = int(body.get("pages") or 1)
                log.info("Employes: %s employees across %s pages", body.get("total"), pages)
            page += 1
        return out

    def get_employee(self, employee_id: str) -> dict:
        return self._get(f"/employees/{employee_id}") or {}

    def get_employments(self, employee_id: str) -> List[dict]:
        body = self._get(f"/employees/{employee_id}/employments")
        if isinstance(body, dict):
            body = body.get("data")
        return body if isinstance(body, list) else []

    def test_connection(self) -> dict:
        body = self._get("/employees", params={"page": 1, "per_page": 1}) or {}
        return {"connected": True, "total_employees": body.get("total")}
