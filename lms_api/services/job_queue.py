"""
Database-backed processing queue.

Jobs are claimed oldest-first per job_type. On PostgreSQL the claim uses
`FOR UPDATE SKIP LOCKED` so concurrent workers never take the same row;
SQLite (tests, local dev) runs single-worker.
"""
from __future__ import annotations

import logging
import time
import traceback
from datetime import datetime
from typing import Callable, Dict, Optional

from flask import current_app

from lms_api.extensions import db
from lms_api.models.processing_job import ProcessingJob

log = logging.getLogger(__name__)

JOB_TYPES = ("timeline_processing", "employes_sync")


def _handle_timeline(payload: dict) -> dict:
    from lms_api.services.employes_sync import rebuild_timeline

    employee_id = (payload or {}).get("employee_id")
    if not employee_id:
        raise ValueError("timeline_processing requires payload.employee_id")
    return rebuild_timeline(str(employee_id))


def _handle_employes_sync(payload: dict) -> dict:
    from lms_api.services.employes_client import EmployesClient
    from lms_api.services.employes_sync import run_full_sync

    client = EmployesClient.from_app()
    return run_full_sync(client, source="queue", triggered_by=(payload or {}).get("triggered_by"))


HANDLERS: Dict[str, Callable[[dict], dict]] = {
    "timeline_processing": _handle_timeline,
    "employes_sync": _handle_employes_sync,
}


def enqueue(job_type: str, payload: Optional[dict] = None, max_attempts: int = 3) -> ProcessingJob:
    if job_type not in HANDLERS:
        raise ValueError(f"unknown job_type: {job_type}")
    job = ProcessingJob(job_type=job_type, payload=payload or {}, status="pending",
                        attempts=0, max_attempts=max(1, int(max_attempts)))
    db.session.add(job)
    db.session.commit()
    return job


def claim_next_job(job_type: str) -> Optional[ProcessingJob]:
    """Atomically move the oldest pending job of `job_type` to processing."""
    q = (
        ProcessingJob.query
        .filter(ProcessingJob.job_type == job_type, ProcessingJob.status == "pending")
        .order_by(ProcessingJob.created_at.asc(), ProcessingJob.id.asc())
    )
    if db.engine.dialect.name == "postgresql":
        q = q.with_for_update(skip_locked=True)

    job = q.first()
    if job is None:
        return None
    job.status = "processing"
    job.attempts = (job.attempts or 0) + 1
    job.started_at = datetime.utcnow()
    db.session.commit()
    return job


def process_next_job(job_type: str = "timeline_processing") -> dict:
    """
    Claim and run one job. Returns {"processed": False} when the queue is
    empty. A failed job goes back to pending until attempts reach
    max_attempts, then it is marked failed.
    """
    handler = HANDLERS.get(job_type)
    if handler is None:
        raise ValueError(f"unknown job_type: {job_type}")

    job = claim_next_job(job_type)
    if job is None:
        return {"processed": False, "message": "No pending jobs"}

    t0 = time.monotonic()
    try:
        result = handler(job.payload or {})
    except Exception as e:
        db.session.rollback()
        job = db.session.get(ProcessingJob, job.id)
        retry = job.attempts < job.max_attempts
        job.status = "pending" if retry else "failed"
        job.error_message = str(e)
        job.error_details = {"type": type(e).__name__, "trace": traceback.format_exc(limit=5)}
        job.processing_time_ms = int((time.monotonic() - t0) * 1000)
        if not retry:
            job.completed_at = datetime.utcnow()
        db.session.commit()
        current_app.logger.warning("Job %s (%s) failed on attempt %s/%s: %s",
                                   job.id, job.job_type, job.attempts, job.max_attempts, e)
        return {"processed": True, "job_id": job.id, "status": job.status,
                "error": str(e), "will_retry": retry}

    job.status = "completed"
    job.result = result
    job.error_message = None
    job.completed_at = datetime.utcnow()
    job.processing_time_ms = int((time.monotonic() - t0) * 1000)
    db.session.commit()
    log.info("Job %s (%s) completed in %sms", job.id, job.job_type, job.processing_time_ms)
    return {"processed": True, "job_id": job.id, "status": job.status, "result": result}


def job_row(j: ProcessingJob) -> dict:
    return {
        "id": j.id,
        "job_type": j.job_type,
        "payload": j.payload,
        "status": j.status,
        "attempts": j.attempts,
        "max_attempts": j.max_attempts,
        "result": j.result,
        "error_message": j.error_message,
        "processing_time_ms": j.processing_time_ms,
        "created_at": j.created_at.isoformat() if j.created_at else None,
        "started_at": j.started_at.isoformat() if j.started_at else None,
        "completed_at": j.completed_at.isoformat() if j.completed_at else None,
    }
