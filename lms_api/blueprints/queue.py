from flask import Blueprint, request

from lms_api.models.processing_job import ProcessingJob
from lms_api.common.auth import requires_perms
from lms_api.common.http import ok as _ok, fail as _fail
from lms_api.common.paging import page_limit
from lms_api.services.job_queue import HANDLERS, enqueue, job_row, process_next_job

bp = Blueprint("queue", __name__, url_prefix="/api/v1/queue")


@bp.post("/process")
@requires_perms("queue.process")
def process():
    d = request.get_json(silent=True, force=True) or {}
    job_type = d.get("job_type") or "timeline_processing"
    if job_type not in HANDLERS:
        return _fail(f"Unknown job_type: {job_type}", 422, code="UNKNOWN_JOB_TYPE")
    res = process_next_job(job_type)
    if res.get("processed") and res.get("error"):
        if res.get("will_retry"):
            return _fail(res["error"], 207, code="JOB_WILL_RETRY", detail=res)
        return _fail(res["error"], 500, code="JOB_FAILED", detail=res)
    return _ok(res)


@bp.post("/jobs")
@requires_perms("queue.process")
def create_job():
    d = request.get_json(silent=True, force=True) or {}
    job_type = d.get("job_type")
    if job_type not in HANDLERS:
        return _fail(f"job_type must be one of {sorted(HANDLERS)}", 422)
    payload = d.get("payload") or {}
    if not isinstance(payload, dict):
        return _fail("payload must be an object", 422)
    try:
        max_attempts = int(d.get("max_attempts") or 3)
    except (TypeError, ValueError):
        return _fail("max_attempts must be an integer", 422)
    job = enqueue(job_type, payload, max_attempts)
    return _ok(job_row(job), status=201)


@bp.get("/jobs")
@requires_perms("queue.process")
def list_jobs():
    q = ProcessingJob.query
    status = (request.args.get("status") or "").strip().lower()
    if status:
        q = q.filter(ProcessingJob.status == status)
    job_type = (request.args.get("job_type") or "").strip()
    if job_type:
        q = q.filter(ProcessingJob.job_type == job_type)
    page, size = page_limit()
    total = q.count()
    items = q.order_by(ProcessingJob.created_at.desc(), ProcessingJob.id.desc()).offset((page - 1) * size).limit(size).all()
    return _ok([job_row(j) for j in items], page=page, size=size, total=total)
