import os
from datetime import datetime, timedelta

import pytest

from lms_api import create_app
from lms_api.extensions import db
from lms_api.models.employes import EmployesRawData, TimelineEvent
from lms_api.models.processing_job import ProcessingJob
from lms_api.services.employes_sync import data_hash
from lms_api.services.job_queue import claim_next_job, enqueue, process_next_job


@pytest.fixture(scope="function")
def app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    with app.app_context():
        db.create_all()
        yield app


def _raw(employee_id, payload, minutes_ago, latest):
    return EmployesRawData(
        employee_id=employee_id, endpoint="/employee", api_response=payload,
        data_hash=data_hash(payload), collected_at=datetime.utcnow() - timedelta(minutes=minutes_ago),
        is_latest=latest,
    )


def test_enqueue_rejects_unknown_type(app):
    with pytest.raises(ValueError):
        enqueue("send_email", {})


def test_claim_takes_oldest_pending_of_type(app):
    first = enqueue("timeline_processing", {"employee_id": "a"})
    enqueue("employes_sync", {})
    enqueue("timeline_processing", {"employee_id": "b"})

    job = claim_next_job("timeline_processing")
    assert job.id == first.id
    assert job.status == "processing"
    assert job.attempts == 1
    assert job.started_at is not None

    second = claim_next_job("timeline_processing")
    assert second.payload == {"employee_id": "b"}
    assert claim_next_job("timeline_processing") is None


def test_empty_queue(app):
    assert process_next_job("timeline_processing") == {"processed": False, "message": "No pending jobs"}


def test_timeline_job_completes(app):
    db.session.add_all([
        _raw("e1", {"id": "e1", "status": "pending"}, 10, False),
        _raw("e1", {"id": "e1", "status": "active"}, 5, True),
    ])
    db.session.commit()
    job = enqueue("timeline_processing", {"employee_id": "e1"})

    res = process_next_job("timeline_processing")

    assert res["status"] == "completed"
    assert res["result"]["events_created"] == 2
    job = db.session.get(ProcessingJob, job.id)
    assert job.status == "completed"
    assert job.processing_time_ms is not None
    assert job.completed_at is not None
    titles = sorted(e.event_title for e in TimelineEvent.query.all())
    assert titles == ["Employee Added", "Status: pending → active"]


def test_failed_job_retries_until_max_attempts(app):
    job = enqueue("timeline_processing", {}, max_attempts=2)

    first = process_next_job("timeline_processing")
    assert first["status"] == "pending"
    assert first["will_retry"] is True

    second = process_next_job("timeline_processing")
    assert second["status"] == "failed"
    assert second["will_retry"] is False

    job = db.session.get(ProcessingJob, job.id)
    assert job.attempts == 2
    assert "employee_id" in job.error_message
    assert job.completed_at is not None
    assert process_next_job("timeline_processing")["processed"] is False


def test_unknown_job_type_on_process(app):
    with pytest.raises(ValueError):
        process_next_job("nope")
