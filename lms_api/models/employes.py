# lms_api/models/employes.py
from datetime import datetime
from lms_api.extensions import db


class SyncSession(db.Model):
    """One orchestrated run against Employes.nl."""
    __tablename__ = "employes_sync_sessions"

    id = db.Column(db.Integer, primary_key=True)
    session_type = db.Column(db.String(40), nullable=False, default="full_sync")
    status = db.Column(db.String(30), nullable=False, default="running")  # running/completed/completed_with_errors/failed
    source = db.Column(db.String(40), nullable=False, default="manual")   # manual/scheduler/queue
    triggered_by = db.Column(db.String(120), nullable=True)

    started_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)

    total_records = db.Column(db.Integer, nullable=False, default=0)
    successful_records = db.Column(db.Integer, nullable=False, default=0)
    failed_records = db.Column(db.Integer, nullable=False, default=0)
    sync_details = db.Column(db.JSON, nullable=True)


class EmployesRawData(db.Model):
    """Versioned copy of an API payload; only one row per (employee, endpoint, record) is latest."""
    __tablename__ = "employes_raw_data"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.String(64), nullable=False)
    endpoint = db.Column(db.String(40), nullable=False)           # /employee, /employments
    record_key = db.Column(db.String(64), nullable=True)          # employment id for /employments
    api_response = db.Column(db.JSON, nullable=False)
    data_hash = db.Column(db.String(64), nullable=False)

    collected_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    last_verified_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    effective_from = db.Column(db.DateTime, nullable=True)
    effective_to = db.Column(db.DateTime, nullable=True)
    is_latest = db.Column(db.Boolean, nullable=False, default=True)
    session_id = db.Column(db.Integer, db.ForeignKey("employes_sync_sessions.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        db.Index("ix_raw_latest", "employee_id", "endpoint", "is_latest"),
        db.Index("ix_raw_hash", "employee_id", "endpoint", "data_hash"),
    )


class EmployesChange(db.Model):
    __tablename__ = "employes_changes"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.String(64), nullable=False, index=True)
    endpoint = db.Column(db.String(40), nullable=False)
    field_path = db.Column(db.String(120), nullable=False)
    field_label = db.Column(db.String(80), nullable=True)
    old_value = db.Column(db.JSON, nullable=True)
    new_value = db.Column(db.JSON, nullable=True)
    change_type = db.Column(db.String(20), nullable=False, default="updated")
    detected_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    is_significant = db.Column(db.Boolean, nullable=False, default=True)


class TimelineEvent(db.Model):
    __tablename__ = "employes_timeline"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.String(64), nullable=False, index=True)
    event_type = db.Column(db.String(40), nullable=False)    # employee_added/salary_change/hours_change/...
    event_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    event_title = db.Column(db.String(200), nullable=False)
    event_description = db.Column(db.Text, nullable=True)
    event_data = db.Column(db.JSON, nullable=True)
    change_id = db.Column(db.Integer, db.ForeignKey("employes_changes.id", ondelete="SET NULL"), nullable=True)
