from datetime import datetime
from lms_api.extensions import db

class SalaryPeriod(db.Model):
    """Time-bounded wage record; superseded via `valid_to`, never deleted."""
    __tablename__ = "salary_periods"

    id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id", ondelete="RESTRICT"), nullable=False)

    valid_from = db.Column(db.Date, nullable=False)
    valid_to   = db.Column(db.Date, nullable=True)     # null ⇒ current

    hourly_wage  = db.Column(db.Numeric(10, 2), nullable=True)
    monthly_wage = db.Column(db.Numeric(10, 2), nullable=True)
    yearly_wage  = db.Column(db.Numeric(12, 2), nullable=True)

    cao_scale = db.Column(db.Integer, nullable=True)
    cao_trede = db.Column(db.Integer, nullable=True)
    source = db.Column(db.String(20), nullable=False, default="manual")   # manual/employes
    reason = db.Column(db.String(40), nullable=True)                      # hire/raise/cao_index/renewal

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    staff = db.relationship("Staff", back_populates="salary_periods")

    __table_args__ = (
        db.UniqueConstraint("staff_id", "valid_from", name="uq_salary_staff_valid_from"),
        db.Index("ix_salary_staff_open", "staff_id", "valid_to"),
    )
