from datetime import datetime
from lms_api.extensions import db

REVIEW_TYPES = ("six_month", "yearly", "probation", "exit")
REVIEW_STATUSES = ("scheduled", "completed", "cancelled")


class StaffReview(db.Model):
    __tablename__ = "staff_reviews"

    id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id", ondelete="CASCADE"), nullable=False, index=True)
    reviewer_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    review_type = db.Column(db.String(20), nullable=False, default="yearly")
    status = db.Column(db.String(20), nullable=False, default="scheduled")
    scheduled_date = db.Column(db.Date, nullable=True)
    review_date = db.Column(db.Date, nullable=True)         # set on completion

    overall_score = db.Column(db.Numeric(3, 2), nullable=True)   # 1..5
    performance_level = db.Column(db.String(40), nullable=True)  # e.g. "5-star", "Exceptional"
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    staff = db.relationship("Staff", lazy="joined")
