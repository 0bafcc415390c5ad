from datetime import datetime
from lms_api.extensions import db

CONTRACT_TYPES = ("fixed", "permanent", "intern", "zero_hours")
CONTRACT_STATUSES = ("active", "ended", "terminated", "superseded")


class Contract(db.Model):
    """
    One employment agreement period. Rows are never deleted; renewal and
    termination only change `status` / `end_date`.
    """
    __tablename__ = "contracts"

    id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id", ondelete="RESTRICT"), nullable=False)

    start_date = db.Column(db.Date, nullable=False)
    end_date   = db.Column(db.Date, nullable=True)          # null ⇒ permanent / open-ended
    contract_type = db.Column(db.String(20), nullable=False, default="fixed")
    status = db.Column(db.String(20), nullable=False, default="active")
    chain_sequence = db.Column(db.Integer, nullable=False, default=1)
    hours_per_week = db.Column(db.Numeric(5, 2), nullable=True)

    employes_employment_id = db.Column(db.String(64), nullable=True, unique=True)
    source = db.Column(db.String(20), nullable=False, default="manual")   # manual/employes
    notes  = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    staff = db.relationship("Staff", back_populates="contracts")

    __table_args__ = (
        db.Index("ix_contracts_staff_start", "staff_id", "start_date"),
        db.Index("ix_contracts_end_date", "end_date"),
        db.CheckConstraint("end_date IS NULL OR end_date >= start_date", name="ck_contract_dates"),
    )

    @property
    def is_permanent(self) -> bool:
        return self.contract_type == "permanent"
