from datetime import datetime
from lms_api.extensions import db

class Staff(db.Model):
    __tablename__ = "staff"

    id = db.Column(db.Integer, primary_key=True)
    user_id    = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, unique=True)
    employes_id = db.Column(db.String(64), nullable=True, unique=True)   # Employes.nl employee id

    full_name = db.Column(db.String(255), nullable=False)
    email     = db.Column(db.String(255), nullable=True, unique=True)
    phone     = db.Column(db.String(32), nullable=True)
    location  = db.Column(db.String(120), nullable=True)
    role_title = db.Column(db.String(120), nullable=True)   # pedagogisch medewerker, locatiemanager, ...

    status = db.Column(db.String(16), default="active", nullable=False)   # active/inactive
    is_intern   = db.Column(db.Boolean, default=False, nullable=False)
    intern_year = db.Column(db.Integer, nullable=True)                    # 1..3

    start_date = db.Column(db.Date, nullable=True)
    hours_per_week = db.Column(db.Numeric(5, 2), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_staff_status", "status"),
        db.Index("ix_staff_location", "location"),
    )

    contracts = db.relationship(
        "Contract", back_populates="staff", order_by="Contract.start_date", lazy="selectin"
    )
    salary_periods = db.relationship(
        "SalaryPeriod", back_populates="staff", order_by="SalaryPeriod.valid_from.desc()", lazy="selectin"
    )

    def deactivate(self):
        self.status = "inactive"
