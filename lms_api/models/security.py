# lms_api/models/security.py
from lms_api.extensions import db

# Permission catalogue seeded by `flask seed-auth`; role -> granted codes.
PERMISSION_CODES = {
    "staff.read": "View staff records",
    "staff.write": "Create and edit staff records",
    "contracts.read": "View contracts",
    "contracts.write": "Create, renew and terminate contracts",
    "salary.read": "View salary history",
    "salary.write": "Record salary changes",
    "compliance.view": "View compliance dashboards and exports",
    "reviews.read": "View reviews",
    "reviews.write": "Schedule and complete reviews",
    "employes.sync": "Run Employes.nl synchronisation",
    "queue.process": "Enqueue and process background jobs",
}

ROLE_PERMISSIONS = {
    "admin": ["*"],
    "hr": ["staff.*", "contracts.*", "salary.*", "compliance.view", "reviews.*", "employes.sync"],
    "manager": ["staff.read", "contracts.read", "compliance.view", "reviews.*"],
}


class Role(db.Model):
    __tablename__ = "roles"
    id   = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)  # e.g., "admin", "hr"

    users = db.relationship(
        "UserRole",
        back_populates="role",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    permissions = db.relationship(
        "RolePermission",
        back_populates="role",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Role id={self.id} code={self.code!r}>"


class UserRole(db.Model):
    __tablename__ = "user_roles"
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)

    role = db.relationship("Role", back_populates="users")
    user = db.relationship(
        "User",
        backref=db.backref("user_roles", cascade="all, delete-orphan", passive_deletes=True),
    )


class Permission(db.Model):
    __tablename__ = "permissions"
    id   = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(120), unique=True, nullable=False)  # e.g., "contracts.write"
    name = db.Column(db.String(150), nullable=True)

    roles = db.relationship(
        "RolePermission",
        back_populates="permission",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class RolePermission(db.Model):
    __tablename__ = "role_permissions"
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)
    permission_id = db.Column(db.Integer, db.ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True)

    role = db.relationship("Role", back_populates="permissions")
    permission = db.relationship("Permission", back_populates="roles")
