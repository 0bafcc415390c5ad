from datetime import timedelta

from flask import Blueprint, request, jsonify
from flask_jwt_extended import (
    create_access_token, create_refresh_token,
    jwt_required, get_jwt_identity
)

from lms_api.extensions import db
from lms_api.models.user import User
from lms_api.models.staff import Staff
from lms_api.models.security import Role, UserRole
from lms_api.common.auth import collect_perms_from_db, requires_roles
from lms_api.common.http import ok as _ok, fail as _fail

bp = Blueprint("auth_v1", __name__, url_prefix="/api/v1/auth")


def _user_payload(u: User):
    return {
        "id": u.id,
        "email": u.email,
        "full_name": u.full_name,
        "roles": u.role_codes(),
        "staff_id": u.staff_id,
    }


def _claims(u: User) -> dict:
    return {
        "roles": u.role_codes(),
        "perms": sorted(collect_perms_from_db(u.id)),
        "email": u.email,
        "name": u.full_name,
    }


@bp.post("/login")
def login():
    data = request.get_json(silent=True, force=True)
    if not isinstance(data, dict):
        data = {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    u = User.query.filter_by(email=email).first()
    if not u or not u.check_password(password):
        return jsonify({"success": False, "error": {"message": "Invalid credentials"}}), 401
    if u.status != "active":
        return jsonify({"success": False, "error": {"message": "Account disabled"}}), 403

    access = create_access_token(identity=str(u.id), additional_claims=_claims(u), expires_delta=timedelta(days=1))
    refresh = create_refresh_token(identity=str(u.id), additional_claims={"roles": u.role_codes()})
    return jsonify({"success": True, "access": access, "refresh": refresh, "user": _user_payload(u)}), 200


@bp.post("/refresh")
@jwt_required(refresh=True)
def refresh():
    uid = get_jwt_identity()
    u = db.session.get(User, int(uid)) if uid else None
    if not u:
        return jsonify({"success": False, "error": {"message": "User not found"}}), 401
    new_access = create_access_token(identity=str(u.id), additional_claims=_claims(u))
    return jsonify({"success": True, "access": new_access}), 200


@bp.get("/me")
@jwt_required()
def me():
    uid = get_jwt_identity()
    u = db.session.get(User, int(uid)) if uid else None
    if not u:
        return jsonify({"success": False, "error": {"message": "User not found"}}), 404
    return jsonify({"success": True, "data": _user_payload(u)}), 200


# ---------- admin: user provisioning ----------

@bp.post("/users")
@requires_roles("admin")
def create_user():
    d = request.get_json(silent=True, force=True) or {}
    email = (d.get("email") or "").strip().lower()
    password = d.get("password") or ""
    if not email or not password:
        return _fail("email and password are required", 422)
    if User.query.filter_by(email=email).first():
        return _fail("Email already exists", 409)

    codes = d.get("roles") or []
    roles = Role.query.filter(Role.code.in_(codes)).all() if codes else []
    missing = sorted(set(codes) - {r.code for r in roles})
    if missing:
        return _fail(f"Unknown roles: {missing}", 422)

    u = User(email=email, full_name=(d.get("full_name") or email).strip(), status="active")
    u.set_password(password)
    db.session.add(u)
    db.session.flush()
    for r in roles:
        db.session.add(UserRole(user_id=u.id, role_id=r.id))

    staff_id = d.get("staff_id")
    if staff_id is not None:
        s = db.session.get(Staff, int(staff_id)) if str(staff_id).isdigit() else None
        if not s:
            db.session.rollback()
            return _fail("Invalid staff_id", 422)
        s.user_id = u.id
    db.session.commit()
    db.session.refresh(u)
    return _ok(_user_payload(u), status=201)


@bp.post("/grant-role")
@requires_roles("admin")
def grant_role():
    d = request.get_json(silent=True, force=True) or {}
    email = (d.get("email") or "").strip().lower()
    code = (d.get("role") or "").strip()
    if not email or not code:
        return _fail("Provide 'email' and 'role'", 422)
    u = User.query.filter_by(email=email).first()
    role = Role.query.filter_by(code=code).first()
    if not u or not role:
        return _fail("User or role not found", 404)
    if not UserRole.query.filter_by(user_id=u.id, role_id=role.id).first():
        db.session.add(UserRole(user_id=u.id, role_id=role.id))
        db.session.commit()
    return _ok({"granted": True, "email": email, "role": code})
