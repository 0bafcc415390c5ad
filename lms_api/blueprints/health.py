from flask import Blueprint, jsonify
from sqlalchemy import text

from lms_api.extensions import db

bp = Blueprint("health", __name__, url_prefix="/api")


@bp.get("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
        database = "ok"
    except Exception as e:
        db.session.rollback()
        database = f"error: {e.__class__.__name__}"
    status = 200 if database == "ok" else 503
    return jsonify({"success": status == 200, "data": {"status": "ok" if status == 200 else "degraded",
                                                      "database": database}}), status
