from flask import Blueprint, request

from lms_api.common.auth import requires_perms
from lms_api.common.http import ok as _ok, fail as _fail
from lms_api.services import cao

bp = Blueprint("cao", __name__, url_prefix="/api/v1/cao")


def _float_arg(name, default=None):
    v = request.args.get(name)
    if v in (None, ""):
        return default
    try:
        return float(v)
    except ValueError:
        raise ValueError(f"{name} must be a number")


def _int_arg(name, default=None):
    v = request.args.get(name)
    if v in (None, ""):
        return default
    try:
        return int(v)
    except ValueError:
        raise ValueError(f"{name} must be an integer")


@bp.get("/scales")
@requires_perms("salary.read")
def scales():
    return _ok({
        "fulltime_hours": cao.FULLTIME_HOURS,
        "default_scale": cao.DEFAULT_SCALE,
        "default_trede": cao.DEFAULT_TREDE,
        "effective_date": cao.CAO_EFFECTIVE_DATE,
        "ranges": {str(s): {"min": lo, "max": hi} for s, (lo, hi) in cao.CAO_SCALE_RANGES.items()},
        "table": {str(s): {str(t): amt for t, amt in row.items()} for s, row in cao.SALARY_TABLE.items()},
    })


@bp.get("/salary")
@requires_perms("salary.read")
def salary():
    try:
        scale = _int_arg("scale", cao.DEFAULT_SCALE)
        trede = _int_arg("trede", cao.DEFAULT_TREDE)
        hours = _float_arg("hours", cao.FULLTIME_HOURS)
        km = _float_arg("km", 0.0)
    except ValueError as ex:
        return _fail(str(ex), 422)
    if not cao.is_valid_step(scale, trede):
        return _fail(f"trede {trede} is not valid for scale {scale}", 422)
    if hours <= 0 or hours > 60:
        return _fail("hours must be between 0 and 60", 422)

    base = cao.bruto_36h(scale, trede)
    return _ok({
        "scale": scale,
        "trede": trede,
        "hours_per_week": hours,
        "bruto_36h": base,
        "gross_monthly": cao.gross_monthly(base, hours),
        "travel_allowance": cao.travel_allowance(km, hours),
    })


@bp.get("/detect")
@requires_perms("salary.read")
def detect():
    try:
        monthly = _float_arg("monthly_salary")
        hours = _float_arg("hours", cao.FULLTIME_HOURS)
        scale = _int_arg("scale", cao.DEFAULT_SCALE)
    except ValueError as ex:
        return _fail(str(ex), 422)
    if monthly is None:
        return _fail("monthly_salary is required", 422)
    if not cao.MIN_MONTHLY_SALARY <= monthly <= cao.MAX_MONTHLY_SALARY:
        return _fail(f"monthly_salary must be between {cao.MIN_MONTHLY_SALARY} and {cao.MAX_MONTHLY_SALARY}", 422)

    res = cao.detect_trede(monthly, hours, scale)
    if res is None:
        return _fail(f"no salary table loaded for scale {scale}", 404)
    return _ok(res)
