"""
Kinderopvang CAO salary scales (schaal / trede).

Only scale 6 is tabulated; other scales report 0 until their rates are loaded.
"""
from __future__ import annotations
from typing import Optional

FULLTIME_HOURS = 36
DEFAULT_SCALE = 6
DEFAULT_TREDE = 10
CAO_EFFECTIVE_DATE = "2025-01-01"

MIN_MONTHLY_SALARY = 1500
MAX_MONTHLY_SALARY = 10000

CAO_SCALE_RANGES = {
    **{s: (0, 16) for s in range(2, 6)},
    **{s: (0, 20) for s in range(6, 13)},
}

# bruto monthly salary at 36h
SALARY_TABLE = {
    6: {1: 2500, 2: 2600, 3: 2700, 4: 2800, 5: 2900, 6: 3000,
        7: 3100, 8: 3200, 9: 3300, 10: 3400, 11: 3500, 12: 3600},
}

KM_RATE = 0.23
WORK_WEEKS_PER_YEAR = 46.5

# tolerance (percent of CAO amount) for calling a salary compliant
COMPLIANCE_TOLERANCE_PCT = 2.5


def is_valid_step(scale: int, trede: int) -> bool:
    rng = CAO_SCALE_RANGES.get(scale)
    return bool(rng) and rng[0] <= trede <= rng[1]


def bruto_36h(scale, trede) -> float:
    try:
        return float(SALARY_TABLE.get(int(scale), {}).get(int(trede), 0))
    except (TypeError, ValueError):
        return 0.0


def gross_monthly(bruto36h: float, hours_per_week: float) -> float:
    if not bruto36h or not hours_per_week:
        return 0.0
    return round(bruto36h * (float(hours_per_week) / FULLTIME_HOURS), 2)


def travel_allowance(km: float, hours_per_week: float) -> float:
    """Monthly reiskostenvergoeding for a one-way commute of `km`."""
    if not km or km <= 0 or not hours_per_week:
        return 0.0
    days = min(5, -(-float(hours_per_week) // 8))
    yearly = float(km) * KM_RATE * 2 * days * WORK_WEEKS_PER_YEAR
    return round(yearly / 12, 2)


def detect_trede(monthly_salary: float, hours_per_week: float = FULLTIME_HOURS,
                 scale: int = DEFAULT_SCALE) -> Optional[dict]:
    """Nearest trede in `scale` for a (part-time) monthly salary."""
    table = SALARY_TABLE.get(scale)
    if not table or not monthly_salary or not hours_per_week:
        return None

    fulltime = float(monthly_salary) * FULLTIME_HOURS / float(hours_per_week)
    trede, amount = min(table.items(), key=lambda kv: (abs(kv[1] - fulltime), kv[0]))
    diff = round(fulltime - amount, 2)
    pct = abs(diff) / amount * 100

    if pct <= COMPLIANCE_TOLERANCE_PCT:
        status = "compliant"
    elif fulltime < min(table.values()):
        status = "under_cao"
    else:
        status = "over_cao" if diff > 0 else "under_cao"

    return {
        "scale": scale,
        "trede": trede,
        "cao_amount": amount,
        "fulltime_equivalent": round(fulltime, 2),
        "difference": diff,
        "is_exact_match": diff == 0,
        "status": status,
        "effective_date": CAO_EFFECTIVE_DATE,
    }
