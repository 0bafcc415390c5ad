# lms_api/common/paging.py
from datetime import date, datetime

from flask import request
from sqlalchemy import or_

DEFAULT_PAGE = 1
DEFAULT_SIZE = 20
MAX_SIZE = 100

def page_limit():
    try:
        page = max(int(request.args.get("page", DEFAULT_PAGE)), 1)
    except Exception:
        page = DEFAULT_PAGE
    try:
        size = int(request.args.get("size", DEFAULT_SIZE))
        size = max(1, min(size, MAX_SIZE))
    except Exception:
        size = DEFAULT_SIZE
    return page, size

def sort_params(allowed: dict[str, object]):
    """
    allowed: {"name": Model.name, "created_at": Model.created_at, ...}
    ?sort=name,-created_at  => returns list of (column, asc:bool)
    Unknown keys ignored.
    """
    raw = request.args.get("sort", "")
    items = []
    for part in [p.strip() for p in raw.split(",") if p.strip()]:
        asc = True
        key = part
        if part.startswith("-"):
            asc = False
            key = part[1:]
        col = allowed.get(key)
        if col is not None:
            items.append((col, asc))
    return items

def apply_sort(query, allowed: dict[str, object], default=None):
    items = sort_params(allowed)
    if not items:
        return query.order_by(default) if default is not None else query
    return query.order_by(*[c.asc() if asc else c.desc() for c, asc in items])

def apply_q_search(query, *cols):
    q = (request.args.get("q") or "").strip().lower()
    if not q: return query
    like = f"%{q}%"
    return query.filter(or_(*[c.ilike(like) for c in cols]))

def bool_arg(name: str):
    if name not in request.args:
        return None
    v = (request.args.get(name) or "").lower()
    if v in ("true", "1", "yes"):  return True
    if v in ("false", "0", "no"):  return False
    raise ValueError(f"{name} must be true/false")

def parse_date(val):
    if not val: return None
    if isinstance(val, datetime): return val.date()
    if isinstance(val, date): return val
    for fmt in ("%Y-%m-%d", "%d-%m-%Y", "%Y/%m/%d"):
        try: return datetime.strptime(str(val), fmt).date()
        except ValueError: pass
    return None

def iso(d):
    return d.isoformat() if d else None
