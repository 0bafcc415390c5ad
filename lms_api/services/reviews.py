from __future__ import annotations
from datetime import date
from typing import Iterable, Optional

from lms_api.services.compliance import add_months

FIRST_REVIEW_MONTHS = 6
REVIEW_INTERVAL_MONTHS = 12
FIVE_STAR_LEVELS = ("5-star", "Exceptional")


def _completed(reviews: Iterable):
    return [r for r in reviews if r.review_date and r.status == "completed"]


def last_review_date(reviews: Iterable) -> Optional[date]:
    done = _completed(reviews)
    return max(r.review_date for r in done) if done else None


def average_review_score(reviews: Iterable) -> Optional[float]:
    scores = [float(r.overall_score) for r in reviews if r.overall_score is not None]
    if not scores:
        return None
    return round(sum(scores) / len(scores), 2)


def has_five_star_badge(reviews: Iterable) -> bool:
    return any(r.performance_level in FIVE_STAR_LEVELS for r in reviews)


def needs_six_month_review(start_date: Optional[date], reviews: Iterable, today: Optional[date] = None) -> bool:
    if not start_date:
        return False
    today = today or date.today()
    six_months = add_months(start_date, FIRST_REVIEW_MONTHS)
    if six_months > today:
        return False
    last = last_review_date(reviews)
    return last is None or last < six_months


def needs_yearly_review(start_date: Optional[date], reviews: Iterable, today: Optional[date] = None) -> bool:
    if not start_date:
        return False
    today = today or date.today()
    anchor = last_review_date(reviews) or start_date
    return add_months(anchor, REVIEW_INTERVAL_MONTHS) <= today


def next_review_due(start_date: Optional[date], reviews: Iterable) -> Optional[date]:
    """One year after the last completed review; six months after start when there is none."""
    if not start_date:
        return None
    last = last_review_date(reviews)
    if last:
        return add_months(last, REVIEW_INTERVAL_MONTHS)
    return add_months(start_date, FIRST_REVIEW_MONTHS)


def review_status(start_date: Optional[date], reviews: Iterable, today: Optional[date] = None) -> dict:
    today = today or date.today()
    reviews = list(reviews)
    due = next_review_due(start_date, reviews)
    last = last_review_date(reviews)
    scheduled = sorted(
        (r.scheduled_date for r in reviews if r.status == "scheduled" and r.scheduled_date),
    )
    return {
        "last_review_date": last.isoformat() if last else None,
        "next_review_due": due.isoformat() if due else None,
        "days_until_due": (due - today).days if due else None,
        "is_overdue": is_review_overdue(start_date, reviews, today),
        "needs_six_month_review": needs_six_month_review(start_date, reviews, today),
        "needs_yearly_review": needs_yearly_review(start_date, reviews, today),
        "next_scheduled": scheduled[0].isoformat() if scheduled else None,
        "average_score": average_review_score(reviews),
        "five_star": has_five_star_badge(reviews),
    }


def is_review_overdue(start_date: Optional[date], reviews: Iterable, today: Optional[date] = None) -> bool:
    due = next_review_due(start_date, list(reviews))
    return bool(due and due < (today or date.today()))
