from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from app.farmbook.modules.animals.service import ANIMAL_STATUSES
from app.farmbook.modules.cashbox.service import CATEGORIES, EXPENSE_CASH, EXPENSE_CREDIT, get_balance, outstanding_debt
from app.farmbook.modules.events.service import URGENT_DAYS, count_live_events, month_bounds
from app.farmbook.utils import iso, money, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


def animal_counts(s: "Session", farm_id: int) -> dict:
    from app.farmbook.modules.animals.models import Animal

    rows = s.execute(
        select(Animal.status, func.count(Animal.id))
        .where(Animal.farm_id == farm_id, Animal.deleted_at.is_(None))
        .group_by(Animal.status)
    ).all()
    counts = {status: 0 for status in ANIMAL_STATUSES}
    for status, count in rows:
        counts[status] = int(count)
    counts["total"] = sum(counts.values())
    return counts


def _count_events(s: "Session", farm_id: int, event_type: str, start, end) -> int:
    from app.farmbook.modules.events.models import Event

    return count_live_events(
        s, farm_id, Event.event_type == event_type, Event.event_date >= start, Event.event_date < end
    )


def expenses_by_category(s: "Session", farm_id: int, start, end) -> dict:
    from app.farmbook.modules.cashbox.models import CashboxMovement

    rows = s.execute(
        select(CashboxMovement.category, func.coalesce(func.sum(CashboxMovement.amount), 0))
        .where(
            CashboxMovement.farm_id == farm_id,
            CashboxMovement.type.in_((EXPENSE_CASH, EXPENSE_CREDIT)),
            CashboxMovement.created_at >= start,
            CashboxMovement.created_at < end,
        )
        .group_by(CashboxMovement.category)
    ).all()
    totals = {c: 0.0 for c in CATEGORIES}
    for category, total in rows:
        totals[category or "OTHER"] += money(total)
    return totals


def _count_due(s: "Session", farm_id: int, now, days: int) -> int:
    from app.farmbook.modules.events.models import Event

    return count_live_events(
        s, farm_id, Event.next_due_date >= now, Event.next_due_date <= now + timedelta(days=days)
    )


def dashboard_stats(s: "Session", farm_id: int) -> dict:
    now = utcnow()
    start, end = month_bounds(now)
    return {
        "period": {"start": iso(start), "end": iso(end)},
        "animals": animal_counts(s, farm_id),
        "births": _count_events(s, farm_id, "BIRTH", start, end),
        "deaths": _count_events(s, farm_id, "DEATH", start, end),
        "cashbox": {
            "balance": money(get_balance(s, farm_id)),
            "outstandingDebt": money(outstanding_debt(s, farm_id)),
            "expensesByCategory": expenses_by_category(s, farm_id, start, end),
        },
        "reminders": {
            "urgent": _count_due(s, farm_id, now, URGENT_DAYS),
            "upcoming": _count_due(s, farm_id, now, 30),
        },
    }
