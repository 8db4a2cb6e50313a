from __future__ import annotations

import csv
import io
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.farmbook.modules.animals.service import list_animals
from app.farmbook.modules.cashbox.service import list_credit_expenses
from app.farmbook.utils import money

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


EXPORT_TYPES = ("animals", "events", "financial")


def _csv(header: list[str], rows) -> tuple[str, int]:
    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(header)
    count = 0
    for row in rows:
        w.writerow(["" if v is None else v for v in row])
        count += 1
    return out.getvalue(), count


def export_animals(s: "Session", farm_id: int) -> tuple[str, int]:
    animals = list_animals(s, farm_id, {})
    return _csv(
        ["Tag", "Type", "Species", "Sex", "Birth Date", "Estimated Age", "Lot Count", "Status", "Notes", "Created"],
        (
            [
                a.tag_number,
                a.type,
                a.species,
                a.sex,
                str(a.birth_date) if a.birth_date else None,
                a.estimated_age,
                a.lot_count,
                a.status,
                a.notes,
                a.created_at.strftime("%Y-%m-%d"),
            ]
            for a in animals
        ),
    )


def export_events(s: "Session", farm_id: int) -> tuple[str, int]:
    from app.farmbook.modules.animals.models import Animal
    from app.farmbook.modules.events.models import Event

    rows = s.execute(
        select(Event, Animal)
        .join(Animal, Animal.id == Event.target_id)
        .where(Event.farm_id == farm_id, Event.deleted_at.is_(None))
        .order_by(Event.event_date.asc(), Event.id.asc())
    ).all()
    return _csv(
        ["Date", "Event Type", "Target Type", "Target Tag", "Cost", "Next Due", "Note"],
        (
            [
                e.event_date.strftime("%Y-%m-%d"),
                e.event_type,
                e.target_type,
                a.tag_number,
                f"{money(e.cost):.2f}" if e.cost is not None else None,
                e.next_due_date.strftime("%Y-%m-%d") if e.next_due_date else None,
                e.note,
            ]
            for e, a in rows
        ),
    )


def export_financial(s: "Session", farm_id: int) -> tuple[str, int]:
    from app.farmbook.modules.cashbox.models import CashboxMovement

    movements = s.execute(
        select(CashboxMovement)
        .where(CashboxMovement.farm_id == farm_id)
        .order_by(CashboxMovement.created_at.asc(), CashboxMovement.id.asc())
    ).scalars()
    paid_by = {c.id: c.paid_by for c in list_credit_expenses(s, farm_id)}
    return _csv(
        ["Date", "Type", "Category", "Amount", "Description", "Paid By"],
        (
            [
                m.created_at.strftime("%Y-%m-%d"),
                m.type,
                m.category,
                f"{money(m.amount):.2f}",
                m.description,
                paid_by.get(m.related_expense_id) if m.related_expense_id else None,
            ]
            for m in movements
        ),
    )


EXPORTERS = {
    "animals": export_animals,
    "events": export_events,
    "financial": export_financial,
}
