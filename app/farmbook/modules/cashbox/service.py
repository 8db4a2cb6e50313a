from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import case, func, select

from app.farmbook.audit import record_event
from app.farmbook.errors import BusinessLogicError, NotFoundError, field_error
from app.farmbook.utils import clean_str, iso, money, parse_amount, parse_int, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.farmbook.models import User
    from app.farmbook.modules.cashbox.models import CashboxMovement, CreditExpense
    from app.farmbook.modules.farms.models import Farm


DEPOSIT = "DEPOSIT"
EXPENSE_CASH = "EXPENSE_CASH"
EXPENSE_CREDIT = "EXPENSE_CREDIT"
REIMBURSEMENT = "REIMBURSEMENT"
MOVEMENT_TYPES = (DEPOSIT, EXPENSE_CASH, EXPENSE_CREDIT, REIMBURSEMENT)

CATEGORIES = ("FEED", "VET", "LABOR", "TRANSPORT", "EQUIPMENT", "UTILITIES", "OTHER")

OUTSTANDING = "OUTSTANDING"
PARTIALLY_REIMBURSED = "PARTIALLY_REIMBURSED"
FULLY_REIMBURSED = "FULLY_REIMBURSED"
CREDIT_STATUSES = (OUTSTANDING, PARTIALLY_REIMBURSED, FULLY_REIMBURSED)

MAX_AMOUNT = Decimal("1000000")
MAX_DESCRIPTION_LENGTH = 255
RECENT_MOVEMENTS = 20


def _validate_amount(payload: dict, errors: list[dict]) -> None:
    amount = parse_amount(payload.get("amount"))
    if amount is None:
        errors.append(field_error("amount", "Amount must be a number.", "INVALID_AMOUNT"))
    elif amount <= 0:
        errors.append(field_error("amount", "Amount must be positive.", "NOT_POSITIVE"))
    elif amount > MAX_AMOUNT:
        errors.append(field_error("amount", "Amount must not exceed 1,000,000.", "TOO_LARGE"))


def _validate_description(payload: dict, errors: list[dict]) -> None:
    description = clean_str(payload.get("description")) or ""
    if not description:
        errors.append(field_error("description", "Description is required.", "REQUIRED"))
    elif len(description) > MAX_DESCRIPTION_LENGTH:
        errors.append(field_error("description", "Description must be at most 255 characters.", "TOO_LONG"))


def validate_deposit_payload(payload: dict) -> list[dict]:
    errors: list[dict] = []
    _validate_amount(payload, errors)
    _validate_description(payload, errors)
    return errors


def validate_expense_payload(payload: dict) -> list[dict]:
    errors: list[dict] = []
    expense_type = payload.get("type") or "CASH"
    if expense_type not in ("CASH", "CREDIT"):
        errors.append(field_error("type", "Type must be CASH or CREDIT.", "INVALID_TYPE"))
    _validate_amount(payload, errors)
    _validate_description(payload, errors)
    if payload.get("category") not in CATEGORIES:
        errors.append(field_error("category", f"Category must be one of: {', '.join(CATEGORIES)}", "INVALID_CATEGORY"))
    if expense_type == "CREDIT" and not clean_str(payload.get("paidBy")):
        errors.append(field_error("paidBy", "Paid by is required for a credit expense.", "REQUIRED"))
    return errors


def validate_reimbursement_payload(payload: dict) -> list[dict]:
    errors: list[dict] = []
    if parse_int(payload.get("creditExpenseId")) is None:
        errors.append(field_error("creditExpenseId", "Credit expense is required.", "REQUIRED"))
    _validate_amount(payload, errors)
    return errors


def serialize_movement(m: "CashboxMovement") -> dict:
    return {
        "id": m.id,
        "farmId": m.farm_id,
        "type": m.type,
        "amount": money(m.amount),
        "description": m.description,
        "category": m.category,
        "relatedEventId": m.related_event_id,
        "relatedExpenseId": m.related_expense_id,
        "createdAt": iso(m.created_at),
        "createdBy": m.created_by_user_id,
    }


def serialize_credit_expense(c: "CreditExpense") -> dict:
    return {
        "id": c.id,
        "farmId": c.farm_id,
        "amount": money(c.amount),
        "remainingAmount": money(c.remaining_amount),
        "description": c.description,
        "category": c.category,
        "paidBy": c.paid_by,
        "status": c.status,
        "createdAt": iso(c.created_at),
        "updatedAt": iso(c.updated_at),
    }


def _add_movement(
    s: "Session",
    farm_id: int,
    *,
    type: str,
    amount: Decimal,
    description: str,
    user: "User | None",
    category: str | None = None,
    related_event_id: int | None = None,
    related_expense_id: int | None = None,
) -> "CashboxMovement":
    from app.farmbook.modules.cashbox.models import CashboxMovement

    movement = CashboxMovement(
        farm_id=farm_id,
        type=type,
        amount=amount,
        description=description[:MAX_DESCRIPTION_LENGTH],
        category=category,
        related_event_id=related_event_id,
        related_expense_id=related_expense_id,
        created_at=utcnow(),
        created_by_user_id=user.id if user else None,
    )
    s.add(movement)
    s.flush()
    return movement


def open_cashbox(s: "Session", farm: "Farm", user: "User") -> "CashboxMovement":
    """Zero deposit that marks the start of a farm's ledger."""
    return _add_movement(s, farm.id, type=DEPOSIT, amount=Decimal("0.00"), description="Initial cashbox setup", user=user)


def record_deposit(s: "Session", farm_id: int, payload: dict, user: "User") -> "CashboxMovement":
    movement = _add_movement(
        s,
        farm_id,
        type=DEPOSIT,
        amount=parse_amount(payload.get("amount")),  # type: ignore[arg-type]
        description=clean_str(payload.get("description")) or "",
        user=user,
    )
    record_event(
        s,
        actor=user,
        action="cashbox.deposit",
        entity_type="CashboxMovement",
        entity_id=str(movement.id),
        farm_id=farm_id,
        metadata={"amount": money(movement.amount)},
    )
    return movement


def add_cash_expense(
    s: "Session",
    farm_id: int,
    *,
    amount: Decimal,
    description: str,
    category: str,
    user: "User | None",
    related_event_id: int | None = None,
) -> "CashboxMovement":
    movement = _add_movement(
        s,
        farm_id,
        type=EXPENSE_CASH,
        amount=amount,
        description=description,
        category=category,
        user=user,
        related_event_id=related_event_id,
    )
    record_event(
        s,
        actor=user,
        action="cashbox.expense",
        entity_type="CashboxMovement",
        entity_id=str(movement.id),
        farm_id=farm_id,
        metadata={"amount": money(amount), "category": category, "event_id": related_event_id},
    )
    return movement


def record_expense(s: "Session", farm_id: int, payload: dict, user: "User") -> tuple["CashboxMovement", "CreditExpense | None"]:
    """CASH expenses leave the box now; CREDIT expenses are owed back to whoever paid."""
    from app.farmbook.modules.cashbox.models import CreditExpense

    amount = parse_amount(payload.get("amount"))
    description = clean_str(payload.get("description")) or ""
    category = payload["category"]

    if (payload.get("type") or "CASH") == "CASH":
        return add_cash_expense(s, farm_id, amount=amount, description=description, category=category, user=user), None  # type: ignore[arg-type]

    now = utcnow()
    credit = CreditExpense(
        farm_id=farm_id,
        amount=amount,
        remaining_amount=amount,
        description=description,
        category=category,
        paid_by=clean_str(payload.get("paidBy")) or "",
        status=OUTSTANDING,
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
    )
    s.add(credit)
    s.flush()

    movement = _add_movement(
        s,
        farm_id,
        type=EXPENSE_CREDIT,
        amount=amount,  # type: ignore[arg-type]
        description=description,
        category=category,
        user=user,
        related_expense_id=credit.id,
    )
    record_event(
        s,
        actor=user,
        action="cashbox.credit_expense",
        entity_type="CreditExpense",
        entity_id=str(credit.id),
        farm_id=farm_id,
        metadata={"amount": money(amount), "category": category, "paid_by": credit.paid_by},
    )
    return movement, credit


def get_credit_expense(s: "Session", farm_id: int, credit_id: int) -> "CreditExpense":
    from app.farmbook.modules.cashbox.models import CreditExpense

    credit = s.get(CreditExpense, credit_id)
    if credit is None or credit.farm_id != farm_id:
        raise NotFoundError("Credit expense not found.", code="CREDIT_EXPENSE_NOT_FOUND")
    return credit


def reimburse(s: "Session", farm_id: int, payload: dict, user: "User") -> tuple["CashboxMovement", "CreditExpense"]:
    credit = get_credit_expense(s, farm_id, parse_int(payload.get("creditExpenseId")))  # type: ignore[arg-type]
    amount = parse_amount(payload.get("amount"))
    if amount > credit.remaining_amount:  # type: ignore[operator]
        raise BusinessLogicError(
            "The reimbursement exceeds the remaining amount owed.", code="REIMBURSEMENT_EXCEEDS_DEBT"
        )

    credit.remaining_amount = credit.remaining_amount - amount  # type: ignore[operator]
    credit.status = FULLY_REIMBURSED if credit.remaining_amount <= 0 else PARTIALLY_REIMBURSED
    credit.updated_at = utcnow()

    movement = _add_movement(
        s,
        farm_id,
        type=REIMBURSEMENT,
        amount=amount,  # type: ignore[arg-type]
        description=f"Reimbursement to {credit.paid_by}: {credit.description}",
        category=credit.category,
        user=user,
        related_expense_id=credit.id,
    )
    record_event(
        s,
        actor=user,
        action="cashbox.reimbursement",
        entity_type="CreditExpense",
        entity_id=str(credit.id),
        farm_id=farm_id,
        metadata={"amount": money(amount), "remaining": money(credit.remaining_amount), "status": credit.status},
    )
    return movement, credit


def get_balance(s: "Session", farm_id: int) -> Decimal:
    from app.farmbook.modules.cashbox.models import CashboxMovement

    signed = case(
        (CashboxMovement.type == DEPOSIT, CashboxMovement.amount),
        (CashboxMovement.type.in_((EXPENSE_CASH, REIMBURSEMENT)), -CashboxMovement.amount),
        else_=0,
    )
    total = s.execute(select(func.coalesce(func.sum(signed), 0)).where(CashboxMovement.farm_id == farm_id)).scalar_one()
    return Decimal(str(total))


def outstanding_debt(s: "Session", farm_id: int) -> Decimal:
    from app.farmbook.modules.cashbox.models import CreditExpense

    total = s.execute(
        select(func.coalesce(func.sum(CreditExpense.remaining_amount), 0)).where(
            CreditExpense.farm_id == farm_id,
            CreditExpense.status != FULLY_REIMBURSED,
        )
    ).scalar_one()
    return Decimal(str(total))


def list_movements(
    s: "Session",
    farm_id: int,
    *,
    type: str | None = None,
    category: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list["CashboxMovement"]:
    from app.farmbook.modules.cashbox.models import CashboxMovement

    q = select(CashboxMovement).where(CashboxMovement.farm_id == farm_id)
    if type:
        q = q.where(CashboxMovement.type == type)
    if category:
        q = q.where(CashboxMovement.category == category)
    q = q.order_by(CashboxMovement.created_at.desc(), CashboxMovement.id.desc()).limit(limit).offset(offset)
    return list(s.execute(q).scalars())


def list_credit_expenses(s: "Session", farm_id: int, status: str | None = None) -> list["CreditExpense"]:
    from app.farmbook.modules.cashbox.models import CreditExpense

    q = select(CreditExpense).where(CreditExpense.farm_id == farm_id)
    if status:
        q = q.where(CreditExpense.status == status)
    return list(s.execute(q.order_by(CreditExpense.created_at.desc(), CreditExpense.id.desc())).scalars())


def cashbox_summary(s: "Session", farm_id: int) -> dict:
    return {
        "balance": money(get_balance(s, farm_id)),
        "outstandingDebt": money(outstanding_debt(s, farm_id)),
        "recentMovements": [serialize_movement(m) for m in list_movements(s, farm_id, limit=RECENT_MOVEMENTS)],
    }
