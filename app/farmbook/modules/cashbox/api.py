from __future__ import annotations

from flask import Blueprint, request

from app.farmbook.api import json_body, ok
from app.farmbook.db import db_session
from app.farmbook.errors import raise_for_errors
from app.farmbook.modules.cashbox.service import (
    cashbox_summary,
    list_credit_expenses,
    list_movements,
    record_deposit,
    record_expense,
    reimburse,
    serialize_credit_expense,
    serialize_movement,
    validate_deposit_payload,
    validate_expense_payload,
    validate_reimbursement_payload,
)
from app.farmbook.rbac import CREATE, READ, UPDATE, current_user, require_farm_access
from app.farmbook.utils import parse_int

bp = Blueprint("cashbox", __name__)


@bp.get("/<int:farm_id>/cashbox")
@require_farm_access(READ)
def cashbox_get(farm_id: int):
    s = db_session()
    return ok(cashbox_summary(s, farm_id))


@bp.get("/<int:farm_id>/cashbox/movements")
@require_farm_access(READ)
def cashbox_movements(farm_id: int):
    s = db_session()
    limit = min(max(parse_int(request.args.get("limit"), 50), 1), 200)
    offset = max(parse_int(request.args.get("offset"), 0), 0)
    movements = list_movements(
        s,
        farm_id,
        type=(request.args.get("type") or "").strip() or None,
        category=(request.args.get("category") or "").strip() or None,
        limit=limit,
        offset=offset,
    )
    return ok([serialize_movement(m) for m in movements])


@bp.post("/<int:farm_id>/cashbox/deposit")
@require_farm_access(CREATE)
def cashbox_deposit(farm_id: int):
    s = db_session()
    u = current_user()
    payload = json_body()
    raise_for_errors(validate_deposit_payload(payload))

    movement = record_deposit(s, farm_id, payload, u)
    s.commit()
    return ok(serialize_movement(movement), message="Deposit recorded.", status=201)


@bp.post("/<int:farm_id>/cashbox/expense")
@require_farm_access(CREATE)
def cashbox_expense(farm_id: int):
    s = db_session()
    u = current_user()
    payload = json_body()
    raise_for_errors(validate_expense_payload(payload))

    movement, credit = record_expense(s, farm_id, payload, u)
    s.commit()
    data = {"movement": serialize_movement(movement)}
    if credit is not None:
        data["creditExpense"] = serialize_credit_expense(credit)
    return ok(data, message="Expense recorded.", status=201)


@bp.post("/<int:farm_id>/cashbox/reimbursement")
@require_farm_access(UPDATE)
def cashbox_reimbursement(farm_id: int):
    s = db_session()
    u = current_user()
    payload = json_body()
    raise_for_errors(validate_reimbursement_payload(payload))

    movement, credit = reimburse(s, farm_id, payload, u)
    s.commit()
    data = {"movement": serialize_movement(movement), "creditExpense": serialize_credit_expense(credit)}
    return ok(data, message="Reimbursement recorded.", status=201)


@bp.get("/<int:farm_id>/cashbox/credit-expenses")
@require_farm_access(READ)
def cashbox_credit_expenses(farm_id: int):
    s = db_session()
    status = (request.args.get("status") or "").strip() or None
    return ok([serialize_credit_expense(c) for c in list_credit_expenses(s, farm_id, status)])
