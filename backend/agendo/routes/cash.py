# Overview: Flask API routes for the cash ledger and commissions; parses input and returns JSON responses.

# backend/agendo/routes/cash.py
"""Cash ledger API routes with permission enforcement"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..models import PaymentMethod
from ..responses import error_response
from ..services import cash_service, commission_service
from ..services.permission_service import require_permission
from ..validation import format_cents, json_object, parse_datetime_field, parse_money_cents


cash_bp = Blueprint("cash", __name__, url_prefix="/api/cash")


def _window_args():
    start = request.args.get("start")
    end = request.args.get("end")
    return (
        parse_datetime_field(start, "start") if start else None,
        parse_datetime_field(end, "end") if end else None,
    )


def _handle(e: Exception, message: str):
    mapped = error_response(e)
    if mapped:
        return mapped
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


@cash_bp.get("/transactions")
@require_actor
def list_transactions_route():
    """
    Query: start, end (inclusive), type (INCOME|EXPENSE), limit

    Requires: VIEW_CASH permission
    """
    try:
        require_permission(g.actor, "VIEW_CASH")
        start, end = _window_args()
        transactions = cash_service.list_transactions(
            g.actor.tenant_id,
            start,
            end,
            type=request.args.get("type"),
            limit=request.args.get("limit", default=200, type=int),
        )
        return jsonify({"transactions": [t.to_dict() for t in transactions]}), 200
    except Exception as e:
        return _handle(e, "Failed to list transactions")


@cash_bp.get("/balance")
@require_actor
def balance_route():
    """
    Income, expense and balance for a window (all payment methods unless
    payment_method is given).

    Requires: VIEW_CASH permission
    """
    try:
        require_permission(g.actor, "VIEW_CASH")
        start, end = _window_args()
        totals = cash_service.get_period_totals(
            g.actor.tenant_id, start, end, payment_method=request.args.get("payment_method"),
        )
        totals["balance"] = format_cents(totals["balance_cents"])
        return jsonify(totals), 200
    except Exception as e:
        return _handle(e, "Failed to compute balance")


@cash_bp.post("/transactions")
@require_actor
def record_transaction_route():
    """
    Manual income/expense.

    Body: type, category, amount (currency units), description, payment_method, occurred_at
    Requires: RECORD_CASH permission
    """
    try:
        data = json_object(request.get_json())
        tx = cash_service.record_manual_transaction(g.actor, data)
        return jsonify({"transaction": tx.to_dict()}), 201
    except Exception as e:
        return _handle(e, "Failed to record transaction")


@cash_bp.post("/reconcile")
@require_actor
def reconcile_route():
    """
    Close a cash count.

    Body: counted (currency units), start, end, payment_method (default CASH)
    201 with the adjustment, or 200 with adjustment=null when the count matched.

    Requires: RECONCILE_CASH permission
    Available to: admin
    """
    try:
        data = json_object(request.get_json())
        counted_cents = parse_money_cents(data.get("counted"), "counted")
        start = parse_datetime_field(data["start"], "start") if data.get("start") else None
        end = parse_datetime_field(data["end"], "end") if data.get("end") else None
        adjustment = cash_service.reconcile_cash(
            g.actor,
            counted_cents,
            start,
            end,
            payment_method=data.get("payment_method") or PaymentMethod.CASH,
        )
        if adjustment is None:
            return jsonify({"adjustment": None}), 200
        return jsonify({"adjustment": adjustment.to_dict()}), 201
    except Exception as e:
        return _handle(e, "Failed to reconcile cash")


@cash_bp.get("/commissions")
@require_actor
def list_commissions_route():
    """Query: professional_id, status (PENDING|PAID). Requires: VIEW_CASH"""
    try:
        require_permission(g.actor, "VIEW_CASH")
        commissions = commission_service.list_commissions(
            g.actor.tenant_id,
            professional_id=request.args.get("professional_id", type=int),
            status=request.args.get("status"),
        )
        return jsonify({"commissions": [c.to_dict() for c in commissions]}), 200
    except Exception as e:
        return _handle(e, "Failed to list commissions")


@cash_bp.post("/commissions/<int:commission_id>/pay")
@require_actor
def pay_commission_route(commission_id: int):
    """
    Requires: PAY_COMMISSION permission
    Available to: admin
    """
    try:
        commission = commission_service.mark_commission_paid(g.actor, commission_id)
        return jsonify({"commission": commission.to_dict()}), 200
    except Exception as e:
        return _handle(e, "Failed to pay commission")
