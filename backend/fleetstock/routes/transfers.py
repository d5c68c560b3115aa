# backend/fleetstock/routes/transfers.py
"""
Warehouse <-> vehicle transfer routes.
"""
from flask import Blueprint, g, jsonify, request

from ..errors import StockError
from ..extensions import db
from ..logging_config import LogContext
from ..services import transfer_service
from ..time_utils import parse_filter_bound
from ..validation import coerce_int, pick


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.before_request
def bind_transfer_context():
    transfer_id = (request.view_args or {}).get("transfer_id")
    if transfer_id is not None:
        LogContext.set(transfer_id=str(transfer_id))


def _vehicle_id(payload: dict) -> int:
    return coerce_int(pick(payload, "vehicleId", "vehicle_id"), "vehicleId", minimum=1)


@transfers_bp.post("")
def create_transfer_route():
    """
    Create an issue transfer (warehouse -> vehicle).

    Request body:
    {
        "vehicleId": int,
        "items": [{"inventoryId": int, "layers": [{"layerIndex": int | "unit": str, "quantity": int}]}],
        "notes": str (optional)
    }

    Returns:
        201: Transfer created (pending, or approved when auto-approval is on)
        400: Invalid request / unit
        404: Vehicle or item not found
        409: Insufficient stock
    """
    payload = request.get_json(silent=True) or {}
    try:
        transfer = transfer_service.create_transfer(
            _vehicle_id(payload),
            pick(payload, "items"),
            notes=pick(payload, "notes"),
            created_by=g.get("actor_id"),
        )
        return jsonify(transfer.to_dict()), 201
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@transfers_bp.get("")
def list_transfers_route():
    """
    Query params: vehicle_id, status, direction, start, end (ISO-8601 date or datetime), page, limit
    """
    try:
        vehicle_id = request.args.get("vehicle_id", request.args.get("vehicleId"))
        start = parse_filter_bound(request.args.get("start"), "start")
        end = parse_filter_bound(request.args.get("end"), "end", end_of_day=True)
        page = coerce_int(request.args.get("page", 1), "page", minimum=1)
        limit = coerce_int(request.args.get("limit", 50), "limit", minimum=1, maximum=200)

        rows, total = transfer_service.list_transfers(
            vehicle_id=coerce_int(vehicle_id, "vehicle_id") if vehicle_id is not None else None,
            status=request.args.get("status"),
            direction=request.args.get("direction"),
            start=start,
            end=end,
            page=page,
            limit=limit,
        )
        return jsonify({
            "transfers": [t.to_dict() for t in rows],
            "pagination": {"page": page, "limit": limit, "total": total},
        }), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@transfers_bp.get("/pending")
def pending_transfers_route():
    try:
        vehicle_id = request.args.get("vehicle_id", request.args.get("vehicleId"))
        rows = transfer_service.list_pending_transfers(
            coerce_int(vehicle_id, "vehicle_id") if vehicle_id is not None else None
        )
        return jsonify({"transfers": [t.to_dict() for t in rows]}), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@transfers_bp.post("/returns")
def return_stock_route():
    """
    Return stock from a vehicle to the warehouse (applied immediately).

    Request body:
    {
        "vehicleId": int,
        "items": [{"inventoryId": int, "quantity": int, "unit": str | "layerIndex": int}],
        "notes": str (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        transfer = transfer_service.return_stock(
            _vehicle_id(payload),
            pick(payload, "items"),
            notes=pick(payload, "notes"),
            created_by=g.get("actor_id"),
        )
        return jsonify(transfer.to_dict()), 201
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@transfers_bp.get("/<int:transfer_id>")
def get_transfer_route(transfer_id: int):
    try:
        return jsonify(transfer_service.get_transfer(transfer_id).to_dict()), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@transfers_bp.post("/<int:transfer_id>/approve")
def approve_transfer_route(transfer_id: int):
    """
    Approve a pending issue: warehouse debit and vehicle credit in one transaction.

    Returns:
        200: Transfer approved
        404: Transfer not found
        409: Wrong status or insufficient stock
    """
    try:
        transfer = transfer_service.approve_transfer(transfer_id, approved_by=g.get("actor_id"))
        return jsonify(transfer.to_dict()), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@transfers_bp.post("/<int:transfer_id>/confirm")
def confirm_transfer_route(transfer_id: int):
    """Mark an approved issue collected. Repeating the call is harmless."""
    try:
        transfer = transfer_service.confirm_transfer(transfer_id, confirmed_by=g.get("actor_id"))
        return jsonify(transfer.to_dict()), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@transfers_bp.post("/<int:transfer_id>/lines/<int:line_id>/collect")
def collect_line_route(transfer_id: int, line_id: int):
    try:
        transfer = transfer_service.collect_transfer_line(transfer_id, line_id, collected_by=g.get("actor_id"))
        return jsonify(transfer.to_dict()), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@transfers_bp.post("/<int:transfer_id>/cancel")
def cancel_transfer_route(transfer_id: int):
    """
    Request body: {"reason": str}
    """
    payload = request.get_json(silent=True) or {}
    try:
        transfer = transfer_service.cancel_transfer(
            transfer_id,
            pick(payload, "reason"),
            cancelled_by=g.get("actor_id"),
        )
        return jsonify(transfer.to_dict()), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
