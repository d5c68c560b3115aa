# backend/fleetstock/routes/vehicles.py
"""
Vehicle routes: registration, retirement and loaded-stock views.
"""
from flask import Blueprint, g, jsonify, request

from ..errors import StockError
from ..extensions import db
from ..services import transfer_service, vehicle_service
from ..validation import pick


vehicles_bp = Blueprint("vehicles", __name__, url_prefix="/api/vehicles")


@vehicles_bp.get("")
def list_vehicles_route():
    include_inactive = str(request.args.get("include_inactive", "")).lower() in {"1", "true", "yes"}
    vehicles = vehicle_service.list_vehicles(include_inactive=include_inactive)
    return jsonify({"vehicles": [v.to_dict() for v in vehicles]}), 200


@vehicles_bp.post("")
def create_vehicle_route():
    """
    Request body: {"vehicleName": str, "vehicleNumber": str, "notes": str (optional)}
    """
    payload = request.get_json(silent=True) or {}
    try:
        vehicle = vehicle_service.create_vehicle(
            pick(payload, "vehicleName", "vehicle_name"),
            pick(payload, "vehicleNumber", "vehicle_number"),
            notes=pick(payload, "notes"),
        )
        return jsonify(vehicle.to_dict()), 201
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@vehicles_bp.get("/<int:vehicle_id>")
def get_vehicle_route(vehicle_id: int):
    try:
        return jsonify(vehicle_service.get_vehicle(vehicle_id).to_dict()), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@vehicles_bp.put("/<int:vehicle_id>")
def update_vehicle_route(vehicle_id: int):
    """
    Request body (all optional):
    {"vehicleName": str, "vehicleNumber": str, "notes": str, "isActive": bool}

    Returns:
        200: Vehicle updated
        400: Invalid field or duplicate number
        409: Deactivation while stock is loaded or a transfer is open
    """
    payload = request.get_json(silent=True) or {}
    try:
        vehicle = vehicle_service.update_vehicle(
            vehicle_id,
            vehicle_name=pick(payload, "vehicleName", "vehicle_name"),
            vehicle_number=pick(payload, "vehicleNumber", "vehicle_number"),
            notes=pick(payload, "notes"),
            is_active=pick(payload, "isActive", "is_active"),
        )
        return jsonify(vehicle.to_dict()), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@vehicles_bp.delete("/<int:vehicle_id>")
def delete_vehicle_route(vehicle_id: int):
    """Soft delete; 409 while the vehicle holds stock or has an open transfer."""
    try:
        return jsonify(vehicle_service.deactivate_vehicle(vehicle_id).to_dict()), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@vehicles_bp.get("/<int:vehicle_id>/inventory")
def vehicle_inventory_route(vehicle_id: int):
    """Everything loaded on the vehicle, per item and layer."""
    try:
        rows = vehicle_service.get_vehicle_inventory(vehicle_id)
        return jsonify({
            "vehicle_id": vehicle_id,
            "items": rows,
            "total_base_pieces": sum(r["base_pieces"] for r in rows),
        }), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@vehicles_bp.get("/<int:vehicle_id>/collected-items")
def collected_items_route(vehicle_id: int):
    """Acknowledged issue lines, one row per transfer/item/layer."""
    try:
        items = transfer_service.get_collected_items(vehicle_id)
        return jsonify({"vehicle_id": vehicle_id, "items": items, "count": len(items)}), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@vehicles_bp.post("/<int:vehicle_id>/break-unit")
def break_unit_route(vehicle_id: int):
    """
    Open loaded outer units into inner units.

    Request body: {"inventoryId": int, "fromLayer": int, "toLayer": int, "quantity": int}
    """
    payload = request.get_json(silent=True) or {}
    try:
        breakdown = vehicle_service.break_unit(
            vehicle_id,
            pick(payload, "inventoryId", "inventory_id"),
            pick(payload, "fromLayer", "from_layer"),
            pick(payload, "toLayer", "to_layer"),
            pick(payload, "quantity"),
            performed_by=g.get("actor_id"),
        )
        return jsonify(breakdown.to_dict()), 201
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
