# backend/fleetstock/routes/inventory.py
"""
Warehouse inventory routes.

Quantities in request bodies are expressed at a packaging layer
(layerIndex or unit); the ledger converts them to base pieces.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..errors import StockError
from ..extensions import db
from ..services import inventory_service, vehicle_service
from ..validation import coerce_int, pick


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _flag(value) -> bool:
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


@inventory_bp.get("")
def list_inventory_route():
    """
    List warehouse items with derived layer stocks.

    Query params: category, search, include_inactive
    """
    try:
        items = inventory_service.list_inventory(
            category=request.args.get("category"),
            search=request.args.get("search"),
            include_inactive=_flag(request.args.get("include_inactive")),
        )
        return jsonify({"items": [i.to_dict() for i in items], "count": len(items)}), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.post("")
def create_item_route():
    """
    Create an item.

    Request body:
    {
        "productName": str,
        "packagingStructure": [{"layerIndex": 0, "unit": "CTN", "qty": 10}, ...] (optional),
        "category": str (optional),
        "buyingPriceCents": int (optional),
        "sellingPriceCents": int (optional),
        "openingStock": int (optional, at openingLayerIndex/openingUnit, default base pieces)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        item = inventory_service.create_item(
            product_name=pick(payload, "productName", "product_name"),
            packaging_structure=pick(payload, "packagingStructure", "packaging_structure"),
            category=pick(payload, "category"),
            buying_price_cents=pick(payload, "buyingPriceCents", "buying_price_cents"),
            selling_price_cents=pick(payload, "sellingPriceCents", "selling_price_cents"),
            opening_stock=pick(payload, "openingStock", "opening_stock", default=0),
            opening_layer_index=pick(payload, "openingLayerIndex", "opening_layer_index"),
            opening_unit=pick(payload, "openingUnit", "opening_unit"),
            actor_id=g.get("actor_id"),
        )
        return jsonify(item.to_dict()), 201
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.get("/low-stock")
def low_stock_route():
    try:
        threshold = request.args.get("threshold")
        if threshold is None:
            threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 10)
        threshold = coerce_int(threshold, "threshold", minimum=0)
        items = inventory_service.list_low_stock(threshold)
        return jsonify({"threshold": threshold, "items": [i.to_dict() for i in items]}), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.get("/stock-position")
def stock_position_route():
    """Base pieces in the warehouse and out on vehicles; issues and returns never change the sum."""
    warehouse = inventory_service.warehouse_base_piece_total()
    on_vehicles = vehicle_service.vehicle_base_piece_total()
    return jsonify({
        "warehouse_base_pieces": warehouse,
        "vehicle_base_pieces": on_vehicles,
        "total_base_pieces": warehouse + on_vehicles,
    }), 200


@inventory_bp.get("/<int:item_id>")
def get_item_route(item_id: int):
    try:
        return jsonify(inventory_service.get_item(item_id).to_dict()), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.put("/<int:item_id>/packaging")
def update_packaging_route(item_id: int):
    """
    Replace the packaging structure. 409 while the item is on an open
    transfer or loaded on a vehicle.
    """
    payload = request.get_json(silent=True) or {}
    try:
        item = inventory_service.update_packaging_structure(
            item_id, pick(payload, "packagingStructure", "packaging_structure")
        )
        return jsonify(item.to_dict()), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.delete("/<int:item_id>")
def delete_item_route(item_id: int):
    try:
        item = inventory_service.delete_item(item_id)
        return jsonify(item.to_dict()), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.post("/<int:item_id>/replenish")
def replenish_route(item_id: int):
    """
    Receive stock against a supplier invoice.

    Request body:
    {
        "quantity": int,
        "layerIndex": int | "unit": str (default outermost layer),
        "invoiceRef": str,
        "buyingPriceCents": int (optional),
        "note": str (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        item = inventory_service.replenish(
            item_id,
            pick(payload, "quantity"),
            layer_index=pick(payload, "layerIndex", "layer_index"),
            invoice_ref=pick(payload, "invoiceRef", "invoice_ref", "invoiceId", "invoice_id"),
            unit=pick(payload, "unit"),
            buying_price_cents=pick(payload, "buyingPriceCents", "buying_price_cents"),
            note=pick(payload, "note"),
            actor_id=g.get("actor_id"),
        )
        return jsonify(item.to_dict()), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.post("/<int:item_id>/adjust")
def adjust_route(item_id: int):
    """
    Manual correction in base pieces.

    Request body: {"delta": int, "reason": "adjustment|damage|sale|count", "note": str}
    """
    payload = request.get_json(silent=True) or {}
    try:
        item = inventory_service.adjust_stock(
            item_id,
            pick(payload, "delta", "deltaBasePieces", "delta_base_pieces"),
            pick(payload, "reason", default="adjustment"),
            note=pick(payload, "note"),
            actor_id=g.get("actor_id"),
        )
        return jsonify(item.to_dict()), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.post("/<int:item_id>/adjust-layer")
def adjust_layer_route(item_id: int):
    """
    Manual correction counted in a packaging layer.

    Request body:
    {
        "quantity": int (signed, e.g. -2 for two damaged cartons),
        "layerIndex": int | "unit": str,
        "reason": "adjustment|damage|sale|count",
        "note": str (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        item = inventory_service.adjust_stock_by_layer(
            item_id,
            pick(payload, "quantity"),
            pick(payload, "layerIndex", "layer_index"),
            pick(payload, "reason", default="adjustment"),
            unit=pick(payload, "unit"),
            note=pick(payload, "note"),
            actor_id=g.get("actor_id"),
        )
        return jsonify(item.to_dict()), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.get("/<int:item_id>/available")
def available_route(item_id: int):
    layer_index = request.args.get("layerIndex", request.args.get("layer_index"))
    unit = request.args.get("unit")
    try:
        if layer_index is None and unit is None:
            layer_index = 0
        quantity = inventory_service.available(item_id, layer_index, unit)
        return jsonify({"item_id": item_id, "layer_index": layer_index, "unit": unit, "available": quantity}), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.get("/<int:item_id>/adjustments")
def adjustments_route(item_id: int):
    try:
        limit = coerce_int(request.args.get("limit", 200), "limit", minimum=1, maximum=1000)
        rows = inventory_service.list_adjustments(item_id, limit)
        return jsonify({"item_id": item_id, "adjustments": [r.to_dict() for r in rows]}), 200
    except StockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
