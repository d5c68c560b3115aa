# Overview: Vehicle stock ledger; per-vehicle, per-item, per-layer loaded quantities.

# backend/fleetstock/services/vehicle_service.py

from __future__ import annotations

from sqlalchemy import func

from ..errors import ExceedsLoadedQuantityError, InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..logging_config import get_logger
from ..models import InventoryItem, StockTransfer, UnitBreakdown, Vehicle, VehicleStockEntry
from ..validation import coerce_int, optional_text, require_text
from . import packaging, unit_resolver
from .concurrency import RETRYABLE_WITH_INSERT, lock_for_update, run_atomic
from .inventory_service import OPEN_TRANSFER_STATUSES
"""
Vehicle Ledger Invariants (authoritative)

- A VehicleStockEntry quantity is in its layer's own unit and is never negative.
- Entries only move through issue / return deltas and unit breakdowns; a
  breakdown never changes the vehicle's base-piece total for the item.
- Creating a missing entry races other writers on the same key; the unique
  constraint rejects the loser, and the whole transaction is retried.
"""


logger = get_logger("vehicles")


def get_vehicle(vehicle_id: int, *, lock: bool = False) -> Vehicle:
    query = db.session.query(Vehicle).filter_by(id=vehicle_id)
    if lock:
        query = lock_for_update(query)
    vehicle = query.first()
    if vehicle is None:
        raise NotFoundError("Vehicle", vehicle_id)
    return vehicle


def list_vehicles(*, include_inactive: bool = False) -> list[Vehicle]:
    q = db.session.query(Vehicle)
    if not include_inactive:
        q = q.filter(Vehicle.is_active.is_(True))
    return q.order_by(Vehicle.vehicle_name.asc(), Vehicle.id.asc()).all()


def create_vehicle(vehicle_name, vehicle_number, notes=None) -> Vehicle:
    vehicle_name = require_text(vehicle_name, "vehicle_name", max_length=128)
    vehicle_number = require_text(vehicle_number, "vehicle_number", max_length=64).upper()
    notes = optional_text(notes, "notes")

    def _op():
        existing = db.session.query(Vehicle.id).filter_by(vehicle_number=vehicle_number).first()
        if existing:
            raise ValidationError(f"Vehicle number {vehicle_number} already exists", field="vehicle_number")
        vehicle = Vehicle(vehicle_name=vehicle_name, vehicle_number=vehicle_number, notes=notes, is_active=True)
        db.session.add(vehicle)
        db.session.flush()
        return vehicle

    vehicle = run_atomic(_op, retry_on=RETRYABLE_WITH_INSERT)
    logger.info("vehicle_created", extra={"vehicle_id": vehicle.id, "vehicle_number": vehicle_number})
    return vehicle


def _ensure_idle(vehicle: Vehicle) -> None:
    """A vehicle can only be retired once nothing is loaded or still in flight to it."""
    open_transfers = (
        db.session.query(func.count(StockTransfer.id))
        .filter(StockTransfer.vehicle_id == vehicle.id, StockTransfer.status.in_(OPEN_TRANSFER_STATUSES))
        .scalar()
    )
    if open_transfers:
        raise InvalidStateError(
            f"Cannot deactivate vehicle {vehicle.vehicle_number}: it has {open_transfers} open transfer(s)",
            action="deactivate",
            vehicle_id=vehicle.id,
        )
    loaded_units = (
        db.session.query(func.coalesce(func.sum(VehicleStockEntry.quantity), 0))
        .filter(VehicleStockEntry.vehicle_id == vehicle.id)
        .scalar()
    )
    if loaded_units:
        raise InvalidStateError(
            f"Cannot deactivate vehicle {vehicle.vehicle_number}: {loaded_units} units are still loaded",
            action="deactivate",
            vehicle_id=vehicle.id,
        )


def update_vehicle(
    vehicle_id: int,
    *,
    vehicle_name=None,
    vehicle_number=None,
    notes=None,
    is_active: bool | None = None,
) -> Vehicle:
    """
    Change a vehicle's details. None leaves a field untouched; notes="" clears them.

    Setting is_active=False is refused while the vehicle still holds stock or
    has an open transfer.
    """
    if vehicle_name is not None:
        vehicle_name = require_text(vehicle_name, "vehicle_name", max_length=128)
    if vehicle_number is not None:
        vehicle_number = require_text(vehicle_number, "vehicle_number", max_length=64).upper()
    if is_active is not None and not isinstance(is_active, bool):
        raise ValidationError("is_active must be a boolean", field="is_active")

    def _op():
        vehicle = get_vehicle(vehicle_id, lock=True)
        if vehicle_number is not None and vehicle_number != vehicle.vehicle_number:
            taken = (
                db.session.query(Vehicle.id)
                .filter(Vehicle.vehicle_number == vehicle_number, Vehicle.id != vehicle.id)
                .first()
            )
            if taken:
                raise ValidationError(f"Vehicle number {vehicle_number} already exists", field="vehicle_number")
            vehicle.vehicle_number = vehicle_number
        if vehicle_name is not None:
            vehicle.vehicle_name = vehicle_name
        if notes is not None:
            vehicle.notes = optional_text(notes, "notes")
        if is_active is False and vehicle.is_active:
            _ensure_idle(vehicle)
        if is_active is not None:
            vehicle.is_active = is_active
        db.session.flush()
        return vehicle

    vehicle = run_atomic(_op, retry_on=RETRYABLE_WITH_INSERT)
    logger.info("vehicle_updated", extra={"vehicle_id": vehicle.id, "is_active": vehicle.is_active})
    return vehicle


def deactivate_vehicle(vehicle_id: int) -> Vehicle:
    """Soft delete: history stays, the vehicle takes no new transfers or breakdowns."""
    return update_vehicle(vehicle_id, is_active=False)


def _get_entry(vehicle_id: int, item_id: int, layer_index: int, *, lock: bool = False) -> VehicleStockEntry | None:
    query = db.session.query(VehicleStockEntry).filter_by(
        vehicle_id=vehicle_id, item_id=item_id, layer_index=layer_index
    )
    if lock:
        query = lock_for_update(query)
    return query.first()


def loaded(vehicle_id: int, item_id: int) -> list[dict]:
    """[{layer_index, quantity}] for every layer of the item held on the vehicle."""
    entries = (
        db.session.query(VehicleStockEntry)
        .filter_by(vehicle_id=vehicle_id, item_id=item_id)
        .order_by(VehicleStockEntry.layer_index.asc())
        .all()
    )
    return [{"layer_index": e.layer_index, "quantity": e.quantity} for e in entries]


def loaded_quantity(vehicle_id: int, item_id: int, layer_index: int, *, lock: bool = False) -> int:
    entry = _get_entry(vehicle_id, item_id, layer_index, lock=lock)
    return entry.quantity if entry else 0


def total_base_pieces(vehicle_id: int, item_id: int, structure=None) -> int:
    """Base-piece equivalent of everything the vehicle holds for the item."""
    if structure is None:
        item = db.session.get(InventoryItem, item_id)
        if item is None:
            raise NotFoundError("Inventory item", item_id)
        layers = item.layers
    else:
        layers = packaging.normalize(structure)
    return sum(
        packaging.to_base_pieces(layers, row["layer_index"], row["quantity"])
        for row in loaded(vehicle_id, item_id)
    )


def _apply_issue_delta_locked(
    vehicle_id: int,
    item_id: int,
    layer_index: int,
    quantity: int,
    *,
    unit: str,
) -> VehicleStockEntry:
    """Credit a vehicle entry, creating it when absent; no commit."""
    entry = _get_entry(vehicle_id, item_id, layer_index, lock=True)
    if entry is None:
        entry = VehicleStockEntry(
            vehicle_id=vehicle_id,
            item_id=item_id,
            layer_index=layer_index,
            unit=unit,
            quantity=0,
        )
        db.session.add(entry)
    entry.quantity = (entry.quantity or 0) + quantity
    db.session.flush()
    return entry


def _apply_return_delta_locked(vehicle_id: int, item_id: int, layer_index: int, quantity: int) -> VehicleStockEntry:
    """Debit a vehicle entry; ExceedsLoadedQuantityError when it holds less than asked. No commit."""
    entry = _get_entry(vehicle_id, item_id, layer_index, lock=True)
    held = entry.quantity if entry else 0
    if quantity > held:
        raise ExceedsLoadedQuantityError(vehicle_id, item_id, layer_index, held, quantity)
    entry.quantity = held - quantity
    db.session.flush()
    return entry


def _resolve_layer(item: InventoryItem, layer_index) -> packaging.PackagingLayer:
    layers = item.layers
    return layers[unit_resolver.resolve(layers, layer_index, item_id=item.id)]


def apply_issue_delta(vehicle_id: int, item_id: int, layer_index: int, quantity) -> VehicleStockEntry:
    """Increment loaded quantity for one key in its own transaction."""
    quantity = coerce_int(quantity, "quantity", minimum=1)

    def _op():
        get_vehicle(vehicle_id)
        item = db.session.get(InventoryItem, item_id)
        if item is None:
            raise NotFoundError("Inventory item", item_id)
        layer = _resolve_layer(item, layer_index)
        return _apply_issue_delta_locked(vehicle_id, item_id, layer.layer_index, quantity, unit=layer.unit)

    return run_atomic(_op, retry_on=RETRYABLE_WITH_INSERT)


def apply_return_delta(vehicle_id: int, item_id: int, layer_index: int, quantity) -> VehicleStockEntry:
    """Decrement loaded quantity for one key in its own transaction."""
    quantity = coerce_int(quantity, "quantity", minimum=1)

    def _op():
        get_vehicle(vehicle_id)
        return _apply_return_delta_locked(vehicle_id, item_id, layer_index, quantity)

    return run_atomic(_op)


def get_vehicle_inventory(vehicle_id: int) -> list[dict]:
    """
    Everything loaded on a vehicle, one row per item/layer with quantity > 0,
    enriched with the item's name and current base-piece equivalent.
    """
    get_vehicle(vehicle_id)
    rows = (
        db.session.query(VehicleStockEntry, InventoryItem)
        .join(InventoryItem, InventoryItem.id == VehicleStockEntry.item_id)
        .filter(VehicleStockEntry.vehicle_id == vehicle_id, VehicleStockEntry.quantity > 0)
        .order_by(InventoryItem.product_name.asc(), VehicleStockEntry.layer_index.asc())
        .all()
    )

    results = []
    for entry, item in rows:
        layers = item.layers
        ppu = packaging.pieces_per_unit(layers, entry.layer_index)
        data = entry.to_dict()
        data.update(
            {
                "product_name": item.product_name,
                "pieces_per_unit": ppu,
                "base_pieces": entry.quantity * ppu,
            }
        )
        results.append(data)
    return results


def vehicle_base_piece_total() -> int:
    """Sum of base pieces loaded on all vehicles, across every item."""
    total = 0
    rows = (
        db.session.query(VehicleStockEntry, InventoryItem)
        .join(InventoryItem, InventoryItem.id == VehicleStockEntry.item_id)
        .filter(VehicleStockEntry.quantity > 0)
        .all()
    )
    for entry, item in rows:
        total += packaging.to_base_pieces(item.layers, entry.layer_index, entry.quantity)
    return total


def break_unit(
    vehicle_id: int,
    item_id: int,
    from_layer,
    to_layer,
    quantity,
    performed_by: str | None = None,
) -> UnitBreakdown:
    """
    Open loaded outer units into inner units on the vehicle.

    e.g. 1 CTN (120 pcs) -> 10 DZ. The vehicle's base-piece total for the item
    is unchanged and the warehouse is not touched.
    """
    from_layer = coerce_int(from_layer, "from_layer", minimum=0)
    to_layer = coerce_int(to_layer, "to_layer", minimum=0)
    quantity = coerce_int(quantity, "quantity", minimum=1)
    if from_layer >= to_layer:
        raise ValidationError("from_layer must be an outer layer of to_layer", field="to_layer")

    def _op():
        vehicle = get_vehicle(vehicle_id)
        if not vehicle.is_active:
            raise InvalidStateError(f"Vehicle {vehicle.vehicle_number} is inactive", action="break_unit")
        item = db.session.get(InventoryItem, item_id)
        if item is None:
            raise NotFoundError("Inventory item", item_id)

        layers = item.layers
        outer = _resolve_layer(item, from_layer)
        inner = _resolve_layer(item, to_layer)
        rate = packaging.pieces_per_unit(layers, from_layer) // packaging.pieces_per_unit(layers, to_layer)
        resulting = quantity * rate

        _apply_return_delta_locked(vehicle_id, item_id, outer.layer_index, quantity)
        _apply_issue_delta_locked(vehicle_id, item_id, inner.layer_index, resulting, unit=inner.unit)

        breakdown = UnitBreakdown(
            vehicle_id=vehicle_id,
            item_id=item_id,
            from_layer=from_layer,
            to_layer=to_layer,
            quantity=quantity,
            resulting_quantity=resulting,
            conversion_rate=rate,
            performed_by=performed_by,
        )
        db.session.add(breakdown)
        db.session.flush()
        return breakdown

    breakdown = run_atomic(_op, retry_on=RETRYABLE_WITH_INSERT)
    logger.info(
        "unit_broken_down",
        extra={
            "vehicle_id": vehicle_id,
            "item_id": item_id,
            "from_layer": from_layer,
            "to_layer": to_layer,
            "quantity": quantity,
            "resulting_quantity": breakdown.resulting_quantity,
        },
    )
    return breakdown
