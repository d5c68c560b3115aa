# Overview: Warehouse inventory ledger; encapsulates business logic and database work.

# backend/fleetstock/services/inventory_service.py

from __future__ import annotations

from sqlalchemy import func, or_

from ..errors import InsufficientStockError, InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..logging_config import get_logger
from ..models import InventoryItem, StockAdjustment, StockTransfer, StockTransferLine, VehicleStockEntry
from ..validation import MAX_QUANTITY, coerce_int, optional_text, require_text
from . import packaging, unit_resolver
from .concurrency import lock_for_update, run_atomic
from .ledger_service import append_stock_adjustment
"""
Warehouse Ledger Invariants (authoritative)

- InventoryItem.total_base_pieces is the only stored stock figure and is never negative.
- Layer stocks are derived on read: total_base_pieces // pieces_per_unit(layer).
- Every mutation is a locked read-modify-write of one item row inside a
  transaction, and appends a StockAdjustment in that same transaction.
- The *_locked helpers never commit; they are the building blocks for
  multi-item transactions (transfer approval, returns). The public functions
  wrap them in run_atomic() and commit.
"""


logger = get_logger("inventory")

MANUAL_ADJUSTMENT_REASONS = ("adjustment", "damage", "sale", "count")

# Issue statuses that still reference their items (not collected, cancelled or confirmed)
OPEN_TRANSFER_STATUSES = ("pending", "approved", "partially_collected")


def _get_item(item_id: int, *, lock: bool = False) -> InventoryItem:
    query = db.session.query(InventoryItem).filter_by(id=item_id)
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if item is None:
        raise NotFoundError("Inventory item", item_id)
    return item


def lock_items(item_ids) -> dict[int, InventoryItem]:
    """
    Lock several item rows for update.

    Rows are locked in ascending id order so two multi-item transactions can
    never wait on each other in opposite orders.
    """
    locked = {}
    for item_id in sorted(set(item_ids)):
        locked[item_id] = _get_item(item_id, lock=True)
    return locked


def get_item(item_id: int) -> InventoryItem:
    return _get_item(item_id)


def list_inventory(
    *,
    category: str | None = None,
    search: str | None = None,
    include_inactive: bool = False,
) -> list[InventoryItem]:
    """All warehouse items; to_dict() carries packaging and derived layer stocks."""
    q = db.session.query(InventoryItem)
    if not include_inactive:
        q = q.filter(InventoryItem.is_active.is_(True))
    if category:
        q = q.filter(InventoryItem.category == category)
    if search:
        like = f"%{search.strip().lower()}%"
        q = q.filter(or_(func.lower(InventoryItem.product_name).like(like), func.lower(InventoryItem.category).like(like)))
    return q.order_by(InventoryItem.product_name.asc(), InventoryItem.id.asc()).all()


def list_low_stock(threshold: int) -> list[InventoryItem]:
    return (
        db.session.query(InventoryItem)
        .filter(InventoryItem.is_active.is_(True), InventoryItem.total_base_pieces <= threshold)
        .order_by(InventoryItem.total_base_pieces.asc(), InventoryItem.id.asc())
        .all()
    )


def list_adjustments(item_id: int, limit: int = 200) -> list[StockAdjustment]:
    _get_item(item_id)
    return (
        db.session.query(StockAdjustment)
        .filter_by(item_id=item_id)
        .order_by(StockAdjustment.id.desc())
        .limit(limit)
        .all()
    )


def warehouse_base_piece_total() -> int:
    """Base pieces held in the warehouse, across every item (inactive included)."""
    total = db.session.query(func.coalesce(func.sum(InventoryItem.total_base_pieces), 0)).scalar()
    return int(total or 0)


def available(item_id: int, layer_index=None, unit: str | None = None) -> int:
    """Whole units of the requested layer the warehouse can supply right now."""
    item = _get_item(item_id)
    layers = item.layers
    idx = unit_resolver.resolve(layers, layer_index, unit, item_id=item_id)
    return packaging.derive_layer_stocks(layers, item.total_base_pieces)[idx]


def _apply_delta_locked(
    item: InventoryItem,
    delta_base_pieces: int,
    *,
    reason: str,
    layer_index: int | None = None,
    layer_quantity: int | None = None,
    transfer_id: int | None = None,
    vehicle_id: int | None = None,
    invoice_ref: str | None = None,
    actor_id: str | None = None,
    note: str | None = None,
) -> StockAdjustment:
    """Core read-modify-write on an already locked item; no commit."""
    previous = item.total_base_pieces
    new_stock = previous + delta_base_pieces
    if new_stock < 0:
        raise InsufficientStockError(item.id, previous, -delta_base_pieces, item.product_name)
    if new_stock > packaging.MAX_BASE_PIECES:
        raise ValidationError(
            f"{item.product_name} would hold {new_stock} base pieces, above the storable maximum",
            field="delta",
            item_id=item.id,
        )

    item.total_base_pieces = new_stock
    db.session.flush()

    return append_stock_adjustment(
        item_id=item.id,
        reason=reason,
        delta_base_pieces=delta_base_pieces,
        previous_stock=previous,
        new_stock=new_stock,
        layer_index=layer_index,
        layer_quantity=layer_quantity,
        transfer_id=transfer_id,
        vehicle_id=vehicle_id,
        invoice_ref=invoice_ref,
        actor_id=actor_id,
        note=note,
    )


def apply_delta(item_id: int, delta_base_pieces: int, *, reason: str = "adjustment", **kwargs) -> InventoryItem:
    """
    Atomically add (or remove, when negative) base pieces for one item.

    Raises InsufficientStockError if the result would be negative.
    """
    if isinstance(delta_base_pieces, bool) or not isinstance(delta_base_pieces, int):
        raise ValidationError("delta must be an integer number of base pieces", field="delta")

    def _op():
        item = _get_item(item_id, lock=True)
        _apply_delta_locked(item, delta_base_pieces, reason=reason, **kwargs)
        return item

    return run_atomic(_op)


def replenish(
    item_id: int,
    quantity,
    layer_index=None,
    invoice_ref: str | None = None,
    *,
    unit: str | None = None,
    buying_price_cents=None,
    note: str | None = None,
    actor_id: str | None = None,
) -> InventoryItem:
    """
    Receive stock against a supplier invoice.

    quantity is expressed at layer_index (or unit); it is converted to base
    pieces through the item's packaging structure before it touches the ledger.
    """
    quantity = coerce_int(quantity, "quantity", minimum=1)
    invoice_ref = require_text(invoice_ref, "invoice_ref", max_length=64)
    if buying_price_cents is not None:
        buying_price_cents = coerce_int(buying_price_cents, "buying_price_cents", minimum=0)
    note = optional_text(note, "note", max_length=255)
    if layer_index is None and unit is None:
        layer_index = 0

    def _op():
        item = _get_item(item_id, lock=True)
        if not item.is_active:
            raise InvalidStateError(f"{item.product_name} is inactive", action="replenish", item_id=item_id)
        layers = item.layers
        idx = unit_resolver.resolve(layers, layer_index, unit, item_id=item_id)
        pieces = packaging.to_base_pieces(layers, idx, quantity)

        _apply_delta_locked(
            item,
            pieces,
            reason="replenish",
            layer_index=idx,
            layer_quantity=quantity,
            invoice_ref=invoice_ref,
            actor_id=actor_id,
            note=note,
        )
        item.last_invoice_ref = invoice_ref
        if buying_price_cents is not None:
            item.buying_price_cents = buying_price_cents
        return item, idx, pieces

    item, idx, pieces = run_atomic(_op)
    logger.info(
        "inventory_replenished",
        extra={
            "item_id": item.id,
            "invoice_ref": invoice_ref,
            "layer_index": idx,
            "quantity": quantity,
            "base_pieces": pieces,
            "new_total": item.total_base_pieces,
        },
    )
    return item


def adjust_stock(
    item_id: int,
    delta_base_pieces,
    reason: str = "adjustment",
    *,
    note: str | None = None,
    actor_id: str | None = None,
) -> InventoryItem:
    """
    Manual correction outside the transfer workflow (damage, count, sale consumption).
    """
    delta = coerce_int(delta_base_pieces, "delta", maximum=None)
    if delta == 0:
        raise ValidationError("delta cannot be zero", field="delta")
    if reason not in MANUAL_ADJUSTMENT_REASONS:
        raise ValidationError(
            f"reason must be one of: {', '.join(MANUAL_ADJUSTMENT_REASONS)}", field="reason"
        )
    item = apply_delta(
        item_id,
        delta,
        reason=reason,
        note=optional_text(note, "note", max_length=255),
        actor_id=actor_id,
    )
    logger.info("inventory_adjusted", extra={"item_id": item_id, "delta": delta, "reason": reason})
    return item


def adjust_stock_by_layer(
    item_id: int,
    quantity,
    layer_index=None,
    reason: str = "adjustment",
    *,
    unit: str | None = None,
    note: str | None = None,
    actor_id: str | None = None,
) -> InventoryItem:
    """
    Manual correction counted in a packaging layer, e.g. -2 CTN for damaged cartons.

    quantity is signed; it is converted to base pieces through the item's
    current packaging structure.
    """
    quantity = coerce_int(quantity, "quantity", minimum=-MAX_QUANTITY)
    if quantity == 0:
        raise ValidationError("quantity cannot be zero", field="quantity")
    if reason not in MANUAL_ADJUSTMENT_REASONS:
        raise ValidationError(
            f"reason must be one of: {', '.join(MANUAL_ADJUSTMENT_REASONS)}", field="reason"
        )
    note = optional_text(note, "note", max_length=255)

    def _op():
        item = _get_item(item_id, lock=True)
        layers = item.layers
        idx = unit_resolver.resolve(layers, layer_index, unit, item_id=item_id)
        pieces = packaging.to_base_pieces(layers, idx, abs(quantity))
        delta = pieces if quantity > 0 else -pieces
        _apply_delta_locked(
            item,
            delta,
            reason=reason,
            layer_index=idx,
            layer_quantity=quantity,
            actor_id=actor_id,
            note=note or f"Layer {idx} adjustment: {quantity} units",
        )
        return item, idx, delta

    item, idx, delta = run_atomic(_op)
    logger.info(
        "inventory_adjusted",
        extra={"item_id": item_id, "layer_index": idx, "quantity": quantity, "delta": delta, "reason": reason},
    )
    return item


def create_item(
    *,
    product_name,
    packaging_structure=None,
    category=None,
    buying_price_cents=None,
    selling_price_cents=None,
    opening_stock=0,
    opening_layer_index=None,
    opening_unit: str | None = None,
    actor_id: str | None = None,
) -> InventoryItem:
    """
    Manual entry of a new item. Opening stock is given at a layer (default
    base pieces) and recorded as a "count" adjustment.
    """
    product_name = require_text(product_name, "product_name")
    category = optional_text(category, "category", max_length=128)
    layers = packaging.normalize(packaging_structure)
    if buying_price_cents is not None:
        buying_price_cents = coerce_int(buying_price_cents, "buying_price_cents", minimum=0)
    if selling_price_cents is not None:
        selling_price_cents = coerce_int(selling_price_cents, "selling_price_cents", minimum=0)
    opening = coerce_int(opening_stock, "opening_stock", minimum=0)

    if opening_layer_index is None and opening_unit is None:
        opening_layer_index = packaging.base_layer_index(layers)
    idx = unit_resolver.resolve(layers, opening_layer_index, opening_unit)
    opening_pieces = packaging.to_base_pieces(layers, idx, opening)

    def _op():
        item = InventoryItem(
            product_name=product_name,
            category=category,
            buying_price_cents=buying_price_cents,
            selling_price_cents=selling_price_cents,
            packaging_structure=packaging.serialize(layers),
            total_base_pieces=0,
            is_active=True,
        )
        db.session.add(item)
        db.session.flush()

        if opening_pieces:
            _apply_delta_locked(
                item,
                opening_pieces,
                reason="count",
                layer_index=idx,
                layer_quantity=opening,
                actor_id=actor_id,
                note="Opening stock",
            )
        return item

    item = run_atomic(_op)
    logger.info("inventory_item_created", extra={"item_id": item.id, "base_pieces": item.total_base_pieces})
    return item


def _open_references(item_id: int) -> tuple[int, int]:
    """(open transfer lines, vehicle units loaded) referencing the item."""
    open_lines = (
        db.session.query(func.count(StockTransferLine.id))
        .join(StockTransfer, StockTransfer.id == StockTransferLine.transfer_id)
        .filter(StockTransferLine.item_id == item_id, StockTransfer.status.in_(OPEN_TRANSFER_STATUSES))
        .scalar()
    )
    loaded = (
        db.session.query(func.coalesce(func.sum(VehicleStockEntry.quantity), 0))
        .filter(VehicleStockEntry.item_id == item_id)
        .scalar()
    )
    return int(open_lines or 0), int(loaded or 0)


def _ensure_unreferenced(item: InventoryItem, action: str) -> None:
    open_lines, loaded = _open_references(item.id)
    if open_lines:
        raise InvalidStateError(
            f"Cannot {action} {item.product_name}: referenced by an open transfer",
            action=action,
            item_id=item.id,
        )
    if loaded:
        raise InvalidStateError(
            f"Cannot {action} {item.product_name}: {loaded} units are still loaded on vehicles",
            action=action,
            item_id=item.id,
        )


def update_packaging_structure(item_id: int, raw_structure) -> InventoryItem:
    """
    Replace an item's packaging hierarchy.

    Refused while an open transfer or any vehicle still references the item:
    vehicle quantities are stored per layer and would silently change value.
    Historical transfer lines keep their own snapshot.
    """
    layers = packaging.normalize(raw_structure)

    def _op():
        item = _get_item(item_id, lock=True)
        _ensure_unreferenced(item, "change packaging of")
        item.packaging_structure = packaging.serialize(layers)
        return item

    item = run_atomic(_op)
    logger.info("packaging_structure_updated", extra={"item_id": item_id, "layers": len(layers)})
    return item


def delete_item(item_id: int) -> InventoryItem:
    """
    Soft-delete an item (is_active=False). Its ledger history stays; it can no
    longer be issued or replenished.
    """
    def _op():
        item = _get_item(item_id, lock=True)
        _ensure_unreferenced(item, "remove")
        item.is_active = False
        return item

    item = run_atomic(_op)
    logger.info("inventory_item_deactivated", extra={"item_id": item_id})
    return item
