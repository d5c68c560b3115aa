# backend/fleetstock/services/transfer_service.py
"""
Warehouse <-> vehicle stock transfer workflow.

Issues move stock from the warehouse onto a vehicle; returns move it back.
Both ledgers are only ever mutated here, inside one database transaction per
document, so a transfer is applied completely or not at all.

LIFECYCLE (issue):
1. pending: document created, units resolved and snapshotted
2. approved: warehouse debited, vehicle credited
3. partially_collected: some lines acknowledged by the vehicle crew
4. collected: every line acknowledged (no ledger effect)
5. cancelled: withdrawn while pending

Returns are applied on creation and recorded as "confirmed".
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from flask import current_app

from ..errors import ExceedsLoadedQuantityError, InsufficientStockError, InvalidStateError, NotFoundError
from ..extensions import db
from ..logging_config import get_logger
from ..models import InventoryItem, StockTransfer, StockTransferLine
from ..time_utils import isoformat_z, utcnow
from ..validation import optional_text, parse_return_items, parse_transfer_items, require_text
from . import inventory_service, packaging, unit_resolver, vehicle_service
from .concurrency import RETRYABLE_WITH_INSERT, lock_for_update, run_atomic
from .document_service import next_document_number


logger = get_logger("transfers")

# Transfer status constants
TRANSFER_STATUS_PENDING = "pending"
TRANSFER_STATUS_APPROVED = "approved"
TRANSFER_STATUS_PARTIALLY_COLLECTED = "partially_collected"
TRANSFER_STATUS_COLLECTED = "collected"
TRANSFER_STATUS_CANCELLED = "cancelled"
TRANSFER_STATUS_CONFIRMED = "confirmed"

DIRECTION_ISSUE = "issue"
DIRECTION_RETURN = "return"

TRANSFER_DOCUMENT_TYPE = "STOCK_TRANSFER"
TRANSFER_PREFIX = "TRF"


@dataclass(frozen=True)
class Transition:
    sources: tuple[str, ...]
    guard: Optional[Callable[[StockTransfer], Optional[str]]] = None


def _issue_only(transfer: StockTransfer) -> Optional[str]:
    if transfer.direction != DIRECTION_ISSUE:
        return f"Transfer {transfer.transfer_number} is a {transfer.direction}, not an issue"
    return None


def _has_lines(transfer: StockTransfer) -> Optional[str]:
    if not transfer.lines:
        return f"Transfer {transfer.transfer_number} has no lines"
    return _issue_only(transfer)


TRANSITIONS = {
    "approve": Transition((TRANSFER_STATUS_PENDING,), _has_lines),
    "cancel": Transition((TRANSFER_STATUS_PENDING,), _issue_only),
    "collect": Transition((TRANSFER_STATUS_APPROVED, TRANSFER_STATUS_PARTIALLY_COLLECTED), _issue_only),
    "confirm": Transition((TRANSFER_STATUS_APPROVED, TRANSFER_STATUS_PARTIALLY_COLLECTED), _issue_only),
}


def _check_transition(transfer: StockTransfer, action: str) -> None:
    transition = TRANSITIONS[action]
    if transfer.status not in transition.sources:
        raise InvalidStateError(
            f"Cannot {action} transfer {transfer.transfer_number} in {transfer.status} status",
            current_status=transfer.status,
            action=action,
            transfer_id=transfer.id,
        )
    if transition.guard is not None:
        problem = transition.guard(transfer)
        if problem:
            raise InvalidStateError(
                problem, current_status=transfer.status, action=action, transfer_id=transfer.id
            )


def _get_transfer(transfer_id: int, *, lock: bool = False) -> StockTransfer:
    query = db.session.query(StockTransfer).filter_by(id=transfer_id)
    if lock:
        query = lock_for_update(query)
    transfer = query.first()
    if transfer is None:
        raise NotFoundError("Transfer", transfer_id)
    return transfer


def get_transfer(transfer_id: int) -> StockTransfer:
    return _get_transfer(transfer_id)


def _resolve_item_layers(item, layer_requests) -> list[tuple[packaging.PackagingLayer, int]]:
    """Resolve every requested layer and merge quantities that land on the same layer."""
    layers = item.layers
    merged: dict[int, int] = {}
    for request in layer_requests:
        idx = unit_resolver.resolve(layers, request.layer_index, request.unit, item_id=item.id)
        merged[idx] = merged.get(idx, 0) + request.quantity
    return [(layers[idx], qty) for idx, qty in merged.items()]


def _build_line(item, layer: packaging.PackagingLayer, quantity: int, layers) -> StockTransferLine:
    ppu = packaging.pieces_per_unit(layers, layer.layer_index)
    return StockTransferLine(
        item_id=item.id,
        product_name=item.product_name,
        layer_index=layer.layer_index,
        unit=layer.unit,
        quantity=quantity,
        pieces_per_unit=ppu,
        base_pieces=packaging.to_base_pieces(layers, layer.layer_index, quantity),
        collected=False,
    )


def _approve_locked(transfer: StockTransfer, approved_by: str | None) -> None:
    """
    Apply an issue document to both ledgers. Caller holds the transfer lock and
    owns the transaction.

    Availability is re-checked for every item before anything is written; the
    creation-time check was only advisory. Quantities come from the line
    snapshots, not the item's current packaging.
    """
    _check_transition(transfer, "approve")

    required: dict[int, int] = {}
    for line in transfer.lines:
        required[line.item_id] = required.get(line.item_id, 0) + line.base_pieces

    items = inventory_service.lock_items(required)
    for item_id in sorted(required):
        item = items[item_id]
        if item.total_base_pieces < required[item_id]:
            raise InsufficientStockError(item_id, item.total_base_pieces, required[item_id], item.product_name)

    # Same (item, layer) order as break_unit and return_stock take their entry locks
    for line in sorted(transfer.lines, key=lambda l: (l.item_id, l.layer_index)):
        inventory_service._apply_delta_locked(
            items[line.item_id],
            -line.base_pieces,
            reason="issue",
            layer_index=line.layer_index,
            layer_quantity=line.quantity,
            transfer_id=transfer.id,
            vehicle_id=transfer.vehicle_id,
            actor_id=approved_by,
        )
        vehicle_service._apply_issue_delta_locked(
            transfer.vehicle_id, line.item_id, line.layer_index, line.quantity, unit=line.unit
        )

    transfer.status = TRANSFER_STATUS_APPROVED
    transfer.approved_by = approved_by
    transfer.approved_at = utcnow()


def create_transfer(
    vehicle_id: int,
    items,
    notes: str | None = None,
    created_by: str | None = None,
    auto_approve: bool | None = None,
) -> StockTransfer:
    """
    Create an issue document (status: pending).

    items: [{inventoryId, layers: [{layerIndex|unit, quantity}]}]

    Raises:
        ValidationError / UnitResolutionError: malformed request
        NotFoundError: unknown vehicle or item
        InsufficientStockError: warehouse cannot cover an item right now
    """
    requests = parse_transfer_items(items, max_items=current_app.config.get("MAX_TRANSFER_ITEMS", 100))
    notes = optional_text(notes, "notes")
    if auto_approve is None:
        auto_approve = bool(current_app.config.get("AUTO_APPROVE_TRANSFERS", False))

    def _op():
        vehicle = vehicle_service.get_vehicle(vehicle_id)
        if not vehicle.is_active:
            raise InvalidStateError(f"Vehicle {vehicle.vehicle_number} is inactive", action="create")

        lines = []
        for request in requests:
            item = inventory_service.get_item(request.inventory_id)
            if not item.is_active:
                raise InvalidStateError(f"{item.product_name} is inactive", action="create", item_id=item.id)
            layers = item.layers
            item_lines = [_build_line(item, layer, qty, layers) for layer, qty in _resolve_item_layers(item, request.layers)]

            # Advisory only; approval re-checks under lock
            needed = sum(line.base_pieces for line in item_lines)
            if needed > item.total_base_pieces:
                raise InsufficientStockError(item.id, item.total_base_pieces, needed, item.product_name)
            lines.extend(item_lines)

        transfer = StockTransfer(
            transfer_number=next_document_number(document_type=TRANSFER_DOCUMENT_TYPE, prefix=TRANSFER_PREFIX),
            vehicle_id=vehicle.id,
            direction=DIRECTION_ISSUE,
            status=TRANSFER_STATUS_PENDING,
            notes=notes,
            created_by=created_by,
            lines=lines,
        )
        db.session.add(transfer)
        db.session.flush()

        if auto_approve:
            _approve_locked(transfer, created_by)
        return transfer

    transfer = run_atomic(_op, retry_on=RETRYABLE_WITH_INSERT)
    logger.info(
        "transfer_created",
        extra={
            "transfer_id": transfer.id,
            "transfer_number": transfer.transfer_number,
            "vehicle_id": vehicle_id,
            "lines": len(transfer.lines),
            "status": transfer.status,
        },
    )
    return transfer


def approve_transfer(transfer_id: int, approved_by: str | None = None) -> StockTransfer:
    """
    Approve a pending issue: debit the warehouse and credit the vehicle in one
    transaction.

    Raises:
        InvalidStateError: not pending, or not an issue
        InsufficientStockError: any item can no longer be covered (nothing is applied)
    """
    def _op():
        transfer = _get_transfer(transfer_id, lock=True)
        _approve_locked(transfer, approved_by)
        return transfer

    transfer = run_atomic(_op, retry_on=RETRYABLE_WITH_INSERT)
    logger.info(
        "transfer_approved",
        extra={"transfer_id": transfer.id, "transfer_number": transfer.transfer_number, "approved_by": approved_by},
    )
    return transfer


def _mark_collected(line: StockTransferLine, now: datetime) -> None:
    line.collected = True
    line.collected_at = now


def confirm_transfer(transfer_id: int, confirmed_by: str | None = None) -> StockTransfer:
    """
    Acknowledge receipt of an approved issue. Pure status change.

    Confirming an already collected (or confirmed) document returns it
    unchanged; ledger effects are never re-applied.
    """
    def _op():
        transfer = _get_transfer(transfer_id, lock=True)
        if transfer.status in (TRANSFER_STATUS_COLLECTED, TRANSFER_STATUS_CONFIRMED):
            return transfer, False

        _check_transition(transfer, "confirm")
        now = utcnow()
        for line in transfer.lines:
            if not line.collected:
                _mark_collected(line, now)
        transfer.status = TRANSFER_STATUS_COLLECTED
        transfer.confirmed_by = confirmed_by
        transfer.confirmed_at = now
        return transfer, True

    transfer, changed = run_atomic(_op)
    if changed:
        logger.info("transfer_collected", extra={"transfer_id": transfer.id, "confirmed_by": confirmed_by})
    return transfer


def collect_transfer_line(transfer_id: int, line_id: int, collected_by: str | None = None) -> StockTransfer:
    """Acknowledge one line; the document is collected once every line is."""
    def _op():
        transfer = _get_transfer(transfer_id, lock=True)
        _check_transition(transfer, "collect")

        line = next((l for l in transfer.lines if l.id == line_id), None)
        if line is None:
            raise NotFoundError("Transfer line", line_id)
        if line.collected:
            return transfer

        now = utcnow()
        _mark_collected(line, now)
        if all(l.collected for l in transfer.lines):
            transfer.status = TRANSFER_STATUS_COLLECTED
            transfer.confirmed_by = collected_by
            transfer.confirmed_at = now
        else:
            transfer.status = TRANSFER_STATUS_PARTIALLY_COLLECTED
        return transfer

    transfer = run_atomic(_op)
    logger.info(
        "transfer_line_collected",
        extra={"transfer_id": transfer.id, "line_id": line_id, "status": transfer.status},
    )
    return transfer


def cancel_transfer(transfer_id: int, reason, cancelled_by: str | None = None) -> StockTransfer:
    """Cancel a pending issue. No ledger effect ever existed, so none is undone."""
    reason = require_text(reason, "reason", max_length=500)

    def _op():
        transfer = _get_transfer(transfer_id, lock=True)
        _check_transition(transfer, "cancel")
        transfer.status = TRANSFER_STATUS_CANCELLED
        transfer.cancelled_by = cancelled_by
        transfer.cancelled_at = utcnow()
        transfer.cancellation_reason = reason
        return transfer

    transfer = run_atomic(_op)
    logger.info("transfer_cancelled", extra={"transfer_id": transfer.id, "reason": reason})
    return transfer


def return_stock(vehicle_id: int, items, notes: str | None = None, created_by: str | None = None) -> StockTransfer:
    """
    Move stock from a vehicle back to the warehouse, immediately.

    items: [{inventoryId, quantity, unit|layerIndex}] (or the nested layers shape)

    Every item/layer is checked against what the vehicle holds before anything
    is written. Base pieces are computed with the item's current packaging.

    Raises:
        ExceedsLoadedQuantityError: names the first offending item/layer
    """
    requests = parse_return_items(items, max_items=current_app.config.get("MAX_TRANSFER_ITEMS", 100))
    notes = optional_text(notes, "notes")

    def _op():
        vehicle = vehicle_service.get_vehicle(vehicle_id)

        # (item_id, layer_index) -> quantity
        wanted: dict[tuple[int, int], int] = {}
        catalog = {}
        for request in requests:
            item = catalog.get(request.inventory_id) or inventory_service.get_item(request.inventory_id)
            catalog[item.id] = item
            for layer, qty in _resolve_item_layers(item, request.layers):
                key = (item.id, layer.layer_index)
                wanted[key] = wanted.get(key, 0) + qty

        # Lock order: items, then vehicle entries
        items_locked = inventory_service.lock_items(catalog)
        for (item_id, layer_index), qty in sorted(wanted.items()):
            held = vehicle_service.loaded_quantity(vehicle.id, item_id, layer_index, lock=True)
            if qty > held:
                raise ExceedsLoadedQuantityError(vehicle.id, item_id, layer_index, held, qty)

        now = utcnow()
        lines = []
        for (item_id, layer_index), qty in sorted(wanted.items()):
            item = items_locked[item_id]
            layers = item.layers
            line = _build_line(item, layers[layer_index], qty, layers)
            line.collected = True
            line.collected_at = now
            lines.append(line)

        transfer = StockTransfer(
            transfer_number=next_document_number(document_type=TRANSFER_DOCUMENT_TYPE, prefix=TRANSFER_PREFIX),
            vehicle_id=vehicle.id,
            direction=DIRECTION_RETURN,
            status=TRANSFER_STATUS_CONFIRMED,
            notes=notes,
            created_by=created_by,
            confirmed_by=created_by,
            confirmed_at=now,
            lines=lines,
        )
        db.session.add(transfer)
        db.session.flush()

        for line in lines:
            vehicle_service._apply_return_delta_locked(vehicle.id, line.item_id, line.layer_index, line.quantity)
            inventory_service._apply_delta_locked(
                items_locked[line.item_id],
                line.base_pieces,
                reason="return",
                layer_index=line.layer_index,
                layer_quantity=line.quantity,
                transfer_id=transfer.id,
                vehicle_id=vehicle.id,
                actor_id=created_by,
            )
        return transfer

    transfer = run_atomic(_op, retry_on=RETRYABLE_WITH_INSERT)
    logger.info(
        "stock_returned",
        extra={
            "transfer_id": transfer.id,
            "transfer_number": transfer.transfer_number,
            "vehicle_id": vehicle_id,
            "base_pieces": sum(line.base_pieces for line in transfer.lines),
        },
    )
    return transfer


def list_transfers(
    *,
    vehicle_id: int | None = None,
    status: str | None = None,
    direction: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[StockTransfer], int]:
    """Newest first. Returns (page of transfers, total matching)."""
    q = db.session.query(StockTransfer)
    if vehicle_id is not None:
        q = q.filter(StockTransfer.vehicle_id == vehicle_id)
    if status:
        q = q.filter(StockTransfer.status == status)
    if direction:
        q = q.filter(StockTransfer.direction == direction)
    if start is not None:
        q = q.filter(StockTransfer.created_at >= start)
    if end is not None:
        q = q.filter(StockTransfer.created_at <= end)

    total = q.count()
    page = max(page, 1)
    rows = (
        q.order_by(StockTransfer.created_at.desc(), StockTransfer.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def list_pending_transfers(vehicle_id: int | None = None) -> list[StockTransfer]:
    q = db.session.query(StockTransfer).filter(StockTransfer.status == TRANSFER_STATUS_PENDING)
    if vehicle_id is not None:
        q = q.filter(StockTransfer.vehicle_id == vehicle_id)
    return q.order_by(StockTransfer.created_at.asc(), StockTransfer.id.asc()).all()


def get_collected_items(vehicle_id: int) -> list[dict]:
    """
    Issue lines the vehicle crew has acknowledged, flattened one row per
    transfer/item/layer. This is what the vehicle can offer for sale.
    """
    vehicle_service.get_vehicle(vehicle_id)
    rows = (
        db.session.query(StockTransferLine, StockTransfer, InventoryItem)
        .join(StockTransfer, StockTransfer.id == StockTransferLine.transfer_id)
        .join(InventoryItem, InventoryItem.id == StockTransferLine.item_id)
        .filter(
            StockTransfer.vehicle_id == vehicle_id,
            StockTransfer.direction == DIRECTION_ISSUE,
            StockTransfer.status.in_((TRANSFER_STATUS_PARTIALLY_COLLECTED, TRANSFER_STATUS_COLLECTED)),
            StockTransferLine.collected.is_(True),
            StockTransferLine.quantity > 0,
        )
        .order_by(StockTransfer.id.asc(), StockTransferLine.id.asc())
        .all()
    )
    return [
        {
            "inventoryId": line.item_id,
            "productName": line.product_name,
            "unit": line.unit,
            "quantity": line.quantity,
            "layerIndex": line.layer_index,
            "piecesPerUnit": line.pieces_per_unit,
            "sellingPriceCents": item.selling_price_cents or 0,
            "packagingStructure": packaging.serialize(item.layers),
            "transferId": transfer.id,
            "transferNumber": transfer.transfer_number,
            "collectedAt": isoformat_z(line.collected_at),
        }
        for line, transfer, item in rows
    ]
