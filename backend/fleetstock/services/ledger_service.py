# Overview: Append-only audit trail for warehouse stock mutations.

from __future__ import annotations

from ..extensions import db
from ..models import StockAdjustment
"""
Stock Adjustment Invariants (authoritative)

- Append-only: no updates or deletes of existing rows.
- Written inside the same DB transaction as the stock mutation it records,
  so an aborted transfer leaves no audit row behind.
- previous_stock / new_stock / delta are base pieces.
"""

ADJUSTMENT_REASONS = frozenset({"replenish", "issue", "return", "adjustment", "damage", "sale", "count"})


def append_stock_adjustment(
    *,
    item_id: int,
    reason: str,
    delta_base_pieces: int,
    previous_stock: int,
    new_stock: int,
    layer_index: int | None = None,
    layer_quantity: int | None = None,
    transfer_id: int | None = None,
    vehicle_id: int | None = None,
    invoice_ref: str | None = None,
    actor_id: str | None = None,
    note: str | None = None,
) -> StockAdjustment:
    if reason not in ADJUSTMENT_REASONS:
        raise ValueError(f"unknown adjustment reason {reason!r}")

    adj = StockAdjustment(
        item_id=item_id,
        reason=reason,
        delta_base_pieces=delta_base_pieces,
        previous_stock=previous_stock,
        new_stock=new_stock,
        layer_index=layer_index,
        layer_quantity=layer_quantity,
        transfer_id=transfer_id,
        vehicle_id=vehicle_id,
        invoice_ref=invoice_ref,
        actor_id=actor_id,
        note=note[:255] if note else None,
    )
    db.session.add(adj)
    db.session.flush()  # ensures adj.id is assigned without committing
    return adj
