from __future__ import annotations

from ..extensions import db
from fleetstock.time_utils import isoformat_z


class StockTransfer(db.Model):
    """
    Warehouse <-> vehicle transfer document.

    LIFECYCLE (direction="issue"):
    1. pending: created, units resolved and snapshotted, awaiting approval
    2. approved: warehouse debited and vehicle credited in one transaction
    3. partially_collected: some lines acknowledged by the vehicle crew
    4. collected: every line acknowledged (no ledger effect)
    5. cancelled: withdrawn while still pending (no ledger effect ever existed)

    direction="return" documents are written already "confirmed": the ledger
    movement is applied in the same transaction that creates the record.
    """
    __tablename__ = "stock_transfers"
    __table_args__ = (
        db.UniqueConstraint("transfer_number", name="uq_stock_transfers_number"),
        db.Index("ix_stock_transfers_vehicle_created", "vehicle_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Document number (e.g., "TRF-2026-001")
    transfer_number = db.Column(db.String(32), nullable=False)

    vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicles.id"), nullable=False, index=True)

    # issue, return
    direction = db.Column(db.String(16), nullable=False, index=True)

    # pending, approved, partially_collected, collected, cancelled, confirmed
    status = db.Column(db.String(24), nullable=False, default="pending", index=True)

    notes = db.Column(db.Text, nullable=True)

    # Attribution (opaque ids supplied by the calling service)
    created_by = db.Column(db.String(64), nullable=True)
    approved_by = db.Column(db.String(64), nullable=True)
    confirmed_by = db.Column(db.String(64), nullable=True)
    cancelled_by = db.Column(db.String(64), nullable=True)

    # Timestamps for each lifecycle stage
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    cancellation_reason = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    vehicle = db.relationship("Vehicle")
    lines = db.relationship(
        "StockTransferLine",
        backref="transfer",
        lazy=True,
        order_by="StockTransferLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def items_snapshot(self) -> list[dict]:
        """Lines grouped per inventory item, in the order they were requested."""
        grouped: dict[int, dict] = {}
        for line in self.lines:
            entry = grouped.setdefault(
                line.item_id,
                {"inventoryId": line.item_id, "productName": line.product_name, "layers": []},
            )
            entry["layers"].append(line.to_snapshot())
        return list(grouped.values())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_number": self.transfer_number,
            "vehicle_id": self.vehicle_id,
            "direction": self.direction,
            "status": self.status,
            "notes": self.notes,
            "items": self.items_snapshot(),
            "total_base_pieces": sum(line.base_pieces for line in self.lines),
            "created_by": self.created_by,
            "approved_by": self.approved_by,
            "confirmed_by": self.confirmed_by,
            "cancelled_by": self.cancelled_by,
            "created_at": isoformat_z(self.created_at),
            "approved_at": isoformat_z(self.approved_at),
            "confirmed_at": isoformat_z(self.confirmed_at),
            "cancelled_at": isoformat_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "version_id": self.version_id,
        }


class StockTransferLine(db.Model):
    """
    One item/layer on a transfer, snapshotted at creation.

    unit, quantity and pieces_per_unit are frozen here so history stays
    accurate even if the item's packaging structure changes later. Only the
    collection acknowledgement fields change after creation.
    """
    __tablename__ = "stock_transfer_lines"
    __table_args__ = (
        db.UniqueConstraint("transfer_id", "item_id", "layer_index", name="uq_transfer_line_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("stock_transfers.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    layer_index = db.Column(db.Integer, nullable=False)
    unit = db.Column(db.String(64), nullable=False)
    quantity = db.Column(db.BigInteger, nullable=False)
    pieces_per_unit = db.Column(db.BigInteger, nullable=False)
    base_pieces = db.Column(db.BigInteger, nullable=False)

    collected = db.Column(db.Boolean, nullable=False, default=False)
    collected_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_snapshot(self) -> dict:
        return {
            "lineId": self.id,
            "layerIndex": self.layer_index,
            "unit": self.unit,
            "quantity": self.quantity,
            "piecesPerUnit": self.pieces_per_unit,
            "basePieces": self.base_pieces,
            "collected": self.collected,
            "collectedAt": isoformat_z(self.collected_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-period document sequences.

    WHY: Prevent race conditions when generating transfer numbers.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "period", name="uq_doc_sequences_type_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    period = db.Column(db.String(8), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
