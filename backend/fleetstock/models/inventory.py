from __future__ import annotations

from ..extensions import db
from ..services import packaging
from fleetstock.time_utils import isoformat_z


class InventoryItem(db.Model):
    """
    Warehouse stock for one product.

    SOURCE OF TRUTH:
    total_base_pieces is the ONLY stored stock figure. Per-layer stock
    (cartons, dozens, ...) is derived from it on every read through the
    packaging structure and is never persisted.

    CONCURRENCY:
    Rows are read with SELECT ... FOR UPDATE before mutation and carry a
    version_id column, so concurrent writers on the same item serialize
    while writers on different items do not contend.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.CheckConstraint("total_base_pieces >= 0", name="ck_inventory_items_non_negative"),
        db.Index("ix_inventory_items_category_name", "category", "product_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True, index=True)

    # Authoritative storage in cents
    buying_price_cents = db.Column(db.Integer, nullable=True)
    selling_price_cents = db.Column(db.Integer, nullable=True)

    # Canonical [{layerIndex, unit, qty}] (outermost first)
    packaging_structure = db.Column(db.JSON, nullable=False)

    total_base_pieces = db.Column(db.BigInteger, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_invoice_ref = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def layers(self) -> list[packaging.PackagingLayer]:
        return packaging.normalize(self.packaging_structure)

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} name={self.product_name!r} pieces={self.total_base_pieces}>"

    def to_dict(self) -> dict:
        layers = self.layers
        stocks = packaging.derive_layer_stocks(layers, self.total_base_pieces)
        return {
            "id": self.id,
            "product_name": self.product_name,
            "category": self.category,
            "buying_price_cents": self.buying_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "packaging_structure": packaging.serialize(layers),
            "total_base_pieces": self.total_base_pieces,
            "layer_stocks": [
                {
                    "layer_index": layer.layer_index,
                    "unit": layer.unit,
                    "pieces_per_unit": packaging.pieces_per_unit(layers, layer.layer_index),
                    "stock": stocks[layer.layer_index],
                }
                for layer in layers
            ],
            "is_active": self.is_active,
            "last_invoice_ref": self.last_invoice_ref,
            "version_id": self.version_id,
            "created_at": isoformat_z(self.created_at),
            "updated_at": isoformat_z(self.updated_at),
        }


class StockAdjustment(db.Model):
    """
    Append-only audit row for every warehouse stock mutation.

    Written in the same DB transaction as the mutation it records; never
    updated or deleted. previous_stock/new_stock are in base pieces.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.Index("ix_stock_adjustments_item_created", "item_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    # replenish, issue, return, adjustment, damage, sale, count
    reason = db.Column(db.String(32), nullable=False, index=True)

    delta_base_pieces = db.Column(db.BigInteger, nullable=False)
    previous_stock = db.Column(db.BigInteger, nullable=False)
    new_stock = db.Column(db.BigInteger, nullable=False)

    # Layer the caller expressed the quantity in, when there was one
    layer_index = db.Column(db.Integer, nullable=True)
    layer_quantity = db.Column(db.BigInteger, nullable=True)

    transfer_id = db.Column(db.Integer, db.ForeignKey("stock_transfers.id"), nullable=True, index=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicles.id"), nullable=True, index=True)
    invoice_ref = db.Column(db.String(64), nullable=True)
    actor_id = db.Column(db.String(64), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    item = db.relationship("InventoryItem", backref=db.backref("adjustments", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "reason": self.reason,
            "delta_base_pieces": self.delta_base_pieces,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "layer_index": self.layer_index,
            "layer_quantity": self.layer_quantity,
            "transfer_id": self.transfer_id,
            "vehicle_id": self.vehicle_id,
            "invoice_ref": self.invoice_ref,
            "actor_id": self.actor_id,
            "note": self.note,
            "created_at": isoformat_z(self.created_at),
        }
