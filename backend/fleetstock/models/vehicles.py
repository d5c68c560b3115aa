from __future__ import annotations

from ..extensions import db
from fleetstock.time_utils import isoformat_z


class Vehicle(db.Model):
    __tablename__ = "vehicles"
    __table_args__ = (
        db.UniqueConstraint("vehicle_number", name="uq_vehicles_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vehicle_name = db.Column(db.String(128), nullable=False)
    vehicle_number = db.Column(db.String(64), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Vehicle id={self.id} number={self.vehicle_number!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vehicle_name": self.vehicle_name,
            "vehicle_number": self.vehicle_number,
            "is_active": self.is_active,
            "notes": self.notes,
            "created_at": isoformat_z(self.created_at),
        }


class VehicleStockEntry(db.Model):
    """
    Stock physically loaded on a vehicle, per item and packaging layer.

    WHY per layer: a vehicle accumulates stock issued in mixed units over time
    (5 cartons on Monday, 3 dozen on Tuesday). Quantities stay in the layer's
    own unit and are only converted to base pieces on read.

    The (vehicle_id, item_id, layer_index) key is unique; it is the unit of
    locking for issue/return deltas. Quantity never goes negative.
    """
    __tablename__ = "vehicle_stock_entries"
    __table_args__ = (
        db.UniqueConstraint("vehicle_id", "item_id", "layer_index", name="uq_vehicle_stock_key"),
        db.CheckConstraint("quantity >= 0", name="ck_vehicle_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicles.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    layer_index = db.Column(db.Integer, nullable=False)

    # Label of the layer when the entry was first loaded
    unit = db.Column(db.String(64), nullable=False)
    quantity = db.Column(db.BigInteger, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    vehicle = db.relationship("Vehicle", backref=db.backref("stock_entries", lazy=True))
    item = db.relationship("InventoryItem")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vehicle_id": self.vehicle_id,
            "item_id": self.item_id,
            "layer_index": self.layer_index,
            "unit": self.unit,
            "quantity": self.quantity,
            "version_id": self.version_id,
            "updated_at": isoformat_z(self.updated_at),
        }


class UnitBreakdown(db.Model):
    """Record of outer units opened into inner units on a vehicle (e.g. 1 carton -> 10 dozen)."""
    __tablename__ = "unit_breakdowns"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicles.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    from_layer = db.Column(db.Integer, nullable=False)
    to_layer = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    resulting_quantity = db.Column(db.BigInteger, nullable=False)
    conversion_rate = db.Column(db.BigInteger, nullable=False)

    performed_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vehicle_id": self.vehicle_id,
            "item_id": self.item_id,
            "from_layer": self.from_layer,
            "to_layer": self.to_layer,
            "quantity": self.quantity,
            "resulting_quantity": self.resulting_quantity,
            "conversion_rate": self.conversion_rate,
            "performed_by": self.performed_by,
            "created_at": isoformat_z(self.created_at),
        }
