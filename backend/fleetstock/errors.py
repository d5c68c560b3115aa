"""
Typed errors for the stock ledgers and transfer workflow.

Every error carries a machine-readable ``code``, the HTTP status a route should
answer with, and the offending keys as structured ``details`` so callers can
render a precise message without parsing strings.

    StockError
    +-- ValidationError
    |   +-- InvalidPackagingStructureError
    +-- UnitResolutionError
    +-- InsufficientStockError
    +-- ExceedsLoadedQuantityError
    +-- InvalidStateError
    +-- NotFoundError
    +-- PersistenceError
"""
from __future__ import annotations

from typing import Any


class StockError(Exception):
    """Base class for caller-visible ledger and workflow errors."""

    code = "STOCK_ERROR"
    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.details = {k: v for k, v in details.items() if v is not None}

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, **self.details}


class ValidationError(StockError, ValueError):
    """400-level input problem (malformed request shape or value)."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, **details: Any):
        super().__init__(message, field=field, **details)
        self.field = field


class InvalidPackagingStructureError(ValidationError):
    """Packaging hierarchy is malformed (non-positive qty, gaps, blank units)."""

    code = "INVALID_PACKAGING_STRUCTURE"


class UnitResolutionError(StockError):
    """Requested unit / layer index does not map to a layer of the item."""

    code = "UNIT_RESOLUTION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        unit: str | None = None,
        layer_index: Any = None,
        item_id: int | None = None,
    ):
        super().__init__(message, unit=unit, layer_index=layer_index, item_id=item_id)
        self.unit = unit
        self.layer_index = layer_index
        self.item_id = item_id


class InsufficientStockError(StockError):
    """Warehouse holds fewer base pieces than requested."""

    code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, item_id: int, available: int, requested: int, product_name: str | None = None):
        label = product_name or f"item {item_id}"
        super().__init__(
            f"Insufficient stock for {label}. Available: {available}, Needed: {requested}",
            item_id=item_id,
            available=available,
            requested=requested,
        )
        self.item_id = item_id
        self.available = available
        self.requested = requested


class ExceedsLoadedQuantityError(StockError):
    """Return asks for more than the vehicle has loaded at that layer."""

    code = "EXCEEDS_LOADED_QUANTITY"
    status_code = 409

    def __init__(self, vehicle_id: int, item_id: int, layer_index: int, loaded: int, requested: int):
        super().__init__(
            f"Vehicle {vehicle_id} holds {loaded} of item {item_id} at layer {layer_index}, "
            f"cannot remove {requested}",
            vehicle_id=vehicle_id,
            item_id=item_id,
            layer_index=layer_index,
            loaded=loaded,
            requested=requested,
        )
        self.vehicle_id = vehicle_id
        self.item_id = item_id
        self.layer_index = layer_index
        self.loaded = loaded
        self.requested = requested


class InvalidStateError(StockError):
    """Illegal state transition or operation on a document/item in its current state."""

    code = "INVALID_STATE"
    status_code = 409

    def __init__(self, message: str, *, current_status: str | None = None, action: str | None = None, **details: Any):
        super().__init__(message, current_status=current_status, action=action, **details)
        self.current_status = current_status
        self.action = action


class NotFoundError(StockError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found" if resource_id is None else f"{resource} {resource_id} not found"
        super().__init__(message, resource=resource, resource_id=resource_id)
        self.resource = resource
        self.resource_id = resource_id


class PersistenceError(StockError):
    """Transient database failures persisted past the retry budget."""

    code = "PERSISTENCE_ERROR"
    status_code = 503
