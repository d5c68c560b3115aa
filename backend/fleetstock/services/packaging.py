# Overview: Packaging hierarchy normalization and layer <-> base piece conversion.

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..errors import InvalidPackagingStructureError, UnitResolutionError, ValidationError
"""
Packaging Invariants (authoritative)

- Layers are ordered outermost (layer_index 0) -> innermost (layer_index n).
- layer.qty is how many units of the NEXT-INNER layer one unit of this layer holds.
- The innermost layer is the indivisible base piece; its qty is always 1.
- pieces_per_unit(i) = qty(i) * qty(i+1) * ... * qty(n-1); 1 at the base layer.
  e.g. CTN(qty=10) > DZ(qty=12) > PCS  =>  CTN=120, DZ=12, PCS=1
- Layer stocks are derived: floor(total_base_pieces / pieces_per_unit(i)).

Accepted raw shapes (normalized once, at ingestion):
- flat array:  [{"layerIndex": 0, "unit": "CTN", "qty": 10}, {"unit": "PCS"}]
- nested:      {"outer": {"unit": "CTN", "qty": 10}, "inner": {"outer": ..., "inner": "PCS"}}
- carton/packet object: {"cartonSize": 10, "packetSize": 12}
- bare unit string: "PCS"  -> single base layer
"""

DEFAULT_BASE_UNIT = "piece"

# Base-piece figures are stored in BIGINT columns
MAX_BASE_PIECES = 2**63 - 1

FORM_FLAT_ARRAY = "FlatArrayForm"
FORM_LEGACY_NESTED = "LegacyNestedForm"
FORM_CARTON_PACKET = "CartonPacketForm"
FORM_BARE_UNIT = "BareUnitForm"


@dataclass(frozen=True)
class PackagingLayer:
    layer_index: int
    unit: str
    qty: int = 1

    def to_dict(self) -> dict:
        return {"layerIndex": self.layer_index, "unit": self.unit, "qty": self.qty}


def _first_present(raw: dict, *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _coerce_qty(value: Any, unit: str) -> int:
    if isinstance(value, bool):
        raise InvalidPackagingStructureError(f"qty for layer '{unit}' must be an integer", field="qty")
    if isinstance(value, float):
        if not value.is_integer():
            raise InvalidPackagingStructureError(f"qty for layer '{unit}' must be a whole number", field="qty")
        value = int(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped.lstrip("-").isdigit():
            raise InvalidPackagingStructureError(f"qty for layer '{unit}' must be an integer", field="qty")
        value = int(stripped)
    if not isinstance(value, int):
        raise InvalidPackagingStructureError(f"qty for layer '{unit}' must be an integer", field="qty")
    if value <= 0:
        raise InvalidPackagingStructureError(f"qty for layer '{unit}' must be positive, got {value}", field="qty")
    return value


def _coerce_unit(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidPackagingStructureError("every packaging layer needs a non-empty unit", field="unit")
    return value.strip()


def _raw_layer(raw: Any) -> dict:
    """Reduce one layer-ish value to {"layer_index", "unit", "qty"} (any may be None)."""
    if isinstance(raw, PackagingLayer):
        return {"layer_index": raw.layer_index, "unit": raw.unit, "qty": raw.qty}
    if isinstance(raw, str):
        return {"layer_index": None, "unit": raw, "qty": None}
    if isinstance(raw, dict):
        return {
            "layer_index": _first_present(raw, "layerIndex", "layer_index"),
            "unit": _first_present(raw, "unit", "name", "label"),
            "qty": _first_present(raw, "qty", "contains"),
        }
    raise InvalidPackagingStructureError(f"unsupported packaging layer: {raw!r}")


def detect_form(raw: Any) -> str:
    if raw is None or isinstance(raw, str):
        return FORM_BARE_UNIT
    if isinstance(raw, (list, tuple)):
        return FORM_FLAT_ARRAY
    if isinstance(raw, dict):
        if "outer" in raw or "inner" in raw:
            return FORM_LEGACY_NESTED
        if "cartonSize" in raw or "packetSize" in raw:
            return FORM_CARTON_PACKET
        # A single layer dict is a one-element flat array
        return FORM_FLAT_ARRAY
    raise InvalidPackagingStructureError(f"unsupported packaging structure type: {type(raw).__name__}")


def _flatten_nested(raw: Any) -> list[dict]:
    layers: list[dict] = []
    node = raw
    depth = 0
    while node is not None:
        depth += 1
        if depth > 32:
            raise InvalidPackagingStructureError("packaging nesting is too deep")
        if isinstance(node, dict) and ("outer" in node or "inner" in node):
            if node.get("outer") is not None:
                layers.append(_raw_layer(node["outer"]))
            node = node.get("inner")
        else:
            layers.append(_raw_layer(node))
            node = None
    return layers


def _from_carton_packet(raw: dict) -> list[dict]:
    layers = []
    if raw.get("cartonSize") is not None:
        layers.append({"layer_index": None, "unit": raw.get("cartonUnit") or "carton", "qty": raw["cartonSize"]})
    if raw.get("packetSize") is not None:
        layers.append({"layer_index": None, "unit": raw.get("packetUnit") or "packet", "qty": raw["packetSize"]})
    layers.append({"layer_index": None, "unit": raw.get("baseUnit") or raw.get("unit") or DEFAULT_BASE_UNIT, "qty": None})
    return layers


def _assign_indexes(raw_layers: list[dict]) -> list[dict]:
    """Sort by explicit layer_index where given; fill the rest sequentially."""
    taken: set[int] = set()
    for layer in raw_layers:
        idx = layer["layer_index"]
        if idx is None:
            continue
        if isinstance(idx, bool) or not isinstance(idx, int):
            if isinstance(idx, str) and idx.strip().isdigit():
                idx = int(idx.strip())
            else:
                raise InvalidPackagingStructureError(f"layerIndex must be an integer, got {idx!r}", field="layerIndex")
        if idx < 0:
            raise InvalidPackagingStructureError("layerIndex must be >= 0", field="layerIndex")
        if idx in taken:
            raise InvalidPackagingStructureError(f"duplicate layerIndex {idx}", field="layerIndex")
        taken.add(idx)
        layer["layer_index"] = idx

    next_free = 0
    for layer in raw_layers:
        if layer["layer_index"] is None:
            while next_free in taken:
                next_free += 1
            layer["layer_index"] = next_free
            taken.add(next_free)

    ordered = sorted(raw_layers, key=lambda l: l["layer_index"])
    for position, layer in enumerate(ordered):
        if layer["layer_index"] != position:
            raise InvalidPackagingStructureError(
                f"layer indexes must be contiguous from 0, missing {position}", field="layerIndex"
            )
    return ordered


def normalize(raw: Any) -> list[PackagingLayer]:
    """
    Map any accepted packaging shape to the canonical list of PackagingLayer.

    Raises InvalidPackagingStructureError for non-positive qty, a non-base layer
    without qty, blank units, or non-contiguous indexes.
    """
    form = detect_form(raw)

    if form == FORM_BARE_UNIT:
        if raw is None or not raw.strip():
            return [PackagingLayer(0, DEFAULT_BASE_UNIT, 1)]
        return [PackagingLayer(0, raw.strip(), 1)]

    if form == FORM_LEGACY_NESTED:
        raw_layers = _flatten_nested(raw)
    elif form == FORM_CARTON_PACKET:
        raw_layers = _from_carton_packet(raw)
    elif isinstance(raw, dict):
        raw_layers = [_raw_layer(raw)]
    else:
        raw_layers = [_raw_layer(layer) for layer in raw]

    if not raw_layers:
        return [PackagingLayer(0, DEFAULT_BASE_UNIT, 1)]

    ordered = _assign_indexes(raw_layers)
    base_index = len(ordered) - 1

    layers = []
    for layer in ordered:
        unit = _coerce_unit(layer["unit"])
        if layer["layer_index"] == base_index:
            # Base piece is indivisible; a supplied qty is only checked for sign.
            if layer["qty"] is not None:
                _coerce_qty(layer["qty"], unit)
            qty = 1
        else:
            if layer["qty"] is None:
                raise InvalidPackagingStructureError(f"layer '{unit}' needs a qty of inner units", field="qty")
            qty = _coerce_qty(layer["qty"], unit)
        layers.append(PackagingLayer(layer["layer_index"], unit, qty))
    return layers


def serialize(layers: list[PackagingLayer]) -> list[dict]:
    return [layer.to_dict() for layer in layers]


def base_layer_index(layers: list[PackagingLayer]) -> int:
    return len(layers) - 1


def pieces_per_unit(layers: list[PackagingLayer], layer_index: int) -> int:
    if isinstance(layer_index, bool) or not isinstance(layer_index, int) or not 0 <= layer_index < len(layers):
        raise UnitResolutionError(
            f"layer {layer_index!r} is outside the packaging structure (0..{len(layers) - 1})",
            layer_index=layer_index,
        )
    multiplier = 1
    for layer in layers[layer_index:-1]:
        multiplier *= layer.qty
    return multiplier


def derive_layer_stocks(layers: list[PackagingLayer], total_base_pieces: int) -> dict[int, int]:
    """Read-side view only; recomputed on every query."""
    if total_base_pieces < 0:
        raise ValidationError("total_base_pieces cannot be negative", field="total_base_pieces")
    return {
        layer.layer_index: total_base_pieces // pieces_per_unit(layers, layer.layer_index)
        for layer in layers
    }


def to_base_pieces(layers: list[PackagingLayer], layer_index: int, qty: int) -> int:
    if isinstance(qty, bool) or not isinstance(qty, int) or qty < 0:
        raise ValidationError(f"quantity must be a non-negative integer, got {qty!r}", field="quantity")
    pieces = qty * pieces_per_unit(layers, layer_index)
    if pieces > MAX_BASE_PIECES:
        raise ValidationError(
            f"{qty} units of layer {layer_index} is {pieces} base pieces, above the storable maximum",
            field="quantity",
        )
    return pieces
