from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .errors import ValidationError


# Largest quantity accepted in one request line
MAX_QUANTITY = 1_000_000_000


@dataclass(frozen=True)
class LayerRequest:
    """One requested quantity, addressed by layer index and/or unit label."""
    quantity: int
    layer_index: Any = None
    unit: str | None = None


@dataclass(frozen=True)
class ItemRequest:
    inventory_id: int
    layers: tuple[LayerRequest, ...]


def pick(payload: dict, *keys: str, default: Any = None) -> Any:
    """First present key wins; lets callers send camelCase or snake_case."""
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return default


def coerce_int(value: Any, field: str, *, minimum: int | None = None, maximum: int | None = MAX_QUANTITY) -> int:
    """Strict integer parsing: rejects bools, decimals and scientific notation."""
    if value is None:
        raise ValidationError(f"{field} is required", field=field)

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field=field)
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", field=field)
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)", field=field)
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", field=field)
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", field=field)
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", field=field)
    else:
        raise ValidationError(f"{field} must be an integer", field=field)

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", field=field)
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field} must be <= {maximum}", field=field)
    return result


def optional_text(value: Any, field: str, *, max_length: int = 500) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} cannot exceed {max_length} characters", field=field)
    return text or None


def require_text(value: Any, field: str, *, max_length: int = 255) -> str:
    text = optional_text(value, field, max_length=max_length)
    if not text:
        raise ValidationError(f"{field} is required", field=field)
    return text


def _layer_request(raw: Any, field: str) -> LayerRequest:
    if not isinstance(raw, dict):
        raise ValidationError(f"{field} must be an object", field=field)

    layer_index = pick(raw, "layerIndex", "layer_index")
    unit = pick(raw, "unit")
    if layer_index is None and unit is None:
        raise ValidationError(f"{field} needs a layerIndex or a unit", field=field)
    if unit is not None and not isinstance(unit, str):
        raise ValidationError(f"{field}.unit must be a string", field=f"{field}.unit")

    quantity = coerce_int(pick(raw, "quantity", "qty"), f"{field}.quantity", minimum=1)
    return LayerRequest(quantity=quantity, layer_index=layer_index, unit=unit)


def parse_transfer_items(items: Any, *, max_items: int = 100) -> list[ItemRequest]:
    """
    Validate [{inventoryId, layers: [{layerIndex|unit, quantity}]}].

    Each inventory item may appear once; layers are merged per item by the
    workflow after unit resolution.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required", field="items")
    if len(items) > max_items:
        raise ValidationError(f"Cannot transfer more than {max_items} items at once", field="items")

    parsed = []
    seen: set[int] = set()
    for i, raw in enumerate(items):
        field = f"items[{i}]"
        if not isinstance(raw, dict):
            raise ValidationError(f"{field} must be an object", field=field)
        inventory_id = coerce_int(pick(raw, "inventoryId", "inventory_id"), f"{field}.inventoryId", minimum=1)
        if inventory_id in seen:
            raise ValidationError(f"Inventory item {inventory_id} appears more than once", field=field)
        seen.add(inventory_id)

        layers = pick(raw, "layers")
        if not isinstance(layers, list) or not layers:
            raise ValidationError(f"{field}.layers needs at least one layer", field=f"{field}.layers")
        parsed.append(
            ItemRequest(
                inventory_id=inventory_id,
                layers=tuple(_layer_request(layer, f"{field}.layers[{j}]") for j, layer in enumerate(layers)),
            )
        )
    return parsed


def parse_return_items(items: Any, *, max_items: int = 100) -> list[ItemRequest]:
    """
    Validate [{inventoryId, quantity, unit|layerIndex}].

    The nested {inventoryId, layers: [...]} shape used for issues is accepted
    too. The same item may be listed several times (different layers).
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required", field="items")
    if len(items) > max_items:
        raise ValidationError(f"Cannot return more than {max_items} items at once", field="items")

    parsed = []
    for i, raw in enumerate(items):
        field = f"items[{i}]"
        if not isinstance(raw, dict):
            raise ValidationError(f"{field} must be an object", field=field)
        inventory_id = coerce_int(pick(raw, "inventoryId", "inventory_id"), f"{field}.inventoryId", minimum=1)

        if isinstance(raw.get("layers"), list):
            layers = tuple(_layer_request(layer, f"{field}.layers[{j}]") for j, layer in enumerate(raw["layers"]))
            if not layers:
                raise ValidationError(f"{field}.layers needs at least one layer", field=f"{field}.layers")
        else:
            layers = (_layer_request(raw, field),)
        parsed.append(ItemRequest(inventory_id=inventory_id, layers=layers))
    return parsed
