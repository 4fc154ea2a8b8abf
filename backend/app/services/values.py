"""Property value coercion.

Data Object attributes are schema-free JSON, so values are coerced to the
semantic type of their Property at the edges: single-object create, batch
updates, and wizard commits.

    string / markdown / image   → str
    number                      → float, min/max bounds, rounded to precision
    rating                      → int in [0, 5]
    boolean                     → bool (bools, 0/1, true/false/yes/no/on/off)
    date                        → ISO-8601 string
    relationship                → id (one) or list of ids (many)

None clears a value for every type. Failures raise PropertyValueError, a
ValueError that remembers which property rejected the value.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any

from app.models.model import Model, Property, PropertyType

TEXT_TYPES = {PropertyType.STRING.value, PropertyType.MARKDOWN.value, PropertyType.IMAGE.value}
NUMERIC_TYPES = {PropertyType.NUMBER.value, PropertyType.RATING.value}
BOOLEAN_TYPES = {PropertyType.BOOLEAN.value}

# Types a batch update may target
BATCH_UPDATABLE_TYPES = TEXT_TYPES | NUMERIC_TYPES | BOOLEAN_TYPES

# Types whose uniqueness the store can probe
UNIQUE_PROBE_TYPES = TEXT_TYPES | NUMERIC_TYPES | BOOLEAN_TYPES

RATING_MIN = 0
RATING_MAX = 5

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}


class PropertyValueError(ValueError):
    """A value that cannot be coerced to its property's type."""

    def __init__(self, property_name: str, message: str):
        self.property_name = property_name
        super().__init__(message)


# ── Per-type coercion ────────────────────────────────────────

def _parse_number(prop: Property, raw: Any) -> float:
    if isinstance(raw, bool):
        raise PropertyValueError(prop.name, f'Invalid number value "{raw}" for property "{prop.name}"')
    try:
        value = float(str(raw).strip()) if isinstance(raw, str) else float(raw)
    except (TypeError, ValueError):
        raise PropertyValueError(
            prop.name, f'Invalid number value "{raw}" for property "{prop.name}"'
        ) from None
    if math.isnan(value) or math.isinf(value):
        raise PropertyValueError(prop.name, f'Invalid number value "{raw}" for property "{prop.name}"')
    return value


def _coerce_number(prop: Property, raw: Any) -> float:
    value = _parse_number(prop, raw)
    if prop.min_value is not None and value < prop.min_value:
        raise PropertyValueError(
            prop.name,
            f"Value '{value:g}' for property '{prop.name}' is less than the "
            f"minimum allowed value of {prop.min_value:g}",
        )
    if prop.max_value is not None and value > prop.max_value:
        raise PropertyValueError(
            prop.name,
            f"Value '{value:g}' for property '{prop.name}' is greater than the "
            f"maximum allowed value of {prop.max_value:g}",
        )
    if prop.precision is not None:
        value = round(value, prop.precision)
    return value


def _coerce_rating(prop: Property, raw: Any) -> int:
    value = _parse_number(prop, raw)
    if not value.is_integer() or not RATING_MIN <= value <= RATING_MAX:
        raise PropertyValueError(
            prop.name,
            f"Rating value for '{prop.name}' must be an integer between "
            f"{RATING_MIN} and {RATING_MAX}",
        )
    return int(value)


def _coerce_boolean(prop: Property, raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)) and raw in (0, 1):
        return bool(raw)
    if isinstance(raw, str):
        lowered = raw.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise PropertyValueError(prop.name, f'Invalid boolean value "{raw}" for property "{prop.name}"')


def _coerce_date(prop: Property, raw: Any) -> str:
    if isinstance(raw, (date, datetime)):
        return raw.isoformat()
    if isinstance(raw, str):
        text = raw.strip()
        try:
            if len(text) == 10:
                return date.fromisoformat(text).isoformat()
            return datetime.fromisoformat(text.replace("Z", "+00:00")).isoformat()
        except ValueError:
            pass
    raise PropertyValueError(prop.name, f'Invalid date value "{raw}" for property "{prop.name}"')


def _coerce_relationship(prop: Property, raw: Any) -> str | list[str]:
    if prop.relationship_type == "many":
        items = raw if isinstance(raw, (list, tuple)) else [raw]
        if not all(isinstance(i, str) and i for i in items):
            raise PropertyValueError(
                prop.name, f'Relationship "{prop.name}" expects a list of object ids'
            )
        return list(items)
    if not isinstance(raw, str) or not raw:
        raise PropertyValueError(prop.name, f'Relationship "{prop.name}" expects an object id')
    return raw


def coerce_value(prop: Property, raw: Any) -> Any:
    """Coerce a raw value to the semantic type of ``prop``."""
    if raw is None:
        return None
    ptype = prop.type
    if ptype in TEXT_TYPES:
        return str(raw)
    if ptype == PropertyType.NUMBER.value:
        return _coerce_number(prop, raw)
    if ptype == PropertyType.RATING.value:
        return _coerce_rating(prop, raw)
    if ptype == PropertyType.BOOLEAN.value:
        return _coerce_boolean(prop, raw)
    if ptype == PropertyType.DATE.value:
        return _coerce_date(prop, raw)
    if ptype == PropertyType.RELATIONSHIP.value:
        return _coerce_relationship(prop, raw)
    raise PropertyValueError(prop.name, f'Unsupported property type "{ptype}" for "{prop.name}"')


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip()) or value == []


# ── Whole attribute maps ─────────────────────────────────────

def _is_auto_date(prop: Property) -> bool:
    return prop.type == PropertyType.DATE.value


def prepare_attributes(
    model: Model,
    raw: dict[str, Any],
    *,
    enforce_required: bool = True,
) -> dict[str, Any]:
    """Coerce every declared property present in ``raw`` for a new object.

    Undeclared keys pass through untouched. Date properties flagged
    auto_set_on_create or auto_set_on_update are stamped with today's date.
    """
    result = dict(raw)
    today = date.today().isoformat()
    for prop in model.properties:
        if _is_auto_date(prop) and (prop.auto_set_on_create or prop.auto_set_on_update):
            result[prop.name] = today
            continue
        if prop.name in result:
            result[prop.name] = coerce_value(prop, result[prop.name])
        if enforce_required and prop.required and is_blank(result.get(prop.name)):
            raise PropertyValueError(prop.name, f"Property '{prop.name}' is required")
    return result


def stamp_updated_dates(model: Model, attributes: dict[str, Any]) -> dict[str, Any]:
    """Return ``attributes`` with auto_set_on_update dates set to today."""
    today = date.today().isoformat()
    stamps = {
        prop.name: today
        for prop in model.properties
        if _is_auto_date(prop) and prop.auto_set_on_update
    }
    return {**attributes, **stamps} if stamps else attributes
