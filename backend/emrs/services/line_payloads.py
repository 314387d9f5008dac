# Overview: Typed request-line payloads, one dataclass per request type.

"""
Request line payloads.

Callers post free-form line objects whose fields depend on request_type
(a transport line has pickup/dropoff, a maintenance line has an
equipment reference and an issue description, ...). parse_line() turns the raw
object into one of the dataclasses below. Every variant shares the same
envelope:

- display_name: first present of name, equipment_name, vehicle_type, else "Item"
- quantity: quantity or qty, default 1, must be > 0

The raw object is still stored verbatim in RequestLine.extra_data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional, Union

from ..validation import InvalidQty, ValidationError, to_int, to_text


DEFAULT_DISPLAY_NAME = "Item"


def _int_or_text(value: Any) -> Optional[Union[int, str]]:
    """Integer when the value is one, otherwise the trimmed text as given."""
    if isinstance(value, bool):
        return to_text(value)
    if isinstance(value, int):
        return value
    text = to_text(value)
    if text is not None and text.isdigit():
        return int(text)
    return text


@dataclass(frozen=True)
class LinePayload:
    request_type: ClassVar[str] = ""

    display_name: str
    quantity: int
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def _fields_from(cls, raw: dict) -> dict:
        return {}

    @classmethod
    def build(cls, raw: dict, display_name: str, quantity: int) -> "LinePayload":
        return cls(display_name=display_name, quantity=quantity, raw=raw, **cls._fields_from(raw))


@dataclass(frozen=True)
class PPELine(LinePayload):
    request_type: ClassVar[str] = "ppe"


@dataclass(frozen=True)
class MaterialLine(LinePayload):
    request_type: ClassVar[str] = "material"


@dataclass(frozen=True)
class TransportLine(LinePayload):
    request_type: ClassVar[str] = "transport"

    vehicle_type: Optional[str] = None
    pickup: Optional[str] = None
    dropoff: Optional[str] = None
    travel_date: Optional[str] = None
    passengers: Optional[Union[int, str]] = None
    cargo: Optional[str] = None
    special: Optional[str] = None

    @classmethod
    def _fields_from(cls, raw: dict) -> dict:
        return {
            "vehicle_type": to_text(raw.get("vehicle_type")),
            "pickup": to_text(raw.get("pickup")),
            "dropoff": to_text(raw.get("dropoff")),
            "travel_date": to_text(raw.get("travel_date")),
            "passengers": _int_or_text(raw.get("passengers")),
            "cargo": to_text(raw.get("cargo")),
            "special": to_text(raw.get("special")),
        }


@dataclass(frozen=True)
class MaintenanceLine(LinePayload):
    request_type: ClassVar[str] = "maintenance"

    equipment_id: Optional[Union[int, str]] = None
    issue: Optional[str] = None
    location: Optional[str] = None
    contact_person: Optional[str] = None
    preferred_date: Optional[str] = None

    @classmethod
    def _fields_from(cls, raw: dict) -> dict:
        return {
            "equipment_id": _int_or_text(raw.get("equipment_id")),
            "issue": to_text(raw.get("issue")),
            "location": to_text(raw.get("location")),
            "contact_person": to_text(raw.get("contact_person")),
            "preferred_date": to_text(raw.get("preferred_date")),
        }


@dataclass(frozen=True)
class EquipmentLine(LinePayload):
    request_type: ClassVar[str] = "equipment"

    urgency: Optional[str] = None
    notes: Optional[str] = None
    is_new_equipment: bool = False

    @classmethod
    def _fields_from(cls, raw: dict) -> dict:
        return {
            "urgency": to_text(raw.get("urgency")),
            "notes": to_text(raw.get("notes")),
            "is_new_equipment": bool(raw.get("is_new_equipment")),
        }


@dataclass(frozen=True)
class GenericLine(LinePayload):
    """Any request_type without a dedicated variant."""
    request_type: ClassVar[str] = ""


LINE_TYPES: dict[str, type[LinePayload]] = {
    cls.request_type: cls
    for cls in (PPELine, MaterialLine, TransportLine, MaintenanceLine, EquipmentLine)
}


def _display_name(raw: dict) -> str:
    for key in ("name", "equipment_name", "vehicle_type"):
        text = to_text(raw.get(key))
        if text:
            return text
    return DEFAULT_DISPLAY_NAME


def _quantity(raw: dict) -> int:
    value = raw.get("quantity")
    if value is None or value == "":
        value = raw.get("qty")
    if value is None or value == "":
        return 1
    try:
        qty = to_int(value, "quantity")
    except ValidationError:
        raise InvalidQty(f"Invalid quantity: {value}")
    if qty <= 0:
        raise InvalidQty(f"Invalid quantity: {value}")
    return qty


def parse_line(request_type: str, raw: Any) -> LinePayload:
    """
    Parse one raw line object for request_type.

    Raises ValidationError for non-object lines and InvalidQty for a
    quantity that is not a positive integer. Type-specific fields never fail
    a line; they are kept as given.
    """
    if not isinstance(raw, dict):
        raise ValidationError("Each line must be an object")
    line_cls = LINE_TYPES.get((request_type or "").strip().lower(), GenericLine)
    return line_cls.build(raw, _display_name(raw), _quantity(raw))
