from __future__ import annotations

from typing import Any


# =============================================================================
# ERROR TAXONOMY
# =============================================================================

class EmrsError(Exception):
    """
    Base class for every domain failure surfaced to API callers.

    status_code is the HTTP status a route uses when it has no more specific
    mapping. message is shown to the user verbatim.
    """
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(EmrsError):
    """400-level input problem (missing field, empty lines, qty <= 0)."""
    status_code = 400


class AuthenticationError(EmrsError):
    """Credentials presented by an authenticated caller did not match."""
    status_code = 401


class NotFoundError(EmrsError):
    """Referenced request/issue/line/asset/item does not exist."""
    status_code = 404


class UnauthorizedError(EmrsError):
    """Caller's role or department does not permit the requested scope."""
    status_code = 403


class ConflictError(EmrsError):
    """409-level business rule conflict (stock, asset state, mismatches)."""
    status_code = 409


class InternalError(EmrsError):
    """Unexpected database or transport failure."""
    status_code = 500


# -- validation kinds --

class UnmappedRequestType(ValidationError):
    def __init__(self, request_type: str):
        super().__init__(f"No department mapped for type: {request_type}")
        self.request_type = request_type


class InvalidQty(ValidationError):
    pass


class AssetIdRequired(ValidationError):
    def __init__(self, request_line_id: int):
        super().__init__(f"assetId required for non-consumable line {request_line_id}")
        self.request_line_id = request_line_id


# -- not-found kinds --

class RequestNotFound(NotFoundError):
    def __init__(self, request_id: int):
        super().__init__("Request not found")
        self.request_id = request_id


class LineNotFound(NotFoundError):
    pass


class AssetNotFound(NotFoundError):
    def __init__(self, asset_id: int):
        super().__init__("Asset not found")
        self.asset_id = asset_id


class ItemNotFound(NotFoundError):
    def __init__(self, item_id: Any):
        super().__init__(f"Item {item_id} not found")
        self.item_id = item_id


class DepartmentNotFound(NotFoundError):
    def __init__(self, department_id: Any):
        super().__init__("Target department not found")
        self.department_id = department_id


# -- authorization kinds --

class CrossDepartmentForbidden(UnauthorizedError):
    def __init__(self, message: str = "Target belongs to another department"):
        super().__init__(message)


# -- conflict kinds --

class InsufficientStock(ConflictError):
    def __init__(self, item_id: int, have: int, need: int):
        super().__init__(f"Insufficient stock for item {item_id} (have {have}, need {need})")
        self.item_id = item_id
        self.have = have
        self.need = need


class ItemMismatch(ConflictError):
    def __init__(self, request_line_id: int):
        super().__init__(f"Item mismatch on line {request_line_id}")
        self.request_line_id = request_line_id


class AssetItemMismatch(ConflictError):
    def __init__(self, asset_id: int):
        super().__init__("Asset is not of this item")
        self.asset_id = asset_id


class AssetNotAvailable(ConflictError):
    def __init__(self, asset_id: int, message: str = "Asset is not available"):
        super().__init__(message)
        self.asset_id = asset_id


class InvalidTransition(ConflictError):
    def __init__(self, request_id: int, status: str, action: str):
        super().__init__(f"Cannot {action} request {request_id} in {status} status")
        self.request_id = request_id
        self.status = status
        self.action = action


# =============================================================================
# PAYLOAD COERCION
# =============================================================================

def require_json_object(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def require_list(value: Any, message: str) -> list:
    """Non-empty list or ValidationError(message)."""
    if not isinstance(value, list) or not value:
        raise ValidationError(message)
    return value


def to_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for ids and quantities.

    Rejects bools, decimals and scientific notation; accepts plain digit strings.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{field} must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be an integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    raise ValidationError(f"{field} must be an integer")


def to_optional_int(value: Any, field: str) -> int | None:
    if value is None or value == "" or value == 0:
        return None
    return to_int(value, field)


def to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None
