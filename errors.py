"""
Error taxonomy for the catalog and order core.

Three families, each mapped to one HTTP status by the transport layer:
data-integrity (500), validation (400) and conflict (404/409).
Nothing in the core retries on any of them.
"""
from typing import Any, Optional


class StoreError(Exception):
    code = "STORE_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


# Data integrity

class DataIntegrityError(StoreError):
    code = "DATA_INTEGRITY"
    status_code = 500


class EntityHasNoTranslation(DataIntegrityError):
    code = "ENTITY_HAS_NO_TRANSLATION"

    def __init__(self, entity_id: Optional[int]):
        super().__init__(f"Entity {entity_id} has no translation", {"id": entity_id})
        self.entity_id = entity_id


# Validation

class ValidationFailed(StoreError):
    code = "VALIDATION_ERROR"
    status_code = 400


class MissingContactField(ValidationFailed):
    code = "MISSING_CONTACT_FIELD"

    def __init__(self, fields):
        fields = list(fields)
        super().__init__(f"Missing required field(s): {', '.join(fields)}", {"fields": fields})
        self.fields = fields


class EmptyCart(ValidationFailed):
    code = "EMPTY_CART"

    def __init__(self):
        super().__init__("Cart is empty")


class InvalidStatus(ValidationFailed):
    code = "INVALID_STATUS"

    def __init__(self, status: Any):
        super().__init__(f"Invalid status: {status!r}", {"status": status})
        self.status = status


class InvalidEntity(ValidationFailed):
    code = "INVALID_ENTITY"


class InvalidOrderId(ValidationFailed):
    code = "INVALID_ORDER_ID"

    def __init__(self, order_id: str):
        super().__init__(f"Order id {order_id!r} must not be purely numeric", {"orderId": order_id})
        self.order_id = order_id


class LanguageRemovalRefused(ValidationFailed):
    code = "LANGUAGE_REMOVAL_REFUSED"

    def __init__(self, language: str):
        super().__init__(f"Base language '{language}' cannot be removed", {"language": language})
        self.language = language


# Conflicts

class ConflictError(StoreError):
    code = "CONFLICT"
    status_code = 409


class DuplicateOrder(ConflictError):
    code = "DUPLICATE_ORDER"

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} already exists", {"orderId": order_id})
        self.order_id = order_id


class DuplicateSlug(ConflictError):
    code = "DUPLICATE_SLUG"

    def __init__(self, kind: str, slug: str):
        super().__init__(f"A {kind} with slug '{slug}' already exists", {"slug": slug})


class OrderNotFound(ConflictError):
    code = "ORDER_NOT_FOUND"
    status_code = 404

    def __init__(self, identifier: Any):
        super().__init__(f"Order {identifier} not found", {"identifier": str(identifier)})
        self.identifier = identifier


class EntityNotFound(ConflictError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, kind: str, key: Any):
        super().__init__(f"{kind.capitalize()} {key} not found", {"kind": kind, "key": key})
        self.kind = kind
        self.key = key


class CartItemNotFound(EntityNotFound):
    code = "CART_ITEM_NOT_FOUND"

    def __init__(self, wallet_address: str, item_id: int):
        super().__init__("cart item", item_id)
        self.wallet_address = wallet_address
