"""
Database Schemas for the storefront catalog and checkout

Each Pydantic model represents a collection in MongoDB. The collection name is the lowercase of the class name,
minus the "Localized" prefix for catalog entities. Documents are stored with snake_case keys and served to the
storefront and CMS with camelCase keys.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, Generic, List, Optional, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from errors import InvalidStatus, ValidationFailed

SLUG_PATTERN = r"^[a-z0-9-]+$"

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _language_keys(value):
    if not isinstance(value, dict):
        return value
    return {str(k).strip().lower(): v for k, v in value.items()}


# -----------------------------
# Catalog
# -----------------------------

class Translation(CamelModel):
    name: str = Field(..., description="Display name in this language")
    description: Optional[str] = Field("", description="Marketing description")
    material: Optional[str] = Field(None, description="Products only")
    other_details: Optional[str] = Field(None, description="Products only")


class ProductVariant(CamelModel):
    size: str
    price: Optional[float] = Field(None, ge=0)
    stock_quantity: int = Field(0, ge=0)
    available: bool = True


class ProductImage(CamelModel):
    url: str
    alt_text: str = ""
    is_primary: bool = False
    order_index: Optional[int] = None


class LocalizedCollection(CamelModel):
    """
    Product collections with per-language names
    Collection: "collection"
    """
    id: Optional[int] = Field(None, description="Assigned at creation, immutable")
    slug: str = Field(..., pattern=SLUG_PATTERN, description="URL-safe handle, e.g. 'summer-drop'")
    default_language: str = Field("en", description="Language used when the requested one is missing")
    available_languages: List[str] = Field(default_factory=list)
    translations: Dict[str, Translation] = Field(default_factory=dict)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("default_language")
    @classmethod
    def _lower_default(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("available_languages")
    @classmethod
    def _lower_available(cls, v: List[str]) -> List[str]:
        return sorted({x.strip().lower() for x in v})

    @field_validator("translations", mode="before")
    @classmethod
    def _lower_translation_keys(cls, v):
        return _language_keys(v)


class LocalizedProduct(LocalizedCollection):
    """
    Products with per-language copy and per-country price overrides
    Collection: "product"
    """
    collection_id: Optional[int] = Field(None, description="Id of parent collection")
    category: str = ""
    made_by: str = ""
    in_stock: str = "In Stock"
    featured: bool = False
    base_price: float = Field(..., gt=0, description="Canonical price, used when no country override exists")
    country_prices: Dict[str, float] = Field(default_factory=dict, description="Country code -> override price")
    variants: List[ProductVariant] = Field(default_factory=list)
    images: List[ProductImage] = Field(default_factory=list)

    @field_validator("country_prices", mode="before")
    @classmethod
    def _upper_country_keys(cls, v):
        if not isinstance(v, dict):
            return v
        return {str(k).strip().upper(): p for k, p in v.items()}

    @field_validator("country_prices")
    @classmethod
    def _non_negative(cls, v: Dict[str, float]) -> Dict[str, float]:
        for country, price in v.items():
            if price < 0:
                raise ValueError(f"price for {country} cannot be negative")
        return v


class ResolvedCollection(CamelModel):
    id: Optional[int]
    slug: str
    language: str = Field(..., description="Language of the translation actually used")
    name: str
    description: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None


class ResolvedProduct(ResolvedCollection):
    material: Optional[str] = None
    other_details: Optional[str] = None
    collection_id: Optional[int] = None
    category: str = ""
    made_by: str = ""
    in_stock: str = ""
    featured: bool = False
    country: Optional[str] = None
    price: float
    base_price: float
    has_country_price: bool = False
    variants: List[ProductVariant] = Field(default_factory=list)
    images: List[ProductImage] = Field(default_factory=list)


# CMS write payloads

class CollectionIn(CamelModel):
    slug: str = Field(..., pattern=SLUG_PATTERN)
    default_language: str = "en"
    translations: Dict[str, Translation]
    is_active: bool = True


class CollectionUpdate(CamelModel):
    slug: Optional[str] = Field(None, pattern=SLUG_PATTERN)
    default_language: Optional[str] = None
    translations: Optional[Dict[str, Translation]] = None
    is_active: Optional[bool] = None


class ProductIn(CollectionIn):
    collection_id: Optional[int] = None
    category: str = ""
    made_by: str = ""
    in_stock: str = "In Stock"
    featured: bool = False
    base_price: float = Field(..., gt=0)
    country_prices: Dict[str, float] = Field(default_factory=dict)
    variants: List[ProductVariant] = Field(default_factory=list)
    images: List[ProductImage] = Field(default_factory=list)


class ProductUpdate(CollectionUpdate):
    collection_id: Optional[int] = None
    category: Optional[str] = None
    made_by: Optional[str] = None
    in_stock: Optional[str] = None
    featured: Optional[bool] = None
    base_price: Optional[float] = Field(None, gt=0)
    country_prices: Optional[Dict[str, float]] = None
    variants: Optional[List[ProductVariant]] = None
    images: Optional[List[ProductImage]] = None


class LanguageIn(CamelModel):
    language: str
    translation: Translation


class CountryPriceIn(CamelModel):
    price: float = Field(..., ge=0)


# -----------------------------
# Orders / Checkout
# -----------------------------

class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    CONFIRMED = "confirmed"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, value) -> "OrderStatus":
        """Accepts the enum, its value, or the admin spelling "Out for delivery"."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = "_".join(value.strip().lower().replace("-", " ").split())
            try:
                return cls(key)
            except ValueError:
                pass
        raise InvalidStatus(value)


class CheckoutProduct(CamelModel):
    product_id: int
    quantity: int = Field(1, ge=1)


class CreateCheckoutRequest(CamelModel):
    """Contact fields are optional here so that blank ones are reported together by the order manager."""
    wallet_address: Optional[str] = None
    email: Optional[str] = None
    country: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    address: Optional[str] = None
    apartment: Optional[str] = None
    city: Optional[str] = None
    postcode: Optional[str] = None
    phone: Optional[str] = None
    language: Optional[str] = None
    order_id: Optional[str] = Field(None, description="Client-chosen external id, unique and not purely numeric")
    total_amount: Optional[float] = Field(None, ge=0)
    transaction_hash: Optional[str] = None
    products: List[CheckoutProduct] = Field(default_factory=list)


class LineItem(CamelModel):
    product_id: int
    quantity: int = Field(..., ge=1)
    price_at_purchase: float = Field(..., ge=0)
    name: Optional[str] = None


class Order(CamelModel):
    """
    Placed checkouts
    Collection: "order"
    """
    id: int
    order_id: Optional[str] = Field(None, description="External id; str(id) when the client chose none")
    wallet_address: str
    email: str
    country: str = Field(..., description="Country as submitted at checkout")
    country_code: Optional[str] = Field(None, description="ISO code the order was priced for")
    first_name: str
    last_name: str
    address: str
    apartment: Optional[str] = None
    city: str
    postcode: str
    phone: str
    language: str = "en"
    status: OrderStatus = OrderStatus.PENDING
    carrier: Optional[str] = None
    tracking_code: Optional[str] = None
    line_items: List[LineItem]
    total_amount: Optional[float] = None
    transaction_hash: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def external_id(self) -> str:
        return self.order_id or str(self.id)

    @computed_field
    @property
    def subtotal(self) -> float:
        return round(sum(i.price_at_purchase * i.quantity for i in self.line_items), 2)


class StatusChange(CamelModel):
    previous_status: OrderStatus
    status: OrderStatus
    previous_carrier: Optional[str] = None
    carrier: Optional[str] = None
    previous_tracking_code: Optional[str] = None
    tracking_code: Optional[str] = None

    @computed_field
    @property
    def changed(self) -> bool:
        return (
            self.previous_status != self.status
            or self.previous_carrier != self.carrier
            or self.previous_tracking_code != self.tracking_code
        )


class CartItem(CamelModel):
    """
    Per-wallet cart lines. One line per (product, size); adding again raises the quantity.
    Collection: "cart"
    """
    id: int
    wallet_address: str
    product_id: int
    size: Optional[str] = None
    quantity: int = Field(..., ge=1)
    language: Optional[str] = Field(None, description="Language the item was added in")
    created_at: datetime
    updated_at: datetime


class AddToCartRequest(CamelModel):
    product_id: int
    quantity: int = Field(1, ge=1)
    size: Optional[str] = None
    language: Optional[str] = None


class UpdateCartItemRequest(CamelModel):
    quantity: int = Field(..., ge=0, description="0 removes the line")


class ResolvedCartItem(CamelModel):
    id: int
    product_id: int
    size: Optional[str] = None
    quantity: int
    available: bool = True
    product_name: Optional[str] = None
    product_price: Optional[float] = None
    product_image: Optional[str] = None

    @computed_field
    @property
    def line_total(self) -> float:
        if not self.available or self.product_price is None:
            return 0.0
        return round(self.product_price * self.quantity, 2)


class Cart(CamelModel):
    """A wallet's cart priced for one language and country; unavailable lines are excluded from the totals."""
    wallet_address: str
    language: Optional[str] = None
    country: Optional[str] = None
    items: List[ResolvedCartItem] = Field(default_factory=list)

    @computed_field
    @property
    def total_items(self) -> int:
        return sum(i.quantity for i in self.items if i.available)

    @computed_field
    @property
    def total_amount(self) -> float:
        return round(sum(i.line_total for i in self.items), 2)


class Page(CamelModel, Generic[T]):
    """One page of results; `number` is zero-based."""
    content: List[T]
    total_elements: int
    total_pages: int
    size: int
    number: int

    @classmethod
    def build(cls, content: List[T], total: int, number: int, size: int) -> "Page[T]":
        return cls(
            content=content,
            total_elements=total,
            total_pages=-(-total // size) if size else 0,
            size=size,
            number=number,
        )


def page_window(page: int, size: int, max_size: int) -> Tuple[int, int]:
    """Validates zero-based paging arguments and returns (skip, size)."""
    if page < 0:
        raise ValidationFailed("page must be >= 0", {"page": page})
    if size < 1:
        raise ValidationFailed("size must be >= 1", {"size": size})
    size = min(size, max_size)
    return page * size, size
