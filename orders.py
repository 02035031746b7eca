"""
Order ("checkout") lifecycle.

pending -> paid -> confirmed -> out_for_delivery -> delivered -> completed

Admins may set any status at any time; only membership in the closed set is
enforced. Each update is written to storage as one unit, and an update that
changes nothing is not written at all.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from database import now_utc
from errors import DuplicateOrder, EmptyCart, EntityNotFound, InvalidOrderId, MissingContactField, OrderNotFound
from resolver import canonical_country, canonical_language, resolve_product
from schemas import (
    CreateCheckoutRequest,
    LineItem,
    Order,
    OrderStatus,
    Page,
    StatusChange,
    page_window,
)

logger = logging.getLogger(__name__)

REQUIRED_CONTACT_FIELDS = (
    "wallet_address",
    "email",
    "country",
    "first_name",
    "last_name",
    "address",
    "city",
    "postcode",
    "phone",
)


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _shipping_value(current: Optional[str], requested: Optional[str]) -> Optional[str]:
    """None leaves the stored value alone; an empty string clears it."""
    if requested is None:
        return current
    requested = requested.strip()
    return requested or None


class OrderManager:
    def __init__(self, storage, base_language: str = "en", max_page_size: int = 100,
                 clock: Callable[[], datetime] = now_utc, default_page_size: int = 10):
        self.storage = storage
        self.base_language = base_language
        self.max_page_size = max_page_size
        self.default_page_size = default_page_size
        self.clock = clock

    # -----------------
    # Creation
    # -----------------

    def create(self, payload: CreateCheckoutRequest) -> Order:
        """
        Validates the payload, prices every line through the resolver and
        inserts the order as `pending`. Nothing is written when validation
        fails. A repeated client `order_id` fails with DuplicateOrder; without
        one the order is stored under `str(id)`.
        """
        if not payload.products:
            raise EmptyCart()
        missing = [f for f in REQUIRED_CONTACT_FIELDS if _blank(getattr(payload, f))]
        if missing:
            raise MissingContactField(missing)
        external_id = None if _blank(payload.order_id) else payload.order_id.strip()
        # numeric external ids are reserved for orders created without one
        if external_id is not None and external_id.isdigit():
            raise InvalidOrderId(external_id)

        language = canonical_language(payload.language) or self.base_language
        country = payload.country.strip()
        country_code = canonical_country(country)
        if country_code is None:
            logger.info("Unrecognised country %r, pricing at base price", country)
        line_items = self._snapshot(payload, language, country_code)

        stamp = self.clock()
        try:
            order = self._insert(payload, external_id, language, country, country_code, line_items, stamp)
        except DuplicateOrder:
            logger.warning("Duplicate checkout submission for order %s", external_id)
            raise
        logger.info("Created order %s for %s (%d items, subtotal %s)",
                    order.external_id, order.wallet_address, len(order.line_items), order.subtotal)
        return order

    def _insert(self, payload, external_id, language, country, country_code, line_items, stamp) -> Order:
        return self.storage.insert_order({
            "order_id": external_id,
            "wallet_address": payload.wallet_address.strip(),
            "email": payload.email.strip(),
            "country": country,
            "country_code": country_code,
            "first_name": payload.first_name.strip(),
            "last_name": payload.last_name.strip(),
            "address": payload.address.strip(),
            "apartment": None if _blank(payload.apartment) else payload.apartment.strip(),
            "city": payload.city.strip(),
            "postcode": payload.postcode.strip(),
            "phone": payload.phone.strip(),
            "language": language,
            "status": OrderStatus.PENDING,
            "carrier": None,
            "tracking_code": None,
            "line_items": [i.model_dump() for i in line_items],
            "total_amount": payload.total_amount,
            "transaction_hash": None if _blank(payload.transaction_hash) else payload.transaction_hash.strip(),
            "created_at": stamp,
            "updated_at": stamp,
        })

    def _snapshot(self, payload: CreateCheckoutRequest, language: str, country: Optional[str]) -> List[LineItem]:
        items = []
        for entry in payload.products:
            product = self.storage.get_entity("product", entry.product_id)
            if product is None or not product.is_active:
                raise EntityNotFound("product", entry.product_id)
            resolved = resolve_product(product, language, country)
            items.append(LineItem(
                product_id=entry.product_id,
                quantity=entry.quantity,
                price_at_purchase=resolved.price,
                name=resolved.name,
            ))
        return items

    # -----------------
    # Lookup
    # -----------------

    def get(self, identifier) -> Order:
        """By external order id first, then by internal integer id."""
        identifier = str(identifier).strip()
        order = self.storage.get_order_by_external_id(identifier)
        if order is None and identifier.isdigit():
            order = self.storage.get_order(int(identifier))
        if order is None:
            raise OrderNotFound(identifier)
        return order

    def line_items(self, identifier) -> List[LineItem]:
        return self.get(identifier).line_items

    # -----------------
    # Status
    # -----------------

    def update_status(self, identifier, status, carrier: Optional[str],
                      tracking_code: Optional[str]) -> Tuple[Order, StatusChange]:
        new_status = OrderStatus.parse(status)
        order = self.get(identifier)

        change = StatusChange(
            previous_status=order.status,
            status=new_status,
            previous_carrier=order.carrier,
            carrier=_shipping_value(order.carrier, carrier),
            previous_tracking_code=order.tracking_code,
            tracking_code=_shipping_value(order.tracking_code, tracking_code),
        )
        if not change.changed:
            return order, change

        updated = self.storage.update_order(order.id, {
            "status": change.status,
            "carrier": change.carrier,
            "tracking_code": change.tracking_code,
            "updated_at": self.clock(),
        })
        if updated is None:
            raise OrderNotFound(identifier)
        logger.info("Order %s status %s -> %s", updated.external_id, change.previous_status.value,
                    change.status.value)
        return updated, change

    # -----------------
    # Listing
    # -----------------

    def list_by_wallet(self, wallet_address: str, page: int = 0, size: Optional[int] = None) -> Page[Order]:
        """Most recent first; ties on created_at are broken by id."""
        skip, size = page_window(page, self.default_page_size if size is None else size, self.max_page_size)
        orders, total = self.storage.find_orders(skip=skip, limit=size, wallet_address=wallet_address)
        return Page[Order].build(orders, total, page, size)

    def list_orders(self, page: int = 0, size: Optional[int] = None, status=None, country: Optional[str] = None,
                    created_on: Optional[date] = None) -> Page[Order]:
        """
        Admin listing. `country` matches the priced country code when it
        names a known country, otherwise the country text as submitted.
        """
        skip, size = page_window(page, self.default_page_size if size is None else size, self.max_page_size)
        filters = {}
        if status is not None:
            filters["status"] = OrderStatus.parse(status)
        if country and country.strip():
            code = canonical_country(country)
            if code is not None:
                filters["country_code"] = code
            else:
                filters["country"] = country.strip()
        if created_on is not None:
            start = datetime(created_on.year, created_on.month, created_on.day, tzinfo=timezone.utc)
            filters["created_from"] = start
            filters["created_to"] = start + timedelta(days=1)
        orders, total = self.storage.find_orders(skip=skip, limit=size, **filters)
        return Page[Order].build(orders, total, page, size)
