"""
Per-wallet shopping carts.

Lines are stored by product id and size only; names and prices are resolved
on every read so a cart always shows the current catalog copy and the price
for the shopper's country. Checking out hands the lines to the order manager,
which takes the authoritative price snapshot, and empties the cart.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from database import now_utc
from errors import CartItemNotFound, EmptyCart, EntityNotFound, InvalidEntity, MissingContactField
from resolver import canonical_country, canonical_language, resolve_product
from schemas import (
    AddToCartRequest,
    Cart,
    CartItem,
    CheckoutProduct,
    CreateCheckoutRequest,
    Order,
    ResolvedCartItem,
)

logger = logging.getLogger(__name__)


def _wallet(wallet_address: Optional[str]) -> str:
    wallet_address = (wallet_address or "").strip()
    if not wallet_address:
        raise MissingContactField(["wallet_address"])
    return wallet_address


def _primary_image(product) -> Optional[str]:
    if not product.images:
        return None
    primary = [i for i in product.images if i.is_primary]
    if primary:
        return primary[0].url
    return min(product.images, key=lambda i: (i.order_index is None, i.order_index or 0)).url


class CartService:
    def __init__(self, storage, clock: Callable[[], datetime] = now_utc):
        self.storage = storage
        self.clock = clock

    def get_cart(self, wallet_address: str, language: Optional[str] = None, country: Optional[str] = None) -> Cart:
        wallet_address = _wallet(wallet_address)
        items = [self._resolve(item, language, country) for item in self.storage.list_cart_items(wallet_address)]
        return Cart(
            wallet_address=wallet_address,
            language=canonical_language(language),
            country=canonical_country(country),
            items=items,
        )

    def _resolve(self, item: CartItem, language: Optional[str], country: Optional[str]) -> ResolvedCartItem:
        product = self.storage.get_entity("product", item.product_id)
        if product is None or not product.is_active:
            return ResolvedCartItem(
                id=item.id, product_id=item.product_id, size=item.size, quantity=item.quantity, available=False
            )
        resolved = resolve_product(product, language or item.language, country)
        return ResolvedCartItem(
            id=item.id,
            product_id=item.product_id,
            size=item.size,
            quantity=item.quantity,
            product_name=resolved.name,
            product_price=resolved.price,
            product_image=_primary_image(product),
        )

    def add_item(self, wallet_address: str, payload: AddToCartRequest) -> CartItem:
        wallet_address = _wallet(wallet_address)
        product = self.storage.get_entity("product", payload.product_id)
        if product is None or not product.is_active:
            raise EntityNotFound("product", payload.product_id)
        size = (payload.size or "").strip() or None
        if size is not None and product.variants and size not in {v.size for v in product.variants}:
            raise InvalidEntity(f"Product {product.id} has no size {size!r}", {"size": size})
        item = self.storage.add_cart_item(
            wallet_address,
            product.id,
            size,
            payload.quantity,
            canonical_language(payload.language),
            self.clock(),
        )
        logger.info("Cart %s: product %s x%d (size=%s)", wallet_address, product.id, item.quantity, size)
        return item

    def update_item(self, wallet_address: str, item_id: int, quantity: int) -> Optional[CartItem]:
        """Sets the line quantity; 0 removes the line and returns None."""
        wallet_address = _wallet(wallet_address)
        if quantity == 0:
            self.remove_item(wallet_address, item_id)
            return None
        item = self.storage.update_cart_item(
            wallet_address, item_id, {"quantity": quantity, "updated_at": self.clock()}
        )
        if item is None:
            raise CartItemNotFound(wallet_address, item_id)
        return item

    def remove_item(self, wallet_address: str, item_id: int):
        wallet_address = _wallet(wallet_address)
        if not self.storage.delete_cart_item(wallet_address, item_id):
            raise CartItemNotFound(wallet_address, item_id)

    def clear(self, wallet_address: str) -> int:
        return self.storage.clear_cart(_wallet(wallet_address))

    def checkout_products(self, wallet_address: str) -> List[CheckoutProduct]:
        items = self.storage.list_cart_items(_wallet(wallet_address))
        if not items:
            raise EmptyCart()
        return [CheckoutProduct(product_id=i.product_id, quantity=i.quantity) for i in items]

    def checkout(self, wallet_address: str, payload: CreateCheckoutRequest, orders) -> Order:
        """Creates an order from the cart's lines; the cart is emptied only once the order exists."""
        wallet_address = _wallet(wallet_address)
        products = self.checkout_products(wallet_address)
        order = orders.create(payload.model_copy(update={"wallet_address": wallet_address, "products": products}))
        self.clear(wallet_address)
        return order
