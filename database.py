"""
MongoDB access and the storage collaborators used by the catalog and order services.

`db` is None when DATABASE_URL / DATABASE_NAME are not set; the app then falls
back to MemoryStorage so it still boots for local work.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError

import settings
from errors import DuplicateOrder, DuplicateSlug
from schemas import CartItem, LocalizedCollection, LocalizedProduct, Order

logger = logging.getLogger(__name__)

ENTITY_MODELS = {
    "collection": LocalizedCollection,
    "product": LocalizedProduct,
}

db = None
if settings.DATABASE_URL and settings.DATABASE_NAME:
    client = MongoClient(settings.DATABASE_URL, tz_aware=True)
    db = client[settings.DATABASE_NAME]


def now_utc() -> datetime:
    # Mongo keeps millisecond precision; trimming here keeps memory and mongo storage equal
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def _strip(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc = dict(doc)
    doc.pop("_id", None)
    return doc


def _order_doc(order: Union[Order, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(order, Order):
        order = order.model_dump(exclude={"external_id", "subtotal"})
    doc = dict(order)
    if doc.get("status") is not None:
        doc["status"] = getattr(doc["status"], "value", doc["status"])
    return doc


def next_id(database, kind: str) -> int:
    counter = database["counters"].find_one_and_update(
        {"_id": kind},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return counter["seq"]


def create_document(collection_name: str, data: Union[BaseModel, dict], database=None) -> int:
    """Insert a document under a fresh integer id and return the id."""
    database = database if database is not None else db
    if database is None:
        raise RuntimeError("Database not configured")
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(exclude={"external_id", "subtotal"})
    else:
        data_dict = dict(data)
    data_dict["id"] = data_dict.get("id") or next_id(database, collection_name)
    data_dict["created_at"] = data_dict.get("created_at") or now_utc()
    data_dict["updated_at"] = data_dict.get("updated_at") or data_dict["created_at"]
    database[collection_name].insert_one(data_dict)
    return data_dict["id"]


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None,
                  database=None) -> List[dict]:
    database = database if database is not None else db
    if database is None:
        raise RuntimeError("Database not configured")
    cursor = database[collection_name].find(filter_dict or {}).sort("id", ASCENDING)
    if limit:
        cursor = cursor.limit(limit)
    return [_strip(d) for d in cursor]


def _order_query(wallet_address=None, status=None, country=None, country_code=None, created_from=None,
                 created_to=None) -> dict:
    query: Dict[str, Any] = {}
    if wallet_address is not None:
        query["wallet_address"] = wallet_address
    if status is not None:
        query["status"] = getattr(status, "value", status)
    if country:
        query["country"] = country
    if country_code:
        query["country_code"] = country_code
    created: Dict[str, Any] = {}
    if created_from is not None:
        created["$gte"] = created_from
    if created_to is not None:
        created["$lt"] = created_to
    if created:
        query["created_at"] = created
    return query


class MongoStorage:
    """Storage collaborator over a pymongo Database."""

    def __init__(self, database):
        self.db = database
        self.ensure_indexes()

    def ensure_indexes(self):
        for kind in ENTITY_MODELS:
            self.db[kind].create_index("id", unique=True)
            self.db[kind].create_index("slug", unique=True)
        self.db["order"].create_index("id", unique=True)
        self.db["order"].create_index("order_id", unique=True)
        self.db["order"].create_index([("wallet_address", ASCENDING), ("created_at", DESCENDING)])
        self.db["cart"].create_index("id", unique=True)
        self.db["cart"].create_index([("wallet_address", ASCENDING), ("product_id", ASCENDING), ("size", ASCENDING)])

    # Catalog

    def insert_entity(self, kind: str, entity):
        try:
            new_id = create_document(kind, entity.model_dump(exclude={"id"}), database=self.db)
        except DuplicateKeyError:
            raise DuplicateSlug(kind, entity.slug)
        return self.get_entity(kind, new_id)

    def get_entity(self, kind: str, entity_id: int):
        doc = _strip(self.db[kind].find_one({"id": entity_id}))
        return ENTITY_MODELS[kind].model_validate(doc) if doc else None

    def get_entity_by_slug(self, kind: str, slug: str):
        doc = _strip(self.db[kind].find_one({"slug": slug}))
        return ENTITY_MODELS[kind].model_validate(doc) if doc else None

    def put_entity(self, kind: str, entity):
        doc = entity.model_dump()
        try:
            self.db[kind].replace_one({"id": entity.id}, doc)
        except DuplicateKeyError:
            raise DuplicateSlug(kind, entity.slug)
        return entity

    def delete_entity(self, kind: str, entity_id: int) -> bool:
        return self.db[kind].delete_one({"id": entity_id}).deleted_count > 0

    def list_entities(self, kind: str, collection_id: Optional[int] = None, include_inactive: bool = False):
        query: Dict[str, Any] = {}
        if not include_inactive:
            query["is_active"] = True
        if collection_id is not None:
            query["collection_id"] = collection_id
        return [ENTITY_MODELS[kind].model_validate(d) for d in get_documents(kind, query, database=self.db)]

    # Orders

    def insert_order(self, data: Dict[str, Any]) -> Order:
        """Orders without a client id are stored under str(id)."""
        doc = _order_doc(data)
        doc["id"] = next_id(self.db, "order")
        doc["order_id"] = doc.get("order_id") or str(doc["id"])
        try:
            new_id = create_document("order", doc, database=self.db)
        except DuplicateKeyError:
            raise DuplicateOrder(doc["order_id"])
        return self.get_order(new_id)

    def get_order(self, order_id: int) -> Optional[Order]:
        doc = _strip(self.db["order"].find_one({"id": order_id}))
        return Order.model_validate(doc) if doc else None

    def get_order_by_external_id(self, external_id: str) -> Optional[Order]:
        doc = _strip(self.db["order"].find_one({"order_id": external_id}))
        return Order.model_validate(doc) if doc else None

    def update_order(self, order_id: int, fields: Dict[str, Any]) -> Optional[Order]:
        """Applies every field in one document update."""
        doc = self.db["order"].find_one_and_update(
            {"id": order_id},
            {"$set": _order_doc(fields)},
            return_document=ReturnDocument.AFTER,
        )
        return Order.model_validate(_strip(doc)) if doc else None

    def find_orders(self, skip: int = 0, limit: int = 10, **filters) -> Tuple[List[Order], int]:
        query = _order_query(**filters)
        total = self.db["order"].count_documents(query)
        cursor = (
            self.db["order"]
            .find(query)
            .sort([("created_at", DESCENDING), ("id", DESCENDING)])
            .skip(skip)
            .limit(limit)
        )
        return [Order.model_validate(_strip(d)) for d in cursor], total

    # Cart

    def add_cart_item(self, wallet_address: str, product_id: int, size: Optional[str], quantity: int,
                      language: Optional[str], stamp: datetime) -> CartItem:
        """Inserts the (product, size) line or raises its quantity, in one upsert."""
        doc = self.db["cart"].find_one_and_update(
            {"wallet_address": wallet_address, "product_id": product_id, "size": size},
            {
                "$inc": {"quantity": quantity},
                "$set": {"language": language, "updated_at": stamp},
                "$setOnInsert": {"id": next_id(self.db, "cart"), "created_at": stamp},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return CartItem.model_validate(_strip(doc))

    def get_cart_item(self, wallet_address: str, item_id: int) -> Optional[CartItem]:
        doc = _strip(self.db["cart"].find_one({"wallet_address": wallet_address, "id": item_id}))
        return CartItem.model_validate(doc) if doc else None

    def list_cart_items(self, wallet_address: str) -> List[CartItem]:
        docs = get_documents("cart", {"wallet_address": wallet_address}, database=self.db)
        return [CartItem.model_validate(d) for d in docs]

    def update_cart_item(self, wallet_address: str, item_id: int, fields: Dict[str, Any]) -> Optional[CartItem]:
        doc = self.db["cart"].find_one_and_update(
            {"wallet_address": wallet_address, "id": item_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        return CartItem.model_validate(_strip(doc)) if doc else None

    def delete_cart_item(self, wallet_address: str, item_id: int) -> bool:
        return self.db["cart"].delete_one({"wallet_address": wallet_address, "id": item_id}).deleted_count > 0

    def clear_cart(self, wallet_address: str) -> int:
        return self.db["cart"].delete_many({"wallet_address": wallet_address}).deleted_count


class MemoryStorage:
    """In-process storage with the same contract as MongoStorage."""

    def __init__(self):
        self._lock = threading.RLock()
        self._entities: Dict[str, Dict[int, Any]] = {kind: {} for kind in ENTITY_MODELS}
        self._orders: Dict[int, Order] = {}
        self._cart: Dict[int, CartItem] = {}
        self._counters: Dict[str, int] = {}

    def _next_id(self, kind: str) -> int:
        self._counters[kind] = self._counters.get(kind, 0) + 1
        return self._counters[kind]

    def _slug_taken(self, kind: str, slug: str, entity_id: Optional[int]) -> bool:
        return any(e.slug == slug and e.id != entity_id for e in self._entities[kind].values())

    # Catalog

    def insert_entity(self, kind: str, entity):
        with self._lock:
            if self._slug_taken(kind, entity.slug, None):
                raise DuplicateSlug(kind, entity.slug)
            stamp = now_utc()
            stored = entity.model_copy(
                deep=True,
                update={
                    "id": self._next_id(kind),
                    "created_at": entity.created_at or stamp,
                    "updated_at": entity.updated_at or stamp,
                },
            )
            self._entities[kind][stored.id] = stored
            return stored.model_copy(deep=True)

    def get_entity(self, kind: str, entity_id: int):
        with self._lock:
            entity = self._entities[kind].get(entity_id)
            return entity.model_copy(deep=True) if entity else None

    def get_entity_by_slug(self, kind: str, slug: str):
        with self._lock:
            for entity in self._entities[kind].values():
                if entity.slug == slug:
                    return entity.model_copy(deep=True)
        return None

    def put_entity(self, kind: str, entity):
        with self._lock:
            if self._slug_taken(kind, entity.slug, entity.id):
                raise DuplicateSlug(kind, entity.slug)
            self._entities[kind][entity.id] = entity.model_copy(deep=True)
            return entity

    def delete_entity(self, kind: str, entity_id: int) -> bool:
        with self._lock:
            return self._entities[kind].pop(entity_id, None) is not None

    def list_entities(self, kind: str, collection_id: Optional[int] = None, include_inactive: bool = False):
        with self._lock:
            entities = sorted(self._entities[kind].values(), key=lambda e: e.id)
            return [
                e.model_copy(deep=True)
                for e in entities
                if (include_inactive or e.is_active)
                and (collection_id is None or getattr(e, "collection_id", None) == collection_id)
            ]

    # Orders

    def insert_order(self, data: Dict[str, Any]) -> Order:
        with self._lock:
            external_id = data.get("order_id") or None
            if external_id is not None and any(o.order_id == external_id for o in self._orders.values()):
                raise DuplicateOrder(external_id)
            new_id = self._next_id("order")
            doc = dict(data, order_id=external_id or str(new_id), id=new_id)
            doc["created_at"] = doc.get("created_at") or now_utc()
            doc["updated_at"] = doc.get("updated_at") or doc["created_at"]
            order = Order.model_validate(doc)
            self._orders[order.id] = order
            return order.model_copy(deep=True)

    def get_order(self, order_id: int) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
            return order.model_copy(deep=True) if order else None

    def get_order_by_external_id(self, external_id: str) -> Optional[Order]:
        with self._lock:
            for order in self._orders.values():
                if order.order_id == external_id:
                    return order.model_copy(deep=True)
        return None

    def update_order(self, order_id: int, fields: Dict[str, Any]) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return None
            updated = Order.model_validate(dict(_order_doc(order), **_order_doc(fields)))
            self._orders[order_id] = updated
            return updated.model_copy(deep=True)

    def find_orders(self, skip: int = 0, limit: int = 10, wallet_address=None, status=None, country=None,
                    country_code=None, created_from=None, created_to=None) -> Tuple[List[Order], int]:
        with self._lock:
            matches = [
                o for o in self._orders.values()
                if (wallet_address is None or o.wallet_address == wallet_address)
                and (status is None or o.status == status)
                and (not country or o.country == country)
                and (not country_code or o.country_code == country_code)
                and (created_from is None or o.created_at >= created_from)
                and (created_to is None or o.created_at < created_to)
            ]
            matches.sort(key=lambda o: (o.created_at, o.id), reverse=True)
            return [o.model_copy(deep=True) for o in matches[skip:skip + limit]], len(matches)

    # Cart

    def add_cart_item(self, wallet_address: str, product_id: int, size: Optional[str], quantity: int,
                      language: Optional[str], stamp: datetime) -> CartItem:
        with self._lock:
            for item in self._cart.values():
                if (item.wallet_address, item.product_id, item.size) == (wallet_address, product_id, size):
                    updated = item.model_copy(update={
                        "quantity": item.quantity + quantity,
                        "language": language,
                        "updated_at": stamp,
                    })
                    self._cart[item.id] = updated
                    return updated.model_copy(deep=True)
            item = CartItem(
                id=self._next_id("cart"),
                wallet_address=wallet_address,
                product_id=product_id,
                size=size,
                quantity=quantity,
                language=language,
                created_at=stamp,
                updated_at=stamp,
            )
            self._cart[item.id] = item
            return item.model_copy(deep=True)

    def get_cart_item(self, wallet_address: str, item_id: int) -> Optional[CartItem]:
        with self._lock:
            item = self._cart.get(item_id)
            if item is None or item.wallet_address != wallet_address:
                return None
            return item.model_copy(deep=True)

    def list_cart_items(self, wallet_address: str) -> List[CartItem]:
        with self._lock:
            items = sorted(self._cart.values(), key=lambda i: i.id)
            return [i.model_copy(deep=True) for i in items if i.wallet_address == wallet_address]

    def update_cart_item(self, wallet_address: str, item_id: int, fields: Dict[str, Any]) -> Optional[CartItem]:
        with self._lock:
            item = self._cart.get(item_id)
            if item is None or item.wallet_address != wallet_address:
                return None
            updated = CartItem.model_validate(dict(item.model_dump(), **fields))
            self._cart[item_id] = updated
            return updated.model_copy(deep=True)

    def delete_cart_item(self, wallet_address: str, item_id: int) -> bool:
        with self._lock:
            item = self._cart.get(item_id)
            if item is None or item.wallet_address != wallet_address:
                return False
            del self._cart[item_id]
            return True

    def clear_cart(self, wallet_address: str) -> int:
        with self._lock:
            ids = [i.id for i in self._cart.values() if i.wallet_address == wallet_address]
            for item_id in ids:
                del self._cart[item_id]
            return len(ids)
