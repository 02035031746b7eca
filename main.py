import logging
from datetime import date
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import settings
from cart import CartService
from catalog import CatalogService
from database import MemoryStorage, MongoStorage, db
from errors import EntityNotFound, StoreError
from notifications import build_notifier
from orders import OrderManager
from schemas import (
    AddToCartRequest,
    CartItem,
    CollectionIn,
    CollectionUpdate,
    CountryPriceIn,
    CreateCheckoutRequest,
    LanguageIn,
    LocalizedCollection,
    LocalizedProduct,
    Order,
    ProductIn,
    ProductUpdate,
    Translation,
    UpdateCartItemRequest,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Storefront Catalog & Checkout API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

KIND_PATHS = {"collections": "collection", "products": "product"}


# Dependencies
_storage = None


def get_storage():
    global _storage
    if _storage is None:
        if db is not None:
            _storage = MongoStorage(db)
        else:
            logger.warning("DATABASE_URL / DATABASE_NAME not set, using in-memory storage")
            _storage = MemoryStorage()
    return _storage


def get_catalog(storage=Depends(get_storage)) -> CatalogService:
    return CatalogService(
        storage,
        base_language=settings.BASE_LANGUAGE,
        max_page_size=settings.MAX_PAGE_SIZE,
        default_page_size=settings.DEFAULT_PAGE_SIZE,
    )


def get_orders(storage=Depends(get_storage)) -> OrderManager:
    return OrderManager(
        storage,
        base_language=settings.BASE_LANGUAGE,
        max_page_size=settings.MAX_PAGE_SIZE,
        default_page_size=settings.DEFAULT_PAGE_SIZE,
    )


def get_cart(storage=Depends(get_storage)) -> CartService:
    return CartService(storage)


def get_notifier():
    return build_notifier(settings.NOTIFY_WEBHOOK_URL)


def entity_kind(kind: str) -> str:
    if kind not in KIND_PATHS:
        raise EntityNotFound("resource", kind)
    return KIND_PATHS[kind]


# Envelope
def ok(data=None, status_code: int = 200):
    return JSONResponse(
        status_code=status_code,
        content={"success": True, "data": jsonable_encoder(data, by_alias=True)},
    )


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", exc.code, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": jsonable_encoder(exc.to_dict())})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [{"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]} for e in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": {"code": "VALIDATION_ERROR", "message": "Invalid request", "details": details}},
    )


# Health
@app.get("/")
def read_root():
    return {"message": "Storefront Catalog & Checkout API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if settings.DATABASE_URL else "❌ Not Set",
        "database_name": settings.DATABASE_NAME or "Unknown",
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
        else:
            response["database"] = "⚠️ Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response


# Schemas exposed for admin/viewer
@app.get("/schema")
def get_schema():
    return {
        "collection": LocalizedCollection.model_json_schema(by_alias=True),
        "product": LocalizedProduct.model_json_schema(by_alias=True),
        "order": Order.model_json_schema(by_alias=True),
        "cart": CartItem.model_json_schema(by_alias=True),
    }


# Seed a minimal catalog if empty
@app.post("/seed")
def seed(catalog: CatalogService = Depends(get_catalog)):
    if catalog.list_collections(None, include_inactive=True):
        return ok({"status": "already seeded"})
    core = catalog.create_collection(CollectionIn(
        slug="core",
        translations={
            "en": Translation(name="Core", description="Everyday essentials"),
            "th": Translation(name="คอลเลกชันหลัก", description="ของใช้ประจำวัน"),
        },
    ))
    catalog.create_product(ProductIn(
        slug="classic-shirt",
        collection_id=core.id,
        category="tops",
        made_by="Studio",
        base_price=10.0,
        country_prices={"TH": 8.5},
        translations={
            "en": Translation(name="Shirt", description="A classic shirt", material="Cotton"),
            "th": Translation(name="เสื้อ", description="เสื้อคลาสสิก", material="ฝ้าย"),
        },
    ))
    return ok({"status": "seeded"})


# Collections
@app.get("/api/collections")
def list_collections(lang: Optional[str] = None, include_inactive: bool = Query(False, alias="includeInactive"),
                     catalog: CatalogService = Depends(get_catalog)):
    return ok(catalog.list_collections(lang, include_inactive=include_inactive))


@app.get("/api/collections/{slug}/products")
def collection_products(slug: str, lang: Optional[str] = None, country: Optional[str] = None,
                        include_inactive: bool = Query(False, alias="includeInactive"),
                        catalog: CatalogService = Depends(get_catalog)):
    return ok(catalog.collection_products(slug, lang, country, include_inactive=include_inactive))


@app.post("/api/collections")
def create_collection(payload: CollectionIn, catalog: CatalogService = Depends(get_catalog)):
    return ok(catalog.create_collection(payload), status_code=201)


@app.put("/api/collections/{collection_id}")
def update_collection(collection_id: int, payload: CollectionUpdate, catalog: CatalogService = Depends(get_catalog)):
    return ok(catalog.update_collection(collection_id, payload))


@app.delete("/api/collections/{collection_id}")
def delete_collection(collection_id: int, catalog: CatalogService = Depends(get_catalog)):
    catalog.delete_collection(collection_id)
    return ok({"deleted": True})


# Products
@app.get("/api/products")
def list_products(lang: Optional[str] = None, country: Optional[str] = None, collection: Optional[str] = None,
                  page: int = Query(0, ge=0), size: Optional[int] = Query(None, ge=1),
                  include_inactive: bool = Query(False, alias="includeInactive"),
                  catalog: CatalogService = Depends(get_catalog)):
    return ok(catalog.list_products(lang, country, collection, page, size, include_inactive=include_inactive))


@app.get("/api/products/{product_id}")
def get_product(product_id: int, lang: Optional[str] = None, country: Optional[str] = None,
                include_inactive: bool = Query(False, alias="includeInactive"),
                catalog: CatalogService = Depends(get_catalog)):
    return ok(catalog.get_product(product_id, lang, country, include_inactive=include_inactive))


@app.post("/api/products")
def create_product(payload: ProductIn, catalog: CatalogService = Depends(get_catalog)):
    return ok(catalog.create_product(payload), status_code=201)


@app.put("/api/products/{product_id}")
def update_product(product_id: int, payload: ProductUpdate, catalog: CatalogService = Depends(get_catalog)):
    return ok(catalog.update_product(product_id, payload))


@app.delete("/api/products/{product_id}")
def delete_product(product_id: int, catalog: CatalogService = Depends(get_catalog)):
    catalog.delete_product(product_id)
    return ok({"deleted": True})


@app.put("/api/products/{product_id}/prices/{country}")
def set_country_price(product_id: int, country: str, payload: CountryPriceIn,
                      catalog: CatalogService = Depends(get_catalog)):
    return ok(catalog.set_country_price(product_id, country, payload.price))


@app.delete("/api/products/{product_id}/prices/{country}")
def clear_country_price(product_id: int, country: str, catalog: CatalogService = Depends(get_catalog)):
    return ok(catalog.clear_country_price(product_id, country))


# CMS: raw multi-language records and language tabs
@app.get("/api/cms/{kind}/{entity_id}")
def get_raw_entity(kind: str, entity_id: int, catalog: CatalogService = Depends(get_catalog)):
    return ok(catalog.get_entity(entity_kind(kind), entity_id))


@app.post("/api/{kind}/{entity_id}/languages")
def add_language(kind: str, entity_id: int, payload: LanguageIn, catalog: CatalogService = Depends(get_catalog)):
    return ok(catalog.add_language(entity_kind(kind), entity_id, payload.language, payload.translation))


@app.delete("/api/{kind}/{entity_id}/languages/{language}")
def remove_language(kind: str, entity_id: int, language: str, catalog: CatalogService = Depends(get_catalog)):
    return ok(catalog.remove_language(entity_kind(kind), entity_id, language))


# Cart
@app.get("/api/cart/{wallet_address}")
def get_cart_view(wallet_address: str, lang: Optional[str] = None, country: Optional[str] = None,
                  cart: CartService = Depends(get_cart)):
    return ok(cart.get_cart(wallet_address, lang, country))


@app.post("/api/cart/{wallet_address}")
def add_to_cart(wallet_address: str, payload: AddToCartRequest, lang: Optional[str] = None,
                country: Optional[str] = None, cart: CartService = Depends(get_cart)):
    cart.add_item(wallet_address, payload)
    return ok(cart.get_cart(wallet_address, lang or payload.language, country), status_code=201)


@app.put("/api/cart/{wallet_address}/items/{item_id}")
def update_cart_item(wallet_address: str, item_id: int, payload: UpdateCartItemRequest,
                     lang: Optional[str] = None, country: Optional[str] = None,
                     cart: CartService = Depends(get_cart)):
    cart.update_item(wallet_address, item_id, payload.quantity)
    return ok(cart.get_cart(wallet_address, lang, country))


@app.delete("/api/cart/{wallet_address}/items/{item_id}")
def remove_cart_item(wallet_address: str, item_id: int, lang: Optional[str] = None,
                     country: Optional[str] = None, cart: CartService = Depends(get_cart)):
    cart.remove_item(wallet_address, item_id)
    return ok(cart.get_cart(wallet_address, lang, country))


@app.delete("/api/cart/{wallet_address}")
def clear_cart(wallet_address: str, cart: CartService = Depends(get_cart)):
    return ok({"removed": cart.clear(wallet_address)})


@app.post("/api/cart/{wallet_address}/checkout")
def checkout_cart(wallet_address: str, payload: CreateCheckoutRequest, cart: CartService = Depends(get_cart),
                  orders: OrderManager = Depends(get_orders)):
    return ok(cart.checkout(wallet_address, payload, orders), status_code=201)


# Checkout / Orders
@app.post("/api/checkout")
def create_checkout(payload: CreateCheckoutRequest, orders: OrderManager = Depends(get_orders)):
    return ok(orders.create(payload), status_code=201)


@app.get("/api/checkout")
def list_checkouts(page: int = Query(0, ge=0), size: Optional[int] = Query(None, ge=1),
                   status: Optional[str] = None,
                   country: Optional[str] = None, created_on: Optional[date] = Query(None, alias="date"),
                   orders: OrderManager = Depends(get_orders)):
    return ok(orders.list_orders(page, size, status=status, country=country, created_on=created_on))


@app.get("/api/checkout/wallet/{wallet_address}")
def wallet_history(wallet_address: str, page: int = Query(0, ge=0), size: Optional[int] = Query(None, ge=1),
                   orders: OrderManager = Depends(get_orders)):
    return ok(orders.list_by_wallet(wallet_address, page, size))


@app.get("/api/checkout/{identifier}")
def get_checkout(identifier: str, orders: OrderManager = Depends(get_orders)):
    return ok(orders.get(identifier))


@app.get("/api/checkout/{identifier}/products")
def checkout_products(identifier: str, orders: OrderManager = Depends(get_orders)):
    return ok(orders.line_items(identifier))


@app.patch("/api/checkout/order/{identifier}/status")
def update_checkout_status(identifier: str, background_tasks: BackgroundTasks, status: str,
                           carrier: Optional[str] = None,
                           tracking_code: Optional[str] = Query(None, alias="trackingCode"),
                           orders: OrderManager = Depends(get_orders), notifier=Depends(get_notifier)):
    # absent query parameter leaves the stored value; present but empty clears it
    order, change = orders.update_status(identifier, status, carrier, tracking_code)
    if change.changed:
        background_tasks.add_task(notifier.notify, order, change)
    return ok({"order": order, "change": change})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
