"""
Catalog reads and CMS writes for collections and products.

Writes go through `_check` so nothing without a base-language translation
reaches storage; reads pass stored entities through the resolver.
"""
import logging
from typing import Dict, List, Optional

from database import now_utc
from errors import EntityNotFound, InvalidEntity, LanguageRemovalRefused
from resolver import canonical_country, canonical_language, resolve_many, resolve_product
from schemas import (
    CollectionIn,
    CollectionUpdate,
    LocalizedCollection,
    LocalizedProduct,
    Page,
    ProductIn,
    ProductUpdate,
    ResolvedCollection,
    ResolvedProduct,
    Translation,
    page_window,
)

logger = logging.getLogger(__name__)

def _canonical_prices(prices: Dict[str, float]) -> Dict[str, float]:
    result = {}
    for country, price in prices.items():
        code = canonical_country(country)
        if code is None:
            raise InvalidEntity(f"Invalid country code: {country!r}", {"country": country})
        if price < 0:
            raise InvalidEntity("Price cannot be negative", {"country": code, "price": price})
        result[code] = price
    return result


class CatalogService:
    def __init__(self, storage, base_language: str = "en", max_page_size: int = 100,
                 default_page_size: int = 10):
        self.storage = storage
        self.base_language = base_language
        self.max_page_size = max_page_size
        self.default_page_size = default_page_size

    # -----------------
    # Write-time guard
    # -----------------

    def _check(self, entity):
        base = entity.translations.get(self.base_language)
        if base is None or not base.name.strip():
            raise InvalidEntity(
                f"'{self.base_language}' translation with a name is required",
                {"language": self.base_language},
            )
        if entity.default_language not in entity.translations:
            raise InvalidEntity(
                f"Default language '{entity.default_language}' has no translation",
                {"defaultLanguage": entity.default_language},
            )
        entity.available_languages = sorted(entity.translations)
        return entity

    def _load(self, kind: str, entity_id: int):
        entity = self.storage.get_entity(kind, entity_id)
        if entity is None:
            raise EntityNotFound(kind, entity_id)
        return entity

    def _save(self, kind: str, entity):
        entity.updated_at = now_utc()
        self._check(entity)
        return self.storage.put_entity(kind, entity)

    def _check_collection_ref(self, collection_id: Optional[int]):
        if collection_id is not None and self.storage.get_entity("collection", collection_id) is None:
            raise InvalidEntity(f"Collection {collection_id} does not exist", {"collectionId": collection_id})

    # -----------------
    # Collections
    # -----------------

    def create_collection(self, payload: CollectionIn) -> LocalizedCollection:
        entity = self._check(LocalizedCollection.model_validate(payload.model_dump()))
        created = self.storage.insert_entity("collection", entity)
        logger.info("Created collection %s (%s)", created.id, created.slug)
        return created

    def update_collection(self, collection_id: int, payload: CollectionUpdate) -> LocalizedCollection:
        entity = self._load("collection", collection_id)
        self._apply(entity, payload)
        return self._save("collection", entity)

    def delete_collection(self, collection_id: int):
        if not self.storage.delete_entity("collection", collection_id):
            raise EntityNotFound("collection", collection_id)
        logger.info("Deleted collection %s", collection_id)

    # -----------------
    # Products
    # -----------------

    def create_product(self, payload: ProductIn) -> LocalizedProduct:
        self._check_collection_ref(payload.collection_id)
        data = dict(payload.model_dump(), country_prices=_canonical_prices(payload.country_prices))
        entity = self._check(LocalizedProduct.model_validate(data))
        created = self.storage.insert_entity("product", entity)
        logger.info("Created product %s (%s)", created.id, created.slug)
        return created

    def update_product(self, product_id: int, payload: ProductUpdate) -> LocalizedProduct:
        entity = self._load("product", product_id)
        if payload.collection_id is not None:
            self._check_collection_ref(payload.collection_id)
        self._apply(entity, payload)
        if payload.country_prices is not None:
            entity.country_prices = dict(entity.country_prices, **_canonical_prices(payload.country_prices))
        return self._save("product", entity)

    def delete_product(self, product_id: int):
        if not self.storage.delete_entity("product", product_id):
            raise EntityNotFound("product", product_id)
        logger.info("Deleted product %s", product_id)

    def set_country_price(self, product_id: int, country: str, price: float) -> LocalizedProduct:
        override = _canonical_prices({country: price})
        entity = self._load("product", product_id)
        entity.country_prices = dict(entity.country_prices, **override)
        return self._save("product", entity)

    def clear_country_price(self, product_id: int, country: str) -> LocalizedProduct:
        entity = self._load("product", product_id)
        code = canonical_country(country)
        prices = dict(entity.country_prices)
        prices.pop(code, None)
        entity.country_prices = prices
        return self._save("product", entity)

    # -----------------
    # Languages
    # -----------------

    def add_language(self, kind: str, entity_id: int, language: str, translation: Translation):
        code = canonical_language(language)
        if code is None:
            raise InvalidEntity("Language code is required")
        entity = self._load(kind, entity_id)
        entity.translations = dict(entity.translations, **{code: translation})
        return self._save(kind, entity)

    def remove_language(self, kind: str, entity_id: int, language: str):
        code = canonical_language(language)
        if code == self.base_language:
            raise LanguageRemovalRefused(code)
        entity = self._load(kind, entity_id)
        if code not in entity.translations:
            raise InvalidEntity(f"Language '{code}' is not available", {"language": code})
        translations = dict(entity.translations)
        del translations[code]
        entity.translations = translations
        if entity.default_language == code:
            entity.default_language = self.base_language
        return self._save(kind, entity)

    def _apply(self, entity, payload):
        for field in payload.model_fields_set - {"translations", "country_prices"}:
            value = getattr(payload, field)
            if value is None:
                continue
            if field == "default_language":
                value = canonical_language(value)
            setattr(entity, field, value)
        if payload.translations is not None:
            incoming = {canonical_language(k): v for k, v in payload.translations.items()}
            entity.translations = dict(entity.translations, **incoming)

    # -----------------
    # Reads
    # -----------------

    def get_entity(self, kind: str, entity_id: int):
        return self._load(kind, entity_id)

    def list_collections(self, language: Optional[str], include_inactive: bool = False) -> List[ResolvedCollection]:
        return resolve_many(self.storage.list_entities("collection", include_inactive=include_inactive), language)

    def collection_products(self, slug: str, language: Optional[str], country: Optional[str],
                            include_inactive: bool = False) -> List[ResolvedProduct]:
        collection = self.storage.get_entity_by_slug("collection", slug)
        if collection is None or not (collection.is_active or include_inactive):
            raise EntityNotFound("collection", slug)
        products = self.storage.list_entities(
            "product", collection_id=collection.id, include_inactive=include_inactive
        )
        return resolve_many(products, language, country)

    def list_products(self, language: Optional[str], country: Optional[str], collection: Optional[str] = None,
                      page: int = 0, size: Optional[int] = None,
                      include_inactive: bool = False) -> Page[ResolvedProduct]:
        skip, size = page_window(page, self.default_page_size if size is None else size, self.max_page_size)
        if collection:
            products = self.collection_products(collection, language, country, include_inactive)
        else:
            products = resolve_many(
                self.storage.list_entities("product", include_inactive=include_inactive), language, country
            )
        return Page[ResolvedProduct].build(products[skip:skip + size], len(products), page, size)

    def get_product(self, product_id: int, language: Optional[str], country: Optional[str],
                    include_inactive: bool = False) -> ResolvedProduct:
        product = self._load("product", product_id)
        if not (product.is_active or include_inactive):
            raise EntityNotFound("product", product_id)
        return resolve_product(product, language, country)
