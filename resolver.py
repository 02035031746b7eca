"""
Translation / price resolution for catalog entities.

Turns a stored multi-language record into the single view a storefront or
CMS caller renders. Everything here is a pure function of its arguments:
no I/O, no input mutation, identical inputs give identical output.
"""
import re
from typing import List, Optional, Tuple, Union

from errors import EntityHasNoTranslation
from schemas import (
    LocalizedCollection,
    LocalizedProduct,
    ResolvedCollection,
    ResolvedProduct,
    Translation,
)

COUNTRY_CODE = re.compile(r"^[A-Z]{2}$")

# country names the storefront checkout form submits
COUNTRY_NAMES = {
    "THAILAND": "TH",
    "MALAYSIA": "MY",
    "PHILIPPINES": "PH",
    "INDONESIA": "ID",
    "VIETNAM": "VN",
    "VIET NAM": "VN",
}

Entity = Union[LocalizedCollection, LocalizedProduct]
Resolved = Union[ResolvedCollection, ResolvedProduct]


def canonical_language(language: Optional[str]) -> Optional[str]:
    if language is None:
        return None
    language = language.strip().lower()
    return language or None


def canonical_country(country: Optional[str]) -> Optional[str]:
    """Uppercased, trimmed country code, or None when it can't be one. Known names map to their code."""
    if country is None:
        return None
    country = " ".join(country.split()).upper()
    if country in COUNTRY_NAMES:
        return COUNTRY_NAMES[country]
    if not COUNTRY_CODE.match(country):
        return None
    return country


def pick_translation(entity: Entity, language: Optional[str]) -> Tuple[str, Translation]:
    """
    Requested language, then the entity's default language, then the
    lexicographically first language that has a translation.
    """
    translations = entity.translations
    if not translations:
        raise EntityHasNoTranslation(entity.id)
    language = canonical_language(language)
    if language is not None and language in translations:
        return language, translations[language]
    if entity.default_language in translations:
        return entity.default_language, translations[entity.default_language]
    first = min(translations)
    return first, translations[first]


def resolve_price(product: LocalizedProduct, country: Optional[str]) -> Tuple[float, bool]:
    """Returns (price, has_country_price). An explicit 0 override is still an override."""
    country = canonical_country(country)
    if country is not None and country in product.country_prices:
        return product.country_prices[country], True
    return product.base_price, False


def resolve_collection(collection: LocalizedCollection, language: Optional[str]) -> ResolvedCollection:
    used, translation = pick_translation(collection, language)
    return ResolvedCollection(
        id=collection.id,
        slug=collection.slug,
        language=used,
        name=translation.name,
        description=translation.description,
        is_active=collection.is_active,
        created_at=collection.created_at,
    )


def resolve_product(product: LocalizedProduct, language: Optional[str], country: Optional[str]) -> ResolvedProduct:
    used, translation = pick_translation(product, language)
    price, overridden = resolve_price(product, country)
    return ResolvedProduct(
        id=product.id,
        slug=product.slug,
        language=used,
        name=translation.name,
        description=translation.description,
        material=translation.material,
        other_details=translation.other_details,
        is_active=product.is_active,
        created_at=product.created_at,
        collection_id=product.collection_id,
        category=product.category,
        made_by=product.made_by,
        in_stock=product.in_stock,
        featured=product.featured,
        country=canonical_country(country),
        price=price,
        base_price=product.base_price,
        has_country_price=overridden,
        # copies, so callers can't reach back into the stored entity
        variants=[v.model_copy() for v in product.variants],
        images=[i.model_copy() for i in product.images],
    )


def resolve(entity: Entity, language: Optional[str], country: Optional[str] = None) -> Resolved:
    if isinstance(entity, LocalizedProduct):
        return resolve_product(entity, language, country)
    return resolve_collection(entity, language)


def resolve_many(entities, language: Optional[str], country: Optional[str] = None) -> List[Resolved]:
    return [resolve(e, language, country) for e in entities]
