from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import or_
from sqlmodel import col, select

from .models import Product, ProductRecord, get_session, init_db, utc_now
from .pipeline.ingest import validate_product_data

logger = logging.getLogger(__name__)


class ProductNotFound(LookupError):
    pass


@dataclass(frozen=True)
class ProductFilter:
    tribe: Optional[str] = None
    category: Optional[str] = None
    featured: Optional[bool] = None
    search: Optional[str] = None


def _apply_filter(statement, filters: Optional[ProductFilter]):
    if filters is None:
        return statement
    if filters.tribe and filters.tribe != "all":
        statement = statement.where(Product.tribe == filters.tribe)
    if filters.category and filters.category != "all":
        statement = statement.where(Product.category == filters.category)
    if filters.featured:
        statement = statement.where(Product.featured == True)  # noqa: E712 - SQL expression
    if filters.search and filters.search.strip():
        pattern = f"%{filters.search.strip()}%"
        statement = statement.where(
            or_(
                col(Product.name).ilike(pattern),
                col(Product.story).ilike(pattern),
                col(Product.tribe).ilike(pattern),
            )
        )
    return statement


def _as_payload(product: Product) -> Dict[str, Any]:
    return {
        "name": product.name,
        "tribe": product.tribe,
        "category": product.category,
        "story": product.story,
        "materials": list(product.materials or []),
        "images": list(product.images or []),
        "dimensions": {
            "length": product.length,
            "width": product.width,
            "height": product.height,
            "unit": product.dimension_unit,
        },
        "price": {"amount": product.price_amount, "currency": product.price_currency},
        "stock_quantity": product.stock_quantity,
        "featured": product.featured,
    }


_FLAT_PRICE_KEYS = {"price_amount": "amount", "price_currency": "currency"}
_FLAT_DIMENSION_KEYS = {
    "length": "length",
    "width": "width",
    "height": "height",
    "unit": "unit",
    "dimension_unit": "unit",
}


def _merge_changes(payload: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    """Apply changes onto a stored payload; flat price/dimension keys land in the nested dicts."""
    merged = dict(payload)
    price = dict(payload["price"])
    dimensions = dict(payload["dimensions"])
    for key, value in changes.items():
        if key == "price":
            if isinstance(value, dict):
                price.update(value)
            else:
                price["amount"] = value
        elif key in _FLAT_PRICE_KEYS:
            price[_FLAT_PRICE_KEYS[key]] = value
        elif key == "dimensions":
            if isinstance(value, dict):
                dimensions.update(value)
            else:
                dimensions = {"unit": dimensions.get("unit")}
        elif key in _FLAT_DIMENSION_KEYS:
            dimensions[_FLAT_DIMENSION_KEYS[key]] = value
        else:
            merged[key] = value
    merged["price"] = price
    merged["dimensions"] = dimensions
    return merged


def create_product(data: Dict[str, Any]) -> Product:
    init_db()
    product = Product(**validate_product_data(data))
    with get_session() as session:
        session.add(product)
        session.commit()
        session.refresh(product)
    logger.info("Created product %s (%s)", product.id, product.name)
    return product


def get_product(product_id: str) -> Product:
    init_db()
    with get_session() as session:
        product = session.get(Product, product_id)
    if product is None:
        raise ProductNotFound(f"Product not found: {product_id}")
    return product


def update_product(product_id: str, changes: Dict[str, Any]) -> Product:
    """Merge changes into the stored product and re-validate the whole record."""
    init_db()
    with get_session() as session:
        product = session.get(Product, product_id)
        if product is None:
            raise ProductNotFound(f"Product not found: {product_id}")
        payload = _merge_changes(_as_payload(product), changes)
        for key, value in validate_product_data(payload).items():
            setattr(product, key, value)
        product.updated_at = utc_now()
        session.add(product)
        session.commit()
        session.refresh(product)
    logger.info("Updated product %s", product_id)
    return product


def delete_product(product_id: str) -> None:
    init_db()
    with get_session() as session:
        product = session.get(Product, product_id)
        if product is None:
            raise ProductNotFound(f"Product not found: {product_id}")
        session.delete(product)
        session.commit()
    logger.info("Deleted product %s", product_id)


def list_products(filters: Optional[ProductFilter] = None) -> List[Product]:
    init_db()
    with get_session() as session:
        statement = _apply_filter(select(Product), filters)
        statement = statement.order_by(col(Product.created_at).desc())
        return list(session.exec(statement))


def select_for_catalogue(
    product_ids: Optional[Iterable[str]] = None,
    filters: Optional[ProductFilter] = None,
) -> List[ProductRecord]:
    """Snapshot the selection for one export, featured first and newest next."""
    init_db()
    with get_session() as session:
        statement = _apply_filter(select(Product), filters)
        if product_ids is not None:
            statement = statement.where(col(Product.id).in_(list(product_ids)))
        statement = statement.order_by(col(Product.featured).desc(), col(Product.created_at).desc())
        return [product.to_record() for product in session.exec(statement)]
