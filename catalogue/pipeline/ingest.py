from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from .. import config
from ..models import Category, Currency, Product, Tribe, get_session, init_db

logger = logging.getLogger(__name__)

TRIBES = [t.value for t in Tribe]
CATEGORIES = [c.value for c in Category]
CURRENCIES = [c.value for c in Currency]


class ProductValidationError(ValueError):
    def __init__(self, errors: List[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


def _pick(data: dict, *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _number(value: Any, label: str, errors: List[str]) -> float | None:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        errors.append(f"{label} must be a number")
        return None
    if number < 0:
        errors.append(f"{label} cannot be negative")
    return number


def _text_list(value: Any) -> List[str]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        return []
    return [s for s in (_text(v) for v in value) if s]


def validate_product_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check a product payload against the store schema and return the column values.

    Accepts the camelCase shape the product form produced (stockQuantity,
    nested price/dimensions) as well as flat snake_case keys.
    """
    if not isinstance(data, dict):
        raise ProductValidationError(["Product must be an object"])
    errors: List[str] = []

    name = _text(data.get("name"))
    if not name:
        errors.append("Product name is required")
    elif len(name) > config.MAX_NAME_LENGTH:
        errors.append(f"Product name cannot exceed {config.MAX_NAME_LENGTH} characters")

    tribe = _text(data.get("tribe"))
    if not tribe:
        errors.append("Tribe name is required")
    elif tribe not in TRIBES:
        errors.append(f"{tribe} is not a valid tribe")

    category = _text(data.get("category"))
    if not category:
        errors.append("Category is required")
    elif category not in CATEGORIES:
        errors.append(f"{category} is not a valid category")

    story = _text(data.get("story"))
    if not story:
        errors.append("Product story is required")
    elif len(story) > config.MAX_STORY_LENGTH:
        errors.append(f"Story cannot exceed {config.MAX_STORY_LENGTH} characters")

    materials = _text_list(data.get("materials"))
    if not materials:
        errors.append("At least one material must be specified")

    images = _text_list(data.get("images"))
    if not 1 <= len(images) <= config.MAX_IMAGES:
        errors.append(f"Must have between 1 and {config.MAX_IMAGES} images")

    dims = data.get("dimensions") if isinstance(data.get("dimensions"), dict) else data
    length = _number(dims.get("length"), "Length", errors)
    width = _number(dims.get("width"), "Width", errors)
    height = _number(dims.get("height"), "Height", errors)
    unit = _text(_pick(dims, "unit", "dimension_unit", default="cm"))
    if unit not in config.DIMENSION_UNITS:
        errors.append(f"{unit} is not a valid dimension unit")

    price = data.get("price")
    if isinstance(price, dict):
        raw_amount = price.get("amount")
        currency = _text(price.get("currency")) or Currency.THB.value
    else:
        raw_amount = _pick(data, "price", "price_amount")
        currency = _text(data.get("price_currency")) or Currency.THB.value
    if raw_amount is None or raw_amount == "":
        errors.append("Price is required")
    amount = _number(raw_amount, "Price", errors)
    if currency not in CURRENCIES:
        errors.append(f"{currency} is not a valid currency")

    stock_raw = _pick(data, "stockQuantity", "stock_quantity", default=0)
    stock = 0
    try:
        stock = int(stock_raw)
        if stock < 0:
            errors.append("Stock quantity cannot be negative")
    except (TypeError, ValueError):
        errors.append("Stock quantity must be an integer")

    featured = _pick(data, "featured", default=False)
    if isinstance(featured, str):
        featured = featured.strip().lower() in {"1", "true", "yes"}

    if errors:
        raise ProductValidationError(errors)

    return {
        "name": name,
        "tribe": tribe,
        "category": category,
        "story": story,
        "materials": materials,
        "images": images,
        "length": length,
        "width": width,
        "height": height,
        "dimension_unit": unit,
        "price_amount": amount,
        "price_currency": currency,
        "stock_quantity": stock,
        "featured": bool(featured),
    }


def load_products_file(json_path: Path) -> List[dict]:
    if not json_path.exists():
        raise FileNotFoundError(f"Product file not found: {json_path}")
    payload = json.loads(json_path.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("products", [payload])
    if not isinstance(payload, list) or not payload:
        raise ValueError("Product file has no products")
    return payload


def ingest_products(json_path: Path) -> List[Product]:
    init_db()
    rows = load_products_file(json_path)
    products: List[Product] = []
    for index, row in enumerate(rows, start=1):
        try:
            values = validate_product_data(row)
        except ProductValidationError as exc:
            raise ProductValidationError([f"Product #{index}: {e}" for e in exc.errors]) from exc
        products.append(Product(**values))
    with get_session() as session:
        session.add_all(products)
        session.commit()
        for product in products:
            session.refresh(product)
    logger.info("Imported %d products from %s", len(products), json_path)
    return products
