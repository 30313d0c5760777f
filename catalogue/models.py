from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel, create_engine, Session

from . import config


class Tribe(str, Enum):
    KAREN = "Karen"
    HMONG = "Hmong"
    LISU = "Lisu"
    AKHA = "Akha"
    LAHU = "Lahu"
    YAO = "Yao"
    OTHER = "Other"


class Category(str, Enum):
    TEXTILES = "Textiles"
    JEWELRY = "Jewelry"
    BAGS = "Bags"
    HOME_DECOR = "Home Decor"
    CLOTHING = "Clothing"
    ACCESSORIES = "Accessories"
    ART = "Art"
    OTHER = "Other"


class Currency(str, Enum):
    THB = "THB"
    USD = "USD"
    EUR = "EUR"


@dataclass(frozen=True)
class Dimensions:
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    unit: str = "cm"


@dataclass(frozen=True)
class Price:
    amount: float
    currency: str = Currency.THB.value


@dataclass(frozen=True)
class ProductRecord:
    """Read-only snapshot of a product as the catalogue pipeline sees it."""

    id: str
    name: str
    tribe: str
    category: str
    story: str
    materials: Tuple[str, ...]
    price: Price
    images: Tuple[str, ...]
    dimensions: Optional[Dimensions] = None
    stock_quantity: int = 0
    featured: bool = False


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Product(SQLModel, table=True):
    id: str = Field(default_factory=lambda: uuid4().hex, primary_key=True)
    name: str = Field(index=True)
    tribe: str = Field(index=True)
    category: str = Field(index=True)
    story: str
    materials: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    images: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    dimension_unit: str = "cm"
    price_amount: float = 0.0
    price_currency: str = Currency.THB.value
    stock_quantity: int = 0
    featured: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=utc_now, index=True)
    updated_at: datetime = Field(default_factory=utc_now)

    def to_record(self) -> ProductRecord:
        dimensions = None
        if any(v is not None for v in (self.length, self.width, self.height)):
            dimensions = Dimensions(self.length, self.width, self.height, self.dimension_unit)
        return ProductRecord(
            id=self.id,
            name=self.name,
            tribe=self.tribe,
            category=self.category,
            story=self.story,
            materials=tuple(self.materials or []),
            price=Price(float(self.price_amount), self.price_currency),
            images=tuple(self.images or []),
            dimensions=dimensions,
            stock_quantity=int(self.stock_quantity),
            featured=bool(self.featured),
        )


class CatalogueExport(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    product_count: int
    page_count: int
    path: str
    created_at: datetime = Field(default_factory=utc_now)


engine = create_engine(f"sqlite:///{config.DB_PATH}")


def reset_engine() -> None:
    global engine
    engine = create_engine(f"sqlite:///{config.DB_PATH}")


def init_db() -> None:
    config.OUT_DIR.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(engine)


def get_session() -> Session:
    return Session(engine, expire_on_commit=False)
