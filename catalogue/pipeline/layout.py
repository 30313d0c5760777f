from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence, Tuple

from ..config import LayoutSettings
from ..models import ProductRecord


class LayoutType(str, Enum):
    FEATURED = "featured"
    TWO_COLUMN = "two-column"
    THREE_COLUMN = "three-column"


@dataclass(frozen=True)
class Rect:
    """Axis-aligned box in PDF points, origin at the bottom-left like the canvas."""

    x: float
    y: float
    w: float
    h: float

    @property
    def top(self) -> float:
        return self.y + self.h

    @property
    def right(self) -> float:
        return self.x + self.w

    def inset(self, pad: float) -> "Rect":
        return Rect(self.x + pad, self.y + pad, max(0.0, self.w - 2 * pad), max(0.0, self.h - 2 * pad))


@dataclass(frozen=True)
class PageLayoutPlan:
    layout_type: LayoutType
    products_on_page: int


def content_weight(product: ProductRecord) -> float:
    """
    상품 텍스트 분량 추정치. 페이지 밀도를 고르는 휴리스틱일 뿐 실제 높이 계산은 아니다.
    """
    return (
        1.5 * len(product.name)
        + 1.2 * len(product.tribe)
        + 1.0 * len(", ".join(product.materials))
        + 1.0 * len(product.story)
    )


def plan_page(
    products: Sequence[ProductRecord],
    start_index: int,
    settings: LayoutSettings | None = None,
) -> PageLayoutPlan:
    settings = settings or LayoutSettings()
    remaining = len(products) - start_index
    if start_index < 0 or remaining <= 0:
        raise ValueError(f"start_index {start_index} is outside the product list ({len(products)} items)")

    if remaining == 1:
        return PageLayoutPlan(LayoutType.FEATURED, 1)

    # lookahead window; may differ from what ends up on the page
    window = products[start_index:start_index + settings.sample_size]
    mean = sum(content_weight(p) for p in window) / len(window)

    two_up = PageLayoutPlan(LayoutType.TWO_COLUMN, min(settings.two_column_capacity, remaining))
    if mean > settings.heavy_threshold:
        return two_up
    if mean > settings.medium_threshold:
        if remaining >= settings.three_column_capacity:
            return PageLayoutPlan(LayoutType.THREE_COLUMN, settings.three_column_capacity)
        return two_up
    return PageLayoutPlan(LayoutType.THREE_COLUMN, min(settings.three_column_capacity, remaining))


def plan_pages(
    products: Sequence[ProductRecord],
    settings: LayoutSettings | None = None,
) -> List[Tuple[int, PageLayoutPlan]]:
    plans: List[Tuple[int, PageLayoutPlan]] = []
    cursor = 0
    while cursor < len(products):
        plan = plan_page(products, cursor, settings)
        plans.append((cursor, plan))
        cursor += plan.products_on_page
    return plans
