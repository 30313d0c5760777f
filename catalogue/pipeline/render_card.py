from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from reportlab.lib import colors
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from ..config import LayoutSettings
from ..models import Dimensions, Price, ProductRecord
from .images import ImageLoader, ImageUnavailable, fit_inside, gallery_regions
from .layout import LayoutType, Rect

logger = logging.getLogger(__name__)

SERIF = "Times-Roman"
SERIF_BOLD = "Times-Bold"
SERIF_ITALIC = "Times-Italic"
SANS = "Helvetica"
SANS_BOLD = "Helvetica-Bold"

CARD_PADDING = 2 * mm
REGION_GAP = 3 * mm
NARROW_CARD_WIDTH = 70 * mm
WIDE_CARD_WIDTH = 150 * mm
TOP_IMAGE_SHARE = 0.45
FEATURED_IMAGE_SHARE = 0.5
SIDE_IMAGE_SHARE = 0.45
NAME_MAX_LINES = 2
MIN_STORY_LINES = 2
LEADING = 1.25

PLACEHOLDER_FILL = "#F5F2EE"
PLACEHOLDER_TEXT = "Image Unavailable"


def _hex(value: str, default=colors.black) -> colors.Color:
    if not value:
        return default
    try:
        return colors.HexColor("#" + str(value).lstrip("#"))
    except Exception:
        return default


@dataclass(frozen=True)
class Palette:
    primary: colors.Color
    secondary: colors.Color
    accent: colors.Color
    text: colors.Color
    muted: colors.Color
    background: colors.Color

    @classmethod
    def from_hex(cls, values: Dict[str, str]) -> "Palette":
        return cls(**{name: _hex(values.get(name, "")) for name in cls.__dataclass_fields__})


@dataclass(frozen=True)
class RenderContext:
    canvas: canvas.Canvas
    page_width: float
    page_height: float
    margin: float
    palette: Palette
    images: ImageLoader
    settings: LayoutSettings


class ImagePlacement(str, Enum):
    TOP = "top"
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class CardFonts:
    name: float
    tribe: float
    label: float
    body: float
    size: float
    price: float
    stock: float


def font_scale(card_width: float) -> float:
    if card_width < NARROW_CARD_WIDTH:
        return 0.85
    if card_width >= WIDE_CARD_WIDTH:
        return 1.3
    return 1.0


def card_fonts(card_width: float) -> CardFonts:
    s = font_scale(card_width)
    return CardFonts(
        name=11 * s,
        tribe=8 * s,
        label=7 * s,
        body=7 * s,
        size=8 * s,
        price=9 * s,
        stock=6 * s,
    )


def image_placement(layout: LayoutType, slot_index: int) -> ImagePlacement:
    if layout == LayoutType.TWO_COLUMN:
        return ImagePlacement.LEFT if slot_index % 2 == 0 else ImagePlacement.RIGHT
    return ImagePlacement.TOP


def split_card(inner: Rect, placement: ImagePlacement, layout: LayoutType) -> Tuple[Rect, Rect]:
    """(image region, text region) inside the padded card."""
    if placement == ImagePlacement.TOP:
        share = FEATURED_IMAGE_SHARE if layout == LayoutType.FEATURED else TOP_IMAGE_SHARE
        img_h = inner.h * share
        image = Rect(inner.x, inner.top - img_h, inner.w, img_h)
        text = Rect(inner.x, inner.y, inner.w, max(0.0, inner.h - img_h - REGION_GAP))
        return image, text

    img_w = inner.w * SIDE_IMAGE_SHARE
    text_w = max(0.0, inner.w - img_w - REGION_GAP)
    if placement == ImagePlacement.LEFT:
        return Rect(inner.x, inner.y, img_w, inner.h), Rect(inner.right - text_w, inner.y, text_w, inner.h)
    return Rect(inner.right - img_w, inner.y, img_w, inner.h), Rect(inner.x, inner.y, text_w, inner.h)


# -------------------- text helpers --------------------
def _fit_font(canv: canvas.Canvas, text: str, font_name: str, base_size: float, max_width: float, min_size: float = 4.0) -> float:
    """
    폭을 넘어가는 텍스트는 폰트를 줄여서 맞춘다.
    """
    size = float(base_size)
    while size > min_size:
        if canv.stringWidth(text, font_name, size) <= max_width:
            return size
        size -= 0.5
    return min_size


def _wrap_words(canv: canvas.Canvas, text: str, font_name: str, font_size: float, max_width: float) -> List[str]:
    """
    단어 단위 줄바꿈. 한 단어가 폭보다 길면 글자 단위로 자른다.
    """
    words = (text or "").split()
    if not words:
        return [""]

    def fits(s: str) -> bool:
        return canv.stringWidth(s, font_name, font_size) <= max_width

    lines: List[str] = []
    cur = ""
    for w in words:
        trial = f"{cur} {w}" if cur else w
        if fits(trial):
            cur = trial
            continue
        if cur:
            lines.append(cur)
            cur = ""
        if fits(w):
            cur = w
            continue
        for ch in w:
            if fits(cur + ch) or not cur:
                cur += ch
            else:
                lines.append(cur)
                cur = ch
    if cur:
        lines.append(cur)
    return lines


def _clip_lines(
    canv: canvas.Canvas,
    lines: List[str],
    max_lines: int,
    font_name: str,
    font_size: float,
    max_width: float,
) -> List[str]:
    if len(lines) <= max_lines:
        return lines
    kept = lines[:max_lines]
    last = kept[-1].rstrip()
    while last and canv.stringWidth(last + "...", font_name, font_size) > max_width:
        last = last[:-1].rstrip()
    kept[-1] = last + "..."
    return kept


def story_line_budget(remaining_height: float, line_height: float) -> int:
    if line_height <= 0:
        return MIN_STORY_LINES
    return max(MIN_STORY_LINES, int(math.floor(remaining_height / line_height)))


def _number(value: float) -> str:
    return f"{value:g}"


def format_dimensions(dimensions: Optional[Dimensions]) -> str:
    if dimensions is None:
        return "Standard"
    parts = [v for v in (dimensions.length, dimensions.width, dimensions.height) if v is not None]
    if not parts:
        return "Standard"
    return "×".join(_number(float(v)) for v in parts) + f" {dimensions.unit}"


def format_price(price: Price) -> str:
    amount = float(price.amount)
    if amount.is_integer():
        return f"{price.currency} {int(amount):,}"
    return f"{price.currency} {amount:,.2f}"


# -------------------- drawing --------------------
def draw_placeholder(ctx: RenderContext, box: Rect, caption: bool = True) -> None:
    canv = ctx.canvas
    canv.setFillColor(_hex(PLACEHOLDER_FILL))
    canv.setStrokeColor(ctx.palette.muted)
    canv.setLineWidth(0.2 * mm)
    canv.rect(box.x, box.y, box.w, box.h, stroke=1, fill=1)
    if not caption:
        return
    size = _fit_font(canv, PLACEHOLDER_TEXT, SANS, 7, box.w - 2 * mm)
    canv.setFillColor(ctx.palette.muted)
    canv.setFont(SANS, size)
    canv.drawCentredString(box.x + box.w / 2, box.y + box.h / 2 - size * 0.35, PLACEHOLDER_TEXT)


def _draw_image_or_placeholder(ctx: RenderContext, url: Optional[str], box: Rect, caption: bool = True) -> bool:
    if box.w <= 0 or box.h <= 0:
        return False
    try:
        if not url:
            raise ImageUnavailable("Product has no image")
        loaded = ctx.images.load_image(url)
        target = fit_inside(loaded.aspect_ratio, box)
        ctx.canvas.drawImage(loaded.image, target.x, target.y, target.w, target.h, mask="auto")
        return True
    except ImageUnavailable:
        draw_placeholder(ctx, box, caption=caption)
    except Exception as exc:
        logger.warning("Could not draw image %s: %s", url, exc)
        draw_placeholder(ctx, box, caption=caption)
    return False


def _draw_gallery(ctx: RenderContext, product: ProductRecord, region: Rect) -> None:
    urls = list(product.images)
    primary_box, thumb_boxes = gallery_regions(region, len(urls))
    _draw_image_or_placeholder(ctx, urls[0] if urls else None, primary_box)
    for url, box in zip(urls[1:], thumb_boxes):
        _draw_image_or_placeholder(ctx, url, box, caption=False)


def _draw_lines(canv: canvas.Canvas, lines: List[str], x: float, y: float, leading: float) -> float:
    for line in lines:
        y -= leading
        canv.drawString(x, y, line)
    return y


def _draw_text(ctx: RenderContext, product: ProductRecord, region: Rect, fonts: CardFonts, layout: LayoutType) -> None:
    canv = ctx.canvas
    pal = ctx.palette
    x, w = region.x, region.w
    y = region.top

    # name
    canv.setFillColor(pal.text)
    canv.setFont(SERIF_BOLD, fonts.name)
    name_lines = _wrap_words(canv, product.name.upper(), SERIF_BOLD, fonts.name, w)
    name_lines = _clip_lines(canv, name_lines, NAME_MAX_LINES, SERIF_BOLD, fonts.name, w)
    y = _draw_lines(canv, name_lines, x, y, fonts.name * LEADING)

    # tribe
    canv.setFillColor(pal.secondary)
    tribe_size = _fit_font(canv, product.tribe, SERIF_ITALIC, fonts.tribe, w)
    canv.setFont(SERIF_ITALIC, tribe_size)
    y = _draw_lines(canv, [product.tribe], x, y - 1 * mm, fonts.tribe * LEADING)

    # divider
    y -= 1.5 * mm
    canv.setStrokeColor(pal.accent)
    canv.setLineWidth(0.1 * mm)
    canv.line(x, y, x + w, y)
    y -= 0.5 * mm

    body_leading = fonts.body * LEADING
    label_leading = fonts.label * LEADING

    # materials
    canv.setFillColor(pal.text)
    canv.setFont(SANS_BOLD, fonts.label)
    y = _draw_lines(canv, ["MATERIALS:"], x, y, label_leading)
    canv.setFont(SANS, fonts.body)
    material_max = 3 if layout == LayoutType.FEATURED else 2
    materials = ", ".join(product.materials).upper()
    material_lines = _clip_lines(canv, _wrap_words(canv, materials, SANS, fonts.body, w), material_max, SANS, fonts.body, w)
    y = _draw_lines(canv, material_lines, x, y, body_leading)
    y -= 1 * mm

    # bottom block is anchored first so the story knows how much room it has
    price_y = region.y + 1 * mm
    size_y = price_y + fonts.price * LEADING
    label_y = size_y + fonts.size * LEADING
    bottom_top = label_y + fonts.label * LEADING

    # story
    story_label = "STORY:" if layout == LayoutType.FEATURED else "NOTES:"
    canv.setFont(SANS_BOLD, fonts.label)
    y = _draw_lines(canv, [story_label], x, y, label_leading)
    canv.setFont(SANS, fonts.body)
    max_lines = story_line_budget(y - bottom_top - 1 * mm, body_leading)
    story_lines = _clip_lines(canv, _wrap_words(canv, product.story, SANS, fonts.body, w), max_lines, SANS, fonts.body, w)
    _draw_lines(canv, story_lines, x, y, body_leading)

    # sizes & price
    canv.setFillColor(pal.text)
    canv.setFont(SANS_BOLD, fonts.label)
    canv.drawString(x, label_y, "SIZES & RETAIL PRICE")
    canv.setFont(SANS, fonts.size)
    canv.drawString(x, size_y, f"Size: {format_dimensions(product.dimensions)}")
    canv.setFont(SANS_BOLD, fonts.price)
    canv.drawString(x, price_y, format_price(product.price))

    if product.stock_quantity > 0:
        canv.setFillColor(pal.secondary)
        canv.setFont(SANS, fonts.stock)
        canv.drawRightString(region.right, price_y, f"In Stock: {product.stock_quantity}")


def render_card(
    ctx: RenderContext,
    product: ProductRecord,
    rect: Rect,
    slot_index: int,
    layout: LayoutType = LayoutType.THREE_COLUMN,
) -> None:
    """
    카드 하나를 그린다: 테두리 → 이미지 영역 → 텍스트 블록 순서.
    이미지 실패는 placeholder로 대체되고 예외를 밖으로 내보내지 않는다.
    """
    canv = ctx.canvas
    canv.setFillColor(colors.white)
    canv.setStrokeColor(ctx.palette.accent)
    canv.setLineWidth(0.3 * mm)
    canv.rect(rect.x, rect.y, rect.w, rect.h, stroke=1, fill=1)

    inner = rect.inset(CARD_PADDING)
    placement = image_placement(layout, slot_index)
    image_region, text_region = split_card(inner, placement, layout)

    _draw_gallery(ctx, product, image_region)
    _draw_text(ctx, product, text_region, card_fonts(rect.w), layout)
