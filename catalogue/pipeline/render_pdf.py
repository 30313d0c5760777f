from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from .. import config
from ..config import LayoutSettings, load_layout_settings, load_palette, load_style_preset
from ..models import ProductRecord
from .images import MAX_THUMBNAILS, ImageLoader
from .layout import LayoutType, PageLayoutPlan, Rect, plan_page
from .render_card import SANS, SERIF, SERIF_BOLD, SERIF_ITALIC, Palette, RenderContext, render_card

logger = logging.getLogger(__name__)


class GenerationFailure(Exception):
    """Catalogue could not be produced; no partial PDF is returned."""


class EmptyCatalogueError(GenerationFailure):
    pass


class DocumentStateError(GenerationFailure):
    pass


class DocumentState(str, Enum):
    NEW = "new"
    COVER = "cover"
    CONTENT = "content"
    CLOSING = "closing"
    FINALIZED = "finalized"


ALLOWED_TRANSITIONS: Dict[DocumentState, Tuple[DocumentState, ...]] = {
    DocumentState.NEW: (DocumentState.COVER,),
    DocumentState.COVER: (DocumentState.CONTENT, DocumentState.CLOSING),
    DocumentState.CONTENT: (DocumentState.CONTENT, DocumentState.CLOSING),
    DocumentState.CLOSING: (DocumentState.FINALIZED,),
    DocumentState.FINALIZED: (),
}


@dataclass(frozen=True)
class CatalogueResult:
    pdf: bytes
    page_count: int
    plans: Tuple[PageLayoutPlan, ...]


# -------------------- page chrome --------------------
def _from_top(ctx: RenderContext, offset_mm: float) -> float:
    return ctx.page_height - offset_mm * mm


def _fill_background(ctx: RenderContext) -> None:
    ctx.canvas.setFillColor(ctx.palette.background)
    ctx.canvas.rect(0, 0, ctx.page_width, ctx.page_height, stroke=0, fill=1)


def _draw_header(ctx: RenderContext, title: str, page_number: int, year: int) -> None:
    canv = ctx.canvas
    pal = ctx.palette
    y = _from_top(ctx, 10)

    canv.setFillColor(pal.muted)
    canv.setFont(SERIF, 8)
    canv.drawString(ctx.margin, y, f"{config.BRAND_NAME} | {year}")

    canv.setFillColor(pal.text)
    canv.setFont(SERIF_BOLD, 10)
    canv.drawCentredString(ctx.page_width / 2, y, title)

    canv.setFillColor(pal.muted)
    canv.setFont(SERIF, 8)
    canv.drawRightString(ctx.page_width - ctx.margin, y, str(page_number))

    canv.setStrokeColor(pal.muted)
    canv.setLineWidth(0.1 * mm)
    line_y = _from_top(ctx, 12)
    canv.line(ctx.margin, line_y, ctx.page_width - ctx.margin, line_y)


# -------------------- layouts --------------------
def _content_area(ctx: RenderContext) -> Rect:
    top = _from_top(ctx, config.HEADER_BAND_MM)
    return Rect(ctx.margin, ctx.margin, ctx.page_width - 2 * ctx.margin, top - ctx.margin)


def _grid(ctx: RenderContext, cols: int, rows: int) -> List[Rect]:
    area = _content_area(ctx)
    gap = config.CARD_GAP_MM * mm
    card_w = (area.w - gap * (cols - 1)) / cols
    card_h = (area.h - gap * (rows - 1)) / rows
    slots: List[Rect] = []
    for r in range(rows):
        y = area.top - (r + 1) * card_h - r * gap
        for c in range(cols):
            slots.append(Rect(area.x + c * (card_w + gap), y, card_w, card_h))
    return slots


def _featured_slots(ctx: RenderContext) -> List[Rect]:
    return [_content_area(ctx)]


def _two_column_slots(ctx: RenderContext) -> List[Rect]:
    return _grid(ctx, cols=2, rows=2)


def _three_column_slots(ctx: RenderContext) -> List[Rect]:
    return _grid(ctx, cols=3, rows=2)


LAYOUT_SLOTS: Dict[LayoutType, Callable[[RenderContext], List[Rect]]] = {
    LayoutType.FEATURED: _featured_slots,
    LayoutType.TWO_COLUMN: _two_column_slots,
    LayoutType.THREE_COLUMN: _three_column_slots,
}


# -------------------- document --------------------
class CatalogueDocument:
    """
    Cover → ContentPage* → ClosingPage → Finalized.

    Each add_* call draws one page and closes it with showPage(); finalize()
    serializes the canvas and freezes the document.
    """

    def __init__(
        self,
        generated_on: date,
        loader: Optional[ImageLoader] = None,
        palette: Optional[Palette] = None,
        settings: Optional[LayoutSettings] = None,
    ) -> None:
        self.generated_on = generated_on
        self._buffer = io.BytesIO()
        page_size = (config.PAGE_WIDTH_MM * mm, config.PAGE_HEIGHT_MM * mm)
        # invariant=1 pins the PDF creation date and document id
        canv = canvas.Canvas(self._buffer, pagesize=page_size, invariant=1)
        canv.setTitle(f"{config.BRAND_NAME} Catalogue")
        canv.setAuthor(config.BRAND_NAME)
        canv.setSubject(config.COVER_SUBTITLE)

        self.context = RenderContext(
            canvas=canv,
            page_width=page_size[0],
            page_height=page_size[1],
            margin=config.PAGE_MARGIN_MM * mm,
            palette=palette or Palette.from_hex(config.DEFAULT_PALETTE),
            images=loader or ImageLoader(),
            settings=settings or LayoutSettings(),
        )
        self.state = DocumentState.NEW
        self.page_number = 0
        self.total_pages = 0
        self.plans: List[PageLayoutPlan] = []

    def _transition(self, target: DocumentState) -> None:
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise DocumentStateError(f"Cannot move from {self.state.value} to {target.value}")
        self.state = target

    def _end_page(self) -> None:
        self.context.canvas.showPage()
        self.total_pages += 1

    def add_cover(self, product_count: int) -> None:
        self._transition(DocumentState.COVER)
        ctx = self.context
        canv = ctx.canvas
        pal = ctx.palette
        cx = ctx.page_width / 2

        _fill_background(ctx)

        canv.setFillColor(pal.primary)
        canv.setFont(SERIF_BOLD, 36)
        canv.drawCentredString(cx, _from_top(ctx, 100), config.COVER_TITLE)

        canv.setFillColor(pal.secondary)
        canv.setFont(SERIF_ITALIC, 14)
        canv.drawCentredString(cx, _from_top(ctx, 115), config.COVER_SUBTITLE)

        canv.setStrokeColor(pal.accent)
        canv.setLineWidth(0.5 * mm)
        for offset in (125, 127):
            y = _from_top(ctx, offset)
            canv.line(50 * mm, y, ctx.page_width - 50 * mm, y)

        canv.setFillColor(pal.muted)
        canv.setFont(SANS, 9)
        canv.drawCentredString(cx, _from_top(ctx, 140), self.generated_on.strftime("%B %Y"))
        noun = "piece" if product_count == 1 else "pieces"
        canv.drawCentredString(cx, _from_top(ctx, 147), f"{product_count} handcrafted {noun}")

        self._end_page()

    def add_content_page(self, plan: PageLayoutPlan, products: Sequence[ProductRecord]) -> None:
        self._transition(DocumentState.CONTENT)
        ctx = self.context
        slots = LAYOUT_SLOTS[plan.layout_type](ctx)
        if len(products) != plan.products_on_page or len(products) > len(slots):
            raise GenerationFailure(
                f"{plan.layout_type.value} page has {len(slots)} slots, "
                f"planned {plan.products_on_page}, got {len(products)} products"
            )

        self.page_number += 1
        # fetches may finish in any order; drawing below is always slot order
        ctx.images.prefetch(_page_image_urls(products))

        _fill_background(ctx)
        _draw_header(ctx, config.SECTION_TITLE, self.page_number, self.generated_on.year)
        for slot_index, (product, rect) in enumerate(zip(products, slots)):
            render_card(ctx, product, rect, slot_index, plan.layout_type)

        self.plans.append(plan)
        logger.debug("Page %d: %s with %d products", self.page_number, plan.layout_type.value, len(products))
        self._end_page()

    def add_closing_page(self) -> None:
        self._transition(DocumentState.CLOSING)
        ctx = self.context
        canv = ctx.canvas
        pal = ctx.palette
        cx = ctx.page_width / 2
        mid = ctx.page_height / 2

        _fill_background(ctx)

        canv.setFillColor(pal.primary)
        canv.setFont(SERIF_BOLD, 28)
        canv.drawCentredString(cx, mid + 20 * mm, config.CLOSING_TITLE)

        canv.setFillColor(pal.text)
        canv.setFont(SERIF, 10)
        canv.drawCentredString(cx, mid, config.CLOSING_TEXT)

        canv.setFillColor(pal.muted)
        canv.setFont(SERIF, 8)
        canv.drawCentredString(cx, mid - 15 * mm, config.CLOSING_FOOTER)

        self._end_page()

    def finalize(self) -> bytes:
        self._transition(DocumentState.FINALIZED)
        self.context.canvas.save()
        return self._buffer.getvalue()


def _page_image_urls(products: Iterable[ProductRecord]) -> List[str]:
    urls: List[str] = []
    for product in products:
        urls.extend(u for u in product.images[: 1 + MAX_THUMBNAILS] if u)
    return urls


def build_catalogue(
    products: Sequence[ProductRecord],
    generated_on: Optional[date] = None,
    loader: Optional[ImageLoader] = None,
    style: Optional[dict] = None,
) -> CatalogueResult:
    products = list(products)
    if not products:
        raise EmptyCatalogueError("No products to catalogue")

    style = load_style_preset() if style is None else style
    settings = load_layout_settings(style)
    generated_on = generated_on or date.today()

    logger.info("Generating catalogue for %d products", len(products))
    try:
        doc = CatalogueDocument(
            generated_on,
            loader=loader,
            palette=Palette.from_hex(load_palette(style)),
            settings=settings,
        )
        doc.add_cover(len(products))
        cursor = 0
        while cursor < len(products):
            plan = plan_page(products, cursor, settings)
            doc.add_content_page(plan, products[cursor:cursor + plan.products_on_page])
            cursor += plan.products_on_page
        doc.add_closing_page()
        pdf = doc.finalize()
    except GenerationFailure:
        raise
    except Exception as exc:
        logger.exception("Catalogue generation failed")
        raise GenerationFailure(f"Failed to generate catalogue: {exc}") from exc

    logger.info("Catalogue ready: %d pages, %d bytes", doc.total_pages, len(pdf))
    return CatalogueResult(pdf=pdf, page_count=doc.total_pages, plans=tuple(doc.plans))


def generate_catalogue_pdf(
    products: Sequence[ProductRecord],
    generated_on: Optional[date] = None,
    loader: Optional[ImageLoader] = None,
    style: Optional[dict] = None,
) -> bytes:
    return build_catalogue(products, generated_on=generated_on, loader=loader, style=style).pdf
