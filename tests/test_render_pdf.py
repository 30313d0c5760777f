from __future__ import annotations

from datetime import date

import fitz  # PyMuPDF
import pytest

from catalogue.pipeline.images import ImageLoader
from catalogue.pipeline.layout import LayoutType, PageLayoutPlan
from catalogue.pipeline.render_pdf import (
    CatalogueDocument,
    DocumentStateError,
    EmptyCatalogueError,
    GenerationFailure,
    build_catalogue,
    generate_catalogue_pdf,
)
from conftest import corrupt_png

GENERATED_ON = date(2026, 10, 19)


class RecordingLoader(ImageLoader):
    def __init__(self, session) -> None:
        super().__init__(session=session, max_workers=4)
        self.drawn = []

    def load_image(self, url: str):
        self.drawn.append(url)
        return super().load_image(url)


def _pages_text(pdf: bytes):
    with fitz.open(stream=pdf, filetype="pdf") as doc:
        return [page.get_text() for page in doc]


def test_empty_selection_is_rejected(loader) -> None:
    with pytest.raises(EmptyCatalogueError):
        build_catalogue([], generated_on=GENERATED_ON, loader=loader)
    assert issubclass(EmptyCatalogueError, GenerationFailure)


def test_single_product_makes_three_pages(loader, make_product) -> None:
    result = build_catalogue([make_product()], generated_on=GENERATED_ON, loader=loader)
    assert result.page_count == 3
    assert result.plans == (PageLayoutPlan(LayoutType.FEATURED, 1),)

    cover, content, closing = _pages_text(result.pdf)
    assert "THAI TRIBAL CRAFTS" in cover
    assert "October 2026" in cover
    assert "1 handcrafted piece" in cover
    assert "PRODUCT COLLECTION" in content
    assert "Thai Tribal Crafts | 2026" in content
    assert "STORY:" in content
    assert "THANK YOU" in closing
    assert "PRODUCT COLLECTION" not in cover + closing


def test_thirteen_products_page_count(loader, make_product) -> None:
    products = [make_product() for _ in range(13)]
    result = build_catalogue(products, generated_on=GENERATED_ON, loader=loader)
    assert [p.layout_type for p in result.plans] == [
        LayoutType.THREE_COLUMN,
        LayoutType.THREE_COLUMN,
        LayoutType.FEATURED,
    ]
    assert result.page_count == 5

    pages = _pages_text(result.pdf)
    assert len(pages) == 5
    assert "13 handcrafted pieces" in pages[0]
    for number, page in enumerate(pages[1:4], start=1):
        assert str(number) in page
    for product in products:
        assert any(product.name.upper() in page for page in pages[1:4])


def test_every_product_appears_once_in_order(loader, make_product) -> None:
    products = [make_product(name=f"Item {chr(65 + i)}", story="y" * (100 + 80 * i)) for i in range(9)]
    result = build_catalogue(products, generated_on=GENERATED_ON, loader=loader)
    assert sum(p.products_on_page for p in result.plans) == len(products)

    text = "".join(_pages_text(result.pdf)[1:-1])
    positions = [text.index(p.name.upper()) for p in products]
    assert positions == sorted(positions)


def test_same_inputs_give_identical_bytes(fake_session, make_product) -> None:
    products = [make_product() for _ in range(4)]
    for product in products[:2]:
        fake_session.add_image(product.images[0])

    first = generate_catalogue_pdf(products, GENERATED_ON, loader=ImageLoader(session=fake_session))
    second = generate_catalogue_pdf(products, GENERATED_ON, loader=ImageLoader(session=fake_session))
    assert first == second

    later = generate_catalogue_pdf(products, date(2026, 11, 2), loader=ImageLoader(session=fake_session))
    assert later != first


def test_broken_images_do_not_fail_the_catalogue(fake_session, loader, make_product) -> None:
    fake_session.add("https://img.example.com/p1.png", content=b"garbage", content_type="image/png")
    products = [make_product(), make_product()]
    result = build_catalogue(products, generated_on=GENERATED_ON, loader=loader)
    content = _pages_text(result.pdf)[1]
    assert content.count("Image Unavailable") == 2
    assert products[0].name.upper() in content
    assert products[1].name.upper() in content


def test_images_are_drawn_in_slot_order(fake_session, make_product) -> None:
    products = [make_product() for _ in range(6)]
    for product in products:
        fake_session.add_image(product.images[0])
    loader = RecordingLoader(fake_session)

    build_catalogue(products, generated_on=GENERATED_ON, loader=loader)
    assert loader.drawn == [p.images[0] for p in products]
    assert sorted(fake_session.requested()) == sorted(p.images[0] for p in products)


def test_malformed_product_is_a_generation_failure(loader, make_product) -> None:
    with pytest.raises(GenerationFailure):
        build_catalogue([make_product(name=None), make_product()], generated_on=GENERATED_ON, loader=loader)


def test_custom_palette_and_thresholds(loader, make_product) -> None:
    style = {"palette": {"primary": "#000000"}, "layout": {"heavy_threshold": 10, "medium_threshold": 5}}
    result = build_catalogue([make_product() for _ in range(5)], GENERATED_ON, loader=loader, style=style)
    assert [p.layout_type for p in result.plans] == [LayoutType.TWO_COLUMN, LayoutType.FEATURED]


class TestDocumentStates:
    def test_content_before_cover(self, loader, make_product) -> None:
        doc = CatalogueDocument(GENERATED_ON, loader=loader)
        with pytest.raises(DocumentStateError):
            doc.add_content_page(PageLayoutPlan(LayoutType.FEATURED, 1), [make_product()])

    def test_closing_before_cover(self, loader) -> None:
        doc = CatalogueDocument(GENERATED_ON, loader=loader)
        with pytest.raises(DocumentStateError):
            doc.add_closing_page()

    def test_finalize_before_closing(self, loader) -> None:
        doc = CatalogueDocument(GENERATED_ON, loader=loader)
        doc.add_cover(0)
        with pytest.raises(DocumentStateError):
            doc.finalize()

    def test_content_after_closing(self, loader, make_product) -> None:
        doc = CatalogueDocument(GENERATED_ON, loader=loader)
        doc.add_cover(1)
        doc.add_closing_page()
        with pytest.raises(DocumentStateError):
            doc.add_content_page(PageLayoutPlan(LayoutType.FEATURED, 1), [make_product()])

    def test_finalize_once(self, loader) -> None:
        doc = CatalogueDocument(GENERATED_ON, loader=loader)
        doc.add_cover(0)
        doc.add_closing_page()
        pdf = doc.finalize()
        assert pdf.startswith(b"%PDF")
        assert doc.total_pages == 2
        with pytest.raises(DocumentStateError):
            doc.finalize()

    def test_slot_count_mismatch(self, loader, make_product) -> None:
        doc = CatalogueDocument(GENERATED_ON, loader=loader)
        doc.add_cover(2)
        with pytest.raises(GenerationFailure):
            doc.add_content_page(PageLayoutPlan(LayoutType.FEATURED, 1), [make_product(), make_product()])


def test_corrupt_image_does_not_fail_the_catalogue(fake_session, loader, make_product) -> None:
    products = [make_product() for _ in range(3)]
    fake_session.add(products[0].images[0], content=corrupt_png(), content_type="image/png")
    for product in products[1:]:
        fake_session.add_image(product.images[0])

    result = build_catalogue(products, generated_on=GENERATED_ON, loader=loader)
    assert result.page_count == 3
    content = _pages_text(result.pdf)[1]
    assert content.count("Image Unavailable") == 1
    assert all(p.name.upper() in content for p in products)
