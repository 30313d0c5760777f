from __future__ import annotations

import math

import pytest
import requests

from catalogue.pipeline.images import (
    THUMBNAIL_GAP,
    ImageLoader,
    ImageUnavailable,
    decode_image,
    fit_inside,
    gallery_regions,
    normalize_image_url,
)
from catalogue.pipeline.layout import Rect
from conftest import corrupt_png, image_bytes

CLOUDINARY = "https://res.cloudinary.com/demo/image/upload/"


def test_fit_inside_wide_image_in_square_box() -> None:
    assert fit_inside(2.0, Rect(0, 0, 40, 40)) == Rect(0, 10, 40, 20)


def test_fit_inside_tall_image_in_square_box() -> None:
    assert fit_inside(0.5, Rect(0, 0, 40, 40)) == Rect(10, 0, 20, 40)


def test_fit_inside_keeps_offset_and_ratio() -> None:
    box = Rect(100, 200, 60, 30)
    fitted = fit_inside(1.0, box)
    assert fitted == Rect(115, 200, 30, 30)
    assert fitted.w <= box.w and fitted.h <= box.h


@pytest.mark.parametrize("aspect, box", [(0, Rect(0, 0, 10, 10)), (1.5, Rect(0, 0, 0, 10)), (-1, Rect(0, 0, 10, 10))])
def test_fit_inside_rejects_degenerate_input(aspect: float, box: Rect) -> None:
    with pytest.raises(ValueError):
        fit_inside(aspect, box)


def test_normalize_inserts_auto_transform() -> None:
    url = CLOUDINARY + "v1712/crafts/scarf.jpg"
    assert normalize_image_url(url) == CLOUDINARY + "f_auto,q_auto/v1712/crafts/scarf.jpg"


def test_normalize_keeps_existing_transform() -> None:
    url = CLOUDINARY + "w_400,q_80/v1712/crafts/scarf.jpg"
    assert normalize_image_url(url) == url


def test_normalize_ignores_other_hosts() -> None:
    url = "https://img.example.com/image/upload/scarf.jpg"
    assert normalize_image_url(url) == url


def test_gallery_single_image_uses_whole_region() -> None:
    region = Rect(0, 0, 100, 100)
    assert gallery_regions(region, 1) == (region, [])


def test_gallery_primary_and_three_thumbnails() -> None:
    region = Rect(0, 0, 100, 100)
    primary, thumbs = gallery_regions(region, 5)
    assert primary == Rect(0, 25, 100, 75)
    assert len(thumbs) == 3
    assert len({round(t.w, 6) for t in thumbs}) == 1
    assert all(t.y == region.y for t in thumbs)
    assert math.isclose(thumbs[0].h, 25 - THUMBNAIL_GAP)
    assert math.isclose(thumbs[-1].right, region.right)


def test_gallery_fewer_thumbnails_are_centered() -> None:
    region = Rect(0, 0, 90, 100)
    _, full = gallery_regions(region, 4)
    _, thumbs = gallery_regions(region, 2)
    assert len(thumbs) == 1
    assert math.isclose(thumbs[0].w, full[0].w)
    assert math.isclose(thumbs[0].x + thumbs[0].w / 2, 45)


def test_decode_image_rejects_garbage() -> None:
    with pytest.raises(ImageUnavailable):
        decode_image(b"definitely not an image")


def test_decode_image_reports_size() -> None:
    loaded = decode_image(image_bytes(60, 30))
    assert (loaded.width, loaded.height) == (60, 30)
    assert loaded.aspect_ratio == 2.0


def test_load_image_requests_normalized_url(fake_session, loader) -> None:
    url = CLOUDINARY + "crafts/bag.png"
    fake_session.add_image(CLOUDINARY + "f_auto,q_auto/crafts/bag.png", 90, 30)
    loaded = loader.load_image(url)
    assert loaded.aspect_ratio == 3.0

    requested, headers, timeout = fake_session.calls[0]
    assert requested == CLOUDINARY + "f_auto,q_auto/crafts/bag.png"
    assert "image/jpeg" in headers["Accept"]
    assert timeout == 2.0


def test_not_found_is_unavailable(loader) -> None:
    with pytest.raises(ImageUnavailable):
        loader.load_image("https://img.example.com/missing.png")


def test_timeout_is_unavailable(fake_session, loader, timeout_error) -> None:
    fake_session.fail("https://img.example.com/slow.png", timeout_error)
    with pytest.raises(ImageUnavailable, match="Timed out"):
        loader.load_image("https://img.example.com/slow.png")


def test_connection_error_is_unavailable(fake_session, loader) -> None:
    fake_session.fail("https://img.example.com/down.png", requests.exceptions.ConnectionError("refused"))
    with pytest.raises(ImageUnavailable):
        loader.load_image("https://img.example.com/down.png")


def test_html_body_is_unavailable(fake_session, loader) -> None:
    fake_session.add("https://img.example.com/page", content=b"<html></html>", content_type="text/html")
    with pytest.raises(ImageUnavailable, match="content type"):
        loader.load_image("https://img.example.com/page")


def test_oversized_body_is_unavailable(fake_session) -> None:
    loader = ImageLoader(session=fake_session, max_size_mb=0)
    fake_session.add_image("https://img.example.com/big.png")
    with pytest.raises(ImageUnavailable, match="too large"):
        loader.load_image("https://img.example.com/big.png")


def test_blank_url_is_unavailable(fake_session, loader) -> None:
    with pytest.raises(ImageUnavailable):
        loader.load_image("  ")
    assert fake_session.calls == []


def test_results_and_failures_are_cached(fake_session, loader) -> None:
    fake_session.add_image("https://img.example.com/a.png")
    first = loader.load_image("https://img.example.com/a.png")
    assert loader.load_image("https://img.example.com/a.png") is first

    for _ in range(3):
        with pytest.raises(ImageUnavailable):
            loader.load_image("https://img.example.com/gone.png")

    assert fake_session.requested() == ["https://img.example.com/a.png", "https://img.example.com/gone.png"]


def test_prefetch_fetches_each_url_once(fake_session, loader) -> None:
    urls = [f"https://img.example.com/{i}.png" for i in range(5)]
    for url in urls[:4]:
        fake_session.add_image(url)

    loader.prefetch(urls + urls[:2])
    assert sorted(fake_session.requested()) == sorted(urls)

    for url in urls[:4]:
        assert loader.load_image(url).width == 80
    with pytest.raises(ImageUnavailable):
        loader.load_image(urls[4])
    assert len(fake_session.calls) == 5


def test_decode_image_rejects_corrupt_png() -> None:
    with pytest.raises(ImageUnavailable):
        decode_image(corrupt_png())


def test_decode_image_wraps_decoder_errors(monkeypatch) -> None:
    def broken_open(fp):  # noqa: ARG001 - test helper
        raise SyntaxError("broken PNG file")

    monkeypatch.setattr("catalogue.pipeline.images.Image.open", broken_open)
    with pytest.raises(ImageUnavailable, match="broken PNG"):
        decode_image(image_bytes())


def test_corrupt_png_is_unavailable_and_cached(fake_session, loader) -> None:
    fake_session.add("https://img.example.com/corrupt.png", content=corrupt_png(), content_type="image/png")
    loader.prefetch(["https://img.example.com/corrupt.png", "https://img.example.com/missing.png"])
    for _ in range(2):
        with pytest.raises(ImageUnavailable):
            loader.load_image("https://img.example.com/corrupt.png")
    assert fake_session.requested().count("https://img.example.com/corrupt.png") == 1


def test_unexpected_decode_error_is_cached_as_unavailable(monkeypatch, fake_session, loader) -> None:
    def exploding_decode(payload: bytes):  # noqa: ARG001 - test helper
        raise ValueError("tile cannot extend outside image")

    monkeypatch.setattr("catalogue.pipeline.images.decode_image", exploding_decode)
    fake_session.add_image("https://img.example.com/odd.png")
    loader.prefetch(["https://img.example.com/odd.png", "https://img.example.com/other.png"])
    with pytest.raises(ImageUnavailable, match="tile cannot extend"):
        loader.load_image("https://img.example.com/odd.png")
