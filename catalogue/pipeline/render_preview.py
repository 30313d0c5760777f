from __future__ import annotations

from pathlib import Path
from typing import Tuple

import fitz  # PyMuPDF

from ..storage import artifact_path


def _pick_preview_pages(page_count: int) -> Tuple[int, int]:
    # 표지 + 첫 상품 페이지. 상품 페이지가 없으면 표지를 두 번 쓴다.
    if page_count <= 2:
        return 0, 0
    return 0, 1


def _render_page_to_png(doc: fitz.Document, page_index: int, out_path: Path, min_px: int = 1200) -> None:
    page = doc.load_page(page_index)

    # 짧은 변 기준 min_px 이상이 되도록 zoom을 잡는다 (72dpi 기준 A4는 너무 작다)
    rect = page.rect
    short_side = min(rect.width, rect.height)
    zoom = max(1.0, min_px / float(short_side))
    mat = fitz.Matrix(zoom, zoom)

    pix = page.get_pixmap(matrix=mat, alpha=False)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    pix.save(str(out_path))


def render_previews(
    export_key: str,
    pdf_path: Path,
    base_dir: Path | None = None,
    include_key: bool = True,
) -> Tuple[Path, Path]:
    cover_png = artifact_path(export_key, "preview_cover", base_dir=base_dir, include_key=include_key)
    page_png = artifact_path(export_key, "preview_page", base_dir=base_dir, include_key=include_key)

    with fitz.open(str(pdf_path)) as doc:
        i_cover, i_page = _pick_preview_pages(doc.page_count)
        _render_page_to_png(doc, i_cover, cover_png)
        _render_page_to_png(doc, i_page, page_png)

    return cover_png, page_png
