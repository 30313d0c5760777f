from __future__ import annotations

from pathlib import Path

from slugify import slugify

from . import config
from .models import CatalogueExport, get_session


def catalogue_filename(brand: str = config.BRAND_NAME) -> str:
    return f"{slugify(brand)}-catalogue.pdf"


ARTIFACT_NAMES = {
    "catalogue": catalogue_filename(),
    "preview_cover": "preview_cover.png",
    "preview_page": "preview_page.png",
}


def export_dir(export_key: str, base_dir: Path | None = None, include_key: bool = True) -> Path:
    root = base_dir or config.OUT_DIR / "exports"
    path = root / export_key if include_key else root
    path.mkdir(parents=True, exist_ok=True)
    return path


def artifact_path(
    export_key: str,
    artifact_type: str,
    base_dir: Path | None = None,
    include_key: bool = True,
) -> Path:
    filename = ARTIFACT_NAMES[artifact_type]
    return export_dir(export_key, base_dir=base_dir, include_key=include_key) / filename


def record_export(product_count: int, page_count: int, pdf_path: Path) -> CatalogueExport:
    try:
        stored_path = str(pdf_path.relative_to(config.OUT_DIR))
    except ValueError:
        stored_path = str(pdf_path)
    export = CatalogueExport(product_count=product_count, page_count=page_count, path=stored_path)
    with get_session() as session:
        session.add(export)
        session.commit()
        session.refresh(export)
    return export
