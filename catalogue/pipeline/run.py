from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
import logging
import shutil
from typing import Iterable, Optional, Sequence, Tuple
from uuid import uuid4

from .. import config
from ..models import ProductRecord, init_db
from ..products import ProductFilter, select_for_catalogue
from ..storage import artifact_path, record_export
from .images import ImageLoader
from .render_pdf import GenerationFailure, build_catalogue
from .render_preview import render_previews


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportResult:
    export_key: str
    pdf_path: Path
    previews: Tuple[Path, ...]
    product_count: int
    page_count: int


def _exports_root() -> Path:
    return config.OUT_DIR / "exports"


def _new_export_key() -> str:
    return f"{datetime.now():%Y%m%d-%H%M%S}-{uuid4().hex[:6]}"


def _prepare_temp_dir(export_key: str) -> Path:
    temp_dir = _exports_root() / f"{export_key}.tmp"
    if temp_dir.exists():
        shutil.rmtree(temp_dir)
    temp_dir.mkdir(parents=True, exist_ok=True)
    return temp_dir


def _finalize_dir(temp_dir: Path, export_key: str) -> Path:
    final_dir = _exports_root() / export_key
    if final_dir.exists():
        shutil.rmtree(final_dir)
    temp_dir.replace(final_dir)
    return final_dir


def export_catalogue(
    products: Sequence[ProductRecord],
    generated_on: Optional[date] = None,
    loader: Optional[ImageLoader] = None,
    previews: bool = True,
) -> ExportResult:
    init_db()
    export_key = _new_export_key()
    temp_dir = _prepare_temp_dir(export_key)
    try:
        result = build_catalogue(products, generated_on=generated_on, loader=loader)
        pdf_path = artifact_path(export_key, "catalogue", base_dir=temp_dir, include_key=False)
        pdf_path.write_bytes(result.pdf)
        preview_paths: Tuple[Path, ...] = ()
        if previews:
            preview_paths = render_previews(export_key, pdf_path, base_dir=temp_dir, include_key=False)
    except GenerationFailure as exc:
        logger.error("Catalogue export %s failed: %s", export_key, exc)
        shutil.rmtree(temp_dir, ignore_errors=True)
        raise
    except Exception:
        logger.exception("Catalogue export %s failed", export_key)
        shutil.rmtree(temp_dir, ignore_errors=True)
        raise

    final_dir = _finalize_dir(temp_dir, export_key)
    final_pdf = final_dir / pdf_path.relative_to(temp_dir)
    final_previews = tuple(final_dir / p.relative_to(temp_dir) for p in preview_paths)

    record_export(len(products), result.page_count, final_pdf)
    logger.info("Exported %d products to %s", len(products), final_pdf)
    return ExportResult(
        export_key=export_key,
        pdf_path=final_pdf,
        previews=final_previews,
        product_count=len(products),
        page_count=result.page_count,
    )


def run_export(
    product_ids: Optional[Iterable[str]] = None,
    filters: Optional[ProductFilter] = None,
    generated_on: Optional[date] = None,
    loader: Optional[ImageLoader] = None,
    previews: bool = True,
) -> ExportResult:
    products = select_for_catalogue(product_ids, filters)
    return export_catalogue(products, generated_on=generated_on, loader=loader, previews=previews)
