from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict
import json


BASE_DIR = Path(__file__).resolve().parents[1]
OUT_DIR = BASE_DIR / "out"
DB_PATH = OUT_DIR / "catalogue.db"
STYLE_PRESET_PATH = BASE_DIR / "assets" / "brand" / "catalogue_style.json"

BRAND_NAME = "Thai Tribal Crafts"
COVER_TITLE = "THAI TRIBAL CRAFTS"
COVER_SUBTITLE = "Handcrafted Heritage Collection"
SECTION_TITLE = "PRODUCT COLLECTION"
CLOSING_TITLE = "THANK YOU"
CLOSING_TEXT = "For supporting traditional craftsmanship and cultural preservation"
CLOSING_FOOTER = "Thai Tribal Craft Catalogue"

DIMENSION_UNITS = ["cm", "inch"]

MAX_NAME_LENGTH = 200
MAX_STORY_LENGTH = 2000
MAX_IMAGES = 5

# Page geometry in millimetres (A4 portrait).
PAGE_WIDTH_MM = 210.0
PAGE_HEIGHT_MM = 297.0
PAGE_MARGIN_MM = 15.0
HEADER_BAND_MM = 20.0
CARD_GAP_MM = 5.0

DEFAULT_PALETTE: Dict[str, str] = {
    "primary": "#4A3428",     # rich brown, headings
    "secondary": "#8B5A3C",   # clay red, accents
    "accent": "#C4A574",      # warm amber, borders
    "text": "#3C3C3C",
    "muted": "#8C7B6B",
    "background": "#FCFAF7",
}

ALLOWED_IMAGE_MIMETYPES = ["image/jpeg", "image/png", "image/webp", "image/gif"]
IMAGE_FETCH_TIMEOUT = 5.0
IMAGE_FETCH_WORKERS = 4
MAX_IMAGE_SIZE_MB = 10
IMAGE_USER_AGENT = "ThaiTribalCrafts-Catalogue/1.0"


@dataclass(frozen=True)
class LayoutSettings:
    heavy_threshold: float = 600.0
    medium_threshold: float = 400.0
    sample_size: int = 6
    two_column_capacity: int = 4
    three_column_capacity: int = 6


def load_style_preset() -> dict:
    if not STYLE_PRESET_PATH.exists():
        return {}
    with STYLE_PRESET_PATH.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def load_palette(style: dict | None = None) -> Dict[str, str]:
    style = load_style_preset() if style is None else style
    palette = dict(DEFAULT_PALETTE)
    overrides = style.get("palette", {})
    if isinstance(overrides, dict):
        palette.update({k: str(v) for k, v in overrides.items() if k in palette})
    return palette


def load_layout_settings(style: dict | None = None) -> LayoutSettings:
    style = load_style_preset() if style is None else style
    overrides = style.get("layout", {})
    if not isinstance(overrides, dict):
        return LayoutSettings()
    known = LayoutSettings.__dataclass_fields__
    return replace(LayoutSettings(), **{k: v for k, v in overrides.items() if k in known})


def set_out_dir(path: Path) -> None:
    global OUT_DIR, DB_PATH
    OUT_DIR = path
    DB_PATH = OUT_DIR / "catalogue.db"
