"""Generate an image (cache/summary.png) containing:
Total number of countries
Top 5 countries by estimated GDP
Timestamp of last refresh
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence
from fastapi.concurrency import run_in_threadpool
from PIL import Image, ImageDraw, ImageFont

from . import config
from .repository import CountryRepository
from .schema import Country, as_utc_isoformat
from .status import StatusTracker


logger = logging.getLogger(__name__)

SUMMARY_FILENAME = "summary.png"


def get_summary_image_path(cache_dir: Optional[Path] = None) -> Path:
    return Path(cache_dir or config.CACHE_DIR) / SUMMARY_FILENAME


def _load_font(name: str, size: int):
    try:
        return ImageFont.truetype(name, size)
    except OSError:
        return ImageFont.load_default()


def format_gdp(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"${value:,.2f}"


def generate_image(
    total: int,
    top5: Sequence[Country],
    last_refreshed_at: Optional[datetime],
    path: Path,
) -> Path:
    """Draw the summary and save it as PNG at ``path``."""
    width = 800
    row_height = 40
    top_margin = 100
    bottom_margin = 100
    height = top_margin + bottom_margin + row_height * (len(top5) + 3)

    img = Image.new("RGB", (width, height), color="#FFFFFF")
    draw = ImageDraw.Draw(img)

    header_font = _load_font("DejaVuSans-Bold.ttf", 22)
    regular_font = _load_font("DejaVuSans.ttf", 18)
    small_font = _load_font("DejaVuSans.ttf", 14)

    header_text = "Country GDP Summary"
    draw.rectangle([(0, 0), (width, 70)], fill="#f0f0f0")
    text_width = draw.textlength(header_text, font=header_font)
    draw.text(
        ((width - text_width) / 2, 20), header_text, fill="black", font=header_font
    )

    y = top_margin
    draw.text((40, y), f"Total countries: {total}", fill="black", font=regular_font)
    y += 40
    draw.text(
        (40, y), "Top 5 countries by estimated GDP:", fill="black", font=regular_font
    )
    y += 50

    draw.text((60, y), "Country", fill="#333333", font=small_font)
    draw.text((width - 220, y), "Estimated GDP", fill="#333333", font=small_font)
    y += 40

    if not top5:
        draw.text((60, y), "No GDP data available.", fill="gray", font=regular_font)
        y += row_height
    for idx, country in enumerate(top5, start=1):
        gdp_str = format_gdp(country.estimated_gdp)
        draw.text((60, y), f"{idx}. {country.name}", fill="black", font=regular_font)
        text_width = draw.textlength(gdp_str, font=regular_font)
        draw.text(
            (width - 60 - text_width, y), gdp_str, fill="black", font=regular_font
        )
        y += row_height

    y += 40
    draw.text(
        (40, y),
        f"Last refreshed: {as_utc_isoformat(last_refreshed_at) or 'Never'}",
        fill="#555555",
        font=small_font,
    )

    path.parent.mkdir(parents=True, exist_ok=True)
    img.save(path, "PNG")
    return path


async def write_summary_image(
    repository: CountryRepository,
    tracker: StatusTracker,
    cache_dir: Optional[Path] = None,
) -> Path:
    """Render the current top 5 and status to the summary PNG."""
    top5: List[Country] = await repository.top_by_gdp(5)
    status = await tracker.get_status()
    path = await run_in_threadpool(
        generate_image,
        status.total_countries,
        top5,
        status.last_refreshed_at,
        get_summary_image_path(cache_dir),
    )
    logger.info(f"Summary image written to {path}")
    return path
