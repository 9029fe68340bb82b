"""Format presets and image operations for the smart resizer workflow.

A master image is turned into one image per requested format. Formats whose
aspect ratio is close to the master are cropped, moderately different ones
are padded, and the rest are regenerated by the image model with the master
as reference.
"""

from __future__ import annotations

import io
import json
import logging
from typing import Any, Iterable, Literal, Optional

from PIL import Image, ImageOps, UnidentifiedImageError
from pydantic import BaseModel, Field

from ..constants import PRO_MODEL
from ..errors import AppError, ValidationError

logger = logging.getLogger(__name__)

ProcessingMethod = Literal["crop", "padding", "ai_regenerate"]

CROP_THRESHOLD = 0.2
PADDING_THRESHOLD = 0.5
PADDING_COLOR = "#FFFFFF"

SMART_RESIZER_MODEL = PRO_MODEL
ANALYSIS_MODEL = "gemini-2.5-flash"


class SafeZone(BaseModel):
    """Margins as fractions of the output size."""

    top: float = 0.0
    bottom: float = 0.0
    left: float = 0.0
    right: float = 0.0
    all: Optional[float] = None


class FormatPreset(BaseModel):
    width: int
    height: int
    ratio: str
    platform: str = "standard"
    safe_zone: SafeZone = SafeZone(all=0.0)
    description: str
    usage: str


def _preset(width: int, height: int, ratio: str, description: str, usage: str) -> FormatPreset:
    return FormatPreset(
        width=width, height=height, ratio=ratio, description=description, usage=usage
    )


FORMAT_PRESETS: dict[str, FormatPreset] = {
    "square": _preset(1080, 1080, "1:1", "1:1 Square", "Instagram, Facebook posts"),
    "portrait_2_3": _preset(1080, 1620, "2:3", "2:3 Portrait", "Classic portrait photography"),
    "portrait_3_4": _preset(1080, 1440, "3:4", "3:4 Traditional", "Traditional portrait format"),
    "social_story": _preset(
        1080, 1920, "9:16", "9:16 Social Story", "Instagram Stories, TikTok, Reels"
    ),
    "social_post": _preset(1080, 1350, "4:5", "4:5 Social Post", "Instagram/Facebook optimal"),
    "standard_3_2": _preset(1620, 1080, "3:2", "3:2 Standard", "Standard photography (35mm)"),
    "classic_4_3": _preset(1440, 1080, "4:3", "4:3 Classic", "Classic TV/monitor format"),
    "widescreen": _preset(1920, 1080, "16:9", "16:9 Widescreen", "YouTube, modern displays"),
    "medium_5_4": _preset(1350, 1080, "5:4", "5:4 Medium", "Large format photography"),
    "ultrawide": _preset(2520, 1080, "21:9", "21:9 Widescreen", "Cinematic ultra-wide"),
}

FORMAT_PACKS: dict[str, list[str]] = {
    "social": ["square", "social_post", "social_story"],
    "portrait": ["portrait_2_3", "portrait_3_4", "social_story"],
    "landscape": ["standard_3_2", "classic_4_3", "widescreen"],
    "all": list(FORMAT_PRESETS),
}


def list_formats(platform: Optional[str] = None) -> list[dict[str, Any]]:
    return [
        {"key": key, **preset.model_dump()}
        for key, preset in FORMAT_PRESETS.items()
        if platform is None or preset.platform == platform
    ]


def _split_formats(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.strip()
        if raw.startswith("["):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                raise ValidationError("formats must be a JSON list", "INVALID_FORMATS")
        else:
            raw = raw.split(",")
    if not isinstance(raw, (list, tuple)):
        raise ValidationError("formats must be a list", "INVALID_FORMATS")
    return [str(item).strip() for item in raw if str(item).strip()]


def resolve_formats(formats: Any = None, format_pack: Optional[str] = None) -> list[str]:
    """Turn the requested formats and/or pack into an ordered list of unique keys.

    Raises:
        ValidationError: when nothing is requested or a key or pack is unknown.
    """
    keys = _split_formats(formats)
    if format_pack:
        if format_pack not in FORMAT_PACKS:
            raise ValidationError(
                f"Invalid format pack. Must be one of: {', '.join(FORMAT_PACKS)}",
                "INVALID_FORMAT_PACK",
            )
        keys.extend(FORMAT_PACKS[format_pack])
    if not keys:
        raise ValidationError("At least one format is required", "MISSING_FORMATS")

    invalid = [key for key in keys if key not in FORMAT_PRESETS]
    if invalid:
        raise ValidationError(
            f"Invalid format keys: {', '.join(invalid)}",
            "INVALID_FORMATS",
            details={"valid_formats": list(FORMAT_PRESETS)},
        )
    return list(dict.fromkeys(keys))


def safe_zone_pixels(width: int, height: int, zone: SafeZone) -> dict[str, int]:
    if zone.all is not None:
        return {
            "top": round(height * zone.all),
            "bottom": round(height * zone.all),
            "left": round(width * zone.all),
            "right": round(width * zone.all),
        }
    return {
        "top": round(height * zone.top),
        "bottom": round(height * zone.bottom),
        "left": round(width * zone.left),
        "right": round(width * zone.right),
    }


def determine_best_method(
    source_width: int, source_height: int, preset: FormatPreset
) -> ProcessingMethod:
    difference = abs(source_width / source_height - preset.width / preset.height)
    if difference < CROP_THRESHOLD:
        return "crop"
    if difference < PADDING_THRESHOLD:
        return "padding"
    return "ai_regenerate"


def _open(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise AppError("Master image could not be decoded", 400, "INVALID_IMAGE") from exc
    return image


def image_size(data: bytes) -> tuple[int, int]:
    return _open(data).size


def _to_png(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def smart_crop(data: bytes, width: int, height: int) -> bytes:
    """Scale to cover ``width`` x ``height`` and crop the centre."""
    image = _open(data).convert("RGB")
    fitted = ImageOps.fit(image, (width, height), Image.Resampling.LANCZOS)
    return _to_png(fitted)


def resize_with_padding(
    data: bytes, width: int, height: int, background: str = PADDING_COLOR
) -> bytes:
    """Scale to fit inside ``width`` x ``height`` and pad the rest."""
    image = _open(data).convert("RGB")
    padded = ImageOps.pad(image, (width, height), Image.Resampling.LANCZOS, color=background)
    return _to_png(padded)


class TextElement(BaseModel):
    type: str = "other"
    text: str
    position: Optional[str] = None
    style: Optional[str] = None


class VisualElement(BaseModel):
    type: str = "other"
    description: str
    position: Optional[str] = None


class DetectedContent(BaseModel):
    """What the analysis model found on the master image."""

    texts: list[TextElement] = Field(default_factory=list)
    visual_elements: list[VisualElement] = Field(default_factory=list)
    color_palette: list[str] = Field(default_factory=list)
    brand_style: str = "unknown"


ANALYSIS_PROMPT = """Analyze this advertisement image and extract ALL text and visual elements.

Return ONLY valid JSON (no markdown, no explanation) with this structure:
{
  "texts": [{"type": "headline|stat|label|body|cta|other", "text": "exact text",
             "position": "top-left|top-center|...|bottom-right", "style": "font style"}],
  "visual_elements": [{"type": "logo|chart|border|icon|image|other",
                       "description": "detailed description", "position": "where it appears"}],
  "color_palette": ["#HEX1", "#HEX2"],
  "brand_style": "brief description of overall visual style"
}

Extract every word, number and symbol visible."""


def parse_detected_content(text: str) -> DetectedContent:
    """Parse the analysis answer, tolerating markdown code fences.

    Unparseable answers yield empty content so generation still proceeds.
    """
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
        cleaned = cleaned.rsplit("```", 1)[0]
    try:
        return DetectedContent.model_validate(json.loads(cleaned))
    except ValueError as exc:
        logger.warning("Could not parse image analysis: %s", exc)
        return DetectedContent()


def build_generation_prompt(
    content: DetectedContent, format_key: str, preset: FormatPreset
) -> str:
    width, height = preset.width, preset.height
    zone = safe_zone_pixels(width, height, preset.safe_zone)

    if content.texts:
        text_section = "MANDATORY TEXT TO INCLUDE (copy EXACTLY, keep hierarchy and style):\n"
        text_section += "\n".join(
            f"{i}. {t.type.upper()}: \"{t.text}\"" + (f" (Style: {t.style})" if t.style else "")
            for i, t in enumerate(content.texts, 1)
        )
        text_section += "\n\nEvery word must be included and spelled exactly as shown above."
    else:
        text_section = "No text to include."

    if content.visual_elements:
        visual_section = "VISUAL ELEMENTS TO PRESERVE:\n" + "\n".join(
            f"{i}. {v.type.upper()}: {v.description}"
            + (f" (Position: {v.position})" if v.position else "")
            for i, v in enumerate(content.visual_elements, 1)
        )
    else:
        visual_section = "No specific visual elements."

    color_section = (
        f"COLOR PALETTE: {', '.join(content.color_palette)}"
        if content.color_palette
        else "Use original colors."
    )

    return f"""Recreate this advertisement in {width}x{height} format ({preset.ratio}) for {format_key}.

{text_section}

{visual_section}

{color_section}

BRAND STYLE: {content.brand_style}

SAFE ZONE MARGINS:
- Top: {zone['top']}px
- Bottom: {zone['bottom']}px
- Left: {zone['left']}px
- Right: {zone['right']}px
Keep all text and important elements within these margins.

REQUIREMENTS:
1. Maintain the same visual hierarchy and layout principles
2. All text must be clearly readable
3. Preserve brand colors and style
4. Adapt the composition to {width}x{height} while keeping the same message
5. Do not add or reword any text"""


def plan_methods(master: bytes, format_keys: Iterable[str]) -> dict[str, ProcessingMethod]:
    width, height = image_size(master)
    return {
        key: determine_best_method(width, height, FORMAT_PRESETS[key]) for key in format_keys
    }
