import io

import pytest
from PIL import Image

from masstock.errors import AppError, ValidationError
from masstock.services.smart_resizer import (
    FORMAT_PACKS,
    FORMAT_PRESETS,
    DetectedContent,
    SafeZone,
    TextElement,
    build_generation_prompt,
    determine_best_method,
    image_size,
    list_formats,
    parse_detected_content,
    plan_methods,
    resize_with_padding,
    resolve_formats,
    safe_zone_pixels,
    smart_crop,
)
from tests.fixtures.factories import PNG_BYTES, png_image


@pytest.mark.parametrize(
    "formats, pack, expected",
    [
        (["square", "widescreen"], None, ["square", "widescreen"]),
        ("square, widescreen", None, ["square", "widescreen"]),
        ('["square", "square"]', None, ["square"]),
        (None, "landscape", ["standard_3_2", "classic_4_3", "widescreen"]),
        ("social_story", "social", ["social_story", "square", "social_post"]),
    ],
)
def test_resolve_formats(formats, pack, expected):
    assert resolve_formats(formats, pack) == expected


def test_all_pack_covers_every_preset():
    assert resolve_formats(format_pack="all") == list(FORMAT_PRESETS)
    assert len(FORMAT_PACKS["all"]) == 10


@pytest.mark.parametrize(
    "formats, pack, code",
    [
        (None, None, "MISSING_FORMATS"),
        ("", None, "MISSING_FORMATS"),
        (["square", "poster"], None, "INVALID_FORMATS"),
        ("[square", None, "INVALID_FORMATS"),
        ({"square": True}, None, "INVALID_FORMATS"),
        (None, "print", "INVALID_FORMAT_PACK"),
    ],
)
def test_resolve_formats_rejects(formats, pack, code):
    with pytest.raises(ValidationError) as exc:
        resolve_formats(formats, pack)
    assert exc.value.code == code


def test_unknown_format_lists_valid_keys():
    with pytest.raises(ValidationError) as exc:
        resolve_formats(["poster"])
    assert exc.value.details == {"valid_formats": list(FORMAT_PRESETS)}


def test_method_depends_on_ratio_difference():
    assert determine_best_method(1080, 1080, FORMAT_PRESETS["square"]) == "crop"
    assert determine_best_method(1080, 1080, FORMAT_PRESETS["portrait_3_4"]) == "padding"
    assert determine_best_method(1080, 1080, FORMAT_PRESETS["widescreen"]) == "ai_regenerate"
    assert determine_best_method(1920, 1080, FORMAT_PRESETS["classic_4_3"]) == "padding"
    assert plan_methods(png_image(32, 18), ["widescreen", "social_story"]) == {
        "widescreen": "crop",
        "social_story": "ai_regenerate",
    }


def test_safe_zone_pixels():
    assert safe_zone_pixels(1000, 2000, SafeZone(all=0.1)) == {
        "top": 200,
        "bottom": 200,
        "left": 100,
        "right": 100,
    }
    zone = SafeZone(top=0.14, bottom=0.2)
    assert safe_zone_pixels(1080, 1920, zone) == {"top": 269, "bottom": 384, "left": 0, "right": 0}


def _size(data: bytes) -> tuple[int, int]:
    return Image.open(io.BytesIO(data)).size


def test_crop_and_padding_produce_exact_sizes():
    master = png_image(300, 200, color="#ff0000")

    assert _size(smart_crop(master, 100, 100)) == (100, 100)

    padded = Image.open(io.BytesIO(resize_with_padding(master, 300, 300)))
    assert padded.size == (300, 300)
    assert padded.getpixel((150, 5)) == (255, 255, 255)
    assert padded.getpixel((150, 150)) == (255, 0, 0)


def test_undecodable_image():
    with pytest.raises(AppError) as exc:
        image_size(PNG_BYTES)
    assert exc.value.code == "INVALID_IMAGE"
    assert exc.value.status_code == 400


def test_parse_detected_content():
    fenced = '```json\n{"texts": [{"type": "cta", "text": "Buy now"}], "brand_style": "clean"}\n```'
    content = parse_detected_content(fenced)
    assert content.texts[0].text == "Buy now"
    assert content.brand_style == "clean"

    assert parse_detected_content("I could not read this image") == DetectedContent()
    assert parse_detected_content('{"texts": "nope"}') == DetectedContent()


def test_generation_prompt_carries_text_and_margins():
    content = DetectedContent(
        texts=[TextElement(type="headline", text="50% OFF", style="bold sans")],
        color_palette=["#000000", "#FFCC00"],
        brand_style="minimal",
    )
    preset = FORMAT_PRESETS["widescreen"].model_copy(update={"safe_zone": SafeZone(all=0.05)})

    prompt = build_generation_prompt(content, "widescreen", preset)

    assert "1920x1080 format (16:9) for widescreen" in prompt
    assert '1. HEADLINE: "50% OFF" (Style: bold sans)' in prompt
    assert "COLOR PALETTE: #000000, #FFCC00" in prompt
    assert "No specific visual elements." in prompt
    assert "- Top: 54px" in prompt
    assert "- Left: 96px" in prompt

    empty = build_generation_prompt(DetectedContent(), "square", FORMAT_PRESETS["square"])
    assert "No text to include." in empty
    assert "Use original colors." in empty


def test_list_formats():
    formats = list_formats()
    assert [f["key"] for f in formats] == list(FORMAT_PRESETS)
    assert formats[0]["width"] == 1080 and formats[0]["ratio"] == "1:1"
    assert list_formats(platform="print") == []
