"""Virtual staging prompts for the room redesigner workflow."""

from __future__ import annotations

from typing import Optional

from ..constants import PRO_MODEL
from ..errors import ValidationError

DESIGN_STYLES = (
    "modern",
    "minimalist",
    "industrial",
    "scandinavian",
    "contemporary",
    "coastal",
    "farmhouse",
    "midcentury",
)
BUDGET_LEVELS = ("low", "medium", "high", "luxury")

BUDGET_GUIDANCE = {
    "low": "Favour affordable, practical furniture with simple lines.",
    "medium": "Favour well made mid-range furniture and a few accent pieces.",
    "high": "Favour premium designer furniture and quality materials.",
    "luxury": "Favour bespoke statement furniture and curated art pieces.",
}

PRESERVE_RULES = """
Keep the room itself exactly as photographed:
- windows, doors and glass panels keep their number, size, position and frame colour
- floor, wall and ceiling materials and colours stay unchanged
- fixed lighting, outlets, vents, radiators and built-in cabinets stay in place
- columns, beams, niches and the room's proportions stay unchanged

Only add freestanding furniture, rugs, lamps, plants, artwork, cushions and
curtains that frame the windows without covering them."""

OUTPUT_RULES = """
The result must be a photorealistic listing photo with correctly
proportioned furniture, an uncluttered layout and a neutral broad appeal."""

# Pro model is the default for image editing with a reference photo.
ROOM_REDESIGNER_MODEL = PRO_MODEL


def validate_design_options(design_style: Optional[str], budget_level: Optional[str]) -> None:
    if not design_style:
        raise ValidationError("design_style is required", "MISSING_DESIGN_STYLE")
    if design_style not in DESIGN_STYLES:
        raise ValidationError(
            f"Invalid design_style. Must be one of: {', '.join(DESIGN_STYLES)}",
            "INVALID_DESIGN_STYLE",
        )
    if budget_level and budget_level not in BUDGET_LEVELS:
        raise ValidationError(
            f"Invalid budget_level. Must be one of: {', '.join(BUDGET_LEVELS)}",
            "INVALID_BUDGET_LEVEL",
        )


def build_redesign_prompt(
    design_style: str,
    season: Optional[str] = None,
    budget_level: Optional[str] = "medium",
) -> str:
    """Build the staging instruction sent along with the room photo."""
    validate_design_options(design_style, budget_level)
    lines = [
        "Stage the provided room photograph for a real estate listing.",
        f"Furnish and decorate it in a {design_style} style.",
        PRESERVE_RULES,
    ]
    if season:
        lines.append(f"\nAdd subtle {season} touches through colours and accessories.")
    if budget_level:
        lines.append(f"\nBudget: {BUDGET_GUIDANCE[budget_level]}")
    lines.append(OUTPUT_RULES)
    return "\n".join(lines)
