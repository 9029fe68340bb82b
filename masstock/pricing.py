"""Per-image cost and revenue for image generation workflows."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel

from .constants import DEFAULT_RESOLUTION

DEFAULT_PRICING: dict[str, Any] = {
    "flash": {"cost_per_image": 0.039, "revenue_per_image": 0.10},
    "pro": {
        "1K": {"cost_per_image": 0.03633, "revenue_per_image": 0.10},
        "2K": {"cost_per_image": 0.03633, "revenue_per_image": 0.10},
        "4K": {"cost_per_image": 0.06, "revenue_per_image": 0.15},
    },
}


class PricingBreakdown(BaseModel):
    cost_per_image_eur: float
    revenue_per_image_eur: float
    total_cost_eur: float
    total_revenue_eur: float
    profit_eur: float
    profit_margin: float
    image_count: int


def model_tier(model: str) -> str:
    return "pro" if "pro" in model else "flash"


def unit_prices(
    model: str, resolution: Optional[str] = None, workflow_config: Optional[dict] = None
) -> tuple[float, float]:
    """Return ``(cost, revenue)`` for one image.

    Prices from the workflow config win over the defaults; a Pro resolution
    missing from both falls back to 1K.
    """
    pricing = (workflow_config or {}).get("pricing") or DEFAULT_PRICING
    if model_tier(model) == "flash":
        entry = pricing.get("flash") or DEFAULT_PRICING["flash"]
    else:
        tiers = pricing.get("pro") or DEFAULT_PRICING["pro"]
        entry = (
            tiers.get(resolution or DEFAULT_RESOLUTION)
            or DEFAULT_PRICING["pro"].get(resolution or DEFAULT_RESOLUTION)
            or DEFAULT_PRICING["pro"][DEFAULT_RESOLUTION]
        )
    return float(entry["cost_per_image"]), float(entry["revenue_per_image"])


def calculate_pricing(
    model: str,
    resolution: Optional[str],
    image_count: int,
    workflow_config: Optional[dict] = None,
) -> PricingBreakdown:
    cost, revenue = unit_prices(model, resolution, workflow_config)
    total_cost = round(cost * image_count, 4)
    total_revenue = round(revenue * image_count, 4)
    profit = round(total_revenue - total_cost, 4)
    margin = round(profit / total_revenue * 100, 2) if total_revenue else 0.0
    return PricingBreakdown(
        cost_per_image_eur=cost,
        revenue_per_image_eur=revenue,
        total_cost_eur=total_cost,
        total_revenue_eur=total_revenue,
        profit_eur=profit,
        profit_margin=margin,
        image_count=image_count,
    )
