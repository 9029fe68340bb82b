"""Parsing and validation of batch prompt lists.

Prompts are submitted as one text blob; blank lines separate prompts so a
single prompt may span several lines.
"""

from __future__ import annotations

import logging
import re

from pydantic import BaseModel, Field

from .constants import DEFAULT_API_COST

logger = logging.getLogger(__name__)

_SEPARATOR = re.compile(r"\n\n+")
_DANGEROUS = re.compile(r"<script|javascript:|onerror=", re.IGNORECASE)


class PromptValidation(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    count: int = 0


class CostEstimate(BaseModel):
    total_cost: float
    cost_per_image: float
    image_count: int
    currency: str = "USD"


def parse_prompts(prompts_text: str | None) -> list[str]:
    """Split a text blob into prompts on blank lines."""
    if not prompts_text or not isinstance(prompts_text, str):
        return []
    normalized = prompts_text.replace("\r\n", "\n").replace("\r", "\n")
    prompts = [p.strip() for p in _SEPARATOR.split(normalized)]
    prompts = [p for p in prompts if p]
    logger.debug("Parsed %d prompts from input", len(prompts))
    return prompts


def validate_prompts(
    prompts: list[str],
    min_length: int = 3,
    max_length: int = 1000,
    min_prompts: int = 1,
    max_prompts: int = 100,
) -> PromptValidation:
    errors: list[str] = []
    warnings: list[str] = []

    if len(prompts) < min_prompts:
        errors.append(f"Minimum {min_prompts} prompt(s) required, got {len(prompts)}")
    if len(prompts) > max_prompts:
        errors.append(f"Maximum {max_prompts} prompts allowed, got {len(prompts)}")

    seen: set[str] = set()
    for index, prompt in enumerate(prompts):
        if not isinstance(prompt, str):
            errors.append(f"Prompt at index {index} must be a string")
            continue
        if len(prompt) < min_length:
            errors.append(
                f"Prompt at index {index} is too short (minimum {min_length} characters)"
            )
        if len(prompt) > max_length:
            errors.append(
                f"Prompt at index {index} is too long (maximum {max_length} characters)"
            )
        if _DANGEROUS.search(prompt):
            errors.append(f"Prompt at index {index} contains potentially dangerous content")
        if prompt in seen:
            warnings.append(f"Prompt at index {index} duplicates an earlier prompt")
        seen.add(prompt)

    return PromptValidation(
        valid=not errors, errors=errors, warnings=warnings, count=len(prompts)
    )


def format_prompts_for_display(prompts: list[str], max_length: int = 50) -> list[str]:
    return [p if len(p) <= max_length else p[: max_length - 3] + "..." for p in prompts]


def estimate_cost(prompt_count: int, cost_per_image: float = DEFAULT_API_COST) -> CostEstimate:
    return CostEstimate(
        total_cost=round(prompt_count * cost_per_image, 2),
        cost_per_image=cost_per_image,
        image_count=prompt_count,
    )


def chunk_prompts(prompts: list[str], chunk_size: int = 10) -> list[list[str]]:
    if chunk_size < 1:
        raise ValueError("chunk_size must be positive")
    return [prompts[i : i + chunk_size] for i in range(0, len(prompts), chunk_size)]
