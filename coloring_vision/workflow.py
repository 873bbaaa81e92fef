"""AI Retouch / AI Convert actions built from the service client and the pipelines."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import numpy as np

from .config import EnhancementParams
from .enhancement import run_adaptive_enhancement
from .keywords import DEFAULT_SUGGESTION, keywords_or_default
from .prompts import IMAGE_GENERATION_PROMPT, RETOUCH_PROMPT
from .services import GeminiClient
from .utils import fit_within

logger = logging.getLogger(__name__)


@dataclass
class RetouchResult:
    image: np.ndarray
    keywords: frozenset
    suggestion: str


async def ai_retouch(
    image: np.ndarray,
    client: GeminiClient,
    instruction: str = RETOUCH_PROMPT,
    remove_background: bool = False,
    params: EnhancementParams = EnhancementParams(),
) -> RetouchResult:
    """Ask the vision model for keywords and run the adaptive pipeline with them."""
    logger.info("Analyzing image with Gemini AI...")
    suggestion = await asyncio.to_thread(client.suggest_enhancements, image, instruction)
    suggestion = suggestion or DEFAULT_SUGGESTION
    keywords = keywords_or_default(suggestion)
    logger.info("Applying enhancements: %s", ", ".join(sorted(keywords)))

    scaled = fit_within(image, params.max_size)
    if scaled.shape[:2] != image.shape[:2]:
        logger.info("Resizing to %dx%d for faster processing", scaled.shape[1], scaled.shape[0])
    enhanced = await run_adaptive_enhancement(scaled, keywords, remove_background, params)
    return RetouchResult(image=enhanced, keywords=keywords, suggestion=suggestion)


def ai_convert(
    image: np.ndarray, client: GeminiClient, instruction: str = IMAGE_GENERATION_PROMPT
) -> np.ndarray:
    """Let the image-generation model draw the coloring page."""
    logger.info("Using Gemini Image Generation API...")
    return client.generate_coloring_page(image, instruction)
