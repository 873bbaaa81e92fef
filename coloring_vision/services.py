"""
Client for the Gemini ``generateContent`` endpoint.

Two calls are used: a vision call that returns free-text enhancement
suggestions, and an image-generation call that returns a finished coloring
page. Failures are reported with the service's status and message and are
never retried here.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np
import requests

from .config import ServiceConfig
from .errors import MissingApiKeyError, NoImageGeneratedError, ServiceError
from .prompts import IMAGE_GENERATION_PROMPT, RETOUCH_PROMPT
from .utils import decode_image_base64, encode_png_base64

logger = logging.getLogger(__name__)


def build_request(instruction: str, image: np.ndarray) -> dict:
    """Request body: one text part and one inline PNG part."""
    return {
        "contents": [
            {
                "parts": [
                    {"text": instruction},
                    {
                        "inlineData": {
                            "mimeType": "image/png",
                            "data": encode_png_base64(image),
                        }
                    },
                ]
            }
        ]
    }


def _first_parts(payload: dict, label: str) -> list:
    """Parts of the first candidate; every part is a dict."""
    candidates = payload.get("candidates") or []
    if not isinstance(candidates, list):
        raise ServiceError(f"{label} returned an unexpected payload")
    if not candidates:
        return []
    candidate = candidates[0]
    if not isinstance(candidate, dict):
        raise ServiceError(f"{label} returned an unexpected payload")
    content = candidate.get("content") or {}
    if not isinstance(content, dict):
        raise ServiceError(f"{label} returned an unexpected payload")
    parts = content.get("parts") or []
    if not isinstance(parts, list) or not all(isinstance(p, dict) for p in parts):
        raise ServiceError(f"{label} returned an unexpected payload")
    return parts


class GeminiClient:
    """Wraps the two Gemini calls the coloring tool needs."""

    def __init__(self, config: Optional[ServiceConfig] = None, session: Optional[requests.Session] = None):
        self.config = config or ServiceConfig.from_env()
        self.session = session or requests.Session()

    def _endpoint(self, model: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/models/{model}:generateContent"

    def _generate(self, model: str, instruction: str, image: np.ndarray, label: str) -> dict:
        if not self.config.api_key:
            raise MissingApiKeyError(
                "Gemini API key not found. Set GEMINI_API_KEY or pass an api_key."
            )
        body = build_request(instruction, image)
        logger.info("Calling %s (%s)", label, model)
        try:
            response = self.session.post(
                self._endpoint(model),
                headers={"x-goog-api-key": self.config.api_key},
                json=body,
                timeout=self.config.timeout,
            )
        except requests.Timeout as exc:
            raise ServiceError(f"{label} timed out after {self.config.timeout:g}s") from exc
        except requests.RequestException as exc:
            raise ServiceError(f"{label} request failed: {exc}") from exc

        if not response.ok:
            raise ServiceError(
                f"{label} error: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise ServiceError(
                f"{label} returned malformed JSON", status_code=response.status_code
            ) from exc
        if not isinstance(payload, dict):
            raise ServiceError(f"{label} returned an unexpected payload", status_code=response.status_code)
        return payload

    def suggest_enhancements(self, image: np.ndarray, instruction: str = RETOUCH_PROMPT) -> Optional[str]:
        """Ask the vision model for enhancement keywords.

        Returns the text of the first part of the first candidate, or None
        when the reply carries no text.
        """
        payload = self._generate(self.config.suggestion_model, instruction, image, "Gemini API")
        parts = _first_parts(payload, "Gemini API")
        text = parts[0].get("text") if parts else None
        if text is not None and not isinstance(text, str):
            raise ServiceError("Gemini API returned an unexpected payload")
        logger.info("AI suggests: %s", text)
        return text

    def generate_coloring_page(
        self, image: np.ndarray, instruction: str = IMAGE_GENERATION_PROMPT
    ) -> np.ndarray:
        """Ask the image model for a coloring page; returns it as RGBA."""
        payload = self._generate(self.config.image_model, instruction, image, "Gemini Image API")
        for part in _first_parts(payload, "Gemini Image API"):
            inline = part.get("inlineData") or part.get("inline_data")
            if isinstance(inline, dict) and isinstance(inline.get("data"), str) and inline["data"]:
                try:
                    return decode_image_base64(inline["data"])
                except ValueError as exc:
                    raise ServiceError(f"Generated image could not be decoded: {exc}") from exc
        raise NoImageGeneratedError("No image generated from Gemini API")
