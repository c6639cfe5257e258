"""
Gemini signal provider - hosted multimodal classifier over the REST API.

Requires GEMINI_API_KEY. Every call is bounded by AI_TIMEOUT_SECONDS.
"""

from typing import Any, Dict, List, Optional
import base64
import json
import logging
import re

import requests

from civictrack.core.settings import settings
from civictrack.models.issue import ExternalSignal
from civictrack.services.ai_signal.base import SignalProvider

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class GeminiSignalProvider(SignalProvider):

    MODEL_VERSION = "v1beta"
    API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.model = model or settings.GEMINI_MODEL
        self.timeout_seconds = timeout_seconds or settings.AI_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        self.enabled = bool(self.api_key and self.api_key.strip())

        if self.enabled:
            logger.info(f"✅ Gemini signal provider initialized: {self.model}")
        else:
            logger.info("⚠️ Gemini signal provider disabled: No API key configured")

    def is_enabled(self) -> bool:
        return self.enabled

    def get_model_info(self) -> Dict[str, str]:
        return {"name": self.model, "version": self.MODEL_VERSION}

    def get_timeout_seconds(self) -> float:
        return self.timeout_seconds

    def classify(
        self,
        category: str,
        description: str,
        images: Optional[List[bytes]] = None,
    ) -> ExternalSignal:
        if not self.enabled:
            raise RuntimeError("Gemini API key not configured")

        parts: List[Dict[str, Any]] = [{"text": self._build_prompt(category, description, bool(images))}]
        for image in images or []:
            parts.append({
                "inline_data": {
                    "mime_type": "image/jpeg",
                    "data": base64.b64encode(image).decode("ascii"),
                }
            })

        response = self.session.post(
            f"{self.API_BASE_URL}/{self.model}:generateContent",
            params={"key": self.api_key},
            json={"contents": [{"parts": parts}]},
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        return self._parse_response(response.json())

    def _build_prompt(self, category: str, description: str, has_images: bool) -> str:
        return f"""You are assisting a municipal team in prioritising civic issue reports.

REPORT:
Category: {category}
Description: {description}
Has Media: {"YES" if has_images else "NO"}

Assess how urgently this issue needs a response, considering public safety,
number of people affected and risk of the problem getting worse.

Respond with JSON only:
{{
  "priority": "CRITICAL|HIGH|MEDIUM|LOW",
  "confidence": <float 0.0-1.0>,
  "reasoning": "<short explanation>",
  "safetyRisk": "<description of safety concerns>",
  "suggestedAction": "<action plan>"
}}"""

    def _parse_response(self, payload: Dict[str, Any]) -> ExternalSignal:
        try:
            text = payload["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise ValueError("Invalid response format from Gemini")

        match = _JSON_OBJECT.search(text)
        if not match:
            raise ValueError("No JSON object in Gemini response")

        return ExternalSignal.model_validate(json.loads(match.group(0)))
