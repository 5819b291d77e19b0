"""
Multi-model vision analyzer.

Analyzes images with Claude and/or Gemini for extremely detailed, search
oriented descriptions, choosing premium or standard models by image size and
requested quality, and falling back to the other provider when one fails.
"""
import base64
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from config import (
    ANTHROPIC_API_KEY,
    ANTHROPIC_API_URL,
    ANTHROPIC_VERSION,
    HTTP_TIMEOUT,
    PREMIUM_CLAUDE_MODEL,
    STANDARD_CLAUDE_MODEL,
    PREMIUM_GEMINI_MODEL,
    STANDARD_GEMINI_MODEL,
    PREMIUM_IMAGE_BYTES,
)
from models.analysis import DetailedAnalysis, ImageAnalysisResult
from services.backoff import BackoffPolicy
from services.errors import AnalysisError, UpstreamError
from services.gemini_client import GeminiClient, inline_image_part

logger = logging.getLogger(__name__)

CLAUDE = "claude"
GEMINI = "gemini"
AUTO = "auto"

MAX_TAGS = 50

ANALYSIS_PROMPT = """You are an expert image analyst. Analyze this image with EXTREME DETAIL for search indexing.

Your goal: Enable precise searches like "red dress", "blue jacket at beach", "person holding coffee".

Output a JSON object with this EXACT structure:
{
  "description": "A comprehensive 2-3 sentence description of the image",
  "subjects": [{"type": "person|animal|object|scene", "description": "...", "position": "center|left|right|background|foreground", "attributes": ["..."]}],
  "colors": [{"color": "exact color name", "shade": "specific shade", "location": "what has this color", "prominence": "dominant|secondary|accent"}],
  "objects": [{"name": "...", "description": "...", "attributes": ["material", "size", "condition", "style"]}],
  "setting": {"type": "indoor|outdoor|studio|abstract", "location": "...", "background": "...", "environment": ["..."]},
  "mood": ["..."],
  "style": ["..."],
  "clothing": [{"type": "...", "color": "...", "shade": "...", "material": "...", "style": "...", "details": ["..."]}],
  "text": [{"content": "exact text visible", "type": "title|label|watermark|sign|logo", "location": "..."}],
  "actions": ["what subjects are doing"],
  "composition": "how the image is composed",
  "lighting": "lighting description",
  "quality": "image quality assessment"
}

BE EXTREMELY SPECIFIC about colors and clothing: say "burgundy red" or "navy blue" rather than "red" or "blue",
and include every visible clothing detail (cut, neckline, length, material, pattern).

Output ONLY the JSON, no markdown, no explanation."""


@dataclass
class ModelSelection:
    claude: str
    gemini: str


def select_models(image_size: int, quality: str = "standard") -> ModelSelection:
    """Use premium models for explicit premium requests or images above 2 MiB."""
    if quality == "premium" or image_size > PREMIUM_IMAGE_BYTES:
        return ModelSelection(claude=PREMIUM_CLAUDE_MODEL, gemini=PREMIUM_GEMINI_MODEL)
    return ModelSelection(claude=STANDARD_CLAUDE_MODEL, gemini=STANDARD_GEMINI_MODEL)


def strip_code_fences(content: str) -> str:
    """Remove a markdown code fence wrapped around a model answer."""
    content = content.strip()
    if content.startswith("```json"):
        content = content[7:]
    elif content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]
    return content.strip()


def parse_model_json(content: str, default: Any = None) -> Any:
    """Parse a JSON object from model output, returning `default` when malformed."""
    try:
        parsed = json.loads(strip_code_fences(content))
    except (TypeError, ValueError):
        logger.warning(f"Model returned malformed JSON: {content[:200]!r}")
        return default
    if not isinstance(parsed, dict):
        logger.warning("Model returned JSON that is not an object")
        return default
    return parsed


def _lower(value: Any) -> Optional[str]:
    return value.lower() if isinstance(value, str) and value else None


def tags_from_analysis(analysis: DetailedAnalysis) -> List[str]:
    """Derive search tags (colours, clothing combos, subjects, setting, mood...)."""
    tags: List[str] = []

    def add(value: Any) -> None:
        tag = _lower(value)
        if tag and 1 < len(tag) < 50 and tag not in tags:
            tags.append(tag)

    for color in analysis.colors:
        add(color.get("color"))
        add(color.get("shade"))

    for clothing in analysis.clothing:
        kind, color, shade = clothing.get("type"), clothing.get("color"), clothing.get("shade")
        for value in (kind, color, shade, clothing.get("material"), clothing.get("style")):
            add(value)
        # Combined tags for precise search
        if color and kind:
            add(f"{color} {kind}")
        if shade and kind:
            add(f"{shade} {kind}")

    for subject in analysis.subjects:
        add(subject.get("type"))
        for attribute in subject.get("attributes") or []:
            add(attribute)

    for obj in analysis.objects:
        add(obj.get("name"))

    add(analysis.setting.get("type"))
    add(analysis.setting.get("location"))

    for value in analysis.mood + analysis.style + analysis.actions:
        add(value)

    return tags[:MAX_TAGS]


def searchable_text_from_analysis(description: str, analysis: DetailedAnalysis) -> str:
    """Flatten the analysis into lowercase prose for embedding and substring search."""
    parts: List[str] = []

    if description:
        parts.append(description)

    for clothing in analysis.clothing:
        words = [
            clothing.get("shade") or clothing.get("color"),
            clothing.get("material"),
            clothing.get("style"),
            clothing.get("type"),
            *(clothing.get("details") or []),
        ]
        clothing_desc = " ".join(str(w) for w in words if w)
        if clothing_desc:
            parts.append(clothing_desc)

    for color in analysis.colors:
        parts.append(f"{color.get('shade') or color.get('color') or ''} {color.get('location') or ''}".strip())

    for subject in analysis.subjects:
        parts.append(f"{subject.get('type') or ''}: {subject.get('description') or ''}")

    setting = analysis.setting
    setting_desc = " ".join(
        str(setting.get(key)) for key in ("type", "location", "background") if setting.get(key)
    )
    if setting_desc:
        parts.append(setting_desc)

    parts.extend(analysis.actions)

    return ". ".join(p for p in parts if p).lower()


def detailed_summary(result: ImageAnalysisResult) -> str:
    """Human-readable summary: description, clothing, setting and top moods."""
    parts = [result.description]
    analysis = result.detailed_analysis

    if analysis.clothing:
        clothing_desc = ", ".join(
            f"{c.get('shade') or c.get('color') or ''} {c.get('type') or ''}".strip()
            + (f" ({c['material']})" if c.get("material") else "")
            for c in analysis.clothing
        )
        parts.append(f"Clothing: {clothing_desc}")

    if analysis.setting.get("location"):
        parts.append(f"Setting: {analysis.setting.get('type', '')} - {analysis.setting['location']}")

    if analysis.mood:
        parts.append(f"Mood: {', '.join(analysis.mood[:3])}")

    return ". ".join(p for p in parts if p)


class ImageAnalyzer:
    """Analyze images with Claude and Gemini, falling back between providers."""

    def __init__(
        self,
        gemini: GeminiClient,
        anthropic_api_key: Optional[str] = ANTHROPIC_API_KEY,
        anthropic_url: str = ANTHROPIC_API_URL,
        backoff: Optional[BackoffPolicy] = None,
        timeout: float = HTTP_TIMEOUT
    ):
        self.gemini = gemini
        self.anthropic_api_key = anthropic_api_key
        self.anthropic_url = anthropic_url
        self.backoff = backoff or BackoffPolicy()
        self.timeout = timeout

    def analyze(
        self,
        image_bytes: bytes,
        mime_type: str,
        quality: str = "standard",
        preferred_provider: str = AUTO
    ) -> ImageAnalysisResult:
        """
        Analyze an image with the preferred provider, then the other one.

        Args:
            image_bytes: Raw image data
            mime_type: Image MIME type
            quality: "standard" or "premium"
            preferred_provider: "claude", "gemini" or "auto" (Claude first)

        Returns:
            ImageAnalysisResult from the first provider that succeeded

        Raises:
            AnalysisError: If every provider failed
        """
        models = select_models(len(image_bytes), quality)
        mime_type = mime_type or "image/jpeg"

        if preferred_provider == GEMINI:
            order = [GEMINI, CLAUDE]
        else:
            order = [CLAUDE, GEMINI]

        for provider in order:
            if provider == CLAUDE:
                result = self._analyze_with_claude(image_bytes, mime_type, models.claude)
            else:
                result = self._analyze_with_gemini(image_bytes, mime_type, models.gemini)
            if result is not None:
                logger.info(
                    f"Image analysis complete: {len(result.tags)} tags, model: {result.model_used}"
                )
                return result

        raise AnalysisError("All analysis models failed")

    def _build_result(
        self,
        content: str,
        model: str,
        start_time: float,
        confidence: float
    ) -> Optional[ImageAnalysisResult]:
        parsed = parse_model_json(content)
        if parsed is None:
            return None

        description = parsed.get("description") or ""
        analysis = DetailedAnalysis.from_parsed(parsed)
        return ImageAnalysisResult(
            description=description,
            detailed_analysis=analysis,
            tags=tags_from_analysis(analysis),
            searchable_text=searchable_text_from_analysis(description, analysis),
            model_used=model,
            processing_time_ms=int((time.time() - start_time) * 1000),
            confidence=confidence,
        )

    def _analyze_with_claude(
        self,
        image_bytes: bytes,
        mime_type: str,
        model: str
    ) -> Optional[ImageAnalysisResult]:
        if not self.anthropic_api_key:
            logger.info("Anthropic API key not configured, skipping Claude analysis")
            return None

        start_time = time.time()
        payload = {
            "model": model,
            "max_tokens": 2000,
            "messages": [{
                "role": "user",
                "content": [
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": mime_type,
                            "data": base64.b64encode(image_bytes).decode("ascii"),
                        },
                    },
                    {"type": "text", "text": ANALYSIS_PROMPT},
                ],
            }],
        }
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.anthropic_api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

        def call() -> str:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.anthropic_url, headers=headers, json=payload)
            if response.status_code < 200 or response.status_code >= 300:
                raise UpstreamError(
                    f"Claude API error: {response.status_code} - {response.text}",
                    status_code=response.status_code,
                )
            blocks = response.json().get("content") or [{}]
            return blocks[0].get("text", "")

        try:
            content = self.backoff.run(call, description="Claude image analysis")
        except Exception as e:
            logger.error(f"Claude analysis failed: {e}")
            return None

        return self._build_result(content, model, start_time, confidence=0.95)

    def _analyze_with_gemini(
        self,
        image_bytes: bytes,
        mime_type: str,
        model: str
    ) -> Optional[ImageAnalysisResult]:
        if not self.gemini.api_key:
            logger.info("Gemini API key not configured, skipping Gemini analysis")
            return None

        start_time = time.time()
        try:
            content = self.gemini.generate(
                [{"text": ANALYSIS_PROMPT}, inline_image_part(image_bytes, mime_type)],
                max_output_tokens=2000,
                model=model,
            )
        except Exception as e:
            logger.error(f"Gemini analysis failed: {e}")
            return None

        return self._build_result(content, model, start_time, confidence=0.9)
