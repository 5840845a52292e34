"""
AI-assisted item identification from photos.

Images are sent one at a time to a vision model. A request has a total time
budget; once less than the configured minimum remains, processing stops and
whatever was identified so far is returned as a partial result. A failed call
or an unreadable answer never fails the batch: it becomes a low-confidence
placeholder guess that a person has to verify.
"""
import base64
import json
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

import httpx
import structlog

from ..config import settings
from ..schemas.ai import ItemGuess
from ..schemas.items import ITEM_CATEGORIES, ItemCondition


logger = structlog.get_logger(__name__)

CONDITION_OPTIONS = [c.value for c in ItemCondition]

PARSE_FAILURE_CONFIDENCE = 0.1
CALL_FAILURE_CONFIDENCE = 0.0

PROMPT_TEMPLATE = """
You are an expert in identifying household and office items for moving and packing services in India.

Analyze this image and provide information about the item(s) visible. The item is located in a {room_type} room context.

Please return a JSON response with the following structure:
{{
  "itemName": "Simple name with one descriptive word (e.g., 'Brown Table', 'White Chair', 'Large Sofa', 'Small TV')",
  "category": "One of: {categories}",
  "condition": "One of: {conditions} (based on visible wear, damage, age)",
  "quantity": 1 (count of identical items visible, usually 1 unless multiple identical items),
  "estimatedWeight": "Weight estimate in kilograms (e.g., '25-35 kg', 'Under 5 kg', '50+ kg')",
  "dimensions": "Approximate size in centimeters (e.g., '180cm L x 90cm W x 80cm H', 'Small', 'Medium', 'Large')",
  "estimatedValue": 15000 (estimated value in Indian Rupees for insurance purposes),
  "handlingInstructions": "Only mention if there are visible damages, marks, scratches, or color loss",
  "isFragile": true/false,
  "confidenceScore": 0.0-1.0 (how confident you are in this identification),
  "suggestedDescription": "Brief description for packing list (e.g., 'Brown wooden table')"
}}

Important guidelines:
- Keep item names simple: basic item type + ONE descriptive word (color, size, or material)
- Do not include brands, models, or detailed specifications
- Consider the condition based on visible wear, scratches, or damage
- Provide realistic weight estimates in kilograms and metric measurements
- Estimate value in Indian Rupees considering local market prices
- Mark items as fragile if they contain glass, electronics, or delicate materials
- If multiple items are visible, focus on the most prominent/central item

Return only the JSON response, no additional text."""

FENCE_RE = re.compile(r"```(?:json)?\s*")


class ModelCallError(Exception):
    """The vision model could not be reached or answered with an error."""


@dataclass(frozen=True)
class ImageInput:
    filename: str
    content_type: str
    data: bytes


@dataclass
class IdentifyResult:
    results: List[ItemGuess] = field(default_factory=list)
    total: int = 0
    timed_out: bool = False
    elapsed_ms: int = 0

    @property
    def processed_count(self) -> int:
        return len(self.results)


def build_prompt(room_type: str) -> str:
    return PROMPT_TEMPLATE.format(
        room_type=room_type or "general",
        categories=", ".join(ITEM_CATEGORIES),
        conditions=", ".join(CONDITION_OPTIONS),
    )


class GeminiClient:
    """Minimal REST client for generateContent with inline image data."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key or settings.google_ai_api_key
        self.model = model or settings.ai_model
        self.base_url = (base_url or settings.ai_base_url).rstrip("/")
        self.timeout = timeout or settings.ai_call_timeout_seconds
        if not self.api_key:
            raise ValueError("Google AI API key is required")

    def generate(self, prompt: str, mime_type: str, data: bytes) -> str:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        body = {
            "contents": [{
                "parts": [
                    {"text": prompt},
                    {"inline_data": {"mime_type": mime_type, "data": base64.b64encode(data).decode("ascii")}},
                ]
            }]
        }
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(url, params={"key": self.api_key}, json=body)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ModelCallError(str(e)) from e
        try:
            parts = payload["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            raise ModelCallError("Unexpected model response shape") from e
        return "".join(p.get("text", "") for p in parts if isinstance(p, dict))


def parse_guess_text(text: str) -> dict:
    """JSON object from a model answer, tolerating markdown fences."""
    cleaned = FENCE_RE.sub("", text or "").replace("```", "").strip()
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError("Model answer is not a JSON object")
    return data


def _clamp(value: Any, low: float, high: float, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(low, min(high, number))


def normalize_guess(raw: dict, index: int) -> ItemGuess:
    """Force category/condition onto the closed lists and confidence into [0, 1]."""
    category = raw.get("category")
    if category not in ITEM_CATEGORIES:
        if category is not None:
            logger.warning("ai_identify_invalid_category", image=index + 1, category=category)
        category = "Other"
    condition = str(raw.get("condition") or "").lower()
    if condition not in CONDITION_OPTIONS:
        if raw.get("condition") is not None:
            logger.warning("ai_identify_invalid_condition", image=index + 1, condition=raw.get("condition"))
        condition = "good"
    try:
        quantity = max(1, int(raw.get("quantity") or 1))
    except (TypeError, ValueError):
        quantity = 1
    value = raw.get("estimatedValue")
    return ItemGuess(
        item_name=str(raw.get("itemName") or f"Unknown Item {index + 1}"),
        category=category,
        condition=condition,
        quantity=quantity,
        estimated_weight=raw.get("estimatedWeight"),
        dimensions=raw.get("dimensions"),
        estimated_value=_clamp(value, 0, float("inf"), 0.0) if value is not None else None,
        handling_instructions=raw.get("handlingInstructions"),
        is_fragile=bool(raw.get("isFragile")),
        confidence_score=_clamp(raw.get("confidenceScore"), 0.0, 1.0, 0.0),
        suggested_description=raw.get("suggestedDescription"),
    )


def unparsed_guess(index: int) -> ItemGuess:
    return ItemGuess(
        item_name=f"Unknown Item {index + 1}",
        estimated_weight="Unknown",
        dimensions="Unknown",
        estimated_value=0,
        handling_instructions="Unable to assess condition",
        confidence_score=PARSE_FAILURE_CONFIDENCE,
        suggested_description=f"Item {index + 1} requiring manual identification",
    )


def failed_guess(index: int) -> ItemGuess:
    return ItemGuess(
        item_name=f"Failed to Process Image {index + 1}",
        estimated_weight="Unknown",
        dimensions="Unknown",
        estimated_value=0,
        handling_instructions="Image processing failed",
        confidence_score=CALL_FAILURE_CONFIDENCE,
        suggested_description=f"Image {index + 1} could not be processed",
    )


class ItemIdentifier:
    def __init__(
        self,
        generate: Callable[[str, str, bytes], str],
        budget_seconds: Optional[float] = None,
        min_remaining_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.generate = generate
        self.budget_seconds = budget_seconds if budget_seconds is not None else settings.ai_request_budget_seconds
        self.min_remaining_seconds = (
            min_remaining_seconds if min_remaining_seconds is not None else settings.ai_min_remaining_seconds
        )
        self.clock = clock

    def identify(self, images: List[ImageInput], room_type: str = "general") -> IdentifyResult:
        started = self.clock()
        result = IdentifyResult(total=len(images))
        prompt = build_prompt(room_type)

        for index, image in enumerate(images):
            remaining = self.budget_seconds - (self.clock() - started)
            if remaining < self.min_remaining_seconds:
                logger.warning("ai_identify_budget_exhausted", processed=index, total=len(images), remaining_s=round(remaining, 2))
                result.timed_out = True
                break
            result.results.append(self._identify_one(prompt, image, index))

        result.elapsed_ms = int((self.clock() - started) * 1000)
        logger.info(
            "ai_identify_finished",
            processed=result.processed_count,
            total=result.total,
            timed_out=result.timed_out,
            elapsed_ms=result.elapsed_ms,
        )
        return result

    def _identify_one(self, prompt: str, image: ImageInput, index: int) -> ItemGuess:
        try:
            text = self.generate(prompt, image.content_type or "image/jpeg", image.data)
        except ModelCallError as e:
            logger.warning("ai_identify_fallback", image=index + 1, reason="call_failed", error=str(e))
            return failed_guess(index)
        try:
            raw = parse_guess_text(text)
        except ValueError:
            logger.warning("ai_identify_fallback", image=index + 1, reason="unparseable", raw=(text or "")[:200])
            return unparsed_guess(index)
        return normalize_guess(raw, index)
