"""
Service classes for the Slidecast video generator.
Contains the summarizer, narration and mascot image adapters.
"""

import asyncio
import base64
import json
import logging
import random
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

import requests

from config import (
    DEFAULT_SLIDE_SECONDS,
    ELEVENLABS_API_URL,
    ELEVENLABS_MODEL_ID,
    ELEVENLABS_VOICE_ID,
    ELEVENLABS_VOICE_SETTINGS,
    IMAGE_MODEL,
    MASCOT_PROMPTS,
    MASCOT_REFINE_SYSTEM_PROMPT,
    MASCOT_REFINE_USER_TEMPLATE,
    OPENAI_API_URL,
    REQUEST_TIMEOUT,
    SLIDE_COUNT,
    SUMMARY_MODEL,
    SUMMARY_SYSTEM_PROMPT,
    SUMMARY_USER_TEMPLATE,
)


class SummaryError(RuntimeError):
    """Raised when the summarization response is missing or malformed."""


_DATA_URL = re.compile(r"^data:[\w/+.-]+;base64,")


def decode_data_url(value: str) -> bytes:
    """Decode a ``data:<mime>;base64,`` URL (or a bare base64 string)."""
    payload = _DATA_URL.sub("", value.strip())
    if not payload:
        raise ValueError("Empty base64 payload")
    try:
        return base64.b64decode(payload, validate=True)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e


def encode_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


@dataclass
class SlideOutcome:
    """Result of one per-slide call: either a payload or an error, never both."""
    slide_index: int
    payload: Optional[bytes] = None
    error: Optional[str] = None
    extra: Dict[str, object] = field(default_factory=dict)

    @classmethod
    def success(cls, slide_index: int, payload: bytes, **extra) -> "SlideOutcome":
        return cls(slide_index=slide_index, payload=payload, extra=extra)

    @classmethod
    def failure(cls, slide_index: int, error: str, **extra) -> "SlideOutcome":
        return cls(slide_index=slide_index, error=error, extra=extra)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchResult:
    """Per-slide outcomes keyed by slide index."""
    outcomes: Dict[int, SlideOutcome] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes.values() if outcome.ok)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def message(self) -> str:
        return f"{self.succeeded}/{self.total} succeeded"

    def ordered(self) -> List[SlideOutcome]:
        return [self.outcomes[index] for index in sorted(self.outcomes)]

    def payloads(self) -> Dict[int, bytes]:
        return {index: outcome.payload for index, outcome in self.outcomes.items() if outcome.ok}


async def run_batch(count: int, call: Callable[[int], SlideOutcome], concurrency: int = 1) -> BatchResult:
    """
    Run ``call(index)`` for every index in a worker thread, at most
    ``concurrency`` at a time, and collect outcomes by index.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def guarded(index: int) -> SlideOutcome:
        async with semaphore:
            return await asyncio.to_thread(call, index)

    outcomes = await asyncio.gather(*(guarded(index) for index in range(count)))
    return BatchResult(outcomes={outcome.slide_index: outcome for outcome in outcomes})


@dataclass
class SlideSummary:
    title: str
    content: str
    duration: int = DEFAULT_SLIDE_SECONDS

    def as_dict(self) -> dict:
        return {"title": self.title, "content": self.content, "duration": self.duration}


@dataclass
class SummaryResult:
    summary: str
    slides: List[SlideSummary]


class SummaryValidator:
    """Validates the raw chat completion text returned for a summary request."""

    def __init__(self, raw_text: str, expected_slides: int = SLIDE_COUNT):
        self.text = raw_text or ""
        self.expected_slides = expected_slides

    def _strip_markdown(self):
        self.text = re.sub(r"```(?:json)?\n?|```", "", self.text).strip()

    def _parse(self) -> dict:
        try:
            parsed = json.loads(self.text)
        except json.JSONDecodeError as e:
            logging.error(f"❌ Summary response is not valid JSON: {e}")
            logging.error(f"--- RAW RESPONSE ---\n{self.text}\n---")
            raise SummaryError("Could not parse the summarization response.") from e
        if not isinstance(parsed, dict):
            raise SummaryError("Summarization response must be a JSON object.")
        return parsed

    def _slides(self, parsed: dict) -> List[SlideSummary]:
        raw_slides = parsed.get("slides")
        if not isinstance(raw_slides, list) or len(raw_slides) != self.expected_slides:
            count = len(raw_slides) if isinstance(raw_slides, list) else 0
            raise SummaryError(f"Expected exactly {self.expected_slides} slides, got {count}.")

        slides = []
        for i, item in enumerate(raw_slides):
            if not isinstance(item, dict):
                raise SummaryError(f"Slide {i + 1} is not an object.")
            title = str(item.get("title") or "").strip()
            content = str(item.get("content") or "").strip()
            if not title or not content:
                raise SummaryError(f"Slide {i + 1} is missing a title or content.")
            try:
                duration = int(item.get("duration") or DEFAULT_SLIDE_SECONDS)
            except (TypeError, ValueError):
                duration = DEFAULT_SLIDE_SECONDS
            slides.append(SlideSummary(title=title, content=content, duration=max(1, duration)))
        return slides

    def run(self) -> SummaryResult:
        if not self.text.strip():
            raise SummaryError("The summarization model returned an empty response.")

        self._strip_markdown()
        parsed = self._parse()
        return SummaryResult(summary=str(parsed.get("summary") or "").strip(), slides=self._slides(parsed))


def _chat_completion(api_key: str, messages: List[dict], max_tokens: int, temperature: float) -> str:
    response = requests.post(
        f"{OPENAI_API_URL}/chat/completions",
        headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
        json={
            "model": SUMMARY_MODEL,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        },
        timeout=REQUEST_TIMEOUT,
    )
    response.raise_for_status()
    choices = response.json().get("choices") or [{}]
    return (choices[0].get("message") or {}).get("content") or ""


class AIService:
    """Handles chat model communication for summarization."""

    def __init__(self, api_key: str):
        self.api_key = api_key

    def summarize(self, text: str) -> SummaryResult:
        logging.info(f"📝 Sending {len(text)} characters to {SUMMARY_MODEL} for summarization")
        try:
            raw = _chat_completion(
                self.api_key,
                [
                    {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                    {"role": "user", "content": SUMMARY_USER_TEMPLATE.format(text=text)},
                ],
                max_tokens=1500,
                temperature=0.3,
            )
        except requests.RequestException as e:
            raise SummaryError(f"Could not reach the summarization model: {e}") from e
        return SummaryValidator(raw).run()


def narration_text(index: int, title: str, content: str) -> str:
    return f"slide {index + 1}. {title}. {content}"


class NarrationService:
    """Synthesizes per-slide narration through the ElevenLabs text-to-speech API."""

    def __init__(self, api_key: str, voice_id: str = ELEVENLABS_VOICE_ID):
        self.api_key = api_key
        self.voice_id = voice_id

    def synthesize(self, text: str) -> bytes:
        response = requests.post(
            f"{ELEVENLABS_API_URL}/text-to-speech/{self.voice_id}",
            headers={
                "Accept": "audio/mpeg",
                "Content-Type": "application/json",
                "xi-api-key": self.api_key,
            },
            json={
                "text": text,
                "model_id": ELEVENLABS_MODEL_ID,
                "voice_settings": ELEVENLABS_VOICE_SETTINGS,
            },
            timeout=REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        if not response.content:
            raise ValueError("Text-to-speech service returned no audio")
        return response.content

    def _synthesize_slide(self, index: int, slide: SlideSummary) -> SlideOutcome:
        extra = {"title": slide.title, "duration": slide.duration}
        try:
            audio = self.synthesize(narration_text(index, slide.title, slide.content))
        except (requests.RequestException, ValueError) as e:
            logging.error(f"❌ Narration failed for slide {index + 1}: {e}")
            return SlideOutcome.failure(index, str(e), **extra)
        return SlideOutcome.success(index, audio, **extra)

    async def synthesize_batch(self, slides: Sequence[SlideSummary], concurrency: int = 1) -> BatchResult:
        """Narrate every slide; a failing slide never aborts the batch."""
        result = await run_batch(len(slides), lambda i: self._synthesize_slide(i, slides[i]), concurrency)
        logging.info(f"🔊 Narration finished: {result.message}")
        return result

    def list_voices(self) -> List[dict]:
        response = requests.get(
            f"{ELEVENLABS_API_URL}/voices",
            headers={"xi-api-key": self.api_key},
            timeout=REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        return response.json().get("voices", [])


class MascotService:
    """Generates mascot images with an image model, one per slide."""

    def __init__(self, api_key: str, rng: Optional[random.Random] = None):
        self.api_key = api_key
        self.rng = rng or random.Random()

    def refine_prompt(self, template: str, context: Optional[str]) -> str:
        if not context:
            return template
        try:
            refined = _chat_completion(
                self.api_key,
                [
                    {"role": "system", "content": MASCOT_REFINE_SYSTEM_PROMPT},
                    {"role": "user", "content": MASCOT_REFINE_USER_TEMPLATE.format(context=context)},
                ],
                max_tokens=100,
                temperature=0.8,
            )
        except requests.RequestException as e:
            logging.warning(f"Prompt refinement failed, using template: {e}")
            return template
        return refined.strip() or template

    def generate_image(self, prompt: str) -> bytes:
        response = requests.post(
            f"{OPENAI_API_URL}/images/generations",
            headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
            json={
                "model": IMAGE_MODEL,
                "prompt": prompt,
                "n": 1,
                "size": "1024x1024",
                "quality": "standard",
                "response_format": "b64_json",
            },
            timeout=REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        data = response.json().get("data") or []
        encoded = data[0].get("b64_json") if data else None
        if not encoded:
            raise ValueError("Image service returned no image data")
        return base64.b64decode(encoded)

    def _generate_one(self, index: int, context: Optional[str]) -> SlideOutcome:
        prompt = self.refine_prompt(self.rng.choice(MASCOT_PROMPTS), context)
        try:
            image = self.generate_image(prompt)
        except (requests.RequestException, ValueError) as e:
            logging.error(f"❌ Mascot image {index + 1} failed: {e}")
            return SlideOutcome.failure(index, str(e), prompt=prompt)
        return SlideOutcome.success(index, image, prompt=prompt)

    async def generate_batch(self, count: int, context: Optional[str] = None, concurrency: int = 1) -> BatchResult:
        result = await run_batch(count, lambda i: self._generate_one(i, context), concurrency)
        logging.info(f"🖼️ Mascot generation finished: {result.message}")
        return result


