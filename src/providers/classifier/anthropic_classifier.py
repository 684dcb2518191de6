"""Anthropic Claude vision classifier.

Wraps the ``anthropic`` async client to implement :class:`IMediaClassifier`.
The photo (or a video's poster-frame thumbnail) is sent inline as a base64
image block together with whatever capture metadata the upload produced;
Claude answers with a JSON object describing the artist, venue, tour and
date it believes the photo shows.

Key behaviours:
    - Videos are classified from ``thumbnail_ref``; a video without one is
      rejected as ``unsupported_media`` (not retryable).
    - ``storage_ref`` may be an ``http(s)://`` URL (fetched with the injected
      ``httpx.AsyncClient``) or a local file path.
    - JSON is pulled out of markdown fences or surrounding prose before
      parsing; any field the model omits falls back to an empty guess.
"""

from __future__ import annotations

import asyncio
import base64
import json
import re
from datetime import date
from pathlib import Path
from typing import Any

import anthropic
import httpx
import structlog

from src.config.settings import Settings
from src.interfaces.media_classifier import IMediaClassifier
from src.models.media import (
    AnalysisResult,
    ArtistGuess,
    MediaItem,
    MediaKind,
    TourGuess,
    VenueGuess,
    VenueType,
)
from src.utils.errors import ClassifierError

logger = structlog.get_logger(logger_name=__name__)

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)
_MAX_TOKENS = 1000

_SYSTEM_PROMPT = """\
You are an expert concert identification assistant. Your job is to analyse
concert photos and identify the artist, venue, tour and date.

You will receive the image and, when available, its capture metadata (date
taken, GPS coordinates, original filename).

Use ALL available information:

VISUAL ANALYSIS:
- Stage design, lighting rigs, LED screens
- Artist appearance, clothing, instruments
- Venue architecture (indoor/outdoor, arena/club/stadium)
- Merch, banners and tour branding visible in the frame
- Crowd size, to estimate venue capacity

METADATA CORRELATION:
- If you know the date, cross-reference it with known tour dates
- GPS coordinates can identify the venue
- Date + venue + visual clues = high confidence identification

TOUR IDENTIFICATION:
- Artists often have a distinct stage design per tour
- LED content, stage shape and lighting colours are tour-specific

Return ONLY a JSON object:
{
  "artist": {"name": "Artist/band name or null", "confidence": 0.0-1.0, "clues": ["..."]},
  "venue": {"name": "Venue name or null", "city": "City or null",
            "type": "arena|stadium|club|theater|festival|outdoor|unknown",
            "confidence": 0.0-1.0, "clues": ["..."]},
  "tour": {"name": "Tour name or null", "confidence": 0.0-1.0, "clues": ["..."]},
  "estimatedDate": "YYYY-MM-DD or null",
  "overallConfidence": 0.0-1.0,
  "reasoning": "Brief summary of your identification process"
}"""


def _detect_media_type(image_bytes: bytes) -> str:
    """Detect the MIME type of an image from its magic bytes."""
    if image_bytes[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    if image_bytes[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    return "image/jpeg"


def _clamp(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, min(1.0, number))


def _clean_str(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text or text.lower() in ("null", "none", "unknown"):
        return None
    return text


def _clues(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(c).strip() for c in value if str(c).strip()]


def _parse_date(value: Any) -> date | None:
    text = _clean_str(value)
    if text is None:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def parse_classifier_response(response: str) -> dict[str, Any]:
    """Extract the JSON object from a model response.

    Handles markdown code fences and prose before or after the object.

    Raises
    ------
    ValueError
        If no JSON object can be extracted (``json.JSONDecodeError`` is a
        subclass).
    """
    text = response.strip()

    fence_match = _JSON_FENCE_RE.search(text)
    if fence_match:
        text = fence_match.group(1).strip()

    if not text.startswith("{"):
        brace_start = text.find("{")
        brace_end = text.rfind("}")
        if brace_start != -1 and brace_end > brace_start:
            text = text[brace_start : brace_end + 1]

    parsed = json.loads(text)
    if not isinstance(parsed, dict):
        raise ValueError("Classifier response is not a JSON object")
    return parsed


def build_analysis_result(parsed: dict[str, Any]) -> AnalysisResult:
    """Turn the model's loosely-typed JSON into an :class:`AnalysisResult`."""
    artist = parsed.get("artist") or {}
    venue = parsed.get("venue") or {}
    tour = parsed.get("tour") or {}

    try:
        venue_type = VenueType(str(venue.get("type") or "unknown").lower())
    except ValueError:
        venue_type = VenueType.UNKNOWN

    return AnalysisResult(
        artist=ArtistGuess(
            name=_clean_str(artist.get("name")),
            external_id=_clean_str(artist.get("mbid") or artist.get("externalId")),
            confidence=_clamp(artist.get("confidence")),
            clues=_clues(artist.get("clues")),
        ),
        venue=VenueGuess(
            name=_clean_str(venue.get("name")),
            city=_clean_str(venue.get("city")),
            type=venue_type,
            confidence=_clamp(venue.get("confidence")),
            clues=_clues(venue.get("clues")),
        ),
        tour=TourGuess(
            name=_clean_str(tour.get("name")),
            confidence=_clamp(tour.get("confidence")),
            clues=_clues(tour.get("clues")),
        ),
        estimated_date=_parse_date(parsed.get("estimatedDate") or parsed.get("estimated_date")),
        overall_confidence=_clamp(
            parsed.get("overallConfidence", parsed.get("overall_confidence"))
        ),
        reasoning=str(parsed.get("reasoning") or ""),
    )


def build_context_message(media: MediaItem) -> str:
    """Describe the capture metadata the model should correlate with."""
    parts: list[str] = []
    if media.captured_at is not None:
        parts.append(
            f"Photo taken: {media.captured_at.date().isoformat()} "
            f"at {media.captured_at.strftime('%H:%M')}"
        )
    if media.location is not None:
        parts.append(f"GPS coordinates: {media.location.latitude}, {media.location.longitude}")
    if media.original_filename:
        parts.append(f"Original filename: {media.original_filename}")

    subject = "concert photo" if media.kind == MediaKind.IMAGE else "frame from a concert video"
    if not parts:
        return f"Analyse this {subject}."
    return (
        f"Analyse this {subject}.\n\nCapture metadata:\n"
        + "\n".join(parts)
        + "\n\nUse this metadata to help identify the tour and venue."
    )


class AnthropicMediaClassifier(IMediaClassifier):
    """Media classifier backed by Claude's vision capability.

    Parameters
    ----------
    settings:
        Supplies the API key and model name.
    http_client:
        Injected ``httpx.AsyncClient`` used to download remote media.
    client:
        Optional pre-built ``AsyncAnthropic`` client (tests inject a mock).
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self._api_key = settings.anthropic_api_key
        self._model = settings.classifier_model
        self._http = http_client
        self._client = client or anthropic.AsyncAnthropic(api_key=self._api_key)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _error(self, message: str, reason: str, retryable: bool = True) -> ClassifierError:
        return ClassifierError(
            message=message,
            provider_name=self.get_provider_name(),
            reason=reason,
            retryable=retryable,
        )

    async def _load_image(self, media: MediaItem) -> bytes:
        ref = media.storage_ref
        if media.kind == MediaKind.VIDEO:
            if not media.thumbnail_ref:
                raise self._error(
                    "Video has no thumbnail frame to classify",
                    reason="unsupported_media",
                    retryable=False,
                )
            ref = media.thumbnail_ref

        if ref.startswith(("http://", "https://")):
            try:
                response = await self._http.get(ref, follow_redirects=True)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning("classifier_media_fetch_failed", media_id=media.id, error=str(exc))
                raise self._error(f"Could not fetch media: {exc}", reason="media_unavailable") from exc
            return response.content

        try:
            return await asyncio.to_thread(Path(ref).read_bytes)
        except OSError as exc:
            raise self._error(
                f"Could not read media file: {exc}",
                reason="media_unavailable",
                retryable=False,
            ) from exc

    # ------------------------------------------------------------------
    # IMediaClassifier implementation
    # ------------------------------------------------------------------

    async def analyze(self, media: MediaItem) -> AnalysisResult:
        image_bytes = await self._load_image(media)
        b64 = base64.b64encode(image_bytes).decode("utf-8")

        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=_MAX_TOKENS,
                system=_SYSTEM_PROMPT,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image",
                                "source": {
                                    "type": "base64",
                                    "media_type": _detect_media_type(image_bytes),
                                    "data": b64,
                                },
                            },
                            {"type": "text", "text": build_context_message(media)},
                        ],
                    }
                ],
            )
        except anthropic.RateLimitError as exc:
            raise self._error(f"Anthropic rate limit: {exc}", reason="rate_limited") from exc
        except anthropic.APITimeoutError as exc:
            raise self._error(f"Anthropic request timed out: {exc}", reason="timeout") from exc
        except anthropic.AuthenticationError as exc:
            raise self._error(
                f"Anthropic rejected the API key: {exc}",
                reason="unauthorized",
                retryable=False,
            ) from exc
        except anthropic.APIError as exc:
            raise self._error(f"Anthropic API error: {exc}", reason="classifier_error") from exc

        text_blocks = [block.text for block in response.content if block.type == "text"]
        if not text_blocks:
            raise self._error("Anthropic returned no text content", reason="bad_response")

        try:
            parsed = parse_classifier_response("\n".join(text_blocks))
        except ValueError as exc:
            logger.warning("classifier_response_unparseable", media_id=media.id, error=str(exc))
            raise self._error(
                f"Could not parse classifier response: {exc}", reason="bad_response"
            ) from exc

        result = build_analysis_result(parsed)
        logger.info(
            "anthropic_media_classified",
            media_id=media.id,
            model=self._model,
            artist=result.artist.name,
            venue=result.venue.name,
            overall_confidence=result.overall_confidence,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return result

    def get_provider_name(self) -> str:
        return "anthropic"

    def is_available(self) -> bool:
        """Return ``True`` if an Anthropic API key is configured."""
        return bool(self._api_key)
