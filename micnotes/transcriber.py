"""Speech-to-text through the hosted Whisper endpoint."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional, Protocol

import httpx

from . import costs
from .assets import LocalAssetStore, estimate_duration
from .client import DEFAULT_BASE_URL, InvalidResponseError, OpenAIClient
from .models import Language, TranscriptionResult

DEFAULT_MODEL = "whisper-1"

logger = logging.getLogger(__name__)


class TranscriptionBackend(Protocol):
    """Common interface for transcription backends."""

    async def transcribe(self, asset_ref: str, language: Language) -> TranscriptionResult:
        """Return transcript text, its cost and the audio duration."""


class WhisperAPITranscriber(OpenAIClient):
    """Upload an audio asset as multipart form data and read back ``{"text": ...}``.

    The duration used for pricing comes from ``duration_probe`` when given,
    otherwise from the file size estimate in :func:`estimate_duration`.
    """

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
        assets: Optional[LocalAssetStore] = None,
        duration_probe: Optional[Callable[[str], float]] = None,
    ) -> None:
        super().__init__(api_key, base_url=base_url, timeout=timeout, http_client=http_client)
        self.model = model
        self.assets = assets or LocalAssetStore()
        self._duration_probe = duration_probe

    def measure_duration(self, asset_ref: str) -> float:
        if self._duration_probe is not None:
            return self._duration_probe(asset_ref)
        return estimate_duration(self.assets.size(asset_ref))

    async def transcribe(self, asset_ref: str, language: Language) -> TranscriptionResult:
        self._headers()  # fail before touching the asset when no key is set

        audio = await asyncio.to_thread(self.assets.read_bytes, asset_ref)
        duration = await asyncio.to_thread(self.measure_duration, asset_ref)
        files = {"file": (Path(asset_ref).name, audio, "audio/m4a")}
        data = {"model": self.model, "language": language.value}
        logger.info("Transcribing %s (%s, ~%.1fs)", asset_ref, language.value, duration)
        payload = await self._post("audio/transcriptions", files=files, data=data)

        text = payload.get("text")
        if not isinstance(text, str):
            raise InvalidResponseError("missing 'text' field")

        return TranscriptionResult(
            text=text,
            cost=costs.transcription_cost(duration),
            duration_seconds=duration,
        )
