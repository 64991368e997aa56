"""Summaries of transcripts via the hosted chat completion endpoint."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from . import costs, prompts
from .client import DEFAULT_BASE_URL, InvalidResponseError, OpenAIClient
from .models import ConversationKind, Language, SummarizationResult

DEFAULT_MODEL = "gpt-3.5-turbo"
MAX_TOKENS = 500
TEMPERATURE = 0.3
NO_SUMMARY = "No summary generated"

logger = logging.getLogger(__name__)


class Summarizer(OpenAIClient):
    """Ask the chat model for a summary shaped by the conversation kind."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(api_key, base_url=base_url, timeout=timeout, http_client=http_client)
        self.model = model

    def build_request(
        self,
        transcript: str,
        kind: ConversationKind,
        language: Language,
        profile_context: str = "",
    ) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": prompts.system_prompt(kind, language)},
                {
                    "role": "user",
                    "content": prompts.render_user_prompt(kind, language, transcript, profile_context),
                },
            ],
            "max_tokens": MAX_TOKENS,
            "temperature": TEMPERATURE,
        }

    async def summarise(
        self,
        transcript: str,
        kind: ConversationKind,
        language: Language,
        profile_context: Optional[str] = None,
    ) -> SummarizationResult:
        self._headers()
        body = self.build_request(transcript, kind, language, profile_context or "")
        logger.info("Summarising %d characters as %s/%s", len(transcript), kind.value, language.value)
        payload = await self._post("chat/completions", json=body)

        try:
            total_tokens = int(payload["usage"]["total_tokens"])
            choices = payload["choices"]
            if choices:
                text = choices[0]["message"]["content"]
            else:
                text = NO_SUMMARY
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise InvalidResponseError(f"unexpected completion payload: {exc}") from exc
        if not isinstance(text, str):
            raise InvalidResponseError("completion content is not text")

        return SummarizationResult(
            text=text.strip(),
            cost=costs.summarization_cost(total_tokens),
            token_count=total_tokens,
        )
