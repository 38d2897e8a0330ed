"""
Content generation providers. The worker only depends on the ContentGenerator protocol:
generate(prompt) -> deck markdown, or raise GenerationError / CollaboratorTimeoutError.
"""
import logging
from typing import Any, Optional, Protocol

import openai
import requests

from pitchdeck.core.config import Settings
from pitchdeck.core.errors import CollaboratorTimeoutError, GenerationError
from pitchdeck.core.openai_client import get_openai_client
from pitchdeck.generation.markdown import strip_code_fences
from pitchdeck.generation.prompt_builder import DeckPrompt

logger = logging.getLogger(__name__)

GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


class ContentGenerator(Protocol):
    def generate(self, prompt: DeckPrompt, *, timeout: Optional[float] = None) -> str:
        ...


class OpenAIGenerator:
    """Chat-completions backed generator (default provider)."""

    def __init__(
        self,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        api_key: Optional[str] = None,
        client: Any = None,
    ):
        self.model = model
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client

    def generate(self, prompt: DeckPrompt, *, timeout: Optional[float] = None) -> str:
        oc = self._client or get_openai_client(self.api_key)
        try:
            resp = oc.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": prompt.system},
                    {"role": "user", "content": prompt.user},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=timeout,
            )
        except openai.APITimeoutError as e:
            raise CollaboratorTimeoutError(f"OpenAI request timed out: {e}") from e
        except openai.OpenAIError as e:
            raise GenerationError(f"OpenAI request failed: {e}") from e

        raw = (resp.choices[0].message.content or "").strip() if resp.choices else ""
        if not raw:
            raise GenerationError("no generated text found in response")
        return strip_code_fences(raw)


class GeminiGenerator:
    """Gemini generateContent REST API; the prompt is sent as one user part."""

    def __init__(self, api_key: str, model: str, session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.model = model
        self._session = session or requests.Session()

    def generate(self, prompt: DeckPrompt, *, timeout: Optional[float] = None) -> str:
        if not self.api_key:
            raise GenerationError("missing Gemini API key")

        payload = {"contents": [{"parts": [{"text": prompt.text}]}]}
        try:
            resp = self._session.post(
                GEMINI_ENDPOINT.format(model=self.model),
                params={"key": self.api_key},
                json=payload,
                timeout=timeout,
            )
        except requests.exceptions.Timeout as e:
            raise CollaboratorTimeoutError(f"Gemini request timed out: {e}") from e
        except requests.exceptions.RequestException as e:
            raise GenerationError(f"failed to execute request: {e}") from e

        if resp.status_code != 200:
            raise GenerationError(f"API request failed with status: {resp.status_code}, body: {resp.text[:500]}")

        try:
            body = resp.json()
            raw = body["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise GenerationError(f"no generated text found in response: {resp.text[:500]}") from e
        raw = (raw or "").strip()
        if not raw:
            raise GenerationError("no generated text found in response")
        return strip_code_fences(raw)


def get_content_generator(settings: Settings) -> ContentGenerator:
    """Build the generator selected by settings.llm_provider."""
    if settings.llm_provider == "gemini":
        logger.info("content generator: gemini model=%s", settings.gemini_model)
        return GeminiGenerator(api_key=settings.gemini_api_key, model=settings.gemini_model)
    logger.info("content generator: openai model=%s", settings.chat_model)
    return OpenAIGenerator(
        model=settings.chat_model,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        api_key=settings.openai_api_key,
    )
