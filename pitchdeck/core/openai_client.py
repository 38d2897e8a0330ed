"""OpenAI client for slide content generation (api_key from config)."""
from typing import Any, Optional

from pitchdeck.core.config import settings
from openai import OpenAI

_openai_client: Any = None


def get_openai_client(api_key: Optional[str] = None) -> OpenAI:
    """Return a singleton OpenAI client configured with api_key (settings.openai_api_key when not given). Used by the OpenAI content generator.
    Why available: Built lazily on the first generation so the app starts without a key, then reused by every job."""
    global _openai_client
    if _openai_client is None:
        _openai_client = OpenAI(api_key=api_key or settings.openai_api_key)
    return _openai_client
