import json
import logging
from abc import ABC, abstractmethod

import httpx
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 30.0  # seconds
MAX_SAMPLE_URLS = 10

SYSTEM_PROMPT = """You analyze URL patterns of job-posting pages.
Find the common pattern shared by the given job-posting URLs.

Rules:
1. Write numeric ids as {id}
2. Keep only the query parameters that identify the posting
3. Return the path (and query) only, without scheme or host

Reply with JSON only:
{"pattern": "<pattern>", "confidence": <0.0 to 1.0>}"""


class PatternSuggestion(BaseModel):
    pattern: str
    confidence: float | None = None


class PatternCorroborator(ABC):
    """
    Optional second opinion on a learned detail-page template.
    Implementations must never raise: return None when no suggestion is available.
    """

    @abstractmethod
    async def corroborate(self, sample_urls: list[str]) -> PatternSuggestion | None: ...


class NoOpCorroborator(PatternCorroborator):
    """Defers to the majority template."""

    async def corroborate(self, sample_urls: list[str]) -> PatternSuggestion | None:
        return None


class OpenAICorroborator(PatternCorroborator):
    """
    Asks an OpenAI-compatible chat completions endpoint for the common pattern.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        timeout: float = HTTP_TIMEOUT,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    async def corroborate(self, sample_urls: list[str]) -> PatternSuggestion | None:
        if not sample_urls:
            return None

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": "Find the common pattern of these job-posting URLs:\n\n"
                    + "\n".join(sample_urls[:MAX_SAMPLE_URLS]),
                },
            ],
            "temperature": 0.3,
            "max_tokens": 500,
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.api_key}"},
            ) as client:
                response = await client.post(f"{self.base_url}/chat/completions", json=payload)
                response.raise_for_status()
            content = response.json()["choices"][0]["message"]["content"]
            return PatternSuggestion.model_validate(json.loads(content))
        except httpx.HTTPError as e:
            logger.warning(f"Pattern corroboration request failed: {e}")
        except (KeyError, IndexError, TypeError, json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Malformed pattern corroboration response: {e}")
        return None
