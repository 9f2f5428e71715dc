"""
LLM Gateway — OpenAI-compatible chat completions.

Single non-streaming call used by alert enrichment. Errors are raised as
LLMError so callers can fall back to their own text.
"""

import httpx
import structlog

from weatherbuddy.config import settings

logger = structlog.get_logger(__name__)


class LLMError(Exception):
    """LLM call failed or is not configured."""


class LLMGateway:
    """Gateway for a chat-completions endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        model: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.api_url = api_url or settings.llm_api_url
        self.model = model or settings.llm_model
        self.timeout = timeout
        self._transport = transport
        if not self.api_key:
            logger.warning("llm_api_key_missing", msg="Alert enrichment will be skipped")

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    async def generate(
        self,
        system: str,
        user_message: str,
        max_tokens: int = 200,
        temperature: float = 0.8,
        json_mode: bool = False,
    ) -> str:
        """
        Non-streaming generation.

        Returns the full text response.

        Raises:
            LLMError: missing credentials, HTTP error, or unexpected reply shape
        """
        if not self.api_key:
            raise LLMError("LLM API key not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        payload: dict = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user_message},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(self.api_url, json=payload, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "llm_api_error",
                status=e.response.status_code,
                body=e.response.text[:500],
            )
            raise LLMError(f"LLM API error: HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("llm_generate_error", model=self.model, error=str(e))
            raise LLMError(f"LLM request failed: {e}") from e

        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise LLMError("Unexpected LLM response shape") from e
