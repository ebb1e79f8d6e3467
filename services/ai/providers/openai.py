"""OpenAI chat completions with JSON response format."""
from __future__ import annotations

from services.ai.providers.base import BaseAIProvider
from services.analysis.errors import ProviderResponseError

SYSTEM_PROMPT = "You are a portfolio analysis assistant. Reply with a single JSON object only."


class OpenAIProvider(BaseAIProvider):
    name = "openai"

    async def _request_text(self, prompt: str) -> str:
        data = await self._post_json(
            "/chat/completions",
            {
                "model": self.model,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                "temperature": self.temperature,
                "max_tokens": self.max_tokens,
                "response_format": {"type": "json_object"},
            },
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )

        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            text = None
        if not text:
            raise ProviderResponseError(self.name, "Invalid response format from OpenAI API")
        return text
