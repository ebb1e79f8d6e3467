"""Google Gemini (generativelanguage generateContent)."""
from __future__ import annotations

from services.ai.providers.base import BaseAIProvider
from services.analysis.errors import ProviderAuthError, ProviderResponseError


class GeminiProvider(BaseAIProvider):
    name = "gemini"

    async def _request_text(self, prompt: str) -> str:
        data = await self._post_json(
            f"/models/{self.model}:generateContent",
            {
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": {
                    "temperature": self.temperature,
                    "maxOutputTokens": self.max_tokens,
                    "responseMimeType": "application/json",
                },
            },
            headers={"Content-Type": "application/json"},
            params={"key": self.api_key},
        )

        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise ProviderResponseError(self.name, "Invalid response format from Gemini API") from None

    def _raise_for_status(self, status: int, message: str) -> None:
        # Gemini reports a bad key as a 400, not a 401
        if status == 400 and "api key" in message.lower():
            raise ProviderAuthError(self.name, "Invalid Gemini API key", status=status)
        super()._raise_for_status(status, message)
