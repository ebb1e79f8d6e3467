"""Anthropic Claude (Messages API)."""
from __future__ import annotations

from services.ai.providers.base import BaseAIProvider
from services.analysis.errors import ProviderResponseError

ANTHROPIC_VERSION = "2023-06-01"


class ClaudeProvider(BaseAIProvider):
    name = "claude"

    async def _request_text(self, prompt: str) -> str:
        data = await self._post_json(
            "/messages",
            {
                "model": self.model,
                "max_tokens": self.max_tokens,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": self.temperature,
            },
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "Content-Type": "application/json",
            },
        )

        content = data.get("content") or []
        block = content[0] if content else None
        if not isinstance(block, dict) or block.get("type") != "text" or not block.get("text"):
            raise ProviderResponseError(self.name, "Invalid response format from Claude API")
        return block["text"]
