# backend/clgen/services/llm_groq.py
from __future__ import annotations
from typing import List, Dict, Any, Optional

import httpx

from clgen.config import Settings, settings as default_settings


class GroqLLM:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        *,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_tokens: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cfg: Settings = default_settings,
    ):
        self.api_key = api_key if api_key is not None else cfg.groq_api_key
        self.model = model or cfg.groq_model
        self.api_url = api_url or cfg.groq_api_url
        self.timeout = timeout if timeout is not None else cfg.llm_timeout_secs
        self.max_tokens = max_tokens if max_tokens is not None else cfg.llm_max_tokens
        self._transport = transport

    @property
    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise RuntimeError("GROQ_API_KEY not set")
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.2,
    ) -> str:
        payload: Dict[str, Any] = {
            "model": self.model,
            "temperature": temperature,
            "messages": messages,
            "stream": False,
            "max_tokens": self.max_tokens,
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as c:
            r = await c.post(self.api_url, headers=self._headers, json=payload)
            r.raise_for_status()
            data = r.json()
            return data["choices"][0]["message"]["content"]
