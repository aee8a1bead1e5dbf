from abc import ABC, abstractmethod
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import httpx

from psychx.core.resilience import get_breaker, retry_with_backoff
from psychx.core.settings import settings


def _estimate_tokens(text: str) -> int:
    # Lightweight deterministic estimate used for observability without provider-specific token APIs.
    return max(1, len((text or "").strip()) // 4)


class BaseLLMProvider(ABC):
    provider_name: str
    model_name: str = "none"

    @abstractmethod
    async def generate(self, prompt: str, response_schema: dict | None = None) -> tuple[str | None, dict]:
        raise NotImplementedError

    def _usage(self, prompt: str, text: str) -> dict:
        return {
            "provider": self.provider_name,
            "model": self.model_name,
            "prompt_tokens_estimate": _estimate_tokens(prompt),
            "completion_tokens_estimate": _estimate_tokens(text),
            "total_tokens_estimate": _estimate_tokens(prompt) + _estimate_tokens(text),
        }


class GeminiLLMProvider(BaseLLMProvider):
    provider_name = "gemini"

    def __init__(self, model_name: str | None = None):
        self.model_name = model_name or settings.llm_model

    @staticmethod
    def _sanitize_url(raw_url: str) -> str:
        parsed = urlparse(raw_url)
        if not parsed.query:
            return raw_url
        filtered = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k.lower() != "key"]
        return urlunparse(parsed._replace(query=urlencode(filtered)))

    def _api_url(self) -> str:
        api_url = settings.gemini_api_url.strip()
        if not api_url:
            api_url = (
                f"https://generativelanguage.googleapis.com/v1beta/models/"
                f"{self.model_name}:generateContent"
            )
        return self._sanitize_url(api_url)

    async def generate(self, prompt: str, response_schema: dict | None = None) -> tuple[str | None, dict]:
        if not settings.gemini_api_key:
            return None, {"provider": self.provider_name, "model": self.model_name, "reason": "missing_api_key"}

        generation_config: dict = {
            "temperature": settings.llm_temperature,
            "maxOutputTokens": settings.llm_max_output_tokens,
        }
        if response_schema is not None:
            generation_config["responseMimeType"] = "application/json"
            generation_config["responseSchema"] = response_schema
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }

        breaker = get_breaker(f"llm:{self.provider_name}:{self.model_name}")
        if not breaker.can_execute():
            return None, {"provider": self.provider_name, "model": self.model_name, "reason": "circuit_open"}

        async def _call():
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.post(
                    self._api_url(),
                    json=payload,
                    headers={"x-goog-api-key": settings.gemini_api_key},
                )
                response.raise_for_status()
                data = response.json()
                candidates = data.get("candidates", [])
                if not candidates:
                    return None, {
                        "provider": self.provider_name,
                        "model": self.model_name,
                        "reason": "no_candidates",
                    }
                parts = candidates[0].get("content", {}).get("parts", [])
                text = "\n".join(p.get("text", "") for p in parts if isinstance(p, dict)).strip()
                return (text or None), self._usage(prompt, text)

        try:
            result = await retry_with_backoff(_call, retryable_errors=(httpx.TransportError, TimeoutError))
            breaker.record_success()
            return result
        except Exception:
            breaker.record_failure()
            raise


class OllamaLLMProvider(BaseLLMProvider):
    provider_name = "ollama"

    def __init__(self, model_name: str):
        self.model_name = model_name

    async def generate(self, prompt: str, response_schema: dict | None = None) -> tuple[str | None, dict]:
        breaker = get_breaker(f"llm:{self.provider_name}:{self.model_name}")
        if not breaker.can_execute():
            return None, {"provider": self.provider_name, "model": self.model_name, "reason": "circuit_open"}

        body: dict = {"model": self.model_name, "prompt": prompt, "stream": False}
        if response_schema is not None:
            body["format"] = "json"

        async def _call():
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.post(f"{settings.ollama_base_url.rstrip('/')}/api/generate", json=body)
                response.raise_for_status()
                text = (response.json().get("response") or "").strip()
                return (text or None), self._usage(prompt, text)

        try:
            result = await retry_with_backoff(_call, retryable_errors=(httpx.TransportError, TimeoutError))
            breaker.record_success()
            return result
        except Exception:
            breaker.record_failure()
            raise


class NullLLMProvider(BaseLLMProvider):
    provider_name = "none"

    async def generate(self, prompt: str, response_schema: dict | None = None) -> tuple[str | None, dict]:
        usage = self._usage(prompt, "")
        usage.update({"completion_tokens_estimate": 0, "reason": "unsupported_provider"})
        return None, usage


def get_llm_provider() -> BaseLLMProvider:
    provider = (settings.llm_provider or "").lower()
    if provider == "gemini":
        return GeminiLLMProvider(model_name=settings.llm_model)
    if provider == "ollama":
        return OllamaLLMProvider(model_name=settings.ollama_model)
    return NullLLMProvider()
