from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Sequence

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 20.0


class LLMClientError(RuntimeError):
    """Raised when a text provider call fails."""


@dataclass
class LLMResponse:
    text: str
    provider: str = ""


def _timeout_from_env(value: Optional[float]) -> float:
    if value:
        return float(value)
    return float(os.getenv("LLM_TIMEOUT", str(DEFAULT_TIMEOUT)))


class TextProvider:
    """Common capability: generate free text from a prompt."""

    name = "provider"

    def is_configured(self) -> bool:
        raise NotImplementedError

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 800,
    ) -> LLMResponse:
        raise NotImplementedError


class OpenAIChatProvider(TextProvider):
    """Chat-completions endpoint called over plain HTTP."""

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else os.getenv("OPENAI_API_KEY", "")
        self.model = model or os.getenv("OPENAI_MODEL", "gpt-3.5-turbo")
        self.base_url = (base_url or os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")).rstrip("/")
        self.timeout = _timeout_from_env(timeout)

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 800,
    ) -> LLMResponse:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": int(max_tokens),
            "temperature": max(0.0, float(temperature)),
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            resp = requests.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as exc:
            raise LLMClientError(f"OpenAI request failed: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise LLMClientError("Failed to decode OpenAI response") from exc

        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMClientError("OpenAI response has no completion text") from exc
        if not isinstance(text, str) or not text.strip():
            raise LLMClientError("OpenAI returned an empty completion")
        return LLMResponse(text=text.strip(), provider=self.name)


class GeminiProvider(TextProvider):
    """Reserved slot: selected when GEMINI_API_KEY is set, but never calls out yet."""

    name = "gemini"

    def __init__(self, api_key: Optional[str] = None) -> None:
        self.api_key = api_key if api_key is not None else os.getenv("GEMINI_API_KEY", "")

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 800,
    ) -> LLMResponse:
        raise LLMClientError("Gemini provider is reserved and not active")


class OllamaProvider(TextProvider):
    """Simple wrapper around the Ollama HTTP API. Only used when OLLAMA_URL is set."""

    name = "ollama"

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = (base_url if base_url is not None else os.getenv("OLLAMA_URL", "")).rstrip("/")
        self.model = model or os.getenv("OLLAMA_MODEL", "llama3")
        self.timeout = _timeout_from_env(timeout)

    def is_configured(self) -> bool:
        return bool(self.base_url)

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 800,
    ) -> LLMResponse:
        url = f"{self.base_url}/api/generate"
        options = {
            "temperature": max(0.0, float(temperature)),
        }
        if max_tokens:
            options["num_predict"] = int(max_tokens)
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": options,
        }
        if system:
            payload["system"] = system
        try:
            resp = requests.post(url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
            text = data.get("response")
            if not text:
                raise LLMClientError("Ollama returned an empty response")
            return LLMResponse(text=text.strip(), provider=self.name)
        except requests.RequestException as exc:
            raise LLMClientError(f"Ollama request failed: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise LLMClientError("Failed to decode Ollama response") from exc


def llm_enabled() -> bool:
    flag = os.getenv("LLM_ENABLED")
    return not (flag is not None and flag.lower().strip() in {"0", "false", "no"})


def get_providers() -> List[TextProvider]:
    """Providers in priority order. Append here to add a new one."""
    if not llm_enabled():
        logger.info("LLM integration explicitly disabled via LLM_ENABLED")
        return []
    return [OpenAIChatProvider(), GeminiProvider(), OllamaProvider()]


def select_provider(providers: Sequence[TextProvider]) -> Optional[TextProvider]:
    for provider in providers:
        if provider.is_configured():
            return provider
    return None


def has_client() -> bool:
    return select_provider(get_providers()) is not None
